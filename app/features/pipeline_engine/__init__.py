"""
Pipeline engine feature package.

Risk detection, next-action recommendation, meeting reminders, the batch
notify sweep and the announcement feed for the sales pipeline, kept as one
vertical slice (domain, rules, repositories, services, jobs and API router).

The API router is imported from `app.features.pipeline_engine.api.router`
directly; it depends on app.auth, which itself depends on this package.
"""

# Re-export the primary building blocks for easy access.
from .domain import ContactSnapshot, Meeting, Notification, RiskAlert  # noqa: F401
from .jobs.notify_job import start_pipeline_notify_scheduler  # noqa: F401
from .rules import evaluate_contacts, suggest_next_action  # noqa: F401
from .services import (  # noqa: F401
    PipelineNotifyOrchestrator,
    pipeline_notify_orchestrator,
    run_pipeline_notify_sweep,
)
