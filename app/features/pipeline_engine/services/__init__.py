"""
Service layer for the pipeline engine feature.
"""

from .announcements import AnnouncementService, announcement_service
from .contact_service import ContactService, contact_service
from .idempotency import IdempotencyGuard
from .meeting_service import MeetingService, meeting_service
from .notification_service import NotificationService, notification_service
from .orchestrator import (
    PipelineNotifyOrchestrator,
    SweepResult,
    TenantResult,
    pipeline_notify_orchestrator,
    run_pipeline_notify_sweep,
)
from .tips import TipService, tip_service

__all__ = [
    "AnnouncementService",
    "announcement_service",
    "ContactService",
    "contact_service",
    "IdempotencyGuard",
    "MeetingService",
    "meeting_service",
    "NotificationService",
    "notification_service",
    "PipelineNotifyOrchestrator",
    "SweepResult",
    "TenantResult",
    "pipeline_notify_orchestrator",
    "run_pipeline_notify_sweep",
    "TipService",
    "tip_service",
]
