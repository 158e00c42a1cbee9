"""
Background jobs for the pipeline engine.
"""

from .notify_job import run_pipeline_notify_job, start_pipeline_notify_scheduler

__all__ = ["run_pipeline_notify_job", "start_pipeline_notify_scheduler"]
