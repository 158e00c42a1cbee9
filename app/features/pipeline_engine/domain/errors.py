"""
Exceptions raised by the pipeline engine.

The router maps these to HTTP statuses; background paths log them and move
on to the next tenant or contact.
"""


class PipelineEngineError(Exception):
    """Base exception for the pipeline engine."""

    def __init__(self, message: str, operation: str | None = None, recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


class ContactNotFoundError(PipelineEngineError):
    """Contact does not exist in the caller's organization."""


class MeetingNotFoundError(PipelineEngineError):
    """Meeting does not exist in the caller's organization."""


class MeetingPermissionError(PipelineEngineError):
    """Only the meeting creator or an admin may change a meeting."""


class InvalidSuggestionError(PipelineEngineError):
    """A next-action write-back failed validation."""


class TipGenerationError(PipelineEngineError):
    """The external tip generator failed, timed out or returned garbage."""


class NotificationNotFoundError(PipelineEngineError):
    """Notification does not exist or belongs to someone else."""
