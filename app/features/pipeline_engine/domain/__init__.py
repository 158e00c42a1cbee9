"""
Domain subpackage for the pipeline engine feature.
"""

from .errors import (
    ContactNotFoundError,
    InvalidSuggestionError,
    MeetingNotFoundError,
    MeetingPermissionError,
    NotificationNotFoundError,
    PipelineEngineError,
    TipGenerationError,
)
from .models import (
    ACTIVE_STAGES,
    STAGE_LABELS,
    STAGE_SLA,
    ActionSuggestion,
    ActionType,
    Announcement,
    AnnouncementCategory,
    AnnouncementFeed,
    ClaimResult,
    ContactSnapshot,
    Interaction,
    InteractionOutcome,
    InteractionType,
    Meeting,
    MeetingStatus,
    Notification,
    NotificationDraft,
    NotificationType,
    PendingContact,
    PendingReason,
    Priority,
    Profile,
    RiskAlert,
    RiskRule,
    Severity,
    Stage,
    StageSLA,
    Temperature,
)

__all__ = [
    "ACTIVE_STAGES",
    "STAGE_LABELS",
    "STAGE_SLA",
    "ActionSuggestion",
    "ActionType",
    "Announcement",
    "AnnouncementCategory",
    "AnnouncementFeed",
    "ClaimResult",
    "ContactNotFoundError",
    "ContactSnapshot",
    "Interaction",
    "InteractionOutcome",
    "InteractionType",
    "InvalidSuggestionError",
    "Meeting",
    "MeetingNotFoundError",
    "MeetingPermissionError",
    "MeetingStatus",
    "Notification",
    "NotificationDraft",
    "NotificationNotFoundError",
    "NotificationType",
    "PendingContact",
    "PendingReason",
    "PipelineEngineError",
    "Priority",
    "Profile",
    "RiskAlert",
    "RiskRule",
    "Severity",
    "Stage",
    "StageSLA",
    "Temperature",
    "TipGenerationError",
]
