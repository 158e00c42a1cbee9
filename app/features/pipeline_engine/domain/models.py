"""
Domain models for the pipeline engine.

Enumerations mirror the values stored by the record store. Dataclasses are
plain shapes shared by the rules, repositories, services and API layers;
the only behaviour they carry is serialization and a few derived
properties.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any


class Stage(str, Enum):
    NEW = "NEW"
    PROSPECTING = "PROSPECTING"
    CONTACTED = "CONTACTED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    WON = "WON"
    LOST = "LOST"

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STAGES


ACTIVE_STAGES = frozenset(
    {Stage.NEW, Stage.PROSPECTING, Stage.CONTACTED, Stage.MEETING_SCHEDULED}
)

STAGE_LABELS = {
    Stage.NEW: "New",
    Stage.PROSPECTING: "Prospecting",
    Stage.CONTACTED: "Contacted",
    Stage.MEETING_SCHEDULED: "Meeting scheduled",
    Stage.WON: "Won",
    Stage.LOST: "Lost",
}


class Temperature(str, Enum):
    COLD = "COLD"
    WARM = "WARM"
    HOT = "HOT"


class InteractionType(str, Enum):
    CALL = "CALL"
    MESSAGE = "MESSAGE"
    EMAIL = "EMAIL"
    MEETING = "MEETING"
    OTHER = "OTHER"
    VISIT = "VISIT"
    PROPOSAL_SENT = "PROPOSAL_SENT"
    FOLLOW_UP = "FOLLOW_UP"
    NEGOTIATION = "NEGOTIATION"
    AFTER_SALES = "AFTER_SALES"
    SUPPORT = "SUPPORT"
    REFERRAL = "REFERRAL"
    PRESENTATION = "PRESENTATION"
    QUOTE = "QUOTE"


class InteractionOutcome(str, Enum):
    NO_RESPONSE = "NO_RESPONSE"
    RESPONDED = "RESPONDED"
    MEETING_SCHEDULED = "MEETING_SCHEDULED"
    NOT_INTERESTED = "NOT_INTERESTED"
    CONVERTED = "CONVERTED"
    KEEP_TRYING = "KEEP_TRYING"
    PROPOSAL_ACCEPTED = "PROPOSAL_ACCEPTED"
    AWAITING_RETURN = "AWAITING_RETURN"
    NEGOTIATING = "NEGOTIATING"
    REFERRED_THIRD_PARTY = "REFERRED_THIRD_PARTY"
    PARTIAL_CLOSE = "PARTIAL_CLOSE"


class ActionType(str, Enum):
    CALL = "CALL"
    SEND_MESSAGE = "SEND_MESSAGE"
    SEND_EMAIL = "SEND_EMAIL"
    MEETING = "MEETING"
    VISIT = "VISIT"
    FOLLOW_UP = "FOLLOW_UP"
    SEND_PROPOSAL = "SEND_PROPOSAL"
    OTHER = "OTHER"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        """0 is most severe; used as the sort key."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.HIGH: 1,
    Severity.MEDIUM: 2,
    Severity.LOW: 3,
}


class Priority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskRule(str, Enum):
    STALE_DEAL = "STALE_DEAL"
    NO_NEXT_ACTION = "NO_NEXT_ACTION"
    TASK_OVERDUE = "TASK_OVERDUE"
    NO_OWNER = "NO_OWNER"
    NEVER_CONTACTED = "NEVER_CONTACTED"
    HIGH_VALUE_AT_RISK = "HIGH_VALUE_AT_RISK"
    COOLING_DOWN = "COOLING_DOWN"


class NotificationType(str, Enum):
    RISK_ALERT = "RISK_ALERT"
    NEXT_ACTION = "NEXT_ACTION"
    COACHING_TIP = "COACHING_TIP"
    TASK_OVERDUE = "TASK_OVERDUE"
    STALE_DEAL = "STALE_DEAL"
    NO_OWNER = "NO_OWNER"
    MEETING_REMINDER = "MEETING_REMINDER"
    SYSTEM = "SYSTEM"


class MeetingStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass(slots=True, frozen=True)
class StageSLA:
    warn_days: int
    critical_days: int


STAGE_SLA: dict[Stage, StageSLA] = {
    Stage.NEW: StageSLA(warn_days=2, critical_days=5),
    Stage.PROSPECTING: StageSLA(warn_days=5, critical_days=10),
    Stage.CONTACTED: StageSLA(warn_days=3, critical_days=7),
    Stage.MEETING_SCHEDULED: StageSLA(warn_days=5, critical_days=10),
}


@dataclass(slots=True, frozen=True)
class Interaction:
    type: InteractionType
    outcome: InteractionOutcome
    happened_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "outcome": self.outcome.value,
            "happened_at": self.happened_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class ContactSnapshot:
    """Read-only view of a contact plus its recent interactions, most recent first."""

    id: str
    name: str
    stage: Stage
    created_at: datetime
    updated_at: datetime
    temperature: Temperature | None = None
    estimated_value: float | None = None
    owner_id: str | None = None
    next_action_type: ActionType | None = None
    next_action_date: date | None = None
    company: str | None = None
    interactions: tuple[Interaction, ...] = ()

    @property
    def is_active(self) -> bool:
        return self.stage.is_active

    @property
    def last_interaction(self) -> Interaction | None:
        return self.interactions[0] if self.interactions else None


@dataclass(slots=True)
class RiskAlert:
    rule: RiskRule
    level: Severity
    title: str
    description: str
    contact_id: str
    contact_name: str
    days_stale: int | None = None
    value: float | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["rule"] = self.rule.value
        data["level"] = self.level.value
        return data


@dataclass(slots=True)
class ActionSuggestion:
    action: ActionType
    reason: str
    priority: Priority
    contact_id: str
    contact_name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "reason": self.reason,
            "priority": self.priority.value,
            "contact_id": self.contact_id,
            "contact_name": self.contact_name,
        }


@dataclass(slots=True)
class NotificationDraft:
    """A notification that has been decided on but not yet persisted."""

    organization_id: str
    user_id: str
    type: NotificationType
    title: str
    body: str
    contact_id: str | None = None
    scheduled_for: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def dedup_key(self) -> tuple[str | None, str, str]:
        return (self.contact_id, self.user_id, self.type.value)


@dataclass(slots=True)
class Notification:
    id: str
    organization_id: str
    user_id: str
    type: NotificationType
    title: str
    body: str
    contact_id: str | None
    scheduled_for: datetime | None
    read: bool
    dismissed: bool
    metadata: dict[str, Any]
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "body": self.body,
            "contact_id": self.contact_id,
            "scheduled_for": self.scheduled_for.isoformat() if self.scheduled_for else None,
            "read": self.read,
            "dismissed": self.dismissed,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class Meeting:
    id: str
    organization_id: str
    contact_id: str
    created_by_user_id: str
    title: str
    meeting_at: datetime
    duration_minutes: int = 30
    status: MeetingStatus = MeetingStatus.SCHEDULED
    location: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "contact_id": self.contact_id,
            "created_by_user_id": self.created_by_user_id,
            "title": self.title,
            "meeting_at": self.meeting_at.isoformat(),
            "duration_minutes": self.duration_minutes,
            "status": self.status.value,
            "location": self.location,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(slots=True)
class Profile:
    user_id: str
    organization_id: str
    name: str
    role: str = "member"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(slots=True)
class ClaimResult:
    claimed: bool
    owner_id: str | None


class PendingReason(str, Enum):
    STALE = "stale"
    OVERDUE = "overdue"
    TODAY = "today"
    NO_OWNER = "no_owner"


@dataclass(slots=True)
class PendingContact:
    """One entry of a per-user bucket built during a sweep."""

    contact: ContactSnapshot
    reason: PendingReason
    days_stale: int
    last_interaction: Interaction | None = None

    @property
    def notification_type(self) -> NotificationType:
        if self.reason is PendingReason.STALE:
            return NotificationType.STALE_DEAL
        if self.reason is PendingReason.NO_OWNER:
            return NotificationType.NO_OWNER
        return NotificationType.NEXT_ACTION


class AnnouncementCategory(str, Enum):
    MEETING_URGENT = "meeting_urgent"
    MEETING_TODAY = "meeting_today"
    MEETING_TOMORROW = "meeting_tomorrow"
    PERSONAL = "personal"
    ORG = "org"

    @property
    def rank(self) -> int:
        return _CATEGORY_RANK[self]


_CATEGORY_RANK = {
    AnnouncementCategory.MEETING_URGENT: 0,
    AnnouncementCategory.MEETING_TODAY: 1,
    AnnouncementCategory.MEETING_TOMORROW: 2,
    AnnouncementCategory.PERSONAL: 3,
    AnnouncementCategory.ORG: 4,
}


@dataclass(slots=True)
class Announcement:
    id: str
    text: str
    category: AnnouncementCategory

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "category": self.category.value}


@dataclass(slots=True)
class AnnouncementFeed:
    enabled: bool
    announcements: list[Announcement] = field(default_factory=list)
    duration_minutes: int = 3

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "announcements": [item.to_dict() for item in self.announcements],
            "duration_minutes": self.duration_minutes,
        }
