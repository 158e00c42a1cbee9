from .contact_repository import ContactRepository, row_to_snapshot, rows_to_snapshots
from .meeting_repository import MeetingRepository
from .notification_repository import NotificationRepository
from .organization_repository import OrganizationRepository

__all__ = [
    "ContactRepository",
    "MeetingRepository",
    "NotificationRepository",
    "OrganizationRepository",
    "row_to_snapshot",
    "rows_to_snapshots",
]
