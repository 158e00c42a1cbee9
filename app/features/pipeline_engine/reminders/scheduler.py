"""
Meeting reminder scheduler.

Reminders are computed once, when a meeting is created (or rescheduled), as
notifications with a deferred `scheduled_for`. Lead times that have already
elapsed are skipped, never back-filled. Cancelling or deleting the meeting
dismisses whatever reminders are still pending.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.db.helpers import DatabaseError
from app.features.pipeline_engine.domain import Meeting, NotificationDraft, NotificationType
from app.features.pipeline_engine.repository import NotificationRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import business_clock, ensure_aware, utc_now

logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ReminderOffset:
    minutes: int
    title: Callable[[str, str], str]
    body: Callable[[str, str, str], str]


REMINDER_OFFSETS: tuple[ReminderOffset, ...] = (
    ReminderOffset(
        minutes=24 * 60,
        title=lambda contact, clock: f"Tomorrow: Meeting with {contact} at {clock}",
        body=lambda title, contact, clock: f"{title}. Get ready for tomorrow's meeting!",
    ),
    ReminderOffset(
        minutes=8 * 60,
        title=lambda contact, clock: f"Today at {clock}: Meeting with {contact}",
        body=lambda title, contact, clock: (
            f"{title}. Review the contact's history before the meeting."
        ),
    ),
    ReminderOffset(
        minutes=4 * 60,
        title=lambda contact, clock: f"4h until meeting with {contact}",
        body=lambda title, contact, clock: f"{title} at {clock}.",
    ),
    ReminderOffset(
        minutes=2 * 60,
        title=lambda contact, clock: f"2h until meeting with {contact}",
        body=lambda title, contact, clock: f"{title} at {clock}. Check your materials.",
    ),
    ReminderOffset(
        minutes=60,
        title=lambda contact, clock: f"1 hour left! Meeting with {contact} at {clock}",
        body=lambda title, contact, clock: f"{title}. Time to get ready!",
    ),
    ReminderOffset(
        minutes=15,
        title=lambda contact, clock: "NOW! Meeting starts in 15 minutes!",
        body=lambda title, contact, clock: f"{title} with {contact} at {clock}.",
    ),
)


def build_meeting_reminders(
    meeting: Meeting, contact_name: str, now: datetime | None = None
) -> list[NotificationDraft]:
    """Reminder drafts for every lead time still strictly in the future."""
    now = ensure_aware(now or utc_now())
    meeting_at = ensure_aware(meeting.meeting_at)
    clock = business_clock(meeting_at)
    contact_label = contact_name or "contact"

    drafts = []
    for offset in REMINDER_OFFSETS:
        scheduled_for = meeting_at - timedelta(minutes=offset.minutes)
        if scheduled_for <= now:
            continue

        drafts.append(
            NotificationDraft(
                organization_id=meeting.organization_id,
                user_id=meeting.created_by_user_id,
                type=NotificationType.MEETING_REMINDER,
                title=offset.title(contact_label, clock),
                body=offset.body(meeting.title, contact_label, clock),
                contact_id=meeting.contact_id,
                scheduled_for=scheduled_for,
                metadata={"meeting_id": meeting.id, "offset_minutes": offset.minutes},
            )
        )

    return drafts


async def schedule_meeting_reminders(
    meeting: Meeting, contact_name: str, now: datetime | None = None
) -> int:
    drafts = build_meeting_reminders(meeting, contact_name, now)
    if not drafts:
        logger.info("No reminders to schedule", meeting_id=meeting.id)
        return 0

    inserted = await NotificationRepository.insert_many(drafts)
    logger.info(
        "Meeting reminders scheduled",
        meeting_id=meeting.id,
        reminder_count=inserted,
        offsets=[draft.metadata["offset_minutes"] for draft in drafts],
    )
    return inserted


async def cascade_dismiss(organization_id: str, meeting_id: str) -> int:
    """
    Dismiss every pending reminder that references the meeting.

    Any subset of the six reminders may exist. If the bulk update fails,
    rows are dismissed one by one and failing rows are logged and skipped;
    a leftover visible reminder is acceptable.

    Returns:
        Number of reminders dismissed
    """
    reminder_ids = await NotificationRepository.find_pending_reminder_ids(
        organization_id, meeting_id
    )
    if not reminder_ids:
        return 0

    try:
        dismissed = await NotificationRepository.dismiss_many(reminder_ids)
        logger.info("Meeting reminders dismissed", meeting_id=meeting_id, dismissed=dismissed)
        return dismissed
    except DatabaseError as e:
        logger.warning(
            "Bulk reminder dismiss failed, falling back to per-row",
            meeting_id=meeting_id,
            reminder_count=len(reminder_ids),
            error=str(e),
        )

    dismissed = 0
    for reminder_id in reminder_ids:
        try:
            dismissed += await NotificationRepository.dismiss_one(reminder_id)
        except DatabaseError as e:
            logger.error(
                "Failed to dismiss reminder",
                meeting_id=meeting_id,
                notification_id=reminder_id,
                error=str(e),
            )

    logger.info(
        "Meeting reminders dismissed (per-row)",
        meeting_id=meeting_id,
        dismissed=dismissed,
        failed=len(reminder_ids) - dismissed,
    )
    return dismissed
