"""
Announcement feed.

Read-only merge of upcoming meetings, the caller's own unread notifications
and recent org-wide notifications into one list ordered by category. The
category only drives display priority. Day grouping uses the business
timezone.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta
from typing import Any

from app.db.helpers import DatabaseError
from app.features.pipeline_engine.domain import (
    Announcement,
    AnnouncementCategory,
    AnnouncementFeed,
    Notification,
    NotificationType,
)
from app.features.pipeline_engine.repository import (
    MeetingRepository,
    NotificationRepository,
    OrganizationRepository,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import business_clock, business_date, ensure_aware, utc_now

logger = get_logger(__name__)

MEETING_HORIZON = timedelta(hours=48)
ORG_LOOKBACK = timedelta(hours=24)
URGENT_MINUTES = 60
NOW_MINUTES = 15
PERSONAL_LIMIT = 10
ORG_LIMIT = 20
DEFAULT_DURATION_MINUTES = 3

ORG_TYPES = (
    NotificationType.NEXT_ACTION,
    NotificationType.STALE_DEAL,
    NotificationType.NO_OWNER,
    NotificationType.TASK_OVERDUE,
    NotificationType.RISK_ALERT,
)


def _first_line(body: str | None) -> str:
    lines = (body or "").splitlines()
    return f" — {lines[0]}" if lines else ""


def _meeting_word(count: int) -> str:
    return "meetings" if count > 1 else "meeting"


def build_meeting_announcements(
    meetings: Sequence[dict[str, Any]], now: datetime
) -> list[Announcement]:
    """
    Urgent items plus today/tomorrow digest lines.

    Each meeting dict carries id, meeting_at, contact_name and user_name.
    """
    today = business_date(now)
    tomorrow = today + timedelta(days=1)

    urgent: list[Announcement] = []
    today_lines: list[str] = []
    tomorrow_lines: list[str] = []

    for meeting in meetings:
        meeting_at = ensure_aware(meeting["meeting_at"])
        meeting_day = business_date(meeting_at)
        clock = business_clock(meeting_at)
        contact_name = meeting.get("contact_name") or "Contact"
        user_name = meeting.get("user_name") or ""
        minutes_until = round((meeting_at - now).total_seconds() / 60)
        line = f"{clock} {contact_name}" + (f" ({user_name})" if user_name else "")

        if meeting_day == today:
            today_lines.append(line)
            if minutes_until <= NOW_MINUTES:
                urgent.append(
                    Announcement(
                        id=f"urg-{meeting['id']}",
                        text=f"NOW! Meeting with {contact_name} in {minutes_until}min!",
                        category=AnnouncementCategory.MEETING_URGENT,
                    )
                )
            elif minutes_until <= URGENT_MINUTES:
                urgent.append(
                    Announcement(
                        id=f"urg-{meeting['id']}",
                        text=f"{minutes_until} min left! Meeting with {contact_name} at {clock}",
                        category=AnnouncementCategory.MEETING_URGENT,
                    )
                )
        elif meeting_day == tomorrow:
            tomorrow_lines.append(line)

    items = list(urgent)
    if today_lines:
        items.append(
            Announcement(
                id="meetings-today",
                text=(
                    f"Today: {len(today_lines)} {_meeting_word(len(today_lines))} — "
                    + "  •  ".join(today_lines)
                ),
                category=AnnouncementCategory.MEETING_TODAY,
            )
        )
    if tomorrow_lines:
        items.append(
            Announcement(
                id="meetings-tomorrow",
                text=(
                    f"Tomorrow: {len(tomorrow_lines)} {_meeting_word(len(tomorrow_lines))} — "
                    + "  •  ".join(tomorrow_lines)
                ),
                category=AnnouncementCategory.MEETING_TOMORROW,
            )
        )
    return items


def build_personal_announcements(notifications: Sequence[Notification]) -> list[Announcement]:
    return [
        Announcement(
            id=notification.id,
            text=f"For you: {notification.title}{_first_line(notification.body)}",
            category=AnnouncementCategory.PERSONAL,
        )
        for notification in notifications
    ]


def build_org_announcements(
    notifications: Sequence[tuple[Notification, str | None]],
) -> list[Announcement]:
    items = []
    for notification, user_name in notifications:
        prefix = f"{user_name}: " if user_name else ""
        items.append(
            Announcement(
                id=notification.id,
                text=f"{prefix}{notification.title}{_first_line(notification.body)}",
                category=AnnouncementCategory.ORG,
            )
        )
    return items


def rank_announcements(items: Sequence[Announcement]) -> list[Announcement]:
    return sorted(items, key=lambda item: item.category.rank)


class AnnouncementService:
    """Builds the announcement feed for one user."""

    async def get_feed(
        self, organization_id: str, user_id: str, now: datetime | None = None
    ) -> AnnouncementFeed:
        now = ensure_aware(now or utc_now())

        try:
            pipeline_settings = await OrganizationRepository.fetch_pipeline_settings(
                organization_id
            )
            if not pipeline_settings.get("broadcast_notifications"):
                return AnnouncementFeed(enabled=False)

            meetings = await MeetingRepository.fetch_scheduled_with_names(
                organization_id, now, now + MEETING_HORIZON
            )
            personal = await NotificationRepository.fetch_personal_unread(
                organization_id, user_id, now, limit=PERSONAL_LIMIT
            )
            org_wide = await NotificationRepository.fetch_org_recent(
                organization_id, ORG_TYPES, now - ORG_LOOKBACK, limit=ORG_LIMIT
            )
        except DatabaseError as e:
            logger.error(
                "Announcement feed unavailable",
                org_id=organization_id,
                user_id=user_id,
                error=str(e),
            )
            return AnnouncementFeed(enabled=False)

        items = (
            build_meeting_announcements(meetings, now)
            + build_personal_announcements(personal)
            + build_org_announcements(org_wide)
        )

        return AnnouncementFeed(
            enabled=True,
            announcements=rank_announcements(items),
            duration_minutes=int(
                pipeline_settings.get("broadcast_duration_minutes") or DEFAULT_DURATION_MINUTES
            ),
        )


announcement_service = AnnouncementService()
