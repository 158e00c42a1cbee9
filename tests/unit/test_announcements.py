from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from app.db.helpers import DatabaseError
from app.features.pipeline_engine.domain import (
    Announcement,
    AnnouncementCategory,
    Notification,
    NotificationType,
)
from app.features.pipeline_engine.repository import (
    MeetingRepository,
    NotificationRepository,
    OrganizationRepository,
)
from app.features.pipeline_engine.services.announcements import (
    AnnouncementService,
    build_meeting_announcements,
    build_org_announcements,
    build_personal_announcements,
    rank_announcements,
)


def _meeting(meeting_id, at, contact="Carla", user="Ana"):
    return {
        "id": meeting_id,
        "meeting_at": at,
        "title": "Demo",
        "contact_name": contact,
        "user_name": user,
    }


def _notification(notification_id, title, body="First line\nSecond line"):
    return Notification(
        id=notification_id,
        organization_id="org-1",
        user_id="user-123",
        type=NotificationType.STALE_DEAL,
        title=title,
        body=body,
        contact_id="c-1",
        scheduled_for=None,
        read=False,
        dismissed=False,
        metadata={},
        created_at=datetime(2025, 3, 12, 14, 0, tzinfo=UTC),
    )


def test_meeting_within_fifteen_minutes_is_escalated(now):
    items = build_meeting_announcements([_meeting("m-1", now + timedelta(minutes=10))], now)

    urgent = [item for item in items if item.category is AnnouncementCategory.MEETING_URGENT]
    assert urgent[0].id == "urg-m-1"
    assert urgent[0].text == "NOW! Meeting with Carla in 10min!"


def test_meeting_within_hour_is_urgent(now):
    items = build_meeting_announcements([_meeting("m-1", now + timedelta(minutes=45))], now)

    assert items[0].text == "45 min left! Meeting with Carla at 12:45"
    assert items[1].id == "meetings-today"


def test_today_and_tomorrow_digests(now):
    meetings = [
        _meeting("m-1", now + timedelta(hours=3)),
        _meeting("m-2", now + timedelta(hours=4), contact="Davi", user=None),
        _meeting("m-3", now + timedelta(hours=24)),
    ]

    items = build_meeting_announcements(meetings, now)

    by_id = {item.id: item for item in items}
    assert set(by_id) == {"meetings-today", "meetings-tomorrow"}
    assert by_id["meetings-today"].text.startswith("Today: 2 meetings")
    assert "15:00 Carla (Ana)" in by_id["meetings-today"].text
    assert "16:00 Davi" in by_id["meetings-today"].text
    assert by_id["meetings-tomorrow"].text.startswith("Tomorrow: 1 meeting ")


def test_personal_and_org_lines():
    personal = build_personal_announcements([_notification("n-1", "Stalled deal")])
    org = build_org_announcements([(_notification("n-2", "No owner: X"), "Bruno")])

    assert personal[0].text == "For you: Stalled deal — First line"
    assert org[0].text == "Bruno: No owner: X — First line"


def test_rank_is_stable_by_category():
    items = [
        Announcement("o-1", "org", AnnouncementCategory.ORG),
        Announcement("p-1", "personal", AnnouncementCategory.PERSONAL),
        Announcement("u-1", "urgent", AnnouncementCategory.MEETING_URGENT),
        Announcement("p-2", "personal 2", AnnouncementCategory.PERSONAL),
    ]

    assert [item.id for item in rank_announcements(items)] == ["u-1", "p-1", "p-2", "o-1"]


@pytest.mark.asyncio
async def test_feed_disabled_for_tenant(monkeypatch, now):
    monkeypatch.setattr(
        OrganizationRepository,
        "fetch_pipeline_settings",
        AsyncMock(return_value={"broadcast_notifications": False}),
    )
    meetings = AsyncMock()
    monkeypatch.setattr(MeetingRepository, "fetch_scheduled_with_names", meetings)

    feed = await AnnouncementService().get_feed("org-1", "user-123", now)

    assert feed.enabled is False
    assert feed.announcements == []
    meetings.assert_not_called()


@pytest.mark.asyncio
async def test_feed_store_error_returns_disabled(monkeypatch, now):
    monkeypatch.setattr(
        OrganizationRepository,
        "fetch_pipeline_settings",
        AsyncMock(side_effect=DatabaseError("timeout")),
    )

    feed = await AnnouncementService().get_feed("org-1", "user-123", now)

    assert feed.to_dict() == {"enabled": False, "announcements": [], "duration_minutes": 3}


@pytest.mark.asyncio
async def test_feed_combines_and_ranks_sources(monkeypatch, now):
    monkeypatch.setattr(
        OrganizationRepository,
        "fetch_pipeline_settings",
        AsyncMock(
            return_value={"broadcast_notifications": True, "broadcast_duration_minutes": 5}
        ),
    )
    monkeypatch.setattr(
        MeetingRepository,
        "fetch_scheduled_with_names",
        AsyncMock(return_value=[_meeting("m-1", now + timedelta(minutes=30))]),
    )
    monkeypatch.setattr(
        NotificationRepository,
        "fetch_personal_unread",
        AsyncMock(return_value=[_notification("n-1", "Mine")]),
    )
    monkeypatch.setattr(
        NotificationRepository,
        "fetch_org_recent",
        AsyncMock(return_value=[(_notification("n-2", "Theirs"), "Bruno")]),
    )

    feed = await AnnouncementService().get_feed("org-1", "user-123", now)

    assert feed.enabled is True
    assert feed.duration_minutes == 5
    assert [item.category for item in feed.announcements] == [
        AnnouncementCategory.MEETING_URGENT,
        AnnouncementCategory.MEETING_TODAY,
        AnnouncementCategory.PERSONAL,
        AnnouncementCategory.ORG,
    ]
