"""
Repository for the notifications table.

Covers the sweep's dedup lookup and conditional insert, reminder inserts and
cascade-dismiss, and the per-user read side used by the API and the
announcement feed.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from psycopg.types.json import Jsonb

from app.db.helpers import execute_many, execute_query, fetch_all, fetch_one, fetch_val
from app.features.pipeline_engine.domain import (
    Notification,
    NotificationDraft,
    NotificationType,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import ensure_aware

logger = get_logger(__name__)

NOTIFICATION_COLUMNS = """
    id::text AS id, organization_id::text AS organization_id, user_id::text AS user_id,
    type, title, body, contact_id::text AS contact_id, scheduled_for,
    read, dismissed, metadata, created_at
"""


def _row_to_notification(row: dict[str, Any]) -> Notification:
    scheduled_for = row.get("scheduled_for")
    return Notification(
        id=row["id"],
        organization_id=row["organization_id"],
        user_id=row["user_id"],
        type=NotificationType(row["type"]),
        title=row["title"],
        body=row.get("body") or "",
        contact_id=row.get("contact_id"),
        scheduled_for=ensure_aware(scheduled_for) if scheduled_for else None,
        read=bool(row.get("read")),
        dismissed=bool(row.get("dismissed")),
        metadata=row.get("metadata") or {},
        created_at=ensure_aware(row["created_at"]),
    )


class NotificationRepository:
    """Persistence helpers for notifications."""

    # ------------------------------------------------------------------
    # Sweep side
    # ------------------------------------------------------------------

    @classmethod
    async def fetch_recent_keys(
        cls,
        organization_id: str,
        since: datetime,
        types: Iterable[NotificationType],
    ) -> set[tuple[str | None, str, str]]:
        """Keys (contact_id, user_id, type) of notifications created at or after `since`."""
        query = """
            SELECT contact_id::text AS contact_id, user_id::text AS user_id, type
            FROM notifications
            WHERE organization_id = %s
              AND created_at >= %s
              AND type = ANY(%s)
        """
        rows = await fetch_all(query, (organization_id, since, [t.value for t in types]))
        return {(row["contact_id"], row["user_id"], row["type"]) for row in rows}

    @classmethod
    async def insert_if_absent(cls, drafts: Sequence[NotificationDraft], since: datetime) -> int:
        """
        Insert each draft unless a notification with the same key exists since `since`.

        The existence check runs inside the INSERT so that two overlapping
        sweeps racing on the same key mostly collapse to one row.

        Returns:
            Number of rows actually inserted
        """
        if not drafts:
            return 0

        query = """
            INSERT INTO notifications (
                organization_id, user_id, type, title, body,
                contact_id, scheduled_for, metadata
            )
            SELECT %s::uuid, %s::uuid, %s, %s, %s, %s::uuid, %s::timestamptz, %s
            WHERE NOT EXISTS (
                SELECT 1 FROM notifications
                WHERE organization_id = %s::uuid
                  AND user_id = %s::uuid
                  AND type = %s
                  AND contact_id IS NOT DISTINCT FROM %s::uuid
                  AND created_at >= %s
            )
        """
        params = [
            (
                draft.organization_id,
                draft.user_id,
                draft.type.value,
                draft.title,
                draft.body,
                draft.contact_id,
                draft.scheduled_for,
                Jsonb(draft.metadata),
                draft.organization_id,
                draft.user_id,
                draft.type.value,
                draft.contact_id,
                since,
            )
            for draft in drafts
        ]

        inserted = await execute_many(query, params)
        logger.info(
            "Conditional notification insert",
            organization_id=drafts[0].organization_id,
            candidates=len(drafts),
            inserted=inserted,
        )
        return inserted

    # ------------------------------------------------------------------
    # Reminder side
    # ------------------------------------------------------------------

    @classmethod
    async def insert_many(cls, drafts: Sequence[NotificationDraft]) -> int:
        if not drafts:
            return 0

        query = """
            INSERT INTO notifications (
                organization_id, user_id, type, title, body,
                contact_id, scheduled_for, metadata
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
        """
        params = [
            (
                draft.organization_id,
                draft.user_id,
                draft.type.value,
                draft.title,
                draft.body,
                draft.contact_id,
                draft.scheduled_for,
                Jsonb(draft.metadata),
            )
            for draft in drafts
        ]
        return await execute_many(query, params)

    @classmethod
    async def find_pending_reminder_ids(cls, organization_id: str, meeting_id: str) -> list[str]:
        query = """
            SELECT id::text AS id
            FROM notifications
            WHERE organization_id = %s
              AND type = %s
              AND dismissed = false
              AND metadata->>'meeting_id' = %s
        """
        rows = await fetch_all(
            query, (organization_id, NotificationType.MEETING_REMINDER.value, str(meeting_id))
        )
        return [row["id"] for row in rows]

    @classmethod
    async def dismiss_many(cls, notification_ids: Sequence[str]) -> int:
        if not notification_ids:
            return 0

        query = """
            UPDATE notifications
            SET dismissed = true
            WHERE id = ANY(%s::uuid[])
              AND dismissed = false
        """
        return await execute_query(query, (list(notification_ids),))

    @classmethod
    async def dismiss_one(cls, notification_id: str) -> int:
        query = """
            UPDATE notifications
            SET dismissed = true
            WHERE id = %s
              AND dismissed = false
        """
        return await execute_query(query, (notification_id,))

    # ------------------------------------------------------------------
    # User side
    # ------------------------------------------------------------------

    @classmethod
    async def list_visible(
        cls, organization_id: str, user_id: str, now: datetime, limit: int = 50
    ) -> list[Notification]:
        query = f"""
            SELECT {NOTIFICATION_COLUMNS}
            FROM notifications
            WHERE organization_id = %s
              AND user_id = %s
              AND dismissed = false
              AND (scheduled_for IS NULL OR scheduled_for <= %s)
            ORDER BY read ASC, created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (organization_id, user_id, now, limit))
        return [_row_to_notification(row) for row in rows]

    @classmethod
    async def count_unread(cls, organization_id: str, user_id: str, now: datetime) -> int:
        query = """
            SELECT COUNT(*) AS count
            FROM notifications
            WHERE organization_id = %s
              AND user_id = %s
              AND read = false
              AND dismissed = false
              AND (scheduled_for IS NULL OR scheduled_for <= %s)
        """
        return int(await fetch_val(query, (organization_id, user_id, now)) or 0)

    @classmethod
    async def update_flags(
        cls,
        organization_id: str,
        user_id: str,
        notification_id: str,
        *,
        read: bool | None = None,
        dismissed: bool | None = None,
    ) -> Notification | None:
        """Set read/dismissed on one of the caller's own notifications."""
        query = f"""
            UPDATE notifications
            SET read = COALESCE(%s, read),
                dismissed = COALESCE(%s, dismissed)
            WHERE id = %s
              AND organization_id = %s
              AND user_id = %s
            RETURNING {NOTIFICATION_COLUMNS}
        """
        row = await fetch_one(query, (read, dismissed, notification_id, organization_id, user_id))
        return _row_to_notification(row) if row else None

    @classmethod
    async def mark_all_read(cls, organization_id: str, user_id: str, now: datetime) -> int:
        query = """
            UPDATE notifications
            SET read = true
            WHERE organization_id = %s
              AND user_id = %s
              AND read = false
              AND dismissed = false
              AND (scheduled_for IS NULL OR scheduled_for <= %s)
        """
        return await execute_query(query, (organization_id, user_id, now))

    # ------------------------------------------------------------------
    # Announcement feed
    # ------------------------------------------------------------------

    @classmethod
    async def fetch_personal_unread(
        cls, organization_id: str, user_id: str, now: datetime, limit: int = 10
    ) -> list[Notification]:
        query = f"""
            SELECT {NOTIFICATION_COLUMNS}
            FROM notifications
            WHERE organization_id = %s
              AND user_id = %s
              AND read = false
              AND dismissed = false
              AND type <> %s
              AND (scheduled_for IS NULL OR scheduled_for <= %s)
            ORDER BY created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(
            query,
            (organization_id, user_id, NotificationType.MEETING_REMINDER.value, now, limit),
        )
        return [_row_to_notification(row) for row in rows]

    @classmethod
    async def fetch_org_recent(
        cls,
        organization_id: str,
        types: Iterable[NotificationType],
        since: datetime,
        limit: int = 20,
    ) -> list[tuple[Notification, str | None]]:
        """Recent org-wide notifications paired with the recipient's display name."""
        query = """
            SELECT
                n.id::text AS id, n.organization_id::text AS organization_id,
                n.user_id::text AS user_id, n.type, n.title, n.body,
                n.contact_id::text AS contact_id, n.scheduled_for,
                n.read, n.dismissed, n.metadata, n.created_at,
                p.name AS user_name
            FROM notifications n
            LEFT JOIN profiles p ON p.user_id = n.user_id
            WHERE n.organization_id = %s
              AND n.type = ANY(%s)
              AND n.created_at >= %s
            ORDER BY n.created_at DESC
            LIMIT %s
        """
        rows = await fetch_all(
            query, (organization_id, [t.value for t in types], since, limit)
        )
        return [(_row_to_notification(row), row.get("user_name")) for row in rows]
