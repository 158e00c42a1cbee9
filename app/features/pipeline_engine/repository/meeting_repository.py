"""
Repository for meetings.
"""

from datetime import datetime
from typing import Any

from app.db.helpers import execute_query, fetch_all, fetch_one
from app.features.pipeline_engine.domain import Meeting, MeetingStatus
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import ensure_aware

logger = get_logger(__name__)

MEETING_COLUMNS = """
    id::text AS id, organization_id::text AS organization_id,
    contact_id::text AS contact_id, created_by_user_id::text AS created_by_user_id,
    title, notes, location, meeting_at, duration_minutes, status,
    created_at, updated_at
"""

UPDATABLE_FIELDS = ("title", "notes", "location", "meeting_at", "duration_minutes", "status")


def _row_to_meeting(row: dict[str, Any]) -> Meeting:
    return Meeting(
        id=row["id"],
        organization_id=row["organization_id"],
        contact_id=row["contact_id"],
        created_by_user_id=row["created_by_user_id"],
        title=row["title"],
        meeting_at=ensure_aware(row["meeting_at"]),
        duration_minutes=row.get("duration_minutes") or 30,
        status=MeetingStatus(row["status"]),
        location=row.get("location"),
        notes=row.get("notes"),
        created_at=ensure_aware(row["created_at"]) if row.get("created_at") else None,
        updated_at=ensure_aware(row["updated_at"]) if row.get("updated_at") else None,
    )


class MeetingRepository:
    """Persistence helpers for meetings."""

    @classmethod
    async def create(
        cls,
        organization_id: str,
        contact_id: str,
        created_by_user_id: str,
        title: str,
        meeting_at: datetime,
        duration_minutes: int = 30,
        location: str | None = None,
        notes: str | None = None,
    ) -> Meeting:
        query = f"""
            INSERT INTO meetings (
                organization_id, contact_id, created_by_user_id, title,
                meeting_at, duration_minutes, location, notes, status
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {MEETING_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                organization_id,
                contact_id,
                created_by_user_id,
                title,
                meeting_at,
                duration_minutes,
                location,
                notes,
                MeetingStatus.SCHEDULED.value,
            ),
        )
        return _row_to_meeting(row)

    @classmethod
    async def get(cls, organization_id: str, meeting_id: str) -> Meeting | None:
        query = f"""
            SELECT {MEETING_COLUMNS}
            FROM meetings
            WHERE organization_id = %s
              AND id = %s
        """
        row = await fetch_one(query, (organization_id, meeting_id))
        return _row_to_meeting(row) if row else None

    @classmethod
    async def list_between(
        cls,
        organization_id: str,
        start: datetime,
        end: datetime,
        status: MeetingStatus | None = None,
    ) -> list[Meeting]:
        query = f"""
            SELECT {MEETING_COLUMNS}
            FROM meetings
            WHERE organization_id = %s
              AND meeting_at >= %s
              AND meeting_at <= %s
              AND (%s::text IS NULL OR status = %s)
            ORDER BY meeting_at ASC
        """
        status_value = status.value if status else None
        rows = await fetch_all(query, (organization_id, start, end, status_value, status_value))
        return [_row_to_meeting(row) for row in rows]

    @classmethod
    async def update(
        cls, organization_id: str, meeting_id: str, changes: dict[str, Any]
    ) -> Meeting | None:
        fields = [name for name in UPDATABLE_FIELDS if name in changes]
        if not fields:
            return await cls.get(organization_id, meeting_id)

        values = []
        for name in fields:
            value = changes[name]
            values.append(value.value if isinstance(value, MeetingStatus) else value)

        assignments = ", ".join(f"{name} = %s" for name in fields)
        query = f"""
            UPDATE meetings
            SET {assignments}, updated_at = NOW()
            WHERE organization_id = %s
              AND id = %s
            RETURNING {MEETING_COLUMNS}
        """
        row = await fetch_one(query, (*values, organization_id, meeting_id))
        return _row_to_meeting(row) if row else None

    @classmethod
    async def delete(cls, organization_id: str, meeting_id: str) -> bool:
        query = """
            DELETE FROM meetings
            WHERE organization_id = %s
              AND id = %s
        """
        return await execute_query(query, (organization_id, meeting_id)) > 0

    @classmethod
    async def fetch_scheduled_with_names(
        cls, organization_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Scheduled meetings in [start, end] with contact and creator display names."""
        query = """
            SELECT
                m.id::text AS id,
                m.meeting_at,
                m.title,
                c.name AS contact_name,
                p.name AS user_name
            FROM meetings m
            LEFT JOIN contacts c ON c.id = m.contact_id
            LEFT JOIN profiles p ON p.user_id = m.created_by_user_id
            WHERE m.organization_id = %s
              AND m.status = %s
              AND m.meeting_at >= %s
              AND m.meeting_at <= %s
            ORDER BY m.meeting_at ASC
        """
        rows = await fetch_all(
            query, (organization_id, MeetingStatus.SCHEDULED.value, start, end)
        )
        for row in rows:
            row["meeting_at"] = ensure_aware(row["meeting_at"])
        return rows
