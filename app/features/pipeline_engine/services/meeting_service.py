"""
Meeting lifecycle: create, reschedule, cancel and delete, with reminder
scheduling and cascade-dismiss hooked in.
"""

from datetime import datetime
from typing import Any

from app.db.helpers import DatabaseError
from app.features.pipeline_engine.domain import (
    ContactNotFoundError,
    Meeting,
    MeetingNotFoundError,
    MeetingPermissionError,
    MeetingStatus,
    Profile,
)
from app.features.pipeline_engine.reminders import cascade_dismiss, schedule_meeting_reminders
from app.features.pipeline_engine.repository import ContactRepository, MeetingRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import ensure_aware, utc_now

logger = get_logger(__name__)


class MeetingService:
    """Meeting operations scoped to the caller's organization."""

    async def create_meeting(
        self,
        profile: Profile,
        contact_id: str,
        title: str,
        meeting_at: datetime,
        duration_minutes: int = 30,
        location: str | None = None,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Meeting:
        contact = await ContactRepository.fetch_snapshot(
            profile.organization_id, contact_id, interaction_limit=0
        )
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found", operation="create_meeting")

        meeting = await MeetingRepository.create(
            organization_id=profile.organization_id,
            contact_id=contact_id,
            created_by_user_id=profile.user_id,
            title=title,
            meeting_at=ensure_aware(meeting_at),
            duration_minutes=duration_minutes,
            location=location,
            notes=notes,
        )
        logger.info(
            "Meeting created",
            meeting_id=meeting.id,
            contact_id=contact_id,
            meeting_at=meeting.meeting_at.isoformat(),
        )

        await self._schedule_reminders(meeting, contact.name, now)
        return meeting

    async def get_meeting(self, organization_id: str, meeting_id: str) -> Meeting:
        meeting = await MeetingRepository.get(organization_id, meeting_id)
        if meeting is None:
            raise MeetingNotFoundError(f"Meeting {meeting_id} not found", operation="get_meeting")
        return meeting

    async def list_meetings(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        status: MeetingStatus | None = None,
    ) -> list[Meeting]:
        return await MeetingRepository.list_between(organization_id, start, end, status)

    async def update_meeting(
        self,
        profile: Profile,
        meeting_id: str,
        changes: dict[str, Any],
        now: datetime | None = None,
    ) -> Meeting:
        """
        Apply changes. Cancelling dismisses pending reminders; moving a
        scheduled meeting replaces its reminders.
        """
        current = await self._get_editable(profile, meeting_id)

        if "meeting_at" in changes and changes["meeting_at"] is not None:
            changes["meeting_at"] = ensure_aware(changes["meeting_at"])

        updated = await MeetingRepository.update(profile.organization_id, meeting_id, changes)
        if updated is None:
            raise MeetingNotFoundError(f"Meeting {meeting_id} not found", operation="update_meeting")

        cancelled = (
            updated.status is MeetingStatus.CANCELLED
            and current.status is not MeetingStatus.CANCELLED
        )
        rescheduled = (
            updated.status is MeetingStatus.SCHEDULED
            and updated.meeting_at != current.meeting_at
        )

        if cancelled:
            await self._dismiss_reminders(updated)
        elif rescheduled:
            await self._dismiss_reminders(updated)
            contact = await ContactRepository.fetch_snapshot(
                profile.organization_id, updated.contact_id, interaction_limit=0
            )
            await self._schedule_reminders(updated, contact.name if contact else "", now)

        logger.info(
            "Meeting updated",
            meeting_id=meeting_id,
            fields=sorted(changes.keys()),
            cancelled=cancelled,
            rescheduled=rescheduled,
        )
        return updated

    async def cancel_meeting(self, profile: Profile, meeting_id: str) -> Meeting:
        return await self.update_meeting(
            profile, meeting_id, {"status": MeetingStatus.CANCELLED}
        )

    async def delete_meeting(self, profile: Profile, meeting_id: str) -> None:
        meeting = await self._get_editable(profile, meeting_id)
        await self._dismiss_reminders(meeting)

        deleted = await MeetingRepository.delete(profile.organization_id, meeting_id)
        if not deleted:
            raise MeetingNotFoundError(f"Meeting {meeting_id} not found", operation="delete_meeting")

        logger.info("Meeting deleted", meeting_id=meeting_id)

    async def _get_editable(self, profile: Profile, meeting_id: str) -> Meeting:
        meeting = await self.get_meeting(profile.organization_id, meeting_id)
        if meeting.created_by_user_id != profile.user_id and not profile.is_admin:
            raise MeetingPermissionError(
                "Only the meeting creator or an admin can change this meeting",
                operation="edit_meeting",
                recoverable=False,
            )
        return meeting

    async def _schedule_reminders(
        self, meeting: Meeting, contact_name: str, now: datetime | None
    ) -> None:
        # The meeting stands even if its reminders could not be stored
        try:
            await schedule_meeting_reminders(meeting, contact_name, now or utc_now())
        except DatabaseError as e:
            logger.error("Failed to schedule meeting reminders", meeting_id=meeting.id, error=str(e))

    async def _dismiss_reminders(self, meeting: Meeting) -> None:
        try:
            await cascade_dismiss(meeting.organization_id, meeting.id)
        except DatabaseError as e:
            logger.error(
                "Failed to look up meeting reminders for dismissal",
                meeting_id=meeting.id,
                error=str(e),
            )


meeting_service = MeetingService()
