"""
Pipeline engine routes.

Authenticated endpoints resolve the caller's profile first; every read and
write is scoped to that profile's organization. The /cron router is gated by
the shared batch secret instead of a user token.
"""

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.auth.verify import get_current_profile, verify_cron_secret
from app.features.pipeline_engine.api.schemas import (
    AnnouncementFeedResponse,
    ApplySuggestionRequest,
    ApplySuggestionResponse,
    ClaimResponse,
    MarkAllReadResponse,
    MeetingCreateRequest,
    MeetingListResponse,
    MeetingResponse,
    MeetingUpdateRequest,
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdateRequest,
    UnreadCountResponse,
)
from app.features.pipeline_engine.domain import (
    ContactNotFoundError,
    InvalidSuggestionError,
    MeetingNotFoundError,
    MeetingPermissionError,
    MeetingStatus,
    NotificationNotFoundError,
    PipelineEngineError,
    Profile,
)
from app.features.pipeline_engine.services.announcements import announcement_service
from app.features.pipeline_engine.services.contact_service import contact_service
from app.features.pipeline_engine.services.meeting_service import meeting_service
from app.features.pipeline_engine.services.notification_service import notification_service
from app.features.pipeline_engine.services.orchestrator import run_pipeline_notify_sweep
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import utc_now

router = APIRouter(prefix="/pipeline", tags=["pipeline"])
cron_router = APIRouter(prefix="/cron", tags=["cron"])
logger = get_logger(__name__)

DEFAULT_MEETING_RANGE = timedelta(days=30)

_STATUS_BY_ERROR = (
    (ContactNotFoundError, status.HTTP_404_NOT_FOUND),
    (MeetingNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotificationNotFoundError, status.HTTP_404_NOT_FOUND),
    (MeetingPermissionError, status.HTTP_403_FORBIDDEN),
    (InvalidSuggestionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def _http_error(e: PipelineEngineError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            return HTTPException(status_code=status_code, detail=str(e))

    logger.error(
        "Unhandled pipeline engine error",
        error=str(e),
        error_type=type(e).__name__,
        operation=e.operation,
    )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Pipeline engine error"
    )


# =================================================================
# CONTACTS
# =================================================================


@router.get("/contacts/{contact_id}/next-action")
async def get_next_action(
    contact_id: str,
    include_tip: bool = Query(default=False),
    profile: Profile = Depends(get_current_profile),
) -> dict:
    """
    Risk alerts and the suggested next action for one contact.

    Raises:
        404: Contact not found in the caller's organization
    """
    try:
        return await contact_service.analyze_contact(
            profile.organization_id, contact_id, include_tip=include_tip
        )
    except PipelineEngineError as e:
        raise _http_error(e) from e


@router.post("/contacts/{contact_id}/next-action/apply", response_model=ApplySuggestionResponse)
async def apply_next_action(
    contact_id: str,
    request: ApplySuggestionRequest,
    profile: Profile = Depends(get_current_profile),
):
    """
    Write an accepted suggestion to the contact.

    Raises:
        404: Contact not found
        422: Contact is closed or the due date is in the past
    """
    try:
        result = await contact_service.apply_suggestion(
            profile.organization_id, contact_id, request.action, request.due_date
        )
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return ApplySuggestionResponse(**result)


@router.post("/contacts/{contact_id}/claim", response_model=ClaimResponse)
async def claim_contact(contact_id: str, profile: Profile = Depends(get_current_profile)):
    """Take ownership of an unowned contact. Losing a race returns the winner."""
    try:
        result = await contact_service.claim_contact(
            profile.organization_id, contact_id, profile.user_id
        )
    except PipelineEngineError as e:
        raise _http_error(e) from e

    logger.info(
        "Contact claim attempted",
        contact_id=contact_id,
        user_id=profile.user_id,
        claimed=result.claimed,
    )
    return ClaimResponse(claimed=result.claimed, owner_id=result.owner_id)


@router.get("/health")
async def get_pipeline_health(profile: Profile = Depends(get_current_profile)) -> dict:
    """Organization-wide pipeline summary with coaching tips."""
    return await contact_service.pipeline_health(profile.organization_id)


# =================================================================
# MEETINGS
# =================================================================


@router.post("/meetings", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(request: MeetingCreateRequest, profile: Profile = Depends(get_current_profile)):
    try:
        meeting = await meeting_service.create_meeting(
            profile,
            contact_id=request.contact_id,
            title=request.title,
            meeting_at=request.meeting_at,
            duration_minutes=request.duration_minutes,
            location=request.location,
            notes=request.notes,
        )
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return MeetingResponse(**meeting.to_dict())


@router.get("/meetings", response_model=MeetingListResponse)
async def list_meetings(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    meeting_status: MeetingStatus | None = Query(default=None, alias="status"),
    profile: Profile = Depends(get_current_profile),
):
    start = start or utc_now()
    end = end or start + DEFAULT_MEETING_RANGE
    meetings = await meeting_service.list_meetings(
        profile.organization_id, start, end, meeting_status
    )
    return MeetingListResponse(
        meetings=[MeetingResponse(**meeting.to_dict()) for meeting in meetings],
        count=len(meetings),
    )


@router.get("/meetings/{meeting_id}", response_model=MeetingResponse)
async def get_meeting(meeting_id: str, profile: Profile = Depends(get_current_profile)):
    try:
        meeting = await meeting_service.get_meeting(profile.organization_id, meeting_id)
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return MeetingResponse(**meeting.to_dict())


@router.patch("/meetings/{meeting_id}", response_model=MeetingResponse)
async def update_meeting(
    meeting_id: str,
    request: MeetingUpdateRequest,
    profile: Profile = Depends(get_current_profile),
):
    """
    Update a meeting. Cancelling dismisses its pending reminders; moving a
    scheduled meeting replaces them.

    Raises:
        403: Caller is neither the creator nor an admin
        404: Meeting not found
    """
    changes = request.model_dump(exclude_unset=True)
    try:
        meeting = await meeting_service.update_meeting(profile, meeting_id, changes)
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return MeetingResponse(**meeting.to_dict())


@router.delete("/meetings/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meeting(meeting_id: str, profile: Profile = Depends(get_current_profile)):
    try:
        await meeting_service.delete_meeting(profile, meeting_id)
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =================================================================
# ANNOUNCEMENTS + NOTIFICATIONS
# =================================================================


@router.get("/announcements", response_model=AnnouncementFeedResponse)
async def get_announcements(profile: Profile = Depends(get_current_profile)):
    feed = await announcement_service.get_feed(profile.organization_id, profile.user_id)
    return AnnouncementFeedResponse(**feed.to_dict())


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    profile: Profile = Depends(get_current_profile),
):
    notifications = await notification_service.list_notifications(
        profile.organization_id, profile.user_id, limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse(**item.to_dict()) for item in notifications],
        count=len(notifications),
    )


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(profile: Profile = Depends(get_current_profile)):
    unread = await notification_service.unread_count(profile.organization_id, profile.user_id)
    return UnreadCountResponse(unread=unread)


@router.post("/notifications/mark-all-read", response_model=MarkAllReadResponse)
async def mark_all_read(profile: Profile = Depends(get_current_profile)):
    updated = await notification_service.mark_all_read(profile.organization_id, profile.user_id)
    return MarkAllReadResponse(updated=updated)


@router.patch("/notifications/{notification_id}", response_model=NotificationResponse)
async def update_notification(
    notification_id: str,
    request: NotificationUpdateRequest,
    profile: Profile = Depends(get_current_profile),
):
    try:
        notification = await notification_service.update_notification(
            profile.organization_id,
            profile.user_id,
            notification_id,
            read=request.read,
            dismissed=request.dismissed,
        )
    except PipelineEngineError as e:
        raise _http_error(e) from e

    return NotificationResponse(**notification.to_dict())


# =================================================================
# BATCH TRIGGER
# =================================================================


async def _trigger_sweep() -> dict:
    logger.info("Pipeline notify sweep triggered")
    result = await run_pipeline_notify_sweep()
    return result.to_dict()


@cron_router.get("/pipeline-notify", dependencies=[Depends(verify_cron_secret)])
async def pipeline_notify_get() -> dict:
    """Run one notify sweep across all organizations."""
    return await _trigger_sweep()


@cron_router.post("/pipeline-notify", dependencies=[Depends(verify_cron_secret)])
async def pipeline_notify_post() -> dict:
    return await _trigger_sweep()
