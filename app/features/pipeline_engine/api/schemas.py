"""
Request and response models for the pipeline engine API.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.features.pipeline_engine.domain import ActionType, MeetingStatus


class ApplySuggestionRequest(BaseModel):
    """Accept a suggested next action and write it back to the contact."""

    action: ActionType
    due_date: date | None = Field(
        default=None, description="Defaults to today in the business timezone"
    )


class ApplySuggestionResponse(BaseModel):
    contact_id: str
    next_action_type: str
    next_action_date: str


class ClaimResponse(BaseModel):
    claimed: bool
    owner_id: str | None


class MeetingCreateRequest(BaseModel):
    contact_id: str
    title: str = Field(..., min_length=1, max_length=200)
    meeting_at: datetime
    duration_minutes: int = Field(default=30, ge=5, le=480)
    location: str | None = Field(default=None, max_length=300)
    notes: str | None = None


class MeetingUpdateRequest(BaseModel):
    """Partial update; only fields present in the body are changed."""

    title: str | None = Field(default=None, min_length=1, max_length=200)
    meeting_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=5, le=480)
    location: str | None = Field(default=None, max_length=300)
    notes: str | None = None
    status: MeetingStatus | None = None

    @field_validator("title", "meeting_at", "duration_minutes", "status")
    @classmethod
    def reject_null(cls, v):
        # Omit a field to leave it unchanged; these columns are NOT NULL
        if v is None:
            raise ValueError("may be omitted but not null")
        return v


class MeetingResponse(BaseModel):
    id: str
    organization_id: str
    contact_id: str
    created_by_user_id: str
    title: str
    meeting_at: str
    duration_minutes: int
    status: str
    location: str | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class MeetingListResponse(BaseModel):
    meetings: list[MeetingResponse]
    count: int


class NotificationResponse(BaseModel):
    id: str
    organization_id: str
    user_id: str
    type: str
    title: str
    body: str
    contact_id: str | None = None
    scheduled_for: str | None = None
    read: bool
    dismissed: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str


class NotificationListResponse(BaseModel):
    notifications: list[NotificationResponse]
    count: int


class NotificationUpdateRequest(BaseModel):
    read: bool | None = None
    dismissed: bool | None = None


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int


class AnnouncementResponse(BaseModel):
    id: str
    text: str
    category: str


class AnnouncementFeedResponse(BaseModel):
    enabled: bool
    announcements: list[AnnouncementResponse]
    duration_minutes: int
