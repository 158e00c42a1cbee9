"""
User-facing notification operations. Callers only ever see and change
their own notifications.
"""

from datetime import datetime

from app.features.pipeline_engine.domain import Notification, NotificationNotFoundError
from app.features.pipeline_engine.repository import NotificationRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import ensure_aware, utc_now

logger = get_logger(__name__)


class NotificationService:
    async def list_notifications(
        self, organization_id: str, user_id: str, limit: int = 50, now: datetime | None = None
    ) -> list[Notification]:
        now = ensure_aware(now or utc_now())
        return await NotificationRepository.list_visible(organization_id, user_id, now, limit)

    async def unread_count(
        self, organization_id: str, user_id: str, now: datetime | None = None
    ) -> int:
        now = ensure_aware(now or utc_now())
        return await NotificationRepository.count_unread(organization_id, user_id, now)

    async def update_notification(
        self,
        organization_id: str,
        user_id: str,
        notification_id: str,
        *,
        read: bool | None = None,
        dismissed: bool | None = None,
    ) -> Notification:
        notification = await NotificationRepository.update_flags(
            organization_id, user_id, notification_id, read=read, dismissed=dismissed
        )
        if notification is None:
            raise NotificationNotFoundError(
                f"Notification {notification_id} not found", operation="update_notification"
            )
        return notification

    async def mark_all_read(
        self, organization_id: str, user_id: str, now: datetime | None = None
    ) -> int:
        now = ensure_aware(now or utc_now())
        updated = await NotificationRepository.mark_all_read(organization_id, user_id, now)
        logger.info("Notifications marked read", user_id=user_id, updated=updated)
        return updated


notification_service = NotificationService()
