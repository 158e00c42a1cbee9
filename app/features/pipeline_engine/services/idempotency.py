"""
Idempotency guard for the notify sweep.

A notification derived from a recurring condition is keyed by
(contact_id, user_id, type). The guard loads the keys created inside the
trailing window for one tenant and refuses any key it has already seen,
including keys admitted earlier in the same run. Once the window elapses
the same condition is notified again; that repeat nudge is intended.
"""

from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timedelta

from app.config import settings
from app.features.pipeline_engine.domain import NotificationDraft, NotificationType
from app.features.pipeline_engine.repository import NotificationRepository
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import ensure_aware, utc_now

logger = get_logger(__name__)

DedupKey = tuple[str | None, str, str]
KeyLoader = Callable[[str, datetime, Iterable[NotificationType]], Awaitable[set[DedupKey]]]

TRACKED_TYPES: frozenset[NotificationType] = frozenset(
    {
        NotificationType.NEXT_ACTION,
        NotificationType.STALE_DEAL,
        NotificationType.NO_OWNER,
        NotificationType.COACHING_TIP,
    }
)


class IdempotencyGuard:
    """Per-tenant, per-run view of recently created notification keys."""

    def __init__(
        self,
        window_hours: int | None = None,
        loader: KeyLoader | None = None,
    ):
        self.window = timedelta(
            hours=window_hours if window_hours is not None else settings.NOTIFY_DEDUP_WINDOW_HOURS
        )
        self._loader = loader or NotificationRepository.fetch_recent_keys
        self._seen: set[DedupKey] = set()
        self.window_start: datetime | None = None
        self.organization_id: str | None = None

    async def load(self, organization_id: str, now: datetime | None = None) -> "IdempotencyGuard":
        now = ensure_aware(now or utc_now())
        self.organization_id = organization_id
        self.window_start = now - self.window
        self._seen = set(await self._loader(organization_id, self.window_start, TRACKED_TYPES))

        logger.debug(
            "Idempotency keys loaded",
            org_id=organization_id,
            key_count=len(self._seen),
            window_start=self.window_start.isoformat(),
        )
        return self

    def seen(self, key: DedupKey) -> bool:
        return key in self._seen

    def admit(self, key: DedupKey) -> bool:
        """True if the key is new; the key is remembered either way."""
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def filter(self, drafts: Iterable[NotificationDraft]) -> list[NotificationDraft]:
        admitted = []
        for draft in drafts:
            if draft.type not in TRACKED_TYPES or self.admit(draft.dedup_key):
                admitted.append(draft)
        return admitted
