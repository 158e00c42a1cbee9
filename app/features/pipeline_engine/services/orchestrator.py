"""
Pipeline notify sweep.

Runs across every tenant: loads active contacts, classifies them into
per-user buckets (stale, overdue, due today, no owner), asks the tip
generator once per bucket and persists the resulting notifications through
the idempotency guard and a conditional insert.

The sweep is meant to be triggered at least once per interval by an
external scheduler and may overlap with itself. It takes no locks; duplicate
suppression comes entirely from the dedup window.
"""

import asyncio
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from app.config import settings
from app.features.pipeline_engine.domain import (
    STAGE_LABELS,
    ContactSnapshot,
    NotificationDraft,
    NotificationType,
    PendingContact,
    PendingReason,
    Profile,
)
from app.features.pipeline_engine.repository import (
    ContactRepository,
    NotificationRepository,
    OrganizationRepository,
    rows_to_snapshots,
)
from app.features.pipeline_engine.services.idempotency import IdempotencyGuard
from app.features.pipeline_engine.services.tips import TipService, tip_service
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import business_date, days_between, ensure_aware, utc_now

logger = get_logger(__name__)

STALE_AFTER_DAYS = 5
NO_OWNER_AFTER_DAYS = 3
DEFAULT_OWNER_NAME = "Salesperson"


@dataclass
class TenantResult:
    organization_id: str
    contacts_analyzed: int = 0
    users_notified: int = 0
    notifications_created: int = 0
    duplicates_skipped: int = 0
    contact_errors: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "org_id": self.organization_id,
            "contacts_analyzed": self.contacts_analyzed,
            "users_notified": self.users_notified,
            "notifications_created": self.notifications_created,
            "duplicates_skipped": self.duplicates_skipped,
            "contact_errors": self.contact_errors,
            "error": self.error,
        }


@dataclass
class SweepResult:
    executed_at: datetime
    tenants: list[TenantResult] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def total_notifications(self) -> int:
        return sum(tenant.notifications_created for tenant in self.tenants)

    @property
    def failed_tenants(self) -> list[str]:
        return [tenant.organization_id for tenant in self.tenants if tenant.error]

    def to_dict(self) -> dict:
        return {
            "success": True,
            "executed_at": self.executed_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 2),
            "total_notifications": self.total_notifications,
            "tenants_processed": len(self.tenants),
            "tenants_failed": len(self.failed_tenants),
            "organizations": [tenant.to_dict() for tenant in self.tenants],
        }


def _bucket_add(
    buckets: dict[str, list[PendingContact]], user_id: str, pending: PendingContact
) -> None:
    """First classification per (user, contact) wins."""
    bucket = buckets.setdefault(user_id, [])
    if any(entry.contact.id == pending.contact.id for entry in bucket):
        return
    bucket.append(pending)


def classify_contact(
    contact: ContactSnapshot,
    admin_ids: Sequence[str],
    guard: IdempotencyGuard,
    today: date,
    now: datetime,
    buckets: dict[str, list[PendingContact]],
) -> None:
    days_stale = days_between(contact.updated_at, now)
    owner_id = contact.owner_id
    due = contact.next_action_date

    def pending(reason: PendingReason) -> PendingContact:
        return PendingContact(
            contact=contact,
            reason=reason,
            days_stale=days_stale,
            last_interaction=contact.last_interaction,
        )

    if owner_id:
        if days_stale >= STALE_AFTER_DAYS and not guard.seen(
            (contact.id, owner_id, NotificationType.STALE_DEAL.value)
        ):
            _bucket_add(buckets, owner_id, pending(PendingReason.STALE))

        if due is not None and not guard.seen(
            (contact.id, owner_id, NotificationType.NEXT_ACTION.value)
        ):
            if due < today:
                _bucket_add(buckets, owner_id, pending(PendingReason.OVERDUE))
            elif due == today:
                _bucket_add(buckets, owner_id, pending(PendingReason.TODAY))
        return

    if days_stale >= NO_OWNER_AFTER_DAYS:
        for admin_id in admin_ids:
            if not guard.seen((contact.id, admin_id, NotificationType.NO_OWNER.value)):
                _bucket_add(buckets, admin_id, pending(PendingReason.NO_OWNER))


def classify_contacts(
    contacts: Iterable[ContactSnapshot],
    admin_ids: Sequence[str],
    guard: IdempotencyGuard,
    now: datetime,
) -> tuple[dict[str, list[PendingContact]], int]:
    """
    Build per-user buckets in stale -> overdue -> today -> no-owner order.

    Returns:
        (buckets, number of contacts skipped because classification failed)
    """
    today = business_date(now)
    buckets: dict[str, list[PendingContact]] = {}
    errors = 0

    for contact in contacts:
        try:
            classify_contact(contact, admin_ids, guard, today, now, buckets)
        except Exception as e:
            errors += 1
            logger.warning(
                "Skipping contact during classification",
                contact_id=getattr(contact, "id", None),
                error=str(e),
                error_type=type(e).__name__,
            )

    return buckets, errors


def _contact_label(contact: ContactSnapshot) -> str:
    return f"{contact.name} ({contact.company})" if contact.company else contact.name


def _value_sentence(contact: ContactSnapshot) -> str:
    if not contact.estimated_value:
        return ""
    return f" Value: {contact.estimated_value:,.0f}."


def build_sweep_notification(
    organization_id: str,
    user_id: str,
    pending: PendingContact,
    tip: str,
    today: date,
) -> NotificationDraft:
    contact = pending.contact
    label = _contact_label(contact)
    stage_label = STAGE_LABELS[contact.stage]
    action = contact.next_action_type.value if contact.next_action_type else None
    tip_block = f"\n\nTip: {tip}"

    if pending.reason is PendingReason.NO_OWNER:
        title = f"No owner: {contact.name}"
        body = (
            f'{label} has been in "{stage_label}" for {pending.days_stale} days without an owner.'
            f"{_value_sentence(contact)}{tip_block}"
        )
        metadata = {"source": "cron_ai", "days_stale": pending.days_stale, "ai_tip": tip}
    elif pending.reason is PendingReason.OVERDUE:
        due_date = contact.next_action_date.isoformat() if contact.next_action_date else ""
        title = f"Overdue action: {contact.name}"
        body = f'The "{action or "Pending"}" action with {label} is overdue since {due_date}.{tip_block}'
        metadata = {
            "source": "cron_ai",
            "action_type": action,
            "due_date": due_date,
            "ai_tip": tip,
        }
    elif pending.reason is PendingReason.TODAY:
        title = f"Action for today: {contact.name}"
        body = f'Today: "{action or "Action"}" with {label}.{tip_block}'
        metadata = {
            "source": "cron_ai",
            "action_type": action,
            "due_date": today.isoformat(),
            "ai_tip": tip,
        }
    else:
        title = f"{contact.name} stalled for {pending.days_stale} days"
        body = (
            f'{label} has been in "{stage_label}" for {pending.days_stale} days.'
            f"{_value_sentence(contact)}{tip_block}"
        )
        metadata = {"source": "cron_ai", "days_stale": pending.days_stale, "ai_tip": tip}

    return NotificationDraft(
        organization_id=organization_id,
        user_id=user_id,
        type=pending.notification_type,
        title=title,
        body=body,
        contact_id=contact.id,
        metadata=metadata,
    )


class PipelineNotifyOrchestrator:
    """Drives one sweep across all tenants."""

    def __init__(
        self,
        tips: TipService | None = None,
        guard_factory: Callable[[], IdempotencyGuard] | None = None,
        batch_cap: int | None = None,
        max_concurrent_tenants: int | None = None,
    ):
        config = settings.get_notify_config()
        self.tips = tips or tip_service
        self.guard_factory = guard_factory or IdempotencyGuard
        self.batch_cap = batch_cap or config["batch_cap"]
        self.max_concurrent_tenants = max_concurrent_tenants or config["max_concurrent_tenants"]

    async def run_sweep(self, now: datetime | None = None) -> SweepResult:
        now = ensure_aware(now or utc_now())
        started = time.time()
        result = SweepResult(executed_at=now)

        organization_ids = await OrganizationRepository.list_organization_ids()
        logger.info(
            "Starting pipeline notify sweep",
            tenant_count=len(organization_ids),
            max_concurrent=self.max_concurrent_tenants,
            batch_cap=self.batch_cap,
        )

        semaphore = asyncio.Semaphore(self.max_concurrent_tenants)
        tasks = [
            self._run_tenant_with_semaphore(semaphore, organization_id, now)
            for organization_id in organization_ids
        ]
        result.tenants = list(await asyncio.gather(*tasks))
        result.duration_seconds = time.time() - started

        logger.info(
            "Pipeline notify sweep completed",
            total_notifications=result.total_notifications,
            tenants_processed=len(result.tenants),
            failed_tenants=result.failed_tenants,
            duration_seconds=round(result.duration_seconds, 2),
        )
        return result

    async def _run_tenant_with_semaphore(
        self, semaphore: asyncio.Semaphore, organization_id: str, now: datetime
    ) -> TenantResult:
        async with semaphore:
            try:
                return await self.run_tenant(organization_id, now)
            except Exception as e:
                logger.error(
                    "Tenant sweep failed",
                    org_id=organization_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return TenantResult(organization_id=organization_id, error=str(e))

    async def run_tenant(self, organization_id: str, now: datetime) -> TenantResult:
        result = TenantResult(organization_id=organization_id)

        rows = await ContactRepository.fetch_active_rows(organization_id)
        result.contacts_analyzed = len(rows)
        if not rows:
            return result

        profiles = await OrganizationRepository.fetch_profiles(organization_id)
        interactions = await ContactRepository.fetch_recent_interactions(
            organization_id, [row["id"] for row in rows], per_contact=1
        )
        guard = await self.guard_factory().load(organization_id, now)

        contacts, conversion_errors = rows_to_snapshots(rows, interactions)
        buckets, classification_errors = classify_contacts(
            contacts, self._admin_ids(profiles), guard, now
        )
        result.contact_errors = conversion_errors + classification_errors

        names = {profile.user_id: profile.name for profile in profiles}
        today = business_date(now)
        drafts: list[NotificationDraft] = []

        for user_id, pending in buckets.items():
            batch = pending[: self.batch_cap]
            if not batch:
                continue
            owner_name = names.get(user_id) or DEFAULT_OWNER_NAME
            tips = await self.tips.batch_tips(owner_name, batch)
            for entry in batch:
                drafts.append(
                    build_sweep_notification(
                        organization_id, user_id, entry, tips[entry.contact.id], today
                    )
                )

        admitted = guard.filter(drafts)
        result.users_notified = len({draft.user_id for draft in admitted})
        result.notifications_created = await NotificationRepository.insert_if_absent(
            admitted, guard.window_start
        )
        result.duplicates_skipped = len(drafts) - result.notifications_created

        logger.info("Tenant sweep completed", **result.to_dict())
        return result

    @staticmethod
    def _admin_ids(profiles: Sequence[Profile]) -> list[str]:
        return [profile.user_id for profile in profiles if profile.is_admin]


pipeline_notify_orchestrator = PipelineNotifyOrchestrator()


async def run_pipeline_notify_sweep(now: datetime | None = None) -> SweepResult:
    return await pipeline_notify_orchestrator.run_sweep(now)
