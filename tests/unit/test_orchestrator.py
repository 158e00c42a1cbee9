import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.features.pipeline_engine.domain import (
    ActionType,
    NotificationDraft,
    NotificationType,
    PendingReason,
    Profile,
    Stage,
)
from app.features.pipeline_engine.repository import ContactRepository, OrganizationRepository
from app.features.pipeline_engine.services.idempotency import IdempotencyGuard
from app.features.pipeline_engine.services.orchestrator import (
    PipelineNotifyOrchestrator,
    classify_contacts,
)
from app.features.pipeline_engine.services.tips import TipService
from app.utils.dates import business_date

PROFILES = [
    Profile(user_id="owner-1", organization_id="org-1", name="Ana", role="member"),
    Profile(user_id="admin-1", organization_id="org-1", name="Bruno", role="admin"),
    Profile(user_id="admin-2", organization_id="org-1", name="Caio", role="admin"),
]


@pytest.fixture
def tenant(monkeypatch, contact_row):
    """Single tenant whose active contacts are whatever the test puts in the list."""
    contacts = []

    async def fetch_active_rows(organization_id):
        return [contact_row(contact) for contact in contacts]

    monkeypatch.setattr(
        OrganizationRepository, "list_organization_ids", AsyncMock(return_value=["org-1"])
    )
    monkeypatch.setattr(OrganizationRepository, "fetch_profiles", AsyncMock(return_value=PROFILES))
    monkeypatch.setattr(ContactRepository, "fetch_active_rows", fetch_active_rows)
    monkeypatch.setattr(
        ContactRepository, "fetch_recent_interactions", AsyncMock(return_value={})
    )
    return contacts


def _orchestrator(**kwargs):
    return PipelineNotifyOrchestrator(
        tips=TipService(), batch_cap=15, max_concurrent_tenants=2, **kwargs
    )


@pytest.mark.asyncio
async def test_two_sweeps_in_window_notify_once(tenant, notification_store, make_contact, now):
    tenant.append(make_contact("c-1", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1"))
    orchestrator = _orchestrator()

    first = await orchestrator.run_sweep(now)
    second = await orchestrator.run_sweep(now + timedelta(hours=2))

    assert first.total_notifications == 1
    assert second.total_notifications == 0
    assert len(notification_store.rows) == 1
    row = notification_store.rows[0]
    assert row.type is NotificationType.STALE_DEAL
    assert row.user_id == "owner-1"
    assert row.title == "Contact c-1 stalled for 6 days"
    assert "\n\nTip: " in row.body
    assert row.metadata["source"] == "cron_ai"


@pytest.mark.asyncio
async def test_condition_is_renotified_after_window(tenant, notification_store, make_contact, now):
    tenant.append(make_contact("c-1", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1"))
    orchestrator = _orchestrator()

    await orchestrator.run_sweep(now)
    later = await orchestrator.run_sweep(now + timedelta(hours=7))

    assert later.total_notifications == 1
    assert len(notification_store.rows) == 2


@pytest.mark.asyncio
async def test_overlapping_sweeps_collapse_to_one_row(tenant, notification_store, make_contact, now):
    tenant.append(make_contact("c-1", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1"))
    orchestrator = _orchestrator()

    results = await asyncio.gather(orchestrator.run_sweep(now), orchestrator.run_sweep(now))

    assert sum(result.total_notifications for result in results) == 1
    assert len(notification_store.rows) == 1


@pytest.mark.asyncio
async def test_unowned_contact_goes_to_every_admin(tenant, notification_store, make_contact, now):
    tenant.append(make_contact("c-9", stage=Stage.NEW, age_days=4))

    result = await _orchestrator().run_sweep(now)

    assert result.total_notifications == 2
    assert {row.user_id for row in notification_store.rows} == {"admin-1", "admin-2"}
    assert all(row.type is NotificationType.NO_OWNER for row in notification_store.rows)
    assert notification_store.rows[0].title == "No owner: Contact c-9"


@pytest.mark.asyncio
async def test_overdue_and_today_actions(tenant, notification_store, make_contact, now):
    today = business_date(now)
    tenant.extend(
        [
            make_contact(
                "late",
                stage=Stage.CONTACTED,
                age_days=2,
                owner_id="owner-1",
                next_action_type=ActionType.CALL,
                next_action_date=today - timedelta(days=2),
            ),
            make_contact(
                "due",
                stage=Stage.CONTACTED,
                age_days=2,
                owner_id="owner-1",
                next_action_type=ActionType.SEND_EMAIL,
                next_action_date=today,
            ),
        ]
    )

    await _orchestrator().run_sweep(now)

    titles = sorted(row.title for row in notification_store.rows)
    assert titles == ["Action for today: Contact due", "Overdue action: Contact late"]
    assert all(row.type is NotificationType.NEXT_ACTION for row in notification_store.rows)


@pytest.mark.asyncio
async def test_tenant_failure_does_not_abort_others(
    monkeypatch, tenant, notification_store, make_contact, now
):
    tenant.append(make_contact("c-1", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1"))
    good_rows = ContactRepository.fetch_active_rows

    async def fetch_active_rows(organization_id):
        if organization_id == "org-bad":
            raise RuntimeError("connection reset")
        return await good_rows(organization_id)

    monkeypatch.setattr(
        OrganizationRepository,
        "list_organization_ids",
        AsyncMock(return_value=["org-bad", "org-1"]),
    )
    monkeypatch.setattr(ContactRepository, "fetch_active_rows", fetch_active_rows)

    result = await _orchestrator().run_sweep(now)

    assert result.failed_tenants == ["org-bad"]
    assert result.total_notifications == 1
    assert result.to_dict()["tenants_failed"] == 1


@pytest.mark.asyncio
async def test_bucket_is_capped_per_user(tenant, notification_store, make_contact, now):
    tenant.extend(
        make_contact(f"c-{i}", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1")
        for i in range(20)
    )

    result = await PipelineNotifyOrchestrator(tips=TipService(), batch_cap=15).run_sweep(now)

    assert result.total_notifications == 15


@pytest.mark.asyncio
async def test_one_tip_request_per_bucket(tenant, notification_store, make_contact, now):
    tenant.extend(
        make_contact(f"c-{i}", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1")
        for i in range(3)
    )
    tips = TipService()
    batch_tips = AsyncMock(side_effect=lambda owner, batch: {p.contact.id: "Call them." for p in batch})
    tips.batch_tips = batch_tips

    await PipelineNotifyOrchestrator(tips=tips, batch_cap=15).run_sweep(now)

    batch_tips.assert_awaited_once()
    assert batch_tips.await_args.args[0] == "Ana"
    assert all(row.body.endswith("Tip: Call them.") for row in notification_store.rows)


def _guard(keys=()):
    return IdempotencyGuard(window_hours=6, loader=AsyncMock(return_value=set(keys)))


@pytest.mark.asyncio
async def test_first_classification_wins(make_contact, now):
    today = business_date(now)
    contact = make_contact(
        "c-1",
        stage=Stage.PROSPECTING,
        age_days=8,
        owner_id="owner-1",
        next_action_type=ActionType.CALL,
        next_action_date=today - timedelta(days=1),
    )
    guard = await _guard().load("org-1", now)

    buckets, errors = classify_contacts([contact], ["admin-1"], guard, now)

    assert errors == 0
    assert [entry.reason for entry in buckets["owner-1"]] == [PendingReason.STALE]


@pytest.mark.asyncio
async def test_recently_notified_stale_contact_can_still_be_overdue(make_contact, now):
    today = business_date(now)
    contact = make_contact(
        "c-1",
        stage=Stage.PROSPECTING,
        age_days=8,
        owner_id="owner-1",
        next_action_date=today - timedelta(days=1),
    )
    guard = await _guard({("c-1", "owner-1", NotificationType.STALE_DEAL.value)}).load("org-1", now)

    buckets, _ = classify_contacts([contact], [], guard, now)

    assert [entry.reason for entry in buckets["owner-1"]] == [PendingReason.OVERDUE]


@pytest.mark.asyncio
async def test_broken_contact_is_skipped(make_contact, now):
    good = make_contact("ok", stage=Stage.PROSPECTING, age_days=6, owner_id="owner-1")
    broken = make_contact("bad", stage=Stage.PROSPECTING, owner_id="owner-1")
    object.__setattr__(broken, "updated_at", None)
    guard = await _guard().load("org-1", now)

    buckets, errors = classify_contacts([broken, good], [], guard, now)

    assert errors == 1
    assert [entry.contact.id for entry in buckets["owner-1"]] == ["ok"]


@pytest.mark.asyncio
async def test_guard_admits_each_key_once_per_run(now):
    guard = await _guard().load("org-1", now)
    draft = NotificationDraft(
        organization_id="org-1",
        user_id="owner-1",
        type=NotificationType.STALE_DEAL,
        title="t",
        body="b",
        contact_id="c-1",
    )
    untracked = NotificationDraft(
        organization_id="org-1",
        user_id="owner-1",
        type=NotificationType.SYSTEM,
        title="t",
        body="b",
    )

    admitted = guard.filter([draft, draft, untracked, untracked])

    assert admitted == [draft, untracked, untracked]
    assert guard.window_start == now - timedelta(hours=6)


@pytest.mark.asyncio
async def test_guard_loads_window_for_tracked_types(now):
    loader = AsyncMock(return_value=set())

    await IdempotencyGuard(window_hours=6, loader=loader).load("org-1", now)

    organization_id, since, types = loader.await_args.args
    assert organization_id == "org-1"
    assert since == now - timedelta(hours=6)
    assert NotificationType.MEETING_REMINDER not in types
    assert NotificationType.STALE_DEAL in types
