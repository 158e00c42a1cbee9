from datetime import UTC, datetime, timedelta

import pytest

from app.auth.verify import auth_dependency, get_current_profile
from app.config import settings
from app.features.pipeline_engine.domain import (
    ContactSnapshot,
    Interaction,
    InteractionOutcome,
    InteractionType,
    Notification,
    NotificationDraft,
    Profile,
    Stage,
)

# Wednesday 12:00 in America/Sao_Paulo
FIXED_NOW = datetime(2025, 3, 12, 15, 0, tzinfo=UTC)

ORG_ID = "org-1"


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture(autouse=True)
def deterministic_settings(monkeypatch):
    """No test talks to the real tip generator or depends on local env files."""
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "BUSINESS_TIMEZONE", "America/Sao_Paulo")
    monkeypatch.setattr(settings, "NOTIFY_DEDUP_WINDOW_HOURS", 6)


def _make_contact(
    contact_id: str = "c-1",
    *,
    stage: Stage = Stage.NEW,
    age_days: float = 0,
    stale_days: float | None = None,
    now: datetime = FIXED_NOW,
    interactions: tuple[Interaction, ...] = (),
    **fields,
) -> ContactSnapshot:
    """Snapshot created `age_days` ago and last updated `stale_days` ago."""
    stale_days = age_days if stale_days is None else stale_days
    return ContactSnapshot(
        id=contact_id,
        name=fields.pop("name", f"Contact {contact_id}"),
        stage=stage,
        created_at=now - timedelta(days=age_days),
        updated_at=now - timedelta(days=stale_days),
        interactions=interactions,
        **fields,
    )


def _make_interaction(
    type_: InteractionType,
    outcome: InteractionOutcome,
    days_ago: float,
    now: datetime = FIXED_NOW,
) -> Interaction:
    return Interaction(type=type_, outcome=outcome, happened_at=now - timedelta(days=days_ago))


def _contact_row(contact: ContactSnapshot) -> dict:
    """The dict row shape ContactRepository.fetch_active_rows returns."""
    return {
        "id": contact.id,
        "name": contact.name,
        "company": contact.company,
        "status": contact.stage.value,
        "temperature": contact.temperature.value if contact.temperature else None,
        "estimated_value": contact.estimated_value,
        "assigned_to_user_id": contact.owner_id,
        "next_action_type": contact.next_action_type.value if contact.next_action_type else None,
        "next_action_date": contact.next_action_date,
        "created_at": contact.created_at,
        "updated_at": contact.updated_at,
    }


class FakeNotificationStore:
    """In-memory stand-in for the notifications table."""

    def __init__(self, clock=lambda: FIXED_NOW):
        self.rows: list[Notification] = []
        self.clock = clock

    def _append(self, draft: NotificationDraft) -> Notification:
        notification = Notification(
            id=f"n-{len(self.rows) + 1}",
            organization_id=draft.organization_id,
            user_id=draft.user_id,
            type=draft.type,
            title=draft.title,
            body=draft.body,
            contact_id=draft.contact_id,
            scheduled_for=draft.scheduled_for,
            read=False,
            dismissed=False,
            metadata=dict(draft.metadata),
            created_at=self.clock(),
        )
        self.rows.append(notification)
        return notification

    async def fetch_recent_keys(self, organization_id, since, types):
        type_values = {t.value for t in types}
        return {
            (row.contact_id, row.user_id, row.type.value)
            for row in self.rows
            if row.organization_id == organization_id
            and row.created_at >= since
            and row.type.value in type_values
        }

    async def insert_if_absent(self, drafts, since):
        inserted = 0
        for draft in drafts:
            exists = any(
                row.organization_id == draft.organization_id
                and row.user_id == draft.user_id
                and row.type == draft.type
                and row.contact_id == draft.contact_id
                and row.created_at >= since
                for row in self.rows
            )
            if not exists:
                self._append(draft)
                inserted += 1
        return inserted

    async def insert_many(self, drafts):
        for draft in drafts:
            self._append(draft)
        return len(drafts)

    async def find_pending_reminder_ids(self, organization_id, meeting_id):
        return [
            row.id
            for row in self.rows
            if row.organization_id == organization_id
            and row.metadata.get("meeting_id") == meeting_id
            and not row.dismissed
        ]

    async def dismiss_many(self, notification_ids):
        count = 0
        for row in self.rows:
            if row.id in notification_ids and not row.dismissed:
                row.dismissed = True
                count += 1
        return count

    async def dismiss_one(self, notification_id):
        return await self.dismiss_many([notification_id])

    def install(self, monkeypatch):
        from app.features.pipeline_engine.repository import NotificationRepository

        for name in (
            "fetch_recent_keys",
            "insert_if_absent",
            "insert_many",
            "find_pending_reminder_ids",
            "dismiss_many",
            "dismiss_one",
        ):
            monkeypatch.setattr(NotificationRepository, name, getattr(self, name))
        return self


@pytest.fixture
def notification_store(monkeypatch):
    return FakeNotificationStore().install(monkeypatch)


@pytest.fixture
def profile():
    return Profile(user_id="user-123", organization_id=ORG_ID, name="Ana", role="member")


@pytest.fixture
def admin_profile():
    return Profile(user_id="admin-1", organization_id=ORG_ID, name="Bruno", role="admin")


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override, profile):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override
        app.dependency_overrides[get_current_profile] = lambda: profile

    return _apply


@pytest.fixture
def make_contact():
    return _make_contact


@pytest.fixture
def make_interaction():
    return _make_interaction


@pytest.fixture
def contact_row():
    return _contact_row
