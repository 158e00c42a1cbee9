"""
Route tests for the pipeline engine API and the batch trigger.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.config import settings
from app.features.pipeline_engine.api import router as router_module
from app.features.pipeline_engine.domain import (
    ClaimResult,
    ContactNotFoundError,
    InvalidSuggestionError,
    Meeting,
    MeetingPermissionError,
)
from app.features.pipeline_engine.services.orchestrator import SweepResult, TenantResult
from app.main import app


@pytest.fixture
def client(apply_auth_override):
    apply_auth_override(app)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def sweep(monkeypatch, now):
    result = SweepResult(
        executed_at=now,
        tenants=[TenantResult(organization_id="org-1", notifications_created=3)],
    )
    mock = AsyncMock(return_value=result)
    monkeypatch.setattr(router_module, "run_pipeline_notify_sweep", mock)
    return mock


def test_cron_refuses_when_secret_not_configured(monkeypatch, sweep):
    monkeypatch.setattr(settings, "CRON_SECRET", None)

    response = TestClient(app).get("/cron/pipeline-notify", params={"secret": "anything"})

    assert response.status_code == 503
    sweep.assert_not_called()


def test_cron_rejects_wrong_secret(monkeypatch, sweep):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    response = TestClient(app).post("/cron/pipeline-notify", params={"secret": "nope"})
    missing = TestClient(app).get("/cron/pipeline-notify")

    assert response.status_code == 401
    assert missing.status_code == 401
    sweep.assert_not_called()


@pytest.mark.parametrize("method", ["get", "post"])
def test_cron_runs_sweep_with_valid_secret(monkeypatch, sweep, method):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

    response = getattr(TestClient(app), method)(
        "/cron/pipeline-notify", params={"secret": "s3cret"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["total_notifications"] == 3
    sweep.assert_awaited_once()


def test_next_action_not_found_maps_to_404(monkeypatch, client):
    monkeypatch.setattr(
        router_module.contact_service,
        "analyze_contact",
        AsyncMock(side_effect=ContactNotFoundError("Contact c-404 not found")),
    )

    response = client.get("/pipeline/contacts/c-404/next-action")

    assert response.status_code == 404


def test_next_action_passes_tip_flag(monkeypatch, client):
    analyze = AsyncMock(return_value={"risks": [], "next_action": None, "contact": {}, "tip": None})
    monkeypatch.setattr(router_module.contact_service, "analyze_contact", analyze)

    response = client.get("/pipeline/contacts/c-1/next-action", params={"include_tip": "true"})

    assert response.status_code == 200
    analyze.assert_awaited_once_with("org-1", "c-1", include_tip=True)


def test_apply_validation_error_maps_to_422(monkeypatch, client):
    monkeypatch.setattr(
        router_module.contact_service,
        "apply_suggestion",
        AsyncMock(side_effect=InvalidSuggestionError("Due date cannot be in the past")),
    )

    response = client.post(
        "/pipeline/contacts/c-1/next-action/apply",
        json={"action": "CALL", "due_date": "2020-01-01"},
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "Due date cannot be in the past"


def test_apply_rejects_unknown_action(client):
    response = client.post("/pipeline/contacts/c-1/next-action/apply", json={"action": "DANCE"})

    assert response.status_code == 422


def test_claim_returns_winner(monkeypatch, client):
    monkeypatch.setattr(
        router_module.contact_service,
        "claim_contact",
        AsyncMock(return_value=ClaimResult(claimed=False, owner_id="someone-else")),
    )

    response = client.post("/pipeline/contacts/c-1/claim")

    assert response.status_code == 200
    assert response.json() == {"claimed": False, "owner_id": "someone-else"}


def test_meeting_permission_maps_to_403(monkeypatch, client):
    monkeypatch.setattr(
        router_module.meeting_service,
        "delete_meeting",
        AsyncMock(side_effect=MeetingPermissionError("not yours")),
    )

    response = client.delete("/pipeline/meetings/m-1")

    assert response.status_code == 403


@pytest.mark.parametrize(
    "body",
    [
        {"status": None},
        {"title": None},
        {"meeting_at": None},
        {"duration_minutes": None, "notes": "moved"},
    ],
)
def test_meeting_update_rejects_null_for_required_fields(monkeypatch, client, body):
    update = AsyncMock()
    monkeypatch.setattr(router_module.meeting_service, "update_meeting", update)

    response = client.patch("/pipeline/meetings/m-1", json=body)

    assert response.status_code == 422
    update.assert_not_called()


def test_meeting_update_passes_only_sent_fields(monkeypatch, client, now):
    meeting = Meeting(
        id="m-1",
        organization_id="org-1",
        contact_id="c-1",
        created_by_user_id="user-123",
        title="Demo",
        meeting_at=now,
    )
    update = AsyncMock(return_value=meeting)
    monkeypatch.setattr(router_module.meeting_service, "update_meeting", update)

    response = client.patch("/pipeline/meetings/m-1", json={"notes": None, "title": "Demo"})

    assert response.status_code == 200
    assert update.await_args.args[2] == {"notes": None, "title": "Demo"}


def test_unread_count(monkeypatch, client):
    count = AsyncMock(return_value=4)
    monkeypatch.setattr(router_module.notification_service, "unread_count", count)

    response = client.get("/pipeline/notifications/unread-count")

    assert response.json() == {"unread": 4}
    count.assert_awaited_once_with("org-1", "user-123")


def test_routes_require_auth():
    response = TestClient(app).get("/pipeline/notifications")

    assert response.status_code in (401, 403)
