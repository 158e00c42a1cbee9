from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.config import settings
from app.features.pipeline_engine.domain import (
    ActionType,
    PendingContact,
    PendingReason,
    Stage,
    TipGenerationError,
)
from app.features.pipeline_engine.services.tips import (
    TipService,
    describe_pending,
    fallback_tip,
    parse_batch_tips,
)
from app.services.openai_service import OpenAIService


def _pending(contact, reason=PendingReason.STALE, days=6):
    return PendingContact(contact=contact, reason=reason, days_stale=days)


def test_parse_wrapped_tips_object():
    raw = 'Sure! {"tips": {"c-1": "Call today.", "c-2": 42}} Hope it helps.'

    assert parse_batch_tips(raw) == {"c-1": "Call today."}


def test_parse_bare_mapping():
    assert parse_batch_tips('{"c-1": "Send the proposal."}') == {"c-1": "Send the proposal."}


@pytest.mark.parametrize("raw", ["", "no json here", "{not: valid}", '{"tips": ["a", "b"]}'])
def test_parse_rejects_garbage(raw):
    with pytest.raises(TipGenerationError):
        parse_batch_tips(raw)


def test_fallback_tip_is_deterministic(make_contact):
    overdue = _pending(
        make_contact(stage=Stage.CONTACTED, next_action_type=ActionType.CALL),
        PendingReason.OVERDUE,
    )
    new = _pending(make_contact(stage=Stage.NEW))
    prospecting = _pending(make_contact(stage=Stage.PROSPECTING, name="Dora"))

    assert fallback_tip(overdue) == fallback_tip(overdue)
    assert '"CALL"' in fallback_tip(overdue)
    assert fallback_tip(new).startswith("Make the first contact")
    assert fallback_tip(prospecting).startswith("Reach out to Dora again.")


def test_describe_pending_includes_id_and_reason(make_contact):
    pending = _pending(make_contact("c-7", company="Acme", estimated_value=12000))

    line = describe_pending(1, pending)

    assert line.startswith("1. [c-7] Contact c-7 (Acme)")
    assert "Value: 12,000" in line
    assert line.endswith("Alert reason: stalled")


@pytest.mark.asyncio
async def test_batch_tips_disabled_uses_fallback(make_contact):
    generator = AsyncMock()
    batch = [_pending(make_contact("c-1")), _pending(make_contact("c-2", stage=Stage.CONTACTED))]

    tips = await TipService(generator=generator).batch_tips("Ana", batch)

    generator.complete.assert_not_called()
    assert tips == {pending.contact.id: fallback_tip(pending) for pending in batch}


@pytest.mark.asyncio
async def test_batch_tips_fills_missing_ids(monkeypatch, make_contact):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    generator = AsyncMock()
    generator.complete.return_value = '{"tips": {"c-1": "  Call Carla now.  "}}'
    batch = [_pending(make_contact("c-1")), _pending(make_contact("c-2"))]

    tips = await TipService(generator=generator).batch_tips("Ana", batch)

    generator.complete.assert_awaited_once()
    assert generator.complete.await_args.kwargs["json_mode"] is True
    assert tips["c-1"] == "Call Carla now."
    assert tips["c-2"] == fallback_tip(batch[1])


@pytest.mark.asyncio
async def test_batch_tips_survive_generator_failure(monkeypatch, make_contact):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    generator = AsyncMock()
    generator.complete.side_effect = TipGenerationError("timeout", operation="complete")
    batch = [_pending(make_contact("c-1"))]

    tips = await TipService(generator=generator).batch_tips("Ana", batch)

    assert tips == {"c-1": fallback_tip(batch[0])}


@pytest.mark.asyncio
async def test_coaching_tips_parsed_and_capped(monkeypatch):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    generator = AsyncMock()
    generator.complete.return_value = "- one\n- two\n\n- three\n- four"

    tips = await TipService(generator=generator).coaching_tips({"stale": 3})

    assert tips == ["one", "two", "three"]


def _service_with_create(create):
    service = OpenAIService()
    completions = SimpleNamespace(create=create)
    service.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return service


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "create",
    [
        AsyncMock(side_effect=KeyError("choices")),
        AsyncMock(return_value=SimpleNamespace(choices=[SimpleNamespace(message=None)])),
    ],
)
async def test_complete_wraps_unexpected_errors(create):
    with pytest.raises(TipGenerationError):
        await _service_with_create(create).complete("system", "user")


@pytest.mark.asyncio
async def test_batch_tips_fall_back_on_unexpected_client_error(monkeypatch, make_contact):
    monkeypatch.setattr(settings, "OPENAI_API_KEY", "sk-test")
    generator = _service_with_create(AsyncMock(side_effect=RuntimeError("boom")))
    batch = [_pending(make_contact("c-1")), _pending(make_contact("c-2"))]

    tips = await TipService(generator=generator).batch_tips("Ana", batch)

    assert tips == {pending.contact.id: fallback_tip(pending) for pending in batch}
