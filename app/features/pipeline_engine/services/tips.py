"""
Sales coaching tips.

The external generator is optional and unreliable by assumption: it can be
disabled, time out or answer with something that is not the requested JSON.
Every path here degrades to deterministic tips instead of raising.
"""

import json
import re
from collections.abc import Sequence

from app.config import settings
from app.features.pipeline_engine.domain import (
    STAGE_LABELS,
    ActionSuggestion,
    ContactSnapshot,
    PendingContact,
    PendingReason,
    RiskAlert,
    Stage,
    TipGenerationError,
)
from app.infrastructure.observability.logging import get_logger
from app.services.openai_service import OpenAIService, openai_service

logger = get_logger(__name__)

JSON_OBJECT_PATTERN = re.compile(r"\{[\s\S]*\}")

REASON_LABELS = {
    PendingReason.STALE: "stalled",
    PendingReason.OVERDUE: "overdue action",
    PendingReason.TODAY: "action due today",
    PendingReason.NO_OWNER: "no owner",
}

BATCH_SYSTEM_PROMPT = """You are a sales coach. Review the contacts below for salesperson {owner} and write one practical, SPECIFIC tip for each.

RULES:
- Exactly ONE short tip per contact (2-3 sentences max)
- Be direct: say exactly WHAT to do (call, send email, send proposal, reschedule, etc)
- Use the context: stage, days stalled, temperature, last interaction
- If the contact has a high value, stress the urgency
- If it has been "New" for a long time, suggest a first contact
- If it is "Contacted", suggest a follow-up or a meeting
- If it is "Meeting scheduled", suggest sending the proposal or closing
- If the action is overdue, suggest doing it today with a specific approach
- Answer ONLY as JSON: {{"tips": {{"CONTACT_ID": "tip here", ...}}}}
- Use the exact IDs in brackets [ID] for each contact"""

CONTACT_SYSTEM_PROMPT = """You are a sales coach. Given one contact, its risks and the suggested next action, write one short practical tip (2-3 sentences) for the salesperson. Answer with plain text only."""

HEALTH_SYSTEM_PROMPT = """You are a sales coach. Given a pipeline health summary, write up to 3 short coaching tips for the team, one per line, without numbering."""

STATIC_COACHING_TIP = "Review stalled deals first and set a next action for every active contact."


def fallback_tip(pending: PendingContact) -> str:
    contact = pending.contact
    action = contact.next_action_type.value if contact.next_action_type else None

    if pending.reason is PendingReason.OVERDUE:
        return f'Execute the "{action or "pending"}" action as soon as possible so the contact does not go cold.'
    if pending.reason is PendingReason.TODAY:
        return f'You have "{action or "an action"}" scheduled for today. Get ready and do it!'
    if contact.stage is Stage.NEW:
        return "Make the first contact as soon as possible. The longer it takes, the lower the chance of conversion."
    if contact.stage is Stage.CONTACTED:
        return "You already reached out. Now propose a meeting or send more information to move forward."
    if contact.stage is Stage.MEETING_SCHEDULED:
        return "Meeting scheduled. Prepare a tailored proposal and confirm the time."
    return f"Reach out to {contact.name} again. A quick follow-up can revive the negotiation."


def _money(value: float) -> str:
    return f"{value:,.0f}"


def describe_pending(index: int, pending: PendingContact) -> str:
    contact = pending.contact
    line = f"{index}. [{contact.id}] {contact.name}"
    if contact.company:
        line += f" ({contact.company})"
    line += f" | Stage: {STAGE_LABELS[contact.stage]}"
    line += f" | Stalled: {pending.days_stale} days"
    if contact.estimated_value:
        line += f" | Value: {_money(contact.estimated_value)}"
    if contact.temperature:
        line += f" | Temperature: {contact.temperature.value}"
    if contact.next_action_type:
        line += f" | Next action: {contact.next_action_type.value}"
        if contact.next_action_date:
            line += f" ({contact.next_action_date.isoformat()})"
    if pending.last_interaction:
        last = pending.last_interaction
        line += (
            f" | Last interaction: {last.type.value} ({last.outcome.value}) "
            f"on {last.happened_at.date().isoformat()}"
        )
    line += f" | Alert reason: {REASON_LABELS[pending.reason]}"
    return line


def parse_batch_tips(raw: str) -> dict[str, str]:
    """
    Extract {contact_id: tip} from a model answer.

    Accepts either {"tips": {...}} or a bare id->tip object, possibly wrapped
    in prose. Non-string values are dropped.

    Raises:
        TipGenerationError: no JSON object or invalid JSON
    """
    match = JSON_OBJECT_PATTERN.search(raw or "")
    if not match:
        raise TipGenerationError("No JSON object in tip response", operation="parse")

    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise TipGenerationError(f"Invalid JSON in tip response: {e}", operation="parse") from e

    if not isinstance(parsed, dict):
        raise TipGenerationError("Tip response is not an object", operation="parse")

    tips = parsed.get("tips", parsed)
    if not isinstance(tips, dict):
        raise TipGenerationError("Tip response has no tips object", operation="parse")

    return {str(key): value for key, value in tips.items() if isinstance(value, str)}


class TipService:
    """Produces tips via the generator, with deterministic fallbacks."""

    def __init__(self, generator: OpenAIService | None = None):
        self.generator = generator or openai_service

    async def batch_tips(self, owner_name: str, batch: Sequence[PendingContact]) -> dict[str, str]:
        """One generator call for the whole bucket; every contact gets a tip."""
        tips: dict[str, str] = {}

        if batch and settings.tips_enabled():
            user_message = f"Contacts of {owner_name} that need attention:\n\n" + "\n".join(
                describe_pending(index, pending) for index, pending in enumerate(batch, 1)
            )
            try:
                raw = await self.generator.complete(
                    BATCH_SYSTEM_PROMPT.format(owner=owner_name), user_message, json_mode=True
                )
                tips = parse_batch_tips(raw)
            except TipGenerationError as e:
                logger.warning(
                    "Tip generation failed, using fallback tips",
                    owner=owner_name,
                    batch_size=len(batch),
                    operation=e.operation,
                    error=str(e),
                )
                tips = {}

        result = {}
        for pending in batch:
            tip = tips.get(pending.contact.id)
            result[pending.contact.id] = tip.strip() if tip and tip.strip() else fallback_tip(pending)
        return result

    async def contact_tip(
        self,
        contact: ContactSnapshot,
        alerts: Sequence[RiskAlert],
        suggestion: ActionSuggestion | None,
    ) -> str | None:
        """Free-text tip for a single contact, or None when unavailable."""
        if not settings.tips_enabled():
            return None

        lines = [
            f"Contact: {contact.name}" + (f" ({contact.company})" if contact.company else ""),
            f"Stage: {STAGE_LABELS[contact.stage]}",
        ]
        if contact.estimated_value:
            lines.append(f"Value: {_money(contact.estimated_value)}")
        if contact.temperature:
            lines.append(f"Temperature: {contact.temperature.value}")
        for interaction in contact.interactions[:5]:
            lines.append(
                f"Interaction: {interaction.type.value} ({interaction.outcome.value}) "
                f"on {interaction.happened_at.date().isoformat()}"
            )
        for alert in alerts:
            lines.append(f"Risk: {alert.level.value} {alert.title}: {alert.description}")
        if suggestion:
            lines.append(f"Suggested action: {suggestion.action.value} ({suggestion.reason})")

        try:
            return await self.generator.complete(CONTACT_SYSTEM_PROMPT, "\n".join(lines))
        except TipGenerationError as e:
            logger.warning("Contact tip unavailable", contact_id=contact.id, error=str(e))
            return None

    async def coaching_tips(self, summary: dict) -> list[str]:
        if not settings.tips_enabled():
            return [STATIC_COACHING_TIP]

        user_message = "\n".join(f"{key}: {value}" for key, value in summary.items())
        try:
            raw = await self.generator.complete(HEALTH_SYSTEM_PROMPT, user_message)
        except TipGenerationError as e:
            logger.warning("Coaching tips unavailable", error=str(e))
            return [STATIC_COACHING_TIP]

        tips = [line.strip(" -*\t") for line in raw.splitlines() if line.strip(" -*\t")]
        return tips[:3] or [STATIC_COACHING_TIP]


tip_service = TipService()
