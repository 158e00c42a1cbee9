"""
Next-action recommender.

A decision list: ACTION_RULES is walked top to bottom and the first rule
whose predicates all hold produces the suggestion. The order of the table is
part of its meaning; reordering entries changes recommendations.
"""

from dataclasses import dataclass
from datetime import datetime

from app.features.pipeline_engine.domain import (
    ACTIVE_STAGES,
    ActionSuggestion,
    ActionType,
    ContactSnapshot,
    InteractionOutcome,
    InteractionType,
    Priority,
    Stage,
)
from app.utils.dates import days_between, utc_now

FALLBACK_IDLE_DAYS = 3

# Sentinel for rules that only apply when the contact has no interactions at all
NO_INTERACTIONS = "no_interactions"


@dataclass(slots=True, frozen=True)
class ActionRule:
    stages: frozenset[Stage]
    action: ActionType
    reason: str
    priority: Priority
    # None: any; NO_INTERACTIONS: must have none; frozenset: last type must be in it
    last_types: frozenset[InteractionType] | str | None = None
    last_outcomes: frozenset[InteractionOutcome] | None = None
    min_days: int | None = None
    max_days: int | None = None

    def matches(self, contact: ContactSnapshot, idle_days: int) -> bool:
        if contact.stage not in self.stages:
            return False

        last = contact.last_interaction

        if self.last_types == NO_INTERACTIONS:
            if last is not None:
                return False
        elif self.last_types is not None:
            if last is None or last.type not in self.last_types:
                return False

        if self.last_outcomes is not None:
            if last is None or last.outcome not in self.last_outcomes:
                return False

        # Inclusive bounds
        if self.min_days is not None and idle_days < self.min_days:
            return False
        if self.max_days is not None and idle_days > self.max_days:
            return False

        return True


def _types(*values: InteractionType) -> frozenset[InteractionType]:
    return frozenset(values)


def _outcomes(*values: InteractionOutcome) -> frozenset[InteractionOutcome]:
    return frozenset(values)


ACTION_RULES: tuple[ActionRule, ...] = (
    # NEW, never touched
    ActionRule(
        stages=frozenset({Stage.NEW}),
        last_types=NO_INTERACTIONS,
        action=ActionType.CALL,
        reason="Make the first contact by phone",
        priority=Priority.HIGH,
    ),
    # NEW, call went unanswered
    ActionRule(
        stages=frozenset({Stage.NEW}),
        last_types=_types(InteractionType.CALL),
        last_outcomes=_outcomes(InteractionOutcome.NO_RESPONSE),
        min_days=0,
        max_days=1,
        action=ActionType.SEND_MESSAGE,
        reason="Call went unanswered, try a message",
        priority=Priority.HIGH,
    ),
    # NEW, message went unanswered
    ActionRule(
        stages=frozenset({Stage.NEW}),
        last_types=_types(InteractionType.MESSAGE),
        last_outcomes=_outcomes(InteractionOutcome.NO_RESPONSE, InteractionOutcome.AWAITING_RETURN),
        min_days=1,
        max_days=2,
        action=ActionType.CALL,
        reason="Message went unanswered, try a call",
        priority=Priority.HIGH,
    ),
    # NEW, email went unanswered
    ActionRule(
        stages=frozenset({Stage.NEW}),
        last_types=_types(InteractionType.EMAIL),
        last_outcomes=_outcomes(InteractionOutcome.NO_RESPONSE, InteractionOutcome.AWAITING_RETURN),
        min_days=2,
        max_days=5,
        action=ActionType.CALL,
        reason="Email went unanswered, try direct contact",
        priority=Priority.MEDIUM,
    ),
    # PROSPECTING, contact replied
    ActionRule(
        stages=frozenset({Stage.PROSPECTING}),
        last_outcomes=_outcomes(InteractionOutcome.RESPONDED, InteractionOutcome.KEEP_TRYING),
        min_days=0,
        max_days=2,
        action=ActionType.MEETING,
        reason="Contact replied, schedule a meeting while it is warm",
        priority=Priority.HIGH,
    ),
    # PROSPECTING, no reply
    ActionRule(
        stages=frozenset({Stage.PROSPECTING}),
        last_outcomes=_outcomes(InteractionOutcome.NO_RESPONSE),
        min_days=2,
        max_days=5,
        action=ActionType.FOLLOW_UP,
        reason="No reply while prospecting, follow up",
        priority=Priority.MEDIUM,
    ),
    # CONTACTED, conversation going
    ActionRule(
        stages=frozenset({Stage.CONTACTED}),
        last_outcomes=_outcomes(
            InteractionOutcome.RESPONDED,
            InteractionOutcome.KEEP_TRYING,
            InteractionOutcome.NEGOTIATING,
        ),
        min_days=0,
        max_days=3,
        action=ActionType.MEETING,
        reason="Active contact, schedule a meeting or send a proposal",
        priority=Priority.HIGH,
    ),
    # CONTACTED, waiting on them
    ActionRule(
        stages=frozenset({Stage.CONTACTED}),
        last_outcomes=_outcomes(InteractionOutcome.AWAITING_RETURN),
        min_days=3,
        max_days=7,
        action=ActionType.FOLLOW_UP,
        reason="Waiting for a reply for a few days, chase it",
        priority=Priority.MEDIUM,
    ),
    # MEETING_SCHEDULED, meeting just happened
    ActionRule(
        stages=frozenset({Stage.MEETING_SCHEDULED}),
        last_types=_types(
            InteractionType.MEETING, InteractionType.VISIT, InteractionType.PRESENTATION
        ),
        min_days=0,
        max_days=1,
        action=ActionType.SEND_PROPOSAL,
        reason="Meeting held, send the proposal",
        priority=Priority.HIGH,
    ),
    # MEETING_SCHEDULED, proposal out and waiting
    ActionRule(
        stages=frozenset({Stage.MEETING_SCHEDULED}),
        last_types=_types(InteractionType.PROPOSAL_SENT, InteractionType.QUOTE),
        last_outcomes=_outcomes(InteractionOutcome.AWAITING_RETURN),
        min_days=3,
        action=ActionType.FOLLOW_UP,
        reason="Proposal sent days ago, chase the answer",
        priority=Priority.HIGH,
    ),
    # MEETING_SCHEDULED, negotiating
    ActionRule(
        stages=frozenset({Stage.MEETING_SCHEDULED}),
        last_outcomes=_outcomes(InteractionOutcome.NEGOTIATING),
        min_days=2,
        action=ActionType.FOLLOW_UP,
        reason="Negotiation in progress, keep the contact active",
        priority=Priority.MEDIUM,
    ),
    # Any active stage, referred elsewhere
    ActionRule(
        stages=ACTIVE_STAGES,
        last_outcomes=_outcomes(InteractionOutcome.REFERRED_THIRD_PARTY),
        min_days=0,
        action=ActionType.CALL,
        reason="Referred to a third party, reach out to the referral",
        priority=Priority.MEDIUM,
    ),
)


def idle_days(contact: ContactSnapshot, now: datetime) -> int:
    """Days since the last interaction, or since creation when there is none."""
    last = contact.last_interaction
    reference = last.happened_at if last is not None else contact.created_at
    return days_between(reference, now)


def suggest_next_action(
    contact: ContactSnapshot,
    now: datetime | None = None,
    rules: tuple[ActionRule, ...] = ACTION_RULES,
) -> ActionSuggestion | None:
    if not contact.is_active:
        return None

    now = now or utc_now()
    days = idle_days(contact, now)

    for rule in rules:
        if rule.matches(contact, days):
            return ActionSuggestion(
                action=rule.action,
                reason=rule.reason,
                priority=rule.priority,
                contact_id=contact.id,
                contact_name=contact.name,
            )

    if days > FALLBACK_IDLE_DAYS:
        return ActionSuggestion(
            action=ActionType.FOLLOW_UP,
            reason=f"No activity for {days} days, follow up",
            priority=Priority.MEDIUM,
            contact_id=contact.id,
            contact_name=contact.name,
        )

    return None
