from datetime import timedelta

from app.features.pipeline_engine.domain import (
    ActionType,
    InteractionOutcome,
    InteractionType,
    Priority,
    Stage,
)
from app.features.pipeline_engine.rules import ACTION_RULES, ActionRule, suggest_next_action


def test_new_contact_without_interactions_gets_call(make_contact, now):
    suggestion = suggest_next_action(make_contact(stage=Stage.NEW), now)

    assert suggestion.action is ActionType.CALL
    assert suggestion.priority is Priority.HIGH


def test_unanswered_call_on_new_contact_suggests_message(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.NEW,
        age_days=2,
        interactions=(make_interaction(InteractionType.CALL, InteractionOutcome.NO_RESPONSE, 1),),
    )

    suggestion = suggest_next_action(contact, now)

    assert suggestion.action is ActionType.SEND_MESSAGE
    assert suggestion.priority is Priority.HIGH


def test_prospecting_responded_one_day_ago_schedules_meeting(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.PROSPECTING,
        age_days=10,
        interactions=(make_interaction(InteractionType.EMAIL, InteractionOutcome.RESPONDED, 1),),
    )

    suggestion = suggest_next_action(contact, now)

    assert suggestion.action is ActionType.MEETING
    assert suggestion.priority is Priority.HIGH


def test_prospecting_responded_four_days_ago_falls_through(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.PROSPECTING,
        age_days=10,
        interactions=(make_interaction(InteractionType.EMAIL, InteractionOutcome.RESPONDED, 4),),
    )

    suggestion = suggest_next_action(contact, now)

    assert suggestion.action is ActionType.FOLLOW_UP
    assert suggestion.priority is Priority.MEDIUM
    assert suggestion.reason == "No activity for 4 days, follow up"


def test_day_bounds_are_inclusive(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.PROSPECTING,
        age_days=10,
        interactions=(make_interaction(InteractionType.CALL, InteractionOutcome.RESPONDED, 2),),
    )

    assert suggest_next_action(contact, now).action is ActionType.MEETING


def test_meeting_held_suggests_proposal(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.MEETING_SCHEDULED,
        age_days=20,
        interactions=(make_interaction(InteractionType.VISIT, InteractionOutcome.RESPONDED, 0.5),),
    )

    suggestion = suggest_next_action(contact, now)

    assert suggestion.action is ActionType.SEND_PROPOSAL
    assert suggestion.priority is Priority.HIGH


def test_first_matching_rule_wins(make_contact, make_interaction, now):
    # Both rules match; whichever comes first decides
    contact = make_contact(
        stage=Stage.CONTACTED,
        age_days=10,
        interactions=(make_interaction(InteractionType.CALL, InteractionOutcome.NEGOTIATING, 1),),
    )
    catch_all = ActionRule(
        stages=frozenset({Stage.CONTACTED}),
        action=ActionType.VISIT,
        reason="catch all",
        priority=Priority.LOW,
    )

    assert suggest_next_action(contact, now).action is ActionType.MEETING
    assert suggest_next_action(contact, now, rules=(catch_all, *ACTION_RULES)).action is ActionType.VISIT
    assert suggest_next_action(contact, now, rules=(*ACTION_RULES, catch_all)).action is ActionType.MEETING


def test_rule_table_order_is_stable():
    assert len(ACTION_RULES) == 12
    assert ACTION_RULES[0].action is ActionType.CALL
    assert ACTION_RULES[4].stages == frozenset({Stage.PROSPECTING})
    assert ACTION_RULES[8].action is ActionType.SEND_PROPOSAL


def test_recent_activity_without_match_gives_no_suggestion(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.CONTACTED,
        age_days=10,
        interactions=(make_interaction(InteractionType.OTHER, InteractionOutcome.NO_RESPONSE, 1),),
    )

    assert suggest_next_action(contact, now) is None


def test_idle_time_without_interactions_counts_from_creation(make_contact, now):
    contact = make_contact(stage=Stage.PROSPECTING, age_days=5, stale_days=0)

    suggestion = suggest_next_action(contact, now)

    assert suggestion.action is ActionType.FOLLOW_UP
    assert suggestion.reason == "No activity for 5 days, follow up"


def test_closed_contacts_get_no_suggestion(make_contact, now):
    assert suggest_next_action(make_contact(stage=Stage.WON, age_days=30), now) is None
    assert suggest_next_action(make_contact(stage=Stage.LOST, age_days=30), now) is None


def test_referral_rule_applies_to_any_active_stage(make_contact, make_interaction, now):
    contact = make_contact(
        stage=Stage.MEETING_SCHEDULED,
        age_days=10,
        interactions=(
            make_interaction(
                InteractionType.CALL, InteractionOutcome.REFERRED_THIRD_PARTY, 0
            ),
        ),
    )

    suggestion = suggest_next_action(contact, now + timedelta(hours=1))

    assert suggestion.action is ActionType.CALL
    assert suggestion.priority is Priority.MEDIUM
