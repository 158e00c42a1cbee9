"""
Pure rule components: risk evaluation and next-action recommendation.
"""

from .next_action import ACTION_RULES, ActionRule, suggest_next_action
from .risk_rules import evaluate_contact, evaluate_contacts

__all__ = [
    "ACTION_RULES",
    "ActionRule",
    "evaluate_contact",
    "evaluate_contacts",
    "suggest_next_action",
]
