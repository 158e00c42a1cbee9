"""
Risk rule evaluator.

Seven deterministic rules over a contact snapshot. Evaluation is a two-stage
pipeline: the independent rules (stale deal, no next action, task overdue,
no owner, never contacted, cooling down) run first over every contact, then
the compound high-value rule reads their output. The result is ordered by
severity, CRITICAL first; equal severities keep evaluation order.
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from app.features.pipeline_engine.domain import (
    STAGE_LABELS,
    STAGE_SLA,
    ContactSnapshot,
    InteractionOutcome,
    RiskAlert,
    RiskRule,
    Severity,
    Temperature,
)
from app.utils.dates import business_date, days_between, utc_now

HIGH_VALUE_THRESHOLD = 10_000
NEVER_CONTACTED_AFTER_DAYS = 3
COOLING_DOWN_AFTER_DAYS = 3
OVERDUE_CRITICAL_DAYS = 3


def _money(value: float) -> str:
    return f"{value:,.0f}"


def check_stale_deal(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if not contact.is_active:
        return None

    sla = STAGE_SLA.get(contact.stage)
    if sla is None:
        return None

    days_stale = days_between(contact.updated_at, now)
    stage_label = STAGE_LABELS[contact.stage]

    if days_stale >= sla.critical_days:
        return RiskAlert(
            rule=RiskRule.STALE_DEAL,
            level=Severity.CRITICAL,
            title="Stalled deal",
            description=(
                f"{contact.name} has not been updated for {days_stale} days "
                f"in stage {stage_label}"
            ),
            contact_id=contact.id,
            contact_name=contact.name,
            days_stale=days_stale,
        )

    if days_stale >= sla.warn_days:
        return RiskAlert(
            rule=RiskRule.STALE_DEAL,
            level=Severity.HIGH,
            title="Deal cooling off",
            description=f"{contact.name} has not been updated for {days_stale} days",
            contact_id=contact.id,
            contact_name=contact.name,
            days_stale=days_stale,
        )

    return None


def check_no_next_action(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if not contact.is_active:
        return None
    if contact.next_action_type or contact.next_action_date:
        return None

    return RiskAlert(
        rule=RiskRule.NO_NEXT_ACTION,
        level=Severity.MEDIUM,
        title="No next action",
        description=f"{contact.name} has no next action defined",
        contact_id=contact.id,
        contact_name=contact.name,
    )


def check_task_overdue(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if contact.next_action_date is None:
        return None

    # Calendar-day comparison; a task due today is not overdue
    diff_days = (business_date(now) - contact.next_action_date).days
    if diff_days <= 0:
        return None

    level = Severity.CRITICAL if diff_days >= OVERDUE_CRITICAL_DAYS else Severity.HIGH
    action = contact.next_action_type.value if contact.next_action_type else "pending"

    return RiskAlert(
        rule=RiskRule.TASK_OVERDUE,
        level=level,
        title="Overdue task",
        description=f'{contact.name} has action "{action}" overdue by {diff_days} day(s)',
        contact_id=contact.id,
        contact_name=contact.name,
        days_stale=diff_days,
    )


def check_no_owner(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if not contact.is_active:
        return None
    if contact.owner_id:
        return None

    return RiskAlert(
        rule=RiskRule.NO_OWNER,
        level=Severity.MEDIUM,
        title="No owner",
        description=f"{contact.name} has no salesperson assigned",
        contact_id=contact.id,
        contact_name=contact.name,
    )


def check_never_contacted(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if not contact.is_active:
        return None
    if contact.interactions:
        return None

    days_since_creation = days_between(contact.created_at, now)
    if days_since_creation <= NEVER_CONTACTED_AFTER_DAYS:
        return None

    return RiskAlert(
        rule=RiskRule.NEVER_CONTACTED,
        level=Severity.HIGH,
        title="Never contacted",
        description=(
            f"{contact.name} was created {days_since_creation} days ago "
            "and has never been contacted"
        ),
        contact_id=contact.id,
        contact_name=contact.name,
        days_stale=days_since_creation,
    )


def check_cooling_down(contact: ContactSnapshot, now: datetime) -> RiskAlert | None:
    if contact.temperature is not Temperature.HOT:
        return None
    if not contact.is_active:
        return None

    last = contact.last_interaction
    if last is None or last.outcome is not InteractionOutcome.NO_RESPONSE:
        return None

    days_since_last = days_between(last.happened_at, now)
    if days_since_last <= COOLING_DOWN_AFTER_DAYS:
        return None

    return RiskAlert(
        rule=RiskRule.COOLING_DOWN,
        level=Severity.HIGH,
        title="Contact cooling down",
        description=(
            f"{contact.name} is HOT but the last interaction got no response "
            f"{days_since_last} days ago"
        ),
        contact_id=contact.id,
        contact_name=contact.name,
        days_stale=days_since_last,
    )


def check_high_value_at_risk(
    contact: ContactSnapshot, existing_alerts: Sequence[RiskAlert]
) -> RiskAlert | None:
    """Compound rule: reads the first-pass alerts, not the raw snapshot."""
    if not contact.estimated_value or contact.estimated_value < HIGH_VALUE_THRESHOLD:
        return None

    has_critical = any(
        alert.contact_id == contact.id and alert.level is Severity.CRITICAL
        for alert in existing_alerts
    )
    if not has_critical:
        return None

    return RiskAlert(
        rule=RiskRule.HIGH_VALUE_AT_RISK,
        level=Severity.CRITICAL,
        title="High value at risk",
        description=(
            f"{contact.name} is worth {_money(contact.estimated_value)} "
            "and is at critical risk"
        ),
        contact_id=contact.id,
        contact_name=contact.name,
        value=contact.estimated_value,
    )


IndependentRule = Callable[[ContactSnapshot, datetime], RiskAlert | None]

INDEPENDENT_RULES: tuple[IndependentRule, ...] = (
    check_stale_deal,
    check_no_next_action,
    check_task_overdue,
    check_no_owner,
    check_never_contacted,
    check_cooling_down,
)


def sort_by_severity(alerts: Iterable[RiskAlert]) -> list[RiskAlert]:
    return sorted(alerts, key=lambda alert: alert.level.rank)


def evaluate_contacts(
    contacts: Iterable[ContactSnapshot], now: datetime | None = None
) -> list[RiskAlert]:
    """Run every rule over every contact and return alerts, most severe first."""
    now = now or utc_now()
    contacts = list(contacts)
    alerts: list[RiskAlert] = []

    for contact in contacts:
        for rule in INDEPENDENT_RULES:
            alert = rule(contact, now)
            if alert is not None:
                alerts.append(alert)

    first_pass = tuple(alerts)
    for contact in contacts:
        alert = check_high_value_at_risk(contact, first_pass)
        if alert is not None:
            alerts.append(alert)

    return sort_by_severity(alerts)


def evaluate_contact(contact: ContactSnapshot, now: datetime | None = None) -> list[RiskAlert]:
    return evaluate_contacts([contact], now)
