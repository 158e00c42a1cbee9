"""
On-demand contact operations: analysis, next-action write-back, claiming
and pipeline health.
"""

from collections import defaultdict
from datetime import date, datetime

from app.features.pipeline_engine.domain import (
    ActionType,
    ClaimResult,
    ContactNotFoundError,
    InvalidSuggestionError,
    RiskRule,
    Severity,
    Stage,
)
from app.features.pipeline_engine.repository import ContactRepository, rows_to_snapshots
from app.features.pipeline_engine.rules import evaluate_contact, evaluate_contacts, suggest_next_action
from app.features.pipeline_engine.services.tips import TipService, tip_service
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import business_date, days_between, ensure_aware, utc_now

logger = get_logger(__name__)

ANALYSIS_INTERACTION_LIMIT = 10


class ContactService:
    """Per-contact engine entry points used by the API."""

    def __init__(self, tips: TipService | None = None):
        self.tips = tips or tip_service

    async def analyze_contact(
        self,
        organization_id: str,
        contact_id: str,
        *,
        include_tip: bool = False,
        now: datetime | None = None,
    ) -> dict:
        now = ensure_aware(now or utc_now())
        contact = await ContactRepository.fetch_snapshot(
            organization_id, contact_id, interaction_limit=ANALYSIS_INTERACTION_LIMIT
        )
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found", operation="analyze")

        risks = evaluate_contact(contact, now)
        next_action = suggest_next_action(contact, now)
        last = contact.last_interaction

        analysis = {
            "risks": [alert.to_dict() for alert in risks],
            "next_action": next_action.to_dict() if next_action else None,
            "contact": {
                "id": contact.id,
                "name": contact.name,
                "status": contact.stage.value,
                "days_in_stage": days_between(contact.updated_at, now),
                "interaction_count": len(contact.interactions),
                "last_interaction": last.to_dict() if last else None,
            },
            "tip": None,
        }

        if include_tip:
            analysis["tip"] = await self.tips.contact_tip(contact, risks, next_action)

        logger.info(
            "Contact analyzed",
            contact_id=contact.id,
            risk_count=len(risks),
            next_action=next_action.action.value if next_action else None,
        )
        return analysis

    async def apply_suggestion(
        self,
        organization_id: str,
        contact_id: str,
        action: ActionType,
        due_date: date | None = None,
        now: datetime | None = None,
    ) -> dict:
        """
        Write an accepted suggestion back to the contact's next-action fields.

        Raises:
            ContactNotFoundError: unknown contact
            InvalidSuggestionError: contact is closed or the due date is in the past
        """
        today = business_date(ensure_aware(now or utc_now()))
        due_date = due_date or today

        contact = await ContactRepository.fetch_snapshot(
            organization_id, contact_id, interaction_limit=0
        )
        if contact is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found", operation="apply")
        if not contact.is_active:
            raise InvalidSuggestionError(
                f"Contact is {contact.stage.value}; next actions apply to active stages only",
                operation="apply",
                recoverable=False,
            )
        if due_date < today:
            raise InvalidSuggestionError(
                "Due date cannot be in the past", operation="apply", recoverable=False
            )

        updated = await ContactRepository.update_next_action(
            organization_id, contact_id, action, due_date
        )
        if not updated:
            raise ContactNotFoundError(f"Contact {contact_id} not found", operation="apply")

        logger.info(
            "Next action applied",
            contact_id=contact_id,
            action=action.value,
            due_date=due_date.isoformat(),
        )
        return {
            "contact_id": contact_id,
            "next_action_type": action.value,
            "next_action_date": due_date.isoformat(),
        }

    async def claim_contact(self, organization_id: str, contact_id: str, user_id: str) -> ClaimResult:
        result = await ContactRepository.claim_owner(organization_id, contact_id, user_id)
        if result is None:
            raise ContactNotFoundError(f"Contact {contact_id} not found", operation="claim")
        return result

    async def pipeline_health(self, organization_id: str, now: datetime | None = None) -> dict:
        now = ensure_aware(now or utc_now())

        rows = await ContactRepository.fetch_active_rows(organization_id)
        interactions = await ContactRepository.fetch_recent_interactions(
            organization_id,
            [row["id"] for row in rows],
            per_contact=ANALYSIS_INTERACTION_LIMIT,
        )
        contacts, _ = rows_to_snapshots(rows, interactions)
        alerts = evaluate_contacts(contacts, now)

        by_stage: dict[str, int] = defaultdict(int)
        days_sum: dict[str, int] = defaultdict(int)
        no_owner = 0
        no_next_action = 0
        for contact in contacts:
            by_stage[contact.stage.value] += 1
            days_sum[contact.stage.value] += days_between(contact.updated_at, now)
            if not contact.owner_id:
                no_owner += 1
            if not contact.next_action_type and not contact.next_action_date:
                no_next_action += 1

        avg_days_in_stage = {
            stage: round(total / by_stage[stage]) for stage, total in days_sum.items()
        }

        status_counts = await ContactRepository.fetch_status_counts(organization_id)
        total_all = sum(status_counts.values())
        conversion_rate = (
            round(status_counts.get(Stage.WON.value, 0) / total_all * 100) if total_all else 0
        )

        at_risk = {
            alert.contact_id
            for alert in alerts
            if alert.level in (Severity.CRITICAL, Severity.HIGH)
        }
        stale = {alert.contact_id for alert in alerts if alert.rule is RiskRule.STALE_DEAL}

        health = {
            "at_risk": len(at_risk),
            "stale": len(stale),
            "no_owner": no_owner,
            "no_next_action": no_next_action,
            "total_active": len(contacts),
            "total_value": sum(contact.estimated_value or 0 for contact in contacts),
            "by_stage": dict(by_stage),
            "avg_days_in_stage": avg_days_in_stage,
            "conversion_rate": conversion_rate,
        }
        health["coaching_tips"] = await self.tips.coaching_tips(health)
        return health


contact_service = ContactService()
