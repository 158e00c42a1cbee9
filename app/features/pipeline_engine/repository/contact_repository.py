"""
Repository for contacts and their interactions.

Rows are turned into immutable ContactSnapshot objects here; enum values are
validated at this boundary so the rule layer never sees an unknown stage.
"""

from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from typing import Any

from app.db.helpers import execute_query, fetch_all, fetch_one, with_db_retry
from app.features.pipeline_engine.domain import (
    ACTIVE_STAGES,
    ActionType,
    ClaimResult,
    ContactSnapshot,
    Interaction,
    InteractionOutcome,
    InteractionType,
    Stage,
    Temperature,
)
from app.infrastructure.observability.logging import get_logger
from app.utils.dates import as_due_date, ensure_aware

logger = get_logger(__name__)

CONTACT_COLUMNS = """
    id::text AS id, name, company, status, temperature, estimated_value,
    assigned_to_user_id::text AS assigned_to_user_id,
    next_action_type, next_action_date, created_at, updated_at
"""


def _row_to_interaction(row: dict[str, Any]) -> Interaction:
    return Interaction(
        type=InteractionType(row["type"]),
        outcome=InteractionOutcome(row["outcome"]),
        happened_at=ensure_aware(row["happened_at"]),
    )


def row_to_snapshot(
    row: dict[str, Any], interactions: Sequence[Interaction] = ()
) -> ContactSnapshot:
    """Build a snapshot; raises ValueError on an unknown enum value."""
    temperature = row.get("temperature")
    value = row.get("estimated_value")
    action_type = row.get("next_action_type")

    return ContactSnapshot(
        id=row["id"],
        name=row.get("name") or "",
        stage=Stage(row["status"]),
        created_at=ensure_aware(row["created_at"]),
        updated_at=ensure_aware(row["updated_at"]),
        temperature=Temperature(temperature) if temperature else None,
        estimated_value=float(value) if value is not None else None,
        owner_id=row.get("assigned_to_user_id"),
        next_action_type=ActionType(action_type) if action_type else None,
        next_action_date=as_due_date(row.get("next_action_date")),
        company=row.get("company"),
        interactions=tuple(interactions),
    )


def rows_to_snapshots(
    rows: Sequence[dict[str, Any]], interactions: dict[str, list[Interaction]]
) -> tuple[list[ContactSnapshot], int]:
    """Convert rows, skipping (and logging) any that fail validation."""
    contacts = []
    skipped = 0
    for row in rows:
        try:
            contacts.append(row_to_snapshot(row, interactions.get(row["id"], [])))
        except (KeyError, TypeError, ValueError) as e:
            skipped += 1
            logger.warning("Skipping unreadable contact row", contact_id=row.get("id"), error=str(e))
    return contacts, skipped


class ContactRepository:
    """Persistence helpers for contacts."""

    @classmethod
    @with_db_retry(max_retries=2)
    async def fetch_active_rows(cls, organization_id: str) -> list[dict[str, Any]]:
        query = f"""
            SELECT {CONTACT_COLUMNS}
            FROM contacts
            WHERE organization_id = %s
              AND status = ANY(%s)
            ORDER BY updated_at ASC
        """
        return await fetch_all(
            query, (organization_id, [stage.value for stage in ACTIVE_STAGES])
        )

    @classmethod
    async def fetch_recent_interactions(
        cls, organization_id: str, contact_ids: Sequence[str], per_contact: int = 1
    ) -> dict[str, list[Interaction]]:
        """Most recent interactions per contact, newest first."""
        if not contact_ids:
            return {}

        query = """
            SELECT contact_id, type, outcome, happened_at
            FROM (
                SELECT
                    contact_id::text AS contact_id, type, outcome, happened_at,
                    ROW_NUMBER() OVER (
                        PARTITION BY contact_id ORDER BY happened_at DESC
                    ) AS position
                FROM interactions
                WHERE organization_id = %s
                  AND contact_id::text = ANY(%s)
            ) ranked
            WHERE position <= %s
            ORDER BY contact_id, happened_at DESC
        """
        rows = await fetch_all(query, (organization_id, list(contact_ids), per_contact))

        grouped: dict[str, list[Interaction]] = defaultdict(list)
        for row in rows:
            try:
                grouped[row["contact_id"]].append(_row_to_interaction(row))
            except ValueError as e:
                logger.warning(
                    "Skipping interaction with unknown type or outcome",
                    contact_id=row["contact_id"],
                    error=str(e),
                )
        return grouped

    @classmethod
    async def fetch_snapshot(
        cls, organization_id: str, contact_id: str, interaction_limit: int = 10
    ) -> ContactSnapshot | None:
        query = f"""
            SELECT {CONTACT_COLUMNS}
            FROM contacts
            WHERE organization_id = %s
              AND id = %s
        """
        row = await fetch_one(query, (organization_id, contact_id))
        if not row:
            return None
        if interaction_limit <= 0:
            return row_to_snapshot(row)

        interactions = await cls.fetch_recent_interactions(
            organization_id, [row["id"]], per_contact=interaction_limit
        )
        return row_to_snapshot(row, interactions.get(row["id"], []))

    @classmethod
    async def claim_owner(
        cls, organization_id: str, contact_id: str, user_id: str
    ) -> ClaimResult | None:
        """
        Compare-and-swap on the owner field.

        Sets the owner only while it is still empty. The loser of a race gets
        claimed=False and the winner's id. Returns None if the contact does
        not exist.
        """
        query = """
            UPDATE contacts
            SET assigned_to_user_id = %s,
                updated_at = NOW()
            WHERE id = %s
              AND organization_id = %s
              AND assigned_to_user_id IS NULL
            RETURNING assigned_to_user_id::text AS assigned_to_user_id
        """
        row = await fetch_one(query, (user_id, contact_id, organization_id))
        if row:
            logger.info("Contact claimed", contact_id=contact_id, user_id=user_id)
            return ClaimResult(claimed=True, owner_id=row["assigned_to_user_id"])

        current = await fetch_one(
            """
            SELECT assigned_to_user_id::text AS assigned_to_user_id
            FROM contacts
            WHERE id = %s
              AND organization_id = %s
            """,
            (contact_id, organization_id),
        )
        if not current:
            return None

        logger.info(
            "Contact claim lost",
            contact_id=contact_id,
            user_id=user_id,
            owner_id=current["assigned_to_user_id"],
        )
        return ClaimResult(claimed=False, owner_id=current["assigned_to_user_id"])

    @classmethod
    async def update_next_action(
        cls,
        organization_id: str,
        contact_id: str,
        action_type: ActionType,
        due_date: date,
    ) -> bool:
        query = """
            UPDATE contacts
            SET next_action_type = %s,
                next_action_date = %s,
                updated_at = NOW()
            WHERE id = %s
              AND organization_id = %s
        """
        updated = await execute_query(
            query, (action_type.value, due_date, contact_id, organization_id)
        )
        return updated > 0

    @classmethod
    async def fetch_status_counts(cls, organization_id: str) -> dict[str, int]:
        query = """
            SELECT status, COUNT(*) AS count
            FROM contacts
            WHERE organization_id = %s
            GROUP BY status
        """
        rows = await fetch_all(query, (organization_id,))
        return {row["status"]: int(row["count"]) for row in rows}
