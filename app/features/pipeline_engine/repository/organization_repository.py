"""
Repository for organizations and member profiles.
"""

from typing import Any

from app.db.helpers import fetch_all, fetch_one, with_db_retry
from app.features.pipeline_engine.domain import Profile


def _row_to_profile(row: dict[str, Any]) -> Profile:
    return Profile(
        user_id=row["user_id"],
        organization_id=row["organization_id"],
        name=row.get("name") or "",
        role=row.get("role") or "member",
    )


class OrganizationRepository:
    """Read helpers for tenants and their members."""

    @classmethod
    @with_db_retry(max_retries=2)
    async def list_organization_ids(cls) -> list[str]:
        rows = await fetch_all("SELECT id::text AS id FROM organizations ORDER BY id")
        return [row["id"] for row in rows]

    @classmethod
    async def fetch_profiles(cls, organization_id: str) -> list[Profile]:
        query = """
            SELECT user_id::text AS user_id, organization_id::text AS organization_id, name, role
            FROM profiles
            WHERE organization_id = %s
        """
        rows = await fetch_all(query, (organization_id,))
        return [_row_to_profile(row) for row in rows]

    @classmethod
    async def fetch_profile(cls, user_id: str) -> Profile | None:
        query = """
            SELECT user_id::text AS user_id, organization_id::text AS organization_id, name, role
            FROM profiles
            WHERE user_id = %s
        """
        row = await fetch_one(query, (user_id,))
        return _row_to_profile(row) if row else None

    @classmethod
    async def fetch_pipeline_settings(cls, organization_id: str) -> dict[str, Any]:
        query = """
            SELECT pipeline_settings
            FROM organizations
            WHERE id = %s
        """
        row = await fetch_one(query, (organization_id,))
        if not row:
            return {}
        return row.get("pipeline_settings") or {}
