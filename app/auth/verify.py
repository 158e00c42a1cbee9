"""
verify.py
---------
Purpose:
    JWT verification using Supabase JWKS (ES256), plus the shared-secret
    gate used by the external batch trigger.

Notes:
    - Fetches JWKS from Supabase and caches keys.
    - Provides `auth_dependency` for protected routes.
    - Provides `get_current_profile` to resolve the caller's organization and role.
    - Provides `verify_cron_secret` for /cron endpoints.
"""

import hmac

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient

from app.config import settings
from app.features.pipeline_engine.domain import Profile
from app.features.pipeline_engine.repository import OrganizationRepository
from app.infrastructure.observability.logging import get_logger

SUPABASE_AUDIENCE = "authenticated"

logger = get_logger(__name__)

_jwk_client = PyJWKClient(settings.jwks_url())
_security = HTTPBearer()


def verify_jwt(token: str) -> dict:
    try:
        signing_key = _jwk_client.get_signing_key_from_jwt(token)
        decoded = jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],  # Supabase uses ES256
            audience=SUPABASE_AUDIENCE,
            options={"verify_exp": True},
        )
        return decoded
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid authentication token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def auth_dependency(credentials: HTTPAuthorizationCredentials = Depends(_security)) -> dict:
    token = credentials.credentials
    return verify_jwt(token)


async def get_current_profile(claims: dict = Depends(auth_dependency)) -> Profile:
    """Resolve the authenticated user's profile (organization + role)."""
    user_id = claims.get("sub")
    if not user_id:
        logger.error("No user ID in JWT claims")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token: missing user ID"
        )

    profile = await OrganizationRepository.fetch_profile(user_id)
    if profile is None:
        logger.warning("Profile not found for authenticated user", user_id=user_id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User profile not found")

    return profile


def verify_cron_secret(secret: str | None = Query(default=None)) -> None:
    """
    Gate for the batch trigger.

    Refuses every call while CRON_SECRET is unset, and compares in constant time.
    """
    expected = settings.CRON_SECRET
    if not expected:
        logger.error("Batch trigger called but CRON_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Batch trigger is not configured",
        )

    if not secret or not hmac.compare_digest(secret.encode(), expected.encode()):
        logger.warning("Batch trigger rejected: invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
