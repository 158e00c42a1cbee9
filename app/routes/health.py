# app/routes/health.py
"""
Health check endpoints: liveness, readiness (database pool, tip generator,
configuration) and pool statistics.
"""

import time

from fastapi import APIRouter

from app.config import settings
from app.db.pool import db_health_check, db_pool
from app.services.openai_service import openai_service_health

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {"status": "ok", "service": "pipeline-engine"}


@router.get("/readyz")
async def readyz():
    """
    Readiness check across the database pool, the tip generator and config.

    The tip generator is optional: without an API key tips fall back to
    deterministic text, so it never fails readiness.
    """
    checks = {}
    overall_ok = True

    # 1) Database pool
    t0 = time.time()
    try:
        db_health = await db_health_check()
        is_healthy = db_health.get("healthy", False)

        checks["database"] = {
            "ok": is_healthy,
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }

        if "pool_stats" in db_health:
            pool_stats = db_health["pool_stats"]
            checks["database"].update(
                {
                    "pool_size": pool_stats.get("pool_size", 0),
                    "pool_available": pool_stats.get("pool_available", 0),
                    "pool_utilization_percent": pool_stats.get("pool_utilization_percent", 0),
                    "connection_time_ms": db_health.get("connection_time_ms", 0),
                }
            )

        if not is_healthy:
            checks["database"]["error"] = db_health.get("error", "Database unhealthy")
            if "error_type" in db_health:
                checks["database"]["error_type"] = db_health["error_type"]

        overall_ok = overall_ok and is_healthy

    except Exception as e:
        checks["database"] = {
            "ok": False,
            "error": f"{type(e).__name__}: {e}",
            "latency_ms": round((time.time() - t0) * 1000, 1),
        }
        overall_ok = False

    # 2) Tip generator
    tips_health = await openai_service_health()
    checks["tip_generator"] = {
        "ok": True,
        "enabled": tips_health.get("enabled", False),
        "model": tips_health.get("configuration", {}).get("model"),
    }

    # 3) Configuration
    config_issues = []
    if not settings.DATABASE_URL:
        config_issues.append("DATABASE_URL not set")
    if not settings.CRON_SECRET:
        config_issues.append("CRON_SECRET not set, batch trigger disabled")

    config_ok = bool(settings.DATABASE_URL)
    checks["configuration"] = {
        "ok": config_ok,
        "issues": config_issues if config_issues else None,
        "environment": settings.environment,
        "business_timezone": settings.BUSINESS_TIMEZONE,
    }
    overall_ok = overall_ok and config_ok

    return {"overall_ok": overall_ok, "checks": checks, "timestamp": time.time()}


@router.get("/health/database")
async def database_health():
    """Detailed database pool health information."""
    return await db_health_check()


@router.get("/health/pool-stats")
async def pool_stats():
    """Get real-time pool statistics."""
    if not db_pool._initialized or not db_pool.pool:
        return {"error": "Pool not initialized", "pool_health": "not_initialized"}

    stats = db_pool.pool.get_stats()
    pool_size = stats.get("pool_size", 0)
    pool_available = stats.get("pool_available", 0)
    utilization = ((pool_size - pool_available) / pool_size * 100) if pool_size > 0 else 0

    return {
        "pool_health": "healthy",
        "pool_size": pool_size,
        "available_connections": pool_available,
        "active_connections": pool_size - pool_available,
        "utilization_percent": round(utilization, 1),
        "requests_waiting": stats.get("requests_waiting", 0),
        "total_requests": stats.get("requests_num", 0),
        "request_errors": stats.get("requests_errors", 0),
        "connections_created": stats.get("connections_num", 0),
    }
