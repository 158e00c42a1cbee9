"""
Periodic pipeline notify sweep.

Production relies on the external cron hitting /cron/pipeline-notify; this
loop is the in-process alternative for a dedicated worker container. Both may
run at the same time, the dedup window keeps them from double-notifying.
"""

import asyncio

from app.config import settings
from app.features.pipeline_engine.services.orchestrator import run_pipeline_notify_sweep
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

ERROR_BACKOFF_SECONDS = 60


async def run_pipeline_notify_job() -> dict:
    """Run a single sweep and return its summary."""
    result = await run_pipeline_notify_sweep()
    return result.to_dict()


async def start_pipeline_notify_scheduler(max_cycles: int | None = None) -> None:
    """
    Run the sweep every NOTIFY_INTERVAL_MINUTES until cancelled.

    Args:
        max_cycles: stop after this many cycles (None runs forever)
    """
    config = settings.get_notify_config()
    if not config["scheduler_enabled"]:
        logger.info("Pipeline notify scheduler disabled, exiting")
        return

    interval_minutes = config["interval_minutes"]
    logger.info("Starting pipeline notify scheduler", interval_minutes=interval_minutes)

    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        cycles += 1
        try:
            summary = await run_pipeline_notify_job()
            logger.info(
                "Pipeline notify cycle completed",
                total_notifications=summary["total_notifications"],
                tenants_processed=summary["tenants_processed"],
                tenants_failed=summary["tenants_failed"],
            )
            await asyncio.sleep(interval_minutes * 60)

        except asyncio.CancelledError:
            logger.info("Pipeline notify scheduler cancelled")
            raise
        except Exception as e:
            logger.error(
                "Error in pipeline notify scheduler", error=str(e), error_type=type(e).__name__
            )
            await asyncio.sleep(ERROR_BACKOFF_SECONDS)
