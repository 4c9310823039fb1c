"""Background task releasing fee reservations that were never committed."""
import asyncio
import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import async_sessionmaker

from rankmatch.database import AsyncSessionLocal
from rankmatch.services.matchmaking_service import CleanupReport, MatchmakingService
from rankmatch.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

# Track if maintenance task is running to prevent concurrent executions
_maintenance_task_running = False


async def run_reservation_maintenance(
    session_factory: async_sessionmaker | None = None,
    now: datetime | None = None,
) -> CleanupReport | None:
    """Release expired reservations and drop the abandoned matches holding them.

    Returns None when another run is still in progress.
    """
    global _maintenance_task_running

    if _maintenance_task_running:
        logger.debug("Reservation maintenance already running, skipping")
        return None

    _maintenance_task_running = True
    try:
        async with (session_factory or AsyncSessionLocal)() as db:
            report = await MatchmakingService(db).cleanup_expired_reservations(now=now)
            logger.debug(
                f"Reservation maintenance completed: {report.released} released, "
                f"{report.deleted} matches deleted, {report.failed} failed"
            )
            return report
    finally:
        _maintenance_task_running = False


async def schedule_periodic_maintenance(interval_seconds: int | None = None) -> None:
    """Run reservation maintenance forever at a fixed interval.

    Args:
        interval_seconds: Seconds between runs (defaults to the configured sweep interval)
    """
    interval = interval_seconds or settings.reservation_sweep_interval_seconds
    logger.info(f"Starting reservation maintenance scheduler (interval: {interval}s)")

    while True:
        try:
            await asyncio.sleep(interval)
            await run_reservation_maintenance()
        except asyncio.CancelledError:
            logger.info("Reservation maintenance scheduler cancelled")
            break
        except Exception as e:
            logger.error(f"Unexpected error in reservation maintenance: {e}", exc_info=True)
