"""APScheduler job for the periodic price tick."""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopwatch.core.config import Settings, settings as default_settings
from shopwatch.services.price_monitor import run_price_tick

logger = logging.getLogger(__name__)


async def price_tick_job(session_factory: async_sessionmaker[AsyncSession]) -> None:
    async with session_factory() as db:
        try:
            await run_price_tick(db)
        except Exception:
            # The tick already rolled back; the next interval tries again.
            logger.exception("Scheduled price tick failed")


def setup_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    config: Settings = default_settings,
) -> Optional[AsyncIOScheduler]:
    """
    Returns a configured (not yet started) scheduler, or None when
    PRICE_TICK_INTERVAL_SECONDS is 0 and ticks only run on demand.
    """
    interval = int(config.PRICE_TICK_INTERVAL_SECONDS or 0)
    if interval <= 0:
        logger.info("Scheduler disabled: price ticks run on demand only")
        return None

    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        price_tick_job,
        IntervalTrigger(seconds=interval),
        args=[session_factory],
        id="price_tick",
        name="Simulated price drift + alerts",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Scheduler configured: price tick every %d seconds", interval)
    return scheduler
