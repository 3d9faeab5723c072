"""
Stock Analysis — Expiry Sweeper
─────────────────────────────────
Reads already ignore expired cache entries and delete the ones they trip
over. This job removes the rest on a fixed interval so the index and the
"expired" health count stay small.
"""

import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from analysis_engine.cache.analysis_cache import AnalysisCache

log = logging.getLogger("fintrack.sweeper")

JOB_ID = "sweep_expired_cache"


async def sweep_expired(cache: AnalysisCache) -> int:
    removed = await cache.sweep_expired()
    if removed:
        log.info(f"Sweep removed {removed} expired cache entries")
    else:
        log.debug("Sweep: nothing expired")
    return removed


def start_sweeper(cache: AnalysisCache, interval_minutes: int) -> Optional[AsyncIOScheduler]:
    """Start the periodic sweep. Returns None when there is nothing to sweep."""
    if not cache.enabled or interval_minutes <= 0:
        log.info("Expiry sweeper disabled")
        return None
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        sweep_expired, "interval",
        minutes=interval_minutes,
        args=[cache],
        id=JOB_ID,
        coalesce=True,
        max_instances=1,
    )
    scheduler.start()
    log.info(f"Expiry sweeper running every {interval_minutes} min")
    return scheduler
