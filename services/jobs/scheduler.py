"""
Background scheduler re-running the market scan on a fixed interval.
"""

from __future__ import annotations

import logging
from datetime import timezone
from typing import Dict, Optional

try:
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.interval import IntervalTrigger
except ImportError:  # pragma: no cover
    AsyncIOScheduler = None  # type: ignore
    IntervalTrigger = None  # type: ignore

from scanner.pipeline import ScanOrchestrator
from services.market_hours import market_status

logger = logging.getLogger(__name__)

_SCHEDULER: Optional["AsyncIOScheduler"] = None
_SCAN_JOB_ID = "market_scan"
_MIN_INTERVAL = 60
_MAX_INTERVAL = 3600


def _sanitize_interval(value: int, minimum: int = _MIN_INTERVAL, maximum: int = _MAX_INTERVAL) -> int:
    return max(minimum, min(maximum, int(value)))


async def run_scan_job(orchestrator: ScanOrchestrator, *, market_hours_only: bool = True) -> Dict[str, str]:
    """Run one scheduled cycle and summarise it for the job log."""
    if market_hours_only:
        status = market_status()
        if not status.is_open:
            logger.debug("Skipping scheduled scan: market %s", status.reason)
            return {"status": "skipped", "detail": status.reason}
    result = await orchestrator.run_scan()
    if result is None:
        return {"status": "busy", "detail": "scan already in progress"}
    if not result.ok:
        return {"status": "error", "detail": result.error or ""}
    return {"status": "ok", "detail": f"{len(result.fresh)} new signals"}


def start_scheduler(
    orchestrator: ScanOrchestrator,
    interval: int,
    *,
    market_hours_only: bool = True,
) -> bool:
    """Start the periodic scan job; returns False when disabled or unavailable."""
    global _SCHEDULER
    if interval <= 0:
        logger.info("Periodic scanning disabled (interval=%s).", interval)
        return False
    if AsyncIOScheduler is None:
        logger.warning("APScheduler not installed; background scans disabled.")
        return False
    if _SCHEDULER is not None:
        return True

    seconds = _sanitize_interval(interval)
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    scheduler.add_job(
        run_scan_job,
        trigger=IntervalTrigger(seconds=seconds),
        args=[orchestrator],
        kwargs={"market_hours_only": market_hours_only},
        id=_SCAN_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _SCHEDULER = scheduler
    logger.info("Background scheduler started; scanning every %ds", seconds)
    return True


def shutdown_scheduler() -> None:
    """Stop the scheduler when the application shuts down."""
    global _SCHEDULER
    if _SCHEDULER is not None:
        _SCHEDULER.shutdown(wait=False)
        _SCHEDULER = None
