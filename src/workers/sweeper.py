"""
Background Maintenance Worker
=============================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 15 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* Every trip write inside a sweep is the same compare-and-set the API uses,
  so a sweep racing a driver's acceptance loses cleanly.

Work per cycle
--------------
1. Cancel SEARCHING trips older than the search timeout (``no_driver_found``).
2. Reconcile driver status hints with driver-bound trips (both directions).
3. Prune registry entries idle longer than the retention window.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from src.config import settings
from src.infrastructure.clock import Clock, utcnow
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.redis_client import get_redis
from src.services.bookings import BookingService
from src.services.dispatch import DispatchService

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass
class SweepResult:
    expired: int = 0
    released: int = 0
    occupied: int = 0
    pruned: int = 0


# ── Public API ────────────────────────────────────────────────────────


async def start_sweeper() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Maintenance worker started (interval=%ds)", settings.sweep_interval_seconds
    )


async def stop_sweeper() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Maintenance worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_sweep_cycle()
        except Exception:
            logger.exception("Unhandled error in maintenance sweep")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.sweep_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_sweep_cycle(
    session_factory=async_session_factory, clock: Clock = utcnow
) -> SweepResult | None:
    """Execute one sweep.  Returns ``None`` when another worker holds the lock."""
    redis = await get_redis()
    lock = DistributedLock(redis, "maintenance_sweep", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker – skipping sweep")
        return None

    try:
        async with session_factory() as session:
            result = SweepResult()
            result.expired = await BookingService(session, clock).expire_stale_searches()

            dispatch = DispatchService(session, clock)
            report = await dispatch.reconcile()
            result.released = len(report.released)
            result.occupied = len(report.occupied)
            result.pruned = await dispatch.prune_idle()

        if result.expired or result.released or result.occupied or result.pruned:
            logger.info(
                "Sweep: expired=%d released=%d occupied=%d pruned=%d",
                result.expired,
                result.released,
                result.occupied,
                result.pruned,
            )
        return result
    finally:
        await lock.release()
