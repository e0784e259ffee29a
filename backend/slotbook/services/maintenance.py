"""
Periodic maintenance.

- Marks bookings whose interval has elapsed as completed
- Persists `expired` for subscriptions whose period ended

Runs as an asyncio task in the FastAPI lifespan (when enabled).
Uses synchronous DB access via asyncio.to_thread.
"""

import asyncio
import logging

from ..clock import Clock, get_clock
from ..config import settings
from ..database import SessionLocal
from ..redis_client import redis_client
from .bookings import complete_elapsed_bookings
from .subscriptions import expire_lapsed_subscriptions

logger = logging.getLogger(__name__)


async def maintenance_loop(clock: Clock | None = None) -> None:
    """Run run_maintenance() every maintenance_interval_seconds until cancelled."""
    logger.info("maintenance_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(run_maintenance, clock)
            except asyncio.CancelledError:
                logger.info("maintenance_loop cancelled")
                raise
            except Exception:
                logger.exception("maintenance_loop error")

            await asyncio.sleep(settings.maintenance_interval_seconds)
    except asyncio.CancelledError:
        pass


def run_maintenance(clock: Clock | None = None, session_factory=SessionLocal) -> tuple[int, int]:
    """One maintenance pass (synchronous). Returns (completed, expired)."""
    clock = clock or get_clock()

    db = session_factory()
    try:
        completed = complete_elapsed_bookings(db, clock, redis=redis_client)
        expired = expire_lapsed_subscriptions(db, clock)
    finally:
        db.close()

    return completed, expired
