"""Periodic purge of stale lockout counters and expired reset records."""

import asyncio
import logging
from typing import Tuple

from sqlalchemy.exc import SQLAlchemyError

from roadbook_auth.core.errors import StoreUnavailable
from roadbook_auth.core.login_attempts import InMemoryLoginAttemptTracker
from roadbook_auth.services.password_reset_service import PasswordResetService

logger = logging.getLogger(__name__)


async def purge_stale_records(
    tracker: InMemoryLoginAttemptTracker,
    reset_service: PasswordResetService,
) -> Tuple[int, int]:
    """One maintenance pass. Returns ``(counters_dropped, reset_records_deleted)``."""
    counters = tracker.cleanup_all()
    resets = await reset_service.cleanup_expired()
    if counters:
        logger.info(f"Dropped {counters} expired login-attempt counters")
    return counters, resets


async def maintenance_loop(
    tracker: InMemoryLoginAttemptTracker,
    reset_service: PasswordResetService,
    interval_seconds: float,
) -> None:
    """Run ``purge_stale_records`` every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await purge_stale_records(tracker, reset_service)
        except (StoreUnavailable, SQLAlchemyError) as e:
            # Next pass retries
            logger.error(f"Maintenance pass failed: {type(e).__name__}")
