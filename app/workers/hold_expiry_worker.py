"""Executable worker that expires lapsed booking holds."""

from __future__ import annotations

import asyncio
import logging
import os

from app.core.database import SessionLocal
from app.modules.booking.repository import BookingRepository
from app.modules.booking.service import BookingService
from app.modules.scheduling.repository import SchedulingRepository

logger = logging.getLogger(__name__)


async def run_cycle(session_factory=SessionLocal) -> int:
    """Run a single sweep in one DB transaction."""
    async with session_factory() as session:
        try:
            service = BookingService(
                booking_repository=BookingRepository(session),
                scheduling_repository=SchedulingRepository(session),
            )
            expired = await service.expire_holds()
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return expired


async def main() -> None:
    """Run once or keep polling according to worker mode."""
    logging.basicConfig(level=os.getenv("HOLD_EXPIRY_WORKER_LOG_LEVEL", "INFO"))
    mode = os.getenv("HOLD_EXPIRY_WORKER_MODE", "once").strip().lower()
    poll_seconds = int(os.getenv("HOLD_EXPIRY_WORKER_POLL_SECONDS", "60"))

    if mode == "once":
        expired = await run_cycle()
        logger.info("Hold expiry worker expired %s hold(s)", expired)
        return

    while True:
        try:
            expired = await run_cycle()
            logger.info("Hold expiry worker expired %s hold(s)", expired)
        except Exception:
            logger.exception("Hold expiry worker cycle failed")
        await asyncio.sleep(poll_seconds)


if __name__ == "__main__":
    asyncio.run(main())
