"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, Response, status
from sqlalchemy import select

from app.core.config import get_settings
from app.core.database import SessionLocal, close_engine
from app.core.metrics import build_metrics_response, instrument_http_request
from app.modules.booking.models import Booking
from app.modules.booking.router import router as booking_router
from app.modules.calendar_sync.router import router as calendar_sync_router
from app.modules.scheduling.models import AvailabilitySlot
from app.modules.scheduling.router import router as scheduling_router
from app.shared.exceptions import register_exception_handlers
from app.shared.utils import utc_now
from app.workers.hold_expiry_worker import run_cycle as expire_stale_holds

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    """Application startup and shutdown hooks."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger.info(
        "Starting %s (hold=%s min, timezone=%s, webhook signature %s)",
        settings.app_name,
        settings.booking_hold_minutes,
        settings.scheduling_timezone,
        "required" if settings.calendar_webhook_signing_key else "not configured",
    )

    if settings.expire_holds_on_startup:
        try:
            expired = await expire_stale_holds(SessionLocal)
        except Exception:
            logger.exception("Failed to expire stale holds during startup")
            raise
        logger.info("Expired %s stale hold(s) during startup", expired)

    yield

    logger.info("Shutting down %s", settings.app_name)
    await close_engine()


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)
app.middleware("http")(instrument_http_request)

register_exception_handlers(app)

app.include_router(scheduling_router, prefix=settings.api_prefix)
app.include_router(booking_router, prefix=settings.api_prefix)
app.include_router(calendar_sync_router, prefix=settings.api_prefix)


@app.get("/health")
async def healthcheck() -> dict[str, object]:
    """Liveness endpoint."""
    return {"success": True, "message": f"{settings.app_name} is running", "timestamp": utc_now().isoformat()}


async def _is_database_ready() -> bool:
    """Return True if DB is reachable and the scheduling tables exist."""
    try:
        async with SessionLocal() as session:
            await session.execute(select(AvailabilitySlot.id).limit(1))
            await session.execute(select(Booking.id).limit(1))
        return True
    except Exception:
        logger.exception("Database readiness check failed")
        return False


@app.get("/ready")
async def readiness_check() -> dict[str, str]:
    """Readiness endpoint with DB and schema check."""
    if not await _is_database_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database is not ready",
        )
    return {
        "status": "ready",
        "database": "ok",
        "timestamp": utc_now().isoformat(),
    }


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint(_: Request) -> Response:
    """Prometheus metrics endpoint."""
    return build_metrics_response()
