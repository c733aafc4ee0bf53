"""External calendar webhook router."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.database import get_session_factory
from app.core.metrics import CALENDAR_WEBHOOK_EVENTS_TOTAL
from app.modules.calendar_sync.schemas import SyncOutcome
from app.modules.calendar_sync.service import apply_calendar_event
from app.modules.calendar_sync.signature import SIGNATURE_HEADER, verify_signature
from app.shared.envelope import Envelope, ok

settings = get_settings()
router = APIRouter(tags=["calendar-sync"])
logger = logging.getLogger(__name__)


@router.post("/webhook", response_model=Envelope[None])
async def calendar_webhook(
    request: Request,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> Envelope[None]:
    """Ingest invitee.created / invitee.canceled events.

    Only an unverifiable sender is rejected; everything else is acknowledged.
    """
    raw_body = await request.body()
    signing_key = settings.calendar_webhook_signing_key
    if signing_key is not None:
        verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER), signing_key)

    try:
        body = json.loads(raw_body or b"null")
    except ValueError:
        body = None

    event = body.get("event") if isinstance(body, dict) else None
    payload = body.get("payload") if isinstance(body, dict) else None
    if not isinstance(event, str) or not isinstance(payload, dict):
        logger.warning("Calendar webhook body is missing event or payload")
        CALENDAR_WEBHOOK_EVENTS_TOTAL.labels(event="other", outcome=SyncOutcome.INVALID.value).inc()
        return ok()

    await apply_calendar_event(session_factory, event, payload)
    return ok()
