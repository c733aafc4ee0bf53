"""External calendar reconciliation.

Webhook deliveries are at-least-once and may repeat. Every outcome, including
failures, is reported back as an acknowledgement so the gateway never retries.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, time
from typing import Any
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import get_settings
from app.core.enums import BookingStatusEnum
from app.core.metrics import BOOKING_TRANSITIONS_TOTAL, CALENDAR_WEBHOOK_EVENTS_TOTAL
from app.modules.booking.repository import BookingRepository
from app.modules.calendar_sync.schemas import CalendarEventType, CalendarWindow, SyncOutcome
from app.modules.scheduling.repository import SchedulingRepository
from app.shared.utils import to_wall_clock, utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

QARI_CAMPAIGN_PATTERN = re.compile(r"^qari-(\d+)$", re.IGNORECASE)
EXTERNAL_CANCEL_REASON = "external_calendar"


def extract_qari_id(payload: dict[str, Any]) -> int | None:
    """Find the qari from a ``qari-<id>`` campaign tag or a qari question."""
    tracking = payload.get("tracking") or {}
    if isinstance(tracking, dict):
        campaign = tracking.get("utm_campaign") or tracking.get("campaign")
        if isinstance(campaign, str):
            match = QARI_CAMPAIGN_PATTERN.match(campaign.strip())
            if match:
                return int(match.group(1))

    answers = payload.get("questions_and_answers") or []
    if not isinstance(answers, list):
        return None
    for item in answers:
        if not isinstance(item, dict):
            continue
        if "qari" in str(item.get("question") or "").lower():
            answer = str(item.get("answer") or "").strip()
            return int(answer) if answer.isdigit() else None
    return None


def _parse_instant(raw: object) -> datetime | None:
    if not isinstance(raw, str) or not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None


def extract_window(payload: dict[str, Any], zone: ZoneInfo) -> CalendarWindow | None:
    """Map the scheduled event's instants onto a local wall-clock window."""
    scheduled = payload.get("scheduled_event") or {}
    if not isinstance(scheduled, dict):
        return None
    start = _parse_instant(scheduled.get("start_time"))
    end = _parse_instant(scheduled.get("end_time"))
    if start is None or end is None:
        return None

    local_start = to_wall_clock(start, zone)
    local_end = to_wall_clock(end, zone)
    start_time = time(local_start.hour, local_start.minute)
    end_time = time(local_end.hour, local_end.minute)
    if local_start.date() != local_end.date() or end_time <= start_time:
        return None
    return CalendarWindow(slot_date=local_start.date(), start_time=start_time, end_time=end_time)


def external_ref_for(payload: dict[str, Any], qari_id: int, window: CalendarWindow) -> str:
    """Stable identity of one external invitee, used to drop redeliveries."""
    invitee_uri = payload.get("uri")
    if isinstance(invitee_uri, str) and invitee_uri:
        return invitee_uri
    return f"window:{qari_id}:{window.slot_date.isoformat()}:{window.start_time:%H:%M}:{window.end_time:%H:%M}"


class CalendarSyncService:
    """Apply external calendar events to slots and bookings."""

    def __init__(
        self,
        scheduling_repository: SchedulingRepository,
        booking_repository: BookingRepository,
        zone: ZoneInfo,
    ) -> None:
        self.scheduling_repository = scheduling_repository
        self.booking_repository = booking_repository
        self.zone = zone

    async def handle_event(self, event: str, payload: dict[str, Any]) -> SyncOutcome:
        if event not in (CalendarEventType.INVITEE_CREATED, CalendarEventType.INVITEE_CANCELED):
            logger.info("Ignoring calendar event %s", event)
            return SyncOutcome.IGNORED

        window = extract_window(payload, self.zone)
        if window is None:
            logger.warning("Calendar event %s has no usable scheduled_event window", event)
            return SyncOutcome.INVALID

        qari_id = extract_qari_id(payload)
        if qari_id is None:
            logger.warning("Calendar event %s could not be mapped to a qari", event)
            return SyncOutcome.UNMAPPED

        if event == CalendarEventType.INVITEE_CREATED:
            return await self._apply_created(qari_id, window, external_ref_for(payload, qari_id, window))
        return await self._apply_canceled(qari_id, window)

    async def _apply_created(self, qari_id: int, window: CalendarWindow, external_ref: str) -> SyncOutcome:
        slot = await self.scheduling_repository.ensure_slot(
            qari_id,
            window.slot_date,
            window.start_time,
            window.end_time,
        )

        if await self.booking_repository.get_by_external_ref(external_ref) is not None:
            logger.info("Calendar booking %s already recorded", external_ref)
            return SyncOutcome.DUPLICATE

        now = utc_now()
        used = await self.booking_repository.count_active(
            qari_id,
            window.slot_date,
            window.start_time,
            window.end_time,
            now,
        )
        if used >= slot.capacity:
            logger.warning(
                "Calendar booking %s dropped: qari %s window %s %s is full (%s/%s)",
                external_ref,
                qari_id,
                window.slot_date,
                window.start_time,
                used,
                slot.capacity,
            )
            return SyncOutcome.FULL

        booking = await self.booking_repository.create_external_booking(
            qari_id=qari_id,
            slot_date=window.slot_date,
            start_time=window.start_time,
            end_time=window.end_time,
            external_ref=external_ref,
            confirmed_at=now,
        )
        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.CONFIRMED.value).inc()
        logger.info("Calendar booking %s recorded as %s", external_ref, booking.id)
        return SyncOutcome.CREATED

    async def _apply_canceled(self, qari_id: int, window: CalendarWindow) -> SyncOutcome:
        await self.scheduling_repository.lock_slot(
            qari_id,
            window.slot_date,
            window.start_time,
            window.end_time,
        )
        cancelled = await self.booking_repository.cancel_window(
            qari_id,
            window.slot_date,
            window.start_time,
            window.end_time,
            utc_now(),
            EXTERNAL_CANCEL_REASON,
        )
        if cancelled:
            BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.CANCELLED.value).inc(cancelled)
        logger.info(
            "Calendar cancellation for qari %s %s %s cancelled %s booking(s)",
            qari_id,
            window.slot_date,
            window.start_time,
            cancelled,
        )
        return SyncOutcome.CANCELLED


async def apply_calendar_event(
    session_factory: async_sessionmaker[AsyncSession],
    event: str,
    payload: dict[str, Any],
) -> SyncOutcome:
    """Apply one event in its own transaction; failures are logged, never raised."""
    async with session_factory() as session:
        try:
            service = CalendarSyncService(
                SchedulingRepository(session),
                BookingRepository(session),
                settings.scheduling_zone,
            )
            outcome = await service.handle_event(event, payload)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Calendar webhook processing failed for event %s", event)
            outcome = SyncOutcome.ERROR

    event_label = event if event in set(CalendarEventType) else "other"
    CALENDAR_WEBHOOK_EVENTS_TOTAL.labels(event=event_label, outcome=outcome.value).inc()
    return outcome
