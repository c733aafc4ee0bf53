"""Scheduling business logic layer (availability manager)."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import RoleEnum
from app.modules.booking.repository import BookingRepository
from app.modules.identity.schemas import Identity
from app.modules.scheduling.models import AvailabilitySlot
from app.modules.scheduling.repository import SchedulingRepository, SlotWindow
from app.modules.scheduling.schemas import (
    BulkDeleteRequest,
    BulkDeleteResult,
    PublishSlotsResult,
    SkippedSlot,
    SlotInput,
    SlotRead,
)
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)

SLOT_DELETED_REASON = "slot_deleted"
# Upper bound of the INTEGER capacity column.
MAX_SLOT_CAPACITY = 2**31 - 1


def normalize_clock_time(raw: object) -> time:
    """Parse ``H``, ``H:M``, ``HH:MM`` or ``HH:MM:SS`` into HH:MM:00.

    Non-numeric hour or minute parts count as zero. Out-of-range values
    raise ``ValueError``.
    """
    parts = str(raw).strip().split(":")

    def _part(index: int) -> int:
        if index >= len(parts):
            return 0
        try:
            return int(parts[index])
        except ValueError:
            return 0

    return time(hour=_part(0), minute=_part(1))


def default_end_time(start_time: time, duration_minutes: int) -> time:
    """Return start + duration, refusing windows that wrap past midnight."""
    start_minutes = start_time.hour * 60 + start_time.minute
    end_minutes = start_minutes + duration_minutes
    if end_minutes >= 24 * 60:
        raise ValueError("default end_time would wrap past midnight")
    return time(hour=end_minutes // 60, minute=end_minutes % 60)


def normalize_capacity(raw: object) -> int:
    """Capacity defaults to 1 when absent, malformed or non-positive.

    Raises ``ValueError`` when the value does not fit the capacity column.
    """
    try:
        value = int(float(raw))  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return 1
    if value > MAX_SLOT_CAPACITY:
        raise ValueError(f"capacity must not exceed {MAX_SLOT_CAPACITY}")
    return value if value > 0 else 1


def month_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationException("month must be between 1 and 12")
    if not 1 <= year <= 9999:
        raise ValidationException("year is out of range")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class SchedulingService:
    """Availability domain service."""

    def __init__(
        self,
        repository: SchedulingRepository,
        booking_repository: BookingRepository,
    ) -> None:
        self.repository = repository
        self.booking_repository = booking_repository

    @staticmethod
    def _ensure_qari(actor: Identity) -> None:
        if actor.role != RoleEnum.QARI:
            raise ForbiddenException("Only qaris can manage availability")

    def _parse_entry(self, entry: SlotInput) -> tuple[date, time, time, int]:
        if not entry.slot_date or not entry.start_time:
            raise ValueError("slot_date and start_time are required")

        try:
            slot_date = date.fromisoformat(entry.slot_date.strip())
        except ValueError as exc:
            raise ValueError(f"invalid slot_date: {entry.slot_date}") from exc

        try:
            start_time = normalize_clock_time(entry.start_time)
        except ValueError as exc:
            raise ValueError(f"invalid start_time: {entry.start_time}") from exc

        if entry.end_time:
            try:
                end_time = normalize_clock_time(entry.end_time)
            except ValueError as exc:
                raise ValueError(f"invalid end_time: {entry.end_time}") from exc
        else:
            end_time = default_end_time(start_time, settings.default_slot_duration_minutes)

        if end_time <= start_time:
            raise ValueError("end_time must be after start_time")

        return slot_date, start_time, end_time, normalize_capacity(entry.capacity)

    async def publish_slots(self, entries: list[SlotInput], actor: Identity) -> PublishSlotsResult:
        """Upsert windows for the calling qari, skipping malformed entries."""
        self._ensure_qari(actor)
        if not entries:
            raise ValidationException("slots required")

        now = utc_now()
        saved: dict[UUID, AvailabilitySlot] = {}
        skipped: list[SkippedSlot] = []
        parsed: list[tuple[date, time, time, int]] = []

        for index, entry in enumerate(entries):
            try:
                parsed.append(self._parse_entry(entry))
            except ValueError as exc:
                skipped.append(SkippedSlot(index=index, reason=str(exc)))

        # Window-key order keeps row lock acquisition consistent across
        # concurrent publishes and deletes. The sort is stable, so a repeated
        # window still ends with its last capacity.
        parsed.sort(key=lambda item: item[:3])

        for slot_date, start_time, end_time, capacity in parsed:
            slot = await self.repository.upsert_slot(actor.id, slot_date, start_time, end_time, capacity)
            used = await self.booking_repository.count_active(
                actor.id,
                slot_date,
                start_time,
                end_time,
                now,
            )
            if used > capacity:
                raise ConflictException(
                    f"Capacity {capacity} for {slot_date} {start_time:%H:%M} is below "
                    f"{used} active booking(s)",
                )
            saved[slot.id] = slot

        logger.info(
            "Qari %s published %s slot(s), skipped %s",
            actor.id,
            len(saved),
            len(skipped),
        )
        return PublishSlotsResult(
            slots=[SlotRead.model_validate(slot) for slot in saved.values()],
            skipped=skipped,
        )

    async def list_month(self, qari_id: int | None, year: int, month: int) -> list[AvailabilitySlot]:
        """List windows within a calendar month, optionally for one qari."""
        first_day, last_day = month_bounds(year, month)
        return await self.repository.list_slots_between(qari_id, first_day, last_day)

    async def delete_slot(self, slot_id: UUID, actor: Identity) -> int:
        """Delete one owned window and cancel its active bookings."""
        self._ensure_qari(actor)
        slot = await self.repository.get_owned_slot(slot_id, actor.id)
        if slot is None:
            raise NotFoundException("Slot not found")

        window: SlotWindow = (slot.slot_date, slot.start_time, slot.end_time)
        await self.repository.delete_slot(slot)
        cancelled = await self._cancel_bookings_for([window], actor.id)
        logger.info("Qari %s deleted slot %s, cancelled %s booking(s)", actor.id, slot_id, cancelled)
        return cancelled

    async def delete_bulk(self, selector: BulkDeleteRequest, actor: Identity) -> BulkDeleteResult:
        """Delete owned windows by explicit dates, a date range, or a week."""
        self._ensure_qari(actor)

        if selector.dates:
            windows = await self.repository.delete_on_dates(actor.id, list(selector.dates))
        elif selector.start_date is not None and selector.end_date is not None:
            if selector.end_date < selector.start_date:
                raise ValidationException("end_date must not be before start_date")
            windows = await self.repository.delete_between(actor.id, selector.start_date, selector.end_date)
        elif selector.week_start_date is not None:
            week_end = selector.week_start_date + timedelta(days=6)
            windows = await self.repository.delete_between(actor.id, selector.week_start_date, week_end)
        else:
            raise ValidationException("dates, start_date/end_date, or week_start_date required")

        cancelled = await self._cancel_bookings_for(windows, actor.id)
        logger.info(
            "Qari %s bulk deleted %s slot(s), cancelled %s booking(s)",
            actor.id,
            len(windows),
            cancelled,
        )
        return BulkDeleteResult(deleted_count=len(windows), cancelled_bookings=cancelled)

    async def _cancel_bookings_for(self, windows: list[SlotWindow], qari_id: int) -> int:
        now: datetime = utc_now()
        cancelled = 0
        for slot_date, start_time, end_time in windows:
            cancelled += await self.booking_repository.cancel_window(
                qari_id,
                slot_date,
                start_time,
                end_time,
                now,
                SLOT_DELETED_REASON,
            )
        return cancelled


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(SchedulingRepository(session), BookingRepository(session))
