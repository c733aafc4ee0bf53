"""Booking business logic layer (reservation coordinator).

Admission for a window is serialized by locking its slot row before the
active bookings are counted, so two concurrent holds for the last seat
cannot both succeed. The lock lives until the request transaction ends.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_db_session
from app.core.enums import BookingStatusEnum, RoleEnum
from app.core.metrics import BOOKING_HOLD_ATTEMPTS_TOTAL, BOOKING_TRANSITIONS_TOTAL
from app.modules.booking.models import Booking
from app.modules.booking.repository import BookingRepository
from app.modules.booking.schemas import BookingHoldRequest
from app.modules.identity.schemas import Identity
from app.modules.scheduling.repository import SchedulingRepository
from app.modules.scheduling.service import normalize_clock_time
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    HoldExpiredException,
    NotFoundException,
    ValidationException,
)
from app.shared.utils import utc_now

settings = get_settings()
logger = logging.getLogger(__name__)


class BookingService:
    """Booking domain service with hold/confirm/cancel rules."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        scheduling_repository: SchedulingRepository,
    ) -> None:
        self.booking_repository = booking_repository
        self.scheduling_repository = scheduling_repository

    @staticmethod
    def _ensure_student(actor: Identity) -> None:
        if actor.role != RoleEnum.STUDENT:
            raise ForbiddenException("Only students can manage bookings")

    async def hold_booking(self, payload: BookingHoldRequest, actor: Identity) -> Booking:
        """Reserve one seat of a window for ``booking_hold_minutes``."""
        self._ensure_student(actor)

        try:
            start_time = normalize_clock_time(payload.start_time)
            end_time = normalize_clock_time(payload.end_time) if payload.end_time else None
        except ValueError as exc:
            raise ValidationException("start_time/end_time must be HH:MM") from exc

        slot = await self.scheduling_repository.lock_slot(
            payload.qari_id,
            payload.slot_date,
            start_time,
            end_time,
        )
        if slot is None:
            BOOKING_HOLD_ATTEMPTS_TOTAL.labels(outcome="slot_not_found").inc()
            raise NotFoundException("Slot not found")

        now = utc_now()
        expired = await self.booking_repository.expire_window_holds(
            slot.qari_id,
            slot.slot_date,
            slot.start_time,
            slot.end_time,
            now,
        )
        if expired:
            BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.EXPIRED.value).inc(expired)

        used = await self.booking_repository.count_active(
            slot.qari_id,
            slot.slot_date,
            slot.start_time,
            slot.end_time,
            now,
        )
        if used >= slot.capacity:
            BOOKING_HOLD_ATTEMPTS_TOTAL.labels(outcome="full").inc()
            raise ConflictException("Slot fully booked")

        booking = await self.booking_repository.create_hold(
            qari_id=slot.qari_id,
            student_id=actor.id,
            slot_date=slot.slot_date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            hold_expires_at=now + timedelta(minutes=settings.booking_hold_minutes),
        )
        BOOKING_HOLD_ATTEMPTS_TOTAL.labels(outcome="held").inc()
        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.HOLD.value).inc()
        logger.info(
            "Hold %s placed by student %s on qari %s %s %s (%s/%s used)",
            booking.id,
            actor.id,
            slot.qari_id,
            slot.slot_date,
            slot.start_time,
            used + 1,
            slot.capacity,
        )
        return booking

    async def confirm_booking(self, booking_id: UUID, actor: Identity) -> Booking:
        """Confirm an owned hold that has not lapsed."""
        self._ensure_student(actor)
        booking = await self.booking_repository.confirm_hold(booking_id, actor.id, utc_now())
        if booking is None:
            raise HoldExpiredException("Hold expired or not found")

        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.CONFIRMED.value).inc()
        logger.info("Booking %s confirmed by student %s", booking.id, actor.id)
        return booking

    async def cancel_booking(self, booking_id: UUID, actor: Identity, reason: str | None = None) -> Booking:
        """Cancel an owned hold or confirmed booking, releasing its seat."""
        self._ensure_student(actor)
        booking = await self.booking_repository.cancel_owned(booking_id, actor.id, utc_now(), reason)
        if booking is None:
            raise NotFoundException("Booking not found")

        BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.CANCELLED.value).inc()
        logger.info("Booking %s cancelled by student %s", booking.id, actor.id)
        return booking

    async def delete_booking(self, booking_id: UUID, actor: Identity) -> None:
        """Remove an owned booking record entirely."""
        self._ensure_student(actor)
        if not await self.booking_repository.delete_owned(booking_id, actor.id):
            raise NotFoundException("Booking not found")
        logger.info("Booking %s deleted by student %s", booking_id, actor.id)

    async def expire_holds(self) -> int:
        """Flip every lapsed hold to expired."""
        expired = await self.booking_repository.expire_stale_holds(utc_now())
        if expired:
            BOOKING_TRANSITIONS_TOTAL.labels(status=BookingStatusEnum.EXPIRED.value).inc(expired)
        return expired

    async def list_bookings(
        self,
        actor: Identity,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        """List bookings for actor according to role."""
        return await self.booking_repository.list_bookings(actor.id, actor.role, limit, offset)


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return BookingService(
        booking_repository=BookingRepository(session),
        scheduling_repository=SchedulingRepository(session),
    )
