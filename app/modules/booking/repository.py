"""Booking repository layer (booking ledger)."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ACTIVE_BOOKING_STATUSES, BookingSourceEnum, BookingStatusEnum, RoleEnum
from app.modules.booking.models import Booking


def _window_filter(qari_id: int, slot_date: date, start_time: time, end_time: time):
    return and_(
        Booking.qari_id == qari_id,
        Booking.slot_date == slot_date,
        Booking.start_time == start_time,
        Booking.end_time == end_time,
    )


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def count_active(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        now: datetime,
    ) -> int:
        """Count confirmed bookings plus holds that have not lapsed yet."""
        stmt = select(func.count(Booking.id)).where(
            _window_filter(qari_id, slot_date, start_time, end_time),
            or_(
                Booking.status == BookingStatusEnum.CONFIRMED,
                and_(
                    Booking.status == BookingStatusEnum.HOLD,
                    Booking.hold_expires_at > now,
                ),
            ),
        )
        return int((await self.session.scalar(stmt)) or 0)

    async def expire_window_holds(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        now: datetime,
    ) -> int:
        stmt = (
            update(Booking)
            .where(
                _window_filter(qari_id, slot_date, start_time, end_time),
                Booking.status == BookingStatusEnum.HOLD,
                Booking.hold_expires_at <= now,
            )
            .values(status=BookingStatusEnum.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def expire_stale_holds(self, now: datetime) -> int:
        stmt = (
            update(Booking)
            .where(
                Booking.status == BookingStatusEnum.HOLD,
                Booking.hold_expires_at.is_not(None),
                Booking.hold_expires_at <= now,
            )
            .values(status=BookingStatusEnum.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def create_hold(
        self,
        qari_id: int,
        student_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        hold_expires_at: datetime,
    ) -> Booking:
        booking = Booking(
            qari_id=qari_id,
            student_id=student_id,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=BookingStatusEnum.HOLD,
            source=BookingSourceEnum.STUDENT,
            hold_expires_at=hold_expires_at,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def create_external_booking(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        external_ref: str,
        confirmed_at: datetime,
    ) -> Booking:
        booking = Booking(
            qari_id=qari_id,
            student_id=None,
            slot_date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=BookingStatusEnum.CONFIRMED,
            source=BookingSourceEnum.EXTERNAL_CALENDAR,
            confirmed_at=confirmed_at,
            external_ref=external_ref,
        )
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_external_ref(self, external_ref: str) -> Booking | None:
        stmt = select(Booking).where(Booking.external_ref == external_ref)
        return await self.session.scalar(stmt)

    async def confirm_hold(self, booking_id: UUID, student_id: int, now: datetime) -> Booking | None:
        """Flip an owned, unexpired hold to confirmed in one conditional update."""
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.student_id == student_id,
                Booking.status == BookingStatusEnum.HOLD,
                Booking.hold_expires_at > now,
            )
            .values(
                status=BookingStatusEnum.CONFIRMED,
                confirmed_at=now,
                hold_expires_at=None,
                updated_at=now,
            )
            .returning(Booking)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        return (await self.session.scalars(stmt)).one_or_none()

    async def cancel_owned(
        self,
        booking_id: UUID,
        student_id: int,
        now: datetime,
        reason: str | None,
    ) -> Booking | None:
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.student_id == student_id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .values(
                status=BookingStatusEnum.CANCELLED,
                canceled_at=now,
                cancellation_reason=reason,
                updated_at=now,
            )
            .returning(Booking)
            .execution_options(populate_existing=True, synchronize_session=False)
        )
        return (await self.session.scalars(stmt)).one_or_none()

    async def delete_owned(self, booking_id: UUID, student_id: int) -> bool:
        stmt = (
            delete(Booking)
            .where(Booking.id == booking_id, Booking.student_id == student_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return bool(result.rowcount)

    async def cancel_window(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        now: datetime,
        reason: str,
    ) -> int:
        stmt = (
            update(Booking)
            .where(
                _window_filter(qari_id, slot_date, start_time, end_time),
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .values(
                status=BookingStatusEnum.CANCELLED,
                canceled_at=now,
                cancellation_reason=reason,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def list_bookings(
        self,
        user_id: int,
        role_name: RoleEnum,
        limit: int,
        offset: int,
    ) -> tuple[list[Booking], int]:
        base_stmt: Select[tuple[Booking]] = select(Booking)

        if role_name == RoleEnum.STUDENT:
            base_stmt = base_stmt.where(Booking.student_id == user_id)
        elif role_name == RoleEnum.QARI:
            base_stmt = base_stmt.where(Booking.qari_id == user_id)

        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = (
            base_stmt.order_by(Booking.slot_date.desc(), Booking.start_time.desc(), Booking.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        items = (await self.session.scalars(stmt)).all()
        return list(items), total
