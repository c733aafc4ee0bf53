"""Booking ORM models."""

from __future__ import annotations

from datetime import date, datetime, time

from sqlalchemy import Date, DateTime, Enum as SAEnum, Index, Integer, String, Time
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin
from app.core.enums import BookingSourceEnum, BookingStatusEnum


class Booking(BaseModelMixin, Base):
    """Claim against one unit of a window's capacity."""

    __tablename__ = "bookings"
    __table_args__ = (
        Index("ix_bookings_window", "qari_id", "slot_date", "start_time", "end_time", "status"),
    )

    qari_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    student_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(
            BookingStatusEnum,
            name="booking_status_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=BookingStatusEnum.HOLD,
        nullable=False,
        index=True,
    )
    source: Mapped[BookingSourceEnum] = mapped_column(
        SAEnum(
            BookingSourceEnum,
            name="booking_source_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        default=BookingSourceEnum.STUDENT,
        nullable=False,
    )
    hold_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    canceled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    external_ref: Mapped[str | None] = mapped_column(String(512), nullable=True, unique=True)
