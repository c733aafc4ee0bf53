"""Scheduling ORM models."""

from __future__ import annotations

from datetime import date, time

from sqlalchemy import CheckConstraint, Date, Integer, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base, BaseModelMixin


class AvailabilitySlot(BaseModelMixin, Base):
    """Bookable window published by a qari."""

    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint("qari_id", "slot_date", "start_time", "end_time"),
        CheckConstraint("capacity > 0", name="capacity_positive"),
        CheckConstraint("end_time > start_time", name="end_after_start"),
    )

    qari_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    slot_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
