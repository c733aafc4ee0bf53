"""Booking schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.core.enums import BookingSourceEnum, BookingStatusEnum


class BookingHoldRequest(BaseModel):
    """Place a hold on a published window."""

    model_config = ConfigDict(populate_by_name=True)

    qari_id: int = Field(validation_alias=AliasChoices("qariId", "qari_id"))
    slot_date: date
    start_time: str = Field(min_length=1)
    end_time: str | None = None


class BookingActionRequest(BaseModel):
    """Confirm a hold by id."""

    booking_id: UUID


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    booking_id: UUID
    reason: str | None = Field(default=None, max_length=512)


class HoldPlaced(BaseModel):
    booking_id: UUID
    expires_at: datetime


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    qari_id: int
    student_id: int | None
    slot_date: date
    start_time: time
    end_time: time
    status: BookingStatusEnum
    source: BookingSourceEnum
    hold_expires_at: datetime | None
    confirmed_at: datetime | None
    canceled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime
