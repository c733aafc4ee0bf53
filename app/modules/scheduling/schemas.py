"""Scheduling schemas."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class SlotInput(BaseModel):
    """One window in a publish request.

    Values are kept as raw text so a malformed entry is skipped on its own
    instead of rejecting the whole batch.
    """

    model_config = ConfigDict(populate_by_name=True)

    slot_date: str | None = Field(default=None, validation_alias=AliasChoices("slot_date", "date"))
    start_time: str | None = Field(default=None, validation_alias=AliasChoices("start_time", "startTime"))
    end_time: str | None = Field(default=None, validation_alias=AliasChoices("end_time", "endTime"))
    capacity: Any = None

    @field_validator("slot_date", "start_time", "end_time", mode="before")
    @classmethod
    def stringify_raw_value(cls, value: object) -> object:
        """Accept numbers and other JSON values as their text form."""
        if value is None or isinstance(value, str):
            return value
        return str(value)


class PublishSlotsRequest(BaseModel):
    """Publish/upsert availability request."""

    slots: list[SlotInput] = Field(default_factory=list)


class SlotRead(BaseModel):
    """Availability slot response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    qari_id: int
    slot_date: date
    start_time: time
    end_time: time
    capacity: int
    created_at: datetime
    updated_at: datetime


class SkippedSlot(BaseModel):
    index: int
    reason: str


class PublishSlotsResult(BaseModel):
    slots: list[SlotRead]
    skipped: list[SkippedSlot]


class AvailabilityMonth(BaseModel):
    slots: list[SlotRead]


class BulkDeleteRequest(BaseModel):
    """Select slots to delete: explicit dates, a date range, or a week."""

    model_config = ConfigDict(populate_by_name=True)

    dates: list[date] | None = None
    start_date: date | None = Field(default=None, validation_alias=AliasChoices("start_date", "startDate"))
    end_date: date | None = Field(default=None, validation_alias=AliasChoices("end_date", "endDate"))
    week_start_date: date | None = Field(
        default=None,
        validation_alias=AliasChoices("week_start_date", "weekStartDate"),
    )


class BulkDeleteResult(BaseModel):
    deleted_count: int
    cancelled_bookings: int
