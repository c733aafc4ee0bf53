"""Calendar sync schemas."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from enum import StrEnum


class CalendarEventType(StrEnum):
    INVITEE_CREATED = "invitee.created"
    INVITEE_CANCELED = "invitee.canceled"


class SyncOutcome(StrEnum):
    """Result of applying one webhook delivery."""

    CREATED = "created"
    DUPLICATE = "duplicate"
    FULL = "full"
    CANCELLED = "cancelled"
    IGNORED = "ignored"
    UNMAPPED = "unmapped"
    INVALID = "invalid"
    ERROR = "error"


@dataclass(slots=True, frozen=True)
class CalendarWindow:
    slot_date: date
    start_time: time
    end_time: time
