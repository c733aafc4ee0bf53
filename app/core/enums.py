"""Core enums used across modules."""

from enum import StrEnum


class RoleEnum(StrEnum):
    """Roles issued by the identity provider."""

    STUDENT = "student"
    QARI = "qari"
    ADMIN = "admin"


class BookingStatusEnum(StrEnum):
    """Booking lifecycle status."""

    HOLD = "hold"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BookingSourceEnum(StrEnum):
    """Where a booking originated."""

    STUDENT = "student"
    EXTERNAL_CALENDAR = "external_calendar"


ACTIVE_BOOKING_STATUSES = (BookingStatusEnum.HOLD, BookingStatusEnum.CONFIRMED)
