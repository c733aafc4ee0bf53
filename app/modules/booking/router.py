"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from app.core.enums import RoleEnum
from app.modules.booking.schemas import (
    BookingActionRequest,
    BookingCancelRequest,
    BookingHoldRequest,
    BookingRead,
    HoldPlaced,
)
from app.modules.booking.service import BookingService, get_booking_service
from app.modules.identity.schemas import Identity
from app.modules.identity.service import get_current_identity, require_roles
from app.shared.envelope import Envelope, Page, PageParams, build_page, get_page_params, ok

router = APIRouter(prefix="/bookings", tags=["bookings"])

student_only = require_roles(RoleEnum.STUDENT)


@router.post("/hold", response_model=Envelope[HoldPlaced])
async def hold_booking(
    payload: BookingHoldRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: Identity = Depends(student_only),
) -> Envelope[HoldPlaced]:
    """Create booking in HOLD state."""
    booking = await service.hold_booking(payload, current_user)
    return ok(HoldPlaced(booking_id=booking.id, expires_at=booking.hold_expires_at))


@router.post("/confirm", response_model=Envelope[BookingRead])
async def confirm_booking(
    payload: BookingActionRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: Identity = Depends(student_only),
) -> Envelope[BookingRead]:
    """Confirm booking from HOLD to CONFIRMED."""
    booking = await service.confirm_booking(payload.booking_id, current_user)
    return ok(BookingRead.model_validate(booking))


@router.post("/cancel", response_model=Envelope[BookingRead])
async def cancel_booking(
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    current_user: Identity = Depends(student_only),
) -> Envelope[BookingRead]:
    """Cancel own hold or confirmed booking."""
    booking = await service.cancel_booking(payload.booking_id, current_user, payload.reason)
    return ok(BookingRead.model_validate(booking))


@router.get("/my", response_model=Envelope[Page[BookingRead]])
async def list_my_bookings(
    page_params: PageParams = Depends(get_page_params),
    service: BookingService = Depends(get_booking_service),
    current_user: Identity = Depends(get_current_identity),
) -> Envelope[Page[BookingRead]]:
    """List bookings for current user."""
    items, total = await service.list_bookings(current_user, page_params.limit, page_params.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return ok(build_page(serialized, total, page_params))


@router.delete("/{booking_id}", response_model=Envelope[None])
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user: Identity = Depends(student_only),
) -> Envelope[None]:
    """Delete own booking record."""
    await service.delete_booking(booking_id, current_user)
    return ok(message="Booking deleted successfully")
