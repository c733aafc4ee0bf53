"""Availability API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.core.enums import RoleEnum
from app.modules.identity.schemas import Identity
from app.modules.identity.service import require_roles
from app.modules.scheduling.schemas import (
    AvailabilityMonth,
    BulkDeleteRequest,
    BulkDeleteResult,
    PublishSlotsRequest,
    PublishSlotsResult,
    SlotRead,
)
from app.modules.scheduling.service import SchedulingService, get_scheduling_service
from app.shared.envelope import Envelope, ok

router = APIRouter(prefix="/availability", tags=["availability"])


@router.get("", response_model=Envelope[AvailabilityMonth])
async def get_availability(
    year: int = Query(),
    month: int = Query(),
    qari_id: int | None = Query(default=None, alias="qariId"),
    service: SchedulingService = Depends(get_scheduling_service),
) -> Envelope[AvailabilityMonth]:
    """List slots of one month, for one qari or for everyone."""
    slots = await service.list_month(qari_id, year, month)
    return ok(AvailabilityMonth(slots=[SlotRead.model_validate(slot) for slot in slots]))


@router.put("", response_model=Envelope[PublishSlotsResult])
async def publish_availability(
    payload: PublishSlotsRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user: Identity = Depends(require_roles(RoleEnum.QARI)),
) -> Envelope[PublishSlotsResult]:
    """Publish or update availability windows."""
    result = await service.publish_slots(payload.slots, current_user)
    return ok(result, message="Availability updated")


@router.delete("/bulk", response_model=Envelope[BulkDeleteResult])
async def bulk_delete_availability(
    payload: BulkDeleteRequest,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user: Identity = Depends(require_roles(RoleEnum.QARI)),
) -> Envelope[BulkDeleteResult]:
    """Delete own slots by dates, date range, or week."""
    result = await service.delete_bulk(payload, current_user)
    return ok(result, message=f"Successfully deleted {result.deleted_count} slot(s)")


@router.delete("/{slot_id}", response_model=Envelope[None])
async def delete_availability_slot(
    slot_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user: Identity = Depends(require_roles(RoleEnum.QARI)),
) -> Envelope[None]:
    """Delete one own slot."""
    await service.delete_slot(slot_id, current_user)
    return ok(message="Slot deleted successfully")
