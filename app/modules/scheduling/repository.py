"""Scheduling repository layer (slot store)."""

from __future__ import annotations

from datetime import date, time
from uuid import UUID, uuid4

from sqlalchemy import ColumnElement, delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.modules.scheduling.models import AvailabilitySlot
from app.shared.utils import utc_now

SlotWindow = tuple[date, time, time]

_WINDOW_KEY = ("qari_id", "slot_date", "start_time", "end_time")


class SchedulingRepository:
    """DB access for availability slots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_slot(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
        capacity: int,
    ) -> AvailabilitySlot:
        """Insert window or overwrite its capacity; the row stays locked until commit."""
        now = utc_now()
        stmt = (
            insert(AvailabilitySlot)
            .values(
                id=uuid4(),
                qari_id=qari_id,
                slot_date=slot_date,
                start_time=start_time,
                end_time=end_time,
                capacity=capacity,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_update(
                index_elements=list(_WINDOW_KEY),
                set_={"capacity": capacity, "updated_at": now},
            )
            .returning(AvailabilitySlot)
        )
        result = await self.session.scalars(stmt, execution_options={"populate_existing": True})
        return result.one()

    async def ensure_slot(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time,
    ) -> AvailabilitySlot:
        """Create window with capacity 1 when absent and return it locked."""
        now = utc_now()
        stmt = (
            insert(AvailabilitySlot)
            .values(
                id=uuid4(),
                qari_id=qari_id,
                slot_date=slot_date,
                start_time=start_time,
                end_time=end_time,
                capacity=1,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=list(_WINDOW_KEY))
        )
        await self.session.execute(stmt)
        slot = await self.lock_slot(qari_id, slot_date, start_time, end_time)
        if slot is None:
            raise RuntimeError("Slot vanished right after upsert")
        return slot

    async def lock_slot(
        self,
        qari_id: int,
        slot_date: date,
        start_time: time,
        end_time: time | None = None,
    ) -> AvailabilitySlot | None:
        """Fetch a window with ``FOR UPDATE`` so admission for it is serialized."""
        stmt = select(AvailabilitySlot).where(
            AvailabilitySlot.qari_id == qari_id,
            AvailabilitySlot.slot_date == slot_date,
            AvailabilitySlot.start_time == start_time,
        )
        if end_time is not None:
            stmt = stmt.where(AvailabilitySlot.end_time == end_time)
        stmt = (
            stmt.order_by(AvailabilitySlot.end_time.asc())
            .limit(1)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_owned_slot(self, slot_id: UUID, qari_id: int) -> AvailabilitySlot | None:
        stmt = select(AvailabilitySlot).where(
            AvailabilitySlot.id == slot_id,
            AvailabilitySlot.qari_id == qari_id,
        )
        return await self.session.scalar(stmt)

    async def list_slots_between(
        self,
        qari_id: int | None,
        first_day: date,
        last_day: date,
    ) -> list[AvailabilitySlot]:
        stmt = select(AvailabilitySlot).where(AvailabilitySlot.slot_date.between(first_day, last_day))
        if qari_id is not None:
            stmt = stmt.where(AvailabilitySlot.qari_id == qari_id)
        stmt = stmt.order_by(
            AvailabilitySlot.slot_date.asc(),
            AvailabilitySlot.start_time.asc(),
            AvailabilitySlot.end_time.asc(),
        )
        return list((await self.session.scalars(stmt)).all())

    async def delete_slot(self, slot: AvailabilitySlot) -> None:
        await self.session.delete(slot)
        await self.session.flush()

    async def delete_on_dates(self, qari_id: int, dates: list[date]) -> list[SlotWindow]:
        return await self._delete_where(qari_id, AvailabilitySlot.slot_date.in_(dates))

    async def delete_between(self, qari_id: int, first_day: date, last_day: date) -> list[SlotWindow]:
        return await self._delete_where(qari_id, AvailabilitySlot.slot_date.between(first_day, last_day))

    async def _delete_where(self, qari_id: int, condition: ColumnElement[bool]) -> list[SlotWindow]:
        # Lock in window-key order first, the same order publish upserts in.
        lock_stmt = (
            select(AvailabilitySlot.id)
            .where(AvailabilitySlot.qari_id == qari_id, condition)
            .order_by(
                AvailabilitySlot.slot_date.asc(),
                AvailabilitySlot.start_time.asc(),
                AvailabilitySlot.end_time.asc(),
            )
            .with_for_update()
        )
        slot_ids = list((await self.session.scalars(lock_stmt)).all())
        if not slot_ids:
            return []

        stmt = (
            delete(AvailabilitySlot)
            .where(AvailabilitySlot.id.in_(slot_ids))
            .returning(
                AvailabilitySlot.slot_date,
                AvailabilitySlot.start_time,
                AvailabilitySlot.end_time,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return sorted((row.slot_date, row.start_time, row.end_time) for row in result)
