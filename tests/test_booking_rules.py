from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime, time, timedelta

import pytest

import app.modules.booking.service as booking_service_module
from app.core.enums import BookingStatusEnum, RoleEnum
from app.modules.booking.schemas import BookingHoldRequest
from app.modules.booking.service import BookingService, settings
from app.shared.exceptions import (
    ConflictException,
    ForbiddenException,
    HoldExpiredException,
    NotFoundException,
    ValidationException,
)
from tests.fakes import (
    FakeBookingRepository,
    FakeSchedulingRepository,
    FakeSlot,
    FakeTransaction,
    InMemoryStore,
    make_actor,
)

QARI_ID = 7
SLOT_DATE = date(2024, 6, 1)
START = time(10, 0)
END = time(11, 0)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> Clock:
    clock = Clock(datetime(2024, 5, 30, 12, 0, tzinfo=UTC))
    monkeypatch.setattr(booking_service_module, "utc_now", clock)
    return clock


def make_service(store: InMemoryStore, tx: FakeTransaction | None = None) -> BookingService:
    return BookingService(
        booking_repository=FakeBookingRepository(store),
        scheduling_repository=FakeSchedulingRepository(store, tx),
    )


def publish(store: InMemoryStore, capacity: int = 1) -> FakeSlot:
    return store.add_slot(FakeSlot(QARI_ID, SLOT_DATE, START, END, capacity))


def hold_request(start_time: str = "10:00") -> BookingHoldRequest:
    return BookingHoldRequest(qariId=QARI_ID, slot_date=SLOT_DATE, start_time=start_time)


@pytest.mark.asyncio
async def test_hold_sets_15_minute_expiration(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)

    booking = await service.hold_booking(hold_request(), make_actor(1))

    assert booking.status == BookingStatusEnum.HOLD
    assert booking.student_id == 1
    assert (booking.slot_date, booking.start_time, booking.end_time) == (SLOT_DATE, START, END)
    assert booking.hold_expires_at == clock.now + timedelta(minutes=settings.booking_hold_minutes)
    assert settings.booking_hold_minutes == 15


@pytest.mark.asyncio
async def test_hold_accepts_loose_start_time_format(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)

    booking = await make_service(store).hold_booking(hold_request("10:00:00"), make_actor(1))

    assert booking.start_time == START


@pytest.mark.asyncio
async def test_hold_on_unpublished_window_is_not_found(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)

    with pytest.raises(NotFoundException):
        await make_service(store).hold_booking(hold_request("12:00"), make_actor(1))


@pytest.mark.asyncio
async def test_hold_rejects_malformed_time(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)

    with pytest.raises(ValidationException):
        await make_service(store).hold_booking(hold_request("27:00"), make_actor(1))


@pytest.mark.asyncio
async def test_only_students_can_hold(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)

    with pytest.raises(ForbiddenException):
        await make_service(store).hold_booking(hold_request(), make_actor(QARI_ID, RoleEnum.QARI))


@pytest.mark.asyncio
async def test_full_window_rejects_second_student_until_hold_expires(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=1)
    service = make_service(store)

    first = await service.hold_booking(hold_request(), make_actor(1))

    with pytest.raises(ConflictException):
        await service.hold_booking(hold_request(), make_actor(2))

    clock.advance(minutes=16)
    second = await service.hold_booking(hold_request(), make_actor(2))

    assert store.bookings[first.id].status == BookingStatusEnum.EXPIRED
    assert second.status == BookingStatusEnum.HOLD
    assert len(store.active_for(second.key)) == 1


@pytest.mark.asyncio
async def test_lapsed_hold_never_counts_even_before_sweep(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=1)
    service = make_service(store)
    stale = await service.hold_booking(hold_request(), make_actor(1))

    clock.advance(minutes=15)

    repo = FakeBookingRepository(store)
    used = await repo.count_active(QARI_ID, SLOT_DATE, START, END, clock.now)
    assert used == 0
    assert store.bookings[stale.id].status == BookingStatusEnum.HOLD


@pytest.mark.asyncio
async def test_concurrent_holds_never_exceed_capacity(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=2)

    async def attempt(student_id: int):
        tx = FakeTransaction(store)
        try:
            return await make_service(store, tx).hold_booking(hold_request(), make_actor(student_id))
        except ConflictException:
            return None
        finally:
            tx.release()

    results = await asyncio.gather(*(attempt(student_id) for student_id in range(1, 8)))

    winners = [booking for booking in results if booking is not None]
    assert len(winners) == 2
    assert len(store.active_for((QARI_ID, SLOT_DATE, START, END))) == 2


@pytest.mark.asyncio
async def test_two_students_racing_for_last_seat(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=1)
    outcomes: list[str] = []

    async def attempt(student_id: int) -> None:
        tx = FakeTransaction(store)
        try:
            await make_service(store, tx).hold_booking(hold_request(), make_actor(student_id))
            outcomes.append("held")
        except ConflictException:
            outcomes.append("conflict")
        finally:
            tx.release()

    await asyncio.gather(attempt(1), attempt(2))

    assert sorted(outcomes) == ["conflict", "held"]


@pytest.mark.asyncio
async def test_confirm_succeeds_exactly_once(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))

    clock.advance(minutes=5)
    confirmed = await service.confirm_booking(hold.id, make_actor(1))

    assert confirmed.status == BookingStatusEnum.CONFIRMED
    assert confirmed.confirmed_at == clock.now
    assert confirmed.hold_expires_at is None

    with pytest.raises(HoldExpiredException):
        await service.confirm_booking(hold.id, make_actor(1))


@pytest.mark.asyncio
async def test_confirm_after_expiry_fails(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))

    clock.advance(minutes=16)

    with pytest.raises(HoldExpiredException) as exc:
        await service.confirm_booking(hold.id, make_actor(1))
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_confirm_by_other_student_looks_like_expired(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))

    with pytest.raises(HoldExpiredException):
        await service.confirm_booking(hold.id, make_actor(2))
    assert store.bookings[hold.id].status == BookingStatusEnum.HOLD


@pytest.mark.asyncio
async def test_cancel_by_non_owner_is_not_found(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))

    with pytest.raises(NotFoundException):
        await service.cancel_booking(hold.id, make_actor(2))
    assert store.bookings[hold.id].status == BookingStatusEnum.HOLD


@pytest.mark.asyncio
async def test_cancel_confirmed_booking_frees_capacity(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))
    await service.confirm_booking(hold.id, make_actor(1))

    cancelled = await service.cancel_booking(hold.id, make_actor(1), reason="travel")

    assert cancelled.status == BookingStatusEnum.CANCELLED
    assert cancelled.cancellation_reason == "travel"
    replacement = await service.hold_booking(hold_request(), make_actor(2))
    assert replacement.status == BookingStatusEnum.HOLD


@pytest.mark.asyncio
async def test_cancel_terminal_booking_is_not_found(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))
    await service.cancel_booking(hold.id, make_actor(1))

    with pytest.raises(NotFoundException):
        await service.cancel_booking(hold.id, make_actor(1))


@pytest.mark.asyncio
async def test_delete_removes_own_booking_and_frees_capacity(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store)
    service = make_service(store)
    hold = await service.hold_booking(hold_request(), make_actor(1))

    with pytest.raises(NotFoundException):
        await service.delete_booking(hold.id, make_actor(2))

    await service.delete_booking(hold.id, make_actor(1))

    assert hold.id not in store.bookings
    again = await service.hold_booking(hold_request(), make_actor(2))
    assert again.status == BookingStatusEnum.HOLD


@pytest.mark.asyncio
async def test_expire_holds_sweeps_all_windows(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=3)
    service = make_service(store)
    first = await service.hold_booking(hold_request(), make_actor(1))
    second = await service.hold_booking(hold_request(), make_actor(2))
    await service.confirm_booking(second.id, make_actor(2))

    clock.advance(minutes=20)
    expired = await service.expire_holds()

    assert expired == 1
    assert store.bookings[first.id].status == BookingStatusEnum.EXPIRED
    assert store.bookings[second.id].status == BookingStatusEnum.CONFIRMED


@pytest.mark.asyncio
async def test_list_bookings_scopes_by_role(clock: Clock) -> None:
    store = InMemoryStore()
    publish(store, capacity=2)
    service = make_service(store)
    await service.hold_booking(hold_request(), make_actor(1))
    await service.hold_booking(hold_request(), make_actor(2))

    student_items, student_total = await service.list_bookings(make_actor(1), 10, 0)
    qari_items, qari_total = await service.list_bookings(make_actor(QARI_ID, RoleEnum.QARI), 10, 0)

    assert student_total == 1 and student_items[0].student_id == 1
    assert qari_total == 2 and len(qari_items) == 2
