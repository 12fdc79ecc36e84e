"""
Tests for the SQLAlchemy entity store (SQLite through aiosqlite).
"""

from decimal import Decimal

import pytest

from dispatch_core.core.exceptions import InvalidState, NotFoundError, VersionConflict
from dispatch_core.domain.states import BookingStatus, DispatchStatus, EntityType
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator
from dispatch_core.services.transition_engine import EntityRef, TransitionEngine
from helpers import make_booking_data, utc


@pytest.mark.asyncio
async def test_create_and_get_booking(sql_store):
    created = await sql_store.create_booking(make_booking_data(price="250.50"))

    fetched = await sql_store.get(EntityType.BOOKING, created.id)

    assert fetched.status is BookingStatus.PENDING
    assert fetched.version == 1
    assert fetched.price == Decimal("250.50")
    assert fetched.created_at.tzinfo is not None


@pytest.mark.asyncio
async def test_get_missing(sql_store):
    with pytest.raises(NotFoundError):
        await sql_store.get(EntityType.DISPATCH, 42)


@pytest.mark.asyncio
async def test_compare_and_swap(sql_store):
    booking = await sql_store.create_booking(make_booking_data())

    updated = await sql_store.compare_and_swap(
        EntityType.BOOKING, booking.id, 1, {"status": BookingStatus.CONFIRMED}
    )

    assert updated.status is BookingStatus.CONFIRMED
    assert updated.version == 2
    assert updated.updated_at >= booking.updated_at


@pytest.mark.asyncio
async def test_compare_and_swap_stale_version(sql_store):
    booking = await sql_store.create_booking(make_booking_data())
    await sql_store.compare_and_swap(EntityType.BOOKING, booking.id, 1, {"status": BookingStatus.CONFIRMED})

    with pytest.raises(VersionConflict) as exc_info:
        await sql_store.compare_and_swap(EntityType.BOOKING, booking.id, 1, {"status": BookingStatus.CANCELLED})

    assert exc_info.value.actual == 2
    current = await sql_store.get(EntityType.BOOKING, booking.id)
    assert current.status is BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_compare_and_swap_missing(sql_store):
    with pytest.raises(NotFoundError):
        await sql_store.compare_and_swap(EntityType.BOOKING, 404, 1, {"truck_id": 1})


@pytest.mark.asyncio
async def test_range_query_pages_in_order(sql_store):
    # batch_size is 2, so this spans several pages including a tie on created_at
    times = [
        utc(2026, 3, 2, 12),
        utc(2026, 3, 2, 8),
        utc(2026, 3, 2, 8),
        utc(2026, 3, 3, 0),
        utc(2026, 3, 2, 0),
        utc(2026, 3, 1, 23),
    ]
    for created_at in times:
        await sql_store.create_booking(make_booking_data(created_at=created_at))

    rows = [b async for b in sql_store.query_bookings_by_created_range(utc(2026, 3, 2), utc(2026, 3, 3))]

    assert [b.created_at for b in rows] == [
        utc(2026, 3, 2, 0),
        utc(2026, 3, 2, 8),
        utc(2026, 3, 2, 8),
        utc(2026, 3, 2, 12),
    ]
    assert rows[1].id < rows[2].id


@pytest.mark.asyncio
async def test_single_active_dispatch(sql_store):
    booking = await sql_store.create_booking(make_booking_data())
    first = await sql_store.create_dispatch(booking.id)

    with pytest.raises(InvalidState):
        await sql_store.create_dispatch(booking.id)

    await sql_store.compare_and_swap(EntityType.DISPATCH, first.id, 1, {"status": DispatchStatus.CANCELLED})
    second = await sql_store.create_dispatch(booking.id)

    dispatches = await sql_store.list_dispatches_for_booking(booking.id)
    assert [d.id for d in dispatches] == [first.id, second.id]


@pytest.mark.asyncio
async def test_dispatch_for_missing_booking(sql_store):
    with pytest.raises(NotFoundError):
        await sql_store.create_dispatch(999)


@pytest.mark.asyncio
async def test_coupled_lifecycle_on_sql_store(sql_store):
    coordinator = DispatchCoordinator(sql_store, TransitionEngine(sql_store))
    booking = await coordinator.create_booking(make_booking_data())
    booking = (await coordinator.transition_booking(booking.id, BookingStatus.CONFIRMED, 1)).booking
    dispatch = await coordinator.create_dispatch(booking.id)

    for target in (DispatchStatus.DISPATCHED, DispatchStatus.IN_TRANSIT):
        result = await coordinator.transition_dispatch(dispatch.id, target, dispatch.version)
        dispatch = result.dispatch

    assert result.booking.status is BookingStatus.IN_PROGRESS

    dispatch = await coordinator.record_dispatch_time(dispatch.id, utc(2026, 3, 2, 8))
    dispatch = await coordinator.record_arrival_time(dispatch.id, utc(2026, 3, 2, 9))
    assert dispatch.arrival_time == utc(2026, 3, 2, 9)

    engine = TransitionEngine(sql_store)
    with pytest.raises(VersionConflict):
        await engine.apply_transition(EntityRef.dispatch(dispatch.id), 1, DispatchStatus.ARRIVED)
