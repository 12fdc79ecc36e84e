"""
Tests for the transition engine, including concurrent writers on one entity.
"""

import asyncio
import random

import pytest

from dispatch_core.core.exceptions import (
    InvalidState,
    InvalidTransition,
    NotFoundError,
    ValidationFailed,
    VersionConflict,
)
from dispatch_core.domain.states import (
    BOOKING_TRANSITIONS,
    BookingStatus,
    DispatchStatus,
    EntityType,
)
from dispatch_core.services.transition_engine import EntityRef, TransitionEngine
from dispatch_core.store.memory_store import InMemoryEntityStore
from helpers import drive_booking, make_booking_data, utc


class YieldingReadStore(InMemoryEntityStore):
    """Hands control back to the loop after every read so all readers finish before any writer."""

    async def get(self, entity_type, entity_id):
        entity = await super().get(entity_type, entity_id)
        await asyncio.sleep(0)
        return entity


@pytest.mark.asyncio
async def test_transition_bumps_version(engine, pending_booking):
    updated = await engine.apply_transition(EntityRef.booking(pending_booking.id), 1, BookingStatus.CONFIRMED)

    assert updated.status is BookingStatus.CONFIRMED
    assert updated.version == 2
    assert updated.updated_at >= pending_booking.updated_at


@pytest.mark.asyncio
async def test_skipping_a_step_leaves_entity_untouched(engine, store, pending_booking):
    with pytest.raises(InvalidTransition):
        await engine.apply_transition(EntityRef.booking(pending_booking.id), 1, BookingStatus.IN_PROGRESS)

    current = await store.get(EntityType.BOOKING, pending_booking.id)
    assert current.status is BookingStatus.PENDING
    assert current.version == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
async def test_terminal_booking_rejects_every_target(engine, pending_booking, terminal):
    booking = await drive_booking(engine, pending_booking, terminal)

    for target in BookingStatus:
        with pytest.raises(InvalidTransition):
            await engine.apply_transition(EntityRef.booking(booking.id), booking.version, target)


@pytest.mark.asyncio
async def test_stale_version_rejected(engine, confirmed_booking):
    with pytest.raises(VersionConflict) as exc_info:
        await engine.apply_transition(EntityRef.booking(confirmed_booking.id), 1, BookingStatus.IN_PROGRESS)

    assert exc_info.value.expected == 1
    assert exc_info.value.actual == 2
    assert exc_info.value.code == "version_conflict"


@pytest.mark.asyncio
async def test_version_checked_before_edge(engine, confirmed_booking):
    """A stale caller learns about the conflict even when its edge is also invalid."""
    with pytest.raises(VersionConflict):
        await engine.apply_transition(EntityRef.booking(confirmed_booking.id), 1, BookingStatus.PENDING)


@pytest.mark.asyncio
async def test_missing_entity(engine):
    with pytest.raises(NotFoundError):
        await engine.apply_transition(EntityRef.dispatch(999), 1, DispatchStatus.DISPATCHED)


@pytest.mark.asyncio
@pytest.mark.parametrize("store_cls", [InMemoryEntityStore, YieldingReadStore])
async def test_concurrent_transitions_single_winner(store_cls):
    """Of N writers holding the same version exactly one commits."""
    store = store_cls()
    engine = TransitionEngine(store)
    booking = await store.create_booking(make_booking_data())
    ref = EntityRef.booking(booking.id)

    targets = [BookingStatus.CONFIRMED, BookingStatus.CANCELLED] * 10
    results = await asyncio.gather(
        *(engine.apply_transition(ref, 1, target) for target in targets),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert all(isinstance(r, VersionConflict) for r in losers)

    final = await store.get(EntityType.BOOKING, booking.id)
    assert final.version == 2
    assert final.status is winners[0].status


@pytest.mark.asyncio
async def test_random_walk_stays_on_graph(engine, store):
    rng = random.Random(42)

    for _ in range(25):
        booking = await store.create_booking(make_booking_data())
        seen = [booking.status]
        for _ in range(6):
            target = rng.choice(list(BookingStatus))
            try:
                booking = await engine.apply_transition(EntityRef.booking(booking.id), booking.version, target)
            except InvalidTransition:
                continue
            seen.append(booking.status)

        for before, after in zip(seen, seen[1:]):
            assert after in BOOKING_TRANSITIONS[before]
        assert booking.version == len(seen)


@pytest.mark.asyncio
async def test_update_rejects_protected_fields(engine, pending_booking):
    with pytest.raises(ValidationFailed):
        await engine.apply_update(EntityRef.booking(pending_booking.id), 1, {"status": "confirmed"})
    with pytest.raises(ValidationFailed):
        await engine.apply_update(EntityRef.booking(pending_booking.id), 1, {"version": 5})


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(engine, pending_booking):
    with pytest.raises(ValidationFailed):
        await engine.apply_update(EntityRef.booking(pending_booking.id), 1, {"colour": "red"})


@pytest.mark.asyncio
async def test_update_on_terminal_entity(engine, pending_booking):
    booking = await drive_booking(engine, pending_booking, BookingStatus.CANCELLED)

    with pytest.raises(InvalidState):
        await engine.apply_update(EntityRef.booking(booking.id), booking.version, {"truck_id": 3})


@pytest.mark.asyncio
async def test_update_validates_dispatch_timestamps(engine, store, confirmed_booking):
    dispatch = await store.create_dispatch(confirmed_booking.id)
    ref = EntityRef.dispatch(dispatch.id)

    with pytest.raises(ValidationFailed):
        await engine.apply_update(ref, 1, {"arrival_time": utc(2026, 3, 2, 10)})

    dispatch = await engine.apply_update(ref, 1, {"dispatch_time": utc(2026, 3, 2, 10)})
    with pytest.raises(ValidationFailed):
        await engine.apply_update(ref, dispatch.version, {"arrival_time": utc(2026, 3, 2, 9)})

    current = await store.get(EntityType.DISPATCH, dispatch.id)
    assert current.arrival_time is None
    assert current.version == 2
