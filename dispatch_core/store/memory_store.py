"""
In-memory entity store - no database.
Same contract as the SQL store; the internal lock stands in for the
database's row-level atomicity of a single UPDATE.
"""

import asyncio
from datetime import datetime
from typing import Any, AsyncIterator

from dispatch_core.core.exceptions import InvalidState, NotFoundError, VersionConflict
from dispatch_core.db.base import utc_now
from dispatch_core.domain.states import BookingStatus, DispatchStatus, EntityType
from dispatch_core.domain.validation import ensure_utc, validate_dispatch_timestamps
from dispatch_core.schemas.booking import BookingCreate, BookingRead
from dispatch_core.schemas.dispatch import DispatchRead
from dispatch_core.store.interface import Entity, EntityStore


class InMemoryEntityStore(EntityStore):
    """
    Use when:
    - Running locally without PostgreSQL
    - Unit tests that need deterministic, fast storage
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._tables: dict[EntityType, dict[int, Entity]] = {
            EntityType.BOOKING: {},
            EntityType.DISPATCH: {},
        }
        self._next_id = {EntityType.BOOKING: 1, EntityType.DISPATCH: 1}

    def _row(self, entity_type: EntityType, entity_id: int) -> Entity:
        row = self._tables[entity_type].get(entity_id)
        if row is None:
            raise NotFoundError(entity_type.value.capitalize(), entity_id)
        return row

    def _allocate_id(self, entity_type: EntityType) -> int:
        entity_id = self._next_id[entity_type]
        self._next_id[entity_type] += 1
        return entity_id

    async def get(self, entity_type: EntityType, entity_id: int) -> Entity:
        async with self._lock:
            return self._row(entity_type, entity_id)

    async def compare_and_swap(
        self,
        entity_type: EntityType,
        entity_id: int,
        expected_version: int,
        new_fields: dict[str, Any],
    ) -> Entity:
        async with self._lock:
            current = self._row(entity_type, entity_id)
            if current.version != expected_version:
                raise VersionConflict(entity_type.value, entity_id, expected_version, current.version)

            changes = {
                key: ensure_utc(value) if isinstance(value, datetime) else value
                for key, value in new_fields.items()
            }
            changes["version"] = expected_version + 1
            changes["updated_at"] = utc_now()
            # Re-validate so the stored snapshot has proper enum and datetime types
            updated = type(current).model_validate({**current.model_dump(), **changes})

            if entity_type is EntityType.DISPATCH:
                validate_dispatch_timestamps(updated.dispatch_time, updated.arrival_time)

            self._tables[entity_type][entity_id] = updated
            return updated

    async def query_bookings_by_created_range(
        self, start: datetime, end: datetime
    ) -> AsyncIterator[BookingRead]:
        start, end = ensure_utc(start), ensure_utc(end)
        async with self._lock:
            rows = [
                b for b in self._tables[EntityType.BOOKING].values()
                if start <= b.created_at < end
            ]
        rows.sort(key=lambda b: (b.created_at, b.id))
        for row in rows:
            yield row

    async def create_booking(self, data: BookingCreate) -> BookingRead:
        created_at = data.created_at or utc_now()
        async with self._lock:
            booking = BookingRead(
                id=self._allocate_id(EntityType.BOOKING),
                source=data.source,
                destination=data.destination,
                service_type=data.service_type,
                price=data.price,
                user_id=data.user_id,
                truck_id=data.truck_id,
                status=BookingStatus.PENDING,
                created_at=created_at,
                updated_at=created_at,
                version=1,
            )
            self._tables[EntityType.BOOKING][booking.id] = booking
            return booking

    async def create_dispatch(self, booking_id: int) -> DispatchRead:
        now = utc_now()
        async with self._lock:
            self._row(EntityType.BOOKING, booking_id)
            for existing in self._tables[EntityType.DISPATCH].values():
                if existing.booking_id == booking_id and existing.status is not DispatchStatus.CANCELLED:
                    raise InvalidState(f"Booking {booking_id} already has active dispatch {existing.id}")

            dispatch = DispatchRead(
                id=self._allocate_id(EntityType.DISPATCH),
                booking_id=booking_id,
                assigned_driver=None,
                dispatch_time=None,
                arrival_time=None,
                status=DispatchStatus.PENDING,
                created_at=now,
                updated_at=now,
                version=1,
            )
            self._tables[EntityType.DISPATCH][dispatch.id] = dispatch
            return dispatch

    async def list_dispatches_for_booking(self, booking_id: int) -> list[DispatchRead]:
        async with self._lock:
            rows = [d for d in self._tables[EntityType.DISPATCH].values() if d.booking_id == booking_id]
        return sorted(rows, key=lambda d: d.id)
