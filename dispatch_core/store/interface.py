"""
Entity store interface.
The engine, coordinator and aggregator depend only on this contract,
so storage backends can be swapped without touching business logic.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator

from dispatch_core.domain.states import EntityType
from dispatch_core.schemas.booking import BookingCreate, BookingRead
from dispatch_core.schemas.dispatch import DispatchRead

Entity = BookingRead | DispatchRead


class EntityStore(ABC):
    """
    Durable storage for bookings and dispatches.

    Implementations:
    - SQLAlchemyEntityStore: PostgreSQL (or SQLite) through async SQLAlchemy
    - InMemoryEntityStore: process-local dicts, for development and tests

    Every write is a single compare-and-swap on the entity's `version`.
    No implementation holds a lock across calls.
    """

    @abstractmethod
    async def get(self, entity_type: EntityType, entity_id: int) -> Entity:
        """
        Read the persisted entity.

        Raises:
            NotFoundError: no such entity
        """

    @abstractmethod
    async def compare_and_swap(
        self,
        entity_type: EntityType,
        entity_id: int,
        expected_version: int,
        new_fields: dict[str, Any],
    ) -> Entity:
        """
        Apply `new_fields` iff the persisted version equals `expected_version`.

        On success the entity's version is incremented by one and
        `updated_at` is refreshed, atomically with the field changes.

        Raises:
            NotFoundError: no such entity
            VersionConflict: persisted version differs from expected_version
        """

    @abstractmethod
    def query_bookings_by_created_range(
        self, start: datetime, end: datetime
    ) -> AsyncIterator[BookingRead]:
        """Stream bookings with start <= created_at < end."""

    @abstractmethod
    async def create_booking(self, data: BookingCreate) -> BookingRead:
        """Persist a new booking in `pending` with version 1."""

    @abstractmethod
    async def create_dispatch(self, booking_id: int) -> DispatchRead:
        """
        Persist a new `pending` dispatch for a booking.

        Raises:
            InvalidState: the booking already has a non-cancelled dispatch
        """

    @abstractmethod
    async def list_dispatches_for_booking(self, booking_id: int) -> list[DispatchRead]:
        """All dispatches referencing a booking, oldest first."""

    async def close(self) -> None:
        """Release backend resources."""
