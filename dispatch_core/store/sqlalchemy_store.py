"""
SQLAlchemy-backed entity store.

CONCURRENCY STRATEGY: Optimistic Locking, no retries
=====================================================

Every write is one conditional UPDATE:

  UPDATE bookings SET status = :s, version = :v + 1, updated_at = now()
  WHERE id = :id AND version = :v

If rows_affected == 0 the row either vanished (NotFound) or someone else
wrote it first (VersionConflict). Unlike a counter decrement, a status change
must not be blindly re-applied on top of a newer state, so the conflict is
surfaced to the caller instead of retried here.

Each operation opens its own short session, so many store instances
(one per replica) can run against the same database with no shared lock.
"""

from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dispatch_core.core.config import get_settings
from dispatch_core.core.exceptions import InvalidState, NotFoundError, VersionConflict
from dispatch_core.core.logging import get_logger
from dispatch_core.db.base import utc_now
from dispatch_core.domain.states import BookingStatus, DispatchStatus, EntityType
from dispatch_core.domain.validation import ensure_utc
from dispatch_core.models.booking import Booking
from dispatch_core.models.dispatch import Dispatch
from dispatch_core.schemas.booking import BookingCreate, BookingRead
from dispatch_core.schemas.dispatch import DispatchRead
from dispatch_core.store.interface import Entity, EntityStore

logger = get_logger(__name__)

MODELS = {
    EntityType.BOOKING: Booking,
    EntityType.DISPATCH: Dispatch,
}

READ_SCHEMAS = {
    EntityType.BOOKING: BookingRead,
    EntityType.DISPATCH: DispatchRead,
}


def _column_value(value: Any) -> Any:
    if isinstance(value, (BookingStatus, DispatchStatus)):
        return value.value
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


class SQLAlchemyEntityStore(EntityStore):

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: int | None = None,
    ):
        self._session_factory = session_factory
        self._batch_size = batch_size or get_settings().STORE_QUERY_BATCH_SIZE

    async def get(self, entity_type: EntityType, entity_id: int) -> Entity:
        model = MODELS[entity_type]
        async with self._session_factory() as session:
            row = await session.get(model, entity_id)
        if row is None:
            raise NotFoundError(entity_type.value.capitalize(), entity_id)
        return READ_SCHEMAS[entity_type].model_validate(row)

    async def compare_and_swap(
        self,
        entity_type: EntityType,
        entity_id: int,
        expected_version: int,
        new_fields: dict[str, Any],
    ) -> Entity:
        model = MODELS[entity_type]
        values = {key: _column_value(value) for key, value in new_fields.items()}
        values["version"] = expected_version + 1
        values["updated_at"] = utc_now()

        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(model)
                    .where(model.id == entity_id, model.version == expected_version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )

                if result.rowcount == 0:
                    current = await session.scalar(select(model.version).where(model.id == entity_id))
                    if current is None:
                        raise NotFoundError(entity_type.value.capitalize(), entity_id)
                    logger.info(
                        "store_version_conflict",
                        entity=entity_type.value,
                        entity_id=entity_id,
                        expected=expected_version,
                        actual=current,
                    )
                    raise VersionConflict(entity_type.value, entity_id, expected_version, current)

                row = await session.get(model, entity_id, populate_existing=True)
                snapshot = READ_SCHEMAS[entity_type].model_validate(row)

        return snapshot

    async def query_bookings_by_created_range(
        self, start: datetime, end: datetime
    ) -> AsyncIterator[BookingRead]:
        """
        Keyset-paginated scan ordered by (created_at, id).
        Each batch is its own short read, so a long scan never pins a
        transaction open (read-committed semantics across batches).
        """
        start, end = ensure_utc(start), ensure_utc(end)
        last_created, last_id = None, None

        while True:
            query = select(Booking).where(Booking.created_at >= start, Booking.created_at < end)
            if last_id is not None:
                query = query.where(
                    or_(
                        Booking.created_at > last_created,
                        and_(Booking.created_at == last_created, Booking.id > last_id),
                    )
                )
            query = query.order_by(Booking.created_at.asc(), Booking.id.asc()).limit(self._batch_size)

            async with self._session_factory() as session:
                rows = list((await session.execute(query)).scalars().all())

            for row in rows:
                yield BookingRead.model_validate(row)

            if len(rows) < self._batch_size:
                return
            last_created, last_id = rows[-1].created_at, rows[-1].id

    async def create_booking(self, data: BookingCreate) -> BookingRead:
        created_at = data.created_at or utc_now()
        booking = Booking(
            source=data.source,
            destination=data.destination,
            service_type=data.service_type.value,
            price=data.price,
            user_id=data.user_id,
            truck_id=data.truck_id,
            status=BookingStatus.PENDING.value,
            version=1,
            created_at=created_at,
            updated_at=created_at,
        )
        async with self._session_factory() as session:
            async with session.begin():
                session.add(booking)
                await session.flush()
                snapshot = BookingRead.model_validate(booking)
        return snapshot

    async def create_dispatch(self, booking_id: int) -> DispatchRead:
        now = utc_now()
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    if await session.get(Booking, booking_id) is None:
                        raise NotFoundError("Booking", booking_id)

                    active = await session.scalar(
                        select(Dispatch.id).where(
                            Dispatch.booking_id == booking_id,
                            Dispatch.status != DispatchStatus.CANCELLED.value,
                        )
                    )
                    if active is not None:
                        raise InvalidState(f"Booking {booking_id} already has active dispatch {active}")

                    dispatch = Dispatch(
                        booking_id=booking_id,
                        status=DispatchStatus.PENDING.value,
                        version=1,
                        created_at=now,
                        updated_at=now,
                    )
                    session.add(dispatch)
                    await session.flush()
                    snapshot = DispatchRead.model_validate(dispatch)
        except IntegrityError:
            # Lost the race against a concurrent create; the partial unique index held
            raise InvalidState(f"Booking {booking_id} already has an active dispatch") from None
        return snapshot

    async def list_dispatches_for_booking(self, booking_id: int) -> list[DispatchRead]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Dispatch).where(Dispatch.booking_id == booking_id).order_by(Dispatch.id.asc())
            )
            return [DispatchRead.model_validate(row) for row in result.scalars().all()]
