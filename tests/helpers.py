"""Builders shared by the test modules."""

from datetime import datetime, timezone
from decimal import Decimal
from fnmatch import fnmatchcase

from dispatch_core.domain.states import BookingStatus, ServiceType
from dispatch_core.schemas.booking import BookingCreate, BookingRead
from dispatch_core.services.transition_engine import EntityRef, TransitionEngine

# Shortest path from pending to each booking status
BOOKING_PATHS = {
    BookingStatus.PENDING: [],
    BookingStatus.CONFIRMED: [BookingStatus.CONFIRMED],
    BookingStatus.IN_PROGRESS: [BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS],
    BookingStatus.COMPLETED: [BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED],
    BookingStatus.CANCELLED: [BookingStatus.CANCELLED],
}


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_booking_data(
    price: str = "100.00",
    service_type: ServiceType = ServiceType.CARGO,
    created_at: datetime | None = None,
    user_id: int = 1,
) -> BookingCreate:
    return BookingCreate(
        source="Mumbai",
        destination="Pune",
        service_type=service_type,
        price=Decimal(price),
        user_id=user_id,
        truck_id=7,
        created_at=created_at,
    )


async def drive_booking(engine: TransitionEngine, booking: BookingRead, target: BookingStatus) -> BookingRead:
    """Walk a booking from pending to `target` through valid edges."""
    for step in BOOKING_PATHS[target]:
        booking = await engine.apply_transition(EntityRef.booking(booking.id), booking.version, step)
    return booking


class InMemoryRedis:
    """The slice of redis.asyncio.Redis the report cache uses, held in a dict (decode_responses=True)."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    async def incr(self, key):
        value = int(self.data.get(key, 0)) + 1
        self.data[key] = str(value)
        return value

    async def delete(self, *keys):
        return sum(self.data.pop(key, None) is not None for key in keys)

    async def scan_iter(self, match=None, count=None):
        for key in list(self.data):
            if match is None or fnmatchcase(key, match):
                yield key

    async def info(self, section=None):
        return {"keyspace_hits": 0, "keyspace_misses": 0}
