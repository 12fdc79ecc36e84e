"""Status enums and transition tables for bookings and dispatches.

Both entities are independent finite-state machines. Each table maps a
status to the set of statuses reachable through exactly one edge; terminal
statuses map to the empty set.
"""

from enum import Enum

from dispatch_core.core.exceptions import InvalidTransition, ValidationFailed


class EntityType(str, Enum):
    BOOKING = "booking"
    DISPATCH = "dispatch"


class ServiceType(str, Enum):
    CARGO = "cargo"
    PASSENGER = "passenger"
    PUBLIC = "public"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DispatchStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS, BookingStatus.CANCELLED}),
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

DISPATCH_TRANSITIONS: dict[DispatchStatus, frozenset[DispatchStatus]] = {
    DispatchStatus.PENDING: frozenset({DispatchStatus.DISPATCHED, DispatchStatus.CANCELLED}),
    DispatchStatus.DISPATCHED: frozenset({DispatchStatus.IN_TRANSIT, DispatchStatus.CANCELLED}),
    DispatchStatus.IN_TRANSIT: frozenset({DispatchStatus.ARRIVED, DispatchStatus.CANCELLED}),
    DispatchStatus.ARRIVED: frozenset({DispatchStatus.COMPLETED, DispatchStatus.CANCELLED}),
    DispatchStatus.COMPLETED: frozenset(),
    DispatchStatus.CANCELLED: frozenset(),
}

BOOKING_TERMINAL = frozenset(s for s, targets in BOOKING_TRANSITIONS.items() if not targets)
DISPATCH_TERMINAL = frozenset(s for s, targets in DISPATCH_TRANSITIONS.items() if not targets)

# Dispatch statuses in which a driver may still be (re)assigned
DRIVER_ASSIGNABLE = frozenset({DispatchStatus.PENDING, DispatchStatus.DISPATCHED})

# Booking statuses that allow a dispatch to leave pending
DISPATCHABLE_BOOKING = frozenset({BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS})


def _coerce(enum_cls: type[Enum], value: str, entity: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationFailed(f"Unknown {entity} status: {value!r}") from None


def is_terminal(entity_type: EntityType, status: str) -> bool:
    if entity_type is EntityType.BOOKING:
        return _coerce(BookingStatus, status, "booking") in BOOKING_TERMINAL
    return _coerce(DispatchStatus, status, "dispatch") in DISPATCH_TERMINAL


def assert_booking_transition(current: str, target: str) -> None:
    current = _coerce(BookingStatus, current, "booking")
    target = _coerce(BookingStatus, target, "booking")
    if target not in BOOKING_TRANSITIONS[current]:
        raise InvalidTransition("booking", current.value, target.value)


def assert_dispatch_transition(current: str, target: str) -> None:
    current = _coerce(DispatchStatus, current, "dispatch")
    target = _coerce(DispatchStatus, target, "dispatch")
    if target not in DISPATCH_TRANSITIONS[current]:
        raise InvalidTransition("dispatch", current.value, target.value)


def assert_transition(entity_type: EntityType, current: str, target: str) -> None:
    if entity_type is EntityType.BOOKING:
        assert_booking_transition(current, target)
    else:
        assert_dispatch_transition(current, target)
