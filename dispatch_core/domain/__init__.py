"""
Pure decision logic: status graphs and field validation.
No I/O happens in this package.
"""

from dispatch_core.domain.states import (
    BOOKING_TRANSITIONS,
    DISPATCH_TRANSITIONS,
    BookingStatus,
    DispatchStatus,
    EntityType,
    ServiceType,
    assert_transition,
    is_terminal,
)

__all__ = [
    "BOOKING_TRANSITIONS",
    "DISPATCH_TRANSITIONS",
    "BookingStatus",
    "DispatchStatus",
    "EntityType",
    "ServiceType",
    "assert_transition",
    "is_terminal",
]
