from dispatch_core.schemas.booking import BookingCreate, BookingRead, BookingStatusChange, BookingCancel
from dispatch_core.schemas.dispatch import (
    BookingTransitionResult,
    BookingWithDispatch,
    CouplingSkipped,
    DispatchCreate,
    DispatchRead,
    DispatchStatusChange,
    DispatchTransitionResult,
    DriverAssignment,
    TimestampRecord,
)
from dispatch_core.schemas.analytics import AnalyticsReport, PeakHoursReport, RevenueReport

__all__ = [
    "BookingCreate", "BookingRead", "BookingStatusChange", "BookingCancel",
    "DispatchCreate", "DispatchRead", "DispatchStatusChange", "DriverAssignment", "TimestampRecord",
    "CouplingSkipped", "DispatchTransitionResult", "BookingTransitionResult", "BookingWithDispatch",
    "AnalyticsReport", "RevenueReport", "PeakHoursReport",
]
