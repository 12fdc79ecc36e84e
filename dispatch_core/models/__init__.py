from dispatch_core.models.booking import Booking
from dispatch_core.models.dispatch import Dispatch

__all__ = ["Booking", "Dispatch"]
