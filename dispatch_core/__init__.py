"""Booking/dispatch lifecycle coordination and booking analytics."""

__version__ = "1.0.0"
