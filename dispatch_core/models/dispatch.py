"""
Dispatch model: the operational execution of a booking.

Key design decisions:
- Partial unique index keeps at most one non-cancelled dispatch per booking
- dispatch_time / arrival_time ordering is repeated as a CHECK constraint
- `version` column enables optimistic locking, same as bookings
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint, Index, text
from sqlalchemy.orm import relationship

from dispatch_core.db.base import Base, TimestampMixin


class Dispatch(Base, TimestampMixin):
    __tablename__ = "dispatches"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    assigned_driver = Column(Integer, nullable=True)
    dispatch_time = Column(DateTime(timezone=True), nullable=True)
    arrival_time = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(20), nullable=False, default="pending")

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    booking = relationship("Booking", back_populates="dispatches", lazy="noload")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'dispatched', 'in_transit', 'arrived', 'completed', 'cancelled')",
            name="check_dispatch_status",
        ),
        CheckConstraint(
            "arrival_time IS NULL OR (dispatch_time IS NOT NULL AND arrival_time >= dispatch_time)",
            name="check_dispatch_arrival_after_dispatch",
        ),
        Index(
            "uq_dispatches_active_booking",
            "booking_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Dispatch(id={self.id}, booking={self.booking_id}, status={self.status}, version={self.version})>"
