"""
Booking model: a customer's transport request.

Key design decisions:
- `version` column enables optimistic locking for concurrent status changes
- Index on `created_at` backs the analytics range scan
- Status and service type are plain strings guarded by CHECK constraints
"""

from sqlalchemy import Column, Integer, String, Numeric, CheckConstraint, Index
from sqlalchemy.orm import relationship

from dispatch_core.db.base import Base, TimestampMixin


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    service_type = Column(String(20), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    user_id = Column(Integer, nullable=False, index=True)
    truck_id = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending")

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    dispatches = relationship("Dispatch", back_populates="booking", lazy="noload")

    __table_args__ = (
        CheckConstraint("price >= 0", name="check_booking_price_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "service_type IN ('cargo', 'passenger', 'public')",
            name="check_booking_service_type",
        ),
        Index("ix_bookings_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, status={self.status}, version={self.version})>"
