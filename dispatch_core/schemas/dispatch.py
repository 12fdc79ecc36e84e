"""
Pydantic schemas for dispatch requests, snapshots and coordinator results.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from dispatch_core.domain.states import DispatchStatus
from dispatch_core.domain.validation import ensure_utc
from dispatch_core.schemas.booking import BookingRead


class DispatchCreate(BaseModel):
    booking_id: int


class DispatchRead(BaseModel):
    id: int
    booking_id: int
    assigned_driver: Optional[int]
    dispatch_time: Optional[datetime]
    arrival_time: Optional[datetime]
    status: DispatchStatus
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("dispatch_time", "arrival_time", "created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class DispatchStatusChange(BaseModel):
    target_status: DispatchStatus
    from_version: int = Field(..., ge=1)


class DriverAssignment(BaseModel):
    driver_id: int
    expected_version: Optional[int] = Field(None, ge=1)


class TimestampRecord(BaseModel):
    timestamp: datetime
    expected_version: Optional[int] = Field(None, ge=1)


class CouplingSkipped(BaseModel):
    """Non-fatal: a coupled write could not be applied. The primary write stands."""

    code: str = "coupling_skipped"
    edge: str
    booking_id: int
    dispatch_id: Optional[int] = None
    entity_status: Optional[str] = None
    reason: str


class DispatchTransitionResult(BaseModel):
    dispatch: DispatchRead
    booking: Optional[BookingRead] = None
    # True only when the coupling rule wrote the booking in this call
    booking_updated: bool = False
    warnings: list[CouplingSkipped] = []


class BookingTransitionResult(BaseModel):
    booking: BookingRead
    cancelled_dispatches: list[DispatchRead] = []
    warnings: list[CouplingSkipped] = []


class BookingWithDispatch(BaseModel):
    booking: BookingRead
    dispatch: Optional[DispatchRead] = None


