"""
Pydantic schemas for booking-related request/response validation.

`BookingRead` doubles as the immutable snapshot every entity store returns.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from dispatch_core.domain.states import BookingStatus, ServiceType
from dispatch_core.domain.validation import ensure_utc


class BookingCreate(BaseModel):
    source: str = Field(..., min_length=1, max_length=255)
    destination: str = Field(..., min_length=1, max_length=255)
    service_type: ServiceType
    price: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    user_id: int
    truck_id: Optional[int] = None
    # Only for imports of historical records; defaults to now
    created_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


class BookingRead(BaseModel):
    id: int
    source: str
    destination: str
    service_type: ServiceType
    price: Decimal
    user_id: int
    truck_id: Optional[int]
    status: BookingStatus
    created_at: datetime
    updated_at: datetime
    version: int

    model_config = {"from_attributes": True, "frozen": True}

    @field_validator("created_at", "updated_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class BookingStatusChange(BaseModel):
    target_status: BookingStatus
    from_version: int = Field(..., ge=1)


class BookingCancel(BaseModel):
    from_version: int = Field(..., ge=1)
