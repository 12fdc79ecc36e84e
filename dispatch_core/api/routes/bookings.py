"""
Booking endpoints. Status changes go through the dispatch coordinator so
cancellations cascade to open dispatches.
"""

from fastapi import APIRouter, Depends, status

from dispatch_core.api.deps import get_coordinator
from dispatch_core.schemas.booking import BookingCancel, BookingCreate, BookingRead, BookingStatusChange
from dispatch_core.schemas.dispatch import BookingTransitionResult, BookingWithDispatch
from dispatch_core.services.cache_service import invalidate_report_cache
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """Create a booking in `pending`."""
    booking = await coordinator.create_booking(booking_data)
    await invalidate_report_cache()
    return booking


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: int,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_booking(booking_id)


@router.get("/{booking_id}/with-dispatch", response_model=BookingWithDispatch)
async def get_booking_with_dispatch(
    booking_id: int,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """Booking plus its active dispatch (null when none)."""
    return await coordinator.get_booking_with_dispatch(booking_id)


@router.post("/{booking_id}/status", response_model=BookingTransitionResult)
async def change_booking_status(
    booking_id: int,
    change: BookingStatusChange,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """
    Move the booking along one edge of its state graph.

    `from_version` must be the version the caller last read; a stale value
    returns 409 and the caller should re-read before deciding again.
    """
    result = await coordinator.transition_booking(booking_id, change.target_status, change.from_version)
    await invalidate_report_cache()
    return result


@router.post("/{booking_id}/cancel", response_model=BookingTransitionResult)
async def cancel_booking(
    booking_id: int,
    cancel: BookingCancel,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """Cancel the booking and every open dispatch referencing it."""
    result = await coordinator.cancel_booking(booking_id, cancel.from_version)
    await invalidate_report_cache()
    return result
