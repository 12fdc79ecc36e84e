"""
Dispatch endpoints. Every mutation is delegated to the dispatch coordinator.
"""

from fastapi import APIRouter, Depends, status

from dispatch_core.api.deps import get_coordinator
from dispatch_core.schemas.dispatch import (
    DispatchCreate,
    DispatchRead,
    DispatchStatusChange,
    DispatchTransitionResult,
    DriverAssignment,
    TimestampRecord,
)
from dispatch_core.services.cache_service import invalidate_report_cache
from dispatch_core.services.dispatch_coordinator import DispatchCoordinator

router = APIRouter(prefix="/dispatches", tags=["Dispatches"])


@router.post("/", response_model=DispatchRead, status_code=status.HTTP_201_CREATED)
async def create_dispatch(
    dispatch_data: DispatchCreate,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """Open a dispatch for a booking. At most one non-cancelled dispatch per booking."""
    return await coordinator.create_dispatch(dispatch_data.booking_id)


@router.get("/{dispatch_id}", response_model=DispatchRead)
async def get_dispatch(
    dispatch_id: int,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return await coordinator.get_dispatch(dispatch_id)


@router.post("/{dispatch_id}/status", response_model=DispatchTransitionResult)
async def change_dispatch_status(
    dispatch_id: int,
    change: DispatchStatusChange,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """
    Move the dispatch along one edge and apply the booking coupling rule.
    Coupling problems come back as `warnings`, the dispatch change stands.
    """
    result = await coordinator.transition_dispatch(dispatch_id, change.target_status, change.from_version)
    if result.booking_updated:
        await invalidate_report_cache()
    return result


@router.post("/{dispatch_id}/coupling", response_model=DispatchTransitionResult)
async def reapply_coupling(
    dispatch_id: int,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """Bring the booking in line with the dispatch after a skipped coupling."""
    result = await coordinator.reapply_coupling(dispatch_id)
    if result.booking_updated:
        await invalidate_report_cache()
    return result


@router.post("/{dispatch_id}/driver", response_model=DispatchRead)
async def assign_driver(
    dispatch_id: int,
    assignment: DriverAssignment,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    return await coordinator.assign_driver(dispatch_id, assignment.driver_id, assignment.expected_version)


@router.post("/{dispatch_id}/dispatch-time", response_model=DispatchRead)
async def record_dispatch_time(
    dispatch_id: int,
    record: TimestampRecord,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """One-shot: 409 if already recorded."""
    return await coordinator.record_dispatch_time(dispatch_id, record.timestamp, record.expected_version)


@router.post("/{dispatch_id}/arrival-time", response_model=DispatchRead)
async def record_arrival_time(
    dispatch_id: int,
    record: TimestampRecord,
    coordinator: DispatchCoordinator = Depends(get_coordinator),
):
    """One-shot: 409 if already recorded, 422 if earlier than dispatch_time or none recorded."""
    return await coordinator.record_arrival_time(dispatch_id, record.timestamp, record.expected_version)
