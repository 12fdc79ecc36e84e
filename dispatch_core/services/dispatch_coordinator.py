"""
Dispatch coordinator: the only entry point for dispatch lifecycle mutation.

COUPLING RULES (dispatch -> booking only)
=========================================

  dispatch pending -> dispatched    booking must be confirmed or in_progress
  dispatch dispatched -> in_transit booking confirmed -> in_progress
  dispatch arrived -> completed     booking in_progress -> completed
  dispatch * -> cancelled           booking untouched (it may be re-dispatched)

  booking * -> cancelled            every non-terminal dispatch -> cancelled

Propagation only ever flows one way per rule, so a write can never trigger
a write that triggers it back.

The dispatch write and the coupled booking write are two independent
compare-and-swaps. If the second one cannot apply (booking cancelled in the
meantime, or a concurrent writer bumped its version) the first one still
stands and a CouplingSkipped warning is returned. `reapply_coupling` lets a
caller bring the booking in line later without touching the dispatch.

Nothing here retries. VersionConflict goes straight back to the caller.
"""

from datetime import datetime

from dispatch_core.core.exceptions import (
    AlreadySet,
    InvalidState,
    InvalidTransition,
    NotFoundError,
    VersionConflict,
)
from dispatch_core.core.logging import get_logger
from dispatch_core.core.metrics import record_coupling
from dispatch_core.domain.states import (
    BOOKING_TERMINAL,
    DISPATCH_TERMINAL,
    DISPATCHABLE_BOOKING,
    DRIVER_ASSIGNABLE,
    BookingStatus,
    DispatchStatus,
    EntityType,
    assert_dispatch_transition,
)
from dispatch_core.domain.validation import ensure_utc, validate_dispatch_timestamps
from dispatch_core.schemas.booking import BookingCreate, BookingRead
from dispatch_core.schemas.dispatch import (
    BookingTransitionResult,
    BookingWithDispatch,
    CouplingSkipped,
    DispatchRead,
    DispatchTransitionResult,
)
from dispatch_core.services.transition_engine import EntityRef, TransitionEngine
from dispatch_core.store.interface import EntityStore

logger = get_logger(__name__)

# Dispatch status reached -> (booking status required, booking status to drive to)
COUPLED_EDGES: dict[DispatchStatus, tuple[BookingStatus, BookingStatus]] = {
    DispatchStatus.IN_TRANSIT: (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS),
    DispatchStatus.COMPLETED: (BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED),
}


class DispatchCoordinator:

    def __init__(self, store: EntityStore, engine: TransitionEngine | None = None):
        self.store = store
        self.engine = engine or TransitionEngine(store)

    # -- reads -------------------------------------------------------------

    async def get_booking(self, booking_id: int) -> BookingRead:
        return await self.store.get(EntityType.BOOKING, booking_id)

    async def get_dispatch(self, dispatch_id: int) -> DispatchRead:
        return await self.store.get(EntityType.DISPATCH, dispatch_id)

    async def get_booking_with_dispatch(self, booking_id: int) -> BookingWithDispatch:
        """A booking plus its active (non-cancelled) dispatch, if any."""
        booking = await self.get_booking(booking_id)
        dispatches = await self.store.list_dispatches_for_booking(booking_id)
        active = next(
            (d for d in reversed(dispatches) if d.status is not DispatchStatus.CANCELLED),
            None,
        )
        return BookingWithDispatch(booking=booking, dispatch=active)

    async def _read_dispatch(self, dispatch_id: int, expected_version: int | None) -> DispatchRead:
        dispatch = await self.get_dispatch(dispatch_id)
        if expected_version is not None and dispatch.version != expected_version:
            raise VersionConflict("dispatch", dispatch_id, expected_version, dispatch.version)
        return dispatch

    # -- creation ----------------------------------------------------------

    async def create_booking(self, data: BookingCreate) -> BookingRead:
        booking = await self.store.create_booking(data)
        logger.info(
            "booking_created",
            booking_id=booking.id,
            service_type=booking.service_type.value,
            price=str(booking.price),
        )
        return booking

    async def create_dispatch(self, booking_id: int) -> DispatchRead:
        booking = await self.get_booking(booking_id)
        if booking.status in BOOKING_TERMINAL:
            raise InvalidState(f"Booking {booking_id} is {booking.status.value} and cannot be dispatched")

        dispatch = await self.store.create_dispatch(booking_id)
        logger.info("dispatch_created", dispatch_id=dispatch.id, booking_id=booking_id)
        return dispatch

    # -- booking lifecycle -------------------------------------------------

    async def transition_booking(
        self,
        booking_id: int,
        target_status: str,
        from_version: int,
    ) -> BookingTransitionResult:
        """
        Apply a booking edge. A cancellation also cancels every
        non-terminal dispatch of the booking, each as its own write.
        """
        booking = await self.engine.apply_transition(EntityRef.booking(booking_id), from_version, target_status)

        cancelled: list[DispatchRead] = []
        warnings: list[CouplingSkipped] = []
        if booking.status is BookingStatus.CANCELLED:
            cancelled, warnings = await self._cancel_open_dispatches(booking)

        return BookingTransitionResult(booking=booking, cancelled_dispatches=cancelled, warnings=warnings)

    async def cancel_booking(self, booking_id: int, from_version: int) -> BookingTransitionResult:
        return await self.transition_booking(booking_id, BookingStatus.CANCELLED, from_version)

    async def _cancel_open_dispatches(
        self, booking: BookingRead
    ) -> tuple[list[DispatchRead], list[CouplingSkipped]]:
        cancelled: list[DispatchRead] = []
        warnings: list[CouplingSkipped] = []

        for dispatch in await self.store.list_dispatches_for_booking(booking.id):
            if dispatch.status in DISPATCH_TERMINAL:
                continue
            try:
                cancelled.append(
                    await self.engine.apply_transition(
                        EntityRef.dispatch(dispatch.id), dispatch.version, DispatchStatus.CANCELLED
                    )
                )
            except (VersionConflict, InvalidTransition, NotFoundError) as exc:
                warnings.append(
                    CouplingSkipped(
                        edge="booking:cancelled",
                        booking_id=booking.id,
                        dispatch_id=dispatch.id,
                        entity_status=dispatch.status.value,
                        reason=exc.detail,
                    )
                )
                logger.warning(
                    "coupling_skipped",
                    edge="booking:cancelled",
                    booking_id=booking.id,
                    dispatch_id=dispatch.id,
                    reason=exc.detail,
                )

        if cancelled:
            logger.info(
                "dispatches_cancelled_with_booking",
                booking_id=booking.id,
                dispatch_ids=[d.id for d in cancelled],
            )
        return cancelled, warnings

    # -- dispatch field writers ---------------------------------------------

    async def assign_driver(
        self,
        dispatch_id: int,
        driver_id: int,
        expected_version: int | None = None,
    ) -> DispatchRead:
        """Set assigned_driver while the dispatch is pending or dispatched. Status is unchanged."""
        dispatch = await self._read_dispatch(dispatch_id, expected_version)
        if dispatch.status not in DRIVER_ASSIGNABLE:
            raise InvalidState(
                f"Cannot assign a driver to dispatch {dispatch_id} in status {dispatch.status.value}"
            )

        updated = await self.engine.apply_update(
            EntityRef.dispatch(dispatch_id), dispatch.version, {"assigned_driver": driver_id}
        )
        logger.info(
            "driver_assigned",
            dispatch_id=dispatch_id,
            driver_id=driver_id,
            previous_driver=dispatch.assigned_driver,
        )
        return updated

    async def record_dispatch_time(
        self,
        dispatch_id: int,
        timestamp: datetime,
        expected_version: int | None = None,
    ) -> DispatchRead:
        dispatch = await self._read_dispatch(dispatch_id, expected_version)
        self._ensure_open(dispatch)
        if dispatch.dispatch_time is not None:
            raise AlreadySet("Dispatch", dispatch_id, "dispatch_time")

        return await self.engine.apply_update(
            EntityRef.dispatch(dispatch_id), dispatch.version, {"dispatch_time": ensure_utc(timestamp)}
        )

    async def record_arrival_time(
        self,
        dispatch_id: int,
        timestamp: datetime,
        expected_version: int | None = None,
    ) -> DispatchRead:
        dispatch = await self._read_dispatch(dispatch_id, expected_version)
        self._ensure_open(dispatch)
        if dispatch.arrival_time is not None:
            raise AlreadySet("Dispatch", dispatch_id, "arrival_time")

        timestamp = ensure_utc(timestamp)
        validate_dispatch_timestamps(dispatch.dispatch_time, timestamp)

        return await self.engine.apply_update(
            EntityRef.dispatch(dispatch_id), dispatch.version, {"arrival_time": timestamp}
        )

    @staticmethod
    def _ensure_open(dispatch: DispatchRead) -> None:
        if dispatch.status in DISPATCH_TERMINAL:
            raise InvalidState(f"Dispatch {dispatch.id} is {dispatch.status.value} and no longer accepts changes")

    # -- dispatch lifecycle ------------------------------------------------

    async def transition_dispatch(
        self,
        dispatch_id: int,
        target_status: str,
        from_version: int,
    ) -> DispatchTransitionResult:
        """
        Apply a dispatch edge, then the coupling rule for that edge.

        Raises (before any write):
            NotFoundError, VersionConflict, InvalidTransition,
            InvalidState (dispatching for a booking that is not confirmed/in_progress)
        """
        dispatch = await self._read_dispatch(dispatch_id, from_version)
        assert_dispatch_transition(dispatch.status, target_status)
        target = DispatchStatus(target_status)

        if target is DispatchStatus.DISPATCHED:
            booking = await self.get_booking(dispatch.booking_id)
            if booking.status not in DISPATCHABLE_BOOKING:
                raise InvalidState(
                    f"Booking {booking.id} is {booking.status.value}; "
                    "it must be confirmed or in_progress before dispatching"
                )

        updated = await self.engine.apply_transition(EntityRef.dispatch(dispatch_id), from_version, target)
        booking, written, warnings = await self._propagate(
            updated, edge=f"{dispatch.status.value}->{target.value}"
        )

        return DispatchTransitionResult(
            dispatch=updated, booking=booking, booking_updated=written, warnings=warnings
        )

    async def reapply_coupling(self, dispatch_id: int) -> DispatchTransitionResult:
        """
        Re-run the coupling rule for the dispatch's current status.
        Used to recover after a CouplingSkipped warning; the dispatch is not written.
        """
        dispatch = await self.get_dispatch(dispatch_id)
        booking, written, warnings = await self._propagate(dispatch, edge=f"reapply:{dispatch.status.value}")
        return DispatchTransitionResult(
            dispatch=dispatch, booking=booking, booking_updated=written, warnings=warnings
        )

    async def _propagate(
        self, dispatch: DispatchRead, edge: str
    ) -> tuple[BookingRead | None, bool, list[CouplingSkipped]]:
        """Returns the booking as it now stands, whether it was written, and any warnings."""
        try:
            booking = await self.get_booking(dispatch.booking_id)
        except NotFoundError as exc:
            return None, False, [self._skipped(edge, dispatch, None, exc.detail)]

        rule = COUPLED_EDGES.get(dispatch.status)
        if rule is None:
            return booking, False, []

        required, drive_to = rule
        if booking.status is drive_to:
            return booking, False, []
        if booking.status is not required:
            record_coupling(edge, applied=False)
            return booking, False, [
                self._skipped(
                    edge,
                    dispatch,
                    booking,
                    f"booking is {booking.status.value}, expected {required.value}",
                )
            ]

        try:
            booking = await self.engine.apply_transition(
                EntityRef.booking(booking.id), booking.version, drive_to
            )
        except (VersionConflict, InvalidTransition) as exc:
            record_coupling(edge, applied=False)
            return booking, False, [self._skipped(edge, dispatch, booking, exc.detail)]

        record_coupling(edge, applied=True)
        logger.info(
            "coupling_applied",
            edge=edge,
            dispatch_id=dispatch.id,
            booking_id=booking.id,
            booking_status=booking.status.value,
        )
        return booking, True, []

    @staticmethod
    def _skipped(
        edge: str,
        dispatch: DispatchRead,
        booking: BookingRead | None,
        reason: str,
    ) -> CouplingSkipped:
        logger.warning(
            "coupling_skipped",
            edge=edge,
            dispatch_id=dispatch.id,
            booking_id=dispatch.booking_id,
            reason=reason,
        )
        return CouplingSkipped(
            edge=edge,
            booking_id=dispatch.booking_id,
            dispatch_id=dispatch.id,
            entity_status=booking.status.value if booking else None,
            reason=reason,
        )
