"""
Transition engine: validates and applies one status change to one entity.

CONCURRENCY STRATEGY: Optimistic Locking, caller-driven retry
==============================================================

Problem:
  Two dispatchers act on the same booking at the same moment.
  Both read status=confirmed, one confirms the trip, the other cancels it.
  Without a guard the second write silently overwrites the first.

Solution:
  Every entity carries a `version`. A caller names the version it read
  (`from_version`) and the engine writes only if that is still the
  persisted version:

  1. Read the entity (NotFound if missing)
  2. Reject a stale from_version before doing anything else (VersionConflict)
  3. Check the edge against the state table (InvalidTransition)
  4. Compare-and-swap status, version+1 and updated_at in one write

  Of N concurrent calls with the same from_version exactly one passes the
  CAS; the rest see VersionConflict. The engine never retries: re-reading
  and deciding again is the caller's job, because the right decision may
  differ once the new state is known.

The engine touches exactly one entity per call. Propagating a dispatch
change into its booking belongs to the dispatch coordinator.
"""

import time
from dataclasses import dataclass
from typing import Any

from dispatch_core.core.exceptions import (
    InvalidState,
    InvalidTransition,
    NotFoundError,
    ValidationFailed,
    VersionConflict,
)
from dispatch_core.core.logging import get_logger
from dispatch_core.core.metrics import record_transition, transition_latency
from dispatch_core.domain.states import (
    BookingStatus,
    DispatchStatus,
    EntityType,
    assert_transition,
    is_terminal,
)
from dispatch_core.domain.validation import validate_dispatch_timestamps, validate_update_fields
from dispatch_core.store.interface import Entity, EntityStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class EntityRef:
    entity_type: EntityType
    entity_id: int

    @classmethod
    def booking(cls, entity_id: int) -> "EntityRef":
        return cls(EntityType.BOOKING, entity_id)

    @classmethod
    def dispatch(cls, entity_id: int) -> "EntityRef":
        return cls(EntityType.DISPATCH, entity_id)


def _status_enum(entity_type: EntityType, value: str):
    if entity_type is EntityType.BOOKING:
        return BookingStatus(value)
    return DispatchStatus(value)


class TransitionEngine:

    def __init__(self, store: EntityStore):
        self.store = store

    async def apply_transition(
        self,
        ref: EntityRef,
        from_version: int,
        target_status: str,
    ) -> Entity:
        """
        Move `ref` to `target_status` along a single graph edge.

        Raises:
            NotFoundError, VersionConflict, InvalidTransition, ValidationFailed
        """
        entity = ref.entity_type.value
        start = time.perf_counter()
        try:
            current = await self.store.get(ref.entity_type, ref.entity_id)

            if current.version != from_version:
                raise VersionConflict(entity, ref.entity_id, from_version, current.version)

            assert_transition(ref.entity_type, current.status, target_status)
            target = _status_enum(ref.entity_type, target_status)

            updated = await self.store.compare_and_swap(
                ref.entity_type, ref.entity_id, from_version, {"status": target}
            )
        except NotFoundError:
            record_transition(entity, "not_found")
            raise
        except VersionConflict as exc:
            record_transition(entity, "conflict")
            logger.info(
                "transition_conflict",
                entity=entity,
                entity_id=ref.entity_id,
                expected=exc.expected,
                actual=exc.actual,
            )
            raise
        except (InvalidTransition, ValidationFailed) as exc:
            record_transition(entity, "invalid")
            logger.warning("transition_rejected", entity=entity, entity_id=ref.entity_id, reason=exc.detail)
            raise
        finally:
            transition_latency.labels(entity=entity).observe(time.perf_counter() - start)

        record_transition(entity, "success")
        logger.info(
            "entity_transitioned",
            entity=entity,
            entity_id=ref.entity_id,
            from_status=current.status.value,
            to_status=updated.status.value,
            version=updated.version,
        )
        return updated

    async def apply_update(
        self,
        ref: EntityRef,
        from_version: int,
        changes: dict[str, Any],
    ) -> Entity:
        """
        Write non-status fields (driver, timestamps) through the same CAS.
        Retired entities (terminal status) accept no further writes.

        Raises:
            NotFoundError, VersionConflict, InvalidState, ValidationFailed
        """
        validate_update_fields(changes)

        current = await self.store.get(ref.entity_type, ref.entity_id)
        if current.version != from_version:
            raise VersionConflict(ref.entity_type.value, ref.entity_id, from_version, current.version)

        if is_terminal(ref.entity_type, current.status):
            raise InvalidState(
                f"{ref.entity_type.value.capitalize()} {ref.entity_id} is {current.status.value} "
                "and no longer accepts changes"
            )

        unknown = set(changes) - set(type(current).model_fields)
        if unknown:
            raise ValidationFailed(f"Unknown fields: {', '.join(sorted(unknown))}")

        if ref.entity_type is EntityType.DISPATCH:
            merged = {**current.model_dump(), **changes}
            validate_dispatch_timestamps(merged["dispatch_time"], merged["arrival_time"])

        updated = await self.store.compare_and_swap(ref.entity_type, ref.entity_id, from_version, changes)
        logger.info(
            "entity_updated",
            entity=ref.entity_type.value,
            entity_id=ref.entity_id,
            fields=sorted(changes),
            version=updated.version,
        )
        return updated
