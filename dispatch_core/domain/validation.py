"""Field-level checks shared by the engine, the coordinator and the stores."""

from datetime import datetime, timezone

from dispatch_core.core.exceptions import ValidationFailed

# Fields only the store itself may write
PROTECTED_FIELDS = frozenset({"id", "version", "created_at", "updated_at", "status", "booking_id"})


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_dispatch_timestamps(
    dispatch_time: datetime | None,
    arrival_time: datetime | None,
) -> None:
    if arrival_time is None:
        return
    if dispatch_time is None:
        raise ValidationFailed("arrival_time cannot be set before dispatch_time")
    if ensure_utc(arrival_time) < ensure_utc(dispatch_time):
        raise ValidationFailed(
            f"arrival_time {arrival_time.isoformat()} is earlier than "
            f"dispatch_time {dispatch_time.isoformat()}"
        )


def validate_update_fields(changes: dict) -> None:
    forbidden = PROTECTED_FIELDS.intersection(changes)
    if forbidden:
        raise ValidationFailed(f"Fields cannot be updated directly: {', '.join(sorted(forbidden))}")
