"""
Domain exceptions raised by the transition engine, coordinator and aggregator.

Each one is an HTTPException so routes can let them propagate untouched;
`code` gives callers a stable machine-readable error kind.
"""

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    code = "internal_error"

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(AppException):
    code = "not_found"

    def __init__(self, resource: str = "Resource", identifier: object | None = None) -> None:
        self.resource = resource
        self.identifier = identifier
        detail = f"{resource} not found"
        if identifier is not None:
            detail = f"{resource} {identifier} not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class InvalidTransition(AppException):
    """Requested edge is not in the state graph (terminal sources included)."""

    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Invalid {entity} transition: {current} -> {target}",
        )


class VersionConflict(AppException):
    """Stale optimistic-concurrency token. Re-read and retry."""

    code = "version_conflict"

    def __init__(self, entity: str, identifier: object, expected: int, actual: int | None = None) -> None:
        self.entity = entity
        self.identifier = identifier
        self.expected = expected
        self.actual = actual
        detail = f"{entity} {identifier} was modified concurrently (expected version {expected}"
        detail += f", found {actual})" if actual is not None else ")"
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class ValidationFailed(AppException):
    code = "validation_failed"

    def __init__(self, detail: str = "Validation failed") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class InvalidState(AppException):
    """Operation preconditions are not met by the entity's current state."""

    code = "invalid_state"

    def __init__(self, detail: str = "Operation not allowed in the current state") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class AlreadySet(AppException):
    """A one-shot field has already been written."""

    code = "already_set"

    def __init__(self, entity: str, identifier: object, field: str) -> None:
        self.field = field
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"{entity} {identifier} already has {field} set",
        )
