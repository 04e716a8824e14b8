"""Scheduling errors.

Each error knows how to render itself for an API response; the HTTP status
mapping lives in ``api.py``.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    error_type = "scheduling_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "type": self.error_type,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(SchedulingError):
    """Raised when an assignment fails employee, task or capacity checks."""

    error_type = "validation"

    def __init__(self, message: str, conflicts: list[str] | None = None, details: dict | None = None) -> None:
        self.conflicts = list(conflicts or [])
        details = dict(details or {})
        if self.conflicts:
            details["conflicts"] = self.conflicts
        super().__init__(message, details)


class NotFoundError(SchedulingError):
    """Raised when a referenced assignment, task, employee or team does not exist."""

    error_type = "not_found"

    def __init__(self, entity: str, entity_id, message: str | None = None) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )


class ConflictError(SchedulingError):
    """Raised when the requested record already exists."""

    error_type = "conflict"


class PermissionDeniedError(SchedulingError):
    """Raised when the caller may not act on the requested employee or team."""

    error_type = "permission_denied"
