"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API layer
renders it with. Services raise these before mutating anything so a failed
interactive operation leaves state unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class HRMSError(Exception):
    """Base class for all domain errors."""

    code = "HRMS_ERROR"
    http_status = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(HRMSError):
    """Missing or malformed input, rejected before any mutation."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(HRMSError):
    """A referenced record or employee does not exist."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class ConflictError(HRMSError):
    """The record is not in a state that allows the operation."""

    code = "CONFLICT"
    http_status = 409


class InvalidTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status.value if isinstance(from_status, Enum) else from_status
        self.to_status = to_status.value if isinstance(to_status, Enum) else to_status
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, {"from_status": self.from_status, "to_status": self.to_status})


class PermissionDeniedError(HRMSError):
    """The caller's role does not allow the operation."""

    code = "PERMISSION_DENIED"
    http_status = 403


class TransientStoreError(HRMSError):
    """The database is unavailable; the operation may be retried later."""

    code = "STORE_UNAVAILABLE"
    http_status = 503
