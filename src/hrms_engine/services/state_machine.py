"""Request and message-delivery state machines with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from hrms_engine.errors import InvalidTransitionError

if TYPE_CHECKING:
    from hrms_engine.models import LeaveRequest, OvertimeRequest, TimeOffRequest

    ApprovalRequest = LeaveRequest | TimeOffRequest | OvertimeRequest


def _status(value: str | Enum) -> str:
    return value.value if isinstance(value, Enum) else value


class RequestStatus(str, Enum):
    """Approval request status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RequestType(str, Enum):
    """Kinds of request that go through approval."""

    LEAVE = "leave"
    TIMEOFF = "timeoff"
    OVERTIME = "overtime"


class RequestStateMachine:
    """State machine for leave / time-off / overtime requests.

    Allowed transitions:
    - pending → approved
    - pending → rejected (reason required)

    Both resolved states are terminal; nothing ever returns to pending.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RequestStatus.PENDING.value: [RequestStatus.APPROVED, RequestStatus.REJECTED],
        RequestStatus.APPROVED.value: [],  # Terminal state
        RequestStatus.REJECTED.value: [],  # Terminal state
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(_status(from_status), [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = None
            if cls.is_terminal(from_status):
                reason = f"request already {_status(from_status)}"
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions are possible."""
        status = _status(status)
        return status in cls.VALID_TRANSITIONS and not cls.VALID_TRANSITIONS[status]

    @classmethod
    def validate_request_for_transition(
        cls,
        request: ApprovalRequest,
        to_status: str,
        reason: str | None = None,
    ) -> list[str]:
        """Validate a request for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []

        if not cls.can_transition(request.status, to_status):
            errors.append(f"Cannot transition from '{request.status}' to '{to_status}'")
            return errors

        if to_status == RequestStatus.REJECTED and not (reason and reason.strip()):
            errors.append("Rejection requires a reason")

        return errors


class DeliveryStatus(str, Enum):
    """Message-level delivery status."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class LogStatus(str, Enum):
    """Per-recipient delivery log status."""

    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"
    READ = "read"


class DeliveryStateMachine:
    """State machine for best-effort message delivery.

    Allowed transitions:
    - sent → delivered | read | failed
    - delivered → read
    - failed → sent (retry)

    Only ``failed`` messages are ever retried.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        DeliveryStatus.SENT.value: [
            DeliveryStatus.DELIVERED,
            DeliveryStatus.READ,
            DeliveryStatus.FAILED,
        ],
        DeliveryStatus.DELIVERED.value: [DeliveryStatus.READ],
        DeliveryStatus.READ.value: [],
        DeliveryStatus.FAILED.value: [DeliveryStatus.SENT],
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(_status(from_status), [])

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    # Per-recipient log rows; a retry appends a fresh pending row instead
    # of reviving a failed one.
    LOG_TRANSITIONS: dict[str, list[str]] = {
        LogStatus.PENDING.value: [LogStatus.DELIVERED, LogStatus.READ, LogStatus.FAILED],
        LogStatus.DELIVERED.value: [LogStatus.READ],
        LogStatus.READ.value: [],
        LogStatus.FAILED.value: [],
    }

    @classmethod
    def validate_log_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a delivery log transition."""
        if to_status not in cls.LOG_TRANSITIONS.get(_status(from_status), []):
            raise InvalidTransitionError(from_status, to_status, "delivery log")
