"""Tests for request and delivery state machines."""

import pytest

from hrms_engine.errors import ConflictError, InvalidTransitionError
from hrms_engine.services.state_machine import (
    DeliveryStateMachine,
    DeliveryStatus,
    RequestStateMachine,
    RequestStatus,
)


class TestRequestStateMachine:
    """Test request transitions."""

    def test_valid_transitions(self):
        assert RequestStateMachine.can_transition("pending", "approved") is True
        assert RequestStateMachine.can_transition("pending", "rejected") is True

    def test_never_returns_to_pending(self):
        for status in RequestStatus:
            assert RequestStateMachine.can_transition(status, RequestStatus.PENDING) is False

    def test_resolved_states_are_terminal(self):
        assert RequestStateMachine.is_terminal("approved") is True
        assert RequestStateMachine.is_terminal(RequestStatus.REJECTED) is True
        assert RequestStateMachine.is_terminal("pending") is False

    def test_validate_transition_raises(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            RequestStateMachine.validate_transition("approved", RequestStatus.APPROVED)

        assert exc_info.value.from_status == "approved"
        assert exc_info.value.to_status == "approved"
        assert "already approved" in str(exc_info.value)
        assert isinstance(exc_info.value, ConflictError)

    def test_rejection_needs_reason(self):
        class Pending:
            status = "pending"

        errors = RequestStateMachine.validate_request_for_transition(
            Pending(), RequestStatus.REJECTED, "   "
        )
        assert errors == ["Rejection requires a reason"]
        assert (
            RequestStateMachine.validate_request_for_transition(
                Pending(), RequestStatus.REJECTED, "Understaffed"
            )
            == []
        )


class TestDeliveryStateMachine:
    """Test message delivery transitions."""

    def test_valid_transitions(self):
        assert DeliveryStateMachine.can_transition("sent", "delivered") is True
        assert DeliveryStateMachine.can_transition("sent", "read") is True
        assert DeliveryStateMachine.can_transition("sent", "failed") is True
        assert DeliveryStateMachine.can_transition("delivered", "read") is True
        assert DeliveryStateMachine.can_transition("failed", "sent") is True

    def test_invalid_transitions(self):
        assert DeliveryStateMachine.can_transition("read", "delivered") is False
        assert DeliveryStateMachine.can_transition("delivered", "failed") is False
        assert DeliveryStateMachine.can_transition("failed", "read") is False

        with pytest.raises(InvalidTransitionError):
            DeliveryStateMachine.validate_transition(DeliveryStatus.READ, DeliveryStatus.SENT)

    def test_only_failed_messages_go_back_to_sent(self):
        assert DeliveryStateMachine.can_transition("failed", "sent") is True
        for status in ("sent", "delivered", "read"):
            assert DeliveryStateMachine.can_transition(status, DeliveryStatus.SENT) is False

    def test_log_rows_are_not_revived(self):
        DeliveryStateMachine.validate_log_transition("pending", "failed")
        with pytest.raises(InvalidTransitionError):
            DeliveryStateMachine.validate_log_transition("failed", "pending")
