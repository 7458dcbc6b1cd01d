"""HRMS engine services."""

from hrms_engine.services.approval_service import ApprovalService
from hrms_engine.services.attendance_service import AttendanceService, LocationFix
from hrms_engine.services.delivery_tracker import MessagingCleanupResult, MessagingService
from hrms_engine.services.reconciler import MidnightReconciler, ReconciliationResult
from hrms_engine.services.retention import RetentionRule, RetentionSweeper, SweepResult
from hrms_engine.services.state_machine import (
    DeliveryStateMachine,
    DeliveryStatus,
    LogStatus,
    RequestStateMachine,
    RequestStatus,
    RequestType,
)
from hrms_engine.services.toil_service import ToilBalanceSummary, ToilService

__all__ = [
    "ApprovalService",
    "AttendanceService",
    "DeliveryStateMachine",
    "DeliveryStatus",
    "LocationFix",
    "LogStatus",
    "MessagingCleanupResult",
    "MessagingService",
    "MidnightReconciler",
    "ReconciliationResult",
    "RequestStateMachine",
    "RequestStatus",
    "RequestType",
    "RetentionRule",
    "RetentionSweeper",
    "SweepResult",
    "ToilBalanceSummary",
    "ToilService",
]
