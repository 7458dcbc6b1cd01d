"""ORM models."""

from hrms_engine.models.attendance import (
    ATTENDANCE_STATUSES,
    AttendanceRecord,
    Holiday,
    ToilBalance,
)
from hrms_engine.models.base import Base, TimestampMixin, UpdatedAtMixin
from hrms_engine.models.employee import Employee, UserSession
from hrms_engine.models.messaging import (
    ChatGroup,
    GroupMembership,
    Message,
    MessageDeliveryLog,
)
from hrms_engine.models.requests import (
    AuditEvent,
    LeaveRequest,
    OvertimeRequest,
    TimeOffRequest,
)
from hrms_engine.models.workplace import Announcement, Assignment, Routine, Shift

__all__ = [
    "ATTENDANCE_STATUSES",
    "Announcement",
    "Assignment",
    "AttendanceRecord",
    "AuditEvent",
    "Base",
    "ChatGroup",
    "Employee",
    "GroupMembership",
    "Holiday",
    "LeaveRequest",
    "Message",
    "MessageDeliveryLog",
    "OvertimeRequest",
    "Routine",
    "Shift",
    "TimeOffRequest",
    "TimestampMixin",
    "ToilBalance",
    "UpdatedAtMixin",
    "UserSession",
]
