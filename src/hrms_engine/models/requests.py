"""Leave, time-off and overtime request models plus the audit trail."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hrms_engine.models.base import Base, TimestampMixin


class ApprovalFieldsMixin:
    """Columns shared by every request that goes through approval.

    ``approved_by_id`` and ``processed_at`` are stamped on the single
    transition out of ``pending``; ``rejection_reason`` only on rejection.
    """

    request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    approved_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approval_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)


class LeaveRequest(Base, ApprovalFieldsMixin, TimestampMixin):
    """Vacation, sick, personal or emergency leave."""

    __tablename__ = "leave_request"

    leave_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="leave_request_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="leave_request_dates_check"),
    )


class TimeOffRequest(Base, ApprovalFieldsMixin, TimestampMixin):
    """Time off, optionally paid out of the TOIL balance."""

    __tablename__ = "time_off_request"

    time_off_type: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_toil_request: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    toil_hours_used: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="time_off_request_status_check",
        ),
        CheckConstraint("end_date >= start_date", name="time_off_request_dates_check"),
    )


class OvertimeRequest(Base, ApprovalFieldsMixin, TimestampMixin):
    """Pre-approval to work outside normal hours, earning TOIL."""

    __tablename__ = "overtime_request"

    requested_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    work_description: Mapped[str] = mapped_column(Text, nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_holiday: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    estimated_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    actual_hours_worked: Mapped[Decimal | None] = mapped_column(nullable=True)
    toil_hours_awarded: Mapped[Decimal | None] = mapped_column(nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="overtime_request_status_check",
        ),
    )


class AuditEvent(Base, TimestampMixin):
    """Append-only record of privileged or automatic mutations."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_employee_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    action: Mapped[str] = mapped_column(String, nullable=False)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(nullable=True)
