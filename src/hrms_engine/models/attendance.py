"""Attendance, holiday and TOIL balance models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hrms_engine.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from hrms_engine.models.employee import Employee


ATTENDANCE_STATUSES = (
    "present",
    "absent",
    "late",
    "remote",
    "break",
    "holiday",
    "incomplete",
    "completed",
)


class AttendanceRecord(Base, TimestampMixin, UpdatedAtMixin):
    """One employee's one work session.

    ``version`` guards concurrent closes: every update is issued as
    ``WHERE attendance_id = :id AND version = :expected`` and bumps it.
    """

    __tablename__ = "attendance_record"

    attendance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_in: Mapped[datetime | None] = mapped_column(nullable=True)
    check_out: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    # Location
    check_in_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_in_location: Mapped[str | None] = mapped_column(String, nullable=True)
    check_in_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    check_out_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_accuracy: Mapped[float | None] = mapped_column(Float, nullable=True)
    check_out_location: Mapped[str | None] = mapped_column(String, nullable=True)
    check_out_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    device_info: Mapped[str | None] = mapped_column(String, nullable=True)

    # Derived work metrics
    working_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    overtime_hours: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_toil_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    toil_hours_earned: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    is_weekend_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_holiday_work: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String, nullable=False, default="present")
    is_auto_checkout: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    admin_edited_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=True,
    )
    admin_edited_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "status IN ('present', 'absent', 'late', 'remote', 'break', "
            "'holiday', 'incomplete', 'completed')",
            name="attendance_status_check",
        ),
        CheckConstraint(
            "check_out IS NULL OR check_in IS NULL OR check_out >= check_in",
            name="attendance_times_check",
        ),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(foreign_keys=[employee_id])

    @property
    def is_open(self) -> bool:
        """Checked in but not yet checked out."""
        return self.check_in is not None and self.check_out is None


class Holiday(Base, TimestampMixin):
    """Company or public holiday."""

    __tablename__ = "holiday"

    holiday_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    holiday_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    holiday_type: Mapped[str] = mapped_column(String, nullable=False, default="public")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "holiday_type IN ('public', 'company', 'optional')",
            name="holiday_type_check",
        ),
    )


class ToilBalance(Base, TimestampMixin):
    """A parcel of time-off-in-lieu hours with its own expiry."""

    __tablename__ = "toil_balance"

    toil_balance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    hours_earned: Mapped[Decimal] = mapped_column(nullable=False)
    hours_used: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    hours_remaining: Mapped[Decimal] = mapped_column(nullable=False)
    earned_date: Mapped[datetime] = mapped_column(nullable=False)
    expiry_date: Mapped[datetime] = mapped_column(nullable=False)
    is_expired: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    attendance_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("attendance_record.attendance_id"),
        nullable=True,
        unique=True,
    )
    overtime_request_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("overtime_request.request_id"),
        nullable=True,
        unique=True,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("hours_remaining >= 0", name="toil_remaining_nonnegative"),
    )
