"""Attendance service - check-in, check-out and admin corrections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.calculators.time_ledger import (
    WorkMetrics,
    calculate_work_metrics,
    next_day,
    start_of_day,
)
from hrms_engine.clock import Clock, local_now
from hrms_engine.constants import MANUAL_CHECKOUT_LOCATION, ROLE_ADMIN, STANDARD_WORK_HOURS
from hrms_engine.errors import (
    ConflictError,
    HRMSError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from hrms_engine.models import ATTENDANCE_STATUSES, AttendanceRecord, Employee, Holiday
from hrms_engine.services.audit import record_audit
from hrms_engine.services.toil_service import ToilService

logger = logging.getLogger(__name__)

# Columns an admin may edit directly
ADMIN_EDITABLE_FIELDS = frozenset(
    {
        "check_in",
        "check_out",
        "status",
        "admin_notes",
        "check_in_location",
        "check_out_location",
        "check_in_notes",
        "check_out_notes",
    }
)


@dataclass(frozen=True)
class LocationFix:
    """GPS/location metadata captured at check-in or check-out."""

    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    location: str | None = None
    notes: str | None = None

    def validate(self) -> None:
        if (self.latitude is None) != (self.longitude is None):
            raise ValidationError("Latitude and longitude must be supplied together")
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise ValidationError("Latitude out of range", {"latitude": self.latitude})
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise ValidationError("Longitude out of range", {"longitude": self.longitude})
        if self.accuracy is not None and self.accuracy < 0:
            raise ValidationError("Accuracy cannot be negative", {"accuracy": self.accuracy})


@dataclass
class BulkUpdateResult:
    """Outcome of a bulk admin edit."""

    updated: int
    total: int
    errors: list[dict[str, Any]]


class AttendanceService:
    """Service for the attendance record lifecycle.

    Every write to an existing record is a compare-and-swap on ``version``
    so that a manual check-out and the midnight reconciler cannot both close
    the same record.
    """

    def __init__(
        self,
        session: AsyncSession,
        clock: Clock = local_now,
        *,
        accrue_toil: bool = True,
        standard_hours: Decimal = STANDARD_WORK_HOURS,
    ):
        self.session = session
        self.clock = clock
        self.accrue_toil = accrue_toil
        self.standard_hours = standard_hours
        self.toil_service = ToilService(session, clock)

    async def get_record(self, attendance_id: UUID) -> AttendanceRecord | None:
        """Load an attendance record by id."""
        result = await self.session.execute(
            select(AttendanceRecord).where(AttendanceRecord.attendance_id == attendance_id)
        )
        return result.scalar_one_or_none()

    async def get_for_day(self, employee_id: UUID, day: date) -> AttendanceRecord | None:
        """The record whose check-in falls on ``day``, if any."""
        result = await self.session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.employee_id == employee_id,
                AttendanceRecord.check_in >= start_of_day(day),
                AttendanceRecord.check_in < start_of_day(next_day(day)),
            )
            .order_by(AttendanceRecord.check_in.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_today(self, employee: Employee) -> AttendanceRecord | None:
        return await self.get_for_day(employee.employee_id, self.clock().date())

    async def is_holiday(self, day: date) -> bool:
        """Check if ``day`` is a company or public holiday."""
        result = await self.session.execute(
            select(func.count()).select_from(Holiday).where(Holiday.holiday_date == day)
        )
        return (result.scalar_one() or 0) > 0

    async def check_in(
        self,
        employee: Employee,
        fix: LocationFix | None = None,
        *,
        device_info: str | None = None,
        is_remote: bool = False,
    ) -> AttendanceRecord:
        """Open today's attendance record for an employee."""
        fix = fix or LocationFix()
        fix.validate()

        now = self.clock()
        existing = await self.get_for_day(employee.employee_id, now.date())
        if existing is not None:
            raise ConflictError(
                "Already checked in today",
                {"attendance_id": str(existing.attendance_id)},
            )

        record = AttendanceRecord(
            employee_id=employee.employee_id,
            work_date=now.date(),
            check_in=now,
            check_in_latitude=fix.latitude,
            check_in_longitude=fix.longitude,
            check_in_accuracy=fix.accuracy,
            check_in_location=fix.location,
            check_in_notes=fix.notes,
            device_info=device_info,
            status="remote" if is_remote else "present",
            version=1,
        )
        self.session.add(record)
        await self.session.flush()

        logger.info(
            "Employee %s checked in (attendance %s)",
            employee.employee_id,
            record.attendance_id,
        )
        return record

    async def check_out(
        self,
        employee: Employee,
        attendance_id: UUID,
        fix: LocationFix | None = None,
    ) -> tuple[AttendanceRecord, WorkMetrics]:
        """Close an open record and derive its work metrics.

        Returns the updated record and the metrics used for the working
        summary.
        """
        fix = fix or LocationFix()
        fix.validate()

        record = await self.get_record(attendance_id)
        if record is None or record.employee_id != employee.employee_id:
            raise NotFoundError("Attendance record", attendance_id)
        if record.check_out is not None:
            raise ConflictError(
                "Already checked out",
                {"attendance_id": str(attendance_id)},
            )
        if record.check_in is None:
            raise ConflictError(
                "No check-in recorded",
                {"attendance_id": str(attendance_id)},
            )

        now = self.clock()
        if now < record.check_in:
            raise ConflictError("Check-out cannot precede check-in")

        metrics = calculate_work_metrics(
            record.check_in,
            now,
            is_holiday=await self.is_holiday(record.check_in.date()),
            standard_hours=self.standard_hours,
        )

        await self._compare_and_swap(
            record,
            {
                "check_out": now,
                "check_out_latitude": fix.latitude,
                "check_out_longitude": fix.longitude,
                "check_out_accuracy": fix.accuracy,
                "check_out_location": fix.location or MANUAL_CHECKOUT_LOCATION,
                "check_out_notes": fix.notes,
                **metrics.as_record_values(),
            },
            require_open=True,
        )

        if self.accrue_toil:
            await self.toil_service.accrue_from_attendance(record)

        logger.info(
            "Employee %s checked out (attendance %s): %s hours, %s overtime",
            employee.employee_id,
            attendance_id,
            metrics.working_hours,
            metrics.overtime_hours,
        )
        return record, metrics

    async def admin_update(
        self,
        actor: Employee,
        attendance_id: UUID,
        changes: dict[str, Any],
    ) -> AttendanceRecord:
        """Apply an admin correction to a record.

        Changing either timestamp re-derives the work metrics when both are
        present.
        """
        if actor.role != ROLE_ADMIN:
            raise PermissionDeniedError("Only admins may edit attendance records")

        unknown = set(changes) - ADMIN_EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Fields cannot be edited",
                {"fields": sorted(unknown)},
            )
        if "status" in changes and changes["status"] not in ATTENDANCE_STATUSES:
            raise ValidationError("Invalid attendance status", {"status": changes["status"]})

        record = await self.get_record(attendance_id)
        if record is None:
            raise NotFoundError("Attendance record", attendance_id)

        values = dict(changes)
        if "check_in" in changes or "check_out" in changes:
            check_in = changes.get("check_in", record.check_in)
            check_out = changes.get("check_out", record.check_out)
            if check_in is not None and check_out is not None:
                if check_out < check_in:
                    raise ValidationError("Check-out cannot precede check-in")
                metrics = calculate_work_metrics(
                    check_in,
                    check_out,
                    is_holiday=await self.is_holiday(check_in.date()),
                    standard_hours=self.standard_hours,
                )
                values.update(metrics.as_record_values())
            if check_in is not None:
                values["work_date"] = check_in.date()

        values["admin_edited_by_id"] = actor.employee_id
        values["admin_edited_at"] = self.clock()

        before = {key: _jsonable(getattr(record, key)) for key in changes}
        await self._compare_and_swap(record, values)
        await record_audit(
            self.session,
            entity_type="attendance_record",
            entity_id=record.attendance_id,
            action="admin_update",
            actor_employee_id=actor.employee_id,
            details={
                "before": before,
                "after": {key: _jsonable(value) for key, value in changes.items()},
            },
        )
        return record

    async def bulk_admin_update(
        self,
        actor: Employee,
        attendance_ids: list[UUID],
        changes: dict[str, Any],
    ) -> BulkUpdateResult:
        """Apply the same admin correction to many records.

        Per-record failures are logged and reported; the others proceed.
        """
        if actor.role != ROLE_ADMIN:
            raise PermissionDeniedError("Only admins may edit attendance records")
        if not attendance_ids:
            raise ValidationError("No attendance ids supplied")

        result = BulkUpdateResult(updated=0, total=len(attendance_ids), errors=[])
        for attendance_id in attendance_ids:
            try:
                await self.admin_update(actor, attendance_id, changes)
                result.updated += 1
            except HRMSError as e:
                logger.warning("Bulk update skipped attendance %s: %s", attendance_id, e)
                result.errors.append(
                    {"attendance_id": str(attendance_id), "code": e.code, "message": str(e)}
                )
        return result

    async def recalculate_working_hours(self) -> int:
        """Re-apply the ledger to closed records stored with zero hours.

        Returns count of records fixed.
        """
        result = await self.session.execute(
            select(AttendanceRecord).where(
                AttendanceRecord.check_in.is_not(None),
                AttendanceRecord.check_out.is_not(None),
                AttendanceRecord.working_hours == 0,
            )
        )
        fixed = 0
        for record in result.scalars().all():
            metrics = calculate_work_metrics(
                record.check_in,
                record.check_out,
                is_holiday=await self.is_holiday(record.check_in.date()),
                standard_hours=self.standard_hours,
            )
            if metrics.working_hours == 0:
                continue
            try:
                await self._compare_and_swap(record, metrics.as_record_values())
            except ConflictError:
                logger.warning("Attendance %s changed during recalculation", record.attendance_id)
                continue
            fixed += 1
            logger.info(
                "Fixed attendance %s for employee %s - working hours: %s",
                record.attendance_id,
                record.employee_id,
                metrics.working_hours,
            )

        logger.info("Fixed %d attendance records with incorrect working hours", fixed)
        return fixed

    async def _compare_and_swap(
        self,
        record: AttendanceRecord,
        values: dict[str, Any],
        *,
        require_open: bool = False,
    ) -> None:
        """Conditionally update a record at the version it was read at.

        Raises ConflictError if another writer got there first; the row is
        left exactly as that writer wrote it.
        """
        expected_version = record.version
        conditions = [
            AttendanceRecord.attendance_id == record.attendance_id,
            AttendanceRecord.version == expected_version,
        ]
        if require_open:
            conditions.append(AttendanceRecord.check_out.is_(None))

        result = await self.session.execute(
            update(AttendanceRecord)
            .where(*conditions)
            .values(**values, version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(record)

        if result.rowcount == 0:
            raise ConflictError(
                "Attendance record was modified concurrently",
                {"attendance_id": str(record.attendance_id), "version": expected_version},
            )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)
