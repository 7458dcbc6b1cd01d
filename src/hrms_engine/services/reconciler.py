"""Midnight reconciler - closes attendance records left open overnight.

Polled every minute; does real work only during the 00:00 minute, at most
once per calendar day. Each open record from before the day boundary gets a
synthetic check-out at 23:59:59.999 of the previous day, its work metrics
derived by the time ledger, and is flagged ``incomplete`` for admin review.

Only rows with ``check_out IS NULL`` are ever selected, so running the pass
twice changes nothing the second time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.calculators.time_ledger import calculate_work_metrics, end_of_day
from hrms_engine.clock import Clock, local_now
from hrms_engine.constants import (
    AUTO_CHECKOUT_ADMIN_NOTE,
    AUTO_CHECKOUT_LOCATION,
    AUTO_CHECKOUT_NOTE,
    STANDARD_WORK_HOURS,
)
from hrms_engine.errors import HRMSError
from hrms_engine.models import AttendanceRecord, Holiday
from hrms_engine.services.audit import record_audit

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Result of one reconciliation pass."""

    run_at: datetime
    boundary: datetime
    records_selected: int = 0
    records_closed: int = 0
    records_skipped: int = 0
    records_failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether the pass completed without per-record errors."""
        return self.records_failed == 0 and len(self.errors) == 0


class MidnightReconciler:
    """Force-closes attendance records left open past the day boundary."""

    def __init__(
        self,
        clock: Clock = local_now,
        *,
        standard_hours: Decimal = STANDARD_WORK_HOURS,
    ):
        self.clock = clock
        self.standard_hours = standard_hours
        self.last_run_date: date | None = None

    def is_due(self, now: datetime | None = None) -> bool:
        """True during the 00:00 minute of a day not yet reconciled."""
        now = now or self.clock()
        if now.hour != 0 or now.minute != 0:
            return False
        return self.last_run_date != now.date()

    @staticmethod
    def boundary_for(now: datetime) -> datetime:
        """Synthetic check-out time: the last millisecond of yesterday."""
        return end_of_day(now.date() - timedelta(days=1))

    async def run(self, session: AsyncSession, now: datetime | None = None) -> ReconciliationResult:
        """Run one reconciliation pass in ``session``.

        The day is not marked here; the caller calls ``mark_done`` once the
        transaction has committed, so a failed pass is retried at the next
        midnight tick. Per-record domain errors are logged and counted.
        """
        now = now or self.clock()
        boundary = self.boundary_for(now)
        result = ReconciliationResult(run_at=now, boundary=boundary)

        logger.info("Processing midnight attendance reset (boundary %s)", boundary.isoformat())

        open_records = await session.execute(
            select(AttendanceRecord)
            .where(
                AttendanceRecord.check_out.is_(None),
                AttendanceRecord.check_in < boundary,
            )
            .order_by(AttendanceRecord.check_in)
        )
        records = list(open_records.scalars().all())
        result.records_selected = len(records)

        holidays = await self._holiday_dates(session, records)

        for record in records:
            try:
                closed = await self._close(session, record, boundary, holidays)
            except HRMSError as e:
                logger.warning("Auto-checkout failed for attendance %s: %s", record.attendance_id, e)
                result.records_failed += 1
                result.errors.append(
                    {
                        "attendance_id": str(record.attendance_id),
                        "code": e.code,
                        "message": str(e),
                    }
                )
                continue

            if closed:
                result.records_closed += 1
            else:
                result.records_skipped += 1

        logger.info(
            "Processed %d incomplete attendance records (%d closed, %d skipped, %d failed)",
            result.records_selected,
            result.records_closed,
            result.records_skipped,
            result.records_failed,
        )
        return result

    def mark_done(self, day: date) -> None:
        """Record that the pass for ``day`` has committed."""
        self.last_run_date = day

    async def _holiday_dates(
        self, session: AsyncSession, records: list[AttendanceRecord]
    ) -> set[date]:
        days = {r.check_in.date() for r in records if r.check_in is not None}
        if not days:
            return set()
        result = await session.execute(
            select(Holiday.holiday_date).where(Holiday.holiday_date.in_(days))
        )
        return set(result.scalars().all())

    async def _close(
        self,
        session: AsyncSession,
        record: AttendanceRecord,
        boundary: datetime,
        holidays: set[date],
    ) -> bool:
        """Close one record with the synthetic check-out.

        Returns False when the record was skipped (no check-in, or another
        writer closed it first).
        """
        if record.check_in is None:
            return False

        metrics = calculate_work_metrics(
            record.check_in,
            boundary,
            is_holiday=record.check_in.date() in holidays,
            standard_hours=self.standard_hours,
        )
        expected_version = record.version

        update_result = await session.execute(
            update(AttendanceRecord)
            .where(
                AttendanceRecord.attendance_id == record.attendance_id,
                AttendanceRecord.version == expected_version,
                AttendanceRecord.check_out.is_(None),
            )
            .values(
                check_out=boundary,
                check_out_location=AUTO_CHECKOUT_LOCATION,
                check_out_notes=AUTO_CHECKOUT_NOTE,
                status="incomplete",
                is_auto_checkout=True,
                admin_notes=AUTO_CHECKOUT_ADMIN_NOTE,
                version=expected_version + 1,
                **metrics.as_record_values(),
            )
            .execution_options(synchronize_session=False)
        )
        await session.refresh(record)

        if update_result.rowcount == 0:
            logger.info(
                "Attendance %s closed concurrently, skipping auto-checkout",
                record.attendance_id,
            )
            return False

        await record_audit(
            session,
            entity_type="attendance_record",
            entity_id=record.attendance_id,
            action="auto_checkout",
            details={
                "check_out": boundary.isoformat(),
                "working_hours": str(metrics.working_hours),
            },
        )
        logger.info(
            "Auto-checkout applied for employee %s - attendance %s - working hours: %s",
            record.employee_id,
            record.attendance_id,
            metrics.working_hours,
        )
        return True
