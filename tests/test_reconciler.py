"""Tests for the midnight reconciler."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import select

from hrms_engine.models import AttendanceRecord, AuditEvent, ToilBalance
from hrms_engine.services.reconciler import MidnightReconciler

TUESDAY_MIDNIGHT = datetime(2025, 3, 4, 0, 0)


async def _open_record(session, employee, check_in: datetime) -> AttendanceRecord:
    record = AttendanceRecord(
        employee_id=employee.employee_id,
        work_date=check_in.date(),
        check_in=check_in,
        version=1,
    )
    session.add(record)
    await session.flush()
    return record


class TestIsDue:
    def test_only_in_first_minute(self, clock):
        reconciler = MidnightReconciler(clock)

        assert reconciler.is_due(datetime(2025, 3, 4, 0, 0, 30)) is True
        assert reconciler.is_due(datetime(2025, 3, 4, 0, 1)) is False
        assert reconciler.is_due(datetime(2025, 3, 4, 12, 0)) is False

    async def test_once_per_day(self, session, clock):
        reconciler = MidnightReconciler(clock)

        await reconciler.run(session, TUESDAY_MIDNIGHT)
        assert reconciler.is_due(datetime(2025, 3, 4, 0, 0, 45)) is True

        reconciler.mark_done(TUESDAY_MIDNIGHT.date())

        assert reconciler.last_run_date == date(2025, 3, 4)
        assert reconciler.is_due(datetime(2025, 3, 4, 0, 0, 45)) is False
        assert reconciler.is_due(datetime(2025, 3, 5, 0, 0)) is True


class TestRun:
    async def test_closes_record_left_open_overnight(self, session, clock, employee):
        record = await _open_record(session, employee, datetime(2025, 3, 3, 9, 0))

        result = await MidnightReconciler(clock).run(session, TUESDAY_MIDNIGHT)

        assert result.records_selected == 1
        assert result.records_closed == 1
        assert result.success is True

        await session.refresh(record)
        assert record.check_out == datetime(2025, 3, 3, 23, 59, 59, 999000)
        assert record.status == "incomplete"
        assert record.is_auto_checkout is True
        assert record.check_out_location == "Auto Check-out (Midnight)"
        assert record.admin_notes == "Auto-checkout due to missing manual checkout"
        assert record.working_hours == Decimal("15.00")
        assert record.overtime_hours == Decimal("7.00")
        assert record.version == 2

        events = (await session.execute(select(AuditEvent))).scalars().all()
        assert [e.action for e in events] == ["auto_checkout"]

    async def test_configured_working_day(self, session, clock, employee):
        record = await _open_record(session, employee, datetime(2025, 3, 3, 9, 0))

        reconciler = MidnightReconciler(clock, standard_hours=Decimal("12"))
        await reconciler.run(session, TUESDAY_MIDNIGHT)

        await session.refresh(record)
        assert record.overtime_hours == Decimal("3.00")

    async def test_auto_closed_records_do_not_accrue_toil(self, session, clock, employee):
        await _open_record(session, employee, datetime(2025, 3, 3, 9, 0))

        await MidnightReconciler(clock).run(session, TUESDAY_MIDNIGHT)

        assert (await session.execute(select(ToilBalance))).scalars().all() == []

    async def test_leaves_todays_and_closed_records_alone(self, session, clock, employee, admin):
        todays = await _open_record(session, admin, datetime(2025, 3, 4, 0, 0))
        closed = AttendanceRecord(
            employee_id=employee.employee_id,
            work_date=date(2025, 3, 3),
            check_in=datetime(2025, 3, 3, 9, 0),
            check_out=datetime(2025, 3, 3, 17, 0),
            working_hours=Decimal("8.00"),
            version=3,
        )
        session.add(closed)
        await session.flush()

        result = await MidnightReconciler(clock).run(session, TUESDAY_MIDNIGHT)

        assert result.records_selected == 0
        await session.refresh(todays)
        await session.refresh(closed)
        assert todays.check_out is None
        assert closed.version == 3

    async def test_second_run_changes_nothing(self, session, clock, employee):
        record = await _open_record(session, employee, datetime(2025, 3, 3, 9, 0))

        reconciler = MidnightReconciler(clock)
        await reconciler.run(session, TUESDAY_MIDNIGHT)
        await session.refresh(record)
        snapshot = {c: getattr(record, c) for c in ("check_out", "status", "version")}

        second = await MidnightReconciler(clock).run(session, TUESDAY_MIDNIGHT)

        assert second.records_selected == 0
        await session.refresh(record)
        assert {c: getattr(record, c) for c in snapshot} == snapshot

    async def test_record_from_several_days_ago(self, session, clock, employee):
        """Stale records are closed at yesterday's boundary, not their own day."""
        record = await _open_record(session, employee, datetime(2025, 3, 1, 10, 0))

        await MidnightReconciler(clock).run(session, TUESDAY_MIDNIGHT)

        await session.refresh(record)
        assert record.check_out == datetime(2025, 3, 3, 23, 59, 59, 999000)
        assert record.is_weekend_work is True
