"""Tests for the operations CLI."""

import json
from dataclasses import replace
from decimal import Decimal

from sqlalchemy import select

from hrms_engine.cli import HRMSCli
from hrms_engine.models import AttendanceRecord


class TestCli:
    async def test_no_command(self, session_factory, clock, settings, capsys):
        assert await HRMSCli(session_factory, clock, settings).run_async([]) == 1

    async def test_reconcile_with_explicit_time(
        self, session, session_factory, clock, settings, employee, capsys
    ):
        session.add(
            AttendanceRecord(
                employee_id=employee.employee_id,
                work_date=clock.now.date(),
                check_in=clock.now,
                version=1,
            )
        )
        await session.commit()

        code = await HRMSCli(session_factory, clock, settings).run_async(
            ["reconcile", "--now", "2025-03-04T00:00:30"]
        )

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["records_closed"] == 1
        assert output["success"] is True

        async with session_factory() as check:
            record = (await check.execute(select(AttendanceRecord))).scalar_one()
            assert record.is_auto_checkout is True
            assert record.working_hours == Decimal("15.00")

    async def test_sweep(self, session_factory, clock, settings, capsys):
        code = await HRMSCli(session_factory, clock, settings).run_async(["sweep"])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["total_deleted"] == 0
        assert output["errors"] == []

    async def test_delivery_stats(self, session_factory, clock, settings, capsys):
        code = await HRMSCli(session_factory, clock, settings).run_async(["delivery-stats"])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert output["delivery_stats"] == {"pending": 0, "delivered": 0, "failed": 0, "read": 0}

    async def test_maintenance_commands(self, session_factory, clock, settings, capsys):
        cli = HRMSCli(session_factory, clock, settings)

        for args, key in (
            (["retry-messages"], "retried"),
            (["expire-toil"], "expired"),
            (["recalculate-hours"], "fixed"),
        ):
            assert await cli.run_async(args) == 0
            assert json.loads(capsys.readouterr().out)[key] == 0

    async def test_reconcile_uses_configured_working_day(
        self, session, session_factory, clock, settings, employee, capsys
    ):
        session.add(
            AttendanceRecord(
                employee_id=employee.employee_id,
                work_date=clock.now.date(),
                check_in=clock.now,
                version=1,
            )
        )
        await session.commit()
        ten_hour_day = replace(settings, standard_work_hours=Decimal("10"))

        code = await HRMSCli(session_factory, clock, ten_hour_day).run_async(
            ["reconcile", "--now", "2025-03-04T00:00:30"]
        )

        assert code == 0
        async with session_factory() as check:
            record = (await check.execute(select(AttendanceRecord))).scalar_one()
            assert record.overtime_hours == Decimal("5.00")
