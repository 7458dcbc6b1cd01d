"""Tests for the job scheduler and the maintenance jobs."""

import asyncio
import logging
from datetime import datetime

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from hrms_engine.errors import TransientStoreError
from hrms_engine.jobs import MaintenanceJobs, build_scheduler
from hrms_engine.models import AttendanceRecord
from hrms_engine.scheduler import Scheduler


class TestScheduler:
    async def test_start_and_stop(self):
        async def tick():
            pass

        scheduler = Scheduler()
        scheduler.add_job("tick", tick, seconds=60)

        assert scheduler.job_names() == ["tick"]
        assert scheduler.running is False

        scheduler.start()
        assert scheduler.running is True

        await scheduler.stop()
        assert scheduler.running is False

    async def test_restart_after_stop(self):
        async def tick():
            pass

        scheduler = Scheduler()
        scheduler.add_job("tick", tick, seconds=60)

        scheduler.start()
        await scheduler.stop()
        scheduler.start()
        await asyncio.sleep(0.05)

        assert scheduler.running is True
        assert scheduler.job_names() == ["tick"]

        await scheduler.stop()
        assert scheduler.running is False

    async def test_rejects_non_positive_interval(self):
        async def tick():
            pass

        with pytest.raises(ValueError):
            Scheduler().add_job("tick", tick, seconds=0)

    async def test_failing_job_is_logged_not_raised(self, caplog):
        async def boom():
            raise RuntimeError("kaboom")

        scheduler = Scheduler()
        scheduler.add_job("boom", boom, seconds=60)

        with caplog.at_level(logging.ERROR, logger="hrms_engine.scheduler"):
            await scheduler.run_job("boom")

        assert "Job boom failed" in caplog.text

    async def test_store_outage_is_a_warning(self, caplog):
        async def offline():
            raise TransientStoreError("connection refused")

        scheduler = Scheduler()
        scheduler.add_job("offline", offline, seconds=60)

        with caplog.at_level(logging.WARNING, logger="hrms_engine.scheduler"):
            await scheduler.run_job("offline")

        records = [r for r in caplog.records if r.name == "hrms_engine.scheduler"]
        assert records[-1].levelno == logging.WARNING


class TestMaintenanceJobs:
    async def test_build_scheduler_registers_every_job(self, session_factory, clock, settings):
        scheduler = build_scheduler(session_factory, settings, clock)

        assert scheduler.job_names() == [
            "midnight_reconciler",
            "retention_sweep",
            "message_retry",
            "messaging_cleanup",
            "toil_expiry",
        ]
        assert scheduler.running is False

    async def test_reconciler_job_runs_only_at_midnight(
        self, session, session_factory, clock, employee
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
        jobs = MaintenanceJobs(session_factory, clock)

        clock.set(datetime(2025, 3, 3, 23, 0))
        assert await jobs.midnight_reconciler() is None

        clock.set(datetime(2025, 3, 4, 0, 0, 20))
        result = await jobs.midnight_reconciler()
        assert result.records_closed == 1

        clock.set(datetime(2025, 3, 4, 0, 0, 50))
        assert await jobs.midnight_reconciler() is None

        async with session_factory() as check:
            record = (await check.execute(select(AttendanceRecord))).scalar_one()
            assert record.is_auto_checkout is True

    async def test_failed_commit_leaves_day_unmarked(
        self, session, session_factory, clock, employee, monkeypatch
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
        jobs = MaintenanceJobs(session_factory, clock)
        clock.set(datetime(2025, 3, 4, 0, 0, 10))

        async def lost_connection(self):
            raise OperationalError("COMMIT", None, Exception("connection lost"))

        monkeypatch.setattr(AsyncSession, "commit", lost_connection)
        with pytest.raises(TransientStoreError):
            await jobs.midnight_reconciler()
        monkeypatch.undo()

        assert jobs.reconciler.last_run_date is None
        assert jobs.reconciler.is_due() is True

        clock.set(datetime(2025, 3, 4, 0, 0, 40))
        result = await jobs.midnight_reconciler()
        assert result.records_closed == 1
        assert jobs.reconciler.last_run_date == datetime(2025, 3, 4).date()

    async def test_other_jobs_run_on_empty_store(self, session_factory, clock):
        jobs = MaintenanceJobs(session_factory, clock)

        assert await jobs.message_retry() == 0
        assert await jobs.toil_expiry() == 0
        assert (await jobs.messaging_cleanup()).total == 0
        assert (await jobs.retention_sweep()).total_deleted == 0

