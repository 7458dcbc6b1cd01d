"""Background maintenance jobs and their schedule."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_engine.clock import Clock
from hrms_engine.config import Settings
from hrms_engine.constants import STANDARD_WORK_HOURS
from hrms_engine.database import session_scope
from hrms_engine.scheduler import Scheduler
from hrms_engine.services.delivery_tracker import MessagingCleanupResult, MessagingService
from hrms_engine.services.reconciler import MidnightReconciler, ReconciliationResult
from hrms_engine.services.retention import RetentionSweeper, SweepResult
from hrms_engine.services.toil_service import ToilService

logger = logging.getLogger(__name__)


class MaintenanceJobs:
    """The periodic jobs, each running in its own session."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        *,
        standard_hours: Decimal = STANDARD_WORK_HOURS,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.reconciler = MidnightReconciler(clock, standard_hours=standard_hours)
        self.sweeper = RetentionSweeper(session_factory, clock)

    async def midnight_reconciler(self) -> ReconciliationResult | None:
        now = self.clock()
        if not self.reconciler.is_due(now):
            return None
        async with session_scope(self.session_factory) as session:
            result = await self.reconciler.run(session, now)
        self.reconciler.mark_done(now.date())
        return result

    async def retention_sweep(self) -> SweepResult:
        return await self.sweeper.sweep()

    async def message_retry(self) -> int:
        async with session_scope(self.session_factory) as session:
            return await MessagingService(session, self.clock).retry_failed()

    async def messaging_cleanup(self) -> MessagingCleanupResult:
        async with session_scope(self.session_factory) as session:
            return await MessagingService(session, self.clock).cleanup()

    async def toil_expiry(self) -> int:
        async with session_scope(self.session_factory) as session:
            return await ToilService(session, self.clock).expire()


def build_scheduler(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    clock: Clock,
) -> Scheduler:
    """Register every maintenance job on a new, not yet started scheduler."""
    jobs = MaintenanceJobs(session_factory, clock, standard_hours=settings.standard_work_hours)
    scheduler = Scheduler(settings.timezone)

    scheduler.add_job(
        "midnight_reconciler",
        jobs.midnight_reconciler,
        seconds=settings.reconciler_poll_seconds,
    )
    scheduler.add_job(
        "retention_sweep",
        jobs.retention_sweep,
        seconds=settings.retention_interval_seconds,
        run_immediately=True,
    )
    scheduler.add_job(
        "message_retry",
        jobs.message_retry,
        seconds=settings.message_retry_interval_seconds,
    )
    scheduler.add_job(
        "messaging_cleanup",
        jobs.messaging_cleanup,
        seconds=settings.messaging_cleanup_interval_seconds,
    )
    scheduler.add_job(
        "toil_expiry",
        jobs.toil_expiry,
        seconds=settings.toil_expiry_interval_seconds,
    )

    logger.info("Registered %d maintenance jobs", len(scheduler.job_names()))
    return scheduler
