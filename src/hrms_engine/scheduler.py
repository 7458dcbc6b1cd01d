"""Interval job scheduler for background maintenance.

Owned by whoever builds it (the API lifespan or a test) rather than started
at import time. Jobs are coroutine functions; failures are logged and never
stop the timer.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from hrms_engine.errors import TransientStoreError

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


class Scheduler:
    """Thin wrapper over APScheduler's AsyncIOScheduler."""

    def __init__(self, timezone_name: str = "UTC"):
        self._scheduler = AsyncIOScheduler(timezone=timezone_name)
        self._jobs: dict[str, JobFunc] = {}

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def job_names(self) -> list[str]:
        return list(self._jobs)

    def add_job(
        self,
        name: str,
        func: JobFunc,
        *,
        seconds: int,
        run_immediately: bool = False,
    ) -> None:
        """Register ``func`` to run every ``seconds``.

        A job never overlaps itself; missed runs are coalesced into one.
        """
        if seconds <= 0:
            raise ValueError("Job interval must be positive")
        guarded = _guard(name, func)
        self._jobs[name] = guarded

        options: dict[str, Any] = {}
        if run_immediately:
            options["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            guarded,
            trigger=IntervalTrigger(seconds=seconds),
            id=name,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=seconds,
            **options,
        )

    async def run_job(self, name: str) -> None:
        """Run a registered job once, outside its schedule."""
        await self._jobs[name]()

    def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._scheduler.running:
            return
        self._scheduler.start()
        logger.info("Scheduler started")
        for job in self._scheduler.get_jobs():
            logger.info("Job '%s' next run: %s", job.name, job.next_run_time)

    async def stop(self) -> None:
        """Stop the scheduler; queued runs are dropped.

        AsyncIOScheduler queues its shutdown on the event loop, so yield once
        to let it land before returning.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            await asyncio.sleep(0)
            logger.info("Scheduler stopped")


def _guard(name: str, func: JobFunc) -> JobFunc:
    @functools.wraps(func)
    async def _run() -> None:
        try:
            await func()
        except TransientStoreError as e:
            logger.warning("Job %s skipped, store unavailable: %s", name, e)
        except Exception:
            logger.exception("Job %s failed", name)

    return _run
