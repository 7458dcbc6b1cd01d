"""HRMS operations command line interface.

Runs the background maintenance passes by hand:
- Midnight reconciliation
- Retention sweep
- Message retry and messaging cleanup
- TOIL expiry
- Working hours repair

Usage:
    python -m hrms_engine.cli reconcile --now 2025-03-04T00:00:00
    python -m hrms_engine.cli sweep
    python -m hrms_engine.cli delivery-stats
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_engine.clock import Clock, make_clock
from hrms_engine.config import Settings, configure_logging, get_settings
from hrms_engine.database import dispose_db, init_db, session_scope
from hrms_engine.errors import HRMSError
from hrms_engine.services.attendance_service import AttendanceService
from hrms_engine.services.delivery_tracker import MessagingService
from hrms_engine.services.reconciler import MidnightReconciler
from hrms_engine.services.retention import RetentionSweeper
from hrms_engine.services.toil_service import ToilService

logger = logging.getLogger(__name__)


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string as a naive business-local time."""
    return datetime.fromisoformat(s).replace(tzinfo=None)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class HRMSCli:
    """HRMS Command Line Interface."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock
        self.settings = settings
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m hrms_engine.cli",
            description="HRMS operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        reconcile = subparsers.add_parser(
            "reconcile",
            help="Auto-close attendance records left open before today",
        )
        reconcile.add_argument(
            "--now",
            type=parse_datetime,
            help="Run as if at this local time (ISO format)",
        )

        subparsers.add_parser("sweep", help="Delete expired records")
        subparsers.add_parser("retry-messages", help="Retry failed message deliveries")
        subparsers.add_parser(
            "messaging-cleanup",
            help="Delete old delivery logs and purged messages",
        )
        subparsers.add_parser("expire-toil", help="Expire TOIL past its expiry date")
        subparsers.add_parser(
            "recalculate-hours",
            help="Recompute working hours for closed records stored with zero hours",
        )
        subparsers.add_parser("delivery-stats", help="Delivery log counts by status")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        return asyncio.run(self.run_async(args))

    async def run_async(self, args: list[str] | None = None) -> int:
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[..., Awaitable[dict[str, Any]]]] = {
            "reconcile": self._cmd_reconcile,
            "sweep": self._cmd_sweep,
            "retry-messages": self._cmd_retry_messages,
            "messaging-cleanup": self._cmd_messaging_cleanup,
            "expire-toil": self._cmd_expire_toil,
            "recalculate-hours": self._cmd_recalculate_hours,
            "delivery-stats": self._cmd_delivery_stats,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        owns_engine = self.session_factory is None
        if owns_engine:
            _, self.session_factory = init_db()
        if self.settings is None:
            self.settings = get_settings()
        if self.clock is None:
            self.clock = make_clock(self.settings.timezone)

        try:
            summary = await handler(parsed)
        except HRMSError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        except Exception as e:
            logger.exception("Command %s failed", parsed.command)
            print(f"ERROR: {e}", file=sys.stderr)
            return 1
        finally:
            if owns_engine:
                await dispose_db()
                self.session_factory = None

        print(json.dumps(summary, indent=2, default=_json_default))
        return 0

    async def _cmd_reconcile(self, args: argparse.Namespace) -> dict[str, Any]:
        now = args.now or self.clock()
        async with session_scope(self.session_factory) as session:
            result = await MidnightReconciler(
                self.clock, standard_hours=self.settings.standard_work_hours
            ).run(session, now)
        return {**asdict(result), "success": result.success}

    async def _cmd_sweep(self, args: argparse.Namespace) -> dict[str, Any]:
        result = await RetentionSweeper(self.session_factory, self.clock).sweep()
        return {
            "run_at": result.run_at,
            "deleted": result.deleted,
            "total_deleted": result.total_deleted,
            "errors": result.errors,
        }

    async def _cmd_retry_messages(self, args: argparse.Namespace) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            retried = await MessagingService(session, self.clock).retry_failed()
        return {"retried": retried}

    async def _cmd_messaging_cleanup(self, args: argparse.Namespace) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            result = await MessagingService(session, self.clock).cleanup()
        return {**asdict(result), "total": result.total}

    async def _cmd_expire_toil(self, args: argparse.Namespace) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            expired = await ToilService(session, self.clock).expire()
        return {"expired": expired}

    async def _cmd_recalculate_hours(self, args: argparse.Namespace) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            service = AttendanceService(
                session, self.clock, standard_hours=self.settings.standard_work_hours
            )
            fixed = await service.recalculate_working_hours()
        return {"fixed": fixed}

    async def _cmd_delivery_stats(self, args: argparse.Namespace) -> dict[str, Any]:
        async with session_scope(self.session_factory) as session:
            stats = await MessagingService(session, self.clock).delivery_stats()
        return {"delivery_stats": stats}


def main() -> int:
    """CLI entry point."""
    configure_logging()
    cli = HRMSCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
