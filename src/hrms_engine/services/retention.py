"""Retention sweeper - periodic deletion of expired records.

Each rule is a named delete-by-predicate evaluated against "now". Rules run
in separate transactions, so one failing rule never blocks the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import ColumnElement, delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hrms_engine.clock import Clock, local_now
from hrms_engine.constants import ASSIGNMENT_GRACE, SESSION_MAX_AGE, SHIFT_RETENTION
from hrms_engine.database import session_scope
from hrms_engine.models import Announcement, Assignment, Base, Routine, Shift, UserSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionRule:
    """Delete rows of ``model`` matching ``predicate(now)``."""

    name: str
    model: type[Base]
    predicate: Callable[[datetime], ColumnElement[bool]]

    async def apply(self, session: AsyncSession, now: datetime) -> int:
        result = await session.execute(
            delete(self.model)
            .where(self.predicate(now))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


DEFAULT_RULES: tuple[RetentionRule, ...] = (
    RetentionRule(
        "expired_announcements",
        Announcement,
        lambda now: Announcement.expires_at.is_not(None) & (Announcement.expires_at < now),
    ),
    RetentionRule(
        "overdue_assignments",
        Assignment,
        lambda now: (Assignment.due_date < now - ASSIGNMENT_GRACE)
        & (Assignment.status != "completed"),
    ),
    RetentionRule(
        "expired_routines",
        Routine,
        lambda now: Routine.expires_at < now,
    ),
    RetentionRule(
        "expired_sessions",
        UserSession,
        lambda now: UserSession.expires_at < now,
    ),
    RetentionRule(
        "stale_sessions",
        UserSession,
        lambda now: UserSession.created_at < now - SESSION_MAX_AGE,
    ),
    RetentionRule(
        "old_shifts",
        Shift,
        lambda now: Shift.status.in_(("completed", "cancelled"))
        & (Shift.created_at < now - SHIFT_RETENTION),
    ),
)


@dataclass
class SweepResult:
    """Rows deleted per rule, plus the rules that failed."""

    run_at: datetime
    deleted: dict[str, int] = field(default_factory=dict)
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())

    @property
    def success(self) -> bool:
        return not self.errors


class RetentionSweeper:
    """Runs every retention rule in its own transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = local_now,
        rules: tuple[RetentionRule, ...] = DEFAULT_RULES,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.rules = rules

    async def sweep(self, now: datetime | None = None) -> SweepResult:
        now = now or self.clock()
        result = SweepResult(run_at=now)

        for rule in self.rules:
            try:
                async with session_scope(self.session_factory) as session:
                    count = await rule.apply(session, now)
            except Exception as e:
                logger.exception("Retention rule %s failed", rule.name)
                result.errors.append({"rule": rule.name, "message": str(e)})
                continue

            result.deleted[rule.name] = count
            if count:
                logger.info("Retention rule %s deleted %d rows", rule.name, count)

        logger.info(
            "Retention sweep finished: %d rows deleted, %d rule(s) failed",
            result.total_deleted,
            len(result.errors),
        )
        return result
