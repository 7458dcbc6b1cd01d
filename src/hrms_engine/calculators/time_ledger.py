"""Time ledger - derives work metrics from a check-in/check-out pair.

Rules:
- working hours are the elapsed time, never negative, rounded to 2 dp
- overtime is anything past the standard day (8 hours)
- a session is weekend work when it *starts* on Saturday or Sunday
- TOIL is earned for overtime, or for every hour worked on a weekend/holiday

All functions are pure: no I/O, same inputs give the same outputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from hrms_engine.constants import HOURS_QUANTUM, STANDARD_WORK_HOURS

_SECONDS_PER_HOUR = Decimal("3600")
_ZERO = Decimal("0")

# datetime.weekday(): Monday == 0 ... Sunday == 6
WEEKEND_DAYS = frozenset({5, 6})


@dataclass(frozen=True)
class WorkMetrics:
    """Derived metrics for one closed work session."""

    working_hours: Decimal
    overtime_hours: Decimal
    is_weekend: bool
    is_holiday: bool
    toil_eligible: bool
    toil_hours_earned: Decimal

    def working_summary(self) -> dict[str, Any]:
        """Summary attached to a check-out response."""
        return {
            "totalHours": float(self.working_hours),
            "overtimeHours": float(self.overtime_hours),
            "toilEarned": float(self.toil_hours_earned),
            "isWeekendWork": self.is_weekend,
        }

    def as_record_values(self) -> dict[str, Any]:
        """Column values for an attendance record update."""
        return {
            "working_hours": self.working_hours,
            "overtime_hours": self.overtime_hours,
            "is_toil_eligible": self.toil_eligible,
            "toil_hours_earned": self.toil_hours_earned,
            "is_weekend_work": self.is_weekend,
            "is_holiday_work": self.is_holiday,
        }


def round_hours(value: Decimal) -> Decimal:
    """Round an hour quantity to 2 decimal places, half up."""
    return value.quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)


def elapsed_hours(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours between two instants, clamped at zero and rounded."""
    delta = end - start
    seconds = Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(
        1_000_000
    )
    return round_hours(max(_ZERO, seconds / _SECONDS_PER_HOUR))


def is_weekend(moment: datetime | date) -> bool:
    """Whether the given day is a Saturday or Sunday."""
    return moment.weekday() in WEEKEND_DAYS


def start_of_day(day: date) -> datetime:
    """00:00:00.000 of ``day``."""
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    """23:59:59.999 of ``day`` (millisecond precision, matching stored values)."""
    return datetime.combine(day, time(23, 59, 59, 999000))


def next_day(day: date) -> date:
    return day + timedelta(days=1)


def calculate_work_metrics(
    check_in: datetime,
    check_out: datetime,
    *,
    is_holiday: bool = False,
    standard_hours: Decimal = STANDARD_WORK_HOURS,
) -> WorkMetrics:
    """Compute worked hours, overtime and TOIL for a session.

    ``check_in <= check_out`` is assumed; a reversed pair yields zero hours
    rather than an error.
    """
    working_hours = elapsed_hours(check_in, check_out)
    overtime_hours = round_hours(max(_ZERO, working_hours - standard_hours))
    weekend = is_weekend(check_in)
    full_day_credit = weekend or is_holiday

    toil_eligible = overtime_hours > 0 or full_day_credit
    toil_hours_earned = round_hours(
        max(overtime_hours, working_hours if full_day_credit else _ZERO)
    )

    return WorkMetrics(
        working_hours=working_hours,
        overtime_hours=overtime_hours,
        is_weekend=weekend,
        is_holiday=is_holiday,
        toil_eligible=toil_eligible,
        toil_hours_earned=toil_hours_earned,
    )


def parse_clock_time(value: str) -> time:
    """Parse an ``HH:MM`` string, raising ValueError when malformed."""
    parts = value.split(":")
    if len(parts) != 2 or not all(p.isdigit() and len(p) == 2 for p in parts):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    return time(hour, minute)


def planned_hours(day: date, start: str, end: str) -> Decimal:
    """Hours between two ``HH:MM`` times on ``day``.

    An end time at or before the start time is taken to be on the next day.
    """
    start_dt = datetime.combine(day, parse_clock_time(start))
    end_dt = datetime.combine(day, parse_clock_time(end))
    if end_dt <= start_dt:
        end_dt += timedelta(days=1)
    return elapsed_hours(start_dt, end_dt)
