"""Work-time calculations."""

from hrms_engine.calculators.time_ledger import (
    WorkMetrics,
    calculate_work_metrics,
    end_of_day,
    is_weekend,
    planned_hours,
    start_of_day,
)

__all__ = [
    "WorkMetrics",
    "calculate_work_metrics",
    "end_of_day",
    "is_weekend",
    "planned_hours",
    "start_of_day",
]
