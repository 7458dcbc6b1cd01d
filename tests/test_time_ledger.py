"""Tests for the time ledger calculations."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from hrms_engine.calculators.time_ledger import (
    calculate_work_metrics,
    elapsed_hours,
    end_of_day,
    is_weekend,
    parse_clock_time,
    planned_hours,
    round_hours,
)


class TestCalculateWorkMetrics:
    """Worked hours, overtime and TOIL for one session."""

    def test_weekday_with_overtime(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 3, 9, 0), datetime(2025, 3, 3, 18, 0))

        assert metrics.working_hours == Decimal("9.00")
        assert metrics.overtime_hours == Decimal("1.00")
        assert metrics.is_weekend is False
        assert metrics.toil_eligible is True
        assert metrics.toil_hours_earned == Decimal("1.00")

    def test_saturday_short_day(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 8, 10, 0), datetime(2025, 3, 8, 14, 0))

        assert metrics.working_hours == Decimal("4.00")
        assert metrics.overtime_hours == Decimal("0")
        assert metrics.is_weekend is True
        assert metrics.toil_eligible is True
        assert metrics.toil_hours_earned == Decimal("4.00")

    def test_standard_weekday_earns_nothing(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 4, 9, 0), datetime(2025, 3, 4, 17, 0))

        assert metrics.working_hours == Decimal("8.00")
        assert metrics.overtime_hours == Decimal("0")
        assert metrics.toil_eligible is False
        assert metrics.toil_hours_earned == Decimal("0")

    def test_holiday_counts_like_weekend(self):
        metrics = calculate_work_metrics(
            datetime(2025, 3, 4, 9, 0),
            datetime(2025, 3, 4, 12, 30),
            is_holiday=True,
        )

        assert metrics.is_weekend is False
        assert metrics.is_holiday is True
        assert metrics.toil_eligible is True
        assert metrics.toil_hours_earned == Decimal("3.50")

    def test_weekend_overtime_credits_all_hours(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 9, 8, 0), datetime(2025, 3, 9, 19, 0))

        assert metrics.overtime_hours == Decimal("3.00")
        assert metrics.toil_hours_earned == Decimal("11.00")

    def test_weekend_classified_by_check_in_day(self):
        # Friday night into Saturday morning is not weekend work
        metrics = calculate_work_metrics(datetime(2025, 3, 7, 22, 0), datetime(2025, 3, 8, 2, 0))

        assert metrics.is_weekend is False
        assert metrics.working_hours == Decimal("4.00")

    def test_reversed_pair_yields_zero(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 3, 18, 0), datetime(2025, 3, 3, 9, 0))

        assert metrics.working_hours == Decimal("0")
        assert metrics.overtime_hours == Decimal("0")

    def test_custom_standard_day(self):
        metrics = calculate_work_metrics(
            datetime(2025, 3, 3, 9, 0),
            datetime(2025, 3, 3, 17, 0),
            standard_hours=Decimal("7.5"),
        )

        assert metrics.overtime_hours == Decimal("0.50")

    def test_working_summary_shape(self):
        metrics = calculate_work_metrics(datetime(2025, 3, 3, 9, 0), datetime(2025, 3, 3, 18, 0))

        assert metrics.working_summary() == {
            "totalHours": 9.0,
            "overtimeHours": 1.0,
            "toilEarned": 1.0,
            "isWeekendWork": False,
        }


class TestHelpers:
    def test_rounding_is_half_up(self):
        assert round_hours(Decimal("1.005")) == Decimal("1.01")
        assert round_hours(Decimal("1.004")) == Decimal("1.00")

    def test_elapsed_hours_up_to_end_of_day(self):
        # 09:00 to 23:59:59.999 is 14.9999997 hours
        hours = elapsed_hours(datetime(2025, 3, 3, 9, 0), end_of_day(date(2025, 3, 3)))
        assert hours == Decimal("15.00")

    def test_end_of_day(self):
        assert end_of_day(date(2025, 3, 3)) == datetime(2025, 3, 3, 23, 59, 59, 999000)

    def test_is_weekend(self):
        assert is_weekend(date(2025, 3, 8)) is True
        assert is_weekend(date(2025, 3, 9)) is True
        assert is_weekend(date(2025, 3, 10)) is False

    def test_parse_clock_time(self):
        assert parse_clock_time("07:30").hour == 7

        for bad in ("7:30", "07-30", "ab:cd", "25:00", ""):
            with pytest.raises(ValueError):
                parse_clock_time(bad)

    def test_planned_hours_wraps_midnight(self):
        assert planned_hours(date(2025, 3, 3), "18:00", "21:30") == Decimal("3.50")
        assert planned_hours(date(2025, 3, 3), "22:00", "02:00") == Decimal("4.00")


work_sessions = st.tuples(
    st.datetimes(min_value=datetime(2020, 1, 1), max_value=datetime(2030, 12, 31)),
    st.timedeltas(min_value=timedelta(0), max_value=timedelta(hours=36)),
    st.booleans(),
)


class TestLedgerProperties:
    @given(work_sessions)
    def test_overtime_is_hours_past_standard_day(self, sample):
        check_in, duration, holiday = sample
        metrics = calculate_work_metrics(check_in, check_in + duration, is_holiday=holiday)

        assert metrics.working_hours >= 0
        assert metrics.overtime_hours == max(Decimal("0"), metrics.working_hours - Decimal("8"))

    @given(work_sessions)
    def test_toil_covers_overtime(self, sample):
        check_in, duration, holiday = sample
        metrics = calculate_work_metrics(check_in, check_in + duration, is_holiday=holiday)

        full_day = metrics.is_weekend or holiday
        expected = max(metrics.overtime_hours, metrics.working_hours if full_day else Decimal("0"))
        assert metrics.toil_hours_earned == expected
        assert metrics.toil_hours_earned >= metrics.overtime_hours
