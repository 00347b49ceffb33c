"""
Tests for next-run calculation.
"""

from datetime import datetime, timezone

import pytest

from queuay.orchestration.cron import calculate_next_run


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestCalculateNextRun:
    """Tests for the simplified cron stepper."""

    def test_later_today(self):
        assert calculate_next_run("30 9 * * *", "UTC", utc(2024, 5, 1, 9, 0)) == utc(
            2024, 5, 1, 9, 30
        )

    def test_rolls_to_next_day(self):
        assert calculate_next_run("30 9 * * *", "UTC", utc(2024, 5, 1, 10, 0)) == utc(
            2024, 5, 2, 9, 30
        )

    def test_exact_instant_is_not_due_again(self):
        assert calculate_next_run("30 9 * * *", "UTC", utc(2024, 5, 1, 9, 30)) == utc(
            2024, 5, 2, 9, 30
        )

    def test_hourly(self):
        assert calculate_next_run("15 * * * *", "UTC", utc(2024, 5, 1, 9, 20)) == utc(
            2024, 5, 1, 10, 15
        )
        assert calculate_next_run("15 * * * *", "UTC", utc(2024, 5, 1, 9, 10)) == utc(
            2024, 5, 1, 9, 15
        )

    def test_weekly(self):
        assert calculate_next_run("0 8 * * 1", "UTC", utc(2024, 5, 6, 9, 0)) == utc(
            2024, 5, 13, 8, 0
        )

    def test_monthly_is_clamped(self):
        assert calculate_next_run("0 8 31 * *", "UTC", utc(2024, 1, 31, 9, 0)) == utc(
            2024, 2, 29, 8, 0
        )

    def test_monthly_year_rollover(self):
        assert calculate_next_run("0 8 15 * *", "UTC", utc(2024, 12, 15, 9, 0)) == utc(
            2025, 1, 15, 8, 0
        )

    @pytest.mark.parametrize(
        "expression", ["", "0 9 * *", "0 9 * * * *", "*/5 * * * *", "0 25 * * *", "1-5 9 * * *"]
    )
    def test_unsupported_expression_retries_in_an_hour(self, expression):
        now = utc(2024, 5, 1, 9, 0)
        assert calculate_next_run(expression, "UTC", now) == utc(2024, 5, 1, 10, 0)

    def test_timezone(self):
        # 09:00 in New York during daylight saving is 13:00 UTC
        result = calculate_next_run("0 9 * * *", "America/New_York", utc(2024, 7, 1, 12, 0))
        assert result == utc(2024, 7, 1, 13, 0)
        assert result.tzinfo == timezone.utc

    def test_unknown_timezone_falls_back_to_utc(self):
        assert calculate_next_run("30 9 * * *", "Mars/Olympus", utc(2024, 5, 1, 9, 0)) == utc(
            2024, 5, 1, 9, 30
        )

    def test_naive_now_is_treated_as_utc(self):
        assert calculate_next_run("30 9 * * *", "UTC", datetime(2024, 5, 1, 9, 0)) == utc(
            2024, 5, 1, 9, 30
        )

    def test_result_is_in_the_future(self):
        now = utc(2024, 5, 1, 23, 59, 59)
        assert calculate_next_run("* * * * *", "UTC", now) > now
