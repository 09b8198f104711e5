from datetime import date, datetime, timedelta

import pytest

from models import RecurringInterval
from recurrence import (
    days_in_month,
    initial_next_recurring_date,
    local_now,
    next_occurrence,
    next_report_date,
)


@pytest.mark.parametrize("interval", list(RecurringInterval))
@pytest.mark.parametrize(
    "anchor",
    [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2023, 12, 31),
        date(2025, 6, 15),
    ],
)
def test_next_occurrence_is_always_after_anchor(anchor, interval):
    assert next_occurrence(anchor, interval) > anchor


def test_next_occurrence_daily_adds_one_day():
    assert next_occurrence(date(2024, 2, 28), RecurringInterval.daily) == date(
        2024, 2, 29
    )
    assert next_occurrence(date(2023, 12, 31), RecurringInterval.daily) == date(
        2024, 1, 1
    )


def test_next_occurrence_weekly():
    anchor = date(2024, 12, 28)
    assert next_occurrence(anchor, RecurringInterval.weekly) == anchor + timedelta(
        weeks=1
    )


def test_next_occurrence_month_end_snaps_in_leap_year():
    assert next_occurrence(date(2024, 1, 31), RecurringInterval.monthly) == date(
        2024, 2, 29
    )


def test_next_occurrence_month_end_snaps_in_common_year():
    assert next_occurrence(date(2025, 1, 31), RecurringInterval.monthly) == date(
        2025, 2, 28
    )


def test_next_occurrence_monthly_december_rolls_year():
    assert next_occurrence(date(2025, 12, 15), RecurringInterval.monthly) == date(
        2026, 1, 15
    )


def test_next_occurrence_yearly_leap_day():
    assert next_occurrence(date(2024, 2, 29), RecurringInterval.yearly) == date(
        2025, 2, 28
    )


def test_next_occurrence_anchor_day_prevents_drift():
    feb = next_occurrence(date(2024, 1, 31), RecurringInterval.monthly, anchor_day=31)
    march = next_occurrence(feb, RecurringInterval.monthly, anchor_day=31)
    april = next_occurrence(march, RecurringInterval.monthly, anchor_day=31)
    assert (feb, march, april) == (
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    )


def test_next_occurrence_keeps_time_of_day():
    anchor = datetime(2024, 1, 31, 8, 45)
    assert next_occurrence(anchor, RecurringInterval.monthly) == datetime(
        2024, 2, 29, 8, 45
    )


def test_days_in_month():
    assert days_in_month(2024, 2) == 29
    assert days_in_month(2100, 2) == 28
    assert days_in_month(2025, 12) == 31


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2026, 10, 1, 0, 0), datetime(2026, 11, 1)),
        (datetime(2026, 10, 1, 2, 30), datetime(2026, 11, 1)),
        (datetime(2026, 10, 31, 23, 59), datetime(2026, 11, 1)),
        (datetime(2026, 12, 15, 12, 0), datetime(2027, 1, 1)),
        (datetime(2024, 1, 31, 9, 0), datetime(2024, 2, 1)),
    ],
)
def test_next_report_date_is_start_of_following_month(now, expected):
    result = next_report_date(now)
    assert result == expected
    assert result > now


def test_initial_next_recurring_date_from_past_start_uses_today():
    result = initial_next_recurring_date(
        date(2024, 1, 10), RecurringInterval.weekly, today=date(2024, 3, 1)
    )
    assert result == date(2024, 3, 8)


def test_initial_next_recurring_date_from_recent_start():
    result = initial_next_recurring_date(
        date(2024, 2, 25), RecurringInterval.monthly, today=date(2024, 3, 1)
    )
    assert result == date(2024, 3, 25)


def test_local_now_is_naive():
    now = local_now()
    assert now.tzinfo is None
    assert next_report_date(now) > now
