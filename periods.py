from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from recurrence import local_today


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def label(self) -> str:
        return period_label(self.start, self.end)


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def period_label(start: date, end: date) -> str:
    # "September 1–30, 2026"; spans across months or years name both ends
    if start.year != end.year:
        return (
            f"{start:%B} {start.day}, {start.year}–{end:%B} {end.day}, {end.year}"
        )
    if start.month != end.month:
        return f"{start:%B} {start.day}–{end:%B} {end.day}, {end.year}"
    return f"{start:%B} {start.day}–{end.day}, {end.year}"


def month_bounds(day: date) -> tuple[date, date]:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return first, next_month - date.resolution


def previous_month(now: Union[date, datetime]) -> Period:
    first_this = _as_date(now).replace(day=1)
    last_month_end = first_this - date.resolution
    last_month_start = last_month_end.replace(day=1)
    return Period("last_month", last_month_start, last_month_end)


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or local_today()
    if period == "last_month":
        return previous_month(today)
    if period == "custom" or (not period and (start or end)):
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    first, end_this = month_bounds(today)
    return Period("this_month", first, end_this)
