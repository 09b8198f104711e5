from datetime import date, datetime, timedelta
from typing import Optional, TypeVar
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from config import get_settings
from models import RecurringInterval, Transaction

D = TypeVar("D", date, datetime)


def local_now() -> datetime:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def _add_months(base: D, months: int, desired_day: Optional[int] = None) -> D:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(desired_day or base.day, days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def next_occurrence(
    anchor: D, interval: RecurringInterval, *, anchor_day: Optional[int] = None
) -> D:
    """Return ``anchor`` moved forward by one ``interval``.

    Month and year steps snap to the last day of the target month when the
    wanted day does not exist there (Jan 31 -> Feb 28/29, Feb 29 -> Feb 28).
    ``anchor_day`` is the day of month a series was started on; passing it
    keeps a Jan 31 series on Mar 31 after a short February.
    """
    if interval == RecurringInterval.daily:
        return anchor + timedelta(days=1)
    if interval == RecurringInterval.weekly:
        return anchor + timedelta(weeks=1)
    if interval == RecurringInterval.monthly:
        return _add_months(anchor, 1, anchor_day)
    if interval == RecurringInterval.yearly:
        return _add_months(anchor, 12, anchor_day)
    raise ValueError(f"Unsupported recurring interval: {interval}")


def next_report_date(now: datetime) -> datetime:
    """Midnight on the first day of the month after ``now``."""
    first_this = datetime(now.year, now.month, 1)
    return _add_months(first_this, 1)


def initial_next_recurring_date(
    start: date, interval: RecurringInterval, today: Optional[date] = None
) -> date:
    today = today or local_today()
    candidate = next_occurrence(start, interval)
    if candidate < today:
        return next_occurrence(today, interval)
    return candidate


class RecurringEngine:
    """Posts the occurrences a recurring transaction template owes."""

    max_iterations = 365

    def __init__(self, session: Session) -> None:
        self.session = session

    def catch_up(self, template: Transaction, today: Optional[date] = None) -> int:
        today = today or local_today()
        if not template.is_recurring or template.recurring_interval is None:
            return 0
        interval = template.recurring_interval
        anchor_day = template.date.day
        if template.next_recurring_date is None:
            template.next_recurring_date = next_occurrence(
                template.date, interval, anchor_day=anchor_day
            )

        posted = 0
        while template.next_recurring_date <= today and posted < self.max_iterations:
            occurrence_date = template.next_recurring_date
            self._post_occurrence(template, occurrence_date)
            template.next_recurring_date = next_occurrence(
                occurrence_date, interval, anchor_day=anchor_day
            )
            posted += 1

        if template.next_recurring_date <= today:
            # cap reached; resume from the present instead of building a backlog
            template.next_recurring_date = next_occurrence(
                today, interval, anchor_day=anchor_day
            )
        if posted:
            template.last_processed = today
        return posted

    def _post_occurrence(self, template: Transaction, occurrence_date: date) -> None:
        txn = Transaction(
            user_id=template.user_id,
            title=template.title,
            description=template.description,
            type=template.type,
            amount_cents=template.amount_cents,
            category=template.category,
            date=occurrence_date,
            payment_method=template.payment_method,
            is_recurring=False,
        )
        self.session.add(txn)
        self.session.flush()
