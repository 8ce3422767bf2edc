"""
Period windows in local time.

All ranges are inclusive on both ends: a window runs from the first
millisecond of its first day to the last millisecond of its last day.
"""

import calendar
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from castar.models.types import AnalyticsPeriod, BudgetPeriod


def to_ms(moment: datetime) -> int:
    """Epoch milliseconds of a (naive local or aware) datetime."""
    return int(moment.timestamp() * 1000)


def from_ms(value: int) -> datetime:
    """Naive local datetime for epoch milliseconds."""
    return datetime.fromtimestamp(value / 1000)


def _day_bounds(first: date, last: date) -> tuple[int, int]:
    start = datetime.combine(first, time.min)
    end = datetime.combine(last + timedelta(days=1), time.min)
    return to_ms(start), to_ms(end) - 1


def _month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def period_range(
    period: Union[BudgetPeriod, str],
    now: datetime,
    start_date: Optional[int] = None,
) -> tuple[int, int]:
    """
    The current window of a budget period.

    Windows are anchored to ``now``, not to the budget's start date: daily is
    today, weekly is Monday to Sunday, monthly and yearly are the calendar
    month and year. An unrecognized period falls back to
    ``[start_date, now]``.

    Args:
        period: Budget period
        now: Reference moment
        start_date: Lower bound used only for unrecognized periods

    Returns:
        ``(from_ms, to_ms)``, both inclusive
    """
    try:
        period = BudgetPeriod(period)
    except ValueError:
        lower = start_date if start_date is not None else to_ms(now)
        return lower, to_ms(now)

    today = now.date()
    if period is BudgetPeriod.DAILY:
        return _day_bounds(today, today)
    if period is BudgetPeriod.WEEKLY:
        monday = today - timedelta(days=today.weekday())
        return _day_bounds(monday, monday + timedelta(days=6))
    if period is BudgetPeriod.MONTHLY:
        return _day_bounds(today.replace(day=1), _month_end(today.year, today.month))
    return _day_bounds(date(today.year, 1, 1), date(today.year, 12, 31))


def analytics_range(
    period: Union[AnalyticsPeriod, str],
    now: datetime,
    date_from: Optional[int] = None,
    date_to: Optional[int] = None,
) -> tuple[int, int]:
    """
    The window of an analytics period.

    Week, month and year match ``period_range``; a quarter is the calendar
    quarter containing ``now``. Custom requires both bounds.
    """
    period = AnalyticsPeriod(period)
    if period is AnalyticsPeriod.CUSTOM:
        if date_from is None or date_to is None:
            raise ValueError("Custom analytics period needs date_from and date_to")
        if date_from > date_to:
            raise ValueError("date_from must not be after date_to")
        return date_from, date_to
    if period is AnalyticsPeriod.QUARTER:
        today = now.date()
        first_month = 3 * ((today.month - 1) // 3) + 1
        return _day_bounds(
            date(today.year, first_month, 1),
            _month_end(today.year, first_month + 2),
        )

    budget_period = {
        AnalyticsPeriod.WEEK: BudgetPeriod.WEEKLY,
        AnalyticsPeriod.MONTH: BudgetPeriod.MONTHLY,
        AnalyticsPeriod.YEAR: BudgetPeriod.YEARLY,
    }[period]
    return period_range(budget_period, now)


def next_occurrence(current: int, frequency: Union[BudgetPeriod, str]) -> int:
    """
    The occurrence after ``current`` for a recurring rule.

    Monthly and yearly steps keep the day of month, clamped to the last day of
    shorter months (Jan 31 -> Feb 28/29).
    """
    frequency = BudgetPeriod(frequency)
    moment = from_ms(current)

    if frequency is BudgetPeriod.DAILY:
        return to_ms(moment + timedelta(days=1))
    if frequency is BudgetPeriod.WEEKLY:
        return to_ms(moment + timedelta(weeks=1))

    if frequency is BudgetPeriod.MONTHLY:
        year = moment.year + moment.month // 12
        month = moment.month % 12 + 1
    else:
        year = moment.year + 1
        month = moment.month
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return to_ms(moment.replace(year=year, month=month, day=day))
