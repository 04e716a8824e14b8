"""Calendar window calculations.

Windows are measured in business days (Monday to Friday). Week and bi-week
views slide with the anchor date instead of snapping to a Monday; the client
controls where the window starts.
"""
import calendar
from dataclasses import dataclass
from datetime import date, timedelta

from .conf import scheduling_setting
from .models import CalendarViewType

BUSINESS_DAYS_PER_VIEW = {
    CalendarViewType.DAY: 1,
    CalendarViewType.WEEK: 5,
    CalendarViewType.BIWEEK: 10,
}


@dataclass(frozen=True)
class CalendarDay:
    date: date
    is_today: bool

    @property
    def display_date(self) -> str:
        return self.date.strftime("%d")

    @property
    def day_name(self) -> str:
        return self.date.strftime("%a")


class BusinessDays:
    """Weekdays in ``[start, end]``; can be iterated any number of times."""

    def __init__(self, start: date, end: date, today: date | None = None):
        self.start = start
        self.end = end
        self.today = today

    def __iter__(self):
        today = self.today or date.today()
        current = self.start
        while current <= self.end:
            if is_business_day(current):
                yield CalendarDay(date=current, is_today=current == today)
            current += timedelta(days=1)

    def dates(self) -> list[date]:
        return [day.date for day in self]


def is_weekend(value: date) -> bool:
    return value.weekday() >= 5


def is_business_day(value: date) -> bool:
    return not is_weekend(value)


def skip_weekend(value: date) -> date:
    """Move a Saturday or Sunday forward to the following Monday."""
    if value.weekday() == 5:
        return value + timedelta(days=2)
    if value.weekday() == 6:
        return value + timedelta(days=1)
    return value


def start_of(anchor: date, view_type: str, skip_weekend_start: bool | None = None) -> date:
    """First day of the window for ``view_type`` anchored on ``anchor``."""
    if skip_weekend_start is None:
        skip_weekend_start = scheduling_setting("SKIP_WEEKEND_WINDOW_START")

    if view_type == CalendarViewType.MONTH:
        return anchor.replace(day=1)
    if view_type in (CalendarViewType.WEEK, CalendarViewType.BIWEEK) and skip_weekend_start:
        return skip_weekend(anchor)
    return anchor


def nth_business_day(start: date, count: int) -> date:
    """The ``count``-th business day counting forward from ``start`` inclusive."""
    current = start
    found = 0
    while True:
        if is_business_day(current):
            found += 1
            if found == count:
                return current
        current += timedelta(days=1)


def end_of(start: date, view_type: str) -> date:
    """Last day of the window that begins on ``start``."""
    if view_type == CalendarViewType.MONTH:
        last_day = calendar.monthrange(start.year, start.month)[1]
        return start.replace(day=last_day)
    if view_type == CalendarViewType.DAY:
        return start
    return nth_business_day(start, BUSINESS_DAYS_PER_VIEW[CalendarViewType(view_type)])


def view_window(anchor: date, view_type: str) -> tuple[date, date]:
    start_date = start_of(anchor, view_type)
    return start_date, end_of(start_date, view_type)


def business_days_between(start: date, end: date, today: date | None = None) -> BusinessDays:
    return BusinessDays(start, end, today)
