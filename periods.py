from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


PLAN_WINDOW_MONTHS = 12

# Treasury-plan period filters mapped to their month offset from today.
PLAN_FILTER_OFFSETS = {
    "n-1": -12,
    "current": 0,
    "n+1": 12,
}


@dataclass(frozen=True, order=True)
class MonthKey:
    year: int
    month: int

    @property
    def key(self) -> str:
        return month_key(self.year, self.month)

    @property
    def index(self) -> int:
        return self.year * 12 + (self.month - 1)

    @property
    def start(self) -> date:
        return month_start(self.year, self.month)

    @property
    def end(self) -> date:
        return month_end(self.year, self.month)

    def __str__(self) -> str:
        return self.key


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def parse_month_key(key: str) -> MonthKey:
    try:
        year_part, month_part = key.split("-")
        year, month = int(year_part), int(month_part)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid month key: {key!r}") from exc
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month key: {key!r}")
    return MonthKey(year, month)


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    return date(year, month, days_in_month(year, month))


def add_months(year: int, month: int, months: int) -> MonthKey:
    total_months = year * 12 + (month - 1) + months
    return MonthKey(total_months // 12, total_months % 12 + 1)


def months_from(
    offset: int, count: int, *, today: Optional[date] = None
) -> list[MonthKey]:
    """Consecutive months starting ``offset`` months away from the current one."""
    if count < 1:
        raise ValueError("Month window needs at least one month")
    today = today or local_today()
    first = add_months(today.year, today.month, offset)
    return [add_months(first.year, first.month, i) for i in range(count)]


def offset_for_month(key: str, *, today: Optional[date] = None) -> int:
    today = today or local_today()
    target = parse_month_key(key)
    return target.index - MonthKey(today.year, today.month).index


def plan_window(
    period_filter: Optional[str] = None, *, today: Optional[date] = None
) -> list[MonthKey]:
    offset = _plan_offset(period_filter)
    return months_from(offset, PLAN_WINDOW_MONTHS, today=today)


def highlight_month(
    period_filter: Optional[str] = None, *, today: Optional[date] = None
) -> MonthKey:
    # Same calendar month as today, in the year the filter displays.
    today = today or local_today()
    offset = _plan_offset(period_filter)
    return MonthKey(today.year + offset // 12, today.month)


def _plan_offset(period_filter: Optional[str]) -> int:
    if not period_filter:
        return 0
    try:
        return PLAN_FILTER_OFFSETS[period_filter]
    except KeyError as exc:
        raise ValueError(f"Unknown period filter: {period_filter}") from exc
