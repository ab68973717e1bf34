import logging
from datetime import date, datetime, timedelta
from typing import Any, Optional

from config import DEFAULT_HORIZON_MONTHS
from models import RecurrenceRule
from periods import add_months, days_in_month, month_end, month_start


logger = logging.getLogger(__name__)

# Unbounded recurrences are projected up to the first day of the month this
# many months after the evaluation date.
PROJECTION_HORIZON_MONTHS = DEFAULT_HORIZON_MONTHS


def coerce_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def coerce_rule(value: Any) -> Optional[RecurrenceRule]:
    if value is None:
        return None
    try:
        return RecurrenceRule(value)
    except ValueError:
        return None


def coerce_amount(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def projection_horizon(
    as_of: date, horizon_months: int = PROJECTION_HORIZON_MONTHS
) -> date:
    target = add_months(as_of.year, as_of.month, horizon_months)
    return target.start


def effective_end(
    end_date: Optional[date],
    as_of: date,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> date:
    horizon = projection_horizon(as_of, horizon_months)
    if end_date is None:
        return horizon
    return min(end_date, horizon)


def _weekly_dates(start: date, first: date, last: date) -> list[date]:
    # Dates start + 7k that fall inside [first, last].
    if first > last:
        return []
    lead = (first - start).days
    k_first = max(0, -(-lead // 7))
    k_last = (last - start).days // 7
    return [start + timedelta(weeks=k) for k in range(k_first, k_last + 1)]


def occurrence_dates(
    txn: Any,
    year: int,
    month: int,
    as_of: date,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> list[date]:
    """Dates on which a recurring transaction falls inside the given month.

    Monthly, quarterly and yearly rules are month-granular: a matching month
    yields a single date on the anchor day, clamped to the month length and
    to the effective end date.
    Weekly rules yield every seventh day from the anchor date. Records with
    an unparsable date or an unknown rule yield nothing.
    """
    start = coerce_date(getattr(txn, "date", None))
    rule = coerce_rule(getattr(txn, "recurrence_rule", None))
    if start is None or rule is None:
        logger.debug(
            "recurrence skipped: txn=%s date=%r rule=%r",
            getattr(txn, "id", None),
            getattr(txn, "date", None),
            getattr(txn, "recurrence_rule", None),
        )
        return []

    end = effective_end(
        coerce_date(getattr(txn, "recurrence_end_date", None)),
        as_of,
        horizon_months,
    )
    first_day = month_start(year, month)
    last_day = month_end(year, month)
    if start > last_day or end < first_day or end < start:
        return []

    target_index = year * 12 + (month - 1)
    start_index = start.year * 12 + (start.month - 1)
    anchor = date(year, month, min(start.day, days_in_month(year, month)))
    anchor = min(anchor, end)

    if rule == RecurrenceRule.monthly:
        return [anchor]
    if rule == RecurrenceRule.quarterly:
        if target_index >= start_index and (target_index - start_index) % 3 == 0:
            return [anchor]
        return []
    if rule == RecurrenceRule.yearly:
        if month == start.month and year >= start.year:
            return [anchor]
        return []
    return _weekly_dates(start, max(first_day, start), min(last_day, end))


def contribution(
    txn: Any,
    year: int,
    month: int,
    as_of: date,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> float:
    """Signed amount a recurring transaction adds to one calendar month."""
    amount = coerce_amount(getattr(txn, "amount", None))
    if amount is None:
        return 0.0
    hits = len(occurrence_dates(txn, year, month, as_of, horizon_months))
    if not hits:
        return 0.0
    return amount * hits
