from datetime import date
from types import SimpleNamespace
from typing import Optional

from models import RecurrenceRule, Transaction
from recurrence import (
    contribution,
    effective_end,
    occurrence_dates,
    projection_horizon,
)


def _txn(
    rule: RecurrenceRule,
    start: date,
    amount: float = -100.0,
    end: Optional[date] = None,
) -> Transaction:
    return Transaction(
        id=1,
        account_id=1,
        category_id=1,
        amount=amount,
        date=start,
        note="Test",
        is_recurring=True,
        recurrence_rule=rule,
        recurrence_end_date=end,
    )


def test_horizon_is_first_day_twenty_four_months_ahead():
    assert projection_horizon(date(2025, 1, 15)) == date(2027, 1, 1)
    assert effective_end(None, date(2025, 1, 15)) == date(2027, 1, 1)
    assert effective_end(date(2025, 6, 30), date(2025, 1, 15)) == date(2025, 6, 30)
    assert effective_end(date(2030, 1, 1), date(2025, 1, 15)) == date(2027, 1, 1)


def test_monthly_contributes_from_start_month_up_to_horizon():
    txn = _txn(RecurrenceRule.monthly, date(2025, 1, 10))
    as_of = date(2025, 1, 15)

    assert contribution(txn, 2024, 12, as_of) == 0
    for offset in range(25):
        total = 2025 * 12 + offset
        year, month = total // 12, total % 12 + 1
        assert contribution(txn, year, month, as_of) == -100.0
    assert contribution(txn, 2027, 1, as_of) == -100.0
    assert contribution(txn, 2027, 2, as_of) == 0


def test_monthly_is_month_granular_for_mid_month_start():
    txn = _txn(RecurrenceRule.monthly, date(2025, 1, 31))
    as_of = date(2025, 1, 1)
    assert contribution(txn, 2025, 1, as_of) == -100.0
    assert contribution(txn, 2025, 2, as_of) == -100.0
    assert occurrence_dates(txn, 2025, 2, as_of) == [date(2025, 2, 28)]


def test_monthly_stops_after_end_date_month():
    txn = _txn(RecurrenceRule.monthly, date(2025, 1, 10), end=date(2025, 3, 5))
    as_of = date(2025, 1, 1)
    assert contribution(txn, 2025, 3, as_of) == -100.0
    assert contribution(txn, 2025, 4, as_of) == 0


def test_listed_date_never_passes_end_date():
    txn = _txn(RecurrenceRule.monthly, date(2025, 1, 10), end=date(2025, 3, 5))
    as_of = date(2025, 1, 1)
    assert occurrence_dates(txn, 2025, 2, as_of) == [date(2025, 2, 10)]
    assert occurrence_dates(txn, 2025, 3, as_of) == [date(2025, 3, 5)]
    assert occurrence_dates(txn, 2025, 4, as_of) == []


def test_end_date_before_start_never_contributes():
    txn = _txn(RecurrenceRule.monthly, date(2025, 3, 20), end=date(2025, 3, 5))
    assert contribution(txn, 2025, 3, date(2025, 1, 1)) == 0


def test_quarterly_from_march():
    txn = _txn(RecurrenceRule.quarterly, date(2025, 3, 5), amount=300.0)
    as_of = date(2025, 1, 1)
    firing = {
        (2025, 3), (2025, 6), (2025, 9), (2025, 12),
        (2026, 3), (2026, 6), (2026, 9), (2026, 12),
    }
    for year in (2025, 2026):
        for month in range(1, 13):
            expected = 300.0 if (year, month) in firing else 0
            assert contribution(txn, year, month, as_of) == expected, (year, month)


def test_yearly_only_in_anchor_month():
    txn = _txn(RecurrenceRule.yearly, date(2024, 6, 15), amount=-600.0)
    as_of = date(2025, 6, 1)
    for year in (2024, 2025, 2026):
        for month in range(1, 13):
            expected = -600.0 if month == 6 else 0
            assert contribution(txn, year, month, as_of) == expected, (year, month)
    assert contribution(txn, 2023, 6, as_of) == 0


def test_weekly_counts_five_occurrences_when_aligned_with_month_start():
    # April 2025 has 30 days: 1, 8, 15, 22, 29.
    txn = _txn(RecurrenceRule.weekly, date(2025, 4, 1), amount=-10.0)
    assert contribution(txn, 2025, 4, date(2025, 4, 1)) == -50.0


def test_weekly_counts_four_occurrences_when_starting_late():
    # Thursday 27 March: 3, 10, 17, 24 April, then 1 May.
    txn = _txn(RecurrenceRule.weekly, date(2025, 3, 27), amount=-10.0)
    as_of = date(2025, 4, 1)
    assert contribution(txn, 2025, 4, as_of) == -40.0
    assert occurrence_dates(txn, 2025, 4, as_of) == [
        date(2025, 4, 3),
        date(2025, 4, 10),
        date(2025, 4, 17),
        date(2025, 4, 24),
    ]
    assert contribution(txn, 2025, 3, as_of) == -10.0


def test_weekly_stops_at_end_date_and_start_date():
    txn = _txn(
        RecurrenceRule.weekly, date(2025, 4, 1), amount=-10.0, end=date(2025, 4, 16)
    )
    assert contribution(txn, 2025, 4, date(2025, 4, 1)) == -30.0

    late = _txn(RecurrenceRule.weekly, date(2025, 4, 20), amount=-10.0)
    assert contribution(late, 2025, 4, date(2025, 4, 1)) == -20.0


def test_configurable_horizon():
    txn = _txn(RecurrenceRule.monthly, date(2025, 1, 10))
    as_of = date(2025, 1, 15)
    assert contribution(txn, 2025, 2, as_of, horizon_months=1) == -100.0
    assert contribution(txn, 2025, 3, as_of, horizon_months=1) == 0


def test_malformed_records_contribute_zero():
    as_of = date(2025, 1, 1)
    bad_date = SimpleNamespace(
        id=1, amount=-10, date="not-a-date", recurrence_rule="monthly",
        recurrence_end_date=None,
    )
    bad_rule = SimpleNamespace(
        id=2, amount=-10, date="2025-01-01", recurrence_rule="biweekly",
        recurrence_end_date=None,
    )
    bad_amount = SimpleNamespace(
        id=3, amount="abc", date="2025-01-01", recurrence_rule="monthly",
        recurrence_end_date=None,
    )
    for txn in (bad_date, bad_rule, bad_amount):
        assert contribution(txn, 2025, 1, as_of) == 0


def test_iso_string_records_are_accepted():
    txn = SimpleNamespace(
        id=1,
        amount="-25.5",
        date="2025-01-10",
        recurrence_rule="monthly",
        recurrence_end_date="2025-02-28",
    )
    as_of = date(2025, 1, 1)
    assert contribution(txn, 2025, 2, as_of) == -25.5
    assert contribution(txn, 2025, 3, as_of) == 0
