from datetime import date
from types import SimpleNamespace

import pytest

from models import Category, CategoryType, RecurrenceRule, Transaction
from periods import months_from
from projection import (
    CUMULATIVE_BALANCE,
    MONTHLY_BALANCE,
    TOTAL_EXPENSE,
    TOTAL_INCOME,
    OverrideMap,
    aggregate,
    build_plan,
    category_filter_ids,
    expand,
    list_by_month,
    normalize_override,
)


AS_OF = date(2025, 1, 15)
KEYS = ["2025-01", "2025-02", "2025-03"]


def _window():
    return months_from(0, 3, today=AS_OF)


def _categories() -> list[Category]:
    return [
        Category(id=1, name="Salaires", type=CategoryType.income, parent_id=None),
        Category(id=2, name="Salaire", type=CategoryType.income, parent_id=1),
        Category(id=3, name="Primes", type=CategoryType.income, parent_id=1),
        Category(id=10, name="Logement", type=CategoryType.expense, parent_id=None),
        Category(id=11, name="Loyer", type=CategoryType.expense, parent_id=10),
        Category(id=12, name="Energie", type=CategoryType.expense, parent_id=10),
        Category(id=20, name="Divers", type=CategoryType.expense, parent_id=None),
    ]


def _txn(
    txn_id: int,
    category_id,
    amount: float,
    start: date,
    rule=None,
    note: str = "Test",
) -> Transaction:
    return Transaction(
        id=txn_id,
        account_id=1,
        category_id=category_id,
        amount=amount,
        date=start,
        note=note,
        is_recurring=rule is not None,
        recurrence_rule=rule,
        recurrence_end_date=None,
    )


def _transactions() -> list[Transaction]:
    return [
        _txn(1, 2, 2000.0, date(2025, 1, 1), RecurrenceRule.monthly),
        _txn(2, 3, 500.0, date(2025, 2, 15)),
        _txn(3, 11, -800.0, date(2025, 1, 5), RecurrenceRule.monthly),
        _txn(4, 12, -120.0, date(2025, 1, 20), RecurrenceRule.quarterly),
        _txn(5, 20, -50.0, date(2025, 3, 3)),
        _txn(6, None, -300.0, date(2025, 2, 1), note="Virement interne"),
        _txn(7, 12, -999.0, date(2024, 12, 31)),
    ]


def _values(row) -> list[float]:
    return [row.values[k] for k in KEYS]


def test_end_to_end_override_replaces_single_month():
    txn = _txn(1, 11, -100.0, date(2025, 1, 10), RecurrenceRule.monthly)
    overrides = OverrideMap(
        [SimpleNamespace(transaction_id=1, year=2025, month=2, override_amount=-80.0)]
    )

    occurrences = expand([txn], _window(), AS_OF, overrides)
    assert [o.amount for o in occurrences] == [-100.0, -80.0, -100.0]
    assert [o.is_overridden for o in occurrences] == [False, True, False]
    assert occurrences[1].computed_amount == -100.0

    table = build_plan([txn], _categories(), _window(), AS_OF, overrides)
    assert _values(table.category_row(11)) == [-100.0, -80.0, -100.0]


def test_normalize_override_within_epsilon():
    assert normalize_override(-100.0, -100.004) is None
    assert normalize_override(-100.0, -99.995) is None
    assert normalize_override(-100.0, -80.0) == -80.0
    assert normalize_override(-100.0, -100.02) == -100.02


def test_override_within_epsilon_is_same_as_no_override():
    txn = _txn(1, 11, -100.0, date(2025, 1, 10), RecurrenceRule.monthly)
    overrides = OverrideMap()
    overrides.apply(1, 2025, 2, -100.0, -80.0)
    assert overrides.resolve(1, 2025, 2, -100.0) == -80.0

    assert overrides.apply(1, 2025, 2, -100.0, -100.001) is None
    assert len(overrides) == 0
    assert overrides.resolve(1, 2025, 2, -100.0) == -100.0

    with_reset = build_plan([txn], _categories(), _window(), AS_OF, overrides)
    without = build_plan([txn], _categories(), _window(), AS_OF)
    assert _values(with_reset.category_row(11)) == _values(without.category_row(11))


def test_zero_override_keeps_instance_visible():
    txn = _txn(1, 11, -100.0, date(2025, 1, 10), RecurrenceRule.monthly)
    overrides = OverrideMap(
        [SimpleNamespace(transaction_id=1, year=2025, month=2, override_amount=0)]
    )
    occurrences = expand([txn], _window(), AS_OF, overrides)
    feb = [o for o in occurrences if o.key == "2025-02"]
    assert len(feb) == 1
    assert feb[0].amount == 0
    assert feb[0].is_overridden


def test_parent_rows_sum_children():
    table = build_plan(_transactions(), _categories(), _window(), AS_OF)

    assert _values(table.category_row(2)) == [2000.0, 2000.0, 2000.0]
    assert _values(table.category_row(3)) == [0.0, 500.0, 0.0]
    assert _values(table.category_row(1)) == [2000.0, 2500.0, 2000.0]
    assert table.category_row(1).is_parent
    assert table.category_row(2).is_child

    assert _values(table.category_row(11)) == [-800.0, -800.0, -800.0]
    assert _values(table.category_row(12)) == [-120.0, 0.0, 0.0]
    assert _values(table.category_row(10)) == [-920.0, -800.0, -800.0]


def test_section_totals_include_categories_without_parent():
    table = build_plan(_transactions(), _categories(), _window(), AS_OF)

    divers = table.category_row(20)
    assert not divers.is_parent and not divers.is_child
    assert _values(divers) == [0.0, 0.0, -50.0]

    assert _values(table.row(TOTAL_INCOME)) == [2000.0, 2500.0, 2000.0]
    # Expense total is a magnitude; the transfer leg with no category is left out.
    assert _values(table.row(TOTAL_EXPENSE)) == [920.0, 800.0, 850.0]


def test_balances_and_running_total():
    table = build_plan(_transactions(), _categories(), _window(), AS_OF)

    balance = table.row(MONTHLY_BALANCE)
    cumulative = table.row(CUMULATIVE_BALANCE)
    assert _values(balance) == [1080.0, 1700.0, 1150.0]
    assert _values(cumulative) == [1080.0, 2780.0, 3930.0]
    assert cumulative.values[KEYS[-1]] == pytest.approx(sum(balance.values.values()))


def test_running_total_starts_at_window_not_calendar_year():
    txn = _txn(1, 2, 100.0, date(2024, 1, 1), RecurrenceRule.monthly)
    months = months_from(0, 4, today=date(2024, 11, 1))
    table = build_plan([txn], _categories(), months, date(2024, 11, 1))
    cumulative = table.row(CUMULATIVE_BALANCE)
    assert [cumulative.values[m.key] for m in months] == [100.0, 200.0, 300.0, 400.0]


def test_row_layout():
    table = build_plan(_transactions(), _categories(), _window(), AS_OF)
    assert [row.label for row in table.rows] == [
        "RECETTES",
        "Salaires",
        "Salaire",
        "Primes",
        "TOTAL RECETTES",
        "Solde mensuel",
        "Solde cumulé",
        "DÉPENSES",
        "Logement",
        "Loyer",
        "Energie",
        "Divers",
        "TOTAL DÉPENSES",
    ]


def test_cells_expose_editable_recurring_transaction():
    table = build_plan(_transactions(), _categories(), _window(), AS_OF)

    editable = table.editable_occurrence(11, "2025-02")
    assert editable is not None
    assert editable.transaction_id == 3
    assert table.editable_occurrence(3, "2025-02") is None
    assert [o.transaction_id for o in table.cell(3, "2025-02")] == [2]
    assert table.cell(3, "2025-01") == []


def test_aggregate_ignores_months_outside_window():
    occurrences = expand(_transactions(), _window(), AS_OF)
    assert all(o.transaction_id != 7 for o in occurrences)

    short = months_from(0, 1, today=AS_OF)
    table = aggregate(occurrences, _categories(), short)
    assert table.row(TOTAL_INCOME).values == {"2025-01": 2000.0}


def test_category_filter_ids_expands_parent():
    categories = _categories()
    assert category_filter_ids(categories, 10) == {10, 11, 12}
    assert category_filter_ids(categories, 11) == {11}
    assert category_filter_ids(categories, None) is None


def test_list_by_month_newest_first_with_instances():
    groups = list_by_month(_transactions(), _window(), AS_OF)
    assert [g.key for g in groups] == ["2025-03", "2025-02", "2025-01"]

    feb = groups[1]
    assert {o.transaction_id for o in feb.items} == {1, 2, 3, 6}
    assert feb.total == pytest.approx(2000.0 + 500.0 - 800.0 - 300.0)


def test_list_by_month_category_filter():
    ids = category_filter_ids(_categories(), 10)
    groups = list_by_month(_transactions(), _window(), AS_OF, category_ids=ids)
    jan = next(g for g in groups if g.key == "2025-01")
    assert [o.transaction_id for o in jan.items] == [4, 3]
    assert [o.date for o in jan.items] == [date(2025, 1, 20), date(2025, 1, 5)]


def test_malformed_literal_is_skipped():
    broken = SimpleNamespace(
        id=99,
        category_id=2,
        amount=10,
        date="31-01-2025",
        is_recurring=False,
        recurrence_rule=None,
    )
    occurrences = expand([broken], _window(), AS_OF)
    assert occurrences == []


def test_listing_never_dates_an_instance_after_its_end():
    txn = _txn(1, 11, -100.0, date(2025, 1, 10), RecurrenceRule.monthly)
    txn.recurrence_end_date = date(2025, 3, 5)
    groups = list_by_month([txn], _window(), AS_OF)
    assert [g.key for g in groups] == ["2025-03", "2025-02", "2025-01"]
    assert groups[0].items[0].date == date(2025, 3, 5)
    assert groups[0].items[0].amount == -100.0
