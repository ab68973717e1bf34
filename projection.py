"""Month-by-month projection of stored transactions.

Every read builds the projection from scratch: literal transactions land in
the month of their own date, recurring ones are expanded over the requested
window with :func:`recurrence.contribution`, and user overrides replace the
computed figure for a single (transaction, month) instance. The treasury plan
table and the per-month transaction listing are both built from the same
list of :class:`ProjectedOccurrence`.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from config import DEFAULT_OVERRIDE_EPSILON
from models import CategoryType
from periods import MonthKey
from recurrence import (
    PROJECTION_HORIZON_MONTHS,
    coerce_amount,
    coerce_date,
    contribution,
    occurrence_dates,
)


logger = logging.getLogger(__name__)

OVERRIDE_EPSILON = DEFAULT_OVERRIDE_EPSILON

SECTION_INCOME = "RECETTES"
SECTION_EXPENSE = "DÉPENSES"
TOTAL_INCOME = "TOTAL RECETTES"
TOTAL_EXPENSE = "TOTAL DÉPENSES"
MONTHLY_BALANCE = "Solde mensuel"
CUMULATIVE_BALANCE = "Solde cumulé"


def normalize_override(
    original: float, new: float, epsilon: float = OVERRIDE_EPSILON
) -> Optional[float]:
    """Return the amount to store, or None when ``new`` is the original value."""
    if abs(new - original) < epsilon:
        return None
    return new


class OverrideMap:
    def __init__(self, overrides: Iterable[Any] = ()) -> None:
        self._amounts: dict[tuple[Any, int, int], float] = {}
        for override in overrides:
            self.set(
                override.transaction_id,
                override.year,
                override.month,
                override.override_amount,
            )

    def __len__(self) -> int:
        return len(self._amounts)

    def __contains__(self, key: tuple[Any, int, int]) -> bool:
        return key in self._amounts

    def set(self, transaction_id: Any, year: int, month: int, amount: float) -> None:
        self._amounts[(transaction_id, year, month)] = float(amount)

    def discard(self, transaction_id: Any, year: int, month: int) -> None:
        self._amounts.pop((transaction_id, year, month), None)

    def get(self, transaction_id: Any, year: int, month: int) -> Optional[float]:
        return self._amounts.get((transaction_id, year, month))

    def resolve(
        self, transaction_id: Any, year: int, month: int, computed: float
    ) -> float:
        override = self.get(transaction_id, year, month)
        if override is None:
            return computed
        return override

    def apply(
        self,
        transaction_id: Any,
        year: int,
        month: int,
        original: float,
        new: float,
        epsilon: float = OVERRIDE_EPSILON,
    ) -> Optional[float]:
        amount = normalize_override(original, new, epsilon)
        if amount is None:
            self.discard(transaction_id, year, month)
        else:
            self.set(transaction_id, year, month, amount)
        return amount


@dataclass(frozen=True)
class ProjectedOccurrence:
    transaction: Any
    month: MonthKey
    date: date
    amount: float
    computed_amount: float
    is_recurring: bool = False
    is_overridden: bool = False

    @property
    def transaction_id(self) -> Any:
        return getattr(self.transaction, "id", None)

    @property
    def category_id(self) -> Any:
        return getattr(self.transaction, "category_id", None)

    @property
    def key(self) -> str:
        return self.month.key


def is_recurring(txn: Any) -> bool:
    return bool(getattr(txn, "is_recurring", False)) and bool(
        getattr(txn, "recurrence_rule", None)
    )


def expand(
    transactions: Iterable[Any],
    months: Sequence[MonthKey],
    as_of: date,
    overrides: Optional[OverrideMap] = None,
    *,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> list[ProjectedOccurrence]:
    overrides = overrides or OverrideMap()
    window = {(m.year, m.month): m for m in months}
    out: list[ProjectedOccurrence] = []

    for txn in transactions:
        if is_recurring(txn):
            out.extend(_expand_recurring(txn, months, as_of, overrides, horizon_months))
            continue

        txn_date = coerce_date(getattr(txn, "date", None))
        amount = coerce_amount(getattr(txn, "amount", None))
        if txn_date is None or amount is None:
            logger.debug("projection skipped literal txn=%s", getattr(txn, "id", None))
            continue
        month = window.get((txn_date.year, txn_date.month))
        if month is None:
            continue
        out.append(
            ProjectedOccurrence(
                transaction=txn,
                month=month,
                date=txn_date,
                amount=amount,
                computed_amount=amount,
            )
        )
    return out


def _expand_recurring(
    txn: Any,
    months: Sequence[MonthKey],
    as_of: date,
    overrides: OverrideMap,
    horizon_months: int,
) -> Iterable[ProjectedOccurrence]:
    txn_id = getattr(txn, "id", None)
    for month in months:
        computed = contribution(txn, month.year, month.month, as_of, horizon_months)
        override = overrides.get(txn_id, month.year, month.month)
        amount = computed if override is None else override
        # An overridden instance stays visible even at zero so it can be reset.
        if amount == 0 and override is None:
            continue
        dates = occurrence_dates(txn, month.year, month.month, as_of, horizon_months)
        yield ProjectedOccurrence(
            transaction=txn,
            month=month,
            date=dates[0] if dates else month.start,
            amount=amount,
            computed_amount=computed,
            is_recurring=True,
            is_overridden=override is not None,
        )


@dataclass
class PlanRow:
    label: str
    kind: str
    values: dict[str, float] = field(default_factory=dict)
    category_id: Any = None
    is_child: bool = False
    is_parent: bool = False
    is_total: bool = False
    is_section_header: bool = False
    is_block_start: bool = False


@dataclass
class PlanTable:
    months: list[MonthKey]
    rows: list[PlanRow]
    by_category: dict[Any, dict[str, float]]
    cells: dict[tuple[Any, str], list[ProjectedOccurrence]]

    def row(self, label: str) -> PlanRow:
        for row in self.rows:
            if row.label == label and row.category_id is None:
                return row
        raise KeyError(label)

    def category_row(self, category_id: Any) -> PlanRow:
        for row in self.rows:
            if row.category_id == category_id:
                return row
        raise KeyError(category_id)

    def cell(self, category_id: Any, key: str) -> list[ProjectedOccurrence]:
        return list(self.cells.get((category_id, key), []))

    def editable_occurrence(
        self, category_id: Any, key: str
    ) -> Optional[ProjectedOccurrence]:
        for occurrence in self.cells.get((category_id, key), []):
            if occurrence.is_recurring:
                return occurrence
        return None


def _category_type(category: Any) -> Optional[CategoryType]:
    try:
        return CategoryType(getattr(category, "type", None))
    except ValueError:
        return None


def _group_categories(categories: Sequence[Any]) -> tuple[list[Any], dict[Any, list[Any]]]:
    ids = {c.id for c in categories}
    top_level = [c for c in categories if getattr(c, "parent_id", None) not in ids]
    children: dict[Any, list[Any]] = defaultdict(list)
    for c in categories:
        parent_id = getattr(c, "parent_id", None)
        if parent_id in ids:
            children[parent_id].append(c)
    return top_level, children


def _section_rows(
    kind: str,
    categories: Sequence[Any],
    months: Sequence[MonthKey],
    by_category: dict[Any, dict[str, float]],
) -> list[PlanRow]:
    rows: list[PlanRow] = []
    top_level, children = _group_categories(categories)
    for top in top_level:
        kids = children.get(top.id, [])
        if not kids:
            rows.append(
                PlanRow(
                    label=top.name,
                    kind=kind,
                    values=dict(by_category[top.id]),
                    category_id=top.id,
                )
            )
            continue
        parent_values = {
            m.key: sum(by_category[c.id][m.key] for c in kids) for m in months
        }
        rows.append(
            PlanRow(
                label=top.name,
                kind=kind,
                values=parent_values,
                category_id=top.id,
                is_parent=True,
            )
        )
        for child in kids:
            rows.append(
                PlanRow(
                    label=child.name,
                    kind=kind,
                    values=dict(by_category[child.id]),
                    category_id=child.id,
                    is_child=True,
                )
            )
    return rows


def aggregate(
    occurrences: Iterable[ProjectedOccurrence],
    categories: Sequence[Any],
    months: Sequence[MonthKey],
) -> PlanTable:
    keys = [m.key for m in months]
    by_category: dict[Any, dict[str, float]] = defaultdict(
        lambda: {k: 0.0 for k in keys}
    )
    cells: dict[tuple[Any, str], list[ProjectedOccurrence]] = defaultdict(list)

    for occurrence in occurrences:
        category_id = occurrence.category_id
        if category_id is None or occurrence.key not in keys:
            continue
        by_category[category_id][occurrence.key] += occurrence.amount
        cells[(category_id, occurrence.key)].append(occurrence)

    income_categories = [c for c in categories if _category_type(c) == CategoryType.income]
    expense_categories = [
        c for c in categories if _category_type(c) == CategoryType.expense
    ]

    income_total = {
        k: sum(by_category[c.id][k] for c in income_categories) for k in keys
    }
    expense_total = {
        k: -sum(by_category[c.id][k] for c in expense_categories) for k in keys
    }
    balance = {k: income_total[k] - expense_total[k] for k in keys}
    cumulative: dict[str, float] = {}
    running = 0.0
    for k in keys:
        running += balance[k]
        cumulative[k] = running

    rows: list[PlanRow] = [
        PlanRow(label=SECTION_INCOME, kind="income", is_section_header=True)
    ]
    rows.extend(_section_rows("income", income_categories, months, by_category))
    rows.append(
        PlanRow(label=TOTAL_INCOME, kind="income", values=income_total, is_total=True)
    )
    rows.append(
        PlanRow(
            label=MONTHLY_BALANCE, kind="balance", values=balance, is_block_start=True
        )
    )
    rows.append(PlanRow(label=CUMULATIVE_BALANCE, kind="balance", values=cumulative))
    rows.append(
        PlanRow(
            label=SECTION_EXPENSE,
            kind="expense",
            is_section_header=True,
            is_block_start=True,
        )
    )
    rows.extend(_section_rows("expense", expense_categories, months, by_category))
    rows.append(
        PlanRow(
            label=TOTAL_EXPENSE, kind="expense", values=expense_total, is_total=True
        )
    )

    return PlanTable(
        months=list(months),
        rows=rows,
        by_category={cid: dict(values) for cid, values in by_category.items()},
        cells=dict(cells),
    )


def build_plan(
    transactions: Iterable[Any],
    categories: Sequence[Any],
    months: Sequence[MonthKey],
    as_of: date,
    overrides: Optional[OverrideMap] = None,
    *,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> PlanTable:
    occurrences = expand(
        transactions, months, as_of, overrides, horizon_months=horizon_months
    )
    return aggregate(occurrences, categories, months)


def category_filter_ids(categories: Sequence[Any], category_id: Any) -> Optional[set]:
    """Ids matched by a category filter; a parent also matches its children."""
    if category_id is None:
        return None
    selected = next((c for c in categories if c.id == category_id), None)
    if selected is None:
        return {category_id}
    if getattr(selected, "parent_id", None) is not None:
        return {selected.id}
    ids = {selected.id}
    ids.update(c.id for c in categories if getattr(c, "parent_id", None) == selected.id)
    return ids


@dataclass
class MonthGroup:
    month: MonthKey
    items: list[ProjectedOccurrence]

    @property
    def key(self) -> str:
        return self.month.key

    @property
    def total(self) -> float:
        return sum(item.amount for item in self.items)


def list_by_month(
    transactions: Iterable[Any],
    months: Sequence[MonthKey],
    as_of: date,
    overrides: Optional[OverrideMap] = None,
    *,
    category_ids: Optional[set] = None,
    horizon_months: int = PROJECTION_HORIZON_MONTHS,
) -> list[MonthGroup]:
    grouped: dict[MonthKey, list[ProjectedOccurrence]] = defaultdict(list)
    for occurrence in expand(
        transactions, months, as_of, overrides, horizon_months=horizon_months
    ):
        if category_ids is not None and occurrence.category_id not in category_ids:
            continue
        grouped[occurrence.month].append(occurrence)

    groups = []
    for month in sorted(grouped, reverse=True):
        items = sorted(grouped[month], key=lambda o: o.date, reverse=True)
        groups.append(MonthGroup(month=month, items=items))
    return groups
