import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from models import ProjectStatus
from recurrence import coerce_amount, coerce_date


@dataclass(frozen=True)
class ProjectProgress:
    project: Any
    accumulated: float
    progress_percentage: float
    months_to_complete: int

    @property
    def is_funded(self) -> bool:
        return self.progress_percentage >= 100


def _is_active(project: Any) -> bool:
    try:
        return ProjectStatus(project.status) == ProjectStatus.active
    except ValueError:
        return False


def _same_account(project: Any) -> bool:
    source = getattr(project, "source_account_id", None)
    linked = getattr(project, "linked_account_id", None)
    return source is not None and source == linked


def accumulated_amount(project: Any, transactions: Iterable[Any], today: date) -> float:
    """Money set aside for a project by its linked transactions up to ``today``.

    Reservations kept on the same account are booked with a zero amount, so
    they count as one monthly allocation each. Otherwise the absolute debits
    are summed, or every linked amount when there are no debits.
    """
    past: list[float] = []
    for txn in transactions:
        if getattr(txn, "project_id", None) != project.id:
            continue
        txn_date = coerce_date(getattr(txn, "date", None))
        amount = coerce_amount(getattr(txn, "amount", None))
        if txn_date is None or amount is None or txn_date > today:
            continue
        past.append(amount)

    if _same_account(project):
        return len(past) * float(project.monthly_allocation or 0)
    debits = [a for a in past if a < 0]
    source = debits if debits else past
    return sum(abs(a) for a in source)


def months_to_complete(target: float, monthly_allocation: Optional[float]) -> int:
    if not monthly_allocation or monthly_allocation <= 0:
        return 0
    return math.ceil(target / monthly_allocation)


def project_progress(
    project: Any, transactions: Iterable[Any], today: date
) -> ProjectProgress:
    target = float(project.target_amount or 0)
    accumulated = accumulated_amount(project, transactions, today)
    progress = (accumulated / target) * 100 if target > 0 else 0.0
    return ProjectProgress(
        project=project,
        accumulated=accumulated,
        progress_percentage=min(progress, 100.0),
        months_to_complete=months_to_complete(target, project.monthly_allocation),
    )


def active_progress(
    projects: Iterable[Any], transactions: Iterable[Any], today: date
) -> list[ProjectProgress]:
    txns = list(transactions)
    return [project_progress(p, txns, today) for p in projects if _is_active(p)]


def global_percentage(progress: Iterable[ProjectProgress]) -> float:
    items = list(progress)
    total_target = sum(float(p.project.target_amount or 0) for p in items)
    if total_target <= 0:
        return 0.0
    funded = sum(
        (p.progress_percentage / 100) * float(p.project.target_amount or 0)
        for p in items
    )
    return funded / total_target * 100
