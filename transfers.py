from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional

from recurrence import coerce_amount, coerce_date


TRANSFER_NOTE = "Virement interne"
FALLBACK_ACCOUNT_NAME = "Compte"


def is_transfer_note(note: Optional[str]) -> bool:
    if note is None:
        return False
    return note == TRANSFER_NOTE or note.strip().lower().startswith("virement")


def is_transfer_leg(txn: Any) -> bool:
    return getattr(txn, "category_id", None) is None and is_transfer_note(
        getattr(txn, "note", None)
    )


@dataclass(frozen=True)
class TransferEntry:
    transaction: Any
    date: date
    note: str
    amount: float
    direction: str
    other_account_id: Any
    other_account_name: str

    @property
    def is_paired(self) -> bool:
        return self.other_account_id is not None


def find_counterpart(txn: Any, candidates: Iterable[Any]) -> Optional[Any]:
    """First transfer leg on another account with the same date and negated amount.

    Pairing only looks at date and amount, so two unrelated same-day legs of
    equal magnitude on different accounts are paired as well.
    """
    amount = coerce_amount(getattr(txn, "amount", None))
    txn_date = coerce_date(getattr(txn, "date", None))
    if amount is None or txn_date is None:
        return None
    for other in candidates:
        if other is txn or other.account_id == txn.account_id:
            continue
        if not is_transfer_leg(other):
            continue
        if coerce_date(getattr(other, "date", None)) != txn_date:
            continue
        if coerce_amount(getattr(other, "amount", None)) == -amount:
            return other
    return None


def transfer_history(
    account_id: Any,
    transactions: Iterable[Any],
    accounts: Iterable[Any],
) -> list[TransferEntry]:
    all_txns = list(transactions)
    names = {a.id: a.name for a in accounts}
    entries: list[TransferEntry] = []
    for txn in all_txns:
        if txn.account_id != account_id or not is_transfer_leg(txn):
            continue
        amount = coerce_amount(txn.amount)
        txn_date = coerce_date(txn.date)
        if amount is None or txn_date is None:
            continue
        pair = find_counterpart(txn, all_txns)
        other_id = pair.account_id if pair is not None else None
        entries.append(
            TransferEntry(
                transaction=txn,
                date=txn_date,
                note=txn.note or TRANSFER_NOTE,
                amount=abs(amount),
                direction="in" if amount > 0 else "out",
                other_account_id=other_id,
                other_account_name=names.get(other_id, FALLBACK_ACCOUNT_NAME),
            )
        )
    entries.sort(key=lambda e: e.date, reverse=True)
    return entries
