from datetime import date
from types import SimpleNamespace

from models import Transaction
from transfers import (
    FALLBACK_ACCOUNT_NAME,
    find_counterpart,
    is_transfer_leg,
    is_transfer_note,
    transfer_history,
)


ACCOUNTS = [
    SimpleNamespace(id=1, name="Compte courant"),
    SimpleNamespace(id=2, name="Livret A"),
]


def _leg(
    txn_id: int,
    account_id: int,
    amount: float,
    when: date = date(2025, 3, 10),
    note: str = "Virement interne",
    category_id=None,
) -> Transaction:
    return Transaction(
        id=txn_id,
        account_id=account_id,
        category_id=category_id,
        amount=amount,
        date=when,
        note=note,
        is_recurring=False,
    )


def test_transfer_note_detection():
    assert is_transfer_note("Virement interne")
    assert is_transfer_note("  VIREMENT vers livret")
    assert not is_transfer_note("Courses")
    assert not is_transfer_note(None)
    assert not is_transfer_leg(_leg(1, 1, -50.0, category_id=4))


def test_pairing_reports_direction_and_other_account():
    a = _leg(1, 1, -50.0)
    b = _leg(2, 2, 50.0)

    out_entries = transfer_history(1, [a, b], ACCOUNTS)
    assert len(out_entries) == 1
    assert out_entries[0].direction == "out"
    assert out_entries[0].other_account_name == "Livret A"
    assert out_entries[0].amount == 50.0
    assert out_entries[0].is_paired

    in_entries = transfer_history(2, [a, b], ACCOUNTS)
    assert in_entries[0].direction == "in"
    assert in_entries[0].other_account_name == "Compte courant"


def test_unmatched_leg_falls_back_to_generic_label():
    a = _leg(1, 1, -50.0)
    entries = transfer_history(1, [a], ACCOUNTS)
    assert len(entries) == 1
    assert entries[0].other_account_name == FALLBACK_ACCOUNT_NAME
    assert entries[0].other_account_id is None
    assert not entries[0].is_paired


def test_counterpart_needs_other_account_same_date_and_negated_amount():
    a = _leg(1, 1, -50.0)
    same_account = _leg(2, 1, 50.0)
    other_day = _leg(3, 2, 50.0, when=date(2025, 3, 11))
    wrong_amount = _leg(4, 2, 49.0)
    categorized = _leg(5, 2, 50.0, category_id=7)
    assert find_counterpart(a, [a, same_account, other_day, wrong_amount, categorized]) is None

    match = _leg(6, 2, 50.0)
    assert find_counterpart(a, [same_account, match]) is match


def test_history_is_newest_first_and_ignores_other_entries():
    older = _leg(1, 1, -20.0, when=date(2025, 1, 5))
    newer = _leg(2, 1, 30.0, when=date(2025, 2, 5), note="virement depuis livret")
    groceries = _leg(3, 1, -12.0, note="Courses", category_id=9)
    entries = transfer_history(1, [older, newer, groceries], ACCOUNTS)
    assert [e.date for e in entries] == [date(2025, 2, 5), date(2025, 1, 5)]
    assert [e.direction for e in entries] == ["in", "out"]
    assert entries[0].note == "virement depuis livret"
