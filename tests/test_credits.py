"""Tests for the credit ledger."""

import pytest

from wadi.errors import InvalidInputError
from wadi.models import CreditHistory
from wadi.services.credits import CreditLedger


def test_account_opened_lazily(test_db):
    """Test a new user starts with the initial credits."""
    ledger = CreditLedger(test_db, initial_credits=100)

    assert ledger.get_balance("alice") == 100
    assert ledger.get_account("alice").plan == "free"


def test_debit_success(test_db):
    """Test a covered debit lowers the balance and records history."""
    ledger = CreditLedger(test_db, initial_credits=20)

    result = ledger.debit("alice", 10, "generation", {"model": "gpt-4"})

    assert result.success
    assert result.new_balance == 10
    account = ledger.get_account("alice")
    assert account.credits == 10
    assert account.credits_used == 10

    entries = ledger.history("alice")
    assert len(entries) == 1
    assert entries[0].entry_type == "debit"
    assert entries[0].amount == 10
    assert entries[0].meta == {"model": "gpt-4"}


def test_debit_insufficient_changes_nothing(test_db):
    """Test a debit larger than the balance is refused without mutation."""
    ledger = CreditLedger(test_db, initial_credits=5)

    result = ledger.debit("alice", 10, "generation")

    assert not result.success
    assert result.new_balance == 5
    assert ledger.get_balance("alice") == 5
    assert ledger.history("alice") == []


def test_debit_exact_balance_reaches_zero(test_db):
    """Test the balance can be drained to zero but not below."""
    ledger = CreditLedger(test_db, initial_credits=1)

    assert ledger.debit("alice", 1, "generation").success
    assert not ledger.debit("alice", 1, "generation").success
    assert ledger.get_balance("alice") == 0


def test_credit_adds_and_records(test_db):
    """Test credits always succeed and append a credit row."""
    ledger = CreditLedger(test_db, initial_credits=0)

    assert ledger.credit("alice", 25, "purchase") == 25

    entry = test_db.query(CreditHistory).filter(CreditHistory.user_id == "alice").one()
    assert entry.entry_type == "credit"
    assert entry.amount == 25
    assert entry.reason == "purchase"


def test_history_newest_first(test_db):
    """Test history is ordered newest first and honours the limit."""
    ledger = CreditLedger(test_db, initial_credits=10)
    ledger.debit("alice", 1, "first")
    ledger.debit("alice", 2, "second")
    ledger.credit("alice", 3, "third")

    reasons = [e.reason for e in ledger.history("alice")]
    assert reasons == ["third", "second", "first"]
    assert len(ledger.history("alice", limit=2)) == 2


@pytest.mark.parametrize("amount", [0, -5, 1.5, True])
def test_invalid_amounts_rejected(test_db, amount):
    """Test non-positive or non-integer amounts raise InvalidInputError."""
    ledger = CreditLedger(test_db, initial_credits=10)

    with pytest.raises(InvalidInputError):
        ledger.debit("alice", amount, "generation")
    with pytest.raises(InvalidInputError):
        ledger.credit("alice", amount, "purchase")
