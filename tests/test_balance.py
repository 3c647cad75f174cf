"""Tests for pure balance projection."""

import pytest
from datetime import date, datetime, UTC
from decimal import Decimal

from pocketledger.domain.balance import (
    project_balance,
    project_running_balance,
    round_for_display,
    running_balances,
)
from pocketledger.domain.entities import Account, Transaction
from pocketledger.domain.errors import NotFoundError


def make_account(account_id=1, initial="100"):
    return Account(
        id=account_id,
        name=f"Account {account_id}",
        type="checking",
        currency="USD",
        initial_balance=Decimal(initial),
        calculated_balance=Decimal("0"),
        is_active=True,
        created_at=datetime.now(UTC),
    )


def make_txn(seq, txn_type, amount, on=date(2024, 1, 1), account_id=1):
    return Transaction(
        id=seq,
        transaction_id=f"T{seq}",
        account_id=account_id,
        type=txn_type,
        amount=Decimal(amount),
        date=on,
        category="Test",
        description=None,
        tags=(),
        created_at=datetime.now(UTC),
    )


def test_income_then_expense():
    """Test 100 + 30 - 20 = 110."""
    account = make_account()
    txns = [make_txn(1, "income", "30"), make_txn(2, "expense", "20")]
    assert project_balance(account, txns) == Decimal("110")


def test_other_accounts_are_ignored():
    """Test that transactions of other accounts do not count."""
    account = make_account()
    txns = [make_txn(1, "income", "30"), make_txn(2, "income", "999", account_id=2)]
    assert project_balance(account, txns) == Decimal("130")


def test_no_float_drift():
    """Test that ten additions of 0.1 sum exactly to 1."""
    account = make_account(initial="0")
    txns = [make_txn(i, "income", "0.1") for i in range(1, 11)]
    assert project_balance(account, txns) == Decimal("1.0")


def test_projection_is_pure():
    """Test that the same inputs give the same output."""
    account = make_account()
    txns = [make_txn(1, "expense", "12.345")]
    assert project_balance(account, txns) == project_balance(account, txns)


def test_running_balance_orders_by_date_then_sequence():
    """Test that rows are ordered by date, ties broken by sequence."""
    account = make_account(initial="0")
    txns = [
        make_txn(3, "expense", "5", on=date(2024, 1, 2)),
        make_txn(2, "income", "10", on=date(2024, 1, 1)),
        make_txn(1, "income", "1", on=date(2024, 1, 1)),
    ]
    rows = running_balances(account, txns)
    assert [t.transaction_id for t, _ in rows] == ["T1", "T2", "T3"]
    assert [bal for _, bal in rows] == [Decimal("1"), Decimal("11"), Decimal("6")]


def test_project_running_balance_as_of():
    """Test the balance right after a given row."""
    account = make_account()
    txns = [
        make_txn(1, "income", "30", on=date(2024, 1, 1)),
        make_txn(2, "expense", "20", on=date(2024, 1, 2)),
    ]
    assert project_running_balance(account, txns, "T1") == Decimal("130")
    assert project_running_balance(account, txns, "T2") == Decimal("110")


def test_project_running_balance_unknown_row():
    """Test that an unknown target raises NotFoundError."""
    with pytest.raises(NotFoundError):
        project_running_balance(make_account(), [], "T404")


def test_round_for_display_half_up():
    """Test that display rounding is half-up to cents."""
    assert round_for_display(Decimal("1.005")) == Decimal("1.01")
    assert round_for_display(Decimal("-2.345")) == Decimal("-2.35")
