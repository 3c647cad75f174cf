"""Balance projection.

Pure functions that derive an account balance from its initial balance and
transaction history. Nothing here touches the database; the ledger service
feeds in whatever it fetched and persists the result.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from pocketledger.domain.entities import Account, Transaction
from pocketledger.domain.errors import NotFoundError, transaction_not_found

ZERO = Decimal("0")
DISPLAY_QUANTUM = Decimal("0.01")


def ordering_key(transaction: Transaction) -> tuple:
    """Sort key for projection: date first, then storage sequence."""
    return (transaction.date, transaction.id)


def account_transactions(account: Account, transactions: Iterable[Transaction]) -> list[Transaction]:
    """Return the account's transactions in projection order."""
    own = [txn for txn in transactions if txn.account_id == account.id]
    own.sort(key=ordering_key)
    return own


def project_balance(account: Account, transactions: Iterable[Transaction]) -> Decimal:
    """Compute the current balance of an account.

    Args:
        account: Account to project
        transactions: Any transaction set; entries for other accounts are ignored

    Returns:
        initial_balance plus income minus expense, unrounded
    """
    total = Decimal(account.initial_balance)
    for txn in transactions:
        if txn.account_id == account.id:
            total += txn.signed_amount
    return total


def project_running_balance(
    account: Account, transactions: Iterable[Transaction], as_of: str
) -> Decimal:
    """Compute the balance right after the transaction ``as_of`` was applied.

    Args:
        account: Account to project
        transactions: Any transaction set; entries for other accounts are ignored
        as_of: Human-readable transaction id of the target row

    Raises:
        NotFoundError: If ``as_of`` is not one of the account's transactions
    """
    total = Decimal(account.initial_balance)
    for txn in account_transactions(account, transactions):
        total += txn.signed_amount
        if txn.transaction_id == as_of:
            return total
    raise NotFoundError(transaction_not_found(as_of))


def running_balances(
    account: Account, transactions: Iterable[Transaction]
) -> list[tuple[Transaction, Decimal]]:
    """Pair each of the account's transactions with the balance after it."""
    total = Decimal(account.initial_balance)
    rows = []
    for txn in account_transactions(account, transactions):
        total += txn.signed_amount
        rows.append((txn, total))
    return rows


def round_for_display(amount: Decimal) -> Decimal:
    """Round to the smallest currency unit for display only."""
    return Decimal(amount).quantize(DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)
