"""Shared domain error messages and error types."""

from typing import Iterable, Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class WrongTransferTypeError(ValidationError):
    """Transfer mode does not match the currencies of the two accounts."""


class ImmutableFieldError(DomainError):
    """Attempt to change a field that is fixed once a record is created."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or immutable_field(field))


class NotFoundError(DomainError):
    """Referenced account, transaction, purchase or record does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class InvariantViolation(DomainError):
    """Stored data breaks a ledger invariant.

    Raised only when a caller explicitly asks for strict checking; read paths
    normally return the issues alongside their results instead.
    """

    def __init__(self, issues: Iterable, message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            count = len(self.issues)
            details = "; ".join(issue.message for issue in self.issues[:3])
            message = f"{count} data integrity issue{'s' if count != 1 else ''}: {details}"
        super().__init__(message)


class PersistenceError(RuntimeError):
    """The persistence collaborator failed to read or write."""


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def transaction_not_found(transaction_id: str) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def purchase_not_found(purchase_id: int) -> str:
    """Return message for missing purchase."""
    return f"Purchase {purchase_id} not found"


def record_not_found(record_id: int) -> str:
    """Return message for missing lend/borrow record."""
    return f"Lend/borrow record {record_id} not found"


def transfer_not_found(transfer_id: str) -> str:
    """Return message for missing transfer group."""
    return f"Transfer {transfer_id} not found"


def account_inactive(account_id: int) -> str:
    """Return message for an operation against a deactivated account."""
    return f"Account {account_id} is inactive"


def duplicate_transaction_id(transaction_id: str) -> str:
    """Return message for duplicate transaction identifier."""
    return f"Transaction with id '{transaction_id}' already exists"


def duplicate_account_name(name: str) -> str:
    """Return message for duplicate account name."""
    return f"Account with name '{name}' already exists"


def immutable_field(field: str) -> str:
    """Return message for a rejected change of an immutable field."""
    return (
        f"Field '{field}' cannot be changed after creation; "
        "delete the record and create a new one instead"
    )


def non_positive_amount(amount) -> str:
    """Return message for an amount that is zero or negative."""
    return f"Amount must be greater than zero (got {amount})"


def dps_not_enabled(account_id: int) -> str:
    """Return message for a DPS operation on an account without DPS."""
    return f"Account {account_id} does not have DPS enabled"


def category_not_found(category: int | str) -> str:
    """Return message for missing purchase category."""
    return f"Purchase category {category} not found"


def allocation_not_found(record_id: int) -> str:
    """Return message for missing saving/donation record."""
    return f"Saving/donation record {record_id} not found"


def transaction_funds_purchase(transaction_id: str, purchase_id: int) -> str:
    """Return message for deleting an expense that a purchase links."""
    return (
        f"Transaction {transaction_id} funds purchase {purchase_id}; "
        f"use 'purchase cancel {purchase_id}' or 'purchase delete {purchase_id}' instead"
    )


def transaction_has_allocations(transaction_id: str) -> str:
    """Return message for deleting an income with saving/donation records."""
    return (
        f"Transaction {transaction_id} has saving/donation records; "
        f"remove them first with 'donation clear {transaction_id}'"
    )
