"""Transaction ledger service.

The ledger is the only writer of transactions and the only caller of
``Database.set_account_balance``. Every mutation is followed by a fresh
projection of the owning account from its stored history; the previous
``calculated_balance`` is never used as a starting point.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Sequence

from pocketledger.database.base import Database
from pocketledger.domain.balance import project_balance, running_balances
from pocketledger.domain.entities import (
    Account,
    GROUPING_TAGS,
    IntegrityIssue,
    PurchasePriority,
    RESERVED_TAGS,
    Transaction,
    TransactionType,
)
from pocketledger.domain.errors import (
    ConflictError,
    DependencyError,
    ImmutableFieldError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    account_inactive,
    account_not_found,
    duplicate_transaction_id,
    non_positive_amount,
    transaction_funds_purchase,
    transaction_has_allocations,
    transaction_not_found,
)
from pocketledger.utils.transaction_id import generate_transaction_id

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = frozenset({"description", "category", "date", "tags"})
IMMUTABLE_FIELDS = frozenset({"amount", "account_id", "type", "transaction_id", "id"})

# Storage scale of every money column
AMOUNT_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class PurchaseDetails:
    """Purchase metadata carried by an expense entered from the ledger side."""

    item_name: Optional[str] = None
    priority: PurchasePriority = PurchasePriority.MEDIUM
    notes: Optional[str] = None


def structural_tags(tags: Sequence[str]) -> tuple[str, ...]:
    """Tags that define pairing and provenance and so must never change.

    For transfer/DPS legs this is the whole positional header; elsewhere it is
    just the reserved markers in order.
    """
    tags = tuple(tags)
    if tags and tags[0] in GROUPING_TAGS:
        header = 4 if tags[0] == "transfer" else 2
        return tags[:header] + tuple(t for t in tags[header:] if t in RESERVED_TAGS)
    return tuple(t for t in tags if t in RESERVED_TAGS)


def validate_amount(amount: Any) -> Decimal:
    """Coerce to a Decimal at storage scale and require it to be strictly positive."""
    if isinstance(amount, float):
        # Go through str so 0.1 stays 0.1
        amount = str(amount)
    try:
        value = Decimal(amount)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError(f"Invalid amount: {amount!r}")
    if not value.is_finite():
        raise ValidationError(non_positive_amount(amount))
    try:
        value = value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"Invalid amount: {amount!r}")
    if value <= 0:
        raise ValidationError(non_positive_amount(amount))
    return value


class LedgerService:
    """Service owning transaction writes and balance recomputation."""

    def __init__(self, db: Database):
        """Initialize ledger service.

        Args:
            db: Database instance
        """
        self.db = db

    # Lookups
    def require_account(self, account_id: int) -> Account:
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self.db.get_transaction(transaction_id)

    def require_transaction(self, transaction_id: str) -> Transaction:
        txn = self.db.get_transaction(transaction_id)
        if txn is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        return txn

    def list_transactions(
        self,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        tag: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions in projection order (date, then sequence)."""
        return self.db.list_transactions(
            account_id=account_id, start_date=start_date, end_date=end_date, tag=tag
        )

    # Balance
    def recompute_balance(self, account_id: int) -> Decimal:
        """Re-derive and store an account's balance from its full history.

        Returns:
            The projected balance
        """
        account = self.require_account(account_id)
        balance = project_balance(account, self.db.list_transactions(account_id=account_id))
        self.db.set_account_balance(account_id, balance)
        return balance

    def recompute_all(self) -> dict[int, Decimal]:
        """Explicit repair path: recompute every account."""
        return {acc.id: self.recompute_balance(acc.id) for acc in self.db.list_accounts()}

    def verify_balances(self) -> list[IntegrityIssue]:
        """Compare stored balances with projections without changing anything."""
        issues = []
        for account in self.db.list_accounts():
            expected = project_balance(account, self.db.list_transactions(account_id=account.id))
            if expected != account.calculated_balance:
                issue = IntegrityIssue(
                    code="balance_drift",
                    message=(
                        f"Account {account.id} ({account.name}) stores {account.calculated_balance} "
                        f"but its history projects {expected}"
                    ),
                    references=(str(account.id),),
                )
                logger.warning(issue.message)
                issues.append(issue)
        return issues

    def running_balances(self, account_id: int) -> list[tuple[Transaction, Decimal]]:
        """Each transaction of the account with the balance right after it."""
        account = self.require_account(account_id)
        return running_balances(account, self.db.list_transactions(account_id=account_id))

    # Mutations
    def add_transaction(
        self,
        account_id: int,
        type: TransactionType | str,
        amount: Decimal,
        category: str,
        description: Optional[str] = None,
        date: Optional[date] = None,
        tags: Iterable[str] = (),
        transaction_id: Optional[str] = None,
        purchase: Optional[PurchaseDetails] = None,
        allow_reserved_tags: bool = False,
    ) -> str:
        """Record a transaction and recompute the owning account.

        Args:
            account_id: Owning account, must exist and be active
            type: income or expense
            amount: Strictly positive amount
            category: Category name
            description: Optional description
            date: Transaction date (defaults to today)
            tags: Tags; reserved markers are written by the orchestrators
            transaction_id: Pre-assigned id, used when retrying an intent
            purchase: If given (expense only), a purchased Purchase is
                recorded and linked to the new transaction
            allow_reserved_tags: Set by the services that own the reserved markers

        Returns:
            The human-readable transaction id

        Raises:
            ValidationError: Invalid amount, type or category, or a reserved
                tag passed without allow_reserved_tags
            NotFoundError: Account does not exist
            ConflictError: transaction_id already used by a different transaction
            PersistenceError: Store failure; nothing is left behind
        """
        try:
            txn_type = TransactionType(type)
        except ValueError:
            raise ValidationError(f"Invalid transaction type: {type!r}")
        amount = validate_amount(amount)
        if not category or not category.strip():
            raise ValidationError("Category is required")
        if purchase is not None and txn_type is not TransactionType.EXPENSE:
            raise ValidationError("Only expenses can be recorded as purchases")

        account = self.require_account(account_id)
        if not account.is_active:
            raise ValidationError(account_inactive(account_id))

        tags = tuple(tags)
        reserved = sorted(set(tags) & RESERVED_TAGS)
        if reserved and not allow_reserved_tags:
            raise ValidationError(
                f"Tag(s) {', '.join(reserved)} are reserved for internal bookkeeping"
            )
        txn_date = date or _today()

        if transaction_id is None:
            transaction_id = self._new_transaction_id()
        else:
            existing = self.db.get_transaction(transaction_id)
            if existing is not None:
                if (
                    existing.account_id == account_id
                    and existing.type is txn_type
                    and existing.amount == amount
                ):
                    # Same intent retried after the first write landed
                    logger.info("transaction %s already recorded, not writing again", transaction_id)
                    return transaction_id
                raise ConflictError(duplicate_transaction_id(transaction_id))

        self.db.create_transaction(
            transaction_id=transaction_id,
            account_id=account_id,
            type=txn_type.value,
            amount=amount,
            date=txn_date,
            category=category.strip(),
            description=description,
            tags=tags,
        )
        try:
            self.recompute_balance(account_id)
        except Exception:
            logger.exception("balance update failed after writing %s; removing it", transaction_id)
            self._compensate(lambda: self.db.delete_transaction(transaction_id), transaction_id)
            raise
        logger.info(
            "recorded %s %s %s on account %s", txn_type.value, amount, transaction_id, account_id
        )

        if purchase is not None:
            from pocketledger.domain.purchase import PurchaseService

            try:
                PurchaseService(self.db, ledger=self).link_recorded_expense(
                    self.require_transaction(transaction_id), purchase
                )
            except Exception:
                logger.exception("could not record purchase for %s; removing it", transaction_id)
                self._compensate(lambda: self._delete(self.require_transaction(transaction_id)), transaction_id)
                raise

        return transaction_id

    def update_transaction(self, transaction_id: str, **patch: Any) -> Transaction:
        """Change transaction metadata.

        Only description, category, date and tags may change. Amount, account
        and type are fixed; correct them by deleting and re-adding.

        Raises:
            ImmutableFieldError: Patch touches amount/account/type/id, or would
                change the transfer/purchase markers of the tags
                or moves one leg of a transfer to another date
            ValidationError: Unknown field
            NotFoundError: Transaction does not exist
        """
        for field in patch:
            if field in IMMUTABLE_FIELDS:
                raise ImmutableFieldError(field)
        unknown = set(patch) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown transaction field(s): {', '.join(sorted(unknown))}")

        txn = self.require_transaction(transaction_id)
        changes = dict(patch)
        if "tags" in changes:
            new_tags = tuple(changes["tags"] or ())
            if structural_tags(new_tags) != structural_tags(txn.tags):
                raise ImmutableFieldError(
                    "tags", "Transfer and purchase markers in tags cannot be changed"
                )
            changes["tags"] = new_tags
        if "category" in changes and not (changes["category"] or "").strip():
            raise ValidationError("Category is required")
        if "date" in changes and changes["date"] is None:
            raise ValidationError("Date is required")
        if "date" in changes and changes["date"] != txn.date and txn.group_id is not None:
            raise ImmutableFieldError(
                "date",
                f"Both legs of transfer {txn.group_id} share one date; undo the transfer and create it again",
            )

        if changes:
            self.db.update_transaction(transaction_id, **changes)
            if "date" in changes:
                self.recompute_balance(txn.account_id)
        return self.require_transaction(transaction_id)

    def delete_transaction(self, transaction_id: str, purchase_id: Optional[int] = None) -> Transaction:
        """Delete one transaction and recompute its account.

        A transfer leg is deleted alone; pairing decisions belong to the
        transfer service.

        Args:
            transaction_id: Transaction to delete
            purchase_id: The purchase on whose behalf a linked expense is
                removed; any other caller is refused for linked expenses

        Returns:
            The deleted transaction, usable with restore_transaction

        Raises:
            DependencyError: The transaction funds a purchase, or carries
                donation/saving records
        """
        txn = self.require_transaction(transaction_id)
        linked = self.db.find_purchase_by_transaction(transaction_id)
        if linked is not None and linked.id != purchase_id:
            raise DependencyError(transaction_funds_purchase(transaction_id, linked.id))
        if self.db.list_allocation_records(transaction_id=transaction_id):
            raise DependencyError(transaction_has_allocations(transaction_id))
        return self._delete(txn)

    def _delete(self, txn: Transaction) -> Transaction:
        transaction_id = txn.transaction_id
        self.db.delete_transaction(transaction_id)
        try:
            self.recompute_balance(txn.account_id)
        except Exception:
            logger.exception("balance update failed after deleting %s; restoring it", transaction_id)
            self._compensate(lambda: self._write_back(txn), transaction_id)
            raise
        if txn.is_transfer_leg:
            logger.info("deleted transfer leg %s of group %s", transaction_id, txn.group_id)
        else:
            logger.info("deleted transaction %s", transaction_id)
        return txn

    def restore_transaction(self, txn: Transaction) -> str:
        """Write back a previously deleted transaction under its original id.

        Used by multi-step operations to undo a delete step.
        """
        self._write_back(txn)
        try:
            self.recompute_balance(txn.account_id)
        except Exception:
            self._compensate(lambda: self.db.delete_transaction(txn.transaction_id), txn.transaction_id)
            raise
        return txn.transaction_id

    def _write_back(self, txn: Transaction) -> None:
        self.db.create_transaction(
            transaction_id=txn.transaction_id,
            account_id=txn.account_id,
            type=txn.type.value,
            amount=txn.amount,
            date=txn.date,
            category=txn.category,
            description=txn.description,
            tags=txn.tags,
        )

    def _new_transaction_id(self) -> str:
        for _ in range(5):
            candidate = generate_transaction_id()
            if not self.db.transaction_exists(candidate):
                return candidate
        raise PersistenceError("Could not allocate a unique transaction id")

    @staticmethod
    def _compensate(step, transaction_id: str) -> None:
        try:
            step()
        except Exception:
            # The original error is re-raised by the caller; this one is logged
            logger.exception("compensation for %s failed; ledger needs an audit", transaction_id)


def _today() -> date:
    return date.today()
