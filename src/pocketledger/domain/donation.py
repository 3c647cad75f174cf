"""Donation and saving allocation of incomes.

An account may carry a donation preference. When an income is allocated,
an optional saving portion is taken first and the donation applies to
what is left after saving. Both portions are stored as records keyed on
the income's transaction id; they earmark money and never write ledger
entries of their own.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.account import dps_savings_ids
from pocketledger.domain.entities import (
    Account,
    AllocationKind,
    AllocationRecord,
    AllocationRule,
    AllocationStatus,
    IntegrityIssue,
    RESERVED_TAGS,
    TransactionType,
)
from pocketledger.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    allocation_not_found,
)
from pocketledger.domain.ledger import AMOUNT_QUANTUM, LedgerService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class IncomeSplit:
    """How one income divides into saving, donation and the rest."""

    income: Decimal
    saved: Decimal
    donated: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.income - self.saved - self.donated


@dataclass(frozen=True)
class AllocationTotals:
    """Per-currency totals shown next to the accounts overview."""

    donated: Decimal = ZERO
    pending: Decimal = ZERO
    saved: Decimal = ZERO
    dps_saved: Decimal = ZERO


def split_income(
    income: Decimal,
    saving: Optional[AllocationRule] = None,
    donation: Optional[AllocationRule] = None,
) -> IncomeSplit:
    """Apply saving first, then the donation to what remains after saving.

    Neither portion can exceed what is available to it.
    """
    saved = _quantize(saving.portion_of(income)) if saving else ZERO
    donated = _quantize(donation.portion_of(income - saved)) if donation else ZERO
    return IncomeSplit(income=income, saved=saved, donated=donated)


class DonationService:
    """Service for donation preferences and saving/donation records."""

    def __init__(self, db: Database, ledger: Optional[LedgerService] = None):
        """Initialize donation service.

        Args:
            db: Database instance
            ledger: Ledger used for transaction and account lookups
        """
        self.db = db
        self.ledger = ledger or LedgerService(db)

    def set_preference(self, account_id: int, rule: Optional[AllocationRule]) -> Account:
        """Set or, with None, clear the donation preference of an account."""
        account = self.ledger.require_account(account_id)
        self.db.set_account_donation(account.id, rule)
        if rule is None:
            logger.info("cleared donation preference of account %s", account.id)
        else:
            logger.info("donation preference of account %s set to %s", account.id, rule.describe())
        return self.ledger.require_account(account.id)

    def preview(self, transaction_id: str, saving: Optional[AllocationRule] = None) -> IncomeSplit:
        """Split an income the way allocate_income would, without writing."""
        txn = self.ledger.require_transaction(transaction_id)
        account = self.ledger.require_account(txn.account_id)
        return split_income(txn.amount, saving, account.donation)

    def allocate_income(
        self,
        transaction_id: str,
        saving: Optional[AllocationRule] = None,
        note: Optional[str] = None,
    ) -> list[AllocationRecord]:
        """Record the saving and donation portions of an income.

        The donation follows the preference of the income's account.

        Args:
            transaction_id: An ordinary income (not a transfer or DPS leg)
            saving: Optional saving portion, taken before the donation
            note: Stored on every record

        Returns:
            The records written, saving first

        Raises:
            ValidationError: Not an ordinary income, or nothing to allocate
            ConflictError: The income already has records
            NotFoundError: Unknown transaction
        """
        txn = self.ledger.require_transaction(transaction_id)
        if txn.type is not TransactionType.INCOME:
            raise ValidationError(f"Transaction {transaction_id} is not an income")
        if set(txn.tags) & RESERVED_TAGS:
            raise ValidationError(f"Transaction {transaction_id} is a transfer or DPS entry and cannot be allocated")
        if self.db.list_allocation_records(transaction_id=transaction_id):
            raise ConflictError(
                f"Transaction {transaction_id} already has saving/donation records; clear them first"
            )
        account = self.ledger.require_account(txn.account_id)
        if saving is None and account.donation is None:
            raise ValidationError(
                f"Nothing to allocate: account {account.name} has no donation preference and no saving was given"
            )

        split = split_income(txn.amount, saving, account.donation)
        written = False
        try:
            if split.saved > 0:
                self.db.create_allocation_record(
                    transaction_id=transaction_id,
                    kind=AllocationKind.SAVING.value,
                    amount=split.saved,
                    mode=saving.mode.value,
                    status=AllocationStatus.SAVED.value,
                    note=note,
                )
                written = True
            if split.donated > 0:
                self.db.create_allocation_record(
                    transaction_id=transaction_id,
                    kind=AllocationKind.DONATION.value,
                    amount=split.donated,
                    mode=account.donation.mode.value,
                    status=AllocationStatus.PENDING.value,
                    note=note,
                )
        except Exception:
            if written:
                logger.error("recording donation for %s failed; removing its saving record", transaction_id)
                self._undo(lambda: self.db.delete_allocation_records(transaction_id))
            raise
        logger.info(
            "allocated income %s: saved %s, donation %s, remaining %s",
            transaction_id,
            split.saved,
            split.donated,
            split.remaining,
        )
        return self.db.list_allocation_records(transaction_id=transaction_id)

    def clear_allocation(self, transaction_id: str) -> int:
        """Remove every record of an income.

        Returns:
            Number of records removed

        Raises:
            NotFoundError: The income has no records
        """
        if not self.db.list_allocation_records(transaction_id=transaction_id):
            raise NotFoundError(f"Transaction {transaction_id} has no saving/donation records")
        removed = self.db.delete_allocation_records(transaction_id)
        logger.info("cleared %d saving/donation record(s) of %s", removed, transaction_id)
        return removed

    def require_record(self, record_id: int) -> AllocationRecord:
        record = self.db.get_allocation_record(record_id)
        if record is None:
            raise NotFoundError(allocation_not_found(record_id))
        return record

    def mark_donated(self, record_id: int) -> AllocationRecord:
        """Mark a pending donation as paid out."""
        record = self.require_record(record_id)
        if record.kind is not AllocationKind.DONATION:
            raise ValidationError(f"Record {record_id} is a saving, not a donation")
        if record.status is AllocationStatus.DONATED:
            return record
        self.db.set_allocation_status(record_id, AllocationStatus.DONATED.value)
        logger.info("donation record %s marked as donated", record_id)
        return self.require_record(record_id)

    def list_records(
        self,
        kind: Optional[AllocationKind | str] = None,
        status: Optional[AllocationStatus | str] = None,
        transaction_id: Optional[str] = None,
    ) -> list[AllocationRecord]:
        return self.db.list_allocation_records(
            transaction_id=transaction_id,
            kind=AllocationKind(kind).value if kind else None,
            status=AllocationStatus(status).value if status else None,
        )

    def totals(self) -> dict[str, AllocationTotals]:
        """Donated, pending and saved amounts per currency.

        Records count in the currency of their income's account; ``dps_saved``
        is the balance held in DPS savings accounts.
        """
        accounts = {acc.id: acc for acc in self.db.list_accounts()}
        sums: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        for record in self.db.list_allocation_records():
            txn = self.db.get_transaction(record.transaction_id)
            account = accounts.get(txn.account_id) if txn else None
            if account is None:
                continue
            if record.kind is AllocationKind.SAVING:
                sums[account.currency]["saved"] += record.amount
            elif record.status is AllocationStatus.DONATED:
                sums[account.currency]["donated"] += record.amount
            else:
                sums[account.currency]["pending"] += record.amount
        for account_id in dps_savings_ids(list(accounts.values())):
            account = accounts.get(account_id)
            if account is not None:
                sums[account.currency]["dps_saved"] += account.calculated_balance
        return {currency: AllocationTotals(**values) for currency, values in sorted(sums.items())}

    def verify_records(self) -> list[IntegrityIssue]:
        """Check that every record belongs to an income it fits in."""
        grouped: dict[str, list[AllocationRecord]] = defaultdict(list)
        for record in self.db.list_allocation_records():
            grouped[record.transaction_id].append(record)

        issues = []
        for transaction_id, records in grouped.items():
            refs = (transaction_id,) + tuple(str(r.id) for r in records)
            txn = self.db.get_transaction(transaction_id)
            if txn is None:
                issue = IntegrityIssue(
                    code="allocation_orphaned",
                    message=f"Saving/donation records {', '.join(refs[1:])} point to missing transaction {transaction_id}",
                    references=refs,
                )
            elif txn.type is not TransactionType.INCOME:
                issue = IntegrityIssue(
                    code="allocation_not_income",
                    message=f"Transaction {transaction_id} has saving/donation records but is not an income",
                    references=refs,
                )
            elif sum((r.amount for r in records), ZERO) > txn.amount:
                issue = IntegrityIssue(
                    code="allocation_exceeds_income",
                    message=(
                        f"Saving/donation records of {transaction_id} add up to "
                        f"{sum((r.amount for r in records), ZERO)}, more than the income {txn.amount}"
                    ),
                    references=refs,
                )
            else:
                continue
            logger.warning(issue.message)
            issues.append(issue)
        return issues

    @staticmethod
    def _undo(step) -> None:
        try:
            step()
        except Exception:
            logger.exception("donation compensation step failed; run an audit")


def _quantize(amount: Decimal) -> Decimal:
    return amount.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
