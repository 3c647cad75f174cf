"""Transfer orchestration.

A transfer is written as two ledger entries: an expense on the source and
an income on the destination. Both legs carry the same transfer id in
``tags[1]`` so they can always be regrouped, displayed and undone together.

Creation walks INIT -> VALIDATE -> WRITE_SOURCE_LEG -> WRITE_DEST_LEG ->
RECOMPUTE_BOTH_BALANCES -> DONE. Any failure moves to FAILED, and every leg
already written is deleted again before the error propagates.
"""

import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pocketledger.database.base import Database
from pocketledger.domain.entities import (
    Account,
    DPS_TRANSFER_TAG,
    DpsTransfer,
    IntegrityIssue,
    TRANSFER_TAG,
    Transaction,
    TransactionType,
    Transfer,
    TransferKind,
    TransferListing,
)
from pocketledger.domain.errors import (
    NotFoundError,
    ValidationError,
    WrongTransferTypeError,
    account_inactive,
    dps_not_enabled,
    transfer_not_found,
)
from pocketledger.domain.ledger import AMOUNT_QUANTUM, LedgerService, validate_amount
from pocketledger.utils.transaction_id import generate_transaction_id

logger = logging.getLogger(__name__)

TRANSFER_CATEGORY = "Transfer"
DPS_CATEGORY = "DPS"


class TransferState(str, Enum):
    INIT = "init"
    VALIDATE = "validate"
    WRITE_SOURCE_LEG = "write_source_leg"
    WRITE_DEST_LEG = "write_dest_leg"
    RECOMPUTE_BOTH_BALANCES = "recompute_both_balances"
    DONE = "done"
    FAILED = "failed"


class _TransferRun:
    """Tracks one transfer creation and undoes written legs on failure."""

    def __init__(self, ledger: LedgerService, transfer_id: str):
        self.ledger = ledger
        self.transfer_id = transfer_id
        self.state = TransferState.INIT
        self.written: list[str] = []

    def advance(self, state: TransferState) -> None:
        logger.debug("transfer %s: %s -> %s", self.transfer_id, self.state.value, state.value)
        self.state = state

    def write_leg(self, state: TransferState, **leg: Any) -> str:
        self.advance(state)
        transaction_id = self.ledger.add_transaction(allow_reserved_tags=True, **leg)
        self.written.append(transaction_id)
        return transaction_id

    def fail(self) -> None:
        failed_in = self.state
        self.state = TransferState.FAILED
        logger.error(
            "transfer %s failed in %s; rolling back %d leg(s)",
            self.transfer_id,
            failed_in.value,
            len(self.written),
        )
        for transaction_id in reversed(self.written):
            try:
                self.ledger.delete_transaction(transaction_id)
            except Exception:
                logger.exception(
                    "could not roll back leg %s of transfer %s; it will show as unpaired",
                    transaction_id,
                    self.transfer_id,
                )
        self.written.clear()


class TransferService:
    """Service composing ledger entries into logical transfers."""

    def __init__(self, db: Database, ledger: Optional[LedgerService] = None):
        """Initialize transfer service.

        Args:
            db: Database instance
            ledger: Ledger to write through (one is created if omitted)
        """
        self.db = db
        self.ledger = ledger or LedgerService(db)

    def transfer_currency(
        self,
        from_account_id: int,
        to_account_id: int,
        from_amount: Decimal,
        exchange_rate: Decimal,
        note: Optional[str] = None,
        date: Optional[date] = None,
    ) -> Transfer:
        """Move money between accounts of different currencies.

        The destination receives ``from_amount * exchange_rate``.

        Raises:
            WrongTransferTypeError: If both accounts share a currency
            ValidationError: Invalid amount/rate or same account twice
            NotFoundError: Unknown account
        """
        rate = _positive(exchange_rate, "Exchange rate")
        amount = validate_amount(from_amount)
        source, destination = self._validate_pair(from_account_id, to_account_id)
        if source.currency == destination.currency:
            raise WrongTransferTypeError(
                f"Both accounts use {source.currency}; use an in-between transfer instead"
            )
        to_amount = (amount * rate).quantize(AMOUNT_QUANTUM)
        if to_amount <= 0:
            raise ValidationError("Converted amount rounds to zero")
        return self._execute(TransferKind.CURRENCY, source, destination, amount, to_amount, note, date)

    def transfer_in_between(
        self,
        from_account_id: int,
        to_account_id: int,
        amount: Decimal,
        note: Optional[str] = None,
        date: Optional[date] = None,
    ) -> Transfer:
        """Move money between two accounts of the same currency, 1:1.

        Raises:
            WrongTransferTypeError: If the currencies differ
        """
        amount = validate_amount(amount)
        source, destination = self._validate_pair(from_account_id, to_account_id)
        if source.currency != destination.currency:
            raise WrongTransferTypeError(
                f"{source.currency} to {destination.currency} needs a currency transfer"
            )
        return self._execute(TransferKind.IN_BETWEEN, source, destination, amount, amount, note, date)

    def transfer_dps(
        self,
        main_account_id: int,
        amount: Decimal,
        note: Optional[str] = None,
        date: Optional[date] = None,
    ) -> DpsTransfer:
        """Move savings from a main account into its DPS savings account.

        Writes two ``dps_transfer`` legs through the ledger and then the DPS
        transfer record; a failure at any step removes what was written.

        Raises:
            ValidationError: DPS not enabled on the account
            NotFoundError: Account or its DPS savings account missing
        """
        amount = validate_amount(amount)
        main = self.ledger.require_account(main_account_id)
        if not main.has_dps:
            raise ValidationError(dps_not_enabled(main_account_id))
        if main.dps_savings_account_id is None:
            raise NotFoundError(f"Account {main_account_id} has no DPS savings account")
        savings = self.db.get_account(main.dps_savings_account_id)
        if savings is None:
            raise NotFoundError(f"DPS savings account {main.dps_savings_account_id} not found")
        for acc in (main, savings):
            if not acc.is_active:
                raise ValidationError(account_inactive(acc.id))

        transfer_id = generate_transaction_id()
        when = date or _today()
        tags = (DPS_TRANSFER_TAG, transfer_id)
        run = _TransferRun(self.ledger, transfer_id)
        run.advance(TransferState.VALIDATE)
        try:
            run.write_leg(
                TransferState.WRITE_SOURCE_LEG,
                account_id=main.id,
                type=TransactionType.EXPENSE,
                amount=amount,
                category=DPS_CATEGORY,
                description=note or f"DPS Transfer to {savings.name}",
                date=when,
                tags=tags,
            )
            run.write_leg(
                TransferState.WRITE_DEST_LEG,
                account_id=savings.id,
                type=TransactionType.INCOME,
                amount=amount,
                category=DPS_CATEGORY,
                description=note or f"DPS Transfer from {main.name}",
                date=when,
                tags=tags,
            )
            run.advance(TransferState.RECOMPUTE_BOTH_BALANCES)
            self.ledger.recompute_balance(main.id)
            self.ledger.recompute_balance(savings.id)
            record_id = self.db.create_dps_transfer(
                transfer_id=transfer_id,
                from_account_id=main.id,
                to_account_id=savings.id,
                amount=amount,
                date=when,
                note=note,
            )
        except Exception:
            run.fail()
            raise
        run.advance(TransferState.DONE)
        logger.info("DPS transfer %s: %s from account %s to %s", transfer_id, amount, main.id, savings.id)
        for record in self.db.list_dps_transfers(account_id=main.id):
            if record.id == record_id:
                return record
        raise NotFoundError(f"DPS transfer {transfer_id} not found after writing")

    def list_dps_transfers(self, account_id: Optional[int] = None) -> list[DpsTransfer]:
        """DPS transfer history, newest first."""
        return self.db.list_dps_transfers(account_id=account_id)

    def verify_dps_transfers(self) -> list[IntegrityIssue]:
        """Check DPS legs against the DPS transfer records.

        Every record expects an expense on its main account and an income on
        its savings account, both dated and sized like the record. A leg is
        only expected while its account exists: deleting a DPS savings
        account takes its legs along and is not reported.
        """
        account_ids = {acc.id for acc in self.db.list_accounts()}
        groups: dict[str, list[Transaction]] = defaultdict(list)
        for txn in self.db.list_transactions(tag=DPS_TRANSFER_TAG):
            if txn.tags[0] == DPS_TRANSFER_TAG and txn.group_id is not None:
                groups[txn.group_id].append(txn)
        records = {record.transfer_id: record for record in self.db.list_dps_transfers()}

        issues: list[IntegrityIssue] = []
        for transfer_id in sorted(set(groups) | set(records)):
            legs = groups.get(transfer_id, [])
            refs = (transfer_id,) + tuple(t.transaction_id for t in legs)
            record = records.get(transfer_id)
            if record is None:
                issues.append(
                    IntegrityIssue(
                        code="dps_transfer_unrecorded",
                        message=f"DPS transfer {transfer_id} has {len(legs)} leg(s) but no DPS transfer record",
                        references=refs,
                    )
                )
                continue

            expected = set()
            if record.from_account_id in account_ids:
                expected.add((TransactionType.EXPENSE, record.from_account_id))
            if record.to_account_id in account_ids:
                expected.add((TransactionType.INCOME, record.to_account_id))
            actual = [(t.type, t.account_id) for t in legs]
            if len(actual) != len(set(actual)) or set(actual) != expected:
                code = "dps_transfer_incomplete" if set(actual) < expected else "dps_transfer_mismatch"
                found = ", ".join(f"{kind.value} on account {acc}" for kind, acc in actual) or "none"
                issues.append(
                    IntegrityIssue(
                        code=code,
                        message=(
                            f"DPS transfer {transfer_id} from account {record.from_account_id} "
                            f"to {record.to_account_id} has legs: {found}"
                        ),
                        references=refs,
                    )
                )
                continue
            wrong_amount = [t for t in legs if t.amount != record.amount]
            if wrong_amount:
                issues.append(
                    IntegrityIssue(
                        code="dps_transfer_amount_mismatch",
                        message=(
                            f"DPS transfer {transfer_id} records {record.amount} but leg "
                            f"{wrong_amount[0].transaction_id} is {wrong_amount[0].amount}"
                        ),
                        references=refs,
                    )
                )
                continue
            wrong_date = [t for t in legs if t.date != record.date]
            if wrong_date:
                issues.append(
                    IntegrityIssue(
                        code="dps_transfer_date_mismatch",
                        message=(
                            f"DPS transfer {transfer_id} is dated {record.date} but leg "
                            f"{wrong_date[0].transaction_id} is dated {wrong_date[0].date}"
                        ),
                        references=refs,
                    )
                )

        for issue in issues:
            logger.warning("DPS transfer integrity: %s", issue.message)
        return issues

    def list_transfers(self) -> TransferListing:
        """Rebuild logical transfers from tagged legs.

        Groups that are not exactly one expense plus one income are returned
        as integrity issues and left out of ``transfers``.
        """
        accounts = {acc.id: acc for acc in self.db.list_accounts()}
        groups: dict[str, list[Transaction]] = defaultdict(list)
        issues: list[IntegrityIssue] = []
        for txn in self.db.list_transactions(tag=TRANSFER_TAG):
            if not txn.is_transfer_leg:
                continue
            if txn.group_id is None:
                issues.append(
                    IntegrityIssue(
                        code="transfer_leg_untagged",
                        message=f"Transfer leg {txn.transaction_id} carries no transfer id",
                        references=(txn.transaction_id,),
                    )
                )
                continue
            groups[txn.group_id].append(txn)

        transfers = []
        for transfer_id, legs in groups.items():
            issue = _check_group(transfer_id, legs)
            if issue is not None:
                issues.append(issue)
                continue
            source = next(t for t in legs if t.type is TransactionType.EXPENSE)
            destination = next(t for t in legs if t.type is TransactionType.INCOME)
            from_acc = accounts.get(source.account_id)
            to_acc = accounts.get(destination.account_id)
            if from_acc is None or to_acc is None:
                issues.append(
                    IntegrityIssue(
                        code="transfer_account_missing",
                        message=f"Transfer {transfer_id} references a missing account",
                        references=(transfer_id,),
                    )
                )
                continue
            kind = TransferKind.CURRENCY if from_acc.currency != to_acc.currency else TransferKind.IN_BETWEEN
            transfers.append(
                Transfer(
                    transfer_id=transfer_id,
                    kind=kind,
                    source=source,
                    destination=destination,
                    from_currency=from_acc.currency,
                    to_currency=to_acc.currency,
                )
            )

        for issue in issues:
            logger.warning("transfer integrity: %s", issue.message)
        transfers.sort(key=lambda t: (t.date, t.source.id), reverse=True)
        return TransferListing(transfers=transfers, issues=issues)

    def get_transfer(self, transfer_id: str) -> Transfer:
        """Return one well-formed transfer.

        Raises:
            NotFoundError: No such transfer, or its group is malformed
        """
        listing = self.list_transfers()
        for transfer in listing.transfers:
            if transfer.transfer_id == transfer_id:
                return transfer
        raise NotFoundError(transfer_not_found(transfer_id))

    def delete_transfer(self, transfer_id: str) -> list[str]:
        """Undo a transfer by deleting every leg of its group.

        Works for malformed groups too, which is how an unpaired leg is
        cleaned up. If a later delete fails, earlier deletes are restored.

        Returns:
            Transaction ids that were deleted
        """
        legs = [
            txn
            for txn in self.db.list_transactions(tag=TRANSFER_TAG)
            if txn.is_transfer_leg and txn.group_id == transfer_id
        ]
        if not legs:
            raise NotFoundError(transfer_not_found(transfer_id))

        deleted: list[Transaction] = []
        try:
            for leg in legs:
                deleted.append(self.ledger.delete_transaction(leg.transaction_id))
        except Exception:
            logger.error("undo of transfer %s failed; restoring %d leg(s)", transfer_id, len(deleted))
            for leg in reversed(deleted):
                try:
                    self.ledger.restore_transaction(leg)
                except Exception:
                    logger.exception("could not restore leg %s of transfer %s", leg.transaction_id, transfer_id)
            raise
        logger.info("deleted transfer %s (%d legs)", transfer_id, len(deleted))
        return [leg.transaction_id for leg in deleted]

    def _validate_pair(self, from_account_id: int, to_account_id: int) -> tuple[Account, Account]:
        if from_account_id == to_account_id:
            raise ValidationError("Source and destination accounts must be different")
        source = self.ledger.require_account(from_account_id)
        destination = self.ledger.require_account(to_account_id)
        for acc in (source, destination):
            if not acc.is_active:
                raise ValidationError(account_inactive(acc.id))
        return source, destination

    def _execute(
        self,
        kind: TransferKind,
        source: Account,
        destination: Account,
        from_amount: Decimal,
        to_amount: Decimal,
        note: Optional[str],
        when: Optional[date],
    ) -> Transfer:
        transfer_id = generate_transaction_id()
        when = when or _today()
        run = _TransferRun(self.ledger, transfer_id)
        run.advance(TransferState.VALIDATE)
        try:
            source_id = run.write_leg(
                TransferState.WRITE_SOURCE_LEG,
                account_id=source.id,
                type=TransactionType.EXPENSE,
                amount=from_amount,
                category=TRANSFER_CATEGORY,
                description=note or f"Transfer to {destination.name}",
                date=when,
                tags=(TRANSFER_TAG, transfer_id, str(destination.id), str(to_amount)),
            )
            destination_id = run.write_leg(
                TransferState.WRITE_DEST_LEG,
                account_id=destination.id,
                type=TransactionType.INCOME,
                amount=to_amount,
                category=TRANSFER_CATEGORY,
                description=note or f"Transfer from {source.name}",
                date=when,
                tags=(TRANSFER_TAG, transfer_id, str(source.id), str(from_amount)),
            )
            run.advance(TransferState.RECOMPUTE_BOTH_BALANCES)
            self.ledger.recompute_balance(source.id)
            self.ledger.recompute_balance(destination.id)
        except Exception:
            run.fail()
            raise
        run.advance(TransferState.DONE)
        logger.info(
            "%s transfer %s: %s %s from account %s -> %s %s to account %s",
            kind.value,
            transfer_id,
            from_amount,
            source.currency,
            source.id,
            to_amount,
            destination.currency,
            destination.id,
        )
        return Transfer(
            transfer_id=transfer_id,
            kind=kind,
            source=self.ledger.require_transaction(source_id),
            destination=self.ledger.require_transaction(destination_id),
            from_currency=source.currency,
            to_currency=destination.currency,
        )


def _check_group(transfer_id: str, legs: list[Transaction]) -> Optional[IntegrityIssue]:
    refs = tuple(t.transaction_id for t in legs)
    if len(legs) != 2:
        state = "incomplete" if len(legs) < 2 else "over-full"
        return IntegrityIssue(
            code=f"transfer_{state.replace('-', '_')}",
            message=f"Transfer {transfer_id} is {state}: {len(legs)} leg(s) instead of 2",
            references=refs,
        )
    types = {t.type for t in legs}
    if types != {TransactionType.INCOME, TransactionType.EXPENSE}:
        return IntegrityIssue(
            code="transfer_same_type_legs",
            message=f"Transfer {transfer_id} has two {legs[0].type.value} legs",
            references=refs,
        )
    if len({t.date for t in legs}) != 1:
        return IntegrityIssue(
            code="transfer_date_mismatch",
            message=f"Transfer {transfer_id} legs are dated {' and '.join(str(t.date) for t in legs)}",
            references=refs,
        )
    return None


def _positive(value: Any, label: str) -> Decimal:
    try:
        number = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (ArithmeticError, TypeError, ValueError):
        raise ValidationError(f"{label} is not a number: {value!r}")
    if not number.is_finite() or number <= 0:
        raise ValidationError(f"{label} must be greater than zero (got {value})")
    return number


def _today() -> date:
    return date.today()
