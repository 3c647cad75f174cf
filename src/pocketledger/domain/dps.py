"""DPS (savings sub-account) management.

A parent account with DPS enabled links exactly one hidden savings account
through ``dps_savings_account_id``. Links never chain: a savings account
cannot itself link another one.

Deleting a DPS account always leaves a transaction showing where its
balance went, and the savings account is only removed after that
transaction has been written.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.account import AccountService, dps_savings_ids
from pocketledger.domain.entities import (
    Account,
    AccountType,
    DPS_DELETION_TAG,
    DpsConfig,
    IntegrityIssue,
    TransactionType,
)
from pocketledger.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    dps_not_enabled,
)
from pocketledger.domain.ledger import LedgerService

logger = logging.getLogger(__name__)

DPS_CATEGORY = "DPS"


class DpsDestination(str, Enum):
    MAIN = "main"
    CASH = "cash"


@dataclass(frozen=True)
class DpsDeletionResult:
    """Outcome of deleting a DPS savings account."""

    main_account_id: int
    deleted_account_id: int
    destination_account_id: int
    amount: Decimal
    transaction_id: Optional[str]
    created_cash_account: bool


class DpsService:
    """Service for the DPS parent/savings relationship."""

    def __init__(self, db: Database, ledger: Optional[LedgerService] = None):
        """Initialize DPS service.

        Args:
            db: Database instance
            ledger: Ledger to write through (one is created if omitted)
        """
        self.db = db
        self.ledger = ledger or LedgerService(db)
        self.accounts = AccountService(db)

    def enable_dps(
        self, account_id: int, config: DpsConfig, savings_account_id: Optional[int] = None
    ) -> Account:
        """Enable DPS on an account.

        Re-enabling an account that already has DPS only replaces its
        settings. Otherwise the given savings account is linked, or a new
        ``"<name> (DPS)"`` savings account is created in the same currency.

        Raises:
            NotFoundError: Unknown account
            ValidationError: The account is itself a DPS savings account, or
                the savings account cannot be linked
        """
        parent = self.accounts.require_account(account_id)
        all_accounts = self.db.list_accounts()
        if parent.id in dps_savings_ids(all_accounts):
            raise ValidationError(
                f"Account {account_id} is a DPS savings account and cannot have DPS itself"
            )

        if parent.has_dps and parent.dps_savings_account_id is not None:
            if savings_account_id not in (None, parent.dps_savings_account_id):
                raise ConflictError(
                    f"Account {account_id} already links DPS account {parent.dps_savings_account_id}"
                )
            self.db.set_account_dps(parent.id, config, parent.dps_savings_account_id)
            logger.info("updated DPS settings of account %s", parent.id)
            return self.accounts.require_account(parent.id)

        created = False
        if savings_account_id is not None:
            savings = self._check_linkable(parent, savings_account_id, all_accounts)
        else:
            new_id = self.accounts.create_account(
                name=self._savings_name(parent, all_accounts),
                type=AccountType.SAVINGS,
                currency=parent.currency,
                description=f"DPS account for {parent.name}",
            )
            savings = self.accounts.require_account(new_id)
            created = True

        try:
            self.db.set_account_dps(parent.id, config, savings.id)
        except Exception:
            if created:
                logger.error("linking DPS account %s failed; removing it", savings.id)
                self.db.delete_account(savings.id)
            raise
        logger.info("enabled DPS on account %s with savings account %s", parent.id, savings.id)
        return self.accounts.require_account(parent.id)

    def disable_dps(self, account_id: int) -> Account:
        """Clear the DPS settings and link of a parent account.

        The savings account and its balance are left in place and become a
        normal visible account; use delete_dps_with_transfer to remove it.
        """
        parent = self.accounts.require_account(account_id)
        if not parent.has_dps:
            raise ValidationError(dps_not_enabled(account_id))
        self.db.set_account_dps(parent.id, None, None)
        logger.info(
            "disabled DPS on account %s; savings account %s kept",
            parent.id,
            parent.dps_savings_account_id,
        )
        return self.accounts.require_account(parent.id)

    def get_dps_account(self, account_id: int) -> Optional[Account]:
        """Return the DPS savings account of a parent, if linked."""
        parent = self.accounts.require_account(account_id)
        if parent.dps_savings_account_id is None:
            return None
        return self.db.get_account(parent.dps_savings_account_id)

    def delete_dps_with_transfer(
        self, main_account_id: int, destination: DpsDestination | str
    ) -> DpsDeletionResult:
        """Delete a parent's DPS savings account, moving its balance first.

        Steps, each undone if a later one fails:
        1. recompute the savings balance from its history
        2. resolve the destination (the main account, or the cash account of
           the currency, created when missing)
        3. record the balance on the destination (tag ``dps_deletion``)
        4. clear the parent's DPS settings
        5. delete the savings account

        A zero balance moves nothing, so step 3 is skipped.

        Raises:
            ValidationError: DPS not enabled or bad destination
            NotFoundError: Savings account missing
            PersistenceError: Store failure; the savings account is kept
        """
        try:
            destination = DpsDestination(destination)
        except ValueError:
            raise ValidationError(f"Invalid DPS destination: {destination!r}")
        main = self.accounts.require_account(main_account_id)
        if not main.has_dps or main.dps_savings_account_id is None:
            raise ValidationError(dps_not_enabled(main_account_id))
        dps_account = self.db.get_account(main.dps_savings_account_id)
        if dps_account is None:
            raise NotFoundError(f"DPS savings account {main.dps_savings_account_id} not found")

        balance = self.ledger.recompute_balance(dps_account.id)

        created_cash = False
        if destination is DpsDestination.MAIN:
            target = main
        else:
            target, created_cash = self.accounts.get_or_create_cash_account(dps_account.currency)

        transaction_id = None
        try:
            if balance != 0:
                if balance > 0:
                    txn_type = TransactionType.INCOME
                    description = f"DPS balance transferred from {dps_account.name}"
                else:
                    # Overdrawn savings: the deficit lands on the destination
                    txn_type = TransactionType.EXPENSE
                    description = f"DPS deficit transferred from {dps_account.name}"
                transaction_id = self.ledger.add_transaction(
                    account_id=target.id,
                    type=txn_type,
                    amount=abs(balance),
                    category=DPS_CATEGORY,
                    description=description,
                    tags=(DPS_DELETION_TAG,),
                    allow_reserved_tags=True,
                )
            else:
                logger.info("DPS account %s is empty; nothing to move", dps_account.id)

            self.db.set_account_dps(main.id, None, None)
            try:
                self.accounts.detach_purchases(dps_account.id)
                self.db.delete_account(dps_account.id)
            except Exception:
                logger.error("deleting DPS account %s failed; relinking it", dps_account.id)
                self.db.set_account_dps(main.id, main.dps, dps_account.id)
                raise
        except Exception:
            if transaction_id is not None:
                self._undo(lambda: self.ledger.delete_transaction(transaction_id))
            if created_cash:
                self._undo(lambda: self.db.delete_account(target.id))
            raise

        logger.info(
            "deleted DPS account %s of %s; %s moved to account %s (%s)",
            dps_account.id,
            main.id,
            balance,
            target.id,
            transaction_id or "no transaction",
        )
        return DpsDeletionResult(
            main_account_id=main.id,
            deleted_account_id=dps_account.id,
            destination_account_id=target.id,
            amount=balance,
            transaction_id=transaction_id,
            created_cash_account=created_cash,
        )

    def verify_links(self) -> list[IntegrityIssue]:
        """Report DPS links that point nowhere, chain, or are shared."""
        accounts = {acc.id: acc for acc in self.db.list_accounts()}
        issues = []
        seen: dict[int, int] = {}
        for acc in accounts.values():
            target_id = acc.dps_savings_account_id
            if target_id is None:
                continue
            target = accounts.get(target_id)
            if target is None:
                issues.append(
                    IntegrityIssue("dps_link_missing", f"Account {acc.id} links missing DPS account {target_id}", (str(acc.id),))
                )
            elif target.dps_savings_account_id is not None:
                issues.append(
                    IntegrityIssue("dps_link_chained", f"DPS account {target_id} of {acc.id} links another account", (str(acc.id), str(target_id)))
                )
            if target_id in seen:
                issues.append(
                    IntegrityIssue("dps_link_shared", f"DPS account {target_id} is linked by {seen[target_id]} and {acc.id}", (str(target_id),))
                )
            seen[target_id] = acc.id
        for issue in issues:
            logger.warning("DPS integrity: %s", issue.message)
        return issues

    def _check_linkable(self, parent: Account, savings_account_id: int, all_accounts: list[Account]) -> Account:
        savings = self.accounts.require_account(savings_account_id)
        if savings.id == parent.id:
            raise ValidationError("An account cannot be its own DPS account")
        if savings.dps_savings_account_id is not None or savings.has_dps:
            raise ValidationError(f"Account {savings.id} has DPS itself and cannot be a DPS account")
        if savings.id in dps_savings_ids(all_accounts):
            raise ConflictError(f"Account {savings.id} is already a DPS account")
        if savings.currency != parent.currency:
            raise ValidationError(
                f"DPS account must use {parent.currency}, not {savings.currency}"
            )
        return savings

    @staticmethod
    def _savings_name(parent: Account, all_accounts: list[Account]) -> str:
        taken = {acc.name for acc in all_accounts}
        name = f"{parent.name} (DPS)"
        suffix = 2
        while name in taken:
            name = f"{parent.name} (DPS {suffix})"
            suffix += 1
        return name

    @staticmethod
    def _undo(step) -> None:
        try:
            step()
        except Exception:
            logger.exception("DPS compensation step failed; run an audit")
