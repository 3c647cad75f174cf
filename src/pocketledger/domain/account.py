"""Account domain service."""

import logging
import re
from decimal import Decimal
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.entities import Account as AccountEntity, AccountType, DpsConfig, PurchaseStatus
from pocketledger.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    account_not_found,
    duplicate_account_name,
)
from pocketledger.domain.ledger import LedgerService

logger = logging.getLogger(__name__)

CASH_ACCOUNT_NAME = "Cash Account"
_CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")


def normalize_currency(currency: str) -> str:
    """Upper-case and validate an ISO 4217 style currency code."""
    code = (currency or "").strip().upper()
    if not _CURRENCY_PATTERN.match(code):
        raise ValidationError(f"Invalid currency code: {currency!r}")
    return code


def dps_savings_ids(accounts: list[AccountEntity]) -> set[int]:
    """IDs of accounts that serve as some parent's DPS savings account."""
    return {acc.dps_savings_account_id for acc in accounts if acc.dps_savings_account_id is not None}


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(
        self,
        name: str,
        type: AccountType | str,
        currency: str,
        initial_balance: Decimal = Decimal("0"),
        description: Optional[str] = None,
        dps: Optional[DpsConfig] = None,
    ) -> int:
        """Create a new account.

        Args:
            name: Account name, unique
            type: checking, savings, credit, investment or cash
            currency: ISO currency code
            initial_balance: Opening balance (may be negative for credit)
            description: Optional description
            dps: If given, DPS is enabled right away and the savings
                sub-account is created

        Returns:
            Account ID

        Raises:
            ValidationError: Invalid name, type or currency
            ConflictError: If account name already exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name is required")
        try:
            account_type = AccountType(type)
        except ValueError:
            raise ValidationError(f"Invalid account type: {type!r}")
        currency = normalize_currency(currency)
        initial_balance = Decimal(initial_balance)
        self._ensure_name_free(name)

        account_id = self.db.create_account(
            name=name,
            type=account_type.value,
            currency=currency,
            initial_balance=initial_balance,
            description=description,
        )
        logger.info("created account %s '%s' (%s)", account_id, name, currency)

        if dps is not None:
            from pocketledger.domain.dps import DpsService

            try:
                DpsService(self.db).enable_dps(account_id, dps)
            except Exception:
                logger.exception("enabling DPS for new account %s failed; removing it", account_id)
                self.db.delete_account(account_id)
                raise
        return account_id

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID.

        Args:
            account_id: Account ID

        Returns:
            Account entity or None if not found
        """
        return self.db.get_account(account_id)

    def require_account(self, account_id: int) -> AccountEntity:
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account

    def list_accounts(self, include_hidden: bool = False, active_only: bool = False) -> list[AccountEntity]:
        """List accounts.

        Args:
            include_hidden: Also return DPS savings sub-accounts
            active_only: Skip deactivated accounts

        Returns:
            List of account entities
        """
        accounts = self.db.list_accounts()
        hidden = set() if include_hidden else dps_savings_ids(accounts)
        return [
            acc
            for acc in accounts
            if acc.id not in hidden and (acc.is_active or not active_only)
        ]

    def is_dps_savings_account(self, account_id: int) -> bool:
        return account_id in dps_savings_ids(self.db.list_accounts())

    def update_account(
        self,
        account_id: int,
        name: Optional[str] = None,
        type: Optional[AccountType | str] = None,
        description: Optional[str] = None,
        initial_balance: Optional[Decimal] = None,
    ) -> AccountEntity:
        """Edit account metadata.

        Changing initial_balance is an explicit edit; the balance is then
        re-derived through the ledger.

        Raises:
            NotFoundError: If account not found
            ConflictError: If the new name is taken
        """
        self.require_account(account_id)
        changes = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Account name is required")
            self._ensure_name_free(name, exclude_id=account_id)
            changes["name"] = name
        if type is not None:
            try:
                changes["type"] = AccountType(type).value
            except ValueError:
                raise ValidationError(f"Invalid account type: {type!r}")
        if description is not None:
            changes["description"] = description
        if initial_balance is not None:
            changes["initial_balance"] = Decimal(initial_balance)

        if changes:
            self.db.update_account(account_id, **changes)
        if "initial_balance" in changes:
            LedgerService(self.db).recompute_balance(account_id)
        return self.require_account(account_id)

    def set_active(self, account_id: int, active: bool) -> None:
        """Activate or deactivate an account; history is kept either way."""
        self.require_account(account_id)
        self.db.update_account(account_id, is_active=active)
        logger.info("account %s %s", account_id, "activated" if active else "deactivated")

    def delete_account(self, account_id: int) -> None:
        """Hard-delete an account and all of its transactions.

        Purchases funded from the account lose their transaction and are
        marked excluded from calculation, so their link stays consistent.
        Transfer partners of removed legs show up as unpaired in the
        transfer listing.

        Raises:
            NotFoundError: If account not found
            DependencyError: If the account is a DPS parent or DPS savings account
        """
        account = self.require_account(account_id)
        if account.has_dps:
            raise DependencyError(
                f"Account {account_id} has DPS enabled; disable or delete its DPS account first"
            )
        if self.is_dps_savings_account(account_id):
            raise DependencyError(
                f"Account {account_id} is a DPS savings account; use the DPS delete flow"
            )

        removed = self.detach_purchases(account_id)
        self.db.delete_account(account_id)
        logger.info("deleted account %s with %d transactions", account_id, removed)

    def detach_purchases(self, account_id: int) -> int:
        """Unlink purchases whose expense lives on an account about to be deleted.

        Returns:
            Number of transactions the account holds
        """
        removed_ids = {txn.transaction_id for txn in self.db.list_transactions(account_id=account_id)}
        for purchase in self.db.list_purchases(status=PurchaseStatus.PURCHASED.value):
            if purchase.transaction_id in removed_ids:
                self.db.update_purchase(
                    purchase.id, transaction_id=None, exclude_from_calculation=True
                )
                logger.info("purchase %s detached from deleted account %s", purchase.id, account_id)
        return len(removed_ids)

    def find_cash_account(self, currency: str) -> Optional[AccountEntity]:
        """Return the first active cash account in the currency, if any."""
        currency = normalize_currency(currency)
        for acc in self.list_accounts(active_only=True):
            if acc.type is AccountType.CASH and acc.currency == currency:
                return acc
        return None

    def get_or_create_cash_account(self, currency: str) -> tuple[AccountEntity, bool]:
        """Locate the cash account for a currency, creating one if needed.

        Returns:
            (account, created)
        """
        existing = self.find_cash_account(currency)
        if existing is not None:
            return existing, False
        currency = normalize_currency(currency)
        taken = {acc.name for acc in self.db.list_accounts()}
        name = CASH_ACCOUNT_NAME if CASH_ACCOUNT_NAME not in taken else f"{CASH_ACCOUNT_NAME} ({currency})"
        account_id = self.create_account(name=name, type=AccountType.CASH, currency=currency)
        return self.require_account(account_id), True

    def currency_totals(self) -> dict[str, Decimal]:
        """Sum of calculated balances per currency over active accounts."""
        totals: dict[str, Decimal] = {}
        for acc in self.db.list_accounts():
            if acc.is_active:
                totals[acc.currency] = totals.get(acc.currency, Decimal("0")) + acc.calculated_balance
        return totals

    def _ensure_name_free(self, name: str, exclude_id: Optional[int] = None) -> None:
        for acc in self.db.list_accounts():
            if acc.id != exclude_id and acc.name == name:
                raise ConflictError(duplicate_account_name(name))
