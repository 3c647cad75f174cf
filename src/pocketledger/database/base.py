"""Abstract database interface.

This is the persistence collaborator of the ledger core. Every method is one
round trip to the store and either completes or raises PersistenceError;
nothing spans calls, so multi-step services compensate on their own.
"""

from abc import ABC, abstractmethod
from typing import Optional, Any, Sequence
from datetime import date
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from pocketledger.domain.entities import (
    Account,
    AllocationRecord,
    AllocationRule,
    DpsConfig,
    DpsTransfer,
    LendBorrow,
    Purchase,
    PurchaseCategory,
    Transaction,
)


class Database(ABC):
    """Abstract database interface for pocketledger."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self,
        name: str,
        type: str,
        currency: str,
        initial_balance: Decimal,
        description: Optional[str] = None,
    ) -> int:
        """Create a new account with calculated_balance = initial_balance. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(self) -> list[Account]:
        """List all accounts, active or not."""
        pass

    @abstractmethod
    def update_account(self, account_id: int, **changes: Any) -> None:
        """Update account metadata.

        Accepted keys: name, type, description, initial_balance, is_active.
        Balance and DPS columns have dedicated methods.
        """
        pass

    @abstractmethod
    def set_account_dps(
        self, account_id: int, dps: Optional[DpsConfig], dps_savings_account_id: Optional[int]
    ) -> None:
        """Replace the DPS settings and savings link of an account (None clears)."""
        pass

    @abstractmethod
    def set_account_donation(self, account_id: int, rule: Optional[AllocationRule]) -> None:
        """Replace the donation preference of an account; None clears it."""
        pass

    @abstractmethod
    def set_account_balance(self, account_id: int, balance: Decimal) -> None:
        """Store a freshly projected calculated_balance."""
        pass

    @abstractmethod
    def delete_account(self, account_id: int) -> None:
        """Delete an account together with all of its transactions."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(
        self,
        transaction_id: str,
        account_id: int,
        type: str,
        amount: Decimal,
        date: date,
        category: str,
        description: Optional[str] = None,
        tags: Sequence[str] = (),
    ) -> int:
        """Create a transaction. Returns the storage sequence ID."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get transaction by its human-readable ID."""
        pass

    @abstractmethod
    def transaction_exists(self, transaction_id: str) -> bool:
        """Check if a transaction with the given human-readable ID exists."""
        pass

    @abstractmethod
    def update_transaction(self, transaction_id: str, **changes: Any) -> None:
        """Update transaction metadata.

        Accepted keys: description, category, date, tags.
        """
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        tag: Optional[str] = None,
    ) -> list[Transaction]:
        """List transactions ordered by date, then storage sequence.

        Args:
            account_id: Optional account ID filter
            start_date: Optional start date filter
            end_date: Optional end date filter
            tag: Optional tag that must be present
        """
        pass

    # DPS transfer operations
    @abstractmethod
    def create_dps_transfer(
        self,
        transfer_id: str,
        from_account_id: int,
        to_account_id: int,
        amount: Decimal,
        date: date,
        note: Optional[str] = None,
    ) -> int:
        """Create a DPS transfer record. Returns record ID."""
        pass

    @abstractmethod
    def list_dps_transfers(self, account_id: Optional[int] = None) -> list[DpsTransfer]:
        """List DPS transfers, optionally those touching one account."""
        pass

    # Purchase operations
    @abstractmethod
    def create_purchase(
        self,
        item_name: str,
        category: str,
        price: Decimal,
        currency: str,
        purchase_date: date,
        status: str,
        priority: str = "medium",
        notes: Optional[str] = None,
        account_id: Optional[int] = None,
        transaction_id: Optional[str] = None,
        exclude_from_calculation: bool = False,
    ) -> int:
        """Create a purchase. Returns purchase ID."""
        pass

    @abstractmethod
    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        """Get purchase by ID."""
        pass

    @abstractmethod
    def find_purchase_by_transaction(self, transaction_id: str) -> Optional[Purchase]:
        """Get the purchase whose expense is the given transaction."""
        pass

    @abstractmethod
    def update_purchase(self, purchase_id: int, **changes: Any) -> None:
        """Update purchase fields; None values are written as NULL."""
        pass

    @abstractmethod
    def delete_purchase(self, purchase_id: int) -> None:
        """Delete a purchase."""
        pass

    @abstractmethod
    def list_purchases(
        self, status: Optional[str] = None, category: Optional[str] = None
    ) -> list[Purchase]:
        """List purchases, newest purchase date first."""
        pass

    # Lend/borrow operations
    @abstractmethod
    def create_lend_borrow(
        self,
        person_name: str,
        type: str,
        amount: Decimal,
        currency: str,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Create an active lend/borrow record. Returns record ID."""
        pass

    @abstractmethod
    def get_lend_borrow(self, record_id: int) -> Optional[LendBorrow]:
        """Get lend/borrow record by ID."""
        pass

    @abstractmethod
    def set_lend_borrow_status(self, record_ids: Sequence[int], status: str) -> None:
        """Set the status of several records in one write."""
        pass

    @abstractmethod
    def list_lend_borrow(
        self, status: Optional[str] = None, type: Optional[str] = None
    ) -> list[LendBorrow]:
        """List lend/borrow records, optionally filtered."""
        pass

    # Donation/saving record operations
    @abstractmethod
    def create_allocation_record(
        self,
        transaction_id: str,
        kind: str,
        amount: Decimal,
        mode: str,
        status: str,
        note: Optional[str] = None,
    ) -> int:
        """Create a donation or saving record for an income. Returns record ID."""
        pass

    @abstractmethod
    def get_allocation_record(self, record_id: int) -> Optional[AllocationRecord]:
        """Get donation/saving record by ID."""
        pass

    @abstractmethod
    def list_allocation_records(
        self,
        transaction_id: Optional[str] = None,
        kind: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[AllocationRecord]:
        """List donation/saving records, oldest first."""
        pass

    @abstractmethod
    def set_allocation_status(self, record_id: int, status: str) -> None:
        """Set the status of one record."""
        pass

    @abstractmethod
    def delete_allocation_records(self, transaction_id: str) -> int:
        """Delete every record of a transaction. Returns the number removed."""
        pass

    # Purchase category operations
    @abstractmethod
    def create_purchase_category(
        self,
        name: str,
        monthly_budget: Decimal,
        currency: str,
        description: Optional[str] = None,
    ) -> int:
        """Create a purchase category. Returns category ID."""
        pass

    @abstractmethod
    def get_purchase_category(self, category_id: int) -> Optional[PurchaseCategory]:
        """Get purchase category by ID."""
        pass

    @abstractmethod
    def get_purchase_category_by_name(self, name: str) -> Optional[PurchaseCategory]:
        """Get purchase category by name."""
        pass

    @abstractmethod
    def list_purchase_categories(self) -> list[PurchaseCategory]:
        """List purchase categories by name."""
        pass

    @abstractmethod
    def update_purchase_category(self, category_id: int, **changes: Any) -> None:
        """Update purchase category fields."""
        pass

    @abstractmethod
    def delete_purchase_category(self, category_id: int) -> None:
        """Delete a purchase category."""
        pass
