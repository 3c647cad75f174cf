"""Purchase domain service.

Keeps purchases and their funding expense in step. At any time a purchase
either has no transaction (planned, cancelled, or excluded from
calculation) or exactly one linked expense whose amount equals its price.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.category import CategoryBudget, CategoryService
from pocketledger.domain.entities import (
    IntegrityIssue,
    PURCHASE_TAG,
    Purchase as PurchaseEntity,
    PurchasePriority,
    PurchaseStatus,
    Transaction,
    TransactionType,
)
from pocketledger.domain.errors import (
    ImmutableFieldError,
    NotFoundError,
    ValidationError,
    purchase_not_found,
)
from pocketledger.domain.ledger import LedgerService, PurchaseDetails, validate_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class CategorySpend:
    category: str
    total_spent: Decimal
    item_count: int
    percentage: Decimal


@dataclass(frozen=True)
class PurchaseAnalytics:
    """Spending summary over purchased items."""

    total_spent: Decimal
    monthly_spent: Decimal
    planned_count: int
    purchased_count: int
    cancelled_count: int
    top_category: Optional[str]
    category_breakdown: list[CategorySpend] = field(default_factory=list)
    budgets: list[CategoryBudget] = field(default_factory=list)

    @property
    def over_budget(self) -> list[CategoryBudget]:
        return [b for b in self.budgets if b.over_budget]


class PurchaseService:
    """Service for recording purchases and linking their expenses."""

    def __init__(self, db: Database, ledger: Optional[LedgerService] = None):
        """Initialize purchase service.

        Args:
            db: Database instance
            ledger: Ledger to write expenses through (one is created if omitted)
        """
        self.db = db
        self.ledger = ledger or LedgerService(db)

    def get_purchase(self, purchase_id: int) -> Optional[PurchaseEntity]:
        return self.db.get_purchase(purchase_id)

    def require_purchase(self, purchase_id: int) -> PurchaseEntity:
        purchase = self.db.get_purchase(purchase_id)
        if purchase is None:
            raise NotFoundError(purchase_not_found(purchase_id))
        return purchase

    def find_by_transaction(self, transaction_id: str) -> Optional[PurchaseEntity]:
        """The purchase whose expense is ``transaction_id``, if any."""
        return self.db.find_purchase_by_transaction(transaction_id)

    def list_purchases(
        self,
        status: Optional[PurchaseStatus | str] = None,
        category: Optional[str] = None,
    ) -> list[PurchaseEntity]:
        """List purchases, newest first, optionally by status or category."""
        status_value = PurchaseStatus(status).value if status is not None else None
        return self.db.list_purchases(status=status_value, category=category)

    def record_purchase(
        self,
        item_name: str,
        category: str,
        status: PurchaseStatus | str = PurchaseStatus.PLANNED,
        price: Optional[Decimal] = None,
        account_id: Optional[int] = None,
        currency: Optional[str] = None,
        purchase_date: Optional[date] = None,
        priority: PurchasePriority | str = PurchasePriority.MEDIUM,
        notes: Optional[str] = None,
        exclude_from_calculation: bool = False,
    ) -> int:
        """Record a new purchase.

        - planned: stored with price 0 and no account; no money moves
        - purchased: an expense of ``price`` is written on the account and
          linked, unless ``exclude_from_calculation`` is set, in which case
          price and account are stored and no expense is written
        - cancelled: stored without any transaction

        Returns:
            Purchase ID

        Raises:
            ValidationError: Missing name/category, or price/account missing
                for a purchased item
            NotFoundError: Unknown account
        """
        item_name = (item_name or "").strip()
        category = (category or "").strip()
        if not item_name:
            raise ValidationError("Item name is required")
        if not category:
            raise ValidationError("Category is required")
        try:
            status = PurchaseStatus(status)
            priority = PurchasePriority(priority)
        except ValueError as e:
            raise ValidationError(str(e))
        when = purchase_date or _today()

        if status is PurchaseStatus.PLANNED:
            purchase_id = self.db.create_purchase(
                item_name=item_name,
                category=category,
                price=ZERO,
                currency=(currency or "USD").upper(),
                purchase_date=when,
                status=status.value,
                priority=priority.value,
                notes=notes,
            )
            logger.info("planned purchase %s '%s'", purchase_id, item_name)
            return purchase_id

        if status is PurchaseStatus.CANCELLED:
            return self.db.create_purchase(
                item_name=item_name,
                category=category,
                price=Decimal(price) if price is not None else ZERO,
                currency=(currency or "USD").upper(),
                purchase_date=when,
                status=status.value,
                priority=priority.value,
                notes=notes,
                account_id=account_id,
            )

        if price is None or account_id is None:
            raise ValidationError("Account and price are required for a purchased item")
        price = validate_amount(price)
        account = self.ledger.require_account(account_id)

        if exclude_from_calculation:
            purchase_id = self.db.create_purchase(
                item_name=item_name,
                category=category,
                price=price,
                currency=account.currency,
                purchase_date=when,
                status=status.value,
                priority=priority.value,
                notes=notes,
                account_id=account.id,
                exclude_from_calculation=True,
            )
            logger.info("purchase %s recorded without moving funds (excluded)", purchase_id)
            return purchase_id

        transaction_id = self._write_expense(account.id, price, category, item_name, when)
        try:
            purchase_id = self.db.create_purchase(
                item_name=item_name,
                category=category,
                price=price,
                currency=account.currency,
                purchase_date=when,
                status=status.value,
                priority=priority.value,
                notes=notes,
                account_id=account.id,
                transaction_id=transaction_id,
            )
        except Exception:
            logger.error("storing purchase failed; removing expense %s", transaction_id)
            self._undo(lambda: self.ledger.delete_transaction(transaction_id))
            raise
        logger.info("purchase %s funded by %s on account %s", purchase_id, transaction_id, account.id)
        return purchase_id

    def transition_to_purchased(
        self,
        purchase_id: int,
        account_id: int,
        price: Decimal,
        purchase_date: Optional[date] = None,
    ) -> PurchaseEntity:
        """Mark a planned purchase as bought and write its expense.

        Raises:
            ValidationError: Purchase is not planned, or bad price
            NotFoundError: Unknown purchase or account
        """
        purchase = self.require_purchase(purchase_id)
        if purchase.status is not PurchaseStatus.PLANNED:
            raise ValidationError(
                f"Purchase {purchase_id} is {purchase.status.value}; only planned purchases can be bought"
            )
        price = validate_amount(price)
        account = self.ledger.require_account(account_id)
        when = purchase_date or purchase.purchase_date

        transaction_id = self._write_expense(account.id, price, purchase.category, purchase.item_name, when)
        try:
            self.db.update_purchase(
                purchase_id,
                status=PurchaseStatus.PURCHASED.value,
                price=price,
                currency=account.currency,
                account_id=account.id,
                transaction_id=transaction_id,
                purchase_date=when,
                exclude_from_calculation=False,
            )
        except Exception:
            logger.error("updating purchase %s failed; removing expense %s", purchase_id, transaction_id)
            self._undo(lambda: self.ledger.delete_transaction(transaction_id))
            raise
        logger.info("purchase %s bought via %s", purchase_id, transaction_id)
        return self.require_purchase(purchase_id)

    def link_recorded_expense(self, transaction: Transaction, details: PurchaseDetails) -> int:
        """Create a purchased Purchase for an expense entered on the ledger side."""
        if transaction.type is not TransactionType.EXPENSE:
            raise ValidationError("Only expenses can be recorded as purchases")
        account = self.ledger.require_account(transaction.account_id)
        purchase_id = self.db.create_purchase(
            item_name=details.item_name or transaction.description or transaction.category,
            category=transaction.category,
            price=transaction.amount,
            currency=account.currency,
            purchase_date=transaction.date,
            status=PurchaseStatus.PURCHASED.value,
            priority=PurchasePriority(details.priority).value,
            notes=details.notes,
            account_id=account.id,
            transaction_id=transaction.transaction_id,
        )
        logger.info("purchase %s linked to expense %s", purchase_id, transaction.transaction_id)
        return purchase_id

    def update_purchase(
        self,
        purchase_id: int,
        item_name: Optional[str] = None,
        category: Optional[str] = None,
        priority: Optional[PurchasePriority | str] = None,
        notes: Optional[str] = None,
        purchase_date: Optional[date] = None,
        price: Optional[Decimal] = None,
    ) -> PurchaseEntity:
        """Edit purchase metadata, mirroring changes onto the linked expense.

        Price can change only while no expense is linked.

        Raises:
            ImmutableFieldError: Price change on a purchase with a linked expense
        """
        purchase = self.require_purchase(purchase_id)
        changes: dict = {}
        if item_name is not None:
            if not item_name.strip():
                raise ValidationError("Item name is required")
            changes["item_name"] = item_name.strip()
        if category is not None:
            if not category.strip():
                raise ValidationError("Category is required")
            changes["category"] = category.strip()
        if priority is not None:
            changes["priority"] = PurchasePriority(priority).value
        if notes is not None:
            changes["notes"] = notes
        if purchase_date is not None:
            changes["purchase_date"] = purchase_date
        if price is not None and Decimal(price) != purchase.price:
            if purchase.transaction_id is not None:
                raise ImmutableFieldError(
                    "price", "Price of a purchase with a linked expense cannot change; cancel and record it again"
                )
            if purchase.status is PurchaseStatus.PLANNED:
                raise ValidationError("Planned purchases have no price yet")
            changes["price"] = validate_amount(price)

        if not changes:
            return purchase

        if purchase.transaction_id is not None:
            patch = {}
            if "item_name" in changes:
                patch["description"] = changes["item_name"]
            if "category" in changes:
                patch["category"] = changes["category"]
            if "purchase_date" in changes:
                patch["date"] = changes["purchase_date"]
            if patch:
                self.ledger.update_transaction(purchase.transaction_id, **patch)
        self.db.update_purchase(purchase_id, **changes)
        return self.require_purchase(purchase_id)

    def cancel_purchase(self, purchase_id: int) -> PurchaseEntity:
        """Cancel a purchase, removing its linked expense if there is one."""
        purchase = self.require_purchase(purchase_id)
        if purchase.status is PurchaseStatus.CANCELLED:
            return purchase

        removed: Optional[Transaction] = None
        if purchase.transaction_id is not None:
            removed = self.ledger.delete_transaction(purchase.transaction_id, purchase_id=purchase.id)
        try:
            self.db.update_purchase(
                purchase_id, status=PurchaseStatus.CANCELLED.value, transaction_id=None
            )
        except Exception:
            if removed is not None:
                logger.error("cancelling purchase %s failed; restoring %s", purchase_id, removed.transaction_id)
                self._undo(lambda: self.ledger.restore_transaction(removed))
            raise
        logger.info("cancelled purchase %s", purchase_id)
        return self.require_purchase(purchase_id)

    def delete_purchase(self, purchase_id: int) -> None:
        """Delete a purchase together with its linked expense."""
        purchase = self.require_purchase(purchase_id)
        removed: Optional[Transaction] = None
        if purchase.transaction_id is not None and self.db.transaction_exists(purchase.transaction_id):
            removed = self.ledger.delete_transaction(purchase.transaction_id, purchase_id=purchase.id)
        try:
            self.db.delete_purchase(purchase_id)
        except Exception:
            if removed is not None:
                self._undo(lambda: self.ledger.restore_transaction(removed))
            raise
        logger.info("deleted purchase %s", purchase_id)

    def verify_purchase_links(self) -> list[IntegrityIssue]:
        """Check every purchase against its linked expense."""
        issues = []
        for purchase in self.db.list_purchases():
            problem = self._link_problem(purchase)
            if problem is not None:
                issue = IntegrityIssue(
                    code="purchase_link",
                    message=f"Purchase {purchase.id} ({purchase.item_name}): {problem}",
                    references=(str(purchase.id),) + ((purchase.transaction_id,) if purchase.transaction_id else ()),
                )
                logger.warning(issue.message)
                issues.append(issue)
        return issues

    def analytics(self, today: Optional[date] = None) -> PurchaseAnalytics:
        """Spending totals, status counts and category breakdown."""
        today = today or _today()
        purchases = self.db.list_purchases()
        bought = [p for p in purchases if p.status is PurchaseStatus.PURCHASED]
        total = sum((p.price for p in bought), ZERO)
        monthly = sum(
            (
                p.price
                for p in bought
                if p.purchase_date.year == today.year and p.purchase_date.month == today.month
            ),
            ZERO,
        )
        per_category: dict[str, list[Decimal]] = {}
        for p in bought:
            per_category.setdefault(p.category, []).append(p.price)
        breakdown = [
            CategorySpend(
                category=name,
                total_spent=sum(prices, ZERO),
                item_count=len(prices),
                percentage=(sum(prices, ZERO) / total * 100) if total > 0 else ZERO,
            )
            for name, prices in per_category.items()
        ]
        breakdown.sort(key=lambda c: c.total_spent, reverse=True)
        return PurchaseAnalytics(
            total_spent=total,
            monthly_spent=monthly,
            planned_count=sum(1 for p in purchases if p.status is PurchaseStatus.PLANNED),
            purchased_count=len(bought),
            cancelled_count=sum(1 for p in purchases if p.status is PurchaseStatus.CANCELLED),
            top_category=breakdown[0].category if breakdown else None,
            category_breakdown=breakdown,
            budgets=CategoryService(self.db).budget_status(today),
        )

    def _link_problem(self, purchase: PurchaseEntity) -> Optional[str]:
        if not purchase.moves_funds:
            if purchase.transaction_id is not None:
                return f"{purchase.status.value} purchase still links transaction {purchase.transaction_id}"
            return None
        if purchase.transaction_id is None:
            return "purchased without a linked transaction"
        txn = self.db.get_transaction(purchase.transaction_id)
        if txn is None:
            return f"linked transaction {purchase.transaction_id} does not exist"
        if txn.type is not TransactionType.EXPENSE:
            return f"linked transaction {txn.transaction_id} is not an expense"
        if txn.amount != purchase.price:
            return f"price {purchase.price} differs from transaction amount {txn.amount}"
        return None

    def _write_expense(self, account_id: int, price: Decimal, category: str, item_name: str, when: date) -> str:
        return self.ledger.add_transaction(
            account_id=account_id,
            type=TransactionType.EXPENSE,
            amount=price,
            category=category,
            description=item_name,
            date=when,
            tags=(PURCHASE_TAG,),
            allow_reserved_tags=True,
        )

    @staticmethod
    def _undo(step) -> None:
        try:
            step()
        except Exception:
            logger.exception("purchase compensation step failed; run an audit")


def _today() -> date:
    return date.today()
