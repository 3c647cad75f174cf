"""Purchase category domain service."""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.account import normalize_currency
from pocketledger.domain.entities import PurchaseCategory, PurchaseStatus
from pocketledger.domain.errors import ConflictError, NotFoundError, ValidationError, category_not_found
from pocketledger.domain.ledger import validate_amount

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class CategoryBudget:
    """This month's spending of one category against its budget."""

    category: str
    currency: str
    budget: Decimal
    spent: Decimal

    @property
    def remaining(self) -> Decimal:
        return self.budget - self.spent

    @property
    def over_budget(self) -> bool:
        return self.spent > self.budget


class CategoryService:
    """Service for managing purchase categories and their monthly budgets."""

    def __init__(self, db: Database):
        """Initialize category service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_category(
        self,
        name: str,
        monthly_budget: Decimal,
        currency: str,
        description: Optional[str] = None,
    ) -> int:
        """Create a purchase category.

        Args:
            name: Category name, unique
            monthly_budget: Budget per calendar month, greater than zero
            currency: Currency the budget is kept in
            description: Optional description

        Returns:
            Category ID

        Raises:
            ValidationError: Empty name or non-positive budget
            ConflictError: A category with this name exists
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name is required")
        budget = validate_amount(monthly_budget)
        currency = normalize_currency(currency)
        if self.db.get_purchase_category_by_name(name) is not None:
            raise ConflictError(f"Purchase category '{name}' already exists")
        category_id = self.db.create_purchase_category(
            name=name, monthly_budget=budget, currency=currency, description=description
        )
        logger.info("created purchase category %s '%s' with budget %s %s", category_id, name, budget, currency)
        return category_id

    def get_category(self, category_id: int) -> Optional[PurchaseCategory]:
        return self.db.get_purchase_category(category_id)

    def get_category_by_name(self, name: str) -> Optional[PurchaseCategory]:
        return self.db.get_purchase_category_by_name(name)

    def require_category(self, category: int | str) -> PurchaseCategory:
        """Resolve a category by ID or name.

        Raises:
            NotFoundError: No such category
        """
        found = None
        if isinstance(category, int) or str(category).isdigit():
            found = self.db.get_purchase_category(int(category))
        if found is None:
            found = self.db.get_purchase_category_by_name(str(category))
        if found is None:
            raise NotFoundError(category_not_found(category))
        return found

    def list_categories(self) -> list[PurchaseCategory]:
        return self.db.list_purchase_categories()

    def update_category(
        self,
        category_id: int,
        name: Optional[str] = None,
        monthly_budget: Optional[Decimal] = None,
        currency: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PurchaseCategory:
        """Update category fields.

        Renaming does not touch purchases already filed under the old name.
        """
        category = self.require_category(category_id)
        changes: dict = {}
        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Category name is required")
            other = self.db.get_purchase_category_by_name(name)
            if other is not None and other.id != category.id:
                raise ConflictError(f"Purchase category '{name}' already exists")
            changes["name"] = name
        if monthly_budget is not None:
            changes["monthly_budget"] = validate_amount(monthly_budget)
        if currency is not None:
            changes["currency"] = normalize_currency(currency)
        if description is not None:
            changes["description"] = description
        if changes:
            self.db.update_purchase_category(category.id, **changes)
        return self.require_category(category.id)

    def delete_category(self, category_id: int) -> None:
        """Delete a category; purchases keep their category name."""
        category = self.require_category(category_id)
        self.db.delete_purchase_category(category.id)
        logger.info("deleted purchase category %s '%s'", category.id, category.name)

    def budget_status(self, today: date) -> list[CategoryBudget]:
        """Spending of the current month per budgeted category.

        Only purchased items in the category's currency count.
        """
        purchases = [
            p
            for p in self.db.list_purchases(status=PurchaseStatus.PURCHASED.value)
            if p.purchase_date.year == today.year and p.purchase_date.month == today.month
        ]
        status = []
        for category in self.list_categories():
            spent = sum(
                (p.price for p in purchases if p.category == category.name and p.currency == category.currency),
                ZERO,
            )
            budget = CategoryBudget(
                category=category.name,
                currency=category.currency,
                budget=category.monthly_budget,
                spent=spent,
            )
            if budget.over_budget:
                logger.warning(
                    "category '%s' is over budget: %s of %s %s",
                    category.name,
                    spent,
                    category.monthly_budget,
                    category.currency,
                )
            status.append(budget)
        return status
