"""Tests for purchases and their linked expenses."""

import pytest
from datetime import date
from decimal import Decimal

from pocketledger.domain.errors import (
    ImmutableFieldError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from pocketledger.domain.ledger import PurchaseDetails
from pocketledger.domain.purchase import PurchaseService


def balance_of(temp_db, account_id):
    return temp_db.get_account(account_id).calculated_balance


class TestRecordPurchase:
    """Tests for recording purchases in each status."""

    def test_planned_moves_no_money(self, purchase_service, temp_db, usd_account):
        """Test that a planned purchase has no price, account or transaction."""
        purchase_id = purchase_service.record_purchase("Headphones", "Electronics")
        purchase = purchase_service.require_purchase(purchase_id)
        assert purchase.status.value == "planned"
        assert purchase.price == Decimal("0")
        assert purchase.account_id is None
        assert purchase.transaction_id is None
        assert balance_of(temp_db, usd_account.id) == Decimal("100")

    def test_purchased_writes_linked_expense(self, purchase_service, ledger, temp_db, usd_account):
        """Test that a purchased item owns one expense equal to its price."""
        purchase_id = purchase_service.record_purchase(
            "Headphones",
            "Electronics",
            status="purchased",
            price=Decimal("45"),
            account_id=usd_account.id,
            purchase_date=date(2024, 3, 1),
        )
        purchase = purchase_service.require_purchase(purchase_id)
        txn = ledger.require_transaction(purchase.transaction_id)
        assert txn.type.value == "expense"
        assert txn.amount == Decimal("45")
        assert txn.description == "Headphones"
        assert txn.category == "Electronics"
        assert txn.tags == ("purchase",)
        assert purchase.currency == "USD"
        assert balance_of(temp_db, usd_account.id) == Decimal("55")

    def test_purchased_requires_price_and_account(self, purchase_service, usd_account):
        """Test that buying needs both a price and an account."""
        with pytest.raises(ValidationError):
            purchase_service.record_purchase("Lamp", "Home", status="purchased", price=Decimal("5"))
        with pytest.raises(ValidationError):
            purchase_service.record_purchase("Lamp", "Home", status="purchased", account_id=usd_account.id)

    def test_excluded_keeps_balance(self, purchase_service, temp_db, usd_account):
        """Test that an excluded purchase stores its price without an expense."""
        purchase_id = purchase_service.record_purchase(
            "Gift",
            "Personal",
            status="purchased",
            price=Decimal("20"),
            account_id=usd_account.id,
            exclude_from_calculation=True,
        )
        purchase = purchase_service.require_purchase(purchase_id)
        assert purchase.transaction_id is None
        assert purchase.price == Decimal("20")
        assert balance_of(temp_db, usd_account.id) == Decimal("100")

    def test_cancelled_has_no_transaction(self, purchase_service):
        """Test recording an already cancelled purchase."""
        purchase_id = purchase_service.record_purchase("Sofa", "Home", status="cancelled")
        assert purchase_service.require_purchase(purchase_id).transaction_id is None

    def test_requires_name_and_category(self, purchase_service):
        """Test that item name and category are required."""
        with pytest.raises(ValidationError):
            purchase_service.record_purchase(" ", "Home")
        with pytest.raises(ValidationError):
            purchase_service.record_purchase("Lamp", "")

    def test_store_failure_removes_expense(self, failing_db, temp_db, usd_account):
        """Test that a failed purchase write leaves no orphan expense."""
        failing_db.fail_on("create_purchase")
        with pytest.raises(PersistenceError):
            PurchaseService(failing_db).record_purchase(
                "Lamp", "Home", status="purchased", price=Decimal("30"), account_id=usd_account.id
            )
        assert temp_db.list_transactions(account_id=usd_account.id) == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")


class TestTransitions:
    """Tests for buying, cancelling and deleting purchases."""

    def test_planned_to_purchased(self, purchase_service, temp_db, usd_account):
        """Test that buying a planned item writes its expense."""
        purchase_id = purchase_service.record_purchase("Desk", "Home")
        purchase = purchase_service.transition_to_purchased(purchase_id, usd_account.id, Decimal("60"))
        assert purchase.status.value == "purchased"
        assert purchase.price == Decimal("60")
        assert purchase.account_id == usd_account.id
        assert purchase.transaction_id is not None
        assert balance_of(temp_db, usd_account.id) == Decimal("40")

    def test_only_planned_can_be_bought(self, purchase_service, usd_account):
        """Test that a purchased item cannot be bought again."""
        purchase_id = purchase_service.record_purchase("Desk", "Home")
        purchase_service.transition_to_purchased(purchase_id, usd_account.id, Decimal("60"))
        with pytest.raises(ValidationError):
            purchase_service.transition_to_purchased(purchase_id, usd_account.id, Decimal("60"))

    def test_transition_failure_removes_expense(self, failing_db, purchase_service, temp_db, usd_account):
        """Test that a failed status change leaves the purchase planned."""
        purchase_id = purchase_service.record_purchase("Desk", "Home")
        failing_db.fail_on("update_purchase")
        with pytest.raises(PersistenceError):
            PurchaseService(failing_db).transition_to_purchased(purchase_id, usd_account.id, Decimal("60"))
        assert purchase_service.require_purchase(purchase_id).status.value == "planned"
        assert temp_db.list_transactions(account_id=usd_account.id) == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")

    def test_cancel_removes_expense(self, purchase_service, ledger, temp_db, usd_account):
        """Test that cancelling deletes the linked expense."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        transaction_id = purchase_service.require_purchase(purchase_id).transaction_id
        purchase = purchase_service.cancel_purchase(purchase_id)
        assert purchase.status.value == "cancelled"
        assert purchase.transaction_id is None
        assert ledger.get_transaction(transaction_id) is None
        assert balance_of(temp_db, usd_account.id) == Decimal("100")

    def test_cancel_twice_is_harmless(self, purchase_service):
        """Test that cancelling a cancelled purchase changes nothing."""
        purchase_id = purchase_service.record_purchase("Desk", "Home")
        purchase_service.cancel_purchase(purchase_id)
        assert purchase_service.cancel_purchase(purchase_id).status.value == "cancelled"

    def test_cancel_failure_restores_expense(self, failing_db, purchase_service, temp_db, usd_account):
        """Test that a failed cancel puts the expense back."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        failing_db.fail_on("update_purchase")
        with pytest.raises(PersistenceError):
            PurchaseService(failing_db).cancel_purchase(purchase_id)
        assert balance_of(temp_db, usd_account.id) == Decimal("40")
        assert purchase_service.verify_purchase_links() == []

    def test_delete_removes_expense(self, purchase_service, temp_db, usd_account):
        """Test that deleting a purchase deletes its expense too."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        purchase_service.delete_purchase(purchase_id)
        assert purchase_service.get_purchase(purchase_id) is None
        assert balance_of(temp_db, usd_account.id) == Decimal("100")

    def test_unknown_purchase(self, purchase_service):
        """Test operations on a missing purchase."""
        with pytest.raises(NotFoundError):
            purchase_service.cancel_purchase(999)


class TestUpdatePurchase:
    """Tests for editing purchases."""

    def test_metadata_mirrors_onto_expense(self, purchase_service, ledger, usd_account):
        """Test that name, category and date changes reach the linked expense."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        purchase = purchase_service.update_purchase(
            purchase_id, item_name="Standing desk", category="Office", purchase_date=date(2024, 2, 2)
        )
        txn = ledger.require_transaction(purchase.transaction_id)
        assert txn.description == "Standing desk"
        assert txn.category == "Office"
        assert txn.date == date(2024, 2, 2)

    def test_price_fixed_while_linked(self, purchase_service, usd_account):
        """Test that a linked purchase cannot change price."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        with pytest.raises(ImmutableFieldError):
            purchase_service.update_purchase(purchase_id, price=Decimal("70"))
        # Same price is not a change
        assert purchase_service.update_purchase(purchase_id, price=Decimal("60")).price == Decimal("60")

    def test_price_editable_when_excluded(self, purchase_service, usd_account):
        """Test that an excluded purchase can change price."""
        purchase_id = purchase_service.record_purchase(
            "Gift",
            "Personal",
            status="purchased",
            price=Decimal("20"),
            account_id=usd_account.id,
            exclude_from_calculation=True,
        )
        assert purchase_service.update_purchase(purchase_id, price=Decimal("25")).price == Decimal("25")

    def test_planned_has_no_price(self, purchase_service):
        """Test that a planned purchase cannot take a price through update."""
        purchase_id = purchase_service.record_purchase("Desk", "Home")
        with pytest.raises(ValidationError):
            purchase_service.update_purchase(purchase_id, price=Decimal("5"))


class TestLedgerSidePurchase:
    """Tests for expenses entered as purchases from the ledger."""

    def test_expense_creates_purchase(self, ledger, purchase_service, usd_account):
        """Test that an expense flagged as a purchase is linked to a new purchase."""
        transaction_id = ledger.add_transaction(
            usd_account.id,
            "expense",
            Decimal("12"),
            "Books",
            description="Novel",
            purchase=PurchaseDetails(priority="high"),
        )
        [purchase] = purchase_service.list_purchases(status="purchased")
        assert purchase.transaction_id == transaction_id
        assert purchase.item_name == "Novel"
        assert purchase.priority.value == "high"
        assert purchase.price == Decimal("12")

    def test_income_cannot_be_purchase(self, ledger, usd_account):
        """Test that only expenses can be recorded as purchases."""
        with pytest.raises(ValidationError):
            ledger.add_transaction(
                usd_account.id, "income", Decimal("12"), "Books", purchase=PurchaseDetails()
            )

    def test_purchase_failure_removes_expense(self, failing_db, temp_db, usd_account):
        """Test that a failed purchase record removes the new expense."""
        from pocketledger.domain.ledger import LedgerService

        failing_db.fail_on("create_purchase")
        with pytest.raises(PersistenceError):
            LedgerService(failing_db).add_transaction(
                usd_account.id, "expense", Decimal("12"), "Books", purchase=PurchaseDetails(item_name="Novel")
            )
        assert temp_db.list_transactions(account_id=usd_account.id) == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")


class TestIntegrity:
    """Tests for purchase link verification."""

    def test_missing_transaction_is_reported(self, purchase_service, temp_db, usd_account):
        """Test that a linked expense removed behind the service's back is detected."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        temp_db.delete_transaction(purchase_service.require_purchase(purchase_id).transaction_id)
        issues = purchase_service.verify_purchase_links()
        assert [issue.code for issue in issues] == ["purchase_link"]
        assert "does not exist" in issues[0].message

    def test_account_delete_detaches_purchase(self, purchase_service, account_service, usd_account):
        """Test that deleting the funding account leaves a consistent purchase."""
        purchase_id = purchase_service.record_purchase(
            "Desk", "Home", status="purchased", price=Decimal("60"), account_id=usd_account.id
        )
        account_service.delete_account(usd_account.id)
        purchase = purchase_service.require_purchase(purchase_id)
        assert purchase.transaction_id is None
        assert purchase.exclude_from_calculation
        assert purchase_service.verify_purchase_links() == []


def test_analytics(purchase_service, usd_account):
    """Test totals, counts and category breakdown."""
    today = date(2024, 3, 20)
    for name, category, price, when in [
        ("Desk", "Home", "30", date(2024, 3, 2)),
        ("Lamp", "Home", "10", date(2024, 1, 5)),
        ("Cable", "Electronics", "10", date(2024, 3, 9)),
    ]:
        purchase_service.record_purchase(
            name, category, status="purchased", price=Decimal(price), account_id=usd_account.id, purchase_date=when
        )
    purchase_service.record_purchase("Sofa", "Home")
    purchase_service.record_purchase("Rug", "Home", status="cancelled")

    stats = purchase_service.analytics(today=today)
    assert stats.total_spent == Decimal("50")
    assert stats.monthly_spent == Decimal("40")
    assert (stats.planned_count, stats.purchased_count, stats.cancelled_count) == (1, 3, 1)
    assert stats.top_category == "Home"
    home = stats.category_breakdown[0]
    assert home.item_count == 2
    assert home.percentage == Decimal("80")


def test_analytics_reports_budgets(purchase_service, category_service, usd_account):
    """Test that this month's purchases are checked against category budgets."""
    category_service.create_category("Home", Decimal("35"), "USD")
    category_service.create_category("Electronics", Decimal("100"), "USD")
    for name, category, price, when in [
        ("Desk", "Home", "30", date(2024, 3, 2)),
        ("Lamp", "Home", "10", date(2024, 3, 5)),
        ("Rug", "Home", "99", date(2024, 2, 5)),
        ("Cable", "Electronics", "10", date(2024, 3, 9)),
    ]:
        purchase_service.record_purchase(
            name, category, status="purchased", price=Decimal(price), account_id=usd_account.id, purchase_date=when
        )

    stats = purchase_service.analytics(today=date(2024, 3, 20))
    budgets = {b.category: b for b in stats.budgets}
    assert budgets["Home"].spent == Decimal("40")
    assert budgets["Home"].remaining == Decimal("-5")
    assert budgets["Home"].over_budget
    assert not budgets["Electronics"].over_budget
    assert [b.category for b in stats.over_budget] == ["Home"]
