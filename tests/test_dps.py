"""Tests for DPS savings accounts."""

import pytest
from decimal import Decimal

from pocketledger.domain.dps import DpsService
from pocketledger.domain.entities import DpsConfig
from pocketledger.domain.errors import (
    ConflictError,
    DependencyError,
    PersistenceError,
    ValidationError,
)

MONTHLY = DpsConfig(dps_type="monthly", amount_type="custom")


def balance_of(temp_db, account_id):
    return temp_db.get_account(account_id).calculated_balance


class TestEnableDps:
    """Tests for enabling and disabling DPS."""

    def test_creates_hidden_savings_account(self, dps_service, account_service, usd_account):
        """Test that enabling creates a linked savings account hidden from listings."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        savings = dps_service.get_dps_account(usd_account.id)

        assert parent.has_dps
        assert savings.name == "Checking (DPS)"
        assert savings.currency == "USD"
        assert savings.type.value == "savings"
        visible = [acc.id for acc in account_service.list_accounts()]
        assert savings.id not in visible
        assert savings.id in [acc.id for acc in account_service.list_accounts(include_hidden=True)]

    def test_re_enable_only_updates_settings(self, dps_service, usd_account):
        """Test that enabling twice keeps the existing savings account."""
        first = dps_service.enable_dps(usd_account.id, MONTHLY)
        config = DpsConfig(dps_type="flexible", amount_type="fixed", fixed_amount=Decimal("50"))
        second = dps_service.enable_dps(usd_account.id, config)
        assert second.dps_savings_account_id == first.dps_savings_account_id
        assert second.dps.fixed_amount == Decimal("50")

    def test_link_existing_account(self, dps_service, account_service, usd_account):
        """Test linking an existing same-currency account."""
        target_id = account_service.create_account(name="Rainy Day", type="savings", currency="USD")
        parent = dps_service.enable_dps(usd_account.id, MONTHLY, savings_account_id=target_id)
        assert parent.dps_savings_account_id == target_id

    def test_link_rejects_other_currency(self, dps_service, usd_account, eur_account):
        """Test that the savings account must share the parent's currency."""
        with pytest.raises(ValidationError):
            dps_service.enable_dps(usd_account.id, MONTHLY, savings_account_id=eur_account.id)

    def test_link_rejects_account_already_linked(self, dps_service, account_service, usd_account, usd_savings):
        """Test that one savings account serves one parent."""
        target_id = account_service.create_account(name="Rainy Day", type="savings", currency="USD")
        dps_service.enable_dps(usd_account.id, MONTHLY, savings_account_id=target_id)
        with pytest.raises(ConflictError):
            dps_service.enable_dps(usd_savings.id, MONTHLY, savings_account_id=target_id)

    def test_link_rejects_account_with_dps(self, dps_service, usd_account, usd_savings):
        """Test that links never chain."""
        dps_service.enable_dps(usd_savings.id, MONTHLY)
        with pytest.raises(ValidationError):
            dps_service.enable_dps(usd_account.id, MONTHLY, savings_account_id=usd_savings.id)

    def test_savings_account_cannot_enable_dps(self, dps_service, usd_account):
        """Test that a DPS savings account cannot become a parent."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        with pytest.raises(ValidationError):
            dps_service.enable_dps(parent.dps_savings_account_id, MONTHLY)

    def test_create_account_with_dps(self, account_service, dps_service):
        """Test DPS can be enabled as part of account creation."""
        account_id = account_service.create_account(
            name="Salary", type="checking", currency="USD", dps=MONTHLY
        )
        assert dps_service.get_dps_account(account_id).name == "Salary (DPS)"

    def test_disable_keeps_savings_account(self, dps_service, account_service, usd_account):
        """Test that disabling unlinks but does not delete the savings account."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        disabled = dps_service.disable_dps(usd_account.id)
        assert not disabled.has_dps
        assert disabled.dps_savings_account_id is None
        visible = [acc.id for acc in account_service.list_accounts()]
        assert parent.dps_savings_account_id in visible

    def test_disable_without_dps(self, dps_service, usd_account):
        """Test disabling an account that has no DPS."""
        with pytest.raises(ValidationError):
            dps_service.disable_dps(usd_account.id)


class TestDeleteDps:
    """Tests for deleting a DPS savings account with its balance."""

    def _fund(self, dps_service, transfer_service, account_id, amount):
        parent = dps_service.enable_dps(account_id, MONTHLY)
        transfer_service.transfer_dps(account_id, amount)
        return parent.dps_savings_account_id

    def test_balance_moves_to_main(self, dps_service, transfer_service, ledger, temp_db, usd_account):
        """Test that the savings balance returns to the main account."""
        savings_id = self._fund(dps_service, transfer_service, usd_account.id, Decimal("30"))
        result = dps_service.delete_dps_with_transfer(usd_account.id, "main")

        assert result.amount == Decimal("30")
        assert result.destination_account_id == usd_account.id
        assert not result.created_cash_account
        assert temp_db.get_account(savings_id) is None
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        txn = ledger.require_transaction(result.transaction_id)
        assert txn.tags == ("dps_deletion",)
        assert txn.type.value == "income"
        assert not temp_db.get_account(usd_account.id).has_dps

    def test_balance_moves_to_new_cash_account(self, dps_service, transfer_service, temp_db, usd_account):
        """Test that a cash account is created when the currency has none."""
        self._fund(dps_service, transfer_service, usd_account.id, Decimal("30"))
        result = dps_service.delete_dps_with_transfer(usd_account.id, "cash")

        assert result.created_cash_account
        cash = temp_db.get_account(result.destination_account_id)
        assert cash.type.value == "cash"
        assert cash.name == "Cash Account"
        assert cash.calculated_balance == Decimal("30")
        assert balance_of(temp_db, usd_account.id) == Decimal("70")

    def test_balance_moves_to_existing_cash_account(
        self, dps_service, transfer_service, temp_db, usd_account, usd_savings
    ):
        """Test that an existing cash account in the currency is reused."""
        self._fund(dps_service, transfer_service, usd_account.id, Decimal("30"))
        result = dps_service.delete_dps_with_transfer(usd_account.id, "cash")
        assert not result.created_cash_account
        assert result.destination_account_id == usd_savings.id
        assert balance_of(temp_db, usd_savings.id) == Decimal("30")

    def test_zero_balance_writes_nothing(self, dps_service, ledger, temp_db, usd_account):
        """Test that an empty savings account is deleted without a transaction."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        result = dps_service.delete_dps_with_transfer(usd_account.id, "main")
        assert result.transaction_id is None
        assert result.amount == Decimal("0")
        assert temp_db.get_account(parent.dps_savings_account_id) is None
        assert ledger.list_transactions(tag="dps_deletion") == []

    def test_negative_balance_lands_as_expense(self, dps_service, ledger, temp_db, usd_account):
        """Test that an overdrawn savings account moves its deficit."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        ledger.add_transaction(parent.dps_savings_account_id, "expense", Decimal("10"), "Fee")
        result = dps_service.delete_dps_with_transfer(usd_account.id, "main")
        assert ledger.require_transaction(result.transaction_id).type.value == "expense"
        assert balance_of(temp_db, usd_account.id) == Decimal("90")

    def test_delete_failure_keeps_savings_account(
        self, failing_db, dps_service, transfer_service, ledger, temp_db, usd_account
    ):
        """Test that a failed delete leaves balances and the link unchanged."""
        savings_id = self._fund(dps_service, transfer_service, usd_account.id, Decimal("30"))
        failing_db.fail_on("delete_account")
        with pytest.raises(PersistenceError):
            DpsService(failing_db).delete_dps_with_transfer(usd_account.id, "main")

        assert temp_db.get_account(usd_account.id).dps_savings_account_id == savings_id
        assert balance_of(temp_db, savings_id) == Decimal("30")
        assert balance_of(temp_db, usd_account.id) == Decimal("70")
        assert ledger.list_transactions(tag="dps_deletion") == []

    def test_delete_failure_removes_created_cash_account(
        self, failing_db, dps_service, transfer_service, account_service, usd_account
    ):
        """Test that a cash account created for the move is removed on failure."""
        self._fund(dps_service, transfer_service, usd_account.id, Decimal("30"))
        failing_db.fail_on("delete_account")
        with pytest.raises(PersistenceError):
            DpsService(failing_db).delete_dps_with_transfer(usd_account.id, "cash")
        names = [acc.name for acc in account_service.list_accounts(include_hidden=True)]
        assert "Cash Account" not in names

    def test_invalid_destination(self, dps_service, usd_account):
        """Test that only main and cash are accepted destinations."""
        dps_service.enable_dps(usd_account.id, MONTHLY)
        with pytest.raises(ValidationError):
            dps_service.delete_dps_with_transfer(usd_account.id, "savings")

    def test_plain_delete_blocked(self, dps_service, account_service, usd_account):
        """Test that DPS parents and savings accounts need the DPS flow."""
        parent = dps_service.enable_dps(usd_account.id, MONTHLY)
        with pytest.raises(DependencyError):
            account_service.delete_account(usd_account.id)
        with pytest.raises(DependencyError):
            account_service.delete_account(parent.dps_savings_account_id)


def test_verify_links_clean(dps_service, usd_account):
    """Test that a fresh DPS link reports no issues."""
    dps_service.enable_dps(usd_account.id, MONTHLY)
    assert dps_service.verify_links() == []
