"""Tests for the transfer service."""

import pytest
from datetime import date
from decimal import Decimal

from pocketledger.domain.entities import DpsConfig, TransferKind
from pocketledger.domain.errors import (
    InvariantViolation,
    NotFoundError,
    PersistenceError,
    ValidationError,
    WrongTransferTypeError,
)
from pocketledger.domain.transfer import TransferService


def balance_of(temp_db, account_id):
    return temp_db.get_account(account_id).calculated_balance


class TestCurrencyTransfer:
    """Tests for cross-currency transfers."""

    def test_applies_rate(self, transfer_service, temp_db, usd_account, eur_account):
        """Test that the destination receives amount times rate."""
        transfer = transfer_service.transfer_currency(
            usd_account.id, eur_account.id, Decimal("100"), Decimal("0.92")
        )
        assert transfer.kind is TransferKind.CURRENCY
        assert transfer.from_amount == Decimal("100")
        assert transfer.to_amount == Decimal("92")
        assert transfer.exchange_rate == Decimal("0.92")
        assert balance_of(temp_db, usd_account.id) == Decimal("0")
        assert balance_of(temp_db, eur_account.id) == Decimal("92")

    def test_legs_share_transfer_id(self, transfer_service, usd_account, eur_account):
        """Test both legs carry the transfer id and the counterparty."""
        transfer = transfer_service.transfer_currency(
            usd_account.id, eur_account.id, Decimal("10"), Decimal("0.5")
        )
        assert transfer.source.tags[:3] == ("transfer", transfer.transfer_id, str(eur_account.id))
        assert transfer.destination.tags[:3] == ("transfer", transfer.transfer_id, str(usd_account.id))
        assert transfer.source.type.value == "expense"
        assert transfer.destination.type.value == "income"

    def test_converted_amount_kept_at_four_places(self, transfer_service, usd_account, eur_account):
        """Test that the converted amount is quantized to the storage scale."""
        transfer = transfer_service.transfer_currency(
            usd_account.id, eur_account.id, Decimal("10"), Decimal("0.333333")
        )
        assert transfer.to_amount == Decimal("3.3333")

    def test_same_currency_rejected(self, transfer_service, usd_account, usd_savings):
        """Test that a currency transfer needs two currencies."""
        with pytest.raises(WrongTransferTypeError):
            transfer_service.transfer_currency(usd_account.id, usd_savings.id, Decimal("10"), Decimal("1"))

    def test_rate_must_be_positive(self, transfer_service, usd_account, eur_account):
        """Test that a zero exchange rate is rejected."""
        with pytest.raises(ValidationError):
            transfer_service.transfer_currency(usd_account.id, eur_account.id, Decimal("10"), Decimal("0"))

    def test_round_trip(self, transfer_service, temp_db, usd_account, eur_account):
        """Test converting there and back at the inverse rate."""
        transfer_service.transfer_currency(usd_account.id, eur_account.id, Decimal("50"), Decimal("0.8"))
        transfer_service.transfer_currency(eur_account.id, usd_account.id, Decimal("40"), Decimal("1.25"))
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        assert balance_of(temp_db, eur_account.id) == Decimal("0")


class TestInBetweenTransfer:
    """Tests for same-currency transfers."""

    def test_moves_amount(self, transfer_service, temp_db, usd_account, usd_savings):
        """Test A loses 40 and B gains 40 under one transfer id."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        assert transfer.kind is TransferKind.IN_BETWEEN
        assert transfer.source.group_id == transfer.destination.group_id == transfer.transfer_id
        assert balance_of(temp_db, usd_account.id) == Decimal("60")
        assert balance_of(temp_db, usd_savings.id) == Decimal("40")

    def test_deleted_leg_is_flagged(self, transfer_service, ledger, usd_account, usd_savings):
        """Test that deleting one leg shows up as an incomplete transfer."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        ledger.delete_transaction(transfer.destination.transaction_id)

        listing = transfer_service.list_transfers()
        assert listing.transfers == []
        assert [issue.code for issue in listing.issues] == ["transfer_incomplete"]
        assert transfer.source.transaction_id in listing.issues[0].references
        with pytest.raises(InvariantViolation):
            listing.raise_for_issues()

    def test_three_leg_group_is_excluded(self, transfer_service, ledger, usd_account, usd_savings):
        """Test that an over-full group is reported and left out."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        ledger.add_transaction(
            usd_savings.id, "income", Decimal("40"), "Transfer", tags=transfer.destination.tags, allow_reserved_tags=True
        )
        listing = transfer_service.list_transfers()
        assert listing.transfers == []
        assert [issue.code for issue in listing.issues] == ["transfer_over_full"]

    def test_leg_moved_to_other_date_is_flagged(self, transfer_service, temp_db, usd_account, usd_savings):
        """Test that legs dated apart are reported and left out of the listing."""
        transfer = transfer_service.transfer_in_between(
            usd_account.id, usd_savings.id, Decimal("40"), date=date(2024, 1, 2)
        )
        temp_db.update_transaction(transfer.destination.transaction_id, date=date(2024, 1, 9))

        listing = transfer_service.list_transfers()
        assert listing.transfers == []
        assert [issue.code for issue in listing.issues] == ["transfer_date_mismatch"]
        assert "2024-01-02" in listing.issues[0].message
        assert "2024-01-09" in listing.issues[0].message

    def test_different_currency_rejected(self, transfer_service, usd_account, eur_account):
        """Test that an in-between transfer needs one currency."""
        with pytest.raises(WrongTransferTypeError):
            transfer_service.transfer_in_between(usd_account.id, eur_account.id, Decimal("10"))

    def test_same_account_rejected(self, transfer_service, usd_account):
        """Test that source and destination must differ."""
        with pytest.raises(ValidationError):
            transfer_service.transfer_in_between(usd_account.id, usd_account.id, Decimal("10"))

    def test_inactive_account_rejected(self, transfer_service, account_service, usd_account, usd_savings):
        """Test that deactivated accounts cannot take part."""
        account_service.set_active(usd_savings.id, False)
        with pytest.raises(ValidationError):
            transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("10"))

    def test_unknown_account(self, transfer_service, usd_account):
        """Test that a missing account raises NotFoundError."""
        with pytest.raises(NotFoundError):
            transfer_service.transfer_in_between(usd_account.id, 999, Decimal("10"))


class TestTransferRollback:
    """Tests for compensation when a step fails."""

    def test_destination_write_failure_removes_source_leg(self, failing_db, temp_db, usd_account, usd_savings):
        """Test that a failed second leg leaves no legs and unchanged balances."""
        failing_db.fail_on("create_transaction", call=2)
        with pytest.raises(PersistenceError):
            TransferService(failing_db).transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        assert temp_db.list_transactions(tag="transfer") == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        assert balance_of(temp_db, usd_savings.id) == Decimal("0")

    def test_destination_recompute_failure_removes_both_legs(self, failing_db, temp_db, usd_account, usd_savings):
        """Test that a failed balance update of the destination rolls back."""
        failing_db.fail_on("set_account_balance", call=2)
        with pytest.raises(PersistenceError):
            TransferService(failing_db).transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        assert temp_db.list_transactions(tag="transfer") == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        assert TransferService(temp_db).list_transfers().is_clean


class TestListAndUndo:
    """Tests for listing and undoing transfers."""

    def test_list_newest_first(self, transfer_service, usd_account, usd_savings, eur_account):
        """Test ordering and kind of listed transfers."""
        older = transfer_service.transfer_in_between(
            usd_account.id, usd_savings.id, Decimal("10"), date=date(2024, 1, 1)
        )
        newer = transfer_service.transfer_currency(
            usd_account.id, eur_account.id, Decimal("10"), Decimal("0.9"), date=date(2024, 2, 1)
        )
        listing = transfer_service.list_transfers()
        assert listing.is_clean
        assert [t.transfer_id for t in listing.transfers] == [newer.transfer_id, older.transfer_id]
        assert [t.kind for t in listing.transfers] == [TransferKind.CURRENCY, TransferKind.IN_BETWEEN]

    def test_get_transfer(self, transfer_service, usd_account, usd_savings):
        """Test fetching one transfer by id."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("10"), note="Rent")
        found = transfer_service.get_transfer(transfer.transfer_id)
        assert found.note == "Rent"
        with pytest.raises(NotFoundError):
            transfer_service.get_transfer("FMISSING")

    def test_undo_restores_balances(self, transfer_service, temp_db, usd_account, usd_savings):
        """Test that undo deletes both legs."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        deleted = transfer_service.delete_transfer(transfer.transfer_id)
        assert sorted(deleted) == sorted(
            [transfer.source.transaction_id, transfer.destination.transaction_id]
        )
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        assert balance_of(temp_db, usd_savings.id) == Decimal("0")
        assert transfer_service.list_transfers().transfers == []

    def test_undo_cleans_up_unpaired_leg(self, transfer_service, ledger, usd_account, usd_savings):
        """Test that an incomplete group can be removed through undo."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        ledger.delete_transaction(transfer.source.transaction_id)
        assert transfer_service.delete_transfer(transfer.transfer_id) == [transfer.destination.transaction_id]
        assert transfer_service.list_transfers().is_clean

    def test_undo_failure_restores_deleted_legs(self, failing_db, transfer_service, temp_db, usd_account, usd_savings):
        """Test that a half-done undo is reverted."""
        transfer = transfer_service.transfer_in_between(usd_account.id, usd_savings.id, Decimal("40"))
        failing_db.fail_on("delete_transaction", call=2)
        with pytest.raises(PersistenceError):
            TransferService(failing_db).delete_transfer(transfer.transfer_id)
        listing = TransferService(temp_db).list_transfers()
        assert [t.transfer_id for t in listing.transfers] == [transfer.transfer_id]
        assert balance_of(temp_db, usd_account.id) == Decimal("60")
        assert balance_of(temp_db, usd_savings.id) == Decimal("40")

    def test_undo_unknown(self, transfer_service):
        """Test undoing a transfer that does not exist."""
        with pytest.raises(NotFoundError):
            transfer_service.delete_transfer("FMISSING")


class TestDpsTransfer:
    """Tests for transfers into DPS savings accounts."""

    def test_moves_into_savings(self, transfer_service, dps_service, temp_db, usd_account):
        """Test a DPS transfer writes both legs and a record."""
        parent = dps_service.enable_dps(usd_account.id, DpsConfig(dps_type="monthly", amount_type="custom"))
        record = transfer_service.transfer_dps(usd_account.id, Decimal("25"), note="March")
        assert record.from_account_id == usd_account.id
        assert record.to_account_id == parent.dps_savings_account_id
        assert record.amount == Decimal("25")
        assert balance_of(temp_db, usd_account.id) == Decimal("75")
        assert balance_of(temp_db, parent.dps_savings_account_id) == Decimal("25")
        assert [r.transfer_id for r in transfer_service.list_dps_transfers()] == [record.transfer_id]
        legs = temp_db.list_transactions(tag="dps_transfer")
        assert {leg.group_id for leg in legs} == {record.transfer_id}
        # DPS legs are not general transfers
        assert transfer_service.list_transfers().is_clean

    def test_requires_dps(self, transfer_service, usd_account):
        """Test that DPS must be enabled."""
        with pytest.raises(ValidationError):
            transfer_service.transfer_dps(usd_account.id, Decimal("25"))

    def test_record_failure_removes_legs(self, failing_db, dps_service, temp_db, usd_account):
        """Test that a failed DPS record write rolls the legs back."""
        parent = dps_service.enable_dps(usd_account.id, DpsConfig(dps_type="monthly", amount_type="custom"))
        failing_db.fail_on("create_dps_transfer")
        with pytest.raises(PersistenceError):
            TransferService(failing_db).transfer_dps(usd_account.id, Decimal("25"))
        assert temp_db.list_transactions(tag="dps_transfer") == []
        assert balance_of(temp_db, usd_account.id) == Decimal("100")
        assert balance_of(temp_db, parent.dps_savings_account_id) == Decimal("0")


class TestDpsTransferPairing:
    """Tests for checking DPS legs against DPS transfer records."""

    def _transfer(self, dps_service, transfer_service, account_id, amount="25"):
        parent = dps_service.enable_dps(account_id, DpsConfig(dps_type="monthly", amount_type="custom"))
        record = transfer_service.transfer_dps(account_id, Decimal(amount))
        return parent.dps_savings_account_id, record

    def test_clean_transfer_has_no_issues(self, transfer_service, dps_service, usd_account):
        """Test that a complete DPS transfer passes."""
        self._transfer(dps_service, transfer_service, usd_account.id)
        assert transfer_service.verify_dps_transfers() == []

    def test_deleted_savings_leg_is_flagged(self, transfer_service, dps_service, ledger, temp_db, usd_account):
        """Test that removing the income leg leaves a reported half transfer."""
        savings_id, record = self._transfer(dps_service, transfer_service, usd_account.id)
        savings_leg = temp_db.list_transactions(account_id=savings_id)[0]
        ledger.delete_transaction(savings_leg.transaction_id)

        issues = transfer_service.verify_dps_transfers()
        assert [issue.code for issue in issues] == ["dps_transfer_incomplete"]
        assert record.transfer_id in issues[0].references

    def test_deleted_main_leg_is_flagged(self, transfer_service, dps_service, ledger, temp_db, usd_account):
        """Test that removing the expense leg is reported as well."""
        _, record = self._transfer(dps_service, transfer_service, usd_account.id)
        main_leg = temp_db.list_transactions(account_id=usd_account.id, tag="dps_transfer")[0]
        ledger.delete_transaction(main_leg.transaction_id)

        assert [issue.code for issue in transfer_service.verify_dps_transfers()] == ["dps_transfer_incomplete"]

    def test_savings_account_deleted_with_its_legs_is_clean(self, transfer_service, dps_service, usd_account):
        """Test that deleting the DPS savings account does not leave false alarms."""
        self._transfer(dps_service, transfer_service, usd_account.id)
        dps_service.delete_dps_with_transfer(usd_account.id, "main")
        assert transfer_service.verify_dps_transfers() == []

    def test_legs_without_record_are_flagged(self, transfer_service, ledger, usd_account, usd_savings):
        """Test that DPS-tagged legs with no record are reported."""
        for account_id, kind in ((usd_account.id, "expense"), (usd_savings.id, "income")):
            ledger.add_transaction(
                account_id, kind, Decimal("5"), "DPS", tags=("dps_transfer", "FORPHAN"), allow_reserved_tags=True
            )
        issues = transfer_service.verify_dps_transfers()
        assert [issue.code for issue in issues] == ["dps_transfer_unrecorded"]
        assert issues[0].references[0] == "FORPHAN"

    def test_leg_dated_apart_from_record_is_flagged(self, transfer_service, dps_service, temp_db, usd_account):
        """Test that a leg moved behind the ledger's back is reported."""
        savings_id, _ = self._transfer(dps_service, transfer_service, usd_account.id)
        savings_leg = temp_db.list_transactions(account_id=savings_id)[0]
        temp_db.update_transaction(savings_leg.transaction_id, date=date(2001, 1, 1))

        assert [issue.code for issue in transfer_service.verify_dps_transfers()] == ["dps_transfer_date_mismatch"]
