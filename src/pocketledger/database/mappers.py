"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, keeping enum coercion and the
flattened DPS columns out of the domain entities.
"""

from decimal import Decimal
from typing import Optional

from pocketledger.domain import entities as domain
from pocketledger.database.models import (
    Account as ORMAccount,
    Transaction as ORMTransaction,
    DpsTransfer as ORMDpsTransfer,
    Purchase as ORMPurchase,
    LendBorrow as ORMLendBorrow,
    AllocationRecord as ORMAllocationRecord,
    PurchaseCategory as ORMPurchaseCategory,
)


def _money(value) -> Decimal:
    return Decimal(value) if value is not None else Decimal("0")


def dps_config_to_domain(orm_account: ORMAccount) -> Optional[domain.DpsConfig]:
    """Build the DPS settings of an account row, or None when DPS is off."""
    if not orm_account.has_dps:
        return None
    return domain.DpsConfig(
        dps_type=orm_account.dps_type,
        amount_type=orm_account.dps_amount_type,
        fixed_amount=orm_account.dps_fixed_amount,
    )


def donation_rule_to_domain(orm_account: ORMAccount) -> Optional[domain.AllocationRule]:
    """Build the donation preference of an account row, or None when unset."""
    if orm_account.donation_mode is None:
        return None
    return domain.AllocationRule(mode=orm_account.donation_mode, value=orm_account.donation_value)


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        type=orm_account.type,
        currency=orm_account.currency,
        initial_balance=_money(orm_account.initial_balance),
        calculated_balance=_money(orm_account.calculated_balance),
        is_active=orm_account.is_active,
        created_at=orm_account.created_at,
        description=orm_account.description,
        dps=dps_config_to_domain(orm_account),
        dps_savings_account_id=orm_account.dps_savings_account_id,
        donation=donation_rule_to_domain(orm_account),
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        transaction_id=orm_transaction.transaction_id,
        account_id=orm_transaction.account_id,
        type=orm_transaction.type,
        amount=_money(orm_transaction.amount),
        date=orm_transaction.date,
        category=orm_transaction.category,
        description=orm_transaction.description,
        tags=tuple(orm_transaction.tags or ()),
        created_at=orm_transaction.created_at,
    )


def dps_transfer_to_domain(orm_transfer: ORMDpsTransfer) -> domain.DpsTransfer:
    """Convert SQLAlchemy DpsTransfer model to domain DpsTransfer entity."""
    return domain.DpsTransfer(
        id=orm_transfer.id,
        transfer_id=orm_transfer.transfer_id,
        from_account_id=orm_transfer.from_account_id,
        to_account_id=orm_transfer.to_account_id,
        amount=_money(orm_transfer.amount),
        date=orm_transfer.date,
        note=orm_transfer.note,
        created_at=orm_transfer.created_at,
    )


def purchase_to_domain(orm_purchase: ORMPurchase) -> domain.Purchase:
    """Convert SQLAlchemy Purchase model to domain Purchase entity."""
    return domain.Purchase(
        id=orm_purchase.id,
        item_name=orm_purchase.item_name,
        category=orm_purchase.category,
        price=_money(orm_purchase.price),
        currency=orm_purchase.currency,
        purchase_date=orm_purchase.purchase_date,
        status=orm_purchase.status,
        priority=orm_purchase.priority,
        notes=orm_purchase.notes,
        account_id=orm_purchase.account_id,
        transaction_id=orm_purchase.transaction_id,
        exclude_from_calculation=orm_purchase.exclude_from_calculation,
        created_at=orm_purchase.created_at,
    )


def lend_borrow_to_domain(orm_record: ORMLendBorrow) -> domain.LendBorrow:
    """Convert SQLAlchemy LendBorrow model to domain LendBorrow entity."""
    return domain.LendBorrow(
        id=orm_record.id,
        person_name=orm_record.person_name,
        type=orm_record.type,
        amount=_money(orm_record.amount),
        currency=orm_record.currency,
        status=orm_record.status,
        due_date=orm_record.due_date,
        notes=orm_record.notes,
        created_at=orm_record.created_at,
    )


def allocation_record_to_domain(orm_record: ORMAllocationRecord) -> domain.AllocationRecord:
    """Convert SQLAlchemy AllocationRecord model to domain AllocationRecord entity."""
    return domain.AllocationRecord(
        id=orm_record.id,
        transaction_id=orm_record.transaction_id,
        kind=orm_record.kind,
        amount=_money(orm_record.amount),
        mode=orm_record.mode,
        status=orm_record.status,
        note=orm_record.note,
        created_at=orm_record.created_at,
    )


def purchase_category_to_domain(orm_category: ORMPurchaseCategory) -> domain.PurchaseCategory:
    """Convert SQLAlchemy PurchaseCategory model to domain PurchaseCategory entity."""
    return domain.PurchaseCategory(
        id=orm_category.id,
        name=orm_category.name,
        monthly_budget=_money(orm_category.monthly_budget),
        currency=orm_category.currency,
        description=orm_category.description,
        created_at=orm_category.created_at,
    )
