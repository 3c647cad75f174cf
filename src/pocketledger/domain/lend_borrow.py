"""Lend/borrow record service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from pocketledger.database.base import Database
from pocketledger.domain.account import normalize_currency
from pocketledger.domain.entities import LendBorrow, LendBorrowStatus, LendBorrowType
from pocketledger.domain.errors import NotFoundError, ValidationError, record_not_found
from pocketledger.domain.ledger import validate_amount

logger = logging.getLogger(__name__)

OUTSTANDING = (LendBorrowStatus.ACTIVE, LendBorrowStatus.OVERDUE)


class LendBorrowService:
    """Service for money lent to and borrowed from people."""

    def __init__(self, db: Database):
        """Initialize lend/borrow service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_record(
        self,
        person_name: str,
        type: LendBorrowType | str,
        amount: Decimal,
        currency: str,
        due_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Create an active lend/borrow record.

        Returns:
            Record ID

        Raises:
            ValidationError: Missing person, bad type, amount or currency
        """
        person_name = (person_name or "").strip()
        if not person_name:
            raise ValidationError("Person name is required")
        try:
            record_type = LendBorrowType(type)
        except ValueError:
            raise ValidationError(f"Invalid lend/borrow type: {type!r}")
        record_id = self.db.create_lend_borrow(
            person_name=person_name,
            type=record_type.value,
            amount=validate_amount(amount),
            currency=normalize_currency(currency),
            due_date=due_date,
            notes=notes,
        )
        logger.info("created %s record %s for %s", record_type.value, record_id, person_name)
        return record_id

    def get_record(self, record_id: int) -> Optional[LendBorrow]:
        return self.db.get_lend_borrow(record_id)

    def require_record(self, record_id: int) -> LendBorrow:
        record = self.db.get_lend_borrow(record_id)
        if record is None:
            raise NotFoundError(record_not_found(record_id))
        return record

    def list_records(
        self,
        status: Optional[LendBorrowStatus | str] = None,
        type: Optional[LendBorrowType | str] = None,
    ) -> list[LendBorrow]:
        return self.db.list_lend_borrow(
            status=LendBorrowStatus(status).value if status is not None else None,
            type=LendBorrowType(type).value if type is not None else None,
        )

    def settle(self, record_id: int) -> LendBorrow:
        """Mark a record as settled. Settling twice is a no-op."""
        record = self.require_record(record_id)
        if record.status is not LendBorrowStatus.SETTLED:
            self.db.set_lend_borrow_status([record_id], LendBorrowStatus.SETTLED.value)
            logger.info("settled record %s", record_id)
        return self.require_record(record_id)

    def reconcile_overdue(self, today: Optional[date] = None) -> list[int]:
        """Persist ``overdue`` on active records whose due date has passed.

        Returns:
            IDs of the records that were moved to overdue
        """
        today = today or date.today()
        due = [
            record.id
            for record in self.db.list_lend_borrow(status=LendBorrowStatus.ACTIVE.value)
            if record.is_overdue(today)
        ]
        if due:
            self.db.set_lend_borrow_status(due, LendBorrowStatus.OVERDUE.value)
            logger.info("marked %d record(s) overdue", len(due))
        return due

    def outstanding_totals(self) -> dict[str, dict[str, Decimal]]:
        """Unsettled amounts per currency, split into lent and borrowed.

        Returns:
            ``{currency: {"lend": total, "borrow": total}}``
        """
        totals: dict[str, dict[str, Decimal]] = {}
        for record in self.db.list_lend_borrow():
            if record.status not in OUTSTANDING:
                continue
            per_type = totals.setdefault(
                record.currency,
                {LendBorrowType.LEND.value: Decimal("0"), LendBorrowType.BORROW.value: Decimal("0")},
            )
            per_type[record.type.value] += record.amount
        return totals
