"""Display helpers shared by CLI commands."""

from decimal import Decimal
from typing import Optional

from pocketledger.domain.balance import round_for_display
from pocketledger.utils.transaction_id import format_transaction_id


def money(amount: Decimal, currency: Optional[str] = None) -> str:
    """Format an amount rounded to two places, e.g. ``1,234.50 USD``."""
    text = f"{round_for_display(amount):,.2f}"
    return f"{text} {currency}" if currency else text


def txn_ref(transaction_id: Optional[str]) -> str:
    return format_transaction_id(transaction_id) if transaction_id else "-"
