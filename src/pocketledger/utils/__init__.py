"""Utility functions for pocketledger."""

from pocketledger.utils.date_parser import parse_date
from pocketledger.utils.amount_parser import parse_amount, parse_positive_amount, parse_rate
from pocketledger.utils.transaction_id import (
    format_transaction_id,
    generate_transaction_id,
    normalize_transaction_id,
)

__all__ = [
    "parse_date",
    "parse_amount",
    "parse_positive_amount",
    "parse_rate",
    "format_transaction_id",
    "generate_transaction_id",
    "normalize_transaction_id",
]
