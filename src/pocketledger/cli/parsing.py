"""CLI helpers that turn option strings into domain values or exit."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import click

from pocketledger.domain.account import AccountService
from pocketledger.domain.entities import AllocationMode, AllocationRule, DpsConfig
from pocketledger.utils.account_resolver import resolve_account
from pocketledger.utils.amount_parser import parse_positive_amount, parse_rate
from pocketledger.utils.date_parser import parse_date
from pocketledger.utils.transaction_id import normalize_transaction_id


def resolve_account_or_exit(
    ctx: click.Context, account_service: AccountService, account: str | int
) -> int:
    """Resolve account name or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_account(account_service, account)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def parse_date_or_exit(ctx: click.Context, value: str | None) -> date | None:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)


def parse_amount_or_exit(ctx: click.Context, value: str) -> Decimal:
    try:
        return parse_positive_amount(value)
    except ValueError as e:
        click.echo(f"Error: Invalid amount: {e}", err=True)
        ctx.exit(1)


def parse_rate_or_exit(ctx: click.Context, value: str) -> Decimal:
    try:
        return parse_rate(value)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


def transaction_id_argument(value: str) -> str:
    """Accept ``F-XXXX-XXXX-XXXX`` as well as the stored form."""
    return normalize_transaction_id(value)


def dps_config_or_exit(
    ctx: click.Context, dps_type: str, amount_type: str, fixed_amount: str | None
):
    """Build DPS settings from CLI options, or exit with a CLI error."""
    try:
        amount = parse_positive_amount(fixed_amount) if fixed_amount is not None else None
        return DpsConfig(dps_type=dps_type, amount_type=amount_type, fixed_amount=amount)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)


def allocation_rule_or_exit(ctx: click.Context, value: str) -> AllocationRule:
    """Parse ``10%`` as a percentage and ``50`` as a fixed amount, or exit."""
    text = value.strip()
    mode = AllocationMode.FIXED
    if text.endswith("%"):
        mode = AllocationMode.PERCENT
        text = text[:-1].strip()
    try:
        return AllocationRule(mode=mode, value=parse_positive_amount(text))
    except ValueError as e:
        click.echo(f"Error: Invalid allocation {value!r}: {e}", err=True)
        ctx.exit(1)
