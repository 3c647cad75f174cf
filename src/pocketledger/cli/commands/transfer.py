"""Transfer commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, echo_issues, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import (
    parse_amount_or_exit,
    parse_date_or_exit,
    parse_rate_or_exit,
    resolve_account_or_exit,
    transaction_id_argument,
)
from pocketledger.domain.account import AccountService
from pocketledger.domain.entities import Transfer
from pocketledger.domain.transfer import TransferService


@click.group()
def transfer_group():
    """Move money between accounts."""
    pass


def _echo_transfer(transfer: Transfer) -> None:
    click.echo(f"Transfer {txn_ref(transfer.transfer_id)} ({transfer.kind.value})")
    click.echo(f"  From: account {transfer.from_account_id}, {money(transfer.from_amount, transfer.from_currency)}")
    click.echo(f"  To:   account {transfer.to_account_id}, {money(transfer.to_amount, transfer.to_currency)}")
    if transfer.from_currency != transfer.to_currency:
        click.echo(f"  Rate: {transfer.exchange_rate.normalize()}")


@transfer_group.command("currency")
@click.option("--from", "from_account", required=True, help="Source account name or ID")
@click.option("--to", "to_account", required=True, help="Destination account name or ID")
@click.option("--amount", required=True, help="Amount taken from the source account")
@click.option("--rate", required=True, help="Destination units per source unit")
@click.option("--note", help="Note used as description of both legs")
@click.option("--date", help="Transfer date; defaults to today")
@click.pass_context
def currency_transfer(
    ctx, from_account: str, to_account: str, amount: str, rate: str, note: str | None, date: str | None
):
    """Transfer between accounts of different currencies.

    Examples:
        pocketledger transfer currency --from "USD Checking" --to "EUR Savings" --amount 100 --rate 0.92
    """
    db = ctx.obj["db"]
    accounts = AccountService(db)
    from_id = resolve_account_or_exit(ctx, accounts, from_account)
    to_id = resolve_account_or_exit(ctx, accounts, to_account)
    try:
        transfer = TransferService(db).transfer_currency(
            from_id,
            to_id,
            parse_amount_or_exit(ctx, amount),
            parse_rate_or_exit(ctx, rate),
            note=note,
            date=parse_date_or_exit(ctx, date),
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    _echo_transfer(transfer)


@transfer_group.command("between")
@click.option("--from", "from_account", required=True, help="Source account name or ID")
@click.option("--to", "to_account", required=True, help="Destination account name or ID")
@click.option("--amount", required=True, help="Amount to move")
@click.option("--note", help="Note used as description of both legs")
@click.option("--date", help="Transfer date; defaults to today")
@click.pass_context
def between_transfer(ctx, from_account: str, to_account: str, amount: str, note: str | None, date: str | None):
    """Transfer between two accounts of the same currency.

    Examples:
        pocketledger transfer between --from Checking --to Wallet --amount 40
    """
    db = ctx.obj["db"]
    accounts = AccountService(db)
    from_id = resolve_account_or_exit(ctx, accounts, from_account)
    to_id = resolve_account_or_exit(ctx, accounts, to_account)
    try:
        transfer = TransferService(db).transfer_in_between(
            from_id,
            to_id,
            parse_amount_or_exit(ctx, amount),
            note=note,
            date=parse_date_or_exit(ctx, date),
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    _echo_transfer(transfer)


@transfer_group.command("dps")
@click.option("--account", required=True, help="Main account (with DPS enabled) name or ID")
@click.option("--amount", required=True, help="Amount to put aside")
@click.option("--note", help="Note")
@click.option("--date", help="Transfer date; defaults to today")
@click.pass_context
def dps_transfer(ctx, account: str, amount: str, note: str | None, date: str | None):
    """Move money from a main account into its DPS savings account."""
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    try:
        record = TransferService(db).transfer_dps(
            account_id,
            parse_amount_or_exit(ctx, amount),
            note=note,
            date=parse_date_or_exit(ctx, date),
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"DPS transfer {txn_ref(record.transfer_id)}: {money(record.amount)} "
        f"from account {record.from_account_id} to account {record.to_account_id}"
    )


@transfer_group.command("list")
@click.option("--strict", is_flag=True, help="Fail if any transfer is malformed")
@click.pass_context
def list_transfers(ctx, strict: bool):
    """List transfers, newest first.

    Malformed transfers (a missing or extra leg) are reported as warnings
    and left out of the list.
    """
    db = ctx.obj["db"]
    listing = TransferService(db).list_transfers()
    echo_issues(listing.issues)
    if strict:
        try:
            listing.raise_for_issues()
        except CLI_ERRORS as e:
            handle_domain_error(ctx, e)

    if not listing.transfers:
        click.echo("No transfers found.")
        return
    names = {acc.id: acc.name for acc in AccountService(db).list_accounts(include_hidden=True)}
    click.echo(f"\n{'ID':<18} {'Date':<12} {'Kind':<11} {'From':<20} {'Amount':>16}   {'To':<20} {'Amount':>16}")
    click.echo("-" * 120)
    for t in listing.transfers:
        click.echo(
            f"{txn_ref(t.transfer_id):<18} {str(t.date):<12} {t.kind.value:<11} "
            f"{names.get(t.from_account_id, '?')[:20]:<20} {money(t.from_amount, t.from_currency):>16}   "
            f"{names.get(t.to_account_id, '?')[:20]:<20} {money(t.to_amount, t.to_currency):>16}"
        )


@transfer_group.command("undo")
@click.argument("transfer_id", type=transaction_id_argument)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def undo_transfer(ctx, transfer_id: str, yes: bool):
    """Delete every leg of a transfer, restoring both balances."""
    db = ctx.obj["db"]
    if not yes and not click.confirm(f"Undo transfer {txn_ref(transfer_id)}?"):
        click.echo("Undo cancelled.")
        return
    try:
        deleted = TransferService(db).delete_transfer(transfer_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Undid transfer {txn_ref(transfer_id)} ({len(deleted)} leg(s) deleted)")


@transfer_group.command("dps-history")
@click.option("--account", help="Limit to a main or DPS account (name or ID)")
@click.pass_context
def dps_history(ctx, account: str | None):
    """Show DPS transfers, newest first."""
    db = ctx.obj["db"]
    account_id = None
    if account:
        account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    records = TransferService(db).list_dps_transfers(account_id=account_id)
    if not records:
        click.echo("No DPS transfers found.")
        return
    for record in records:
        click.echo(
            f"{txn_ref(record.transfer_id):<18} {str(record.date):<12} {money(record.amount):>14}  "
            f"{record.from_account_id} -> {record.to_account_id}  {record.note or ''}"
        )


def register_commands(cli):
    """Register transfer commands with main CLI."""
    cli.add_command(transfer_group, name="transfer")
