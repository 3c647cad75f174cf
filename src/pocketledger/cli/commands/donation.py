"""Donation and saving allocation commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import allocation_rule_or_exit, resolve_account_or_exit, transaction_id_argument
from pocketledger.domain.account import AccountService
from pocketledger.domain.donation import DonationService
from pocketledger.domain.entities import AllocationKind, AllocationStatus


@click.group()
def donation_group():
    """Set aside savings and donations from incomes."""
    pass


@donation_group.command("set-preference")
@click.argument("account", metavar="ACCOUNT")
@click.option("--fixed", help="Fixed amount donated from each income")
@click.option("--percent", help="Percentage donated from each income, after saving")
@click.option("--clear", is_flag=True, help="Remove the preference")
@click.pass_context
def set_preference(ctx, account: str, fixed: str | None, percent: str | None, clear: bool):
    """Set the donation preference of an account.

    Examples:
        pocketledger donation set-preference Checking --percent 10
        pocketledger donation set-preference Checking --fixed 25
        pocketledger donation set-preference Checking --clear
    """
    if sum(1 for given in (fixed is not None, percent is not None, clear) if given) != 1:
        click.echo("Error: Give exactly one of --fixed, --percent or --clear", err=True)
        ctx.exit(1)
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    rule = None
    if fixed is not None:
        rule = allocation_rule_or_exit(ctx, fixed)
    elif percent is not None:
        rule = allocation_rule_or_exit(ctx, percent.rstrip("%") + "%")
    try:
        updated = DonationService(db).set_preference(account_id, rule)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    if updated.donation is None:
        click.echo(f"Cleared donation preference of {updated.name}")
    else:
        click.echo(f"{updated.name} donates {updated.donation.describe()} of each income after saving")


@donation_group.command("allocate")
@click.argument("transaction_id", type=transaction_id_argument)
@click.option("--saving", help="Saving taken first: an amount, or a percentage like 10%")
@click.option("--note", help="Note stored on the records")
@click.pass_context
def allocate(ctx, transaction_id: str, saving: str | None, note: str | None):
    """Record the saving and donation portions of an income."""
    db = ctx.obj["db"]
    rule = allocation_rule_or_exit(ctx, saving) if saving is not None else None
    try:
        records = DonationService(db).allocate_income(transaction_id, saving=rule, note=note)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    echo_allocation(records)


@donation_group.command("list")
@click.option("--kind", type=click.Choice([k.value for k in AllocationKind]))
@click.option("--status", type=click.Choice([s.value for s in AllocationStatus]))
@click.pass_context
def list_records(ctx, kind: str | None, status: str | None):
    """List saving and donation records."""
    db = ctx.obj["db"]
    records = DonationService(db).list_records(kind=kind, status=status)
    if not records:
        click.echo("No records found.")
        return
    click.echo(f"\n{'ID':<5} {'Transaction':<18} {'Kind':<9} {'Status':<8} {'Mode':<8} {'Amount':>14}  Note")
    click.echo("-" * 80)
    for r in records:
        click.echo(
            f"{r.id:<5} {txn_ref(r.transaction_id):<18} {r.kind.value:<9} {r.status.value:<8} "
            f"{r.mode.value:<8} {money(r.amount):>14}  {r.note or ''}"
        )


@donation_group.command("mark-donated")
@click.argument("record_id", type=int)
@click.pass_context
def mark_donated(ctx, record_id: int):
    """Mark a pending donation as paid out."""
    db = ctx.obj["db"]
    try:
        record = DonationService(db).mark_donated(record_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Donation {record.id} of {money(record.amount)} marked as donated")


@donation_group.command("clear")
@click.argument("transaction_id", type=transaction_id_argument)
@click.pass_context
def clear(ctx, transaction_id: str):
    """Remove the saving and donation records of an income."""
    db = ctx.obj["db"]
    try:
        removed = DonationService(db).clear_allocation(transaction_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Removed {removed} record(s) of {txn_ref(transaction_id)}")


@donation_group.command("totals")
@click.pass_context
def totals(ctx):
    """Show donated, pending and saved amounts per currency."""
    db = ctx.obj["db"]
    per_currency = DonationService(db).totals()
    if not per_currency:
        click.echo("Nothing donated or saved yet.")
        return
    for currency, t in per_currency.items():
        click.echo(
            f"{currency}: donated {money(t.donated)} | pending {money(t.pending)} | "
            f"saved {money(t.saved)} | in DPS savings {money(t.dps_saved)}"
        )


def echo_allocation(records) -> None:
    """Print what an allocation wrote."""
    if not records:
        click.echo("  Nothing set aside")
    for r in records:
        label = "Saved" if r.kind is AllocationKind.SAVING else "Donation (pending)"
        click.echo(f"  {label}: {money(r.amount)}")


def register_commands(cli):
    """Register donation commands with main CLI."""
    cli.add_command(donation_group, name="donation")
