"""Lend/borrow record commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.formatting import money
from pocketledger.cli.parsing import parse_amount_or_exit, parse_date_or_exit
from pocketledger.domain.entities import LendBorrowStatus, LendBorrowType
from pocketledger.domain.lend_borrow import LendBorrowService


@click.group()
def lend_group():
    """Track money lent to and borrowed from people."""
    pass


@lend_group.command("add")
@click.argument("person_name", metavar="PERSON")
@click.option("--type", "record_type", type=click.Choice([t.value for t in LendBorrowType]), required=True)
@click.option("--amount", required=True, help="Amount lent or borrowed")
@click.option("--currency", required=True, help="ISO currency code")
@click.option("--due", "due_date", help="Due date")
@click.option("--notes", help="Notes")
@click.pass_context
def add_record(ctx, person_name: str, record_type: str, amount: str, currency: str, due_date, notes):
    """Record money lent or borrowed.

    Examples:
        pocketledger lend add "Sam" --type lend --amount 50 --currency USD --due 2024-03-01
    """
    db = ctx.obj["db"]
    try:
        record_id = LendBorrowService(db).create_record(
            person_name=person_name,
            type=record_type,
            amount=parse_amount_or_exit(ctx, amount),
            currency=currency,
            due_date=parse_date_or_exit(ctx, due_date),
            notes=notes,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Recorded {record_type} with {person_name} (ID: {record_id})")


@lend_group.command("settle")
@click.argument("record_id", type=int)
@click.pass_context
def settle(ctx, record_id: int):
    """Mark a record as settled."""
    db = ctx.obj["db"]
    try:
        record = LendBorrowService(db).settle(record_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Settled {record.type.value} with {record.person_name}")


@lend_group.command("list")
@click.option("--status", type=click.Choice([s.value for s in LendBorrowStatus]))
@click.option("--type", "record_type", type=click.Choice([t.value for t in LendBorrowType]))
@click.pass_context
def list_records(ctx, status: str | None, record_type: str | None):
    """List records and outstanding totals."""
    db = ctx.obj["db"]
    service = LendBorrowService(db)
    records = service.list_records(status=status, type=record_type)
    if not records:
        click.echo("No records found.")
        return
    for r in records:
        due = str(r.due_date) if r.due_date else "-"
        click.echo(
            f"{r.id:<4} {r.type.value:<7} {r.person_name[:20]:<20} {money(r.amount, r.currency):>16} "
            f"{r.status.value:<8} due {due}"
        )
    totals = service.outstanding_totals()
    if totals:
        click.echo("\nOutstanding:")
        for currency, per_type in sorted(totals.items()):
            click.echo(
                f"  {currency}: lent {money(per_type['lend'])} | borrowed {money(per_type['borrow'])}"
            )


@lend_group.command("reconcile")
@click.pass_context
def reconcile(ctx):
    """Mark active records past their due date as overdue."""
    db = ctx.obj["db"]
    try:
        changed = LendBorrowService(db).reconcile_overdue()
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Marked {len(changed)} record(s) overdue")


def register_commands(cli):
    """Register lend/borrow commands with main CLI."""
    cli.add_command(lend_group, name="lend")
