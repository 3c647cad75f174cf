"""Add transaction command."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.commands.donation import echo_allocation
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import (
    allocation_rule_or_exit,
    parse_amount_or_exit,
    parse_date_or_exit,
    resolve_account_or_exit,
    transaction_id_argument,
)
from pocketledger.domain.account import AccountService
from pocketledger.domain.donation import DonationService
from pocketledger.domain.entities import PurchasePriority, TransactionType
from pocketledger.domain.ledger import LedgerService, PurchaseDetails


@click.command("add")
@click.option("--account", required=True, help="Account name or ID")
@click.option(
    "--type",
    "txn_type",
    type=click.Choice([t.value for t in TransactionType]),
    required=True,
    help="income or expense",
)
@click.option("--amount", required=True, help="Amount, always positive (e.g., 123.45)")
@click.option("--category", required=True, help="Category name")
@click.option(
    "--date",
    help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday'); defaults to today",
)
@click.option("--description", help="Transaction description")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option(
    "--id",
    "transaction_id",
    help="Pre-assigned transaction ID; re-running with the same ID does not add twice",
)
@click.option("--saving", help="For incomes: amount or percentage (e.g. 10%) to save before any donation")
@click.option("--purchase", is_flag=True, help="Also record the expense as a purchase")
@click.option("--item", help="Purchase item name (defaults to the description)")
@click.option(
    "--priority",
    type=click.Choice([p.value for p in PurchasePriority]),
    default="medium",
    show_default=True,
)
@click.pass_context
def add_transaction(
    ctx,
    account: str,
    txn_type: str,
    amount: str,
    category: str,
    date: str | None,
    description: str | None,
    tags: tuple[str, ...],
    transaction_id: str | None,
    saving: str | None,
    purchase: bool,
    item: str | None,
    priority: str,
):
    """Add a transaction manually.

    An income on an account with a donation preference, or given --saving,
    also gets its saving and donation portions recorded.

    Examples:
        pocketledger add --account Checking --type expense --amount 50 --category Groceries
        pocketledger add --account 1 --type income --amount 1000 --category Salary --date 2024-01-31
        pocketledger add --account 1 --type expense --amount 899 --category Electronics --purchase --item Laptop
        pocketledger add --account 1 --type income --amount 2000 --category Salary --saving 10%
    """
    db = ctx.obj["db"]
    ledger = LedgerService(db)
    account_service = AccountService(db)

    # Resolve account name to ID
    account_id = resolve_account_or_exit(ctx, account_service, account)
    account_obj = account_service.require_account(account_id)
    txn_date = parse_date_or_exit(ctx, date)
    txn_amount = parse_amount_or_exit(ctx, amount)
    saving_rule = allocation_rule_or_exit(ctx, saving) if saving is not None else None
    if saving_rule is not None and txn_type != TransactionType.INCOME.value:
        click.echo("Error: --saving only applies to incomes", err=True)
        ctx.exit(1)

    details = None
    if purchase:
        details = PurchaseDetails(item_name=item, priority=PurchasePriority(priority))

    try:
        new_id = ledger.add_transaction(
            account_id=account_id,
            type=txn_type,
            amount=txn_amount,
            category=category,
            description=description,
            date=txn_date,
            tags=tags,
            transaction_id=transaction_id_argument(transaction_id) if transaction_id else None,
            purchase=details,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)

    records = None
    if txn_type == TransactionType.INCOME.value and (saving_rule is not None or account_obj.donation is not None):
        donations = DonationService(db, ledger=ledger)
        # A retried --id keeps the records written the first time
        records = donations.list_records(transaction_id=new_id)
        if not records:
            try:
                records = donations.allocate_income(new_id, saving=saving_rule)
            except CLI_ERRORS as e:
                click.echo(
                    f"Warning: {e}; allocate later with 'donation allocate {txn_ref(new_id)}'",
                    err=True,
                )
                records = None

    updated = account_service.require_account(account_id)
    click.echo(f"Created transaction {txn_ref(new_id)}")
    click.echo(f"  Account: {account_obj.name}")
    click.echo(f"  Type: {txn_type}")
    click.echo(f"  Amount: {money(txn_amount, account_obj.currency)}")
    click.echo(f"  Category: {category}")
    if description:
        click.echo(f"  Description: {description}")
    if details is not None:
        click.echo("  Recorded as purchase")
    if records is not None:
        echo_allocation(records)
    click.echo(f"  Balance: {money(updated.calculated_balance, updated.currency)}")


def register_commands(cli):
    """Register add command with main CLI."""
    cli.add_command(add_transaction)
