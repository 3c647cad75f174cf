"""Transaction management commands."""

from decimal import Decimal

import click
from pocketledger.cli.date_filters import period_option, resolve_cli_date_range
from pocketledger.cli.error_handling import CLI_ERRORS, echo_issues, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import parse_date_or_exit, resolve_account_or_exit, transaction_id_argument
from pocketledger.domain.account import AccountService
from pocketledger.domain.donation import DonationService
from pocketledger.domain.dps import DpsService
from pocketledger.domain.entities import TransactionType
from pocketledger.domain.errors import DependencyError, transaction_funds_purchase
from pocketledger.domain.ledger import LedgerService, structural_tags
from pocketledger.domain.purchase import PurchaseService
from pocketledger.domain.transfer import TransferService


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("update")
@click.argument("transaction_id", type=transaction_id_argument)
@click.option("--date", help="Transaction date (YYYY-MM-DD or relative like 'today', 'yesterday')")
@click.option("--description", help="Transaction description")
@click.option("--category", help="Category name")
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--clear-tags", is_flag=True, help="Remove all non-structural tags")
@click.pass_context
def update_transaction(
    ctx,
    transaction_id: str,
    date: str | None,
    description: str | None,
    category: str | None,
    tags: tuple[str, ...],
    clear_tags: bool,
) -> None:
    """Update transaction metadata.

    Amount, account and type cannot be changed; delete the transaction and
    add it again instead.

    Examples:
        pocketledger transaction update F-7KQ2-MZX9-HDA4 --category Groceries
        pocketledger transaction update F7KQ2MZX9HDA4 --date yesterday
    """
    db = ctx.obj["db"]
    ledger = LedgerService(db)

    patch = {}
    if date is not None:
        patch["date"] = parse_date_or_exit(ctx, date)
    if description is not None:
        patch["description"] = description
    if category is not None:
        patch["category"] = category
    if tags or clear_tags:
        try:
            current = ledger.require_transaction(transaction_id)
        except CLI_ERRORS as e:
            handle_domain_error(ctx, e)
        # Structural markers are carried over; only free tags are replaced
        patch["tags"] = list(structural_tags(current.tags)) + list(tags)

    if not patch:
        click.echo("Nothing to update.")
        return

    try:
        ledger.update_transaction(transaction_id, **patch)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated transaction {txn_ref(transaction_id)}")


@transaction_group.command("list")
@click.option("--start-date", help="Start date (YYYY-MM-DD or relative like 'last month', 'this year')")
@click.option("--end-date", help="End date (YYYY-MM-DD or relative like 'today', 'this month')")
@period_option
@click.option("--account", help="Account name or ID")
@click.option("--tag", help="Only transactions carrying this tag")
@click.option("--verbose", "-v", is_flag=True, help="Show all columns including tags")
@click.pass_context
def list_transactions(
    ctx,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
    account: str | None,
    tag: str | None,
    verbose: bool,
):
    """View transactions with optional filters.

    Account can be specified by name or ID. With an account, a running
    balance column is shown.
    """
    db = ctx.obj["db"]
    ledger = LedgerService(db)
    account_service = AccountService(db)

    start, end = resolve_cli_date_range(ctx, start_date=start_date, end_date=end_date, period=period)

    # Resolve account name to ID if provided
    account_id = None
    if account:
        account_id = resolve_account_or_exit(ctx, account_service, account)

    transactions = ledger.list_transactions(
        account_id=account_id, start_date=start, end_date=end, tag=tag
    )
    if not transactions:
        click.echo("No transactions found.")
        return

    accounts = {acc.id: acc for acc in account_service.list_accounts(include_hidden=True)}
    balances = {}
    if account_id is not None:
        balances = {txn.transaction_id: bal for txn, bal in ledger.running_balances(account_id)}

    click.echo(f"\nFound {len(transactions)} transaction(s):")
    click.echo("-" * 110)
    click.echo(
        f"{'ID':<18} {'Date':<12} {'Amount':>14} {'Balance':>14}  {'Account':<18} {'Category':<16} Description"
    )
    click.echo("-" * 110)
    for txn in transactions:
        acc = accounts.get(txn.account_id)
        balance = money(balances[txn.transaction_id]) if txn.transaction_id in balances else ""
        click.echo(
            f"{txn_ref(txn.transaction_id):<18} {str(txn.date):<12} {money(txn.signed_amount):>14} "
            f"{balance:>14}  {(acc.name if acc else 'Unknown')[:18]:<18} {txn.category[:16]:<16} "
            f"{(txn.description or '')[:30]}"
        )
        if verbose and txn.tags:
            click.echo(f"{'':<18} tags: {', '.join(txn.tags)}")

    # Totals are per currency since amounts of different currencies do not add up
    totals: dict[str, dict[TransactionType, Decimal]] = {}
    for txn in transactions:
        acc = accounts.get(txn.account_id)
        currency = acc.currency if acc else "?"
        per_type = totals.setdefault(currency, {TransactionType.INCOME: Decimal("0"), TransactionType.EXPENSE: Decimal("0")})
        per_type[txn.type] += txn.amount
    click.echo("-" * 110)
    for currency, per_type in sorted(totals.items()):
        click.echo(
            f"TOTAL {currency}: Income {money(per_type[TransactionType.INCOME])} | "
            f"Expenses {money(per_type[TransactionType.EXPENSE])}"
        )


@transaction_group.command("delete")
@click.argument("transaction_id", type=transaction_id_argument)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_transaction(ctx, transaction_id: str, yes: bool) -> None:
    """Delete a transaction.

    Transfer legs are deleted alone; use 'transfer undo' to remove both legs.
    An expense that pays for a purchase is removed with 'purchase cancel'
    or 'purchase delete' instead.

    Examples:
        pocketledger transaction delete F-7KQ2-MZX9-HDA4
    """
    db = ctx.obj["db"]
    ledger = LedgerService(db)

    txn = ledger.get_transaction(transaction_id)
    if txn is None:
        click.echo(f"Error: Transaction {transaction_id} not found", err=True)
        ctx.exit(1)

    linked = PurchaseService(db, ledger=ledger).find_by_transaction(transaction_id)
    if linked is not None:
        handle_domain_error(ctx, DependencyError(transaction_funds_purchase(transaction_id, linked.id)))

    if txn.group_id is not None:
        kind = "transfer" if txn.is_transfer_leg else "DPS transfer"
        click.echo(
            f"Warning: {txn_ref(transaction_id)} is one leg of {kind} {txn_ref(txn.group_id)}; "
            "the other leg will show as unpaired.",
            err=True,
        )

    if not yes and not click.confirm(f"Are you sure you want to delete transaction {txn_ref(transaction_id)}?"):
        click.echo("Deletion cancelled.")
        return

    try:
        ledger.delete_transaction(transaction_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted transaction {txn_ref(transaction_id)}")


@transaction_group.command("audit")
@click.option("--repair", is_flag=True, help="Recompute every stored balance after reporting")
@click.pass_context
def audit(ctx, repair: bool) -> None:
    """Check balances, transfer pairing and the links between records.

    Problems are reported, never fixed silently; --repair only recomputes
    stored balances from history.
    """
    db = ctx.obj["db"]
    ledger = LedgerService(db)

    issues = []
    issues.extend(ledger.verify_balances())
    transfers = TransferService(db, ledger=ledger)
    issues.extend(transfers.list_transfers().issues)
    issues.extend(transfers.verify_dps_transfers())
    issues.extend(DpsService(db, ledger=ledger).verify_links())
    issues.extend(PurchaseService(db, ledger=ledger).verify_purchase_links())
    issues.extend(DonationService(db, ledger=ledger).verify_records())

    if issues:
        echo_issues(issues)
        click.echo(f"{len(issues)} issue(s) found.")
    else:
        click.echo("No issues found.")

    if repair:
        try:
            recomputed = ledger.recompute_all()
        except CLI_ERRORS as e:
            handle_domain_error(ctx, e)
        click.echo(f"Recomputed {len(recomputed)} account balance(s).")


def register_commands(cli: click.Group) -> None:
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
