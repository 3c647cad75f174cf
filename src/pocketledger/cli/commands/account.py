"""Account management commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import dps_config_or_exit, resolve_account_or_exit
from pocketledger.domain.account import AccountService
from pocketledger.domain.entities import AccountType, DpsAmountType, DpsType
from pocketledger.domain.ledger import LedgerService
from pocketledger.utils.amount_parser import parse_amount

ACCOUNT_TYPES = [t.value for t in AccountType]


@click.group()
def account_group():
    """Manage accounts."""
    pass


@account_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--type", "account_type", type=click.Choice(ACCOUNT_TYPES), default="checking", show_default=True)
@click.option("--currency", required=True, help="ISO currency code, e.g. USD")
@click.option("--initial-balance", default="0", help="Opening balance")
@click.option("--description", help="Account description")
@click.option("--dps-type", type=click.Choice([t.value for t in DpsType]), help="Enable DPS right away")
@click.option(
    "--dps-amount-type",
    type=click.Choice([t.value for t in DpsAmountType]),
    default="custom",
    show_default=True,
)
@click.option("--dps-amount", help="Fixed DPS amount (with --dps-amount-type fixed)")
@click.pass_context
def create_account(
    ctx,
    name: str,
    account_type: str,
    currency: str,
    initial_balance: str,
    description: str | None,
    dps_type: str | None,
    dps_amount_type: str,
    dps_amount: str | None,
):
    """Create a new account.

    With --dps-type, a hidden "<name> (DPS)" savings account is created and
    linked at the same time.

    Examples:
        pocketledger account create "Checking" --currency USD
        pocketledger account create "Salary" --currency EUR --initial-balance 250
        pocketledger account create "Main" --currency USD --dps-type monthly
    """
    db = ctx.obj["db"]
    service = AccountService(db)

    try:
        opening = parse_amount(initial_balance)
    except ValueError as e:
        click.echo(f"Error: Invalid initial balance: {e}", err=True)
        ctx.exit(1)

    dps = None
    if dps_type is not None:
        dps = dps_config_or_exit(ctx, dps_type, dps_amount_type, dps_amount)

    try:
        account_id = service.create_account(
            name=name,
            type=account_type,
            currency=currency,
            initial_balance=opening,
            description=description,
            dps=dps,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created account '{name}' (ID: {account_id})")
    if dps is not None:
        savings = service.get_account(service.require_account(account_id).dps_savings_account_id)
        click.echo(f"DPS enabled with savings account '{savings.name}' (ID: {savings.id})")


@account_group.command("list")
@click.option("--all", "include_hidden", is_flag=True, help="Include hidden DPS savings accounts")
@click.option("--active-only", is_flag=True, help="Skip deactivated accounts")
@click.pass_context
def list_accounts(ctx, include_hidden: bool, active_only: bool):
    """List accounts."""
    db = ctx.obj["db"]
    service = AccountService(db)

    accounts = service.list_accounts(include_hidden=include_hidden, active_only=active_only)
    if not accounts:
        click.echo("No accounts found.")
        return

    click.echo("\nAccounts:")
    click.echo("-" * 80)
    for acc in accounts:
        flags = []
        if not acc.is_active:
            flags.append("inactive")
        if acc.has_dps:
            flags.append(f"DPS -> {acc.dps_savings_account_id}")
        suffix = f" [{', '.join(flags)}]" if flags else ""
        click.echo(
            f"ID: {acc.id:3d} | {acc.name:20s} | {acc.type.value:10s} | "
            f"{money(acc.calculated_balance, acc.currency):>18s}{suffix}"
        )


@account_group.command("show")
@click.argument("account", metavar="ACCOUNT")
@click.option("--limit", default=10, show_default=True, help="Number of recent transactions to show")
@click.pass_context
def show_account(ctx, account: str, limit: int):
    """Show an account with its most recent transactions and running balance.

    ACCOUNT can be an account name or ID.
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    acc = service.require_account(account_id)

    click.echo(f"{acc.name} (ID: {acc.id})")
    click.echo(f"  Type: {acc.type.value}")
    click.echo(f"  Currency: {acc.currency}")
    click.echo(f"  Status: {'active' if acc.is_active else 'inactive'}")
    click.echo(f"  Initial balance: {money(acc.initial_balance, acc.currency)}")
    click.echo(f"  Balance: {money(acc.calculated_balance, acc.currency)}")
    if acc.description:
        click.echo(f"  Description: {acc.description}")
    if acc.has_dps:
        fixed = f" ({money(acc.dps.fixed_amount, acc.currency)})" if acc.dps.fixed_amount else ""
        click.echo(
            f"  DPS: {acc.dps.dps_type.value}, {acc.dps.amount_type.value}{fixed}; "
            f"savings account ID {acc.dps_savings_account_id}"
        )
    if service.is_dps_savings_account(acc.id):
        click.echo("  This is a DPS savings account")
    if acc.donation is not None:
        click.echo(f"  Donation: {acc.donation.describe()} of each income after saving")

    rows = LedgerService(db).running_balances(acc.id)
    if not rows:
        click.echo("\nNo transactions.")
        return
    click.echo(f"\nLast {min(limit, len(rows))} of {len(rows)} transaction(s):")
    click.echo("-" * 90)
    for txn, balance in rows[-limit:]:
        click.echo(
            f"{txn_ref(txn.transaction_id):18s} {str(txn.date):12s} "
            f"{money(txn.signed_amount):>14s} {money(balance):>14s}  {txn.category}"
        )


@account_group.command("update")
@click.argument("account", metavar="ACCOUNT")
@click.option("--name", help="New account name")
@click.option("--type", "account_type", type=click.Choice(ACCOUNT_TYPES), help="New account type")
@click.option("--description", help="New description")
@click.option("--initial-balance", help="New opening balance; the balance is recomputed")
@click.pass_context
def update_account(
    ctx,
    account: str,
    name: str | None,
    account_type: str | None,
    description: str | None,
    initial_balance: str | None,
) -> None:
    """Update account details.

    ACCOUNT can be an account name or ID.

    Examples:
        pocketledger account update "Checking" --name "Main Checking"
        pocketledger account update 1 --initial-balance 150
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)

    opening = None
    if initial_balance is not None:
        try:
            opening = parse_amount(initial_balance)
        except ValueError as e:
            click.echo(f"Error: Invalid initial balance: {e}", err=True)
            ctx.exit(1)

    try:
        updated = service.update_account(
            account_id,
            name=name,
            type=account_type,
            description=description,
            initial_balance=opening,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated account '{updated.name}' (balance {money(updated.calculated_balance, updated.currency)})")


@account_group.command("deactivate")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def deactivate_account(ctx, account: str) -> None:
    """Deactivate an account; its history is kept."""
    _set_active(ctx, account, False)


@account_group.command("activate")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def activate_account(ctx, account: str) -> None:
    """Reactivate a deactivated account."""
    _set_active(ctx, account, True)


def _set_active(ctx, account: str, active: bool) -> None:
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    try:
        service.set_active(account_id, active)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"{'Activated' if active else 'Deactivated'} account {account_id}")


@account_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete_account(ctx, account: str, yes: bool) -> None:
    """Delete an account together with all of its transactions.

    ACCOUNT can be an account name or ID.

    Accounts with DPS enabled, and DPS savings accounts, cannot be deleted
    here; use 'dps delete' first.

    Examples:
        pocketledger account delete "Old Wallet"
        pocketledger account delete 3 --yes
    """
    db = ctx.obj["db"]
    service = AccountService(db)
    account_id = resolve_account_or_exit(ctx, service, account)
    account_obj = service.require_account(account_id)
    transaction_count = len(LedgerService(db).list_transactions(account_id=account_id))

    if not yes:
        prompt = f"Delete account '{account_obj.name}' (ID: {account_id})"
        if transaction_count:
            prompt += f" and its {transaction_count} transaction{'s' if transaction_count != 1 else ''}"
        if not click.confirm(prompt + "?"):
            click.echo("Deletion cancelled.")
            return

    try:
        service.delete_account(account_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted account '{account_obj.name}'")


@account_group.command("totals")
@click.pass_context
def currency_totals(ctx) -> None:
    """Show the total balance of active accounts per currency."""
    db = ctx.obj["db"]
    totals = AccountService(db).currency_totals()
    if not totals:
        click.echo("No accounts found.")
        return
    for currency in sorted(totals):
        click.echo(f"{currency}: {money(totals[currency])}")


def register_commands(cli):
    """Register account commands with main CLI."""
    cli.add_command(account_group, name="account")
