"""DPS savings account commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import dps_config_or_exit, resolve_account_or_exit
from pocketledger.domain.account import AccountService
from pocketledger.domain.dps import DpsDestination, DpsService
from pocketledger.domain.entities import DpsAmountType, DpsType


@click.group()
def dps_group():
    """Manage DPS savings accounts."""
    pass


@dps_group.command("enable")
@click.argument("account", metavar="ACCOUNT")
@click.option("--type", "dps_type", type=click.Choice([t.value for t in DpsType]), required=True)
@click.option(
    "--amount-type",
    type=click.Choice([t.value for t in DpsAmountType]),
    default="custom",
    show_default=True,
)
@click.option("--amount", help="Fixed amount (with --amount-type fixed)")
@click.option("--savings-account", help="Link an existing account instead of creating one")
@click.pass_context
def enable(ctx, account: str, dps_type: str, amount_type: str, amount: str | None, savings_account: str | None):
    """Enable DPS on an account, or change its settings.

    Examples:
        pocketledger dps enable Checking --type monthly --amount-type fixed --amount 200
        pocketledger dps enable Checking --type flexible --savings-account "Rainy Day"
    """
    db = ctx.obj["db"]
    accounts = AccountService(db)
    account_id = resolve_account_or_exit(ctx, accounts, account)
    savings_id = None
    if savings_account:
        savings_id = resolve_account_or_exit(ctx, accounts, savings_account)
    config = dps_config_or_exit(ctx, dps_type, amount_type, amount)
    try:
        parent = DpsService(db).enable_dps(account_id, config, savings_account_id=savings_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    savings = accounts.require_account(parent.dps_savings_account_id)
    click.echo(f"DPS enabled on '{parent.name}' with savings account '{savings.name}' (ID: {savings.id})")


@dps_group.command("disable")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def disable(ctx, account: str):
    """Disable DPS; the savings account becomes a normal account."""
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    try:
        DpsService(db).disable_dps(account_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"DPS disabled on account {account_id}")


@dps_group.command("delete")
@click.argument("account", metavar="ACCOUNT")
@click.option(
    "--to",
    "destination",
    type=click.Choice([d.value for d in DpsDestination]),
    required=True,
    help="Where the DPS balance goes: the main account or the cash account",
)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, account: str, destination: str, yes: bool):
    """Delete the DPS savings account of ACCOUNT, moving its balance first.

    Examples:
        pocketledger dps delete Checking --to main
        pocketledger dps delete Checking --to cash --yes
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    if not yes and not click.confirm(f"Delete the DPS account of account {account_id}?"):
        click.echo("Deletion cancelled.")
        return
    try:
        result = DpsService(db).delete_dps_with_transfer(account_id, destination)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)

    click.echo(f"Deleted DPS account {result.deleted_account_id}")
    if result.created_cash_account:
        click.echo(f"Created cash account (ID: {result.destination_account_id})")
    if result.transaction_id:
        click.echo(
            f"Moved {money(result.amount)} to account {result.destination_account_id} "
            f"({txn_ref(result.transaction_id)})"
        )
    else:
        click.echo("DPS balance was zero; nothing moved")


def register_commands(cli):
    """Register DPS commands with main CLI."""
    cli.add_command(dps_group, name="dps")
