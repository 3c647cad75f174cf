"""Main CLI entry point."""

import logging

import click
from pocketledger.database.factories import create_database

# Import and register all commands at module level
from pocketledger.cli.commands import (
    account,
    add,
    donation,
    dps,
    lend,
    purchase,
    transaction,
    transfer,
)

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int, level_name: str | None = None) -> None:
    """Configure root logging from -v flags or POCKETLEDGER_LOG_LEVEL.

    With neither given, logging stays unconfigured and only warnings reach
    stderr through the logging module's fallback handler.
    """
    if not verbosity and not level_name:
        return
    if level_name and verbosity == 0:
        level = logging.getLevelName(level_name.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    else:
        level = LOG_LEVELS.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides POCKETLEDGER_DB_PATH environment variable)",
    envvar="POCKETLEDGER_DB_PATH",
)
@click.option("--verbose", "-v", count=True, help="Log to stderr (-v info, -vv debug)")
@click.option(
    "--log-level",
    envvar="POCKETLEDGER_LOG_LEVEL",
    help="Logging level name, used when --verbose is not given",
)
@click.pass_context
def cli(ctx, db_path: str | None, verbose: int, log_level: str | None):
    """PocketLedger - Personal finance ledger.

    Track accounts in several currencies, move money between them, put
    money aside into DPS savings accounts, and keep purchases and
    lend/borrow records next to the ledger.
    """
    ctx.ensure_object(dict)
    configure_logging(verbose, log_level)

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.call_on_close(db.disconnect)


# Register all commands
account.register_commands(cli)
add.register_commands(cli)
transaction.register_commands(cli)
transfer.register_commands(cli)
dps.register_commands(cli)
donation.register_commands(cli)
purchase.register_commands(cli)
lend.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
