"""CLI error handling helpers."""

import click

from pocketledger.domain.errors import DomainError, PersistenceError

# Everything a command reports as "Error: ..." instead of a traceback
CLI_ERRORS = (ValueError, PersistenceError)


def handle_domain_error(ctx: click.Context, error: DomainError | PersistenceError | ValueError) -> None:
    """Render a domain or storage error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def echo_issues(issues) -> None:
    """Print integrity issues as warnings without failing the command."""
    for issue in issues:
        click.echo(f"Warning: {issue.message}", err=True)
