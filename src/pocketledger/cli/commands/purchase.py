"""Purchase commands."""

import click
from pocketledger.cli.error_handling import CLI_ERRORS, handle_domain_error
from pocketledger.cli.formatting import money, txn_ref
from pocketledger.cli.parsing import parse_amount_or_exit, parse_date_or_exit, resolve_account_or_exit
from pocketledger.domain.account import AccountService
from pocketledger.domain.category import CategoryService
from pocketledger.domain.entities import PurchasePriority, PurchaseStatus
from pocketledger.domain.purchase import PurchaseService

STATUSES = [s.value for s in PurchaseStatus]
PRIORITIES = [p.value for p in PurchasePriority]


@click.group()
def purchase_group():
    """Track planned and completed purchases."""
    pass


@purchase_group.command("add")
@click.argument("item_name", metavar="ITEM")
@click.option("--category", required=True, help="Category name")
@click.option("--status", type=click.Choice(STATUSES), default="planned", show_default=True)
@click.option("--price", help="Price (required for purchased items)")
@click.option("--account", help="Paying account name or ID (required for purchased items)")
@click.option("--currency", help="Currency of a planned item; purchased items use the account's")
@click.option("--date", help="Purchase date; defaults to today")
@click.option("--priority", type=click.Choice(PRIORITIES), default="medium", show_default=True)
@click.option("--notes", help="Notes")
@click.option("--exclude", is_flag=True, help="Record without taking the money from the account")
@click.pass_context
def add_purchase(
    ctx,
    item_name: str,
    category: str,
    status: str,
    price: str | None,
    account: str | None,
    currency: str | None,
    date: str | None,
    priority: str,
    notes: str | None,
    exclude: bool,
):
    """Record a purchase.

    A purchased item writes an expense on the paying account unless
    --exclude is given.

    Examples:
        pocketledger purchase add "Headphones" --category Electronics
        pocketledger purchase add "Coffee beans" --category Groceries --status purchased --price 14.50 --account Checking
    """
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account) if account else None
    amount = parse_amount_or_exit(ctx, price) if price is not None else None
    try:
        purchase_id = PurchaseService(db).record_purchase(
            item_name=item_name,
            category=category,
            status=status,
            price=amount,
            account_id=account_id,
            currency=currency,
            purchase_date=parse_date_or_exit(ctx, date),
            priority=priority,
            notes=notes,
            exclude_from_calculation=exclude,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Recorded {status} purchase '{item_name}' (ID: {purchase_id})")


@purchase_group.command("buy")
@click.argument("purchase_id", type=int)
@click.option("--account", required=True, help="Paying account name or ID")
@click.option("--price", required=True, help="Price paid")
@click.option("--date", help="Purchase date; defaults to the planned date")
@click.pass_context
def buy(ctx, purchase_id: int, account: str, price: str, date: str | None):
    """Mark a planned purchase as bought."""
    db = ctx.obj["db"]
    account_id = resolve_account_or_exit(ctx, AccountService(db), account)
    try:
        purchase = PurchaseService(db).transition_to_purchased(
            purchase_id,
            account_id,
            parse_amount_or_exit(ctx, price),
            purchase_date=parse_date_or_exit(ctx, date),
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(
        f"Bought '{purchase.item_name}' for {money(purchase.price, purchase.currency)} "
        f"({txn_ref(purchase.transaction_id)})"
    )


@purchase_group.command("update")
@click.argument("purchase_id", type=int)
@click.option("--item", "item_name", help="New item name")
@click.option("--category", help="New category")
@click.option("--priority", type=click.Choice(PRIORITIES))
@click.option("--notes", help="New notes")
@click.option("--date", help="New purchase date")
@click.option("--price", help="New price (only without a linked expense)")
@click.pass_context
def update(ctx, purchase_id: int, item_name, category, priority, notes, date, price):
    """Edit a purchase; changes are mirrored onto its linked expense."""
    db = ctx.obj["db"]
    try:
        PurchaseService(db).update_purchase(
            purchase_id,
            item_name=item_name,
            category=category,
            priority=priority,
            notes=notes,
            purchase_date=parse_date_or_exit(ctx, date),
            price=parse_amount_or_exit(ctx, price) if price is not None else None,
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated purchase {purchase_id}")


@purchase_group.command("cancel")
@click.argument("purchase_id", type=int)
@click.pass_context
def cancel(ctx, purchase_id: int):
    """Cancel a purchase, deleting its expense if it was bought."""
    db = ctx.obj["db"]
    try:
        purchase = PurchaseService(db).cancel_purchase(purchase_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Cancelled purchase '{purchase.item_name}'")


@purchase_group.command("delete")
@click.argument("purchase_id", type=int)
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx, purchase_id: int, yes: bool):
    """Delete a purchase and its linked expense."""
    db = ctx.obj["db"]
    if not yes and not click.confirm(f"Delete purchase {purchase_id}?"):
        click.echo("Deletion cancelled.")
        return
    try:
        PurchaseService(db).delete_purchase(purchase_id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted purchase {purchase_id}")


@purchase_group.command("list")
@click.option("--status", type=click.Choice(STATUSES))
@click.option("--category", help="Only this category")
@click.pass_context
def list_purchases(ctx, status: str | None, category: str | None):
    """List purchases, newest first."""
    db = ctx.obj["db"]
    purchases = PurchaseService(db).list_purchases(status=status, category=category)
    if not purchases:
        click.echo("No purchases found.")
        return
    click.echo(f"\n{'ID':<5} {'Date':<12} {'Status':<10} {'Priority':<8} {'Item':<24} {'Category':<16} {'Price':>16}  Transaction")
    click.echo("-" * 115)
    for p in purchases:
        flag = " (excluded)" if p.exclude_from_calculation else ""
        click.echo(
            f"{p.id:<5} {str(p.purchase_date):<12} {p.status.value:<10} {p.priority.value:<8} "
            f"{p.item_name[:24]:<24} {p.category[:16]:<16} {money(p.price, p.currency):>16}  "
            f"{txn_ref(p.transaction_id)}{flag}"
        )


@purchase_group.command("analytics")
@click.pass_context
def analytics(ctx):
    """Show spending totals and the category breakdown."""
    db = ctx.obj["db"]
    report = PurchaseService(db).analytics()
    click.echo(f"Total spent:      {money(report.total_spent)}")
    click.echo(f"Spent this month: {money(report.monthly_spent)}")
    click.echo(
        f"Planned: {report.planned_count} | Purchased: {report.purchased_count} | "
        f"Cancelled: {report.cancelled_count}"
    )
    if report.top_category:
        click.echo(f"Top category: {report.top_category}")
    for row in report.category_breakdown:
        click.echo(f"  {row.category:<20} {money(row.total_spent):>14} {row.item_count:>4} item(s) {row.percentage:6.1f}%")
    if report.budgets:
        click.echo("\nMonthly budgets:")
        for budget in report.budgets:
            flag = "  OVER BUDGET" if budget.over_budget else ""
            click.echo(
                f"  {budget.category:<20} {money(budget.spent, budget.currency):>16} of "
                f"{money(budget.budget, budget.currency):>16}  left {money(budget.remaining, budget.currency)}{flag}"
            )
        for budget in report.over_budget:
            click.echo(f"Warning: {budget.category} is over its monthly budget", err=True)


@purchase_group.group("category")
def category_group():
    """Manage purchase categories and their monthly budgets."""
    pass


@category_group.command("add")
@click.argument("name")
@click.option("--budget", required=True, help="Monthly budget, greater than zero")
@click.option("--currency", default="USD", show_default=True, help="Currency of the budget")
@click.option("--description", help="Description")
@click.pass_context
def add_category(ctx, name: str, budget: str, currency: str, description: str | None):
    """Create a purchase category.

    Examples:
        pocketledger purchase category add Electronics --budget 300
        pocketledger purchase category add Groceries --budget 450 --currency EUR
    """
    db = ctx.obj["db"]
    amount = parse_amount_or_exit(ctx, budget)
    try:
        category_id = CategoryService(db).create_category(name, amount, currency, description)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Created category '{name}' (ID: {category_id})")


@category_group.command("list")
@click.pass_context
def list_categories(ctx):
    """List purchase categories."""
    db = ctx.obj["db"]
    categories = CategoryService(db).list_categories()
    if not categories:
        click.echo("No categories found.")
        return
    for category in categories:
        line = f"{category.id:<5} {category.name:<24} Budget: {money(category.monthly_budget, category.currency)}"
        if category.description:
            line += f"  {category.description}"
        click.echo(line)


@category_group.command("update")
@click.argument("category")
@click.option("--name", help="New name")
@click.option("--budget", help="New monthly budget")
@click.option("--currency", help="New currency")
@click.option("--description", help="New description")
@click.pass_context
def update_category(ctx, category: str, name, budget, currency, description):
    """Update a purchase category (by name or ID)."""
    db = ctx.obj["db"]
    service = CategoryService(db)
    amount = parse_amount_or_exit(ctx, budget) if budget is not None else None
    try:
        current = service.require_category(category)
        updated = service.update_category(
            current.id, name=name, monthly_budget=amount, currency=currency, description=description
        )
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Updated category '{updated.name}'")


@category_group.command("delete")
@click.argument("category")
@click.pass_context
def delete_category(ctx, category: str):
    """Delete a purchase category; purchases keep their category name."""
    db = ctx.obj["db"]
    service = CategoryService(db)
    try:
        current = service.require_category(category)
        service.delete_category(current.id)
    except CLI_ERRORS as e:
        handle_domain_error(ctx, e)
    click.echo(f"Deleted category '{current.name}'")


def register_commands(cli):
    """Register purchase commands with main CLI."""
    cli.add_command(purchase_group, name="purchase")
