"""Utility for resolving account names to IDs."""

from pocketledger.domain.account import AccountService
from pocketledger.domain.errors import NotFoundError


def resolve_account(account_service: AccountService, account: str | int) -> int:
    """Resolve account name or ID to account ID.

    Names are matched exactly first, then case-insensitively. Hidden DPS
    savings accounts resolve too, so they can be inspected by name.

    Args:
        account_service: AccountService instance
        account: Account name (str) or ID (int or string representation of int)

    Returns:
        Account ID

    Raises:
        NotFoundError: If account is not found
    """
    if isinstance(account, int):
        return account_service.require_account(account).id

    text = str(account).strip()
    if text.isdigit():
        account_obj = account_service.get_account(int(text))
        if account_obj is not None:
            return account_obj.id

    accounts = account_service.list_accounts(include_hidden=True)
    for acc in accounts:
        if acc.name == text:
            return acc.id
    matches = [acc for acc in accounts if acc.name.lower() == text.lower()]
    if len(matches) == 1:
        return matches[0].id

    raise NotFoundError(f"Account '{account}' not found")
