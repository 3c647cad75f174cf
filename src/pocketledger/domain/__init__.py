"""Domain layer for pocketledger.

Services are imported lazily: the database layer imports
``pocketledger.domain.entities`` and must not pull the services in with it.
"""

_SERVICES = {
    "AccountService": "pocketledger.domain.account",
    "CategoryService": "pocketledger.domain.category",
    "DonationService": "pocketledger.domain.donation",
    "DpsService": "pocketledger.domain.dps",
    "LedgerService": "pocketledger.domain.ledger",
    "LendBorrowService": "pocketledger.domain.lend_borrow",
    "PurchaseService": "pocketledger.domain.purchase",
    "TransferService": "pocketledger.domain.transfer",
}

__all__ = sorted(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
