"""Shared pytest fixtures for pocketledger tests."""

import tempfile
import os
from collections import defaultdict
from decimal import Decimal
import pytest

from pocketledger.database.factories import create_sqlite_database
from pocketledger.domain.account import AccountService
from pocketledger.domain.category import CategoryService
from pocketledger.domain.donation import DonationService
from pocketledger.domain.dps import DpsService
from pocketledger.domain.errors import PersistenceError
from pocketledger.domain.ledger import LedgerService
from pocketledger.domain.lend_borrow import LendBorrowService
from pocketledger.domain.purchase import PurchaseService
from pocketledger.domain.transfer import TransferService


class FailingDatabase:
    """Wraps a real database and fails a chosen primitive on its Nth call."""

    def __init__(self, db):
        self._db = db
        self._failures = {}
        self.calls = defaultdict(int)

    def fail_on(self, method: str, call: int = 1) -> None:
        self._failures[method] = call
        self.calls[method] = 0

    def __getattr__(self, name):
        attr = getattr(self._db, name)
        if name not in self._failures:
            return attr

        def wrapper(*args, **kwargs):
            self.calls[name] += 1
            if self.calls[name] == self._failures[name]:
                raise PersistenceError(f"injected failure in {name}")
            return attr(*args, **kwargs)

        return wrapper


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def failing_db(temp_db):
    """Database wrapper whose primitives can be made to fail."""
    return FailingDatabase(temp_db)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def ledger(temp_db):
    """Create a LedgerService with a temporary database."""
    return LedgerService(temp_db)


@pytest.fixture
def transfer_service(temp_db, ledger):
    """Create a TransferService sharing the ledger fixture."""
    return TransferService(temp_db, ledger=ledger)


@pytest.fixture
def dps_service(temp_db, ledger):
    """Create a DpsService sharing the ledger fixture."""
    return DpsService(temp_db, ledger=ledger)


@pytest.fixture
def purchase_service(temp_db, ledger):
    """Create a PurchaseService sharing the ledger fixture."""
    return PurchaseService(temp_db, ledger=ledger)


@pytest.fixture
def donation_service(temp_db, ledger):
    """Create a DonationService sharing the ledger fixture."""
    return DonationService(temp_db, ledger=ledger)


@pytest.fixture
def category_service(temp_db):
    """Create a CategoryService with a temporary database."""
    return CategoryService(temp_db)


@pytest.fixture
def lend_borrow_service(temp_db):
    """Create a LendBorrowService with a temporary database."""
    return LendBorrowService(temp_db)


@pytest.fixture
def usd_account(account_service):
    """A USD checking account opened with 100."""
    account_id = account_service.create_account(
        name="Checking", type="checking", currency="USD", initial_balance=Decimal("100")
    )
    return account_service.get_account(account_id)


@pytest.fixture
def usd_savings(account_service):
    """A second USD account opened with 0."""
    account_id = account_service.create_account(name="Wallet", type="cash", currency="USD")
    return account_service.get_account(account_id)


@pytest.fixture
def eur_account(account_service):
    """A EUR savings account opened with 0."""
    account_id = account_service.create_account(name="Euro Savings", type="savings", currency="EUR")
    return account_service.get_account(account_id)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
