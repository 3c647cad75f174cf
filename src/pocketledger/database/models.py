"""SQLAlchemy models for pocketledger database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    JSON,
    create_engine,
    event,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()

# Storage scale for money; converted transfer amounts keep four places
MONEY = Numeric(18, 4)


class Account(Base):
    """Account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    type = Column(String, nullable=False)
    currency = Column(String(3), nullable=False)
    initial_balance = Column(MONEY, nullable=False, default=0)
    calculated_balance = Column(MONEY, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # DPS settings, all null while DPS is disabled
    has_dps = Column(Boolean, default=False, nullable=False)
    dps_type = Column(String, nullable=True)
    dps_amount_type = Column(String, nullable=True)
    dps_fixed_amount = Column(MONEY, nullable=True)
    dps_savings_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True, unique=True)

    # Donation preference, both null when unset
    donation_mode = Column(String, nullable=True)
    donation_value = Column(MONEY, nullable=True)

    # Relationships
    transactions = relationship("Transaction", back_populates="account", cascade="all, delete-orphan")


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(String, unique=True, nullable=False)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    type = Column(String, nullable=False)
    amount = Column(MONEY, nullable=False)
    date = Column(Date, nullable=False)
    category = Column(String, nullable=False)
    description = Column(String, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    account = relationship("Account", back_populates="transactions")


class DpsTransfer(Base):
    """DPS transfer record.

    Account ids are plain columns so the history survives deletion of the
    DPS savings account.
    """

    __tablename__ = "dps_transfers"

    id = Column(Integer, primary_key=True)
    transfer_id = Column(String, unique=True, nullable=False)
    from_account_id = Column(Integer, nullable=False)
    to_account_id = Column(Integer, nullable=False)
    amount = Column(MONEY, nullable=False)
    date = Column(Date, nullable=False)
    note = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Purchase(Base):
    """Purchase model."""

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True)
    item_name = Column(String, nullable=False)
    category = Column(String, nullable=False)
    price = Column(MONEY, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    purchase_date = Column(Date, nullable=False)
    status = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="medium")
    notes = Column(String, nullable=True)
    account_id = Column(Integer, nullable=True)
    transaction_id = Column(String, nullable=True)
    exclude_from_calculation = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class LendBorrow(Base):
    """Lend/borrow record model."""

    __tablename__ = "lend_borrow"

    id = Column(Integer, primary_key=True)
    person_name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    amount = Column(MONEY, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String, nullable=False, default="active")
    due_date = Column(Date, nullable=True)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class AllocationRecord(Base):
    """Saving or donation earmarked from an income transaction.

    Rows go away with their transaction, including when a whole account is
    deleted.
    """

    __tablename__ = "donation_saving_records"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(
        String, ForeignKey("transactions.transaction_id", ondelete="CASCADE"), nullable=False
    )
    kind = Column(String, nullable=False)
    amount = Column(MONEY, nullable=False)
    mode = Column(String, nullable=False)
    status = Column(String, nullable=False)
    note = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class PurchaseCategory(Base):
    """Purchase category model."""

    __tablename__ = "purchase_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    monthly_budget = Column(MONEY, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


def _enable_sqlite_foreign_keys(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    if database_url.startswith("sqlite"):
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
