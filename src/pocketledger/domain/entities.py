"""Domain model entities for pocketledger.

These are pure data classes representing business concepts, independent of
database schema. Enumerated fields are validated at construction so that
services never have to re-check them at each read site.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from pocketledger.domain.errors import InvariantViolation, ValidationError

# Reserved transaction tags
TRANSFER_TAG = "transfer"
DPS_TRANSFER_TAG = "dps_transfer"
DPS_DELETION_TAG = "dps_deletion"
PURCHASE_TAG = "purchase"
RESERVED_TAGS = frozenset({TRANSFER_TAG, DPS_TRANSFER_TAG, DPS_DELETION_TAG, PURCHASE_TAG})

# Tags whose second element is the group key shared by paired legs
GROUPING_TAGS = frozenset({TRANSFER_TAG, DPS_TRANSFER_TAG})


class AccountType(str, Enum):
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"
    CASH = "cash"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class DpsType(str, Enum):
    MONTHLY = "monthly"
    FLEXIBLE = "flexible"


class DpsAmountType(str, Enum):
    FIXED = "fixed"
    CUSTOM = "custom"


class PurchaseStatus(str, Enum):
    PLANNED = "planned"
    PURCHASED = "purchased"
    CANCELLED = "cancelled"


class PurchasePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LendBorrowType(str, Enum):
    LEND = "lend"
    BORROW = "borrow"


class LendBorrowStatus(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"
    OVERDUE = "overdue"


class TransferKind(str, Enum):
    CURRENCY = "currency"
    IN_BETWEEN = "in_between"
    DPS = "dps"


class AllocationMode(str, Enum):
    FIXED = "fixed"
    PERCENT = "percent"


class AllocationKind(str, Enum):
    SAVING = "saving"
    DONATION = "donation"


class AllocationStatus(str, Enum):
    PENDING = "pending"
    DONATED = "donated"
    SAVED = "saved"


@dataclass(frozen=True)
class DpsConfig:
    """DPS settings of a parent account; only exists while DPS is enabled."""

    dps_type: DpsType
    amount_type: DpsAmountType
    fixed_amount: Optional[Decimal] = None

    def __post_init__(self):
        object.__setattr__(self, "dps_type", DpsType(self.dps_type))
        object.__setattr__(self, "amount_type", DpsAmountType(self.amount_type))
        if self.amount_type is DpsAmountType.FIXED:
            if self.fixed_amount is None or Decimal(self.fixed_amount) <= 0:
                raise ValidationError("A fixed DPS amount must be greater than zero")
            object.__setattr__(self, "fixed_amount", Decimal(self.fixed_amount))
        elif self.fixed_amount is not None:
            raise ValidationError("A fixed DPS amount is only allowed with amount type 'fixed'")


@dataclass(frozen=True)
class AllocationRule:
    """How much of an income is set aside: a fixed amount or a percentage."""

    mode: AllocationMode
    value: Decimal

    def __post_init__(self):
        try:
            object.__setattr__(self, "mode", AllocationMode(self.mode))
            value = Decimal(str(self.value)) if isinstance(self.value, float) else Decimal(self.value)
        except (ArithmeticError, TypeError, ValueError):
            raise ValidationError(f"Invalid allocation: {self.mode!r} {self.value!r}")
        if not value.is_finite() or value <= 0:
            raise ValidationError(f"Allocation must be greater than zero (got {self.value})")
        if self.mode is AllocationMode.PERCENT and value > 100:
            raise ValidationError(f"Allocation percentage cannot exceed 100 (got {self.value})")
        object.__setattr__(self, "value", value)

    def portion_of(self, base: Decimal) -> Decimal:
        """Amount taken from ``base``, never more than ``base`` itself."""
        if base <= 0:
            return Decimal("0")
        if self.mode is AllocationMode.PERCENT:
            amount = base * self.value / 100
        else:
            amount = self.value
        return min(amount, base)

    def describe(self) -> str:
        if self.mode is AllocationMode.PERCENT:
            return f"{self.value.normalize():f}%"
        return f"{self.value:f}"


@dataclass(frozen=True)
class Account:
    """Account domain entity."""

    id: int
    name: str
    type: AccountType
    currency: str
    initial_balance: Decimal
    calculated_balance: Decimal
    is_active: bool
    created_at: datetime
    description: Optional[str] = None
    dps: Optional[DpsConfig] = None
    dps_savings_account_id: Optional[int] = None
    donation: Optional[AllocationRule] = None

    def __post_init__(self):
        object.__setattr__(self, "type", AccountType(self.type))
        if self.dps_savings_account_id is not None and self.dps is None:
            raise ValidationError(
                f"Account {self.id} links a DPS savings account without DPS settings"
            )
        if self.dps_savings_account_id == self.id and self.id is not None:
            raise ValidationError(f"Account {self.id} cannot be its own DPS savings account")

    @property
    def has_dps(self) -> bool:
        return self.dps is not None


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity.

    ``id`` is the storage sequence number used as the tie-breaker when dates
    are equal; ``transaction_id`` is the human-readable correlation id.
    """

    id: int
    transaction_id: str
    account_id: int
    type: TransactionType
    amount: Decimal
    date: date
    category: str
    description: Optional[str]
    tags: tuple[str, ...]
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "type", TransactionType(self.type))
        object.__setattr__(self, "tags", tuple(self.tags or ()))

    @property
    def signed_amount(self) -> Decimal:
        """Amount as it affects the owning account's balance."""
        if self.type is TransactionType.INCOME:
            return self.amount
        return -self.amount

    @property
    def group_id(self) -> Optional[str]:
        """Shared transfer identifier if this is a transfer or DPS leg."""
        if len(self.tags) >= 2 and self.tags[0] in GROUPING_TAGS:
            return self.tags[1]
        return None

    @property
    def is_transfer_leg(self) -> bool:
        return bool(self.tags) and self.tags[0] == TRANSFER_TAG


@dataclass(frozen=True)
class Transfer:
    """A logical transfer made of one expense leg and one income leg."""

    transfer_id: str
    kind: TransferKind
    source: Transaction
    destination: Transaction
    from_currency: str
    to_currency: str

    @property
    def from_account_id(self) -> int:
        return self.source.account_id

    @property
    def to_account_id(self) -> int:
        return self.destination.account_id

    @property
    def from_amount(self) -> Decimal:
        return self.source.amount

    @property
    def to_amount(self) -> Decimal:
        return self.destination.amount

    @property
    def exchange_rate(self) -> Decimal:
        return self.destination.amount / self.source.amount

    @property
    def date(self) -> date:
        return self.source.date

    @property
    def note(self) -> Optional[str]:
        return self.source.description


@dataclass(frozen=True)
class DpsTransfer:
    """Automatic-savings transfer from a main account to its DPS sub-account."""

    id: int
    transfer_id: str
    from_account_id: int
    to_account_id: int
    amount: Decimal
    date: date
    note: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Purchase:
    """Purchase domain entity."""

    id: int
    item_name: str
    category: str
    price: Decimal
    currency: str
    purchase_date: date
    status: PurchaseStatus
    priority: PurchasePriority
    notes: Optional[str]
    account_id: Optional[int]
    transaction_id: Optional[str]
    exclude_from_calculation: bool
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "status", PurchaseStatus(self.status))
        object.__setattr__(self, "priority", PurchasePriority(self.priority))

    @property
    def moves_funds(self) -> bool:
        """True if this purchase is expected to own a linked expense."""
        return self.status is PurchaseStatus.PURCHASED and not self.exclude_from_calculation


@dataclass(frozen=True)
class LendBorrow:
    """Money lent to or borrowed from another person."""

    id: int
    person_name: str
    type: LendBorrowType
    amount: Decimal
    currency: str
    status: LendBorrowStatus
    due_date: Optional[date]
    notes: Optional[str]
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "type", LendBorrowType(self.type))
        object.__setattr__(self, "status", LendBorrowStatus(self.status))

    def is_overdue(self, today: date) -> bool:
        return (
            self.status is LendBorrowStatus.ACTIVE
            and self.due_date is not None
            and self.due_date < today
        )


@dataclass(frozen=True)
class AllocationRecord:
    """Part of an income earmarked as saving or donation.

    Records only earmark money; they never move funds between accounts.
    """

    id: int
    transaction_id: str
    kind: AllocationKind
    amount: Decimal
    mode: AllocationMode
    status: AllocationStatus
    note: Optional[str]
    created_at: datetime

    def __post_init__(self):
        object.__setattr__(self, "kind", AllocationKind(self.kind))
        object.__setattr__(self, "mode", AllocationMode(self.mode))
        object.__setattr__(self, "status", AllocationStatus(self.status))
        if self.kind is AllocationKind.SAVING and self.status is not AllocationStatus.SAVED:
            raise ValidationError(f"Saving record {self.id} must have status 'saved'")
        if self.kind is AllocationKind.DONATION and self.status is AllocationStatus.SAVED:
            raise ValidationError(f"Donation record {self.id} cannot have status 'saved'")


@dataclass(frozen=True)
class PurchaseCategory:
    """Purchase category with a monthly spending budget."""

    id: int
    name: str
    monthly_budget: Decimal
    currency: str
    description: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class IntegrityIssue:
    """A detected data-integrity problem; reported, never auto-corrected."""

    code: str
    message: str
    references: tuple[str, ...] = ()


@dataclass(frozen=True)
class TransferListing:
    """Reconstructed transfers plus any malformed groups found on the way."""

    transfers: list[Transfer] = field(default_factory=list)
    issues: list[IntegrityIssue] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.issues

    def raise_for_issues(self) -> None:
        """Raise InvariantViolation if any group was malformed."""
        if self.issues:
            raise InvariantViolation(self.issues)
