"""
Core Finance Models

Transactions, goals and categories as they are stored in the remote
document store. These are the entities the query client returns and the
notification pipeline consumes.

DESIGN DECISION: Dates of transactions stay `YYYY-MM-DD` strings, exactly
as stored, because range filters on the store compare them lexically.
Parsed dates are exposed as properties.
"""

import datetime as dt
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


DATE_FORMAT = "%Y-%m-%d"


def parse_day(value: Optional[str]) -> Optional[dt.date]:
    """Parse a `YYYY-MM-DD` string, returning None when it isn't one."""
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """What a transaction does to the user's money."""
    EXPENSE = "expense"
    INCOME = "income"
    INVESTMENT = "investment"


class TransactionStatus(str, Enum):
    """
    Settlement status of a transaction.

    The allowed vocabulary depends on the kind, see STATUSES_BY_KIND.
    """
    PAID = "paid"
    UNPAID = "unpaid"
    RECEIVED = "received"
    PENDING = "pending"
    INVESTED = "invested"


STATUSES_BY_KIND: dict[TransactionKind, tuple[TransactionStatus, ...]] = {
    TransactionKind.EXPENSE: (TransactionStatus.PAID, TransactionStatus.UNPAID),
    TransactionKind.INCOME: (TransactionStatus.RECEIVED, TransactionStatus.PENDING),
    TransactionKind.INVESTMENT: (TransactionStatus.INVESTED, TransactionStatus.PENDING),
}

# Status a record of each kind falls back to when the stored one doesn't fit
OPEN_STATUS_BY_KIND: dict[TransactionKind, TransactionStatus] = {
    TransactionKind.EXPENSE: TransactionStatus.UNPAID,
    TransactionKind.INCOME: TransactionStatus.PENDING,
    TransactionKind.INVESTMENT: TransactionStatus.PENDING,
}


class RecurrenceFrequency(str, Enum):
    """How often a recurring transaction repeats."""
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    YEARLY = "yearly"


# =============================================================================
# TRANSACTION
# =============================================================================

class Transaction(BaseModel):
    """
    A financial entry owned by one user.

    `id` is assigned by the store and is None for records that have not
    been created yet.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    user_id: str = Field(
        ...,
        description="Owner identifier (internal id, or email for legacy records)"
    )
    title: Optional[str] = None
    description: Optional[str] = None
    amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Amount in the user's currency"
    )
    category: str = Field(
        default="general",
        description="Category identifier"
    )
    date: str = Field(
        ...,
        description="Calendar date as YYYY-MM-DD"
    )
    kind: TransactionKind = TransactionKind.EXPENSE
    status: TransactionStatus = TransactionStatus.UNPAID
    is_income: bool = False
    created_at: datetime = Field(default_factory=utcnow)

    # Recurrence
    is_recurring: bool = False
    recurring_frequency: Optional[RecurrenceFrequency] = None
    recurring_end_date: Optional[str] = None

    # Income <-> investment transfers point back at their origin
    source_transaction_id: Optional[str] = None

    @field_validator('recurring_frequency', mode='before')
    @classmethod
    def blank_frequency_is_none(cls, v):
        """The store writes an empty string for non-recurring records."""
        if v == "":
            return None
        return v

    @field_validator('recurring_end_date', 'title', 'description', mode='before')
    @classmethod
    def blank_string_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def validate_status_for_kind(self) -> 'Transaction':
        """Status vocabulary is constrained by kind."""
        allowed = STATUSES_BY_KIND[self.kind]
        if self.status not in allowed:
            raise ValueError(
                f"Status '{self.status.value}' is not valid for a {self.kind.value} "
                f"(expected one of: {', '.join(s.value for s in allowed)})"
            )
        return self

    @property
    def day(self) -> Optional[dt.date]:
        """The transaction date parsed, or None if the stored string is malformed."""
        return parse_day(self.date)

    @property
    def is_open_expense(self) -> bool:
        """An expense that still has to be paid."""
        return (
            self.kind == TransactionKind.EXPENSE
            and not self.is_income
            and self.status != TransactionStatus.PAID
        )

    @property
    def display_name(self) -> str:
        return self.title or self.description or "a bill"


# =============================================================================
# GOAL
# =============================================================================

class Goal(BaseModel):
    """A savings goal."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    user_id: str
    title: str = ""
    description: str = ""
    target_amount: Decimal = Field(default=Decimal("0"), ge=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: datetime = Field(default_factory=utcnow)
    category: str = "general"
    is_predefined: bool = False
    predefined_type: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    is_active: bool = True

    @property
    def progress(self) -> float:
        """Fraction of the target reached, clamped to [0, 1]."""
        if self.target_amount <= 0:
            return 0.0
        return float(min(self.current_amount / self.target_amount, Decimal("1")))


# =============================================================================
# CATEGORY
# =============================================================================

class Category(BaseModel):
    """
    A transaction category.

    Built-in categories have stable ids and no owner. User categories are
    created in the store and carry the owner's id.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str
    icon: str = "folder"
    color: str = "blue"
    type: str = "expense"
    is_system: bool = False
    user_id: Optional[str] = None
    is_default: bool = False

    @property
    def identified_id(self) -> str:
        return self.id or self.name


# =============================================================================
# SESSION
# =============================================================================

class UserSession(BaseModel):
    """
    The signed-in user, as handed over by the host's authentication layer.

    Legacy records may be owned by the email instead of the internal id,
    so reads use it as the secondary identity.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
