"""
Core Data Models for Pocket Ledger

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: A Transaction always carries a positive amount.
Direction lives in `kind`, never in the sign of the stored value.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4
from zoneinfo import ZoneInfo

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)


def utc_now() -> datetime:
    """Current instant in UTC (timezone-aware)."""
    return datetime.now(timezone.utc)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """
    Direction of a transaction.

    CREDIT increases the balance (income), DEBIT decreases it (expense).
    """
    CREDIT = "credit"
    DEBIT = "debit"

    @property
    def sign(self) -> int:
        return 1 if self is TransactionKind.CREDIT else -1


class KnownPaymentMethod(str, Enum):
    """
    Well-known payment method labels.

    DESIGN DECISION: These are offered as quick picks and the first three
    feed the Accounts page. Any other non-empty label is still accepted.
    """
    CASH = "Cash"
    ACCOUNT = "Account"
    CREDIT_CARD = "Credit Card"
    GPAY = "GPay"
    CARD = "Card"
    BANK = "Bank"


# Grouping label for transactions recorded without a payment method.
# Never stored.
NOT_SPECIFIED = "Not Specified"

MAX_PAYMENT_METHOD_LENGTH = 50


def normalize_payment_method(value: object) -> Optional[str]:
    """
    Normalize a raw payment method label.

    - None, blank strings and the "Not Specified" sentinel become None
    - Well-known labels are matched case-insensitively and canonicalized
    - Anything else is kept as stripped free text
    """
    if value is None:
        return None
    if isinstance(value, KnownPaymentMethod):
        return value.value

    label = str(value).strip()
    if not label or label.lower() == NOT_SPECIFIED.lower():
        return None
    if len(label) > MAX_PAYMENT_METHOD_LENGTH:
        raise ValueError(
            f"Payment method must be at most {MAX_PAYMENT_METHOD_LENGTH} characters"
        )

    for known in KnownPaymentMethod:
        if label.lower() == known.value.lower():
            return known.value
    return label


PaymentMethod = Annotated[Optional[str], BeforeValidator(normalize_payment_method)]


def method_label(payment_method: Optional[str]) -> str:
    """Grouping label for a (possibly absent) payment method."""
    return payment_method or NOT_SPECIFIED


def is_known_method(label: Optional[str]) -> bool:
    """True for one of the well-known labels."""
    return label in {m.value for m in KnownPaymentMethod}


# =============================================================================
# CORE TRANSACTION MODEL
# =============================================================================

class Transaction(BaseModel):
    """
    A recorded credit or debit.

    Transactions are immutable once created. Edits replace the whole
    record (same id), deletes remove it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Unique transaction ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Account that owns this transaction"
    )

    # Money
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Positive amount; direction is carried by kind"
    )
    kind: TransactionKind = Field(
        ...,
        description="Credit or debit"
    )

    # When (naive local calendar values, see DESIGN.md)
    occurred_on: date = Field(
        ...,
        description="Calendar date of the transaction"
    )
    occurred_at: Optional[time] = Field(
        default=None,
        description="Optional time of day, used to order same-day entries"
    )

    # Classification
    description: Optional[str] = Field(
        default=None,
        max_length=500,
        description="Free text note"
    )
    payment_method: PaymentMethod = Field(
        default=None,
        description="How the transaction was settled"
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created (UTC)"
    )

    @field_validator('occurred_at')
    @classmethod
    def drop_sub_minute(cls, v: Optional[time]) -> Optional[time]:
        """Times are kept at minute resolution and without tzinfo."""
        if v is None:
            return v
        return v.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('description')
    @classmethod
    def empty_description_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @property
    def signed_amount(self) -> Decimal:
        """+amount for credits, -amount for debits."""
        return self.amount * self.kind.sign

    @property
    def method_label(self) -> str:
        """Payment method label used for grouping."""
        return method_label(self.payment_method)

    @property
    def sort_key(self) -> tuple[date, time, str]:
        """
        Chronological sort key.

        Missing times sort as midnight; the id breaks any remaining tie
        so the order is total.
        """
        return (self.occurred_on, self.occurred_at or time.min, str(self.id))


class TransactionDraft(BaseModel):
    """
    Raw input for a new or edited transaction.

    CRITICAL: This is UNVALIDATED user input.
    Every field is optional so the validator can report all problems
    at once instead of failing on the first one.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Optional[Decimal] = None
    kind: Optional[str] = None
    occurred_on: Optional[date] = None
    occurred_at: Optional[time] = None
    description: Optional[str] = None
    payment_method: Optional[str] = None


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Result of validating a write before it reaches storage."""

    validated_at: datetime = Field(
        default_factory=utc_now
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        """Non-blocking warning messages."""
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# DERIVED VIEWS (produced by the ledger aggregator)
# =============================================================================

class Period(BaseModel):
    """A calendar month."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)

    def contains(self, day: date) -> bool:
        return day.month == self.month and day.year == self.year

    @classmethod
    def current(cls, tz: Optional[ZoneInfo] = None) -> "Period":
        """The month containing 'now' in the given display timezone."""
        today = datetime.now(tz).date() if tz else date.today()
        return cls(month=today.month, year=today.year)

    @property
    def label(self) -> str:
        return date(self.year, self.month, 1).strftime("%B %Y")


class PeriodTotals(BaseModel):
    """
    Totals for a month (or all time) plus the all-time balance.

    `balance` always covers every transaction, whatever the period.
    """
    model_config = ConfigDict(frozen=True)

    period: Optional[Period] = None
    total_credit: Decimal = Decimal("0")
    total_debit: Decimal = Decimal("0")
    transaction_count: int = 0
    all_time_credit: Decimal = Decimal("0")
    all_time_debit: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.all_time_credit - self.all_time_debit

    @property
    def net(self) -> Decimal:
        """Credit minus debit within the period."""
        return self.total_credit - self.total_debit


class LedgerEntry(Transaction):
    """A transaction annotated with the running balance up to and including it."""

    running_balance: Decimal


class LedgerSummary(BaseModel):
    """Income, expenses and net over a (filtered) ledger."""
    model_config = ConfigDict(frozen=True)

    credits: Decimal = Decimal("0")
    debits: Decimal = Decimal("0")

    @property
    def balance(self) -> Decimal:
        return self.credits - self.debits


class MethodUsage(BaseModel):
    """How often and how much a payment method was used."""
    model_config = ConfigDict(frozen=True)

    name: str
    count: int = Field(ge=0)
    total: Decimal
    last_used: date


class MethodSlice(BaseModel):
    """One slice of an income or expense breakdown chart."""
    model_config = ConfigDict(frozen=True)

    name: str
    value: Decimal
    color: str


class AccountSectionTotals(BaseModel):
    """Balances of the built-in Cash, Bank Account and Credit Card sections."""
    model_config = ConfigDict(frozen=True)

    cash: Decimal = Decimal("0")
    account: Decimal = Decimal("0")
    credit_card: Decimal = Decimal("0")
