"""
Loan and credit card sub-accounts.

A sub-account tracks one counterparty: money lent out, money borrowed,
or a credit card. Its balance is derived from three amounts that only
ever grow: the initial amount, the total received and the total paid.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from pocket_ledger.models.transaction import utc_now


class LoanAccountType(str, Enum):
    """Kind of sub-account."""
    LOAN_GIVEN = "loan-given"
    LOAN_TAKEN = "loan-taken"
    CREDIT_CARD = "credit-card"

    @property
    def section_title(self) -> str:
        return {
            LoanAccountType.LOAN_GIVEN: "Loans Given",
            LoanAccountType.LOAN_TAKEN: "Loans Taken",
            LoanAccountType.CREDIT_CARD: "Credit Cards",
        }[self]

    @property
    def is_asset(self) -> bool:
        """Money owed to the owner is an asset; everything else is a liability."""
        return self is LoanAccountType.LOAN_GIVEN


class LoanAccount(BaseModel):
    """
    A loan or credit card sub-account.

    CRITICAL: received/paid totals are only ever incremented through
    record_received() and record_paid(). They are never overwritten.
    """
    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    account_type: LoanAccountType
    counterparty_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Person, lender or card name"
    )
    initial_amount: Decimal = Field(..., ge=0, decimal_places=2)
    amount_received: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    amount_paid: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    description: Optional[str] = Field(default=None, max_length=500)
    opened_on: date = Field(default_factory=date.today)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def record_received(self, delta: Decimal) -> "LoanAccount":
        """Add `delta` to the amount received."""
        if delta <= 0:
            raise ValueError("Received amount must be greater than zero")
        self.amount_received = self.amount_received + delta
        self.updated_at = utc_now()
        return self

    def record_paid(self, delta: Decimal) -> "LoanAccount":
        """Add `delta` to the amount paid."""
        if delta <= 0:
            raise ValueError("Paid amount must be greater than zero")
        self.amount_paid = self.amount_paid + delta
        self.updated_at = utc_now()
        return self


class LoanAccountDraft(BaseModel):
    """Unvalidated input for opening a sub-account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    account_type: Optional[str] = None
    counterparty_name: Optional[str] = None
    initial_amount: Optional[Decimal] = None
    amount_received: Decimal = Decimal("0")
    amount_paid: Decimal = Decimal("0")
    description: Optional[str] = None
    opened_on: Optional[date] = None


class LoanAccountBalance(BaseModel):
    """A sub-account together with its computed balance."""
    model_config = ConfigDict(frozen=True)

    account: LoanAccount
    balance: Decimal


class LoanSection(BaseModel):
    """All sub-accounts of one type with their combined balance."""
    model_config = ConfigDict(frozen=True)

    account_type: LoanAccountType
    accounts: list[LoanAccountBalance] = Field(default_factory=list)
    total: Decimal = Decimal("0")
