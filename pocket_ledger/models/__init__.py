"""
Data Models Package

This package contains all Pydantic models used in Pocket Ledger.
All data flowing through the system must conform to these schemas.
"""

from pocket_ledger.models.transaction import (
    NOT_SPECIFIED,
    AccountSectionTotals,
    KnownPaymentMethod,
    LedgerEntry,
    LedgerSummary,
    MethodSlice,
    MethodUsage,
    PaymentMethod,
    Period,
    PeriodTotals,
    Transaction,
    TransactionDraft,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
    is_known_method,
    method_label,
    normalize_payment_method,
    utc_now,
)
from pocket_ledger.models.loan import (
    LoanAccount,
    LoanAccountBalance,
    LoanAccountDraft,
    LoanAccountType,
    LoanSection,
)
from pocket_ledger.models.user import AuthResult, StoredUser, User
from pocket_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Transaction models
    "NOT_SPECIFIED",
    "AccountSectionTotals",
    "KnownPaymentMethod",
    "LedgerEntry",
    "LedgerSummary",
    "MethodSlice",
    "MethodUsage",
    "PaymentMethod",
    "Period",
    "PeriodTotals",
    "Transaction",
    "TransactionDraft",
    "TransactionKind",
    "ValidationIssue",
    "ValidationResult",
    "is_known_method",
    "method_label",
    "normalize_payment_method",
    "utc_now",
    # Sub-account models
    "LoanAccount",
    "LoanAccountBalance",
    "LoanAccountDraft",
    "LoanAccountType",
    "LoanSection",
    # User models
    "AuthResult",
    "StoredUser",
    "User",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
