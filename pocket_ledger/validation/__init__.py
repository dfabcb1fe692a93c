"""Write-boundary validation package."""

from pocket_ledger.validation.validator import (
    LoanAccountValidator,
    TransactionValidator,
    WriteRejectedError,
    get_user_friendly_summary,
)

__all__ = [
    "LoanAccountValidator",
    "TransactionValidator",
    "WriteRejectedError",
    "get_user_friendly_summary",
]
