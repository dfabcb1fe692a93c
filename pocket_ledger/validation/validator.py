"""
Write-Boundary Validation

DESIGN DECISION: Validation happens ONLY where data enters the system,
before a transaction or sub-account is admitted into storage. The ledger
aggregator assumes well-formed input and never validates.

Checks are split by severity:
- errors block the write (missing amount, non-positive amount, no date,
  unknown type)
- warnings are shown to the user but do not block (future date,
  unusually large amount)

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the caller can reject the write with a reason.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from pocket_ledger.config import AppSettings, get_settings
from pocket_ledger.models.loan import LoanAccountDraft, LoanAccountType
from pocket_ledger.models.transaction import (
    TransactionDraft,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
    normalize_payment_method,
)


class WriteRejectedError(Exception):
    """A write failed validation. Carries every issue found."""

    def __init__(self, result: ValidationResult):
        self.result = result
        reasons = "; ".join(issue.message for issue in result.errors)
        super().__init__(reasons or "Write rejected")

    @property
    def issues(self) -> list[ValidationIssue]:
        return self.result.issues


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _check_money(
    field: str,
    label: str,
    value: Optional[Decimal],
    allow_zero: bool,
) -> list[ValidationIssue]:
    if value is None:
        return []
    if not value.is_finite():
        return [_error(field, "invalid_format", f"{label} is not a number")]
    if allow_zero and value < 0:
        return [_error(field, "invalid_value", f"{label} cannot be negative")]
    if not allow_zero and value <= 0:
        return [_error(
            field,
            "invalid_value",
            f"{label} must be greater than zero",
            "Enter the amount without a sign and pick credit or debit instead",
        )]
    try:
        has_fraction_of_cent = value != value.quantize(Decimal("0.01"))
    except InvalidOperation:
        return [_error(field, "invalid_value", f"{label} is too large")]
    if has_fraction_of_cent:
        return [_error(field, "invalid_format", f"{label} can have at most two decimal places")]
    return []


class TransactionValidator:
    """Validates transaction drafts before they are saved."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        today: Optional[date] = None,
    ):
        """
        Args:
            settings: App settings (display timezone, limits).
                      Loaded from the environment when None.
            today: Fixed "today" for date checks. Derived from the
                   display timezone when None.
        """
        self._settings = settings or get_settings().app
        self._today = today

    def _current_date(self) -> date:
        if self._today is not None:
            return self._today
        return datetime.now(self._settings.tzinfo).date()

    def validate(self, draft: TransactionDraft) -> ValidationResult:
        """Run every check and collect all issues."""
        issues: list[ValidationIssue] = []

        # Amount
        if draft.amount is None:
            issues.append(_error("amount", "missing", "Amount is required"))
        else:
            issues.extend(_check_money("amount", "Amount", draft.amount, allow_zero=False))
            max_amount = Decimal(str(self._settings.max_transaction_amount))
            if draft.amount.is_finite() and draft.amount > max_amount:
                issues.append(_warning(
                    "amount",
                    "suspicious_value",
                    f"Amount ({draft.amount:,.2f}) seems unusually high",
                    "Please verify this amount is correct",
                ))

        # Type
        if draft.kind is None:
            issues.append(_error("kind", "missing", "Type must be credit or debit"))
        else:
            try:
                TransactionKind(draft.kind.lower())
            except ValueError:
                issues.append(_error("kind", "invalid_value", "Type must be credit or debit"))

        # Date
        if draft.occurred_on is None:
            issues.append(_error("occurred_on", "missing", "Date is required"))
        else:
            tolerance = timedelta(days=self._settings.future_date_tolerance_days)
            if draft.occurred_on > self._current_date() + tolerance:
                issues.append(_warning(
                    "occurred_on",
                    "future_date",
                    f"Date ({draft.occurred_on}) is in the future",
                    "Please verify the date is correct",
                ))

        # Payment method
        try:
            normalize_payment_method(draft.payment_method)
        except ValueError as e:
            issues.append(_error("payment_method", "invalid_value", str(e)))

        if draft.description and len(draft.description) > 500:
            issues.append(_error(
                "description",
                "too_long",
                "Description must be at most 500 characters",
            ))

        return ValidationResult(issues=issues)

    def require_valid(self, draft: TransactionDraft) -> ValidationResult:
        """Validate and raise WriteRejectedError on any error-level issue."""
        result = self.validate(draft)
        if result.has_errors:
            raise WriteRejectedError(result)
        return result


class LoanAccountValidator:
    """Validates sub-account drafts and received/paid adjustments."""

    def validate(self, draft: LoanAccountDraft) -> ValidationResult:
        issues: list[ValidationIssue] = []

        if draft.account_type is None:
            issues.append(_error("account_type", "missing", "Account type is required"))
        else:
            try:
                LoanAccountType(draft.account_type)
            except ValueError:
                issues.append(_error(
                    "account_type",
                    "invalid_value",
                    "Account type must be loan-given, loan-taken or credit-card",
                ))

        if not draft.counterparty_name:
            issues.append(_error("counterparty_name", "missing", "Name is required"))
        elif len(draft.counterparty_name) > 100:
            issues.append(_error(
                "counterparty_name",
                "too_long",
                "Name must be at most 100 characters",
            ))

        if draft.initial_amount is None:
            issues.append(_error("initial_amount", "missing", "Initial amount is required"))
        else:
            issues.extend(_check_money(
                "initial_amount", "Initial amount", draft.initial_amount, allow_zero=True
            ))
        issues.extend(_check_money(
            "amount_received", "Amount received", draft.amount_received, allow_zero=True
        ))
        issues.extend(_check_money(
            "amount_paid", "Amount paid", draft.amount_paid, allow_zero=True
        ))

        return ValidationResult(issues=issues)

    def validate_adjustment(self, delta: Optional[Decimal]) -> ValidationResult:
        """A received/paid increment must be a positive amount."""
        if delta is None:
            return ValidationResult(issues=[_error("delta", "missing", "Amount is required")])
        return ValidationResult(
            issues=_check_money("delta", "Amount", delta, allow_zero=False)
        )

    def require_valid(self, draft: LoanAccountDraft) -> ValidationResult:
        result = self.validate(draft)
        if result.has_errors:
            raise WriteRejectedError(result)
        return result

    def require_valid_adjustment(self, delta: Optional[Decimal]) -> ValidationResult:
        result = self.validate_adjustment(delta)
        if result.has_errors:
            raise WriteRejectedError(result)
        return result


def get_user_friendly_summary(result: ValidationResult) -> str:
    """
    Generate a user-friendly summary of validation results.

    This is what we show next to the form.
    """
    if result.is_valid and not result.warnings:
        return "✅ All checks passed."

    lines = []

    if result.has_errors:
        lines.append("❌ This entry can't be saved yet:")
        for issue in result.errors:
            lines.append(f"   • {issue.message}")
            if issue.suggested_fix:
                lines.append(f"     💡 {issue.suggested_fix}")

    if result.warnings:
        if lines:
            lines.append("")
        lines.append("⚠️ Please verify the following:")
        for warning in result.warnings:
            lines.append(f"   • {warning}")

    return "\n".join(lines)
