"""Ledger aggregation package."""

from pocket_ledger.ledger.aggregator import (
    DEFAULT_PALETTE,
    compute_account_balance,
    compute_account_section_totals,
    compute_ledger,
    compute_method_breakdown,
    compute_method_stats,
    compute_totals,
    filter_by_period,
    list_payment_methods,
    summarize_ledger,
    summarize_loan_accounts,
)

__all__ = [
    "DEFAULT_PALETTE",
    "compute_account_balance",
    "compute_account_section_totals",
    "compute_ledger",
    "compute_method_breakdown",
    "compute_method_stats",
    "compute_totals",
    "filter_by_period",
    "list_payment_methods",
    "summarize_ledger",
    "summarize_loan_accounts",
]
