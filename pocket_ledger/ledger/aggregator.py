"""
Ledger Aggregator

DESIGN DECISION: Aggregation is DETERMINISTIC and STATELESS.
Every function here is a pure function of the snapshot it is given.
Nothing is cached between calls and nothing is updated incrementally;
callers refetch the full snapshot and call again.

Inputs are assumed to be well formed (validation happens at the write
boundary), so these functions never raise for empty input, unknown
payment method labels or missing optional fields.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Optional, Union

from pocket_ledger.models.loan import (
    LoanAccount,
    LoanAccountBalance,
    LoanAccountType,
    LoanSection,
)
from pocket_ledger.models.transaction import (
    NOT_SPECIFIED,
    AccountSectionTotals,
    KnownPaymentMethod,
    LedgerEntry,
    LedgerSummary,
    MethodSlice,
    MethodUsage,
    Period,
    PeriodTotals,
    Transaction,
    TransactionKind,
    normalize_payment_method,
)


DEFAULT_PALETTE: tuple[str, ...] = (
    "#3b82f6",
    "#10b981",
    "#f59e0b",
    "#ef4444",
    "#8b5cf6",
)

ZERO = Decimal("0")

KindFilter = Optional[Union[TransactionKind, str]]


def _coerce_kind(kind: KindFilter) -> Optional[TransactionKind]:
    # "all" is what the filter dropdowns send for no filter
    if kind is None or kind == "all":
        return None
    return TransactionKind(kind.strip().lower())


def _matches_method(transaction: Transaction, payment_method: Optional[str]) -> bool:
    if payment_method is None or payment_method == "all":
        return True
    if payment_method == NOT_SPECIFIED:
        return transaction.payment_method is None
    return transaction.payment_method == normalize_payment_method(payment_method)


def _chronological(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Ascending by (date, time or midnight, id)."""
    return sorted(transactions, key=lambda t: t.sort_key)


# =============================================================================
# PERIOD & FILTER TOTALS
# =============================================================================

def compute_totals(
    transactions: Iterable[Transaction],
    period: Optional[Period] = None,
    kind: KindFilter = None,
) -> PeriodTotals:
    """
    Income and expense totals for a month, plus the all-time balance.

    Args:
        transactions: The owner's full transaction set
        period: Month to total; None totals all time
        kind: Optionally restrict the period totals to credits or debits

    Returns:
        PeriodTotals. `balance` always spans every transaction.
    """
    kind_filter = _coerce_kind(kind)

    total_credit = total_debit = ZERO
    all_time_credit = all_time_debit = ZERO
    count = 0

    for txn in transactions:
        if txn.kind is TransactionKind.CREDIT:
            all_time_credit += txn.amount
        else:
            all_time_debit += txn.amount

        if period is not None and not period.contains(txn.occurred_on):
            continue
        if kind_filter is not None and txn.kind is not kind_filter:
            continue

        count += 1
        if txn.kind is TransactionKind.CREDIT:
            total_credit += txn.amount
        else:
            total_debit += txn.amount

    return PeriodTotals(
        period=period,
        total_credit=total_credit,
        total_debit=total_debit,
        transaction_count=count,
        all_time_credit=all_time_credit,
        all_time_debit=all_time_debit,
    )


def filter_by_period(
    transactions: Iterable[Transaction],
    period: Period,
) -> list[Transaction]:
    """Transactions whose calendar date falls in `period`, newest first."""
    in_period = [t for t in transactions if period.contains(t.occurred_on)]
    return list(reversed(_chronological(in_period)))


# =============================================================================
# RUNNING-BALANCE LEDGER
# =============================================================================

def compute_ledger(
    transactions: Iterable[Transaction],
    kind: KindFilter = None,
    payment_method: Optional[str] = None,
) -> list[LedgerEntry]:
    """
    Annotate transactions with a running balance.

    The filtered transactions are sorted ascending once and the signed
    amounts are accumulated left to right. The annotated list is then
    reversed for display (newest first); balances are never recomputed
    after the ascending pass.

    Args:
        transactions: Snapshot in any order
        kind: Only credits or only debits ("all" or None for both)
        payment_method: Exact label to keep; "Not Specified" keeps
            transactions without a method

    Returns:
        Ledger entries in descending display order
    """
    kind_filter = _coerce_kind(kind)
    selected = [
        t for t in transactions
        if (kind_filter is None or t.kind is kind_filter)
        and _matches_method(t, payment_method)
    ]

    running = ZERO
    entries: list[LedgerEntry] = []
    for txn in _chronological(selected):
        running += txn.signed_amount
        entries.append(
            LedgerEntry.model_validate({**txn.model_dump(), "running_balance": running})
        )

    entries.reverse()
    return entries


def summarize_ledger(transactions: Iterable[Transaction]) -> LedgerSummary:
    """Credits, debits and net over whatever set is passed in."""
    credits = debits = ZERO
    for txn in transactions:
        if txn.kind is TransactionKind.CREDIT:
            credits += txn.amount
        else:
            debits += txn.amount
    return LedgerSummary(credits=credits, debits=debits)


# =============================================================================
# PAYMENT-METHOD AGGREGATION
# =============================================================================

def list_payment_methods(transactions: Iterable[Transaction]) -> list[str]:
    """Distinct payment method labels in use, sorted."""
    return sorted({t.payment_method for t in transactions if t.payment_method})


def compute_method_stats(transactions: Iterable[Transaction]) -> list[MethodUsage]:
    """
    Usage count, combined total and last use per payment method.

    Transactions without a method are grouped as "Not Specified".
    Groups are ordered by usage count, most used first; equal counts
    keep first-seen order.
    """
    groups: dict[str, dict] = {}

    for txn in transactions:
        key = txn.method_label
        group = groups.get(key)
        if group is None:
            groups[key] = {
                "count": 1,
                "total": txn.amount,
                "last_used": txn.occurred_on,
            }
            continue
        group["count"] += 1
        group["total"] += txn.amount
        if txn.occurred_on > group["last_used"]:
            group["last_used"] = txn.occurred_on

    stats = [MethodUsage(name=name, **data) for name, data in groups.items()]
    stats.sort(key=lambda s: s.count, reverse=True)
    return stats


def compute_method_breakdown(
    transactions: Iterable[Transaction],
    kind: Union[TransactionKind, str],
    period: Optional[Period] = None,
    palette: Sequence[str] = DEFAULT_PALETTE,
) -> list[MethodSlice]:
    """
    Per-method totals of one kind, for the income and expense charts.

    Colours are assigned in the order methods are first seen walking the
    transactions chronologically, cycling through `palette` when there
    are more methods than colours.
    """
    kind_filter = TransactionKind(kind.strip().lower())
    colours = tuple(palette) or DEFAULT_PALETTE

    totals: dict[str, Decimal] = {}
    for txn in _chronological(transactions):
        if txn.kind is not kind_filter:
            continue
        if period is not None and not period.contains(txn.occurred_on):
            continue
        totals[txn.method_label] = totals.get(txn.method_label, ZERO) + txn.amount

    return [
        MethodSlice(name=name, value=value, color=colours[i % len(colours)])
        for i, (name, value) in enumerate(totals.items())
    ]


# =============================================================================
# SUB-ACCOUNT BALANCES
# =============================================================================

def compute_account_balance(account: LoanAccount) -> Decimal:
    """
    Outstanding balance of a loan or credit card sub-account.

    - loan-taken:  initial + received - paid (receiving more grows the debt)
    - loan-given:  initial + paid - received (lending more grows what is owed)
    - credit-card: initial + received - paid
    """
    initial = account.initial_amount
    received = account.amount_received
    paid = account.amount_paid

    if account.account_type.is_asset:
        return initial + paid - received
    return initial + received - paid


def compute_account_section_totals(
    transactions: Iterable[Transaction],
) -> AccountSectionTotals:
    """
    Cash, Bank Account and Credit Card totals from the transaction set.

    Cash and Account are assets: credits add, debits subtract.
    Credit Card is a liability, so the sign flips: spending on the card
    (a debit) grows the amount owed. Other labels do not contribute.
    """
    cash = account = credit_card = ZERO

    for txn in transactions:
        if txn.payment_method == KnownPaymentMethod.CASH.value:
            cash += txn.signed_amount
        elif txn.payment_method == KnownPaymentMethod.ACCOUNT.value:
            account += txn.signed_amount
        elif txn.payment_method == KnownPaymentMethod.CREDIT_CARD.value:
            credit_card -= txn.signed_amount

    return AccountSectionTotals(cash=cash, account=account, credit_card=credit_card)


def summarize_loan_accounts(accounts: Iterable[LoanAccount]) -> list[LoanSection]:
    """
    Group sub-accounts by type with balances and a section total.

    Every type gets a section, even when empty. Accounts inside a
    section are newest first.
    """
    by_type: dict[LoanAccountType, list[LoanAccount]] = {t: [] for t in LoanAccountType}
    for acct in accounts:
        by_type[acct.account_type].append(acct)

    sections = []
    for account_type, members in by_type.items():
        members.sort(key=lambda a: (a.opened_on, a.created_at), reverse=True)
        balances = [
            LoanAccountBalance(account=a, balance=compute_account_balance(a))
            for a in members
        ]
        sections.append(LoanSection(
            account_type=account_type,
            accounts=balances,
            total=sum((b.balance for b in balances), ZERO),
        ))
    return sections
