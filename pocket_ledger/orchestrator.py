"""
Main Orchestrator for Pocket Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (draft → validate → save → audit → change event)
2. Loan and credit card sub-accounts (open, record received/paid, delete)
3. Views (refetch the full snapshot → aggregate)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written without passing validation
- Every read and write is scoped to the signed-in owner
- Every write is audited
- The aggregator only ever sees a complete snapshot

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Awaitable, Optional
from uuid import UUID

import structlog

from pocket_ledger.audit import AuditLogger, create_correlation_id
from pocket_ledger.auth import IdentityService, SessionContext
from pocket_ledger.config import AppSettings, get_optional_sheets_settings, get_settings
from pocket_ledger.ledger import (
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
from pocket_ledger.models.loan import (
    LoanAccount,
    LoanAccountDraft,
    LoanAccountType,
    LoanSection,
)
from pocket_ledger.models.transaction import (
    NOT_SPECIFIED,
    AccountSectionTotals,
    LedgerEntry,
    LedgerSummary,
    MethodSlice,
    MethodUsage,
    Period,
    PeriodTotals,
    Transaction,
    TransactionDraft,
    TransactionKind,
    ValidationResult,
)
from pocket_ledger.services.storage import (
    AuditStorageInterface,
    ChangeFeed,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLoanAccountStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    InMemoryLoanAccountStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
    LoanAccountStorageInterface,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)
from pocket_ledger.validation import (
    LoanAccountValidator,
    TransactionValidator,
    WriteRejectedError,
)


logger = structlog.get_logger(__name__)


def _issues_for_audit(error: WriteRejectedError) -> list[dict]:
    return [
        {"field": i.field, "type": i.issue_type, "message": i.message}
        for i in error.result.errors
    ]


async def _persist(
    audit_logger: Optional[AuditLogger],
    operation: str,
    owner_id: str,
    correlation_id: UUID,
    write: Awaitable,
):
    """Await a storage write, auditing any failure before re-raising it."""
    try:
        return await write
    except StorageError as e:
        if audit_logger:
            await audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                owner_id=owner_id,
                correlation_id=correlation_id,
            )
        raise
    except Exception as e:
        if audit_logger:
            await audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"operation": operation, "owner_id": owner_id},
                correlation_id=correlation_id,
            )
        raise


class TransactionService:
    """
    Owner-scoped transaction reads and writes.

    Flow for a write:
    1. Validate the draft (errors raise WriteRejectedError)
    2. Build the Transaction for the signed-in owner
    3. Persist (the backend publishes a change event)
    4. Audit
    """

    def __init__(
        self,
        session: SessionContext,
        storage: TransactionStorageInterface,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._session = session
        self._storage = storage
        self._validator = validator or TransactionValidator()
        self._audit_logger = audit_logger

    async def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        """The signed-in owner's transactions, newest date first."""
        return await self._storage.list_transactions(
            self._session.owner_id,
            date_from=date_from,
            date_to=date_to,
            kind=kind,
        )

    async def get_transaction(self, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: No such transaction for this owner
        """
        txn = await self._storage.get_transaction(self._session.owner_id, transaction_id)
        if txn is None:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return txn

    def _build(
        self,
        draft: TransactionDraft,
        owner_id: str,
        existing: Optional[Transaction] = None,
    ) -> Transaction:
        fields = {
            "owner_id": owner_id,
            "amount": draft.amount,
            "kind": TransactionKind(draft.kind.lower()),
            "occurred_on": draft.occurred_on,
            "occurred_at": draft.occurred_at,
            "description": draft.description,
            "payment_method": draft.payment_method,
        }
        if existing is not None:
            fields["id"] = existing.id
            fields["created_at"] = existing.created_at
        return Transaction(**fields)

    async def _validate(
        self,
        draft: TransactionDraft,
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        try:
            self._validator.require_valid(draft)
        except WriteRejectedError as e:
            if self._audit_logger:
                await self._audit_logger.log_write_rejected(
                    owner_id=owner_id,
                    entity_type="transaction",
                    issues=_issues_for_audit(e),
                    correlation_id=correlation_id,
                )
            raise

    def check_draft(self, draft: TransactionDraft) -> ValidationResult:
        """Validate without saving; warnings are left for the caller to show."""
        return self._validator.validate(draft)

    async def add_transaction(
        self,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Validate and save a new transaction.

        Raises:
            WriteRejectedError: The draft has error-level issues
            NotAuthenticatedError: Nobody is signed in
        """
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        await self._validate(draft, owner_id, correlation_id)
        txn = self._build(draft, owner_id)
        await _persist(
            self._audit_logger, "save_transaction", owner_id, correlation_id,
            self._storage.save_transaction(txn),
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(
                owner_id=owner_id,
                transaction_id=txn.id,
                kind=txn.kind.value,
                amount=txn.amount,
                correlation_id=correlation_id,
            )
        return txn

    async def edit_transaction(
        self,
        transaction_id: UUID,
        draft: TransactionDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Replace every editable field of an existing transaction.

        The id and created_at survive; everything else comes from the draft.
        """
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        existing = await self.get_transaction(transaction_id)
        await self._validate(draft, owner_id, correlation_id)
        updated = self._build(draft, owner_id, existing=existing)
        await _persist(
            self._audit_logger, "replace_transaction", owner_id, correlation_id,
            self._storage.replace_transaction(updated),
        )

        if self._audit_logger:
            before = existing.model_dump()
            after = updated.model_dump()
            changed = [name for name in after if before.get(name) != after[name]]
            await self._audit_logger.log_transaction_updated(
                owner_id=owner_id,
                transaction_id=updated.id,
                changed_fields=changed,
                correlation_id=correlation_id,
            )
        return updated

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            NotFoundError: No such transaction for this owner
        """
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        # Ownership is checked by the lookup: other owners' rows are invisible
        await self.get_transaction(transaction_id)
        await _persist(
            self._audit_logger, "delete_transaction", owner_id, correlation_id,
            self._storage.delete_transaction(owner_id, transaction_id),
        )

        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                owner_id=owner_id,
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )


class LoanAccountService:
    """
    Owner-scoped loan and credit card sub-accounts.

    Received/paid amounts only ever grow, by validated positive increments.
    """

    def __init__(
        self,
        session: SessionContext,
        storage: LoanAccountStorageInterface,
        validator: Optional[LoanAccountValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._session = session
        self._storage = storage
        self._validator = validator or LoanAccountValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def list_accounts(self) -> list[LoanAccount]:
        return await self._storage.list_accounts(self._session.owner_id)

    async def get_account(self, account_id: UUID) -> LoanAccount:
        account = await self._storage.get_account(self._session.owner_id, account_id)
        if account is None:
            raise NotFoundError(f"Loan account not found: {account_id}")
        return account

    async def _reject(
        self,
        error: WriteRejectedError,
        owner_id: str,
        correlation_id: UUID,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_write_rejected(
                owner_id=owner_id,
                entity_type="loan_account",
                issues=_issues_for_audit(error),
                correlation_id=correlation_id,
            )

    async def open_account(
        self,
        draft: LoanAccountDraft,
        correlation_id: Optional[UUID] = None,
    ) -> LoanAccount:
        """
        Validate and save a new sub-account.

        Raises:
            WriteRejectedError: The draft has error-level issues
        """
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        try:
            self._validator.require_valid(draft)
        except WriteRejectedError as e:
            await self._reject(e, owner_id, correlation_id)
            raise

        account = LoanAccount(
            owner_id=owner_id,
            account_type=LoanAccountType(draft.account_type),
            counterparty_name=draft.counterparty_name,
            initial_amount=draft.initial_amount,
            amount_received=draft.amount_received,
            amount_paid=draft.amount_paid,
            description=draft.description or None,
            opened_on=draft.opened_on or datetime.now(self._settings.tzinfo).date(),
        )
        await _persist(
            self._audit_logger, "save_loan_account", owner_id, correlation_id,
            self._storage.save_account(account),
        )

        if self._audit_logger:
            await self._audit_logger.log_loan_account_opened(
                owner_id=owner_id,
                account_id=account.id,
                account_type=account.account_type.value,
                counterparty=account.counterparty_name,
                correlation_id=correlation_id,
            )
        return account

    async def _adjust(
        self,
        account_id: UUID,
        delta: Optional[Decimal],
        direction: str,
        correlation_id: Optional[UUID],
    ) -> LoanAccount:
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        try:
            self._validator.require_valid_adjustment(delta)
        except WriteRejectedError as e:
            await self._reject(e, owner_id, correlation_id)
            raise

        account = await self.get_account(account_id)
        if direction == "received":
            account.record_received(delta)
        else:
            account.record_paid(delta)
        await _persist(
            self._audit_logger, "update_loan_account", owner_id, correlation_id,
            self._storage.update_account(account),
        )

        if self._audit_logger:
            await self._audit_logger.log_loan_account_adjusted(
                owner_id=owner_id,
                account_id=account.id,
                direction=direction,
                delta=delta,
                correlation_id=correlation_id,
            )
        return account

    async def record_received(
        self,
        account_id: UUID,
        delta: Optional[Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LoanAccount:
        """Add a positive amount to the account's received total."""
        return await self._adjust(account_id, delta, "received", correlation_id)

    async def record_paid(
        self,
        account_id: UUID,
        delta: Optional[Decimal],
        correlation_id: Optional[UUID] = None,
    ) -> LoanAccount:
        """Add a positive amount to the account's paid total."""
        return await self._adjust(account_id, delta, "paid", correlation_id)

    async def delete_account(
        self,
        account_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        owner_id = self._session.owner_id
        correlation_id = correlation_id or create_correlation_id()

        await self.get_account(account_id)
        await _persist(
            self._audit_logger, "delete_loan_account", owner_id, correlation_id,
            self._storage.delete_account(owner_id, account_id),
        )

        if self._audit_logger:
            await self._audit_logger.log_loan_account_deleted(
                owner_id=owner_id,
                account_id=account_id,
                correlation_id=correlation_id,
            )


class LedgerViews:
    """
    Read side of the app.

    Every method refetches the owner's full snapshot and runs the
    aggregator on it. Nothing is cached here; callers re-invoke these
    after a change event.
    """

    def __init__(
        self,
        transactions: TransactionService,
        loan_accounts: LoanAccountService,
        settings: Optional[AppSettings] = None,
    ):
        self._transactions = transactions
        self._loan_accounts = loan_accounts
        self._settings = settings or get_settings().app

    def current_period(self) -> Period:
        return Period.current(self._settings.tzinfo)

    async def snapshot(self) -> list[Transaction]:
        return await self._transactions.list_transactions()

    async def totals(
        self,
        period: Optional[Period] = None,
        kind: Optional[str] = None,
    ) -> PeriodTotals:
        """Month totals plus all-time balance (Home page)."""
        return compute_totals(await self.snapshot(), period=period, kind=kind)

    async def month_transactions(self, period: Period) -> list[Transaction]:
        return filter_by_period(await self.snapshot(), period)

    async def ledger(
        self,
        kind: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> tuple[list[LedgerEntry], LedgerSummary]:
        """Running-balance ledger and its summary for the same filter."""
        entries = compute_ledger(await self.snapshot(), kind=kind, payment_method=payment_method)
        return entries, summarize_ledger(entries)

    async def payment_methods(self) -> list[str]:
        return list_payment_methods(await self.snapshot())

    async def filter_methods(self) -> list[str]:
        """Method filter options, with "Not Specified" when some entry has no method."""
        snapshot = await self.snapshot()
        methods = list_payment_methods(snapshot)
        if any(t.payment_method is None for t in snapshot):
            methods.append(NOT_SPECIFIED)
        return methods

    async def method_stats(self) -> list[MethodUsage]:
        return compute_method_stats(await self.snapshot())

    async def method_breakdown(
        self,
        kind: TransactionKind,
        period: Optional[Period] = None,
    ) -> list[MethodSlice]:
        """Per-method pie slices for one kind, defaulting to the current month."""
        return compute_method_breakdown(
            await self.snapshot(),
            kind,
            period=period or self.current_period(),
            palette=self._settings.palette,
        )

    async def account_sections(self) -> AccountSectionTotals:
        return compute_account_section_totals(await self.snapshot())

    async def loan_sections(self) -> list[LoanSection]:
        return summarize_loan_accounts(await self._loan_accounts.list_accounts())


@dataclass
class StorageBackends:
    """Storage shared by every session of one process."""

    users: UserStorageInterface
    transactions: TransactionStorageInterface
    loan_accounts: LoanAccountStorageInterface
    audit: AuditStorageInterface
    feed: ChangeFeed
    audit_logger: AuditLogger
    name: str


@dataclass
class AppComponents:
    """Everything one UI session needs."""

    backends: StorageBackends
    session: SessionContext
    identity: IdentityService
    transactions: TransactionService
    loan_accounts: LoanAccountService
    views: LedgerViews


def _memory_backends(feed: ChangeFeed) -> StorageBackends:
    audit = InMemoryAuditStorage()
    return StorageBackends(
        users=InMemoryUserStorage(),
        transactions=InMemoryTransactionStorage(feed),
        loan_accounts=InMemoryLoanAccountStorage(feed),
        audit=audit,
        feed=feed,
        audit_logger=AuditLogger(audit),
        name="memory",
    )


def create_backends(use_storage: bool = True) -> StorageBackends:
    """
    Build the storage layer.

    Args:
        use_storage: Whether to try the configured Google Sheets storage.
                    Falls back to memory when False, when the backend
                    setting says so, or when Sheets can't be reached.
    """
    feed = ChangeFeed()

    if not use_storage or get_settings().app.storage_backend != "google_sheets":
        return _memory_backends(feed)

    sheets_settings = get_optional_sheets_settings()
    if sheets_settings is None:
        logger.warning("storage_not_configured", error="Google Sheets settings missing")
        return _memory_backends(feed)

    try:
        client = GoogleSheetsClient(sheets_settings)
        client.get_spreadsheet()
    except StorageError as e:
        # Storage not configured - continue in memory
        logger.warning("storage_not_configured", error=str(e))
        return _memory_backends(feed)

    audit = GoogleSheetsAuditStorage(client)
    return StorageBackends(
        users=GoogleSheetsUserStorage(client),
        transactions=GoogleSheetsTransactionStorage(client, feed),
        loan_accounts=GoogleSheetsLoanAccountStorage(client, feed),
        audit=audit,
        feed=feed,
        audit_logger=AuditLogger(audit),
        name="google_sheets",
    )


def create_session_components(backends: StorageBackends) -> AppComponents:
    """Fresh session context and services on top of shared storage."""
    identity = IdentityService(
        backends.users,
        transactions=backends.transactions,
        loan_accounts=backends.loan_accounts,
        audit_logger=backends.audit_logger,
    )
    session = SessionContext(identity, backends.feed)
    transactions = TransactionService(
        session,
        backends.transactions,
        audit_logger=backends.audit_logger,
    )
    loan_accounts = LoanAccountService(
        session,
        backends.loan_accounts,
        audit_logger=backends.audit_logger,
    )
    return AppComponents(
        backends=backends,
        session=session,
        identity=identity,
        transactions=transactions,
        loan_accounts=loan_accounts,
        views=LedgerViews(transactions, loan_accounts),
    )


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False for testing without storage.
    """
    return create_session_components(create_backends(use_storage))
