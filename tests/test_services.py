"""
Integration tests for the orchestrator flows.

Everything runs on the in-memory backend; the aggregation results are
checked through LedgerViews the way the UI reads them.
"""

import pytest
from datetime import date, datetime, time
from decimal import Decimal
from uuid import uuid4

import pytest_asyncio

from pocket_ledger.auth import NotAuthenticatedError, SessionContext
from pocket_ledger.config import get_settings
from pocket_ledger.models import (
    NOT_SPECIFIED,
    AuditEventType,
    LoanAccountDraft,
    LoanAccountType,
    Period,
    TransactionDraft,
    TransactionKind,
)
from pocket_ledger.orchestrator import (
    LedgerViews,
    LoanAccountService,
    TransactionService,
    create_app_components,
)
from pocket_ledger.services.storage import (
    ChangeAction,
    ChangeTopic,
    InMemoryLoanAccountStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    StorageError,
)
from pocket_ledger.validation import TransactionValidator, WriteRejectedError


def _draft(**overrides):
    fields = {
        "amount": Decimal("100.00"),
        "kind": "credit",
        "occurred_on": date(2024, 1, 5),
        "payment_method": "Cash",
    }
    fields.update(overrides)
    return TransactionDraft(**fields)


@pytest.fixture
def transactions(session, transaction_storage, audit_logger, app_settings):
    return TransactionService(
        session,
        transaction_storage,
        validator=TransactionValidator(settings=app_settings),
        audit_logger=audit_logger,
    )


@pytest.fixture
def loans(session, loan_storage, audit_logger, app_settings):
    return LoanAccountService(session, loan_storage, audit_logger=audit_logger, settings=app_settings)


@pytest.fixture
def views(transactions, loans, app_settings):
    return LedgerViews(transactions, loans, settings=app_settings)


@pytest_asyncio.fixture
async def january(transactions):
    """The four-transaction January scenario, entered out of order."""
    await transactions.add_transaction(_draft(
        amount=Decimal("10"), kind="debit", occurred_on=date(2024, 1, 10),
        occurred_at=time(15, 0), description="tea", payment_method="GPay",
    ))
    await transactions.add_transaction(_draft(description="salary"))
    await transactions.add_transaction(_draft(
        amount=Decimal("25"), occurred_on=date(2024, 1, 10),
        occurred_at=time(9, 0), description="refund",
    ))
    await transactions.add_transaction(_draft(
        amount=Decimal("40"), kind="debit", occurred_on=date(2024, 1, 10),
        description="groceries",
    ))


class TestTransactionService:
    """Tests for transaction writes at the service boundary."""

    @pytest.mark.asyncio
    async def test_add_transaction(self, transactions, session, audit_storage):
        txn = await transactions.add_transaction(_draft(payment_method="gpay"))

        assert txn.owner_id == session.owner_id
        assert txn.kind == TransactionKind.CREDIT
        assert txn.payment_method == "GPay"
        assert await transactions.get_transaction(txn.id) == txn

        events = await audit_storage.get_events_by_entity("transaction", str(txn.id))
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_SAVED]

    @pytest.mark.asyncio
    async def test_rejected_write_stores_nothing(self, transactions, audit_storage):
        with pytest.raises(WriteRejectedError) as exc_info:
            await transactions.add_transaction(_draft(amount=Decimal("0"), occurred_on=None))

        fields = {issue.field for issue in exc_info.value.result.errors}
        assert fields == {"amount", "occurred_on"}
        assert await transactions.list_transactions() == []

        events = await audit_storage.get_recent_events()
        assert AuditEventType.WRITE_REJECTED in [e.event_type for e in events]

    @pytest.mark.asyncio
    async def test_correlation_id_links_events(self, transactions, audit_storage):
        correlation_id = uuid4()
        await transactions.add_transaction(_draft(), correlation_id=correlation_id)

        events = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_signed_out_session_cannot_write(self, identity, transaction_storage):
        service = TransactionService(SessionContext(identity), transaction_storage)
        with pytest.raises(NotAuthenticatedError):
            await service.add_transaction(_draft())

    @pytest.mark.asyncio
    async def test_edit_replaces_every_field(self, transactions, audit_storage):
        original = await transactions.add_transaction(_draft(description="salary"))

        edited = await transactions.edit_transaction(original.id, _draft(
            amount=Decimal("80.00"),
            kind="debit",
            occurred_on=date(2024, 1, 6),
            payment_method=None,
        ))

        assert edited.id == original.id
        assert edited.created_at == original.created_at
        assert edited.amount == Decimal("80.00")
        assert edited.kind == TransactionKind.DEBIT
        assert edited.description is None
        assert edited.payment_method is None
        assert await transactions.get_transaction(original.id) == edited

        events = await audit_storage.get_events_by_entity("transaction", str(original.id))
        updated = [e for e in events if e.event_type == AuditEventType.TRANSACTION_UPDATED]
        assert set(updated[0].details["changed_fields"]) == {
            "amount", "kind", "occurred_on", "description", "payment_method",
        }

    @pytest.mark.asyncio
    async def test_edit_rejects_invalid_draft(self, transactions):
        original = await transactions.add_transaction(_draft())
        with pytest.raises(WriteRejectedError):
            await transactions.edit_transaction(original.id, _draft(kind="transfer"))
        assert (await transactions.get_transaction(original.id)).kind == TransactionKind.CREDIT

    @pytest.mark.asyncio
    async def test_other_owners_transactions_are_invisible(
        self, transactions, identity, transaction_storage, feed
    ):
        txn = await transactions.add_transaction(_draft())

        other_session = SessionContext(identity, feed)
        await other_session.sign_up("ravi@example.com", "secret123")
        other = TransactionService(other_session, transaction_storage)

        assert await other.list_transactions() == []
        with pytest.raises(NotFoundError):
            await other.get_transaction(txn.id)
        with pytest.raises(NotFoundError):
            await other.edit_transaction(txn.id, _draft())
        with pytest.raises(NotFoundError):
            await other.delete_transaction(txn.id)

    @pytest.mark.asyncio
    async def test_delete(self, transactions):
        txn = await transactions.add_transaction(_draft())

        await transactions.delete_transaction(txn.id)

        assert await transactions.list_transactions() == []
        with pytest.raises(NotFoundError):
            await transactions.delete_transaction(txn.id)

    @pytest.mark.asyncio
    async def test_subscribers_hear_about_writes(self, transactions, session):
        events = []
        session.subscribe(ChangeTopic.TRANSACTIONS, events.append)

        txn = await transactions.add_transaction(_draft())
        await transactions.delete_transaction(txn.id)

        assert [e.action for e in events] == [ChangeAction.INSERT, ChangeAction.DELETE]

    def test_check_draft_reports_warnings(self, transactions):
        result = transactions.check_draft(_draft(occurred_on=date(2099, 1, 1)))
        assert result.is_valid
        assert result.warnings

    @pytest.mark.asyncio
    async def test_storage_error_is_audited(self, session, feed, audit_logger, audit_storage):
        class UnreachableStorage(InMemoryTransactionStorage):
            async def save_transaction(self, transaction):
                raise StorageError("Sheets unreachable")

        service = TransactionService(session, UnreachableStorage(feed), audit_logger=audit_logger)
        with pytest.raises(StorageError):
            await service.add_transaction(_draft())

        events = await audit_storage.get_recent_events()
        failed = [e for e in events if e.event_type == AuditEventType.STORAGE_ERROR]
        assert failed[0].error_message == "Sheets unreachable"

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_audited_and_reraised(
        self, session, feed, audit_logger, audit_storage
    ):
        class BrokenStorage(InMemoryTransactionStorage):
            async def save_transaction(self, transaction):
                raise RuntimeError("disk on fire")

        service = TransactionService(session, BrokenStorage(feed), audit_logger=audit_logger)
        with pytest.raises(RuntimeError):
            await service.add_transaction(_draft())

        events = await audit_storage.get_recent_events()
        errors = [e for e in events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert errors[0].details == {"operation": "save_transaction", "owner_id": session.owner_id}
        assert errors[0].error_message == "disk on fire"


class TestLoanAccountService:
    """Tests for sub-account flows."""

    def _draft(self, **overrides):
        fields = {
            "account_type": "loan-taken",
            "counterparty_name": "HDFC Bank",
            "initial_amount": Decimal("1000"),
            "opened_on": date(2024, 1, 1),
        }
        fields.update(overrides)
        return LoanAccountDraft(**fields)

    @pytest.mark.asyncio
    async def test_open_and_adjust(self, loans, views):
        account = await loans.open_account(self._draft())

        await loans.record_received(account.id, Decimal("200"))
        updated = await loans.record_paid(account.id, Decimal("300"))

        assert updated.amount_received == Decimal("200")
        assert updated.amount_paid == Decimal("300")

        sections = {s.account_type: s for s in await views.loan_sections()}
        assert sections[LoanAccountType.LOAN_TAKEN].total == Decimal("900")

    @pytest.mark.asyncio
    async def test_loan_given_balance(self, loans, views):
        account = await loans.open_account(self._draft(account_type="loan-given"))
        await loans.record_received(account.id, Decimal("200"))
        await loans.record_paid(account.id, Decimal("300"))

        sections = {s.account_type: s for s in await views.loan_sections()}
        assert sections[LoanAccountType.LOAN_GIVEN].accounts[0].balance == Decimal("1100")

    @pytest.mark.asyncio
    async def test_opened_on_defaults_to_today(self, loans, app_settings):
        account = await loans.open_account(self._draft(opened_on=None))
        assert account.opened_on == datetime.now(app_settings.tzinfo).date()

    @pytest.mark.asyncio
    async def test_invalid_account_rejected(self, loans, audit_storage):
        with pytest.raises(WriteRejectedError):
            await loans.open_account(self._draft(account_type="mortgage"))
        assert await loans.list_accounts() == []

        events = await audit_storage.get_recent_events()
        rejected = [e for e in events if e.event_type == AuditEventType.WRITE_REJECTED]
        assert rejected[0].entity_type == "loan_account"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("delta", [None, Decimal("0"), Decimal("-50")])
    async def test_adjustment_must_be_positive(self, loans, delta):
        account = await loans.open_account(self._draft())
        with pytest.raises(WriteRejectedError):
            await loans.record_received(account.id, delta)
        assert (await loans.get_account(account.id)).amount_received == Decimal("0")

    @pytest.mark.asyncio
    async def test_delete(self, loans):
        account = await loans.open_account(self._draft())
        await loans.delete_account(account.id)

        assert await loans.list_accounts() == []
        with pytest.raises(NotFoundError):
            await loans.record_paid(account.id, Decimal("1"))

    @pytest.mark.asyncio
    async def test_failed_adjustment_is_audited(self, session, feed, audit_logger, audit_storage):
        class ReadOnlyStorage(InMemoryLoanAccountStorage):
            async def update_account(self, account):
                raise StorageError("Sheet is read-only")

        loans = LoanAccountService(session, ReadOnlyStorage(feed), audit_logger=audit_logger)
        account = await loans.open_account(self._draft())

        with pytest.raises(StorageError):
            await loans.record_received(account.id, Decimal("50"))

        assert (await loans.get_account(account.id)).amount_received == Decimal("0")
        events = await audit_storage.get_recent_events()
        assert AuditEventType.STORAGE_ERROR in [e.event_type for e in events]


class TestLedgerViews:
    """The aggregated views the pages render."""

    @pytest.mark.asyncio
    async def test_ledger_running_balance(self, views, january):
        entries, summary = await views.ledger()

        assert [e.description for e in entries] == ["tea", "refund", "groceries", "salary"]
        assert [e.running_balance for e in entries] == [
            Decimal("75"), Decimal("85"), Decimal("60"), Decimal("100"),
        ]
        assert summary.balance == Decimal("75")

    @pytest.mark.asyncio
    async def test_filtered_ledger(self, views, january):
        entries, summary = await views.ledger(kind="debit", payment_method="GPay")

        assert [e.description for e in entries] == ["tea"]
        assert summary.debits == Decimal("10")

    @pytest.mark.asyncio
    async def test_month_totals(self, views, january):
        totals = await views.totals(period=Period(month=1, year=2024))
        assert totals.total_credit == Decimal("125")
        assert totals.total_debit == Decimal("50")
        assert totals.balance == Decimal("75")

        february = await views.totals(period=Period(month=2, year=2024))
        assert february.transaction_count == 0
        assert february.balance == Decimal("75")

    @pytest.mark.asyncio
    async def test_method_views(self, views, january):
        stats = await views.method_stats()
        assert [(s.name, s.count) for s in stats] == [("Cash", 3), ("GPay", 1)]
        assert stats[0].total == Decimal("165")
        assert await views.payment_methods() == ["Cash", "GPay"]

        slices = await views.method_breakdown(TransactionKind.DEBIT, Period(month=1, year=2024))
        assert {s.name: s.value for s in slices} == {"GPay": Decimal("10"), "Cash": Decimal("40")}

    @pytest.mark.asyncio
    async def test_filter_methods_offer_not_specified_only_when_used(
        self, views, transactions, january
    ):
        assert await views.filter_methods() == ["Cash", "GPay"]

        await transactions.add_transaction(_draft(payment_method=None, description="gift"))

        methods = await views.filter_methods()
        assert methods == ["Cash", "GPay", NOT_SPECIFIED]
        entries, _ = await views.ledger(payment_method=methods[-1])
        assert [e.description for e in entries] == ["gift"]

    @pytest.mark.asyncio
    async def test_breakdown_defaults_to_current_month(self, views, transactions, app_settings):
        today = datetime.now(app_settings.tzinfo).date()
        await transactions.add_transaction(_draft(occurred_on=today, payment_method="Bank"))
        await transactions.add_transaction(_draft(occurred_on=date(2020, 1, 1)))

        slices = await views.method_breakdown(TransactionKind.CREDIT)

        assert [(s.name, s.value) for s in slices] == [("Bank", Decimal("100.00"))]

    @pytest.mark.asyncio
    async def test_account_sections(self, views, january):
        sections = await views.account_sections()
        assert sections.cash == Decimal("85")
        assert sections.credit_card == Decimal("0")

    @pytest.mark.asyncio
    async def test_empty_views(self, views):
        entries, summary = await views.ledger()
        assert entries == []
        assert summary.balance == Decimal("0")
        assert await views.method_stats() == []
        assert all(s.accounts == [] for s in await views.loan_sections())


class TestCreateAppComponents:
    """Tests for the component factory."""

    @pytest.fixture(autouse=True)
    def environment(self, monkeypatch):
        monkeypatch.setenv("AUTH_JWT_SECRET", "factory-secret-0123456789abcdef-0123")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    @pytest.mark.asyncio
    async def test_memory_backend(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "memory")
        components = create_app_components()

        assert components.backends.name == "memory"
        await components.session.sign_up("asha@example.com", "secret123")
        await components.transactions.add_transaction(_draft())
        totals = await components.views.totals()
        assert totals.balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_unconfigured_sheets_fall_back_to_memory(self, monkeypatch):
        monkeypatch.setenv("APP_STORAGE_BACKEND", "google_sheets")
        components = create_app_components()
        assert components.backends.name == "memory"

    def test_use_storage_false(self):
        assert create_app_components(use_storage=False).backends.name == "memory"
