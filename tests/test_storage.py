"""Tests for the storage backends and the change feed."""

import gc
import pytest
from datetime import date, time
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

from pocket_ledger.auth import SessionContext
from pocket_ledger.models import (
    AuditEventBuilder,
    LoanAccount,
    LoanAccountType,
    StoredUser,
    Transaction,
    TransactionKind,
)
from pocket_ledger.services.storage import (
    ChangeAction,
    ChangeEvent,
    ChangeFeed,
    ChangeTopic,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsLoanAccountStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
    NotFoundError,
    OwnershipError,
)
from pocket_ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    LOAN_ACCOUNT_COLUMNS,
    TRANSACTION_COLUMNS,
    USER_COLUMNS,
)


def _txn(owner="user-1", on=date(2024, 1, 10), amount="10.00", **overrides):
    return Transaction(
        owner_id=owner,
        amount=Decimal(amount),
        kind=overrides.pop("kind", TransactionKind.DEBIT),
        occurred_on=on,
        **overrides,
    )


def _loan(owner="user-1", **overrides):
    fields = {
        "owner_id": owner,
        "account_type": LoanAccountType.LOAN_TAKEN,
        "counterparty_name": "HDFC Bank",
        "initial_amount": Decimal("1000"),
        "opened_on": date(2024, 1, 1),
    }
    fields.update(overrides)
    return LoanAccount(**fields)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.rows[index] = [str(cell) for cell in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


@pytest.fixture
def sheets_client():
    client = MagicMock()
    client.get_transactions_sheet.return_value = FakeWorksheet(TRANSACTION_COLUMNS)
    client.get_loan_accounts_sheet.return_value = FakeWorksheet(LOAN_ACCOUNT_COLUMNS)
    client.get_users_sheet.return_value = FakeWorksheet(USER_COLUMNS)
    client.get_audit_sheet.return_value = FakeWorksheet(AUDIT_COLUMNS)
    return client


class TestChangeFeed:
    """Tests for change subscriptions."""

    def _event(self, owner="user-1", topic=ChangeTopic.TRANSACTIONS):
        return ChangeEvent(owner_id=owner, topic=topic, action=ChangeAction.INSERT)

    def test_delivers_to_matching_subscribers_only(self):
        feed = ChangeFeed()
        received = []
        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, received.append)
        feed.subscribe("user-2", ChangeTopic.TRANSACTIONS, received.append)
        feed.subscribe("user-1", ChangeTopic.LOAN_ACCOUNTS, received.append)

        delivered = feed.publish(self._event())

        assert delivered == 1
        assert len(received) == 1
        assert received[0].owner_id == "user-1"

    def test_unsubscribe(self):
        feed = ChangeFeed()
        received = []
        subscription = feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, received.append)

        subscription.unsubscribe()
        subscription.unsubscribe()
        feed.publish(self._event())

        assert received == []
        assert not subscription.active
        assert feed.subscriber_count() == 0

    def test_failing_subscriber_does_not_stop_others(self):
        feed = ChangeFeed()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, broken)
        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, received.append)

        assert feed.publish(self._event()) == 1
        assert len(received) == 1

    def test_subscriber_count_per_owner(self):
        feed = ChangeFeed()
        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, lambda e: None)
        feed.subscribe("user-1", ChangeTopic.LOAN_ACCOUNTS, lambda e: None)
        feed.subscribe("user-2", ChangeTopic.TRANSACTIONS, lambda e: None)

        assert feed.subscriber_count("user-1") == 2
        assert feed.subscriber_count() == 3

    def test_subscription_dies_with_its_holder(self):
        class Holder:
            pass

        feed = ChangeFeed()
        received = []
        holder = Holder()
        subscription = feed.subscribe(
            "user-1", ChangeTopic.TRANSACTIONS, received.append, holder=holder
        )
        assert subscription.active

        del holder
        gc.collect()

        assert feed.publish(self._event()) == 0
        assert received == []
        assert not subscription.active
        assert feed.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_dropped_sessions_leave_no_subscriptions(self, identity, feed):
        async def open_session(email):
            context = SessionContext(identity, feed)
            await context.sign_up(email, "secret123")
            context.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)
            context.subscribe(ChangeTopic.LOAN_ACCOUNTS, lambda e: None)
            assert feed.subscriber_count(context.owner_id) == 2

        for email in ("a@example.com", "b@example.com", "c@example.com"):
            await open_session(email)
        gc.collect()

        assert feed.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_live_session_keeps_its_subscriptions(self, session, feed):
        session.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)
        gc.collect()
        assert feed.subscriber_count(session.owner_id) == 1


class TestInMemoryTransactionStorage:
    """Tests for the in-memory transaction backend."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, transaction_storage):
        txn = _txn()
        assert await transaction_storage.save_transaction(txn)
        assert await transaction_storage.get_transaction("user-1", txn.id) == txn

    @pytest.mark.asyncio
    async def test_other_owner_cannot_read(self, transaction_storage):
        txn = _txn()
        await transaction_storage.save_transaction(txn)

        assert await transaction_storage.get_transaction("user-2", txn.id) is None
        assert await transaction_storage.list_transactions("user-2") == []

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, transaction_storage):
        txn = _txn()
        await transaction_storage.save_transaction(txn)
        with pytest.raises(DuplicateError):
            await transaction_storage.save_transaction(txn)

    @pytest.mark.asyncio
    async def test_replace(self, transaction_storage):
        txn = _txn()
        await transaction_storage.save_transaction(txn)
        updated = txn.model_copy(update={"amount": Decimal("99.00")})

        await transaction_storage.replace_transaction(updated)

        stored = await transaction_storage.get_transaction("user-1", txn.id)
        assert stored.amount == Decimal("99.00")

    @pytest.mark.asyncio
    async def test_replace_missing_or_foreign(self, transaction_storage):
        txn = _txn()
        with pytest.raises(NotFoundError):
            await transaction_storage.replace_transaction(txn)

        await transaction_storage.save_transaction(txn)
        foreign = txn.model_copy(update={"owner_id": "user-2"})
        with pytest.raises(OwnershipError):
            await transaction_storage.replace_transaction(foreign)

    @pytest.mark.asyncio
    async def test_delete(self, transaction_storage):
        txn = _txn()
        await transaction_storage.save_transaction(txn)

        with pytest.raises(OwnershipError):
            await transaction_storage.delete_transaction("user-2", txn.id)
        assert await transaction_storage.delete_transaction("user-1", txn.id) is True
        assert await transaction_storage.delete_transaction("user-1", txn.id) is False

    @pytest.mark.asyncio
    async def test_list_filters_and_order(self, transaction_storage):
        await transaction_storage.save_transaction(_txn(on=date(2024, 1, 1)))
        await transaction_storage.save_transaction(_txn(on=date(2024, 2, 1), kind=TransactionKind.CREDIT))
        await transaction_storage.save_transaction(_txn(on=date(2024, 3, 1)))

        everything = await transaction_storage.list_transactions("user-1")
        assert [t.occurred_on.month for t in everything] == [3, 2, 1]

        debits = await transaction_storage.list_transactions("user-1", kind=TransactionKind.DEBIT)
        assert len(debits) == 2

        window = await transaction_storage.list_transactions(
            "user-1", date_from=date(2024, 1, 15), date_to=date(2024, 2, 15)
        )
        assert [t.occurred_on for t in window] == [date(2024, 2, 1)]

    @pytest.mark.asyncio
    async def test_writes_publish_change_events(self, transaction_storage, feed):
        events = []
        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, events.append)
        txn = _txn()

        await transaction_storage.save_transaction(txn)
        await transaction_storage.replace_transaction(txn)
        await transaction_storage.delete_transaction("user-1", txn.id)

        assert [e.action for e in events] == [
            ChangeAction.INSERT, ChangeAction.UPDATE, ChangeAction.DELETE,
        ]
        assert events[0].entity_id == str(txn.id)

    @pytest.mark.asyncio
    async def test_delete_all_for_owner(self, transaction_storage):
        await transaction_storage.save_transaction(_txn())
        await transaction_storage.save_transaction(_txn())
        await transaction_storage.save_transaction(_txn(owner="user-2"))

        assert await transaction_storage.delete_all_for_owner("user-1") == 2
        assert await transaction_storage.list_transactions("user-1") == []
        assert len(await transaction_storage.list_transactions("user-2")) == 1


class TestInMemoryLoanAccountStorage:
    """Tests for the in-memory sub-account backend."""

    @pytest.mark.asyncio
    async def test_returned_accounts_are_copies(self, loan_storage):
        account = _loan()
        await loan_storage.save_account(account)

        fetched = await loan_storage.get_account("user-1", account.id)
        fetched.record_paid(Decimal("100"))

        again = await loan_storage.get_account("user-1", account.id)
        assert again.amount_paid == Decimal("0")

    @pytest.mark.asyncio
    async def test_update_persists_adjustment(self, loan_storage):
        account = _loan()
        await loan_storage.save_account(account)

        fetched = await loan_storage.get_account("user-1", account.id)
        await loan_storage.update_account(fetched.record_received(Decimal("200")))

        stored = await loan_storage.get_account("user-1", account.id)
        assert stored.amount_received == Decimal("200")

    @pytest.mark.asyncio
    async def test_ownership(self, loan_storage):
        account = _loan()
        await loan_storage.save_account(account)

        assert await loan_storage.get_account("user-2", account.id) is None
        with pytest.raises(OwnershipError):
            await loan_storage.delete_account("user-2", account.id)
        with pytest.raises(NotFoundError):
            await loan_storage.update_account(_loan())

    @pytest.mark.asyncio
    async def test_list_newest_first(self, loan_storage):
        await loan_storage.save_account(_loan(opened_on=date(2024, 1, 1), counterparty_name="Old"))
        await loan_storage.save_account(_loan(opened_on=date(2024, 5, 1), counterparty_name="New"))

        names = [a.counterparty_name for a in await loan_storage.list_accounts("user-1")]
        assert names == ["New", "Old"]


class TestInMemoryUserStorage:
    """Tests for the in-memory identity store."""

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, user_storage):
        user = StoredUser(id="u1", email="Asha@Example.com", password_hash="h")
        await user_storage.create_user(user)

        assert (await user_storage.get_user_by_email(" ASHA@example.com ")).id == "u1"
        assert (await user_storage.get_user_by_id("u1")).email == "asha@example.com"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, user_storage):
        await user_storage.create_user(StoredUser(id="u1", email="a@b.co", password_hash="h"))
        with pytest.raises(DuplicateError):
            await user_storage.create_user(StoredUser(id="u2", email="A@B.co", password_hash="h"))


class TestGoogleSheetsTransactionStorage:
    """Tests for the Sheets backend against an in-memory worksheet."""

    @pytest.mark.asyncio
    async def test_row_round_trip(self, sheets_client, feed):
        storage = GoogleSheetsTransactionStorage(sheets_client, feed)
        txn = _txn(
            amount="1234.50",
            occurred_at=time(18, 45),
            description="Rent",
            payment_method="Bank",
        )

        await storage.save_transaction(txn)
        stored = await storage.get_transaction("user-1", txn.id)

        assert stored == txn

    @pytest.mark.asyncio
    async def test_missing_optional_cells(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        txn = _txn()
        await storage.save_transaction(txn)

        row = sheets_client.get_transactions_sheet.return_value.rows[1]
        assert row[5] == ""
        assert row[7] == ""
        stored = await storage.get_transaction("user-1", txn.id)
        assert stored.occurred_at is None
        assert stored.payment_method is None

    @pytest.mark.asyncio
    async def test_replace_and_delete(self, sheets_client, feed):
        events = []
        feed.subscribe("user-1", ChangeTopic.TRANSACTIONS, events.append)
        storage = GoogleSheetsTransactionStorage(sheets_client, feed)
        txn = _txn()
        await storage.save_transaction(txn)

        await storage.replace_transaction(txn.model_copy(update={"description": "edited"}))
        assert (await storage.get_transaction("user-1", txn.id)).description == "edited"

        assert await storage.delete_transaction("user-1", txn.id) is True
        assert await storage.list_transactions("user-1") == []
        assert [e.action for e in events] == [
            ChangeAction.INSERT, ChangeAction.UPDATE, ChangeAction.DELETE,
        ]

    @pytest.mark.asyncio
    async def test_owner_scoping(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        txn = _txn()
        await storage.save_transaction(txn)
        await storage.save_transaction(_txn(owner="user-2"))

        assert len(await storage.list_transactions("user-1")) == 1
        assert await storage.get_transaction("user-2", txn.id) is None
        with pytest.raises(OwnershipError):
            await storage.delete_transaction("user-2", txn.id)

    @pytest.mark.asyncio
    async def test_duplicate_fails_fast(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        txn = _txn()
        await storage.save_transaction(txn)
        with pytest.raises(DuplicateError):
            await storage.save_transaction(txn)

    @pytest.mark.asyncio
    async def test_malformed_rows_are_skipped(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        await storage.save_transaction(_txn())
        sheets_client.get_transactions_sheet.return_value.rows.append(
            [str(uuid4()), "user-1", "not-a-number", "debit", "2024-01-01", "", "", "", ""]
        )

        assert len(await storage.list_transactions("user-1")) == 1

    @pytest.mark.asyncio
    async def test_delete_all_for_owner(self, sheets_client):
        storage = GoogleSheetsTransactionStorage(sheets_client)
        for _ in range(3):
            await storage.save_transaction(_txn())
        await storage.save_transaction(_txn(owner="user-2"))

        assert await storage.delete_all_for_owner("user-1") == 3
        assert await storage.list_transactions("user-1") == []
        assert len(await storage.list_transactions("user-2")) == 1


class TestGoogleSheetsOtherStorage:
    """Sub-accounts, users and audit events on the Sheets backend."""

    @pytest.mark.asyncio
    async def test_loan_account_round_trip_and_update(self, sheets_client):
        storage = GoogleSheetsLoanAccountStorage(sheets_client)
        account = _loan(description="Car loan")
        await storage.save_account(account)

        fetched = await storage.get_account("user-1", account.id)
        assert fetched == account

        await storage.update_account(fetched.record_paid(Decimal("250.50")))
        stored = await storage.get_account("user-1", account.id)
        assert stored.amount_paid == Decimal("250.50")

    @pytest.mark.asyncio
    async def test_users(self, sheets_client):
        storage = GoogleSheetsUserStorage(sheets_client)
        await storage.create_user(StoredUser(id="u1", email="a@b.co", password_hash="hash"))

        assert (await storage.get_user_by_email("A@B.CO")).password_hash == "hash"
        with pytest.raises(DuplicateError):
            await storage.create_user(StoredUser(id="u2", email="a@b.co", password_hash="x"))
        assert await storage.delete_user("u1") is True
        assert await storage.get_user_by_id("u1") is None

    @pytest.mark.asyncio
    async def test_audit_events(self, sheets_client):
        storage = GoogleSheetsAuditStorage(sheets_client)
        correlation_id = uuid4()
        txn_id = uuid4()
        await storage.append_event(AuditEventBuilder.transaction_saved(
            owner_id="u1",
            transaction_id=txn_id,
            kind="debit",
            amount="10.00",
            correlation_id=correlation_id,
        ))
        await storage.append_event(AuditEventBuilder.user_logged_in("u2"))

        by_correlation = await storage.get_events_by_correlation_id(correlation_id)
        assert len(by_correlation) == 1
        assert by_correlation[0].details == {"kind": "debit", "amount": "10.00"}
        assert len(await storage.get_events_by_entity("transaction", str(txn_id))) == 1
        assert len(await storage.get_recent_events(owner_id="u2")) == 1
        assert len(await storage.get_recent_events()) == 2

    @pytest.mark.asyncio
    async def test_audit_write_failure_is_swallowed(self, sheets_client):
        sheets_client.get_audit_sheet.side_effect = RuntimeError("quota exceeded")
        storage = GoogleSheetsAuditStorage(sheets_client)

        assert await storage.append_event(AuditEventBuilder.user_logged_in("u1")) is False
