"""
In-Memory Storage Implementation

Keeps everything in dictionaries for the lifetime of the process.
Used by the test suite and by the app's demo mode when Google Sheets
isn't configured. Behaves like the Sheets backend: owner-scoped reads,
ownership checks on writes, change events after every write.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.loan import LoanAccount
from pocket_ledger.models.transaction import Transaction, TransactionKind
from pocket_ledger.models.user import StoredUser
from pocket_ledger.services.storage.changes import (
    ChangeAction,
    ChangeEvent,
    ChangeFeed,
    ChangeTopic,
)
from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LoanAccountStorageInterface,
    NotFoundError,
    OwnershipError,
    TransactionStorageInterface,
    UserStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions keyed by id."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self._rows: dict[UUID, Transaction] = {}
        self._feed = feed

    def _notify(self, owner_id: str, action: ChangeAction, entity_id: UUID) -> None:
        if self._feed:
            self._feed.publish(ChangeEvent(
                owner_id=owner_id,
                topic=ChangeTopic.TRANSACTIONS,
                action=action,
                entity_id=str(entity_id),
            ))

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._rows:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._rows[transaction.id] = transaction
        self._notify(transaction.owner_id, ChangeAction.INSERT, transaction.id)
        return True

    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        txn = self._rows.get(transaction_id)
        if txn is None or txn.owner_id != owner_id:
            return None
        return txn

    async def replace_transaction(self, transaction: Transaction) -> bool:
        existing = self._rows.get(transaction.id)
        if existing is None:
            raise NotFoundError(f"Transaction not found: {transaction.id}")
        if existing.owner_id != transaction.owner_id:
            raise OwnershipError(f"Transaction {transaction.id} belongs to another owner")
        self._rows[transaction.id] = transaction
        self._notify(transaction.owner_id, ChangeAction.UPDATE, transaction.id)
        return True

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> bool:
        existing = self._rows.get(transaction_id)
        if existing is None:
            return False
        if existing.owner_id != owner_id:
            raise OwnershipError(f"Transaction {transaction_id} belongs to another owner")
        del self._rows[transaction_id]
        self._notify(owner_id, ChangeAction.DELETE, transaction_id)
        return True

    async def list_transactions(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        results = []
        for txn in self._rows.values():
            if txn.owner_id != owner_id:
                continue
            if date_from and txn.occurred_on < date_from:
                continue
            if date_to and txn.occurred_on > date_to:
                continue
            if kind and txn.kind != kind:
                continue
            results.append(txn)

        results.sort(key=lambda t: t.occurred_on, reverse=True)
        return results

    async def delete_all_for_owner(self, owner_id: str) -> int:
        doomed = [tid for tid, txn in self._rows.items() if txn.owner_id == owner_id]
        for tid in doomed:
            del self._rows[tid]
        if doomed:
            self._notify(owner_id, ChangeAction.DELETE, doomed[0])
        return len(doomed)


class InMemoryLoanAccountStorage(LoanAccountStorageInterface):
    """Sub-accounts keyed by id."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self._rows: dict[UUID, LoanAccount] = {}
        self._feed = feed

    def _notify(self, owner_id: str, action: ChangeAction, entity_id: UUID) -> None:
        if self._feed:
            self._feed.publish(ChangeEvent(
                owner_id=owner_id,
                topic=ChangeTopic.LOAN_ACCOUNTS,
                action=action,
                entity_id=str(entity_id),
            ))

    async def save_account(self, account: LoanAccount) -> bool:
        if account.id in self._rows:
            raise DuplicateError(f"Loan account already exists: {account.id}")
        self._rows[account.id] = account.model_copy(deep=True)
        self._notify(account.owner_id, ChangeAction.INSERT, account.id)
        return True

    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[LoanAccount]:
        account = self._rows.get(account_id)
        if account is None or account.owner_id != owner_id:
            return None
        # Callers mutate what they get back; hand out a copy
        return account.model_copy(deep=True)

    async def update_account(self, account: LoanAccount) -> bool:
        existing = self._rows.get(account.id)
        if existing is None:
            raise NotFoundError(f"Loan account not found: {account.id}")
        if existing.owner_id != account.owner_id:
            raise OwnershipError(f"Loan account {account.id} belongs to another owner")
        self._rows[account.id] = account.model_copy(deep=True)
        self._notify(account.owner_id, ChangeAction.UPDATE, account.id)
        return True

    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        existing = self._rows.get(account_id)
        if existing is None:
            return False
        if existing.owner_id != owner_id:
            raise OwnershipError(f"Loan account {account_id} belongs to another owner")
        del self._rows[account_id]
        self._notify(owner_id, ChangeAction.DELETE, account_id)
        return True

    async def list_accounts(self, owner_id: str) -> list[LoanAccount]:
        accounts = [
            a.model_copy(deep=True)
            for a in self._rows.values()
            if a.owner_id == owner_id
        ]
        accounts.sort(key=lambda a: a.opened_on, reverse=True)
        return accounts

    async def delete_all_for_owner(self, owner_id: str) -> int:
        doomed = [aid for aid, a in self._rows.items() if a.owner_id == owner_id]
        for aid in doomed:
            del self._rows[aid]
        if doomed:
            self._notify(owner_id, ChangeAction.DELETE, doomed[0])
        return len(doomed)


class InMemoryUserStorage(UserStorageInterface):
    """Users keyed by id, with an email index."""

    def __init__(self):
        self._rows: dict[str, StoredUser] = {}

    async def create_user(self, user: StoredUser) -> bool:
        if await self.get_user_by_email(user.email):
            raise DuplicateError(f"User already exists: {user.email}")
        self._rows[user.id] = user
        return True

    async def get_user_by_email(self, email: str) -> Optional[StoredUser]:
        wanted = email.strip().lower()
        for user in self._rows.values():
            if user.email == wanted:
                return user
        return None

    async def get_user_by_id(self, user_id: str) -> Optional[StoredUser]:
        return self._rows.get(user_id)

    async def delete_user(self, user_id: str) -> bool:
        return self._rows.pop(user_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if owner_id is None or e.owner_id == owner_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
