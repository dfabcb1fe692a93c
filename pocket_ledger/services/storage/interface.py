"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing and demo mode
3. Keep business logic decoupled from storage implementation

Every read and write is scoped to one owner. A backend never returns
another owner's rows, and refuses to modify them.

The interface is intentionally simple - we're not building a full ORM.
Just the operations the ledger needs.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from pocket_ledger.models.audit import AuditEvent
from pocket_ledger.models.loan import LoanAccount
from pocket_ledger.models.transaction import Transaction, TransactionKind
from pocket_ledger.models.user import StoredUser


class TransactionStorageInterface(ABC):
    """
    Abstract interface for transaction storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Insert a new transaction.

        Returns:
            True if saved successfully

        Raises:
            DuplicateError: If a transaction with the same id exists
            StorageError: If save fails
        """

    @abstractmethod
    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        """Return the owner's transaction, or None if it doesn't exist."""

    @abstractmethod
    async def replace_transaction(self, transaction: Transaction) -> bool:
        """
        Replace an existing transaction (same id) with a new version.

        Raises:
            NotFoundError: If the transaction doesn't exist
            OwnershipError: If it belongs to another owner
        """

    @abstractmethod
    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> bool:
        """
        Delete a transaction.

        Returns:
            True if deleted, False if it didn't exist

        Raises:
            OwnershipError: If it belongs to another owner
        """

    @abstractmethod
    async def list_transactions(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        """
        List the owner's transactions, newest date first.

        Args:
            owner_id: Whose transactions
            date_from: Only transactions on or after this date
            date_to: Only transactions on or before this date
            kind: Only credits or only debits
        """

    @abstractmethod
    async def delete_all_for_owner(self, owner_id: str) -> int:
        """Delete every transaction of an owner. Returns how many were removed."""


class LoanAccountStorageInterface(ABC):
    """Abstract interface for loan and credit card sub-account storage."""

    @abstractmethod
    async def save_account(self, account: LoanAccount) -> bool:
        """Insert a new sub-account."""

    @abstractmethod
    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[LoanAccount]:
        """Return the owner's sub-account, or None."""

    @abstractmethod
    async def update_account(self, account: LoanAccount) -> bool:
        """
        Persist the received/paid totals of an existing sub-account.

        Raises:
            NotFoundError: If the account doesn't exist
            OwnershipError: If it belongs to another owner
        """

    @abstractmethod
    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        """Delete a sub-account. Returns False if it didn't exist."""

    @abstractmethod
    async def list_accounts(self, owner_id: str) -> list[LoanAccount]:
        """List the owner's sub-accounts, newest first."""

    @abstractmethod
    async def delete_all_for_owner(self, owner_id: str) -> int:
        """Delete every sub-account of an owner."""


class UserStorageInterface(ABC):
    """Abstract interface for the identity store."""

    @abstractmethod
    async def create_user(self, user: StoredUser) -> bool:
        """
        Insert a new user.

        Raises:
            DuplicateError: If the email is already registered
        """

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[StoredUser]:
        """Look a user up by (lower-cased) email."""

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[StoredUser]:
        """Look a user up by id."""

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """Delete a user. Returns False if it didn't exist."""


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event. Returns True if logged successfully."""

    @abstractmethod
    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """Events sharing a correlation id, oldest first."""

    @abstractmethod
    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        """Events about one entity, oldest first."""

    @abstractmethod
    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events (newest first), optionally for one owner."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class OwnershipError(StorageError):
    """Attempted to modify an entity that belongs to another owner."""
    pass
