"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the default backend; the in-memory backend serves tests
and demo mode. Both publish to a ChangeFeed after every write.
"""

from pocket_ledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LoanAccountStorageInterface,
    NotFoundError,
    OwnershipError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)
from pocket_ledger.services.storage.changes import (
    ChangeAction,
    ChangeEvent,
    ChangeFeed,
    ChangeTopic,
    Subscription,
)
from pocket_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLoanAccountStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
)
from pocket_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLoanAccountStorage,
    GoogleSheetsTransactionStorage,
    GoogleSheetsUserStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LoanAccountStorageInterface",
    "TransactionStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "OwnershipError",
    "StorageError",
    # Change notification
    "ChangeAction",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeTopic",
    "Subscription",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLoanAccountStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLoanAccountStorage",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsUserStorage",
]
