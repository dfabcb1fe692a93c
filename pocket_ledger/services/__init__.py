"""Services package."""

from pocket_ledger.services.storage import (
    AuditStorageInterface,
    ChangeFeed,
    ConnectionError,
    DuplicateError,
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
    OwnershipError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "ChangeFeed",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLoanAccountStorage",
    "GoogleSheetsTransactionStorage",
    "GoogleSheetsUserStorage",
    "InMemoryAuditStorage",
    "InMemoryLoanAccountStorage",
    "InMemoryTransactionStorage",
    "InMemoryUserStorage",
    "LoanAccountStorageInterface",
    "NotFoundError",
    "OwnershipError",
    "StorageError",
    "TransactionStorageInterface",
    "UserStorageInterface",
]
