"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the default storage backend because:
1. Users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions; concurrent edits are last-write-wins
- Limited query capabilities (we filter in Python)
- No server push; change events are published locally after our own writes

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing business logic.
"""

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pocket_ledger.config import GoogleSheetsSettings, get_settings
from pocket_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from pocket_ledger.models.loan import LoanAccount, LoanAccountType
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
    ConnectionError,
    DuplicateError,
    LoanAccountStorageInterface,
    NotFoundError,
    OwnershipError,
    StorageError,
    TransactionStorageInterface,
    UserStorageInterface,
)


USER_COLUMNS = [
    "id",
    "email",
    "password_hash",
    "created_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "amount",
    "kind",
    "occurred_on",
    "occurred_at",
    "description",
    "payment_method",
    "created_at",
]

LOAN_ACCOUNT_COLUMNS = [
    "id",
    "owner_id",
    "account_type",
    "counterparty_name",
    "initial_amount",
    "amount_received",
    "amount_paid",
    "description",
    "opened_on",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((DuplicateError, NotFoundError, OwnershipError)),
    reraise=True,
)


def _cell(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows and blanks."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @sheets_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(title=title, rows=rows, cols=len(columns))
            sheet.append_row(columns)
        return sheet

    def get_users_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(self._settings.users_sheet_name, USER_COLUMNS, 100)

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 2000
        )

    def get_loan_accounts_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.loan_accounts_sheet_name, LOAN_ACCOUNT_COLUMNS, 200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


def _find_row(all_rows: list[list], entity_id: str) -> Optional[tuple[int, list]]:
    """1-based sheet row index and contents of the row with this id."""
    for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is the header
        if row and row[0] == entity_id:
            return idx, row
    return None


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    One transaction per row. Amounts are written as plain strings with
    RAW input so Sheets never reformats them.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._feed = feed
        self._logger = structlog.get_logger(__name__)

    def _transaction_to_row(self, txn: Transaction) -> list:
        return [
            str(txn.id),
            txn.owner_id,
            str(txn.amount),
            txn.kind.value,
            txn.occurred_on.isoformat(),
            txn.occurred_at.strftime("%H:%M") if txn.occurred_at else "",
            txn.description or "",
            txn.payment_method or "",
            txn.created_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        occurred_at = _cell(row, 5)
        return Transaction(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            kind=TransactionKind(_cell(row, 3)),
            occurred_on=date.fromisoformat(_cell(row, 4)),
            occurred_at=time.fromisoformat(occurred_at) if occurred_at else None,
            description=_cell(row, 6) or None,
            payment_method=_cell(row, 7) or None,
            created_at=datetime.fromisoformat(_cell(row, 8)),
        )

    def _notify(self, owner_id: str, action: ChangeAction, entity_id: UUID) -> None:
        if self._feed:
            self._feed.publish(ChangeEvent(
                owner_id=owner_id,
                topic=ChangeTopic.TRANSACTIONS,
                action=action,
                entity_id=str(entity_id),
            ))

    @sheets_retry
    async def save_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            if _find_row(sheet.get_all_values(), str(transaction.id)):
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(self._transaction_to_row(transaction), value_input_option="RAW")
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

        self._notify(transaction.owner_id, ChangeAction.INSERT, transaction.id)
        return True

    async def get_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            found = _find_row(sheet.get_all_values(), str(transaction_id))
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

        if found is None or _cell(found[1], 1) != owner_id:
            return None
        return self._row_to_transaction(found[1])

    async def replace_transaction(self, transaction: Transaction) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            found = _find_row(sheet.get_all_values(), str(transaction.id))
            if found is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            idx, row = found
            if _cell(row, 1) != transaction.owner_id:
                raise OwnershipError(f"Transaction {transaction.id} belongs to another owner")
            sheet.update(
                range_name=f"A{idx}",
                values=[self._transaction_to_row(transaction)],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

        self._notify(transaction.owner_id, ChangeAction.UPDATE, transaction.id)
        return True

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            found = _find_row(sheet.get_all_values(), str(transaction_id))
            if found is None:
                return False
            idx, row = found
            if _cell(row, 1) != owner_id:
                raise OwnershipError(f"Transaction {transaction_id} belongs to another owner")
            sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

        self._notify(owner_id, ChangeAction.DELETE, transaction_id)
        return True

    async def list_transactions(
        self,
        owner_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        kind: Optional[TransactionKind] = None,
    ) -> list[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != owner_id:
                continue
            try:
                txn = self._row_to_transaction(row)
            except Exception as e:
                # A hand-edited row shouldn't take the whole ledger down
                self._logger.warning("skipped_malformed_row", row_id=row[0], error=str(e))
                continue

            if date_from and txn.occurred_on < date_from:
                continue
            if date_to and txn.occurred_on > date_to:
                continue
            if kind and txn.kind != kind:
                continue
            transactions.append(txn)

        # Newest first
        transactions.sort(key=lambda t: t.occurred_on, reverse=True)
        return transactions

    async def delete_all_for_owner(self, owner_id: str) -> int:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            indexes = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if row and _cell(row, 1) == owner_id
            ]
            # Bottom-up so earlier indexes stay valid
            for idx in reversed(indexes):
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete transactions: {e}")
        return len(indexes)


class GoogleSheetsLoanAccountStorage(LoanAccountStorageInterface):
    """Google Sheets implementation of sub-account storage."""

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        feed: Optional[ChangeFeed] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._feed = feed
        self._logger = structlog.get_logger(__name__)

    def _account_to_row(self, account: LoanAccount) -> list:
        return [
            str(account.id),
            account.owner_id,
            account.account_type.value,
            account.counterparty_name,
            str(account.initial_amount),
            str(account.amount_received),
            str(account.amount_paid),
            account.description or "",
            account.opened_on.isoformat(),
            account.created_at.isoformat(),
            account.updated_at.isoformat(),
        ]

    def _row_to_account(self, row: list) -> LoanAccount:
        return LoanAccount(
            id=UUID(_cell(row, 0)),
            owner_id=_cell(row, 1),
            account_type=LoanAccountType(_cell(row, 2)),
            counterparty_name=_cell(row, 3),
            initial_amount=Decimal(_cell(row, 4, "0")),
            amount_received=Decimal(_cell(row, 5, "0")),
            amount_paid=Decimal(_cell(row, 6, "0")),
            description=_cell(row, 7) or None,
            opened_on=date.fromisoformat(_cell(row, 8)),
            created_at=datetime.fromisoformat(_cell(row, 9)),
            updated_at=datetime.fromisoformat(_cell(row, 10)),
        )

    def _notify(self, owner_id: str, action: ChangeAction, entity_id: UUID) -> None:
        if self._feed:
            self._feed.publish(ChangeEvent(
                owner_id=owner_id,
                topic=ChangeTopic.LOAN_ACCOUNTS,
                action=action,
                entity_id=str(entity_id),
            ))

    @sheets_retry
    async def save_account(self, account: LoanAccount) -> bool:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            sheet.append_row(self._account_to_row(account), value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to save loan account: {e}")

        self._notify(account.owner_id, ChangeAction.INSERT, account.id)
        return True

    async def get_account(self, owner_id: str, account_id: UUID) -> Optional[LoanAccount]:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            found = _find_row(sheet.get_all_values(), str(account_id))
        except Exception as e:
            raise StorageError(f"Failed to get loan account: {e}")

        if found is None or _cell(found[1], 1) != owner_id:
            return None
        return self._row_to_account(found[1])

    async def update_account(self, account: LoanAccount) -> bool:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            found = _find_row(sheet.get_all_values(), str(account.id))
            if found is None:
                raise NotFoundError(f"Loan account not found: {account.id}")
            idx, row = found
            if _cell(row, 1) != account.owner_id:
                raise OwnershipError(f"Loan account {account.id} belongs to another owner")
            sheet.update(
                range_name=f"A{idx}",
                values=[self._account_to_row(account)],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update loan account: {e}")

        self._notify(account.owner_id, ChangeAction.UPDATE, account.id)
        return True

    async def delete_account(self, owner_id: str, account_id: UUID) -> bool:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            found = _find_row(sheet.get_all_values(), str(account_id))
            if found is None:
                return False
            idx, row = found
            if _cell(row, 1) != owner_id:
                raise OwnershipError(f"Loan account {account_id} belongs to another owner")
            sheet.delete_rows(idx)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete loan account: {e}")

        self._notify(owner_id, ChangeAction.DELETE, account_id)
        return True

    async def list_accounts(self, owner_id: str) -> list[LoanAccount]:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list loan accounts: {e}")

        accounts = []
        for row in all_rows:
            if not row or not row[0] or _cell(row, 1) != owner_id:
                continue
            try:
                accounts.append(self._row_to_account(row))
            except Exception as e:
                self._logger.warning("skipped_malformed_row", row_id=row[0], error=str(e))

        accounts.sort(key=lambda a: a.opened_on, reverse=True)
        return accounts

    async def delete_all_for_owner(self, owner_id: str) -> int:
        try:
            sheet = self._client.get_loan_accounts_sheet()
            all_rows = sheet.get_all_values()
            indexes = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if row and _cell(row, 1) == owner_id
            ]
            for idx in reversed(indexes):
                sheet.delete_rows(idx)
        except Exception as e:
            raise StorageError(f"Failed to delete loan accounts: {e}")
        return len(indexes)


class GoogleSheetsUserStorage(UserStorageInterface):
    """Google Sheets implementation of the identity store."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_user(self, row: list) -> StoredUser:
        return StoredUser(
            id=_cell(row, 0),
            email=_cell(row, 1),
            password_hash=_cell(row, 2),
            created_at=datetime.fromisoformat(_cell(row, 3)),
        )

    def _all_rows(self) -> list[list]:
        try:
            return self._client.get_users_sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")

    @sheets_retry
    async def create_user(self, user: StoredUser) -> bool:
        if await self.get_user_by_email(user.email):
            raise DuplicateError(f"User already exists: {user.email}")
        try:
            self._client.get_users_sheet().append_row(
                [user.id, user.email, user.password_hash, user.created_at.isoformat()],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to create user: {e}")
        return True

    async def get_user_by_email(self, email: str) -> Optional[StoredUser]:
        wanted = email.strip().lower()
        for row in self._all_rows()[1:]:
            if row and _cell(row, 1).lower() == wanted:
                return self._row_to_user(row)
        return None

    async def get_user_by_id(self, user_id: str) -> Optional[StoredUser]:
        found = _find_row(self._all_rows(), user_id)
        return self._row_to_user(found[1]) if found else None

    async def delete_user(self, user_id: str) -> bool:
        found = _find_row(self._all_rows(), user_id)
        if found is None:
            return False
        try:
            self._client.get_users_sheet().delete_rows(found[0])
        except Exception as e:
            raise StorageError(f"Failed to delete user: {e}")
        return True


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._logger = structlog.get_logger(__name__)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            owner_id=_cell(row, 4) or None,
            entity_type=_cell(row, 5) or None,
            entity_id=_cell(row, 6) or None,
            correlation_id=UUID(_cell(row, 7)) if _cell(row, 7) else None,
            description=_cell(row, 8),
            details=json.loads(_cell(row, 9)) if _cell(row, 9) else {},
            error_message=_cell(row, 10) or None,
            is_user_action=_cell(row, 11).lower() == "true",
        )

    def _load_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception as e:
                self._logger.warning("skipped_malformed_audit_row", row_id=row[0], error=str(e))
        return events

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Don't raise - audit logging should not break the main flow
            self._logger.error("audit_write_failed", error=str(e), event_id=str(event.event_id))
            return False

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._load_events() if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: str) -> list[AuditEvent]:
        events = [
            e for e in self._load_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._load_events()
            if owner_id is None or e.owner_id == owner_id
        ]
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
