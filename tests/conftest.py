"""Shared fixtures."""

import pytest
import pytest_asyncio

from pocket_ledger.audit import AuditLogger
from pocket_ledger.auth import IdentityService, SessionContext
from pocket_ledger.config import AppSettings, AuthSettings
from pocket_ledger.services.storage import (
    ChangeFeed,
    InMemoryAuditStorage,
    InMemoryLoanAccountStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
)


@pytest.fixture
def auth_settings():
    return AuthSettings(jwt_secret="test-secret-0123456789abcdef-0123456789")


@pytest.fixture
def app_settings():
    return AppSettings(storage_backend="memory", display_timezone="Asia/Kolkata")


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def user_storage():
    return InMemoryUserStorage()


@pytest.fixture
def transaction_storage(feed):
    return InMemoryTransactionStorage(feed)


@pytest.fixture
def loan_storage(feed):
    return InMemoryLoanAccountStorage(feed)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def identity(user_storage, transaction_storage, loan_storage, audit_logger, auth_settings):
    return IdentityService(
        user_storage,
        transactions=transaction_storage,
        loan_accounts=loan_storage,
        audit_logger=audit_logger,
        settings=auth_settings,
    )


@pytest_asyncio.fixture
async def session(identity, feed):
    """A session with asha@example.com signed in."""
    context = SessionContext(identity, feed)
    await context.sign_up("asha@example.com", "secret123")
    return context
