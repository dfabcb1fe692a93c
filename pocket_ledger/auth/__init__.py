"""Authentication package: passwords, bearer tokens, identity and sessions."""

from pocket_ledger.auth.errors import (
    AuthenticationError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    UserExistsError,
)
from pocket_ledger.auth.passwords import hash_password, verify_password
from pocket_ledger.auth.service import IdentityService
from pocket_ledger.auth.session import SessionContext
from pocket_ledger.auth.tokens import TokenIssuer

__all__ = [
    "AuthenticationError",
    "IdentityService",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NotAuthenticatedError",
    "SessionContext",
    "TokenIssuer",
    "UserExistsError",
    "hash_password",
    "verify_password",
]
