"""
Identity Service

Sign-up, log-in and token resolution against the user store.

DESIGN DECISION: Failed log-ins never say which half was wrong.
"Invalid email or password" for an unknown email and a bad password alike.
"""

from typing import Optional
from uuid import uuid4

from pydantic import ValidationError

from pocket_ledger.audit import AuditLogger
from pocket_ledger.auth.errors import (
    InvalidCredentialsError,
    InvalidTokenError,
    UserExistsError,
)
from pocket_ledger.auth.passwords import hash_password, verify_password
from pocket_ledger.auth.tokens import TokenIssuer
from pocket_ledger.config import AuthSettings, get_settings
from pocket_ledger.models.user import AuthResult, StoredUser, User
from pocket_ledger.services.storage import (
    DuplicateError,
    LoanAccountStorageInterface,
    TransactionStorageInterface,
    UserStorageInterface,
)


class IdentityService:
    """Accounts and bearer tokens."""

    def __init__(
        self,
        users: UserStorageInterface,
        transactions: Optional[TransactionStorageInterface] = None,
        loan_accounts: Optional[LoanAccountStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AuthSettings] = None,
    ):
        self._settings = settings or get_settings().auth
        self._users = users
        self._transactions = transactions
        self._loan_accounts = loan_accounts
        self._audit = audit_logger or AuditLogger()
        self._tokens = TokenIssuer(self._settings)

    async def sign_up(self, email: str, password: str) -> AuthResult:
        """
        Create an account and return it with a fresh token.

        Raises:
            InvalidCredentialsError: Email malformed, password too short or too long
            UserExistsError: Email already registered
        """
        if not password or len(password) < self._settings.min_password_length:
            raise InvalidCredentialsError(
                f"Password must be at least {self._settings.min_password_length} characters"
            )
        if len(password.encode("utf-8")) > self._settings.max_password_bytes:
            raise InvalidCredentialsError(
                f"Password must be at most {self._settings.max_password_bytes} bytes"
            )
        try:
            user = StoredUser(
                id=str(uuid4()),
                email=email or "",
                password_hash=hash_password(password),
            )
        except ValidationError:
            raise InvalidCredentialsError("Email address is not valid")

        try:
            await self._users.create_user(user)
        except DuplicateError:
            raise UserExistsError("User already exists")

        await self._audit.log_user_signed_up(user.id, user.email)
        public = user.public()
        return AuthResult(user=public, token=self._tokens.issue(public))

    async def log_in(self, email: str, password: str) -> AuthResult:
        """
        Check credentials and return the user with a fresh token.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
        """
        stored = await self._users.get_user_by_email(email or "")
        if stored is None:
            await self._audit.log_login_failed(email or "", "unknown_email")
            raise InvalidCredentialsError("Invalid email or password")
        if not verify_password(password or "", stored.password_hash):
            await self._audit.log_login_failed(stored.email, "wrong_password")
            raise InvalidCredentialsError("Invalid email or password")

        await self._audit.log_user_logged_in(stored.id)
        public = stored.public()
        return AuthResult(user=public, token=self._tokens.issue(public))

    async def current_user(self, token: str) -> User:
        """
        Resolve a bearer token to its user.

        Raises:
            InvalidTokenError: Bad or expired token, or the user is gone
        """
        claims = self._tokens.verify(token)
        stored = await self._users.get_user_by_id(claims["sub"])
        if stored is None:
            raise InvalidTokenError("User no longer exists")
        return stored.public()

    async def log_out(self, user_id: str) -> None:
        # Tokens are stateless; logging out only drops the session
        await self._audit.log_user_logged_out(user_id)

    async def delete_account(self, user_id: str) -> bool:
        """Delete a user together with all of their transactions and sub-accounts."""
        if self._transactions:
            await self._transactions.delete_all_for_owner(user_id)
        if self._loan_accounts:
            await self._loan_accounts.delete_all_for_owner(user_id)
        deleted = await self._users.delete_user(user_id)
        if deleted:
            await self._audit.log_account_deleted(user_id)
        return deleted
