"""
Bearer Tokens

HS256-signed JWTs carrying the user id and email. Tokens expire after
AuthSettings.token_lifetime_days (7 by default).
"""

from datetime import timedelta
from typing import Optional

import jwt

from pocket_ledger.auth.errors import InvalidTokenError
from pocket_ledger.config import AuthSettings, get_settings
from pocket_ledger.models.transaction import utc_now
from pocket_ledger.models.user import User


class TokenIssuer:
    """Issues and verifies bearer tokens."""

    def __init__(self, settings: Optional[AuthSettings] = None):
        self._settings = settings or get_settings().auth

    def issue(self, user: User) -> str:
        now = utc_now()
        payload = {
            "sub": user.id,
            "email": user.email,
            "iat": now,
            "exp": now + timedelta(days=self._settings.token_lifetime_days),
        }
        return jwt.encode(
            payload,
            self._settings.jwt_secret,
            algorithm=self._settings.jwt_algorithm,
        )

    def verify(self, token: str) -> dict:
        """
        Decode a token and return its claims.

        Raises:
            InvalidTokenError: If the token is missing, tampered with or expired
        """
        if not token:
            raise InvalidTokenError("No token provided")
        try:
            claims = jwt.decode(
                token,
                self._settings.jwt_secret,
                algorithms=[self._settings.jwt_algorithm],
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError:
            raise InvalidTokenError("Token has expired")
        except jwt.PyJWTError as e:
            raise InvalidTokenError(f"Invalid token: {e}")
        return claims
