"""
Session Context

Explicit per-session state: who is signed in, with which token, and
which change subscriptions are live. The UI creates one at start-up,
refreshes it when the token changes and tears it down on logout.
Services read the owner from here instead of from any global.
"""

from typing import Optional

from pocket_ledger.auth.errors import InvalidTokenError, NotAuthenticatedError
from pocket_ledger.auth.service import IdentityService
from pocket_ledger.models.user import User
from pocket_ledger.services.storage import (
    ChangeFeed,
    ChangeTopic,
    Subscription,
)
from pocket_ledger.services.storage.changes import ChangeCallback


class SessionContext:
    """Signed-in user, token and live subscriptions for one UI session."""

    def __init__(self, identity: IdentityService, feed: Optional[ChangeFeed] = None):
        self._identity = identity
        self._feed = feed
        self.user: Optional[User] = None
        self.token: Optional[str] = None
        self._subscriptions: list[Subscription] = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def owner_id(self) -> str:
        return self.require_user().id

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions)

    def require_user(self) -> User:
        if self.user is None:
            raise NotAuthenticatedError("Sign in to continue")
        return self.user

    async def initialize(self, token: Optional[str] = None) -> Optional[User]:
        """
        Restore a session from a stored token, if any.

        An invalid or expired token leaves the session signed out.
        """
        if not token:
            self._clear()
            return None
        try:
            self.user = await self._identity.current_user(token)
            self.token = token
        except InvalidTokenError:
            self._clear()
        return self.user

    async def refresh(self, token: Optional[str]) -> Optional[User]:
        """Re-resolve the session when the token changes."""
        if token == self.token and self.user is not None:
            return self.user
        self._cancel_subscriptions()
        return await self.initialize(token)

    async def sign_up(self, email: str, password: str) -> User:
        result = await self._identity.sign_up(email, password)
        self._adopt(result.user, result.token)
        return result.user

    async def log_in(self, email: str, password: str) -> User:
        result = await self._identity.log_in(email, password)
        self._adopt(result.user, result.token)
        return result.user

    async def log_out(self) -> None:
        """Tear the session down: cancel subscriptions and forget the user."""
        if self.user is not None:
            await self._identity.log_out(self.user.id)
        self._clear()

    async def delete_account(self) -> bool:
        user = self.require_user()
        deleted = await self._identity.delete_account(user.id)
        self._clear()
        return deleted

    def subscribe(self, topic: ChangeTopic, callback: ChangeCallback) -> Optional[Subscription]:
        """
        Subscribe the signed-in owner to change events.

        The subscription is tied to this context: if the context is
        dropped without logging out, the feed forgets it. The callback
        must not hold a reference back to the context.

        Returns None when no change feed is configured.
        """
        owner_id = self.owner_id
        if self._feed is None:
            return None
        subscription = self._feed.subscribe(owner_id, topic, callback, holder=self)
        self._subscriptions.append(subscription)
        return subscription

    def _adopt(self, user: User, token: str) -> None:
        if self.user is not None and self.user.id != user.id:
            self._cancel_subscriptions()
        self.user = user
        self.token = token

    def _cancel_subscriptions(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def _clear(self) -> None:
        self._cancel_subscriptions()
        self.user = None
        self.token = None
