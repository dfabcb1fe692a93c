"""Tests for passwords, tokens, identity and session handling."""

import pytest
from datetime import timedelta

import jwt

from pocket_ledger.auth import (
    InvalidCredentialsError,
    InvalidTokenError,
    NotAuthenticatedError,
    SessionContext,
    TokenIssuer,
    UserExistsError,
    hash_password,
    verify_password,
)
from pocket_ledger.models import AuditEventType, User, utc_now
from pocket_ledger.services.storage import ChangeTopic


class TestPasswords:
    """Tests for bcrypt hashing."""

    def test_hash_and_verify(self):
        hashed = hash_password("secret123")
        assert hashed != "secret123"
        assert verify_password("secret123", hashed)
        assert not verify_password("secret124", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("secret123") != hash_password("secret123")

    def test_garbage_hash_does_not_verify(self):
        assert verify_password("secret123", "not-a-bcrypt-hash") is False


class TestTokens:
    """Tests for bearer tokens."""

    def test_issue_and_verify(self, auth_settings):
        issuer = TokenIssuer(auth_settings)
        token = issuer.issue(User(id="u1", email="a@b.co"))

        claims = issuer.verify(token)
        assert claims["sub"] == "u1"
        assert claims["email"] == "a@b.co"

    def test_lifetime_is_seven_days(self, auth_settings):
        issuer = TokenIssuer(auth_settings)
        claims = issuer.verify(issuer.issue(User(id="u1", email="a@b.co")))
        assert claims["exp"] - claims["iat"] == int(timedelta(days=7).total_seconds())

    def test_expired_token(self, auth_settings):
        now = utc_now()
        token = jwt.encode(
            {"sub": "u1", "iat": now - timedelta(days=8), "exp": now - timedelta(days=1)},
            auth_settings.jwt_secret,
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError, match="expired"):
            TokenIssuer(auth_settings).verify(token)

    def test_wrong_secret(self, auth_settings):
        token = jwt.encode(
            {"sub": "u1", "exp": utc_now() + timedelta(days=1)},
            "some-other-secret-entirely-0123456789abcdef",
            algorithm="HS256",
        )
        with pytest.raises(InvalidTokenError):
            TokenIssuer(auth_settings).verify(token)

    @pytest.mark.parametrize("token", ["", "not.a.token"])
    def test_malformed_token(self, auth_settings, token):
        with pytest.raises(InvalidTokenError):
            TokenIssuer(auth_settings).verify(token)


class TestIdentityService:
    """Tests for sign-up, log-in and token resolution."""

    @pytest.mark.asyncio
    async def test_sign_up_returns_user_and_token(self, identity):
        result = await identity.sign_up("Asha@Example.com", "secret123")

        assert result.user.email == "asha@example.com"
        assert (await identity.current_user(result.token)) == result.user

    @pytest.mark.asyncio
    async def test_sign_up_stores_hash_not_password(self, identity, user_storage):
        await identity.sign_up("asha@example.com", "secret123")
        stored = await user_storage.get_user_by_email("asha@example.com")
        assert stored.password_hash != "secret123"

    @pytest.mark.asyncio
    async def test_short_password(self, identity):
        with pytest.raises(InvalidCredentialsError, match="at least 6"):
            await identity.sign_up("asha@example.com", "12345")

    @pytest.mark.asyncio
    async def test_overlong_password(self, identity, user_storage):
        with pytest.raises(InvalidCredentialsError, match="at most 72 bytes"):
            await identity.sign_up("long@example.com", "x" * 80)
        assert await user_storage.get_user_by_email("long@example.com") is None

    @pytest.mark.asyncio
    async def test_password_limit_counts_bytes(self, identity):
        # "é" is two bytes in UTF-8
        with pytest.raises(InvalidCredentialsError):
            await identity.sign_up("long@example.com", "é" * 37)

        result = await identity.sign_up("long@example.com", "é" * 36)
        assert (await identity.log_in("long@example.com", "é" * 36)).user == result.user

    @pytest.mark.asyncio
    async def test_bad_email(self, identity):
        with pytest.raises(InvalidCredentialsError):
            await identity.sign_up("asha", "secret123")

    @pytest.mark.asyncio
    async def test_duplicate_email(self, identity):
        await identity.sign_up("asha@example.com", "secret123")
        with pytest.raises(UserExistsError):
            await identity.sign_up("ASHA@example.com", "other-secret")

    @pytest.mark.asyncio
    async def test_log_in(self, identity):
        await identity.sign_up("asha@example.com", "secret123")
        result = await identity.log_in("asha@example.com", "secret123")
        assert result.user.email == "asha@example.com"
        assert result.token

    @pytest.mark.asyncio
    async def test_wrong_password_and_unknown_email_look_the_same(self, identity):
        await identity.sign_up("asha@example.com", "secret123")

        with pytest.raises(InvalidCredentialsError) as wrong_password:
            await identity.log_in("asha@example.com", "nope-nope")
        with pytest.raises(InvalidCredentialsError) as unknown:
            await identity.log_in("ravi@example.com", "secret123")

        assert str(wrong_password.value) == str(unknown.value) == "Invalid email or password"

    @pytest.mark.asyncio
    async def test_failed_login_is_audited(self, identity, audit_storage):
        await identity.sign_up("asha@example.com", "secret123")
        with pytest.raises(InvalidCredentialsError):
            await identity.log_in("asha@example.com", "nope-nope")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.LOGIN_FAILED
        assert events[0].details["reason"] == "wrong_password"

    @pytest.mark.asyncio
    async def test_token_of_deleted_user_is_rejected(self, identity):
        result = await identity.sign_up("asha@example.com", "secret123")
        await identity.delete_account(result.user.id)

        with pytest.raises(InvalidTokenError):
            await identity.current_user(result.token)


class TestSessionContext:
    """Tests for the explicit per-session context."""

    @pytest.mark.asyncio
    async def test_signed_out_session(self, identity, feed):
        context = SessionContext(identity, feed)

        assert await context.initialize(None) is None
        assert not context.is_authenticated
        with pytest.raises(NotAuthenticatedError):
            context.owner_id

    @pytest.mark.asyncio
    async def test_initialize_from_token(self, identity, feed):
        result = await identity.sign_up("asha@example.com", "secret123")
        context = SessionContext(identity, feed)

        user = await context.initialize(result.token)

        assert user == result.user
        assert context.owner_id == result.user.id
        assert context.token == result.token

    @pytest.mark.asyncio
    async def test_invalid_token_leaves_session_signed_out(self, identity, feed):
        context = SessionContext(identity, feed)
        assert await context.initialize("garbage") is None
        assert context.token is None

    @pytest.mark.asyncio
    async def test_log_out_cancels_subscriptions(self, session, feed):
        subscription = session.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)
        assert subscription.active

        await session.log_out()

        assert not subscription.active
        assert feed.subscriber_count() == 0
        assert not session.is_authenticated

    @pytest.mark.asyncio
    async def test_refresh_with_new_token_switches_user(self, session, identity, feed):
        session.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)
        other = await identity.sign_up("ravi@example.com", "secret123")

        user = await session.refresh(other.token)

        assert user.email == "ravi@example.com"
        assert session.subscriptions == []
        assert feed.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_refresh_with_same_token_keeps_state(self, session):
        subscription = session.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)

        await session.refresh(session.token)

        assert subscription.active

    @pytest.mark.asyncio
    async def test_subscribe_requires_user(self, identity, feed):
        context = SessionContext(identity, feed)
        with pytest.raises(NotAuthenticatedError):
            context.subscribe(ChangeTopic.TRANSACTIONS, lambda e: None)

    @pytest.mark.asyncio
    async def test_delete_account(self, session, user_storage):
        user_id = session.owner_id
        assert await session.delete_account() is True
        assert not session.is_authenticated
        assert await user_storage.get_user_by_id(user_id) is None
