"""Tests for SessionTokenService and the in-memory session store."""

import time

import jwt
import pytest
from fastapi import HTTPException

from apis.shared.auth.models import SessionRefreshToken
from apis.shared.auth.session_tokens import SessionTokenService


class TestIssue:

    @pytest.mark.asyncio
    async def test_issue(self, session_service, session_store, password_account):
        tokens = await session_service.issue(password_account)

        claims = session_service.verify_access_token(tokens.access_token)
        assert claims["sub"] == "acct-password"
        assert claims["email"] == "a@x.com"
        assert claims["type"] == "access"
        assert tokens.expires_in == session_service.refresh_token_ttl
        assert tokens.token_type == "Bearer"

        record = await session_store.find_by_token(tokens.refresh_token)
        assert record.account_id == "acct-password"

    @pytest.mark.asyncio
    async def test_refresh_tokens_are_unique(self, session_service, password_account):
        first = await session_service.issue(password_account)
        second = await session_service.issue(password_account)
        assert first.refresh_token != second.refresh_token

    def test_secret_required(self, monkeypatch, session_store):
        monkeypatch.delenv("SESSION_JWT_SECRET", raising=False)
        with pytest.raises(ValueError):
            SessionTokenService(store=session_store)


class TestVerifyAccessToken:

    def test_expired(self, session_service):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "acct-1", "type": "access", "iat": now - 120, "exp": now - 60},
            "test-secret",
            algorithm="HS256",
        )

        with pytest.raises(HTTPException) as exc_info:
            session_service.verify_access_token(token)
        assert exc_info.value.status_code == 401

    def test_wrong_secret(self, session_service):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "acct-1", "type": "access", "iat": now, "exp": now + 60},
            "another-secret",
            algorithm="HS256",
        )

        with pytest.raises(HTTPException):
            session_service.verify_access_token(token)

    def test_wrong_type(self, session_service):
        now = int(time.time())
        token = jwt.encode(
            {"sub": "acct-1", "type": "refresh", "iat": now, "exp": now + 60},
            "test-secret",
            algorithm="HS256",
        )

        with pytest.raises(HTTPException):
            session_service.verify_access_token(token)


class TestRefreshTokens:

    @pytest.mark.asyncio
    async def test_consume_is_single_use(self, session_service, password_account):
        tokens = await session_service.issue(password_account)

        assert await session_service.consume_refresh_token(tokens.refresh_token) == "acct-password"
        with pytest.raises(HTTPException) as exc_info:
            await session_service.consume_refresh_token(tokens.refresh_token)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_token(self, session_service):
        with pytest.raises(HTTPException):
            await session_service.consume_refresh_token("unknown")

    @pytest.mark.asyncio
    async def test_expired_token(self, session_service, session_store):
        await session_store.save(
            SessionRefreshToken(token="old", account_id="acct-1", expires_at=int(time.time()) - 1)
        )

        with pytest.raises(HTTPException):
            await session_service.consume_refresh_token("old")
        assert await session_store.find_by_token("old") is None

    @pytest.mark.asyncio
    async def test_revoke_all(self, session_service, session_store, password_account, other_account):
        first = await session_service.issue(password_account)
        await session_service.issue(password_account)
        other = await session_service.issue(other_account)

        assert await session_service.revoke_all("acct-password") == 2

        assert await session_store.find_by_token(first.refresh_token) is None
        assert await session_store.find_by_token(other.refresh_token) is not None

    @pytest.mark.asyncio
    async def test_purge_expired(self, session_service, session_store, password_account):
        live = await session_service.issue(password_account)
        await session_store.save(
            SessionRefreshToken(token="old", account_id="acct-password", expires_at=int(time.time()) - 1)
        )

        assert await session_service.purge_expired() == 1
        assert await session_store.find_by_token(live.refresh_token) is not None
