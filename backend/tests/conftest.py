"""Shared fixtures: in-memory stores, a session issuer and a stubbed Google client."""

import pytest
from unittest.mock import AsyncMock, Mock

from accounts.models import Account, AccountKind
from accounts.repository import InMemoryAccountStore
from apis.app_api.google.client import GoogleOAuthClient
from apis.app_api.google.config import GoogleOAuthConfig
from apis.app_api.google.models import GoogleUserInfo, TokenResponse
from apis.app_api.google.service import GoogleTokenService
from apis.shared.auth.session_repository import InMemorySessionTokenStore
from apis.shared.auth.session_tokens import SessionTokenService
from apis.shared.google.token_repository import InMemoryGoogleTokenStore


@pytest.fixture
def google_config():
    """Google OAuth config with test credentials"""
    return GoogleOAuthConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://localhost:8000/auth/google/callback",
        expiry_leeway_seconds=0,
    )


@pytest.fixture
def account_store():
    return InMemoryAccountStore()


@pytest.fixture
def token_store():
    return InMemoryGoogleTokenStore()


@pytest.fixture
def session_store():
    return InMemorySessionTokenStore()


@pytest.fixture
def session_service(session_store):
    return SessionTokenService(secret="test-secret", store=session_store)


@pytest.fixture
def google_client():
    """Mock Google client; tests set return values per call"""
    client = Mock(spec=GoogleOAuthClient)
    client.build_authorization_url = Mock(
        return_value="https://accounts.google.com/o/oauth2/v2/auth?client_id=test-client-id"
    )
    client.exchange_code = AsyncMock(
        return_value=TokenResponse(
            access_token="google-access-1",
            refresh_token="google-refresh-1",
            expires_in=3600,
        )
    )
    client.fetch_user_info = AsyncMock(
        return_value=GoogleUserInfo(email="a@x.com", name="Ada Lovelace")
    )
    client.refresh_access_token = AsyncMock(
        return_value=TokenResponse(access_token="google-access-refreshed", expires_in=3600)
    )
    client.revoke_token = AsyncMock(return_value=None)
    return client


@pytest.fixture
def service(google_client, google_config, account_store, token_store, session_service):
    """GoogleTokenService wired to in-memory stores"""
    return GoogleTokenService(
        client=google_client,
        config=google_config,
        account_store=account_store,
        token_store=token_store,
        session_service=session_service,
    )


@pytest.fixture
def password_account():
    """Existing account that signed up with a password"""
    return Account(
        account_id="acct-password",
        email="a@x.com",
        kind=AccountKind.PASSWORD,
        password_hash="$2b$12$hash",
    )


@pytest.fixture
def other_account():
    """Existing account with an unrelated email"""
    return Account(
        account_id="acct-other",
        email="other@y.com",
        name="Other User",
        kind=AccountKind.PASSWORD,
        password_hash="$2b$12$otherhash",
    )
