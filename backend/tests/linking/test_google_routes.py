"""HTTP tests for the Google routes."""

import asyncio
import time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from accounts.repository import get_account_store
from apis.app_api.google.routes import get_service, router
from apis.shared.auth.session_tokens import get_session_token_service
from apis.shared.errors import ProviderError


@pytest.fixture
def client(service, account_store, session_service):
    """Test client with in-memory dependencies"""
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_service] = lambda: service
    app.dependency_overrides[get_account_store] = lambda: account_store
    app.dependency_overrides[get_session_token_service] = lambda: session_service
    return TestClient(app)


@pytest.fixture
def auth_headers(account_store, session_service, other_account):
    """Bearer headers for a signed-in account"""
    asyncio.run(account_store.create_account(other_account))
    tokens = asyncio.run(session_service.issue(other_account))
    return {"Authorization": f"Bearer {tokens.access_token}"}


def test_authorization_url(client):
    response = client.get("/auth/google/authorization-url")

    assert response.status_code == 200
    assert response.json()["url"].startswith("https://accounts.google.com/o/oauth2/v2/auth")


def test_callback_signs_in(client, session_service):
    response = client.get("/auth/google/callback", params={"code": "code-1"})

    assert response.status_code == 200
    body = response.json()
    assert set(body) == {"accessToken", "refreshToken", "expiresIn", "email", "providerEmail"}
    assert body["email"] == "a@x.com"
    assert body["providerEmail"] == "a@x.com"
    assert body["expiresIn"] == session_service.refresh_token_ttl
    assert session_service.verify_access_token(body["accessToken"])["email"] == "a@x.com"


def test_callback_with_session_links_account(client, auth_headers, token_store, other_account):
    response = client.get("/auth/google/callback", params={"code": "code-1"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["email"] == "other@y.com"
    assert body["providerEmail"] == "a@x.com"
    token = asyncio.run(token_store.get_token_by_google_email("a@x.com"))
    assert token.account_id == other_account.account_id


def test_callback_with_invalid_session_is_rejected(client, google_client):
    response = client.get(
        "/auth/google/callback",
        params={"code": "code-1"},
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401
    google_client.exchange_code.assert_not_called()


def test_callback_requires_code(client):
    response = client.get("/auth/google/callback")
    assert response.status_code == 422


def test_callback_provider_error(client, google_client):
    google_client.fetch_user_info.side_effect = ProviderError("No email received from Google")

    response = client.get("/auth/google/callback", params={"code": "code-1"})

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "provider_error"


def test_status_requires_session(client):
    response = client.get("/auth/google/status")
    assert response.status_code == 401


def test_status_not_connected(client, auth_headers):
    response = client.get("/auth/google/status", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"connected": False, "email": None}


def test_status_connected(client, auth_headers, token_store, other_account):
    asyncio.run(token_store.upsert_token(other_account.account_id, "work@gmail.com", "at-1"))

    response = client.get("/auth/google/status", headers=auth_headers)

    assert response.json() == {"connected": True, "email": "work@gmail.com"}


def test_token(client, auth_headers, token_store, other_account):
    asyncio.run(
        token_store.upsert_token(other_account.account_id, "work@gmail.com", "at-1", "rt-1", int(time.time()) + 3600)
    )

    response = client.get("/auth/google/token", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {"accessToken": "at-1"}


def test_token_not_connected(client, auth_headers):
    response = client.get("/auth/google/token", headers=auth_headers)

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "not_connected"


def test_token_refresh_failure(client, auth_headers, google_client, token_store, other_account):
    google_client.refresh_access_token.side_effect = ProviderError("Google down", status_code=503)
    asyncio.run(
        token_store.upsert_token(other_account.account_id, "work@gmail.com", "at-1", "rt-1", int(time.time()) - 10)
    )

    response = client.get("/auth/google/token", headers=auth_headers)

    assert response.status_code == 502


def test_disconnect(client, auth_headers, token_store, other_account):
    asyncio.run(token_store.upsert_token(other_account.account_id, "work@gmail.com", "at-1"))

    response = client.delete("/auth/google/disconnect", headers=auth_headers)

    assert response.status_code == 204
    assert response.content == b""
    status = client.get("/auth/google/status", headers=auth_headers).json()
    assert status["connected"] is False


def test_disconnect_when_not_connected(client, auth_headers):
    response = client.delete("/auth/google/disconnect", headers=auth_headers)
    assert response.status_code == 204


def test_unconfigured_service(account_store, session_service, monkeypatch):
    import apis.app_api.google.service as service_module

    for var in ("GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(service_module, "_google_token_service", None)

    app = FastAPI()
    app.include_router(router)
    response = TestClient(app).get("/auth/google/authorization-url")

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "service_unavailable"
