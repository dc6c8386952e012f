"""HTTP tests for the session routes."""

import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from accounts.repository import get_account_store
from apis.app_api.auth.routes import router
from apis.shared.auth.session_tokens import get_session_token_service


@pytest.fixture
def client(account_store, session_service):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_account_store] = lambda: account_store
    app.dependency_overrides[get_session_token_service] = lambda: session_service
    return TestClient(app)


@pytest.fixture
def session(account_store, session_service, password_account):
    asyncio.run(account_store.create_account(password_account))
    return asyncio.run(session_service.issue(password_account))


def test_refresh_returns_new_pair(client, session, session_service):
    response = client.post("/auth/refresh", json={"refreshToken": session.refresh_token})

    assert response.status_code == 200
    body = response.json()
    assert body["refreshToken"] != session.refresh_token
    assert body["expiresIn"] == session_service.refresh_token_ttl
    assert session_service.verify_access_token(body["accessToken"])["sub"] == "acct-password"


def test_refresh_token_is_single_use(client, session):
    client.post("/auth/refresh", json={"refreshToken": session.refresh_token})

    response = client.post("/auth/refresh", json={"refreshToken": session.refresh_token})

    assert response.status_code == 401


def test_refresh_for_deleted_account(client, session_service, other_account):
    tokens = asyncio.run(session_service.issue(other_account))

    response = client.post("/auth/refresh", json={"refreshToken": tokens.refresh_token})

    assert response.status_code == 401


def test_refresh_requires_body(client):
    response = client.post("/auth/refresh", json={})
    assert response.status_code == 422


def test_logout(client, session):
    response = client.post("/auth/logout", json={"refreshToken": session.refresh_token})
    assert response.status_code == 204

    response = client.post("/auth/refresh", json={"refreshToken": session.refresh_token})
    assert response.status_code == 401


def test_logout_all(client, session, session_service, password_account):
    other_session = asyncio.run(session_service.issue(password_account))

    response = client.post(
        "/auth/logout-all",
        headers={"Authorization": f"Bearer {session.access_token}"},
    )

    assert response.status_code == 204
    response = client.post("/auth/refresh", json={"refreshToken": other_session.refresh_token})
    assert response.status_code == 401


def test_logout_all_requires_session(client):
    response = client.post("/auth/logout-all")
    assert response.status_code == 401
