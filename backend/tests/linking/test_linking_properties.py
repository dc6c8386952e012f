"""Property-based tests for Google account linking.

Runs arbitrary sequences of sign-ins, authenticated links and disconnects
against in-memory stores and checks that the link invariants hold after
every step:

- a Google email is linked to at most one account
- an account holds at most one Google token record
- an email never belongs to two accounts
- a disconnected account reports connected=false
"""

import asyncio
from unittest.mock import AsyncMock, Mock

from hypothesis import given, settings
from hypothesis import strategies as st

from accounts.repository import InMemoryAccountStore
from apis.app_api.google.client import GoogleOAuthClient
from apis.app_api.google.config import GoogleOAuthConfig
from apis.app_api.google.models import GoogleUserInfo, TokenResponse
from apis.app_api.google.service import GoogleTokenService
from apis.shared.auth.session_repository import InMemorySessionTokenStore
from apis.shared.auth.session_tokens import SessionTokenService
from apis.shared.google.token_repository import InMemoryGoogleTokenStore

# Small pools so sequences revisit the same identities
google_emails = st.sampled_from(["a@x.com", "b@x.com", "C@X.com", "d@y.com"])

# (kind, google email, index of the account acting as signed-in caller)
operations = st.lists(
    st.one_of(
        st.tuples(st.just("sign_in"), google_emails, st.none()),
        st.tuples(st.just("link"), google_emails, st.integers(min_value=0, max_value=5)),
        st.tuples(st.just("disconnect"), st.none(), st.integers(min_value=0, max_value=5)),
    ),
    min_size=1,
    max_size=15,
)


def _build_service():
    client = Mock(spec=GoogleOAuthClient)
    client.exchange_code = AsyncMock()
    client.fetch_user_info = AsyncMock()
    client.revoke_token = AsyncMock(return_value=None)
    account_store = InMemoryAccountStore()
    token_store = InMemoryGoogleTokenStore()
    service = GoogleTokenService(
        client=client,
        config=GoogleOAuthConfig(client_id="id", client_secret="secret", redirect_uri="http://localhost/cb"),
        account_store=account_store,
        token_store=token_store,
        session_service=SessionTokenService(secret="test-secret", store=InMemorySessionTokenStore()),
    )
    return service, client, account_store, token_store


def _check_invariants(account_store, token_store):
    tokens = token_store._tokens
    owners = [token.google_email for token in tokens.values()]
    assert len(owners) == len(set(owners))
    for account_id, token in tokens.items():
        assert token.account_id == account_id
        assert token_store._accounts_by_email[token.google_email] == account_id
        assert account_id in account_store._accounts

    emails = [account.email for account in account_store._accounts.values()]
    assert len(emails) == len(set(emails))


async def _run(ops):
    service, client, account_store, token_store = _build_service()
    known_accounts = []

    for step, (kind, email, actor) in enumerate(ops):
        if kind in ("sign_in", "link"):
            authenticated = None
            if kind == "link" and known_accounts:
                authenticated = known_accounts[actor % len(known_accounts)]
            client.exchange_code.return_value = TokenResponse(
                access_token=f"at-{step}", refresh_token=f"rt-{step}", expires_in=3600
            )
            client.fetch_user_info.return_value = GoogleUserInfo(email=email.lower())

            result = await service.handle_callback(f"code-{step}", authenticated_account=authenticated)

            account = await account_store.get_account_by_email(result.email)
            if authenticated is not None:
                assert account.account_id == authenticated.account_id
            if account.account_id not in [a.account_id for a in known_accounts]:
                known_accounts.append(account)
            status = await service.get_connection_status(account.account_id)
            assert status.connected is True
            assert status.email == email.lower()

        elif known_accounts:
            account = known_accounts[actor % len(known_accounts)]
            await service.disconnect(account.account_id)
            assert (await service.get_connection_status(account.account_id)).connected is False

        _check_invariants(account_store, token_store)


@given(ops=operations)
@settings(max_examples=100, deadline=None)
def test_link_invariants_hold_for_any_sequence(ops):
    asyncio.run(_run(ops))


@given(email=google_emails, repeats=st.integers(min_value=2, max_value=5))
@settings(max_examples=30, deadline=None)
def test_repeated_sign_in_resolves_to_first_account(email, repeats):
    async def run():
        service, client, account_store, token_store = _build_service()
        client.fetch_user_info.return_value = GoogleUserInfo(email=email.lower())

        account_ids = set()
        for attempt in range(repeats):
            client.exchange_code.return_value = TokenResponse(access_token=f"at-{attempt}")
            result = await service.handle_callback(f"code-{attempt}")
            account_ids.add((await account_store.get_account_by_email(result.email)).account_id)

        assert len(account_ids) == 1
        assert len(account_store._accounts) == 1
        assert len(token_store._tokens) == 1

    asyncio.run(run())
