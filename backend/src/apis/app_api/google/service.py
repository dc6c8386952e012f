"""Google account linking and token lifecycle management."""

import logging
import time
from dataclasses import replace
from typing import Optional

from accounts.models import Account
from accounts.repository import AccountStore, get_account_store
from apis.shared.auth.session_tokens import SessionTokenService, get_session_token_service
from apis.shared.errors import NotConnectedError, ProviderError
from apis.shared.google.token_repository import GoogleTokenStore, get_google_token_store

from .client import GoogleOAuthClient
from .config import GoogleOAuthConfig
from .models import CallbackResult, ConnectionStatus
from .refresh_locks import RefreshLocks
from .resolver import IdentityResolver

logger = logging.getLogger(__name__)


class GoogleTokenService:
    """
    Service for the Google connection of local accounts.

    Handles:
    - Completing the OAuth callback and signing the account in
    - Handing out valid access tokens, refreshing them lazily
    - Connection status and disconnect
    """

    def __init__(
        self,
        client: GoogleOAuthClient,
        config: GoogleOAuthConfig,
        account_store: Optional[AccountStore] = None,
        token_store: Optional[GoogleTokenStore] = None,
        session_service: Optional[SessionTokenService] = None,
        resolver: Optional[IdentityResolver] = None,
        locks: Optional[RefreshLocks] = None,
    ):
        """
        Initialize the service.

        Args:
            client: Google OAuth client
            config: Google OAuth configuration
            account_store: Account store (defaults to singleton)
            token_store: Google token store (defaults to singleton)
            session_service: Session issuer (defaults to singleton)
            resolver: Identity resolver (defaults to one over the two stores)
            locks: Per-account refresh locks
        """
        self._client = client
        self._config = config
        self._account_store = account_store or get_account_store()
        self._token_store = token_store or get_google_token_store()
        self._sessions = session_service or get_session_token_service()
        self._resolver = resolver or IdentityResolver(self._account_store, self._token_store)
        self._locks = locks if locks is not None else RefreshLocks()

    # =========================================================================
    # Sign-in / Linking
    # =========================================================================

    def build_authorization_url(self) -> str:
        """Google consent screen URL for starting the flow."""
        return self._client.build_authorization_url()

    async def handle_callback(
        self,
        code: str,
        authenticated_account: Optional[Account] = None,
    ) -> CallbackResult:
        """
        Complete the OAuth callback.

        Exchanges the code, identifies the Google user, resolves the local
        account, stores the Google tokens on it and opens a session.

        Args:
            code: Authorization code from Google
            authenticated_account: Account the caller is signed in as; when set,
                the Google identity is linked to it

        Returns:
            CallbackResult with the session tokens and both emails

        Raises:
            ProviderError: If Google rejects the code or returns no email
        """
        tokens = await self._client.exchange_code(code)
        user_info = await self._client.fetch_user_info(tokens.access_token)

        resolution = await self._resolver.resolve(
            google_email=user_info.email,
            google_name=user_info.name,
            authenticated_account=authenticated_account,
        )
        account = resolution.account

        previous_link = await self._token_store.get_token_by_google_email(user_info.email)

        await self._token_store.upsert_token(
            account_id=account.account_id,
            google_email=user_info.email,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=self._expires_at(tokens.expires_in),
        )
        if previous_link is not None and previous_link.account_id != account.account_id:
            await self._drop_google_kind(previous_link.account_id)

        session = await self._sessions.issue(account)
        logger.info(
            f"Google callback complete for account {account.account_id} "
            f"(matched by {resolution.matched_by.value})"
        )
        return CallbackResult(
            access_token=session.access_token,
            refresh_token=session.refresh_token,
            expires_in=session.expires_in,
            email=account.email,
            provider_email=user_info.email,
            created=resolution.created,
        )

    # =========================================================================
    # Token Access
    # =========================================================================

    async def get_access_token(self, account_id: str) -> str:
        """
        Get a valid Google access token for an account.

        Refreshes the token when it is expired or about to expire. Refreshes
        for the same account are serialized, and the record is re-read under
        the lock so a refresh done by another caller is reused.

        Raises:
            NotConnectedError: If the account has no Google link, or the token
                is expired and cannot be refreshed
            ProviderError: If Google fails the refresh for another reason
        """
        token = await self._token_store.get_token(account_id)
        if token is None:
            raise NotConnectedError(f"Account {account_id} has no Google connection")
        if not token.is_expired(self._config.expiry_leeway_seconds):
            return token.access_token

        async with self._locks.get(account_id):
            token = await self._token_store.get_token(account_id)
            if token is None:
                raise NotConnectedError(f"Account {account_id} has no Google connection")
            if not token.is_expired(self._config.expiry_leeway_seconds):
                logger.debug(f"Google token for account {account_id} was refreshed concurrently")
                return token.access_token

            if not token.can_refresh:
                logger.info(f"Google token for account {account_id} expired with no refresh token")
                raise NotConnectedError(
                    f"Google token for account {account_id} expired and cannot be refreshed"
                )

            logger.info(f"Refreshing Google token for account {account_id}")
            try:
                refreshed = await self._client.refresh_access_token(token.refresh_token)
            except ProviderError as e:
                if e.error == "invalid_grant":
                    logger.warning(f"Google refresh token for account {account_id} is no longer valid")
                    raise NotConnectedError(
                        f"Google connection for account {account_id} was revoked or expired"
                    ) from e
                raise

            try:
                updated = await self._token_store.update_access_token(
                    account_id=account_id,
                    google_email=token.google_email,
                    access_token=refreshed.access_token,
                    expires_at=self._expires_at(refreshed.expires_in),
                    refresh_token=refreshed.refresh_token,
                )
            except NotConnectedError:
                # Disconnected or re-linked while Google was refreshing the old grant
                current = await self._token_store.get_token(account_id)
                if current is None or current.is_expired(self._config.expiry_leeway_seconds):
                    raise
                logger.info(f"Discarded stale Google refresh for account {account_id}")
                return current.access_token
            return updated.access_token

    # =========================================================================
    # Connection Management
    # =========================================================================

    async def get_connection_status(self, account_id: str) -> ConnectionStatus:
        """Whether the account has a Google link. Never calls Google."""
        token = await self._token_store.get_token(account_id)
        if token is None:
            return ConnectionStatus(connected=False)
        return ConnectionStatus(connected=True, email=token.google_email)

    async def disconnect(self, account_id: str) -> bool:
        """
        Remove an account's Google link. Safe to call when not connected.

        When enabled, the grant is revoked at Google first; a failed
        revocation is logged and does not prevent the local delete.

        Returns:
            True if a link was removed, False if there was none
        """
        token = await self._token_store.get_token(account_id)
        if token is None:
            logger.debug(f"Disconnect for account {account_id}: not connected")
            return False

        if self._config.revoke_on_disconnect:
            try:
                await self._client.revoke_token(token.refresh_token or token.access_token)
            except ProviderError as e:
                logger.warning(f"Failed to revoke Google grant for account {account_id}: {e}")

        deleted = await self._token_store.delete_token(account_id)
        if deleted:
            await self._drop_google_kind(account_id)
        logger.info(f"Disconnected Google account {token.google_email} from account {account_id}")
        return deleted

    async def _drop_google_kind(self, account_id: str) -> None:
        """Best-effort revert of the account kind once it has lost its Google link."""
        try:
            account = await self._account_store.get_account(account_id)
            if account is None:
                return
            kind = account.kind.without_google()
            if kind != account.kind:
                await self._account_store.update_account(replace(account, kind=kind))
        except Exception as e:
            logger.warning(f"Failed to update account kind for account {account_id}: {e}")

    @staticmethod
    def _expires_at(expires_in: Optional[int]) -> Optional[int]:
        if expires_in is None:
            return None
        return int(time.time()) + expires_in


# Global service instance
_google_token_service: Optional[GoogleTokenService] = None


def get_google_token_service() -> GoogleTokenService:
    """Get the Google token service singleton."""
    global _google_token_service
    if _google_token_service is None:
        config = GoogleOAuthConfig.from_env()
        _google_token_service = GoogleTokenService(GoogleOAuthClient(config), config)
    return _google_token_service
