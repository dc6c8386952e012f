"""HTTP client for Google's OAuth 2.0 endpoints."""

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client, OAuthError

from apis.shared.errors import ProviderError

from .config import GoogleOAuthConfig
from .models import GoogleUserInfo, TokenResponse

logger = logging.getLogger(__name__)


class GoogleOAuthClient:
    """
    Client-side half of the Google authorization-code flow.

    Translates between Google's endpoints and our models. It keeps no state
    and performs no retries: every failure surfaces as ProviderError.
    """

    AUTHORIZATION_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
    USERINFO_ENDPOINT = "https://www.googleapis.com/oauth2/v2/userinfo"
    REVOCATION_ENDPOINT = "https://oauth2.googleapis.com/revoke"

    def __init__(
        self,
        config: GoogleOAuthConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Google OAuth credentials
            transport: Optional httpx transport (used by tests to stub Google)
        """
        self._config = config
        self._transport = transport

    def build_authorization_url(self) -> str:
        """
        Build the Google consent screen URL.

        Requests offline access and forces the consent prompt so that Google
        issues a refresh token even to users who consented before.
        """
        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "response_type": "code",
            "scope": self._config.scope,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.AUTHORIZATION_ENDPOINT}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenResponse:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback

        Raises:
            ProviderError: If the exchange fails or no access token is returned
        """
        try:
            async with self._oauth_client() as client:
                token = await client.fetch_token(
                    url=self.TOKEN_ENDPOINT,
                    grant_type="authorization_code",
                    code=code,
                    redirect_uri=self._config.redirect_uri,
                )
        except OAuthError as e:
            logger.error(f"Google rejected authorization code: {e.error} - {e.description}")
            raise ProviderError(
                f"Google rejected the authorization code: {e.error}",
                error=e.error,
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Token exchange failed with status {e.response.status_code}")
            raise ProviderError(
                "Failed to exchange authorization code with Google",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Token exchange request failed: {e}")
            raise ProviderError("Failed to exchange authorization code with Google") from e

        return self._parse_token_response(dict(token), "authorization code exchange")

    async def fetch_user_info(self, access_token: str) -> GoogleUserInfo:
        """
        Read the signed-in user's profile.

        Only the email is mandatory; the display name is best-effort.

        Raises:
            ProviderError: If the request fails or no email is returned
        """
        try:
            async with self._http_client() as client:
                response = await client.get(
                    self.USERINFO_ENDPOINT,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Userinfo request failed with status {e.response.status_code}")
            raise ProviderError(
                "Failed to get user info from Google",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Userinfo request failed: {e}")
            raise ProviderError("Failed to get user info from Google") from e

        email = data.get("email") if isinstance(data, dict) else None
        if not email:
            logger.error("No email in Google userinfo response")
            raise ProviderError("No email received from Google")

        name = data.get("name")
        return GoogleUserInfo(email=email.lower(), name=name or None)

    async def refresh_access_token(self, refresh_token: str) -> TokenResponse:
        """
        Obtain a new access token with a stored refresh token.

        Raises:
            ProviderError: If the refresh fails; ``error`` is ``invalid_grant``
                when Google no longer honors the refresh token
        """
        try:
            async with self._oauth_client() as client:
                token = await client.refresh_token(
                    url=self.TOKEN_ENDPOINT,
                    refresh_token=refresh_token,
                )
        except OAuthError as e:
            logger.error(f"Google rejected token refresh: {e.error} - {e.description}")
            raise ProviderError(
                f"Google rejected the token refresh: {e.error}",
                error=e.error,
            ) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Token refresh failed with status {e.response.status_code}")
            raise ProviderError(
                "Failed to refresh Google access token",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Token refresh request failed: {e}")
            raise ProviderError("Failed to refresh Google access token") from e

        return self._parse_token_response(dict(token), "token refresh")

    async def revoke_token(self, token: str) -> None:
        """
        Revoke a token (and the grant behind it) at Google.

        Raises:
            ProviderError: If Google does not confirm the revocation
        """
        try:
            async with self._http_client() as client:
                response = await client.post(self.REVOCATION_ENDPOINT, data={"token": token})
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                "Google refused to revoke the token",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError("Token revocation request failed") from e

    def _oauth_client(self) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self._config.client_id,
            client_secret=self._config.client_secret,
            token_endpoint=self.TOKEN_ENDPOINT,
            token_endpoint_auth_method="client_secret_post",
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        )

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._config.http_timeout_seconds,
            transport=self._transport,
        )

    @staticmethod
    def _parse_token_response(data: Dict[str, Any], operation: str) -> TokenResponse:
        if not data.get("access_token"):
            logger.error(f"No access token in Google {operation} response")
            raise ProviderError(f"No access token received from Google ({operation})")
        return TokenResponse.from_token_data(data)
