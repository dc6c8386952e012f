"""Application session issuance and verification."""

import logging
import os
import secrets
import time
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status

from accounts.models import Account

from .models import SessionRefreshToken, SessionTokens
from .session_repository import SessionTokenStore, create_session_token_store

logger = logging.getLogger(__name__)

# Default lifetimes in seconds
DEFAULT_ACCESS_TOKEN_TTL = 900  # 15 minutes
DEFAULT_REFRESH_TOKEN_TTL = 14 * 24 * 3600  # 14 days


class SessionTokenService:
    """
    Issues and verifies application sessions.

    A session is a short-lived signed access JWT plus a long-lived opaque
    refresh token. Refresh tokens are persisted and single-use: consuming one
    deletes it so the caller can issue a new pair.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        store: Optional[SessionTokenStore] = None,
        algorithm: Optional[str] = None,
        access_token_ttl: Optional[int] = None,
        refresh_token_ttl: Optional[int] = None,
    ):
        """
        Initialize session service.

        Args:
            secret: JWT signing secret (defaults to SESSION_JWT_SECRET)
            store: Refresh token store (defaults to create_session_token_store)
            algorithm: JWT algorithm (defaults to SESSION_JWT_ALGORITHM or HS256)
            access_token_ttl: Access token lifetime in seconds
            refresh_token_ttl: Refresh token lifetime in seconds

        Raises:
            ValueError: If no signing secret is configured
        """
        self._secret = secret or os.getenv("SESSION_JWT_SECRET")
        if not self._secret:
            raise ValueError("SESSION_JWT_SECRET environment variable is required")

        self._algorithm = algorithm or os.getenv("SESSION_JWT_ALGORITHM", "HS256")
        self._access_token_ttl = access_token_ttl or int(
            os.getenv("SESSION_ACCESS_TOKEN_TTL_SECONDS", DEFAULT_ACCESS_TOKEN_TTL)
        )
        self._refresh_token_ttl = refresh_token_ttl or int(
            os.getenv("SESSION_REFRESH_TOKEN_TTL_SECONDS", DEFAULT_REFRESH_TOKEN_TTL)
        )
        self._store = store or create_session_token_store()

    @property
    def refresh_token_ttl(self) -> int:
        return self._refresh_token_ttl

    async def issue(self, account: Account) -> SessionTokens:
        """
        Mint a new session for an account.

        Args:
            account: Account the session belongs to

        Returns:
            SessionTokens with a signed access token and a persisted refresh token
        """
        now = int(time.time())
        claims = {
            "sub": account.account_id,
            "email": account.email,
            "type": "access",
            "iat": now,
            "exp": now + self._access_token_ttl,
        }
        access_token = jwt.encode(claims, self._secret, algorithm=self._algorithm)

        refresh_token = SessionRefreshToken(
            token=secrets.token_urlsafe(48),
            account_id=account.account_id,
            expires_at=now + self._refresh_token_ttl,
        )
        await self._store.save(refresh_token)

        logger.info(f"Issued session for account {account.account_id}")
        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token.token,
            expires_in=self._refresh_token_ttl,
        )

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """
        Validate an access token and return its claims.

        Raises:
            HTTPException: 401 if the token is invalid, expired or not an access token
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["sub", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session expired. Please refresh or sign in again.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected access token: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid session token.",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if claims.get("type") != "access":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid session token.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return claims

    async def consume_refresh_token(self, refresh_token: str) -> str:
        """
        Validate and consume a refresh token.

        Refresh tokens are single-use; the caller issues a new session for the
        returned account.

        Args:
            refresh_token: Refresh token from a previous session

        Returns:
            Identifier of the account that owned the token

        Raises:
            HTTPException: 401 if the token is unknown, expired or already used
        """
        record = await self._store.find_by_token(refresh_token)
        if record is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token. Please sign in again.",
            )

        consumed = await self._store.delete_by_token(refresh_token)
        if not consumed or record.is_expired(time.time()):
            logger.warning(f"Refused refresh token for account {record.account_id}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token. Please sign in again.",
            )

        return record.account_id

    async def revoke(self, refresh_token: str) -> bool:
        """Revoke a single refresh token (logout)."""
        return await self._store.delete_by_token(refresh_token)

    async def revoke_all(self, account_id: str) -> int:
        """Revoke every refresh token of an account."""
        count = await self._store.delete_by_account(account_id)
        logger.info(f"Revoked {count} sessions for account {account_id}")
        return count

    async def purge_expired(self) -> int:
        """Delete refresh tokens that are past their expiry."""
        return await self._store.delete_expired(time.time())


# Global service instance
_service: Optional[SessionTokenService] = None


def get_session_token_service() -> SessionTokenService:
    """Get or create the global session service instance."""
    global _service
    if _service is None:
        _service = SessionTokenService()
    return _service
