"""FastAPI dependencies for authentication."""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from accounts.models import Account
from accounts.repository import AccountStore, get_account_store

from .session_tokens import SessionTokenService, get_session_token_service

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme with auto_error=False to handle missing tokens manually
security = HTTPBearer(auto_error=False)


async def _load_account(
    token: str,
    session_service: SessionTokenService,
    account_store: AccountStore,
) -> Account:
    claims = session_service.verify_access_token(token)
    account = await account_store.get_account(claims["sub"])
    if account is None:
        logger.warning(f"Session token refers to unknown account {claims['sub']}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account no longer exists.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


async def get_current_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session_service: SessionTokenService = Depends(get_session_token_service),
    account_store: AccountStore = Depends(get_account_store),
) -> Account:
    """
    FastAPI dependency to get the current authenticated account.

    Extracts the Bearer session token from the Authorization header and
    validates it.

    Raises:
        HTTPException: 401 if the token is missing or invalid, or the account is gone
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required. Please provide a valid Bearer token in the Authorization header.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return await _load_account(credentials.credentials, session_service, account_store)


async def get_optional_account(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session_service: SessionTokenService = Depends(get_session_token_service),
    account_store: AccountStore = Depends(get_account_store),
) -> Optional[Account]:
    """
    FastAPI dependency for endpoints that work with or without a session.

    Returns None when no Authorization header is sent. A token that is sent
    but invalid is rejected rather than ignored, so a broken session never
    silently turns an account-linking request into a sign-in.

    Raises:
        HTTPException: 401 if a token is present but invalid
    """
    if credentials is None:
        return None

    return await _load_account(credentials.credentials, session_service, account_store)
