"""Session routes: refresh and logout."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from accounts.models import Account
from accounts.repository import AccountStore, get_account_store
from apis.shared.auth import SessionTokenService, get_current_account, get_session_token_service

from .models import RefreshTokenRequest, SessionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/refresh", response_model=SessionResponse)
async def refresh_session(
    request: RefreshTokenRequest,
    session_service: SessionTokenService = Depends(get_session_token_service),
    account_store: AccountStore = Depends(get_account_store),
):
    """
    Exchange a session refresh token for a new session.

    The refresh token is single-use: it is consumed and a new one is returned.

    Raises:
        HTTPException: 401 if the refresh token is invalid, expired or used,
            or the account no longer exists
    """
    account_id = await session_service.consume_refresh_token(request.refresh_token)

    account = await account_store.get_account(account_id)
    if account is None:
        logger.warning(f"Refresh token belongs to unknown account {account_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account no longer exists.",
        )

    tokens = await session_service.issue(account)
    return SessionResponse.from_tokens(tokens)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: RefreshTokenRequest,
    session_service: SessionTokenService = Depends(get_session_token_service),
):
    """Revoke one session. Unknown tokens are ignored."""
    await session_service.revoke(request.refresh_token)
    return None


@router.post("/logout-all", status_code=status.HTTP_204_NO_CONTENT)
async def logout_all(
    current_account: Account = Depends(get_current_account),
    session_service: SessionTokenService = Depends(get_session_token_service),
):
    """Revoke every session of the signed-in account."""
    logger.info(f"Account {current_account.account_id} signing out everywhere")
    await session_service.revoke_all(current_account.account_id)
    return None
