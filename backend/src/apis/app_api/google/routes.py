"""Google sign-in and account linking routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from accounts.models import Account
from apis.shared.auth import get_current_account, get_optional_account
from apis.shared.errors import (
    ConstraintViolationError,
    ErrorCode,
    NotConnectedError,
    ProviderError,
    http_error,
)

from .models import (
    AccessTokenResponse,
    AuthorizationUrlResponse,
    CallbackResponse,
    ConnectionStatusResponse,
)
from .service import GoogleTokenService, get_google_token_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/google", tags=["google"])


def get_service() -> GoogleTokenService:
    """
    Resolve the Google token service.

    Raises:
        HTTPException: 503 if Google OAuth is not configured
    """
    try:
        return get_google_token_service()
    except ValueError as e:
        logger.error(f"Google OAuth is not configured: {e}")
        raise http_error(
            ErrorCode.SERVICE_UNAVAILABLE,
            "Google sign-in is not configured.",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )


def _provider_error(e: ProviderError):
    return http_error(
        ErrorCode.PROVIDER_ERROR,
        "Google request failed.",
        status.HTTP_502_BAD_GATEWAY,
        detail=str(e),
    )


def _not_connected_error(e: NotConnectedError):
    return http_error(
        ErrorCode.NOT_CONNECTED,
        "Google account is not connected.",
        status.HTTP_404_NOT_FOUND,
        detail=str(e),
    )


# =============================================================================
# OAuth Flow
# =============================================================================


@router.get("/authorization-url", response_model=AuthorizationUrlResponse)
async def get_authorization_url(service: GoogleTokenService = Depends(get_service)):
    """Return the Google consent screen URL for starting sign-in or linking."""
    return AuthorizationUrlResponse(url=service.build_authorization_url())


@router.get("/callback", response_model=CallbackResponse)
async def google_callback(
    code: str = Query(..., min_length=1, description="Authorization code from Google"),
    current_account: Optional[Account] = Depends(get_optional_account),
    service: GoogleTokenService = Depends(get_service),
):
    """
    Complete Google sign-in.

    Without a session the Google identity signs in (or signs up) an account.
    With a valid Bearer session it is linked to the signed-in account.

    Raises:
        HTTPException: 401 if a Bearer token is sent but invalid,
            502 if Google rejects the code or returns no email
    """
    if current_account:
        logger.info(f"Account {current_account.account_id} linking a Google account")
    else:
        logger.info("Google sign-in callback received")

    try:
        result = await service.handle_callback(code, authenticated_account=current_account)
    except ProviderError as e:
        raise _provider_error(e) from e
    except ConstraintViolationError as e:
        logger.error(f"Google callback lost a concurrent write: {e}")
        raise http_error(
            ErrorCode.CONFLICT,
            "Google account is being linked concurrently, please retry.",
            status.HTTP_409_CONFLICT,
        ) from e

    return CallbackResponse.from_result(result)


# =============================================================================
# Connection Management
# =============================================================================


@router.get("/status", response_model=ConnectionStatusResponse)
async def get_connection_status(
    current_account: Account = Depends(get_current_account),
    service: GoogleTokenService = Depends(get_service),
):
    """Report whether the signed-in account has a Google account linked."""
    connection = await service.get_connection_status(current_account.account_id)
    return ConnectionStatusResponse(connected=connection.connected, email=connection.email)


@router.get("/token", response_model=AccessTokenResponse)
async def get_access_token(
    current_account: Account = Depends(get_current_account),
    service: GoogleTokenService = Depends(get_service),
):
    """
    Return a valid Google access token for the signed-in account.

    Raises:
        HTTPException: 404 if not connected (or the connection can no longer
            be refreshed), 502 if Google fails the refresh
    """
    try:
        access_token = await service.get_access_token(current_account.account_id)
    except NotConnectedError as e:
        raise _not_connected_error(e) from e
    except ProviderError as e:
        raise _provider_error(e) from e

    return AccessTokenResponse(access_token=access_token)


@router.delete("/disconnect", status_code=status.HTTP_204_NO_CONTENT)
async def disconnect_google(
    current_account: Account = Depends(get_current_account),
    service: GoogleTokenService = Depends(get_service),
):
    """Unlink Google from the signed-in account. Succeeds when already unlinked."""
    logger.info(f"Account {current_account.account_id} disconnecting Google")
    await service.disconnect(current_account.account_id)
    return None
