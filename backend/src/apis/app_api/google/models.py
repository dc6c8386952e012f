"""Google linking models: provider responses, results and API schemas."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from accounts.models import Account


@dataclass
class TokenResponse:
    """Tokens returned by Google's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None  # Seconds, relative to the response
    token_type: str = "Bearer"
    scope: Optional[str] = None

    @classmethod
    def from_token_data(cls, data: Dict[str, Any]) -> "TokenResponse":
        """Build from a token endpoint JSON body; access_token must already be validated."""
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope"),
        )


@dataclass
class GoogleUserInfo:
    """Profile fields read from Google's userinfo endpoint."""

    email: str
    name: Optional[str] = None


class ResolutionSource(str, Enum):
    """Which rule mapped a Google identity to a local account."""

    AUTHENTICATED = "authenticated"
    LINKED_GOOGLE_ACCOUNT = "linked_google_account"
    MATCHING_EMAIL = "matching_email"
    NEW_ACCOUNT = "new_account"


@dataclass
class Resolution:
    """Outcome of identity resolution."""

    account: Account
    matched_by: ResolutionSource

    @property
    def created(self) -> bool:
        return self.matched_by == ResolutionSource.NEW_ACCOUNT


@dataclass
class CallbackResult:
    """Everything the callback endpoint returns to the client."""

    access_token: str
    refresh_token: str
    expires_in: int
    email: str
    provider_email: str
    created: bool = False


@dataclass
class ConnectionStatus:
    """Whether an account has a linked Google identity."""

    connected: bool
    email: Optional[str] = None


# =============================================================================
# Pydantic Response Models
# =============================================================================


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthorizationUrlResponse(CamelModel):
    """Response model for the authorization URL endpoint."""

    url: str = Field(..., description="Google consent screen URL to open")


class CallbackResponse(CamelModel):
    """Response model for the OAuth callback endpoint."""

    access_token: str = Field(..., description="Application session access token")
    refresh_token: str = Field(..., description="Application session refresh token")
    expires_in: int = Field(..., description="Session lifetime in seconds")
    email: str = Field(..., description="Email of the resolved local account")
    provider_email: str = Field(..., description="Email of the Google account")

    @classmethod
    def from_result(cls, result: CallbackResult) -> "CallbackResponse":
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            email=result.email,
            provider_email=result.provider_email,
        )


class ConnectionStatusResponse(CamelModel):
    """Response model for the connection status endpoint."""

    connected: bool
    email: Optional[str] = None


class AccessTokenResponse(CamelModel):
    """Response model for the Google access token endpoint."""

    access_token: str = Field(..., description="Valid Google access token")
