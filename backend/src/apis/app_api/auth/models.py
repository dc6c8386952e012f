"""Request and response models for session routes."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from apis.shared.auth.models import SessionTokens


class SessionModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RefreshTokenRequest(SessionModel):
    """Body carrying a session refresh token."""

    refresh_token: str = Field(..., min_length=1, description="Session refresh token")


class SessionResponse(SessionModel):
    """A freshly issued session pair."""

    access_token: str
    refresh_token: str
    expires_in: int = Field(..., description="Session lifetime in seconds")
    token_type: str = "Bearer"

    @classmethod
    def from_tokens(cls, tokens: SessionTokens) -> "SessionResponse":
        return cls(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
            token_type=tokens.token_type,
        )
