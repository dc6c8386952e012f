"""Google OAuth client configuration."""

import os
from dataclasses import dataclass, field
from typing import List

# Default OAuth scopes: identity only. Deployments add API scopes (Calendar, Drive...)
DEFAULT_SCOPES = ["openid", "email", "profile"]


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GoogleOAuthConfig:
    """Credentials and tuning for the Google OAuth client."""

    client_id: str
    client_secret: str
    redirect_uri: str
    scopes: List[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    expiry_leeway_seconds: int = 60
    revoke_on_disconnect: bool = True
    http_timeout_seconds: float = 10.0

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @classmethod
    def from_env(cls) -> "GoogleOAuthConfig":
        """
        Load configuration from environment variables.

        Raises:
            ValueError: If a required variable is missing
        """
        required_vars = ["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REDIRECT_URI"]
        missing_vars = [var for var in required_vars if not os.getenv(var)]
        if missing_vars:
            raise ValueError(
                f"Missing required environment variables for Google OAuth: {', '.join(missing_vars)}."
            )

        scopes = os.getenv("GOOGLE_SCOPES")
        return cls(
            client_id=os.environ["GOOGLE_CLIENT_ID"],
            client_secret=os.environ["GOOGLE_CLIENT_SECRET"],
            redirect_uri=os.environ["GOOGLE_REDIRECT_URI"],
            scopes=scopes.split() if scopes else list(DEFAULT_SCOPES),
            expiry_leeway_seconds=int(os.getenv("GOOGLE_TOKEN_EXPIRY_LEEWAY_SECONDS", "60")),
            revoke_on_disconnect=_env_flag("GOOGLE_REVOKE_ON_DISCONNECT", True),
            http_timeout_seconds=float(os.getenv("GOOGLE_HTTP_TIMEOUT_SECONDS", "10")),
        )
