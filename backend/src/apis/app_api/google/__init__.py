"""Google sign-in, account linking and Google token access."""

from .client import GoogleOAuthClient
from .config import GoogleOAuthConfig
from .resolver import IdentityResolver
from .routes import router
from .service import GoogleTokenService, get_google_token_service

__all__ = [
    "GoogleOAuthClient",
    "GoogleOAuthConfig",
    "IdentityResolver",
    "router",
    "GoogleTokenService",
    "get_google_token_service",
]
