"""Shared authentication utilities for API projects."""

from .dependencies import get_current_account, get_optional_account, security
from .models import SessionRefreshToken, SessionTokens
from .session_repository import (
    SessionTokenStore,
    InMemorySessionTokenStore,
    DynamoDBSessionTokenStore,
    create_session_token_store,
)
from .session_tokens import SessionTokenService, get_session_token_service

__all__ = [
    "get_current_account",
    "get_optional_account",
    "security",
    "SessionRefreshToken",
    "SessionTokens",
    "SessionTokenStore",
    "InMemorySessionTokenStore",
    "DynamoDBSessionTokenStore",
    "create_session_token_store",
    "SessionTokenService",
    "get_session_token_service",
]
