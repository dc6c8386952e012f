"""Persistence for linked Google accounts and their tokens."""

from .models import GoogleToken
from .token_repository import (
    GoogleTokenStore,
    InMemoryGoogleTokenStore,
    DynamoDBGoogleTokenStore,
    create_google_token_store,
    get_google_token_store,
)

__all__ = [
    "GoogleToken",
    "GoogleTokenStore",
    "InMemoryGoogleTokenStore",
    "DynamoDBGoogleTokenStore",
    "create_google_token_store",
    "get_google_token_store",
]
