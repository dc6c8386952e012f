"""Local accounts owned by the application."""

from .models import Account, AccountKind
from .repository import (
    AccountStore,
    InMemoryAccountStore,
    DynamoDBAccountStore,
    create_account_store,
    get_account_store,
)

__all__ = [
    "Account",
    "AccountKind",
    "AccountStore",
    "InMemoryAccountStore",
    "DynamoDBAccountStore",
    "create_account_store",
    "get_account_store",
]
