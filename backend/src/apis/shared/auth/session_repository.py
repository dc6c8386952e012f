"""Session refresh token storage abstraction."""

import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional

from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from apis.shared.dynamodb import get_dynamodb_resource

from .models import SessionRefreshToken

logger = logging.getLogger(__name__)


class SessionTokenStore(ABC):
    """Abstract interface for session refresh token storage."""

    @abstractmethod
    async def save(self, token: SessionRefreshToken) -> SessionRefreshToken:
        """Persist a newly issued refresh token."""
        pass

    @abstractmethod
    async def find_by_token(self, token: str) -> Optional[SessionRefreshToken]:
        """Look up a refresh token by its value."""
        pass

    @abstractmethod
    async def delete_by_token(self, token: str) -> bool:
        """
        Delete a refresh token (one-time use).

        Returns:
            True if this call deleted it, False if it was already gone
        """
        pass

    @abstractmethod
    async def delete_by_account(self, account_id: str) -> int:
        """Delete every refresh token of an account; returns how many were removed."""
        pass

    @abstractmethod
    async def delete_expired(self, now: Optional[float] = None) -> int:
        """Delete refresh tokens whose expiry has passed; returns how many were removed."""
        pass


class InMemorySessionTokenStore(SessionTokenStore):
    """In-memory session storage (for single-instance/local development and tests)."""

    def __init__(self):
        # Format: {token: SessionRefreshToken}
        self._store: Dict[str, SessionRefreshToken] = {}

    async def save(self, token: SessionRefreshToken) -> SessionRefreshToken:
        self._store[token.token] = token
        return token

    async def find_by_token(self, token: str) -> Optional[SessionRefreshToken]:
        return self._store.get(token)

    async def delete_by_token(self, token: str) -> bool:
        return self._store.pop(token, None) is not None

    async def delete_by_account(self, account_id: str) -> int:
        tokens = [t for t, record in self._store.items() if record.account_id == account_id]
        for token in tokens:
            del self._store[token]
        return len(tokens)

    async def delete_expired(self, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        expired = [t for t, record in self._store.items() if record.is_expired(now)]
        for token in expired:
            del self._store[token]
        return len(expired)


class DynamoDBSessionTokenStore(SessionTokenStore):
    """
    DynamoDB session storage.

    Table Schema:
        PK: SESSION#<token>    SK: REFRESH

    GSIs:
        AccountSessionsIndex: GSI1PK=ACCOUNT#<account_id>, GSI1SK=SESSION#<token>

    expiresAt is the table TTL attribute, so DynamoDB eventually removes
    expired items on its own; delete_expired makes that immediate.
    """

    def __init__(self, table_name: Optional[str] = None, region: Optional[str] = None):
        """
        Initialize DynamoDB session store.

        Args:
            table_name: DynamoDB table name (defaults to DYNAMODB_SESSION_TOKENS_TABLE_NAME)
            region: AWS region (defaults to AWS_REGION)
        """
        self._table_name = table_name or os.getenv("DYNAMODB_SESSION_TOKENS_TABLE_NAME")
        if not self._table_name:
            raise ValueError(
                "DYNAMODB_SESSION_TOKENS_TABLE_NAME must be set for DynamoDBSessionTokenStore"
            )

        self._dynamodb = get_dynamodb_resource(region)
        self._table = self._dynamodb.Table(self._table_name)
        logger.info(f"Initialized DynamoDB session store: table={self._table_name}")

    @staticmethod
    def _key(token: str) -> Dict[str, str]:
        return {"PK": f"SESSION#{token}", "SK": "REFRESH"}

    async def save(self, token: SessionRefreshToken) -> SessionRefreshToken:
        try:
            self._table.put_item(
                Item=token.to_dynamo_item(),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as e:
            logger.error(f"Failed to store session token for account {token.account_id}: {e}")
            raise
        return token

    async def find_by_token(self, token: str) -> Optional[SessionRefreshToken]:
        try:
            response = self._table.get_item(Key=self._key(token), ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Failed to look up session token: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return SessionRefreshToken.from_dynamo_item(item)

    async def delete_by_token(self, token: str) -> bool:
        try:
            self._table.delete_item(
                Key=self._key(token),
                ConditionExpression="attribute_exists(PK)",
            )
        except ClientError as e:
            # Already consumed by a concurrent request
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            logger.error(f"Failed to delete session token: {e}")
            raise
        return True

    async def delete_by_account(self, account_id: str) -> int:
        try:
            query_kwargs = {
                "IndexName": "AccountSessionsIndex",
                "KeyConditionExpression": Key("GSI1PK").eq(f"ACCOUNT#{account_id}"),
            }
            response = self._table.query(**query_kwargs)
            items = response.get("Items", [])

            # Handle pagination
            while "LastEvaluatedKey" in response:
                response = self._table.query(
                    **query_kwargs,
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                )
                items.extend(response.get("Items", []))

            with self._table.batch_writer() as batch:
                for item in items:
                    batch.delete_item(Key={"PK": item["PK"], "SK": item["SK"]})

        except ClientError as e:
            logger.error(f"Failed to delete session tokens for account {account_id}: {e}")
            raise

        logger.info(f"Deleted {len(items)} session tokens for account {account_id}")
        return len(items)

    async def delete_expired(self, now: Optional[float] = None) -> int:
        cutoff = int(time.time() if now is None else now)
        try:
            scan_kwargs = {
                "FilterExpression": Attr("SK").eq("REFRESH") & Attr("expiresAt").lte(cutoff),
                "ProjectionExpression": "PK, SK",
            }
            response = self._table.scan(**scan_kwargs)
            keys = response.get("Items", [])

            while "LastEvaluatedKey" in response:
                response = self._table.scan(
                    **scan_kwargs,
                    ExclusiveStartKey=response["LastEvaluatedKey"],
                )
                keys.extend(response.get("Items", []))

            with self._table.batch_writer() as batch:
                for key in keys:
                    batch.delete_item(Key=key)

        except ClientError as e:
            logger.error(f"Failed to purge expired session tokens: {e}")
            raise

        logger.info(f"Purged {len(keys)} expired session tokens")
        return len(keys)


def create_session_token_store() -> SessionTokenStore:
    """
    Create appropriate session store based on environment configuration.

    Returns:
        SessionTokenStore instance (DynamoDB if configured, otherwise in-memory)
    """
    table_name = os.getenv("DYNAMODB_SESSION_TOKENS_TABLE_NAME")
    if table_name:
        return DynamoDBSessionTokenStore(table_name=table_name)

    logger.info(
        "DYNAMODB_SESSION_TOKENS_TABLE_NAME not set. Using in-memory session storage. "
        "This will not work in distributed deployments."
    )
    return InMemorySessionTokenStore()
