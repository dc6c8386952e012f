"""Google token stores: abstract interface, in-memory and DynamoDB implementations."""

import copy
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError

from accounts.models import utc_now_iso
from apis.shared.dynamodb import (
    get_dynamodb_resource,
    is_condition_failure,
    is_transaction_conflict,
)
from apis.shared.errors import ConstraintViolationError, NotConnectedError

from .models import GoogleToken

logger = logging.getLogger(__name__)

# Attempts of the insert -> update cycle before a conflict is surfaced
MAX_UPSERT_ATTEMPTS = 3


class GoogleTokenStore(ABC):
    """
    Abstract interface for Google token persistence.

    Enforces two uniqueness constraints: one record per account and one record
    per Google email. ``upsert_token`` is an insert that falls back to an
    update when the account constraint rejects it, so concurrent first-time
    links for the same account end with a single record.
    """

    @abstractmethod
    async def get_token(self, account_id: str) -> Optional[GoogleToken]:
        """Get the token record owned by an account."""
        pass

    @abstractmethod
    async def get_token_by_google_email(self, google_email: str) -> Optional[GoogleToken]:
        """Get the token record linked to a Google email."""
        pass

    @abstractmethod
    async def update_access_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        expires_at: Optional[int],
        refresh_token: Optional[str] = None,
    ) -> GoogleToken:
        """
        Store a refreshed access token and its expiry in one atomic write.

        The write only applies while the record is still linked to
        ``google_email``, so a refresh of an old grant cannot land on a newer link.

        Args:
            account_id: Owning account
            google_email: Google email the refreshed grant belongs to
            access_token: New access token
            expires_at: New absolute expiry (None clears it)
            refresh_token: Rotated refresh token, if Google issued one

        Raises:
            NotConnectedError: If the record no longer exists or is linked to another Google email
        """
        pass

    @abstractmethod
    async def delete_token(self, account_id: str) -> bool:
        """
        Delete an account's token record.

        Returns:
            True if deleted, False if there was nothing to delete
        """
        pass

    @abstractmethod
    async def _insert_token(self, token: GoogleToken) -> GoogleToken:
        """Insert a new record; raises ConstraintViolationError if the account already has one."""
        pass

    @abstractmethod
    async def _update_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> GoogleToken:
        """Overwrite an existing record; raises ConstraintViolationError if it vanished or changed."""
        pass

    async def upsert_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[int] = None,
    ) -> GoogleToken:
        """
        Create or update the token record owned by an account.

        On update the access token, Google email and expiry are overwritten.
        The refresh token is only overwritten when a new non-empty one is
        given, because Google does not reissue it on every consent. If the
        Google email is linked to a different account, that link is moved to
        this account.

        Raises:
            ConstraintViolationError: If concurrent writers kept winning the race
        """
        google_email = google_email.lower()

        for attempt in range(1, MAX_UPSERT_ATTEMPTS + 1):
            try:
                token = await self._insert_token(
                    GoogleToken(
                        account_id=account_id,
                        google_email=google_email,
                        access_token=access_token,
                        refresh_token=refresh_token or None,
                        expires_at=expires_at,
                    )
                )
                logger.info(f"Linked Google account {google_email} to account {account_id}")
                return token
            except ConstraintViolationError:
                logger.debug(f"Token record exists for account {account_id}, updating (attempt {attempt})")

            try:
                token = await self._update_token(
                    account_id=account_id,
                    google_email=google_email,
                    access_token=access_token,
                    refresh_token=refresh_token or None,
                    expires_at=expires_at,
                )
                logger.info(f"Updated Google tokens for account {account_id}")
                return token
            except ConstraintViolationError:
                logger.debug(f"Token record for account {account_id} changed concurrently, retrying")

        raise ConstraintViolationError(
            f"Could not upsert Google token for account {account_id} after {MAX_UPSERT_ATTEMPTS} attempts"
        )


class InMemoryGoogleTokenStore(GoogleTokenStore):
    """
    In-memory token storage (for single-instance/local development and tests).

    Every method runs without awaiting between its reads and writes, so each
    call is atomic on the event loop.
    """

    def __init__(self):
        self._tokens: Dict[str, GoogleToken] = {}
        self._accounts_by_email: Dict[str, str] = {}

    async def get_token(self, account_id: str) -> Optional[GoogleToken]:
        token = self._tokens.get(account_id)
        return copy.deepcopy(token) if token else None

    async def get_token_by_google_email(self, google_email: str) -> Optional[GoogleToken]:
        account_id = self._accounts_by_email.get(google_email.lower())
        if account_id is None:
            return None
        return await self.get_token(account_id)

    async def update_access_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        expires_at: Optional[int],
        refresh_token: Optional[str] = None,
    ) -> GoogleToken:
        token = self._tokens.get(account_id)
        if token is None:
            raise NotConnectedError(f"Account {account_id} has no Google connection")
        if token.google_email != google_email.lower():
            raise NotConnectedError(f"Account {account_id} is now linked to another Google account")

        token.access_token = access_token
        token.expires_at = expires_at
        if refresh_token:
            token.refresh_token = refresh_token
        token.updated_at = utc_now_iso()
        return copy.deepcopy(token)

    async def delete_token(self, account_id: str) -> bool:
        token = self._tokens.pop(account_id, None)
        if token is None:
            return False
        if self._accounts_by_email.get(token.google_email) == account_id:
            del self._accounts_by_email[token.google_email]
        logger.info(f"Deleted Google token for account {account_id}")
        return True

    async def _insert_token(self, token: GoogleToken) -> GoogleToken:
        if token.account_id in self._tokens:
            raise ConstraintViolationError(f"Account {token.account_id} already has a Google token")

        self._release_email(token.google_email, token.account_id)
        self._tokens[token.account_id] = copy.deepcopy(token)
        self._accounts_by_email[token.google_email] = token.account_id
        return token

    async def _update_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> GoogleToken:
        token = self._tokens.get(account_id)
        if token is None:
            raise ConstraintViolationError(f"Account {account_id} has no Google token to update")

        if token.google_email != google_email:
            if self._accounts_by_email.get(token.google_email) == account_id:
                del self._accounts_by_email[token.google_email]
            self._release_email(google_email, account_id)

        token.google_email = google_email
        token.access_token = access_token
        if refresh_token:
            token.refresh_token = refresh_token
        token.expires_at = expires_at
        token.updated_at = utc_now_iso()
        self._accounts_by_email[google_email] = account_id
        return copy.deepcopy(token)

    def _release_email(self, google_email: str, new_owner: str) -> None:
        """Drop another account's record that holds this Google email."""
        owner = self._accounts_by_email.get(google_email)
        if owner is None or owner == new_owner:
            return
        self._tokens.pop(owner, None)
        del self._accounts_by_email[google_email]
        logger.info(f"Moved Google link {google_email} from account {owner} to account {new_owner}")


class DynamoDBGoogleTokenStore(GoogleTokenStore):
    """
    DynamoDB token storage.

    Table Schema:
        PK: ACCOUNT#<account_id>       SK: GOOGLE_TOKEN   (token item)
        PK: GOOGLE_EMAIL#<email>       SK: LINK           (email uniqueness item)

    Token and link items are always written together in one transaction. The
    token item's own write carries the access token and expiry together, so
    readers never see one without the other.
    """

    def __init__(self, table_name: Optional[str] = None, region: Optional[str] = None):
        """
        Initialize DynamoDB token store.

        Args:
            table_name: DynamoDB table name (defaults to DYNAMODB_GOOGLE_TOKENS_TABLE_NAME)
            region: AWS region (defaults to AWS_REGION)
        """
        self._table_name = table_name or os.getenv("DYNAMODB_GOOGLE_TOKENS_TABLE_NAME")
        if not self._table_name:
            raise ValueError(
                "DYNAMODB_GOOGLE_TOKENS_TABLE_NAME must be set for DynamoDBGoogleTokenStore"
            )

        self._dynamodb = get_dynamodb_resource(region)
        self._table = self._dynamodb.Table(self._table_name)
        self._client = self._table.meta.client
        logger.info(f"Initialized DynamoDB Google token store: table={self._table_name}")

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_token(self, account_id: str) -> Optional[GoogleToken]:
        try:
            response = self._table.get_item(Key=self._token_key(account_id), ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Error getting Google token for account {account_id}: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return GoogleToken.from_dynamo_item(item)

    async def get_token_by_google_email(self, google_email: str) -> Optional[GoogleToken]:
        google_email = google_email.lower()
        owner = self._email_owner(google_email)
        if owner is None:
            return None

        token = await self.get_token(owner)
        if token is None or token.google_email != google_email:
            # Link item outlived its token item
            return None
        return token

    # =========================================================================
    # Writes
    # =========================================================================

    async def update_access_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        expires_at: Optional[int],
        refresh_token: Optional[str] = None,
    ) -> GoogleToken:
        update_expression, values, remove = self._token_update_parts(
            access_token=access_token,
            expires_at=expires_at,
            refresh_token=refresh_token,
        )
        values[":email"] = google_email.lower()

        try:
            response = self._table.update_item(
                Key=self._token_key(account_id),
                UpdateExpression=update_expression + remove,
                ConditionExpression="attribute_exists(PK) AND googleEmail = :email",
                ExpressionAttributeValues=values,
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if is_condition_failure(e):
                raise NotConnectedError(
                    f"Account {account_id} has no Google connection for {google_email}"
                ) from e
            logger.error(f"Error updating Google access token for account {account_id}: {e}")
            raise

        return GoogleToken.from_dynamo_item(response["Attributes"])

    async def delete_token(self, account_id: str) -> bool:
        for _ in range(MAX_UPSERT_ATTEMPTS):
            existing = await self.get_token(account_id)
            if existing is None:
                return False

            try:
                self._transact(
                    [
                        {
                            "Delete": {
                                "TableName": self._table_name,
                                "Key": self._token_key(account_id),
                                "ConditionExpression": "googleEmail = :email",
                                "ExpressionAttributeValues": {":email": existing.google_email},
                            }
                        },
                        self._release_link_item(existing.google_email, account_id),
                    ]
                )
            except ConstraintViolationError:
                logger.debug(f"Google token for account {account_id} changed during delete, retrying")
                continue

            logger.info(f"Deleted Google token for account {account_id}")
            return True

        raise ConstraintViolationError(f"Could not delete Google token for account {account_id}")

    async def _insert_token(self, token: GoogleToken) -> GoogleToken:
        items = [
            {
                "Put": {
                    "TableName": self._table_name,
                    "Item": token.to_dynamo_item(),
                    "ConditionExpression": "attribute_not_exists(PK)",
                }
            }
        ]
        items.extend(self._claim_email_items(token.google_email, token.account_id))

        self._transact(items)
        return token

    async def _update_token(
        self,
        account_id: str,
        google_email: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: Optional[int],
    ) -> GoogleToken:
        existing = await self.get_token(account_id)
        if existing is None:
            raise ConstraintViolationError(f"Account {account_id} has no Google token to update")

        update_expression, values, remove = self._token_update_parts(
            access_token=access_token,
            expires_at=expires_at,
            refresh_token=refresh_token,
        )
        update_expression += ", googleEmail = :email"
        values[":email"] = google_email
        values[":old_email"] = existing.google_email

        items = [
            {
                "Update": {
                    "TableName": self._table_name,
                    "Key": self._token_key(account_id),
                    "UpdateExpression": update_expression + remove,
                    "ConditionExpression": "attribute_exists(PK) AND googleEmail = :old_email",
                    "ExpressionAttributeValues": values,
                }
            }
        ]
        items.extend(self._claim_email_items(google_email, account_id))
        if existing.google_email != google_email:
            items.append(self._release_link_item(existing.google_email, account_id))

        self._transact(items)

        existing.google_email = google_email
        existing.access_token = access_token
        if refresh_token:
            existing.refresh_token = refresh_token
        existing.expires_at = expires_at
        existing.updated_at = values[":now"]
        return existing

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _token_key(account_id: str) -> Dict[str, str]:
        return {"PK": f"ACCOUNT#{account_id}", "SK": "GOOGLE_TOKEN"}

    @staticmethod
    def _link_key(google_email: str) -> Dict[str, str]:
        return {"PK": f"GOOGLE_EMAIL#{google_email}", "SK": "LINK"}

    @staticmethod
    def _token_update_parts(
        access_token: str,
        expires_at: Optional[int],
        refresh_token: Optional[str],
    ):
        """Build the SET/REMOVE clauses shared by refresh and re-link updates."""
        update_expression = "SET accessToken = :access_token, updatedAt = :now"
        values: Dict[str, Any] = {
            ":access_token": access_token,
            ":now": utc_now_iso(),
        }

        if refresh_token:
            update_expression += ", refreshToken = :refresh_token"
            values[":refresh_token"] = refresh_token

        remove = ""
        if expires_at is None:
            remove = " REMOVE expiresAt"
        else:
            update_expression += ", expiresAt = :expires_at"
            values[":expires_at"] = expires_at

        return update_expression, values, remove

    def _email_owner(self, google_email: str) -> Optional[str]:
        try:
            response = self._table.get_item(Key=self._link_key(google_email), ConsistentRead=True)
        except ClientError as e:
            logger.error(f"Error looking up Google email link {google_email}: {e}")
            raise

        item = response.get("Item")
        return item["accountId"] if item else None

    def _claim_email_items(self, google_email: str, account_id: str) -> List[Dict[str, Any]]:
        """Transaction items that point the email link at this account."""
        link_item = {"Item": {**self._link_key(google_email), "accountId": account_id}}
        owner = self._email_owner(google_email)

        if owner is None:
            return [
                {
                    "Put": {
                        "TableName": self._table_name,
                        **link_item,
                        "ConditionExpression": "attribute_not_exists(PK)",
                    }
                }
            ]

        if owner == account_id:
            return [
                {
                    "Put": {
                        "TableName": self._table_name,
                        **link_item,
                        "ConditionExpression": "accountId = :account_id",
                        "ExpressionAttributeValues": {":account_id": account_id},
                    }
                }
            ]

        logger.info(f"Moving Google link {google_email} from account {owner} to account {account_id}")
        return [
            {
                "Put": {
                    "TableName": self._table_name,
                    **link_item,
                    "ConditionExpression": "accountId = :previous_owner",
                    "ExpressionAttributeValues": {":previous_owner": owner},
                }
            },
            {
                "Delete": {
                    "TableName": self._table_name,
                    "Key": self._token_key(owner),
                    "ConditionExpression": "attribute_not_exists(PK) OR googleEmail = :email",
                    "ExpressionAttributeValues": {":email": google_email},
                }
            },
        ]

    def _release_link_item(self, google_email: str, account_id: str) -> Dict[str, Any]:
        return {
            "Delete": {
                "TableName": self._table_name,
                "Key": self._link_key(google_email),
                "ConditionExpression": "attribute_not_exists(PK) OR accountId = :account_id",
                "ExpressionAttributeValues": {":account_id": account_id},
            }
        }

    def _transact(self, items: List[Dict[str, Any]]) -> None:
        """Run a write transaction, converting lost races into ConstraintViolationError."""
        try:
            self._client.transact_write_items(TransactItems=items)
        except ClientError as e:
            if is_condition_failure(e) or is_transaction_conflict(e):
                raise ConstraintViolationError(str(e)) from e
            logger.error(f"Error writing Google token transaction: {e}")
            raise


def create_google_token_store() -> GoogleTokenStore:
    """
    Create appropriate token store based on environment configuration.

    Returns:
        GoogleTokenStore instance (DynamoDB if configured, otherwise in-memory)
    """
    table_name = os.getenv("DYNAMODB_GOOGLE_TOKENS_TABLE_NAME")
    if table_name:
        return DynamoDBGoogleTokenStore(table_name=table_name)

    logger.info(
        "DYNAMODB_GOOGLE_TOKENS_TABLE_NAME not set. Using in-memory Google token storage. "
        "This will not work in distributed deployments."
    )
    return InMemoryGoogleTokenStore()


# Singleton instance
_token_store: Optional[GoogleTokenStore] = None


def get_google_token_store() -> GoogleTokenStore:
    """Get the Google token store singleton."""
    global _token_store
    if _token_store is None:
        _token_store = create_google_token_store()
    return _token_store
