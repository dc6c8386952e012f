"""Account stores: abstract interface, in-memory and DynamoDB implementations."""

import copy
import logging
import os
from abc import ABC, abstractmethod
from typing import Dict, Optional

from botocore.exceptions import ClientError

from apis.shared.dynamodb import get_dynamodb_resource, is_condition_failure
from apis.shared.errors import ConstraintViolationError

from .models import Account, utc_now_iso

logger = logging.getLogger(__name__)


class AccountStore(ABC):
    """Abstract interface for local account persistence."""

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Get an account by its identifier."""
        pass

    @abstractmethod
    async def get_account_by_email(self, email: str) -> Optional[Account]:
        """Get an account by email (case-insensitive)."""
        pass

    @abstractmethod
    async def create_account(self, account: Account) -> Account:
        """
        Create a new account.

        Raises:
            ConstraintViolationError: If the id or the email is already taken
        """
        pass

    @abstractmethod
    async def update_account(self, account: Account) -> Account:
        """Replace an existing account record."""
        pass


class InMemoryAccountStore(AccountStore):
    """In-memory account storage (for single-instance/local development and tests)."""

    def __init__(self):
        self._accounts: Dict[str, Account] = {}
        self._ids_by_email: Dict[str, str] = {}

    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return copy.deepcopy(account) if account else None

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        account_id = self._ids_by_email.get(email.lower())
        if account_id is None:
            return None
        return await self.get_account(account_id)

    async def create_account(self, account: Account) -> Account:
        if account.account_id in self._accounts:
            raise ConstraintViolationError(f"Account {account.account_id} already exists")
        if account.email in self._ids_by_email:
            raise ConstraintViolationError(f"Email {account.email} is already registered")

        self._accounts[account.account_id] = copy.deepcopy(account)
        self._ids_by_email[account.email] = account.account_id
        logger.info(f"Created account {account.account_id} ({account.email})")
        return account

    async def update_account(self, account: Account) -> Account:
        existing = self._accounts.get(account.account_id)
        if existing is None:
            raise KeyError(f"Account {account.account_id} does not exist")
        if existing.email != account.email:
            raise ValueError("Account email cannot be changed through update_account")

        account.updated_at = utc_now_iso()
        self._accounts[account.account_id] = copy.deepcopy(account)
        return account


class DynamoDBAccountStore(AccountStore):
    """
    DynamoDB account storage.

    Table Schema:
        PK: ACCOUNT#<account_id>    SK: PROFILE    (account item)
        PK: EMAIL#<email>           SK: ACCOUNT    (email uniqueness item)

    The email item is written in the same transaction as the account item,
    which makes the email a unique key without relying on a GSI.
    """

    def __init__(self, table_name: Optional[str] = None, region: Optional[str] = None):
        """
        Initialize DynamoDB account store.

        Args:
            table_name: DynamoDB table name (defaults to DYNAMODB_ACCOUNTS_TABLE_NAME)
            region: AWS region (defaults to AWS_REGION)
        """
        self._table_name = table_name or os.getenv("DYNAMODB_ACCOUNTS_TABLE_NAME")
        if not self._table_name:
            raise ValueError("DYNAMODB_ACCOUNTS_TABLE_NAME must be set for DynamoDBAccountStore")

        self._dynamodb = get_dynamodb_resource(region)
        self._table = self._dynamodb.Table(self._table_name)
        self._client = self._table.meta.client
        logger.info(f"Initialized DynamoDB account store: table={self._table_name}")

    async def get_account(self, account_id: str) -> Optional[Account]:
        try:
            response = self._table.get_item(
                Key={"PK": f"ACCOUNT#{account_id}", "SK": "PROFILE"},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Error getting account {account_id}: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return Account.from_dynamo_item(item)

    async def get_account_by_email(self, email: str) -> Optional[Account]:
        try:
            response = self._table.get_item(
                Key={"PK": f"EMAIL#{email.lower()}", "SK": "ACCOUNT"},
                ConsistentRead=True,
            )
        except ClientError as e:
            logger.error(f"Error looking up account by email {email}: {e}")
            raise

        item = response.get("Item")
        if not item:
            return None
        return await self.get_account(item["accountId"])

    async def create_account(self, account: Account) -> Account:
        try:
            self._client.transact_write_items(
                TransactItems=[
                    {
                        "Put": {
                            "TableName": self._table_name,
                            "Item": account.to_dynamo_item(),
                            "ConditionExpression": "attribute_not_exists(PK)",
                        }
                    },
                    {
                        "Put": {
                            "TableName": self._table_name,
                            "Item": {
                                "PK": f"EMAIL#{account.email}",
                                "SK": "ACCOUNT",
                                "accountId": account.account_id,
                            },
                            "ConditionExpression": "attribute_not_exists(PK)",
                        }
                    },
                ]
            )
        except ClientError as e:
            if is_condition_failure(e):
                raise ConstraintViolationError(
                    f"Account {account.account_id} or email {account.email} already exists"
                ) from e
            logger.error(f"Error creating account: {e}")
            raise

        logger.info(f"Created account {account.account_id} ({account.email})")
        return account

    async def update_account(self, account: Account) -> Account:
        account.updated_at = utc_now_iso()
        try:
            self._table.put_item(
                Item=account.to_dynamo_item(),
                ConditionExpression="attribute_exists(PK) AND email = :email",
                ExpressionAttributeValues={":email": account.email},
            )
        except ClientError as e:
            if is_condition_failure(e):
                raise KeyError(
                    f"Account {account.account_id} does not exist or its email changed"
                ) from e
            logger.error(f"Error updating account {account.account_id}: {e}")
            raise

        logger.debug(f"Updated account {account.account_id}")
        return account


def create_account_store() -> AccountStore:
    """
    Create appropriate account store based on environment configuration.

    Returns:
        AccountStore instance (DynamoDB if configured, otherwise in-memory)
    """
    table_name = os.getenv("DYNAMODB_ACCOUNTS_TABLE_NAME")
    if table_name:
        return DynamoDBAccountStore(table_name=table_name)

    logger.info(
        "DYNAMODB_ACCOUNTS_TABLE_NAME not set. Using in-memory account storage. "
        "This will not work in distributed deployments."
    )
    return InMemoryAccountStore()


# Singleton instance
_account_store: Optional[AccountStore] = None


def get_account_store() -> AccountStore:
    """Get the account store singleton."""
    global _account_store
    if _account_store is None:
        _account_store = create_account_store()
    return _account_store
