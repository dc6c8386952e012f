"""DynamoDB helpers shared by the account, token and session stores."""

import logging
import os
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


def get_dynamodb_resource(region: Optional[str] = None):
    """
    Create a DynamoDB service resource.

    Honors AWS_PROFILE for local development; otherwise uses the default
    credential chain.

    Args:
        region: AWS region (defaults to AWS_REGION or us-west-2)
    """
    region = region or os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-west-2"))

    profile = os.getenv("AWS_PROFILE")
    if profile:
        session = boto3.Session(profile_name=profile)
        return session.resource("dynamodb", region_name=region)
    return boto3.resource("dynamodb", region_name=region)


def cancellation_reasons(error: ClientError) -> List[str]:
    """Per-item cancellation codes of a cancelled transaction ("None" for items that passed)."""
    reasons = error.response.get("CancellationReasons") or []
    return [reason.get("Code", "None") for reason in reasons]


def is_condition_failure(error: ClientError) -> bool:
    """
    True if a write was rejected by its condition expression.

    Covers both single-item writes (ConditionalCheckFailedException) and
    transactions cancelled because one of their conditions failed.
    """
    code = error.response.get("Error", {}).get("Code")
    if code == "ConditionalCheckFailedException":
        return True
    if code == "TransactionCanceledException":
        return "ConditionalCheckFailed" in cancellation_reasons(error)
    return False


def is_transaction_conflict(error: ClientError) -> bool:
    """True if a transaction lost a race with another in-flight transaction."""
    code = error.response.get("Error", {}).get("Code")
    if code == "TransactionConflictException":
        return True
    if code == "TransactionCanceledException":
        return "TransactionConflict" in cancellation_reasons(error)
    return False
