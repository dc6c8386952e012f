"""Google token record stored per local account."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from accounts.models import utc_now_iso


@dataclass
class GoogleToken:
    """User's Google tokens, one record per local account."""

    account_id: str
    google_email: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None  # Unix timestamp; None never expires
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self):
        self.google_email = self.google_email.lower()

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def is_expired(self, leeway_seconds: int = 0, now: Optional[float] = None) -> bool:
        """
        Check if the access token has expired.

        Args:
            leeway_seconds: Treat the token as expired this many seconds early
            now: Current unix time (defaults to time.time())
        """
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return now + leeway_seconds >= self.expires_at

    def to_dynamo_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        item = {
            "PK": f"ACCOUNT#{self.account_id}",
            "SK": "GOOGLE_TOKEN",
            "accountId": self.account_id,
            "googleEmail": self.google_email,
            "accessToken": self.access_token,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

        if self.refresh_token:
            item["refreshToken"] = self.refresh_token

        if self.expires_at is not None:
            item["expiresAt"] = self.expires_at

        return item

    @classmethod
    def from_dynamo_item(cls, item: Dict[str, Any]) -> "GoogleToken":
        """Create from DynamoDB item."""
        expires_at = item.get("expiresAt")
        return cls(
            account_id=item["accountId"],
            google_email=item["googleEmail"],
            access_token=item["accessToken"],
            refresh_token=item.get("refreshToken"),
            # boto3 returns numbers as Decimal
            expires_at=int(expires_at) if expires_at is not None else None,
            created_at=item.get("createdAt", utc_now_iso()),
            updated_at=item.get("updatedAt", utc_now_iso()),
        )
