"""Application session models."""

from dataclasses import dataclass, field
from typing import Any, Dict

from accounts.models import utc_now_iso


@dataclass
class SessionRefreshToken:
    """Long-lived application credential used to mint new sessions."""

    token: str
    account_id: str
    expires_at: int  # Unix timestamp
    created_at: str = field(default_factory=utc_now_iso)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_dynamo_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        return {
            "PK": f"SESSION#{self.token}",
            "SK": "REFRESH",
            # GSI for deleting every session of an account
            "GSI1PK": f"ACCOUNT#{self.account_id}",
            "GSI1SK": f"SESSION#{self.token}",
            "token": self.token,
            "accountId": self.account_id,
            "expiresAt": self.expires_at,  # Also the table TTL attribute
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dynamo_item(cls, item: Dict[str, Any]) -> "SessionRefreshToken":
        """Create from DynamoDB item."""
        return cls(
            token=item["token"],
            account_id=item["accountId"],
            expires_at=int(item["expiresAt"]),
            created_at=item.get("createdAt", utc_now_iso()),
        )


@dataclass
class SessionTokens:
    """Application session handed to the client after sign-in."""

    access_token: str
    refresh_token: str
    expires_in: int  # Session (refresh token) lifetime in seconds
    token_type: str = "Bearer"
