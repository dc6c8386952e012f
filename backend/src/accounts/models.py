"""Local account models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


class AccountKind(str, Enum):
    """How an account can authenticate."""

    PASSWORD = "password"
    GOOGLE = "google"
    PASSWORD_AND_GOOGLE = "password_and_google"

    @property
    def has_password(self) -> bool:
        return self in (AccountKind.PASSWORD, AccountKind.PASSWORD_AND_GOOGLE)

    def with_google(self) -> "AccountKind":
        """Kind after a Google identity has been linked."""
        if self == AccountKind.PASSWORD:
            return AccountKind.PASSWORD_AND_GOOGLE
        return self

    def without_google(self) -> "AccountKind":
        """
        Kind after the Google link has been removed.

        A Google-only account keeps its kind: it has no password, and signing in
        with Google again links it back through its email.
        """
        if self == AccountKind.PASSWORD_AND_GOOGLE:
            return AccountKind.PASSWORD
        return self


@dataclass
class Account:
    """
    Local account.

    Accounts created through Google sign-in have kind ``google`` and no
    password hash. Password hashing itself lives outside this service; the
    hash is stored opaquely.
    """

    account_id: str
    email: str
    name: Optional[str] = None
    kind: AccountKind = AccountKind.PASSWORD
    password_hash: Optional[str] = None
    created_at: str = field(default_factory=utc_now_iso)
    updated_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self):
        self.email = self.email.lower()
        if self.kind.has_password and not self.password_hash:
            raise ValueError(f"Account kind '{self.kind.value}' requires a password hash")

    def to_dynamo_item(self) -> Dict[str, Any]:
        """Convert to DynamoDB item format."""
        item = {
            "PK": f"ACCOUNT#{self.account_id}",
            "SK": "PROFILE",
            "accountId": self.account_id,
            "email": self.email,
            "kind": self.kind.value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

        if self.name:
            item["name"] = self.name

        if self.password_hash:
            item["passwordHash"] = self.password_hash

        return item

    @classmethod
    def from_dynamo_item(cls, item: Dict[str, Any]) -> "Account":
        """Create from DynamoDB item."""
        return cls(
            account_id=item["accountId"],
            email=item["email"],
            name=item.get("name"),
            kind=AccountKind(item.get("kind", AccountKind.PASSWORD.value)),
            password_hash=item.get("passwordHash"),
            created_at=item.get("createdAt", utc_now_iso()),
            updated_at=item.get("updatedAt", utc_now_iso()),
        )
