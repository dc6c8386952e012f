"""Maps a Google identity to a local account."""

import logging
import uuid
from dataclasses import replace
from typing import Optional

from accounts.models import Account, AccountKind
from accounts.repository import AccountStore
from apis.shared.errors import ConstraintViolationError
from apis.shared.google.token_repository import GoogleTokenStore

from .models import Resolution, ResolutionSource

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Resolves which local account a Google sign-in belongs to.

    Priority order (highest to lowest):
    1. The account the caller is already signed in as
    2. The account that already has this Google email linked
    3. An existing account whose own email equals the Google email
    4. A new Google-only account
    """

    def __init__(self, account_store: AccountStore, token_store: GoogleTokenStore):
        self.account_store = account_store
        self.token_store = token_store

    async def resolve(
        self,
        google_email: str,
        google_name: Optional[str] = None,
        authenticated_account: Optional[Account] = None,
    ) -> Resolution:
        """
        Resolve (and if needed create) the local account for a Google identity.

        Args:
            google_email: Email reported by Google
            google_name: Display name reported by Google, if any
            authenticated_account: Account the request is signed in as, if any

        Returns:
            Resolution with the account and the rule that matched
        """
        google_email = google_email.lower()
        resolution = await self._find_or_create(google_email, google_name, authenticated_account)
        logger.info(
            f"Resolved Google identity {google_email} to account "
            f"{resolution.account.account_id} via {resolution.matched_by.value}"
        )

        account = await self._sync_profile(resolution.account, google_name)
        return Resolution(account=account, matched_by=resolution.matched_by)

    async def _find_or_create(
        self,
        google_email: str,
        google_name: Optional[str],
        authenticated_account: Optional[Account],
    ) -> Resolution:
        # 1. Signed-in account wins, whatever the emails say
        if authenticated_account is not None:
            return Resolution(account=authenticated_account, matched_by=ResolutionSource.AUTHENTICATED)

        # 2. Google email already linked somewhere
        linked = await self.token_store.get_token_by_google_email(google_email)
        if linked is not None:
            account = await self.account_store.get_account(linked.account_id)
            if account is not None:
                return Resolution(account=account, matched_by=ResolutionSource.LINKED_GOOGLE_ACCOUNT)
            logger.warning(
                f"Google email {google_email} is linked to missing account {linked.account_id}"
            )

        # 3. Local account with the same email
        account = await self.account_store.get_account_by_email(google_email)
        if account is not None:
            return Resolution(account=account, matched_by=ResolutionSource.MATCHING_EMAIL)

        # 4. New Google-only account
        new_account = Account(
            account_id=str(uuid.uuid4()),
            email=google_email,
            name=google_name,
            kind=AccountKind.GOOGLE,
        )
        try:
            created = await self.account_store.create_account(new_account)
        except ConstraintViolationError:
            # Another callback for the same email created it first
            account = await self.account_store.get_account_by_email(google_email)
            if account is None:
                raise
            return Resolution(account=account, matched_by=ResolutionSource.MATCHING_EMAIL)

        logger.info(f"Created Google account {created.account_id} for {google_email}")
        return Resolution(account=created, matched_by=ResolutionSource.NEW_ACCOUNT)

    async def _sync_profile(self, account: Account, google_name: Optional[str]) -> Account:
        """
        Backfill the display name and record the Google link on the account kind.

        Failures are logged and the unmodified account is returned; the sign-in
        does not depend on this update.
        """
        name = google_name if google_name and not account.name else account.name
        kind = account.kind.with_google()
        if name == account.name and kind == account.kind:
            return account

        try:
            return await self.account_store.update_account(replace(account, name=name, kind=kind))
        except Exception as e:
            logger.warning(f"Failed to update profile for account {account.account_id}: {e}")
            return account
