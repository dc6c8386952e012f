"""Per-account locks that coalesce concurrent Google token refreshes.

Only locks live here, never tokens: the token store remains the single
source of truth for access tokens.
"""

import asyncio
import logging

from cachetools import LRUCache

logger = logging.getLogger(__name__)

# Default number of accounts to keep a lock for
DEFAULT_LOCK_CACHE_SIZE = 10000


class RefreshLocks:
    """
    LRU-bounded registry of asyncio locks, one per account.

    Evicting an idle lock is harmless: the next caller simply gets a new one.
    A lock that is evicted while held only loses its coalescing effect, the
    refresh itself stays correct because callers re-read the store under it.
    """

    def __init__(self, maxsize: int = DEFAULT_LOCK_CACHE_SIZE):
        self._locks: LRUCache = LRUCache(maxsize=maxsize)
        logger.info(f"Initialized refresh locks: maxsize={maxsize}")

    def get(self, account_id: str) -> asyncio.Lock:
        """Return the lock for an account, creating it on first use."""
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
