"""
Session cache for repository metrics.

Bundles are kept in memory for the lifetime of the owning client. Entries
expire lazily: a stale entry reads as a miss but stays in the store until it
is overwritten or invalidated.
"""

import time
from typing import Any, Callable

from repo_roster.config import get_cache_ttl
from repo_roster.identity import RepositoryIdentity
from repo_roster.models import CacheEntry, MetricsBundle

MODE_WITH_LOC = "loc"
MODE_WITHOUT_LOC = "noloc"


class MetricsCache:
    """TTL cache of MetricsBundle keyed by ``owner/repo:mode``."""

    def __init__(
        self,
        ttl_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Entry lifetime. Defaults to config.get_cache_ttl().
            clock: Time source in seconds; injectable for tests.
        """
        self.ttl_seconds = get_cache_ttl() if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def make_key(owner: str, repo: str, include_loc: bool) -> str:
        """
        Build the cache key for an identity and fetch mode.

        GitHub owner and repository names are case-insensitive, so the key is
        lower-cased to let differently cased references share an entry.
        """
        mode = MODE_WITH_LOC if include_loc else MODE_WITHOUT_LOC
        return f"{owner.lower()}/{repo.lower()}:{mode}"

    @classmethod
    def key_for(cls, identity: RepositoryIdentity, include_loc: bool) -> str:
        return cls.make_key(identity.owner, identity.repo, include_loc)

    def get(self, key: str) -> MetricsBundle | None:
        """Return the cached bundle, or None if missing or older than the TTL."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            return None
        return entry.bundle

    def put(self, key: str, bundle: MetricsBundle) -> None:
        """Store a bundle, overwriting any previous entry."""
        self._entries[key] = CacheEntry(timestamp=self._clock(), bundle=bundle)

    def invalidate(self, owner: str, repo: str) -> int:
        """
        Remove both fetch modes of one repository.

        Returns:
            Number of entries removed.
        """
        removed = 0
        for include_loc in (True, False):
            if self._entries.pop(self.make_key(owner, repo, include_loc), None):
                removed += 1
        return removed

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        count = len(self._entries)
        self._entries.clear()
        return count

    def stats(self) -> dict[str, Any]:
        """Return entry counts for diagnostics."""
        now = self._clock()
        valid = sum(
            1
            for entry in self._entries.values()
            if now - entry.timestamp < self.ttl_seconds
        )
        return {
            "total_entries": len(self._entries),
            "valid_entries": valid,
            "expired_entries": len(self._entries) - valid,
            "ttl_seconds": self.ttl_seconds,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
