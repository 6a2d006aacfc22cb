"""User OAuth token cache."""

import logging
import threading

from .config import Config
from .models import CacheEntry, CacheKey
from .store import TokenStore

logger = logging.getLogger("tokenchain.cache")


class TokenCache:
    """Previously obtained user credentials, keyed by CacheKey.

    Responsibilities:
    - Answer exact-key queries, independent of account email
    - Keep one entry per (key, email); the last write wins
    - Mirror entries to a TokenStore when one is configured
    """

    def __init__(self, store: TokenStore | None = None):
        """Initialize TokenCache.

        Args:
            store: Disk store. If None, the cache only lives for this session.
        """
        self.store = store
        self._entries: dict[tuple[str, str], CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "TokenCache":
        store = TokenStore(config.cache_dir) if config.cache_dir else None
        return cls(store)

    def query(self, key: CacheKey) -> list[CacheEntry]:
        """Entries whose key equals ``key``, in insertion order.

        Equality is exact: same scope set, same client, same package. An
        entry for a wider scope set is not a match.
        """
        with self._lock:
            if self.store is not None:
                for entry in self.store.read_entries(key):
                    self._entries[(entry.content_hash, entry.email)] = entry
            matches = [e for e in self._entries.values() if e.key == key]

        logger.debug(f"Cache query {key.hash}: {len(matches)} match(es)")
        return matches

    def insert(self, entry: CacheEntry) -> None:
        """Add ``entry``, replacing any entry with the same key and email."""
        with self._lock:
            self._entries[(entry.content_hash, entry.email)] = entry
            if self.store is not None:
                self.store.write_entry(entry)
        logger.debug(f"Cached token for {entry.email} under {entry.content_hash}")

    def __len__(self) -> int:
        return len(self._entries)
