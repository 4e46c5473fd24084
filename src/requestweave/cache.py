"""Response cache for idempotent reads.

The store keeps one ``CacheEntry`` per request signature. Expiry is lazy: an
entry is checked against its own TTL when it is looked up and evicted then;
nothing sweeps the store in the background. Size is bounded with an LRU
policy so a long-running client cannot grow without limit.
"""

import copy
import time
from collections.abc import Callable, Mapping
from typing import Any

from cachetools import LRUCache  # type: ignore[import-untyped]
from pydantic import BaseModel

from .log_config import logger
from .types import CacheConfig, merge_config


class CacheEntry(BaseModel):
    """A cached payload with the timestamp and TTL in force when it was stored."""

    payload: Any
    stored_at: float
    ttl: float
    path: str | None = None

    def is_expired(self, now: float) -> bool:
        return now - self.stored_at >= self.ttl


class CacheStore:
    """Key/value store of cached response payloads with lazy TTL expiry.

    Entries keep the TTL that was configured when they were stored, so a later
    ``reconfigure`` only affects entries written afterwards.

    Attributes:
        _config: Current cache configuration.
        _entries: Bounded LRU mapping of signature to entry.
        _clock: Monotonic time source in seconds, injectable for tests.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        max_size: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._config = config or CacheConfig()
        self._entries: LRUCache[str, CacheEntry] = LRUCache(maxsize=max_size)  # type: ignore[type-arg]
        self._clock = clock
        logger.debug(
            f"CacheStore initialized. Enabled: {self._config.enabled}, "
            f"TTL: {self._config.ttl}s, max size: {max_size}"
        )

    @property
    def config(self) -> CacheConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def lookup(self, signature: str) -> CacheEntry | None:
        """Return the entry for ``signature`` if present and unexpired.

        An expired entry encountered here is evicted.
        """
        entry = self._entries.get(signature)
        if entry is None:
            logger.debug(f"Cache miss for key: {signature}")
            return None
        if entry.is_expired(self._clock()):
            logger.debug(f"Cache entry expired for key: {signature}, evicting")
            self._entries.pop(signature, None)
            return None
        logger.debug(f"Cache hit for key: {signature}")
        return entry

    def store(self, signature: str, payload: Any, *, path: str | None = None) -> None:
        """Store a copy of ``payload`` under ``signature``, overwriting any previous entry."""
        self._entries[signature] = CacheEntry(
            payload=copy.deepcopy(payload),
            stored_at=self._clock(),
            ttl=self._config.ttl,
            path=path,
        )
        logger.debug(f"Cached payload for key: {signature} (TTL: {self._config.ttl}s)")

    def clear(self) -> None:
        """Drop every entry."""
        count = len(self._entries)
        self._entries.clear()
        logger.debug(f"Cache cleared ({count} entries dropped)")

    def invalidate(self, path_prefix: str) -> int:
        """Drop entries stored for paths starting with ``path_prefix``.

        Returns:
            int: The number of entries removed.
        """
        prefix = "/" + path_prefix.lstrip("/")
        stale = [
            key
            for key, entry in list(self._entries.items())
            if entry.path is not None and entry.path.startswith(prefix)
        ]
        for key in stale:
            self._entries.pop(key, None)
        if stale:
            logger.debug(f"Invalidated {len(stale)} cache entries under {prefix}")
        return len(stale)

    def reconfigure(self, update: CacheConfig | Mapping[str, Any]) -> CacheConfig:
        """Merge ``update`` into the current configuration and return the result."""
        self._config = merge_config(self._config, update)
        logger.info(
            f"Cache reconfigured. Enabled: {self._config.enabled}, TTL: {self._config.ttl}s"
        )
        return self._config

    def __len__(self) -> int:
        return len(self._entries)
