"""Time-windowed signature dedup cache.

Signatures are remembered in an insertion-ordered in-memory map for a
retention window. Entries can optionally be mirrored to Redis so that a
restarted process does not re-emit signatures it already handled.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Callable

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 600  # 10 minutes
DEFAULT_MAX_ENTRIES = 100_000
DEFAULT_KEY_PREFIX = "whale:dedup:"


class DedupCache:
    """Capped TTL map of processed signatures.

    Once ``mark_seen`` has returned for a signature, ``seen`` reports True
    for it until the entry ages out of the retention window. The in-memory
    write happens before any I/O, so concurrent tasks observe it at once.

    Redis failures are logged and treated as a cache miss.
    """

    def __init__(
        self,
        *,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        redis: Redis | None = None,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be > 0")
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._retention = retention_seconds
        self._max_entries = max_entries
        self._redis = redis
        self._key_prefix = key_prefix
        self._clock = clock
        self._entries: OrderedDict[str, float] = OrderedDict()

    def _key(self, signature: str) -> str:
        return f"{self._key_prefix}{signature}"

    def _purge(self, now: float) -> None:
        cutoff = now - self._retention
        while self._entries:
            signature, first_seen = next(iter(self._entries.items()))
            if first_seen > cutoff:
                break
            del self._entries[signature]
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def _remember(self, signature: str, now: float) -> None:
        self._entries[signature] = now
        self._purge(now)

    async def seen(self, signature: str) -> bool:
        """Whether the signature was processed within the retention window."""
        now = self._clock()
        self._purge(now)
        if signature in self._entries:
            return True
        if self._redis is None:
            return False

        try:
            exists = await self._redis.exists(self._key(signature))
        except Exception as e:
            logger.warning("Dedup lookup failed for %s: %s", signature, e)
            return False

        if exists and signature not in self._entries:
            self._remember(signature, now)
        return bool(exists)

    async def mark_seen(self, signature: str) -> bool:
        """Record a signature as processed.

        Returns:
            True if this call recorded it first, False if it was already known.
        """
        now = self._clock()
        self._purge(now)
        if signature in self._entries:
            return False
        self._remember(signature, now)

        if self._redis is None:
            return True
        try:
            created = await self._redis.set(
                self._key(signature), "1", ex=self._retention, nx=True
            )
        except Exception as e:
            logger.warning("Dedup persist failed for %s: %s", signature, e)
            return True
        return bool(created)

    def size(self) -> int:
        """Number of live in-memory entries."""
        self._purge(self._clock())
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
