"""Redis persistence for ingestion checkpoints.

Each feed stores a hash of tracked address -> newest processed signature so
that a restarted ingestor resumes from where the previous process stopped.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from redis.asyncio import Redis

from solana_whale_tracker.ingestor.models import SignatureCursor

logger = logging.getLogger(__name__)

DEFAULT_KEY_PREFIX = "whale:checkpoint:"


class CheckpointStore:
    """Loads and saves signature cursors per feed. Fails open."""

    def __init__(self, redis: Redis | None, *, key_prefix: str = DEFAULT_KEY_PREFIX) -> None:
        self._redis = redis
        self._key_prefix = key_prefix

    def _key(self, feed: str) -> str:
        return f"{self._key_prefix}{feed}"

    async def load(self, feed: str) -> SignatureCursor:
        if self._redis is None:
            return {}
        try:
            raw = await self._redis.hgetall(self._key(feed))
        except Exception as e:
            logger.warning("Checkpoint load failed for feed %s: %s", feed, e)
            return {}

        cursor: SignatureCursor = {}
        for address, signature in (raw or {}).items():
            if isinstance(address, bytes):
                address = address.decode()
            if isinstance(signature, bytes):
                signature = signature.decode()
            cursor[str(address)] = str(signature)
        return cursor

    async def save(self, feed: str, cursor: Mapping[str, str]) -> None:
        if self._redis is None or not cursor:
            return
        try:
            await self._redis.hset(self._key(feed), mapping=dict(cursor))
        except Exception as e:
            logger.warning("Checkpoint save failed for feed %s: %s", feed, e)
