"""Recurring signature ingestion for a tracked wallet feed.

One ``SignatureIngestor`` exists per feed (whales, KOLs). Each ``tick``
discovers new signatures for the feed's addresses, filters them through the
shared dedup cache, asks the parser for a normalized swap and offers the
result to the shared backpressure queue.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from solana_whale_tracker.ingestor.checkpoint import CheckpointStore
from solana_whale_tracker.ingestor.dedup import DedupCache
from solana_whale_tracker.ingestor.models import (
    NormalizedSwapEvent,
    SignatureCursor,
    SignatureSource,
    TransactionParser,
)
from solana_whale_tracker.ingestor.queue import BackpressureQueue, OfferResult

logger = logging.getLogger(__name__)

AddressProvider = Callable[[], Awaitable[Sequence[str]]]


@dataclass(frozen=True)
class TickResult:
    """Summary of a single ingestion tick."""

    feed: str
    skipped: bool = False
    failed: bool = False
    fetched: int = 0
    duplicates: int = 0
    not_swaps: int = 0
    parse_failures: int = 0
    accepted: int = 0
    dropped: int = 0
    error: str | None = None


class SignatureIngestor:
    """Polls a feed's addresses for signatures and feeds the event queue.

    Ticks on one instance never overlap; a tick started while another is in
    flight returns immediately with ``skipped=True``. The cursor advances only
    when a tick completes, so a failed fetch is retried from the same point.
    """

    def __init__(
        self,
        feed: str,
        *,
        source: SignatureSource,
        parser: TransactionParser,
        dedup: DedupCache,
        queue: BackpressureQueue[NormalizedSwapEvent],
        address_provider: AddressProvider,
        checkpoints: CheckpointStore | None = None,
    ) -> None:
        self._feed = feed
        self._source = source
        self._parser = parser
        self._dedup = dedup
        self._queue = queue
        self._address_provider = address_provider
        self._checkpoints = checkpoints
        self._cursor: SignatureCursor = {}
        self._lock = asyncio.Lock()
        self._ticks_completed = 0

    @property
    def feed(self) -> str:
        return self._feed

    @property
    def cursor(self) -> SignatureCursor:
        return dict(self._cursor)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def ticks_completed(self) -> int:
        return self._ticks_completed

    async def restore_checkpoint(self) -> None:
        """Load the persisted cursor, if any."""
        if self._checkpoints is None:
            return
        restored = await self._checkpoints.load(self._feed)
        if restored:
            self._cursor.update(restored)
            logger.info("Restored %d checkpoints for feed %s", len(restored), self._feed)

    async def tick(self) -> TickResult:
        if self._lock.locked():
            logger.debug("Previous %s tick still running, skipping", self._feed)
            return TickResult(feed=self._feed, skipped=True)

        async with self._lock:
            return await self._run_tick()

    async def _run_tick(self) -> TickResult:
        try:
            addresses = list(await self._address_provider())
        except Exception as e:
            logger.warning("Failed to load tracked addresses for feed %s: %s", self._feed, e)
            return TickResult(feed=self._feed, failed=True, error=str(e))

        if not addresses:
            return TickResult(feed=self._feed)

        try:
            signatures = await self._source.fetch_signatures(addresses, dict(self._cursor))
        except Exception as e:
            logger.warning("Signature fetch failed for feed %s: %s", self._feed, e)
            return TickResult(feed=self._feed, failed=True, error=str(e))

        newest: SignatureCursor = {}
        duplicates = not_swaps = parse_failures = accepted = dropped = 0

        for sig in signatures:
            if sig.address:
                newest[sig.address] = sig.signature

            if await self._dedup.seen(sig.signature):
                duplicates += 1
                continue

            try:
                event = await self._parser.parse_transaction(sig)
            except Exception as e:
                parse_failures += 1
                logger.warning("Failed to parse %s (feed=%s): %s", sig.signature, self._feed, e)
                await self._dedup.mark_seen(sig.signature)
                continue

            # Another feed may have claimed the signature while we were parsing.
            if not await self._dedup.mark_seen(sig.signature):
                duplicates += 1
                continue

            if event is None:
                not_swaps += 1
                continue

            if self._queue.offer(event) is OfferResult.ACCEPTED:
                accepted += 1
            else:
                dropped += 1

        if newest:
            self._cursor.update(newest)
            if self._checkpoints is not None:
                await self._checkpoints.save(self._feed, newest)

        self._ticks_completed += 1
        if accepted or dropped or parse_failures:
            logger.info(
                "Feed %s tick: fetched=%d accepted=%d dropped=%d duplicates=%d parse_failures=%d",
                self._feed,
                len(signatures),
                accepted,
                dropped,
                duplicates,
                parse_failures,
            )

        return TickResult(
            feed=self._feed,
            fetched=len(signatures),
            duplicates=duplicates,
            not_swaps=not_swaps,
            parse_failures=parse_failures,
            accepted=accepted,
            dropped=dropped,
        )
