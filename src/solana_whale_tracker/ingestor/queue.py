"""Bounded event queue with load shedding.

The queue sits between signature discovery and event processing. Producers
never block: when depth reaches the high-water mark the queue enters
backpressure and drops offers until depth falls to the low-water mark.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_HIGH_WATER_MARK = 5000
DEFAULT_LOW_WATER_MARK = 4000

T = TypeVar("T")


class OfferResult(str, Enum):
    """Outcome of offering an event to the queue."""

    ACCEPTED = "accepted"
    DROPPED = "dropped"


@dataclass(frozen=True)
class QueueStats:
    """Point-in-time queue snapshot."""

    queue_size: int
    dedup_cache_size: int
    messages_processed: int
    messages_dropped: int
    is_in_backpressure: bool
    is_shutting_down: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue_size": self.queue_size,
            "dedup_cache_size": self.dedup_cache_size,
            "messages_processed": self.messages_processed,
            "messages_dropped": self.messages_dropped,
            "is_in_backpressure": self.is_in_backpressure,
            "is_shutting_down": self.is_shutting_down,
        }


class BackpressureQueue(Generic[T]):
    """Non-blocking bounded queue with hysteresis-based load shedding.

    Counters are process-lifetime and monotonic.
    """

    def __init__(
        self,
        *,
        high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
        low_water_mark: int = DEFAULT_LOW_WATER_MARK,
    ) -> None:
        if high_water_mark <= 0:
            raise ValueError("high_water_mark must be > 0")
        if not 0 <= low_water_mark < high_water_mark:
            raise ValueError("low_water_mark must be >= 0 and below high_water_mark")
        self._high = high_water_mark
        self._low = low_water_mark
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._in_backpressure = False
        self._shutting_down = False
        self._processed = 0
        self._dropped = 0

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    @property
    def is_in_backpressure(self) -> bool:
        return self._in_backpressure

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def messages_processed(self) -> int:
        return self._processed

    @property
    def messages_dropped(self) -> int:
        return self._dropped

    def _update_backpressure(self) -> None:
        depth = self._queue.qsize()
        if self._in_backpressure and depth <= self._low:
            self._in_backpressure = False
            logger.info("Backpressure released (depth=%d, low_water=%d)", depth, self._low)
        elif not self._in_backpressure and depth >= self._high:
            self._in_backpressure = True
            logger.warning(
                "Queue entered backpressure (depth=%d, high_water=%d)", depth, self._high
            )

    def offer(self, item: T) -> OfferResult:
        """Admit or drop an item without blocking."""
        self._update_backpressure()
        if self._shutting_down or self._in_backpressure:
            self._dropped += 1
            return OfferResult.DROPPED
        self._queue.put_nowait(item)
        return OfferResult.ACCEPTED

    async def get(self) -> T:
        """Wait for the next item."""
        item = await self._queue.get()
        self._update_backpressure()
        return item

    def get_nowait(self) -> T:
        """Next item, raising ``asyncio.QueueEmpty`` when there is none."""
        item = self._queue.get_nowait()
        self._update_backpressure()
        return item

    def mark_processed(self) -> None:
        """Record that a previously retrieved item has been consumed."""
        self._processed += 1
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every admitted item has been marked processed."""
        await self._queue.join()

    def begin_shutdown(self) -> None:
        """Stop admitting new items; queued items remain available."""
        self._shutting_down = True

    def stats(self, *, dedup_cache_size: int = 0) -> QueueStats:
        return QueueStats(
            queue_size=self._queue.qsize(),
            dedup_cache_size=dedup_cache_size,
            messages_processed=self._processed,
            messages_dropped=self._dropped,
            is_in_backpressure=self._in_backpressure,
            is_shutting_down=self._shutting_down,
        )
