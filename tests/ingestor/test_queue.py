"""Tests for the backpressure queue."""

from __future__ import annotations

import pytest

from solana_whale_tracker.ingestor.queue import BackpressureQueue, OfferResult


class TestBackpressureQueueInit:
    def test_default_water_marks(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue()
        for i in range(5000):
            assert queue.offer(i) is OfferResult.ACCEPTED
        assert queue.offer(5000) is OfferResult.DROPPED

    @pytest.mark.parametrize("high,low", [(0, 0), (10, 10), (10, 11), (10, -1)])
    def test_rejects_invalid_water_marks(self, high: int, low: int) -> None:
        with pytest.raises(ValueError):
            BackpressureQueue(high_water_mark=high, low_water_mark=low)


class TestOffer:
    def test_accepts_below_high_water(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue(high_water_mark=3, low_water_mark=1)

        assert [queue.offer(i) for i in range(3)] == [OfferResult.ACCEPTED] * 3
        assert queue.depth == 3
        assert queue.messages_dropped == 0

    def test_drops_at_high_water(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue(high_water_mark=3, low_water_mark=1)
        for i in range(3):
            queue.offer(i)

        assert queue.offer(99) is OfferResult.DROPPED
        assert queue.is_in_backpressure
        assert queue.messages_dropped == 1
        assert queue.depth == 3

    async def test_hysteresis_until_low_water(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue(high_water_mark=3, low_water_mark=1)
        for i in range(3):
            queue.offer(i)
        queue.offer(99)

        # Depth 2 is above the low-water mark: still shedding
        await queue.get()
        queue.mark_processed()
        assert queue.is_in_backpressure
        assert queue.offer(100) is OfferResult.DROPPED

        # Depth 1 releases backpressure
        await queue.get()
        queue.mark_processed()
        assert not queue.is_in_backpressure
        assert queue.offer(101) is OfferResult.ACCEPTED
        assert queue.messages_dropped == 2

    def test_drops_after_shutdown(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue(high_water_mark=3, low_water_mark=1)
        queue.offer(1)
        queue.begin_shutdown()

        assert queue.offer(2) is OfferResult.DROPPED
        assert queue.depth == 1
        assert queue.get_nowait() == 1


class TestCounters:
    async def test_processed_counted_on_mark(self) -> None:
        queue: BackpressureQueue[str] = BackpressureQueue(high_water_mark=10, low_water_mark=5)
        queue.offer("a")
        queue.offer("b")

        assert queue.messages_processed == 0
        await queue.get()
        queue.mark_processed()
        assert queue.messages_processed == 1

    async def test_join_waits_for_processing(self) -> None:
        queue: BackpressureQueue[str] = BackpressureQueue(high_water_mark=10, low_water_mark=5)
        queue.offer("a")
        queue.get_nowait()
        queue.mark_processed()

        await queue.join()

    def test_stats_snapshot(self) -> None:
        queue: BackpressureQueue[int] = BackpressureQueue(high_water_mark=1, low_water_mark=0)
        queue.offer(1)
        queue.offer(2)

        stats = queue.stats(dedup_cache_size=7)
        assert stats.to_dict() == {
            "queue_size": 1,
            "dedup_cache_size": 7,
            "messages_processed": 0,
            "messages_dropped": 1,
            "is_in_backpressure": True,
            "is_shutting_down": False,
        }
