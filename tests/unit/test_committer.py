"""
Unit tests for the asynchronous batch committer.

Tests cover:
- Capacity, timer, forced and shutdown flush triggers
- Ordering of force flushes relative to submissions
- Timer restart after capacity and forced flushes
- Failure handling (drop and continue, no retry)
- Bounded shutdown drain and lost-series accounting
- Lifecycle errors
"""

import asyncio
import logging

import pytest

from influx_cli.client.memory import InMemoryStoreClient
from influx_cli.commit import BatchCommitter, FlushTrigger
from influx_cli.config import CommitterConfig
from influx_cli.errors import CommitterClosedError, StoreError
from influx_cli.series import Series

# Long enough that the timer never fires during a test that doesn't want it
NO_TIMER = 60.0


def point(name: str, value: int = 1) -> Series:
    return Series.single(name, ["value"], [value])


def batch_names(batch):
    return [s.name for s in batch]


class TestCommitterFlushTriggers:
    """Tests for the four flush triggers."""

    @pytest.fixture
    async def store(self):
        """Create a connected in-memory store."""
        store = InMemoryStoreClient()
        await store.connect()
        yield store
        await store.close()

    def _committer(self, store, capacity=10, max_wait=NO_TIMER, drain_timeout=5.0):
        return BatchCommitter(
            store,
            CommitterConfig(
                capacity=capacity,
                max_wait_seconds=max_wait,
                drain_timeout_seconds=drain_timeout,
            ),
        )

    @pytest.mark.asyncio
    async def test_capacity_flushes(self, store):
        """N series with capacity C give floor(N/C) capacity flushes plus the remainder on shutdown."""
        committer = self._committer(store, capacity=10)
        committer.start()

        for i in range(25):
            await committer.submit(point(f"s{i}"))
        result = await committer.shutdown()

        assert [len(b) for b in store.write_calls] == [10, 10, 5]
        assert result.completed
        assert result.count == 5
        assert committer.stats["flushes_by_trigger"]["capacity_reached"] == 2
        assert committer.stats["flushes_by_trigger"]["shutdown_drain"] == 1
        assert committer.stats["written_count"] == 25

    @pytest.mark.asyncio
    async def test_capacity_batches_keep_order(self, store):
        """[A, B, C] with capacity 2 is written as [A, B] then [C]."""
        committer = self._committer(store, capacity=2)
        committer.start()

        for name in ("A", "B", "C"):
            await committer.submit(point(name))
        await committer.shutdown()

        assert [batch_names(b) for b in store.write_calls] == [["A", "B"], ["C"]]

    @pytest.mark.asyncio
    async def test_exact_multiple_has_empty_drain(self, store):
        """When N is a multiple of C the shutdown flush writes nothing."""
        committer = self._committer(store, capacity=3)
        committer.start()

        for i in range(6):
            await committer.submit(point(f"s{i}"))
        result = await committer.shutdown()

        assert len(store.write_calls) == 2
        assert result.completed
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_shutdown_writes_everything_once(self, store):
        """3 series under capacity are written in exactly one call on shutdown."""
        committer = self._committer(store, capacity=10)
        committer.start()

        for name in ("A", "B", "C"):
            await committer.submit(point(name))
        result = await committer.shutdown()

        assert len(store.write_calls) == 1
        assert batch_names(store.write_calls[0]) == ["A", "B", "C"]
        assert result.count == 3
        assert result.success

    @pytest.mark.asyncio
    async def test_timer_flush(self, store):
        """A lone series is flushed once max_wait passes."""
        committer = self._committer(store, capacity=100, max_wait=0.05)
        committer.start()

        await committer.submit(point("A"))
        assert await store.wait_for_writes(1, timeout=2.0)

        assert batch_names(store.write_calls[0]) == ["A"]
        assert committer.stats["flushes_by_trigger"]["timer_elapsed"] == 1
        await committer.shutdown()

    @pytest.mark.asyncio
    async def test_timer_on_empty_buffer_writes_nothing(self, store):
        """Timer ticks with nothing buffered make no store call."""
        committer = self._committer(store, max_wait=0.01)
        committer.start()

        await asyncio.sleep(0.1)
        await committer.shutdown()

        assert store.write_calls == []
        assert committer.stats["flush_count"] == 0

    @pytest.mark.asyncio
    async def test_force_flush_empty_buffer(self, store):
        """A forced flush of an empty buffer makes no store call."""
        committer = self._committer(store)
        committer.start()

        result = await committer.force_flush(wait=True)

        assert result.trigger == FlushTrigger.FORCED_FLUSH
        assert result.count == 0
        assert store.write_calls == []
        await committer.shutdown()

    @pytest.mark.asyncio
    async def test_force_flush_precedes_later_submissions(self, store):
        """Buffered [X], force_flush(), submit(Y): [X] is written before Y is buffered."""
        committer = self._committer(store)
        committer.start()

        await committer.submit(point("X"))
        await committer.force_flush()
        await committer.submit(point("Y"))
        await committer.shutdown()

        assert [batch_names(b) for b in store.write_calls] == [["X"], ["Y"]]

    @pytest.mark.asyncio
    async def test_force_flush_wait_returns_result(self, store):
        """force_flush(wait=True) reports the flushed batch."""
        committer = self._committer(store)
        committer.start()

        await committer.submit(point("A"))
        await committer.submit(point("B"))
        result = await committer.force_flush(wait=True)

        assert result.count == 2
        assert result.success
        assert len(store.write_calls) == 1
        await committer.shutdown()

    @pytest.mark.asyncio
    async def test_capacity_flush_restarts_timer(self, store):
        """After a capacity flush the next series waits a full max_wait."""
        committer = self._committer(store, capacity=2, max_wait=0.5)
        committer.start()

        await committer.submit(point("A"))
        await asyncio.sleep(0.3)
        await committer.submit(point("B"))
        await committer.submit(point("C"))
        # past the first deadline, short of the restarted one
        await asyncio.sleep(0.35)

        assert [batch_names(b) for b in store.write_calls] == [["A", "B"]]
        assert await store.wait_for_writes(2, timeout=2.0)
        assert batch_names(store.write_calls[1]) == ["C"]
        assert committer.stats["flushes_by_trigger"]["timer_elapsed"] == 1
        await committer.shutdown()

    @pytest.mark.asyncio
    async def test_forced_flush_restarts_timer(self, store):
        """After a forced flush the next series waits a full max_wait."""
        committer = self._committer(store, capacity=100, max_wait=0.5)
        committer.start()

        await committer.submit(point("A"))
        await asyncio.sleep(0.3)
        await committer.force_flush(wait=True)
        await committer.submit(point("B"))
        await asyncio.sleep(0.35)

        assert [batch_names(b) for b in store.write_calls] == [["A"]]
        assert await store.wait_for_writes(2, timeout=2.0)
        assert batch_names(store.write_calls[1]) == ["B"]
        assert committer.stats["flushes_by_trigger"]["timer_elapsed"] == 1
        await committer.shutdown()


class TestCommitterFailures:
    """Tests for write failure handling."""

    @pytest.fixture
    async def store(self):
        """Create a connected in-memory store."""
        store = InMemoryStoreClient()
        await store.connect()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_failed_batch_dropped_not_retried(self, store, caplog):
        """A failed batch is logged with its size and never written again."""
        store.fail_writes(times=1)
        committer = BatchCommitter(store, CommitterConfig(capacity=2, max_wait_seconds=NO_TIMER))
        committer.start()

        with caplog.at_level(logging.ERROR, logger="influx_cli.commit.committer"):
            for name in ("A", "B", "C", "D"):
                await committer.submit(point(name))
            await committer.shutdown()

        assert [batch_names(b) for b in store.write_calls] == [["A", "B"], ["C", "D"]]
        assert [s.name for s in store.written_series()] == ["C", "D"]
        assert "Failed to write 2 series" in caplog.text
        assert committer.stats["lost_count"] == 2
        assert committer.stats["failed_flushes"] == 1

    @pytest.mark.asyncio
    async def test_keeps_running_under_persistent_failure(self, store):
        """A store that always errors doesn't stop the loop."""
        store.fail_writes()
        committer = BatchCommitter(store, CommitterConfig(capacity=1, max_wait_seconds=NO_TIMER))
        committer.start()

        for i in range(6):
            await committer.submit(point(f"s{i}"))
        assert await store.wait_for_writes(6, timeout=2.0)

        assert committer.is_running
        assert committer.accepting
        assert store.failed_writes == 6
        result = await committer.shutdown()
        assert result.completed

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_not_fatal(self, store):
        """Non-store exceptions from the client are handled like store errors."""
        store.fail_writes(RuntimeError("boom"), times=1)
        committer = BatchCommitter(store, CommitterConfig(capacity=1, max_wait_seconds=NO_TIMER))
        committer.start()

        await committer.submit(point("A"))
        await committer.submit(point("B"))
        await committer.shutdown()

        assert [s.name for s in store.written_series()] == ["B"]

    @pytest.mark.asyncio
    async def test_failed_drain_reports_failure(self, store):
        """The shutdown flush result says whether the store accepted it."""
        store.fail_writes(StoreError("Server returned (500): down", 500))
        committer = BatchCommitter(store, CommitterConfig(max_wait_seconds=NO_TIMER))
        committer.start()

        await committer.submit(point("A"))
        result = await committer.shutdown()

        assert result.completed
        assert result.count == 1
        assert not result.success


class TestCommitterLifecycle:
    """Tests for start/shutdown and misuse."""

    @pytest.fixture
    async def store(self):
        """Create a connected in-memory store."""
        store = InMemoryStoreClient()
        await store.connect()
        yield store
        await store.close()

    @pytest.mark.asyncio
    async def test_submit_before_start(self, store):
        """Submitting to a committer that isn't running raises."""
        committer = BatchCommitter(store)

        with pytest.raises(CommitterClosedError):
            await committer.submit(point("A"))

    @pytest.mark.asyncio
    async def test_submit_after_shutdown(self, store):
        """Submitting after shutdown raises CommitterClosedError."""
        committer = BatchCommitter(store)
        committer.start()
        await committer.shutdown()

        with pytest.raises(CommitterClosedError):
            await committer.submit(point("A"))
        with pytest.raises(CommitterClosedError):
            await committer.force_flush()

    @pytest.mark.asyncio
    async def test_restart_after_shutdown(self, store):
        """A shut down committer cannot be started again."""
        committer = BatchCommitter(store)
        committer.start()
        await committer.shutdown()

        with pytest.raises(CommitterClosedError):
            committer.start()

    @pytest.mark.asyncio
    async def test_shutdown_without_start(self, store):
        """Shutting down a committer that never ran is a completed no-op."""
        committer = BatchCommitter(store)

        result = await committer.shutdown()

        assert result.completed
        assert result.count == 0

    @pytest.mark.asyncio
    async def test_drain_timeout(self, store):
        """A hung store can't hold up shutdown past the timeout."""
        store.set_write_delay(5.0)
        committer = BatchCommitter(store, CommitterConfig(max_wait_seconds=NO_TIMER))
        committer.start()

        await committer.submit(point("A"))
        result = await committer.shutdown(timeout=0.1)

        assert not result.completed
        assert not committer.is_running

    @pytest.mark.asyncio
    async def test_drain_timeout_counts_lost_series(self, store, caplog):
        """Series stuck in a hung write are counted as lost when the drain gives up."""
        store.set_write_delay(5.0)
        committer = BatchCommitter(store, CommitterConfig(max_wait_seconds=NO_TIMER))
        committer.start()
        for name in ("A", "B", "C"):
            await committer.submit(point(name))

        with caplog.at_level(logging.WARNING, logger="influx_cli.commit.committer"):
            result = await committer.shutdown(timeout=0.2)

        assert not result.completed
        assert [r.lost for r in caplog.records if hasattr(r, "lost")] == [3]
        assert committer.stats["lost_count"] == 3
        assert committer.stats["failed_flushes"] == 1

    @pytest.mark.asyncio
    async def test_drain_timeout_counts_queued_series(self, store):
        """Series still queued behind a hung write are counted as lost too."""
        store.set_write_delay(5.0)
        committer = BatchCommitter(store, CommitterConfig(capacity=2, max_wait_seconds=NO_TIMER))
        committer.start()
        for name in ("A", "B", "C"):
            await committer.submit(point(name))

        result = await committer.shutdown(timeout=0.2)

        assert not result.completed
        assert batch_names(store.write_calls[0]) == ["A", "B"]
        assert committer.stats["lost_count"] == 3
        assert committer.stats["written_count"] == 0

    @pytest.mark.asyncio
    async def test_second_shutdown_reports_first_drain(self, store):
        """Calling shutdown twice returns the same drain outcome."""
        committer = BatchCommitter(store)
        committer.start()
        await committer.submit(point("A"))

        first = await committer.shutdown()
        second = await committer.shutdown()

        assert first.completed and second.completed
        assert first.count == second.count == 1
        assert len(store.write_calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_shutdowns(self, store):
        """Concurrent shutdown calls share a single drain."""
        committer = BatchCommitter(store)
        committer.start()
        await committer.submit(point("A"))

        results = await asyncio.gather(committer.shutdown(), committer.shutdown())

        assert all(r.completed for r in results)
        assert len(store.write_calls) == 1

    @pytest.mark.asyncio
    async def test_context_manager(self, store):
        """async with starts the committer and drains it on exit."""
        async with BatchCommitter(store) as committer:
            assert committer.accepting
            await committer.submit(point("A"))

        assert not committer.is_running
        assert len(store.write_calls) == 1

    @pytest.mark.asyncio
    async def test_use_client(self, store):
        """Flushes after use_client() go to the new client."""
        other = InMemoryStoreClient()
        await other.connect()
        committer = BatchCommitter(store)
        committer.start()

        await committer.submit(point("A"))
        await committer.force_flush(wait=True)
        committer.use_client(other)
        await committer.submit(point("B"))
        await committer.shutdown()

        assert [s.name for s in store.written_series()] == ["A"]
        assert [s.name for s in other.written_series()] == ["B"]

    @pytest.mark.asyncio
    async def test_stats(self, store):
        """stats exposes counters and state."""
        committer = BatchCommitter(store, CommitterConfig(capacity=2, max_wait_seconds=NO_TIMER))
        committer.start()

        await committer.submit(point("A"))
        await committer.submit(point("B"))
        await committer.force_flush(wait=True)
        stats = committer.stats

        assert stats["running"] is True
        assert stats["flush_count"] == 1
        assert stats["written_count"] == 2
        assert stats["lost_count"] == 0
        assert stats["last_flush_ms"] is not None
        await committer.shutdown()
