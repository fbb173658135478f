"""
Asynchronous batch committer for insert commands.

The BatchCommitter decouples interactive and scripted inserts from the
network write path. Accepted series are buffered and written to the store in
bulk when one of four triggers fires:
- CAPACITY_REACHED: the buffer holds `capacity` series
- TIMER_ELAPSED: `max_wait` passed since the last flush
- FORCED_FLUSH: a caller asked for a flush (e.g. async mode turned off)
- SHUTDOWN_DRAIN: the final flush before the committer stops

Series, force-flush requests and the shutdown request all travel through one
FIFO queue of tagged events, consumed by a single control loop. The loop is
the only code that touches the pending buffer.

Invariants:
    - Every submitted series is part of exactly one flush attempt
    - The buffer is emptied when a flush is attempted, whatever the outcome
    - A failed batch is logged and dropped, never retried or re-buffered
    - The flush timer restarts after every flush, whatever the trigger
    - A force flush covers everything submitted before it and nothing after

How to change safely:
    - Never flush from outside the control loop
    - Keep write errors non-fatal; the shell must stay usable
    - Test ordering with the in-memory store before touching the queue
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Union

from ..client.base import StoreClient
from ..config import CommitterConfig
from ..errors import CommitterClosedError, StoreError
from ..series import Series

logger = logging.getLogger(__name__)


class FlushTrigger(Enum):
    """Why the pending batch was emptied."""

    CAPACITY_REACHED = "capacity_reached"
    TIMER_ELAPSED = "timer_elapsed"
    FORCED_FLUSH = "forced_flush"
    SHUTDOWN_DRAIN = "shutdown_drain"


@dataclass
class FlushResult:
    """Outcome of one flush attempt.

    Attributes:
        trigger: What caused the flush
        count: Series in the batch (0 when the buffer was empty)
        success: Whether the store accepted the batch
        error: Error message if the write failed
        duration_ms: Time spent in the store write
    """

    trigger: FlushTrigger
    count: int
    success: bool = True
    error: str | None = None
    duration_ms: float = 0.0


@dataclass(frozen=True)
class DrainResult:
    """Outcome of shutdown().

    Attributes:
        completed: False if the drain did not finish within the timeout
        count: Series handed to the final flush
        success: Whether the final flush was accepted by the store
    """

    completed: bool
    count: int = 0
    success: bool = True


@dataclass(frozen=True)
class _SeriesEvent:
    series: Series


@dataclass(frozen=True)
class _ForceFlushEvent:
    done: asyncio.Future | None = None


@dataclass(frozen=True)
class _ShutdownEvent:
    done: asyncio.Future


_Event = Union[_SeriesEvent, _ForceFlushEvent, _ShutdownEvent]


class BatchCommitter:
    """Buffers series and writes them to the store in batches.

    Thread safety:
        Designed for a single event loop. submit(), force_flush() and
        shutdown() may be called from any coroutine on that loop.

    Example:
        >>> committer = BatchCommitter(client, CommitterConfig(capacity=100))
        >>> committer.start()
        >>> await committer.submit(series)
        >>> result = await committer.shutdown()
        >>> print(result.count, "series flushed on exit")
    """

    def __init__(self, client: StoreClient, config: CommitterConfig | None = None) -> None:
        """Initialize the committer.

        Args:
            client: Store client used for bulk writes
            config: Capacity, timer period and drain timeout
        """
        self.client = client
        self.config = config or CommitterConfig()

        # The inbound queue doubles as backpressure once capacity series are waiting
        self._queue: asyncio.Queue[_Event] = asyncio.Queue(maxsize=self.config.capacity)
        self._pending: List[Series] = []
        self._inflight = 0
        self._task: asyncio.Task | None = None
        self._closing = False
        self._shutdown_done: asyncio.Future | None = None

        self._flush_count = 0
        self._written_count = 0
        self._lost_count = 0
        self._failed_flushes = 0
        self._trigger_counts = {t: 0 for t in FlushTrigger}
        self._last_flush: FlushResult | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def accepting(self) -> bool:
        """Whether submit() will currently accept series."""
        return self.is_running and not self._closing

    def start(self) -> None:
        """Start the control loop on the running event loop."""
        if self.is_running:
            logger.warning("Committer already running")
            return
        if self._closing:
            raise CommitterClosedError("Committer was shut down and cannot be restarted")

        self._task = asyncio.create_task(self._run(), name="batch-committer")
        logger.debug(
            "Started batch committer",
            extra={
                "capacity": self.config.capacity,
                "max_wait_seconds": self.config.max_wait_seconds,
            },
        )

    def use_client(self, client: StoreClient) -> None:
        """Send later flushes to another store client.

        A flush already in progress keeps writing to the old client. Callers
        that care should force_flush(wait=True) before switching.
        """
        self.client = client

    async def __aenter__(self) -> BatchCommitter:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    async def submit(self, series: Series) -> None:
        """Hand a series to the committer.

        Suspends while the inbound queue is full.

        Raises:
            CommitterClosedError: If the committer is not running or is shutting down
        """
        if not self.accepting:
            raise CommitterClosedError()
        await self._queue.put(_SeriesEvent(series))

    async def force_flush(self, wait: bool = False) -> FlushResult | None:
        """Request a flush of everything submitted so far.

        Args:
            wait: Wait for the flush to finish and return its result

        Returns:
            FlushResult when wait is True, else None

        Raises:
            CommitterClosedError: If the committer is not running or is shutting down
        """
        if not self.accepting:
            raise CommitterClosedError()

        done = asyncio.get_running_loop().create_future() if wait else None
        await self._queue.put(_ForceFlushEvent(done))
        if done is None:
            return None
        return await done

    async def shutdown(self, timeout: float | None = None) -> DrainResult:
        """Stop accepting series, flush what is buffered and stop the loop.

        Args:
            timeout: Upper bound in seconds (defaults to config.drain_timeout_seconds)

        Returns:
            DrainResult; completed is False if the drain timed out
        """
        if timeout is None:
            timeout = self.config.drain_timeout_seconds

        if self._task is None:
            self._closing = True
            return DrainResult(completed=True, count=0)
        if self._task.done():
            self._closing = True
            done = self._shutdown_done
            if done is not None and done.done() and not done.cancelled():
                # already drained by an earlier call
                result = done.result()
                return DrainResult(completed=True, count=result.count, success=result.success)
            return DrainResult(completed=False)
        self._closing = True

        send = self._shutdown_done is None
        if send:
            self._shutdown_done = asyncio.get_running_loop().create_future()
        else:
            logger.warning("Committer shutdown already in progress")
        done = self._shutdown_done

        async def drain() -> FlushResult:
            if send:
                await self._queue.put(_ShutdownEvent(done))
            # shield so a timed-out caller doesn't cancel the loop's acknowledgment
            return await asyncio.shield(done)

        try:
            result = await asyncio.wait_for(drain(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Could not flush all inserts before timeout",
                extra={"timeout_seconds": timeout},
            )
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            return DrainResult(completed=False)

        await asyncio.gather(self._task, return_exceptions=True)
        return DrainResult(completed=True, count=result.count, success=result.success)

    async def _run(self) -> None:
        """Control loop: the only place the pending buffer is touched."""
        loop = asyncio.get_running_loop()
        max_wait = self.config.max_wait_seconds
        deadline = loop.time() + max_wait

        try:
            while True:
                timeout = max(0.0, deadline - loop.time())
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=timeout)
                except asyncio.TimeoutError:
                    await self._flush(FlushTrigger.TIMER_ELAPSED)
                    deadline = loop.time() + max_wait
                    continue

                if isinstance(event, _SeriesEvent):
                    self._pending.append(event.series)
                    if len(self._pending) >= self.config.capacity:
                        await self._flush(FlushTrigger.CAPACITY_REACHED)
                        deadline = loop.time() + max_wait

                elif isinstance(event, _ForceFlushEvent):
                    result = await self._flush(FlushTrigger.FORCED_FLUSH)
                    deadline = loop.time() + max_wait
                    if event.done is not None and not event.done.done():
                        event.done.set_result(result)

                elif isinstance(event, _ShutdownEvent):
                    result = await self._flush(FlushTrigger.SHUTDOWN_DRAIN)
                    if not event.done.done():
                        event.done.set_result(result)
                    logger.debug("Batch committer drained", extra={"count": result.count})
                    return

        except asyncio.CancelledError:
            lost = self._abandon()
            logger.warning(f"Batch committer cancelled, {lost} series lost", extra={"lost": lost})
            raise
        except Exception as e:
            logger.error(f"Batch committer error: {e}", exc_info=True)
            raise

    async def _flush(self, trigger: FlushTrigger) -> FlushResult:
        """Write the pending batch and reset the buffer.

        Args:
            trigger: Cause of the flush

        Returns:
            FlushResult describing the attempt
        """
        if not self._pending:
            return FlushResult(trigger=trigger, count=0)

        batch = self._pending
        self._pending = []
        count = len(batch)

        self._flush_count += 1
        self._trigger_counts[trigger] += 1

        started = time.monotonic()
        self._inflight = count
        try:
            await self.client.write_series(batch)
        except StoreError as e:
            self._inflight = 0
            result = self._record_failure(trigger, count, started, str(e))
            logger.error(
                f"Failed to write {count} series: {e.message}",
                extra={"trigger": trigger.value, "lost": count, "code": e.code},
            )
            return result
        except Exception as e:
            self._inflight = 0
            result = self._record_failure(trigger, count, started, str(e))
            logger.error(
                f"Failed to write {count} series: {e}",
                extra={"trigger": trigger.value, "lost": count},
                exc_info=True,
            )
            return result

        self._inflight = 0
        self._written_count += count
        result = FlushResult(
            trigger=trigger,
            count=count,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        self._last_flush = result
        logger.debug(
            "Flushed series batch",
            extra={"trigger": trigger.value, "count": count, "duration_ms": result.duration_ms},
        )
        return result

    def _record_failure(
        self, trigger: FlushTrigger, count: int, started: float, error: str
    ) -> FlushResult:
        self._failed_flushes += 1
        self._lost_count += count
        result = FlushResult(
            trigger=trigger,
            count=count,
            success=False,
            error=error,
            duration_ms=(time.monotonic() - started) * 1000,
        )
        self._last_flush = result
        return result

    def _abandon(self) -> int:
        """Drop every series not yet written and count it as lost."""
        lost = self._inflight + len(self._pending)
        if self._inflight:
            self._failed_flushes += 1
        self._inflight = 0
        self._pending = []
        while True:
            try:
                event = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            if isinstance(event, _SeriesEvent):
                lost += 1
        self._lost_count += lost
        return lost

    @property
    def stats(self) -> dict[str, Any]:
        """Get committer statistics."""
        return {
            "running": self.is_running,
            "accepting": self.accepting,
            "queued_events": self._queue.qsize(),
            "flush_count": self._flush_count,
            "written_count": self._written_count,
            "lost_count": self._lost_count,
            "failed_flushes": self._failed_flushes,
            "flushes_by_trigger": {t.value: n for t, n in self._trigger_counts.items()},
            "last_flush_ms": self._last_flush.duration_ms if self._last_flush else None,
        }
