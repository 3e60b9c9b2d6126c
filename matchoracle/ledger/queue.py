"""
In-process ledger write queue.

Fire-and-forget writes go through an asyncio.Queue drained by one
background consumer, so the caller never waits on storage. Failures are
kept on an error channel (errors list + metrics) instead of vanishing.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from matchoracle.telemetry import record_ledger_write

logger = logging.getLogger(__name__)

MAX_ERRORS_KEPT = 100


class LedgerQueue:
    def __init__(
        self,
        handler: Callable[[Any], Awaitable[None]],
        max_queue_size: int = 1000,
    ):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._handler = handler
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self.errors: list[tuple[Any, Exception]] = []
        self.processed = 0

    @property
    def running(self) -> bool:
        return self._running

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def put_nowait(self, item: Any) -> bool:
        """Enqueue without waiting. Returns False (and logs) if the queue is full."""
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            logger.error(f"[LEDGER] Queue full ({self._queue.maxsize}), dropping {item!r}")
            record_ledger_write("dropped")
            return False
        return True

    def report_error(self, item: Any, error: Exception) -> None:
        """Keep a failed item on the error channel (bounded)."""
        self.errors.append((item, error))
        del self.errors[:-MAX_ERRORS_KEPT]

    async def start(self):
        """Start the background consumer task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._consumer_loop())
        logger.info("[LEDGER] Started write queue")

    async def stop(self, timeout: float = 10.0):
        """Graceful shutdown: drain queue then stop."""
        self._running = False
        if self._task:
            # Sentinel unblocks the consumer after everything queued before it
            await self._queue.put(None)
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                self._task.cancel()
                logger.warning(f"[LEDGER] Queue did not drain in {timeout}s, cancelled")
            self._task = None
        logger.info(f"[LEDGER] Stopped write queue (pending={self._queue.qsize()})")

    async def join(self):
        """Wait until every queued item has been handled."""
        await self._queue.join()

    async def _consumer_loop(self):
        while True:
            try:
                item = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                if item is None:
                    break
                await self._handler(item)
                self.processed += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"[LEDGER] Queued write failed: {e}")
                self.report_error(item, e)
            finally:
                self._queue.task_done()
