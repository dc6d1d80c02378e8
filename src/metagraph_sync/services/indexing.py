"""Background indexing queue.

Notifications accepted by the webhook or the fallback poller are enqueued here
and handed to the ``SnapshotProcessor`` by a single worker task, so the
request that delivered them never waits on ML0. Failed attempts are retried a
bounded number of times; the snapshot row itself stays PENDING either way.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from metagraph_sync.core.settings import settings
from metagraph_sync.schemas.snapshot import SnapshotNotification
from metagraph_sync.services.metagraph import MetagraphError
from metagraph_sync.services.processor import SnapshotProcessor

logger = logging.getLogger(__name__)


@dataclass
class IndexingStats:
    """Counters exposed on the status endpoint."""

    processed: int = 0
    failed: int = 0
    retried: int = 0


class IndexingQueue:
    """FIFO of snapshot notifications drained by one worker task."""

    def __init__(
        self,
        processor: SnapshotProcessor,
        *,
        max_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
    ) -> None:
        self.processor = processor
        self.max_attempts = max(1, max_attempts or settings.indexing_max_attempts)
        self.retry_delay_seconds = (
            settings.indexing_retry_delay_seconds
            if retry_delay_seconds is None
            else retry_delay_seconds
        )
        self.counters = IndexingStats()
        self._queue: asyncio.Queue[SnapshotNotification] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def stats(self) -> dict[str, int | bool]:
        return {
            "running": self.running,
            "queued": self.pending,
            "processed": self.counters.processed,
            "failed": self.counters.failed,
            "retried": self.counters.retried,
        }

    def enqueue(self, notification: SnapshotNotification) -> None:
        """Schedule ``notification`` for indexing; never blocks."""
        self._queue.put_nowait(notification)
        logger.debug("Queued snapshot %d for indexing", notification.ordinal)

    async def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Cancel the worker; queued notifications are dropped."""
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def join(self) -> None:
        """Wait until every queued notification has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self.process_with_retry(notification)
            finally:
                self._queue.task_done()

    async def process_with_retry(self, notification: SnapshotNotification) -> bool:
        """Process one notification, retrying on upstream or database errors."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.processor.process(notification)
            except (MetagraphError, SQLAlchemyError) as e:
                if attempt >= self.max_attempts:
                    self.counters.failed += 1
                    logger.error(
                        "Giving up on snapshot %d after %d attempts: %s",
                        notification.ordinal,
                        attempt,
                        e,
                    )
                    return False
                self.counters.retried += 1
                logger.warning(
                    "Indexing snapshot %d failed (attempt %d/%d): %s",
                    notification.ordinal,
                    attempt,
                    self.max_attempts,
                    e,
                )
                await asyncio.sleep(self.retry_delay_seconds)
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                self.counters.failed += 1
                logger.error(
                    "Snapshot %d could not be indexed: %s", notification.ordinal, e, exc_info=True
                )
                return False
            else:
                self.counters.processed += 1
                return True
        return False
