from unittest.mock import AsyncMock, MagicMock

import pytest

from helpers import notification_payload
from metagraph_sync.schemas.snapshot import SnapshotNotification
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.metagraph import MetagraphUnavailableError
from metagraph_sync.services.processor import SnapshotProcessor


@pytest.fixture
def processor():
    processor = MagicMock(spec=SnapshotProcessor)
    processor.process = AsyncMock()
    return processor


def _notification(ordinal=42):
    return SnapshotNotification(**notification_payload(ordinal))


@pytest.mark.asyncio
async def test_worker_processes_queued_notifications_in_order(processor):
    queue = IndexingQueue(processor, max_attempts=1, retry_delay_seconds=0)
    await queue.start()
    try:
        queue.enqueue(_notification(1))
        queue.enqueue(_notification(2))
        await queue.join()
    finally:
        await queue.stop()

    ordinals = [call.args[0].ordinal for call in processor.process.await_args_list]
    assert ordinals == [1, 2]
    assert queue.stats()["processed"] == 2
    assert queue.stats()["running"] is False


@pytest.mark.asyncio
async def test_transient_failure_is_retried(processor):
    processor.process.side_effect = [MetagraphUnavailableError("down"), None]
    queue = IndexingQueue(processor, max_attempts=3, retry_delay_seconds=0)

    assert await queue.process_with_retry(_notification()) is True

    assert processor.process.await_count == 2
    assert queue.stats()["retried"] == 1
    assert queue.stats()["processed"] == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(processor):
    processor.process.side_effect = MetagraphUnavailableError("down")
    queue = IndexingQueue(processor, max_attempts=3, retry_delay_seconds=0)

    assert await queue.process_with_retry(_notification()) is False

    assert processor.process.await_count == 3
    assert queue.stats()["failed"] == 1
    assert queue.stats()["retried"] == 2


@pytest.mark.asyncio
async def test_malformed_checkpoint_is_not_retried(processor):
    processor.process.side_effect = ValueError("bad checkpoint")
    queue = IndexingQueue(processor, max_attempts=3, retry_delay_seconds=0)

    assert await queue.process_with_retry(_notification()) is False

    assert processor.process.await_count == 1
    assert queue.stats()["failed"] == 1


@pytest.mark.asyncio
async def test_failure_does_not_stop_worker(processor):
    processor.process.side_effect = [ValueError("bad"), None]
    queue = IndexingQueue(processor, max_attempts=1, retry_delay_seconds=0)
    await queue.start()
    try:
        queue.enqueue(_notification(1))
        queue.enqueue(_notification(2))
        await queue.join()
        assert queue.running
    finally:
        await queue.stop()

    assert queue.stats()["failed"] == 1
    assert queue.stats()["processed"] == 1
