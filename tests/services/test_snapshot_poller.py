import logging
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from helpers import checkpoint
from metagraph_sync.models import IndexedSnapshot
from metagraph_sync.models.snapshot import SNAPSHOT_STATUS_PENDING, SOURCE_POLLER
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.metagraph import MetagraphUnavailableError, NodeSnapshotInfo
from metagraph_sync.services.snapshot_poller import (
    MAX_FORK_HISTORY,
    POLLED_HASH,
    PeerSnapshot,
    SnapshotPoller,
    peer_name,
)

PEERS = ["http://ml0-a:9200", "http://ml0-b:9200", "http://ml0-c:9200"]


@pytest.fixture
def queue():
    return MagicMock(spec=IndexingQueue)


@pytest.fixture
def poller(mock_metagraph_client, queue, db_session):
    return SnapshotPoller(
        mock_metagraph_client,
        queue=queue,
        db_session=db_session,
        peer_urls=PEERS,
        interval_seconds=1,
    )


def _peers(mock_client, infos):
    by_url = dict(zip(PEERS, infos))

    async def _fetch(url):
        info = by_url[url]
        if isinstance(info, Exception):
            raise info
        return info

    mock_client.fetch_node_snapshot.side_effect = _fetch


def test_peer_name():
    assert peer_name("http://ml0-a:9200") == "ml0-a:9200"
    assert peer_name("https://ml0.example.com") == "ml0.example.com"


@pytest.mark.asyncio
async def test_missed_ordinal_is_ingested_and_queued(poller, mock_metagraph_client, queue, db_session):
    _peers(mock_metagraph_client, [NodeSnapshotInfo(50, "s"), NodeSnapshotInfo(49, "t"),
                                   MetagraphUnavailableError("down")])
    mock_metagraph_client.fetch_checkpoint.return_value = checkpoint(50)

    assert await poller.poll_once() == 50

    record = db_session.get(IndexedSnapshot, 50)
    assert record.hash == POLLED_HASH
    assert record.source == SOURCE_POLLER
    assert record.status == SNAPSHOT_STATUS_PENDING
    queue.enqueue.assert_called_once()
    assert queue.enqueue.call_args.args[0].ordinal == 50
    assert poller.last_polled_ordinal == 50
    assert set(poller.peer_state) == {"ml0-a:9200", "ml0-b:9200"}


@pytest.mark.asyncio
async def test_ordinal_delivered_by_webhook_is_skipped(
    poller, mock_metagraph_client, queue, make_snapshot
):
    make_snapshot(50, hash="from-webhook")
    _peers(mock_metagraph_client, [NodeSnapshotInfo(50, "s")] * 3)

    assert await poller.poll_once() is None

    mock_metagraph_client.fetch_checkpoint.assert_not_awaited()
    queue.enqueue.assert_not_called()
    assert poller.last_polled_ordinal == 50


@pytest.mark.asyncio
async def test_ordinal_not_ahead_of_last_poll_is_ignored(poller, mock_metagraph_client, queue):
    poller.last_polled_ordinal = 50
    _peers(mock_metagraph_client, [NodeSnapshotInfo(50, "s")] * 3)

    assert await poller.poll_once() is None

    mock_metagraph_client.fetch_checkpoint.assert_not_awaited()


@pytest.mark.asyncio
async def test_all_peers_down(poller, mock_metagraph_client, queue):
    _peers(mock_metagraph_client, [MetagraphUnavailableError("down")] * 3)

    assert await poller.poll_once() is None

    assert poller.peer_state == {}
    queue.enqueue.assert_not_called()


@pytest.mark.asyncio
async def test_checkpoint_failure_leaves_last_polled_unchanged(
    poller, mock_metagraph_client, queue, db_session
):
    _peers(mock_metagraph_client, [NodeSnapshotInfo(50, "s")] * 3)
    mock_metagraph_client.fetch_checkpoint.side_effect = MetagraphUnavailableError("down")

    assert await poller.poll_once() is None

    assert poller.last_polled_ordinal == 0
    assert db_session.get(IndexedSnapshot, 50) is None


@pytest.mark.asyncio
async def test_fork_detected_when_peers_disagree(poller, mock_metagraph_client):
    _peers(
        mock_metagraph_client,
        [NodeSnapshotInfo(50, "aaa"), NodeSnapshotInfo(50, "bbb"), NodeSnapshotInfo(50, "aaa")],
    )
    mock_metagraph_client.fetch_checkpoint.return_value = checkpoint(50)

    await poller.poll_once()

    assert len(poller.forks) == 1
    fork = poller.forks[0]
    assert fork.ordinal == 50
    assert fork.peers == {"ml0-a:9200": "aaa", "ml0-b:9200": "bbb", "ml0-c:9200": "aaa"}

    # Seeing the same divergence again does not duplicate the report.
    await poller.poll_once()
    assert len(poller.forks) == 1


@pytest.mark.asyncio
async def test_agreeing_peers_report_no_fork(poller, mock_metagraph_client):
    _peers(mock_metagraph_client, [NodeSnapshotInfo(50, "aaa")] * 3)
    mock_metagraph_client.fetch_checkpoint.return_value = checkpoint(50)

    await poller.poll_once()

    assert poller.check_for_forks() == []
    stats = poller.stats()
    assert stats["lastPolledOrdinal"] == 50
    assert stats["isRunning"] is False
    assert stats["peers"]["ml0-a:9200"]["ordinal"] == 50
    assert stats["forks"] == []


def _diverge(poller, ordinal):
    now = datetime.now(UTC)
    poller.peer_state = {
        "ml0-a:9200": PeerSnapshot(ordinal, f"a-{ordinal}", now),
        "ml0-b:9200": PeerSnapshot(ordinal, f"b-{ordinal}", now),
    }


def test_fork_history_is_bounded(poller):
    for ordinal in range(1, MAX_FORK_HISTORY + 11):
        _diverge(poller, ordinal)
        poller.check_for_forks()

    assert len(poller.forks) == MAX_FORK_HISTORY
    assert poller.forks[0].ordinal == 11
    assert poller.forks[-1].ordinal == MAX_FORK_HISTORY + 10
    assert len(poller.stats()["forks"]) == MAX_FORK_HISTORY


def test_persistent_fork_is_logged_once(poller, caplog):
    _diverge(poller, 50)

    with caplog.at_level(logging.ERROR, logger="metagraph_sync.services.snapshot_poller"):
        for _ in range(5):
            assert len(poller.check_for_forks()) == 1

    assert sum("FORK DETECTED" in r.getMessage() for r in caplog.records) == 1
    assert len(poller.forks) == 1
