"""Low-frequency ML0 fallback poller.

Webhook push is the primary way snapshots reach the index. This poller runs
at a much lower rate, catches ordinals the webhook missed and tracks the
(ordinal, state) pair reported by each ML0 peer so that peers diverging at
the same ordinal are flagged as a fork.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metagraph_sync.core.settings import settings
from metagraph_sync.db.session import SessionLocal
from metagraph_sync.models import IndexedSnapshot
from metagraph_sync.models.snapshot import SOURCE_POLLER
from metagraph_sync.schemas.snapshot import SnapshotNotification
from metagraph_sync.services.indexing import IndexingQueue
from metagraph_sync.services.ingestion import SnapshotIngestionService
from metagraph_sync.services.leader import AlwaysLeader, PollerLease
from metagraph_sync.services.metagraph import (
    MetagraphClient,
    MetagraphError,
    NodeSnapshotInfo,
    get_metagraph_client,
    upstream_key,
)

logger = logging.getLogger(__name__)

# Placeholder hash for records created by the poller; the checkpoint endpoint
# does not expose the snapshot hash.
POLLED_HASH = "polled"

# Forks kept for /status; older reports are dropped.
MAX_FORK_HISTORY = 50


@dataclass
class PeerSnapshot:
    ordinal: int
    hash: str
    last_seen: datetime


@dataclass(frozen=True)
class ForkReport:
    ordinal: int
    peers: dict[str, str]
    detected_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def peer_name(url: str) -> str:
    return upstream_key(url)


class SnapshotPoller:
    """Polls ML0 peers and feeds missed ordinals through ingestion."""

    def __init__(
        self,
        client: MetagraphClient | None = None,
        ingestion: SnapshotIngestionService | None = None,
        queue: IndexingQueue | None = None,
        lease: PollerLease | None = None,
        db_session: Session | None = None,
        *,
        peer_urls: list[str] | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.client = client or get_metagraph_client()
        self.ingestion = ingestion or SnapshotIngestionService()
        self.queue = queue
        self.lease = lease or AlwaysLeader()
        urls = peer_urls if peer_urls is not None else settings.ml0_peer_urls
        self.peer_urls = list(urls) or [self.client.config.ml0_url]
        self.interval_seconds = max(
            0.1, float(interval_seconds or settings.ml0_poll_interval_seconds)
        )
        self.last_polled_ordinal = 0
        self.peer_state: dict[str, PeerSnapshot] = {}
        self.forks: deque[ForkReport] = deque(maxlen=MAX_FORK_HISTORY)
        self._db_session = db_session
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            logger.warning("Snapshot poller already running")
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._run())
        logger.info(
            "Starting fallback poller (every %.0fs) across %d peer(s)",
            self.interval_seconds,
            len(self.peer_urls),
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        await self.lease.release()
        logger.info("Stopped fallback poller")

    async def _run(self) -> None:
        while not self._stopping.is_set():
            if await self.lease.acquire():
                try:
                    await self.poll_once()
                except SQLAlchemyError as e:
                    logger.error("Fallback poll aborted by database error: %s", e)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue

    async def _poll_peer(self, url: str) -> tuple[str, NodeSnapshotInfo | None]:
        try:
            return url, await self.client.fetch_node_snapshot(url)
        except (MetagraphError, ValueError) as e:
            logger.debug("Peer %s unavailable: %s", url, e)
            return url, None

    async def poll_once(self) -> int | None:
        """Poll every peer once. Returns the ordinal ingested, if any."""
        results = await asyncio.gather(*(self._poll_peer(url) for url in self.peer_urls))
        now = datetime.now(UTC)
        seen: list[int] = []
        for url, info in results:
            if info is None:
                continue
            self.peer_state[peer_name(url)] = PeerSnapshot(
                ordinal=info.ordinal, hash=info.hash, last_seen=now
            )
            seen.append(info.ordinal)

        self.check_for_forks()

        if not seen:
            return None
        max_ordinal = max(seen)
        if max_ordinal <= self.last_polled_ordinal or max_ordinal <= 0:
            return None

        if self._db_session is not None:
            return await self._catch_up(self._db_session, max_ordinal)
        with SessionLocal() as db:
            return await self._catch_up(db, max_ordinal)

    async def _catch_up(self, db: Session, max_ordinal: int) -> int | None:
        if db.get(IndexedSnapshot, max_ordinal) is not None:
            # Already delivered by the webhook.
            self.last_polled_ordinal = max_ordinal
            return None

        logger.info("Poller catch-up: indexing missed snapshot %d", max_ordinal)
        try:
            checkpoint = await self.client.fetch_checkpoint()
        except (MetagraphError, ValueError) as e:
            logger.warning("Poller catch-up failed: %s", e)
            return None

        notification = SnapshotNotification(
            ordinal=checkpoint.ordinal,
            hash=POLLED_HASH,
            timestamp=datetime.now(UTC),
        )
        result = self.ingestion.ingest(db, notification, source=SOURCE_POLLER)
        if result.created and self.queue is not None:
            self.queue.enqueue(notification)
        self.last_polled_ordinal = max(self.last_polled_ordinal, checkpoint.ordinal)
        return checkpoint.ordinal if result.created else None

    def check_for_forks(self) -> list[ForkReport]:
        """Flag peers reporting different hashes at the same ordinal.

        Returns every divergence currently visible; only ones not already in
        ``forks`` are logged and recorded.
        """
        by_ordinal: dict[int, dict[str, str]] = {}
        for name, state in self.peer_state.items():
            by_ordinal.setdefault(state.ordinal, {})[name] = state.hash

        detected = []
        for ordinal, hashes in by_ordinal.items():
            if len(set(hashes.values())) > 1:
                detected.append(ForkReport(ordinal=ordinal, peers=dict(sorted(hashes.items()))))

        known = {(fork.ordinal, tuple(fork.peers.items())) for fork in self.forks}
        for fork in detected:
            if (fork.ordinal, tuple(fork.peers.items())) not in known:
                logger.error("FORK DETECTED at ordinal %d: %s", fork.ordinal, fork.peers)
                self.forks.append(fork)
        return detected

    def stats(self) -> dict[str, Any]:
        return {
            "lastPolledOrdinal": self.last_polled_ordinal,
            "isRunning": self.running,
            "peers": {
                name: {"ordinal": s.ordinal, "hash": s.hash, "lastSeen": s.last_seen}
                for name, s in self.peer_state.items()
            },
            "forks": [
                {"ordinal": f.ordinal, "peers": f.peers, "detectedAt": f.detected_at}
                for f in self.forks
            ],
        }
