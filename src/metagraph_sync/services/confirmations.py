"""GL0 confirmation poller.

Snapshots enter the index as PENDING when ML0 announces them. This worker
periodically reads the latest GL0 global snapshot, promotes the local record
GL0 has included to CONFIRMED (back-filling the GL0 ordinal onto the fibers
and transitions that snapshot produced) and marks every PENDING record older
than the newest confirmation as ORPHANED.

Each tick is all-or-nothing: a GL0 fetch failure leaves the database alone
and a database failure rolls the tick back. ``last_checked_gl0_ordinal`` only
moves once the tick's writes are committed, so a failed tick is retried from
the same state on the next pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from metagraph_sync.core.settings import settings
from metagraph_sync.db.session import SessionLocal
from metagraph_sync.models import Fiber, FiberTransition, IndexedSnapshot
from metagraph_sync.models.snapshot import (
    SNAPSHOT_STATUS_CONFIRMED,
    SNAPSHOT_STATUS_ORPHANED,
    SNAPSHOT_STATUS_PENDING,
)
from metagraph_sync.schemas.metagraph import GlobalSnapshot
from metagraph_sync.services.events import (
    CHANNEL_STATS_UPDATED,
    EVENT_SNAPSHOT_CONFIRMED,
    EventPublisher,
    NullEventPublisher,
)
from metagraph_sync.services.leader import AlwaysLeader, PollerLease
from metagraph_sync.services.metagraph import (
    MetagraphClient,
    MetagraphError,
    get_metagraph_client,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfirmationTick:
    """What one successful tick did."""

    gl0_ordinal: int
    checked: bool
    confirmed_ordinal: int | None = None
    orphaned: int = 0


class ConfirmationPoller:
    """Promotes PENDING snapshots to CONFIRMED or ORPHANED based on GL0."""

    def __init__(
        self,
        client: MetagraphClient | None = None,
        publisher: EventPublisher | None = None,
        lease: PollerLease | None = None,
        db_session: Session | None = None,
        *,
        metagraph_id: str | None = None,
        strict_hash_match: bool | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        """Initialize the poller.

        Args:
            client: Metagraph client; defaults to the process-wide client.
            publisher: Receives a ``SNAPSHOT_CONFIRMED`` event per confirmation.
            lease: Only the lease holder runs ticks; defaults to ``AlwaysLeader``.
            db_session: Optional session; a new one is opened per tick otherwise.
            metagraph_id: State channel to follow. When empty every channel is
                scanned for a hash matching a PENDING record.
            strict_hash_match: Wait for an exact hash match instead of falling
                back to the oldest PENDING record.
            interval_seconds: Delay between ticks.
        """
        self.client = client or get_metagraph_client()
        self.publisher = publisher or NullEventPublisher()
        self.lease = lease or AlwaysLeader()
        self.metagraph_id = settings.metagraph_id if metagraph_id is None else metagraph_id
        self.strict_hash_match = (
            settings.confirmation_strict_hash_match
            if strict_hash_match is None
            else strict_hash_match
        )
        self.interval_seconds = max(
            0.1, float(interval_seconds or settings.gl0_poll_interval_seconds)
        )
        self.last_checked_gl0_ordinal = 0
        self._db_session = db_session
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background confirmation loop."""
        if not self.client.gl0_configured:
            logger.warning("GL0_URL not configured; confirmation poller disabled")
            return

        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())
            logger.info(
                "Confirmation poller started (interval %.1fs, metagraph %s)",
                self.interval_seconds,
                self.metagraph_id or "<scan all channels>",
            )

    async def stop(self) -> None:
        """Stop the loop after the current tick and give up the lease."""
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None
        await self.lease.release()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            if await self.lease.acquire():
                await self.check_confirmations()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue

    async def check_confirmations(self) -> ConfirmationTick | None:
        """Run one tick. Returns None when GL0 or the database failed."""
        try:
            gl0 = await self.client.fetch_latest_global_snapshot()
        except MetagraphError as e:
            logger.warning("Failed to fetch GL0 snapshot: %s", e)
            return None
        except ValueError as e:
            logger.warning("Malformed GL0 snapshot: %s", e)
            return None

        try:
            if self._db_session is not None:
                tick = self._apply(self._db_session, gl0)
            else:
                with SessionLocal() as db:
                    tick = self._apply(db, gl0)
        except SQLAlchemyError as e:
            logger.error("Confirmation tick for GL0 %d aborted: %s", gl0.ordinal, e)
            return None

        if tick.checked:
            self.last_checked_gl0_ordinal = gl0.ordinal

        if tick.confirmed_ordinal is not None:
            await self.publisher.publish(
                CHANNEL_STATS_UPDATED,
                {
                    "event": EVENT_SNAPSHOT_CONFIRMED,
                    "ordinal": tick.confirmed_ordinal,
                    "gl0Ordinal": gl0.ordinal,
                    "timestamp": datetime.now(UTC).isoformat(),
                },
            )
        return tick

    def _apply(self, db: Session, gl0: GlobalSnapshot) -> ConfirmationTick:
        checked = gl0.ordinal > self.last_checked_gl0_ordinal
        confirmed_ordinal = None
        try:
            if checked:
                confirmed_ordinal = self._confirm(db, gl0)
            orphaned = self._sweep_orphans(db)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise

        if orphaned:
            logger.info("Marked %d snapshot(s) as ORPHANED", orphaned)
        return ConfirmationTick(
            gl0_ordinal=gl0.ordinal,
            checked=checked,
            confirmed_ordinal=confirmed_ordinal,
            orphaned=orphaned,
        )

    def _channel_hash(self, db: Session, gl0: GlobalSnapshot) -> str | None:
        if self.metagraph_id:
            return gl0.latest_hash(self.metagraph_id)

        pending_hashes = set(
            db.scalars(
                select(IndexedSnapshot.hash).where(
                    IndexedSnapshot.status == SNAPSHOT_STATUS_PENDING
                )
            )
        )
        for channel_id in gl0.state_channel_snapshots:
            channel_hash = gl0.latest_hash(channel_id)
            if channel_hash and channel_hash in pending_hashes:
                return channel_hash
        return None

    def _confirm(self, db: Session, gl0: GlobalSnapshot) -> int | None:
        confirmed_hash = self._channel_hash(db, gl0)
        if confirmed_hash is None:
            logger.debug("GL0 %d carries no snapshot for our metagraph", gl0.ordinal)
            return None

        pending = select(IndexedSnapshot).where(
            IndexedSnapshot.status == SNAPSHOT_STATUS_PENDING
        )
        target = db.scalars(
            pending.where(IndexedSnapshot.hash == confirmed_hash).order_by(
                IndexedSnapshot.ordinal
            )
        ).first()
        if target is None and not self.strict_hash_match:
            # Push and poll paths may report hashes in different formats.
            target = db.scalars(pending.order_by(IndexedSnapshot.ordinal)).first()
            if target is not None:
                logger.info(
                    "No PENDING snapshot with hash %s; confirming oldest PENDING %d",
                    confirmed_hash,
                    target.ordinal,
                )
        if target is None:
            return None

        target.status = SNAPSHOT_STATUS_CONFIRMED
        target.gl0_ordinal = gl0.ordinal
        target.confirmed_at = datetime.now(UTC)
        self._backfill_gl0_ordinal(db, target.ordinal, gl0.ordinal)
        logger.info("Snapshot %d confirmed in GL0 %d", target.ordinal, gl0.ordinal)
        return target.ordinal

    @staticmethod
    def _backfill_gl0_ordinal(db: Session, ordinal: int, gl0_ordinal: int) -> None:
        db.execute(
            update(Fiber)
            .where(Fiber.created_ordinal == ordinal, Fiber.created_gl0_ordinal.is_(None))
            .values(created_gl0_ordinal=gl0_ordinal)
        )
        db.execute(
            update(Fiber)
            .where(Fiber.updated_ordinal == ordinal, Fiber.updated_gl0_ordinal.is_(None))
            .values(updated_gl0_ordinal=gl0_ordinal)
        )
        db.execute(
            update(FiberTransition)
            .where(
                FiberTransition.snapshot_ordinal == ordinal,
                FiberTransition.gl0_ordinal.is_(None),
            )
            .values(gl0_ordinal=gl0_ordinal)
        )

    @staticmethod
    def _sweep_orphans(db: Session) -> int:
        db.flush()
        latest_confirmed = db.scalar(
            select(func.max(IndexedSnapshot.ordinal)).where(
                IndexedSnapshot.status == SNAPSHOT_STATUS_CONFIRMED
            )
        )
        if latest_confirmed is None:
            return 0

        result = db.execute(
            update(IndexedSnapshot)
            .where(
                IndexedSnapshot.status == SNAPSHOT_STATUS_PENDING,
                IndexedSnapshot.ordinal < latest_confirmed,
            )
            .values(status=SNAPSHOT_STATUS_ORPHANED)
        )
        return result.rowcount or 0

    def stats(self, db: Session) -> dict[str, Any]:
        return {
            "running": self.running,
            "lastCheckedGl0Ordinal": self.last_checked_gl0_ordinal,
            **get_confirmation_stats(db),
        }


def get_confirmation_stats(db: Session) -> dict[str, Any]:
    """Snapshot counts per status plus the newest confirmation."""
    counts = dict(
        db.execute(
            select(IndexedSnapshot.status, func.count()).group_by(IndexedSnapshot.status)
        ).all()
    )
    latest = db.scalars(
        select(IndexedSnapshot)
        .where(IndexedSnapshot.status == SNAPSHOT_STATUS_CONFIRMED)
        .order_by(IndexedSnapshot.ordinal.desc())
    ).first()
    return {
        "pending": counts.get(SNAPSHOT_STATUS_PENDING, 0),
        "confirmed": counts.get(SNAPSHOT_STATUS_CONFIRMED, 0),
        "orphaned": counts.get(SNAPSHOT_STATUS_ORPHANED, 0),
        "latestConfirmedOrdinal": latest.ordinal if latest else None,
        "latestConfirmedAt": latest.confirmed_at if latest else None,
    }
