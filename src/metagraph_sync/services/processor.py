"""Snapshot processor: turns an ML0 checkpoint into fiber rows.

For each notification the processor fetches the current checkpoint from ML0,
upserts every state machine as a generic ``Fiber``, records the transition
described by a successful ``lastReceipt`` and counts the agent and contract
fibers it saw. The snapshot's status is never touched here; that belongs to
the confirmation poller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from metagraph_sync.db.session import SessionLocal
from metagraph_sync.models import Fiber, FiberTransition, IndexedSnapshot
from metagraph_sync.models.snapshot import (
    SNAPSHOT_STATUS_CONFIRMED,
    SNAPSHOT_STATUS_PENDING,
    SOURCE_WEBHOOK,
)
from metagraph_sync.schemas.fiber_state import (
    KIND_AGENT_IDENTITY,
    KIND_CONTRACT,
    parse_fiber_state,
)
from metagraph_sync.schemas.metagraph import Checkpoint, StateMachineRecord
from metagraph_sync.schemas.snapshot import SnapshotNotification
from metagraph_sync.services.events import (
    CHANNEL_ACTIVITY_FEED,
    CHANNEL_STATS_UPDATED,
    EVENT_SNAPSHOT_INDEXED,
    EVENT_TRANSITION,
    EventPublisher,
    NullEventPublisher,
)
from metagraph_sync.services.metagraph import MetagraphClient

logger = logging.getLogger(__name__)

FIBER_STATUS_ACTIVE = "ACTIVE"
FIBER_STATUS_ARCHIVED = "ARCHIVED"
FIBER_STATUS_FAILED = "FAILED"


@dataclass(frozen=True)
class ProcessResult:
    ordinal: int
    checkpoint_ordinal: int
    fibers_updated: int
    agents_updated: int
    contracts_updated: int
    transitions_recorded: int


def map_fiber_status(status: str | None) -> str:
    lowered = (status or "").lower()
    if lowered == "archived":
        return FIBER_STATUS_ARCHIVED
    if lowered == "failed":
        return FIBER_STATUS_FAILED
    return FIBER_STATUS_ACTIVE


class SnapshotProcessor:
    """Fetches ML0 state for a snapshot notification and indexes it."""

    def __init__(
        self,
        client: MetagraphClient,
        publisher: EventPublisher | None = None,
        db_session: Session | None = None,
    ) -> None:
        self.client = client
        self.publisher = publisher or NullEventPublisher()
        self._db_session = db_session

    async def process(self, notification: SnapshotNotification) -> ProcessResult:
        """Index the checkpoint current at the time ``notification`` is handled.

        Raises:
            MetagraphError: the checkpoint could not be fetched.
            SQLAlchemyError: the database write failed (rolled back).
        """
        checkpoint = await self.client.fetch_checkpoint()
        logger.info(
            "Checkpoint ordinal %d: %d state machines, %d scripts",
            checkpoint.ordinal,
            len(checkpoint.state.state_machines),
            len(checkpoint.state.scripts),
        )

        if self._db_session is not None:
            result, transitions = self._index(self._db_session, notification, checkpoint)
        else:
            with SessionLocal() as db:
                result, transitions = self._index(db, notification, checkpoint)

        for transition in transitions:
            await self.publisher.publish(CHANNEL_ACTIVITY_FEED, transition)
        await self.publisher.publish(
            CHANNEL_STATS_UPDATED,
            {
                "event": EVENT_SNAPSHOT_INDEXED,
                "ordinal": result.ordinal,
                "fibersUpdated": result.fibers_updated,
                "agentsUpdated": result.agents_updated,
                "contractsUpdated": result.contracts_updated,
            },
        )
        logger.info(
            "Indexed snapshot %d: %d fibers, %d agents, %d contracts",
            result.ordinal,
            result.fibers_updated,
            result.agents_updated,
            result.contracts_updated,
        )
        return result

    def _index(
        self, db: Session, notification: SnapshotNotification, checkpoint: Checkpoint
    ) -> tuple[ProcessResult, list[dict[str, object]]]:
        ordinal = notification.ordinal
        fibers_updated = agents_updated = contracts_updated = 0
        transitions: list[dict[str, object]] = []

        try:
            snapshot = self._snapshot_record(db, notification)
            # Confirmation may already have happened if the queue lagged behind GL0.
            gl0_ordinal = (
                snapshot.gl0_ordinal if snapshot.status == SNAPSHOT_STATUS_CONFIRMED else None
            )

            for fiber_id, record in checkpoint.state.state_machines.items():
                kind = self._upsert_fiber(db, fiber_id, record, ordinal, gl0_ordinal)
                fibers_updated += 1
                if kind == KIND_AGENT_IDENTITY:
                    agents_updated += 1
                elif kind == KIND_CONTRACT:
                    contracts_updated += 1

                event = self._record_transition(db, fiber_id, record, ordinal, gl0_ordinal)
                if event is not None:
                    transitions.append(event)

            # Status and confirmation fields are owned by the confirmation poller.
            snapshot.fibers_updated = fibers_updated
            snapshot.agents_updated = agents_updated
            snapshot.contracts_updated = contracts_updated
            snapshot.indexed_at = datetime.now(UTC)
            db.commit()
        except Exception:
            db.rollback()
            raise

        result = ProcessResult(
            ordinal=ordinal,
            checkpoint_ordinal=checkpoint.ordinal,
            fibers_updated=fibers_updated,
            agents_updated=agents_updated,
            contracts_updated=contracts_updated,
            transitions_recorded=len(transitions),
        )
        return result, transitions

    def _upsert_fiber(
        self,
        db: Session,
        fiber_id: str,
        record: StateMachineRecord,
        ordinal: int,
        gl0_ordinal: int | None,
    ) -> str:
        state = parse_fiber_state(record.workflow_type, record.state_data)
        fiber = db.get(Fiber, fiber_id)
        if fiber is None:
            created_ordinal = (
                record.creation_ordinal.value if record.creation_ordinal else ordinal
            ) or ordinal
            fiber = Fiber(
                fiber_id=fiber_id,
                workflow_type=record.workflow_type,
                workflow_desc=record.workflow_desc,
                created_ordinal=created_ordinal,
                created_gl0_ordinal=gl0_ordinal,
                owners=list(record.owners),
            )
            db.add(fiber)

        fiber.kind = state.kind
        fiber.current_state = record.current_state.value
        fiber.status = map_fiber_status(record.status)
        fiber.state_data = dict(record.state_data)
        fiber.sequence_number = record.sequence_number
        fiber.updated_ordinal = ordinal
        # None until the snapshot that produced this row is confirmed.
        fiber.updated_gl0_ordinal = gl0_ordinal
        return state.kind

    def _record_transition(
        self,
        db: Session,
        fiber_id: str,
        record: StateMachineRecord,
        ordinal: int,
        gl0_ordinal: int | None,
    ) -> dict[str, object] | None:
        receipt = record.last_receipt
        if receipt is None or not receipt.success:
            return None

        existing = (
            db.query(FiberTransition)
            .filter(
                FiberTransition.fiber_id == fiber_id,
                FiberTransition.snapshot_ordinal == ordinal,
                FiberTransition.event_name == receipt.event_name,
            )
            .first()
        )
        if existing is not None:
            return None

        db.add(
            FiberTransition(
                fiber_id=fiber_id,
                event_name=receipt.event_name,
                from_state=receipt.from_state.value,
                to_state=receipt.to_state.value,
                success=receipt.success,
                gas_used=receipt.gas_used,
                snapshot_ordinal=ordinal,
                gl0_ordinal=gl0_ordinal,
            )
        )
        return {
            "eventType": EVENT_TRANSITION,
            "timestamp": datetime.now(UTC).isoformat(),
            "fiberId": fiber_id,
            "workflowType": record.workflow_type,
            "action": (
                f"{receipt.event_name}: {receipt.from_state.value} -> {receipt.to_state.value}"
            ),
        }

    @staticmethod
    def _snapshot_record(db: Session, notification: SnapshotNotification) -> IndexedSnapshot:
        snapshot = db.get(IndexedSnapshot, notification.ordinal)
        if snapshot is None:
            snapshot = IndexedSnapshot(
                ordinal=notification.ordinal,
                hash=notification.hash,
                status=SNAPSHOT_STATUS_PENDING,
                source=SOURCE_WEBHOOK,
            )
            db.add(snapshot)
        return snapshot
