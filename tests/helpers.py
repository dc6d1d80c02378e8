"""Builders for upstream documents used across the test suite."""
from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from metagraph_sync.schemas.metagraph import Checkpoint, GlobalSnapshot

METAGRAPH_ID = "DAG0metagraph"


def global_snapshot(
    ordinal: int,
    channels: dict[str, list[str]] | None = None,
) -> GlobalSnapshot:
    """Build a GL0 snapshot whose channels list the given snapshot hashes."""
    channels = channels if channels is not None else {}
    return GlobalSnapshot.model_validate(
        {
            "ordinal": ordinal,
            "stateChannelSnapshots": {
                channel: [{"lastSnapshotHash": h, "content": []} for h in hashes]
                for channel, hashes in channels.items()
            },
        }
    )


def checkpoint(ordinal: int, state_machines: dict[str, dict[str, Any]] | None = None) -> Checkpoint:
    return Checkpoint.model_validate(
        {"ordinal": ordinal, "state": {"stateMachines": state_machines or {}, "scripts": {}}}
    )


def state_machine(
    workflow_type: str,
    state_data: dict[str, Any],
    *,
    current_state: str = "active",
    sequence_number: int = 1,
    creation_ordinal: int = 1,
    receipt: dict[str, Any] | None = None,
    status: str = "Active",
) -> dict[str, Any]:
    record: dict[str, Any] = {
        "status": status,
        "currentState": {"value": current_state},
        "stateData": state_data,
        "definition": {"metadata": {"name": workflow_type, "description": f"{workflow_type} flow"}},
        "owners": ["DAG1owner"],
        "sequenceNumber": sequence_number,
        "creationOrdinal": {"value": creation_ordinal},
    }
    if receipt is not None:
        record["lastReceipt"] = receipt
    return record


def notification_payload(ordinal: int, hash: str = "abc") -> dict[str, Any]:
    return {
        "ordinal": ordinal,
        "hash": hash,
        "timestamp": datetime(2026, 1, 1, tzinfo=UTC).isoformat(),
    }


def rejection_payload(
    update_hash: str = "upd-1",
    *,
    fiber_id: str = "fiber-1",
    update_type: str = "TransitionStateMachine",
    ordinal: int = 42,
) -> dict[str, Any]:
    return {
        "event": "transaction.rejected",
        "ordinal": ordinal,
        "timestamp": datetime(2026, 1, 1, tzinfo=UTC).isoformat(),
        "rejection": {
            "updateType": update_type,
            "fiberId": fiber_id,
            "updateHash": update_hash,
            "errors": [{"code": "SequenceNumberMismatch", "message": "expected 3, got 2"}],
            "signers": ["DAG1owner"],
        },
    }
