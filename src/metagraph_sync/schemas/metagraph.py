"""Schemas for documents read from the metagraph layers (ML0, GL0, DL1)."""
from __future__ import annotations

from typing import Any

from pydantic import ConfigDict, Field, model_validator

from metagraph_sync.schemas.common import CamelModel


class _Upstream(CamelModel):
    """Upstream documents carry many fields we do not use; ignore them."""

    model_config = ConfigDict(extra="ignore")


class StateChannelEntry(_Upstream):
    """One state-channel snapshot included in a GL0 global snapshot."""

    last_snapshot_hash: str
    content: Any = None


class GlobalSnapshot(_Upstream):
    """Latest GL0 global snapshot, reduced to the fields confirmation needs."""

    ordinal: int
    state_channel_snapshots: dict[str, list[StateChannelEntry]] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_signed_value(cls, data: Any) -> Any:
        # GL0 serves Signed[GlobalSnapshot]; the body lives under "value".
        if isinstance(data, dict) and "value" in data and "ordinal" not in data:
            return data["value"]
        return data

    def latest_hash(self, channel_id: str) -> str | None:
        """Return the hash of the newest entry for ``channel_id``, if any."""
        entries = self.state_channel_snapshots.get(channel_id) or []
        if not entries:
            return None
        return entries[-1].last_snapshot_hash


class OrdinalValue(_Upstream):
    value: int = 0


class StateValue(_Upstream):
    value: str = "unknown"


class DefinitionMetadata(_Upstream):
    name: str | None = None
    description: str | None = None


class StateMachineDefinition(_Upstream):
    metadata: DefinitionMetadata | None = None


class EventReceipt(_Upstream):
    """Receipt of the last event applied to a fiber."""

    event_name: str
    from_state: StateValue
    to_state: StateValue
    success: bool = False
    gas_used: int = 0


class StateMachineRecord(_Upstream):
    """A state machine fiber as reported by the ML0 checkpoint."""

    fiber_id: str | None = None
    status: str = "Active"
    current_state: StateValue = Field(default_factory=StateValue)
    state_data: dict[str, Any] = Field(default_factory=dict)
    definition: StateMachineDefinition = Field(default_factory=StateMachineDefinition)
    owners: list[str] = Field(default_factory=list)
    sequence_number: int = 0
    creation_ordinal: OrdinalValue | None = None
    latest_update_ordinal: OrdinalValue | None = None
    last_receipt: EventReceipt | None = None

    @property
    def workflow_type(self) -> str:
        metadata = self.definition.metadata
        return (metadata.name if metadata and metadata.name else None) or "Unknown"

    @property
    def workflow_desc(self) -> str | None:
        metadata = self.definition.metadata
        return metadata.description if metadata else None


class CheckpointState(_Upstream):
    state_machines: dict[str, StateMachineRecord] = Field(default_factory=dict)
    scripts: dict[str, Any] = Field(default_factory=dict)


class Checkpoint(_Upstream):
    """ML0 ``/data-application/v1/checkpoint`` response."""

    ordinal: int
    state: CheckpointState = Field(default_factory=CheckpointState)
