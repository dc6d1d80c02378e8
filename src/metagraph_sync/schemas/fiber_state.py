"""Typed views over a fiber's ``stateData`` document.

Fiber state data is an open-ended JSON record on chain. The indexer only
needs a handful of fields for the workflow kinds it derives records from, so
each known kind gets its own validated variant and everything else becomes
``UnknownFiberState``.
"""
from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter, ValidationError

from metagraph_sync.schemas.common import CamelModel

logger = logging.getLogger(__name__)

KIND_AGENT_IDENTITY = "AgentIdentity"
KIND_CONTRACT = "Contract"
KIND_MARKET = "Market"
KIND_UNKNOWN = "Unknown"


class AgentIdentityState(CamelModel):
    kind: Literal["AgentIdentity"] = KIND_AGENT_IDENTITY
    display_name: str | None = None
    reputation: int = 10
    status: str | None = None


class ContractFiberState(CamelModel):
    kind: Literal["Contract"] = KIND_CONTRACT
    proposer: str | None = None
    counterparty: str | None = None
    title: str = "Contract"
    description: str = ""
    terms: dict[str, Any] = Field(default_factory=dict)


class MarketState(CamelModel):
    kind: Literal["Market"] = KIND_MARKET
    market_type: str | None = None
    status: str | None = None
    total_committed: float | None = None


class UnknownFiberState(CamelModel):
    kind: Literal["Unknown"] = KIND_UNKNOWN
    schema_name: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


FiberStateVariant = Annotated[
    Union[AgentIdentityState, ContractFiberState, MarketState, UnknownFiberState],
    Field(discriminator="kind"),
]

_variant_adapter: TypeAdapter[FiberStateVariant] = TypeAdapter(FiberStateVariant)


def detect_kind(workflow_type: str | None, state_data: dict[str, Any]) -> str:
    """Return the variant tag for a fiber from its workflow name or ``schema`` field."""
    schema = state_data.get("schema")
    for kind in (KIND_AGENT_IDENTITY, KIND_CONTRACT, KIND_MARKET):
        if workflow_type == kind or schema == kind:
            return kind
    return KIND_UNKNOWN


def parse_fiber_state(
    workflow_type: str | None, state_data: dict[str, Any] | None
) -> AgentIdentityState | ContractFiberState | MarketState | UnknownFiberState:
    """Parse ``state_data`` into the variant matching the fiber's workflow.

    A known kind whose data does not validate degrades to ``UnknownFiberState``
    so one malformed fiber never blocks indexing a snapshot.
    """
    data = dict(state_data or {})
    kind = detect_kind(workflow_type, data)
    schema_name = data.get("schema") if isinstance(data.get("schema"), str) else None

    if kind != KIND_UNKNOWN:
        candidate = {key: value for key, value in data.items() if key != "kind"}
        candidate["kind"] = kind
        try:
            return _variant_adapter.validate_python(candidate)
        except ValidationError as exc:
            logger.warning("State data for %s fiber failed validation: %s", kind, exc)

    return UnknownFiberState(schema_name=schema_name, raw=data)
