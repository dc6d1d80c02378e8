"""Shared Pydantic configuration for camelCase wire formats."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Largest value a BigInteger ordinal column can hold.
MAX_ORDINAL = 2**63 - 1


class CamelModel(BaseModel):
    """Base model whose JSON form uses camelCase keys.

    Both the Python attribute name and the camelCase alias are accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def parse_iso_timestamp(value: object) -> object:
    """Require ISO 8601 strings for timestamp fields (no epoch numbers)."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError("timestamp must be an ISO 8601 string")
    # datetime.fromisoformat accepts a trailing 'Z' from Python 3.11 on.
    return datetime.fromisoformat(value)
