"""Optimistic per-fiber sequence tracking for transaction submission.

DL1 reports a fiber's sequence number from snapshot state, which lags behind
submissions this process has already made. Rapid successive transitions for
one fiber would otherwise all be built with the same stale sequence number and
rejected. ``SequenceCache`` remembers the next sequence number this process
believes is safe for every fiber it has submitted to, and ``resolve`` combines
it with DL1's value using ``max`` so whichever view is further ahead wins.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterator

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 1000


class SequenceCache:
    """Bounded map of fiber id to next expected sequence number.

    Entries are kept in least-recently-advanced order; when a new fiber would
    exceed ``max_size`` the oldest entry is evicted. The cache is process-local
    and not thread-safe; it is meant to be owned by one event loop.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._entries: OrderedDict[str, int] = OrderedDict()

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def entity_ids(self) -> Iterator[str]:
        """Iterate over cached fiber ids, oldest first."""
        return iter(list(self._entries))

    def get(self, entity_id: str) -> int:
        """Return the cached next sequence for ``entity_id`` (0 when absent)."""
        return self._entries.get(entity_id, 0)

    def resolve(self, entity_id: str, authority_value: int) -> int:
        """Return the sequence number to use for the next submission."""
        return max(authority_value, self._entries.get(entity_id, 0))

    def advance(self, entity_id: str, submitted_sequence: int) -> None:
        """Record that a submission using ``submitted_sequence`` was accepted.

        Never moves an entry backwards; a lower value is ignored.
        """
        candidate = submitted_sequence + 1
        if candidate <= self._entries.get(entity_id, 0):
            return

        if entity_id in self._entries:
            self._entries.move_to_end(entity_id)
        else:
            while len(self._entries) >= self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted sequence cache entry for fiber %s", evicted)
        self._entries[entity_id] = candidate

    def reset(self, entity_id: str) -> None:
        """Forget ``entity_id`` so the next resolve falls back to DL1's value."""
        self._entries.pop(entity_id, None)

    def clear(self) -> None:
        self._entries.clear()
