"""Sequenced submission of fiber transitions to DL1.

DL1 only learns about a submitted transaction once it lands in a snapshot, so
a caller submitting several transitions in quick succession would reuse the
same sequence number if it trusted DL1 alone. ``SequencedSubmitter`` combines
DL1's value with the optimistic ``SequenceCache``: the next sequence is the
larger of the two, and the cache advances only after DL1 accepted the
submission.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from metagraph_sync.services.metagraph import MetagraphClient, MetagraphError
from metagraph_sync.services.sequence_cache import SequenceCache

logger = logging.getLogger(__name__)

MessageBuilder = Callable[[int], Mapping[str, Any]]
Signer = Callable[[Mapping[str, Any]], Awaitable[Mapping[str, Any]]]


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a successful submission."""

    fiber_id: str
    sequence: int
    hash: str
    ordinal: int | None


def transition_message(
    fiber_id: str,
    event_name: str,
    payload: Mapping[str, Any],
    target_sequence_number: int,
) -> dict[str, Any]:
    """Build a ``TransitionStateMachine`` update for ``fiber_id``."""
    return {
        "TransitionStateMachine": {
            "fiberId": fiber_id,
            "eventName": event_name,
            "payload": dict(payload),
            "targetSequenceNumber": target_sequence_number,
        }
    }


class SequencedSubmitter:
    """Resolves, signs and submits fiber updates with optimistic sequencing."""

    def __init__(self, client: MetagraphClient, cache: SequenceCache) -> None:
        self.client = client
        self.cache = cache

    async def next_sequence(self, fiber_id: str) -> int:
        """Return the sequence number the next update for ``fiber_id`` should target."""
        authority = await self.client.get_fiber_sequence(fiber_id)
        sequence = self.cache.resolve(fiber_id, authority)
        if sequence != authority:
            logger.debug(
                "Fiber %s: DL1 at %d, using cached sequence %d", fiber_id, authority, sequence
            )
        return sequence

    async def submit(
        self,
        fiber_id: str,
        build_message: MessageBuilder,
        signer: Signer,
    ) -> SubmissionResult:
        """Submit the update produced by ``build_message`` for ``fiber_id``.

        ``build_message`` receives the resolved sequence number and returns the
        unsigned update; ``signer`` turns it into the signed document DL1 accepts.

        Any failure clears the cached sequence for the fiber so the next
        attempt starts again from DL1's value, and is re-raised.
        """
        sequence = 0
        try:
            sequence = await self.next_sequence(fiber_id)
            message = build_message(sequence)
            signed = await signer(message)
            receipt = await self.client.submit_transaction(signed)
        except Exception:
            self.cache.reset(fiber_id)
            logger.warning("Submission for fiber %s failed; cleared cached sequence", fiber_id)
            raise

        self.cache.advance(fiber_id, sequence)
        logger.info(
            "Submitted update for fiber %s at sequence %d (hash %s)",
            fiber_id,
            sequence,
            receipt.hash,
        )
        return SubmissionResult(
            fiber_id=fiber_id,
            sequence=sequence,
            hash=receipt.hash,
            ordinal=receipt.ordinal,
        )

    async def wait_for_sequence(
        self,
        fiber_id: str,
        expected: int,
        *,
        attempts: int = 60,
        interval_seconds: float = 1.0,
    ) -> int:
        """Poll DL1 until ``fiber_id`` reaches ``expected``; return the value seen.

        Raises:
            MetagraphError: the fiber did not reach ``expected`` in time.
        """
        current = 0
        for attempt in range(attempts):
            try:
                current = await self.client.get_fiber_sequence(fiber_id)
            except MetagraphError as e:
                logger.debug("DL1 sequence read failed for %s: %s", fiber_id, e)
            else:
                if current >= expected:
                    logger.info("Fiber %s synced to DL1 (seq=%d)", fiber_id, current)
                    return current
            if attempt < attempts - 1:
                await asyncio.sleep(interval_seconds)

        raise MetagraphError(
            f"Fiber {fiber_id} did not reach sequence {expected} in DL1 (last seen {current})"
        )
