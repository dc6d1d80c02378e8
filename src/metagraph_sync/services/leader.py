"""Single-active-poller lease.

The confirmation and fallback pollers assume one active instance per tracked
channel. When several replicas run, each poller acquires a Redis lease before
every tick and skips the tick if another instance holds it.
"""

from __future__ import annotations

import logging
import secrets
from typing import Protocol

from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from metagraph_sync.core.settings import settings

logger = logging.getLogger(__name__)


class PollerLease(Protocol):
    async def acquire(self) -> bool: ...

    async def release(self) -> None: ...


class AlwaysLeader:
    """Lease used for single-instance deployments; always granted."""

    async def acquire(self) -> bool:
        return True

    async def release(self) -> None:
        return None


class RedisPollerLease:
    """Lease stored as a Redis key with a TTL, owned by a random token."""

    def __init__(
        self,
        client: Redis | None = None,
        *,
        key: str | None = None,
        ttl_seconds: float | None = None,
    ) -> None:
        self._redis = client or redis_from_url(settings.redis_url)
        self.key = key or settings.poller_lease_key
        self.ttl_ms = int(1000 * (ttl_seconds or settings.poller_lease_ttl_seconds))
        self.token = secrets.token_hex(8)
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def acquire(self) -> bool:
        """Take or renew the lease; return False when another instance owns it."""
        try:
            if await self._redis.set(self.key, self.token, nx=True, px=self.ttl_ms):
                if not self._held:
                    logger.info("Acquired poller lease %s", self.key)
                self._held = True
                return True

            owner = await self._redis.get(self.key)
            if isinstance(owner, bytes):
                owner = owner.decode()
            if owner == self.token:
                await self._redis.pexpire(self.key, self.ttl_ms)
                self._held = True
                return True
        except (RedisError, OSError) as exc:
            logger.warning("Poller lease check failed: %s", exc)

        if self._held:
            logger.warning("Lost poller lease %s", self.key)
        self._held = False
        return False

    async def release(self) -> None:
        if not self._held:
            return
        try:
            owner = await self._redis.get(self.key)
            if isinstance(owner, bytes):
                owner = owner.decode()
            if owner == self.token:
                await self._redis.delete(self.key)
        except (RedisError, OSError) as exc:
            logger.warning("Failed to release poller lease: %s", exc)
        finally:
            self._held = False


def build_poller_lease(name: str) -> PollerLease:
    """Return the lease for the poller called ``name``."""
    if settings.poller_lease_enabled:
        return RedisPollerLease(key=f"{settings.poller_lease_key}:{name}")
    return AlwaysLeader()
