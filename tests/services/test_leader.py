from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from metagraph_sync.services.leader import AlwaysLeader, RedisPollerLease, build_poller_lease


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.set.return_value = True
    return client


@pytest.fixture
def lease(redis_client):
    return RedisPollerLease(redis_client, key="indexer:lease:test", ttl_seconds=30)


@pytest.mark.asyncio
async def test_acquire_sets_key_with_ttl(lease, redis_client):
    assert await lease.acquire() is True

    redis_client.set.assert_awaited_once_with(
        "indexer:lease:test", lease.token, nx=True, px=30_000
    )
    assert lease.held


@pytest.mark.asyncio
async def test_owner_renews_existing_lease(lease, redis_client):
    redis_client.set.return_value = None
    redis_client.get.return_value = lease.token.encode()

    assert await lease.acquire() is True

    redis_client.pexpire.assert_awaited_once_with("indexer:lease:test", 30_000)


@pytest.mark.asyncio
async def test_lease_held_elsewhere_is_refused(lease, redis_client):
    redis_client.set.return_value = None
    redis_client.get.return_value = b"someone-else"

    assert await lease.acquire() is False
    assert not lease.held
    redis_client.pexpire.assert_not_awaited()


@pytest.mark.asyncio
async def test_redis_outage_drops_lease(lease, redis_client):
    await lease.acquire()
    redis_client.set.side_effect = RedisConnectionError("gone")

    assert await lease.acquire() is False
    assert not lease.held


@pytest.mark.asyncio
async def test_release_deletes_only_own_key(lease, redis_client):
    await lease.acquire()
    redis_client.get.return_value = lease.token

    await lease.release()

    redis_client.delete.assert_awaited_once_with("indexer:lease:test")
    assert not lease.held


@pytest.mark.asyncio
async def test_release_without_lease_is_noop(lease, redis_client):
    await lease.release()

    redis_client.get.assert_not_awaited()
    redis_client.delete.assert_not_awaited()


@pytest.mark.asyncio
async def test_always_leader():
    leader = AlwaysLeader()

    assert await leader.acquire() is True
    await leader.release()


def test_build_lease_disabled_by_default():
    assert isinstance(build_poller_lease("confirmations"), AlwaysLeader)
