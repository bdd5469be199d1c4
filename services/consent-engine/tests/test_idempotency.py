import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from consent_engine.utils.idempotency import IdempotencyCache, IdempotencyConflict, canonical_sha256


class FakeRedis:
    """Dict-backed stand-in for the few redis.asyncio calls the cache makes."""

    def __init__(self) -> None:
        self.data = {}

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.data:
            return None
        self.data[key] = value
        return True


class BrokenRedis:
    async def get(self, key):
        raise RedisConnectionError("redis down")

    async def set(self, key, value, nx=False, ex=None):
        raise RedisConnectionError("redis down")


def test_hash_ignores_key_order():
    assert canonical_sha256({"a": 1, "b": [1, 2]}) == canonical_sha256({"b": [1, 2], "a": 1})


@pytest.mark.asyncio
async def test_first_request_claims_the_key():
    redis = FakeRedis()
    cache = IdempotencyCache(redis)

    assert await cache.begin("tpp", "key-1", "sha-a") is None
    assert "idem:consents:tpp:key-1" in redis.data


@pytest.mark.asyncio
async def test_completed_request_is_replayed():
    cache = IdempotencyCache(FakeRedis())
    await cache.begin("tpp", "key-1", "sha-a")
    await cache.complete("tpp", "key-1", "sha-a", response={"data": {"consentId": "c1"}}, status_code=201, headers={"Location": "/c1"})

    replay = await cache.begin("tpp", "key-1", "sha-a")

    assert replay.response == {"data": {"consentId": "c1"}}
    assert replay.status_code == 201
    assert replay.headers == {"Location": "/c1"}


@pytest.mark.asyncio
async def test_different_body_conflicts():
    cache = IdempotencyCache(FakeRedis())
    await cache.begin("tpp", "key-1", "sha-a")

    with pytest.raises(IdempotencyConflict):
        await cache.begin("tpp", "key-1", "sha-b")


@pytest.mark.asyncio
async def test_keys_are_scoped_per_client():
    cache = IdempotencyCache(FakeRedis())
    await cache.begin("tpp-a", "key-1", "sha-a")

    assert await cache.begin("tpp-b", "key-1", "sha-b") is None


@pytest.mark.asyncio
async def test_redis_outage_does_not_fail_the_request():
    cache = IdempotencyCache(BrokenRedis())

    assert await cache.begin("tpp", "key-1", "sha-a") is None
    await cache.complete("tpp", "key-1", "sha-a", response={}, status_code=201, headers={})
