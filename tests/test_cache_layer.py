"""Cache layer tests: L1 only, and L1 + a dict-backed Redis stand-in"""

import gc
import json

import pytest
from redis.asyncio import RedisError

from tarevity.cache import layer
from tarevity.cache.decorators import async_cached, async_cached_expire
from tarevity.cache.layer import CacheLayer, get_lock_for_key
from tarevity.models import DismissRequest


class FakeRedis:
    def __init__(self, fail=False):
        self.data = {}
        self.ttls = {}
        self.fail = fail

    async def get(self, key):
        if self.fail:
            raise RedisError("connection reset")
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        if self.fail:
            raise RedisError("connection reset")
        self.data[key] = value
        self.ttls[key] = ex

    async def delete(self, key):
        self.data.pop(key, None)

    async def aclose(self):
        pass


@pytest.fixture
def redis_cache(local_cache):
    local_cache._redis = FakeRedis()
    yield local_cache
    local_cache._redis = None


async def test_loader_runs_once_per_key(local_cache):
    calls = []

    async def loader():
        calls.append(1)
        return {"value": 42}

    first = await local_cache.get("answer", loader=loader)
    second = await local_cache.get("answer", loader=loader)

    assert first == second == {"value": 42}
    assert len(calls) == 1
    assert local_cache.stats["l1_hits"] >= 1


async def test_none_is_not_cached(local_cache):
    calls = []

    async def loader():
        calls.append(1)
        return None

    assert await local_cache.get("missing", loader=loader) is None
    assert await local_cache.get("missing", loader=loader) is None
    assert len(calls) == 2


async def test_delete_evicts(local_cache):
    await local_cache.set("key", "v1")
    await local_cache.delete("key")

    assert await local_cache.get("key") is None


async def test_unreachable_redis_degrades_to_l1(settings):
    cache = CacheLayer()
    cache._settings = settings.model_copy(update={"redis_dsn": "redis://127.0.0.1:1/0"})

    await cache.init_cache()

    assert cache._initialized is True
    assert cache._redis is None
    await cache.set("key", "value")
    assert await cache.get("key") == "value"
    assert cache.get_stats()["redis"] is False


async def test_loaded_value_is_shared_through_redis(redis_cache, settings):
    async def loader():
        return [{"id": 1}]

    await redis_cache.get("notifications:user-1", loader=loader, l2_ttl=60)

    l2_key = "tarevity:l2:notifications:user-1"
    assert json.loads(redis_cache._redis.data[l2_key]) == [{"id": 1}]
    assert redis_cache._redis.ttls[l2_key] == 60

    # another worker: empty L1, same Redis
    redis_cache.l1.clear()

    async def must_not_load():
        raise AssertionError("loader should not run")

    assert await redis_cache.get("notifications:user-1", loader=must_not_load) == [{"id": 1}]
    assert redis_cache.stats["l2_hits"] == 1


async def test_default_l2_ttl_comes_from_settings(redis_cache, settings):
    await redis_cache.set("task:user-1:1", {"id": 1})

    assert redis_cache._redis.ttls["tarevity:l2:task:user-1:1"] == settings.l2_ttl_seconds


async def test_delete_clears_both_tiers(redis_cache):
    await redis_cache.set("notifications:user-1", [1])

    await redis_cache.delete("notifications:user-1")

    assert redis_cache._redis.data == {}
    assert await redis_cache.get("notifications:user-1") is None


async def test_redis_errors_fall_back_to_loader(redis_cache):
    redis_cache._redis.fail = True

    async def loader():
        return "fresh"

    assert await redis_cache.get("key", loader=loader) == "fresh"
    assert redis_cache.stats["errors"] == 2
    # L1 still serves it
    assert await redis_cache.get("key") == "fresh"


async def test_lock_is_shared_while_in_use_and_dropped_after():
    key = "reconcile:lock-lifetime"
    lock = get_lock_for_key(key)

    async with lock:
        assert get_lock_for_key(key) is lock

    del lock
    gc.collect()
    assert key not in layer._locks


async def test_decorators_store_models_as_dicts_and_expire(local_cache):
    calls = []

    @async_cached(lambda user_id: f"requests:{user_id}")
    async def load(user_id):
        calls.append(user_id)
        return [DismissRequest(id=1), DismissRequest(id=2)]

    @async_cached_expire(lambda user_id: f"requests:{user_id}")
    async def write(user_id):
        return "done"

    assert await load("user-1") == [{"id": 1}, {"id": 2}]
    assert await load("user-1") == [{"id": 1}, {"id": 2}]
    assert calls == ["user-1"]

    assert await write("user-1") == "done"
    await load("user-1")
    assert calls == ["user-1", "user-1"]
