"""Contract tests for the in-memory and Redis embedding caches."""

import json
from datetime import UTC, datetime, timedelta

import pytest

from chat_recall.domain.services.text import cache_key
from chat_recall.infrastructure.cache.memory_cache import InMemoryEmbeddingCache, NullEmbeddingCache
from chat_recall.infrastructure.cache.redis_cache import RedisEmbeddingCache
from chat_recall.infrastructure.queues.redis_streams_adapter import RedisConfig


class FakeClock:
    def __init__(self) -> None:
        self.t = datetime(2024, 1, 1, tzinfo=UTC)

    def now(self) -> datetime:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += timedelta(seconds=seconds)


class FakeRedis:
    """Subset of redis.Redis used by the cache; `broken` simulates an outage."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise ConnectionError("Error 111 connecting to localhost:6379. Connection refused.")

    def get(self, key):
        self._check()
        return self.store.get(key)

    def set(self, key, value):
        self._check()
        self.store[key] = value

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, key):
        self._check()
        self.store.pop(key, None)


class TestInMemoryEmbeddingCache:
    def test_put_then_get(self) -> None:
        cache = InMemoryEmbeddingCache(namespace="m")
        cache.put("hello world", (0.1, 0.2))
        assert cache.get("hello world") == (0.1, 0.2)

    def test_lookup_uses_normalized_text(self) -> None:
        cache = InMemoryEmbeddingCache(namespace="m")
        cache.put("hello   world", (0.1, 0.2))
        assert cache.get("  hello world") == (0.1, 0.2)

    def test_casefold_option(self) -> None:
        plain = InMemoryEmbeddingCache(namespace="m")
        folded = InMemoryEmbeddingCache(namespace="m", casefold=True)
        plain.put("Hello", (1.0,))
        folded.put("Hello", (1.0,))
        assert plain.get("hello") is None
        assert folded.get("hello") == (1.0,)

    def test_expired_entry_is_a_miss(self) -> None:
        clock = FakeClock()
        cache = InMemoryEmbeddingCache(namespace="m", default_ttl_s=60, clock=clock)
        cache.put("hi", (1.0,))

        clock.advance(59)
        assert cache.get("hi") == (1.0,)
        clock.advance(1)
        assert cache.get("hi") is None
        assert len(cache) == 0

    def test_explicit_ttl_overrides_default(self) -> None:
        clock = FakeClock()
        cache = InMemoryEmbeddingCache(namespace="m", default_ttl_s=3600, clock=clock)
        cache.put("hi", (1.0,), ttl_s=5)
        clock.advance(10)
        assert cache.get("hi") is None

    def test_non_positive_ttl_stores_nothing(self) -> None:
        cache = InMemoryEmbeddingCache(namespace="m")
        cache.put("hi", (1.0,))
        cache.put("hi", (2.0,), ttl_s=0)
        cache.put("other", (3.0,), ttl_s=-5)

        assert cache.get("hi") is None
        assert cache.get("other") is None
        assert len(cache) == 0

    def test_lru_eviction(self) -> None:
        cache = InMemoryEmbeddingCache(namespace="m", max_entries=2)
        cache.put("a", (1.0,))
        cache.put("b", (2.0,))
        cache.get("a")  # a is now most recently used
        cache.put("c", (3.0,))

        assert cache.get("b") is None
        assert cache.get("a") == (1.0,)
        assert cache.get("c") == (3.0,)

    def test_expire_drops_entry(self) -> None:
        cache = InMemoryEmbeddingCache(namespace="m")
        cache.put("hi", (1.0,))
        cache.expire("hi")
        cache.expire("never-stored")
        assert cache.get("hi") is None

    def test_null_cache_never_hits(self) -> None:
        cache = NullEmbeddingCache()
        cache.put("hi", (1.0,))
        assert cache.get("hi") is None


class TestRedisEmbeddingCache:
    def make(self, **kw):
        client = FakeRedis()
        cache = RedisEmbeddingCache(RedisConfig(), namespace="text-embedding-3-small", client=client, **kw)
        return cache, client

    def test_put_stores_json_under_hashed_key_with_ttl(self) -> None:
        cache, client = self.make(default_ttl_s=3600)
        cache.put("hello", (0.5, 0.25))

        key = f"emb:text-embedding-3-small:{cache_key('hello', 'text-embedding-3-small')}"
        assert json.loads(client.store[key]) == [0.5, 0.25]
        assert client.ttls[key] == 3600
        assert cache.get("hello") == (0.5, 0.25)

    def test_fractional_ttl_rounds_up(self) -> None:
        cache, client = self.make()
        cache.put("a", (1.0,), ttl_s=0.5)
        cache.put("b", (1.0,), ttl_s=1.2)

        assert client.ttls[cache.key_for("a")] == 1
        assert client.ttls[cache.key_for("b")] == 2

    def test_non_positive_ttl_removes_entry(self) -> None:
        cache, client = self.make()
        cache.put("hello", (1.0,))
        cache.put("hello", (2.0,), ttl_s=0)

        assert cache.get("hello") is None
        assert client.ttls == {}

    def test_no_ttl_uses_plain_set(self) -> None:
        cache, client = self.make()
        cache.put("hello", (1.0,))
        assert client.ttls == {}
        assert cache.get("hello") == (1.0,)

    def test_outage_degrades_to_miss(self, caplog) -> None:
        cache, client = self.make()
        cache.put("hello", (1.0,))
        client.broken = True

        assert cache.get("hello") is None
        cache.put("other", (2.0,))  # must not raise
        cache.expire("hello")
        assert "Embedding cache" in caplog.text

    def test_undecodable_entry_is_a_miss(self) -> None:
        cache, client = self.make()
        client.store[cache.key_for("hello")] = "not-json"
        assert cache.get("hello") is None

    def test_bytes_payload_is_decoded(self) -> None:
        cache, client = self.make()
        client.store[cache.key_for("hello")] = b"[1.0, 2.0]"
        assert cache.get("hello") == (1.0, 2.0)


@pytest.mark.parametrize("casefold", [False, True])
def test_caches_agree_on_normalization(casefold):
    mem = InMemoryEmbeddingCache(namespace="m", casefold=casefold)
    red = RedisEmbeddingCache(RedisConfig(), namespace="m", casefold=casefold, client=FakeRedis())
    for cache in (mem, red):
        cache.put(" Same\ttext ", (1.0,))
        assert cache.get("Same text") == (1.0,)


@pytest.mark.parametrize("ttl", [0, -1])
def test_caches_agree_on_non_positive_ttl(ttl):
    mem = InMemoryEmbeddingCache(namespace="m", default_ttl_s=ttl)
    red = RedisEmbeddingCache(RedisConfig(), namespace="m", default_ttl_s=ttl, client=FakeRedis())

    for cache in (mem, red):
        cache.put("hello", (1.0, 2.0))
        assert cache.get("hello") is None
