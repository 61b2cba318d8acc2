import json

import pytest

from alert_engine.cache import KIND_QUOTE, MarketDataCache
from tests.helpers import FakeClock, FakeRedis


class CountingFetcher:
    def __init__(self, value=505.0):
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return self.value


async def test_second_read_within_ttl_hits_cache():
    clock = FakeClock()
    cache = MarketDataCache(clock=clock)
    fetch = CountingFetcher()

    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 505.0
    clock.advance(14.9)
    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 505.0
    assert fetch.calls == 1


async def test_read_after_ttl_refetches_and_overwrites():
    clock = FakeClock()
    cache = MarketDataCache(clock=clock)
    fetch = CountingFetcher()

    await cache.get("SPY", KIND_QUOTE, 15, fetch)
    clock.advance(15)
    fetch.value = 510.0
    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 510.0
    assert fetch.calls == 2


async def test_keys_are_per_symbol_and_kind():
    cache = MarketDataCache(clock=FakeClock())
    fetch = CountingFetcher()
    await cache.get("SPY", "quote", 15, fetch)
    await cache.get("SPY", "daily", 60, fetch)
    await cache.get("QQQ", "quote", 15, fetch)
    assert fetch.calls == 3
    assert len(cache) == 3


async def test_failed_fetch_propagates_and_does_not_poison():
    cache = MarketDataCache(clock=FakeClock())

    async def boom():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        await cache.get("SPY", KIND_QUOTE, 15, boom)

    fetch = CountingFetcher()
    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 505.0
    assert fetch.calls == 1


async def test_none_result_is_not_stored():
    cache = MarketDataCache(clock=FakeClock())
    empty = CountingFetcher(value=None)
    assert await cache.get("SPY", KIND_QUOTE, 15, empty) is None
    assert await cache.get("SPY", KIND_QUOTE, 15, empty) is None
    assert empty.calls == 2


async def test_redis_tier_is_written_and_shared():
    redis = FakeRedis()
    first = MarketDataCache(clock=FakeClock(), redis=redis)
    await first.get("SPY", "daily", 60, CountingFetcher(value=[1.0, 2.0]))
    assert json.loads(redis.data["alerts:daily:SPY"]) == [1.0, 2.0]

    second = MarketDataCache(clock=FakeClock(), redis=redis)
    fetch = CountingFetcher(value=[9.0])
    assert await second.get("SPY", "daily", 60, fetch) == [1.0, 2.0]
    assert fetch.calls == 0


async def test_redis_errors_fall_back_to_memory():
    cache = MarketDataCache(clock=FakeClock(), redis=FakeRedis(fail=True))
    fetch = CountingFetcher()
    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 505.0
    assert await cache.get("SPY", KIND_QUOTE, 15, fetch) == 505.0
    assert fetch.calls == 1
