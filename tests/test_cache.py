import asyncio

import pytest

from esg_hub.core.assistant.cache import TTLCache, run_sweeper


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_get_returns_value_before_expiry():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)

    cache.set("dashboard_summary_1_True", {"kpis": {}})
    clock.advance(300)

    # Still valid exactly at expires_at
    assert cache.get("dashboard_summary_1_True") == {"kpis": {}}


def test_get_returns_none_after_expiry_and_evicts():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)

    cache.set("key", "value")
    clock.advance(300.01)

    assert cache.get("key") is None
    assert len(cache) == 0


def test_custom_ttl_overrides_default():
    clock = FakeClock()
    cache = TTLCache(default_ttl=300, clock=clock)

    cache.set("short", 1, ttl=10)
    cache.set("long", 2)
    clock.advance(11)

    assert "short" not in cache
    assert cache.get("long") == 2


def test_sweep_removes_only_expired():
    clock = FakeClock()
    cache = TTLCache(default_ttl=60, clock=clock)

    cache.set("a", 1)
    cache.set("b", 2, ttl=600)
    clock.advance(61)

    assert cache.sweep() == 1
    assert len(cache) == 1
    assert cache.get("b") == 2


def test_delete_and_clear():
    cache = TTLCache()
    cache.set("a", 1)
    cache.set("b", 2)

    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None

    cache.clear()
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_sweeper_runs_until_cancelled():
    clock = FakeClock()
    cache = TTLCache(default_ttl=1, clock=clock)
    cache.set("a", 1)
    clock.advance(5)

    task = asyncio.create_task(run_sweeper(cache, 0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert len(cache) == 0
