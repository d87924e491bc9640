"""Unit tests for core/cache.py -- TTLCache with an injected clock."""

import pytest

from core.cache import TTLCache


@pytest.fixture
def now():
    return [100.0]


@pytest.fixture
def cache(now):
    return TTLCache(clock=lambda: now[0], default_ttl=10)


def test_get_miss_returns_none(cache):
    assert cache.get("missing") is None


def test_set_then_get(cache):
    cache.set("k", {"v": 1})
    assert cache.get("k") == {"v": 1}


def test_entry_expires_after_ttl(cache, now):
    cache.set("k", "v", ttl=5)
    now[0] += 4.9
    assert cache.get("k") == "v"
    now[0] += 0.1
    assert cache.get("k") is None
    assert len(cache) == 0


def test_default_ttl_applies(cache, now):
    cache.set("k", "v")
    now[0] += 10
    assert cache.get("k") is None


def test_get_or_set_builds_once(cache):
    calls = []

    def factory():
        calls.append(1)
        return "built"

    assert cache.get_or_set("k", factory) == "built"
    assert cache.get_or_set("k", factory) == "built"
    assert len(calls) == 1


def test_delete_and_clear(cache):
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("never-set")
    assert cache.get("a") is None
    cache.clear()
    assert len(cache) == 0


def test_purge_expired_counts_removed(cache, now):
    cache.set("short", 1, ttl=1)
    cache.set("long", 2, ttl=100)
    now[0] += 5
    assert cache.purge_expired() == 1
    assert cache.get("long") == 2


def test_close_empties_cache(cache):
    cache.set("k", "v")
    cache.close()
    assert len(cache) == 0
