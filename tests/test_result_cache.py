"""Tests for LRU bounds, TTL expiry and group invalidation."""

from __future__ import annotations

from orchestrator.cache import CacheConfig, LRUCache, ResultCache


def test_lru_evicts_least_recently_accessed() -> None:
    """Reading a key protects it from the next eviction."""
    lru: LRUCache[str, int] = LRUCache(max_size=2)
    lru.put("a", 1)
    lru.put("b", 2)
    assert lru.get("a") == 1

    evicted = lru.put("c", 3)

    assert evicted == ("b", 2)
    assert len(lru) == 2
    assert "a" in lru and "c" in lru


def test_cache_never_exceeds_max_size(clock) -> None:
    """Inserting past capacity evicts and counts evictions."""
    cache = ResultCache(CacheConfig(max_size=3), clock=clock)
    for index in range(5):
        cache.put(f"fp-{index}", f"value-{index}")
        assert len(cache) <= 3

    stats = cache.stats()
    assert stats["size"] == 3
    assert stats["evictions"] == 2
    assert cache.get("fp-0") is None
    assert cache.get("fp-4") == "value-4"


def test_expired_entry_is_a_miss(clock) -> None:
    """Entries older than their TTL are dropped on access."""
    cache = ResultCache(CacheConfig(ttl_seconds=3600.0, sweep_interval_seconds=10_000.0), clock=clock)
    cache.put("fp", "value")

    clock.advance(3599.0)
    assert cache.get("fp") == "value"

    clock.advance(2.0)
    assert cache.get("fp") is None
    stats = cache.stats()
    assert stats["expirations"] == 1
    assert stats["size"] == 0
    assert stats["hits"] == 1 and stats["misses"] == 1


def test_group_invalidation_removes_only_that_group(clock) -> None:
    """Dropping one batch leaves other batches retrievable."""
    cache = ResultCache(clock=clock)
    for index in range(3):
        cache.put(f"a-{index}", f"a{index}", "batch-42")
    for index in range(2):
        cache.put(f"b-{index}", f"b{index}", "batch-43")
    before = len(cache)

    removed = cache.invalidate_group("batch-42")

    assert removed == 3
    assert len(cache) == before - 3
    assert cache.get("b-0") == "b0"
    assert cache.get("b-1") == "b1"
    assert cache.group_fingerprints("batch-43") == ["b-0", "b-1"]
    assert cache.invalidate_group("batch-42") == 0


def test_group_index_tracks_evictions_and_regrouping(clock) -> None:
    """Evicted or re-filed entries are not counted against their old group."""
    cache = ResultCache(CacheConfig(max_size=2), clock=clock)
    cache.put("x", "1", "g1")
    cache.put("y", "2", "g1")
    cache.put("y", "2", "g2")
    cache.put("z", "3", "g2")

    assert "x" not in cache.group_fingerprints("g1")
    assert cache.invalidate_group("g1") == 0
    assert cache.get_group("g2") == {"y": "2", "z": "3"}


def test_sweep_runs_lazily_on_interval(clock) -> None:
    """The periodic sweep is triggered by cache traffic once the interval passes."""
    cache = ResultCache(CacheConfig(ttl_seconds=60.0, sweep_interval_seconds=300.0), clock=clock)
    cache.put("old-1", "v", "batch")
    cache.put("old-2", "v", "batch")

    clock.advance(301.0)
    cache.put("fresh", "v")

    stats = cache.stats()
    assert stats["size"] == 1
    assert stats["expirations"] == 2
    assert stats["groups"] == 0


def test_disabled_cache_stores_nothing(clock) -> None:
    """A disabled cache behaves as a permanent miss."""
    cache = ResultCache(clock=clock)
    cache.set_enabled(False)
    cache.put("fp", "value")

    assert cache.get("fp") is None
    assert len(cache) == 0


def test_entry_can_belong_to_several_groups(clock) -> None:
    """Dropping any one of an entry's groups removes it from all of them."""
    cache = ResultCache(clock=clock)
    cache.put("x", "1", "g1")
    cache.put("y", "2", "g2")

    assert cache.add_to_group("x", "g2")
    assert not cache.add_to_group("missing", "g2")
    assert cache.get_group("g2") == {"x": "1", "y": "2"}

    assert cache.invalidate_group("g1") == 1
    assert cache.group_fingerprints("g2") == ["y"]
    assert cache.stats()["groups"] == 1
