"""Unit tests for the decoded-filter LRU cache."""
import pytest

from breachbloom.bloom import BloomFilter
from breachbloom.cache import FilterCache


def _bf(tag: bytes) -> BloomFilter:
    bf = BloomFilter(m=64, k=2)
    bf.add(tag)
    return bf


def test_miss_then_hit():
    cache = FilterCache(max_entries=2)
    assert cache.get("00", (1, 1)) is None
    cache.put("00", (1, 1), _bf(b"a"))
    assert cache.get("00", (1, 1)) == _bf(b"a")
    assert (cache.stats.hits, cache.stats.misses) == (1, 1)


def test_lru_eviction():
    cache = FilterCache(max_entries=2)
    cache.put("00", (1, 1), _bf(b"a"))
    cache.put("01", (1, 1), _bf(b"b"))
    cache.get("00", (1, 1))  # 00 is now most recent
    cache.put("02", (1, 1), _bf(b"c"))
    assert "01" not in cache
    assert "00" in cache and "02" in cache
    assert cache.stats.evictions == 1
    assert len(cache) == 2


def test_changed_signature_invalidates():
    cache = FilterCache()
    cache.put("aa", (100, 10), _bf(b"old"))
    assert cache.get("aa", (200, 10)) is None
    assert "aa" not in cache
    assert cache.stats.invalidations == 1


def test_get_or_load_populates_once():
    cache = FilterCache()
    calls = []

    def loader():
        calls.append(1)
        return _bf(b"x")

    first = cache.get_or_load("10", (1, 1), loader)
    second = cache.get_or_load("10", (1, 1), loader)
    assert first is second
    assert len(calls) == 1


def test_failed_load_is_not_cached():
    cache = FilterCache()

    def loader():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        cache.get_or_load("10", (1, 1), loader)
    assert "10" not in cache


def test_explicit_invalidation():
    cache = FilterCache()
    cache.put("00", (1, 1), _bf(b"a"))
    cache.put("01", (1, 1), _bf(b"b"))
    cache.invalidate("00")
    assert "00" not in cache and "01" in cache
    cache.invalidate()
    assert len(cache) == 0


def test_needs_positive_size():
    with pytest.raises(ValueError):
        FilterCache(max_entries=0)
