"""缓存测试"""

from __future__ import annotations

import time
from decimal import Decimal

import pytest

from quantindicators.cache import ResultCache, dataset_fingerprint
from quantindicators.types import IndicatorResult

from conftest import make_candles


def _results(*values):
    return [IndicatorResult(value=Decimal(value), timestamp=None) for value in values]


class TestResultCache:
    """流水线结果缓存测试"""

    def test_basic_get_set(self):
        cache = ResultCache(max_size=10)
        cache.set("key1", _results(1))
        assert cache.get("key1") == _results(1)

    def test_cache_miss(self):
        cache = ResultCache(max_size=10)
        assert cache.get("nonexistent") is None

    def test_empty_results_are_cached(self):
        cache = ResultCache(max_size=10)
        cache.set("key1", [])
        assert cache.get("key1") == []

    def test_ttl_expiration(self):
        cache = ResultCache(max_size=10, ttl=0.1)
        cache.set("key1", _results(1))
        assert cache.get("key1") is not None
        time.sleep(0.15)
        assert cache.get("key1") is None
        assert cache.size == 0

    def test_lru_eviction(self):
        cache = ResultCache(max_size=3)
        cache.set("key1", _results(1))
        cache.set("key2", _results(2))
        cache.set("key3", _results(3))
        # 访问 key1，使其成为最近使用
        cache.get("key1")
        # 添加新项，key2 应被淘汰
        cache.set("key4", _results(4))
        assert cache.size == 3
        assert cache.get("key2") is None
        assert cache.get("key1") == _results(1)
        assert cache.get("key4") == _results(4)

    def test_hit_rate_and_clear(self):
        cache = ResultCache(max_size=10)
        cache.set("key1", _results(1))
        cache.get("key1")  # hit
        cache.get("key1")  # hit
        cache.get("key2")  # miss
        assert cache.hit_rate == 2 / 3
        assert cache.stats()["hits"] == 2

        cache.clear()
        assert cache.size == 0
        assert cache.stats()["misses"] == 0

    def test_rejects_zero_size(self):
        with pytest.raises(ValueError):
            ResultCache(max_size=0)

    def test_key_ignores_param_order(self):
        fingerprint = (3, 42)
        first = ResultCache.make_key("sma", {"period": 2, "source": "close"}, {}, fingerprint)
        second = ResultCache.make_key("sma", {"source": "close", "period": 2}, {}, fingerprint)
        assert first == second
        assert first != ResultCache.make_key("sma", {"period": 3, "source": "close"}, {}, fingerprint)

    def test_get_returns_copy(self):
        cache = ResultCache(max_size=4)
        results = _results(1)
        cache.set("key", results)
        results.append(IndicatorResult(value=Decimal(9), timestamp=None))
        cached = cache.get("key")
        cached.append(IndicatorResult(value=Decimal(2), timestamp=None))
        assert len(cache.get("key")) == 1

    def test_bounded_size(self):
        cache = ResultCache(max_size=2)
        for idx in range(5):
            cache.set(idx, [])
        assert cache.size == 2
        assert cache.stats()["max_size"] == 2

    def test_fingerprint_tracks_content(self):
        first = make_candles([1.0, 2.0, 3.0])
        second = make_candles([1.0, 2.0, 3.0])
        third = make_candles([1.0, 2.0, 4.0])
        assert dataset_fingerprint(first) == dataset_fingerprint(second)
        assert dataset_fingerprint(first) != dataset_fingerprint(third)
