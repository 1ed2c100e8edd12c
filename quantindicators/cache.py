"""结果缓存层

为流水线批量执行提供阶段结果的记忆化缓存，支持 TTL 过期和 LRU 淘汰。
缓存对象由执行器持有或由调用方注入，不存在进程级全局缓存。
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple

from quantindicators.types import OHLCV, IndicatorResult

logger = logging.getLogger(__name__)


def _freeze(value: Any) -> Hashable:
    """把参数转换为可哈希的结构，用于构造缓存键"""
    if isinstance(value, Mapping):
        return tuple(sorted((str(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, Hashable):
        return value
    return repr(value)


def dataset_fingerprint(data: Sequence[OHLCV]) -> Tuple[int, int]:
    """数据集指纹（长度 + 哈希），仅在同一进程内有效"""
    return (len(data), hash(tuple(data)))


@dataclass
class _Entry:
    results: Tuple[IndicatorResult, ...]
    stored_at: float


class ResultCache:
    """流水线阶段结果缓存

    - 键由指标实现标识、参数、输入映射和数据集指纹组成
    - 超过 max_size 时淘汰最久未访问的条目
    - 条目写入 ttl 秒后过期，读取时惰性清除

    Example::

        cache = ResultCache(max_size=64)
        executor = PipelineExecutor(cache=cache)
    """

    def __init__(self, max_size: int = 256, ttl: float = 300.0) -> None:
        if max_size < 1:
            raise ValueError("max_size must be positive")
        self.max_size = max_size
        self.ttl = ttl
        self._entries: "OrderedDict[Hashable, _Entry]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(
        indicator_identity: str,
        params: Mapping[str, Any],
        input_mapping: Mapping[str, str],
        fingerprint: Tuple[int, int],
    ) -> Hashable:
        return (indicator_identity, _freeze(params), _freeze(input_mapping), fingerprint)

    def get(self, key: Hashable) -> Optional[List[IndicatorResult]]:
        """读取阶段结果，返回新的列表；未命中或已过期时返回 None"""
        entry = self._entries.get(key)
        if entry is None or time.monotonic() - entry.stored_at > self.ttl:
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug("result cache hit: %s", key[0] if isinstance(key, tuple) else key)
        return list(entry.results)

    def set(self, key: Hashable, results: List[IndicatorResult]) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("result cache evicted: %s", evicted[0] if isinstance(evicted, tuple) else evicted)
        self._entries[key] = _Entry(results=tuple(results), stored_at=time.monotonic())

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0

    @property
    def size(self) -> int:
        return len(self._entries)

    @property
    def hit_rate(self) -> float:
        total = self._hits + self._misses
        return self._hits / total if total > 0 else 0.0

    def stats(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self.hit_rate,
        }


__all__ = [
    "ResultCache",
    "dataset_fingerprint",
]
