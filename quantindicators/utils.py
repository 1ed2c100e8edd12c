"""通用计算工具

字段提取、均值/方差/标准差、真实波幅、滚动窗口与舍入。所有运算保持 Decimal。
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Sequence, Tuple

from quantindicators.errors import InvalidParams
from quantindicators.types import OHLCV, OHLCV_FIELDS, IndicatorValue

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def extract_field(point: OHLCV, source: str) -> Decimal:
    """提取数据点的指定字段"""
    if source not in OHLCV_FIELDS:
        raise InvalidParams("source", source, f"one of {list(OHLCV_FIELDS)}")
    return getattr(point, source)


def mean(values: Sequence[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / Decimal(len(values))


def variance(values: Sequence[Decimal], sample: bool = True) -> Decimal:
    """方差（sample=True 时使用 N-1 分母）"""
    n = len(values)
    if n < 2:
        return ZERO
    avg = mean(values)
    squared = sum(((value - avg) * (value - avg) for value in values), ZERO)
    return squared / Decimal(n - 1 if sample else n)


def standard_deviation(values: Sequence[Decimal], sample: bool = True) -> Decimal:
    return variance(values, sample=sample).sqrt()


def true_range(point: OHLCV, previous_close: Optional[Decimal]) -> Decimal:
    """真实波幅，首个数据点退化为 high - low"""
    spread = point.high - point.low
    if previous_close is None:
        return spread
    return max(spread, abs(point.high - previous_close), abs(point.low - previous_close))


def push_window(window: Tuple[Decimal, ...], value: Decimal, size: int) -> Tuple[Decimal, ...]:
    """向滚动窗口追加一个值，超过 size 时淘汰最旧的值"""
    updated = window + (value,)
    if len(updated) > size:
        updated = updated[len(updated) - size :]
    return updated


def round_decimal(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def round_value(value: IndicatorValue, places: int) -> IndicatorValue:
    """舍入单值或多值输出"""
    if isinstance(value, dict):
        rounded: Dict[str, Decimal] = {}
        for key, item in value.items():
            rounded[key] = round_decimal(item, places) if isinstance(item, Decimal) else item
        return rounded
    return round_decimal(value, places)


__all__ = [
    "extract_field",
    "mean",
    "variance",
    "standard_deviation",
    "true_range",
    "push_window",
    "round_decimal",
    "round_value",
]
