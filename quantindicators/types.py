"""数据模型

- OHLCV: K 线数据点，所有价格与成交量均为 Decimal
- IndicatorResult: 指标单步计算结果
- ParamMetadata / OutputFieldMetadata: 参数与输出字段的反射描述

浮点数与 Decimal 之间的转换只发生在 to_decimal 这一处边界。
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from quantindicators.errors import InvalidDataFormat, ValidationError

PRICE_FIELDS = ("open", "high", "low", "close")
OHLCV_FIELDS = PRICE_FIELDS + ("volume",)

Number = Union[Decimal, int, float, str]
IndicatorValue = Union[Decimal, Dict[str, Decimal]]

ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """将数值转换为 Decimal

    float 通过 repr 转换，避免二进制误差（0.1 -> Decimal("0.1")）。

    Raises:
        InvalidDataFormat: 当值无法表示为有限 Decimal 时
    """
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise InvalidDataFormat(expected="finite decimal", received=str(value))
        return value
    if isinstance(value, bool):
        raise InvalidDataFormat(expected="number", received=repr(value))
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidDataFormat(expected="finite number", received=repr(value))
        return Decimal(repr(value))
    if isinstance(value, str):
        try:
            parsed = Decimal(value.strip())
        except InvalidOperation:
            raise InvalidDataFormat(expected="numeric string", received=repr(value)) from None
        if not parsed.is_finite():
            raise InvalidDataFormat(expected="finite decimal", received=value)
        return parsed
    raise InvalidDataFormat(expected="number", received=type(value).__name__)


@dataclass(frozen=True)
class OHLCV:
    """K 线数据点

    Attributes:
        open: 开盘价
        high: 最高价
        low: 最低价
        close: 收盘价
        volume: 成交量（>= 0）
        timestamp: 时间戳，合成数据点可为 None
    """

    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = ZERO
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in OHLCV_FIELDS:
            object.__setattr__(self, name, to_decimal(getattr(self, name)))

        if self.volume < 0:
            raise ValidationError("volume", self.volume, "must be non-negative")
        if self.low > self.high:
            raise ValidationError("low", self.low, f"must not exceed high ({self.high})")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], index: Optional[int] = None) -> "OHLCV":
        """从字典构建数据点，缺失字段时抛出 InvalidDataFormat"""
        missing = [name for name in PRICE_FIELDS if name not in data]
        if missing:
            raise InvalidDataFormat(
                expected=f"mapping with keys {list(PRICE_FIELDS)}",
                received=f"missing {missing}",
                index=index,
            )
        try:
            return cls(
                open=data["open"],
                high=data["high"],
                low=data["low"],
                close=data["close"],
                volume=data.get("volume", ZERO),
                timestamp=data.get("timestamp"),
            )
        except InvalidDataFormat as exc:
            if index is None:
                raise
            raise InvalidDataFormat(exc.expected, exc.received, index=index) from exc

    @classmethod
    def synthetic(cls, value: Number, timestamp: Optional[datetime] = None) -> "OHLCV":
        """把单个数值包装为合成数据点（四个价格相同，成交量为 0）"""
        price = to_decimal(value)
        return cls(open=price, high=price, low=price, close=price, volume=ZERO, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "timestamp": self.timestamp,
        }


def ensure_point(point: Any, index: Optional[int] = None) -> OHLCV:
    """把 OHLCV / 字典 / 数值统一转换为 OHLCV"""
    if isinstance(point, OHLCV):
        return point
    if isinstance(point, Mapping):
        return OHLCV.from_dict(point, index=index)
    if isinstance(point, (Decimal, int, float)) and not isinstance(point, bool):
        try:
            return OHLCV.synthetic(point)
        except InvalidDataFormat as exc:
            raise InvalidDataFormat(exc.expected, exc.received, index=index) from exc
    raise InvalidDataFormat(
        expected="OHLCV, mapping or number",
        received=type(point).__name__,
        index=index,
    )


def ensure_series(data: Sequence[Any]) -> List[OHLCV]:
    """把输入序列统一转换为 OHLCV 列表"""
    if isinstance(data, (str, bytes)) or not isinstance(data, Sequence):
        raise InvalidDataFormat(expected="sequence of data points", received=type(data).__name__)
    return [ensure_point(point, index=idx) for idx, point in enumerate(data)]


@dataclass
class IndicatorResult:
    """指标计算结果

    Attributes:
        value: 指标值（Decimal 或字段名到 Decimal 的映射）
        timestamp: 对应数据点的时间戳
        metadata: 附加信息（指标名、周期等）
    """

    value: IndicatorValue
    timestamp: Optional[datetime]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParamMetadata:
    """参数描述

    type 取值: "integer" | "number" | "string" | "boolean"
    """

    name: str
    type: str
    default: Any = None
    required: bool = False
    min: Optional[Number] = None
    max: Optional[Number] = None
    options: Optional[Sequence[Any]] = None
    description: str = ""


@dataclass(frozen=True)
class OutputFieldMetadata:
    """输出字段描述

    type 取值: "single_value" | "multi_value"
    """

    type: str
    description: str
    fields: Sequence[Dict[str, str]] = ()
    example: str = ""
    unit: str = ""


__all__ = [
    "OHLCV",
    "OHLCV_FIELDS",
    "PRICE_FIELDS",
    "IndicatorResult",
    "IndicatorValue",
    "ParamMetadata",
    "OutputFieldMetadata",
    "to_decimal",
    "ensure_point",
    "ensure_series",
]
