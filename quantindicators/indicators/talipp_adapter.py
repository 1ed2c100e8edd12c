"""talipp 指标适配器

将 talipp 库的增量指标包装为统一的 Indicator 契约，注册名为 ``talipp:<type>``。

数值边界：输入在此处转换为 float 送入 talipp，输出通过 to_decimal 转回 Decimal。
talipp 指标对象是可变的：流式 update_state 先复制再追加数据，因此旧状态保持可用，
复制开销与已观测数据量成正比；批量 calculate 只驱动一个实例，不做复制。
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple

import talipp.indicators as ti
from talipp.ohlcv import OHLCV as TalippOHLCV

from quantindicators.errors import InvalidParams
from quantindicators.types import (
    OHLCV,
    IndicatorResult,
    IndicatorValue,
    OutputFieldMetadata,
    ParamMetadata,
    to_decimal,
)

from .base import Indicator, StreamState

TALIPP_PREFIX = "talipp:"


def _period(default: int) -> Dict[str, Any]:
    return {"period": default}


def _bands(v: Any) -> Dict[str, float]:
    return {"upper": v.ub, "middle": v.cb, "lower": v.lb}


# 指标注册表
# 格式: type -> (class, defaults, params_builder, warmup_fn, use_ohlcv, value_extractor)
# - class: talipp 指标类
# - defaults: 参数默认值（同时决定参数元数据）
# - params_builder: 从解析后的参数构建 talipp 构造函数的位置参数
# - warmup_fn: 产出首个值所需的观测数量
# - use_ohlcv: 是否需要完整 OHLCV 数据
# - value_extractor: 可选的值提取函数，用于转换复合输出

TALIPP_REGISTRY: Dict[str, tuple] = {
    # === 移动平均 ===
    "sma": (
        ti.SMA,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        False,
        None,
    ),
    "ema": (
        ti.EMA,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        False,
        None,
    ),
    "wma": (
        ti.WMA,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        False,
        None,
    ),
    "vwma": (
        ti.VWMA,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        True,
        None,
    ),
    # === 动量指标 ===
    "rsi": (
        ti.RSI,
        _period(14),
        lambda p: (p["period"],),
        lambda p: p["period"] + 1,
        False,
        None,
    ),
    "roc": (
        ti.ROC,
        _period(12),
        lambda p: (p["period"],),
        lambda p: p["period"] + 1,
        False,
        None,
    ),
    "cci": (
        ti.CCI,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        True,
        None,
    ),
    "willr": (
        ti.Williams,
        _period(14),
        lambda p: (p["period"],),
        lambda p: p["period"],
        True,
        None,
    ),
    # === 波动率指标 ===
    "bb": (
        ti.BB,
        {"period": 20, "std_dev": 2.0},
        lambda p: (p["period"], p["std_dev"]),
        lambda p: p["period"],
        False,
        _bands,
    ),
    "atr": (
        ti.ATR,
        _period(14),
        lambda p: (p["period"],),
        lambda p: p["period"],
        True,
        None,
    ),
    "dc": (
        ti.DonchianChannels,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        True,
        _bands,
    ),
    "stddev": (
        ti.StdDev,
        _period(20),
        lambda p: (p["period"],),
        lambda p: p["period"],
        False,
        None,
    ),
    # === 成交量指标 ===
    "obv": (
        ti.OBV,
        {},
        lambda p: (),
        lambda p: 1,
        True,
        None,
    ),
}


def _param_metadata(name: str, default: Any) -> ParamMetadata:
    if isinstance(default, int):
        return ParamMetadata(name=name, type="integer", default=default, min=1)
    return ParamMetadata(name=name, type="number", default=default, min=0)


@dataclass(frozen=True)
class TalippState(StreamState):
    indicator: Any = field(default=None, compare=False)


class TalippIndicator(Indicator):
    """通用 talipp 指标包装器

    Example::

        wma = TalippIndicator("wma")
        results = wma.calculate(data, {"period": 10})
    """

    precision = 6

    def __init__(self, indicator_type: str) -> None:
        indicator_type = indicator_type.lower()
        if indicator_type.startswith(TALIPP_PREFIX):
            indicator_type = indicator_type[len(TALIPP_PREFIX) :]
        if indicator_type not in TALIPP_REGISTRY:
            raise InvalidParams(
                "indicator",
                indicator_type,
                f"one of {get_supported_indicators()}",
                message=f"Unsupported talipp indicator: {indicator_type}",
            )
        self.indicator_type = indicator_type
        self.name = TALIPP_PREFIX + indicator_type
        (
            self._indicator_class,
            self._defaults,
            self._params_builder,
            self._warmup_fn,
            self._use_ohlcv,
            self._value_extractor,
        ) = TALIPP_REGISTRY[indicator_type]

    @property
    def identity(self) -> str:
        return f"{super().identity}:{self.indicator_type}"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [_param_metadata(name, default) for name, default in self._defaults.items()]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        if self._value_extractor is not None:
            return OutputFieldMetadata(
                type="multi_value",
                description=f"talipp {self._indicator_class.__name__}",
                fields=tuple(
                    {"name": key, "type": "decimal", "description": key}
                    for key in ("upper", "middle", "lower")
                ),
            )
        return OutputFieldMetadata(
            type="single_value",
            description=f"talipp {self._indicator_class.__name__}",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self._warmup_fn(self.resolve_params(params))

    def _initial_state(self, params: Dict[str, Any], required: int) -> TalippState:
        return TalippState(
            owner=self.identity,
            params=params,
            required=required,
            indicator=self._indicator_class(*self._params_builder(params)),
        )

    def _step(self, state: TalippState, point: OHLCV) -> Tuple[TalippState, Optional[IndicatorValue]]:
        indicator = deepcopy(state.indicator)
        self._feed(indicator, point)
        return replace(state, indicator=indicator), self._latest(indicator)

    def _run_batch(self, state: TalippState, series: List[OHLCV]) -> List[IndicatorResult]:
        """批量模式直接驱动同一个 talipp 实例，不做逐点复制

        state 由 calculate 新建，talipp 对象不会被其他状态引用。
        """
        indicator = state.indicator
        results: List[IndicatorResult] = []
        for point in series:
            self._feed(indicator, point)
            state = replace(state, count=state.count + 1)
            state, result = self._emit(state, self._latest(indicator), point)
            if result is not None:
                results.append(result)
        return results

    def _feed(self, indicator: Any, point: OHLCV) -> None:
        if self._use_ohlcv:
            indicator.add(
                TalippOHLCV(
                    float(point.open),
                    float(point.high),
                    float(point.low),
                    float(point.close),
                    float(point.volume),
                )
            )
        else:
            indicator.add(float(point.close))

    def _latest(self, indicator: Any) -> Optional[IndicatorValue]:
        if len(indicator) == 0 or indicator[-1] is None:
            return None
        return self._convert(indicator[-1])

    def _convert(self, raw: Any) -> IndicatorValue:
        if self._value_extractor is None:
            return to_decimal(raw)
        return {key: to_decimal(value) for key, value in self._value_extractor(raw).items()}

    def __repr__(self) -> str:
        return f"TalippIndicator({self.indicator_type!r})"


def get_supported_indicators() -> List[str]:
    """获取所有支持的 talipp 指标类型列表"""
    return sorted(TALIPP_REGISTRY.keys())


def is_indicator_supported(indicator_type: str) -> bool:
    """检查 talipp 指标类型是否受支持"""
    indicator_type = indicator_type.lower()
    if indicator_type.startswith(TALIPP_PREFIX):
        indicator_type = indicator_type[len(TALIPP_PREFIX) :]
    return indicator_type in TALIPP_REGISTRY


__all__ = [
    "TalippIndicator",
    "TalippState",
    "TALIPP_REGISTRY",
    "TALIPP_PREFIX",
    "get_supported_indicators",
    "is_indicator_supported",
]
