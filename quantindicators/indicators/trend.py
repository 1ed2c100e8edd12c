"""趋势类指标

- SMA: 简单移动平均
- EMA: 指数移动平均（SMA 引导或首值引导）
- MACD: 由三个嵌套 EMA 状态组合而成
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from quantindicators.errors import InvalidParams
from quantindicators.types import (
    OHLCV,
    IndicatorValue,
    OutputFieldMetadata,
    ParamMetadata,
    to_decimal,
)
from quantindicators.utils import ONE, extract_field, mean, push_window

from .base import SOURCE_PARAM, Indicator, StreamState, period_param

TWO = Decimal(2)


# ==================== SMA ====================


@dataclass(frozen=True)
class SMAState(StreamState):
    window: Tuple[Decimal, ...] = ()


class SMA(Indicator):
    """简单移动平均

    SMA = (P1 + P2 + ... + Pn) / n
    """

    name = "sma"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(20, "Number of periods to average"),
            SOURCE_PARAM,
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Simple Moving Average of the source price",
            example="sma_20",
            unit="price",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"]

    def _initial_state(self, params: Dict[str, Any], required: int) -> SMAState:
        return SMAState(owner=self.identity, params=params, required=required)

    def _step(self, state: SMAState, point: OHLCV) -> Tuple[SMAState, Optional[Decimal]]:
        period = state.params["period"]
        price = extract_field(point, state.params["source"])
        window = push_window(state.window, price, period)
        new_state = replace(state, window=window)
        if len(window) < period:
            return new_state, None
        return new_state, mean(window)


# ==================== EMA ====================


@dataclass(frozen=True)
class EMAState(StreamState):
    # 未舍入的内部值，链式计算只使用它
    ema: Optional[Decimal] = None
    seed: Tuple[Decimal, ...] = ()


class EMA(Indicator):
    """指数移动平均

    EMA = α × Price + (1 - α) × EMA_prev，α 默认为 2 / (period + 1)。

    初始化方式：
    - sma_bootstrap: 以前 period 个价格的均值作为首个 EMA
    - first_value: 以第一个价格作为首个 EMA
    """

    name = "ema"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(12, "Number of periods for the smoothing factor"),
            SOURCE_PARAM,
            ParamMetadata(
                name="initialization",
                type="string",
                default="sma_bootstrap",
                options=("sma_bootstrap", "first_value"),
                description="How the first EMA value is seeded",
            ),
            ParamMetadata(
                name="smoothing",
                type="number",
                default=None,
                min=0,
                max=1,
                description="Custom smoothing factor, overrides 2 / (period + 1)",
            ),
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Exponential Moving Average of the source price",
            example="ema_12",
            unit="price",
        )

    def _validate_resolved(self, params: Mapping[str, Any]) -> None:
        smoothing = params.get("smoothing")
        if smoothing is not None and smoothing == 0:
            raise InvalidParams(
                "smoothing",
                smoothing,
                "0 < smoothing <= 1",
                message="Smoothing factor must be greater than 0",
            )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        resolved = self.resolve_params(params)
        if resolved["initialization"] == "first_value":
            return 1
        return resolved["period"]

    @staticmethod
    def alpha(params: Mapping[str, Any]) -> Decimal:
        smoothing = params.get("smoothing")
        if smoothing is not None:
            return to_decimal(smoothing)
        return TWO / Decimal(params["period"] + 1)

    def _initial_state(self, params: Dict[str, Any], required: int) -> EMAState:
        return EMAState(owner=self.identity, params=params, required=required)

    def _step(self, state: EMAState, point: OHLCV) -> Tuple[EMAState, Optional[Decimal]]:
        price = extract_field(point, state.params["source"])

        if state.ema is not None:
            alpha = self.alpha(state.params)
            ema = alpha * price + (ONE - alpha) * state.ema
            return replace(state, ema=ema), ema

        if state.params["initialization"] == "first_value":
            return replace(state, ema=price), price

        period = state.params["period"]
        seed = push_window(state.seed, price, period)
        if len(seed) < period:
            return replace(state, seed=seed), None
        ema = mean(seed)
        return replace(state, ema=ema, seed=()), ema


# ==================== MACD ====================


@dataclass(frozen=True)
class MACDState(StreamState):
    fast: Optional[EMAState] = None
    slow: Optional[EMAState] = None
    signal: Optional[EMAState] = None


class MACD(Indicator):
    """MACD 指标

    - macd = EMA(fast) - EMA(slow)
    - signal = EMA(macd, signal)
    - histogram = macd - signal

    内部驱动三个 EMA 状态；MACD 线以合成数据点的形式送入信号线 EMA。
    """

    name = "macd"

    def __init__(self) -> None:
        self._ema = EMA()

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(12, "Fast EMA period", name="fast"),
            period_param(26, "Slow EMA period", name="slow"),
            period_param(9, "Signal line EMA period", name="signal"),
            SOURCE_PARAM,
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="multi_value",
            description="MACD line, signal line and histogram",
            fields=(
                {"name": "macd", "type": "decimal", "description": "Fast EMA minus slow EMA"},
                {"name": "signal", "type": "decimal", "description": "EMA of the MACD line"},
                {"name": "histogram", "type": "decimal", "description": "MACD minus signal"},
            ),
            example="macd_12_26_9",
            unit="price",
        )

    def _validate_resolved(self, params: Mapping[str, Any]) -> None:
        if params["fast"] >= params["slow"]:
            raise InvalidParams(
                "fast",
                params["fast"],
                f"less than slow ({params['slow']})",
                message=(
                    f"Fast period ({params['fast']}) must be less than "
                    f"slow period ({params['slow']})"
                ),
            )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        resolved = self.resolve_params(params)
        return resolved["slow"] + resolved["signal"] - 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> MACDState:
        source = params["source"]
        return MACDState(
            owner=self.identity,
            params=params,
            required=required,
            fast=self._ema.init_state({"period": params["fast"], "source": source}),
            slow=self._ema.init_state({"period": params["slow"], "source": source}),
            signal=self._ema.init_state({"period": params["signal"]}),
        )

    def _step(self, state: MACDState, point: OHLCV) -> Tuple[MACDState, Optional[IndicatorValue]]:
        fast_state, fast_result = self._ema.update_state(state.fast, point)
        slow_state, slow_result = self._ema.update_state(state.slow, point)
        new_state = replace(state, fast=fast_state, slow=slow_state)
        if fast_result is None or slow_result is None:
            return new_state, None

        macd_line = fast_state.ema - slow_state.ema
        signal_state, signal_result = self._ema.update_state(
            state.signal, OHLCV.synthetic(macd_line, point.timestamp)
        )
        new_state = replace(new_state, signal=signal_state)
        if signal_result is None:
            return new_state, None

        signal_line = signal_state.ema
        return new_state, {
            "macd": macd_line,
            "signal": signal_line,
            "histogram": macd_line - signal_line,
        }


__all__ = [
    "SMA",
    "EMA",
    "MACD",
    "SMAState",
    "EMAState",
    "MACDState",
]
