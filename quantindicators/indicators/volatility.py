"""波动率类指标

- StandardDeviation: 滚动标准差
- BollingerBands: 布林带（含 %B 与带宽）
- ATR: 平均真实波幅
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from quantindicators.types import (
    OHLCV,
    IndicatorValue,
    OutputFieldMetadata,
    ParamMetadata,
    to_decimal,
)
from quantindicators.utils import (
    HUNDRED,
    ONE,
    ZERO,
    extract_field,
    mean,
    push_window,
    standard_deviation,
    true_range,
)

from .base import SOURCE_PARAM, Indicator, StreamState, period_param

FIFTY = Decimal(50)

CALCULATION_PARAM = ParamMetadata(
    name="calculation",
    type="string",
    default="sample",
    options=("sample", "population"),
    description="Sample (N-1) or population (N) formula",
)


@dataclass(frozen=True)
class WindowState(StreamState):
    window: Tuple[Decimal, ...] = ()


# ==================== Standard Deviation ====================


class StandardDeviation(Indicator):
    """滚动标准差

    开方使用 Decimal.sqrt，全程不经过浮点数。
    """

    name = "stddev"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            ParamMetadata(
                name="period",
                type="integer",
                default=20,
                min=2,
                description="Number of periods in the window",
            ),
            SOURCE_PARAM,
            CALCULATION_PARAM,
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Rolling standard deviation of the source price",
            example="stddev_20",
            unit="price",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"]

    def _initial_state(self, params: Dict[str, Any], required: int) -> WindowState:
        return WindowState(owner=self.identity, params=params, required=required)

    def _step(self, state: WindowState, point: OHLCV) -> Tuple[WindowState, Optional[Decimal]]:
        period = state.params["period"]
        window = push_window(state.window, extract_field(point, state.params["source"]), period)
        new_state = replace(state, window=window)
        if len(window) < period:
            return new_state, None
        return new_state, standard_deviation(window, sample=state.params["calculation"] == "sample")


# ==================== Bollinger Bands ====================


class BollingerBands(Indicator):
    """布林带

    - middle_band = SMA(period)
    - upper/lower = middle ± multiplier × 标准差
    - percent_b = (price - lower) / (upper - lower) × 100，带宽为 0 时取 50
    - bandwidth = (upper - lower) / middle × 100，中轨为 0 时取 0
    """

    name = "bollinger"
    precision = 4

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            ParamMetadata(
                name="period",
                type="integer",
                default=20,
                min=2,
                description="Number of periods for the middle band",
            ),
            ParamMetadata(
                name="multiplier",
                type="number",
                default=2,
                min=0,
                description="Standard deviation multiplier",
            ),
            SOURCE_PARAM,
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="multi_value",
            description="Bollinger Bands with %B and bandwidth",
            fields=(
                {"name": "upper_band", "type": "decimal", "description": "Middle plus deviation"},
                {"name": "middle_band", "type": "decimal", "description": "Simple moving average"},
                {"name": "lower_band", "type": "decimal", "description": "Middle minus deviation"},
                {"name": "percent_b", "type": "decimal", "description": "Price position in the bands"},
                {"name": "bandwidth", "type": "decimal", "description": "Band width relative to middle"},
            ),
            example="bollinger_20_2",
            unit="price",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"]

    def _initial_state(self, params: Dict[str, Any], required: int) -> WindowState:
        return WindowState(owner=self.identity, params=params, required=required)

    def _step(self, state: WindowState, point: OHLCV) -> Tuple[WindowState, Optional[IndicatorValue]]:
        period = state.params["period"]
        price = extract_field(point, state.params["source"])
        window = push_window(state.window, price, period)
        new_state = replace(state, window=window)
        if len(window) < period:
            return new_state, None

        middle = mean(window)
        deviation = to_decimal(state.params["multiplier"]) * standard_deviation(window)
        upper = middle + deviation
        lower = middle - deviation
        band_range = upper - lower

        if band_range == ZERO:
            percent_b = FIFTY
        else:
            percent_b = (price - lower) / band_range * HUNDRED
        if middle == ZERO:
            bandwidth = ZERO
        else:
            bandwidth = band_range / middle * HUNDRED

        return new_state, {
            "upper_band": upper,
            "middle_band": middle,
            "lower_band": lower,
            "percent_b": percent_b,
            "bandwidth": bandwidth,
        }


# ==================== ATR ====================


@dataclass(frozen=True)
class ATRState(StreamState):
    previous_close: Optional[Decimal] = None
    ranges: Tuple[Decimal, ...] = ()
    atr: Optional[Decimal] = None


class ATR(Indicator):
    """平均真实波幅

    真实波幅 TR = max(high - low, |high - prev_close|, |low - prev_close|)，
    首个数据点的 TR 为 high - low。首个 ATR 为前 period 个 TR 的均值，之后按
    smoothing 平滑：
    - rma: (ATR_prev × (period - 1) + TR) / period（Wilder）
    - ema: α = 2 / (period + 1)
    - sma: 最近 period 个 TR 的均值
    """

    name = "atr"
    precision = 4

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(14, "Number of true ranges to average"),
            ParamMetadata(
                name="smoothing",
                type="string",
                default="rma",
                options=("rma", "ema", "sma"),
                description="Smoothing method after the first window",
            ),
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Average True Range",
            example="atr_14",
            unit="price",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"]

    def _initial_state(self, params: Dict[str, Any], required: int) -> ATRState:
        return ATRState(owner=self.identity, params=params, required=required)

    def _step(self, state: ATRState, point: OHLCV) -> Tuple[ATRState, Optional[Decimal]]:
        period = state.params["period"]
        tr = true_range(point, state.previous_close)
        ranges = push_window(state.ranges, tr, period)

        if len(ranges) < period:
            return replace(state, previous_close=point.close, ranges=ranges), None

        smoothing = state.params["smoothing"]
        periods = Decimal(period)
        if state.atr is None or smoothing == "sma":
            atr = mean(ranges)
        elif smoothing == "ema":
            alpha = Decimal(2) / (periods + ONE)
            atr = alpha * tr + (ONE - alpha) * state.atr
        else:
            atr = (state.atr * (periods - ONE) + tr) / periods

        return replace(state, previous_close=point.close, ranges=ranges, atr=atr), atr


__all__ = [
    "StandardDeviation",
    "BollingerBands",
    "ATR",
    "WindowState",
    "ATRState",
]
