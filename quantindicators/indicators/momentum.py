"""动量类指标

- RSI: 相对强弱指数（Wilder 平滑或简单平均）
- ROC: 变动率（百分比或价格差）
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
from quantindicators.utils import HUNDRED, ONE, ZERO, extract_field, mean, push_window

from .base import SOURCE_PARAM, Indicator, StreamState, period_param


# ==================== RSI ====================


@dataclass(frozen=True)
class RSIState(StreamState):
    previous: Optional[Decimal] = None
    gains: Tuple[Decimal, ...] = ()
    losses: Tuple[Decimal, ...] = ()
    avg_gain: Optional[Decimal] = None
    avg_loss: Optional[Decimal] = None


def rsi_from_averages(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == ZERO:
        return HUNDRED
    rs = avg_gain / avg_loss
    return HUNDRED - HUNDRED / (ONE + rs)


class RSI(Indicator):
    """相对强弱指数

    RSI = 100 - 100 / (1 + RS)，RS = 平均涨幅 / 平均跌幅。
    首个平均值为前 period 个变动的简单平均；之后 wilder 模式按
    avg = (avg_prev × (period - 1) + current) / period 平滑，sma 模式取最近
    period 个变动的均值。平均跌幅为 0 时 RSI 为 100。
    """

    name = "rsi"
    precision = 4

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(14, "Number of price changes to average"),
            SOURCE_PARAM,
            ParamMetadata(
                name="overbought",
                type="number",
                default=70,
                min=0,
                max=100,
                description="Overbought threshold",
            ),
            ParamMetadata(
                name="oversold",
                type="number",
                default=30,
                min=0,
                max=100,
                description="Oversold threshold",
            ),
            ParamMetadata(
                name="smoothing",
                type="string",
                default="wilder",
                options=("wilder", "sma"),
                description="Averaging method after the first window",
            ),
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Relative Strength Index between 0 and 100",
            example="rsi_14",
            unit="percent",
        )

    def _validate_resolved(self, params: Mapping[str, Any]) -> None:
        if params["oversold"] >= params["overbought"]:
            raise InvalidParams(
                "oversold",
                params["oversold"],
                "oversold < overbought",
                message=(
                    f"Oversold level ({params['oversold']}) must be less than "
                    f"overbought level ({params['overbought']})"
                ),
            )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"] + 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> RSIState:
        return RSIState(owner=self.identity, params=params, required=required)

    def _step(self, state: RSIState, point: OHLCV) -> Tuple[RSIState, Optional[Decimal]]:
        price = extract_field(point, state.params["source"])
        if state.previous is None:
            return replace(state, previous=price), None

        period = state.params["period"]
        change = price - state.previous
        gain = change if change > ZERO else ZERO
        loss = -change if change < ZERO else ZERO
        gains = push_window(state.gains, gain, period)
        losses = push_window(state.losses, loss, period)

        if len(gains) < period:
            return replace(state, previous=price, gains=gains, losses=losses), None

        if state.avg_gain is None or state.params["smoothing"] == "sma":
            avg_gain = mean(gains)
            avg_loss = mean(losses)
        else:
            periods = Decimal(period)
            avg_gain = (state.avg_gain * (periods - ONE) + gain) / periods
            avg_loss = (state.avg_loss * (periods - ONE) + loss) / periods

        new_state = replace(
            state,
            previous=price,
            gains=gains,
            losses=losses,
            avg_gain=avg_gain,
            avg_loss=avg_loss,
        )
        return new_state, rsi_from_averages(avg_gain, avg_loss)

    def _result_metadata(self, state: StreamState, value: IndicatorValue) -> Dict[str, Any]:
        metadata = super()._result_metadata(state, value)
        if value > to_decimal(state.params["overbought"]):
            metadata["signal"] = "overbought"
        elif value < to_decimal(state.params["oversold"]):
            metadata["signal"] = "oversold"
        else:
            metadata["signal"] = "neutral"
        return metadata


# ==================== ROC ====================


@dataclass(frozen=True)
class ROCState(StreamState):
    window: Tuple[Decimal, ...] = ()


class ROC(Indicator):
    """变动率

    - percentage: (P - P_n) / P_n × 100，P_n 为 0 时结果为 0
    - price: P - P_n
    """

    name = "roc"
    precision = 4

    def parameter_metadata(self) -> List[ParamMetadata]:
        return [
            period_param(12, "Lookback period"),
            SOURCE_PARAM,
            ParamMetadata(
                name="variant",
                type="string",
                default="percentage",
                options=("percentage", "price"),
                description="Percentage change or absolute price change",
            ),
        ]

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Rate of change over the lookback period",
            example="roc_12",
            unit="percent",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return self.resolve_params(params)["period"] + 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> ROCState:
        return ROCState(owner=self.identity, params=params, required=required)

    def _step(self, state: ROCState, point: OHLCV) -> Tuple[ROCState, Optional[Decimal]]:
        size = state.params["period"] + 1
        price = extract_field(point, state.params["source"])
        window = push_window(state.window, price, size)
        new_state = replace(state, window=window)
        if len(window) < size:
            return new_state, None

        historical = window[0]
        if state.params["variant"] == "price":
            return new_state, price - historical
        if historical == ZERO:
            return new_state, ZERO
        return new_state, (price - historical) / historical * HUNDRED


__all__ = [
    "RSI",
    "ROC",
    "RSIState",
    "ROCState",
    "rsi_from_averages",
]
