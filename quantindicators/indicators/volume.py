"""成交量类指标"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple

from quantindicators.types import OHLCV, IndicatorValue, OutputFieldMetadata, ParamMetadata

from .base import Indicator, StreamState


@dataclass(frozen=True)
class OBVState(StreamState):
    previous_close: Optional[Decimal] = None
    obv: Optional[Decimal] = None
    direction: str = "initial"


class OBV(Indicator):
    """能量潮

    首个值为首个成交量；之后收盘价上涨累加成交量，下跌累减成交量，持平不变。
    """

    name = "obv"
    precision = 2

    def parameter_metadata(self) -> List[ParamMetadata]:
        return []

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(
            type="single_value",
            description="Cumulative On-Balance Volume",
            example="obv",
            unit="volume",
        )

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> OBVState:
        return OBVState(owner=self.identity, params=params, required=required)

    def _step(self, state: OBVState, point: OHLCV) -> Tuple[OBVState, Optional[Decimal]]:
        if state.obv is None:
            obv = point.volume
            direction = "initial"
        elif point.close > state.previous_close:
            obv = state.obv + point.volume
            direction = "up"
        elif point.close < state.previous_close:
            obv = state.obv - point.volume
            direction = "down"
        else:
            obv = state.obv
            direction = "unchanged"
        return replace(state, previous_close=point.close, obv=obv, direction=direction), obv

    def _result_metadata(self, state: StreamState, value: IndicatorValue) -> Dict[str, Any]:
        metadata = super()._result_metadata(state, value)
        metadata["volume_direction"] = state.direction
        return metadata


__all__ = ["OBV", "OBVState"]
