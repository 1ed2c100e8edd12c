"""测试公共数据"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pytest

from quantindicators.indicators import Indicator, StreamState
from quantindicators.types import OHLCV, ParamMetadata

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candles(closes: Sequence[float], spread: float = 1.0) -> List[OHLCV]:
    """用收盘价序列构造 K 线，时间间隔为 1 小时"""
    candles = []
    previous = closes[0]
    for idx, close in enumerate(closes):
        candles.append(
            OHLCV(
                open=previous,
                high=max(previous, close) + spread,
                low=min(previous, close) - spread,
                close=close,
                volume=1000 + idx * 10,
                timestamp=START + timedelta(hours=idx),
            )
        )
        previous = close
    return candles


def random_walk(n: int, seed: int = 42, start: float = 100.0) -> List[float]:
    rng = np.random.default_rng(seed)
    steps = rng.normal(0.0, 1.0, n)
    return [round(float(value), 4) for value in start + np.cumsum(steps)]


class Reciprocal(Indicator):
    """测试用指标：1 / close，收盘价为 0 时计算失败"""

    name = "reciprocal"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return []

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> StreamState:
        return StreamState(owner=self.identity, params=params, required=required)

    def _step(self, state: StreamState, point: OHLCV) -> Tuple[StreamState, Optional[Decimal]]:
        return state, Decimal(1) / point.close



@dataclass(frozen=True)
class DoublerState(StreamState):
    last: Optional[Decimal] = None


class Doubler(Indicator):
    """测试用指标：2 × close，与 Reciprocal 同名但实现不同"""

    name = "reciprocal"

    def parameter_metadata(self) -> List[ParamMetadata]:
        return []

    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        return 1

    def _initial_state(self, params: Dict[str, Any], required: int) -> DoublerState:
        return DoublerState(owner=self.identity, params=params, required=required)

    def _step(self, state: DoublerState, point: OHLCV) -> Tuple[DoublerState, Optional[Decimal]]:
        value = point.close * 2
        return replace(state, last=value), value

@pytest.fixture
def candles() -> List[OHLCV]:
    return make_candles(random_walk(80))


@pytest.fixture
def short_candles() -> List[OHLCV]:
    return make_candles([103.0, 105.0, 107.0])
