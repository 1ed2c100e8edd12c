"""技术指标模块

内置指标与 talipp 适配指标共用同一套 Indicator 契约，可按名称查找。
"""

from typing import Dict, List, Type

from quantindicators.errors import InvalidParams
from quantindicators.indicators.base import Indicator, StreamState, WarmupPhase
from quantindicators.indicators.momentum import ROC, RSI
from quantindicators.indicators.talipp_adapter import (
    TALIPP_PREFIX,
    TALIPP_REGISTRY,
    TalippIndicator,
)
from quantindicators.indicators.talipp_adapter import (
    get_supported_indicators as get_supported_talipp_indicators,
)
from quantindicators.indicators.trend import EMA, MACD, SMA
from quantindicators.indicators.volatility import ATR, BollingerBands, StandardDeviation
from quantindicators.indicators.volume import OBV

INDICATOR_REGISTRY: Dict[str, Type[Indicator]] = {
    "sma": SMA,
    "ema": EMA,
    "macd": MACD,
    "rsi": RSI,
    "roc": ROC,
    "stddev": StandardDeviation,
    "bollinger": BollingerBands,
    "atr": ATR,
    "obv": OBV,
}


def get_indicator(name: str) -> Indicator:
    """按名称创建指标实例

    Args:
        name: 内置指标名（如 "sma"）或 "talipp:<type>"

    Raises:
        InvalidParams: 指标名未注册
    """
    if not isinstance(name, str):
        raise InvalidParams("indicator", name, "indicator name")
    key = name.lower()
    if key.startswith(TALIPP_PREFIX):
        return TalippIndicator(key)
    indicator_class = INDICATOR_REGISTRY.get(key)
    if indicator_class is None:
        raise InvalidParams(
            "indicator",
            name,
            f"one of {get_supported_indicators()}",
            message=f"Unknown indicator: {name}",
        )
    return indicator_class()


def get_supported_indicators() -> List[str]:
    """获取所有支持的指标名（含 talipp 前缀指标）"""
    builtin = sorted(INDICATOR_REGISTRY.keys())
    return builtin + [TALIPP_PREFIX + name for name in get_supported_talipp_indicators()]


def is_indicator_supported(name: str) -> bool:
    if not isinstance(name, str):
        return False
    key = name.lower()
    if key.startswith(TALIPP_PREFIX):
        return key[len(TALIPP_PREFIX) :] in TALIPP_REGISTRY
    return key in INDICATOR_REGISTRY


__all__ = [
    # Contract
    "Indicator",
    "StreamState",
    "WarmupPhase",
    # Built-in indicators
    "SMA",
    "EMA",
    "MACD",
    "RSI",
    "ROC",
    "StandardDeviation",
    "BollingerBands",
    "ATR",
    "OBV",
    # Talipp adapter
    "TalippIndicator",
    "TALIPP_REGISTRY",
    # Registry
    "INDICATOR_REGISTRY",
    "get_indicator",
    "get_supported_indicators",
    "is_indicator_supported",
]
