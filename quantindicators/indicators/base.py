"""增量指标基础契约

所有指标实现必须继承 Indicator 并实现抽象方法。批量计算与流式更新默认共用
同一条 init_state / update_state 路径，因此两种模式的输出序列完全一致。

流式状态机：
- ACCUMULATING: 观测数量 < required_periods，update_state 返回 None
- READY: 已完成预热并产出过结果，此后每次调用恰好产出一个结果
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from quantindicators.errors import (
    CalculationError,
    IndicatorError,
    InsufficientData,
    InvalidParams,
    StreamStateError,
)
from quantindicators.params import ParamValidator
from quantindicators.types import (
    OHLCV,
    OHLCV_FIELDS,
    IndicatorResult,
    IndicatorValue,
    OutputFieldMetadata,
    ParamMetadata,
    ensure_point,
    ensure_series,
)
from quantindicators.utils import round_value


class WarmupPhase(str, Enum):
    """预热阶段"""

    ACCUMULATING = "accumulating"
    READY = "ready"


@dataclass(frozen=True)
class StreamState:
    """流式状态基类

    由创建它的指标独占，只能通过该指标的 update_state 推进。每次推进都会
    返回新的状态对象，旧对象保持不变。

    Attributes:
        owner: 所属指标的实现标识（Indicator.identity）
        params: 解析后的参数
        required: 产出首个结果所需的观测数量
        count: 已观测的数据点数量
        emitted: 已产出的结果数量
    """

    owner: str
    params: Mapping[str, Any] = field(default_factory=dict)
    required: int = 1
    count: int = 0
    emitted: int = 0

    @property
    def phase(self) -> WarmupPhase:
        return WarmupPhase.READY if self.emitted > 0 else WarmupPhase.ACCUMULATING

    @property
    def is_warmed_up(self) -> bool:
        return self.count >= self.required


SOURCE_PARAM = ParamMetadata(
    name="source",
    type="string",
    default="close",
    options=OHLCV_FIELDS,
    description="Source price field to use",
)


def period_param(default: int, description: str, name: str = "period") -> ParamMetadata:
    return ParamMetadata(
        name=name,
        type="integer",
        default=default,
        min=1,
        description=description,
    )


class Indicator(ABC):
    """指标基类

    子类需要提供：
    - name: 指标名（用于结果元数据与注册表）
    - parameter_metadata(): 参数描述
    - required_periods(): 预热所需观测数量
    - _initial_state(): 初始状态
    - _step(): 单步推进，返回新状态和（未舍入的）指标值
    """

    name: str = ""
    precision: int = 6

    @property
    def identity(self) -> str:
        """实现标识（模块 + 类名），作为流式状态的所有者与结果缓存键"""
        return f"{type(self).__module__}.{type(self).__qualname__}"

    # ==================== 参数 ====================

    @abstractmethod
    def parameter_metadata(self) -> List[ParamMetadata]:
        raise NotImplementedError

    def output_fields_metadata(self) -> OutputFieldMetadata:
        return OutputFieldMetadata(type="single_value", description=self.name)

    def resolve_params(self, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """合并默认参数与调用方参数"""
        resolved = ParamValidator(self.parameter_metadata()).defaults
        if params:
            resolved.update(params)
        return resolved

    def validate_params(self, params: Optional[Mapping[str, Any]] = None) -> None:
        """校验参数，失败时抛出 InvalidParams"""
        if params is not None and not isinstance(params, Mapping):
            raise InvalidParams(None, params, "mapping", message="Parameters must be a mapping")
        ParamValidator(self.parameter_metadata()).validate(params or {})
        self._validate_resolved(self.resolve_params(params))

    def _validate_resolved(self, params: Mapping[str, Any]) -> None:
        """跨参数校验（如 fast < slow），由子类按需覆盖"""

    @abstractmethod
    def required_periods(self, params: Optional[Mapping[str, Any]] = None) -> int:
        raise NotImplementedError

    # ==================== 批量计算 ====================

    def calculate(
        self,
        data: Sequence[Any],
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[IndicatorResult]:
        """批量计算

        Raises:
            InvalidParams: 参数非法
            InvalidDataFormat: 数据格式错误
            InsufficientData: 数据量少于 required_periods
        """
        self.validate_params(params)
        resolved = self.resolve_params(params)
        series = ensure_series(data)

        required = self.required_periods(resolved)
        if len(series) < required:
            raise InsufficientData(required=required, provided=len(series), indicator=self.name)

        return self._run_batch(self._new_state(resolved), series)

    def _run_batch(self, state: StreamState, series: List[OHLCV]) -> List[IndicatorResult]:
        """批量计算的逐点驱动，默认与流式更新共用 update_state"""
        results: List[IndicatorResult] = []
        for point in series:
            state, result = self.update_state(state, point)
            if result is not None:
                results.append(result)
        return results

    # ==================== 流式计算 ====================

    def init_state(self, params: Optional[Mapping[str, Any]] = None) -> StreamState:
        """创建新的流式状态"""
        self.validate_params(params)
        return self._new_state(self.resolve_params(params))

    def update_state(
        self, state: StreamState, point: Any
    ) -> Tuple[StreamState, Optional[IndicatorResult]]:
        """推进一个数据点

        Returns:
            (新状态, 结果)，预热期间结果为 None

        Raises:
            StreamStateError: 状态不属于当前指标
            CalculationError: 计算过程中出现数学错误
        """
        self._check_owner(state)
        point = ensure_point(point)

        advanced = replace(state, count=state.count + 1)
        try:
            new_state, value = self._step(advanced, point)
        except IndicatorError:
            raise
        except ArithmeticError as exc:
            raise CalculationError("update_state", str(exc) or type(exc).__name__, self.name) from exc

        return self._emit(new_state, value, point)

    def _emit(
        self, state: StreamState, value: Optional[IndicatorValue], point: OHLCV
    ) -> Tuple[StreamState, Optional[IndicatorResult]]:
        """预热完成后舍入并包装结果"""
        if value is None or state.count < state.required:
            return state, None

        try:
            rounded = round_value(value, self.precision)
        except ArithmeticError as exc:
            raise CalculationError("round", str(exc) or type(exc).__name__, self.name) from exc

        result = IndicatorResult(
            value=rounded,
            timestamp=point.timestamp,
            metadata=self._result_metadata(state, rounded),
        )
        return replace(state, emitted=state.emitted + 1), result

    def _check_owner(self, state: Any) -> None:
        if not isinstance(state, StreamState):
            raise StreamStateError(
                "update_state",
                f"expected StreamState, got {type(state).__name__}",
            )
        if state.owner != self.identity:
            raise StreamStateError(
                "update_state",
                f"state owned by '{state.owner}' cannot be updated by '{self.identity}'",
            )

    def _new_state(self, params: Dict[str, Any]) -> StreamState:
        return self._initial_state(params, self.required_periods(params))

    def _result_metadata(self, state: StreamState, value: IndicatorValue) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"indicator": self.name.upper()}
        metadata.update(state.params)
        return metadata

    @abstractmethod
    def _initial_state(self, params: Dict[str, Any], required: int) -> StreamState:
        raise NotImplementedError

    @abstractmethod
    def _step(self, state: Any, point: OHLCV) -> Tuple[StreamState, Optional[IndicatorValue]]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


__all__ = [
    "Indicator",
    "StreamState",
    "WarmupPhase",
    "SOURCE_PARAM",
    "period_param",
]
