"""流水线配置

- PipelineSettings: 执行模式、错误策略、缓存与并发设置
- PipelineStageConfig: 单个阶段（指标 + 参数 + 依赖 + 输入映射）
- PipelineConfig: build() 产出的不可变执行计划
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from quantindicators.errors import InvalidParams
from quantindicators.indicators.base import Indicator
from quantindicators.types import OHLCV, OHLCV_FIELDS


class ExecutionMode(str, Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class ErrorHandling(str, Enum):
    FAIL_FAST = "fail_fast"
    CONTINUE_ON_ERROR = "continue_on_error"


def _coerce_enum(enum_class: Any, key: str, value: Any) -> Any:
    try:
        return enum_class(value)
    except ValueError:
        options = [member.value for member in enum_class]
        raise InvalidParams(
            key,
            value,
            f"one of {options}",
            message=f"Setting '{key}' must be one of {options}, got {value!r}",
        ) from None


def _positive_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidParams(
            key,
            value,
            "positive integer",
            message=f"Setting '{key}' must be a positive integer, got {value!r}",
        )
    return value


@dataclass(frozen=True)
class PipelineSettings:
    """流水线设置

    Attributes:
        execution_mode: sequential 逐个执行；parallel 按依赖层并发执行
        error_handling: fail_fast 首个错误即中止；continue_on_error 记录错误后继续
        enable_caching: 是否缓存阶段的批量结果
        parallel_stages: 并发执行的最大阶段数
        cache_size: 执行器自建缓存的容量
    """

    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    error_handling: ErrorHandling = ErrorHandling.FAIL_FAST
    enable_caching: bool = True
    parallel_stages: int = 4
    cache_size: int = 256

    def merge(self, partial: Mapping[str, Any]) -> "PipelineSettings":
        """浅合并部分设置，返回新对象

        Raises:
            InvalidParams: 未知键或非法取值
        """
        if not isinstance(partial, Mapping):
            raise InvalidParams(None, partial, "mapping", message="Configuration must be a mapping")

        known = {f.name for f in fields(self)}
        updates: Dict[str, Any] = {}
        for key, value in partial.items():
            if key not in known:
                raise InvalidParams(
                    key,
                    value,
                    f"one of {sorted(known)}",
                    message=f"Unknown configuration key: {key}",
                )
            if key == "execution_mode":
                updates[key] = _coerce_enum(ExecutionMode, key, value)
            elif key == "error_handling":
                updates[key] = _coerce_enum(ErrorHandling, key, value)
            elif key == "enable_caching":
                if not isinstance(value, bool):
                    raise InvalidParams(key, value, "boolean")
                updates[key] = value
            else:
                updates[key] = _positive_int(key, value)
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_mode": self.execution_mode.value,
            "error_handling": self.error_handling.value,
            "enable_caching": self.enable_caching,
            "parallel_stages": self.parallel_stages,
            "cache_size": self.cache_size,
        }


def validate_input_mapping(mapping: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    """校验输入映射 {目标字段: 来源字段}"""
    if not mapping:
        return MappingProxyType({})
    if not isinstance(mapping, Mapping):
        raise InvalidParams("input_mapping", mapping, "mapping of field names")
    for target, source in mapping.items():
        for name in (target, source):
            if name not in OHLCV_FIELDS:
                raise InvalidParams(
                    "input_mapping",
                    name,
                    f"one of {list(OHLCV_FIELDS)}",
                    message=f"Unknown field in input_mapping: {name!r}",
                )
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class PipelineStageConfig:
    """流水线阶段

    Attributes:
        id: 阶段唯一标识
        indicator: 指标实例
        params: 指标参数（只读）
        dependencies: 依赖的阶段 id
        input_mapping: 字段映射，如 {"close": "high"} 表示以最高价作为收盘价
    """

    id: str
    indicator: Indicator
    params: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    dependencies: Tuple[str, ...] = ()
    input_mapping: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    def map_point(self, point: OHLCV) -> OHLCV:
        if not self.input_mapping:
            return point
        updates = {target: getattr(point, source) for target, source in self.input_mapping.items()}
        return replace(point, **updates)

    def map_series(self, data: Sequence[OHLCV]) -> List[OHLCV]:
        if not self.input_mapping:
            return list(data)
        return [self.map_point(point) for point in data]


@dataclass(frozen=True)
class PipelineConfig:
    """不可变执行计划

    Attributes:
        id: 流水线 id
        stages: 按添加顺序排列的阶段
        execution_order: 拓扑排序后的阶段 id
        execution_layers: 依赖层，同层阶段互不依赖
        settings: 流水线设置
    """

    id: str
    stages: Tuple[PipelineStageConfig, ...]
    execution_order: Tuple[str, ...]
    execution_layers: Tuple[Tuple[str, ...], ...]
    settings: PipelineSettings = field(default_factory=PipelineSettings)

    @property
    def execution_mode(self) -> ExecutionMode:
        return self.settings.execution_mode

    @property
    def error_handling(self) -> ErrorHandling:
        return self.settings.error_handling

    def stage(self, stage_id: str) -> PipelineStageConfig:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        raise KeyError(stage_id)

    def ordered_stages(self) -> List[PipelineStageConfig]:
        by_id = {stage.id: stage for stage in self.stages}
        return [by_id[stage_id] for stage_id in self.execution_order]


__all__ = [
    "ExecutionMode",
    "ErrorHandling",
    "PipelineSettings",
    "PipelineStageConfig",
    "PipelineConfig",
    "validate_input_mapping",
]
