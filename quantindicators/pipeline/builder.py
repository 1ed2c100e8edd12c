"""流水线构建器

可变的 PipelineBuilder 收集阶段与依赖，build() 校验依赖图并冻结为不可变的
PipelineConfig。

Example::

    config = (
        PipelineBuilder()
        .add_stage("sma_fast", "sma", {"period": 5})
        .add_stage("sma_slow", "sma", {"period": 20})
        .add_stage("rsi", "rsi", {"period": 14})
        .add_dependency("rsi", "sma_fast")
        .configure({"execution_mode": "parallel"})
        .build()
    )
"""

from __future__ import annotations

import heapq
import logging
import secrets
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from quantindicators.errors import (
    CircularDependencyError,
    DuplicateStageError,
    EmptyPipelineError,
    InvalidParams,
    UnknownDependencyError,
)
from quantindicators.indicators import Indicator, get_indicator

from .config import PipelineConfig, PipelineSettings, PipelineStageConfig, validate_input_mapping

logger = logging.getLogger(__name__)

IndicatorRef = Union[Indicator, str]


@dataclass
class _PendingStage:
    id: str
    indicator: Indicator
    params: Dict[str, Any]
    input_mapping: Mapping[str, str]


class PipelineBuilder:
    """流水线构建器

    所有修改方法返回构建器自身，便于链式调用。
    """

    def __init__(self) -> None:
        self._stages: List[_PendingStage] = []
        self._dependencies: Dict[str, List[str]] = {}
        self._settings = PipelineSettings()

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    @property
    def stage_ids(self) -> List[str]:
        return [stage.id for stage in self._stages]

    def add_stage(
        self,
        stage_id: str,
        indicator: IndicatorRef,
        params: Optional[Mapping[str, Any]] = None,
        input_mapping: Optional[Mapping[str, str]] = None,
        dependencies: Sequence[str] = (),
    ) -> "PipelineBuilder":
        """添加阶段

        Args:
            stage_id: 阶段唯一标识
            indicator: 指标实例或注册名（如 "sma"、"talipp:wma"）
            params: 指标参数
            input_mapping: 字段映射 {目标字段: 来源字段}
            dependencies: 依赖的阶段 id

        Raises:
            InvalidParams: 阶段 id、指标或参数非法
        """
        if not isinstance(stage_id, str) or not stage_id:
            raise InvalidParams("stage_id", stage_id, "non-empty string")

        resolved = indicator if isinstance(indicator, Indicator) else get_indicator(indicator)
        resolved.validate_params(params)

        self._stages.append(
            _PendingStage(
                id=stage_id,
                indicator=resolved,
                params=dict(params or {}),
                input_mapping=validate_input_mapping(input_mapping),
            )
        )
        for dependency in dependencies:
            self.add_dependency(stage_id, dependency)
        return self

    def add_dependency(self, dependent_id: str, dependency_id: str) -> "PipelineBuilder":
        """声明 dependent_id 依赖 dependency_id，重复声明无副作用"""
        edges = self._dependencies.setdefault(dependent_id, [])
        if dependency_id not in edges:
            edges.append(dependency_id)
        return self

    def configure(self, partial: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "PipelineBuilder":
        """浅合并设置，如 configure({"execution_mode": "parallel"})"""
        updates: Dict[str, Any] = dict(partial or {})
        updates.update(kwargs)
        self._settings = self._settings.merge(updates)
        return self

    def build(self) -> PipelineConfig:
        """校验并冻结为 PipelineConfig

        Raises:
            EmptyPipelineError: 没有阶段
            DuplicateStageError: 阶段 id 重复
            UnknownDependencyError: 依赖引用了不存在的阶段
            CircularDependencyError: 依赖图存在环
        """
        if not self._stages:
            raise EmptyPipelineError()

        seen = set()
        for stage in self._stages:
            if stage.id in seen:
                raise DuplicateStageError(stage.id)
            seen.add(stage.id)

        for dependent_id, edges in self._dependencies.items():
            if dependent_id not in seen:
                raise UnknownDependencyError(dependent_id, [dependent_id])
            unknown = [dependency for dependency in edges if dependency not in seen]
            if unknown:
                raise UnknownDependencyError(dependent_id, unknown)

        order, layers = self._topological_sort()

        stages = tuple(
            PipelineStageConfig(
                id=stage.id,
                indicator=stage.indicator,
                params=MappingProxyType(dict(stage.params)),
                dependencies=tuple(self._dependencies.get(stage.id, ())),
                input_mapping=stage.input_mapping,
            )
            for stage in self._stages
        )
        config = PipelineConfig(
            id=f"pipeline_{secrets.token_hex(8)}",
            stages=stages,
            execution_order=order,
            execution_layers=layers,
            settings=self._settings,
        )
        logger.info(
            "built pipeline %s: %d stages, %d layers, mode=%s, error_handling=%s",
            config.id,
            len(stages),
            len(layers),
            config.execution_mode.value,
            config.error_handling.value,
        )
        return config

    def _topological_sort(self) -> Tuple[Tuple[str, ...], Tuple[Tuple[str, ...], ...]]:
        """Kahn 算法，独立阶段按添加顺序排列"""
        index = {stage.id: position for position, stage in enumerate(self._stages)}
        pending = {stage.id: len(self._dependencies.get(stage.id, ())) for stage in self._stages}
        dependents: Dict[str, List[str]] = {stage.id: [] for stage in self._stages}
        for dependent_id, edges in self._dependencies.items():
            for dependency in edges:
                dependents[dependency].append(dependent_id)

        ready = [index[stage_id] for stage_id, count in pending.items() if count == 0]
        heapq.heapify(ready)
        depth: Dict[str, int] = {}
        order: List[str] = []

        while ready:
            stage_id = self._stages[heapq.heappop(ready)].id
            edges = self._dependencies.get(stage_id, ())
            depth[stage_id] = 1 + max((depth[dep] for dep in edges), default=-1)
            order.append(stage_id)
            for dependent_id in dependents[stage_id]:
                pending[dependent_id] -= 1
                if pending[dependent_id] == 0:
                    heapq.heappush(ready, index[dependent_id])

        if len(order) < len(self._stages):
            remaining = [stage.id for stage in self._stages if stage.id not in depth]
            raise CircularDependencyError(self._find_cycle(remaining))

        layers: List[List[str]] = [[] for _ in range(max(depth.values()) + 1)]
        for stage in self._stages:
            layers[depth[stage.id]].append(stage.id)
        return tuple(order), tuple(tuple(layer) for layer in layers)

    def _find_cycle(self, remaining: List[str]) -> List[str]:
        """在未排序的阶段中找出一条环路径，用于错误信息"""
        candidates = set(remaining)
        start = remaining[0]
        path: List[str] = [start]
        positions = {start: 0}
        current = start
        while True:
            current = next(
                dep for dep in self._dependencies.get(current, ()) if dep in candidates
            )
            if current in positions:
                return path[positions[current] :] + [current]
            positions[current] = len(path)
            path.append(current)

    def __repr__(self) -> str:
        return f"PipelineBuilder(stages={self.stage_ids}, settings={self._settings})"


def new() -> PipelineBuilder:
    """创建空的流水线构建器"""
    return PipelineBuilder()


__all__ = ["PipelineBuilder", "new"]
