"""流水线流式执行

每个阶段把指标与其流式状态成对保存，stream_execute 每次推进一个数据点。
引擎不会把上游阶段的流式输出自动送入下游阶段；跨阶段组合通过 input_mapping
或指标自身的嵌套状态完成。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from quantindicators.errors import CalculationError, IndicatorError, PipelineExecutionError
from quantindicators.indicators.base import Indicator, StreamState
from quantindicators.types import IndicatorResult, ensure_point

from .config import ErrorHandling, PipelineConfig, PipelineStageConfig
from .metrics import ExecutionMetrics, StageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageStream:
    """阶段的指标与其独占的流式状态"""

    indicator: Indicator
    state: StreamState


@dataclass
class PipelineStreamState:
    """流水线流式状态

    每个 stream_execute 调用成功后原地更新；调用方不再需要时直接丢弃。

    Attributes:
        config: 执行计划
        stage_states: 阶段 id -> (指标, 状态)
        results_cache: 各阶段最近一次非空结果
        metrics: 执行统计
        errors: continue_on_error 模式下记录的阶段错误
    """

    config: PipelineConfig
    stage_states: Dict[str, StageStream] = field(default_factory=dict)
    results_cache: Dict[str, IndicatorResult] = field(default_factory=dict)
    metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    errors: List[StageError] = field(default_factory=list)

    def state_of(self, stage_id: str) -> StreamState:
        return self.stage_states[stage_id].state


def init_streaming(config: PipelineConfig) -> PipelineStreamState:
    """为每个阶段创建初始流式状态"""
    stage_states = {
        stage.id: StageStream(
            indicator=stage.indicator,
            state=stage.indicator.init_state(stage.params),
        )
        for stage in config.stages
    }
    logger.debug("initialized streaming for pipeline %s (%d stages)", config.id, len(stage_states))
    return PipelineStreamState(config=config, stage_states=stage_states)


def _advance(
    stage: PipelineStageConfig, stream: StageStream, point: Any
) -> Tuple[StreamState, Optional[IndicatorResult]]:
    try:
        return stream.indicator.update_state(stream.state, stage.map_point(point))
    except IndicatorError:
        raise
    except Exception as exc:
        logger.exception("stage %s raised an unexpected error", stage.id)
        raise CalculationError("update_state", f"{type(exc).__name__}: {exc}", stream.indicator.name) from exc


def stream_execute(
    state: PipelineStreamState, point: Any
) -> Tuple[Dict[str, Optional[IndicatorResult]], PipelineStreamState]:
    """推进一个数据点

    Returns:
        (各阶段结果，预热中或出错的阶段为 None, 更新后的状态)

    Raises:
        InvalidDataFormat: 数据点格式错误
        PipelineExecutionError: fail_fast 模式下某个阶段失败，此时 state 保持不变
    """
    started = time.perf_counter()
    config = state.config
    point = ensure_point(point)

    results: Dict[str, Optional[IndicatorResult]] = {}
    updates: Dict[str, StreamState] = {}
    timings: Dict[str, float] = {}
    tick_errors: List[StageError] = []

    for stage in config.ordered_stages():
        stream = state.stage_states[stage.id]
        stage_started = time.perf_counter()
        try:
            new_state, result = _advance(stage, stream, point)
        except IndicatorError as exc:
            timings[stage.id] = time.perf_counter() - stage_started
            if config.error_handling is ErrorHandling.FAIL_FAST:
                raise PipelineExecutionError(stage.id, exc) from exc
            logger.warning("stage %s failed on streaming update: %s", stage.id, exc.message)
            tick_errors.append(StageError(stage_id=stage.id, error=exc))
            results[stage.id] = None
            continue
        timings[stage.id] = time.perf_counter() - stage_started
        updates[stage.id] = new_state
        results[stage.id] = result

    for stage_id, new_state in updates.items():
        state.stage_states[stage_id] = replace(state.stage_states[stage_id], state=new_state)
        result = results[stage_id]
        if result is not None:
            state.results_cache[stage_id] = result

    failed = {error.stage_id for error in tick_errors}
    for stage_id, duration in timings.items():
        state.metrics.stage(stage_id).record(
            duration,
            result_count=1 if results.get(stage_id) is not None else 0,
            error=stage_id in failed,
        )
    state.metrics.error_count += len(tick_errors)
    state.errors.extend(tick_errors)
    state.metrics.finish_run(time.perf_counter() - started)

    return results, state


__all__ = [
    "StageStream",
    "PipelineStreamState",
    "init_streaming",
    "stream_execute",
]
