"""执行指标与结果聚合"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from quantindicators.errors import IndicatorError, InvalidParams
from quantindicators.types import IndicatorResult

StageResults = Dict[str, List[IndicatorResult]]
Aggregator = Callable[[StageResults], Any]


@dataclass
class StageMetrics:
    """单个阶段的执行统计（duration 单位为秒）"""

    executions: int = 0
    error_count: int = 0
    duration: float = 0.0
    result_count: int = 0
    cache_hits: int = 0

    def record(
        self,
        duration: float,
        result_count: int = 0,
        error: bool = False,
        cache_hit: bool = False,
    ) -> None:
        self.executions += 1
        self.duration += duration
        self.result_count += result_count
        if error:
            self.error_count += 1
        if cache_hit:
            self.cache_hits += 1

    def merge(self, other: "StageMetrics") -> "StageMetrics":
        return StageMetrics(
            executions=self.executions + other.executions,
            error_count=self.error_count + other.error_count,
            duration=self.duration + other.duration,
            result_count=self.result_count + other.result_count,
            cache_hits=self.cache_hits + other.cache_hits,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executions": self.executions,
            "error_count": self.error_count,
            "duration": self.duration,
            "result_count": self.result_count,
            "cache_hits": self.cache_hits,
        }


@dataclass
class ExecutionMetrics:
    """流水线执行统计

    Attributes:
        total_executions: 运行次数（流式模式下每个数据点计一次）
        total_processing_time: 累计耗时（秒）
        error_count: 阶段错误总数
        last_execution_time: 最近一次运行的完成时间
        stage_metrics: 各阶段统计
    """

    total_executions: int = 0
    total_processing_time: float = 0.0
    error_count: int = 0
    last_execution_time: Optional[datetime] = None
    stage_metrics: Dict[str, StageMetrics] = field(default_factory=dict)

    def stage(self, stage_id: str) -> StageMetrics:
        if stage_id not in self.stage_metrics:
            self.stage_metrics[stage_id] = StageMetrics()
        return self.stage_metrics[stage_id]

    def finish_run(self, elapsed: float) -> None:
        self.total_executions += 1
        self.total_processing_time += elapsed
        self.last_execution_time = datetime.now(timezone.utc)

    def merge(self, other: "ExecutionMetrics") -> "ExecutionMetrics":
        merged = ExecutionMetrics(
            total_executions=self.total_executions + other.total_executions,
            total_processing_time=self.total_processing_time + other.total_processing_time,
            error_count=self.error_count + other.error_count,
            last_execution_time=_latest(self.last_execution_time, other.last_execution_time),
            stage_metrics={stage_id: replace(m) for stage_id, m in self.stage_metrics.items()},
        )
        for stage_id, metrics in other.stage_metrics.items():
            current = merged.stage_metrics.get(stage_id, StageMetrics())
            merged.stage_metrics[stage_id] = current.merge(metrics)
        return merged

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_executions": self.total_executions,
            "total_processing_time": self.total_processing_time,
            "error_count": self.error_count,
            "last_execution_time": (
                self.last_execution_time.isoformat() if self.last_execution_time else None
            ),
            "stage_metrics": {stage_id: m.to_dict() for stage_id, m in self.stage_metrics.items()},
        }


def _latest(first: Optional[datetime], second: Optional[datetime]) -> Optional[datetime]:
    if first is None:
        return second
    if second is None:
        return first
    return max(first, second)


@dataclass
class StageError:
    """阶段错误记录"""

    stage_id: str
    error: IndicatorError
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage_id": self.stage_id,
            "error": self.error.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PipelineRunResult:
    """一次流水线运行的结果"""

    stage_results: StageResults = field(default_factory=dict)
    aggregated_result: Any = field(default_factory=list)
    execution_metrics: ExecutionMetrics = field(default_factory=ExecutionMetrics)
    errors: List[StageError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class AggregationMode(str, Enum):
    MERGE = "merge"
    LATEST = "latest"


def default_aggregator(stage_results: StageResults) -> List[Any]:
    return []


def _sort_time(timestamp: datetime) -> datetime:
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def chronological_merge(stage_results: StageResults) -> List[Dict[str, Any]]:
    """把所有阶段的结果按时间戳合并为一个列表

    同一时间戳内保持阶段顺序；无时间戳的结果排在最后。不带时区的时间戳按 UTC
    参与排序，因此不同阶段混用两种时间戳也可以合并。
    """
    entries = [
        {"stage_id": stage_id, "result": result}
        for stage_id, results in stage_results.items()
        for result in results
    ]
    with_time = [entry for entry in entries if entry["result"].timestamp is not None]
    without_time = [entry for entry in entries if entry["result"].timestamp is None]
    with_time.sort(key=lambda entry: _sort_time(entry["result"].timestamp))
    return with_time + without_time


def aggregate_results(
    results: Sequence[PipelineRunResult],
    mode: Any = AggregationMode.MERGE,
) -> PipelineRunResult:
    """聚合多次运行结果

    - merge: 按运行顺序拼接各阶段结果，累加统计，拼接错误
    - latest: 只保留最后一次运行的阶段结果，但统计仍累加全部运行

    Raises:
        InvalidParams: 未知的聚合模式
    """
    try:
        mode = AggregationMode(mode)
    except ValueError:
        options = [member.value for member in AggregationMode]
        raise InvalidParams("mode", mode, f"one of {options}") from None

    if not results:
        return PipelineRunResult()

    metrics = ExecutionMetrics()
    for run in results:
        metrics = metrics.merge(run.execution_metrics)

    if mode is AggregationMode.LATEST:
        last = results[-1]
        return PipelineRunResult(
            stage_results={stage_id: list(items) for stage_id, items in last.stage_results.items()},
            aggregated_result=last.aggregated_result,
            execution_metrics=metrics,
            errors=list(last.errors),
        )

    stage_results: StageResults = {}
    errors: List[StageError] = []
    for run in results:
        for stage_id, items in run.stage_results.items():
            stage_results.setdefault(stage_id, []).extend(items)
        errors.extend(run.errors)
    return PipelineRunResult(
        stage_results=stage_results,
        aggregated_result=[],
        execution_metrics=metrics,
        errors=errors,
    )


__all__ = [
    "StageMetrics",
    "ExecutionMetrics",
    "StageError",
    "PipelineRunResult",
    "AggregationMode",
    "aggregate_results",
    "chronological_merge",
    "default_aggregator",
]
