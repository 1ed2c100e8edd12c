"""指标流水线

把多个指标实例组合为按依赖排序的多阶段计算，支持批量与流式两种执行方式。
"""

from quantindicators.pipeline.builder import PipelineBuilder, new
from quantindicators.pipeline.config import (
    ErrorHandling,
    ExecutionMode,
    PipelineConfig,
    PipelineSettings,
    PipelineStageConfig,
)
from quantindicators.pipeline.executor import PipelineExecutor, execute
from quantindicators.pipeline.metrics import (
    AggregationMode,
    ExecutionMetrics,
    PipelineRunResult,
    StageError,
    StageMetrics,
    aggregate_results,
    chronological_merge,
)
from quantindicators.pipeline.streaming import (
    PipelineStreamState,
    StageStream,
    init_streaming,
    stream_execute,
)

__all__ = [
    # Builder
    "PipelineBuilder",
    "new",
    # Config
    "ExecutionMode",
    "ErrorHandling",
    "PipelineSettings",
    "PipelineStageConfig",
    "PipelineConfig",
    # Batch
    "PipelineExecutor",
    "execute",
    # Streaming
    "PipelineStreamState",
    "StageStream",
    "init_streaming",
    "stream_execute",
    # Metrics
    "StageMetrics",
    "ExecutionMetrics",
    "StageError",
    "PipelineRunResult",
    "AggregationMode",
    "aggregate_results",
    "chronological_merge",
]
