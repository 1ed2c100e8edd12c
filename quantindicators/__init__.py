from quantindicators._version import __version__
from quantindicators.cache import ResultCache
from quantindicators.errors import (
    CalculationError,
    CircularDependencyError,
    DuplicateStageError,
    EmptyPipelineError,
    IndicatorError,
    InsufficientData,
    InvalidDataFormat,
    InvalidParams,
    PipelineBuildError,
    PipelineExecutionError,
    StreamStateError,
    UnknownDependencyError,
    ValidationError,
)
from quantindicators.types import (
    OHLCV,
    IndicatorResult,
    OutputFieldMetadata,
    ParamMetadata,
    to_decimal,
)
from quantindicators.indicators import (
    ATR,
    EMA,
    MACD,
    OBV,
    ROC,
    RSI,
    SMA,
    BollingerBands,
    Indicator,
    StandardDeviation,
    StreamState,
    TalippIndicator,
    WarmupPhase,
    get_indicator,
    get_supported_indicators,
    is_indicator_supported,
)
from quantindicators.pipeline import (
    AggregationMode,
    ErrorHandling,
    ExecutionMetrics,
    ExecutionMode,
    PipelineBuilder,
    PipelineConfig,
    PipelineExecutor,
    PipelineRunResult,
    PipelineSettings,
    PipelineStageConfig,
    PipelineStreamState,
    StageError,
    StageMetrics,
    aggregate_results,
    chronological_merge,
    execute,
    init_streaming,
    new,
    stream_execute,
)

__all__ = [
    "__version__",
    # Errors
    "IndicatorError",
    "InsufficientData",
    "InvalidParams",
    "InvalidDataFormat",
    "CalculationError",
    "StreamStateError",
    "ValidationError",
    "PipelineBuildError",
    "EmptyPipelineError",
    "DuplicateStageError",
    "UnknownDependencyError",
    "CircularDependencyError",
    "PipelineExecutionError",
    # Data model
    "OHLCV",
    "IndicatorResult",
    "ParamMetadata",
    "OutputFieldMetadata",
    "to_decimal",
    # Indicators
    "Indicator",
    "StreamState",
    "WarmupPhase",
    "SMA",
    "EMA",
    "MACD",
    "RSI",
    "ROC",
    "StandardDeviation",
    "BollingerBands",
    "ATR",
    "OBV",
    "TalippIndicator",
    "get_indicator",
    "get_supported_indicators",
    "is_indicator_supported",
    # Cache
    "ResultCache",
    # Pipeline
    "new",
    "PipelineBuilder",
    "PipelineSettings",
    "PipelineStageConfig",
    "PipelineConfig",
    "ExecutionMode",
    "ErrorHandling",
    "PipelineExecutor",
    "execute",
    "PipelineStreamState",
    "init_streaming",
    "stream_execute",
    "StageMetrics",
    "ExecutionMetrics",
    "StageError",
    "PipelineRunResult",
    "AggregationMode",
    "aggregate_results",
    "chronological_merge",
]
