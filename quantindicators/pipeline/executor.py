"""流水线批量执行器

按 execution_order 对整个数据集运行每个阶段：
- sequential: 在调用线程中逐个执行
- parallel: 按依赖层分批提交到线程池，每层结束后汇合再进入下一层

缓存读写与统计更新只发生在调用线程，工作线程只做纯计算。
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Hashable, List, Optional, Sequence, Tuple

from quantindicators.cache import ResultCache, dataset_fingerprint
from quantindicators.errors import CalculationError, IndicatorError, PipelineExecutionError
from quantindicators.types import OHLCV, IndicatorResult, ensure_series

from .config import ErrorHandling, ExecutionMode, PipelineConfig, PipelineStageConfig
from .metrics import (
    Aggregator,
    ExecutionMetrics,
    PipelineRunResult,
    StageError,
    StageResults,
    default_aggregator,
)

logger = logging.getLogger(__name__)


@dataclass
class _StageOutcome:
    stage_id: str
    results: List[IndicatorResult] = field(default_factory=list)
    error: Optional[IndicatorError] = None
    duration: float = 0.0
    cache_hit: bool = False
    cache_key: Optional[Hashable] = None


def run_stage_calculation(stage: PipelineStageConfig, data: Sequence[OHLCV]) -> List[IndicatorResult]:
    """运行单个阶段，第三方代码抛出的非预期异常统一包装为 CalculationError"""
    try:
        return stage.indicator.calculate(stage.map_series(data), stage.params)
    except IndicatorError:
        raise
    except Exception as exc:
        logger.exception("stage %s raised an unexpected error", stage.id)
        raise CalculationError("calculate", f"{type(exc).__name__}: {exc}", stage.indicator.name) from exc


class PipelineExecutor:
    """流水线批量执行器

    Args:
        cache: 结果缓存；未提供且流水线开启缓存时由执行器按 cache_size 自建
        aggregator: 对 stage_results 的归约函数，默认返回 []

    Example::

        executor = PipelineExecutor(aggregator=chronological_merge)
        result = executor.execute(config, candles)
    """

    def __init__(
        self,
        cache: Optional[ResultCache] = None,
        aggregator: Optional[Aggregator] = None,
    ) -> None:
        self._cache = cache
        self._aggregator = aggregator or default_aggregator

    @property
    def cache(self) -> Optional[ResultCache]:
        return self._cache

    def execute(self, config: PipelineConfig, dataset: Sequence[Any]) -> PipelineRunResult:
        """执行一次流水线

        Raises:
            InvalidDataFormat: 数据集格式错误
            PipelineExecutionError: fail_fast 模式下某个阶段失败
        """
        started = time.perf_counter()
        series = ensure_series(dataset)
        cache = self._resolve_cache(config)
        fingerprint = dataset_fingerprint(series) if cache is not None else None

        metrics = ExecutionMetrics()
        stage_results: StageResults = {}
        errors: List[StageError] = []

        logger.debug(
            "executing pipeline %s over %d points (mode=%s)",
            config.id,
            len(series),
            config.execution_mode.value,
        )

        if config.execution_mode is ExecutionMode.PARALLEL:
            batches = [
                [config.stage(stage_id) for stage_id in layer]
                for layer in config.execution_layers
            ]
        else:
            batches = [[stage] for stage in config.ordered_stages()]

        for batch in batches:
            outcomes = self._run_batch(config, batch, series, cache, fingerprint)
            for outcome in outcomes:
                self._apply_outcome(config, outcome, cache, metrics, stage_results, errors)

        ordered_results = {stage_id: stage_results[stage_id] for stage_id in config.execution_order}
        metrics.finish_run(time.perf_counter() - started)
        return PipelineRunResult(
            stage_results=ordered_results,
            aggregated_result=self._aggregator(ordered_results),
            execution_metrics=metrics,
            errors=errors,
        )

    def _resolve_cache(self, config: PipelineConfig) -> Optional[ResultCache]:
        if not config.settings.enable_caching:
            return None
        if self._cache is None:
            self._cache = ResultCache(max_size=config.settings.cache_size)
        return self._cache

    def _run_batch(
        self,
        config: PipelineConfig,
        batch: List[PipelineStageConfig],
        series: List[OHLCV],
        cache: Optional[ResultCache],
        fingerprint: Optional[Tuple[int, int]],
    ) -> List[_StageOutcome]:
        outcomes: List[_StageOutcome] = []
        pending: List[Tuple[_StageOutcome, PipelineStageConfig]] = []

        for stage in batch:
            outcome = _StageOutcome(stage_id=stage.id)
            if cache is not None:
                outcome.cache_key = ResultCache.make_key(
                    stage.indicator.identity, stage.params, stage.input_mapping, fingerprint
                )
                cached = cache.get(outcome.cache_key)
                if cached is not None:
                    outcome.results = cached
                    outcome.cache_hit = True
            outcomes.append(outcome)
            if not outcome.cache_hit:
                pending.append((outcome, stage))

        if len(pending) > 1 and config.execution_mode is ExecutionMode.PARALLEL:
            workers = min(config.settings.parallel_stages, len(pending))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    (outcome, pool.submit(self._timed_calculation, stage, series))
                    for outcome, stage in pending
                ]
                for outcome, future in futures:
                    outcome.results, outcome.error, outcome.duration = future.result()
        else:
            for outcome, stage in pending:
                outcome.results, outcome.error, outcome.duration = self._timed_calculation(stage, series)

        return outcomes

    @staticmethod
    def _timed_calculation(
        stage: PipelineStageConfig, series: List[OHLCV]
    ) -> Tuple[List[IndicatorResult], Optional[IndicatorError], float]:
        started = time.perf_counter()
        try:
            results = run_stage_calculation(stage, series)
        except IndicatorError as exc:
            return [], exc, time.perf_counter() - started
        return results, None, time.perf_counter() - started

    def _apply_outcome(
        self,
        config: PipelineConfig,
        outcome: _StageOutcome,
        cache: Optional[ResultCache],
        metrics: ExecutionMetrics,
        stage_results: StageResults,
        errors: List[StageError],
    ) -> None:
        stage_metrics = metrics.stage(outcome.stage_id)

        if outcome.error is not None:
            stage_metrics.record(outcome.duration, error=True)
            metrics.error_count += 1
            if config.error_handling is ErrorHandling.FAIL_FAST:
                logger.debug("stage %s failed, aborting pipeline %s", outcome.stage_id, config.id)
                raise PipelineExecutionError(outcome.stage_id, outcome.error) from outcome.error
            logger.warning("stage %s failed: %s", outcome.stage_id, outcome.error.message)
            errors.append(StageError(stage_id=outcome.stage_id, error=outcome.error))
            stage_results[outcome.stage_id] = []
            return

        if cache is not None and not outcome.cache_hit and outcome.cache_key is not None:
            cache.set(outcome.cache_key, outcome.results)
        stage_metrics.record(
            outcome.duration,
            result_count=len(outcome.results),
            cache_hit=outcome.cache_hit,
        )
        stage_results[outcome.stage_id] = outcome.results
        logger.debug(
            "stage %s produced %d results in %.6fs%s",
            outcome.stage_id,
            len(outcome.results),
            outcome.duration,
            " (cached)" if outcome.cache_hit else "",
        )


def execute(
    config: PipelineConfig,
    dataset: Sequence[Any],
    cache: Optional[ResultCache] = None,
    aggregator: Optional[Aggregator] = None,
) -> PipelineRunResult:
    """使用一次性执行器运行流水线；需要跨调用复用缓存时请直接持有 PipelineExecutor"""
    return PipelineExecutor(cache=cache, aggregator=aggregator).execute(config, dataset)


__all__ = ["PipelineExecutor", "execute", "run_stage_calculation"]
