"""执行统计与结果聚合测试"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from quantindicators.errors import InsufficientData, InvalidParams
from quantindicators.pipeline import (
    AggregationMode,
    ExecutionMetrics,
    PipelineRunResult,
    StageError,
    StageMetrics,
    aggregate_results,
    chronological_merge,
)
from quantindicators.types import IndicatorResult


def _result(value, hour=None):
    timestamp = datetime(2024, 1, 1, hour, tzinfo=timezone.utc) if hour is not None else None
    return IndicatorResult(value=Decimal(value), timestamp=timestamp)


def _run(values, executions=1, errors=()):
    metrics = ExecutionMetrics(
        total_executions=executions,
        total_processing_time=0.5 * executions,
        error_count=len(errors),
        last_execution_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    metrics.stage("sma").record(0.1, result_count=len(values))
    return PipelineRunResult(
        stage_results={"sma": [_result(v) for v in values]},
        aggregated_result=["marker", len(values)],
        execution_metrics=metrics,
        errors=[StageError("sma", InsufficientData(5, 1)) for _ in errors],
    )


class TestStageMetrics:
    def test_record(self):
        metrics = StageMetrics()
        metrics.record(0.25, result_count=3)
        metrics.record(0.25, error=True)
        metrics.record(0.0, result_count=3, cache_hit=True)
        assert metrics.to_dict() == {
            "executions": 3,
            "error_count": 1,
            "duration": 0.5,
            "result_count": 6,
            "cache_hits": 1,
        }

    def test_merge_does_not_mutate(self):
        first = ExecutionMetrics()
        first.stage("a").record(1.0, result_count=1)
        second = ExecutionMetrics()
        second.stage("a").record(2.0, result_count=2)
        second.stage("b").record(1.0)

        merged = first.merge(second)
        assert merged.stage_metrics["a"].result_count == 3
        assert merged.stage_metrics["b"].executions == 1
        assert first.stage_metrics["a"].result_count == 1
        assert "b" not in first.stage_metrics

    def test_to_dict(self):
        metrics = ExecutionMetrics()
        assert metrics.to_dict()["last_execution_time"] is None
        metrics.finish_run(0.1)
        data = metrics.to_dict()
        assert data["total_executions"] == 1
        assert isinstance(data["last_execution_time"], str)


class TestAggregateResults:
    """多次运行结果聚合测试"""

    def test_empty(self):
        aggregated = aggregate_results([], "merge")
        assert aggregated.stage_results == {}
        assert aggregated.aggregated_result == []
        assert aggregated.errors == []
        assert aggregated.execution_metrics.total_executions == 0

    def test_merge(self):
        aggregated = aggregate_results([_run([1, 2]), _run([3], errors=["x"])], AggregationMode.MERGE)
        assert [r.value for r in aggregated.stage_results["sma"]] == [1, 2, 3]
        assert aggregated.aggregated_result == []
        assert len(aggregated.errors) == 1
        metrics = aggregated.execution_metrics
        assert metrics.total_executions == 2
        assert metrics.total_processing_time == pytest.approx(1.0)
        assert metrics.error_count == 1
        assert metrics.stage_metrics["sma"].result_count == 3

    def test_latest_keeps_last_results_but_sums_metrics(self):
        aggregated = aggregate_results([_run([1, 2], executions=3), _run([9])], "latest")
        assert [r.value for r in aggregated.stage_results["sma"]] == [9]
        assert aggregated.aggregated_result == ["marker", 1]
        assert aggregated.execution_metrics.total_executions == 4
        assert aggregated.execution_metrics.stage_metrics["sma"].executions == 2

    def test_inputs_unchanged(self):
        first = _run([1, 2])
        aggregate_results([first, _run([3])], "merge")
        assert len(first.stage_results["sma"]) == 2
        assert first.execution_metrics.stage_metrics["sma"].executions == 1

    def test_invalid_mode(self):
        with pytest.raises(InvalidParams) as exc_info:
            aggregate_results([_run([1])], "average")
        assert exc_info.value.param == "mode"

    def test_success_flag(self):
        assert _run([1]).success
        assert not _run([1], errors=["x"]).success


class TestChronologicalMerge:
    def test_orders_by_timestamp(self):
        merged = chronological_merge(
            {
                "a": [_result(1, 2), _result(2, 4)],
                "b": [_result(3, 1), _result(4), _result(5, 3)],
            }
        )
        assert [entry["result"].value for entry in merged] == [3, 1, 5, 2, 4]
        assert [entry["stage_id"] for entry in merged] == ["b", "a", "b", "a", "b"]

    def test_equal_timestamps_keep_stage_order(self):
        merged = chronological_merge({"a": [_result(1, 5)], "b": [_result(2, 5)]})
        assert [entry["stage_id"] for entry in merged] == ["a", "b"]

    def test_mixed_naive_and_aware_timestamps(self):
        aware = IndicatorResult(value=Decimal(1), timestamp=datetime(2024, 1, 1, 3, tzinfo=timezone.utc))
        naive = IndicatorResult(value=Decimal(2), timestamp=datetime(2024, 1, 1, 2))
        merged = chronological_merge({"aware": [aware], "naive": [naive]})
        assert [entry["stage_id"] for entry in merged] == ["naive", "aware"]
        assert merged[0]["result"].timestamp.tzinfo is None
