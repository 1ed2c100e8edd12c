"""流水线流式执行测试"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

import pytest

from quantindicators import pipeline
from quantindicators.errors import CalculationError, InvalidDataFormat, PipelineExecutionError
from quantindicators.indicators import SMA
from quantindicators.pipeline import init_streaming, stream_execute
from quantindicators.types import OHLCV

from conftest import Reciprocal


def _config(**settings):
    builder = (
        pipeline.new()
        .add_stage("sma", "sma", {"period": 5})
        .add_stage("ema", "ema", {"period": 10})
        .add_stage("macd", "macd", {"fast": 3, "slow": 6, "signal": 3})
        .add_stage("bb", "bollinger", {"period": 10}, dependencies=["sma"])
        .add_stage("obv", "obv")
    )
    if settings:
        builder.configure(settings)
    return builder.build()


def _with_reciprocal(error_handling: str):
    return (
        pipeline.new()
        .add_stage("sma", "sma", {"period": 2})
        .add_stage("recip", Reciprocal())
        .configure(error_handling=error_handling)
        .build()
    )


class TestStreamExecute:
    """流式推进测试"""

    def test_matches_batch(self, candles):
        config = _config()
        batch = pipeline.execute(config, candles)

        state = init_streaming(config)
        streamed = {stage_id: [] for stage_id in config.execution_order}
        for candle in candles:
            results, state = stream_execute(state, candle)
            for stage_id, result in results.items():
                if result is not None:
                    streamed[stage_id].append(result)

        assert streamed == batch.stage_results

    def test_warmup_returns_none(self, candles):
        state = init_streaming(_config())
        for idx, candle in enumerate(candles[:5]):
            results, state = stream_execute(state, candle)
            assert set(results) == {"sma", "ema", "macd", "bb", "obv"}
            if idx < 4:
                assert results["sma"] is None
            else:
                assert results["sma"] is not None
        assert results["bb"] is None
        assert state.state_of("sma").is_warmed_up
        assert not state.state_of("bb").is_warmed_up

    def test_results_cache_keeps_latest(self, candles):
        state = init_streaming(_config())
        for candle in candles[:6]:
            results, state = stream_execute(state, candle)
        assert state.results_cache["sma"] == results["sma"]
        assert "bb" not in state.results_cache

    def test_accepts_numbers_and_dicts(self):
        config = pipeline.new().add_stage("sma", "sma", {"period": 2}).build()
        state = init_streaming(config)
        _, state = stream_execute(state, 10)
        results, state = stream_execute(
            state, {"open": 12, "high": 12, "low": 12, "close": 12}
        )
        assert results["sma"].value == SMA().calculate([10, 12], {"period": 2})[0].value

    def test_invalid_point(self):
        state = init_streaming(_config())
        with pytest.raises(InvalidDataFormat):
            stream_execute(state, "100")
        assert state.metrics.total_executions == 0

    def test_input_mapping(self, candles):
        config = (
            pipeline.new()
            .add_stage("sma_low", "sma", {"period": 3}, input_mapping={"close": "low"})
            .build()
        )
        state = init_streaming(config)
        for candle in candles[:3]:
            results, state = stream_execute(state, candle)
        mapped = [replace(candle, close=candle.low) for candle in candles[:3]]
        assert results["sma_low"] == SMA().calculate(mapped, {"period": 3})[0]

    def test_metrics_count_points(self, candles):
        state = init_streaming(_config())
        for candle in candles[:7]:
            _, state = stream_execute(state, candle)
        assert state.metrics.total_executions == 7
        assert state.metrics.stage_metrics["sma"].executions == 7
        assert state.metrics.stage_metrics["sma"].result_count == 3


class TestStreamErrorHandling:
    """流式错误策略测试"""

    def test_fail_fast_leaves_state_untouched(self):
        state = init_streaming(_with_reciprocal("fail_fast"))
        _, state = stream_execute(state, 4)
        sma_before = state.state_of("sma")
        recip_before = state.state_of("recip")
        cache_before = dict(state.results_cache)

        with pytest.raises(PipelineExecutionError) as exc_info:
            stream_execute(state, 0)

        assert exc_info.value.stage_id == "recip"
        assert isinstance(exc_info.value.error, CalculationError)
        assert state.state_of("sma") is sma_before
        assert state.state_of("recip") is recip_before
        assert state.results_cache == cache_before
        assert state.metrics.total_executions == 1

    def test_continue_on_error(self):
        state = init_streaming(_with_reciprocal("continue_on_error"))
        _, state = stream_execute(state, 4)
        recip_before = state.state_of("recip")

        results, state = stream_execute(state, 0)

        assert results["recip"] is None
        assert results["sma"].value == SMA().calculate([4, 0], {"period": 2})[0].value
        assert state.state_of("recip") is recip_before
        assert [error.stage_id for error in state.errors] == ["recip"]
        assert state.metrics.error_count == 1
        assert state.metrics.stage_metrics["recip"].error_count == 1

        results, state = stream_execute(state, 2)
        assert results["recip"].value == Decimal("0.5")
        assert state.state_of("recip").count == 2

    def test_states_are_independent(self, candles):
        config = _config()
        first = init_streaming(config)
        second = init_streaming(config)
        for candle in candles[:5]:
            _, first = stream_execute(first, candle)
        assert second.state_of("sma").count == 0
        assert first.state_of("sma").count == 5

    def test_synthetic_point(self):
        config = pipeline.new().add_stage("recip", Reciprocal()).build()
        results, _ = stream_execute(init_streaming(config), OHLCV.synthetic(4))
        assert results["recip"].value == Decimal("0.25")
