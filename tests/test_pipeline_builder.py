"""流水线构建与校验测试"""

from __future__ import annotations

import dataclasses

import pytest

from quantindicators import pipeline
from quantindicators.errors import (
    CircularDependencyError,
    DuplicateStageError,
    EmptyPipelineError,
    InvalidParams,
    PipelineBuildError,
    UnknownDependencyError,
)
from quantindicators.indicators import SMA
from quantindicators.pipeline import ErrorHandling, ExecutionMode, PipelineBuilder


class TestBuild:
    """build() 校验测试"""

    def test_empty_pipeline(self):
        with pytest.raises(EmptyPipelineError) as exc_info:
            pipeline.new().build()
        assert "at least one stage" in str(exc_info.value)

    def test_unknown_dependency(self):
        builder = pipeline.new().add_stage("a", "sma", {"period": 2}).add_dependency("a", "ghost")
        with pytest.raises(UnknownDependencyError) as exc_info:
            builder.build()
        assert "Unknown dependencies" in str(exc_info.value)
        assert exc_info.value.unknown == ["ghost"]

    def test_two_stage_cycle(self):
        builder = (
            pipeline.new()
            .add_stage("a", "sma", {"period": 2})
            .add_stage("b", "sma", {"period": 3})
            .add_dependency("a", "b")
            .add_dependency("b", "a")
        )
        with pytest.raises(CircularDependencyError) as exc_info:
            builder.build()
        assert str(exc_info.value).startswith("Circular dependency")
        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_self_dependency(self):
        builder = pipeline.new().add_stage("a", "sma").add_dependency("a", "a")
        with pytest.raises(CircularDependencyError):
            builder.build()

    def test_transitive_cycle(self):
        builder = (
            pipeline.new()
            .add_stage("a", "sma")
            .add_stage("b", "sma")
            .add_stage("c", "sma")
            .add_stage("d", "sma")
            .add_dependency("b", "a")
            .add_dependency("c", "b")
            .add_dependency("d", "c")
            .add_dependency("b", "d")
        )
        with pytest.raises(CircularDependencyError) as exc_info:
            builder.build()
        assert set(exc_info.value.cycle) == {"b", "c", "d"}

    def test_duplicate_stage(self):
        builder = pipeline.new().add_stage("a", "sma").add_stage("a", "ema")
        with pytest.raises(DuplicateStageError):
            builder.build()

    def test_build_errors_share_base(self):
        with pytest.raises(PipelineBuildError):
            pipeline.new().build()


class TestExecutionOrder:
    """拓扑排序测试"""

    def test_dependency_chain(self):
        config = (
            pipeline.new()
            .add_stage("C", "sma")
            .add_stage("B", "sma")
            .add_stage("A", "sma")
            .add_dependency("B", "A")
            .add_dependency("C", "B")
            .build()
        )
        order = list(config.execution_order)
        assert order.index("A") < order.index("B") < order.index("C")

    def test_ties_follow_insertion_order(self):
        config = (
            pipeline.new()
            .add_stage("x", "sma")
            .add_stage("y", "ema")
            .add_stage("z", "rsi")
            .add_stage("w", "obv")
            .add_dependency("x", "w")
            .build()
        )
        assert config.execution_order == ("y", "z", "w", "x")

    def test_execution_layers(self):
        config = (
            pipeline.new()
            .add_stage("a", "sma")
            .add_stage("b", "ema")
            .add_stage("c", "rsi", dependencies=["a", "b"])
            .add_stage("d", "obv", dependencies=["a"])
            .build()
        )
        assert config.execution_layers == (("a", "b"), ("c", "d"))

    def test_add_dependency_is_idempotent(self):
        config = (
            pipeline.new()
            .add_stage("a", "sma")
            .add_stage("b", "sma")
            .add_dependency("b", "a")
            .add_dependency("b", "a")
            .build()
        )
        assert config.stage("b").dependencies == ("a",)


class TestBuilderInputs:
    """阶段与设置输入测试"""

    def test_indicator_instance_or_name(self):
        sma = SMA()
        config = pipeline.new().add_stage("a", sma).add_stage("b", "sma").build()
        assert config.stage("a").indicator is sma
        assert isinstance(config.stage("b").indicator, SMA)

    def test_unknown_indicator_name(self):
        with pytest.raises(InvalidParams):
            pipeline.new().add_stage("a", "nope")

    def test_invalid_stage_params(self):
        with pytest.raises(InvalidParams):
            pipeline.new().add_stage("a", "sma", {"period": -1})

    def test_invalid_input_mapping(self):
        with pytest.raises(InvalidParams):
            pipeline.new().add_stage("a", "sma", input_mapping={"close": "vwap"})

    def test_empty_stage_id(self):
        with pytest.raises(InvalidParams):
            pipeline.new().add_stage("", "sma")

    def test_defaults(self):
        settings = PipelineBuilder().settings
        assert settings.execution_mode is ExecutionMode.SEQUENTIAL
        assert settings.error_handling is ErrorHandling.FAIL_FAST
        assert settings.enable_caching is True

    def test_configure_merges(self):
        builder = pipeline.new().configure({"execution_mode": "parallel"})
        builder.configure(error_handling=ErrorHandling.CONTINUE_ON_ERROR, parallel_stages=2)
        settings = builder.settings
        assert settings.execution_mode is ExecutionMode.PARALLEL
        assert settings.error_handling is ErrorHandling.CONTINUE_ON_ERROR
        assert settings.parallel_stages == 2
        assert settings.enable_caching is True

    @pytest.mark.parametrize(
        "partial",
        [
            {"execution_mode": "turbo"},
            {"error_handling": "ignore"},
            {"parallel_stages": 0},
            {"cache_size": "big"},
            {"enable_caching": "yes"},
            {"retries": 3},
        ],
    )
    def test_configure_rejects_invalid(self, partial):
        with pytest.raises(InvalidParams):
            pipeline.new().configure(partial)


class TestPipelineConfig:
    """不可变执行计划测试"""

    def test_unique_ids(self):
        builder = pipeline.new().add_stage("a", "sma")
        first = builder.build()
        second = builder.build()
        assert first.id.startswith("pipeline_")
        assert first.id != second.id

    def test_config_is_frozen(self):
        config = pipeline.new().add_stage("a", "sma", {"period": 5}).build()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.execution_order = ()
        with pytest.raises(TypeError):
            config.stage("a").params["period"] = 10

    def test_builder_changes_do_not_leak(self):
        builder = pipeline.new().add_stage("a", "sma")
        config = builder.build()
        builder.add_stage("b", "ema").configure({"execution_mode": "parallel"})
        assert config.execution_order == ("a",)
        assert config.execution_mode is ExecutionMode.SEQUENTIAL

    def test_unknown_stage_lookup(self):
        config = pipeline.new().add_stage("a", "sma").build()
        with pytest.raises(KeyError):
            config.stage("missing")
