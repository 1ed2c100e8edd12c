"""错误定义

指标计算与流水线执行过程中使用的结构化异常。所有异常都继承自
IndicatorError，并以属性形式携带上下文（参数名、所需/提供的数据量等），
便于调用方按类型和字段进行程序化处理。
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class IndicatorError(Exception):
    """指标库异常基类"""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典（用于日志和序列化）"""
        payload: Dict[str, Any] = {"type": type(self).__name__, "message": self.message}
        for key, value in self.__dict__.items():
            if key != "message" and not key.startswith("_"):
                payload[key] = value
        return payload


class InsufficientData(IndicatorError):
    """数据量不足，无法完成预热"""

    def __init__(self, required: int, provided: int, indicator: Optional[str] = None) -> None:
        self.required = required
        self.provided = provided
        self.indicator = indicator
        if indicator:
            message = f"{indicator} requires at least {required} data points, got {provided}"
        else:
            message = f"Insufficient data: required {required}, got {provided}"
        super().__init__(message)


class InvalidParams(IndicatorError):
    """参数校验失败"""

    def __init__(
        self,
        param: Optional[str],
        value: Any = None,
        expected: str = "valid value",
        message: Optional[str] = None,
    ) -> None:
        self.param = param
        self.value = value
        self.expected = expected
        if message is None:
            if param:
                message = f"Invalid parameter '{param}': got {value!r}, expected {expected}"
            else:
                message = f"Invalid parameter value: {value!r}"
        super().__init__(message)


class InvalidDataFormat(IndicatorError):
    """输入数据格式错误"""

    def __init__(
        self,
        expected: str,
        received: str,
        index: Optional[int] = None,
    ) -> None:
        self.expected = expected
        self.received = received
        self.index = index
        message = f"Invalid data format: expected {expected}, got {received}"
        if index is not None:
            message = f"{message} at index {index}"
        super().__init__(message)


class CalculationError(IndicatorError):
    """计算过程中的数学错误（如除零）"""

    def __init__(self, operation: str, reason: str, indicator: Optional[str] = None) -> None:
        self.operation = operation
        self.reason = reason
        self.indicator = indicator
        prefix = f"{indicator} " if indicator else ""
        super().__init__(f"{prefix}calculation error in operation '{operation}': {reason}")


class StreamStateError(IndicatorError):
    """流式状态与其所属指标不匹配"""

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Stream state error in operation '{operation}': {reason}")


class ValidationError(IndicatorError):
    """领域不变量被破坏（如 low > high）"""

    def __init__(self, field: str, value: Any, constraint: str) -> None:
        self.field = field
        self.value = value
        self.constraint = constraint
        super().__init__(
            f"Validation failed for field '{field}': {constraint} (got {value!r})"
        )


# ==================== 流水线构建错误 ====================


class PipelineBuildError(IndicatorError):
    """流水线构建失败，修正后重新 build() 即可"""


class EmptyPipelineError(PipelineBuildError):
    def __init__(self) -> None:
        super().__init__("Pipeline must have at least one stage")


class DuplicateStageError(PipelineBuildError):
    def __init__(self, stage_id: str) -> None:
        self.stage_id = stage_id
        super().__init__(f"Duplicate stage id: {stage_id}")


class UnknownDependencyError(PipelineBuildError):
    def __init__(self, stage_id: str, unknown: Sequence[str]) -> None:
        self.stage_id = stage_id
        self.unknown = list(unknown)
        super().__init__(f"Unknown dependencies: {self.unknown} for stage: {stage_id}")


class CircularDependencyError(PipelineBuildError):
    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(f"Circular dependency detected: {' -> '.join(self.cycle)}")


# ==================== 流水线执行错误 ====================


class PipelineExecutionError(IndicatorError):
    """fail_fast 模式下某个阶段失败，整个运行中止"""

    def __init__(self, stage_id: str, error: IndicatorError) -> None:
        self.stage_id = stage_id
        self.error = error
        super().__init__(f"Stage '{stage_id}' failed: {error.message}")


__all__ = [
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
]
