"""参数校验

根据指标声明的 ParamMetadata 校验参数：类型、取值范围、可选项、必填项。
未声明的参数会被忽略。
"""

from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Sequence

from quantindicators.errors import InvalidParams
from quantindicators.types import ParamMetadata

_TYPE_CHECKS = {
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "number": lambda v: isinstance(v, (int, float, Decimal)) and not isinstance(v, bool),
    "string": lambda v: isinstance(v, str),
    "boolean": lambda v: isinstance(v, bool),
}


def _is_finite(value: Any) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    return math.isfinite(value)


class ParamValidator:
    """基于元数据的参数校验器

    Example::

        validator = ParamValidator(SMA().parameter_metadata())
        validator.validate({"period": 20})
    """

    def __init__(self, metadata: Sequence[ParamMetadata]) -> None:
        self._metadata: Dict[str, ParamMetadata] = {meta.name: meta for meta in metadata}

    @property
    def defaults(self) -> Dict[str, Any]:
        return {name: meta.default for name, meta in self._metadata.items()}

    def validate(self, params: Optional[Mapping[str, Any]]) -> None:
        """校验参数，失败时抛出 InvalidParams"""
        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            raise InvalidParams(None, params, "mapping", message="Parameters must be a mapping")

        for key, value in params.items():
            meta = self._metadata.get(key)
            if meta is None:
                continue
            if value is None and not meta.required:
                if meta.default is None:
                    continue
                raise InvalidParams(
                    key,
                    None,
                    meta.type,
                    message=f"Parameter '{key}' must not be None (default is {meta.default!r})",
                )
            self._validate_type(key, value, meta)
            self._validate_range(key, value, meta)
            self._validate_options(key, value, meta)

        for name, meta in self._metadata.items():
            if meta.required and params.get(name) is None:
                raise InvalidParams(
                    name,
                    None,
                    "required parameter",
                    message=f"Required parameter '{name}' is missing",
                )

    def _validate_type(self, key: str, value: Any, meta: ParamMetadata) -> None:
        check = _TYPE_CHECKS.get(meta.type)
        if check is None or check(value):
            if meta.type == "number" and not _is_finite(value):
                raise InvalidParams(
                    key,
                    value,
                    "finite number",
                    message=f"Parameter '{key}' must be a finite number, got {value!r}",
                )
            return
        expected = meta.type
        raise InvalidParams(
            key,
            value,
            expected,
            message=f"Parameter '{key}' must be a {expected}, got {value!r}",
        )

    def _validate_range(self, key: str, value: Any, meta: ParamMetadata) -> None:
        if meta.type not in ("integer", "number"):
            return
        if meta.min is not None and value < meta.min:
            raise InvalidParams(
                key,
                value,
                f"value >= {meta.min}",
                message=f"Parameter '{key}' must be >= {meta.min}, got {value}",
            )
        if meta.max is not None and value > meta.max:
            raise InvalidParams(
                key,
                value,
                f"value <= {meta.max}",
                message=f"Parameter '{key}' must be <= {meta.max}, got {value}",
            )

    def _validate_options(self, key: str, value: Any, meta: ParamMetadata) -> None:
        if meta.options is None or value in meta.options:
            return
        options = list(meta.options)
        raise InvalidParams(
            key,
            value,
            f"one of {options}",
            message=f"Parameter '{key}' must be one of {options}, got {value!r}",
        )


__all__ = ["ParamValidator"]
