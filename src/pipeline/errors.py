"""
Pipeline error types.

Configuration and type errors are raised before any stage runs. A stage
failure is wrapped in StageError, which keeps the results recorded before
the failure for diagnostics.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class PipelineError(Exception):
    """Base class for pipeline failures."""


class ConfigurationError(PipelineError):
    """Malformed stage definitions: duplicate or missing names, unknown types, bad parameters."""


class TypeMismatchError(PipelineError):
    """A property override cannot be coerced to any of the expected types."""

    def __init__(self, property_name: str, value: Any, expected: Sequence[Any], reason: str = ""):
        names = ", ".join(getattr(t, "value", str(t)) for t in expected)
        message = f"Override {property_name!r}={value!r} cannot be converted to any of: {names}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)
        self.property_name = property_name
        self.value = value
        self.expected = tuple(expected)


class NotFound(PipelineError, KeyError):
    """A stage asked for a result that has not been produced (yet)."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No result named {self.name!r}"


class StageError(PipelineError):
    """
    A stage failed during a run.

    Attributes:
        stage_name: Name of the failing stage.
        cause: The original exception (also chained as __cause__).
        results: NamedResults recorded before the failure, in order.
        timings: Elapsed seconds per stage that ran.
    """

    def __init__(
        self,
        stage_name: str,
        cause: BaseException,
        results: Optional[Dict[str, Any]] = None,
        timings: Optional[Dict[str, float]] = None,
    ):
        super().__init__(f"Stage {stage_name!r} failed: {cause}")
        self.stage_name = stage_name
        self.cause = cause
        self.results = dict(results or {})
        self.timings = dict(timings or {})
