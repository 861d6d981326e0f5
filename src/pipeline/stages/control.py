"""
Control-flow stages.

These return a StageOutput instead of a plain value; the engine acts on
its signal after recording the stage's result.
"""

from __future__ import annotations

from typing import Any, Optional

from ..context import PipelineContext
from ..errors import ConfigurationError
from .base import Stage, StageOutput
from .registry import register_stage


@register_stage
class SkipIfEmpty(Stage):
    """End the run early when an earlier stage's result is empty."""

    type_tag = "SkipIfEmpty"
    category = "Control"
    description = "Stop the pipeline when a result is empty"
    parameters = ("stage_name",)

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 stage_name: str = ""):
        super().__init__(name, enabled, property_name)
        self.stage_name = stage_name

    def validate(self, earlier_stages) -> None:
        if not self.stage_name:
            raise ConfigurationError(f"{self.name}: stage_name is required")

    def process(self, ctx: PipelineContext) -> Any:
        if ctx.get_result(self.stage_name).is_empty:
            return StageOutput.skip()
        return None


@register_stage
class RepeatFrom(Stage):
    """
    Jump back to an earlier stage, up to `times` extra passes.

    With while_empty set, only repeat while that stage's result is empty
    (retry-until-found). The engine's max_iterations caps the total number
    of jumps in a run regardless of `times`.
    """

    type_tag = "RepeatFrom"
    category = "Control"
    description = "Repeat from an earlier stage"
    parameters = ("target", "times", "while_empty")

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 target: str = "", times: int = 1, while_empty: str = ""):
        super().__init__(name, enabled, property_name)
        self.target = target
        self.times = times
        self.while_empty = while_empty

    @property
    def times(self) -> int:
        return self._times

    @times.setter
    def times(self, value: Any) -> None:
        self._times = max(0, int(value))

    def validate(self, earlier_stages) -> None:
        if self.target not in earlier_stages:
            raise ConfigurationError(
                f"{self.name}: repeat target {self.target!r} is not an earlier stage"
            )

    def process(self, ctx: PipelineContext) -> Any:
        if ctx.count_pass(self.name) > self.times:
            return None
        if self.while_empty and not ctx.get_result(self.while_empty).is_empty:
            return None
        return StageOutput.repeat_from(self.target)
