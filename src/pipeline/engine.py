"""
Pipeline engine for machine-vision stage pipelines.

The engine runs an ordered list of named stages against a per-run working
image store. Before any stage executes it checks the stage definitions
(names non-empty and unique, references well formed) and resolves every
overridable parameter against the run's override table, so malformed
pipelines and mistyped overrides fail without side effects. Each stage's
result is then published under its name, with its elapsed time.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from models.geometry import Location
from models.results import NamedResult
from .context import PipelineContext
from .definitions import StageDefinition
from .errors import ConfigurationError, NotFound, StageError
from .properties import OverridesInput, PropertyOverride, PropertyResolver, normalize_overrides
from .stages import STAGE_REGISTRY, Signal, Stage, StageOutput, StageRegistry

StageSpec = Union[Stage, StageDefinition, Dict[str, Any]]


@dataclass
class PipelineConfig:
    """
    Configuration for the pipeline engine.

    Attributes:
        max_iterations: Max backward jumps (RepeatFrom) in one run.
        record_images: Snapshot the working image into every NamedResult.
    """
    max_iterations: int = 100
    record_images: bool = True

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "PipelineConfig":
        d = d or {}
        return cls(
            max_iterations=int(d.get("max_iterations", 100)),
            record_images=bool(d.get("record_images", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"max_iterations": self.max_iterations, "record_images": self.record_images}


@dataclass
class RunResult:
    """
    Outcome of one pipeline run.

    Attributes:
        image: The working image after the last stage that ran.
        results: NamedResults by stage name, in the order they were recorded.
        timings: Elapsed seconds per stage (summed over repeated passes).
        skipped_from: Name of the stage that ended the run early, if any.
        iterations: Number of backward jumps taken.
    """
    image: Optional[np.ndarray]
    results: Dict[str, NamedResult] = field(default_factory=dict)
    timings: Dict[str, float] = field(default_factory=dict)
    skipped_from: Optional[str] = None
    iterations: int = 0

    def __getitem__(self, name: str) -> NamedResult:
        try:
            return self.results[name]
        except KeyError:
            raise NotFound(name) from None

    def get(self, name: str, default: Any = None) -> Any:
        result = self.results.get(name)
        return default if result is None else result.value

    @property
    def total_time(self) -> float:
        return sum(self.timings.values())


class PipelineEngine:
    """
    Runs stage pipelines.

    The engine holds no per-run state: concurrent runs of different
    pipelines (or the same stages, which are only read) do not interfere.

    Example:
        engine = PipelineEngine(camera=camera)
        result = engine.run(
            [{"type": "ImageCapture", "name": "capture"},
             {"type": "BlurGaussian", "name": "blur", "kernel_size": 5}],
            overrides={"BlurGaussian.kernel_size": "0.5mm"},
        )
        blurred = result["blur"].value
    """

    def __init__(
        self,
        camera: Any = None,
        registry: Optional[StageRegistry] = None,
        config: Optional[PipelineConfig] = None,
    ):
        self.camera = camera
        self.registry = registry or STAGE_REGISTRY
        self.config = config or PipelineConfig()

    def build(self, stages: Iterable[StageSpec]) -> List[Stage]:
        """
        Instantiate stage definitions and check the pipeline.

        Raises:
            ConfigurationError: Unknown types, bad parameters, missing or
                duplicate names, bad references.
        """
        built = [s if isinstance(s, Stage) else self.registry.create(s) for s in stages]
        self.validate(built)
        return built

    @staticmethod
    def validate(stages: Sequence[Stage]) -> None:
        seen: List[str] = []
        for index, stage in enumerate(stages):
            if not stage.name:
                raise ConfigurationError(f"Stage #{index} ({stage.type_tag}) has no name")
            if stage.name in seen:
                raise ConfigurationError(f"Duplicate stage name {stage.name!r}")
            stage.validate(tuple(seen))
            seen.append(stage.name)

    def resolve(
        self,
        stages: Sequence[Stage],
        overrides: Dict[str, PropertyOverride],
        resolver: PropertyResolver,
    ) -> Dict[str, Dict[str, Any]]:
        """
        Effective overridable parameters for every enabled stage.

        Raises:
            TypeMismatchError: An override fits none of its parameter's types.
        """
        resolved: Dict[str, Dict[str, Any]] = {}
        for stage in stages:
            if not stage.enabled:
                continue
            values: Dict[str, Any] = {}
            for parameter, spec in stage.overridable_parameters().items():
                key = stage.override_key(parameter)
                base = getattr(stage, parameter)
                value = resolver.resolve(base, overrides, key, spec.expected_types)
                if spec.pixels:
                    value = resolver.to_pixels(value, key or f"{stage.name}.{parameter}")
                if key and key in overrides:
                    value = stage.normalize_override(parameter, value)
                    logging.debug(f"Override {key} -> {value!r}")
                values[parameter] = value
            resolved[stage.name] = values
        return resolved

    def run(
        self,
        stages: Iterable[StageSpec],
        initial_image: Optional[np.ndarray] = None,
        overrides: OverridesInput = None,
        units_per_pixel: Optional[Location] = None,
    ) -> RunResult:
        """
        Run the stages in order.

        Args:
            stages: Stage instances or definitions, in execution order.
            initial_image: Optional starting working image (copied).
            overrides: {"<property>.<parameter>": value} or PropertyOverrides
                for this run only.
            units_per_pixel: Calibration for length overrides; defaults to the
                camera's units-per-pixel at its current height.

        Raises:
            ConfigurationError: Before any stage runs.
            TypeMismatchError: Before any stage runs.
            StageError: A stage failed; carries the results recorded before it.
        """
        stages = self.build(stages)
        table = normalize_overrides(overrides)
        if units_per_pixel is None and self.camera is not None:
            units_per_pixel = self.camera.get_units_per_pixel_at_z()
        resolver = PropertyResolver(units_per_pixel)
        resolved = self.resolve(stages, table, resolver)
        logging.debug(f"Pipeline run started: {len(stages)} stages, {len(table)} overrides")

        ctx = PipelineContext(
            camera=self.camera,
            working_image=None if initial_image is None else initial_image.copy(),
            overrides=table,
            resolver=resolver,
            record_images=self.config.record_images,
        )
        index_of = {stage.name: i for i, stage in enumerate(stages)}
        timings: Dict[str, float] = {}
        skipped_from: Optional[str] = None
        jumps = 0

        i = 0
        while i < len(stages):
            stage = stages[i]
            if not stage.enabled:
                i += 1
                continue

            ctx.begin_stage(resolved[stage.name])
            start = time.perf_counter()
            try:
                output = stage.process(ctx)
            except Exception as e:
                timings[stage.name] = timings.get(stage.name, 0.0) + time.perf_counter() - start
                logging.error(f"Stage {stage.name} ({stage.type_tag}) failed: {e}")
                raise StageError(stage.name, e, ctx.results, timings) from e
            timings[stage.name] = timings.get(stage.name, 0.0) + time.perf_counter() - start

            if isinstance(output, StageOutput):
                ctx.record(stage.name, output.value)
                if output.signal is Signal.SKIP:
                    skipped_from = stage.name
                    logging.debug(f"Stage {stage.name} ended the run early")
                    break
                if output.signal is Signal.REPEAT:
                    jumps += 1
                    if jumps > self.config.max_iterations:
                        raise StageError(
                            stage.name,
                            RuntimeError(f"exceeded max_iterations ({self.config.max_iterations})"),
                            ctx.results,
                            timings,
                        )
                    i = index_of[output.target]
                    ctx.discard(s.name for s in stages[i:])
                    continue
            else:
                ctx.record(stage.name, output)
            i += 1

        result = RunResult(
            image=ctx.working_image,
            results=ctx.results,
            timings=timings,
            skipped_from=skipped_from,
            iterations=jumps,
        )
        logging.debug(
            f"Pipeline run finished: {len(result.results)} results, {jumps} jumps, "
            f"{result.total_time * 1000:.1f} ms"
        )
        return result


def create_engine_from_config(
    config: Dict[str, Any],
    camera: Any = None,
    registry: Optional[StageRegistry] = None,
) -> PipelineEngine:
    """
    Factory function to create a PipelineEngine from the application config dict.

    Args:
        config: Full application config dict (the "engine" section is used).
        camera: Camera the runs capture from.
        registry: Stage registry; the built-in registry by default.
    """
    return PipelineEngine(
        camera=camera,
        registry=registry,
        config=PipelineConfig.from_dict(config.get("engine")),
    )
