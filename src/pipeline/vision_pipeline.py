"""
Editable, persisted stage list.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

import numpy as np

from .definitions import StageDefinition
from .engine import PipelineEngine, RunResult
from .errors import ConfigurationError, NotFound
from .properties import OverridesInput
from .stages import STAGE_REGISTRY, Stage, StageRegistry


class VisionPipeline:
    """
    An ordered, named list of stages.

    This is the object the configuration side edits: stages are added,
    removed and reordered here, and persisted as StageDefinitions.

    Example:
        pipeline = VisionPipeline.from_definitions("fiducial", config.pipelines["fiducial"])
        result = pipeline.run(engine, overrides={"BlurGaussian.kernel_size": 7})
    """

    def __init__(self, name: str = "pipeline", stages: Optional[List[Stage]] = None):
        self.name = name
        self._stages: List[Stage] = []
        for stage in stages or []:
            self.add(stage)

    def add(self, stage: Stage, index: Optional[int] = None) -> Stage:
        """
        Raises:
            ConfigurationError: If a stage with the same name is already present.
        """
        if any(s.name == stage.name for s in self._stages):
            raise ConfigurationError(f"Pipeline {self.name!r} already has a stage named {stage.name!r}")
        if index is None:
            self._stages.append(stage)
        else:
            self._stages.insert(index, stage)
        return stage

    def remove(self, name: str) -> Stage:
        stage = self.get(name)
        self._stages.remove(stage)
        return stage

    def get(self, name: str) -> Stage:
        for stage in self._stages:
            if stage.name == name:
                return stage
        raise NotFound(name)

    def move(self, name: str, index: int) -> None:
        stage = self.remove(name)
        self._stages.insert(index, stage)

    @property
    def stages(self) -> List[Stage]:
        return list(self._stages)

    def __iter__(self) -> Iterator[Stage]:
        return iter(list(self._stages))

    def __len__(self) -> int:
        return len(self._stages)

    def run(
        self,
        engine: PipelineEngine,
        initial_image: Optional[np.ndarray] = None,
        overrides: OverridesInput = None,
    ) -> RunResult:
        return engine.run(self._stages, initial_image=initial_image, overrides=overrides)

    # Persistence

    def to_definitions(self) -> List[Dict[str, Any]]:
        return [stage.to_definition().to_dict() for stage in self._stages]

    @classmethod
    def from_definitions(
        cls,
        name: str,
        definitions: List[Any],
        registry: Optional[StageRegistry] = None,
    ) -> "VisionPipeline":
        registry = registry or STAGE_REGISTRY
        stages = []
        for d in definitions:
            if not isinstance(d, StageDefinition):
                d = StageDefinition.from_dict(d)
            stages.append(registry.create(d))
        return cls(name, stages)
