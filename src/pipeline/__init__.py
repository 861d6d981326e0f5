"""
Vision pipeline package.

A pipeline is an ordered list of named stages run against a per-run
working image store:
- Stage definitions from configuration (type tag, name, parameters)
- Run-scoped property overrides with typed coercion
- Named results and per-stage timings for every run
"""

from .definitions import StageDefinition
from .engine import PipelineConfig, PipelineEngine, RunResult, create_engine_from_config
from .errors import (
    ConfigurationError,
    NotFound,
    PipelineError,
    StageError,
    TypeMismatchError,
)
from .properties import PropertyOverride, PropertyResolver, ValueType
from .vision_pipeline import VisionPipeline

__all__ = [
    "StageDefinition",
    "PipelineConfig",
    "PipelineEngine",
    "RunResult",
    "create_engine_from_config",
    "ConfigurationError",
    "NotFound",
    "PipelineError",
    "StageError",
    "TypeMismatchError",
    "PropertyOverride",
    "PropertyResolver",
    "ValueType",
    "VisionPipeline",
]
