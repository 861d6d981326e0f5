"""
Per-run working state.

A PipelineContext is created for each run and dropped when the run ends.
It holds the working image that stages transform in place and the results
each stage published under its name. Runs never share a context, so
nothing in here is locked.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional

import numpy as np

from models.geometry import Location
from models.results import NamedResult
from .errors import NotFound
from .properties import PropertyOverride, PropertyResolver


class PipelineContext:
    """
    Working image store handed to every stage of one run.

    Attributes:
        camera: Camera the run belongs to (capture stages use it), or None.
        overrides: The run's typed override table.
        resolver: PropertyResolver with the run's units-per-pixel context.
        record_images: Snapshot the working image into each NamedResult.
    """

    def __init__(
        self,
        camera: Any = None,
        working_image: Optional[np.ndarray] = None,
        overrides: Optional[Mapping[str, PropertyOverride]] = None,
        resolver: Optional[PropertyResolver] = None,
        record_images: bool = True,
    ):
        self.camera = camera
        self.working_image = working_image
        self.overrides: Mapping[str, PropertyOverride] = dict(overrides or {})
        self.resolver = resolver or PropertyResolver()
        self.record_images = record_images
        self._results: Dict[str, NamedResult] = {}
        self._parameters: Dict[str, Any] = {}
        self._passes: Dict[str, int] = {}

    @property
    def units_per_pixel(self) -> Optional[Location]:
        return self.resolver.units_per_pixel

    def require_image(self) -> np.ndarray:
        """
        The working image.

        Raises:
            ValueError: If no stage has supplied an image yet.
        """
        if self.working_image is None:
            raise ValueError("no working image (capture or recall an image first)")
        return self.working_image

    # Results

    def get_result(self, name: str) -> NamedResult:
        """
        Result published by the named stage.

        Raises:
            NotFound: If that stage has not produced a result in this run.
        """
        try:
            return self._results[name]
        except KeyError:
            raise NotFound(name) from None

    def get_result_value(self, name: str) -> Any:
        return self.get_result(name).value

    def get_result_image(self, name: str) -> np.ndarray:
        """
        Copy of the image a stage produced, or of the working image as it was
        right after that stage ran.

        Raises:
            NotFound: No result under that name.
            ValueError: The stage recorded no image.
        """
        result = self.get_result(name)
        source = result.value if isinstance(result.value, np.ndarray) else result.image
        if source is None:
            raise ValueError(f"stage {name!r} recorded no image")
        return source.copy()

    def has_result(self, name: str) -> bool:
        return name in self._results

    def record(self, stage_name: str, value: Any) -> NamedResult:
        """Publish a stage's result; a re-run stage moves to the end."""
        # Later stages modify the working image in place, so image values
        # are published as copies.
        if isinstance(value, np.ndarray):
            value = value.copy()
        image = self.working_image if self.record_images else None
        result = NamedResult.record(stage_name, value, image)
        self._results.pop(stage_name, None)
        self._results[stage_name] = result
        return result

    def discard(self, names: Iterable[str]) -> None:
        for name in names:
            self._results.pop(name, None)

    @property
    def results(self) -> Dict[str, NamedResult]:
        """Results in the order they were recorded."""
        return dict(self._results)

    # Resolved parameters of the stage currently running

    def begin_stage(self, parameters: Mapping[str, Any]) -> None:
        self._parameters = dict(parameters)

    def parameter(self, name: str, default: Any = None) -> Any:
        """Effective (override-resolved) value of a parameter of the current stage."""
        return self._parameters.get(name, default)

    def count_pass(self, stage_name: str) -> int:
        """Number of times the named stage has run in this run, including this one."""
        self._passes[stage_name] = self._passes.get(stage_name, 0) + 1
        return self._passes[stage_name]
