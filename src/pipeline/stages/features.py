"""
Feature extraction stages: circles, contours and rotated rectangles.
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

import cv2
import numpy as np

from models.geometry import Length
from models.results import Circle, RotatedRect
from ..context import PipelineContext
from ..properties import ValueType
from .base import Overridable, Stage
from .registry import register_stage

PixelLength = Union[float, Length]

_PIXELS = Overridable((ValueType.NUMBER, ValueType.LENGTH), pixels=True)


def pixel_length(value: Any) -> PixelLength:
    """
    A persisted distance: a pixel count, or a Length ("0.5mm") converted at
    run time. Negative distances are clamped to zero.
    """
    if isinstance(value, str):
        try:
            value = float(value)
        except ValueError:
            value = Length.parse(value)
    if isinstance(value, Length):
        return value if value.value >= 0 else Length(0.0, value.units)
    return max(0.0, float(value))


def _gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


@register_stage
class DetectCirclesHough(Stage):
    """
    Hough circle detection on the working image.

    Diameters and the minimum center distance can be given in pixels or as
    physical lengths; lengths are converted with the camera's
    units-per-pixel at run time. The working image is left untouched.
    """

    type_tag = "DetectCirclesHough"
    category = "Feature Detection"
    description = "Detect circles with the Hough transform"
    parameters = ("min_distance", "min_diameter", "max_diameter", "param1", "param2", "dp")
    overridable = {
        "min_distance": _PIXELS,
        "min_diameter": _PIXELS,
        "max_diameter": _PIXELS,
        "param1": Overridable((ValueType.NUMBER,)),
        "param2": Overridable((ValueType.NUMBER,)),
    }

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 min_distance: Any = 10.0, min_diameter: Any = 10.0, max_diameter: Any = 100.0,
                 param1: float = 80.0, param2: float = 10.0, dp: float = 1.0):
        super().__init__(name, enabled, property_name)
        self.min_distance = pixel_length(min_distance)
        self.min_diameter = pixel_length(min_diameter)
        self.max_diameter = pixel_length(max_diameter)
        self.param1 = float(param1)
        self.param2 = float(param2)
        self.dp = float(dp)

    def set_parameters(self, values) -> None:
        for key in ("min_distance", "min_diameter", "max_diameter"):
            if key in values:
                values = dict(values)
                values[key] = pixel_length(values[key])
        super().set_parameters(values)

    def process(self, ctx: PipelineContext) -> List[Circle]:
        image = _gray(ctx.require_image())
        min_distance = max(1.0, float(self.param(ctx, "min_distance")))
        min_radius = int(round(float(self.param(ctx, "min_diameter")) / 2.0))
        max_radius = int(round(float(self.param(ctx, "max_diameter")) / 2.0))
        found = cv2.HoughCircles(
            image,
            cv2.HOUGH_GRADIENT,
            self.dp,
            min_distance,
            param1=float(self.param(ctx, "param1")),
            param2=float(self.param(ctx, "param2")),
            minRadius=min_radius,
            maxRadius=max_radius,
        )
        if found is None:
            return []
        return [Circle(float(x), float(y), float(r) * 2.0) for x, y, r in found[0]]


_RETRIEVAL_MODES = ("EXTERNAL", "LIST", "CCOMP", "TREE")
_APPROXIMATIONS = ("NONE", "SIMPLE", "TC89_L1", "TC89_KCOS")


@register_stage
class FindContours(Stage):
    """Contours of a binary working image, optionally filtered by minimum area."""

    type_tag = "FindContours"
    category = "Feature Detection"
    description = "Find contours in a binary image"
    parameters = ("retrieval", "approximation", "min_area")
    overridable = {"min_area": Overridable((ValueType.NUMBER,))}

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 retrieval: str = "LIST", approximation: str = "SIMPLE", min_area: float = 0.0):
        super().__init__(name, enabled, property_name)
        self.retrieval = retrieval
        self.approximation = approximation
        self.min_area = float(min_area)

    @property
    def retrieval(self) -> str:
        return self._retrieval

    @retrieval.setter
    def retrieval(self, value: str) -> None:
        value = str(value).upper()
        if value not in _RETRIEVAL_MODES:
            raise ValueError(f"retrieval must be one of {_RETRIEVAL_MODES}, got {value!r}")
        self._retrieval = value

    @property
    def approximation(self) -> str:
        return self._approximation

    @approximation.setter
    def approximation(self, value: str) -> None:
        value = str(value).upper()
        if value not in _APPROXIMATIONS:
            raise ValueError(f"approximation must be one of {_APPROXIMATIONS}, got {value!r}")
        self._approximation = value

    def process(self, ctx: PipelineContext) -> List[np.ndarray]:
        image = _gray(ctx.require_image())
        if image.dtype != np.uint8:
            image = image.astype(np.uint8)
        contours, _ = cv2.findContours(
            image,
            getattr(cv2, f"RETR_{self.retrieval}"),
            getattr(cv2, f"CHAIN_APPROX_{self.approximation}"),
        )
        min_area = float(self.param(ctx, "min_area"))
        return [c for c in contours if min_area <= 0 or cv2.contourArea(c) >= min_area]


@register_stage
class MinAreaRect(Stage):
    """
    Minimum-area rotated rectangles.

    With contours_stage_name set, one rectangle per contour of that stage;
    otherwise one rectangle around all non-zero pixels of the working image
    (an empty list when there are none).
    """

    type_tag = "MinAreaRect"
    category = "Feature Detection"
    description = "Fit minimum-area rotated rectangles"
    parameters = ("contours_stage_name",)

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 contours_stage_name: str = ""):
        super().__init__(name, enabled, property_name)
        self.contours_stage_name = contours_stage_name

    def process(self, ctx: PipelineContext) -> List[RotatedRect]:
        if self.contours_stage_name:
            contours = ctx.get_result_value(self.contours_stage_name) or []
            return [RotatedRect.from_cv(cv2.minAreaRect(c)) for c in contours]
        points = cv2.findNonZero(_gray(ctx.require_image()))
        if points is None:
            return []
        return [RotatedRect.from_cv(cv2.minAreaRect(points))]
