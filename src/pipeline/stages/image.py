"""
Stages that put an image into the working image store.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import cv2
import numpy as np

from ..context import PipelineContext
from ..errors import ConfigurationError
from .base import Stage
from .registry import register_stage


@register_stage
class ImageCapture(Stage):
    """
    Capture from the run's camera into the working image.

    With count > 1 the frames are averaged, which suppresses sensor noise
    for static scenes.
    """

    type_tag = "ImageCapture"
    category = "Image Input"
    description = "Capture an image from the camera"
    parameters = ("settle_first", "count")

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 settle_first: bool = True, count: int = 1):
        super().__init__(name, enabled, property_name)
        self.settle_first = settle_first
        self.count = count

    @property
    def count(self) -> int:
        return self._count

    @count.setter
    def count(self, value: Any) -> None:
        self._count = max(1, int(value))

    def process(self, ctx: PipelineContext) -> Any:
        camera = ctx.camera
        if camera is None:
            raise ValueError("no camera attached to this run")

        if self.settle_first:
            first = camera.light_settle_and_capture()
        else:
            first = camera.capture()
        if self.count == 1:
            image = first.frame.copy()
        else:
            acc = first.frame.astype(np.float32)
            for _ in range(self.count - 1):
                acc += camera.capture().frame.astype(np.float32)
            image = np.clip(np.rint(acc / self.count), 0, 255).astype(first.frame.dtype)
            logging.debug(f"{self.name}: averaged {self.count} frames from {camera.name}")

        ctx.working_image = image
        return image


@register_stage
class ImageRecall(Stage):
    """Restore the working image as it was right after an earlier stage ran."""

    type_tag = "ImageRecall"
    category = "Image Input"
    description = "Recall the image of an earlier stage"
    parameters = ("image_stage_name",)

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 image_stage_name: str = ""):
        super().__init__(name, enabled, property_name)
        self.image_stage_name = image_stage_name

    def validate(self, earlier_stages) -> None:
        if not self.image_stage_name:
            raise ConfigurationError(f"{self.name}: image_stage_name is required")

    def process(self, ctx: PipelineContext) -> Any:
        ctx.working_image = ctx.get_result_image(self.image_stage_name)
        return ctx.working_image


@register_stage
class ConvertColor(Stage):
    """Convert the working image between color spaces (cv2.COLOR_* names, e.g. "BGR2GRAY")."""

    type_tag = "ConvertColor"
    description = "Convert between color spaces"
    parameters = ("conversion",)

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 conversion: str = "BGR2GRAY"):
        super().__init__(name, enabled, property_name)
        self.conversion = conversion

    @property
    def conversion(self) -> str:
        return self._conversion

    @conversion.setter
    def conversion(self, value: str) -> None:
        value = str(value).upper()
        if value.startswith("COLOR_"):
            value = value[len("COLOR_"):]
        if not hasattr(cv2, f"COLOR_{value}"):
            raise ValueError(f"unknown color conversion {value!r}")
        self._conversion = value

    def process(self, ctx: PipelineContext) -> Any:
        code = getattr(cv2, f"COLOR_{self.conversion}")
        ctx.working_image = cv2.cvtColor(ctx.require_image(), code)
        return ctx.working_image
