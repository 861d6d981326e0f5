"""
Filter stages: blurs and thresholding.
"""

from __future__ import annotations

from typing import Any, Optional

import cv2

from ..context import PipelineContext
from ..properties import ValueType
from .base import Overridable, Stage
from .registry import register_stage


def odd_kernel_size(value: Any) -> int:
    """Nearest odd kernel size at or above the value, never below 3."""
    size = 2 * (int(value) // 2) + 1
    return max(3, size)


class _KernelStage(Stage):
    """Shared kernel-size handling for the blur stages."""

    parameters = ("kernel_size",)
    overridable = {
        "kernel_size": Overridable((ValueType.NUMBER, ValueType.LENGTH), pixels=True),
    }

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 kernel_size: int = 3):
        super().__init__(name, enabled, property_name)
        self.kernel_size = kernel_size

    @property
    def kernel_size(self) -> int:
        return self._kernel_size

    @kernel_size.setter
    def kernel_size(self, value: Any) -> None:
        self._kernel_size = odd_kernel_size(value)

    def normalize_override(self, parameter: str, value: Any) -> Any:
        if parameter == "kernel_size":
            return max(1, int(round(value))) | 1
        return value


@register_stage
class BlurGaussian(_KernelStage):
    """
    Gaussian blur with a square kernel.

    The persisted kernel size is always odd and at least 3. A run may
    override it under "BlurGaussian.kernel_size" with a pixel count or a
    physical length; the override is forced odd.
    """

    type_tag = "BlurGaussian"
    description = "Gaussian blur"

    def process(self, ctx: PipelineContext) -> Any:
        k = self.param(ctx, "kernel_size")
        ctx.working_image = cv2.GaussianBlur(ctx.require_image(), (k, k), 0)
        return ctx.working_image


@register_stage
class BlurMedian(_KernelStage):
    """Median blur; same kernel rules as BlurGaussian."""

    type_tag = "BlurMedian"
    description = "Median blur"

    def process(self, ctx: PipelineContext) -> Any:
        k = self.param(ctx, "kernel_size")
        ctx.working_image = cv2.medianBlur(ctx.require_image(), k)
        return ctx.working_image


@register_stage
class Threshold(Stage):
    """
    Binary threshold of the working image.

    With auto enabled the level is picked by Otsu's method (the image is
    converted to grayscale first) and `threshold` is ignored.
    """

    type_tag = "Threshold"
    description = "Binary threshold"
    parameters = ("threshold", "auto", "invert")
    overridable = {
        "threshold": Overridable((ValueType.NUMBER,)),
        "invert": Overridable((ValueType.BOOLEAN,)),
    }

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 threshold: int = 127, auto: bool = False, invert: bool = False):
        super().__init__(name, enabled, property_name)
        self.threshold = threshold
        self.auto = auto
        self.invert = invert

    @property
    def threshold(self) -> int:
        return self._threshold

    @threshold.setter
    def threshold(self, value: Any) -> None:
        self._threshold = min(255, max(0, int(value)))

    def process(self, ctx: PipelineContext) -> Any:
        image = ctx.require_image()
        kind = cv2.THRESH_BINARY_INV if self.param(ctx, "invert") else cv2.THRESH_BINARY
        if self.auto:
            if image.ndim == 3:
                image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
            kind |= cv2.THRESH_OTSU
        level, ctx.working_image = cv2.threshold(image, self.param(ctx, "threshold"), 255, kind)
        return float(level)
