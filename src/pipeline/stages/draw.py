"""
Annotation stages.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

import cv2

from models.results import Circle
from ..context import PipelineContext
from ..errors import ConfigurationError
from .base import Stage
from .registry import register_stage


@register_stage
class DrawCircles(Stage):
    """
    Draw the circles found by an earlier stage onto the working image.

    With image_stage_name set, the image recorded by that stage is drawn on
    instead. Grayscale images are converted to BGR first.
    """

    type_tag = "DrawCircles"
    category = "Annotation"
    description = "Draw detected circles"
    parameters = ("circles_stage_name", "image_stage_name", "color", "thickness")

    def __init__(self, name: str = "", enabled: bool = True, property_name: Optional[str] = None,
                 circles_stage_name: str = "", image_stage_name: str = "",
                 color: Sequence[int] = (0, 0, 255), thickness: int = 2):
        super().__init__(name, enabled, property_name)
        self.circles_stage_name = circles_stage_name
        self.image_stage_name = image_stage_name
        self.color = color
        self.thickness = int(thickness)

    @property
    def color(self) -> Tuple[int, int, int]:
        return self._color

    @color.setter
    def color(self, value: Sequence[int]) -> None:
        if len(value) != 3:
            raise ValueError(f"color must be (B, G, R), got {value!r}")
        self._color = tuple(int(c) for c in value)

    def get_parameters(self):
        params = super().get_parameters()
        params["color"] = list(self.color)
        return params

    def validate(self, earlier_stages) -> None:
        if not self.circles_stage_name:
            raise ConfigurationError(f"{self.name}: circles_stage_name is required")

    def process(self, ctx: PipelineContext) -> Any:
        circles = ctx.get_result_value(self.circles_stage_name) or []
        if self.image_stage_name:
            image = ctx.get_result_image(self.image_stage_name)
        else:
            image = ctx.require_image()
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        for circle in circles:
            if not isinstance(circle, Circle):
                continue
            center = (int(round(circle.x)), int(round(circle.y)))
            cv2.circle(image, center, int(round(circle.diameter / 2.0)), self.color, self.thickness)
            cv2.circle(image, center, 1, self.color, -1)
        ctx.working_image = image
        return None
