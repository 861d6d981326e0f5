"""
Named stage results and the feature types stages publish.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from numbers import Number
from typing import Any, Optional, Tuple

import numpy as np


class ResultKind(Enum):
    """What a stage published under its name."""
    IMAGE = "image"
    FEATURE_LIST = "feature_list"
    SCALAR = "scalar"
    EMPTY = "empty"

    @classmethod
    def of(cls, value: Any) -> "ResultKind":
        if value is None:
            return cls.EMPTY
        if isinstance(value, np.ndarray):
            return cls.IMAGE
        if isinstance(value, (list, tuple)):
            return cls.FEATURE_LIST
        return cls.SCALAR


@dataclass
class NamedResult:
    """
    One stage's published result.

    Attributes:
        stage_name: Name of the stage that produced it.
        kind: Kind of `value`.
        value: Whatever the stage returned (None for side-effect-only stages).
        timestamp: Unix timestamp when the result was recorded.
        image: Snapshot of the working image right after the stage ran.
    """
    stage_name: str
    kind: ResultKind
    value: Any = None
    timestamp: float = field(default_factory=time.time)
    image: Optional[np.ndarray] = None

    @classmethod
    def record(cls, stage_name: str, value: Any, image: Optional[np.ndarray]) -> "NamedResult":
        return cls(
            stage_name=stage_name,
            kind=ResultKind.of(value),
            value=value,
            image=None if image is None else image.copy(),
        )

    @property
    def is_empty(self) -> bool:
        """True for no value, an empty feature list, or a zero scalar."""
        if self.kind is ResultKind.EMPTY:
            return True
        if self.kind is ResultKind.FEATURE_LIST:
            return len(self.value) == 0
        if self.kind is ResultKind.SCALAR and isinstance(self.value, Number):
            return self.value == 0
        return False


@dataclass(frozen=True)
class Circle:
    """A detected circle in pixel coordinates."""
    x: float
    y: float
    diameter: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class RotatedRect:
    """A minimum-area rectangle in pixel coordinates (cv2.minAreaRect convention)."""
    x: float
    y: float
    width: float
    height: float
    angle: float

    @classmethod
    def from_cv(cls, rect) -> "RotatedRect":
        (cx, cy), (w, h), angle = rect
        return cls(float(cx), float(cy), float(w), float(h), float(angle))

    def to_cv(self):
        return ((self.x, self.y), (self.width, self.height), self.angle)
