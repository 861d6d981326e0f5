"""
FrameData model for captured camera frames.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np


@dataclass
class FrameData:
    """
    Metadata and payload for a captured camera frame.

    Attributes:
        frame: The frame pixels as a numpy array (BGR or grayscale).
        width: Frame width in pixels.
        height: Frame height in pixels.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential frame number per camera since open.
        source: Name of the camera that produced the frame.
        transformed: True once rotation/flip/crop/undistortion were applied.
    """
    frame: np.ndarray
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None
    transformed: bool = False

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameData":
        """Create FrameData from a numpy array."""
        h, w = frame.shape[:2]
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )

    def with_frame(self, frame: np.ndarray, transformed: bool = True) -> "FrameData":
        """Copy of this frame's metadata carrying new pixels (e.g. after a transform)."""
        h, w = frame.shape[:2]
        return replace(self, frame=frame, width=w, height=h, transformed=transformed)

    @property
    def shape(self) -> Tuple[int, ...]:
        """Return (height, width[, channels])."""
        return self.frame.shape

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)
