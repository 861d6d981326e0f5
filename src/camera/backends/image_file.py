"""
Still-image camera backend.

Returns the same image on every capture. Used for offline pipeline runs
and for simulating a camera without hardware.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import cv2
import numpy as np

from models.config import CameraConfig
from ..base import Camera
from ..errors import CaptureError
from ..lighting import LightActuator


class ImageFileCamera(Camera):
    """Camera that "captures" a fixed image (from a file or an array)."""

    def __init__(
        self,
        config: CameraConfig,
        light_actuator: Optional[LightActuator] = None,
        image: Optional[np.ndarray] = None,
    ):
        super().__init__(config, light_actuator)
        self._image = image

    def open(self) -> None:
        with self._device_lock:
            if self._is_open:
                return
            if self._image is None:
                path = self.config.image_path
                if not path or not os.path.exists(path):
                    raise CaptureError(self.name, f"image file not found: {path}")
                self._image = cv2.imread(path, cv2.IMREAD_COLOR)
                if self._image is None:
                    raise CaptureError(self.name, f"could not decode image file: {path}")
            self._is_open = True
            h, w = self._image.shape[:2]
        logging.info(f"[{self.name}] camera opened (backend=image_file, size={w}x{h})")

    def set_image(self, image: np.ndarray) -> None:
        """Replace the image returned by subsequent captures."""
        with self._device_lock:
            self._image = image

    def _read_device(self) -> Optional[np.ndarray]:
        return None if self._image is None else self._image.copy()

    def close(self) -> None:
        with self._device_lock:
            self._is_open = False
