"""
Camera factory.

This is the single entrypoint the rest of the project should use to create a camera.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from models.config import CameraConfig
from .base import Camera
from .backends.image_file import ImageFileCamera
from .backends.opencv import OpenCVCamera
from .lighting import LightActuator

BACKENDS = ("opencv", "image_file")


def create_camera(
    camera_cfg: Union[CameraConfig, Dict[str, Any]],
    light_actuator: Optional[LightActuator] = None,
) -> Camera:
    """
    Create an (unopened) camera from a config dict or CameraConfig.

    Raises:
        ValueError: If the backend is unknown.
    """
    cfg = camera_cfg if isinstance(camera_cfg, CameraConfig) else CameraConfig.from_dict(camera_cfg)

    if cfg.backend == "image_file":
        return ImageFileCamera(cfg, light_actuator)
    if cfg.backend == "opencv":
        return OpenCVCamera(cfg, light_actuator)
    raise ValueError(f"Unknown camera backend {cfg.backend!r}, expected one of {BACKENDS}")
