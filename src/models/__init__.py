"""
Typed models for the pick-and-place vision subsystem.

These are plain dataclasses shared by the camera and pipeline layers.
Use the from_dict/to_dict adapters to convert from YAML config dicts.
"""

from .frame import FrameData
from .geometry import Length, LengthUnit, Location
from .results import Circle, NamedResult, ResultKind, RotatedRect
from .config import (
    Config,
    CameraConfig,
    TransformConfig,
    CalibrationConfig,
    SettleConfig,
    LightingConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Geometry
    "Length",
    "LengthUnit",
    "Location",
    # Results
    "NamedResult",
    "ResultKind",
    "Circle",
    "RotatedRect",
    # Config
    "Config",
    "CameraConfig",
    "TransformConfig",
    "CalibrationConfig",
    "SettleConfig",
    "LightingConfig",
]
