"""
Camera package.

Canonical imports:
- `from camera.camera import create_camera`
- `from camera.base import Camera, Looking`
- `from camera.calibration import CameraCalibration, ToolOffsets`
- `from camera.broadcaster import CaptureBroadcaster`
"""

from .base import Camera, Looking
from .broadcaster import CaptureBroadcaster
from .calibration import CameraCalibration, LinearZCurve, PolynomialZCurve, ToolOffsets
from .camera import create_camera
from .errors import CameraError, CaptureError, SettleCancelled, SettleTimeout
from .lighting import LightActuator

__all__ = [
    "Camera",
    "Looking",
    "CaptureBroadcaster",
    "CameraCalibration",
    "LinearZCurve",
    "PolynomialZCurve",
    "ToolOffsets",
    "create_camera",
    "CameraError",
    "CaptureError",
    "SettleCancelled",
    "SettleTimeout",
    "LightActuator",
]
