"""
Camera error types.
"""

from __future__ import annotations

from typing import Optional


class CameraError(RuntimeError):
    """Base class for camera failures."""

    def __init__(self, camera_name: str, message: str):
        super().__init__(f"[{camera_name}] {message}")
        self.camera_name = camera_name


class CaptureError(CameraError):
    """The device is unreachable, timed out, or a capture hook failed."""

    def __init__(self, camera_name: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(camera_name, f"capture failed: {reason}")
        self.reason = reason
        self.cause = cause


class SettleTimeout(CameraError):
    """The image did not settle within the configured timeout."""

    def __init__(self, camera_name: str, timeout_s: float):
        super().__init__(camera_name, f"camera did not settle within {timeout_s:.3f}s")
        self.timeout_s = timeout_s


class SettleCancelled(CameraError):
    """The caller abandoned a settle wait."""

    def __init__(self, camera_name: str):
        super().__init__(camera_name, "settle cancelled")
