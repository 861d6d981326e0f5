"""
Camera abstraction.

A Camera wraps one capture device and adds what the machine needs on top
of raw frames:

- capture paths: raw, transformed (undistort/rotate/flip/crop), capture
  with before/after notifications, settle-then-capture, light-settle-capture
- units-per-pixel calibration, optionally as a function of Z
- location of the camera, with per-tool offset compensation
- continuous capture with fan-out to listeners (see broadcaster.py)

Backends only implement open(), close() and _read_device().
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Hashable, List, Optional, Tuple

import numpy as np

from models.config import CameraConfig
from models.frame import FrameData
from models.geometry import Length, Location
from .broadcaster import CaptureBroadcaster, FrameListener
from .calibration import CameraCalibration, ToolOffsets, ZValue
from .errors import CameraError, CaptureError
from .lighting import LightActuator, LightController
from .settle import settle
from .transforms import apply_transforms, transformed_size

CaptureHook = Callable[["Camera"], None]


class Looking(Enum):
    """Direction the camera is looking."""
    DOWN = "down"
    UP = "up"


class Camera(ABC):
    """
    Abstract base class for cameras.

    Lifecycle:
        1. Create instance with config
        2. Call open() to initialize the device
        3. Capture with capture(), settle_and_capture(), or continuous capture
        4. Call close() to stop continuous capture and release the device

    Can also be used as a context manager.
    """

    def __init__(self, config: CameraConfig, light_actuator: Optional[LightActuator] = None):
        self.config = config
        self.name = config.name
        self.looking = Looking(config.looking.lower())
        self.default_z = config.default_z
        self.safe_z = config.safe_z
        self.transform = config.transform
        self.settle_config = config.settle
        self.lights = LightController(self.name, light_actuator, config.lighting)
        self.auto_visible = False
        self.shown_in_multi_camera_view = True
        self._is_open = False
        self._frame_index = 0
        # Held for every device access. Backends reconnect from inside
        # _read_device(), so it must be reentrant.
        self._device_lock = threading.RLock()
        self._last_size: Optional[Tuple[int, int]] = None

        # Calibration and location are replaced wholesale, never mutated.
        self._config_lock = threading.Lock()
        self._calibration = CameraCalibration.from_config(config.calibration)
        self._tool_offsets = ToolOffsets(config.tool_offsets)
        self._location = config.location

        self._before_capture_hooks: List[CaptureHook] = []
        self._after_capture_hooks: List[CaptureHook] = []
        self._visibility_hooks: List[CaptureHook] = []
        self._broadcaster = CaptureBroadcaster(self, fps=config.fps)

    # ------------------------------------------------------------------
    # Device
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._is_open

    @abstractmethod
    def open(self) -> None:
        """
        Open the capture device.

        Raises:
            CaptureError: If the device cannot be opened.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the device. Safe to call multiple times."""

    @abstractmethod
    def _read_device(self) -> Optional[np.ndarray]:
        """Read one raw frame from the device; None if none is available."""

    def __enter__(self) -> "Camera":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop_all_continuous_capture()
        self.close()

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def capture_raw(self) -> FrameData:
        """
        The unmodified sensor frame.

        Raises:
            CaptureError: If the device is closed, unreachable, or returns nothing.
        """
        with self._device_lock:
            if not self._is_open:
                raise CaptureError(self.name, "camera is not open")
            try:
                frame = self._read_device()
            except CameraError:
                raise
            except Exception as e:
                raise CaptureError(self.name, str(e), e) from e
            if frame is None:
                raise CaptureError(self.name, "no frame from device")
            self._frame_index += 1
            index = self._frame_index
        return FrameData.from_numpy(frame, time.time(), frame_index=index, source=self.name)

    def capture_transformed(self) -> FrameData:
        """The raw frame with undistortion, rotation, flip and crop applied."""
        raw = self.capture_raw()
        frame = raw.frame if self.transform.is_identity else apply_transforms(raw.frame, self.transform)
        result = raw.with_frame(frame, transformed=True)
        self._last_size = result.size
        return result

    def capture(self) -> FrameData:
        """
        capture_transformed() wrapped in before/after capture notifications.

        Hook failures are capture failures.
        """
        self._fire(self._before_capture_hooks, "before-capture")
        try:
            return self.capture_transformed()
        finally:
            self._fire(self._after_capture_hooks, "after-capture")

    def settle_and_capture(self, cancel: Optional[threading.Event] = None) -> FrameData:
        """
        Settle, then capture().

        Raises:
            SettleTimeout: Settling did not converge (distinct from CaptureError).
            SettleCancelled: `cancel` was set while waiting.
            CaptureError: The capture itself failed.
        """
        settle(self.name, self.settle_config, self.capture_transformed, cancel)
        return self.capture()

    def light_settle_and_capture(
        self,
        light: Any = None,
        cancel: Optional[threading.Event] = None,
    ) -> FrameData:
        """Light (None = default light), settle and capture."""
        self.actuate_light_before_capture(light)
        try:
            return self.settle_and_capture(cancel)
        finally:
            self.actuate_light_after_capture()

    def actuate_light_before_capture(self, light: Any = None) -> None:
        self.lights.before_capture(light)

    def actuate_light_after_capture(self) -> None:
        self.lights.after_capture()

    def add_before_capture_hook(self, hook: CaptureHook) -> None:
        self._before_capture_hooks.append(hook)

    def add_after_capture_hook(self, hook: CaptureHook) -> None:
        self._after_capture_hooks.append(hook)

    def _fire(self, hooks: List[CaptureHook], event: str) -> None:
        for hook in list(hooks):
            try:
                hook(self)
            except Exception as e:
                raise CaptureError(self.name, f"{event} hook failed: {e}", e) from e

    @property
    def width(self) -> int:
        """Width of transformed images."""
        return self._size()[0]

    @property
    def height(self) -> int:
        """Height of transformed images."""
        return self._size()[1]

    def _size(self) -> Tuple[int, int]:
        if self._last_size is not None:
            return self._last_size
        w, h = self.config.resolution
        return transformed_size(int(w), int(h), self.transform)

    # ------------------------------------------------------------------
    # Continuous capture
    # ------------------------------------------------------------------

    @property
    def broadcaster(self) -> CaptureBroadcaster:
        return self._broadcaster

    def start_continuous_capture(self, listener: FrameListener) -> None:
        self._broadcaster.start_continuous_capture(listener)

    def stop_continuous_capture(self, listener: FrameListener) -> None:
        self._broadcaster.stop_continuous_capture(listener)

    def stop_all_continuous_capture(self) -> None:
        self._broadcaster.stop_all()

    def has_new_frame(self, consumer: Hashable) -> bool:
        """True if continuous capture produced a frame `consumer` has not consumed."""
        return self._broadcaster.has_new_frame(consumer)

    def consume_frame(self, consumer: Hashable) -> Optional[FrameData]:
        return self._broadcaster.consume_frame(consumer)

    def release_consumer(self, consumer: Hashable) -> None:
        self._broadcaster.release_consumer(consumer)

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    @property
    def calibration(self) -> CameraCalibration:
        return self._calibration

    def set_calibration(self, calibration: CameraCalibration) -> None:
        with self._config_lock:
            self._calibration = calibration
        logging.info(
            f"[{self.name}] calibration updated: flat={calibration.flat}, "
            f"z_calibrated={calibration.is_z_calibrated()}"
        )

    @property
    def units_per_pixel(self) -> Location:
        """Flat units per pixel; z is the height it was measured at."""
        return self._calibration.flat

    @units_per_pixel.setter
    def units_per_pixel(self, value: Location) -> None:
        with self._config_lock:
            self._calibration = self._calibration.with_flat(value)

    def is_units_per_pixel_at_z_calibrated(self) -> bool:
        return self._calibration.is_z_calibrated()

    def get_default_z(self) -> Length:
        return Length(self.default_z, self._location.units)

    def get_units_per_pixel(self, z: ZValue = None) -> Location:
        """
        Units per pixel for an object at height z. None means the default
        working plane. Uncalibrated cameras return the flat value for any z.
        """
        return self._calibration.units_per_pixel(z, self.get_default_z())

    def get_units_per_pixel_at_z(self) -> Location:
        """
        Units per pixel at the camera's current Z. A Z at or above safe Z
        means Z is not really set, so the flat value is returned.
        """
        calibration = self._calibration
        location = self._location
        if calibration.is_z_calibrated() and location.z < self.safe_z:
            return calibration.units_per_pixel(location.length_z())
        return calibration.flat

    # ------------------------------------------------------------------
    # Location
    # ------------------------------------------------------------------

    @property
    def location(self) -> Location:
        return self._location

    def set_location(self, location: Location) -> None:
        """Called by the motion side when the camera (or its head) moves."""
        self._location = location

    def get_location(self, tool: Any = None) -> Location:
        """Camera location compensated by `tool`'s offset; None gives the base location."""
        base = self._location
        if tool is None:
            return base
        return base.add(self._tool_offsets.offset_for(tool))

    @property
    def tool_offsets(self) -> ToolOffsets:
        return self._tool_offsets

    def get_tool_offset(self, tool: Any) -> Location:
        return self._tool_offsets.offset_for(tool)

    def set_tool_offset(self, tool: Any, offset: Optional[Location]) -> None:
        with self._config_lock:
            self._tool_offsets = self._tool_offsets.with_offset(tool, offset)

    # ------------------------------------------------------------------
    # Presentation hooks
    # ------------------------------------------------------------------

    def add_visibility_hook(self, hook: CaptureHook) -> None:
        self._visibility_hooks.append(hook)

    def ensure_camera_visible(self) -> None:
        """Ask whoever displays this camera to show it."""
        for hook in list(self._visibility_hooks):
            try:
                hook(self)
            except Exception as e:
                logging.warning(f"[{self.name}] visibility hook failed: {e}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
