"""
Light actuation around captures.

The actuator itself belongs to the machine; the camera only tells it when
light is needed. Requests are deduplicated: asking for the value that is
already actuated does nothing, so rapid successive captures do not make
the light blink.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from models.config import LightingConfig
from .errors import CaptureError

_UNSET = object()


class LightActuator(ABC):
    """Machine-side light actuator."""

    @abstractmethod
    def actuate(self, value: Any) -> None:
        """Drive the light to `value` (bool, brightness, ...)."""


class LightController:
    """Deduplicating before/after-capture light control for one camera."""

    def __init__(self, camera_name: str, actuator: Optional[LightActuator], config: LightingConfig):
        self._camera_name = camera_name
        self.actuator = actuator
        self.config = config
        self._last_value: Any = _UNSET
        self._lock = threading.Lock()

    def before_capture(self, light: Any = None) -> None:
        """Light up for a capture; None means the configured default on value."""
        value = self.config.on_value if light is None else light
        self._actuate(value)

    def after_capture(self) -> None:
        """Switch the light off if configured to; otherwise leave it for the next capture."""
        if self.config.off_after_capture:
            self._actuate(self.config.off_value)

    def reset(self) -> None:
        """Forget the last actuated value so the next request always actuates."""
        with self._lock:
            self._last_value = _UNSET

    def _actuate(self, value: Any) -> None:
        if self.actuator is None:
            return
        with self._lock:
            if self._last_value is not _UNSET and self._last_value == value:
                return
            try:
                self.actuator.actuate(value)
            except Exception as e:
                self._last_value = _UNSET
                raise CaptureError(self._camera_name, f"light actuation to {value!r} failed", e) from e
            self._last_value = value
        logging.debug(f"[{self._camera_name}] light actuated: {value!r}")
