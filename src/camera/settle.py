"""
Camera settling.

After the machine moves, the image keeps shaking for a moment. Settling
waits that out before the real capture is taken:

- "fixed": wait a configured time.
- "motion": grab frames until two consecutive ones differ by less than a
  threshold (mean absolute pixel difference), or fail with SettleTimeout.

Every wait goes through a threading.Event so callers can abandon it; an
abandoned settle raises SettleCancelled and leaves no camera state behind.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

import cv2

from models.config import SettleConfig
from models.frame import FrameData
from .errors import SettleCancelled, SettleTimeout
from .transforms import mean_abs_difference

SETTLE_METHODS = ("none", "fixed", "motion")


def settle(
    camera_name: str,
    cfg: SettleConfig,
    grab: Callable[[], FrameData],
    cancel: Optional[threading.Event] = None,
) -> Optional[FrameData]:
    """
    Wait for the camera to settle.

    Args:
        camera_name: For errors and logs.
        cfg: Settle configuration.
        grab: Captures one frame (used by the motion method).
        cancel: Set by the caller to abandon the wait.

    Returns:
        The last settled frame for the motion method, else None.

    Raises:
        SettleTimeout: Motion settle did not converge within timeout_ms.
        SettleCancelled: `cancel` was set while waiting.
    """
    cancel = cancel or threading.Event()
    method = (cfg.method or "none").lower()

    if method == "none":
        return None

    if method == "fixed":
        if cancel.wait(cfg.time_ms / 1000.0):
            raise SettleCancelled(camera_name)
        return None

    if method == "motion":
        return _settle_motion(camera_name, cfg, grab, cancel)

    raise ValueError(f"Unknown settle method {cfg.method!r}, expected one of {SETTLE_METHODS}")


def _settle_motion(
    camera_name: str,
    cfg: SettleConfig,
    grab: Callable[[], FrameData],
    cancel: threading.Event,
) -> FrameData:
    timeout_s = cfg.timeout_ms / 1000.0
    deadline = time.monotonic() + timeout_s
    previous = None
    attempts = 0
    while True:
        if cancel.is_set():
            raise SettleCancelled(camera_name)
        frame_data = grab()
        gray = _to_gray(frame_data.frame)
        attempts += 1
        diff = mean_abs_difference(gray, previous)
        if diff <= cfg.threshold:
            logging.debug(f"[{camera_name}] settled after {attempts} frames (diff={diff:.2f})")
            return frame_data
        previous = gray
        if time.monotonic() >= deadline:
            raise SettleTimeout(camera_name, timeout_s)
        if cfg.poll_ms > 0 and cancel.wait(cfg.poll_ms / 1000.0):
            raise SettleCancelled(camera_name)


def _to_gray(frame):
    if frame.ndim == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame
