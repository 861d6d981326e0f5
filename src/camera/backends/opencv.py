"""
OpenCV camera backend.

Supports:
- USB cameras (device_id as int, e.g. 0)
- RTSP/IP cameras (device_id as str URL, e.g. "rtsp://...")
- Video files (device_id as a file path; useful for replaying a recorded job)
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional, Union

import cv2
import numpy as np

from models.config import CameraConfig
from ..base import Camera
from ..errors import CaptureError
from ..lighting import LightActuator


class OpenCVCamera(Camera):
    """
    Camera backed by cv2.VideoCapture.

    Opening retries with exponential backoff; a failed read triggers a
    reconnect attempt before the capture is reported as failed.
    """

    def __init__(
        self,
        config: CameraConfig,
        light_actuator: Optional[LightActuator] = None,
        buffer_size: int = 1,
        warmup_s: float = 0.5,
    ):
        super().__init__(config, light_actuator)
        self.buffer_size = buffer_size
        self.warmup_s = warmup_s
        self._cap: Optional[cv2.VideoCapture] = None
        self._consecutive_failures = 0

    @property
    def device_id(self) -> Union[int, str]:
        return self.config.device_id

    @property
    def is_rtsp(self) -> bool:
        return isinstance(self.device_id, str) and self.device_id.startswith(("rtsp://", "rtsps://"))

    def open(self) -> None:
        with self._device_lock:
            if self._is_open:
                return
            self._initialize(retry_count=0)
            self._is_open = True
        logging.info(
            f"[{self.name}] camera opened (backend=opencv, device={self.device_id}, "
            f"resolution={self.config.resolution}, fps={self.config.fps})"
        )

    def _initialize(self, retry_count: int = 0) -> None:
        """Initialize or reinitialize the capture device."""
        with self._device_lock:
            self._connect(retry_count)

    def _connect(self, retry_count: int) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

        max_retries = max(1, self.config.max_retries)
        if retry_count > 0:
            wait_time = min(2 ** retry_count, 10)
            logging.info(
                f"[{self.name}] retrying initialization (attempt {retry_count + 1}/{max_retries}) "
                f"after {wait_time}s"
            )
            time.sleep(wait_time)

        if self.is_rtsp:
            os.environ["OPENCV_FFMPEG_CAPTURE_OPTIONS"] = f"rtsp_transport;{self.config.rtsp_transport}"

        self._cap = cv2.VideoCapture(self.device_id)

        if not self._cap.isOpened():
            if retry_count < max_retries - 1:
                logging.warning(f"[{self.name}] failed to open device {self.device_id}, retrying...")
                return self._connect(retry_count + 1)
            raise CaptureError(
                self.name,
                f"failed to open device {self.device_id} after {max_retries} attempts",
            )

        # Only USB cameras accept resolution/fps requests
        if isinstance(self.device_id, int):
            w, h = self.config.resolution
            self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
            self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
            self._cap.set(cv2.CAP_PROP_FPS, self.config.fps)
            self._cap.set(cv2.CAP_PROP_BUFFERSIZE, self.buffer_size)
            logging.info(
                f"[{self.name}] actual settings - resolution: "
                f"({self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)}x{self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)}), "
                f"fps: {self._cap.get(cv2.CAP_PROP_FPS)}"
            )

        if self.warmup_s > 0:
            time.sleep(self.warmup_s)
        self._consecutive_failures = 0

    def _read_device(self) -> Optional[np.ndarray]:
        if self._cap is None or not self._cap.isOpened():
            logging.warning(f"[{self.name}] capture not opened, attempting to reinitialize")
            self._initialize()

        ret, frame = self._cap.read()
        if ret and frame is not None:
            self._consecutive_failures = 0
            return frame

        self._consecutive_failures += 1
        if self._consecutive_failures > 3:
            raise CaptureError(self.name, f"{self._consecutive_failures} consecutive read failures")

        logging.warning(
            f"[{self.name}] failed to read frame (failures: {self._consecutive_failures}), reinitializing..."
        )
        self._initialize()
        ret, frame = self._cap.read()
        if not ret or frame is None:
            return None
        self._consecutive_failures = 0
        return frame

    def close(self) -> None:
        with self._device_lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None
            if self._is_open:
                logging.info(f"[{self.name}] camera closed")
            self._is_open = False
