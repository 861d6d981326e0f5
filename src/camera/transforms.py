"""
Post-capture image transforms (undistort, rotate, flip, crop, channel swap).
"""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from models.config import TransformConfig


def apply_transforms(frame: np.ndarray, cfg: TransformConfig) -> np.ndarray:
    """
    Apply the configured transforms to a raw frame.

    Deterministic given the frame and the config; never modifies `frame`.
    """
    if cfg.camera_matrix is not None:
        matrix = np.asarray(cfg.camera_matrix, dtype=np.float64)
        dist = np.asarray(cfg.distortion if cfg.distortion is not None else [], dtype=np.float64)
        frame = cv2.undistort(frame, matrix, dist)

    # Rotation
    if cfg.rotate == 90:
        frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
    elif cfg.rotate == 180:
        frame = cv2.rotate(frame, cv2.ROTATE_180)
    elif cfg.rotate == 270:
        frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)

    # Flip
    if cfg.flip_horizontal or cfg.flip_vertical:
        if cfg.flip_horizontal and cfg.flip_vertical:
            flip_code = -1
        elif cfg.flip_horizontal:
            flip_code = 1
        else:
            flip_code = 0
        frame = cv2.flip(frame, flip_code)

    if cfg.crop is not None:
        frame = crop(frame, cfg.crop)

    # Color channel swap (RGB <-> BGR)
    if cfg.swap_rb and frame.ndim == 3:
        frame = frame[..., ::-1]

    return np.ascontiguousarray(frame)


def crop(frame: np.ndarray, rect: Tuple[int, int, int, int]) -> np.ndarray:
    """Crop to (x, y, width, height), clamped to the frame bounds."""
    x, y, w, h = (int(v) for v in rect)
    fh, fw = frame.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(fw, x + w), min(fh, y + h)
    if x1 <= x0 or y1 <= y0:
        raise ValueError(f"crop {rect} lies outside the {fw}x{fh} frame")
    return frame[y0:y1, x0:x1].copy()


def transformed_size(width: int, height: int, cfg: TransformConfig) -> Tuple[int, int]:
    """Size of a transformed frame given the raw size, without capturing."""
    if cfg.rotate in (90, 270):
        width, height = height, width
    if cfg.crop is not None:
        x, y, w, h = cfg.crop
        width = max(0, min(width, x + w) - max(0, x))
        height = max(0, min(height, y + h) - max(0, y))
    return width, height


def mean_abs_difference(a: np.ndarray, b: Optional[np.ndarray]) -> float:
    """Mean absolute per-pixel difference; infinite when shapes differ."""
    if b is None or a.shape != b.shape:
        return float("inf")
    return float(np.mean(cv2.absdiff(a, b)))
