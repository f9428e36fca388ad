from __future__ import annotations
"""
Small image conversions shared by the extractor, compositor and sources.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from common.utils import scaled_size


def to_gray_u8(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        g = img
    elif img.shape[2] == 4:
        g = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    else:
        g = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    if g.dtype != np.uint8:
        g = np.clip(g, 0, 255).astype(np.uint8)
    return g


def to_bgr_u8(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        out = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    elif img.shape[2] == 4:
        out = cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    else:
        out = img
    if out.dtype != np.uint8:
        out = np.clip(out, 0, 255).astype(np.uint8)
    return out


def resize_to(img: np.ndarray, size: Tuple[int, int]) -> np.ndarray:
    """Resize to (w, h); returns the input unchanged when already that size."""
    w, h = int(size[0]), int(size[1])
    if img.shape[1] == w and img.shape[0] == h:
        return img
    shrinking = w * h < img.shape[0] * img.shape[1]
    return cv2.resize(img, (w, h), interpolation=cv2.INTER_AREA if shrinking else cv2.INTER_LINEAR)


def rescale(img: np.ndarray, scale: Optional[float]) -> np.ndarray:
    if not scale or scale == 1.0:
        return img
    h, w = img.shape[:2]
    return resize_to(img, scaled_size((w, h), scale))
