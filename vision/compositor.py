from __future__ import annotations
"""
Warp an overlay through a homography and paste it over the scene wherever
the warped overlay is non-black.
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from common.utils import to_numpy_3x3
from vision.preprocess import to_bgr_u8, to_gray_u8


def warp_image(src: np.ndarray, H, size: Tuple[int, int]) -> np.ndarray:
    """
    Warp `src` into a (width, height) canvas. Pixels not covered by the
    warped source are black.
    """
    M = to_numpy_3x3(H)
    w, h = int(size[0]), int(size[1])
    return cv2.warpPerspective(src, M, (w, h), flags=cv2.INTER_LINEAR,
                               borderMode=cv2.BORDER_CONSTANT, borderValue=0)


def overlay_mask(warped: np.ndarray) -> np.ndarray:
    """
    Binary mask (uint8 0/255) of a warped overlay: any pixel whose gray
    intensity is above zero counts as covered.
    """
    gray = to_gray_u8(warped)
    _, mask = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY)
    return mask


def composite(
    scene: np.ndarray,
    overlay: np.ndarray,
    H,
    out: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Paste `overlay`, warped by H (overlay coords -> scene coords), onto a
    copy of `scene`.

    Args:
        scene: destination image (BGR or gray uint8); never modified
        overlay: image to project; gray overlays are promoted to the
            scene's channel count
        H: 3x3 homography; malformed matrices raise ValueError
        out: optional preallocated output with the scene's shape/dtype

    Returns:
        The output image (`out` when given).
    """
    if scene is None or scene.size == 0:
        raise ValueError("scene is empty")
    if overlay is None or overlay.size == 0:
        raise ValueError("overlay is empty")
    if not (scene.ndim == 2 or (scene.ndim == 3 and scene.shape[2] == 3)):
        raise ValueError(f"scene must be gray or BGR, got shape {scene.shape}")
    M = to_numpy_3x3(H)

    if scene.ndim == 3:
        overlay = to_bgr_u8(overlay)
    else:
        overlay = to_gray_u8(overlay)

    h, w = scene.shape[:2]
    warped = warp_image(overlay, M, (w, h))
    mask = overlay_mask(warped)

    if out is None:
        out = scene.copy()
    else:
        if out.shape != scene.shape or out.dtype != scene.dtype:
            raise ValueError("out must match the scene's shape and dtype")
        np.copyto(out, scene)
    covered = mask > 0
    out[covered] = warped[covered]
    return out
