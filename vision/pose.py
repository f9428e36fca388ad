from __future__ import annotations
"""
Planar pose of the model in a scene: RANSAC homography from matched
keypoints, projection of the model's bounding rectangle, and a sanity
check on the projected quadrilateral.
"""

from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import Pose, PoseStatus

log = get_logger("vision.pose")

MIN_CORRESPONDENCES = 4


def model_corners(width: float, height: float) -> np.ndarray:
    """Bounding rectangle of a (width x height) image: TL, TR, BR, BL as (4,1,2) float32."""
    w, h = float(width), float(height)
    return np.float32([[0.0, 0.0], [w, 0.0], [w, h], [0.0, h]]).reshape(-1, 1, 2)


def correspondences(
    kps_model: Sequence[cv2.KeyPoint],
    kps_scene: Sequence[cv2.KeyPoint],
    matches: List[cv2.DMatch],
) -> Tuple[np.ndarray, np.ndarray]:
    """Parallel (N,1,2) float32 point arrays: model points and their scene matches."""
    if not matches:
        empty = np.zeros((0, 1, 2), dtype=np.float32)
        return empty, empty.copy()
    pts_model = np.float32([kps_model[m.queryIdx].pt for m in matches]).reshape(-1, 1, 2)
    pts_scene = np.float32([kps_scene[m.trainIdx].pt for m in matches]).reshape(-1, 1, 2)
    return pts_model, pts_scene


def fit_homography(
    src: np.ndarray,
    dst: np.ndarray,
    ransac_px: float = 3.0,
    max_iters: int = 2000,
    confidence: float = 0.995,
) -> Tuple[Optional[np.ndarray], np.ndarray]:
    """
    Estimate H: src -> dst using RANSAC. Returns (H, inlier_mask), or
    (None, zeros) when there are too few points or the fit fails.
    """
    n = len(src)
    if n < MIN_CORRESPONDENCES or len(dst) != n:
        return None, np.zeros((n, 1), dtype=np.uint8)
    try:
        H, mask = cv2.findHomography(
            src, dst, cv2.RANSAC,
            ransacReprojThreshold=float(ransac_px),
            maxIters=int(max_iters),
            confidence=float(confidence),
        )
    except cv2.error as e:
        log.debug("findHomography failed", extra={"extra": {"n": n, "error": str(e).strip()[:200]}})
        return None, np.zeros((n, 1), dtype=np.uint8)
    if H is None or mask is None:
        return None, np.zeros((n, 1), dtype=np.uint8)
    return H, mask


def _reprojection_rmse(src: np.ndarray, dst: np.ndarray, H: np.ndarray, inliers: np.ndarray) -> float:
    if not inliers.any():
        return float("inf")
    proj = cv2.perspectiveTransform(src[inliers], H)
    err = np.linalg.norm(proj.reshape(-1, 2) - dst[inliers].reshape(-1, 2), axis=1)
    return float(np.sqrt(np.mean(err ** 2))) if err.size else float("inf")


def quad_is_usable(corners: np.ndarray, min_area_px: float = 16.0) -> Tuple[bool, str]:
    """
    A projected outline is usable when it is finite, convex (hence not
    self-intersecting) and encloses at least `min_area_px`.
    """
    quad = np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2)
    if quad.shape[0] != 4 or not np.all(np.isfinite(quad)):
        return False, "non-finite corners"
    if not cv2.isContourConvex(quad):
        return False, "projected outline is not convex"
    area = abs(float(cv2.contourArea(quad)))
    if area < float(min_area_px):
        return False, f"projected area {area:.1f}px below {min_area_px}"
    return True, ""


def estimate_pose(
    model_size: Tuple[int, int],
    kps_model: Sequence[cv2.KeyPoint],
    kps_scene: Sequence[cv2.KeyPoint],
    matches: List[cv2.DMatch],
    *,
    ransac_px: float = 3.0,
    max_iters: int = 2000,
    confidence: float = 0.995,
    min_inliers: int = MIN_CORRESPONDENCES,
    reject_nonconvex: bool = True,
    min_area_px: float = 16.0,
) -> Pose:
    """
    Locate the model in the scene.

    Args:
        model_size: (width, height) of the model image the keypoints came from
        kps_model, kps_scene: keypoints indexed by the matches' queryIdx/trainIdx
        matches: model->scene matches
        ransac_px: RANSAC inlier threshold (pixels)
        min_inliers: fewer RANSAC inliers than this -> INSUFFICIENT
        reject_nonconvex: mark fits whose projected outline is not a usable
            convex quadrilateral as DEGENERATE

    Returns:
        Pose tagged VALID, INSUFFICIENT or DEGENERATE. Never raises for bad
        geometry.
    """
    total = len(matches)
    if total < MIN_CORRESPONDENCES:
        return Pose.insufficient(total)

    pts_model, pts_scene = correspondences(kps_model, kps_scene, matches)
    H, mask = fit_homography(pts_model, pts_scene, ransac_px, max_iters, confidence)
    if H is None:
        return Pose(PoseStatus.DEGENERATE, total=total, reason="homography fit failed")
    if not np.all(np.isfinite(H)) or abs(float(np.linalg.det(H))) < 1e-12:
        return Pose(PoseStatus.DEGENERATE, total=total, reason="singular homography")

    inlier_mask = mask.ravel().astype(bool)
    ninl = int(inlier_mask.sum())
    rmse = _reprojection_rmse(pts_model, pts_scene, H, inlier_mask)
    corners = cv2.perspectiveTransform(model_corners(*model_size), H).reshape(4, 2)

    pose = Pose(PoseStatus.VALID, H=H, corners=corners, inliers=ninl, total=total, rmse_px=rmse)
    if ninl < max(MIN_CORRESPONDENCES, int(min_inliers)):
        pose.status = PoseStatus.INSUFFICIENT
        pose.reason = f"{ninl} inliers below {min_inliers}"
    elif reject_nonconvex:
        usable, why = quad_is_usable(corners, min_area_px)
        if not usable:
            pose.status = PoseStatus.DEGENERATE
            pose.reason = why
    return pose


def draw_contour(
    image: np.ndarray,
    corners: Optional[np.ndarray],
    color: Tuple[int, int, int] = (0, 255, 0),
    thickness: int = 4,
) -> np.ndarray:
    """Draw the closed 4-point outline in place; no-op for missing/non-finite corners."""
    if corners is None:
        return image
    pts = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    if pts.shape[0] != 4 or not np.all(np.isfinite(pts)):
        return image
    # clamp so wildly projected corners stay inside OpenCV's int range
    pts = np.clip(np.round(pts), -1e6, 1e6).astype(np.int32)
    for i in range(4):
        p0 = (int(pts[i][0]), int(pts[i][1]))
        p1 = (int(pts[(i + 1) % 4][0]), int(pts[(i + 1) % 4][1]))
        cv2.line(image, p0, p1, color, int(thickness))
    return image
