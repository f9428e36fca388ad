from __future__ import annotations
"""
Feature extraction & matching helpers.

- FeatureExtractor(method='sift'|'orb'|'akaze') with .detect_and_compute(img)
- FLANN KNN matcher + Lowe ratio (KD-tree for float, LSH for binary descriptors)
- Side-by-side match visualization for debugging
"""

from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np

from common.types import Features
from vision.preprocess import to_gray_u8


# Descriptor width/dtype per method, used to shape empty results.
_DESCRIPTOR_LAYOUT = {
    "sift": (128, np.float32, "float"),
    "orb": (32, np.uint8, "binary"),
    "akaze": (61, np.uint8, "binary"),
}

FLANN_INDEX_KDTREE = 1
FLANN_INDEX_LSH = 6


# -----------------------------
# Extractors
# -----------------------------

@dataclass
class FeatureExtractor:
    method: str = "sift"
    nfeatures: int = 0

    def __post_init__(self):
        m = self.method.lower()
        if m not in _DESCRIPTOR_LAYOUT:
            raise ValueError(f"Unsupported method: {self.method}")
        self.method = m
        if m == "sift":
            self._det = cv2.SIFT_create(nfeatures=max(0, int(self.nfeatures)))
        elif m == "orb":
            self._det = cv2.ORB_create(nfeatures=int(self.nfeatures) or 2000)
        else:
            # AKAZE left the main opencv-python package in 5.x
            if not hasattr(cv2, "AKAZE_create"):
                raise ValueError(f"Unsupported method: {self.method} (not in this OpenCV build)")
            self._det = cv2.AKAZE_create()
        self.descriptor_size, self.descriptor_dtype, self.descriptor_kind = _DESCRIPTOR_LAYOUT[m]

    def empty_features(self) -> Features:
        return Features([], np.zeros((0, self.descriptor_size), dtype=self.descriptor_dtype))

    def detect_and_compute(self, image: Optional[np.ndarray], mask: Optional[np.ndarray] = None) -> Features:
        """
        Keypoints + aligned descriptors. Empty or textureless images give
        empty Features rather than an error.
        """
        if image is None or image.size == 0:
            return self.empty_features()
        gray = to_gray_u8(image)
        kps, des = self._det.detectAndCompute(gray, mask)
        if des is None or len(kps) == 0:
            return self.empty_features()
        return Features(list(kps), des)


# -----------------------------
# Matching
# -----------------------------

def _flann_for(kind: str) -> cv2.FlannBasedMatcher:
    if kind == "binary":
        index_params = dict(algorithm=FLANN_INDEX_LSH, table_number=6, key_size=12, multi_probe_level=1)
    else:
        index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=5)
    return cv2.FlannBasedMatcher(index_params, dict(checks=50))


def match_knn_ratio(
    des_model: Optional[np.ndarray],
    des_scene: Optional[np.ndarray],
    *,
    ratio: float = 0.75,
    kind: str = "float",
    enforce_uniqueness: bool = False,
) -> List[cv2.DMatch]:
    """
    FLANN KNN (k=2) + Lowe ratio test. queryIdx indexes the model, trainIdx
    the scene; output follows model descriptor order. Optionally keeps at
    most one match per scene descriptor.
    """
    if des_model is None or des_scene is None or len(des_model) == 0 or len(des_scene) < 2:
        return []
    if kind == "float":
        des_model = np.asarray(des_model, dtype=np.float32)
        des_scene = np.asarray(des_scene, dtype=np.float32)

    knn = _flann_for(kind).knnMatch(des_model, des_scene, k=2)
    good: List[cv2.DMatch] = []
    used_train = set()
    for pair in knn:
        # LSH may return fewer than two neighbours for a query
        if len(pair) < 2:
            continue
        m, n = pair[0], pair[1]
        if m.distance < ratio * n.distance:
            if not enforce_uniqueness or (m.trainIdx not in used_train):
                good.append(m)
                used_train.add(m.trainIdx)
    return good


# -----------------------------
# Debug/visualization helpers (optional)
# -----------------------------

def draw_matches(
    img_model: np.ndarray,
    img_scene: np.ndarray,
    model: Features,
    scene: Features,
    matches: List[cv2.DMatch],
    inlier_mask: Optional[np.ndarray] = None,
    max_draw: int = 100,
) -> np.ndarray:
    """
    Convenience wrapper over cv2.drawMatches with optional inlier highlighting.
    """
    kwargs = dict(
        matchColor=(0, 255, 0),
        singlePointColor=(255, 0, 0),
        flags=cv2.DrawMatchesFlags_NOT_DRAW_SINGLE_POINTS,
    )
    if inlier_mask is not None and len(inlier_mask) == len(matches):
        kwargs["matchesMask"] = [int(v) for v in inlier_mask.ravel()[:max_draw]]
    return cv2.drawMatches(
        img_model, model.keypoints, img_scene, scene.keypoints,
        matches[:max_draw], None, **kwargs
    )
