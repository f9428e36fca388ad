from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import numpy as np

from common.logging_setup import get_logger
from common.types import Features, FrameResult
from common.utils import parse_color
from vision.compositor import composite
from vision.features import FeatureExtractor, match_knn_ratio
from vision.pose import draw_contour, estimate_pose
from vision.preprocess import rescale, resize_to, to_bgr_u8


log = get_logger("vision.pipeline")


class ARPipeline:
    """
    Locates a fixed model image in scene frames and pastes an overlay onto it.

    The model is scaled and its features are extracted once, at construction.
    `process` is a per-frame step with no hidden state: it reads the scene,
    never mutates it, and returns a new composited image.
    """

    def __init__(
        self,
        model_image: np.ndarray,
        extractor: Optional[FeatureExtractor] = None,
        *,
        model_scale: float = 0.5,
        ratio: float = 0.75,
        enforce_uniqueness: bool = False,
        pose_params: Optional[Dict[str, Any]] = None,
        draw_outline: bool = True,
        outline_color: Tuple[int, int, int] = (0, 255, 0),
        outline_thickness: int = 4,
    ) -> None:
        if model_image is None or model_image.size == 0:
            raise ValueError("model image is empty")
        self.extractor = extractor or FeatureExtractor()
        self.ratio = float(ratio)
        self.enforce_uniqueness = bool(enforce_uniqueness)
        self.pose_params = dict(pose_params or {})
        self.draw_outline = bool(draw_outline)
        self.outline_color = tuple(outline_color)
        self.outline_thickness = int(outline_thickness)

        self.model_image = to_bgr_u8(rescale(model_image, model_scale)).copy()
        self.model_features: Features = self.extractor.detect_and_compute(self.model_image)
        if self.model_features.empty:
            log.warning("No features found in model image; nothing will be detected",
                        extra={"extra": {"model_size": self.model_size}})
        else:
            log.info("Model features ready", extra={"extra": {
                "model_size": self.model_size,
                "keypoints": len(self.model_features),
                "method": self.extractor.method,
            }})

    @classmethod
    def from_config(cls, cfg: Dict[str, Any], model_image: np.ndarray) -> "ARPipeline":
        feat = cfg["features"]
        pose = cfg["pose"]
        draw = cfg["draw"]
        return cls(
            model_image,
            FeatureExtractor(method=str(feat["method"]), nfeatures=int(feat["nfeatures"])),
            model_scale=float(cfg["processing"]["model_scale"]),
            ratio=float(cfg["matching"]["ratio"]),
            enforce_uniqueness=bool(cfg["matching"]["enforce_uniqueness"]),
            pose_params={
                "ransac_px": float(pose["ransac_px"]),
                "max_iters": int(pose["max_iters"]),
                "confidence": float(pose["confidence"]),
                "min_inliers": int(pose["min_inliers"]),
                "reject_nonconvex": bool(pose["reject_nonconvex"]),
                "min_area_px": float(pose["min_area_px"]),
            },
            draw_outline=bool(draw["outline"]),
            outline_color=parse_color(draw["color"]),
            outline_thickness=int(draw["thickness"]),
        )

    @property
    def model_size(self) -> Tuple[int, int]:
        """(width, height) of the scaled model; the homography's source plane."""
        return (int(self.model_image.shape[1]), int(self.model_image.shape[0]))

    def process(self, scene: np.ndarray, overlay: Optional[np.ndarray] = None) -> FrameResult:
        """
        One frame: extract -> match -> estimate -> composite (valid poses only).

        The overlay is stretched to the model size before warping so that it
        lands exactly on the detected outline.
        """
        t0 = time.perf_counter()
        out = to_bgr_u8(scene).copy()

        scene_feats = self.extractor.detect_and_compute(out)
        matches = match_knn_ratio(
            self.model_features.descriptors,
            scene_feats.descriptors,
            ratio=self.ratio,
            kind=self.extractor.descriptor_kind,
            enforce_uniqueness=self.enforce_uniqueness,
        )
        pose = estimate_pose(
            self.model_size,
            self.model_features.keypoints,
            scene_feats.keypoints,
            matches,
            **self.pose_params,
        )

        composited = False
        if pose.ok and overlay is not None and overlay.size > 0:
            patch = resize_to(overlay, self.model_size)
            composite(out, patch, pose.H, out=out)
            composited = True
        if pose.ok and self.draw_outline:
            draw_contour(out, pose.corners, self.outline_color, self.outline_thickness)

        result = FrameResult(
            image=out,
            pose=pose,
            n_keypoints=len(scene_feats),
            n_matches=len(matches),
            composited=composited,
            latency_ms=(time.perf_counter() - t0) * 1e3,
        )
        log.debug("frame processed", extra={"extra": result.to_meta()})
        return result
