from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from common.utils import iso_now_ms


IsoTime = str


@dataclass(slots=True)
class Frame:
    """
    A single decoded image from a scene or overlay stream.

    Attributes:
        ts: ISO-8601 (UTC) timestamp string.
        width, height: image dimensions in pixels.
        image: np.ndarray of shape (H,W) or (H,W,3), dtype uint8 (BGR).
        source_id: logical ID of the producing source.
        index: frame number within its source.
    """
    ts: IsoTime
    width: int
    height: int
    image: np.ndarray
    source_id: str = "scene"
    index: int = 0

    def __post_init__(self) -> None:
        if not isinstance(self.image, np.ndarray):
            raise TypeError("image must be a numpy ndarray")
        if self.image.ndim not in (2, 3):
            raise ValueError("image must be 2D (gray) or 3D (BGR)")
        if self.image.shape[0] != self.height or self.image.shape[1] != self.width:
            raise ValueError("width/height do not match image shape")
        if self.image.dtype != np.uint8:
            self.image = np.clip(self.image, 0, 255).astype(np.uint8)

    @classmethod
    def from_image(cls, image: np.ndarray, source_id: str = "scene", index: int = 0) -> "Frame":
        h, w = image.shape[:2]
        return cls(ts=iso_now_ms(), width=w, height=h, image=image, source_id=source_id, index=index)

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), the order OpenCV expects for dsize."""
        return (self.width, self.height)

    def to_meta(self) -> Dict[str, Any]:
        """Metadata without pixels (safe to log/serialize)."""
        return {
            "ts": self.ts,
            "width": self.width,
            "height": self.height,
            "channels": None if self.image.ndim == 2 else self.image.shape[2],
            "source_id": self.source_id,
            "index": self.index,
        }


@dataclass
class Features:
    """Keypoints and their row-aligned descriptor matrix for one image."""
    keypoints: List[cv2.KeyPoint]
    descriptors: np.ndarray

    def __post_init__(self) -> None:
        self.keypoints = list(self.keypoints)
        if self.descriptors.ndim != 2:
            raise ValueError("descriptors must be a 2D (N, D) array")
        if len(self.keypoints) != self.descriptors.shape[0]:
            raise ValueError("keypoints and descriptors are not aligned")

    def __len__(self) -> int:
        return len(self.keypoints)

    @property
    def empty(self) -> bool:
        return len(self.keypoints) == 0


class PoseStatus(str, Enum):
    VALID = "valid"
    INSUFFICIENT = "insufficient"
    DEGENERATE = "degenerate"


@dataclass
class Pose:
    """
    Outcome of locating the model in one scene.

    Only VALID poses may be used for compositing. DEGENERATE poses keep
    their H/corners (when a fit existed) so callers can inspect them.
    """
    status: PoseStatus
    H: Optional[np.ndarray] = field(default=None, repr=False)
    corners: Optional[np.ndarray] = None   # (4, 2) float32: TL, TR, BR, BL
    inliers: int = 0
    total: int = 0
    rmse_px: float = float("inf")
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.status is PoseStatus.VALID

    @classmethod
    def insufficient(cls, total: int, reason: str = "too few matches") -> "Pose":
        return cls(PoseStatus.INSUFFICIENT, total=total, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "inliers": self.inliers,
            "total": self.total,
            "rmse_px": None if not np.isfinite(self.rmse_px) else round(float(self.rmse_px), 3),
            "corners": None if self.corners is None else np.round(self.corners, 2).tolist(),
            "reason": self.reason or None,
        }


@dataclass
class FrameResult:
    """Output of one pipeline step."""
    image: np.ndarray
    pose: Pose
    n_keypoints: int
    n_matches: int
    composited: bool
    latency_ms: float

    def to_meta(self) -> Dict[str, Any]:
        d = self.pose.to_dict()
        d.update(
            keypoints=self.n_keypoints,
            matches=self.n_matches,
            composited=self.composited,
            latency_ms=round(self.latency_ms, 2),
        )
        return d
