from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import cv2
import numpy as np

from common.logging_setup import get_logger

log = get_logger("capture.recorder")


class FrameRecorder:
    """
    Buffers composited frames in memory and writes them as one video once
    the frame loop is done.

    Frames are copied on append; all frames are written at the size of the
    first one.
    """

    def __init__(self, path: str, codec: str = "MJPG", fps: float = 30.0) -> None:
        if len(codec) != 4:
            raise ValueError(f"codec must be a FOURCC string, got {codec!r}")
        if fps <= 0:
            raise ValueError("fps must be > 0")
        self.path = Path(path)
        self.codec = codec
        self.fps = float(fps)
        self._frames: List[np.ndarray] = []

    def __len__(self) -> int:
        return len(self._frames)

    def append(self, image: np.ndarray) -> None:
        self._frames.append(np.array(image, copy=True))

    def save(self) -> Optional[Path]:
        """
        Write all buffered frames. Returns the output path, or None when
        nothing was recorded. Raises RuntimeError if the writer cannot open.
        """
        if not self._frames:
            log.warning("No frames recorded; skipping video output", extra={"extra": {"path": str(self.path)}})
            return None

        h, w = self._frames[0].shape[:2]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        writer = cv2.VideoWriter(
            str(self.path),
            cv2.VideoWriter_fourcc(*self.codec),
            self.fps,
            (w, h),
            True,
        )
        if not writer.isOpened():
            raise RuntimeError(f"Could not open the output video file for writing: {self.path}")
        try:
            for img in self._frames:
                if img.ndim == 2:
                    img = cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
                if img.shape[:2] != (h, w):
                    img = cv2.resize(img, (w, h), interpolation=cv2.INTER_AREA)
                writer.write(img)
        finally:
            writer.release()

        log.info("Video saved", extra={"extra": {"path": str(self.path), "frames": len(self._frames), "fps": self.fps}})
        return self.path
