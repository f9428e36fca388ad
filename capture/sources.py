from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Union

import cv2
import numpy as np

from common.logging_setup import get_logger
from common.types import Frame
from vision.preprocess import rescale

log = get_logger("capture")


def load_image(path: str) -> np.ndarray:
    """Read a color image; raises FileNotFoundError when it cannot be decoded."""
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None or img.size == 0:
        raise FileNotFoundError(f"Failed to load image: {path}")
    return img


@dataclass
class VideoFrameSource:
    """
    Replay frames from a video file.

    Args:
        path: path to video file
        scale: resize factor applied to every frame (None keeps native size)
        loop: restart when reaching EOF
        source_id: tag stamped on emitted frames
    """
    path: str
    scale: Optional[float] = None
    loop: bool = False
    source_id: str = "scene"
    _cap: Optional[cv2.VideoCapture] = field(default=None, init=False, repr=False)

    def open(self) -> "VideoFrameSource":
        if self._cap is not None:
            return self
        if not Path(self.path).exists():
            raise FileNotFoundError(f"Video not found: {self.path}")
        cap = cv2.VideoCapture(str(self.path))
        if not cap.isOpened():
            raise RuntimeError(f"Cannot open video: {self.path}")
        self._cap = cap
        return self

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def frames(self) -> Iterator[Frame]:
        cap = self.open()._cap
        n = 0
        rewound = False
        try:
            while True:
                ok, img = cap.read()
                if not ok or img is None:
                    # a loop restart that yields nothing means the file has no frames
                    if self.loop and n > 0 and not rewound:
                        cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
                        rewound = True
                        continue
                    break
                rewound = False
                img = rescale(img, self.scale)
                yield Frame.from_image(img, source_id=self.source_id, index=n)
                n += 1
        finally:
            self.release()


@dataclass
class WebcamSource:
    """
    Live frames from a capture device.

    Args:
        index: device index (e.g., 0)
        scale: resize factor applied to every frame
    """
    index: int = 0
    scale: Optional[float] = None
    source_id: str = "webcam"
    _cap: Optional[cv2.VideoCapture] = field(default=None, init=False, repr=False)

    def open(self) -> "WebcamSource":
        if self._cap is not None:
            return self
        cap = cv2.VideoCapture(int(self.index))
        if not cap.isOpened():
            raise RuntimeError(f"Failed to open camera {self.index}; check that it is connected")
        self._cap = cap
        return self

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def frames(self) -> Iterator[Frame]:
        cap = self.open()._cap
        n = 0
        try:
            while True:
                ok, img = cap.read()
                if not ok or img is None:
                    log.warning("Camera stopped delivering frames", extra={"extra": {"index": self.index, "frames": n}})
                    break
                img = rescale(img, self.scale)
                yield Frame.from_image(img, source_id=self.source_id, index=n)
                n += 1
        finally:
            self.release()


# -----------------------------
# Overlay sources
# -----------------------------

class StaticOverlay:
    """The same patch image for every frame."""

    def __init__(self, image: np.ndarray) -> None:
        if image is None or image.size == 0:
            raise ValueError("overlay image is empty")
        self.image = image

    def read(self) -> Optional[np.ndarray]:
        return self.image

    def close(self) -> None:
        pass


class StreamOverlay:
    """Next frame of a second stream per call; None once the stream has ended."""

    def __init__(self, source: Union[VideoFrameSource, WebcamSource]) -> None:
        self.source = source.open()
        self._it: Optional[Iterator[Frame]] = None
        self.exhausted = False

    def read(self) -> Optional[np.ndarray]:
        if self.exhausted:
            return None
        if self._it is None:
            self._it = self.source.frames()
        frame = next(self._it, None)
        if frame is None:
            self.exhausted = True
            log.info("Overlay stream ended", extra={"extra": {"source": self.source.source_id}})
            return None
        return frame.image

    def close(self) -> None:
        if self._it is not None:
            self._it.close()
        self.source.release()


def select_overlay(
    patch: Optional[str] = None,
    video2: Optional[str] = None,
    webcam: Optional[int] = None,
    *,
    loop: bool = True,
) -> Union[StaticOverlay, StreamOverlay]:
    """
    Pick the overlay source. A second video wins over a webcam, and either
    wins over a static patch.
    """
    if video2:
        return StreamOverlay(VideoFrameSource(video2, loop=loop, source_id="video2"))
    if webcam is not None:
        return StreamOverlay(WebcamSource(int(webcam), source_id="webcam"))
    if patch:
        return StaticOverlay(load_image(patch))
    raise ValueError("No overlay source: give a patch image, a second video or a webcam index")
