from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Union

from capture.recorder import FrameRecorder
from capture.sources import StaticOverlay, StreamOverlay
from common.logging_setup import get_logger
from common.types import Frame, FrameResult
from common.utils import RateTimer, RunningStats
from vision.pipeline import ARPipeline

log = get_logger("basicar")


@dataclass(slots=True)
class SessionStats:
    frames: int = 0
    detections: int = 0
    composited: int = 0
    mean_matches: float = 0.0
    std_matches: float = 0.0
    mean_latency_ms: float = 0.0
    fps: float = 0.0

    @property
    def detection_rate(self) -> float:
        return self.detections / self.frames if self.frames else 0.0

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["detection_rate"] = round(self.detection_rate, 3)
        return d


def run_session(
    pipeline: ARPipeline,
    scene_frames: Iterable[Frame],
    overlay: Optional[Union[StaticOverlay, StreamOverlay]] = None,
    recorder: Optional[FrameRecorder] = None,
    *,
    max_frames: Optional[int] = None,
    on_frame: Optional[Callable[[FrameResult], Optional[bool]]] = None,
) -> SessionStats:
    """
    Blocking frame loop: one scene frame in, one composited frame out.

    Stops at end of stream, after `max_frames`, or when `on_frame` returns
    False. Frames where the model is not found are recorded unmodified.
    """
    stats = SessionStats()
    matches = RunningStats()
    latency = RunningStats()
    rt = RateTimer()

    for frame in scene_frames:
        if max_frames is not None and stats.frames >= max_frames:
            break
        patch = overlay.read() if overlay is not None else None
        result = pipeline.process(frame.image, patch)

        stats.frames += 1
        stats.detections += int(result.pose.ok)
        stats.composited += int(result.composited)
        matches.add(result.n_matches)
        latency.add(result.latency_ms)
        stats.fps = rt.tick()

        if not result.pose.ok:
            meta = frame.to_meta()
            meta["reason"] = result.pose.reason
            log.debug("model not found", extra={"extra": meta})
        if recorder is not None:
            recorder.append(result.image)
        if on_frame is not None and on_frame(result) is False:
            log.info("Stopped by caller", extra={"extra": {"frames": stats.frames}})
            break

    stats.mean_matches = round(matches.mean, 2)
    stats.std_matches = round(matches.std, 2)
    stats.mean_latency_ms = round(latency.mean, 2)
    log.info("Session finished", extra={"extra": stats.to_dict()})
    return stats
