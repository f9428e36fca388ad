from __future__ import annotations

"""
basicar: overlay a patch (image, second video or webcam) on a model image
found in a scene video, and record the result.

Examples:
  # Static patch, default parameters
  python -m basicar.app data/model.jpg data/scene.mp4 --patch data/patch.jpg

  # Second video as the overlay, custom config, no recording
  python -m basicar.app data/model.jpg data/scene.mp4 --video2 data/clip.mp4 \
      --config config/params.yaml --no-record

  # Webcam 0 as the overlay
  python -m basicar.app data/model.jpg data/scene.mp4 --index-cam 0
"""

import argparse
from typing import Any, Dict, List, Optional

from basicar.session import run_session
from capture.recorder import FrameRecorder
from capture.sources import VideoFrameSource, load_image, select_overlay
from common.config import load_config
from common.logging_setup import get_logger, setup_logging
from vision.pipeline import ARPipeline


log = get_logger("basicar")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="basicar", description="Planar AR overlay on a scene video")
    ap.add_argument("model", help="Path to the model image")
    ap.add_argument("video", help="Path to the scene video")
    ap.add_argument("--patch", help="Path to a patch image")
    ap.add_argument("--video2", help="Path to a second video used as the overlay")
    ap.add_argument("--index-cam", type=int, default=None, help="Webcam index used as the overlay")
    ap.add_argument("--config", default=None, help="YAML parameters (see config/params.yaml)")
    ap.add_argument("--output", default=None, help="Output video path (overrides output.path)")
    ap.add_argument("--no-record", action="store_true", help="Do not write an output video")
    ap.add_argument("--max-frames", type=int, default=None, help="Stop after N scene frames")
    ap.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides logging.level)")
    return ap


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    o: Dict[str, Any] = {}
    if args.output:
        o.setdefault("output", {})["path"] = args.output
    if args.no_record:
        o.setdefault("output", {})["record"] = False
    if args.log_level:
        o["logging"] = {"level": args.log_level}
    return o


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        P = load_config(args.config, _overrides(args))
    except (FileNotFoundError, ValueError) as e:
        setup_logging(args.log_level)
        log.error("Invalid configuration", extra={"extra": {"error": str(e)}})
        return 1
    setup_logging(P["logging"]["level"], force=True)

    if not (args.patch or args.video2 or args.index_cam is not None):
        log.error("No overlay given: use --patch, --video2 or --index-cam")
        return 1

    overlay = scene = None
    try:
        model = load_image(args.model)
        overlay = select_overlay(args.patch, args.video2, args.index_cam, loop=bool(P["overlay"]["loop"]))
        scene = VideoFrameSource(args.video, scale=float(P["processing"]["scene_scale"])).open()
        pipeline = ARPipeline.from_config(P, model)
    except (FileNotFoundError, RuntimeError, ValueError) as e:
        log.error("Startup failed", extra={"extra": {"error": str(e)}})
        if overlay is not None:
            overlay.close()
        if scene is not None:
            scene.release()
        return 1

    out = P["output"]
    recorder = FrameRecorder(out["path"], codec=str(out["codec"]), fps=float(out["fps"])) if out["record"] else None

    log.info("basicar started", extra={"extra": {
        "model": args.model,
        "video": args.video,
        "overlay": type(overlay).__name__,
        "record": recorder is not None,
    }})
    try:
        run_session(pipeline, scene.frames(), overlay, recorder, max_frames=args.max_frames)
    finally:
        overlay.close()
        scene.release()

    if recorder is not None:
        try:
            recorder.save()
        except RuntimeError as e:
            log.error("Recording failed", extra={"extra": {"error": str(e)}})
            return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
