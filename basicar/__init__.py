"""
basicar: planar augmented-reality demo

Finds a model image in every frame of a scene video and pastes a patch
image (or frames of a second video / webcam) onto it.

Entry point:
    python -m basicar.app model.jpg scene.mp4 --patch patch.jpg --config config/params.yaml
"""
from .session import SessionStats, run_session

__all__ = ["SessionStats", "run_session"]
