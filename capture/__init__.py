"""
Capture: frame sources and output recording

Provides:
- Scene sources:
    - VideoFrameSource: replay frames from a video file
    - WebcamSource: live frames from a capture device
- Overlay sources (select_overlay picks one):
    - StaticOverlay: a single patch image
    - StreamOverlay: frames of a second video or a webcam
- FrameRecorder: buffer composited frames and write them as a video

Usage examples:
    from capture.sources import VideoFrameSource, select_overlay
    from capture.recorder import FrameRecorder
"""
