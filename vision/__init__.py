"""
Vision core: locate a planar model in scene frames and composite an overlay

This package provides:
- SIFT/ORB/AKAZE feature extraction and FLANN matching with Lowe's ratio test
- RANSAC homography + projected model outline, returned as a tagged Pose
- Perspective warping of an overlay and mask-based compositing
- ARPipeline: cached model features + a per-frame `process(scene, overlay)`
"""
from .compositor import composite
from .features import FeatureExtractor, match_knn_ratio
from .pipeline import ARPipeline
from .pose import estimate_pose

__all__ = ["ARPipeline", "FeatureExtractor", "composite", "estimate_pose", "match_knn_ratio"]
