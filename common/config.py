from __future__ import annotations

"""
YAML configuration for the AR pipeline.

The file is optional: built-in defaults cover every key and a YAML file
only needs to name what it changes. Sections:

    logging:    level
    features:   method (sift|orb|akaze), nfeatures
    matching:   ratio, enforce_uniqueness
    pose:       ransac_px, max_iters, confidence, min_inliers,
                reject_nonconvex, min_area_px
    processing: model_scale, scene_scale
    draw:       outline, color (B,G,R), thickness
    overlay:    loop
    output:     path, codec, fps, record
"""

import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULTS: Dict[str, Any] = {
    "logging": {"level": "INFO"},
    "features": {"method": "sift", "nfeatures": 0},
    "matching": {"ratio": 0.75, "enforce_uniqueness": False},
    "pose": {
        "ransac_px": 3.0,
        "max_iters": 2000,
        "confidence": 0.995,
        "min_inliers": 4,
        "reject_nonconvex": True,
        "min_area_px": 16.0,
    },
    "processing": {"model_scale": 0.5, "scene_scale": 0.5},
    "draw": {"outline": True, "color": [0, 255, 0], "thickness": 4},
    "overlay": {"loop": True},
    "output": {"path": "data/output.avi", "codec": "MJPG", "fps": 30.0, "record": True},
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_yaml(path: str) -> Dict[str, Any]:
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config root must be a mapping: {path}")
    return data


def load_config(path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Defaults <- YAML file <- overrides (nested dicts, e.g. from CLI flags).

    An explicitly given path that does not exist raises FileNotFoundError.
    """
    cfg = copy.deepcopy(DEFAULTS)
    if path:
        if not Path(path).is_file():
            raise FileNotFoundError(f"Config not found: {path}")
        cfg = _deep_merge(cfg, _load_yaml(path))
    if overrides:
        cfg = _deep_merge(cfg, overrides)

    ratio = float(cfg["matching"]["ratio"])
    if not (0.0 < ratio <= 1.0):
        raise ValueError(f"matching.ratio must be in (0, 1], got {ratio}")
    for key in ("model_scale", "scene_scale"):
        if float(cfg["processing"][key]) <= 0.0:
            raise ValueError(f"processing.{key} must be > 0")
    return cfg
