"""
Unit tests for configuration, logging, shared types and utils
"""

import json
import logging
import pytest
import numpy as np
import cv2
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from common.config import DEFAULTS, load_config
from common.logging_setup import JsonFormatter
from common.types import Features, Frame, Pose, PoseStatus, FrameResult
from common.utils import RunningStats, parse_color, scaled_size, to_numpy_3x3


class TestConfig:
    """Test cases for load_config"""

    def test_defaults(self):
        cfg = load_config()
        assert cfg == DEFAULTS
        assert cfg is not DEFAULTS
        assert cfg["matching"]["ratio"] == 0.75

    def test_yaml_merges_over_defaults(self, tmp_path):
        """Only the keys in the file change"""
        path = tmp_path / "params.yaml"
        path.write_text("features:\n  method: orb\npose:\n  ransac_px: 5.0\n")
        cfg = load_config(str(path))
        assert cfg["features"]["method"] == "orb"
        assert cfg["features"]["nfeatures"] == 0
        assert cfg["pose"]["ransac_px"] == 5.0
        assert cfg["pose"]["max_iters"] == 2000

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "params.yaml"
        path.write_text("output:\n  path: a.avi\n")
        cfg = load_config(str(path), {"output": {"path": "b.avi"}})
        assert cfg["output"]["path"] == "b.avi"
        assert cfg["output"]["codec"] == "MJPG"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(str(path)) == DEFAULTS

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"))

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config(str(path))

    @pytest.mark.parametrize("ratio", [0.0, 1.5])
    def test_bad_ratio(self, ratio):
        with pytest.raises(ValueError, match="ratio"):
            load_config(overrides={"matching": {"ratio": ratio}})

    def test_bundled_params_file(self):
        """config/params.yaml loads and matches the defaults"""
        cfg = load_config(os.path.join(project_root, "config", "params.yaml"))
        assert cfg["features"]["method"] == "sift"
        assert cfg["processing"]["model_scale"] == 0.5


class TestJsonFormatter:
    """Test cases for the JSON log format"""

    def _record(self, exc_info=None):
        return logging.LogRecord("basicar", logging.INFO, __file__, 1, "hello %s", ("world",), exc_info)

    def test_basic_fields(self):
        payload = json.loads(JsonFormatter().format(self._record()))
        assert payload["lvl"] == "INFO"
        assert payload["name"] == "basicar"
        assert payload["msg"] == "hello world"
        assert isinstance(payload["t"], int)
        assert "extra" not in payload

    def test_extra_dict(self):
        rec = self._record()
        rec.extra = {"frames": 3, "path": "out.avi"}
        payload = json.loads(JsonFormatter().format(rec))
        assert payload["extra"] == {"frames": 3, "path": "out.avi"}

    def test_exception_info(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            rec = self._record(exc_info=sys.exc_info())
        payload = json.loads(JsonFormatter().format(rec))
        assert "RuntimeError: boom" in payload["exc_info"]


class TestTypes:
    """Shared dataclasses"""

    def test_frame_from_image(self):
        img = np.zeros((48, 64, 3), dtype=np.uint8)
        f = Frame.from_image(img, source_id="video2", index=4)
        assert f.size == (64, 48)
        assert f.to_meta()["channels"] == 3
        assert f.to_meta()["source_id"] == "video2"
        assert f.ts.endswith("Z")

    def test_frame_validation(self):
        with pytest.raises(TypeError):
            Frame(ts="t", width=1, height=1, image=[[0]])
        with pytest.raises(ValueError, match="do not match"):
            Frame(ts="t", width=10, height=10, image=np.zeros((5, 5), dtype=np.uint8))
        f = Frame(ts="t", width=2, height=2, image=np.full((2, 2), 300.0))
        assert f.image.dtype == np.uint8 and f.image.max() == 255

    def test_features_alignment(self):
        kps = [cv2.KeyPoint(1.0, 2.0, 3.0)]
        with pytest.raises(ValueError, match="aligned"):
            Features(kps, np.zeros((2, 128), dtype=np.float32))
        feats = Features(kps, np.zeros((1, 128), dtype=np.float32))
        assert len(feats) == 1 and not feats.empty

    def test_pose_tags(self):
        p = Pose.insufficient(2)
        assert not p.ok
        assert p.to_dict()["status"] == "insufficient"
        assert p.to_dict()["rmse_px"] is None
        v = Pose(PoseStatus.VALID, H=np.eye(3), corners=np.zeros((4, 2), np.float32), inliers=9, total=10, rmse_px=0.4)
        assert v.ok
        meta = FrameResult(np.zeros((2, 2, 3), np.uint8), v, 50, 10, True, 1.234).to_meta()
        assert meta["status"] == "valid"
        assert meta["matches"] == 10 and meta["latency_ms"] == 1.23


class TestUtils:
    """Small helpers"""

    def test_to_numpy_3x3(self):
        a = to_numpy_3x3([[1, 0, 0], [0, 1, 0], [0, 0, 1]])
        assert a.dtype == np.float64
        with pytest.raises(ValueError):
            to_numpy_3x3(np.eye(4))
        with pytest.raises(ValueError):
            to_numpy_3x3(None)

    def test_running_stats(self):
        s = RunningStats()
        for x in (2.0, 4.0, 6.0):
            s.add(x)
        assert s.mean == pytest.approx(4.0)
        assert s.std == pytest.approx(2.0)

    def test_scaled_size_and_color(self):
        assert scaled_size((640, 480), 0.5) == (320, 240)
        assert scaled_size((3, 3), 0.01) == (1, 1)
        assert parse_color([0, 300, -5]) == (0, 255, 0)
        with pytest.raises(ValueError):
            parse_color([1, 2])
