"""
End-to-end runs of `python -m basicar.app` on generated media
"""

import pytest
import numpy as np
import cv2
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.append(project_root)

from basicar.app import main
from tests.synthetic import count_frames, place_on_canvas, textured_board, write_video


@pytest.fixture
def media(tmp_path):
    model = textured_board(200)
    cv2.imwrite(str(tmp_path / "model.png"), model)

    patch = np.zeros((120, 120, 3), dtype=np.uint8)
    patch[:] = (0, 0, 255)
    cv2.imwrite(str(tmp_path / "patch.png"), patch)

    frames = [
        place_on_canvas(model, scale=2.0, offset=(50 + 4 * i, 50), canvas=(520, 500))
        for i in range(4)
    ]
    write_video(tmp_path / "scene.avi", frames)

    second = [np.full((100, 100, 3), 60 + 40 * i, dtype=np.uint8) for i in range(2)]
    write_video(tmp_path / "video2.avi", second)

    cfg = tmp_path / "params.yaml"
    cfg.write_text(
        "logging:\n  level: WARNING\n"
        "processing:\n  model_scale: 1.0\n  scene_scale: 1.0\n"
        "output:\n  fps: 10\n"
    )
    return tmp_path


def _args(d, *extra):
    return [str(d / "model.png"), str(d / "scene.avi"), "--config", str(d / "params.yaml"), *extra]


class TestBasicarApp:
    """CLI exit codes and recorded output"""

    def test_static_patch_recorded(self, media):
        out = media / "out" / "result.avi"
        rc = main(_args(media, "--patch", str(media / "patch.png"), "--output", str(out)))
        assert rc == 0
        assert out.exists()
        assert count_frames(out) == 4

        cap = cv2.VideoCapture(str(out))
        ok, first = cap.read()
        cap.release()
        assert ok
        b, g, r = (int(v) for v in first[250, 250])
        assert r > 200 and g < 60 and b < 60

    def test_second_video_overlay(self, media):
        out = media / "v2.avi"
        rc = main(_args(media, "--video2", str(media / "video2.avi"), "--output", str(out)))
        assert rc == 0
        assert count_frames(out) == 4

    def test_max_frames_and_no_record(self, media):
        rc = main(_args(media, "--patch", str(media / "patch.png"), "--no-record", "--max-frames", "2"))
        assert rc == 0

    def test_missing_model(self, media):
        rc = main([str(media / "nope.png"), str(media / "scene.avi"), "--patch", str(media / "patch.png")])
        assert rc == 1

    def test_missing_scene(self, media):
        rc = main([str(media / "model.png"), str(media / "nope.avi"), "--patch", str(media / "patch.png")])
        assert rc == 1

    def test_no_overlay(self, media):
        assert main(_args(media)) == 1

    def test_missing_config(self, media):
        rc = main([str(media / "model.png"), str(media / "scene.avi"), "--patch", str(media / "patch.png"),
                   "--config", str(media / "absent.yaml")])
        assert rc == 1

    def test_usage_error(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == 2
