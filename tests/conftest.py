"""Shared fixtures: synthetic frame images and a stand-in for ffmpeg."""

import math
import re
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from framesearch import video_extractor


def write_image(path: Path, color=(128, 64, 200), size=(256, 256)) -> Path:
    """Write a solid-color RGB image."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color).save(path)
    return path


def write_noise_image(path: Path, seed: int = 0, size=(320, 240)) -> Path:
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(size[1], size[0], 3), dtype=np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels, "RGB").save(path)
    return path


def random_vectors(n: int, dim: int = 192, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.random((n, dim)) + 1e-3


@pytest.fixture
def make_video(tmp_path):
    """Create a fake video file; the fake decoder reads its duration from it."""

    def _make(duration: float = 10.0, name: str = "clip.mp4") -> Path:
        path = tmp_path / "videos" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(str(duration))
        return path

    return _make


@pytest.fixture
def fake_decoder(monkeypatch):
    """Replace the ffmpeg child process with one that writes PNG frames.

    It emits floor(duration / interval) frames, one color per frame, and
    writes garbage bytes for the 1-based ordinals listed in ``corrupt``.
    """

    class FakeDecoder:
        corrupt: set = set()
        fail_with = None
        calls: list = []

        def __init__(self, args):
            self.args = args

        def start(self):
            FakeDecoder.calls.append(self.args)
            return self

        def wait(self, timeout=None):
            if FakeDecoder.fail_with is not None:
                raise FakeDecoder.fail_with
            video_path = Path(self.args[self.args.index("-i") + 1])
            filter_arg = self.args[self.args.index("-vf") + 1]
            interval = float(re.match(r"fps=1/(.+)", filter_arg).group(1))
            duration = float(video_path.read_text())
            pattern = self.args[-1]

            for n in range(1, math.floor(duration / interval + 1e-9) + 1):
                out = Path(pattern % n)
                if n in FakeDecoder.corrupt:
                    out.write_bytes(b"not an image")
                    continue
                color = ((n * 37) % 256, (n * 91) % 256, (255 - n * 23) % 256)
                write_image(out, color=color, size=(64, 48))
            return "frame= done"

    monkeypatch.setattr(video_extractor, "DecoderProcess", FakeDecoder)
    return FakeDecoder
