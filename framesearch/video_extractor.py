import json
import logging
import math
import numbers
import os
import subprocess
import uuid
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Iterable, List, Optional

import cv2

from .config import ExtractionConfig, extraction, paths
from .errors import (
    EmptyResultError,
    ExtractionError,
    NotFoundError,
    OperationTimeoutError,
    ValidationError,
)
from .models import Frame, VideoAsset

logger = logging.getLogger(__name__)


def frame_id(video_id: str, ordinal: int, pad_width: int = 4) -> str:
    """Id of the ``ordinal``-th (1-based) frame of a video."""
    return f"{video_id}_frame_{ordinal:0{pad_width}d}"


class FrameSequence:
    """Ordered frame image filenames of one video directory.

    Filenames come from the decoder's fixed-width numbering, so sorting by
    (length, name) is lexicographic order for equal widths and stays in
    temporal order if a count ever outgrows the padding.
    """

    def __init__(self, directory: str, filenames: Iterable[str]) -> None:
        self.directory = directory
        self.filenames: List[str] = sorted(filenames, key=lambda n: (len(n), n))

    @classmethod
    def scan(cls, directory: str, image_ext: str) -> "FrameSequence":
        suffix = "." + image_ext.lstrip(".").lower()
        names = [n for n in os.listdir(directory) if n.lower().endswith(suffix)]
        return cls(directory, names)

    def __len__(self) -> int:
        return len(self.filenames)

    def __iter__(self):
        return iter(self.filenames)

    def to_frames(self, video_id: str, interval: float, pad_width: int = 4) -> List[Frame]:
        frames: List[Frame] = []
        for index, filename in enumerate(self.filenames):
            frames.append(
                Frame(
                    id=frame_id(video_id, index + 1, pad_width),
                    video_id=video_id,
                    timestamp=float(index * interval),
                    filename=filename,
                    path=os.path.abspath(os.path.join(self.directory, filename)),
                )
            )
        return frames


class DecoderProcess:
    """Handle on an external decoder child process.

    ``start`` spawns the process, ``wait`` blocks until it exits and turns
    a non-zero exit status or an overrun of the timeout into errors.
    """

    def __init__(self, args: List[str]) -> None:
        self.args = args
        self._proc: Optional[subprocess.Popen] = None

    def start(self) -> "DecoderProcess":
        logger.info(f"Spawning decoder: {' '.join(self.args)}")
        try:
            self._proc = subprocess.Popen(
                self.args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError as e:
            raise ExtractionError(
                f"{self.args[0]} not found. Install ffmpeg (or set FFMPEG_BINARY) and ensure it is on PATH."
            ) from e
        except OSError as e:
            raise ExtractionError(f"Could not start {self.args[0]}: {e}") from e
        return self

    def wait(self, timeout: Optional[float] = None) -> str:
        """Wait for the process to finish and return its diagnostic output."""
        if self._proc is None:
            raise RuntimeError("Decoder process was not started")
        try:
            _, stderr = self._proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self._proc.kill()
            self._proc.communicate()
            raise OperationTimeoutError(
                f"Decoder did not finish within {timeout}s: {' '.join(self.args)}"
            ) from e

        if self._proc.returncode != 0:
            tail = "\n".join((stderr or "").strip().splitlines()[-5:])
            raise ExtractionError(
                f"Decoder exited with status {self._proc.returncode}: {tail}"
            )
        return stderr or ""


def build_ffmpeg_args(
    video_path: str,
    output_dir: str,
    interval: float,
    cfg: ExtractionConfig,
) -> List[str]:
    pattern = os.path.join(output_dir, f"frame_%0{cfg.pad_width}d.{cfg.image_ext}")
    return [
        cfg.ffmpeg_binary,
        "-hide_banner",
        "-y",  # overwrite output files
        "-i",
        video_path,
        "-vf",
        f"fps=1/{interval:g}",
        pattern,
    ]


def _check_interval(interval) -> float:
    if isinstance(interval, bool) or not isinstance(interval, numbers.Real):
        raise ValidationError(f"Extraction interval must be a number, got {interval!r}")
    if not math.isfinite(interval) or interval <= 0:
        raise ValidationError(f"Extraction interval must be positive and finite, got {interval!r}")
    return float(interval)


def _remove_stale_frames(video_dir: str, cfg: ExtractionConfig) -> None:
    stale = FrameSequence.scan(video_dir, cfg.image_ext)
    for name in stale:
        os.remove(os.path.join(video_dir, name))
    if len(stale):
        logger.info(f"Removed {len(stale)} frames left by a previous extraction in {video_dir}")


def write_manifest(video_dir: str, frames: List[Frame], cfg: ExtractionConfig = extraction) -> str:
    manifest_path = os.path.join(video_dir, cfg.manifest_name)
    with open(manifest_path, "w", encoding="utf-8") as f:
        for frame in frames:
            f.write(json.dumps(asdict(frame), ensure_ascii=False) + "\n")
    return manifest_path


def _read_manifest(manifest_path: str) -> List[Frame]:
    frames: List[Frame] = []
    with open(manifest_path, "r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            data = json.loads(line)
            data["feature_vector"] = None
            frames.append(Frame(**data))
    return frames


def extract_frames(
    video_path: str,
    video_id: str,
    interval: Optional[float] = None,
    frames_dir: Optional[str] = None,
    cfg: ExtractionConfig = extraction,
) -> List[Frame]:
    """Sample a video every ``interval`` seconds into ``<frames_dir>/<video_id>/``.

    Frame ids and timestamps are derived from the ordinal position of each
    image and the interval only, so re-extracting with the same interval
    yields identical records.
    """
    interval = _check_interval(cfg.interval_sec if interval is None else interval)
    if not video_id:
        raise ValidationError("video_id is required")
    if not os.path.isfile(video_path):
        raise ExtractionError(f"Video not found: {video_path}")

    frames_dir = frames_dir or paths.frames_dir
    video_dir = os.path.join(frames_dir, video_id)
    os.makedirs(video_dir, exist_ok=True)
    _remove_stale_frames(video_dir, cfg)

    args = build_ffmpeg_args(video_path, video_dir, interval, cfg)
    DecoderProcess(args).start().wait(timeout=cfg.timeout_sec)

    sequence = FrameSequence.scan(video_dir, cfg.image_ext)
    logger.info(f"Found {len(sequence)} frame files in {video_dir}")
    if not len(sequence):
        raise EmptyResultError(
            f"No frames extracted from {video_path} at a {interval:g}s interval"
        )

    frames = sequence.to_frames(video_id, interval, cfg.pad_width)
    write_manifest(video_dir, frames, cfg)
    return frames


def list_frames(
    video_id: str,
    frames_dir: Optional[str] = None,
    interval: Optional[float] = None,
    cfg: ExtractionConfig = extraction,
) -> List[Frame]:
    """Rebuild the frame records of an extracted video.

    The manifest written at extraction time holds the exact timestamps. A
    directory without one is listed instead, and timestamps are then only
    as good as ``interval`` (1 second when unknown).
    """
    frames_dir = frames_dir or paths.frames_dir
    video_dir = os.path.join(frames_dir, video_id)
    if not os.path.isdir(video_dir):
        raise NotFoundError(f"No frames found for video '{video_id}'")

    manifest_path = os.path.join(video_dir, cfg.manifest_name)
    if interval is None and os.path.isfile(manifest_path):
        return _read_manifest(manifest_path)

    sequence = FrameSequence.scan(video_dir, cfg.image_ext)
    interval = 1.0 if interval is None else _check_interval(interval)
    return sequence.to_frames(video_id, interval, cfg.pad_width)


def probe_video(
    video_path: str,
    original_name: Optional[str] = None,
    video_id: Optional[str] = None,
) -> VideoAsset:
    """Read size, duration and resolution of a video file."""
    if not os.path.isfile(video_path):
        raise NotFoundError(f"Video not found: {video_path}")

    cap = cv2.VideoCapture(video_path)
    try:
        if not cap.isOpened():
            raise ExtractionError(f"Failed to open video: {video_path}")
        fps = cap.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
    finally:
        cap.release()

    duration = float(frame_count / fps) if fps > 0 else 0.0
    return VideoAsset(
        id=video_id or uuid.uuid4().hex,
        original_name=original_name or os.path.basename(video_path),
        size_bytes=os.path.getsize(video_path),
        duration_seconds=duration,
        width=width,
        height=height,
        uploaded_at=datetime.now(timezone.utc),
    )
