import os
from dataclasses import dataclass
from typing import Optional


BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


@dataclass
class PathConfig:
    data_dir: str = os.environ.get("FRAMESEARCH_DATA_DIR", os.path.join(BASE_DIR, "data"))
    videos_dir: str = os.path.join(data_dir, "videos")
    frames_dir: str = os.path.join(data_dir, "frames")


@dataclass
class ExtractionConfig:
    interval_sec: float = 1.0
    image_ext: str = "png"
    pad_width: int = 4  # frame_%04d; keeps lexicographic order == temporal order
    ffmpeg_binary: str = os.environ.get("FFMPEG_BINARY", "ffmpeg")
    timeout_sec: float = 600.0
    workers: int = 1  # >1 computes descriptors in a thread pool
    manifest_name: str = "frames.jsonl"


@dataclass(frozen=True)
class HistogramConfig:
    size: int = 256  # frames are resized to size x size before binning
    bins: int = 64


@dataclass(frozen=True)
class StoreConfig:
    # Qdrant endpoint; None keeps the store in-process only.
    url: Optional[str] = None
    api_key: Optional[str] = None
    collection_name: str = "frame_vectors"
    vector_size: int = 192  # 64 bins x 3 channels
    score_threshold: float = 0.1
    timeout_sec: int = 10

    @classmethod
    def from_env(cls) -> "StoreConfig":
        return cls(
            url=os.environ.get("QDRANT_URL") or None,
            api_key=os.environ.get("QDRANT_API_KEY") or None,
            collection_name=os.environ.get("QDRANT_COLLECTION", "frame_vectors"),
            timeout_sec=int(os.environ.get("QDRANT_TIMEOUT", "10")),
        )


paths = PathConfig()
extraction = ExtractionConfig()
histogram = HistogramConfig()


def ensure_directories() -> None:
    """Ensure that expected data directories exist."""
    os.makedirs(paths.videos_dir, exist_ok=True)
    os.makedirs(paths.frames_dir, exist_ok=True)
