"""
Shared records for the frame pipeline.

Kept separate from the extractor and store modules so both can exchange
frames without importing each other.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class VideoAsset:
    """Metadata for an uploaded video, referenced by id from the core."""
    id: str
    original_name: str
    size_bytes: int
    duration_seconds: float
    width: int
    height: int
    uploaded_at: datetime

    def to_dict(self) -> dict:
        data = asdict(self)
        data["uploaded_at"] = self.uploaded_at.isoformat()
        return data


@dataclass(frozen=True)
class Frame:
    id: str
    video_id: str
    timestamp: float  # seconds, sequence index * extraction interval
    filename: str
    path: str
    feature_vector: Optional[Tuple[float, ...]] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        if self.feature_vector is not None:
            data["feature_vector"] = list(self.feature_vector)
        return data

    def to_payload(self) -> dict:
        """Remote index payload; the vector itself travels separately."""
        return {
            "frameId": self.id,
            "videoId": self.video_id,
            "timestamp": self.timestamp,
            "filename": self.filename,
            "path": self.path,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "Frame":
        return cls(
            id=payload["frameId"],
            video_id=payload["videoId"],
            timestamp=float(payload["timestamp"]),
            filename=payload["filename"],
            path=payload["path"],
        )
