"""Ingest videos into frame descriptors and query them for similar frames.

``FramePipeline`` only sequences its collaborators: the frame extractor,
the histogram descriptor and the vector store. It keeps no state of its own.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional

import numpy as np
from tqdm import tqdm

from .config import ExtractionConfig, HistogramConfig, extraction, histogram, paths
from .errors import DecodeError, DimensionMismatchError, NotFoundError
from .features import compute_color_histogram, get_descriptor_dim
from .models import Frame, VideoAsset
from .similarity import SimilarityResult
from .store import VectorStore
from .video_extractor import extract_frames, list_frames, probe_video

logger = logging.getLogger(__name__)


class FramePipeline:
    def __init__(
        self,
        store: VectorStore,
        frames_dir: Optional[str] = None,
        extraction_cfg: ExtractionConfig = extraction,
        histogram_cfg: HistogramConfig = histogram,
    ) -> None:
        self.store = store
        self.frames_dir = frames_dir or paths.frames_dir
        self.extraction_cfg = extraction_cfg
        self.histogram_cfg = histogram_cfg
        if get_descriptor_dim(histogram_cfg) != store.cfg.vector_size:
            raise DimensionMismatchError(
                f"Descriptors have {get_descriptor_dim(histogram_cfg)} values "
                f"but the store expects {store.cfg.vector_size}"
            )

    def register_video(self, video_path: str, original_name: Optional[str] = None) -> VideoAsset:
        return probe_video(video_path, original_name=original_name)

    def _describe(self, frame: Frame) -> Optional[np.ndarray]:
        try:
            return compute_color_histogram(frame.path, self.histogram_cfg)
        except DecodeError as e:
            logger.error(f"Error processing frame {frame.id}: {e}")
            return None

    def _previous_frame_ids(self, video_id: str) -> List[str]:
        try:
            return [f.id for f in self.list_frames(video_id)]
        except NotFoundError:
            return []

    def ingest(
        self,
        video_path: str,
        video_id: str,
        interval: Optional[float] = None,
    ) -> List[Frame]:
        """Extract frames, compute and store a descriptor for each.

        Extraction failures propagate. A frame whose image cannot be decoded
        is still returned, without a feature vector. Frames of an earlier
        extraction that the new one does not produce again are removed from
        the store.
        """
        previous = set(self._previous_frame_ids(video_id))
        frames = extract_frames(
            video_path,
            video_id,
            interval=interval,
            frames_dir=self.frames_dir,
            cfg=self.extraction_cfg,
        )
        current = {f.id for f in frames}
        stale = sorted(previous - current)
        if stale:
            self.store.delete(stale)

        workers = max(1, self.extraction_cfg.workers)
        processed: List[Frame] = []
        stored = {"remote": 0, "local": 0}
        with ThreadPoolExecutor(max_workers=workers) as pool:
            descriptors = pool.map(self._describe, frames)
            for frame, vector in tqdm(
                zip(frames, descriptors), total=len(frames), desc="Describing frames", unit="frame"
            ):
                if vector is None:
                    processed.append(frame)
                    continue
                backend = self.store.upsert(frame, vector)
                stored[backend] = stored.get(backend, 0) + 1
                processed.append(replace(frame, feature_vector=tuple(float(v) for v in vector)))

        # An earlier vector no longer describes a frame that now fails to decode.
        undescribed = [f.id for f in processed if f.feature_vector is None and f.id in previous]
        if undescribed:
            self.store.delete(undescribed)

        missing = sum(1 for f in processed if f.feature_vector is None)
        logger.info(
            f"Processed {len(processed)} frames for video '{video_id}' "
            f"({stored['remote']} remote, {stored['local']} in memory, {missing} without features)"
        )
        return processed

    def find_similar(self, frame_id: str, k: int = 10) -> List[SimilarityResult]:
        return self.store.find_similar(frame_id, k)

    def list_frames(self, video_id: str, interval: Optional[float] = None) -> List[Frame]:
        return list_frames(
            video_id,
            frames_dir=self.frames_dir,
            interval=interval,
            cfg=self.extraction_cfg,
        )
