"""Frame vector persistence behind a remote index with an in-process fallback.

``RemoteBackend`` talks to a Qdrant collection, ``LocalBackend`` keeps an
in-process map. ``VectorStore`` tries the remote first on every write and
quietly redirects to the local map when it fails.

Caveat: there is no reconciliation. Frames written during a remote outage
live only in the local map of this process and are never migrated back, and
a remote that failed its collection setup is not probed again.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Dict, List, Optional, Tuple

import httpx
import numpy as np
from qdrant_client import QdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from .config import StoreConfig
from .errors import (
    DimensionMismatchError,
    NotFoundError,
    QueryError,
    StoreError,
    StoreTimeoutError,
    ValidationError,
)
from .models import Frame
from .similarity import SimilarityResult, rank, validate_k

logger = logging.getLogger(__name__)

_CLIENT_ERRORS = (UnexpectedResponse, ResponseHandlingException, httpx.HTTPError, OSError, ValueError)


def point_id(frame_id: str) -> str:
    """Qdrant only accepts UUIDs or unsigned ints as point ids."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"framesearch:{frame_id}"))


def _as_vector(vector, dim: int) -> np.ndarray:
    arr = np.asarray(vector, dtype=np.float64).ravel()
    if arr.shape[0] != dim:
        raise DimensionMismatchError(f"Expected a {dim}-dimensional vector, got {arr.shape[0]}")
    return arr


class VectorBackend:
    name = "base"

    def ensure_collection(self) -> None:
        raise NotImplementedError("This method should be implemented in subclasses")

    def upsert(self, frame: Frame, vector: np.ndarray) -> None:
        raise NotImplementedError("This method should be implemented in subclasses")

    def fetch_vector(self, frame_id: str) -> np.ndarray:
        raise NotImplementedError("This method should be implemented in subclasses")

    def query(
        self, vector: np.ndarray, k: int, exclude_id: Optional[str] = None
    ) -> List[SimilarityResult]:
        raise NotImplementedError("This method should be implemented in subclasses")

    def delete(self, frame_ids: List[str]) -> None:
        raise NotImplementedError("This method should be implemented in subclasses")


class LocalBackend(VectorBackend):
    name = "local"

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[Frame, np.ndarray]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, frame_id: str) -> bool:
        return frame_id in self._entries

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def delete(self, frame_ids: List[str]) -> int:
        """Drop entries by frame id and return how many were held."""
        with self._lock:
            return sum(1 for fid in frame_ids if self._entries.pop(fid, None) is not None)

    def ensure_collection(self) -> None:
        pass

    def upsert(self, frame: Frame, vector: np.ndarray) -> None:
        with self._lock:
            self._entries[frame.id] = (frame, np.asarray(vector, dtype=np.float64))

    def fetch_vector(self, frame_id: str) -> np.ndarray:
        entry = self._entries.get(frame_id)
        if entry is None:
            raise NotFoundError(f"Reference frame '{frame_id}' not found")
        return entry[1]

    def query(
        self, vector: np.ndarray, k: int, exclude_id: Optional[str] = None
    ) -> List[SimilarityResult]:
        with self._lock:
            candidates = list(self._entries.values())
        return rank(vector, candidates, k, exclude_id=exclude_id)


class RemoteBackend(VectorBackend):
    name = "remote"

    def __init__(self, cfg: StoreConfig, client: Optional[QdrantClient] = None) -> None:
        self.cfg = cfg
        if client is None:
            if not cfg.url:
                raise ValidationError("A remote backend needs StoreConfig.url")
            client = QdrantClient(url=cfg.url, api_key=cfg.api_key, timeout=cfg.timeout_sec)
        self.client = client
        self._collection_ready = False

    def _wrap(self, action: str, e: Exception) -> StoreError:
        source = getattr(e, "source", e)
        if isinstance(source, httpx.TimeoutException):
            return StoreTimeoutError(f"Qdrant timed out while trying to {action}: {e}")
        return StoreError(f"Qdrant failed to {action}: {e}")

    def _collection_exists(self) -> bool:
        collections = self.client.get_collections().collections
        return any(c.name == self.cfg.collection_name for c in collections)

    def ensure_collection(self) -> None:
        if self._collection_ready:
            return
        name = self.cfg.collection_name
        try:
            if not self._collection_exists():
                try:
                    self.client.create_collection(
                        collection_name=name,
                        vectors_config=models.VectorParams(
                            size=self.cfg.vector_size,
                            distance=models.Distance.COSINE,
                        ),
                    )
                    logger.info(f"Created collection: {name}")
                except _CLIENT_ERRORS:
                    # Another instance may have created it in the meantime.
                    if not self._collection_exists():
                        raise
                    logger.info(f"Collection {name} was created concurrently")
        except _CLIENT_ERRORS as e:
            raise self._wrap(f"ensure collection '{name}'", e) from e
        self._collection_ready = True

    def upsert(self, frame: Frame, vector: np.ndarray) -> None:
        self.ensure_collection()
        try:
            self.client.upsert(
                collection_name=self.cfg.collection_name,
                wait=True,
                points=[
                    models.PointStruct(
                        id=point_id(frame.id),
                        vector=[float(v) for v in vector],
                        payload=frame.to_payload(),
                    )
                ],
            )
        except _CLIENT_ERRORS as e:
            raise self._wrap(f"store frame '{frame.id}'", e) from e

    def delete(self, frame_ids: List[str]) -> None:
        if not frame_ids:
            return
        self.ensure_collection()
        try:
            self.client.delete(
                collection_name=self.cfg.collection_name,
                points_selector=models.PointIdsList(points=[point_id(fid) for fid in frame_ids]),
                wait=True,
            )
        except _CLIENT_ERRORS as e:
            raise self._wrap(f"delete {len(frame_ids)} frames", e) from e

    def fetch_vector(self, frame_id: str) -> np.ndarray:
        self.ensure_collection()
        try:
            records = self.client.retrieve(
                collection_name=self.cfg.collection_name,
                ids=[point_id(frame_id)],
                with_vectors=True,
            )
        except _CLIENT_ERRORS as e:
            raise self._wrap(f"retrieve frame '{frame_id}'", e) from e
        if not records or records[0].vector is None:
            raise NotFoundError(f"Reference frame '{frame_id}' not found")
        return np.asarray(records[0].vector, dtype=np.float64)

    def query(
        self, vector: np.ndarray, k: int, exclude_id: Optional[str] = None
    ) -> List[SimilarityResult]:
        k = validate_k(k)
        if k == 0:
            return []
        self.ensure_collection()
        try:
            response = self.client.query_points(
                collection_name=self.cfg.collection_name,
                query=[float(v) for v in vector],
                limit=k + 1,  # the reference usually comes back as its own best match
                score_threshold=self.cfg.score_threshold,
                with_payload=True,
            )
        except _CLIENT_ERRORS as e:
            raise self._wrap("search similar frames", e) from e

        results: List[SimilarityResult] = []
        for point in response.points:
            payload = point.payload or {}
            if "frameId" not in payload:
                logger.warning(f"Skipping point {point.id} without a frame payload")
                continue
            if payload["frameId"] == exclude_id:
                continue
            results.append(SimilarityResult(frame=Frame.from_payload(payload), score=float(point.score)))
        return results[:k]


class VectorStore:
    """Frame vectors behind the remote backend when configured, else locally."""

    def __init__(
        self,
        cfg: StoreConfig,
        remote: Optional[VectorBackend] = None,
        local: Optional[LocalBackend] = None,
    ) -> None:
        self.cfg = cfg
        self.local = local or LocalBackend()
        if remote is None and cfg.url:
            remote = RemoteBackend(cfg)
        self.remote = remote
        if self.remote is None:
            logger.info("No remote index configured, using in-memory storage")

    @property
    def active_backend(self) -> str:
        return self.remote.name if self.remote is not None else self.local.name

    def ensure_collection(self) -> None:
        """Prepare the remote collection; on failure stay local-only for good."""
        if self.remote is None:
            return
        try:
            self.remote.ensure_collection()
            logger.info(f"Remote index ready (collection '{self.cfg.collection_name}')")
        except StoreError as e:
            logger.warning(f"Remote index unavailable, falling back to in-memory storage: {e}")
            self.remote = None

    def upsert(self, frame: Frame, vector) -> str:
        """Store a frame vector and return the name of the backend that took it."""
        arr = _as_vector(vector, self.cfg.vector_size)
        if self.remote is not None:
            try:
                self.remote.upsert(frame, arr)
                # Any copy written during an earlier outage is now stale.
                self.local.delete([frame.id])
                return self.remote.name
            except StoreError as e:
                logger.warning(f"Storing '{frame.id}' in memory, remote write failed: {e}")
        self.local.upsert(frame, arr)
        return self.local.name

    def fetch_vector(self, frame_id: str) -> np.ndarray:
        if self.remote is not None:
            try:
                return self.remote.fetch_vector(frame_id)
            except NotFoundError:
                pass
            except StoreError as e:
                logger.warning(f"Remote lookup of '{frame_id}' failed, trying in-memory storage: {e}")
        return self.local.fetch_vector(frame_id)

    def delete(self, frame_ids: List[str]) -> None:
        """Remove frames from both backends.

        A remote failure is logged and leaves those points in the remote index.
        """
        frame_ids = list(frame_ids)
        if not frame_ids:
            return
        removed = self.local.delete(frame_ids)
        if self.remote is not None:
            try:
                self.remote.delete(frame_ids)
            except StoreError as e:
                logger.warning(f"Could not delete {len(frame_ids)} frames from the remote index: {e}")
        logger.info(f"Deleted {len(frame_ids)} frames ({removed} held in memory)")

    def local_only_ids(self) -> List[str]:
        """Ids held by the fallback map; the remote index never saw them."""
        return self.local.ids()

    def find_similar(self, frame_id: str, k: int = 10) -> List[SimilarityResult]:
        """Rank stored frames by similarity to the frame ``frame_id``.

        The reference itself is never part of the result.
        """
        if not frame_id:
            raise ValidationError("Frame ID is required")
        k = validate_k(k)
        if k == 0:
            return []

        if self.remote is not None:
            reference = None
            try:
                reference = self.remote.fetch_vector(frame_id)
            except NotFoundError:
                # May have been written to the fallback map during an outage.
                logger.info(f"Frame '{frame_id}' not in the remote index, trying in-memory storage")
            except StoreError as e:
                logger.warning(f"Remote lookup of '{frame_id}' failed, trying in-memory storage: {e}")

            if reference is not None:
                try:
                    return self.remote.query(reference, k, exclude_id=frame_id)
                except StoreError as e:
                    logger.warning(f"Remote search failed, ranking in-memory storage: {e}")
                    if not len(self.local):
                        raise QueryError(f"Similarity search for '{frame_id}' failed: {e}") from e
                    return self.local.query(reference, k, exclude_id=frame_id)

        reference = self.local.fetch_vector(frame_id)
        return self.local.query(reference, k, exclude_id=frame_id)
