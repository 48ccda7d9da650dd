from __future__ import annotations

import logging
import numbers
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .errors import DegenerateVectorError, DimensionMismatchError, ValidationError
from .models import Frame

logger = logging.getLogger(__name__)


@dataclass
class SimilarityResult:
    frame: Frame
    score: float

    def to_dict(self) -> dict:
        frame = self.frame.to_dict()
        frame.pop("feature_vector", None)
        return {"frame": frame, "score": self.score}


def _norm(vector: np.ndarray) -> float:
    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        raise DegenerateVectorError("Cannot compare a zero-magnitude vector")
    return norm


def cosine_similarity(a, b) -> float:
    """dot(a, b) / (|a| * |b|). Operands must have the same dimension."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise DimensionMismatchError(
            f"Vector dimensions differ: {a.shape} != {b.shape}"
        )
    return float(np.dot(a, b) / (_norm(a) * _norm(b)))


def validate_k(k) -> int:
    """Return k as an int; 0 is allowed and means an empty result."""
    if isinstance(k, bool) or not isinstance(k, numbers.Integral):
        raise ValidationError(f"k must be an integer, got {k!r}")
    if k < 0:
        raise ValidationError(f"k must not be negative, got {k}")
    return int(k)


def rank(
    reference: np.ndarray,
    candidates: Iterable[Tuple[Frame, np.ndarray]],
    k: int,
    exclude_id: Optional[str] = None,
) -> List[SimilarityResult]:
    """Brute-force cosine ranking of candidates against a reference vector.

    Ties keep the candidates' iteration order. A candidate with a
    zero-magnitude vector is skipped; a degenerate reference raises.
    """
    k = validate_k(k)
    if k == 0:
        return []

    reference = np.asarray(reference, dtype=np.float64)
    _norm(reference)

    results: List[SimilarityResult] = []
    for frame, vector in candidates:
        if frame.id == exclude_id:
            continue
        try:
            score = cosine_similarity(reference, vector)
        except DegenerateVectorError:
            logger.warning(f"Skipping frame '{frame.id}' with a zero-magnitude vector")
            continue
        results.append(SimilarityResult(frame=frame, score=score))

    # list.sort is stable: equal scores stay in storage order.
    results.sort(key=lambda r: r.score, reverse=True)
    return results[:k]
