"""Tests for cosine similarity and brute-force ranking."""

import numpy as np
import pytest

from conftest import random_vectors


def _frame(i: int):
    from framesearch.models import Frame

    return Frame(
        id=f"vid_frame_{i:04d}",
        video_id="vid",
        timestamp=float(i),
        filename=f"frame_{i:04d}.png",
        path=f"/frames/vid/frame_{i:04d}.png",
    )


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    def test_symmetric(self):
        from framesearch.similarity import cosine_similarity

        vectors = random_vectors(6, seed=1)
        for a in vectors:
            for b in vectors:
                assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_self_similarity_is_one(self):
        from framesearch.similarity import cosine_similarity

        for v in random_vectors(5, seed=2):
            assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_non_negative_vectors_score_in_unit_range(self):
        from framesearch.similarity import cosine_similarity

        a, b = random_vectors(2, seed=3)
        assert 0.0 <= cosine_similarity(a, b) <= 1.0 + 1e-12

    def test_zero_vector_is_degenerate(self):
        from framesearch.errors import DegenerateVectorError
        from framesearch.similarity import cosine_similarity

        with pytest.raises(DegenerateVectorError):
            cosine_similarity(np.zeros(192), np.ones(192))

    def test_dimension_mismatch(self):
        from framesearch.errors import DimensionMismatchError, ValidationError
        from framesearch.similarity import cosine_similarity

        with pytest.raises(DimensionMismatchError) as exc_info:
            cosine_similarity(np.ones(192), np.ones(191))
        assert isinstance(exc_info.value, ValidationError)


class TestValidateK:
    """Tests for validate_k."""

    def test_accepts_zero_and_positive(self):
        from framesearch.similarity import validate_k

        assert validate_k(0) == 0
        assert validate_k(np.int64(5)) == 5

    @pytest.mark.parametrize("k", [-1, 2.5, "3", None, True])
    def test_rejects_invalid(self, k):
        from framesearch.errors import ValidationError
        from framesearch.similarity import validate_k

        with pytest.raises(ValidationError):
            validate_k(k)


class TestRank:
    """Tests for rank."""

    def test_top_k_descending_without_reference(self):
        from framesearch.similarity import rank

        vectors = random_vectors(10, seed=4)
        candidates = [(_frame(i), v) for i, v in enumerate(vectors)]

        results = rank(vectors[0], candidates, 3, exclude_id=_frame(0).id)

        assert len(results) == 3
        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert all(r.frame.id != _frame(0).id for r in results)

    def test_zero_k_returns_empty(self):
        from framesearch.similarity import rank

        vectors = random_vectors(3)
        assert rank(vectors[0], [(_frame(i), v) for i, v in enumerate(vectors)], 0) == []

    def test_ties_keep_storage_order(self):
        from framesearch.similarity import rank

        v = np.ones(192)
        candidates = [(_frame(i), v.copy()) for i in range(4)]

        results = rank(v, candidates, 4)

        assert [r.frame.id for r in results] == [_frame(i).id for i in range(4)]

    def test_degenerate_candidate_is_skipped(self):
        from framesearch.similarity import rank

        v = np.ones(192)
        candidates = [(_frame(1), np.zeros(192)), (_frame(2), v)]

        results = rank(v, candidates, 5)

        assert [r.frame.id for r in results] == [_frame(2).id]

    def test_degenerate_reference_raises(self):
        from framesearch.errors import DegenerateVectorError
        from framesearch.similarity import rank

        with pytest.raises(DegenerateVectorError):
            rank(np.zeros(192), [(_frame(1), np.ones(192))], 1)

    def test_result_dict_omits_vector(self):
        from dataclasses import replace

        from framesearch.similarity import SimilarityResult

        frame = replace(_frame(1), feature_vector=(0.5,) * 192)
        data = SimilarityResult(frame=frame, score=0.9).to_dict()

        assert data["score"] == 0.9
        assert data["frame"]["id"] == frame.id
        assert "feature_vector" not in data["frame"]
