"""
Tests for vector primitives.
"""

import math

import pytest

from src.analytics.similarity import centroid, cosine_similarity, euclidean_distance


class TestEuclideanDistance:
    """Tests for euclidean_distance."""

    def test_distance(self):
        """Test a 3-4-5 triangle."""
        assert euclidean_distance([0, 0], [3, 4]) == pytest.approx(5.0)

    def test_mismatched_or_missing_vectors(self):
        """Incomparable vectors are infinitely far apart."""
        assert euclidean_distance([0, 0], [1, 1, 1]) == math.inf
        assert euclidean_distance(None, [1]) == math.inf


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    def test_parallel_and_orthogonal(self):
        """Parallel vectors score 1, orthogonal 0, opposite -1."""
        assert cosine_similarity([1, 1], [2, 2]) == pytest.approx(1.0)
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 0], [-1, 0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        """A zero-magnitude vector has no direction."""
        assert cosine_similarity([0, 0], [1, 1]) == 0.0

    def test_mismatched_or_missing_vectors(self):
        """Incomparable vectors have zero similarity."""
        assert cosine_similarity([1], [1, 1]) == 0.0
        assert cosine_similarity([1, 1], None) == 0.0


class TestCentroid:
    """Tests for centroid."""

    def test_mean_vector(self):
        """The centroid is the element-wise mean."""
        assert centroid([[0, 0], [2, 4]]) == pytest.approx([1.0, 2.0])

    def test_no_vectors(self):
        """No vectors have an empty centroid."""
        assert centroid([]) == []
