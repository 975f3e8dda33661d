"""
Vector primitives shared by the feature builder, the models and the merger.
"""

import math
from collections.abc import Sequence

import numpy as np


def euclidean_distance(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Euclidean distance between two vectors

    Returns +inf when either vector is missing or the lengths differ, so callers
    comparing against a radius never treat such a pair as close.
    """
    if a is None or b is None or len(a) != len(b):
        return math.inf

    diff = np.asarray(a, dtype=float) - np.asarray(b, dtype=float)
    return float(np.sqrt(np.dot(diff, diff)))


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine similarity between two vectors

    Returns 0.0 when either vector is missing, the lengths differ or either
    vector has zero magnitude.
    """
    if a is None or b is None or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    magnitude_a = float(np.linalg.norm(va))
    magnitude_b = float(np.linalg.norm(vb))
    if magnitude_a == 0.0 or magnitude_b == 0.0:
        return 0.0

    return float(np.dot(va, vb) / (magnitude_a * magnitude_b))


def centroid(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise mean of a set of vectors (empty list for no vectors)"""
    if len(vectors) == 0:
        return []
    return np.asarray(vectors, dtype=float).mean(axis=0).tolist()
