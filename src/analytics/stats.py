"""
Summary statistics for trained models, recomputed after every train or merge.
"""

from collections.abc import Sequence
from dataclasses import asdict, dataclass

import numpy as np


@dataclass(frozen=True)
class AnomalyStats:
    """Statistics of a density anomaly model"""

    total_points: int
    dimensions: int
    num_clusters: int
    num_anomalies: int
    anomaly_percentage: float
    cluster_sizes: tuple[int, ...]

    def to_dict(self) -> dict:
        data = asdict(self)
        data["cluster_sizes"] = list(self.cluster_sizes)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "AnomalyStats":
        return cls(**{**data, "cluster_sizes": tuple(data.get("cluster_sizes", ()))})


@dataclass(frozen=True)
class ClusterStats:
    """Statistics of a centroid cluster model"""

    total_points: int
    dimensions: int
    num_clusters: int
    cluster_sizes: tuple[int, ...]
    average_similarity: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["cluster_sizes"] = list(self.cluster_sizes)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ClusterStats":
        return cls(**{**data, "cluster_sizes": tuple(data.get("cluster_sizes", ()))})


def mean_or_zero(values: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for an empty sequence"""
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def anomaly_stats(
    processed_data: Sequence[Sequence[float]],
    clusters: Sequence[Sequence[int]],
    num_anomalies: int,
) -> AnomalyStats:
    """Statistics over the full processed data of an anomaly model"""
    total = len(processed_data)
    return AnomalyStats(
        total_points=total,
        dimensions=len(processed_data[0]) if total else 0,
        num_clusters=len(clusters),
        num_anomalies=num_anomalies,
        anomaly_percentage=(num_anomalies / total) * 100 if total else 0.0,
        cluster_sizes=tuple(len(cluster) for cluster in clusters),
    )


def cluster_stats(clusters: Sequence, dimensions: int) -> ClusterStats:
    """Statistics over clusters exposing ``size`` and ``similarities``

    ``average_similarity`` is the mean of each cluster's mean similarity, an
    empty cluster contributing 0.
    """
    per_cluster = [mean_or_zero(cluster.similarities) for cluster in clusters]
    return ClusterStats(
        total_points=sum(cluster.size for cluster in clusters),
        dimensions=dimensions,
        num_clusters=len(clusters),
        cluster_sizes=tuple(cluster.size for cluster in clusters),
        average_similarity=mean_or_zero(per_cluster),
    )
