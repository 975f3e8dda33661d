"""
Read-side helpers over trained models.

These are pure functions the serving layer calls to answer requests:
anomaly scores and reports, in-cluster recommendations and cluster
overviews. New records are encoded through the model's frozen processors, so
unseen categorical values degrade to zero vectors instead of failing.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from .features import encode_row
from .methods.base import AnomalyModel, RecommendationModel
from .similarity import centroid, cosine_similarity, euclidean_distance
from .stats import mean_or_zero

MAX_SCORED_DISTANCE = 10.0


def cluster_centroids(model: AnomalyModel) -> list[list[float]]:
    """Centroids of the density clusters of an anomaly model"""
    return [
        centroid([model.processed_data[i] for i in cluster])
        for cluster in model.clusters
        if cluster
    ]


def anomaly_score(
    point: Sequence[float],
    model: AnomalyModel,
    centroids: list[list[float]] | None = None,
) -> float:
    """Score in [0, 1), higher meaning more anomalous

    Based on the distance d to the nearest cluster centroid:
    ``1 - 1 / (1 + min(d, 10))``. A model without clusters scores 1.0.
    """
    if centroids is None:
        centroids = cluster_centroids(model)
    if not centroids:
        return 1.0

    nearest = min(euclidean_distance(point, center) for center in centroids)
    return 1 - (1 / (1 + min(nearest, MAX_SCORED_DISTANCE)))


def score_record(record: Mapping[str, Any], model: AnomalyModel) -> float:
    """Encode a raw record with the model's processors and score it"""
    return anomaly_score(encode_row(record, model.field_processors), model)


def anomaly_report(
    model: AnomalyModel, key_id: Any = None, id_field: str = "id"
) -> list[dict[str, Any]]:
    """Anomalies of a model with their scores

    Args:
        model: Trained anomaly model
        key_id: Restrict the report to this record id
        id_field: Record field holding the id

    Raises:
        LookupError: If key_id is given but is not a recorded anomaly
    """
    centroids = cluster_centroids(model)
    report = [
        {
            "id": anomaly.original_row.get(id_field),
            "anomaly_score": anomaly_score(anomaly.feature_vector, model, centroids),
            "detection_date": model.last_updated,
        }
        for anomaly in model.anomalies
    ]

    if key_id is not None:
        report = [entry for entry in report if entry["id"] == key_id]
        if not report:
            raise LookupError(f"Anomaly {key_id} not found")
    return report


def recommend(
    model: RecommendationModel, key_id: Any, limit: int | None = None
) -> dict[str, Any]:
    """Other members of the key's cluster, most similar first

    Raises:
        LookupError: If key_id is not a member of any cluster
    """
    cluster = next((c for c in model.clusters if key_id in c.member_row_ids), None)
    if cluster is None:
        raise LookupError(f"Key {key_id} not found in any cluster")

    recommendations = sorted(
        (
            {"id": member, "similarity": similarity}
            for member, similarity in zip(cluster.member_row_ids, cluster.similarities)
            if member != key_id
        ),
        key=lambda entry: entry["similarity"],
        reverse=True,
    )
    if limit is not None:
        recommendations = recommendations[:limit]

    return {
        "key": key_id,
        "cluster_id": cluster.id,
        "cluster_size": cluster.size,
        "recommendations": recommendations,
    }


def assign_cluster(record: Mapping[str, Any], model: RecommendationModel) -> int | None:
    """Id of the cluster whose centroid is most similar to a raw record"""
    vector = encode_row(record, model.field_processors)
    best_id = None
    best_similarity = -1.0
    for cluster in model.clusters:
        similarity = cosine_similarity(vector, cluster.centroid)
        if similarity > best_similarity:
            best_similarity = similarity
            best_id = cluster.id
    return best_id


def cluster_overview(model: RecommendationModel, sample_size: int = 5) -> list[dict[str, Any]]:
    """Per-cluster summary with a few sample members"""
    return [
        {
            "id": cluster.id,
            "size": cluster.size,
            "average_similarity": mean_or_zero(cluster.similarities),
            "sample_items": list(cluster.member_row_ids[:sample_size]),
        }
        for cluster in model.clusters
    ]
