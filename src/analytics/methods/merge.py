"""
Incremental merge logic: folds the result of training on a new batch into a
previously persisted model without retraining on the full history.

- Centroid clusters are reconciled by centroid cosine similarity: a new
  cluster either folds into its most similar existing cluster (size-weighted
  centroid) or is appended under a fresh id.
- Density clusters are appended only when their centroid is novel (at least
  eps away from every tracked centroid); otherwise they are absorbed and
  their points stay untracked until the next full retrain.
- Anomalies are appended unless one already recorded lies within eps.

All functions return new values and leave their inputs untouched.
"""

from collections.abc import Sequence
from dataclasses import replace
from typing import NamedTuple

import numpy as np
import structlog

from ..similarity import centroid, cosine_similarity, euclidean_distance
from .base import AnomalyPoint, Cluster

logger = structlog.get_logger(__name__)


class ReconcileResult(NamedTuple):
    clusters: tuple
    merged: int
    appended: int


def next_cluster_id(clusters: Sequence[Cluster]) -> int:
    """max existing id + 1, or 0 when there are no clusters"""
    return max(cluster.id for cluster in clusters) + 1 if clusters else 0


def fold_cluster(target: Cluster, incoming: Cluster) -> Cluster:
    """Merge ``incoming`` into ``target`` with a size-weighted centroid"""
    merged_size = target.size + incoming.size
    existing_weight = merged_size - incoming.size
    new_weight = incoming.size
    total_weight = existing_weight + new_weight

    if total_weight == 0:
        merged_centroid = tuple(target.centroid)
    else:
        weighted = (
            np.asarray(target.centroid, dtype=float) * existing_weight
            + np.asarray(incoming.centroid, dtype=float) * new_weight
        )
        merged_centroid = tuple((weighted / total_weight).tolist())

    return Cluster(
        id=target.id,
        member_row_ids=tuple(target.member_row_ids) + tuple(incoming.member_row_ids),
        centroid=merged_centroid,
        size=merged_size,
        similarities=tuple(target.similarities) + tuple(incoming.similarities),
    )


def reconcile_clusters(
    existing: Sequence[Cluster],
    incoming: Sequence[Cluster],
    similarity_threshold: float,
) -> ReconcileResult:
    """Reconcile newly trained clusters with the clusters of an existing model

    Each incoming cluster is compared with every cluster reconciled so far
    (including ones appended earlier in this call). If the best centroid
    cosine similarity exceeds the threshold the two are folded, otherwise the
    incoming cluster is appended with the next free id.
    """
    working = list(existing)
    merged = appended = 0

    for new_cluster in incoming:
        best_index = None
        best_similarity = -1.0
        for idx, cluster in enumerate(working):
            similarity = cosine_similarity(new_cluster.centroid, cluster.centroid)
            if similarity > best_similarity:
                best_similarity = similarity
                best_index = idx

        if best_index is not None and best_similarity > similarity_threshold:
            logger.debug(
                "Folding cluster into existing cluster",
                target_id=working[best_index].id,
                similarity=round(best_similarity, 4),
                new_size=new_cluster.size,
            )
            working[best_index] = fold_cluster(working[best_index], new_cluster)
            merged += 1
        else:
            cluster_id = next_cluster_id(working)
            working.append(replace(new_cluster, id=cluster_id))
            appended += 1

    return ReconcileResult(tuple(working), merged, appended)


def absorb_density_clusters(
    existing_clusters: Sequence[Sequence[int]],
    existing_data: Sequence[Sequence[float]],
    new_clusters: Sequence[Sequence[int]],
    new_data: Sequence[Sequence[float]],
    eps: float,
) -> ReconcileResult:
    """Append density clusters of a new batch whose centroids are novel

    Indices of appended clusters are offset by ``len(existing_data)`` so they
    address the concatenated processed data.
    """
    offset = len(existing_data)
    tracked = [
        centroid([existing_data[i] for i in cluster]) for cluster in existing_clusters
    ]
    result = [tuple(cluster) for cluster in existing_clusters]
    absorbed = appended = 0

    for cluster in new_clusters:
        center = centroid([new_data[i] for i in cluster])
        is_novel = all(euclidean_distance(center, known) >= eps for known in tracked)
        if is_novel:
            result.append(tuple(int(i) + offset for i in cluster))
            tracked.append(center)
            appended += 1
        else:
            absorbed += 1

    return ReconcileResult(tuple(result), absorbed, appended)


def dedupe_anomalies(
    existing: Sequence[AnomalyPoint],
    incoming: Sequence[AnomalyPoint],
    offset: int,
    eps: float,
) -> tuple[tuple[AnomalyPoint, ...], int]:
    """Append new anomalies unless a recorded one lies within eps

    Incoming anomalies are also checked against those appended earlier in the
    same call, so a batch never records two near-identical anomalies.

    Returns:
        The merged anomalies and the number appended
    """
    merged = list(existing)
    added = 0
    for anomaly in incoming:
        is_duplicate = any(
            euclidean_distance(anomaly.feature_vector, known.feature_vector) < eps
            for known in merged
        )
        if not is_duplicate:
            merged.append(replace(anomaly, index=anomaly.index + offset))
            added += 1
    return tuple(merged), added
