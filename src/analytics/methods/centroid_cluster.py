"""
Centroid-based clustering (k-means) backing the recommendation model.

Rows are grouped into labeled clusters; every member carries the cosine
similarity between its feature vector and the cluster centroid, which ranks
recommendations inside a cluster.

Workflow:
1. Training: shrink k to what the batch supports, run k-means, build clusters
2. Incremental update: cluster the new batch alone, then reconcile its
   clusters with the existing ones by centroid similarity
"""

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
import structlog
from sklearn.cluster import KMeans

from ..exceptions import InconsistentDimensionError, InsufficientDataError
from ..features import FieldProcessor
from ..models import RecommendationConfig
from ..similarity import cosine_similarity
from ..stats import cluster_stats
from .base import Cluster, RecommendationModel, UnsupervisedMethod, to_builtin, utc_timestamp
from .merge import reconcile_clusters

logger = structlog.get_logger(__name__)


class CentroidClusterMethod(UnsupervisedMethod):
    """k-means clustering with per-member centroid similarity"""

    def __init__(self, config: RecommendationConfig | dict | None = None, id_field: str = "id"):
        """Initialize with configuration

        Args:
            config: RecommendationConfig, or a dictionary with keys matching its fields
            id_field: Record field holding the row identifier stored in clusters
        """
        if not isinstance(config, RecommendationConfig):
            config = RecommendationConfig.from_dict(config)
        self.config = config
        self.id_field = id_field
        self._name = "recommendation"

        logger.debug(
            "Centroid cluster method initialized",
            k=self.config.k,
            min_cluster_size=self.config.min_cluster_size,
            similarity_threshold=self.config.similarity_threshold,
        )

    @property
    def name(self) -> str:
        return self._name

    def adjusted_k(self, num_points: int) -> int:
        """Number of clusters a batch of num_points supports

        ``min(k, max(2, num_points // min_cluster_size))``, never more than the
        number of points.
        """
        k = min(self.config.k, max(2, num_points // self.config.min_cluster_size))
        return max(1, min(k, num_points))

    def _row_id(self, row: Mapping[str, Any], position: int) -> Any:
        row_id = row.get(self.id_field)
        return position if row_id is None else to_builtin(row_id)

    def build_clusters(
        self, matrix: np.ndarray, rows: Sequence[Mapping[str, Any]], id_offset: int = 0
    ) -> tuple[tuple[Cluster, ...], int]:
        """Run k-means and build one Cluster per centroid

        Rows without an id are identified by ``id_offset`` plus their position
        in the batch.

        Returns:
            The clusters (ids 0..k-1) and the k that was used
        """
        k = self.adjusted_k(len(matrix))
        kmeans = KMeans(
            n_clusters=k,
            n_init=self.config.n_init,
            max_iter=self.config.max_iterations,
            random_state=self.config.random_state,
        )
        labels = kmeans.fit_predict(matrix)
        centroids = kmeans.cluster_centers_

        clusters = []
        for cluster_idx in range(k):
            members = np.flatnonzero(labels == cluster_idx)
            center = centroids[cluster_idx]
            clusters.append(
                Cluster(
                    id=cluster_idx,
                    member_row_ids=tuple(
                        self._row_id(rows[i], id_offset + int(i)) for i in members
                    ),
                    centroid=tuple(center.tolist()),
                    size=len(members),
                    similarities=tuple(cosine_similarity(matrix[i], center) for i in members),
                )
            )
        return tuple(clusters), k

    def train(
        self,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> RecommendationModel:
        """Train a recommendation model from scratch

        Raises:
            InsufficientDataError: If there are fewer rows than min_cluster_size
        """
        array = self.validate_matrix(matrix, rows)
        if len(array) < self.config.min_cluster_size:
            raise InsufficientDataError(len(array), self.config.min_cluster_size)

        clusters, k = self.build_clusters(array, rows)
        stats = cluster_stats(clusters, dimensions=array.shape[1])

        logger.info(
            "Recommendation model trained",
            points=stats.total_points,
            dimensions=stats.dimensions,
            requested_k=self.config.k,
            adjusted_k=k,
            average_similarity=round(stats.average_similarity, 4),
        )

        return RecommendationModel(
            clusters=clusters,
            field_processors=tuple(processors),
            config=self.config,
            adjusted_k=k,
            stats=stats,
            last_updated=utc_timestamp(),
        )

    def merge(
        self,
        existing: RecommendationModel,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> RecommendationModel:
        """Fold a new batch into an existing recommendation model

        A batch smaller than min_cluster_size is a no-op: ``existing`` is
        returned unchanged.

        Raises:
            InconsistentDimensionError: If the batch dimension differs from the model's
        """
        if not isinstance(existing, RecommendationModel):
            raise TypeError(f"Expected RecommendationModel, got {type(existing).__name__}")

        array = self.validate_matrix(matrix, rows)
        if len(array) < self.config.min_cluster_size:
            logger.info(
                "Not enough new data for clustering, keeping existing model",
                points=len(array),
                min_cluster_size=self.config.min_cluster_size,
            )
            return existing

        if existing.dimensions and existing.dimensions != array.shape[1]:
            raise InconsistentDimensionError(existing.dimensions, array.shape[1])

        new_clusters, k = self.build_clusters(
            array, rows, id_offset=existing.stats.total_points
        )
        result = reconcile_clusters(
            existing.clusters, new_clusters, self.config.similarity_threshold
        )
        stats = cluster_stats(result.clusters, dimensions=existing.dimensions)

        logger.info(
            "Recommendation model merged",
            new_points=len(array),
            new_clusters=k,
            merged=result.merged,
            appended=result.appended,
            total_clusters=stats.num_clusters,
            total_points=stats.total_points,
        )

        return RecommendationModel(
            clusters=result.clusters,
            field_processors=tuple(processors) or existing.field_processors,
            config=self.config,
            adjusted_k=existing.adjusted_k,
            stats=stats,
            last_updated=utc_timestamp(),
        )

    def load(self, data: dict) -> RecommendationModel:
        return RecommendationModel.from_dict(data)


def train_cluster(
    matrix: np.ndarray,
    rows: Sequence[Mapping[str, Any]],
    config: RecommendationConfig | dict | None = None,
    processors: Sequence[FieldProcessor] = (),
    id_field: str = "id",
) -> RecommendationModel:
    """Train a recommendation model from scratch"""
    return CentroidClusterMethod(config, id_field=id_field).train(matrix, rows, processors)


def merge_cluster(
    existing: RecommendationModel,
    new_matrix: np.ndarray,
    new_rows: Sequence[Mapping[str, Any]],
    config: RecommendationConfig | dict | None = None,
    processors: Sequence[FieldProcessor] = (),
    id_field: str = "id",
) -> RecommendationModel:
    """Fold a new batch into an existing recommendation model

    Uses the existing model's configuration when none is given.
    """
    method = CentroidClusterMethod(
        existing.config if config is None else config, id_field=id_field
    )
    return method.merge(existing, new_matrix, new_rows, processors)
