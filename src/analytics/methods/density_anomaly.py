"""
Density-based anomaly detection (DBSCAN).

Points of the feature matrix that DBSCAN leaves outside every cluster are
anomalies. Each anomaly keeps its original record and feature vector for
downstream inspection.

Workflow:
1. Training: run DBSCAN over the whole matrix, collect clusters and noise
2. Incremental update: run DBSCAN on the new batch alone, append novel
   clusters and non-duplicate anomalies, concatenate the processed data
"""

from collections.abc import Mapping, Sequence
from typing import Any

import numpy as np
import structlog
from sklearn.cluster import DBSCAN

from ..exceptions import EmptyBatchError, EmptyInputError, InconsistentDimensionError
from ..features import FieldProcessor
from ..models import AnomalyConfig
from ..stats import anomaly_stats
from .base import AnomalyModel, AnomalyPoint, UnsupervisedMethod, to_builtin, utc_timestamp
from .merge import absorb_density_clusters, dedupe_anomalies

logger = structlog.get_logger(__name__)


class DensityAnomalyMethod(UnsupervisedMethod):
    """DBSCAN clustering with noise points reported as anomalies"""

    def __init__(self, config: AnomalyConfig | dict | None = None):
        """Initialize with configuration

        Args:
            config: AnomalyConfig, or a dictionary with keys matching its fields
        """
        if not isinstance(config, AnomalyConfig):
            config = AnomalyConfig.from_dict(config)
        self.config = config
        self._name = "anomaly"

        logger.debug(
            "Density anomaly method initialized",
            eps=self.config.eps,
            min_pts=self.config.min_pts,
        )

    @property
    def name(self) -> str:
        return self._name

    def cluster(self, matrix: np.ndarray) -> tuple[list[tuple[int, ...]], list[int]]:
        """Run DBSCAN and split indices into clusters and noise

        Clusters are returned in label order; noise indices ascending.
        """
        labels = DBSCAN(
            eps=self.config.eps,
            min_samples=self.config.min_pts,
            metric="euclidean",
        ).fit_predict(matrix)

        clusters = [
            tuple(int(i) for i in np.flatnonzero(labels == label))
            for label in sorted(set(labels.tolist()) - {-1})
        ]
        noise = [int(i) for i in np.flatnonzero(labels == -1)]
        return clusters, noise

    def _anomalies(
        self, matrix: np.ndarray, rows: Sequence[Mapping[str, Any]], noise: Sequence[int]
    ) -> tuple[AnomalyPoint, ...]:
        return tuple(
            AnomalyPoint(
                index=idx,
                original_row=to_builtin(dict(rows[idx])),
                feature_vector=tuple(matrix[idx].tolist()),
            )
            for idx in noise
        )

    def train(
        self,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> AnomalyModel:
        """Train a density anomaly model from scratch

        Raises:
            EmptyInputError: If the matrix has no rows
        """
        array = self.validate_matrix(matrix, rows)
        if len(array) == 0:
            raise EmptyInputError("No data provided for anomaly detection")

        clusters, noise = self.cluster(array)
        anomalies = self._anomalies(array, rows, noise)
        processed_data = tuple(tuple(row) for row in array.tolist())
        stats = anomaly_stats(processed_data, clusters, len(anomalies))

        if not clusters:
            logger.warning(
                "No clusters formed, every point is an anomaly",
                points=len(array),
                eps=self.config.eps,
                min_pts=self.config.min_pts,
            )

        logger.info(
            "Anomaly model trained",
            points=stats.total_points,
            dimensions=stats.dimensions,
            clusters=stats.num_clusters,
            anomalies=stats.num_anomalies,
            anomaly_pct=round(stats.anomaly_percentage, 2),
        )

        return AnomalyModel(
            clusters=tuple(clusters),
            anomalies=anomalies,
            processed_data=processed_data,
            field_processors=tuple(processors),
            config=self.config,
            stats=stats,
            last_updated=utc_timestamp(),
        )

    def merge(
        self,
        existing: AnomalyModel,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> AnomalyModel:
        """Fold a new batch into an existing anomaly model

        Raises:
            EmptyBatchError: If the new batch has no rows
            InconsistentDimensionError: If the batch dimension differs from the model's
        """
        if not isinstance(existing, AnomalyModel):
            raise TypeError(f"Expected AnomalyModel, got {type(existing).__name__}")

        array = self.validate_matrix(matrix, rows)
        if len(array) == 0:
            raise EmptyBatchError("No valid data in new batch after preprocessing")

        if existing.processed_data and len(existing.processed_data[0]) != array.shape[1]:
            raise InconsistentDimensionError(len(existing.processed_data[0]), array.shape[1])

        new_clusters, noise = self.cluster(array)
        new_anomalies = self._anomalies(array, rows, noise)
        new_data = tuple(tuple(row) for row in array.tolist())
        offset = len(existing.processed_data)

        clusters = absorb_density_clusters(
            existing.clusters,
            existing.processed_data,
            new_clusters,
            new_data,
            self.config.eps,
        )
        anomalies, added = dedupe_anomalies(
            existing.anomalies, new_anomalies, offset, self.config.eps
        )

        processed_data = existing.processed_data + new_data
        stats = anomaly_stats(processed_data, clusters.clusters, len(anomalies))

        logger.info(
            "Anomaly model merged",
            new_points=len(new_data),
            new_clusters=len(new_clusters),
            clusters_appended=clusters.appended,
            clusters_absorbed=clusters.merged,
            anomalies_found=len(new_anomalies),
            anomalies_added=added,
            total_points=stats.total_points,
        )

        return AnomalyModel(
            clusters=clusters.clusters,
            anomalies=anomalies,
            processed_data=processed_data,
            field_processors=tuple(processors) or existing.field_processors,
            config=self.config,
            stats=stats,
            last_updated=utc_timestamp(),
        )

    def load(self, data: dict) -> AnomalyModel:
        return AnomalyModel.from_dict(data)


def train_anomaly(
    matrix: np.ndarray,
    rows: Sequence[Mapping[str, Any]],
    config: AnomalyConfig | dict | None = None,
    processors: Sequence[FieldProcessor] = (),
) -> AnomalyModel:
    """Train a density anomaly model from scratch"""
    return DensityAnomalyMethod(config).train(matrix, rows, processors)


def merge_anomaly(
    existing: AnomalyModel,
    new_matrix: np.ndarray,
    new_rows: Sequence[Mapping[str, Any]],
    config: AnomalyConfig | dict | None = None,
    processors: Sequence[FieldProcessor] = (),
) -> AnomalyModel:
    """Fold a new batch into an existing anomaly model

    Uses the existing model's configuration when none is given.
    """
    method = DensityAnomalyMethod(existing.config if config is None else config)
    return method.merge(existing, new_matrix, new_rows, processors)
