"""
Base abstract interface and value objects for unsupervised analytics methods.

All methods must inherit from UnsupervisedMethod and implement:
- train(): Build a model from scratch on one feature matrix
- merge(): Fold a new batch into a previously persisted model

Models are immutable values: a merge always returns a new model and never
touches the one passed in. Every model round-trips through to_dict() /
from_dict() as JSON-compatible data.
"""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, ClassVar

import numpy as np

from ..exceptions import InconsistentDimensionError
from ..features import FieldProcessor, is_missing
from ..models import AnomalyConfig, FeatureConfig, RecommendationConfig
from ..stats import AnomalyStats, ClusterStats


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat()


def to_builtin(value: Any) -> Any:
    """Convert numpy/pandas values to JSON-safe Python builtins"""
    if isinstance(value, Mapping):
        return {str(k): to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_builtin(v) for v in value]
    if isinstance(value, np.ndarray):
        return to_builtin(value.tolist())
    if is_missing(value):
        return None
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (np.floating, Decimal)):
        return float(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class Cluster:
    """A labeled centroid cluster of the recommendation model"""

    id: int
    member_row_ids: tuple
    centroid: tuple[float, ...]
    size: int
    similarities: tuple[float, ...]

    def __post_init__(self):
        if not self.size == len(self.member_row_ids) == len(self.similarities):
            raise ValueError(
                f"Cluster {self.id} is inconsistent: size={self.size}, "
                f"members={len(self.member_row_ids)}, similarities={len(self.similarities)}"
            )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_row_ids": to_builtin(list(self.member_row_ids)),
            "centroid": list(self.centroid),
            "size": self.size,
            "similarities": list(self.similarities),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Cluster":
        return cls(
            id=int(data["id"]),
            member_row_ids=tuple(data["member_row_ids"]),
            centroid=tuple(float(v) for v in data["centroid"]),
            size=int(data["size"]),
            similarities=tuple(float(v) for v in data["similarities"]),
        )


@dataclass(frozen=True)
class AnomalyPoint:
    """A point the density algorithm left outside every cluster"""

    index: int
    original_row: dict
    feature_vector: tuple[float, ...]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "original_row": to_builtin(self.original_row),
            "feature_vector": list(self.feature_vector),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnomalyPoint":
        return cls(
            index=int(data["index"]),
            original_row=dict(data["original_row"]),
            feature_vector=tuple(float(v) for v in data["feature_vector"]),
        )


@dataclass(frozen=True)
class AnomalyModel:
    """Trained density anomaly model

    ``clusters`` hold row indices into ``processed_data``.
    """

    model_type: ClassVar[str] = "anomaly"

    clusters: tuple[tuple[int, ...], ...]
    anomalies: tuple[AnomalyPoint, ...]
    processed_data: tuple[tuple[float, ...], ...]
    field_processors: tuple[FieldProcessor, ...]
    config: AnomalyConfig
    stats: AnomalyStats
    last_updated: str

    @property
    def dimensions(self) -> int:
        return self.stats.dimensions

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            "model_type": self.model_type,
            "clusters": [list(cluster) for cluster in self.clusters],
            "anomalies": [anomaly.to_dict() for anomaly in self.anomalies],
            "processed_data": [list(row) for row in self.processed_data],
            "field_processors": [p.to_dict() for p in self.field_processors],
            "config": self.config.to_dict(),
            "stats": self.stats.to_dict(),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnomalyModel":
        """Create from dictionary"""
        return cls(
            clusters=tuple(tuple(int(i) for i in cluster) for cluster in data["clusters"]),
            anomalies=tuple(AnomalyPoint.from_dict(a) for a in data["anomalies"]),
            processed_data=tuple(
                tuple(float(v) for v in row) for row in data["processed_data"]
            ),
            field_processors=tuple(
                FieldProcessor.from_dict(p) for p in data["field_processors"]
            ),
            config=AnomalyConfig.from_dict(data["config"]),
            stats=AnomalyStats.from_dict(data["stats"]),
            last_updated=data["last_updated"],
        )


@dataclass(frozen=True)
class RecommendationModel:
    """Trained centroid cluster model"""

    model_type: ClassVar[str] = "recommendation"

    clusters: tuple[Cluster, ...]
    field_processors: tuple[FieldProcessor, ...]
    config: RecommendationConfig
    adjusted_k: int
    stats: ClusterStats
    last_updated: str

    @property
    def dimensions(self) -> int:
        return self.stats.dimensions

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return {
            "model_type": self.model_type,
            "clusters": [cluster.to_dict() for cluster in self.clusters],
            "field_processors": [p.to_dict() for p in self.field_processors],
            "config": {**self.config.to_dict(), "adjusted_k": self.adjusted_k},
            "stats": self.stats.to_dict(),
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecommendationModel":
        """Create from dictionary"""
        config = dict(data["config"])
        adjusted_k = int(config.pop("adjusted_k", data.get("adjusted_k", 0)))
        return cls(
            clusters=tuple(Cluster.from_dict(c) for c in data["clusters"]),
            field_processors=tuple(
                FieldProcessor.from_dict(p) for p in data["field_processors"]
            ),
            config=RecommendationConfig.from_dict(config),
            adjusted_k=adjusted_k,
            stats=ClusterStats.from_dict(data["stats"]),
            last_updated=data["last_updated"],
        )


Model = AnomalyModel | RecommendationModel


class UnsupervisedMethod(ABC):
    """Abstract base class for all unsupervised analytics methods

    Each method must implement:
    1. train() - Build a model from one feature matrix
    2. merge() - Fold a new batch into an existing model without full retraining
    """

    config: FeatureConfig

    @abstractmethod
    def train(
        self,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> Model:
        """Train a new model from scratch

        Args:
            matrix: Feature matrix of shape (n, D), row i encoding rows[i]
            rows: Original records, aligned with the matrix
            processors: Frozen field processors that produced the matrix

        Returns:
            The trained model
        """
        pass

    @abstractmethod
    def merge(
        self,
        existing: Model,
        matrix: np.ndarray,
        rows: Sequence[Mapping[str, Any]],
        processors: Sequence[FieldProcessor] = (),
    ) -> Model:
        """Fold a new batch into an existing model

        Returns:
            A new model; ``existing`` is left untouched
        """
        pass

    @abstractmethod
    def load(self, data: dict) -> Model:
        """Rebuild a persisted model of this method's type"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of the method, also the model type key"""
        pass

    def get_config(self) -> dict[str, Any]:
        """Get the current configuration of this method"""
        return self.config.to_dict()

    def validate_matrix(self, matrix: Any, rows: Sequence[Any]) -> np.ndarray:
        """Coerce to a 2-D float array aligned with rows

        Raises:
            InconsistentDimensionError: If the matrix is ragged
            ValueError: If matrix and rows are not aligned
        """
        try:
            array = np.asarray(matrix, dtype=float)
        except ValueError as e:
            lengths = sorted({len(row) for row in matrix})
            raise InconsistentDimensionError(lengths[0], lengths[-1]) from e

        if array.size == 0:
            array = array.reshape(0, array.shape[1] if array.ndim == 2 else 0)
        if array.ndim != 2:
            raise InconsistentDimensionError(0, array.ndim)
        if len(array) != len(rows):
            raise ValueError(f"Matrix has {len(array)} rows but {len(rows)} records were given")
        return array

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(config={self.get_config()})"
