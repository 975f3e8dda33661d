"""
Configuration models for the analytics engine.

Tuning parameters are resolved once per training call into an explicit,
immutable dataclass and passed down; nothing reads configuration from shared
state.
"""

import math
from dataclasses import asdict, dataclass, field, fields
from typing import Any

import structlog

from .exceptions import ConfigurationError, UnknownModelError

logger = structlog.get_logger(__name__)

MISSING_VALUE_STRATEGIES = ("mean", "median", "mode", "zero", "remove")

# Keys as written in the JSON endpoint configuration files
_CAMEL_ALIASES = {
    "minPts": "min_pts",
    "minClusterSize": "min_cluster_size",
    "weightedFields": "weighted_fields",
    "similarityThreshold": "similarity_threshold",
    "scalingRange": "scaling_range",
    "missingValueStrategy": "missing_value_strategy",
    "randomState": "random_state",
    "nInit": "n_init",
    "maxIterations": "max_iterations",
    "dbTable": "db_table",
    "allowRead": "allow_read",
    "incrementalTraining": "incremental_training",
    "batchSize": "batch_size",
}


def normalize_keys(data: dict | None) -> dict:
    """Map camelCase configuration keys to their snake_case field names"""
    if not data:
        return {}
    return {_CAMEL_ALIASES.get(key, key): value for key, value in data.items()}


@dataclass
class EndpointConfig:
    """Endpoint-level settings: which table, which fields, how to batch"""

    db_table: str
    allow_read: list[str] | None = None  # None = every key of the first row
    keys: list[str] = field(default_factory=lambda: ["id"])
    incremental_training: bool = True
    batch_size: int = 1000

    def __post_init__(self):
        if not self.db_table:
            raise ConfigurationError("db_table is required")
        if self.batch_size < 1:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size}")

    @property
    def id_field(self) -> str:
        """Field holding the opaque row identifier"""
        return self.keys[0] if self.keys else "id"

    def model_key(self, model_type: str) -> str:
        """Key under which the external store keeps this endpoint's model"""
        return f"{self.db_table}_{model_type}"

    @classmethod
    def from_dict(cls, data: dict) -> "EndpointConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in normalize_keys(data).items() if k in known})


@dataclass(frozen=True)
class FeatureConfig:
    """Settings shared by every model that goes through the feature builder"""

    scaling_range: tuple[float, float] = (0.0, 1.0)
    missing_value_strategy: str = "mean"
    weighted_fields: dict[str, float] = field(default_factory=dict)

    def __post_init__(self):
        try:
            low, high = (float(bound) for bound in self.scaling_range)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(
                f"scaling_range must be two numbers, got {self.scaling_range!r}"
            ) from e
        if low >= high:
            raise ConfigurationError(
                f"Invalid scaling_range {self.scaling_range!r}: min must be less than max"
            )
        object.__setattr__(self, "scaling_range", (low, high))

        if self.missing_value_strategy not in MISSING_VALUE_STRATEGIES:
            raise ConfigurationError(
                f"Invalid missing_value_strategy '{self.missing_value_strategy}'. "
                f"Must be one of: {', '.join(MISSING_VALUE_STRATEGIES)}"
            )

        weights = dict(self.weighted_fields or {})
        for name, weight in weights.items():
            if not isinstance(weight, (int, float)) or isinstance(weight, bool):
                raise ConfigurationError(f"Weight for field '{name}' must be a number")
        object.__setattr__(self, "weighted_fields", weights)

    def weight_for(self, field_name: str) -> float:
        return float(self.weighted_fields.get(field_name, 1.0))

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary"""
        data = asdict(self)
        data["scaling_range"] = list(self.scaling_range)
        return data

    @classmethod
    def from_dict(cls, data: dict | None) -> "FeatureConfig":
        """Create from a (possibly camelCase) dictionary, ignoring unknown keys"""
        normalized = normalize_keys(data)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(normalized) - known)
        if unknown:
            logger.debug("Ignoring unknown config keys", config=cls.__name__, keys=unknown)
        return cls(**{k: v for k, v in normalized.items() if k in known})


def _as_float(name: str, value: Any) -> float:
    """Coerce a tuning value to a finite float"""
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(number):
        raise ConfigurationError(f"{name} must be finite, got {value!r}")
    return number


def _as_positive_int(name: str, value: Any) -> int:
    number = _as_float(name, value)
    if not number.is_integer() or number < 1:
        raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
    return int(number)


@dataclass(frozen=True)
class AnomalyConfig(FeatureConfig):
    """Tuning for the density-based anomaly model"""

    eps: float = 0.5  # neighbourhood radius
    min_pts: int = 2  # neighbourhood size (point included) for a core point

    def __post_init__(self):
        super().__post_init__()
        eps = _as_float("eps", self.eps)
        if eps <= 0:
            raise ConfigurationError(f"eps must be > 0, got {self.eps}")
        object.__setattr__(self, "eps", eps)
        object.__setattr__(self, "min_pts", _as_positive_int("min_pts", self.min_pts))


@dataclass(frozen=True)
class RecommendationConfig(FeatureConfig):
    """Tuning for the centroid-based recommendation model"""

    k: int = 3
    min_cluster_size: int = 2
    similarity_threshold: float = 0.5

    # k-means solver settings
    random_state: int = 42
    n_init: int = 10
    max_iterations: int = 300

    def __post_init__(self):
        super().__post_init__()
        for name in ("k", "min_cluster_size", "n_init", "max_iterations"):
            object.__setattr__(self, name, _as_positive_int(name, getattr(self, name)))
        threshold = _as_float("similarity_threshold", self.similarity_threshold)
        if not -1.0 <= threshold <= 1.0:
            raise ConfigurationError(
                f"similarity_threshold must be within [-1, 1], got {self.similarity_threshold}"
            )
        object.__setattr__(self, "similarity_threshold", threshold)


CONFIG_CLASSES: dict[str, type[FeatureConfig]] = {
    "anomaly": AnomalyConfig,
    "recommendation": RecommendationConfig,
}


def _section(data: dict | None, model_type: str) -> dict:
    """Pick the per-model section (e.g. ``anomalyConfig``) if the dict has one"""
    if not data:
        return {}
    for key in (f"{model_type}Config", f"{model_type}_config"):
        if isinstance(data.get(key), dict):
            return data[key]
    return data


def resolve_config(
    model_type: str,
    overrides: dict[str, Any] | None = None,
    defaults: dict[str, Any] | None = None,
) -> FeatureConfig:
    """Resolve the tuning configuration for one model type

    Layers, lowest priority first: dataclass defaults, ``defaults`` (global
    settings), ``overrides`` (endpoint settings). Either dict may hold the
    values flat or under a ``<model>Config`` section.

    Raises:
        UnknownModelError: If model_type has no configuration class
        ConfigurationError: If the merged values are invalid
    """
    if model_type not in CONFIG_CLASSES:
        available = ", ".join(CONFIG_CLASSES)
        raise UnknownModelError(f"Unknown model '{model_type}'. Available models: {available}")

    merged = {
        **normalize_keys(_section(defaults, model_type)),
        **normalize_keys(_section(overrides, model_type)),
    }
    return CONFIG_CLASSES[model_type].from_dict(merged)
