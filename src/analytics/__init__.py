"""
Unsupervised Analytics Engine

Incremental, unsupervised analytics over tabular rows.

Architecture:
- Feature Extraction: Frozen per-field processors turn raw rows into a dense matrix
- Models: Density-based anomaly detection and centroid-based recommendation clusters
- Incremental Updates: New batches are merged into persisted models without full retraining
- Queries: Anomaly scores, reports and in-cluster recommendations over trained models

Usage:
    # Train or update a model from a rows file
    python -m src.analytics.train --rows rows.csv --model anomaly
"""

from .exceptions import AnalyticsError
from .features import FieldProcessor, build_feature_matrix
from .methods import AnomalyModel, RecommendationModel, get_method, load_model
from .models import AnomalyConfig, EndpointConfig, RecommendationConfig, resolve_config
from .trainer import ModelTrainer, train_model

__all__ = [
    "AnalyticsError",
    "AnomalyConfig",
    "AnomalyModel",
    "EndpointConfig",
    "FieldProcessor",
    "ModelTrainer",
    "RecommendationConfig",
    "RecommendationModel",
    "build_feature_matrix",
    "get_method",
    "load_model",
    "resolve_config",
    "train_model",
]
