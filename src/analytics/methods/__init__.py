"""
Unsupervised analytics methods registry and factory.
"""

from .base import (
    AnomalyModel,
    AnomalyPoint,
    Cluster,
    Model,
    RecommendationModel,
    UnsupervisedMethod,
)
from .centroid_cluster import CentroidClusterMethod, merge_cluster, train_cluster
from .density_anomaly import DensityAnomalyMethod, merge_anomaly, train_anomaly
from ..exceptions import UnknownModelError

# Registry of available methods, keyed by model type
METHOD_REGISTRY = {
    "anomaly": DensityAnomalyMethod,
    "recommendation": CentroidClusterMethod,
}


def get_method(method_name: str, config=None, **kwargs) -> UnsupervisedMethod:
    """Factory to create an analytics method

    Args:
        method_name: Model type (e.g., 'anomaly')
        config: Config dataclass or dict for the method
        **kwargs: Extra constructor arguments (e.g., id_field for recommendation)

    Returns:
        Instance of the method

    Raises:
        UnknownModelError: If method_name is not registered
    """
    if method_name not in METHOD_REGISTRY:
        available = ", ".join(METHOD_REGISTRY.keys())
        raise UnknownModelError(f"Unknown method '{method_name}'. Available methods: {available}")

    method_class = METHOD_REGISTRY[method_name]
    return method_class(config, **kwargs)


def load_model(data: dict) -> Model:
    """Rebuild a persisted model from its dictionary form"""
    model_type = data.get("model_type")
    if model_type == AnomalyModel.model_type:
        return AnomalyModel.from_dict(data)
    if model_type == RecommendationModel.model_type:
        return RecommendationModel.from_dict(data)
    raise UnknownModelError(f"Unknown model type '{model_type}' in persisted model")


def list_methods() -> list[str]:
    """List all available methods"""
    return list(METHOD_REGISTRY.keys())


__all__ = [
    "AnomalyModel",
    "AnomalyPoint",
    "CentroidClusterMethod",
    "Cluster",
    "DensityAnomalyMethod",
    "Model",
    "RecommendationModel",
    "UnsupervisedMethod",
    "get_method",
    "list_methods",
    "load_model",
    "merge_anomaly",
    "merge_cluster",
    "train_anomaly",
    "train_cluster",
]
