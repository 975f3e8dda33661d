"""
Pytest configuration and shared fixtures.
"""

import numpy as np
import pytest

from src.analytics.models import AnomalyConfig, EndpointConfig, RecommendationConfig


# Row fixtures
@pytest.fixture
def sensor_rows():
    """Two tight groups of readings plus one isolated reading (id 7)."""
    return [
        {"id": 1, "temp": 0.0, "load": 0.0},
        {"id": 2, "temp": 0.1, "load": 0.0},
        {"id": 3, "temp": 0.0, "load": 0.1},
        {"id": 4, "temp": 10.0, "load": 10.0},
        {"id": 5, "temp": 10.1, "load": 10.0},
        {"id": 6, "temp": 10.0, "load": 10.1},
        {"id": 7, "temp": 5.0, "load": 0.0},
    ]


@pytest.fixture
def product_rows():
    """Products in two well separated groups, with a categorical field."""
    return [
        {"id": "p1", "price": 1.0, "rating": 9.0, "category": "books"},
        {"id": "p2", "price": 1.2, "rating": 8.8, "category": "books"},
        {"id": "p3", "price": 0.9, "rating": 9.1, "category": "books"},
        {"id": "p4", "price": 9.0, "rating": 1.0, "category": "tools"},
        {"id": "p5", "price": 9.2, "rating": 1.2, "category": "tools"},
        {"id": "p6", "price": 8.9, "rating": 0.9, "category": "tools"},
    ]


@pytest.fixture
def two_group_matrix():
    """Feature matrix with two groups pointing in orthogonal directions."""
    return np.array(
        [
            [1.0, 0.0],
            [0.9, 0.1],
            [1.0, 0.05],
            [0.0, 1.0],
            [0.1, 0.9],
            [0.05, 1.0],
        ]
    )


# Config fixtures
@pytest.fixture
def anomaly_config():
    """Anomaly configuration with a radius separating the sensor groups."""
    return AnomalyConfig(eps=0.2, min_pts=2)


@pytest.fixture
def recommendation_config():
    """Recommendation configuration asking for two clusters."""
    return RecommendationConfig(k=2, min_cluster_size=2, similarity_threshold=0.5)


@pytest.fixture
def endpoint():
    """Endpoint configuration for a sensors table."""
    return EndpointConfig(db_table="sensors", allow_read=["temp", "load"], keys=["id"])
