"""
Tests for model statistics.
"""

import pytest

from src.analytics.methods.base import Cluster
from src.analytics.stats import AnomalyStats, anomaly_stats, cluster_stats, mean_or_zero


class TestAnomalyStats:
    """Tests for anomaly_stats."""

    def test_counts_and_percentage(self):
        """Percentages are relative to every processed point."""
        data = [[0.0, 0.0], [0.1, 0.0], [1.0, 1.0], [5.0, 5.0]]

        stats = anomaly_stats(data, clusters=[(0, 1), (2,)], num_anomalies=1)

        assert stats.total_points == 4
        assert stats.dimensions == 2
        assert stats.num_clusters == 2
        assert stats.cluster_sizes == (2, 1)
        assert stats.anomaly_percentage == pytest.approx(25.0)

    def test_no_points(self):
        """Empty data yields zeroed statistics."""
        stats = anomaly_stats([], clusters=[], num_anomalies=0)

        assert stats.total_points == 0
        assert stats.dimensions == 0
        assert stats.anomaly_percentage == 0.0

    def test_round_trip(self):
        """Statistics survive to_dict/from_dict."""
        stats = anomaly_stats([[0.0], [1.0]], clusters=[(0, 1)], num_anomalies=0)

        assert AnomalyStats.from_dict(stats.to_dict()) == stats


class TestClusterStats:
    """Tests for cluster_stats."""

    def test_average_of_cluster_means(self):
        """Empty clusters contribute a mean similarity of 0."""
        clusters = [
            Cluster(id=0, member_row_ids=(1, 2), centroid=(1.0,), size=2, similarities=(1.0, 0.5)),
            Cluster(id=1, member_row_ids=(), centroid=(0.0,), size=0, similarities=()),
        ]

        stats = cluster_stats(clusters, dimensions=1)

        assert stats.total_points == 2
        assert stats.num_clusters == 2
        assert stats.cluster_sizes == (2, 0)
        assert stats.average_similarity == pytest.approx(0.375)

    def test_mean_or_zero(self):
        """Test the empty-safe mean."""
        assert mean_or_zero([]) == 0.0
        assert mean_or_zero([1.0, 3.0]) == 2.0
