"""
Tests for incremental merge primitives.
"""

import pytest

from src.analytics.methods.base import AnomalyPoint, Cluster
from src.analytics.methods.merge import (
    absorb_density_clusters,
    dedupe_anomalies,
    fold_cluster,
    next_cluster_id,
    reconcile_clusters,
)


def make_cluster(cluster_id, centroid, members):
    return Cluster(
        id=cluster_id,
        member_row_ids=tuple(members),
        centroid=tuple(centroid),
        size=len(members),
        similarities=tuple(1.0 for _ in members),
    )


def make_anomaly(index, vector):
    return AnomalyPoint(index=index, original_row={"id": index}, feature_vector=tuple(vector))


class TestReconcileClusters:
    """Tests for centroid cluster reconciliation."""

    def test_similar_cluster_folds_into_best_match(self):
        """A new cluster merges into the existing cluster it is most similar to."""
        existing = [make_cluster(0, [1.0, 0.0], ["a", "b"]), make_cluster(1, [0.0, 1.0], ["c"])]
        incoming = [make_cluster(0, [0.9, 0.1], ["d"])]

        result = reconcile_clusters(existing, incoming, similarity_threshold=0.5)

        assert result.merged == 1
        assert result.appended == 0
        assert len(result.clusters) == 2
        assert result.clusters[0].member_row_ids == ("a", "b", "d")
        assert result.clusters[1] == existing[1]

    def test_near_origin_batch_is_merged_not_appended(self):
        """A new cluster at [0.1,0.1] folds into [10,10]; the [0,0] centroid has no direction."""
        existing = [make_cluster(0, [0.0, 0.0], ["a"]), make_cluster(1, [10.0, 10.0], ["b"])]
        incoming = [make_cluster(0, [0.1, 0.1], ["c"])]

        result = reconcile_clusters(existing, incoming, similarity_threshold=0.5)

        assert result.merged == 1
        assert len(result.clusters) == 2
        assert sum(cluster.size for cluster in result.clusters) == 3
        assert result.clusters[0].size == 1
        assert result.clusters[1].size == 2
        assert result.clusters[1].member_row_ids == ("b", "c")

    def test_dissimilar_cluster_is_appended_with_next_id(self):
        """A cluster below the threshold is appended under max id + 1."""
        existing = [make_cluster(0, [1.0, 0.0], ["a"]), make_cluster(4, [1.0, 0.1], ["b"])]
        incoming = [make_cluster(0, [0.0, 1.0], ["c"])]

        result = reconcile_clusters(existing, incoming, similarity_threshold=0.5)

        assert result.appended == 1
        assert result.clusters[-1].id == 5
        assert result.clusters[-1].member_row_ids == ("c",)

    def test_threshold_is_strict(self):
        """A similarity equal to the threshold does not merge."""
        existing = [make_cluster(0, [1.0, 0.0], ["a"])]
        incoming = [make_cluster(0, [0.0, 1.0], ["b"])]

        result = reconcile_clusters(existing, incoming, similarity_threshold=0.0)

        assert result.appended == 1

    def test_later_clusters_see_earlier_appends(self):
        """Two similar new clusters end up in one appended cluster."""
        existing = [make_cluster(0, [1.0, 0.0], ["a"])]
        incoming = [make_cluster(0, [0.0, 1.0], ["b"]), make_cluster(1, [0.05, 1.0], ["c"])]

        result = reconcile_clusters(existing, incoming, similarity_threshold=0.5)

        assert result.appended == 1
        assert result.merged == 1
        assert result.clusters[1].member_row_ids == ("b", "c")

    def test_inputs_are_not_mutated(self):
        """Reconciliation returns new clusters."""
        existing = [make_cluster(0, [1.0, 0.0], ["a"])]
        incoming = [make_cluster(0, [1.0, 0.1], ["b"])]

        reconcile_clusters(existing, incoming, similarity_threshold=0.5)

        assert existing[0].member_row_ids == ("a",)

    def test_no_existing_clusters(self):
        """Into an empty model every cluster is appended from id 0."""
        incoming = [make_cluster(3, [1.0, 0.0], ["a"])]

        result = reconcile_clusters([], incoming, similarity_threshold=0.5)

        assert [cluster.id for cluster in result.clusters] == [0]


class TestFoldCluster:
    """Tests for size-weighted cluster folding."""

    def test_weighted_centroid(self):
        """The merged centroid is weighted by member counts."""
        target = make_cluster(2, [0.0, 0.0], ["a", "b", "c"])
        incoming = make_cluster(0, [4.0, 8.0], ["d"])

        merged = fold_cluster(target, incoming)

        assert merged.id == 2
        assert merged.size == 4
        assert merged.centroid == pytest.approx((1.0, 2.0))
        assert merged.similarities == (1.0, 1.0, 1.0, 1.0)

    def test_next_cluster_id(self):
        """Ids continue after the largest one in use."""
        assert next_cluster_id([]) == 0
        assert next_cluster_id([make_cluster(7, [1.0], ["a"])]) == 8


class TestAbsorbDensityClusters:
    """Tests for density cluster novelty gating."""

    EXISTING_DATA = [[0.0, 0.0], [0.1, 0.0]]
    EXISTING_CLUSTERS = [(0, 1)]

    def test_novel_cluster_is_appended_with_offset(self):
        """A far away cluster is tracked with indices into the combined data."""
        new_data = [[0.9, 0.9], [1.0, 1.0]]

        result = absorb_density_clusters(
            self.EXISTING_CLUSTERS, self.EXISTING_DATA, [(0, 1)], new_data, eps=0.2
        )

        assert result.clusters == ((0, 1), (2, 3))
        assert result.appended == 1

    def test_close_cluster_is_absorbed(self):
        """A cluster within eps of a tracked centroid is not appended."""
        new_data = [[0.05, 0.0], [0.06, 0.01]]

        result = absorb_density_clusters(
            self.EXISTING_CLUSTERS, self.EXISTING_DATA, [(0, 1)], new_data, eps=0.2
        )

        assert result.clusters == ((0, 1),)
        assert result.merged == 1

    def test_new_clusters_are_checked_against_each_other(self):
        """Two close new clusters are not both appended."""
        new_data = [[1.0, 1.0], [1.0, 1.01], [1.05, 1.0], [1.05, 1.01]]

        result = absorb_density_clusters(
            self.EXISTING_CLUSTERS, self.EXISTING_DATA, [(0, 1), (2, 3)], new_data, eps=0.2
        )

        assert result.clusters == ((0, 1), (2, 3))
        assert result.appended == 1
        assert result.merged == 1


class TestDedupeAnomalies:
    """Tests for anomaly de-duplication."""

    def test_new_anomaly_is_appended_with_offset(self):
        """A distinct anomaly is appended with its index shifted."""
        existing = [make_anomaly(3, [0.5, 0.5])]

        merged, added = dedupe_anomalies(existing, [make_anomaly(1, [0.9, 0.0])], offset=10, eps=0.2)

        assert added == 1
        assert merged[-1].index == 11

    def test_duplicate_within_eps_is_dropped(self):
        """An anomaly close to a recorded one is not appended."""
        existing = [make_anomaly(3, [0.5, 0.5])]

        merged, added = dedupe_anomalies(existing, [make_anomaly(0, [0.55, 0.5])], offset=10, eps=0.2)

        assert added == 0
        assert merged == tuple(existing)

    def test_duplicates_within_batch_are_dropped(self):
        """Two near identical new anomalies are recorded once."""
        incoming = [make_anomaly(0, [0.9, 0.0]), make_anomaly(1, [0.9, 0.05])]

        merged, added = dedupe_anomalies([], incoming, offset=0, eps=0.2)

        assert added == 1
        assert [anomaly.index for anomaly in merged] == [0]
