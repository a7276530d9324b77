"""
Tests for the K-Means clustering engine.

Validates Lloyd refinement, overclustering and merging, warm starts,
argument validation, and termination behavior of KMeans.cluster.
"""

import logging

import numpy as np
import pytest
from scipy import sparse

from clusterpack import (
    AllowEmptyClusters,
    InvalidArgumentError,
    KMeans,
    ManhattanDistance,
    RandomPartition,
)
from clusterpack.errors import ClusterPackError


def same_partition(a: np.ndarray, b: np.ndarray) -> bool:
    """True if two labelings group the points identically."""
    return np.array_equal(a[:, None] == a[None, :], b[:, None] == b[None, :])


@pytest.fixture
def line_points() -> np.ndarray:
    """Six points on a line forming two obvious groups."""
    return np.array([0.0, 1.0, 2.0, 10.0, 11.0, 12.0]).reshape(-1, 1)


class TestLloydRefinement:
    """Core refinement scenarios."""

    def test_two_groups_on_a_line(self, line_points):
        result = KMeans().cluster(line_points, 2)

        labels = result.assignments
        assert len(set(labels[:3])) == 1
        assert len(set(labels[3:])) == 1
        assert labels[0] != labels[3]
        assert result.converged
        assert result.num_clusters == 2
        assert sorted(result.centroids.ravel().tolist()) == [1.0, 11.0]

    def test_one_cluster_per_point(self):
        points = np.array([[0.0], [1.0], [2.0], [10.0]])

        result = KMeans().cluster(points, 4)

        assert np.array_equal(result.assignments, np.arange(4))
        assert result.iterations == 1
        assert result.converged
        assert result.merges == 0

    def test_single_cluster(self, line_points):
        result = KMeans().cluster(line_points, 1)

        assert np.all(result.assignments == 0)
        assert result.counts.tolist() == [6]
        assert result.centroids[0, 0] == pytest.approx(6.0)

    def test_warm_start_is_used(self, line_points):
        seed = np.array([0, 0, 0, 1, 1, 1])

        result = KMeans().cluster(line_points, 2, seed)

        assert np.array_equal(result.assignments, seed)
        assert result.iterations == 1

    def test_warm_start_is_not_modified(self, line_points):
        seed = np.array([0, 1, 0, 1, 0, 1])
        original = seed.copy()

        KMeans().cluster(line_points, 2, seed)

        assert np.array_equal(seed, original)

    def test_empty_warm_start_calls_partitioner(self, line_points):
        result = KMeans().cluster(line_points, 2, np.array([], dtype=int))

        assert result.num_clusters == 2
        assert result.converged

    def test_max_iterations_is_best_effort(self, line_points):
        seed = np.array([0, 1, 0, 1, 0, 1])

        capped = KMeans(max_iterations=1).cluster(line_points, 2, seed)
        uncapped = KMeans(max_iterations=0).cluster(line_points, 2, seed)

        assert capped.iterations == 1
        assert not capped.converged
        assert set(capped.assignments.tolist()) <= {0, 1}
        assert uncapped.converged
        assert uncapped.iterations == 2

    def test_fixed_point_after_convergence(self, line_points):
        engine = KMeans()
        first = engine.cluster(line_points, 2)

        second = engine.cluster(line_points, 2, first.assignments)

        assert second.iterations == 1
        assert second.converged
        assert np.array_equal(first.assignments, second.assignments)

    def test_deterministic(self):
        rng = np.random.default_rng(7)
        points = rng.normal(size=(120, 3))

        first = KMeans().cluster(points, 5)
        second = KMeans().cluster(points, 5)

        assert np.array_equal(first.assignments, second.assignments)
        assert np.array_equal(first.centroids, second.centroids)

    def test_partitioner_seed_is_respected(self):
        rng = np.random.default_rng(3)
        points = rng.normal(size=(60, 2))

        result = KMeans(partitioner=RandomPartition(random_state=11)).cluster(points, 4)

        assert result.num_clusters == 4
        assert np.all(result.counts > 0)

    def test_manhattan_metric(self, line_points):
        result = KMeans(metric=ManhattanDistance()).cluster(line_points, 2)

        assert same_partition(result.assignments, np.array([0, 0, 0, 1, 1, 1]))
        # L1 inertia: |0-1| + |2-1| on each side
        assert result.inertia == pytest.approx(4.0)

    def test_sparse_input_matches_dense(self, line_points):
        dense = KMeans().cluster(line_points, 2)
        sparse_result = KMeans().cluster(sparse.csr_matrix(line_points), 2)

        assert np.array_equal(dense.assignments, sparse_result.assignments)


class TestOverclustering:
    """Overclustering followed by merging."""

    def test_merges_back_to_requested_count(self, line_points):
        plain = KMeans().cluster(line_points, 2)
        result = KMeans(overclustering_factor=3.0).cluster(line_points, 2)

        assert result.working_clusters == 6
        assert result.merges == 4
        assert result.num_clusters == 2
        assert np.array_equal(result.assignments, [0, 0, 0, 1, 1, 1])
        assert same_partition(result.assignments, plain.assignments)
        assert result.centroids.ravel().tolist() == pytest.approx([1.0, 11.0])

    def test_working_count_rounds_half_up(self):
        rng = np.random.default_rng(5)
        points = rng.normal(size=(40, 2))

        result = KMeans(overclustering_factor=2.5).cluster(points, 3)

        # 3 * 2.5 = 7.5 rounds to 8
        assert result.working_clusters == 8
        assert result.num_clusters == 3
        assert set(result.assignments.tolist()) == {0, 1, 2}

    def test_factor_below_one_disables_overclustering(self, line_points, caplog):
        with caplog.at_level(logging.WARNING, logger="clusterpack"):
            result = KMeans(overclustering_factor=0.5).cluster(line_points, 2)

        assert result.working_clusters == 2
        assert result.merges == 0
        assert "no overclustering" in caplog.text

    def test_factor_too_large_for_dataset(self, line_points, caplog):
        with caplog.at_level(logging.WARNING, logger="clusterpack"):
            result = KMeans(overclustering_factor=4.0).cluster(line_points, 2)

        assert result.working_clusters == 2
        assert result.num_clusters == 2
        assert "only 6 points" in caplog.text

    def test_warm_start_may_use_working_ids(self, line_points):
        seed = np.array([0, 1, 2, 3, 4, 5])

        result = KMeans(overclustering_factor=3.0).cluster(line_points, 2, seed)

        assert np.array_equal(result.assignments, [0, 0, 0, 1, 1, 1])


class TestEmptyClusters:
    """Engine-level empty cluster handling."""

    def test_outlier_refills_empty_cluster(self):
        points = np.array([[0.0], [0.0], [0.0], [100.0]])

        result = KMeans().cluster(points, 2, np.zeros(4, dtype=int))

        assert np.array_equal(result.assignments, [0, 0, 0, 1])
        assert result.counts.tolist() == [3, 1]
        assert result.converged

    def test_allow_empty_clusters_keeps_cluster_empty(self):
        points = np.array([[0.0], [0.0], [0.0], [100.0]])
        engine = KMeans(empty_cluster_action=AllowEmptyClusters())

        result = engine.cluster(points, 2, np.zeros(4, dtype=int))

        assert np.all(result.assignments == 0)
        assert result.counts.tolist() == [4, 0]
        assert np.isnan(result.centroids[1]).all()

    def test_identical_points_terminate(self):
        points = np.zeros((8, 2))

        result = KMeans(max_iterations=0).cluster(points, 3)

        assert result.num_clusters == 3
        assert np.all(result.counts > 0)

    def test_repeated_state_stops_refinement(self, caplog):
        # Duplicate points with one cluster per point bounce between two
        # assignments: the tie goes to cluster 0, the repair refills cluster 1.
        points = np.array([[0.0], [0.0], [5.0]])

        with caplog.at_level(logging.WARNING, logger="clusterpack"):
            result = KMeans(max_iterations=0).cluster(points, 3)

        assert not result.converged
        assert result.iterations == 2
        assert result.counts.tolist() == [1, 1, 1]
        assert "repeated an earlier state" in caplog.text


class TestArgumentValidation:
    """InvalidArgumentError cases; nothing is computed for any of them."""

    @pytest.mark.parametrize("clusters", [0, 7, -1])
    def test_cluster_count_out_of_range(self, line_points, clusters):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(line_points, clusters)

    def test_cluster_count_must_be_integer(self, line_points):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(line_points, 2.0)

    def test_warm_start_length_mismatch(self, line_points):
        with pytest.raises(InvalidArgumentError) as excinfo:
            KMeans().cluster(line_points, 2, np.array([0, 1, 0]))

        assert excinfo.value.context.additional_info == {"expected": 6, "received": 3}

    def test_warm_start_out_of_range(self, line_points):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(line_points, 2, np.array([0, 0, 0, 1, 1, 2]))

    def test_warm_start_negative(self, line_points):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(line_points, 2, np.array([0, 0, 0, 1, 1, -1]))

    def test_warm_start_must_be_integer(self, line_points):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(line_points, 2, np.zeros(6))

    def test_empty_data(self):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(np.empty((0, 2)), 1)

    def test_one_dimensional_data(self):
        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(np.array([0.0, 1.0, 2.0]), 1)

    def test_non_finite_data(self):
        points = np.array([[0.0], [np.nan], [1.0]])

        with pytest.raises(InvalidArgumentError):
            KMeans().cluster(points, 2)

    def test_invalid_argument_is_value_error(self, line_points):
        with pytest.raises(ValueError):
            KMeans().fast_cluster(line_points, 0)

    def test_bad_partitioner_output(self, line_points):
        class BrokenPartition(RandomPartition):
            def partition(self, points, cluster_count):
                return np.full(len(points), cluster_count)

        with pytest.raises(ClusterPackError) as excinfo:
            KMeans(partitioner=BrokenPartition()).cluster(line_points, 2)

        assert not isinstance(excinfo.value, InvalidArgumentError)


class TestAccessors:
    """Configuration accessors on the engine."""

    def test_defaults(self):
        engine = KMeans()

        assert engine.max_iterations == 1000
        assert engine.overclustering_factor == 1.0
        assert engine.leaf_size == 20
        assert type(engine.metric).__name__ == "SquaredEuclideanDistance"
        assert type(engine.partitioner).__name__ == "RandomPartition"
        assert type(engine.empty_cluster_action).__name__ == "MaxVarianceNewCluster"

    def test_accessors_are_writable(self, line_points):
        engine = KMeans()
        engine.max_iterations = 1
        engine.overclustering_factor = 3.0
        engine.metric = ManhattanDistance()

        result = engine.cluster(line_points, 2)

        assert result.working_clusters == 6
        assert result.iterations == 1

    @pytest.mark.parametrize("attribute,value", [
        ("max_iterations", -1),
        ("overclustering_factor", 0.0),
        ("overclustering_factor", float("nan")),
        ("leaf_size", 0),
    ])
    def test_invalid_accessor_values(self, attribute, value):
        engine = KMeans()

        with pytest.raises(InvalidArgumentError):
            setattr(engine, attribute, value)


class TestResult:
    """KMeansResult helpers."""

    def test_cluster_helpers(self, line_points):
        result = KMeans().cluster(line_points, 2, np.array([0, 0, 0, 1, 1, 1]))

        assert result.get_cluster_sizes() == {0: 3, 1: 3}
        assert result.get_cluster_members(1).tolist() == [3, 4, 5]
        assert result.method == "lloyd"
        assert result.clustering_time >= 0
        assert "n_clusters=2" in repr(result)

    def test_to_dict(self, line_points):
        result = KMeans().cluster(line_points, 2, np.array([0, 0, 0, 1, 1, 1]))

        data = result.to_dict()

        assert data['assignments'] == [0, 0, 0, 1, 1, 1]
        assert data['num_clusters'] == 2
        assert data['converged'] is True
        assert data['inertia'] == pytest.approx(4.0)

    def test_brute_force_distance_count(self, line_points):
        result = KMeans().cluster(line_points, 2, np.array([0, 0, 0, 1, 1, 1]))

        # One pass over six points and two centroids
        assert result.distance_calculations == 12
