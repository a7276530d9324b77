"""
Base classes for the clusterpack K-Means engine.

Provides the abstract capability interfaces the engine is parameterized by
(distance metric, initial partition, empty cluster handling) and the core
data structures passed between them: per-iteration cluster statistics and
the final clustering result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class ClusterStatistics:
    """
    Centroid and member count of every working cluster.

    Rows of ``centroids`` are NaN for clusters whose centroid is undefined
    (no members, and no frozen value carried over from an earlier pass).
    Owned by the engine for the duration of one clustering call.
    """

    centroids: np.ndarray  # (n_clusters, n_dims)
    counts: np.ndarray  # (n_clusters,) member counts

    @property
    def num_clusters(self) -> int:
        """Get number of working clusters."""
        return len(self.counts)

    @property
    def defined(self) -> np.ndarray:
        """Boolean mask of clusters with a usable centroid."""
        return ~np.isnan(self.centroids).any(axis=1)

    def empty_clusters(self) -> np.ndarray:
        """Get ids of clusters with no members, in ascending order."""
        return np.flatnonzero(self.counts == 0)

    def copy(self) -> 'ClusterStatistics':
        """Return an independent copy."""
        return ClusterStatistics(self.centroids.copy(), self.counts.copy())

    @classmethod
    def from_assignments(
        cls,
        points: np.ndarray,
        assignments: np.ndarray,
        num_clusters: int,
        previous: Optional['ClusterStatistics'] = None,
    ) -> 'ClusterStatistics':
        """
        Recompute statistics from scratch for the given assignments.

        Sums are accumulated in point order, so the same assignments always
        produce bit-identical centroids.

        Args:
            points: Point set of shape (n_points, n_dims)
            assignments: Cluster id of every point
            num_clusters: Number of working clusters
            previous: Statistics of the previous pass; empty clusters keep
                their previous centroid when given, otherwise become NaN

        Returns:
            Fresh ClusterStatistics
        """
        counts = np.bincount(assignments, minlength=num_clusters).astype(np.int64)
        sums = np.zeros((num_clusters, points.shape[1]), dtype=np.float64)
        np.add.at(sums, assignments, points)

        centroids = np.full_like(sums, np.nan)
        occupied = counts > 0
        centroids[occupied] = sums[occupied] / counts[occupied, np.newaxis]

        if previous is not None:
            frozen = ~occupied
            centroids[frozen] = previous.centroids[frozen]

        return cls(centroids=centroids, counts=counts)


class DistanceMetric(ABC):
    """
    Abstract base class for distance metrics.

    ``evaluate`` must return a non-negative real number. The tree-accelerated
    path additionally requires that ``root`` maps distances into a space
    where the triangle inequality holds; metrics that already satisfy it can
    keep the identity default.
    """

    @abstractmethod
    def evaluate(self, a: np.ndarray, b: np.ndarray) -> float:
        """Distance between two vectors."""
        pass

    def pairwise(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """
        Distance from every point to every centroid.

        Args:
            points: Array of shape (n_points, n_dims)
            centroids: Array of shape (n_centroids, n_dims)

        Returns:
            Matrix of shape (n_points, n_centroids)
        """
        distances = np.empty((len(points), len(centroids)), dtype=np.float64)
        for i, point in enumerate(points):
            for j, centroid in enumerate(centroids):
                distances[i, j] = self.evaluate(point, centroid)
        return distances

    def root(self, values: np.ndarray) -> np.ndarray:
        """Map distances into a space that satisfies the triangle inequality."""
        return values


class InitialPartitionPolicy(ABC):
    """Abstract base class for producing a first assignment of points."""

    @abstractmethod
    def partition(self, points: np.ndarray, cluster_count: int) -> np.ndarray:
        """
        Assign every point to one of ``cluster_count`` clusters.

        Args:
            points: Point set of shape (n_points, n_dims)
            cluster_count: Number of working clusters

        Returns:
            Integer array of length n_points with values in [0, cluster_count)
        """
        pass


class EmptyClusterPolicy(ABC):
    """Abstract base class for handling clusters that lost all members."""

    @abstractmethod
    def repair(
        self,
        points: np.ndarray,
        assignments: np.ndarray,
        empty_cluster: int,
        stats: ClusterStatistics,
    ) -> int:
        """
        Handle one empty cluster, mutating assignments and stats in place.

        Args:
            points: Point set of shape (n_points, n_dims)
            assignments: Current cluster id of every point
            empty_cluster: Id of the cluster with zero members
            stats: Statistics matching the current assignments

        Returns:
            Number of points whose assignment changed
        """
        pass


def assign_to_nearest(
    metric: DistanceMetric,
    points: np.ndarray,
    centroids: np.ndarray,
    candidates: np.ndarray,
) -> np.ndarray:
    """
    Assign each point to its nearest candidate centroid.

    Ties go to the lowest cluster id, so ``candidates`` must be sorted in
    ascending order. Both the brute-force and the tree-accelerated passes
    go through here, which keeps their results identical.

    Args:
        metric: Distance metric
        points: Points to assign, shape (n_points, n_dims)
        centroids: All working centroids, shape (n_clusters, n_dims)
        candidates: Sorted ids of centroids that may own these points

    Returns:
        Cluster id for every point
    """
    distances = metric.pairwise(points, centroids[candidates])
    return candidates[np.argmin(distances, axis=1)]


@dataclass
class KMeansResult:
    """
    Result of a K-Means clustering call.

    Attributes:
        assignments: Cluster id of every point, in original point order
        centroids: Final centroids, shape (n_clusters, n_dims)
        counts: Member count of every final cluster
        iterations: Number of reassignment passes performed
        converged: True if the last pass changed no assignment
        working_clusters: Cluster count used during refinement (K')
        merges: Number of merge steps applied after refinement
        distance_calculations: Metric evaluations performed during
            reassignment, node bounds included on the tree path
        inertia: Sum of metric distances from points to their centroid
        method: "lloyd" for brute force, "tree" for the accelerated path
        clustering_time: Wall-clock seconds spent in the call
    """

    assignments: np.ndarray
    centroids: np.ndarray
    counts: np.ndarray
    iterations: int
    converged: bool
    working_clusters: int
    merges: int = 0
    distance_calculations: int = 0
    inertia: float = 0.0
    method: str = "lloyd"
    clustering_time: float = 0.0
    quality: Dict[str, float] = field(default_factory=dict)

    def __repr__(self) -> str:
        parts = [
            f"KMeansResult(method={self.method}",
            f"n_clusters={self.num_clusters}",
            f"iterations={self.iterations}",
            f"converged={self.converged}",
            f"inertia={self.inertia:.4g}",
        ]
        return ", ".join(parts) + ")"

    @property
    def num_clusters(self) -> int:
        """Get number of final clusters."""
        return len(self.counts)

    def get_cluster_sizes(self) -> Dict[int, int]:
        """
        Get the size of each cluster.

        Returns:
            Dictionary mapping cluster_id -> count
        """
        return {cluster_id: int(count) for cluster_id, count in enumerate(self.counts)}

    def get_cluster_members(self, cluster_id: int) -> np.ndarray:
        """
        Get indices of all members of a cluster.

        Args:
            cluster_id: ID of the cluster

        Returns:
            Array of point indices belonging to this cluster
        """
        return np.flatnonzero(self.assignments == cluster_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert clustering result to dictionary for serialization."""
        return {
            'assignments': self.assignments.tolist(),
            'centroids': self.centroids.tolist(),
            'counts': self.counts.tolist(),
            'num_clusters': self.num_clusters,
            'iterations': self.iterations,
            'converged': self.converged,
            'working_clusters': self.working_clusters,
            'merges': self.merges,
            'distance_calculations': self.distance_calculations,
            'inertia': self.inertia,
            'method': self.method,
            'clustering_time': self.clustering_time,
            'quality': dict(self.quality),
        }
