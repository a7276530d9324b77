"""
Empty cluster policies for K-Means clustering.

A reassignment pass can leave a cluster with no members, which makes its
centroid undefined. The engine hands every such cluster to the configured
policy before the next pass. The policy either repairs it or leaves it
empty on purpose.
"""

from __future__ import annotations

import logging

import numpy as np

from .base import ClusterStatistics, EmptyClusterPolicy

logger = logging.getLogger(__name__)


class MaxVarianceNewCluster(EmptyClusterPolicy):
    """
    Refill an empty cluster from the cluster with the largest variance.

    The member of that cluster farthest from its centroid is moved into the
    empty cluster and becomes its centroid. Variance is the sum of squared
    deviations of members from their centroid. Only clusters with at least
    two members can donate, so a repair never empties another cluster.
    """

    def __repr__(self) -> str:
        return "MaxVarianceNewCluster()"

    def repair(
        self,
        points: np.ndarray,
        assignments: np.ndarray,
        empty_cluster: int,
        stats: ClusterStatistics,
    ) -> int:
        counts = stats.counts
        donors = np.flatnonzero(counts >= 2)
        if donors.size == 0:
            logger.warning(
                f"Cluster {empty_cluster} is empty and no cluster has a point to spare"
            )
            return 0

        variances = self.cluster_variances(points, assignments, stats)
        donor = int(donors[np.argmax(variances[donors])])

        members = np.flatnonzero(assignments == donor)
        deviations = _squared_deviations(points[members], stats.centroids[donor])
        farthest = int(members[np.argmax(deviations)])

        # Remove the point from the donor's mean without a full recompute
        remaining = counts[donor] - 1
        stats.centroids[donor] = (
            stats.centroids[donor] * counts[donor] - points[farthest]
        ) / remaining
        counts[donor] = remaining

        assignments[farthest] = empty_cluster
        counts[empty_cluster] = 1
        stats.centroids[empty_cluster] = points[farthest]

        logger.debug(
            f"Point {farthest} moved from cluster {donor} "
            f"(variance {variances[donor]:.4g}) to empty cluster {empty_cluster}"
        )
        return 1

    @staticmethod
    def cluster_variances(
        points: np.ndarray,
        assignments: np.ndarray,
        stats: ClusterStatistics,
    ) -> np.ndarray:
        """
        Sum of squared member deviations for every cluster.

        Args:
            points: Point set of shape (n_points, n_dims)
            assignments: Cluster id of every point
            stats: Statistics matching the assignments

        Returns:
            Array of length n_clusters; empty clusters have variance 0
        """
        deviations = _squared_deviations(points, stats.centroids[assignments])
        return np.bincount(assignments, weights=deviations, minlength=stats.num_clusters)


class AllowEmptyClusters(EmptyClusterPolicy):
    """
    Leave empty clusters alone.

    The cluster keeps zero members and its centroid stays frozen at its last
    defined value, or undefined if it never had one.
    """

    def __repr__(self) -> str:
        return "AllowEmptyClusters()"

    def repair(
        self,
        points: np.ndarray,
        assignments: np.ndarray,
        empty_cluster: int,
        stats: ClusterStatistics,
    ) -> int:
        logger.debug(f"Leaving cluster {empty_cluster} empty")
        return 0


def _squared_deviations(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Row-wise sum of squared differences."""
    diff = points - centroids
    return (diff * diff).sum(axis=1)
