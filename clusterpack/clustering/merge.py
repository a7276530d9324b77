"""
Cluster merging for overclustered K-Means results.

After refinement with K' > K working clusters, the closest pair of
centroids is merged repeatedly until K clusters remain.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from .base import ClusterStatistics, DistanceMetric

logger = logging.getLogger(__name__)


class NearestCentroidMerge:
    """
    Greedy agglomeration of the two closest centroids.

    Merged centroids are the member-weighted mean of the pair. Only the
    distances touching the merged cluster are refreshed after each step,
    which costs O(K') metric evaluations per merge. Pairs involving a
    cluster without a centroid count as distance 0, so such clusters are
    absorbed first.
    """

    def __repr__(self) -> str:
        return "NearestCentroidMerge()"

    def merge(
        self,
        stats: ClusterStatistics,
        assignments: np.ndarray,
        clusters: int,
        metric: DistanceMetric,
    ) -> Tuple[np.ndarray, ClusterStatistics, int]:
        """
        Merge working clusters down to ``clusters``.

        Args:
            stats: Statistics of the converged working clusters
            assignments: Working cluster id of every point
            clusters: Number of clusters to keep
            metric: Metric used to compare centroids

        Returns:
            Tuple of (assignments renumbered into [0, clusters), statistics
            of the kept clusters, number of merges performed)
        """
        working = stats.num_clusters
        if clusters >= working:
            return assignments, stats, 0

        centroids = stats.centroids.copy()
        counts = stats.counts.copy()
        defined = stats.defined.copy()
        assignments = assignments.copy()
        active = np.ones(working, dtype=bool)

        # Only the strict upper triangle holds live pairs; row-major argmin
        # then picks the lexicographically lowest (first, second) on ties.
        distances = np.full((working, working), np.inf)
        upper = np.triu_indices(working, k=1)
        distances[upper] = self._centroid_distances(metric, centroids, centroids)[upper]

        merges = 0
        while working - merges > clusters:
            first, second = np.unravel_index(np.argmin(distances), distances.shape)
            first, second = int(first), int(second)
            distance = distances[first, second]

            centroids[first] = self._merged_centroid(centroids, counts, defined, first, second)
            defined[first] = defined[first] or defined[second]
            counts[first] += counts[second]
            counts[second] = 0
            assignments[assignments == second] = first

            active[second] = False
            distances[second, :] = np.inf
            distances[:, second] = np.inf

            refreshed = self._centroid_distances(metric, centroids[first:first + 1], centroids)[0]
            lower = np.flatnonzero(active[:first])
            higher = first + 1 + np.flatnonzero(active[first + 1:])
            distances[lower, first] = refreshed[lower]
            distances[first, higher] = refreshed[higher]

            merges += 1
            logger.debug(
                f"Merged cluster {second} into {first} at distance {distance:.4g} "
                f"({working - merges} clusters left)"
            )

        survivors = np.flatnonzero(active)
        mapping = np.full(working, -1, dtype=np.intp)
        mapping[survivors] = np.arange(len(survivors))

        merged_stats = ClusterStatistics(
            centroids=centroids[survivors],
            counts=counts[survivors],
        )
        return mapping[assignments], merged_stats, merges

    @staticmethod
    def _centroid_distances(
        metric: DistanceMetric,
        rows: np.ndarray,
        columns: np.ndarray,
    ) -> np.ndarray:
        """Pairwise centroid distances with undefined centroids at distance 0."""
        distances = metric.pairwise(rows, columns)
        distances[np.isnan(distances)] = 0.0
        return distances

    @staticmethod
    def _merged_centroid(
        centroids: np.ndarray,
        counts: np.ndarray,
        defined: np.ndarray,
        first: int,
        second: int,
    ) -> np.ndarray:
        """Member-weighted mean of two centroids."""
        if counts[second] == 0:
            if defined[first] or not defined[second]:
                return centroids[first]
            return centroids[second]
        if counts[first] == 0:
            return centroids[second]

        total = counts[first] + counts[second]
        return (centroids[first] * counts[first] + centroids[second] * counts[second]) / total
