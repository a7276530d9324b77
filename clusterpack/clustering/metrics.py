"""
Distance metrics for K-Means clustering.

The L-metric family covers Manhattan, Euclidean, squared Euclidean and
Chebyshev distances. A metric computed without its final root (the
squared Euclidean default) is not itself a true metric, but ``root`` maps
it back to one, which is all the tree-accelerated path needs.
"""

from __future__ import annotations

import math

import numpy as np

from .base import DistanceMetric

# Upper bound on the number of float64 differences materialized at once
# by ``LMetric.pairwise``.
_PAIRWISE_BLOCK_ELEMENTS = 1 << 22


class LMetric(DistanceMetric):
    """
    Generalized L-p distance ``(sum |a_i - b_i|^p)^(1/p)``.

    Args:
        power: The p of the metric; ``math.inf`` gives Chebyshev distance
        take_root: Whether to apply the final 1/p root. Without it the
            value is a monotone transform of the true metric.
    """

    def __init__(self, power: float = 2, take_root: bool = False):
        if not power >= 1:
            raise ValueError(f"L-metric power must be >= 1, got {power}")
        self.power = power
        self.take_root = take_root

    def __repr__(self) -> str:
        return f"{type(self).__name__}(power={self.power}, take_root={self.take_root})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LMetric):
            return NotImplemented
        return (self.power, self.take_root) == (other.power, other.take_root)

    def __hash__(self) -> int:
        return hash((self.power, self.take_root))

    def evaluate(self, a: np.ndarray, b: np.ndarray) -> float:
        """Distance between two vectors."""
        row = np.asarray(a, dtype=np.float64)[np.newaxis, :]
        column = np.asarray(b, dtype=np.float64)[np.newaxis, :]
        return float(self.pairwise(row, column)[0, 0])

    def pairwise(self, points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """
        Distance from every point to every centroid.

        Points are processed in row blocks to bound memory. Each entry only
        depends on its own pair of rows, so blocking never changes a value.
        """
        points = np.asarray(points, dtype=np.float64)
        centroids = np.asarray(centroids, dtype=np.float64)
        n_points, n_centroids = len(points), len(centroids)
        distances = np.empty((n_points, n_centroids), dtype=np.float64)
        if n_points == 0 or n_centroids == 0:
            return distances

        per_row = max(1, n_centroids * points.shape[1])
        block = max(1, _PAIRWISE_BLOCK_ELEMENTS // per_row)
        for start in range(0, n_points, block):
            stop = min(start + block, n_points)
            diff = np.abs(points[start:stop, np.newaxis, :] - centroids[np.newaxis, :, :])
            distances[start:stop] = self._reduce(diff)
        return distances

    def _reduce(self, diff: np.ndarray) -> np.ndarray:
        """Collapse absolute coordinate differences along the last axis."""
        if math.isinf(self.power):
            return diff.max(axis=-1)
        if self.power == 1:
            return diff.sum(axis=-1)
        if self.power == 2:
            total = (diff * diff).sum(axis=-1)
            return np.sqrt(total) if self.take_root else total

        total = (diff ** self.power).sum(axis=-1)
        return total ** (1.0 / self.power) if self.take_root else total

    def root(self, values: np.ndarray) -> np.ndarray:
        """Map distances into the space of the true L-p metric."""
        if self.take_root or self.power == 1 or math.isinf(self.power):
            return values
        if self.power == 2:
            return np.sqrt(values)
        return np.power(values, 1.0 / self.power)


class ManhattanDistance(LMetric):
    """L1 distance."""

    def __init__(self):
        super().__init__(power=1, take_root=False)


class EuclideanDistance(LMetric):
    """L2 distance."""

    def __init__(self):
        super().__init__(power=2, take_root=True)


class SquaredEuclideanDistance(LMetric):
    """Squared L2 distance, the default K-Means objective."""

    def __init__(self):
        super().__init__(power=2, take_root=False)


class ChebyshevDistance(LMetric):
    """L-infinity distance."""

    def __init__(self):
        super().__init__(power=math.inf, take_root=True)
