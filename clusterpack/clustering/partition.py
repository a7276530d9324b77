"""Initial partition policies for K-Means clustering."""

from __future__ import annotations

import logging

import numpy as np

from .base import InitialPartitionPolicy

logger = logging.getLogger(__name__)


class RandomPartition(InitialPartitionPolicy):
    """
    Assign every point to a uniformly random cluster.

    A fresh generator is seeded on every call, so repeated calls with the
    same points and cluster count return the same partition.
    """

    def __init__(self, random_state: int = 42):
        self.random_state = random_state

    def __repr__(self) -> str:
        return f"RandomPartition(random_state={self.random_state})"

    def partition(self, points: np.ndarray, cluster_count: int) -> np.ndarray:
        """Assign each point a cluster id drawn uniformly from [0, cluster_count)."""
        rng = np.random.default_rng(self.random_state)
        assignments = rng.integers(0, cluster_count, size=len(points), dtype=np.intp)
        logger.debug(
            f"Random partition of {len(points)} points into {cluster_count} clusters "
            f"(seed={self.random_state})"
        )
        return assignments
