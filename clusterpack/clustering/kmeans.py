"""
K-Means clustering engine.

Implements Lloyd's algorithm with overclustering: the engine refines
K' = round(K * overclustering_factor) working clusters, repairs clusters
that go empty along the way, and finally merges the closest working
clusters until K remain. The reassignment step runs either by brute force
(``cluster``) or over a spatial tree with distance-bound pruning
(``fast_cluster``); both produce identical assignments.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from typing import Optional, Set

import numpy as np
from scipy import sparse

from ..config import (
    DEFAULT_LEAF_SIZE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_OVERCLUSTERING_FACTOR,
    KMeansConfig,
    validate_leaf_size,
    validate_max_iterations,
    validate_overclustering_factor,
)
from ..errors import ClusterPackError, ErrorContext, ErrorSeverity, invalid_argument
from .base import (
    ClusterStatistics,
    DistanceMetric,
    EmptyClusterPolicy,
    InitialPartitionPolicy,
    KMeansResult,
    assign_to_nearest,
)
from .empty_cluster import MaxVarianceNewCluster
from .merge import NearestCentroidMerge
from .metrics import SquaredEuclideanDistance
from .partition import RandomPartition
from .pruning import TreeAssigner
from .tree import SpatialTree

logger = logging.getLogger(__name__)


class BruteForceAssigner:
    """Nearest-centroid assignment by evaluating every point against every centroid."""

    def __init__(self, points: np.ndarray, metric: DistanceMetric):
        self.points = points
        self.metric = metric
        self.distance_calculations = 0

    def assign(self, centroids: np.ndarray, defined: np.ndarray) -> np.ndarray:
        candidates = np.flatnonzero(defined)
        self.distance_calculations += len(self.points) * len(candidates)
        return assign_to_nearest(self.metric, self.points, centroids, candidates)


class KMeans:
    """
    K-Means clustering with overclustering and pluggable policies.

    A simple example::

        engine = KMeans()
        result = engine.cluster(data, 3)

        # Manhattan distance, at most 100 passes, find 24 clusters and
        # merge them down to 6.
        engine = KMeans(100, 4.0, metric=ManhattanDistance())
        result = engine.fast_cluster(data, 6)

    The engine holds configuration only; every call builds and discards its
    own statistics and tree.

    Args:
        max_iterations: Cap on refinement passes; 0 runs until the
            assignments stop changing
        overclustering_factor: Ratio of working clusters to requested
            clusters; above 1.0 enables overclustering and merging
        metric: Distance metric (default: squared Euclidean)
        partitioner: Initial partition policy (default: RandomPartition)
        empty_cluster_action: Empty cluster policy (default:
            MaxVarianceNewCluster)
        leaf_size: Maximum points per spatial tree leaf for fast_cluster
    """

    def __init__(
        self,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        overclustering_factor: float = DEFAULT_OVERCLUSTERING_FACTOR,
        metric: Optional[DistanceMetric] = None,
        partitioner: Optional[InitialPartitionPolicy] = None,
        empty_cluster_action: Optional[EmptyClusterPolicy] = None,
        leaf_size: int = DEFAULT_LEAF_SIZE,
    ):
        self.max_iterations = max_iterations
        self.overclustering_factor = overclustering_factor
        self.leaf_size = leaf_size
        self.metric = metric if metric is not None else SquaredEuclideanDistance()
        self.partitioner = partitioner if partitioner is not None else RandomPartition()
        self.empty_cluster_action = (
            empty_cluster_action if empty_cluster_action is not None
            else MaxVarianceNewCluster()
        )
        self.merger = NearestCentroidMerge()

    @classmethod
    def from_config(
        cls,
        config: KMeansConfig,
        metric: Optional[DistanceMetric] = None,
        empty_cluster_action: Optional[EmptyClusterPolicy] = None,
    ) -> 'KMeans':
        """Create an engine from a KMeansConfig."""
        return cls(
            max_iterations=config.max_iterations,
            overclustering_factor=config.overclustering_factor,
            metric=metric,
            partitioner=RandomPartition(random_state=config.random_state),
            empty_cluster_action=empty_cluster_action,
            leaf_size=config.leaf_size,
        )

    def __repr__(self) -> str:
        return (
            f"KMeans(max_iterations={self.max_iterations}, "
            f"overclustering_factor={self.overclustering_factor}, "
            f"metric={self.metric!r}, partitioner={self.partitioner!r}, "
            f"empty_cluster_action={self.empty_cluster_action!r})"
        )

    @property
    def max_iterations(self) -> int:
        """Maximum number of refinement passes; 0 means no cap."""
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        validate_max_iterations(value)
        self._max_iterations = int(value)

    @property
    def overclustering_factor(self) -> float:
        """Ratio of working clusters to requested clusters."""
        return self._overclustering_factor

    @overclustering_factor.setter
    def overclustering_factor(self, value: float) -> None:
        validate_overclustering_factor(value)
        self._overclustering_factor = float(value)

    @property
    def leaf_size(self) -> int:
        """Maximum number of points in a spatial tree leaf."""
        return self._leaf_size

    @leaf_size.setter
    def leaf_size(self, value: int) -> None:
        validate_leaf_size(value)
        self._leaf_size = int(value)

    def cluster(
        self,
        data,
        clusters: int,
        assignments: Optional[np.ndarray] = None,
    ) -> KMeansResult:
        """
        Cluster the data with brute-force Lloyd iterations.

        Args:
            data: Point set of shape (n_points, n_dims); dense or scipy.sparse
            clusters: Number of clusters to return, 1 <= clusters <= n_points
            assignments: Optional warm start, one working cluster id per
                point; None or empty calls the partitioner

        Returns:
            KMeansResult with assignments in [0, clusters)

        Raises:
            InvalidArgumentError: If the arguments are unusable
        """
        return self._run(data, clusters, assignments, method="lloyd")

    def fast_cluster(
        self,
        data,
        clusters: int,
        assignments: Optional[np.ndarray] = None,
    ) -> KMeansResult:
        """
        Cluster the data with tree-accelerated Lloyd iterations.

        Same contract and same output as ``cluster``. Reassignment walks a
        spatial tree and skips centroids that provably cannot own a region.
        The metric must satisfy the triangle inequality after
        ``metric.root``; this is not checked. ``data`` is never modified.
        """
        return self._run(data, clusters, assignments, method="tree")

    def _run(self, data, clusters, assignments, method: str) -> KMeansResult:
        start_time = time.time()
        operation = "cluster" if method == "lloyd" else "fast_cluster"

        points = self._prepare_points(data, operation)
        n_points = len(points)
        self._validate_cluster_count(clusters, n_points, operation)
        clusters = int(clusters)
        working = self._working_clusters(clusters, n_points)
        initial = self._initial_assignments(points, working, assignments, operation)

        logger.info(
            f"Clustering {n_points} points into {clusters} clusters "
            f"({working} working, method={method})"
        )

        if method == "tree":
            tree = SpatialTree(points, leaf_size=self.leaf_size, metric=self.metric)
            assigner = TreeAssigner(tree, self.metric)
        else:
            assigner = BruteForceAssigner(points, self.metric)

        assignments, stats, iterations, converged = self._refine(
            points, initial, working, assigner
        )

        merges = 0
        if working > clusters:
            assignments, stats, merges = self.merger.merge(
                stats, assignments, clusters, self.metric
            )

        result = KMeansResult(
            assignments=assignments,
            centroids=stats.centroids,
            counts=stats.counts,
            iterations=iterations,
            converged=converged,
            working_clusters=working,
            merges=merges,
            distance_calculations=assigner.distance_calculations,
            inertia=self._inertia(points, assignments, stats),
            method=method,
        )
        result.clustering_time = time.time() - start_time

        logger.info(
            f"Clustering complete: {iterations} iterations, converged={converged}, "
            f"{merges} merges, inertia={result.inertia:.4g}, "
            f"{result.distance_calculations} distance calculations"
        )
        return result

    def _refine(self, points, initial, working, assigner):
        """
        Lloyd refinement until convergence, the iteration cap, or a cycle.

        Returns:
            Tuple of (assignments, statistics, iterations, converged)
        """
        assignments = initial.copy()
        stats = ClusterStatistics.from_assignments(points, assignments, working)
        stats = self._repair_empty_clusters(points, assignments, stats)

        seen: Set[str] = {self._state_digest(assignments, stats)}
        iterations = 0
        converged = False

        while True:
            labels = assigner.assign(stats.centroids, stats.defined)
            changed = int(np.count_nonzero(labels != assignments))
            assignments = labels
            iterations += 1

            stats = ClusterStatistics.from_assignments(
                points, assignments, working, previous=stats
            )
            stats = self._repair_empty_clusters(points, assignments, stats)
            logger.debug(f"Iteration {iterations}: {changed} assignments changed")

            if changed == 0:
                converged = True
                break

            if self.max_iterations and iterations >= self.max_iterations:
                logger.info(
                    f"Stopped after {iterations} iterations without converging "
                    f"({changed} assignments changed in the last pass)"
                )
                break

            digest = self._state_digest(assignments, stats)
            if digest in seen:
                logger.warning(
                    f"Assignments repeated an earlier state after {iterations} "
                    f"iterations; stopping refinement"
                )
                break
            seen.add(digest)

        return assignments, stats, iterations, converged

    def _repair_empty_clusters(
        self,
        points: np.ndarray,
        assignments: np.ndarray,
        stats: ClusterStatistics,
    ) -> ClusterStatistics:
        """Hand every empty cluster to the policy; recompute stats if anything moved."""
        moved = 0
        for empty_cluster in stats.empty_clusters():
            # An earlier repair in this pass may already have refilled it
            if stats.counts[empty_cluster] == 0:
                moved += self.empty_cluster_action.repair(
                    points, assignments, int(empty_cluster), stats
                )

        if moved == 0:
            return stats
        return ClusterStatistics.from_assignments(
            points, assignments, stats.num_clusters, previous=stats
        )

    @staticmethod
    def _state_digest(assignments: np.ndarray, stats: ClusterStatistics) -> str:
        """Hash of everything the next pass depends on."""
        digest = hashlib.sha256()
        digest.update(np.ascontiguousarray(assignments, dtype=np.int64).tobytes())
        # Frozen centroids of empty clusters carry state the assignments lack
        digest.update(np.ascontiguousarray(stats.centroids[stats.counts == 0]).tobytes())
        return digest.hexdigest()

    def _inertia(
        self,
        points: np.ndarray,
        assignments: np.ndarray,
        stats: ClusterStatistics,
    ) -> float:
        """Sum of metric distances from every point to its cluster centroid."""
        total = 0.0
        for cluster_id in np.flatnonzero(stats.counts):
            members = points[assignments == cluster_id]
            centroid = stats.centroids[cluster_id:cluster_id + 1]
            total += float(self.metric.pairwise(members, centroid).sum())
        return total

    def _working_clusters(self, clusters: int, n_points: int) -> int:
        """Number of clusters to refine before merging."""
        factor = self.overclustering_factor
        if factor < 1.0:
            logger.warning(
                f"Overclustering factor {factor} is below 1.0; no overclustering will be done"
            )
            return clusters

        working = max(clusters, int(math.floor(clusters * factor + 0.5)))
        if working > n_points:
            logger.warning(
                f"Overclustering factor {factor} asks for {working} clusters but there "
                f"are only {n_points} points; no overclustering will be done"
            )
            return clusters
        return working

    def _initial_assignments(
        self,
        points: np.ndarray,
        working: int,
        assignments: Optional[np.ndarray],
        operation: str,
    ) -> np.ndarray:
        """Validate a warm start, or ask the partitioner for one."""
        n_points = len(points)

        if assignments is not None and len(assignments) > 0:
            seed = np.asarray(assignments)
            if seed.ndim != 1 or len(seed) != n_points:
                raise invalid_argument(
                    "Warm-start assignments must have one entry per point",
                    operation=operation,
                    expected=n_points,
                    received=int(seed.size),
                )
            if seed.dtype.kind not in "iu":
                raise invalid_argument(
                    "Warm-start assignments must be integers",
                    operation=operation,
                    dtype=str(seed.dtype),
                )
            if seed.min() < 0 or seed.max() >= working:
                raise invalid_argument(
                    f"Warm-start assignments must lie in [0, {working})",
                    operation=operation,
                    minimum=int(seed.min()),
                    maximum=int(seed.max()),
                )
            return seed.astype(np.intp)

        if working == n_points:
            logger.debug("One working cluster per point; using the identity partition")
            return np.arange(n_points, dtype=np.intp)

        initial = np.asarray(self.partitioner.partition(points, working))
        if (
            initial.shape != (n_points,)
            or initial.dtype.kind not in "iu"
            or initial.min() < 0
            or initial.max() >= working
        ):
            raise ClusterPackError(
                f"Partitioner {self.partitioner!r} returned an invalid assignment",
                ErrorContext(
                    operation="partition",
                    component=type(self.partitioner).__name__,
                    additional_info={"shape": initial.shape, "working_clusters": working},
                    severity=ErrorSeverity.HIGH,
                ),
            )
        return initial.astype(np.intp)

    @staticmethod
    def _prepare_points(data, operation: str) -> np.ndarray:
        """Return a dense float64 copy of the point set, validated."""
        if sparse.issparse(data):
            points = data.toarray()
        else:
            points = np.array(data, dtype=np.float64, copy=True)
        points = np.asarray(points, dtype=np.float64)

        if points.ndim != 2:
            raise invalid_argument(
                "Data must be a 2-D array of shape (n_points, n_dims)",
                operation=operation,
                ndim=points.ndim,
            )
        if points.shape[0] == 0 or points.shape[1] == 0:
            raise invalid_argument(
                "Cannot cluster an empty point set",
                operation=operation,
                shape=points.shape,
            )
        if not np.isfinite(points).all():
            raise invalid_argument(
                "Data contains NaN or infinite values",
                operation=operation,
            )
        return points

    @staticmethod
    def _validate_cluster_count(clusters: int, n_points: int, operation: str) -> None:
        """Require 1 <= clusters <= n_points."""
        if isinstance(clusters, bool) or not isinstance(clusters, (int, np.integer)):
            raise invalid_argument(
                "Cluster count must be an integer",
                operation=operation,
                clusters=clusters,
            )
        if clusters < 1 or clusters > n_points:
            raise invalid_argument(
                f"Cluster count must be between 1 and the number of points ({n_points})",
                operation=operation,
                clusters=int(clusters),
            )
