"""
Distance-bound pruning for tree-accelerated K-Means.

Assigns every point to its nearest centroid like a brute-force pass, but
walks a SpatialTree and drops candidate centroids for whole nodes using
triangle-inequality bounds. A centroid is only dropped for a node when some
other candidate is provably strictly closer to every point in it, so the
result is identical to brute force.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .base import DistanceMetric, assign_to_nearest
from .tree import SpatialNode, SpatialTree

logger = logging.getLogger(__name__)

# Relative slack on bound comparisons. It absorbs floating-point rounding in
# the bounds, so a pruned centroid is farther than the survivor in exact
# arithmetic too.
PRUNE_RTOL = 1e-9


@dataclass
class NodeBounds:
    """Owner candidates of one tree node and their distance bounds."""
    candidates: np.ndarray  # Sorted cluster ids that survived pruning
    lower: np.ndarray  # Lower bound of each survivor's distance to the node
    upper: np.ndarray  # Upper bound of each survivor's distance to the node


@dataclass
class PruningStats:
    """Counters for a single assignment pass."""
    distance_calculations: int = 0  # Point-to-centroid evaluations at leaves
    bound_calculations: int = 0  # Node-to-centroid evaluations for bounds
    nodes_visited: int = 0
    nodes_pruned: int = 0  # Nodes resolved to a single owner
    points_pruned: int = 0  # Points assigned without any evaluation


class TreeAssigner:
    """
    Nearest-centroid assignment over a spatial tree.

    The per-node candidate sets live in a side table indexed by arena node
    id, rewritten on every pass, so the tree itself stays read-only.

    Args:
        tree: Spatial tree over the point set
        metric: Metric used for both bounds and point evaluation; must
            satisfy the triangle inequality after ``metric.root``
    """

    def __init__(self, tree: SpatialTree, metric: DistanceMetric):
        self.tree = tree
        self.metric = metric
        self.node_bounds: List[Optional[NodeBounds]] = [None] * len(tree)
        self.last_stats = PruningStats()
        self.distance_calculations = 0

    def assign(self, centroids: np.ndarray, defined: np.ndarray) -> np.ndarray:
        """
        Assign every point to its nearest defined centroid.

        Args:
            centroids: Working centroids, shape (n_clusters, n_dims)
            defined: Mask of centroids that may own points

        Returns:
            Cluster id of every point, in the caller's original point order
        """
        stats = PruningStats()
        self.node_bounds = [None] * len(self.tree)
        labels = np.empty(len(self.tree.points), dtype=np.intp)

        pending = [(self.tree.root, np.flatnonzero(defined))]
        while pending:
            node, candidates = pending.pop()
            stats.nodes_visited += 1

            survivors = self._prune(node, candidates, centroids, stats)
            if len(survivors) == 1:
                labels[node.start:node.end] = survivors[0]
                stats.nodes_pruned += 1
                stats.points_pruned += node.count
                continue

            if node.is_leaf:
                labels[node.start:node.end] = assign_to_nearest(
                    self.metric, self.tree.node_points(node), centroids, survivors
                )
                stats.distance_calculations += node.count * len(survivors)
                continue

            for child in reversed(node.children):
                pending.append((self.tree.nodes[child], survivors))

        self.last_stats = stats
        self.distance_calculations += stats.distance_calculations + stats.bound_calculations
        logger.debug(
            f"Tree pass: {stats.nodes_visited} nodes visited, {stats.nodes_pruned} "
            f"resolved by bounds, {stats.points_pruned}/{len(labels)} points pruned, "
            f"{stats.distance_calculations} distance calculations"
        )
        return self.tree.to_original_order(labels)

    def _prune(
        self,
        node: SpatialNode,
        candidates: np.ndarray,
        centroids: np.ndarray,
        stats: PruningStats,
    ) -> np.ndarray:
        """Drop candidates that cannot own any point of the node."""
        if len(candidates) == 1:
            self.node_bounds[node.index] = NodeBounds(
                candidates=candidates,
                lower=np.zeros(1),
                upper=np.full(1, np.inf),
            )
            return candidates

        to_center = self.metric.root(
            self.metric.pairwise(node.center[np.newaxis, :], centroids[candidates])
        )[0]
        stats.bound_calculations += len(candidates)

        lower = np.maximum(to_center - node.radius, 0.0)
        upper = to_center + node.radius
        best_upper = upper.min()

        tolerance = PRUNE_RTOL * (to_center + node.radius + best_upper)
        keep = lower <= best_upper + tolerance

        self.node_bounds[node.index] = NodeBounds(
            candidates=candidates[keep],
            lower=lower[keep],
            upper=upper[keep],
        )
        return candidates[keep]
