"""
Spatial partitioning tree for tree-accelerated K-Means.

Wraps ``scipy.spatial.cKDTree`` and flattens its nodes into an arena of
read-only ``SpatialNode`` records. Each record carries a bounding ball
(center and radius) measured in the rooted space of the clustering metric.
The tree stores points in its own permutation so that every node covers a
contiguous slice of ``SpatialTree.points``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy.spatial import cKDTree

from .base import DistanceMetric
from .metrics import SquaredEuclideanDistance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpatialNode:
    """A node of the spatial tree, stored by index in the tree's arena."""

    index: int
    start: int  # First point of the node in permuted order
    end: int  # One past the last point
    center: np.ndarray
    radius: float  # Rooted distance from center to the farthest member
    children: Tuple[int, ...] = ()
    depth: int = 0

    @property
    def is_leaf(self) -> bool:
        """True if the node has no children."""
        return not self.children

    @property
    def count(self) -> int:
        """Number of points under this node."""
        return self.end - self.start


class SpatialTree:
    """
    Hierarchical bounding structure over a point set.

    Args:
        points: Point set of shape (n_points, n_dims); not modified
        leaf_size: Maximum number of points in a leaf
        metric: Metric whose rooted distances define the bounding balls
    """

    def __init__(
        self,
        points: np.ndarray,
        leaf_size: int = 20,
        metric: Optional[DistanceMetric] = None,
    ):
        if len(points) == 0:
            raise ValueError("Cannot build a spatial tree over an empty point set")

        self.metric = metric if metric is not None else SquaredEuclideanDistance()
        self.leaf_size = leaf_size

        kdtree = cKDTree(points, leafsize=leaf_size)
        self.permutation = np.asarray(kdtree.indices, dtype=np.intp)
        self.points = np.ascontiguousarray(points[self.permutation], dtype=np.float64)

        self.nodes: List[SpatialNode] = []
        self._flatten(kdtree.tree)
        logger.debug(
            f"Built spatial tree: {len(self.points)} points, {len(self.nodes)} nodes, "
            f"{sum(node.is_leaf for node in self.nodes)} leaves (leaf_size={leaf_size})"
        )

    @property
    def root(self) -> SpatialNode:
        """The node covering every point."""
        return self.nodes[0]

    def __len__(self) -> int:
        return len(self.nodes)

    def node_points(self, node: SpatialNode) -> np.ndarray:
        """Points under a node, in permuted order."""
        return self.points[node.start:node.end]

    def to_original_order(self, values: np.ndarray) -> np.ndarray:
        """Undo the tree permutation on a per-point array."""
        restored = np.empty_like(values)
        restored[self.permutation] = values
        return restored

    def _flatten(self, kd_root) -> None:
        """Copy the cKDTree nodes into the arena in pre-order."""
        # Each entry is (kd node, parent arena index, depth)
        pending = [(kd_root, -1, 0)]
        child_lists: List[List[int]] = []

        while pending:
            kd_node, parent, depth = pending.pop()
            index = len(self.nodes)
            start, end = int(kd_node.start_idx), int(kd_node.end_idx)
            center, radius = self._bounding_ball(self.points[start:end])

            self.nodes.append(SpatialNode(
                index=index,
                start=start,
                end=end,
                center=center,
                radius=radius,
                depth=depth,
            ))
            child_lists.append([])
            if parent >= 0:
                child_lists[parent].append(index)

            # Push greater first so lesser is numbered first
            for child in (kd_node.greater, kd_node.lesser):
                if child is not None:
                    pending.append((child, index, depth + 1))

        self.nodes = [
            SpatialNode(
                index=node.index,
                start=node.start,
                end=node.end,
                center=node.center,
                radius=node.radius,
                children=tuple(children),
                depth=node.depth,
            )
            for node, children in zip(self.nodes, child_lists)
        ]

    def _bounding_ball(self, members: np.ndarray) -> Tuple[np.ndarray, float]:
        """Mean of the members and rooted distance to the farthest one."""
        center = members.mean(axis=0)
        distances = self.metric.root(self.metric.pairwise(members, center[np.newaxis, :]))
        return center, float(distances.max())
