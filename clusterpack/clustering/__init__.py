"""
K-Means clustering engine for clusterpack.

Implements Lloyd's algorithm with overclustering and merging, pluggable
empty-cluster handling, and a tree-accelerated reassignment path that
prunes centroids with distance bounds.
"""

from .base import (
    ClusterStatistics,
    DistanceMetric,
    EmptyClusterPolicy,
    InitialPartitionPolicy,
    KMeansResult,
    assign_to_nearest,
)
from .metrics import (
    LMetric,
    ManhattanDistance,
    EuclideanDistance,
    SquaredEuclideanDistance,
    ChebyshevDistance,
)
from .partition import RandomPartition
from .empty_cluster import MaxVarianceNewCluster, AllowEmptyClusters
from .merge import NearestCentroidMerge
from .tree import SpatialNode, SpatialTree
from .pruning import NodeBounds, PruningStats, TreeAssigner
from .kmeans import KMeans, BruteForceAssigner
from .quality import compute_quality_metrics

__all__ = [
    'ClusterStatistics',
    'DistanceMetric',
    'EmptyClusterPolicy',
    'InitialPartitionPolicy',
    'KMeansResult',
    'assign_to_nearest',
    'LMetric',
    'ManhattanDistance',
    'EuclideanDistance',
    'SquaredEuclideanDistance',
    'ChebyshevDistance',
    'RandomPartition',
    'MaxVarianceNewCluster',
    'AllowEmptyClusters',
    'NearestCentroidMerge',
    'SpatialNode',
    'SpatialTree',
    'NodeBounds',
    'PruningStats',
    'TreeAssigner',
    'KMeans',
    'BruteForceAssigner',
    'compute_quality_metrics',
]
