"""
clusterpack - K-Means clustering engine.

A library component that clusters an in-memory point set into K clusters
under a pluggable distance metric, with overclustering and merging, empty
cluster repair, and an exact tree-accelerated iteration path.
"""

from __future__ import annotations

__version__ = "1.0.0"

from .clustering import (
    KMeans,
    KMeansResult,
    ClusterStatistics,
    DistanceMetric,
    InitialPartitionPolicy,
    EmptyClusterPolicy,
    LMetric,
    ManhattanDistance,
    EuclideanDistance,
    SquaredEuclideanDistance,
    ChebyshevDistance,
    RandomPartition,
    MaxVarianceNewCluster,
    AllowEmptyClusters,
    SpatialTree,
    compute_quality_metrics,
)
from .config import KMeansConfig, load_config
from .errors import ClusterPackError, InvalidArgumentError, ErrorContext

__all__ = [
    # Engine
    "KMeans",
    "KMeansResult",
    "KMeansConfig",
    "load_config",

    # Capability interfaces
    "ClusterStatistics",
    "DistanceMetric",
    "InitialPartitionPolicy",
    "EmptyClusterPolicy",

    # Shipped policies
    "LMetric",
    "ManhattanDistance",
    "EuclideanDistance",
    "SquaredEuclideanDistance",
    "ChebyshevDistance",
    "RandomPartition",
    "MaxVarianceNewCluster",
    "AllowEmptyClusters",
    "SpatialTree",
    "compute_quality_metrics",

    # Errors
    "ClusterPackError",
    "InvalidArgumentError",
    "ErrorContext",
]
