"""
Clustering quality metrics.

Scores a finished clustering with scikit-learn's silhouette,
Calinski-Harabasz and Davies-Bouldin indices, and a coverage uniformity
score derived from the cluster sizes.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
from scipy import sparse
from sklearn.metrics import calinski_harabasz_score, davies_bouldin_score, silhouette_score

from .base import KMeansResult

logger = logging.getLogger(__name__)


def compute_quality_metrics(data, result: KMeansResult) -> Dict[str, float]:
    """
    Calculate clustering quality metrics and store them on the result.

    The separation indices need at least two occupied clusters and fewer
    clusters than points; outside that range they are left out.

    Args:
        data: The point set that was clustered
        result: Result of KMeans.cluster or KMeans.fast_cluster

    Returns:
        Dictionary of metric name to score (also stored in result.quality)
    """
    points = data.toarray() if sparse.issparse(data) else np.asarray(data, dtype=np.float64)
    labels = result.assignments
    n_labels = len(np.unique(labels))

    metrics: Dict[str, float] = {}
    if 1 < n_labels < len(points):
        metrics['silhouette_score'] = float(silhouette_score(points, labels))
        metrics['calinski_harabasz_score'] = float(calinski_harabasz_score(points, labels))
        metrics['davies_bouldin_score'] = float(davies_bouldin_score(points, labels))
    else:
        logger.debug(f"{n_labels} occupied clusters for {len(points)} points; separation metrics skipped")

    # Coefficient-of-variation style score: 1.0 for equal sizes
    sizes = result.counts[result.counts > 0]
    if len(sizes) > 0:
        mean_size = float(np.mean(sizes))
        uniformity = 1.0 - float(np.var(sizes)) / max(mean_size, 1.0)
        metrics['coverage_uniformity'] = max(0.0, uniformity)

    result.quality.update(metrics)
    return metrics
