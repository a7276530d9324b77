"""
Configuration for the clusterpack K-Means engine.

Holds the tunable knobs of a clustering engine with validated defaults,
preset constructors, and environment variable overrides.
"""

from __future__ import annotations

import logging
import math
import numbers
import os
from dataclasses import dataclass

from .errors import invalid_argument

logger = logging.getLogger(__name__)


DEFAULT_MAX_ITERATIONS = 1000
DEFAULT_OVERCLUSTERING_FACTOR = 1.0
DEFAULT_LEAF_SIZE = 20
DEFAULT_RANDOM_STATE = 42


@dataclass
class KMeansConfig:
    """
    Configuration for a K-Means engine.

    Attributes:
        max_iterations: Cap on refinement passes; 0 means run until the
            assignments stop changing
        overclustering_factor: Ratio of working clusters to requested
            clusters; values above 1.0 enable overclustering and merging
        leaf_size: Maximum number of points in a spatial tree leaf
        random_state: Seed for the default random initial partition
    """

    max_iterations: int = DEFAULT_MAX_ITERATIONS
    overclustering_factor: float = DEFAULT_OVERCLUSTERING_FACTOR
    leaf_size: int = DEFAULT_LEAF_SIZE
    random_state: int = DEFAULT_RANDOM_STATE

    def __post_init__(self):
        """Validate configuration values."""
        validate_max_iterations(self.max_iterations)
        validate_overclustering_factor(self.overclustering_factor)
        validate_leaf_size(self.leaf_size)

    @property
    def overclustering_enabled(self) -> bool:
        """True if the factor will produce extra working clusters."""
        return self.overclustering_factor > 1.0

    @classmethod
    def for_research(cls) -> 'KMeansConfig':
        """Create configuration that always runs to convergence."""
        return cls(
            max_iterations=0,
            overclustering_factor=1.0,
        )

    @classmethod
    def for_large_datasets(cls) -> 'KMeansConfig':
        """Create configuration tuned for large point sets on the tree path."""
        return cls(
            max_iterations=300,
            overclustering_factor=2.0,  # Merging stabilizes poor starts
            leaf_size=40,
        )


def validate_max_iterations(value: int) -> None:
    """Reject negative or non-integral iteration caps."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 0:
        raise invalid_argument(
            "max_iterations must be a non-negative integer",
            operation="configure",
            component="KMeansConfig",
            max_iterations=value,
        )


def validate_overclustering_factor(value: float) -> None:
    """Reject non-finite or non-positive overclustering factors."""
    if not isinstance(value, numbers.Real) or not math.isfinite(value) or value <= 0:
        raise invalid_argument(
            "overclustering_factor must be a positive finite number",
            operation="configure",
            component="KMeansConfig",
            overclustering_factor=value,
        )


def validate_leaf_size(value: int) -> None:
    """Reject leaf sizes the spatial tree cannot use."""
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise invalid_argument(
            "leaf_size must be a positive integer",
            operation="configure",
            component="KMeansConfig",
            leaf_size=value,
        )


def _get_int_env(name: str, default: int) -> int:
    """Get integer environment variable with safe default."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (ValueError, TypeError):
        logger.warning(f"Ignoring invalid integer for {name}: {raw!r}")
        return default


def _get_float_env(name: str, default: float) -> float:
    """Get float environment variable with safe default."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (ValueError, TypeError):
        logger.warning(f"Ignoring invalid float for {name}: {raw!r}")
        return default
    if not math.isfinite(value):
        logger.warning(f"Ignoring non-finite value for {name}: {raw!r}")
        return default
    return value


def load_config() -> KMeansConfig:
    """
    Load engine configuration from environment variables.

    Environment Variables:
        CLUSTERPACK_MAX_ITERATIONS: Cap on refinement passes (default: 1000)
        CLUSTERPACK_OVERCLUSTERING_FACTOR: Overclustering ratio (default: 1.0)
        CLUSTERPACK_LEAF_SIZE: Spatial tree leaf size (default: 20)
        CLUSTERPACK_RANDOM_STATE: Seed for the random partition (default: 42)

    Values that cannot be parsed, or that fail validation, fall back to the
    defaults.

    Returns:
        KMeansConfig instance with current values
    """
    max_iterations = _get_int_env('CLUSTERPACK_MAX_ITERATIONS', DEFAULT_MAX_ITERATIONS)
    if max_iterations < 0:
        logger.warning(f"Ignoring negative CLUSTERPACK_MAX_ITERATIONS: {max_iterations}")
        max_iterations = DEFAULT_MAX_ITERATIONS

    factor = _get_float_env('CLUSTERPACK_OVERCLUSTERING_FACTOR', DEFAULT_OVERCLUSTERING_FACTOR)
    if factor <= 0:
        logger.warning(f"Ignoring non-positive CLUSTERPACK_OVERCLUSTERING_FACTOR: {factor}")
        factor = DEFAULT_OVERCLUSTERING_FACTOR

    leaf_size = _get_int_env('CLUSTERPACK_LEAF_SIZE', DEFAULT_LEAF_SIZE)
    if leaf_size < 1:
        logger.warning(f"Ignoring non-positive CLUSTERPACK_LEAF_SIZE: {leaf_size}")
        leaf_size = DEFAULT_LEAF_SIZE

    return KMeansConfig(
        max_iterations=max_iterations,
        overclustering_factor=factor,
        leaf_size=leaf_size,
        random_state=_get_int_env('CLUSTERPACK_RANDOM_STATE', DEFAULT_RANDOM_STATE),
    )
