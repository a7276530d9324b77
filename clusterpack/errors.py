"""Error types for the clusterpack engine.

Invalid input is reported immediately with an ErrorContext describing the
operation that rejected it. Hitting an iteration cap is not an error; see
KMeansResult.converged.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for consistent error classification."""
    LOW = "low"           # Recoverable, a fallback was applied
    MEDIUM = "medium"     # Call rejected, nothing was computed
    HIGH = "high"         # Internal invariant broken


@dataclass
class ErrorContext:
    """Context information for error reporting and debugging."""
    operation: str
    component: str
    additional_info: Optional[Dict[str, Any]] = None
    severity: ErrorSeverity = ErrorSeverity.MEDIUM

    def describe(self) -> str:
        """Render the context as a short human-readable suffix."""
        parts = [f"{self.component}.{self.operation}"]
        if self.additional_info:
            details = ", ".join(
                f"{key}={value!r}" for key, value in sorted(self.additional_info.items())
            )
            parts.append(details)
        return "; ".join(parts)


class ClusterPackError(Exception):
    """Base exception for clusterpack errors."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        message = super().__str__()
        if self.context is None:
            return message
        return f"{message} ({self.context.describe()})"


class InvalidArgumentError(ClusterPackError, ValueError):
    """Raised when a clustering call is given arguments it cannot accept."""
    pass


def invalid_argument(
    message: str,
    operation: str,
    component: str = "KMeans",
    **additional_info: Any,
) -> InvalidArgumentError:
    """Build an InvalidArgumentError with an attached ErrorContext.

    Args:
        message: Human-readable description of the problem
        operation: Operation that rejected the input
        component: Component name for the context
        **additional_info: Offending values, recorded on the context

    Returns:
        The exception, ready to be raised by the caller
    """
    context = ErrorContext(
        operation=operation,
        component=component,
        additional_info=additional_info or None,
    )
    return InvalidArgumentError(message, context)
