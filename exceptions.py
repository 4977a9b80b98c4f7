"""Exception hierarchy for ivsens.

Configuration problems derive from ``ValueError`` and numerical failures from
``RuntimeError`` so callers that catch the built-in types keep working.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = [
    "AggregationError",
    "ConfigError",
    "EmptyGridError",
    "EstimationError",
    "IVSensError",
    "InconsistentCoefficientSetError",
    "InsufficientObservationsError",
    "SingularMatrixError",
    "UCICancelledError",
    "UnderidentifiedModelError",
]


def _format_point(point: Sequence[float]) -> str:
    return "(" + ", ".join(f"{float(g):.6g}" for g in point) + ")"


class IVSensError(Exception):
    """Base class for all ivsens errors."""


class ConfigError(IVSensError, ValueError):
    """Malformed, missing, or mismatched call arguments."""


class UnderidentifiedModelError(ConfigError):
    """Fewer excluded instruments than endogenous regressors."""


class EstimationError(IVSensError, RuntimeError):
    """Numerical failure while estimating one candidate regression.

    Parameters
    ----------
    message
        Description of the underlying cause.
    grid_point
        Gamma vector of the candidate that failed, when known. It is echoed
        in ``str(exc)`` so surfaced failures always identify the candidate.

    """

    def __init__(self, message: str, *, grid_point: Sequence[float] | None = None) -> None:
        self.cause = str(message)
        self.grid_point = None if grid_point is None else tuple(float(g) for g in grid_point)
        if self.grid_point is not None:
            message = f"{message} [grid point gamma={_format_point(self.grid_point)}]"
        super().__init__(message)

    def at_grid_point(self, grid_point: Sequence[float]) -> EstimationError:
        """Return a copy of this error annotated with ``grid_point``."""
        return type(self)(self.cause, grid_point=grid_point)


class SingularMatrixError(EstimationError):
    """A design or instrument matrix is rank-deficient."""


class InsufficientObservationsError(EstimationError):
    """Row count does not exceed the number of parameters."""


class AggregationError(IVSensError):
    """Base class for union-aggregation failures."""


class InconsistentCoefficientSetError(AggregationError, ValueError):
    """Candidate interval sets do not share the same coefficient names."""


class EmptyGridError(AggregationError, ValueError):
    """Nothing to aggregate."""


class UCICancelledError(IVSensError):
    """The cancellation event was set while candidates were being estimated."""

    def __init__(self, completed: int, total: int) -> None:
        self.completed = int(completed)
        self.total = int(total)
        super().__init__(
            f"UCI computation cancelled after {self.completed} of {self.total} candidates.",
        )
