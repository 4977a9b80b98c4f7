"""Base classes and shared result containers.

This module defines the abstract base estimator, confidence-level helpers,
and the standardized estimation results container.
"""

# ivsens/estimators/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

__all__ = [
    "BaseEstimator",
    "EstimationResult",
    "normalize_ci_level",
]


def normalize_ci_level(level: float | None, *, default: float = 0.95) -> float:
    """Normalize confidence level to a probability (0, 1)."""
    if not (0.0 < float(default) < 1.0):
        raise ValueError("default confidence level must lie in (0, 1)")
    if level is None:
        coerced = float(default)
    else:
        coerced = float(level)
        # Accept percentage-style inputs (e.g., 90 for 90%)
        if coerced > 1.0:
            coerced /= 100.0
    if not (0.0 < coerced < 1.0):
        raise ValueError("ci_level must be in (0, 1); supply e.g. 0.95 or 95")
    return coerced


# ---------------------------------------------------------------------
# Results container, estimator-agnostic
# ---------------------------------------------------------------------
@dataclass
class EstimationResult:
    """Container for estimation results.

    Stores parameter estimates, analytic standard errors, confidence
    intervals and diagnostics. ``conf_int`` has columns ``lower``/``upper``
    and shares its index with ``params``.
    """

    params: pd.Series
    se: pd.Series | None = None
    conf_int: pd.DataFrame | None = None
    vcov: pd.DataFrame | None = None
    n_obs: int | None = None
    model_info: dict[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    """Dictionary for estimator-specific diagnostics and intermediate results."""

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        head = ", ".join(f"{k}={v}" for k, v in self.model_info.items())
        return f"EstimationResult(k={len(self.params)}, n={self.n_obs}, {head})"

    @property
    def coefficient_names(self) -> list[str]:
        return [str(nm) for nm in self.params.index]

    def interval(self, name: str) -> tuple[float, float]:
        """Confidence interval ``(lower, upper)`` for one coefficient."""
        if self.conf_int is None:
            raise ValueError("No confidence intervals were computed for this result.")
        row = self.conf_int.loc[name]
        return float(row["lower"]), float(row["upper"])


class BaseEstimator(ABC):
    """Abstract base class for all `ivsens` estimators.

    Principles
    ----------
    1) All linear algebra goes through `core.linalg`.
    2) Analytic inference goes through `core.inference`.
    3) Estimators never mutate their inputs; `fit` is a pure function of the
       stored arrays and its arguments.
    """

    def __init__(self) -> None:
        self._results: EstimationResult | None = None

    @property
    def results(self) -> EstimationResult | None:
        """Result of the most recent :meth:`fit` call (None before fitting)."""
        return self._results

    @abstractmethod
    def fit(self, **kwargs: Any) -> EstimationResult:
        """Estimate the model."""
