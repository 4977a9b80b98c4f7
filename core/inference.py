"""Analytic inference utilities for linear IV estimators.

Covariance matrices for 2SLS and normal / Student-t confidence intervals.
All variances are evaluated with structural residuals (original regressors),
never with the second-stage fitted-value residuals.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from scipy import stats

from ivsens.core import linalg as la

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = [
    "VCOV_KINDS",
    "critical_value",
    "confidence_interval",
    "vcov_linear",
    "vcov_classical",
    "vcov_robust",
]

VCOV_KINDS = ("classical", "robust")
_DISTS = ("normal", "t")


def critical_value(level: float, *, dist: str = "normal", df: int | None = None) -> float:
    """Two-sided critical value ``q(1 - alpha/2)`` for confidence ``level``."""
    if not (0.0 < float(level) < 1.0):
        raise ValueError("level must lie in (0, 1).")
    upper = 1.0 - (1.0 - float(level)) / 2.0
    if dist == "normal":
        return float(stats.norm.ppf(upper))
    if dist == "t":
        if df is None or int(df) <= 0:
            raise ValueError("Student-t critical values need positive degrees of freedom.")
        return float(stats.t.ppf(upper, int(df)))
    raise ValueError(f"dist must be one of {_DISTS}; got '{dist}'.")


def confidence_interval(
    params: NDArray[np.float64],
    se: NDArray[np.float64],
    *,
    level: float = 0.95,
    dist: str = "normal",
    df: int | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Return ``(lower, upper)`` arrays ``params -/+ q * se``."""
    q = critical_value(level, dist=dist, df=df)
    b = np.asarray(params, dtype=np.float64).reshape(-1)
    s = np.asarray(se, dtype=np.float64).reshape(-1)
    return b - q * s, b + q * s


def vcov_classical(
    Xhat: NDArray[np.float64],
    u: NDArray[np.float64],
    *,
    rank_policy: str = "stata",
) -> NDArray[np.float64]:
    """Homoskedastic 2SLS covariance ``s^2 (Xhat'Xhat)^{-1}``, ``s^2 = u'u/(n-k)``."""
    n, k = Xhat.shape
    bread = la.xtx_inv_via_qr(Xhat, rank_policy=rank_policy)
    resid = np.asarray(u, dtype=np.float64).reshape(-1)
    sigma2 = float(resid @ resid) / float(n - k)
    return sigma2 * bread


def vcov_robust(
    Xhat: NDArray[np.float64],
    u: NDArray[np.float64],
    *,
    rank_policy: str = "stata",
) -> NDArray[np.float64]:
    """Heteroskedasticity-robust (HC1) 2SLS sandwich covariance."""
    n, k = Xhat.shape
    bread = la.xtx_inv_via_qr(Xhat, rank_policy=rank_policy)
    resid = np.asarray(u, dtype=np.float64).reshape(-1, 1)
    scores = Xhat * resid
    meat = la.tdot(scores)
    V = bread @ meat @ bread
    V = 0.5 * (V + V.T)
    return (float(n) / float(n - k)) * V


def vcov_linear(
    Xhat: NDArray[np.float64],
    u: NDArray[np.float64],
    *,
    kind: str = "classical",
    rank_policy: str = "stata",
) -> NDArray[np.float64]:
    """Dispatch on ``kind`` (one of :data:`VCOV_KINDS`)."""
    if kind == "classical":
        return vcov_classical(Xhat, u, rank_policy=rank_policy)
    if kind == "robust":
        return vcov_robust(Xhat, u, rank_policy=rank_policy)
    raise ValueError(f"vcov must be one of {VCOV_KINDS}; got '{kind}'.")
