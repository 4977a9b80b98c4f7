"""Linear algebra routines for regression analysis.

This module provides pivoted-QR least-squares solvers with rank policies
compatible with R and Stata. Every estimator routes its matrix work through
here; explicit matrix inversion of Gram matrices is avoided.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import scipy.linalg as sla

if TYPE_CHECKING:
    from numpy.typing import NDArray

# Matrix type alias
Matrix = Any

__all__ = [
    "column_rank",
    "column_stack",
    "dot",
    "qr",
    "rank_from_diag",
    "solve",
    "tdot",
    "to_dense",
    "xtx_inv_via_qr",
]


def _check_array_finiteness(arr: NDArray[np.float64]) -> None:
    """Helper to validate array finiteness with clear error message."""
    if not np.all(np.isfinite(arr)):
        raise ValueError(
            "Input contains NA/NaN/Inf; please drop/clean rows (R/Stata behavior).",
        )


def _assert_all_finite(*arrays: NDArray[np.float64] | None) -> None:
    """Raise ValueError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        _check_array_finiteness(np.asarray(a))


def to_dense(A: Matrix) -> NDArray[np.float64]:
    """Convert a matrix-like object (ndarray, DataFrame, list) to float64 ndarray."""
    if hasattr(A, "to_numpy"):
        return np.asarray(A.to_numpy(), dtype=np.float64)
    return np.asarray(A, dtype=np.float64)


def qr(A: Matrix, *, pivoting: bool = False, mode: str = "economic"):
    """Compute the (optionally column-pivoted) QR decomposition.

    Returns ``(Q, R)`` or ``(Q, R, P)`` when ``pivoting=True``, where ``P`` is
    the column permutation such that ``A[:, P] == Q @ R``.
    """
    Ad = to_dense(A)
    rcols = min(Ad.shape[0], Ad.shape[1])
    if pivoting:
        Q, R, P = sla.qr(Ad, mode=mode, pivoting=True)
        return Q[:, :rcols], R[:rcols, :], P
    Q, R = sla.qr(Ad, mode=mode, pivoting=False)
    return Q[:, :rcols], R[:rcols, :]


def _rank_from_diag(diagR: NDArray[np.float64], ncols: int, mode: str = "stata") -> int:
    """Determine numerical rank from R diagonal entries using method-specific tolerance."""
    d = np.abs(np.asarray(diagR, dtype=float).reshape(-1))
    if d.size == 0:
        return 0
    mode_lower = str(mode).lower()
    if mode_lower == "stata":
        # Mata qrsolve: eta = 1e-13 * trace(|R|)/rows(R)
        tol = 1e-13 * (float(np.sum(d)) / float(d.size))
    elif mode_lower in ("r", "r_strict"):
        # lm.fit default: tol = 1e-7 * max(|diag(R)|)
        tol = 1e-7 * float(np.max(d))
    else:  # numpy-like rcond style
        tol = np.finfo(float).eps * max(1, int(ncols)) * float(np.max(d))
    return int(np.sum(d > tol))


def rank_from_diag(
    diagR: NDArray[np.float64], ncols: int, *, mode: str = "stata",
) -> int:
    """Public wrapper for :func:`_rank_from_diag` (preserves Stata/R conventions)."""
    return _rank_from_diag(diagR, ncols, mode=mode)


def column_rank(A: Matrix, *, mode: str = "stata") -> int:
    """Numerical column rank of ``A`` via pivoted QR."""
    Ad = to_dense(A)
    if Ad.ndim != 2 or Ad.shape[1] == 0:
        return 0
    _Q, R, _P = qr(Ad, pivoting=True)
    return rank_from_diag(np.diag(R), Ad.shape[1], mode=mode)


def _qr_ls_solve(
    Ad: NDArray[np.float64], Bd: NDArray[np.float64], *, mode: str = "stata",
) -> NDArray[np.float64]:
    """Solve least squares via pivoted QR.

    Dropped (unidentified) coefficients are zero-filled under the Stata policy
    and NaN-filled under the R policy.
    """
    Bd = Bd.reshape(-1, 1) if Bd.ndim == 1 else Bd
    Q, R, P = sla.qr(Ad, mode="economic", pivoting=True)
    r = _rank_from_diag(np.diag(R), Ad.shape[1], mode=mode)
    fill = np.nan if str(mode).lower().startswith("r") else 0.0
    out = np.full((Ad.shape[1], Bd.shape[1]), fill, dtype=np.float64)
    if r > 0:
        QtB = Q.T @ Bd
        out[P[:r], :] = sla.solve_triangular(
            R[:r, :r], QtB[:r, :], lower=False, check_finite=False,
        )
    return out


def solve(
    A: Matrix,
    B: Matrix,
    *,
    method: str = "qr",
    rank_policy: str = "stata",
) -> NDArray[np.float64]:
    """Least-squares solution of ``A x = B`` (column-shaped output)."""
    if method != "qr":
        raise ValueError("solve: method must be 'qr'")
    Ad = to_dense(A)
    Bd = to_dense(B)
    Bd = Bd.reshape(-1, 1) if Bd.ndim == 1 else Bd
    _assert_all_finite(Ad, Bd)
    mode = "R" if rank_policy.upper().startswith("R") else "stata"
    return _qr_ls_solve(Ad, Bd, mode=mode)


def xtx_inv_via_qr(X: Matrix, *, rank_policy: str = "stata") -> NDArray[np.float64]:
    """Compute ``(X'X)^{-1}`` via pivoted QR on ``X``.

    This avoids forming the Gram matrix explicitly and so does not square the
    condition number. Raises ``numpy.linalg.LinAlgError`` when ``X`` does not
    have full column rank; callers decide how to report it.
    """
    Xd = to_dense(X)
    _assert_all_finite(Xd)
    p = Xd.shape[1]
    _Q, R, P = qr(Xd, pivoting=True)
    r = _rank_from_diag(
        np.diag(R), p, mode=("R" if str(rank_policy).lower().startswith("r") else "stata"),
    )
    if r < p:
        raise np.linalg.LinAlgError(f"X'X is singular (rank {r} < {p} columns).")
    Rinv = sla.solve_triangular(R, np.eye(p, dtype=np.float64), lower=False, check_finite=False)
    A = Rinv @ Rinv.T
    invp = np.argsort(P[:p])
    return A[invp][:, invp].astype(np.float64)


def dot(A: Matrix, B: Matrix) -> NDArray[np.float64]:
    """Dense matrix multiplication in float64."""
    return np.asarray(A, dtype=np.float64) @ np.asarray(B, dtype=np.float64)


def tdot(X: Matrix) -> NDArray[np.float64]:
    """Compute X'X."""
    Xd = np.asarray(X, dtype=np.float64)
    return Xd.T @ Xd


def column_stack(cols: list[Matrix]) -> NDArray[np.float64]:
    """Column-wise stack that returns a dense float64 ndarray.

    Zero-width inputs are allowed, which keeps callers free of special cases
    for empty exogenous or instrument blocks.
    """
    blocks = [to_dense(c) for c in cols]
    blocks = [b.reshape(-1, 1) if b.ndim == 1 else b for b in blocks]
    return np.column_stack(blocks).astype(np.float64)
