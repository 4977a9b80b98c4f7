"""Intercept column handling.

Stata-style ``_cons`` placement: the intercept is always the last column.
An all-ones column supplied by the caller is reused as the intercept rather
than duplicated.
"""

from __future__ import annotations

import warnings
from typing import TYPE_CHECKING

import numpy as np

from ivsens.exceptions import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

__all__ = ["CONST_NAME", "add_constant", "check_constant_regressors"]

CONST_NAME = "_cons"

# Constants
_NDIM_2D = 2
_CONST_TOL = 1e-12


def add_constant(
    X: np.ndarray,
    var_names: Sequence[str] | None = None,
    *,
    const_name: str = CONST_NAME,
    include_intercept: bool = True,
    warn_on_existing_constant: bool = True,
    tol: float = _CONST_TOL,
) -> tuple[np.ndarray, list[str], str | None]:
    """Append an intercept column named ``const_name`` at the back of ``X``.

    Parameters
    ----------
    X : np.ndarray, shape (n, k)
        Design matrix; ``k`` may be zero.
    var_names : Sequence[str] | None
        Column names; defaults to ``x0, x1, ...``.
    const_name : str
        Name given to the intercept.
    include_intercept : bool
        When False, ``X`` is returned unchanged and the constant name is None.
    warn_on_existing_constant : bool
        Emit a ``RuntimeWarning`` when an all-ones column is already present.
    tol : float
        Tolerance for detecting an all-ones column.

    Returns
    -------
    X_out : np.ndarray
        Matrix with intercept.
    names_out : list[str]
        Variable names with intercept.
    const_name_out : str | None
        Name of the column acting as intercept, or None.

    """
    X = np.asarray(X, dtype=np.float64, order="C")
    if X.ndim != _NDIM_2D:
        raise ValueError("X must be 2D.")
    n, k = X.shape
    names = _normalize_variable_names(var_names, k)
    _validate_unique_names(names)

    if not include_intercept:
        return X, names, None

    ones_idx = _find_ones_cols(X, tol)
    if const_name in names and names.index(const_name) not in ones_idx:
        raise ValueError(
            f"Column name conflicts with reserved name '{const_name}' but is not a constant.",
        )
    if ones_idx:
        existing = names[ones_idx[0]]
        if warn_on_existing_constant:
            warnings.warn(
                f"Existing constant column '{existing}' detected; using it as the intercept.",
                RuntimeWarning,
                stacklevel=2,
            )
        return X, names, existing

    out = np.column_stack([X, np.ones((n, 1), dtype=np.float64)])
    return out, [*names, const_name], const_name


def _normalize_variable_names(var_names: Sequence[str] | None, k: int) -> list[str]:
    """Normalize variable names to a list of strings."""
    if var_names is None:
        return [f"x{i}" for i in range(k)]
    names = [str(nm) for nm in var_names]
    if len(names) != k:
        msg = f"var_names length ({len(names)}) does not match X columns ({k})."
        raise ValueError(msg)
    return names


def _validate_unique_names(names: list[str]) -> None:
    """Ensure all variable names are unique."""
    dup_seen: set[str] = set()
    for nm in names:
        if nm in dup_seen:
            raise ValueError(
                f"Duplicate variable name in var_names: '{nm}'. Provide unique names.",
            )
        dup_seen.add(nm)


def _find_ones_cols(X: np.ndarray, tol: float) -> list[int]:
    """Indices of columns equal to one within ``tol``."""
    if X.shape[0] == 0:
        return []
    return [
        j for j in range(X.shape[1])
        if np.all(np.isfinite(X[:, j])) and float(np.max(np.abs(X[:, j] - 1.0))) <= float(tol)
    ]


def check_constant_regressors(
    columns: Mapping[str, np.ndarray],
    regressors: Sequence[str],
    *,
    include_intercept: bool = True,
    tol: float = _CONST_TOL,
) -> None:
    """Reject all-ones regressors when a ``_cons`` intercept is requested.

    ``add_constant`` would silently promote such a column to the intercept, so
    the coefficient labels would lose ``_cons``.
    """
    if not include_intercept or not regressors:
        return
    X = np.column_stack([np.asarray(columns[nm], dtype=np.float64) for nm in regressors])
    ones = [regressors[j] for j in _find_ones_cols(X, tol)]
    if ones:
        raise ConfigError(
            f"Regressor(s) {ones} are constant 1 while include_intercept=True; "
            "drop them or set include_intercept=False.",
        )
