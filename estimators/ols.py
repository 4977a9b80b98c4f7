"""Ordinary Least Squares (OLS) estimator.

This module implements OLS with analytic (classical or HC1) inference. It is
also the first-stage workhorse of :class:`ivsens.estimators.iv.IV2SLS`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from ivsens.core import inference as inf
from ivsens.core import linalg as la
from ivsens.exceptions import InsufficientObservationsError, SingularMatrixError
from ivsens.utils.auto_constant import add_constant

from .base import BaseEstimator, EstimationResult, normalize_ci_level

if TYPE_CHECKING:
    from collections.abc import Sequence


ArrayLike = Union[pd.Series, np.ndarray[Any, np.dtype[np.float64]]]
MatrixLike = Union[pd.DataFrame, np.ndarray[Any, np.dtype[np.float64]]]


class OLS(BaseEstimator):
    """Ordinary Least Squares regression.

    Estimates y = Xβ + u by pivoted QR.

    Parameters
    ----------
    y : array-like, shape (n,) or (n, 1)
        Dependent variable (outcome).
    X : array-like, shape (n, p)
        Independent variables (covariates). Can be numpy array or pandas DataFrame.
    add_const : bool, default=True
        If True, automatically adds a constant term to X. The constant is always placed
        as the LAST column in the design matrix.
    var_names : Sequence[str], optional
        Variable names for X columns. If None and X is a DataFrame, uses X.columns.
        If None and X is array, generates names as ['x0', 'x1', ...].

    Attributes
    ----------
    y_orig : ndarray, shape (n, 1)
        Outcome variable.
    X_orig : ndarray, shape (n, p+1) or (n, p)
        Design matrix (with constant if add_const=True).
    _var_names : list of str
        Variable names including constant (e.g., ['x1', 'x2', '_cons']).

    Examples
    --------
    >>> import numpy as np
    >>> from ivsens.estimators.ols import OLS
    >>> rng = np.random.default_rng(42)
    >>> X = rng.standard_normal((200, 2))
    >>> y = 1.0 + 2.0 * X[:, 0] + 1.5 * X[:, 1] + rng.standard_normal(200) * 0.5
    >>> result = OLS(y, X, var_names=["x1", "x2"]).fit()
    >>> result.params.index.tolist()
    ['x1', 'x2', '_cons']

    Notes
    -----
    - Rank deficiency is an error (``SingularMatrixError``), not silently
      dropped, so every fit reports the full coefficient vector.
    - ``n <= p`` raises ``InsufficientObservationsError``.

    """

    def __init__(
        self,
        y: ArrayLike,
        X: MatrixLike,
        *,
        add_const: bool = True,
        var_names: Sequence[str] | None = None,
    ) -> None:
        super().__init__()
        y_arr = np.asarray(y, dtype=np.float64).reshape(-1, 1)
        if var_names is None and isinstance(X, pd.DataFrame):
            var_names = list(X.columns)
        X_arr = np.asarray(X, dtype=np.float64, order="C")
        if X_arr.ndim == 1:
            X_arr = X_arr.reshape(-1, 1)
        if X_arr.shape[0] != y_arr.shape[0]:
            raise ValueError(
                f"y has {y_arr.shape[0]} rows but X has {X_arr.shape[0]}.",
            )

        X_aug, names_out, const_name = add_constant(
            X_arr, var_names, include_intercept=add_const,
        )
        self._const_name = const_name
        self._var_names = list(names_out)
        self.y_orig: NDArray[np.float64] = y_arr
        self.X_orig: NDArray[np.float64] = X_aug
        self._n_obs, self._n_features = self.X_orig.shape

    # ------------------------------------------------------------------
    def fit(
        self,
        *,
        ci_level: float | None = 0.95,
        vcov: str = "classical",
        dist: str = "normal",
        rank_policy: str = "stata",
    ) -> EstimationResult:
        """Fit OLS model.

        Parameters
        ----------
        ci_level : float, default=0.95
            Confidence level (95 is accepted as a percentage).
        vcov : {"classical", "robust"}
            Homoskedastic or HC1 covariance.
        dist : {"normal", "t"}
            Reference distribution for the interval critical value.
        rank_policy : {"stata", "R"}
            Tolerance convention for the rank test.

        """
        level = normalize_ci_level(ci_level)
        X, y = self.X_orig, self.y_orig
        n, k = X.shape
        if n <= k:
            raise InsufficientObservationsError(
                f"OLS needs more observations than parameters; n={n}, k={k}.",
            )
        la._assert_all_finite(X, y)
        rank = la.column_rank(X, mode=rank_policy)
        if rank < k:
            raise SingularMatrixError(
                f"OLS design matrix is rank-deficient (rank {rank} < {k} columns: "
                f"{', '.join(self._var_names)}).",
            )

        beta = self._solve_ols(X, y, rank_policy=rank_policy)
        fitted = la.dot(X, beta).reshape(-1)
        resid = y.reshape(-1) - fitted
        V = inf.vcov_linear(X, resid, kind=vcov, rank_policy=rank_policy)
        se = np.sqrt(np.clip(np.diag(V), 0.0, None))
        df_resid = n - k
        lower, upper = inf.confidence_interval(
            beta, se, level=level, dist=dist, df=df_resid,
        )

        names = self._var_names
        ybar = float(np.mean(y))
        tss = float(np.sum((y.reshape(-1) - ybar) ** 2)) if self._const_name else float(np.sum(y**2))
        rss = float(resid @ resid)
        self._results = EstimationResult(
            params=pd.Series(beta.reshape(-1), index=names, name="coef"),
            se=pd.Series(se, index=names, name="se"),
            conf_int=pd.DataFrame({"lower": lower, "upper": upper}, index=names),
            vcov=pd.DataFrame(V, index=names, columns=names),
            n_obs=int(n),
            model_info={
                "Estimator": "OLS",
                "VCOV": vcov,
                "CI level": level,
                "Dist": dist,
            },
            extra={
                "fitted": fitted,
                "resid": resid,
                "df_resid": int(df_resid),
                "r2": (1.0 - rss / tss) if tss > 0.0 else float("nan"),
                "rss": rss,
            },
        )
        return self._results

    def _solve_ols(
        self,
        X: NDArray[np.float64],
        y: NDArray[np.float64],
        *,
        rank_policy: str = "stata",
    ) -> NDArray[np.float64]:
        """Solve least squares through the QR-only path for determinism."""
        beta = la.solve(
            X,
            y,
            method="qr",
            rank_policy=("R" if rank_policy.lower() == "r" else "stata"),
        )
        if beta.ndim == 1:
            beta = beta.reshape(-1, 1)
        return beta
