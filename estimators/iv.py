"""Two-Stage Least Squares (2SLS) estimator.

This module implements 2SLS with analytic inference whose variance is built
from structural residuals, together with first-stage partial F diagnostics,
and the bridge from a :class:`~ivsens.utils.specification.CandidateRegression`
plus a dataset to a fitted result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd

from ivsens.core import inference as inf
from ivsens.core import linalg as la
from ivsens.exceptions import (
    EstimationError,
    InsufficientObservationsError,
    SingularMatrixError,
)
from ivsens.utils.auto_constant import add_constant, check_constant_regressors
from ivsens.utils.data import extract_columns

from .base import BaseEstimator, EstimationResult, normalize_ci_level
from .ols import OLS

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from ivsens.utils.specification import CandidateRegression

ArrayLike = Union[pd.Series, np.ndarray]
MatrixLike = Union[pd.DataFrame, np.ndarray]

__all__ = ["IV2SLS", "estimate_candidate"]


def _partial_f(
    x_j: NDArray[np.float64],
    Z: NDArray[np.float64],
    *,
    z_excluded_idx: Sequence[int],
    rss_u: float,
) -> float:
    """SSR-difference F for the excluded instruments in one first-stage regression."""
    n, L = Z.shape
    q = len(z_excluded_idx)
    df_u = n - L
    if q == 0 or df_u <= 0 or rss_u <= 0.0:
        return float("nan")
    included = [j for j in range(L) if j not in set(z_excluded_idx)]
    if included:
        Z0 = Z[:, included]
        b_r = la.solve(Z0, x_j, method="qr")
        e_r = x_j.reshape(-1) - la.dot(Z0, b_r).reshape(-1)
        rss_r = float(e_r @ e_r)
    else:
        rss_r = float(x_j.reshape(-1) @ x_j.reshape(-1))
    return (max(rss_r - rss_u, 0.0) / float(q)) / (rss_u / float(df_u))


class IV2SLS(BaseEstimator):
    """Two-Stage Least Squares (2SLS) estimator.

    Estimates y = Xβ + u using instruments Z. Stage 1 regresses each
    endogenous column of X on the full instrument matrix; stage 2 regresses y
    on the exogenous columns and the stage-1 fitted values.

    Parameters
    ----------
    y : array-like, shape (n,) or (n, 1)
        Dependent variable (outcome).
    X : array-like, shape (n, p)
        Full set of regressors including both exogenous and endogenous variables.
    Z : array-like, shape (n, q)
        Excluded instruments. Exogenous columns of X whose names are missing
        from Z are prepended automatically, so Z may also already contain them.
    endog_idx : Sequence[int]
        Indices of endogenous variables in X (0-indexed).
    add_const : bool, default=True
        If True, adds ``_cons`` as the last column of X and Z.
    var_names : Sequence[str], optional
        Names for X variables.
    instr_names : Sequence[str] | None, optional
        Names for Z instruments.

    Returns
    -------
    EstimationResult
        Object containing:
        - params : pd.Series - 2SLS coefficient estimates β̂
        - se : pd.Series - analytic standard errors
        - conf_int : pd.DataFrame - ``lower``/``upper`` per coefficient
        - extra : dict - first-stage partial F / R² per endogenous regressor,
          structural residuals, degrees of freedom

    Examples
    --------
    >>> import numpy as np
    >>> import pandas as pd
    >>> from ivsens.estimators.iv import IV2SLS
    >>> rng = np.random.default_rng(42)
    >>> n = 300
    >>> z1, z2, w, v = rng.standard_normal((4, n))
    >>> x = 0.8 * z1 + 0.6 * z2 + v
    >>> y = 1.5 + 2.0 * x + 1.0 * w + 0.5 * v + rng.standard_normal(n)
    >>> X = pd.DataFrame({"w": w, "x": x})
    >>> Z = pd.DataFrame({"z1": z1, "z2": z2})
    >>> res = IV2SLS(y, X, Z, endog_idx=[1]).fit()
    >>> res.params.index.tolist()
    ['w', 'x', '_cons']

    Notes
    -----
    - Variance uses residuals ``y - X b`` with the *original* endogenous
      regressors: classical ``s² (X̂'X̂)⁻¹`` with ``s² = u'u/(n-k)``, or HC1.
      The covariance of the naive second-stage OLS is never reported.
    - Rank-deficient instrument or second-stage matrices raise
      ``SingularMatrixError``.
    - Each stage needs more observations than its own parameters:
      ``n <= L`` (instrument columns, intercept included) fails the first
      stage and ``n <= k`` the second, both with
      ``InsufficientObservationsError``. With ``n == L`` the first stage fits
      exactly and leaves no residual degrees of freedom for its partial F, so
      overidentified models need ``n > L`` even when ``n > k``.

    References
    ----------
    .. [1] Wooldridge, J. M. (2010). Econometric Analysis of Cross Section and Panel
           Data (2nd ed.). MIT Press, Chapter 5.
    .. [2] Conley, T. G., Hansen, C. B., & Rossi, P. E. (2012). "Plausibly Exogenous."
           Review of Economics and Statistics, 94(1), 260-272.

    See Also
    --------
    OLS : Ordinary least squares (no endogeneity)

    """

    def __init__(  # noqa: PLR0913
        self,
        y: ArrayLike,
        X: MatrixLike,
        Z: MatrixLike,
        *,
        endog_idx: Sequence[int],
        add_const: bool = True,
        var_names: Sequence[str] | None = None,
        instr_names: Sequence[str] | None = None,
    ) -> None:
        """Initialize IV2SLS estimator."""
        super().__init__()
        y_arr = np.asarray(y, dtype=np.float64).reshape(-1, 1)
        if var_names is None and isinstance(X, pd.DataFrame):
            var_names = list(X.columns)
        if instr_names is None and isinstance(Z, pd.DataFrame):
            instr_names = list(Z.columns)
        X_arr = np.asarray(X, dtype=np.float64)
        Z_arr = np.asarray(Z, dtype=np.float64)
        X_arr = X_arr.reshape(-1, 1) if X_arr.ndim == 1 else X_arr
        Z_arr = Z_arr.reshape(-1, 1) if Z_arr.ndim == 1 else Z_arr
        if not (X_arr.shape[0] == Z_arr.shape[0] == y_arr.shape[0]):
            raise ValueError(
                f"y, X and Z must have equal row counts; got {y_arr.shape[0]}, "
                f"{X_arr.shape[0]}, {Z_arr.shape[0]}.",
            )
        x_names = (
            list(var_names) if var_names is not None
            else [f"x{i}" for i in range(X_arr.shape[1])]
        )
        z_names = (
            list(instr_names) if instr_names is not None
            else [f"z{i}" for i in range(Z_arr.shape[1])]
        )
        endog = [int(i) for i in endog_idx]
        if not endog:
            raise ValueError("IV2SLS needs at least one endogenous regressor.")
        if any(i < 0 or i >= X_arr.shape[1] for i in endog) or len(set(endog)) != len(endog):
            raise ValueError(f"endog_idx {endog} is invalid for {X_arr.shape[1]} regressors.")

        # Exogenous regressors act as their own instruments; prepend the ones Z lacks.
        exog_idx = [j for j in range(X_arr.shape[1]) if j not in endog]
        exog_to_add = [j for j in exog_idx if x_names[j] not in set(z_names)]
        Z_full = la.column_stack([X_arr[:, exog_to_add], Z_arr])
        z_full_names = [x_names[j] for j in exog_to_add] + z_names
        excluded_names = [nm for nm in z_names if nm not in set(x_names)]
        if len(excluded_names) < len(endog):
            raise ValueError(
                f"Order condition fails: {len(excluded_names)} excluded instrument(s) "
                f"for {len(endog)} endogenous regressor(s).",
            )

        X_aug, x_names_out, const_name = add_constant(
            X_arr, x_names, include_intercept=add_const,
        )
        Z_aug, z_names_out, _ = add_constant(
            Z_full, z_full_names, include_intercept=add_const,
            warn_on_existing_constant=False,
        )
        self._const_name = const_name
        self._var_names = list(x_names_out)
        self._instr_names = list(z_names_out)
        self.endog_idx = endog
        self.z_excluded_idx = [
            self._instr_names.index(nm) for nm in excluded_names
        ]

        self.y_orig = y_arr
        self.X_orig = X_aug
        self.Z_orig = Z_aug
        self._candidate: CandidateRegression | None = None

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateRegression,
        data: Any,
        *,
        validated: bool = False,
    ) -> IV2SLS:
        """2SLS model for one candidate regression, reading columns from ``data``.

        ``data`` is a ``pandas.DataFrame`` or a mapping of column name to array;
        it is validated (presence, numeric, finite, equal length) and never
        modified. With ``validated=True`` it must already be the float64 column
        mapping returned by :func:`~ivsens.utils.data.extract_columns` and is
        read as is.
        """
        if validated:
            columns = data
        else:
            columns = extract_columns(data, candidate.referenced)
            check_constant_regressors(
                columns, candidate.regressors, include_intercept=candidate.include_intercept,
            )
        y = candidate.outcome(columns)
        X = la.column_stack([columns[nm] for nm in candidate.regressors])
        Z = la.column_stack([columns[nm] for nm in candidate.excluded])
        n_exog = len(candidate.exogenous)
        model = cls(
            y,
            X,
            Z,
            endog_idx=list(range(n_exog, n_exog + len(candidate.endogenous))),
            add_const=candidate.include_intercept,
            var_names=list(candidate.regressors),
            instr_names=list(candidate.excluded),
        )
        model._candidate = candidate
        return model

    def fit(
        self,
        *,
        ci_level: float | None = 0.95,
        vcov: str = "classical",
        dist: str = "normal",
        rank_policy: str = "stata",
    ) -> EstimationResult:
        """Fit the 2SLS model.

        Parameters
        ----------
        ci_level : float, default=0.95
            Confidence level (95 is accepted as a percentage).
        vcov : {"classical", "robust"}
            Homoskedastic (default) or HC1 2SLS covariance.
        dist : {"normal", "t"}
            Critical values from the standard normal or Student-t with
            ``n - k`` degrees of freedom.
        rank_policy : {"stata", "R"}
            Tolerance convention for rank tests.

        """
        level = normalize_ci_level(ci_level)
        X, Z, y = self.X_orig, self.Z_orig, self.y_orig
        n, k = X.shape
        L = Z.shape[1]
        la._assert_all_finite(X, Z, y)
        if n <= L:
            raise InsufficientObservationsError(
                f"First stage needs more observations than instruments; n={n}, instruments={L}.",
            )
        if n <= k:
            raise InsufficientObservationsError(
                f"Second stage needs more observations than parameters; n={n}, k={k}.",
            )
        rank_z = la.column_rank(Z, mode=rank_policy)
        if rank_z < L:
            raise SingularMatrixError(
                f"Instrument matrix is rank-deficient (rank {rank_z} < {L} columns: "
                f"{', '.join(self._instr_names)}).",
            )

        # ---- Stage 1: each endogenous regressor on the full instrument set ----
        Xhat = X.copy()
        first_stage: dict[str, dict[str, float]] = {}
        for j in self.endog_idx:
            nm = self._var_names[j]
            fs = OLS(X[:, j], Z, add_const=False, var_names=self._instr_names).fit(
                ci_level=level, rank_policy=rank_policy,
            )
            Xhat[:, j] = fs.extra["fitted"]
            xj = X[:, j]
            tss = float(np.sum((xj - xj.mean()) ** 2)) if self._const_name else float(xj @ xj)
            first_stage[nm] = {
                "partial_F": _partial_f(
                    X[:, [j]], Z, z_excluded_idx=self.z_excluded_idx, rss_u=fs.extra["rss"],
                ),
                "r2": (1.0 - fs.extra["rss"] / tss) if tss > 0.0 else float("nan"),
            }

        # ---- Stage 2: outcome on exogenous + fitted endogenous ----
        rank_xhat = la.column_rank(Xhat, mode=rank_policy)
        if rank_xhat < k:
            raise SingularMatrixError(
                f"Second-stage design is rank-deficient (rank {rank_xhat} < {k}); "
                "the instruments do not identify every coefficient.",
            )
        beta = la.solve(Xhat, y, method="qr", rank_policy=rank_policy)

        # Structural residuals use the original regressors.
        u = y.reshape(-1) - la.dot(X, beta).reshape(-1)
        V = inf.vcov_linear(Xhat, u, kind=vcov, rank_policy=rank_policy)
        se = np.sqrt(np.clip(np.diag(V), 0.0, None))
        df_resid = n - k
        lower, upper = inf.confidence_interval(
            beta, se, level=level, dist=dist, df=df_resid,
        )

        names = self._var_names
        finite_f = [v["partial_F"] for v in first_stage.values() if np.isfinite(v["partial_F"])]
        model_info: dict[str, Any] = {
            "Estimator": "IV-2SLS",
            "VCOV": vcov,
            "CI level": level,
            "Dist": dist,
            "Endogenous": [names[j] for j in self.endog_idx],
            "Instruments": [self._instr_names[j] for j in self.z_excluded_idx],
        }
        if self._candidate is not None:
            model_info["gamma"] = self._candidate.gamma
            model_info["Outcome"] = self._candidate.label
        self._results = EstimationResult(
            params=pd.Series(beta.reshape(-1), index=names, name="coef"),
            se=pd.Series(se, index=names, name="se"),
            conf_int=pd.DataFrame({"lower": lower, "upper": upper}, index=names),
            vcov=pd.DataFrame(V, index=names, columns=names),
            n_obs=int(n),
            model_info=model_info,
            extra={
                "first_stage": first_stage,
                "F_min": min(finite_f) if finite_f else float("nan"),
                "resid": u,
                "df_resid": int(df_resid),
                "sigma2": float(u @ u) / float(df_resid),
            },
        )
        return self._results


def estimate_candidate(
    candidate: CandidateRegression,
    data: Any,
    *,
    ci_level: float | None = 0.95,
    vcov: str = "classical",
    dist: str = "normal",
    rank_policy: str = "stata",
    validated: bool = False,
) -> EstimationResult:
    """Fit one candidate regression by 2SLS.

    Numerical failures are re-raised with the candidate's gamma vector
    attached so the offending grid point is always reported. ``validated``
    is passed to :meth:`IV2SLS.from_candidate`.
    """
    try:
        return IV2SLS.from_candidate(candidate, data, validated=validated).fit(
            ci_level=ci_level, vcov=vcov, dist=dist, rank_policy=rank_policy,
        )
    except EstimationError as exc:
        raise exc.at_grid_point(candidate.gamma) from exc
    except np.linalg.LinAlgError as exc:
        raise SingularMatrixError(str(exc), grid_point=candidate.gamma) from exc
