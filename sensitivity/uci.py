"""Union-of-Confidence-Intervals (UCI) sensitivity analysis.

``uci`` relaxes the exclusion restriction of a linear IV model by letting
each excluded instrument carry a bounded direct effect ``gamma_i`` on the
outcome. Every gamma vector on a grid over the support bounds is turned into
a 2SLS regression with outcome ``y - sum_i gamma_i z_i``; the reported bounds
are the per-coefficient union of the resulting confidence intervals.

References
----------
.. [1] Conley, T. G., Hansen, C. B., & Rossi, P. E. (2012). "Plausibly Exogenous."
       Review of Economics and Statistics, 94(1), 260-272.
"""

from __future__ import annotations

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from ivsens.estimators.iv import estimate_candidate
from ivsens.exceptions import (
    ConfigError,
    EmptyGridError,
    EstimationError,
    UCICancelledError,
)
from ivsens.utils.auto_constant import check_constant_regressors
from ivsens.utils.data import extract_columns
from ivsens.utils.helpers import format_gamma
from ivsens.utils.specification import SupportBounds

from .config import UCIConfig
from .grid import DEFAULT_GRID_SIZE, build_grid, validate_grid_size
from .transform import check_identification, transform_grid
from .union import UnionBounds, union_bounds

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ivsens.estimators.base import EstimationResult
    from ivsens.utils.specification import (
        CandidateRegression,
        InstrumentSpecification,
        ModelSpecification,
    )

LOGGER = logging.getLogger(__name__)

__all__ = ["uci"]


def _resolve_config(config: UCIConfig | None, options: dict[str, Any]) -> UCIConfig:
    if config is None:
        try:
            return UCIConfig(**options)
        except TypeError as exc:
            raise ConfigError(f"Unknown UCI option(s): {sorted(options)}.") from exc
    if not isinstance(config, UCIConfig):
        raise ConfigError("config must be a UCIConfig.")
    return config.replace(**options) if options else config


class _CandidateRunner:
    """Estimate candidates one at a time, honouring cancellation and ``on_error``."""

    def __init__(
        self,
        columns: dict[str, Any],
        cfg: UCIConfig,
        total: int,
        cancel: threading.Event | None,
    ) -> None:
        self.columns = columns
        self.cfg = cfg
        self.total = total
        self.cancel = cancel
        self.completed = 0
        self._lock = threading.Lock()

    def __call__(
        self, indexed: tuple[int, CandidateRegression],
    ) -> EstimationResult | EstimationError:
        i, candidate = indexed
        if self.cancel is not None and self.cancel.is_set():
            with self._lock:
                done = self.completed
            raise UCICancelledError(done, self.total)
        LOGGER.debug(
            "UCI candidate %d/%d gamma=%s", i + 1, self.total, format_gamma(candidate.gamma),
        )
        try:
            out: EstimationResult | EstimationError = estimate_candidate(
                candidate, self.columns, validated=True, **self.cfg.fit_options(),
            )
        except EstimationError as exc:
            if self.cfg.on_error == "raise":
                raise
            out = exc
        with self._lock:
            self.completed += 1
        return out


def uci(  # noqa: PLR0913
    model: ModelSpecification,
    instruments: InstrumentSpecification,
    gmin: Sequence[float],
    gmax: Sequence[float],
    grid_size: int = DEFAULT_GRID_SIZE,
    data: Any = None,
    *,
    config: UCIConfig | None = None,
    cancel: threading.Event | None = None,
    **options: Any,
) -> UnionBounds:
    """Union-of-confidence-intervals bounds for a plausibly exogenous IV model.

    Parameters
    ----------
    model : ModelSpecification
        Structural equation ``dependent ~ exogenous + endogenous``.
    instruments : InstrumentSpecification
        Excluded instruments for the endogenous regressors; one gamma
        dimension per instrument.
    gmin, gmax : Sequence[float]
        Support bounds of the direct effects, one entry per instrument.
    grid_size : int, default=2
        Points per dimension (endpoints included); the grid has
        ``grid_size ** len(gmin)`` candidates.
    data : DataFrame or Mapping[str, array-like]
        Dataset holding every referenced column. Never modified.
    config : UCIConfig, optional
        Estimation options; keyword ``options`` override its fields.
    cancel : threading.Event, optional
        Checked before each candidate; when set the run stops with
        :class:`~ivsens.exceptions.UCICancelledError`.
    **options
        Any :class:`UCIConfig` field (``ci_level``, ``vcov``, ``dist``,
        ``on_error``, ``n_jobs``, ``rank_policy``).

    Returns
    -------
    UnionBounds
        Mapping coefficient name -> ``(lower, upper)`` in the order
        exogenous, endogenous, ``_cons``.

    Raises
    ------
    ConfigError
        Missing or inconsistent inputs, detected before any estimation. This
        includes an all-ones regressor while ``model.include_intercept`` is
        True.
    UnderidentifiedModelError
        Fewer instruments than endogenous regressors.
    SingularMatrixError, InsufficientObservationsError
        A candidate failed under ``on_error="raise"``; the message names
        its grid point.
    EmptyGridError
        Every candidate failed under ``on_error="warn"``.
    UCICancelledError
        ``cancel`` was set during the run.

    Examples
    --------
    >>> from ivsens import InstrumentSpecification, ModelSpecification, uci
    >>> from ivsens.sim.montecarlo import simulate_iv_data
    >>> df = simulate_iv_data(500, seed=0)
    >>> model = ModelSpecification("y", exogenous=["w"], endogenous=["x"])
    >>> inst = InstrumentSpecification(["x"], ["z1", "z2"])
    >>> bounds = uci(model, inst, [-0.1, 0.0], [0.1, 0.0], grid_size=3, data=df)
    >>> list(bounds)
    ['w', 'x', '_cons']

    """
    cfg = _resolve_config(config, options)
    missing = [
        name
        for name, value in (
            ("model", model), ("instruments", instruments),
            ("gmin", gmin), ("gmax", gmax), ("data", data),
        )
        if value is None
    ]
    if missing:
        raise ConfigError(f"Missing required input(s): {', '.join(missing)}.")

    check_identification(model, instruments)
    support = SupportBounds(gmin, gmax)
    if support.dim != instruments.n_instruments:
        raise ConfigError(
            f"gmin/gmax have {support.dim} entries but there are "
            f"{instruments.n_instruments} instruments.",
        )
    size = validate_grid_size(grid_size)
    names = (*model.variables, *instruments.instruments)
    columns = extract_columns(data, names)
    check_constant_regressors(
        columns, model.regressors, include_intercept=model.include_intercept,
    )

    grid = build_grid(support.gmin, support.gmax, size)
    candidates = transform_grid(model, instruments, grid)
    total = len(candidates)
    LOGGER.info(
        "UCI: %d instrument(s), grid_size=%d, %d candidate regressions (vcov=%s, level=%.4g)",
        support.dim, size, total, cfg.vcov, cfg.ci_level,
    )

    runner = _CandidateRunner(columns, cfg, total, cancel)
    jobs = list(enumerate(candidates))
    if cfg.n_jobs > 1 and total > 1:
        with ThreadPoolExecutor(max_workers=min(cfg.n_jobs, total)) as pool:
            outcomes = list(pool.map(runner, jobs))
    else:
        outcomes = [runner(job) for job in jobs]

    results: list[EstimationResult] = []
    skipped: list[tuple[float, ...]] = []
    for candidate, out in zip(candidates, outcomes):
        if isinstance(out, EstimationError):
            skipped.append(candidate.gamma)
            LOGGER.warning("UCI: skipping candidate: %s", out)
            warnings.warn(
                f"Skipping candidate regression: {out}. The union is taken over the "
                "remaining candidates and no longer covers the full grid, so widening "
                "or refining the grid may not widen the bounds.",
                UserWarning,
                stacklevel=2,
            )
        else:
            results.append(out)
    if not results:
        raise EmptyGridError(f"All {total} candidate regressions failed; nothing to aggregate.")
    if skipped:
        LOGGER.info("UCI: %d of %d candidates skipped", len(skipped), total)
    return union_bounds(results, level=cfg.ci_level, skipped=skipped)
