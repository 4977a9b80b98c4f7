"""Options shared by every candidate of a UCI run."""

from __future__ import annotations

import dataclasses
import numbers
import os
from dataclasses import dataclass
from typing import Any

from ivsens.core.inference import VCOV_KINDS
from ivsens.estimators.base import normalize_ci_level
from ivsens.exceptions import ConfigError

__all__ = ["ON_ERROR_MODES", "UCIConfig", "default_n_jobs"]

ON_ERROR_MODES = ("raise", "warn")
_DISTS = ("normal", "t")
_RANK_POLICIES = ("stata", "R")


def default_n_jobs() -> int:
    """Worker count from ``IVSENS_N_JOBS`` (1 when unset or blank)."""
    raw = str(os.environ.get("IVSENS_N_JOBS", "")).strip()
    if not raw:
        return 1
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"IVSENS_N_JOBS must be an integer; got '{raw}'.") from exc
    if value < 1:
        raise ConfigError(f"IVSENS_N_JOBS must be >= 1; got {value}.")
    return value


@dataclass(frozen=True)
class UCIConfig:
    """Configuration for :func:`ivsens.sensitivity.uci.uci`.

    Every candidate of a run is estimated with the same options, so the
    variance estimator and critical value never change across the grid.

    Notes
    -----
    - ci_level: confidence level in (0, 1); percentages such as 95 are
      accepted and normalized.
    - vcov: "classical" (homoskedastic 2SLS) or "robust" (HC1).
    - dist: "normal" or "t" (Student-t with n - k df).
    - on_error:
        * "raise" (default) aborts on the first failing candidate, with the
          grid point attached to the error.
        * "warn" skips failing candidates with a UserWarning. The union is
          then taken over fewer candidates and may be narrower than the
          union over the full grid.
    - n_jobs: worker threads for the estimation stage; None reads
      ``IVSENS_N_JOBS`` (default 1).
    - rank_policy: "stata" or "R" tolerance convention for rank tests.

    """

    ci_level: float = 0.95
    vcov: str = "classical"
    dist: str = "normal"
    on_error: str = "raise"
    n_jobs: int | None = None
    rank_policy: str = "stata"

    def __post_init__(self) -> None:
        try:
            level = normalize_ci_level(self.ci_level)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid ci_level {self.ci_level!r}: {exc}") from exc
        object.__setattr__(self, "ci_level", level)

        vcov = str(self.vcov).lower()
        if vcov not in VCOV_KINDS:
            raise ConfigError(f"vcov must be one of {VCOV_KINDS}; got '{self.vcov}'.")
        object.__setattr__(self, "vcov", vcov)

        dist = str(self.dist).lower()
        if dist not in _DISTS:
            raise ConfigError(f"dist must be one of {_DISTS}; got '{self.dist}'.")
        object.__setattr__(self, "dist", dist)

        on_error = str(self.on_error).lower()
        if on_error not in ON_ERROR_MODES:
            raise ConfigError(
                f"on_error must be one of {ON_ERROR_MODES}; got '{self.on_error}'.",
            )
        object.__setattr__(self, "on_error", on_error)

        if self.n_jobs is None:
            n_jobs = default_n_jobs()
        elif isinstance(self.n_jobs, bool) or not isinstance(self.n_jobs, numbers.Integral) or self.n_jobs < 1:
            raise ConfigError(f"n_jobs must be a positive integer; got {self.n_jobs!r}.")
        else:
            n_jobs = int(self.n_jobs)
        object.__setattr__(self, "n_jobs", n_jobs)

        # accept case-insensitive spellings (parity with Stata/R option parsing)
        rp = "R" if str(self.rank_policy).lower() == "r" else str(self.rank_policy).lower()
        if rp not in _RANK_POLICIES:
            raise ConfigError(
                f"rank_policy must be one of {_RANK_POLICIES}; got '{self.rank_policy}'.",
            )
        object.__setattr__(self, "rank_policy", rp)

    def replace(self, **changes: Any) -> UCIConfig:
        """Copy with ``changes`` applied and re-validated."""
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ConfigError(f"Unknown UCI option(s): {sorted(unknown)}.")
        return dataclasses.replace(self, **changes)

    def fit_options(self) -> dict[str, Any]:
        """Keyword arguments forwarded to :meth:`IV2SLS.fit`."""
        return {
            "ci_level": self.ci_level,
            "vcov": self.vcov,
            "dist": self.dist,
            "rank_policy": self.rank_policy,
        }
