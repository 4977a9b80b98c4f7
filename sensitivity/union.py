"""Fold per-candidate confidence intervals into union bounds."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import numpy as np
import pandas as pd

from ivsens.estimators.base import EstimationResult
from ivsens.exceptions import EmptyGridError, InconsistentCoefficientSetError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

__all__ = ["UnionBounds", "union_bounds"]


class UnionBounds(Mapping):
    """Read-only mapping ``coefficient name -> (lower, upper)``.

    Keys keep coefficient order (exogenous, endogenous, ``_cons``).

    Attributes
    ----------
    level : float | None
        Confidence level of the folded intervals, when known.
    n_candidates : int
        Number of candidate intervals that entered the union.
    skipped : tuple[tuple[float, ...], ...]
        Grid points dropped because their estimation failed (skip-and-warn
        mode only). A non-empty value means the union may be narrower than
        the one over the full grid.

    """

    __slots__ = ("_bounds", "level", "n_candidates", "skipped")

    def __init__(
        self,
        bounds: Mapping[str, tuple[float, float]],
        *,
        level: float | None = None,
        n_candidates: int = 1,
        skipped: Sequence[Sequence[float]] = (),
    ) -> None:
        self._bounds: dict[str, tuple[float, float]] = {
            str(k): (float(lo), float(hi)) for k, (lo, hi) in bounds.items()
        }
        self.level = None if level is None else float(level)
        self.n_candidates = int(n_candidates)
        self.skipped = tuple(tuple(float(g) for g in p) for p in skipped)

    def __getitem__(self, name: str) -> tuple[float, float]:
        return self._bounds[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bounds)

    def __len__(self) -> int:
        return len(self._bounds)

    def __repr__(self) -> str:
        body = ", ".join(f"{k}: [{lo:.6g}, {hi:.6g}]" for k, (lo, hi) in self._bounds.items())
        return f"UnionBounds({{{body}}}, n_candidates={self.n_candidates})"

    @property
    def lower(self) -> pd.Series:
        return pd.Series({k: v[0] for k, v in self._bounds.items()}, name="lower", dtype=float)

    @property
    def upper(self) -> pd.Series:
        return pd.Series({k: v[1] for k, v in self._bounds.items()}, name="upper", dtype=float)

    def to_frame(self) -> pd.DataFrame:
        """Bounds as a DataFrame with ``lower``/``upper`` columns."""
        return pd.DataFrame({"lower": self.lower, "upper": self.upper})

    def union(self, other: UnionBounds) -> UnionBounds:
        """Union of two union bounds over the same coefficients."""
        if list(self) != list(other):
            raise InconsistentCoefficientSetError(
                f"Cannot combine bounds over {list(self)} with bounds over {list(other)}.",
            )
        level = self.level if self.level == other.level else None
        merged = {
            k: (min(self[k][0], other[k][0]), max(self[k][1], other[k][1])) for k in self
        }
        return UnionBounds(
            merged,
            level=level,
            n_candidates=self.n_candidates + other.n_candidates,
            skipped=self.skipped + other.skipped,
        )


def _as_interval_frame(item: Any, position: int) -> pd.DataFrame:
    if isinstance(item, EstimationResult):
        frame = item.conf_int
    elif isinstance(item, UnionBounds):
        frame = item.to_frame()
    else:
        frame = item
    if not isinstance(frame, pd.DataFrame) or not {"lower", "upper"} <= set(frame.columns):
        raise TypeError(
            f"Candidate {position} is not an interval set: expected an EstimationResult "
            "or a DataFrame with 'lower'/'upper' columns.",
        )
    return frame


def union_bounds(
    intervals: Iterable[EstimationResult | pd.DataFrame],
    *,
    level: float | None = None,
    skipped: Sequence[Sequence[float]] = (),
) -> UnionBounds:
    """Per-coefficient union ``[min lower, max upper]`` across candidates.

    Parameters
    ----------
    intervals : iterable of EstimationResult or DataFrame
        Interval sets in grid order, all over the same coefficient names in
        the same order.
    level : float, optional
        Confidence level recorded on the result. Taken from the first
        ``EstimationResult`` when omitted.
    skipped : sequence of gamma vectors
        Grid points dropped upstream, recorded on the result.

    Raises
    ------
    EmptyGridError
        ``intervals`` is empty.
    InconsistentCoefficientSetError
        A candidate's coefficient names differ from the first candidate's.

    """
    names: list[str] | None = None
    lower: np.ndarray | None = None
    upper: np.ndarray | None = None
    count = 0
    for i, item in enumerate(intervals):
        if level is None and isinstance(item, EstimationResult):
            level = item.model_info.get("CI level")
        frame = _as_interval_frame(item, i)
        keys = [str(k) for k in frame.index]
        lo = frame["lower"].to_numpy(dtype=np.float64)
        hi = frame["upper"].to_numpy(dtype=np.float64)
        if names is None:
            names, lower, upper = keys, lo.copy(), hi.copy()
        elif keys != names:
            raise InconsistentCoefficientSetError(
                f"Candidate {i} has coefficients {keys}; expected {names}.",
            )
        else:
            np.minimum(lower, lo, out=lower)
            np.maximum(upper, hi, out=upper)
        count += 1
    if names is None:
        raise EmptyGridError("No candidate intervals to aggregate.")
    return UnionBounds(
        dict(zip(names, zip(lower.tolist(), upper.tolist()))),
        level=level,
        n_candidates=count,
        skipped=skipped,
    )
