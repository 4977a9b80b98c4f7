"""Tables for union bounds and per-candidate estimates.

Text and LaTeX rendering go through ``tabulate``; tidy outputs are
``pandas.DataFrame`` objects.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal, cast

import numpy as np
import pandas as pd
from tabulate import tabulate

from ivsens.estimators.base import EstimationResult
from ivsens.sensitivity.union import UnionBounds
from ivsens.utils.helpers import format_gamma

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

__all__ = ["bounds_table", "candidates_table", "first_stage_table"]


def _interval_cell(lo: float, hi: float, floatfmt: str) -> str:
    return f"[{format(lo, floatfmt)}, {format(hi, floatfmt)}]"


def bounds_table(
    bounds: UnionBounds,
    *,
    baseline: EstimationResult | None = None,
    output: Literal["text", "latex"] = "text",
    floatfmt: str = ".6g",
    latex_booktabs: bool = True,
) -> str:
    """Render union bounds, optionally beside a baseline 2SLS fit.

    Parameters
    ----------
    bounds : UnionBounds
        Result of :func:`ivsens.sensitivity.uci.uci`.
    baseline : EstimationResult, optional
        Usually the gamma = 0 fit; adds its estimate and interval per row.
    output : {"text", "latex"}
        Plain-text table or a LaTeX ``tabular``.
    floatfmt : str
        Format spec for every number.
    latex_booktabs : bool
        Use booktabs rules for LaTeX output.

    """
    if output not in {"text", "latex"}:
        raise ValueError("output must be 'text' or 'latex'.")
    if baseline is not None and list(baseline.coefficient_names) != list(bounds):
        raise ValueError(
            f"Baseline coefficients {baseline.coefficient_names} do not match "
            f"bounds {list(bounds)}.",
        )
    level = bounds.level
    level_txt = "" if level is None else f" ({format(100.0 * level, '.4g')}%)"
    headers = ["", f"UCI bounds{level_txt}", "Width"]
    if baseline is not None:
        headers = ["", "2SLS", f"2SLS CI{level_txt}", f"UCI bounds{level_txt}", "Width"]

    rows: list[list[str]] = []
    for name, (lo, hi) in bounds.items():
        row = [name]
        if baseline is not None:
            b_lo, b_hi = baseline.interval(name)
            row += [
                format(float(baseline.params[name]), floatfmt),
                _interval_cell(b_lo, b_hi, floatfmt),
            ]
        row += [_interval_cell(lo, hi, floatfmt), format(hi - lo, floatfmt)]
        rows.append(row)

    footer = [["Candidates", str(bounds.n_candidates)]]
    if bounds.skipped:
        footer.append(["Skipped", ", ".join(format_gamma(p, floatfmt) for p in bounds.skipped)])
    footer = [r + [""] * (len(headers) - len(r)) for r in footer]

    if output == "latex":
        # tabulate escapes LaTeX special characters in latex formats
        body = [*rows, *footer]
        tablefmt = "latex_booktabs" if latex_booktabs else "latex"
        return cast("str", tabulate(
            body, headers=headers, stralign="center", tablefmt=tablefmt, disable_numparse=True,
        ))
    sep = ["" for _ in headers]
    return cast("str", tabulate(
        [*rows, sep, *footer], headers=headers, stralign="center", disable_numparse=True,
    ))


def candidates_table(
    results: Sequence[EstimationResult],
    grid: NDArray[np.float64] | Sequence[Sequence[float]],
) -> pd.DataFrame:
    """Tidy per-candidate estimates, one row per (grid point, coefficient).

    Columns: ``candidate``, ``gamma``, ``term``, ``estimate``, ``se``,
    ``lower``, ``upper``.
    """
    points = np.asarray(grid, dtype=np.float64)
    if points.ndim == 1:
        points = points.reshape(-1, 1)
    if len(results) != points.shape[0]:
        raise ValueError(
            f"Got {len(results)} results for {points.shape[0]} grid points.",
        )
    records: list[dict[str, Any]] = []
    for i, (res, gamma) in enumerate(zip(results, points)):
        label = format_gamma(gamma)
        for term in res.coefficient_names:
            lo, hi = res.interval(term)
            records.append(
                {
                    "candidate": i,
                    "gamma": label,
                    "term": term,
                    "estimate": float(res.params[term]),
                    "se": float(res.se[term]) if res.se is not None else np.nan,
                    "lower": lo,
                    "upper": hi,
                },
            )
    return pd.DataFrame.from_records(
        records,
        columns=["candidate", "gamma", "term", "estimate", "se", "lower", "upper"],
    )


def first_stage_table(res: EstimationResult) -> pd.DataFrame:
    """First-stage partial F and R² per endogenous regressor of a 2SLS fit."""
    fs = (res.extra or {}).get("first_stage", {})
    rows: list[dict[str, float | str]] = []
    for name, stats in fs.items():
        rows.append({"metric": f"Partial F ({name})", "value": float(stats["partial_F"])})
        rows.append({"metric": f"First-stage R2 ({name})", "value": float(stats["r2"])})
    min_f = (res.extra or {}).get("F_min")
    if min_f is not None and len(fs) > 1:
        rows.append({"metric": "Min partial F", "value": float(min_f)})
    return pd.DataFrame(rows, columns=["metric", "value"])
