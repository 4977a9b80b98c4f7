"""Monte Carlo simulations and smoke tests.

Provides small-sample data generation with a controllable direct effect of an
instrument on the outcome, and coverage checks for the UCI bounds.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from ivsens.estimators.iv import IV2SLS
from ivsens.sensitivity.uci import uci
from ivsens.utils.specification import InstrumentSpecification, ModelSpecification

TRUE_BETA = {"w": 3.0, "x": 2.0, "_cons": 1.0}


def simulate_iv_data(
    n_obs: int = 500,
    seed: int | None = 123,
    *,
    gamma: float = 0.0,
    beta_x: float = TRUE_BETA["x"],
    beta_w: float = TRUE_BETA["w"],
    intercept: float = TRUE_BETA["_cons"],
) -> pd.DataFrame:
    """Simulates data with one endogenous regressor and two excluded instruments.

    Columns: ``y`` (outcome), ``x`` (endogenous), ``w`` (exogenous control),
    ``z1``/``z2`` (excluded instruments). ``gamma`` is the direct effect of
    ``z1`` on ``y``; with ``gamma != 0`` the exclusion restriction fails for
    ``z1``.
    """
    rng = np.random.default_rng(seed)
    z1 = rng.standard_normal(n_obs)
    z2 = rng.standard_normal(n_obs)
    v = rng.standard_normal(n_obs)
    w = rng.random(n_obs)

    # Endogeneity: cov(x, u) != 0
    u = 0.5 * v + rng.standard_normal(n_obs) * 0.5

    x = 0.8 * z1 + 0.6 * z2 + 0.5 * w + 0.5 * v
    y = intercept + beta_x * x + beta_w * w + gamma * z1 + u
    return pd.DataFrame({"y": y, "x": x, "w": w, "z1": z1, "z2": z2})


def base_specification() -> tuple[ModelSpecification, InstrumentSpecification]:
    """Model and instruments matching :func:`simulate_iv_data`."""
    return (
        ModelSpecification("y", exogenous=("w",), endogenous=("x",)),
        InstrumentSpecification(("x",), ("z1", "z2")),
    )


def uci_coverage(  # noqa: PLR0913
    n_reps: int = 100,
    *,
    n_obs: int = 500,
    gamma: float = 0.2,
    support: tuple[float, float] = (0.0, 0.4),
    grid_size: int = 3,
    ci_level: float = 0.95,
    seed: int = 2024,
) -> dict[str, float]:
    """Coverage of ``beta_x`` by naive 2SLS intervals and by UCI bounds.

    Data carry a direct effect ``gamma`` of ``z1``; UCI lets that effect
    range over ``support`` (``z2`` is treated as valid).
    """
    model, instruments = base_specification()
    seeds = np.random.default_rng(seed).integers(0, 2**31 - 1, size=n_reps)
    naive_hits = 0
    uci_hits = 0
    widths: list[float] = []
    for s in seeds:
        df = simulate_iv_data(n_obs, seed=int(s), gamma=gamma)
        naive = IV2SLS(
            df["y"], df[["w", "x"]], df[["z1", "z2"]], endog_idx=[1],
        ).fit(ci_level=ci_level)
        lo, hi = naive.interval("x")
        naive_hits += int(lo <= TRUE_BETA["x"] <= hi)
        bounds = uci(
            model, instruments,
            [support[0], 0.0], [support[1], 0.0],
            grid_size=grid_size, data=df, ci_level=ci_level,
        )
        b_lo, b_hi = bounds["x"]
        uci_hits += int(b_lo <= TRUE_BETA["x"] <= b_hi)
        widths.append(b_hi - b_lo)
    return {
        "naive_coverage": naive_hits / n_reps,
        "uci_coverage": uci_hits / n_reps,
        "mean_uci_width": float(np.mean(widths)),
    }


def test_uci():
    """Tests UCI bounds against the naive 2SLS interval on invalid-instrument data."""
    df = simulate_iv_data(n_obs=1000, seed=7, gamma=0.3)
    model, instruments = base_specification()
    naive = IV2SLS(df["y"], df[["w", "x"]], df[["z1", "z2"]], endog_idx=[1]).fit()
    bounds = uci(model, instruments, [0.0, 0.0], [0.5, 0.0], grid_size=5, data=df)
    print("--- UCI Monte Carlo Test ---")
    print(f"True beta_x: {TRUE_BETA['x']}")
    print(f"Naive 2SLS CI: {naive.interval('x')}")
    print(f"UCI bounds:   {bounds['x']}")
    lo, hi = bounds["x"]
    assert lo <= TRUE_BETA["x"] <= hi, f"UCI bounds {bounds['x']} miss {TRUE_BETA['x']}"
    n_lo, n_hi = naive.interval("x")
    assert lo <= n_lo and hi >= n_hi, "UCI bounds must contain the gamma = 0 interval"
    print("✓ UCI test passed.\n")


if __name__ == "__main__":
    test_uci()
    print(uci_coverage(n_reps=50))
