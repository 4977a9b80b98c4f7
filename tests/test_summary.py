import numpy as np
import pandas as pd
import pytest

from ivsens.estimators.iv import IV2SLS, estimate_candidate
from ivsens.output.summary import bounds_table, candidates_table
from ivsens.sensitivity.grid import build_grid
from ivsens.sensitivity.transform import transform_grid
from ivsens.sensitivity.uci import uci
from ivsens.sensitivity.union import union_bounds


@pytest.fixture
def bounds(iv_data, model, instruments):
    return uci(model, instruments, [-0.2, 0.0], [0.2, 0.0], 2, iv_data)


def test_bounds_table_text(bounds):
    table = bounds_table(bounds)
    assert "UCI bounds (95%)" in table
    for name in ("w", "x", "_cons"):
        assert name in table
    assert "Candidates" in table
    lo, hi = bounds["x"]
    assert f"{lo:.6g}" in table and f"{hi:.6g}" in table


def test_bounds_table_with_baseline(bounds, iv_data):
    base = IV2SLS(iv_data["y"], iv_data[["w", "x"]], iv_data[["z1", "z2"]], endog_idx=[1]).fit()
    table = bounds_table(bounds, baseline=base, floatfmt=".3f")
    assert "2SLS CI (95%)" in table
    assert f"{base.params['x']:.3f}" in table


def test_bounds_table_latex(bounds):
    table = bounds_table(bounds, output="latex")
    assert "\\begin{tabular}" in table
    assert "\\_cons" in table
    assert "\\toprule" in table
    with pytest.raises(ValueError, match="output must be"):
        bounds_table(bounds, output="html")


def test_bounds_table_lists_skipped_points():
    frame = pd.DataFrame({"lower": [0.0], "upper": [1.0]}, index=["x"])
    table = bounds_table(union_bounds([frame], skipped=[(0.5, -1.0)]))
    assert "Skipped" in table
    assert "(0.5, -1)" in table


def test_candidates_table(iv_data, model, instruments):
    grid = build_grid([-0.2, 0.0], [0.2, 0.1], 2)
    results = [estimate_candidate(c, iv_data) for c in transform_grid(model, instruments, grid)]
    tidy = candidates_table(results, grid)
    assert tidy.shape == (4 * 3, 7)
    assert tidy.columns.tolist() == ["candidate", "gamma", "term", "estimate", "se", "lower", "upper"]
    first = tidy[tidy["candidate"] == 0].set_index("term")
    assert first.loc["x", "gamma"] == "(-0.2, 0)"
    assert first.loc["x", "estimate"] == pytest.approx(results[0].params["x"])
    # union of the tidy rows reproduces the aggregated bounds
    agg = tidy.groupby("term", sort=False).agg(lower=("lower", "min"), upper=("upper", "max"))
    expected = union_bounds(results).to_frame()
    assert np.allclose(agg.loc[expected.index].to_numpy(), expected.to_numpy())
    with pytest.raises(ValueError, match="3 results for 4 grid points"):
        candidates_table(results[:3], grid)
