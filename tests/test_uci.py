import logging
import threading
import warnings

import numpy as np
import pytest

import ivsens.estimators.iv as iv_module
import ivsens.sensitivity.uci as uci_module
from ivsens.estimators.iv import IV2SLS, estimate_candidate
from ivsens.exceptions import (
    ConfigError,
    EmptyGridError,
    SingularMatrixError,
    UCICancelledError,
    UnderidentifiedModelError,
)
from ivsens.sensitivity.config import UCIConfig
from ivsens.sensitivity.transform import transform
from ivsens.sensitivity.uci import uci
from ivsens.utils.data import extract_columns
from ivsens.utils.specification import InstrumentSpecification, ModelSpecification


def _fit(df, gamma1=0.0, gamma2=0.0, **kw):
    y = df["y"] - gamma1 * df["z1"] - gamma2 * df["z2"]
    return IV2SLS(y, df[["w", "x"]], df[["z1", "z2"]], endog_idx=[1]).fit(**kw)


def _fit_just(df, gamma=0.0, **kw):
    y = df["y"] - gamma * df["z1"]
    return IV2SLS(y, df[["w", "x"]], df[["z1"]], endog_idx=[1]).fit(**kw)


@pytest.fixture
def no_estimation(monkeypatch):
    def _fail(*args, **kwargs):
        raise AssertionError("estimation must not run")

    monkeypatch.setattr(uci_module, "estimate_candidate", _fail)

# ---------------------------------------------------------------------
# Core properties
# ---------------------------------------------------------------------

@pytest.mark.parametrize("grid_size", [1, 2, 4])
def test_zero_support_equals_plain_2sls(iv_data, model, instruments, grid_size):
    bounds = uci(model, instruments, [0.0, 0.0], [0.0, 0.0], grid_size, iv_data)
    base = _fit(iv_data)
    assert list(bounds) == ["w", "x", "_cons"]
    for name in bounds:
        assert bounds[name] == pytest.approx(base.interval(name))
    assert bounds.n_candidates == grid_size**2


def test_two_point_grid_is_union_of_endpoints(iv_data, model, just_identified):
    bounds = uci(model, just_identified, [-1.0], [1.0], 2, iv_data)
    lo_fit = _fit_just(iv_data, -1.0)
    hi_fit = _fit_just(iv_data, 1.0)
    for name in bounds:
        a, b = lo_fit.interval(name), hi_fit.interval(name)
        assert bounds[name] == pytest.approx((min(a[0], b[0]), max(a[1], b[1])))


def test_bounds_contain_every_candidate_interval(iv_data, model, instruments):
    bounds = uci(model, instruments, [-0.2, 0.0], [0.2, 0.1], 3, iv_data)
    for g1 in np.linspace(-0.2, 0.2, 3):
        for g2 in np.linspace(0.0, 0.1, 3):
            res = _fit(iv_data, g1, g2)
            for name in bounds:
                lo, hi = res.interval(name)
                assert bounds[name][0] <= lo + 1e-12
                assert bounds[name][1] >= hi - 1e-12


def test_widening_support_never_narrows(iv_data, model, instruments):
    narrow = uci(model, instruments, [-0.1, -0.1], [0.1, 0.1], 2, iv_data)
    wide = uci(model, instruments, [-0.3, -0.2], [0.3, 0.2], 2, iv_data)
    for name in narrow:
        assert wide[name][0] <= narrow[name][0] + 1e-10
        assert wide[name][1] >= narrow[name][1] - 1e-10


@pytest.mark.parametrize(("coarse", "fine"), [(2, 3), (3, 5)])
def test_refining_grid_never_narrows(iv_data, model, instruments, coarse, fine):
    a = uci(model, instruments, [-0.2, 0.0], [0.2, 0.3], coarse, iv_data)
    b = uci(model, instruments, [-0.2, 0.0], [0.2, 0.3], fine, iv_data)
    for name in a:
        assert b[name][0] <= a[name][0]
        assert b[name][1] >= a[name][1]


def test_options_apply_uniformly(iv_data, model, instruments):
    bounds = uci(
        model, instruments, [0.0, 0.0], [0.0, 0.0], 1, iv_data,
        ci_level=90, vcov="robust", dist="t",
    )
    base = _fit(iv_data, ci_level=0.9, vcov="robust", dist="t")
    assert bounds.level == pytest.approx(0.9)
    assert bounds["x"] == pytest.approx(base.interval("x"))

    cfg = UCIConfig(ci_level=0.9, vcov="robust", dist="t")
    assert dict(uci(model, instruments, [0, 0], [0, 0], 1, iv_data, config=cfg)) == dict(bounds)


def test_dataset_as_mapping(iv_data, model, instruments):
    mapping = {c: iv_data[c].to_numpy() for c in iv_data.columns}
    a = uci(model, instruments, [-0.1, 0.0], [0.1, 0.0], 2, mapping)
    b = uci(model, instruments, [-0.1, 0.0], [0.1, 0.0], 2, iv_data)
    assert dict(a) == dict(b)


def test_dataset_not_modified(iv_data, model, instruments):
    before = iv_data.copy()
    uci(model, instruments, [-0.5, -0.5], [0.5, 0.5], 2, iv_data)
    assert iv_data.equals(before)

# ---------------------------------------------------------------------
# Fail-fast validation
# ---------------------------------------------------------------------

def test_underidentified_before_any_regression(iv_data, no_estimation):
    m = ModelSpecification("y", exogenous=("w",), endogenous=("x", "z2"))
    inst = InstrumentSpecification(("x", "z2"), ("z1",))
    with pytest.raises(UnderidentifiedModelError):
        uci(m, inst, [0.0], [1.0], 2, iv_data)


def test_gmin_gmax_length_mismatch(iv_data, model, instruments, no_estimation):
    with pytest.raises(ConfigError, match="equal length"):
        uci(model, instruments, [0.0], [1.0, 1.0], 2, iv_data)


@pytest.mark.parametrize(
    ("args", "match"),
    [
        (([0.0], [1.0], 2), "2 instruments"),
        (([0.0, 0.0], [1.0, 1.0], 0), ">= 1"),
        (([1.0, 0.0], [0.0, 1.0], 2), "exceeds"),
    ],
)
def test_support_and_grid_validation(iv_data, model, instruments, no_estimation, args, match):
    with pytest.raises(ConfigError, match=match):
        uci(model, instruments, *args, iv_data)


def test_missing_inputs(iv_data, model, instruments, no_estimation):
    with pytest.raises(ConfigError, match="Missing required input\\(s\\): data"):
        uci(model, instruments, [0.0, 0.0], [1.0, 1.0], 2)
    with pytest.raises(ConfigError, match="gmin, gmax"):
        uci(model, instruments, None, None, 2, iv_data)


def test_dataset_problems_fail_fast(iv_data, model, instruments, no_estimation):
    with pytest.raises(ConfigError, match="missing column"):
        uci(model, instruments, [0, 0], [1, 1], 2, iv_data.drop(columns="z2"))
    bad = iv_data.copy()
    bad.loc[3, "w"] = np.nan
    with pytest.raises(ConfigError, match="NA/NaN/Inf"):
        uci(model, instruments, [0, 0], [1, 1], 2, bad)


def test_invalid_options(iv_data, model, instruments, no_estimation):
    with pytest.raises(ConfigError, match="vcov"):
        uci(model, instruments, [0, 0], [1, 1], 2, iv_data, vcov="cluster")
    with pytest.raises(ConfigError, match="Unknown UCI option"):
        uci(model, instruments, [0, 0], [1, 1], 2, iv_data, n_boot=100)

# ---------------------------------------------------------------------
# Estimation failures
# ---------------------------------------------------------------------

def test_failure_reports_grid_point(iv_data, model, instruments):
    df = iv_data.assign(z2=iv_data["z1"] * 2.0)
    with pytest.raises(SingularMatrixError, match=r"grid point gamma=\(-0.5, 0\)") as info:
        uci(model, instruments, [-0.5, 0.0], [0.5, 1.0], 2, df)
    assert info.value.grid_point == (-0.5, 0.0)
    assert info.value.__cause__ is not None


@pytest.fixture
def fail_at_origin(monkeypatch):
    def _estimate(candidate, data, **kwargs):
        if candidate.gamma == (0.0,):
            raise SingularMatrixError("forced failure", grid_point=candidate.gamma)
        return estimate_candidate(candidate, data, **kwargs)

    monkeypatch.setattr(uci_module, "estimate_candidate", _estimate)


def test_skip_and_warn(iv_data, model, just_identified, fail_at_origin, caplog):
    with caplog.at_level(logging.WARNING, logger="ivsens.sensitivity.uci"):
        with pytest.warns(UserWarning, match="no longer covers the full grid"):
            bounds = uci(model, just_identified, [-1.0], [1.0], 3, iv_data, on_error="warn")
    assert bounds.skipped == ((0.0,),)
    assert bounds.n_candidates == 2
    assert "forced failure" in caplog.text

    expected = uci(model, just_identified, [-1.0], [1.0], 2, iv_data)
    assert dict(bounds) == dict(expected)


def test_skip_mode_all_failed(iv_data, model, just_identified, fail_at_origin):
    with pytest.warns(UserWarning):
        with pytest.raises(EmptyGridError, match="All 1 candidate"):
            uci(model, just_identified, [0.0], [0.0], 1, iv_data, on_error="warn")


def test_raise_mode_is_default(iv_data, model, just_identified, fail_at_origin):
    with pytest.raises(SingularMatrixError, match="forced failure"):
        uci(model, just_identified, [-1.0], [1.0], 3, iv_data)

# ---------------------------------------------------------------------
# Concurrency, cancellation, logging
# ---------------------------------------------------------------------

def test_parallel_matches_sequential(iv_data, model, instruments):
    seq = uci(model, instruments, [-0.3, 0.0], [0.3, 0.2], 4, iv_data, n_jobs=1)
    par = uci(model, instruments, [-0.3, 0.0], [0.3, 0.2], 4, iv_data, n_jobs=4)
    for name in seq:
        assert par[name] == pytest.approx(seq[name], rel=1e-12)
    assert par.n_candidates == 16


def test_n_jobs_from_environment(monkeypatch):
    monkeypatch.setenv("IVSENS_N_JOBS", "3")
    assert UCIConfig().n_jobs == 3
    monkeypatch.setenv("IVSENS_N_JOBS", "zero")
    with pytest.raises(ConfigError, match="IVSENS_N_JOBS"):
        UCIConfig()


def test_cancel_before_start(iv_data, model, instruments):
    event = threading.Event()
    event.set()
    with pytest.raises(UCICancelledError, match="after 0 of 4") as info:
        uci(model, instruments, [0, 0], [1, 1], 2, iv_data, cancel=event)
    assert info.value.completed == 0
    assert info.value.total == 4


def test_cancel_mid_run(iv_data, model, instruments, monkeypatch):
    event = threading.Event()

    def _estimate(candidate, data, **kwargs):
        event.set()
        return estimate_candidate(candidate, data, **kwargs)

    monkeypatch.setattr(uci_module, "estimate_candidate", _estimate)
    with pytest.raises(UCICancelledError) as info:
        uci(model, instruments, [0, 0], [1, 1], 2, iv_data, cancel=event)
    assert info.value.completed == 1


def test_logs_grid_size(iv_data, model, instruments, caplog):
    with caplog.at_level(logging.DEBUG, logger="ivsens.sensitivity.uci"):
        uci(model, instruments, [0, 0], [1, 1], 3, iv_data)
    assert "9 candidate regressions" in caplog.text
    assert "UCI candidate 9/9" in caplog.text


def test_candidate_bridge_consistency(iv_data, model, instruments):
    # uci at a single point equals estimate_candidate on the transformed candidate
    bounds = uci(model, instruments, [0.2, -0.1], [0.2, -0.1], 1, iv_data)
    res = estimate_candidate(transform(model, instruments, [0.2, -0.1]), iv_data)
    for name in bounds:
        assert bounds[name] == pytest.approx(res.interval(name))

# ---------------------------------------------------------------------
# Intercept handling and specification variants
# ---------------------------------------------------------------------

def test_constant_regressor_with_intercept_rejected(iv_data, instruments, no_estimation):
    df = iv_data.assign(one=1.0)
    m = ModelSpecification("y", exogenous=("one", "w"), endogenous=("x",))
    with pytest.raises(ConfigError, match=r"\['one'\] are constant 1"):
        uci(m, instruments, [-1, -1], [1, 1], 3, df)


def test_constant_regressor_without_intercept(iv_data, model, instruments):
    df = iv_data.assign(one=1.0)
    m = ModelSpecification(
        "y", exogenous=("one", "w"), endogenous=("x",), include_intercept=False,
    )
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        bounds = uci(m, instruments, [-1, -1], [1, 1], 3, df)
    assert not [w for w in caught if issubclass(w.category, RuntimeWarning)]
    assert tuple(bounds) == m.coefficient_names == ("one", "w", "x")
    assert transform(m, instruments, [0.0, 0.0]).coefficient_names == tuple(bounds)

    with_cons = uci(model, instruments, [-1, -1], [1, 1], 3, iv_data)
    assert bounds["one"] == pytest.approx(with_cons["_cons"])
    assert bounds["x"] == pytest.approx(with_cons["x"])


def test_two_endogenous_regressors_any_order(iv_data):
    rng = np.random.default_rng(5)
    n = len(iv_data)
    df = iv_data.assign(z3=rng.standard_normal(n))
    df["x2"] = 0.7 * df["z3"] + 0.3 * df["z2"] + 0.5 * rng.standard_normal(n)
    df["y"] = df["y"] + 1.5 * df["x2"]
    m = ModelSpecification("y", exogenous=("w",), endogenous=("x", "x2"))
    inst = InstrumentSpecification(("x2", "x"), ("z1", "z2", "z3"))

    point = uci(m, inst, [0, 0, 0], [0, 0, 0], 1, df)
    direct = IV2SLS(
        df["y"], df[["w", "x", "x2"]], df[["z1", "z2", "z3"]], endog_idx=[1, 2],
    ).fit()
    assert list(point) == ["w", "x", "x2", "_cons"] == list(m.coefficient_names)
    for name in point:
        assert point[name] == pytest.approx(direct.interval(name))

    bounds = uci(m, inst, [-0.1, 0.0, -0.1], [0.1, 0.2, 0.1], 3, df)
    assert bounds.n_candidates == 27
    for name in bounds:
        assert bounds[name][0] <= point[name][0] + 1e-12
        assert bounds[name][1] >= point[name][1] - 1e-12


def test_dataset_validated_once(iv_data, model, instruments, monkeypatch):
    calls = {"uci": 0, "iv": 0}

    def _counting(key):
        def _extract(data, names):
            calls[key] += 1
            return extract_columns(data, names)
        return _extract

    monkeypatch.setattr(uci_module, "extract_columns", _counting("uci"))
    monkeypatch.setattr(iv_module, "extract_columns", _counting("iv"))
    bounds = uci(model, instruments, [-0.2, 0.0], [0.2, 0.1], 3, iv_data)
    assert bounds.n_candidates == 9
    assert calls == {"uci": 1, "iv": 0}
