
import pytest
import numpy as np
from ivsens.core import linalg as la

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def data_dense(rng):
    X = rng.standard_normal((100, 5))
    y = X @ np.ones(5) + rng.standard_normal(100)
    return X, y

@pytest.fixture
def data_rank_deficient(rng):
    X = rng.standard_normal((100, 3))
    X = np.column_stack([X, X[:, 0] + X[:, 1]]) # 4th col is lin comb
    y = rng.standard_normal(100)
    return X, y

# ---------------------------------------------------------------------
# Unit Tests: Finite Checks
# ---------------------------------------------------------------------

def test_check_array_finiteness():
    x = np.array([1.0, 2.0, np.nan])
    with pytest.raises(ValueError, match="Input contains NA/NaN/Inf"):
        la._check_array_finiteness(x)

    x_inf = np.array([1.0, np.inf])
    with pytest.raises(ValueError, match="Input contains NA/NaN/Inf"):
        la._check_array_finiteness(x_inf)

    # Should pass
    la._check_array_finiteness(np.array([1.0, 2.0]))

def test_assert_all_finite_skips_none():
    la._assert_all_finite(np.ones(3), None)
    with pytest.raises(ValueError):
        la._assert_all_finite(np.ones(3), np.array([[1.0, np.nan]]))

# ---------------------------------------------------------------------
# Unit Tests: Decompositions and Rank
# ---------------------------------------------------------------------

def test_qr_outputs(data_dense):
    X, _ = data_dense
    Q, R = la.qr(X, pivoting=False)
    assert Q.shape == (100, 5)
    assert R.shape == (5, 5)
    # Reconstruct
    assert np.allclose(Q @ R, X)
    # Q orthogonality
    assert np.allclose(Q.T @ Q, np.eye(5))

def test_qr_pivoting(data_rank_deficient):
    X, _ = data_rank_deficient
    # X has shape (100, 4) but rank 3
    Q, R, P = la.qr(X, pivoting=True)

    assert len(P) == 4
    assert set(P) == {0, 1, 2, 3}

    # Reconstruction: A[:, P] = Q @ R
    assert np.allclose(X[:, P], Q @ R)

    diagR = np.abs(np.diag(R))
    assert la.rank_from_diag(diagR, 4, mode='stata') == 3

def test_rank_from_diag_modes():
    diagR = np.array([1e2, 1e1, 1e-8, 1e-15])
    # Stata: eta = 1e-13 * mean(|diag|) ~ 2.75e-12 -> keeps 1e-8, drops 1e-15
    assert la.rank_from_diag(diagR, 4, mode='stata') == 3
    # R: tol = 1e-7 * max(|diag|) = 1e-5 -> drops both small entries
    assert la.rank_from_diag(diagR, 4, mode='r') == 2
    assert la.rank_from_diag(np.array([]), 0) == 0

def test_column_rank(data_dense, data_rank_deficient):
    assert la.column_rank(data_dense[0]) == 5
    assert la.column_rank(data_rank_deficient[0]) == 3
    assert la.column_rank(np.empty((10, 0))) == 0

# ---------------------------------------------------------------------
# Unit Tests: Solvers
# ---------------------------------------------------------------------

def test_solve_matches_lstsq(data_dense):
    X, y = data_dense
    beta = la.solve(X, y, method="qr")
    assert beta.shape == (5, 1)
    ref = np.linalg.lstsq(X, y, rcond=None)[0]
    assert np.allclose(beta.ravel(), ref)

def test_solve_qr_rank_deficient(data_rank_deficient):
    X, y = data_rank_deficient
    # Stata mode: 0-fill for dropped vars
    beta_stata = la.solve(X, y, method="qr", rank_policy="stata")
    assert beta_stata.shape == (4, 1)
    assert np.sum(beta_stata == 0.0) >= 1
    # R mode: NaN-fill for dropped vars
    beta_r = la.solve(X, y, method="qr", rank_policy="R")
    assert np.sum(np.isnan(beta_r)) >= 1

def test_solve_rejects_unknown_method(data_dense):
    X, y = data_dense
    with pytest.raises(ValueError, match="method must be"):
        la.solve(X, y, method="cholesky")

def test_xtx_inv_via_qr(data_dense, data_rank_deficient):
    X, _ = data_dense
    assert np.allclose(la.xtx_inv_via_qr(X), np.linalg.inv(X.T @ X))
    with pytest.raises(np.linalg.LinAlgError, match="singular"):
        la.xtx_inv_via_qr(data_rank_deficient[0])

def test_tdot(data_dense):
    X, _ = data_dense
    assert np.allclose(la.tdot(X), X.T @ X)

def test_column_stack_allows_empty_blocks():
    a = np.arange(4.0)
    out = la.column_stack([np.empty((4, 0)), a, np.ones((4, 2))])
    assert out.shape == (4, 3)
    assert out.dtype == np.float64
    assert np.array_equal(out[:, 0], a)
