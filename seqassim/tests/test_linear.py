import logging
import numpy as np
from numpy.testing import assert_allclose
import pytest
from seqassim.errors import SolverBreakdown
from seqassim.iterative import Iteration, SolverStatus
from seqassim.linear import compute_gain, symmetrize, update_covariance


def random_problem(n_states, n_obs, rng):
    A = rng.randn(n_states, n_states)
    P = A @ A.T + np.identity(n_states)
    H = rng.randn(n_obs, n_states)
    R = np.diag(rng.uniform(0.1, 1.0, n_obs))
    return P, H, R


def test_compute_gain():
    rng = np.random.RandomState(0)
    P, H, R = random_problem(6, 3, rng)
    K_expected = P @ H.T @ np.linalg.inv(H @ P @ H.T + R)

    for method in ['cholesky', 'qmr', 'auto']:
        K = compute_gain(P, H, R, method, Iteration(tol=1e-12, init_guess_null=True))
        assert K.shape == (6, 3)
        assert_allclose(K, K_expected, rtol=1e-8, atol=1e-9)

    with pytest.raises(ValueError):
        compute_gain(P, H, R, method='lu')


def test_auto_fallback(caplog):
    P = np.identity(2)
    H = np.identity(2)
    R = np.diag([-3.0, 1.0])
    with caplog.at_level(logging.WARNING, logger="seqassim.linear"):
        K = compute_gain(P, H, R, method='auto')
    assert_allclose(K, np.diag([-0.5, 0.5]))
    assert "switching to QMR" in caplog.text

    with pytest.raises(np.linalg.LinAlgError):
        compute_gain(P, H, R, method='cholesky')


def test_qmr_breakdown():
    P = np.identity(2)
    H = np.identity(2)
    R = np.array([[-1.0, 1.0], [1.0, -1.0]])
    with pytest.raises(SolverBreakdown) as excinfo:
        compute_gain(P, H, R, method='qmr')
    assert excinfo.value.status == SolverStatus.EP_BREAKDOWN
    assert "column 0" in str(excinfo.value)


def test_update_covariance():
    rng = np.random.RandomState(1)
    P, H, R = random_problem(5, 2, rng)
    K = compute_gain(P, H, R)

    P_standard = update_covariance(P, K, H, R)
    P_joseph = update_covariance(P, K, H, R, form='joseph')
    assert_allclose(P_standard, P_joseph, rtol=1e-10, atol=1e-12)
    assert_allclose(P_standard, P - K @ H @ P, rtol=1e-12)
    assert np.all(np.linalg.eigvalsh(symmetrize(P_joseph)) > 0)

    K_suboptimal = 0.5 * K
    P_joseph = update_covariance(P, K_suboptimal, H, R, form='joseph')
    assert_allclose(P_joseph, P_joseph.T, rtol=1e-12)
    assert np.all(np.linalg.eigvalsh(symmetrize(P_joseph)) > 0)

    with pytest.raises(ValueError):
        update_covariance(P, K, H, form='joseph')
    with pytest.raises(ValueError):
        update_covariance(P, K, H, R, form='other')


def test_symmetrize():
    A = np.array([[1.0, 2.0], [0.0, 3.0]])
    assert_allclose(symmetrize(A), [[1.0, 1.0], [1.0, 3.0]])
