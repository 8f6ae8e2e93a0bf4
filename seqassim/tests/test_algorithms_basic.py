import numpy as np
from numpy.testing import assert_allclose
import seqassim


def run_kalman_filter(p):
    """Straightforward linear Kalman filter used as a reference."""
    epochs, Z, H, R = p.measurements[0]
    x = p.x0.copy()
    P = p.P0.copy()
    X = np.empty((p.n_epochs, len(x)))
    Ps = np.empty((p.n_epochs, len(x), len(x)))
    for k in range(p.n_epochs):
        K = P @ H.T @ np.linalg.inv(H @ P @ H.T + R)
        x = x + K @ (Z[k] - H @ x)
        P = (np.identity(len(x)) - K @ H) @ P
        X[k] = x
        Ps[k] = P
        x = p.F @ x
        P = p.F @ P @ p.F.T + p.G @ p.Q @ p.G.T
    return X, Ps


def test_ekf():
    p = seqassim.examples.generate_nonlinear_pendulum()
    result = seqassim.run_ekf(p.X0, p.P0, p.f, p.Q, p.n_epochs, p.measurements)
    en = (result.X - p.Xt) / np.diagonal(result.P, axis1=1, axis2=2) ** 0.5
    assert np.all(seqassim.util.compute_rms(en) > 0.7)
    assert np.all(seqassim.util.compute_rms(en) < 1.3)


def test_linear_equivalence():
    p_lin = seqassim.examples.generate_linear_pendulum()
    p_nl = seqassim.examples.generate_linear_pendulum_as_nl_problem()
    X, P = run_kalman_filter(p_lin)

    for options in [{}, dict(covariance_update='joseph'), dict(gain_method='qmr'),
                    dict(symmetrize=False)]:
        result = seqassim.run_ekf(p_nl.X0, p_nl.P0, p_nl.f, p_nl.Q, p_nl.n_epochs,
                                  p_nl.measurements, **options)
        assert_allclose(result.X, X, rtol=1e-8, atol=1e-10)
        assert_allclose(result.P, P, rtol=1e-8, atol=1e-12)


def test_separate_measurements():
    p = seqassim.examples.generate_linear_pendulum_as_nl_problem(n_epochs=200)
    epochs, Z, h, R = p.measurements[0]
    Z = np.asarray(Z)

    def h_angle(k, X, with_jacobian=True):
        H = np.array([[1.0, 0.0]])
        return (H @ X, H) if with_jacobian else H @ X

    def h_rate(k, X, with_jacobian=True):
        H = np.array([[0.0, 1.0]])
        return (H @ X, H) if with_jacobian else H @ X

    measurements = [
        (epochs, Z[:, :1], h_angle, R[:1, :1]),
        (epochs, Z[:, 1:], h_rate, R[1:, 1:]),
    ]
    combined = seqassim.run_ekf(p.X0, p.P0, p.f, p.Q, p.n_epochs, p.measurements)
    separate = seqassim.run_ekf(p.X0, p.P0, p.f, p.Q, p.n_epochs, measurements)
    assert_allclose(separate.X, combined.X, rtol=1e-10, atol=1e-12)
    assert_allclose(separate.P, combined.P, rtol=1e-10, atol=1e-14)


def test_sparse_measurements():
    p_lin = seqassim.examples.generate_linear_pendulum(n_epochs=100)
    p = seqassim.examples.generate_linear_pendulum_as_nl_problem(n_epochs=100)
    epochs, Z, h, R = p.measurements[0]
    Z = np.asarray(Z)
    measurements = [(epochs[::10], Z[::10], h, R)]
    result = seqassim.run_ekf(p.X0, p.P0, p.f, p.Q, p.n_epochs, measurements)

    F, G, Q = p_lin.F, p_lin.G, p_lin.Q
    for k in range(1, p.n_epochs):
        forecast = F @ result.P[k - 1] @ F.T + G @ Q @ G.T
        if k % 10 == 0:
            assert np.trace(result.P[k]) < np.trace(forecast)
        else:
            assert_allclose(result.X[k], F @ result.X[k - 1], rtol=1e-12)
            assert_allclose(result.P[k], forecast, rtol=1e-12, atol=1e-15)


def test_no_measurements():
    p = seqassim.examples.generate_linear_pendulum(n_epochs=10)
    p_nl = seqassim.examples.generate_linear_pendulum_as_nl_problem(n_epochs=10)
    result = seqassim.run_ekf(p_nl.X0, p_nl.P0, p_nl.f, p_nl.Q, p_nl.n_epochs)
    x = p.x0
    for k in range(p.n_epochs):
        assert_allclose(result.X[k], x)
        x = p.F @ x


def test_rotation_trace():
    p = seqassim.examples.generate_rotation()
    result = seqassim.run_ekf(p.X0, p.P0, p.f, p.Q, p.n_epochs, p.measurements)
    trace = np.trace(result.P, axis1=1, axis2=2)
    assert np.all(np.diff(trace) <= 1e-15)
    assert trace[-1] < 1e-2 * np.trace(p.P0)
    assert_allclose(result.X[-1], p.Xt[-1], atol=0.05)
