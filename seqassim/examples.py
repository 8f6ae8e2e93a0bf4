"""Estimation problems with known truth, used in tests and demonstrations."""
from dataclasses import dataclass
import numpy as np
from scipy._lib._util import check_random_state
from .config import ModelConfig
from .models import ClampedBar
from .observation import selection_operator, simulate_observations
from .storage import DenseMatrix
from .util import Bunch


@dataclass
class LinearProblemExample:
    """Linear problem given by matrices.

    Parameters
    ----------
    x0, P0 : ndarray
        Mean and covariance of the initial state.
    F : ndarray, shape (n_states, n_states)
        State transition matrix.
    G : ndarray, shape (n_states, n_noises)
        Matrix mapping process noise into the state.
    Q : ndarray, shape (n_noises, n_noises)
        Process noise covariance.
    measurements : list of tuple
        ``(epochs, Z, H, R)`` with a measurement matrix ``H``.
    n_epochs : int
        Number of epochs.
    xt : ndarray, shape (n_epochs, n_states)
        True states.
    wt : ndarray, shape (n_epochs - 1, n_noises)
        True process noise.
    """
    x0 : np.ndarray
    P0 : np.ndarray
    F : np.ndarray
    G : np.ndarray
    Q : np.ndarray
    measurements : list
    n_epochs : int
    xt : np.ndarray
    wt : np.ndarray


@dataclass
class NonlinearProblemExample:
    """Problem given by process and measurement callables.

    The fields are the arguments of `seqassim.run_ekf` followed by the true
    states `Xt` and the true process noise `Wt`.
    """
    X0 : np.ndarray
    P0 : np.ndarray
    f : callable
    Q : np.ndarray
    measurements : list
    n_epochs : int
    Xt : np.ndarray
    Wt : np.ndarray


def _simulate(transition, measure, X0, P0, Q, R, n_epochs, rng):
    """Simulate a true trajectory with noisy measurements at every epoch.

    The initial state is drawn from ``N(X0, P0)``. At each epoch the
    measurement noise is drawn before the process noise.
    """
    n_noises = Q.shape[0]
    n_obs = R.shape[0]
    X = rng.multivariate_normal(X0, P0)
    Xt = np.empty((n_epochs, len(X)))
    Wt = np.empty((n_epochs - 1, n_noises))
    Z = np.empty((n_epochs, n_obs))
    for k in range(n_epochs):
        Xt[k] = X
        Z[k] = measure(X) + rng.multivariate_normal(np.zeros(n_obs), R)
        if k + 1 < n_epochs:
            Wt[k] = rng.multivariate_normal(np.zeros(n_noises), Q)
            X = transition(k, X, Wt[k])
    return Xt, Wt, Z


def _linear_callables(F, G, H):
    def f(k, X, W=None, with_jacobian=True):
        X_next = F @ X if W is None else F @ X + G @ W
        return (X_next, F, G) if with_jacobian else X_next

    def h(k, X, with_jacobian=True):
        return (H @ X, H) if with_jacobian else H @ X

    return f, h


def generate_linear_pendulum(n_epochs=1000, x0=np.array([1.0, 0.0]),
                             P0=np.diag([0.1**2, 0.05**2]), tau=0.1, T=10.0,
                             eta=0.1, qf=0.03, sigma_angle=0.2, sigma_rate=0.1,
                             rng=0):
    """Generate a damped linear pendulum driven by a random force.

    The state is ``[angle, rate]`` and evolves as::

        angle' = rate
        rate' = -omega**2 * angle - 2 * eta * omega * rate + force

    where ``omega = 2 pi / T``. The equations are discretized with the explicit
    Euler scheme and step `tau`, the force being white noise of intensity `qf`.
    Angle and rate are both observed at every epoch.

    Parameters
    ----------
    n_epochs : int
        Number of epochs.
    x0 : array_like, shape (2,)
        Mean of the initial state.
    P0 : array_like, shape (2, 2)
        Covariance of the initial state.
    tau : float
        Time step.
    T : float
        Undamped period.
    eta : float
        Damping ratio.
    qf : float
        Force intensity.
    sigma_angle, sigma_rate : float
        Standard deviations of the angle and rate observations.
    rng : None, int or `numpy.random.RandomState`
        Random state or seed for it.

    Returns
    -------
    LinearProblemExample
    """
    rng = check_random_state(rng)
    x0 = np.asarray(x0, dtype=float)
    P0 = np.asarray(P0, dtype=float)

    omega = 2 * np.pi / T
    F = np.array([[1.0, tau],
                  [-tau * omega ** 2, 1.0 - 2.0 * tau * eta * omega]])
    G = np.array([[0.0], [1.0]])
    Q = np.array([[tau * qf ** 2]])
    H = np.identity(2)
    R = np.diag([sigma_angle ** 2, sigma_rate ** 2])

    f, _ = _linear_callables(F, G, H)
    xt, wt, z = _simulate(lambda k, X, W: f(k, X, W, False), lambda X: H @ X,
                          x0, P0, Q, R, n_epochs, rng)
    return LinearProblemExample(x0, P0, F, G, Q, [(np.arange(n_epochs), z, H, R)],
                                n_epochs, xt, wt)


def generate_linear_pendulum_as_nl_problem(**kwargs):
    """Wrap `generate_linear_pendulum` into callables.

    Keyword arguments are forwarded. The result can be fed to `seqassim.run_ekf`
    and compared with a plain linear Kalman filter.

    Returns
    -------
    NonlinearProblemExample
    """
    p = generate_linear_pendulum(**kwargs)
    epochs, z, H, R = p.measurements[0]
    f, h = _linear_callables(p.F, p.G, H)
    return NonlinearProblemExample(p.x0, p.P0, f, p.Q, [(epochs, z, h, R)],
                                   p.n_epochs, p.xt, p.wt)


def generate_nonlinear_pendulum(n_epochs=1000, X0=np.array([0.5 * np.pi, 0]),
                                P0=np.diag([0.1**2, 0.05**2]), tau=0.1, T=10.0,
                                eta=0.5, xi=1.0, sigma_omega=0.1, sigma_eta=0.01,
                                sigma_f=0.5, sigma_angle=0.1, rng=0):
    """Generate a pendulum with nonlinear restoring and friction terms.

    The state is ``[angle, rate]`` and evolves as::

        angle' = rate
        rate' = -omega**2 * sin(angle)
                - 2 * eta * omega * rate * (1 + xi * rate**2) + force

    Process noise has three components: disturbances of ``omega`` and ``eta``
    and the force. Only ``sin(angle)`` is observed, at every epoch.

    Parameters
    ----------
    n_epochs : int
        Number of epochs.
    X0 : array_like, shape (2,)
        Mean of the initial state.
    P0 : array_like, shape (2, 2)
        Covariance of the initial state.
    tau : float
        Time step of the explicit Euler scheme.
    T : float
        Small-amplitude period.
    eta : float
        Damping ratio.
    xi : float
        Cubic friction coefficient.
    sigma_omega, sigma_eta, sigma_f : float
        Standard deviations of the process noise components.
    sigma_angle : float
        Standard deviation of the observation.
    rng : None, int or `numpy.random.RandomState`
        Random state or seed for it.

    Returns
    -------
    NonlinearProblemExample
    """
    rng = check_random_state(rng)
    X0 = np.asarray(X0, dtype=float)
    P0 = np.asarray(P0, dtype=float)
    omega = 2 * np.pi / T
    Q = np.diag([sigma_omega ** 2, sigma_eta ** 2, sigma_f ** 2])
    R = np.array([[sigma_angle ** 2]])

    def f(k, X, W=None, with_jacobian=True):
        dw, de, force = np.zeros(3) if W is None else W
        w = omega + dw
        e = eta + de
        angle, rate = X
        damping = 2 * e * w * rate * (1 + xi * rate ** 2)
        X_next = np.array([angle + tau * rate,
                           rate + tau * (force - w ** 2 * np.sin(angle) - damping)])
        if not with_jacobian:
            return X_next

        F = np.array([[1.0, tau],
                      [-tau * w ** 2 * np.cos(angle),
                       1.0 - 2 * tau * e * w * (1 + 3 * xi * rate ** 2)]])
        friction = 1 + xi * rate ** 2
        G = np.zeros((2, 3))
        G[1, 0] = -2 * tau * (w * np.sin(angle) + e * rate * friction)
        G[1, 1] = -2 * tau * w * rate * friction
        G[1, 2] = tau
        return X_next, F, G

    def h(k, X, with_jacobian=True):
        Z = np.sin(X[:1])
        if not with_jacobian:
            return Z
        return Z, np.array([[np.cos(X[0]), 0.0]])

    Xt, Wt, Z = _simulate(lambda k, X, W: f(k, X, W, False), lambda X: h(0, X, False),
                          X0, P0, Q, R, n_epochs, rng)
    return NonlinearProblemExample(X0, P0, f, Q, [(np.arange(n_epochs), Z, h, R)],
                                   n_epochs, Xt, Wt)


def generate_rotation(n_epochs=50, angle=0.3, X0=np.array([1.0, 0.0]),
                      sigma0=1.0, sigma_obs=0.1, rng=0):
    """Generate data for a noise-free rotation observed directly.

    The state is a 2-dimensional vector rotated by `angle` at each epoch without
    process noise. Both components are measured without errors, whereas the
    filter assumes measurement noise with standard deviation `sigma_obs`.

    Since the rotation preserves the trace of the covariance, the trace of the
    estimated covariance never increases.

    Parameters
    ----------
    n_epochs : int
        Number of epochs.
    angle : float
        Rotation angle per epoch in radians.
    X0 : array_like, shape (2,)
        Initial estimate.
    sigma0 : float
        Standard deviation of the initial estimate error, ``P0 = sigma0**2 I``.
    sigma_obs : float
        Assumed accuracy of measurements.
    rng : None, int or `numpy.random.RandomState`
        Random state or seed for it.

    Returns
    -------
    NonlinearProblemExample
    """
    rng = check_random_state(rng)
    X0 = np.asarray(X0, dtype=float)
    P0 = sigma0 ** 2 * np.identity(2)
    c, s = np.cos(angle), np.sin(angle)
    F = np.array([[c, -s], [s, c]])
    G = np.empty((2, 0))

    def f(k, X, W=None, with_jacobian=True):
        X_next = F @ X
        return (X_next, F, G) if with_jacobian else X_next

    def h(k, X, with_jacobian=True):
        return (X.copy(), np.identity(2)) if with_jacobian else X.copy()

    Xt = np.empty((n_epochs, 2))
    Xt[0] = X0 + sigma0 * rng.randn(2)
    for k in range(n_epochs - 1):
        Xt[k + 1] = F @ Xt[k]

    R = sigma_obs ** 2 * np.identity(2)
    return NonlinearProblemExample(X0, P0, f, np.empty((0, 0)),
                                   [(np.arange(n_epochs), Xt.copy(), h, R)],
                                   n_epochs, Xt, np.empty((n_epochs - 1, 0)))


def generate_clamped_bar_observations(config=None, stride=1, period=1,
                                      error_variance=1e-4, truth_perturbation=0.01,
                                      rng=0):
    """Simulate observations of a clamped bar for a twin experiment.

    A reference run of `seqassim.models.ClampedBar`, started from a perturbed
    initial state, is observed every `period` steps. The observations are
    packed in a `DenseMatrix` which can be written to a file and used as the
    ``file`` of the observation configuration.

    Parameters
    ----------
    config : ModelConfig or None
        Model parameters. If None, defaults are used.
    stride : int
        Every `stride`-th state component is observed.
    period : int
        Observation period in steps.
    error_variance : float
        Variance of observation noise.
    truth_perturbation : float
        Standard deviation of the initial state perturbation.
    rng : None, int or `numpy.random.RandomState`
        Random state or seed for it.

    Returns
    -------
    Bunch with the following fields:

        Y : DenseMatrix, shape (n_times, n_obs)
            Observations.
        steps : ndarray, shape (n_times,)
            Steps of observations.
        Xt : ndarray, shape (n_steps + 1, n_states)
            True states.
    """
    model = ClampedBar(ModelConfig() if config is None else config)
    model.initialize()
    H = selection_operator(model.n_states, stride)
    steps, Y, Xt = simulate_observations(model, H, period, error_variance,
                                         truth_perturbation, True, rng)
    model.finalize()
    return Bunch(Y=DenseMatrix.from_array(Y), steps=steps, Xt=Xt)
