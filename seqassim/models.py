"""Reference models."""
import logging
import numpy as np
from scipy import linalg
from ._common import check_input_arrays
from .config import ModelConfig
from .errors import ConfigurationError
from .interfaces import Model
from .storage import create_matrix

logger = logging.getLogger(__name__)


def _assemble_bar(n_elements, length, young_modulus, mass_density, force):
    h = length / n_elements
    Me = mass_density * h / 6 * np.array([[2.0, 1.0], [1.0, 2.0]])
    Ke = young_modulus / h * np.array([[1.0, -1.0], [-1.0, 1.0]])
    fe = force * h / 2 * np.ones(2)

    M = np.zeros((n_elements + 1, n_elements + 1))
    K = np.zeros((n_elements + 1, n_elements + 1))
    F = np.zeros(n_elements + 1)
    for e in range(n_elements):
        nodes = np.array([e, e + 1])
        M[np.ix_(nodes, nodes)] += Me
        K[np.ix_(nodes, nodes)] += Ke
        F[nodes] += fe

    # Node 0 is clamped.
    return M[1:, 1:], K[1:, 1:], F[1:]


class ClampedBar(Model):
    """Elastic bar clamped at one end.

    The bar ``0 <= x <= L`` is discretized with linear finite elements and a
    consistent mass matrix. Displacements ``u`` of the free nodes obey::

        M u'' + K u = f

    which is written as a first order system for the state ``X = [u, v]``
    with ``v = u'`` and integrated with the trapezoidal rule (average
    acceleration). The scheme is linear and unconditionally stable, its constant
    propagator is the tangent linear operator.

    Parameters
    ----------
    config : ModelConfig or None, optional
        Model parameters. If None (default), `seqassim.config.ModelConfig`
        defaults are used unless a configuration is passed to `initialize`.

    Attributes
    ----------
    n_states : int
        Number of state components, twice the number of elements.
    n_steps : int
        Number of time steps until the horizon.
    """

    def __init__(self, config=None):
        self.config = config
        self.n_states = 0
        self.n_steps = 0
        self.step = 0
        self.positions = None
        self.propagator = None
        self.forcing = None
        self.state = None
        self.covariance = None
        self.process_covariance = None

    def initialize(self, config=None):
        if config is not None:
            self.config = config
        if self.config is None:
            self.config = ModelConfig()
        config = self.config

        n = config.n_elements
        M, K, F = _assemble_bar(n, config.bar_length, config.young_modulus,
                                config.mass_density, config.force)
        A = np.zeros((2 * n, 2 * n))
        A[:n, n:] = np.identity(n)
        A[n:, :n] = -linalg.solve(M, K, assume_a='pos')
        b = np.hstack((np.zeros(n), linalg.solve(M, F, assume_a='pos')))

        dt = config.delta_t
        I = np.identity(2 * n)
        lu = linalg.lu_factor(I - 0.5 * dt * A)
        self.propagator = linalg.lu_solve(lu, I + 0.5 * dt * A)
        self.forcing = dt * linalg.lu_solve(lu, b)

        self.positions = config.bar_length / n * np.arange(1, n + 1)
        self.n_states = 2 * n
        self.n_steps = config.n_steps
        self.step = 0

        self.state = np.zeros(self.n_states)
        self.state[:n] = config.initial_displacement * self.positions / config.bar_length

        self.covariance = create_matrix(config.covariance_storage, self.n_states)
        self.covariance.set_identity()
        self.covariance *= config.state_error_variance
        self.process_covariance = (config.process_error_variance *
                                   np.identity(self.n_states))

        logger.info("Clamped bar with %d elements, %d steps of %g",
                    n, self.n_steps, dt)

    def get_state(self):
        return self.state

    def get_state_error_variance(self):
        return self.covariance

    def get_tangent_linear_operator(self):
        return self.propagator

    def get_process_error_variance(self):
        return self.process_covariance

    def forward(self):
        self.state[:] = self.propagator @ self.state + self.forcing
        self.step += 1

    def get_step(self):
        return self.step

    def get_time(self):
        return self.step * self.config.delta_t

    def has_finished(self):
        return self.step >= self.n_steps

    def get_displacement(self):
        return self.state[:self.n_states // 2]

    def finalize(self):
        if self.covariance is not None:
            self.covariance.clear()


class CallableModel(Model):
    """Model defined by a process callable.

    Parameters
    ----------
    X0 : array_like, shape (n_states,)
        Initial state estimate.
    P0 : array_like, shape (n_states, n_states)
        Initial error covariance.
    f : callable
        Process function, must follow `seqassim.util.process_callable` interface.
    Q : array_like, shape (n_epochs - 1, n_noises, n_noises) or (n_noises, n_noises)
        Process noise covariance matrix. Either constant or specified for each
        transition.
    n_epochs : int
        Number of epochs, the model finishes at epoch ``n_epochs - 1``.
    storage : {'symmetric', 'symmetric_packed'}, optional
        Storage of the error covariance. Default is 'symmetric'.
    """

    def __init__(self, X0, P0, f, Q, n_epochs, storage='symmetric'):
        X0, P0, Q, n_states, n_noises = check_input_arrays(X0, P0, Q, n_epochs)
        self.f = f
        self.Q = Q
        self.n_epochs = n_epochs
        self.n_states = n_states
        self.n_noises = n_noises
        self.storage = storage
        self._X0 = X0
        self._P0 = P0
        self.step = 0
        self.state = None
        self.covariance = None
        self._linearization = None

    def initialize(self, config=None):
        self.step = 0
        self.state = self._X0.copy()
        self.covariance = create_matrix(self.storage, self.n_states)
        self.covariance.assign(self._P0)
        self._linearization = None

    def _linearize(self):
        if self._linearization is None:
            X_next, F, G = self.f(self.step, self.state)
            self._linearization = (np.asarray(X_next), np.asarray(F), np.asarray(G))
        return self._linearization

    def get_state(self):
        return self.state

    def get_state_error_variance(self):
        return self.covariance

    def get_tangent_linear_operator(self):
        return self._linearize()[1]

    def get_process_error_variance(self):
        G = self._linearize()[2]
        return G @ self.Q[self.step] @ G.T

    def forward(self):
        X_next = self._linearize()[0]
        self.state[:] = X_next
        self.step += 1
        self._linearization = None

    def get_step(self):
        return self.step

    def has_finished(self):
        return self.step >= self.n_epochs - 1


MODELS = {
    'clamped_bar': ClampedBar,
}


def build_model(config):
    """Create a model from `seqassim.config.ModelConfig`."""
    try:
        cls = MODELS[config.type]
    except KeyError:
        raise ConfigurationError("Unknown model type {!r}, must be one of {}"
                                 .format(config.type, ", ".join(MODELS))) from None
    return cls(config)
