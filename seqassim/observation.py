"""Reference observation managers."""
import copy
import logging
import numpy as np
from scipy import linalg
from scipy._lib._util import check_random_state
from ._common import check_measurements, find_epoch
from .config import ObservationConfig
from .errors import ConfigurationError, MatrixIOError
from .interfaces import ObservationManager
from .storage import DenseMatrix

logger = logging.getLogger(__name__)


def selection_operator(n_states, stride=1):
    """Return operator selecting every `stride`-th state component."""
    return np.identity(n_states)[::stride]


def simulate_observations(model, H, period=1, error_variance=0.0,
                          truth_perturbation=0.0, add_noise=True, rng=None):
    """Run a perturbed copy of a model and observe it.

    The model must be initialized, it is not modified. The initial state of the
    copy is perturbed by normal noise with standard deviation
    `truth_perturbation`.

    Parameters
    ----------
    model : seqassim.interfaces.Model
        Initialized model.
    H : ndarray, shape (n_obs, n_states)
        Observation operator.
    period : int, optional
        Observations are generated at steps multiple of `period`. Default is 1.
    error_variance : float, optional
        Variance of observation noise. Default is 0.
    truth_perturbation : float, optional
        Standard deviation of the initial state perturbation. Default is 0.
    add_noise : bool, optional
        Whether to add observation noise. Default is True.
    rng : None, int or `numpy.random.RandomState`
        Seed to create or already created RandomState. None (default) corresponds to
        nondeterministic seeding.

    Returns
    -------
    steps : ndarray, shape (n_times,)
        Steps at which the observations are available.
    Y : ndarray, shape (n_times, n_obs)
        Observations.
    Xt : ndarray, shape (n_steps + 1, n_states)
        True states of each step.
    """
    rng = check_random_state(rng)
    truth = copy.deepcopy(model)
    X = truth.get_state()
    X += truth_perturbation * rng.randn(len(X))

    steps = []
    Y = []
    Xt = []
    while True:
        X = truth.get_state()
        Xt.append(X.copy())
        step = truth.get_step()
        if step % period == 0:
            y = H @ X
            if add_noise:
                y = y + error_variance ** 0.5 * rng.randn(len(y))
            steps.append(step)
            Y.append(y)
        if truth.has_finished():
            break
        truth.forward()
    truth.finalize()

    return np.asarray(steps), np.asarray(Y), np.asarray(Xt)


class LinearObservationManager(ObservationManager):
    """Observations of a subset of state components.

    Every `stride`-th state component is observed every `period` steps with
    error covariance ``r I``. Observations are read from a binary `DenseMatrix`
    file, row ``i`` corresponding to step ``i * period``, or simulated from a
    perturbed run of the model when no file is configured.

    Parameters
    ----------
    config : ObservationConfig or None, optional
        Manager parameters. If None (default), `seqassim.config.ObservationConfig`
        defaults are used unless a configuration is passed to `initialize`.

    Attributes
    ----------
    H : ndarray, shape (n_obs, n_states)
        Observation operator.
    R : ndarray, shape (n_obs, n_obs)
        Observation error covariance.
    truth : ndarray, shape (n_steps + 1, n_states) or None
        True states when observations are simulated.
    """

    def __init__(self, config=None):
        self.config = config
        self.H = None
        self.R = None
        self.truth = None
        self.observations = {}

    def initialize(self, model, config=None):
        if config is not None:
            self.config = config
        if self.config is None:
            self.config = ObservationConfig()
        config = self.config

        n_states = len(model.get_state())
        self.H = selection_operator(n_states, config.stride)
        n_obs = len(self.H)
        self.R = config.error_variance * np.identity(n_obs)

        if config.file is not None:
            Y = self._read(config.file, n_obs)
            steps = config.period * np.arange(len(Y))
            self.truth = None
            source = config.file
        else:
            steps, Y, self.truth = simulate_observations(
                model, self.H, config.period, config.error_variance,
                config.truth_perturbation, config.add_noise, config.seed)
            source = "simulation"

        self.observations = dict(zip(steps.tolist(), Y))
        logger.info("%d observations of %d components from %s",
                    len(self.observations), n_obs, source)

    @staticmethod
    def _read(path, n_obs):
        data = DenseMatrix()
        try:
            data.read(path)
        except MatrixIOError as exc:
            raise ConfigurationError("Unable to read observations: {}"
                                     .format(exc)) from exc
        if data.m > 0 and data.n != n_obs:
            raise ConfigurationError(
                "Observation file \"{}\" has {} columns, expected {}"
                .format(path, data.n, n_obs))
        return data.to_array()

    def has_observation(self, step):
        return step in self.observations

    def get_observation(self, step):
        return self.observations[step]

    def get_innovation(self, state, step):
        return self.observations[step] - self.H @ state

    def get_tangent_linear_operator(self, state, step):
        return self.H

    def get_error_variance(self, step):
        return self.R

    def finalize(self):
        self.observations = {}


class CallableObservationManager(ObservationManager):
    """Observations defined by measurement callables.

    Parameters
    ----------
    measurements : list or None
        Each element defines a single independent type of measurement as a tuple
        ``(epochs, Z, h, R)``, where

            - epochs : array_like, shape (n,)
                Epoch indices at which the measurement is available.
            - Z : array_like, shape (n, m)
                Measurement vectors.
            - h : callable
                The measurement function which must follow
                `seqassim.util.measurement_callable` interface.
            - R : array_like, shape (n, m, m) or (m, m)
                Measurement noise covariance matrix specified for each epoch or a
                single matrix, constant for each epoch.

        None corresponds to an empty list. Measurements available at the same
        epoch are processed together.
    """

    def __init__(self, measurements):
        self.measurements = check_measurements(measurements)

    def _available(self, step):
        for epochs, Z, h, R in self.measurements:
            index = find_epoch(epochs, step)
            if index is not None:
                yield index, Z, h, R

    def has_observation(self, step):
        return any(True for _ in self._available(step))

    def get_innovation(self, state, step):
        innovation = []
        for index, Z, h, _ in self._available(step):
            innovation.append(Z[index] - h(step, state, with_jacobian=False))
        return np.hstack(innovation)

    def get_tangent_linear_operator(self, state, step):
        H = []
        for _, _, h, _ in self._available(step):
            H.append(h(step, state)[1])
        return np.vstack(H)

    def get_error_variance(self, step):
        return linalg.block_diag(*[R[index] for index, _, _, R in
                                   self._available(step)])


OBSERVATION_MANAGERS = {
    'linear': LinearObservationManager,
}


def build_observation_manager(config):
    """Create an observation manager from `seqassim.config.ObservationConfig`."""
    try:
        cls = OBSERVATION_MANAGERS[config.type]
    except KeyError:
        raise ConfigurationError(
            "Unknown observation manager type {!r}, must be one of {}"
            .format(config.type, ", ".join(OBSERVATION_MANAGERS))) from None
    return cls(config)
