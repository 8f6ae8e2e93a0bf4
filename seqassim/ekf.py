"""Extended Kalman Filter."""
import enum
import logging
import numpy as np
from .config import coerce_config
from .errors import AnalysisError, SolverBreakdown, StateError
from .iterative import Iteration
from .linear import compute_gain, symmetrize, update_covariance
from .models import CallableModel, build_model
from .observation import CallableObservationManager, build_observation_manager
from .util import Bunch

logger = logging.getLogger(__name__)


class DriverState(enum.Enum):
    UNINITIALIZED = 'uninitialized'
    READY = 'ready'
    FORECASTING = 'forecasting'
    CORRECTED = 'corrected'
    FINISHED = 'finished'


class ExtendedKalmanFilter:
    """Sequential assimilation with the Extended Kalman Filter.

    The driver alternates forecasts and analyses::

        X_f = M(X_a)
        P_f = F P_a F^T + Q
        K = P_f H^T (H P_f H^T + R)^-1
        X_a = X_f + K (y - h(X_f))
        P_a = (I - K H) P_f

    where ``F`` and ``H`` are the tangent linear operators of the model and of
    the observation operator. The state vector and its covariance are owned by
    the model and updated in place.

    The operations must be called in the following order::

        initialize(config)
        while not has_finished():
            initialize_step()
            forward()
            analyze()
            finalize_step()
        finalize()

    which is what `run` does. Calling an operation out of order raises
    `seqassim.errors.StateError`.

    Parameters
    ----------
    model : seqassim.interfaces.Model or None, optional
        Model to use. If None (default), it is built from the configuration.
    observation_manager : seqassim.interfaces.ObservationManager or None, optional
        Observation manager to use. If None (default), it is built from the
        configuration.

    Attributes
    ----------
    state : DriverState
        Current state of the driver.
    config : seqassim.config.AssimilationConfig or None
        Configuration passed to `initialize`.
    iteration : seqassim.iterative.Iteration or None
        Iteration parameters used for iterative gain computation.
    history : Bunch or None
        When ``store_history`` is enabled: lists ``step``, ``time``, ``X`` and
        ``trace`` filled at the end of each step, turned into arrays by
        `finalize`.
    final_state : ndarray or None
        Copy of the state vector taken by `finalize`.
    final_covariance : seqassim.storage.Matrix or None
        Copy of the covariance taken by `finalize`.
    """

    def __init__(self, model=None, observation_manager=None):
        self.model = model
        self.observation_manager = observation_manager
        self.state = DriverState.UNINITIALIZED
        self.config = None
        self.iteration = None
        self.history = None
        self.final_state = None
        self.final_covariance = None
        self.n_analyses = 0
        self._step_open = False
        self._forwarded = False

    def _require(self, operation, *states):
        if self.state not in states:
            raise StateError("`{}` can't be called in state '{}'"
                             .format(operation, self.state.value))

    def initialize(self, config=None):
        """Prepare the model and the observation manager.

        Parameters
        ----------
        config : AssimilationConfig, mapping, str or None, optional
            Configuration or path to a YAML configuration file. If None (default),
            default configuration is used.

        Raises
        ------
        ConfigurationError
            If the configuration is invalid.
        """
        self._require('initialize', DriverState.UNINITIALIZED)
        config = coerce_config(config)
        self.config = config

        if self.model is None:
            self.model = build_model(config.model)
            self.model.initialize(config.model)
        else:
            self.model.initialize()

        if self.observation_manager is None:
            self.observation_manager = build_observation_manager(config.observation)
            self.observation_manager.initialize(self.model, config.observation)
        else:
            self.observation_manager.initialize(self.model)

        options = config.filter
        self.iteration = Iteration(options.iteration.tolerance,
                                   options.iteration.max_iter,
                                   init_guess_null=True)
        if options.store_history:
            self.history = Bunch(step=[], time=[], X=[], trace=[])
        self.n_analyses = 0
        self.state = DriverState.READY

        logger.info("Initialized EKF with %d states, gain method '%s', "
                    "%s covariance update", len(self.model.get_state()),
                    options.gain_method, options.covariance_update)

        if options.analyze_first_step:
            self._analyze()
        self._record()

    def initialize_step(self):
        self._require('initialize_step', DriverState.READY, DriverState.CORRECTED)
        if self.model.has_finished():
            raise StateError("The model has reached its time horizon")
        self.state = DriverState.FORECASTING
        self._step_open = True
        self._forwarded = False

    def forward(self):
        """Advance the model and propagate the covariance."""
        self._require('forward', DriverState.FORECASTING)
        if self._forwarded:
            raise StateError("`forward` was already called in this step")

        F = self.model.get_tangent_linear_operator()
        Q = self.model.get_process_error_variance()
        P = self.model.get_state_error_variance()
        P_next = F @ P.to_array() @ F.T + Q
        if self.config.filter.symmetrize:
            P_next = symmetrize(P_next)

        self.model.forward()
        P.assign(P_next)
        self._forwarded = True

    def _analyze(self):
        step = self.model.get_step()
        if not self.observation_manager.has_observation(step):
            logger.debug("No observations at step %d, analysis skipped", step)
            return False

        options = self.config.filter
        X = self.model.get_state()
        P = self.model.get_state_error_variance()
        d = self.observation_manager.get_innovation(X, step)
        H = self.observation_manager.get_tangent_linear_operator(X, step)
        R = self.observation_manager.get_error_variance(step)

        P_f = P.to_array()
        try:
            K = compute_gain(P_f, H, R, options.gain_method, self.iteration)
        except SolverBreakdown as e:
            raise AnalysisError(
                step, e.status, "Analysis failed at step {}: {}".format(step, e)
            ) from e

        P_a = update_covariance(P_f, K, H, R, options.covariance_update)
        if options.symmetrize:
            P_a = symmetrize(P_a)

        X += K @ d
        P.assign(P_a)
        self.n_analyses += 1
        logger.debug("Analysis at step %d with %d observations", step, len(d))
        return True

    def analyze(self):
        """Correct the state and the covariance with available observations.

        Raises
        ------
        AnalysisError
            If the gain computation broke down. The state and the covariance are
            left unchanged and the driver stays in the forecasting state.
        """
        self._require('analyze', DriverState.FORECASTING)
        if not self._forwarded:
            raise StateError("`forward` must be called before `analyze`")
        self._analyze()
        self.state = DriverState.CORRECTED

    def _record(self):
        if self.history is None:
            return
        self.history.step.append(self.model.get_step())
        self.history.time.append(self.model.get_time())
        self.history.X.append(np.copy(self.model.get_state()))
        self.history.trace.append(self.model.get_state_error_variance().trace())

    def finalize_step(self):
        self._require('finalize_step', DriverState.CORRECTED)
        if not self._step_open:
            raise StateError("No step is open")
        self.model.finalize_step()
        self._record()
        self._step_open = False
        logger.debug("Step %d (t=%g) done, trace(P)=%g", self.model.get_step(),
                     self.model.get_time(),
                     self.model.get_state_error_variance().trace())

    def has_finished(self):
        if self.model is None or self.state in (DriverState.UNINITIALIZED,
                                                DriverState.FINISHED):
            raise StateError("`has_finished` can't be called in state '{}'"
                             .format(self.state.value))
        return self.model.has_finished()

    def finalize(self):
        """Finalize collaborators and release the state.

        Copies of the last state and covariance are kept in `final_state` and
        `final_covariance`.
        """
        if self.state == DriverState.FINISHED:
            return
        if self.state != DriverState.UNINITIALIZED:
            self.final_state = np.copy(self.model.get_state())
            self.final_covariance = self.model.get_state_error_variance().copy()
            self.model.finalize()
            self.observation_manager.finalize()
            if self.history is not None:
                for key in self.history:
                    self.history[key] = np.asarray(self.history[key])
            logger.info("EKF finished at step %d after %d analyses",
                        self.model.get_step(), self.n_analyses)
        self._step_open = False
        self.state = DriverState.FINISHED

    def run(self, config=None):
        """Run the complete assimilation.

        The driver is initialized with `config` if it wasn't initialized yet.
        `finalize` is always called, even when a step fails.

        Returns
        -------
        history : Bunch or None
            See the class docstring.
        """
        if self.state == DriverState.UNINITIALIZED:
            self.initialize(config)
        try:
            while not self.has_finished():
                self.initialize_step()
                self.forward()
                self.analyze()
                self.finalize_step()
        finally:
            self.finalize()
        return self.history


def run_ekf(X0, P0, f, Q, n_epochs, measurements=None, **options):
    """Run Extended Kalman Filter.

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
        Number of epochs for estimation.
    measurements : list or None, optional
        Each element defines a single independent type of measurement as a tuple
        ``(epochs, Z, h, R)``, see `seqassim.observation.CallableObservationManager`.
        None (default) corresponds to an empty list.
    **options
        Options of the ``filter`` configuration section, see
        `seqassim.config.FilterConfig`. Measurements at epoch 0 are processed
        unless ``analyze_first_step=False`` is passed.

    Returns
    -------
    Bunch with the following fields:

        X : ndarray, shape (n_epochs, n_states)
            State estimates.
        P : ndarray, shape (n_epochs, n_states, n_states)
            Error covariance estimates.
    """
    model = CallableModel(X0, P0, f, Q, n_epochs)
    observation_manager = CallableObservationManager(measurements)
    filter_options = {'analyze_first_step': True}
    filter_options.update(options)

    ekf = ExtendedKalmanFilter(model, observation_manager)
    ekf.initialize({'filter': filter_options})

    n_states = model.n_states
    X = np.empty((n_epochs, n_states))
    P = np.empty((n_epochs, n_states, n_states))
    X[0] = model.get_state()
    P[0] = model.get_state_error_variance().to_array()

    try:
        while not ekf.has_finished():
            ekf.initialize_step()
            ekf.forward()
            ekf.analyze()
            k = model.get_step()
            X[k] = model.get_state()
            P[k] = model.get_state_error_variance().to_array()
            ekf.finalize_step()
    finally:
        ekf.finalize()

    return Bunch(X=X, P=P)
