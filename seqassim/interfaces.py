"""Capabilities required from models and observation managers.

The driver `seqassim.ekf.ExtendedKalmanFilter` depends only on these two
interfaces. Implementations shipped with the package are in `seqassim.models`
and `seqassim.observation`.
"""
import abc


class Model(abc.ABC):
    """Forward model of the estimated process.

    The model owns the state vector and its error covariance. The driver
    modifies both in place: `get_state` must return the array held by the model
    and `get_state_error_variance` the covariance matrix held by the model.
    """

    def initialize(self, config=None):
        """Prepare the model, `config` is a `seqassim.config.ModelConfig`."""

    @abc.abstractmethod
    def get_state(self):
        """Return the state vector, ndarray of shape (n_states,)."""

    @abc.abstractmethod
    def get_state_error_variance(self):
        """Return the state error covariance, `seqassim.storage.Matrix`."""

    @abc.abstractmethod
    def get_tangent_linear_operator(self):
        """Return Jacobian of the transition at the current state and step.

        Returns
        -------
        F : ndarray, shape (n_states, n_states)
        """

    @abc.abstractmethod
    def get_process_error_variance(self):
        """Return covariance of the noise added by the next transition.

        Returns
        -------
        Q : ndarray, shape (n_states, n_states)
        """

    @abc.abstractmethod
    def forward(self):
        """Advance the state by one step, in place."""

    @abc.abstractmethod
    def get_step(self):
        """Return the current step index, starting from 0."""

    def get_time(self):
        return float(self.get_step())

    @abc.abstractmethod
    def has_finished(self):
        """Whether the time horizon is reached."""

    def finalize_step(self):
        pass

    def finalize(self):
        pass


class ObservationManager(abc.ABC):
    """Source of observations and of the observation operator."""

    def initialize(self, model, config=None):
        """Prepare the manager for `model`.

        `config` is a `seqassim.config.ObservationConfig`.
        """

    @abc.abstractmethod
    def has_observation(self, step):
        """Whether observations are available at `step`."""

    @abc.abstractmethod
    def get_innovation(self, state, step):
        """Return ``y - h(state)`` at `step`, ndarray of shape (n_obs,)."""

    @abc.abstractmethod
    def get_tangent_linear_operator(self, state, step):
        """Return the observation operator linearized at `state`.

        Returns
        -------
        H : ndarray, shape (n_obs, n_states)
        """

    @abc.abstractmethod
    def get_error_variance(self, step):
        """Return observation error covariance, ndarray of shape (n_obs, n_obs)."""

    def finalize(self):
        pass
