"""Result container, logging setup and descriptions of the callable conventions."""
import logging
import numpy as np

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class Bunch(dict):
    """Dictionary with attribute access, used for results."""
    def __getattr__(self, name):
        if name not in self:
            raise AttributeError(name)
        return self[name]

    __setattr__ = dict.__setitem__
    __delattr__ = dict.__delitem__

    def __repr__(self):
        if not self:
            return "{}()".format(type(self).__name__)
        width = max(len(key) for key in self) + 1
        lines = []
        for key, value in self.items():
            shape = getattr(value, 'shape', None)
            kind = type(value).__name__ if shape is None else "array{}".format(shape)
            lines.append("{}: {}".format(key.rjust(width), kind))
        return "\n".join(lines)

    def __dir__(self):
        return list(self)


def compute_rms(data):
    """Root-mean-square of `data` over the first axis."""
    return np.mean(np.square(data), axis=0) ** 0.5


def configure_logging(level=logging.INFO, stream=None):
    """Attach a stream handler to the package logger.

    Parameters
    ----------
    level : int or str, optional
        Logging level, either numeric or a name like 'DEBUG'. Default is INFO.
    stream : file-like or None, optional
        Stream for the handler. If None (default), `sys.stderr` is used.

    Returns
    -------
    logging.Logger
        The package logger.
    """
    if isinstance(level, str):
        numeric_level = logging.getLevelName(level.upper())
        if not isinstance(numeric_level, int):
            raise ValueError("Unknown logging level {!r}".format(level))
        level = numeric_level

    logger = logging.getLogger(__package__)
    for handler in list(logger.handlers):
        if getattr(handler, '_seqassim_handler', False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._seqassim_handler = True
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger



def process_callable(k, X, W=None, with_jacobian=True):
    """Signature of a process function ``f``.

    Nothing is computed here. The stub documents what `seqassim.run_ekf` and
    `seqassim.models.CallableModel` expect from ``f``.

    Parameters
    ----------
    k : int
        Epoch index, ``f`` may depend on it.
    X : ndarray, shape (n_states,)
        State at epoch `k`.
    W : ndarray, shape (n_noises,) or None, optional
        Process noise. None means a zero vector.
    with_jacobian : bool, optional
        If True (default), Jacobians are returned along with the value.

    Returns
    -------
    X_next : ndarray, shape (n_states,)
        State at epoch ``k + 1``.
    F : ndarray, shape (n_states, n_states)
        Derivative with respect to `X`, only when `with_jacobian` is True.
    G : ndarray, shape (n_states, n_noises)
        Derivative with respect to `W`, only when `with_jacobian` is True.
    """


def measurement_callable(k, X, with_jacobian=True):
    """Signature of a measurement function ``h``.

    Nothing is computed here. The stub documents what `seqassim.run_ekf` and
    `seqassim.observation.CallableObservationManager` expect from ``h``.

    Parameters
    ----------
    k : int
        Epoch index, ``h`` may depend on it.
    X : ndarray, shape (n_states,)
        State at epoch `k`.
    with_jacobian : bool, optional
        If True (default), the Jacobian is returned along with the value.

    Returns
    -------
    Z : ndarray, shape (n_meas,)
        Predicted measurement.
    H : ndarray, shape (n_meas, n_states)
        Derivative with respect to `X`, only when `with_jacobian` is True.
    """
