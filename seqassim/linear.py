"""Kalman gain and covariance update kernels."""
import logging
import numpy as np
from scipy import linalg
from .errors import SolverBreakdown
from .iterative import (DiagonalPreconditioner, IdentityPreconditioner, Iteration,
                        SolverStatus, qmr_sym)

logger = logging.getLogger(__name__)

GAIN_METHODS = ('cholesky', 'qmr', 'auto')
COVARIANCE_UPDATES = ('standard', 'joseph')


def _gain_cholesky(P, H, S):
    J = linalg.cho_solve(linalg.cho_factor(S), H).T
    return P @ J


def _gain_qmr(P, H, S, iteration):
    # Solve S Z = H P column by column, then K = Z^T.
    HP = H @ P
    if np.all(np.diagonal(S) != 0):
        M = DiagonalPreconditioner.from_matrix(S)
    else:
        M = IdentityPreconditioner()

    Z = np.zeros(HP.shape, dtype=np.result_type(HP, S, np.float64))
    z = np.empty(len(S), dtype=Z.dtype)
    for column in range(HP.shape[1]):
        status = qmr_sym(S, z, HP[:, column], M, iteration)
        if status != SolverStatus.CONVERGED:
            raise SolverBreakdown(
                status, "Gain computation failed for column {}: {}".format(
                    column, iteration.message or status.name))
        Z[:, column] = z
    return Z.T


def compute_gain(P, H, R, method='cholesky', iteration=None):
    """Compute Kalman gain ``K = P H^T (H P H^T + R)^-1``.

    Parameters
    ----------
    P : ndarray, shape (n_states, n_states)
        State error covariance.
    H : ndarray, shape (n_obs, n_states)
        Observation operator.
    R : ndarray, shape (n_obs, n_obs)
        Observation error covariance.
    method : {'cholesky', 'qmr', 'auto'}, optional
        How to solve with the innovation covariance ``S = H P H^T + R``:

            - 'cholesky' (default) : Cholesky factorization of ``S``.
            - 'qmr' : symmetric QMR iterations with Jacobi preconditioning, one
              solve per state component.
            - 'auto' : Cholesky factorization, falling back to QMR when ``S`` is
              not positive definite.

    iteration : Iteration or None, optional
        Iteration parameters for QMR. If None (default), an instance with zero
        initial guess and default tolerances is created.

    Returns
    -------
    K : ndarray, shape (n_states, n_obs)
        Kalman gain.

    Raises
    ------
    SolverBreakdown
        If QMR iterations don't converge.
    """
    if method not in GAIN_METHODS:
        raise ValueError("`method` must be one of {}".format(GAIN_METHODS))
    if iteration is None:
        iteration = Iteration(init_guess_null=True)

    S = H @ P @ H.T + R
    if method == 'cholesky':
        return _gain_cholesky(P, H, S)
    if method == 'qmr':
        return _gain_qmr(P, H, S, iteration)

    try:
        return _gain_cholesky(P, H, S)
    except linalg.LinAlgError:
        logger.warning("Innovation covariance is not positive definite, "
                       "switching to QMR solver")
        return _gain_qmr(P, H, S, iteration)


def update_covariance(P, K, H, R=None, form='standard'):
    """Compute the covariance after the analysis.

    The 'standard' form is ``(I - K H) P``, the 'joseph' form is
    ``(I - K H) P (I - K H)^T + K R K^T``. Both are equal for the optimal gain,
    the latter keeps the result positive semi-definite for any gain.
    """
    if form not in COVARIANCE_UPDATES:
        raise ValueError("`form` must be one of {}".format(COVARIANCE_UPDATES))
    U = np.eye(len(P)) - K @ H
    if form == 'standard':
        return U @ P
    if R is None:
        raise ValueError("`R` is required for the Joseph form")
    return U @ P @ U.T + K @ R @ K.T


def symmetrize(P):
    return 0.5 * (P + P.T)
