"""Iterative solution of symmetric linear systems.

The symmetric Quasi-Minimal Residual method (SQMR) solves ``A x = b`` for a
symmetric, possibly indefinite, matrix ``A`` accessed only through
matrix-vector products. It relies on a short Lanczos-type recurrence and doesn't
store a Krylov basis.

Numerical breakdowns are expected outcomes of the method. They are reported by
status codes (see `SolverStatus`), never by exceptions.

References
----------
.. [1] R. W. Freund, N. M. Nachtigal, "A quasi-minimal residual method for
   non-Hermitian linear systems", Numerische Mathematik, 60 (1991), pp. 315-339.
.. [2] R. Barrett et al., "Templates for the Solution of Linear Systems: Building
   Blocks for Iterative Methods", SIAM, 1994.
"""
import enum
import logging
import numpy as np
from scipy.sparse.linalg import aslinearoperator
from .storage import Matrix

logger = logging.getLogger(__name__)


class SolverStatus(enum.IntEnum):
    """Status codes returned by `qmr_sym`."""
    CONVERGED = 0
    RHO_BREAKDOWN = 1
    DELTA_BREAKDOWN = 3
    EP_BREAKDOWN = 4
    BETA_BREAKDOWN = 5
    GAMMA_BREAKDOWN = 6
    ITERATION_LIMIT = -1
    INVALID_INPUT = -2


class Iteration:
    """Iteration parameters and convergence monitoring.

    The iteration is finished when ``norm(r) <= tol * norm(b)`` or when the
    number of iterations reaches `max_iter`. For a zero right-hand side the
    absolute criterion ``norm(r) <= tol`` is used.

    Parameters
    ----------
    tol : float, optional
        Relative tolerance on the residual norm. Default is 1e-12.
    max_iter : int, optional
        Maximum number of iterations. Default is 1000.
    init_guess_null : bool, optional
        Whether the initial guess is assumed to be zero, in which case the
        solution vector is zeroed before iterating. Default is False.

    Attributes
    ----------
    n_iter : int
        Number of completed iterations.
    residual_norm : float or None
        Norm of the residual at the last convergence check.
    message : str or None
        Description of the failure if any.
    """

    def __init__(self, tol=1e-12, max_iter=1000, init_guess_null=False):
        if tol < 0:
            raise ValueError("`tol` must be non-negative")
        if max_iter < 0:
            raise ValueError("`max_iter` must be non-negative")
        self.tol = tol
        self.max_iter = max_iter
        self.init_guess_null = init_guess_null
        self.reset()

    def reset(self):
        self.n_iter = 0
        self.residual_norm = None
        self.message = None
        self._failure = None
        self._rhs_norm = 1.0

    def init(self, b):
        """Start monitoring a new solve with right-hand side `b`."""
        self.reset()
        b_norm = np.linalg.norm(b)
        if not np.isfinite(b_norm):
            self.fail(SolverStatus.INVALID_INPUT, "Right-hand side is not finite")
            return self.error_code
        if b_norm > 0:
            self._rhs_norm = b_norm
        return SolverStatus.CONVERGED

    @property
    def first(self):
        return self.n_iter == 0

    @property
    def converged(self):
        return (self.residual_norm is not None and
                self.residual_norm <= self.tol * self._rhs_norm)

    def finished(self, r):
        self.residual_norm = np.linalg.norm(r)
        return self.converged or self.n_iter >= self.max_iter

    def advance(self):
        self.n_iter += 1

    def fail(self, status, message):
        self._failure = SolverStatus(status)
        self.message = message
        logger.debug("%s (iteration %d)", message, self.n_iter)

    @property
    def error_code(self):
        if self._failure is not None:
            return self._failure
        if not self.converged and self.n_iter >= self.max_iter:
            return SolverStatus.ITERATION_LIMIT
        return SolverStatus.CONVERGED


class IdentityPreconditioner:
    """No preconditioning."""

    def solve(self, A, v):
        return np.array(v)


class DiagonalPreconditioner:
    """Jacobi preconditioner ``M = diag(A)``.

    Parameters
    ----------
    diagonal : array_like, shape (n,)
        Diagonal of the preconditioner, must not contain zeros.
    """

    def __init__(self, diagonal):
        diagonal = np.asarray(diagonal)
        if np.any(diagonal == 0):
            raise ValueError("Diagonal preconditioner requires non-zero diagonal")
        self.inverse = 1 / diagonal

    @classmethod
    def from_matrix(cls, A):
        if isinstance(A, Matrix):
            A = A.to_array()
        return cls(np.diagonal(A))

    def solve(self, A, v):
        return self.inverse * v


def as_operator(A):
    """Convert a matrix-like object to `scipy.sparse.linalg.LinearOperator`.

    Accepts ndarrays, storage matrices from `seqassim.storage` and everything
    supported by `scipy.sparse.linalg.aslinearoperator`.
    """
    if isinstance(A, (list, tuple)):
        A = np.asarray(A)
    return aslinearoperator(A)


def qmr_sym(A, x, b, M=None, iteration=None):
    """Solve a symmetric linear system by the symmetric QMR method.

    Parameters
    ----------
    A : array_like, Matrix or LinearOperator, shape (n, n)
        Symmetric matrix of the system. Only products ``A @ p`` are computed.
    x : ndarray, shape (n,)
        On input the initial guess (ignored if ``iteration.init_guess_null``),
        on output the last computed iterate. Updated in place.
    b : array_like, shape (n,)
        Right-hand side.
    M : object or None, optional
        Left preconditioner with method ``solve(A, v)`` returning ``M^-1 v``.
        If None (default), `IdentityPreconditioner` is used.
    iteration : Iteration or None, optional
        Iteration parameters, updated by the solver. If None (default), an
        instance with default parameters is used.

    Returns
    -------
    SolverStatus
        ``CONVERGED`` (zero) on success, otherwise the breakdown kind or
        ``ITERATION_LIMIT``.
    """
    A = as_operator(A)
    n = A.shape[0]
    if n <= 0:
        return SolverStatus.CONVERGED
    if M is None:
        M = IdentityPreconditioner()
    if iteration is None:
        iteration = Iteration()

    b = np.asarray(b)
    if not isinstance(x, np.ndarray) or x.shape != (n,) or b.shape != (n,):
        raise ValueError("`x` must be ndarray of shape ({0},) and `b` of shape ({0},)"
                         .format(n))
    a_dtype = A.dtype if A.dtype is not None else np.float64
    dtype = np.result_type(x.dtype, b.dtype, a_dtype, np.float64)
    if not np.can_cast(dtype, x.dtype, 'same_kind'):
        raise ValueError("`x` with dtype {} can't hold a solution of dtype {}"
                         .format(x.dtype, dtype))

    status = iteration.init(b)
    if status != SolverStatus.CONVERGED:
        return status

    theta = 0.0
    gamma = 1.0
    eta = -1.0
    ep = 0.0

    r = b.astype(dtype)
    if iteration.init_guess_null:
        x.fill(0)
    else:
        r -= A.matvec(x)

    v = r.copy()
    y = M.solve(A, v)
    rho = np.linalg.norm(y)

    p = d = s = None
    while not iteration.finished(r):
        if rho == 0:
            iteration.fail(SolverStatus.RHO_BREAKDOWN, "QMR breakdown #1: rho is zero")
            break

        v = v / rho
        y = y / rho

        delta = np.dot(v, y)
        if delta == 0:
            iteration.fail(SolverStatus.DELTA_BREAKDOWN,
                           "QMR breakdown #2: delta is zero")
            break

        if iteration.first:
            p = y.copy()
        else:
            p = y - (rho * delta / ep) * p

        p_tld = A.matvec(p)
        ep = np.dot(p, p_tld)
        if ep == 0:
            iteration.fail(SolverStatus.EP_BREAKDOWN, "QMR breakdown #3: ep is zero")
            break

        beta = ep / delta
        if beta == 0:
            iteration.fail(SolverStatus.BETA_BREAKDOWN,
                           "QMR breakdown #4: beta is zero")
            break

        v = p_tld - beta * v
        y = M.solve(A, v)

        rho_1 = rho
        rho = np.linalg.norm(y)

        gamma_1 = gamma
        theta_1 = theta
        theta = rho / (gamma_1 * beta)
        gamma = 1 / np.sqrt(1 + theta * theta)
        if gamma == 0:
            iteration.fail(SolverStatus.GAMMA_BREAKDOWN,
                           "QMR breakdown #5: gamma is zero")
            break

        eta = -eta * rho_1 * gamma * gamma / (beta * gamma_1 * gamma_1)

        if iteration.first:
            d = eta * p
            s = eta * p_tld
        else:
            factor = theta_1 * theta_1 * gamma * gamma
            d = factor * d + eta * p
            s = factor * s + eta * p_tld

        x += d
        r -= s
        iteration.advance()

    status = iteration.error_code
    logger.debug("SQMR finished after %d iterations with status %s, residual %s",
                 iteration.n_iter, status.name, iteration.residual_norm)
    return status
