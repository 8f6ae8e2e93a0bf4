"""seqassim: Sequential data assimilation with the Extended Kalman Filter.

The package estimates the state of a dynamical system from a forward model and
noisy observations::

    X_{k + 1} = M_k(X_k) + W_k
    Y_k = h_k(X_k) + V_k

Where

    - k   - integer step index
    - X_k - state vector
    - W_k - model error with covariance Q_k
    - Y_k - observation vector
    - V_k - observation error with covariance R_k
    - M_k - model transition
    - h_k - observation operator

The filter is driven by `ExtendedKalmanFilter`, which works with any model and
observation manager implementing `seqassim.interfaces.Model` and
`seqassim.interfaces.ObservationManager`. Reference implementations are in
`seqassim.models` and `seqassim.observation`, runs are configured with YAML
files, see `seqassim.config`. For problems defined by process and measurement
functions following `seqassim.util.process_callable` and
`seqassim.util.measurement_callable`, `run_ekf` offers a functional interface.

Covariances are held in the matrix layouts of `seqassim.storage`, which also
provides binary and text persistence. Innovation systems can be solved with the
symmetric QMR method `qmr_sym` when their Cholesky factorization is not
applicable.

References
----------
.. [1] J. L. Crassidis, J. L. Junkins, "Optimal Estimation of Dynamic Systems",
   2nd edition
.. [2] R. W. Freund, N. M. Nachtigal, "A quasi-minimal residual method for
   non-Hermitian linear systems", Numerische Mathematik, 60 (1991)
"""
from . import examples, util
from .config import AssimilationConfig, load_config
from .ekf import DriverState, ExtendedKalmanFilter, run_ekf
from .errors import (AnalysisError, ConfigurationError, MatrixIOError, OutOfMemory,
                     SeqAssimError, SolverBreakdown, StateError)
from .iterative import Iteration, SolverStatus, qmr_sym
from .storage import (DenseMatrix, HermitianPackedMatrix, SymmetricMatrix,
                      SymmetricPackedMatrix, TriangularMatrix,
                      TriangularPackedMatrix, create_matrix)
