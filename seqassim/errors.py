"""Exceptions raised by the package."""


class SeqAssimError(Exception):
    """Base class for all errors raised by the package."""


class OutOfMemory(SeqAssimError, MemoryError):
    """Allocation or reallocation of a matrix buffer failed.

    The matrix which raised it is left empty (0 x 0, without buffer).
    """

    def __init__(self, operation, message="Unable to allocate memory."):
        self.operation = operation
        super().__init__("{}: {}".format(operation, message))


class MatrixIOError(SeqAssimError, OSError):
    """Reading or writing a matrix failed.

    Parameters
    ----------
    operation : str
        Name of the failing operation, for example ``'read_text'``.
    path : str or None
        File name if known.
    message : str
        Description of the failure.
    """

    def __init__(self, operation, path, message):
        self.operation = operation
        self.path = path
        location = "" if path is None else ' "{}"'.format(path)
        super().__init__("{}{}: {}".format(operation, location, message))


class SolverBreakdown(SeqAssimError, ArithmeticError):
    """Iterative solver did not converge.

    Attributes
    ----------
    status : SolverStatus
        Status code returned by the solver.
    """

    def __init__(self, status, message=None):
        self.status = status
        if message is None:
            message = "Iterative solver failed with status {}".format(
                getattr(status, 'name', status))
        super().__init__(message)


class AnalysisError(SolverBreakdown):
    """Analysis step aborted, the step index is attached."""

    def __init__(self, step, status, message=None):
        self.step = step
        if message is None:
            message = "Analysis failed at step {} with status {}".format(
                step, getattr(status, 'name', status))
        super().__init__(status, message)


class ConfigurationError(SeqAssimError, ValueError):
    """Startup configuration is missing or malformed."""


class StateError(SeqAssimError, RuntimeError):
    """Driver operation called out of order."""
