import io
import logging
import numpy as np
from numpy.testing import assert_allclose
import pytest
import seqassim


def test_bunch():
    b = seqassim.util.Bunch(X=1, P=2)
    assert b.X == 1
    b.trace = 3
    assert b['trace'] == 3
    del b.P
    with pytest.raises(AttributeError):
        b.P
    assert sorted(dir(b)) == ['X', 'trace']
    assert repr(seqassim.util.Bunch()) == "Bunch()"


def test_compute_rms():
    data = np.array([[1.0, -2.0], [-1.0, 2.0], [1.0, 2.0]])
    assert_allclose(seqassim.util.compute_rms(data), [1.0, 2.0])


def test_configure_logging():
    stream = io.StringIO()
    logger = seqassim.util.configure_logging("debug", stream)
    try:
        assert logger.name == "seqassim"
        assert logger.level == logging.DEBUG
        logging.getLogger("seqassim.ekf").debug("step %d", 5)
        assert "DEBUG seqassim.ekf: step 5" in stream.getvalue()

        # Calling it again replaces the handler.
        other = io.StringIO()
        seqassim.util.configure_logging(logging.WARNING, other)
        assert len(logger.handlers) == 1
        logging.getLogger("seqassim.linear").info("hidden")
        logging.getLogger("seqassim.linear").warning("shown")
        assert "hidden" not in other.getvalue()
        assert "shown" in other.getvalue()

        with pytest.raises(ValueError):
            seqassim.util.configure_logging("LOUD")
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
