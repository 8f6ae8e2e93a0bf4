"""Command line runner of the Extended Kalman Filter."""
import argparse
import logging
import sys
from .config import load_config
from .ekf import ExtendedKalmanFilter
from .errors import AnalysisError, ConfigurationError, MatrixIOError
from .storage import DenseMatrix
from .util import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_ANALYSIS = 2


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, "{}: error: {}\n".format(self.prog, message))


def _parse_args(args=None):
    parser = _ArgumentParser(
        prog="seqassim",
        description="Run the Extended Kalman Filter described by a YAML "
                    "configuration file")
    parser.add_argument("config", help="Path to the configuration file")
    parser.add_argument("--output-state", metavar="PATH",
                        help="Write the final state as a 1 x n binary matrix")
    parser.add_argument("--output-covariance", metavar="PATH",
                        help="Write the final covariance as a binary matrix")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every step")
    return parser.parse_args(args)


def _write_outputs(ekf, options):
    if options.output_state is not None:
        state = ekf.final_state
        DenseMatrix.from_array(state.reshape(1, -1)).write(options.output_state)
        logger.info("State written to %s", options.output_state)
    if options.output_covariance is not None:
        ekf.final_covariance.write(options.output_covariance)
        logger.info("Covariance written to %s", options.output_covariance)


def main(args=None):
    """Run the filter, return the exit status."""
    options = _parse_args(args)

    try:
        config = load_config(options.config)
    except ConfigurationError as e:
        print("seqassim: {}".format(e), file=sys.stderr)
        return EXIT_USAGE
    configure_logging("DEBUG" if options.verbose else config.logging.level)

    ekf = ExtendedKalmanFilter()
    try:
        ekf.initialize(config)
        ekf.run()
        _write_outputs(ekf, options)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_USAGE
    except AnalysisError as e:
        logger.error("%s", e)
        return EXIT_ANALYSIS
    except MatrixIOError as e:
        logger.error("%s", e)
        return EXIT_USAGE
    finally:
        ekf.finalize()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
