"""Configuration of assimilation runs.

A configuration file is a YAML document with optional sections ``model``,
``observation``, ``filter`` and ``logging``, for example::

    model:
      type: clamped_bar
      n_elements: 20
      delta_t: 0.005
      final_time: 2.0
      state_error_variance: 1.0
    observation:
      type: linear
      stride: 2
      period: 4
      error_variance: 1.0e-4
    filter:
      gain_method: auto
      covariance_update: joseph
      iteration:
        tolerance: 1.0e-10
        max_iter: 500
    logging:
      level: DEBUG

Missing keys take the defaults of the corresponding dataclass. Invalid values
raise `seqassim.errors.ConfigurationError`.
"""
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Optional
import yaml
from .errors import ConfigurationError
from .linear import COVARIANCE_UPDATES, GAIN_METHODS

COVARIANCE_STORAGES = ('symmetric', 'symmetric_packed')
LOGGING_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _require_float(value, name, minimum=None, strict=False):
    if isinstance(value, bool):
        raise ConfigurationError("`{}` must be a number, got {!r}".format(name, value))
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            "`{}` must be a number, got {!r}".format(name, value)) from None
    if minimum is not None:
        if strict and not value > minimum:
            raise ConfigurationError("`{}` must be greater than {}, got {}"
                                     .format(name, minimum, value))
        if not strict and not value >= minimum:
            raise ConfigurationError("`{}` must be at least {}, got {}"
                                     .format(name, minimum, value))
    return value


def _require_int(value, name, minimum=None):
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(
            "`{}` must be an integer, got {!r}".format(name, value))
    if minimum is not None and value < minimum:
        raise ConfigurationError("`{}` must be at least {}, got {}"
                                 .format(name, minimum, value))
    return value


def _require_bool(value, name):
    if not isinstance(value, bool):
        raise ConfigurationError("`{}` must be a boolean, got {!r}".format(name, value))
    return value


def _require_choice(value, choices, name):
    if value not in choices:
        raise ConfigurationError("`{}` must be one of {}, got {!r}"
                                 .format(name, ", ".join(choices), value))
    return value


@dataclass(frozen=True)
class IterationConfig:
    """Parameters of the iterative solver.

    Attributes:
        tolerance: Relative residual tolerance
        max_iter: Maximum number of iterations
    """

    tolerance: float = 1e-12
    max_iter: int = 1000

    def __post_init__(self):
        object.__setattr__(self, "tolerance",
                           _require_float(self.tolerance, "tolerance", 0))
        object.__setattr__(self, "max_iter",
                           _require_int(self.max_iter, "max_iter", 1))


@dataclass(frozen=True)
class ModelConfig:
    """Clamped bar model parameters.

    Attributes:
        type: Model name, see `seqassim.models.MODELS`
        bar_length: Length of the bar
        n_elements: Number of finite elements
        young_modulus: Young's modulus
        mass_density: Mass per unit length
        force: Load per unit length
        initial_displacement: Displacement of the free end at the initial time,
            the initial displacement is linear along the bar
        delta_t: Time step
        final_time: Time horizon
        state_error_variance: Initial state error variance, P0 = sigma^2 I
        process_error_variance: Model error variance added at each step
        covariance_storage: Storage of the state error covariance
    """

    type: str = "clamped_bar"
    bar_length: float = 1.0
    n_elements: int = 10
    young_modulus: float = 1.0
    mass_density: float = 1.0
    force: float = 0.0
    initial_displacement: float = 0.1
    delta_t: float = 0.01
    final_time: float = 1.0
    state_error_variance: float = 1.0
    process_error_variance: float = 0.0
    covariance_storage: str = "symmetric"

    def __post_init__(self):
        object.__setattr__(self, "bar_length",
                           _require_float(self.bar_length, "bar_length", 0, True))
        object.__setattr__(self, "n_elements",
                           _require_int(self.n_elements, "n_elements", 1))
        object.__setattr__(self, "young_modulus",
                           _require_float(self.young_modulus, "young_modulus", 0, True))
        object.__setattr__(self, "mass_density",
                           _require_float(self.mass_density, "mass_density", 0, True))
        object.__setattr__(self, "force", _require_float(self.force, "force"))
        object.__setattr__(self, "initial_displacement",
                           _require_float(self.initial_displacement,
                                          "initial_displacement"))
        object.__setattr__(self, "delta_t",
                           _require_float(self.delta_t, "delta_t", 0, True))
        object.__setattr__(self, "final_time",
                           _require_float(self.final_time, "final_time", 0))
        object.__setattr__(self, "state_error_variance",
                           _require_float(self.state_error_variance,
                                          "state_error_variance", 0))
        object.__setattr__(self, "process_error_variance",
                           _require_float(self.process_error_variance,
                                          "process_error_variance", 0))
        _require_choice(self.covariance_storage, COVARIANCE_STORAGES,
                        "covariance_storage")
        if not isinstance(self.type, str):
            raise ConfigurationError("`type` must be a string")

    @property
    def n_steps(self):
        return int(round(self.final_time / self.delta_t))


@dataclass(frozen=True)
class ObservationConfig:
    """Linear observation manager parameters.

    Attributes:
        type: Observation manager name, see
            `seqassim.observation.OBSERVATION_MANAGERS`
        stride: Every `stride`-th state component is observed
        period: Observations are available every `period` steps
        error_variance: Observation error variance, R = r I
        file: Binary matrix file with one row of observations per observation
            time. If None, observations are simulated from a perturbed run of
            the model
        add_noise: Whether to add noise to simulated observations
        truth_perturbation: Standard deviation of the perturbation of the
            initial state of the simulated true run
        seed: Seed of simulated noise and perturbation
    """

    type: str = "linear"
    stride: int = 1
    period: int = 1
    error_variance: float = 1e-2
    file: Optional[str] = None
    add_noise: bool = True
    truth_perturbation: float = 0.0
    seed: Optional[int] = 0

    def __post_init__(self):
        object.__setattr__(self, "stride", _require_int(self.stride, "stride", 1))
        object.__setattr__(self, "period", _require_int(self.period, "period", 1))
        object.__setattr__(self, "error_variance",
                           _require_float(self.error_variance, "error_variance", 0))
        object.__setattr__(self, "add_noise", _require_bool(self.add_noise, "add_noise"))
        object.__setattr__(self, "truth_perturbation",
                           _require_float(self.truth_perturbation,
                                          "truth_perturbation", 0))
        if self.file is not None and not isinstance(self.file, str):
            raise ConfigurationError("`file` must be a string")
        if self.seed is not None:
            _require_int(self.seed, "seed", 0)
        if not isinstance(self.type, str):
            raise ConfigurationError("`type` must be a string")


@dataclass(frozen=True)
class FilterConfig:
    """Extended Kalman filter options.

    Attributes:
        gain_method: How the innovation covariance is inverted, see
            `seqassim.linear.compute_gain`
        covariance_update: 'standard' or 'joseph' analysis covariance update
        symmetrize: Whether to symmetrize covariances after each update
        analyze_first_step: Whether to analyze the initial state
        store_history: Whether to keep states and covariances of each step
        iteration: Iterative solver parameters
    """

    gain_method: str = "cholesky"
    covariance_update: str = "standard"
    symmetrize: bool = True
    analyze_first_step: bool = False
    store_history: bool = False
    iteration: IterationConfig = field(default_factory=IterationConfig)

    def __post_init__(self):
        _require_choice(self.gain_method, GAIN_METHODS, "gain_method")
        _require_choice(self.covariance_update, COVARIANCE_UPDATES,
                        "covariance_update")
        _require_bool(self.symmetrize, "symmetrize")
        _require_bool(self.analyze_first_step, "analyze_first_step")
        _require_bool(self.store_history, "store_history")
        if not isinstance(self.iteration, IterationConfig):
            raise ConfigurationError("`iteration` must be an IterationConfig")


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"

    def __post_init__(self):
        if not isinstance(self.level, str):
            raise ConfigurationError("`level` must be a string")
        object.__setattr__(self, "level", self.level.upper())
        _require_choice(self.level, LOGGING_LEVELS, "level")

    @property
    def numeric_level(self):
        return getattr(logging, self.level)


@dataclass(frozen=True)
class AssimilationConfig:
    model: ModelConfig = field(default_factory=ModelConfig)
    observation: ObservationConfig = field(default_factory=ObservationConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _build_section(cls, mapping, section):
    if mapping is None:
        mapping = {}
    if not isinstance(mapping, Mapping):
        raise ConfigurationError("Section `{}` must be a mapping".format(section))

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(mapping) - known)
    if unknown:
        raise ConfigurationError("Unknown keys in section `{}`: {}"
                                 .format(section, ", ".join(map(str, unknown))))
    try:
        return cls(**mapping)
    except ConfigurationError as exc:
        raise ConfigurationError("Section `{}`: {}".format(section, exc)) from exc


def config_from_dict(document, base_dir=None):
    """Build `AssimilationConfig` from a mapping.

    Parameters
    ----------
    document : mapping
        Parsed configuration document.
    base_dir : str or None, optional
        Directory against which a relative observation file is resolved.
    """
    if not isinstance(document, Mapping):
        raise ConfigurationError("Configuration must be a mapping")
    sections = ('model', 'observation', 'filter', 'logging')
    unknown = sorted(set(document) - set(sections))
    if unknown:
        raise ConfigurationError("Unknown configuration sections: {}"
                                 .format(", ".join(map(str, unknown))))

    filter_section = document.get('filter') or {}
    if not isinstance(filter_section, Mapping):
        raise ConfigurationError("Section `filter` must be a mapping")
    filter_section = dict(filter_section)
    filter_section['iteration'] = _build_section(
        IterationConfig, filter_section.get('iteration'), 'filter.iteration')

    observation = _build_section(ObservationConfig, document.get('observation'),
                                 'observation')
    if (observation.file is not None and base_dir is not None and
            not os.path.isabs(observation.file)):
        observation = replace(observation,
                              file=os.path.join(base_dir, observation.file))

    return AssimilationConfig(
        model=_build_section(ModelConfig, document.get('model'), 'model'),
        observation=observation,
        filter=_build_section(FilterConfig, filter_section, 'filter'),
        logging=_build_section(LoggingConfig, document.get('logging'), 'logging'))


def load_config(path):
    """Load configuration from a YAML file."""
    path = os.fspath(path)
    try:
        with open(path) as stream:
            document = yaml.safe_load(stream)
    except OSError as exc:
        raise ConfigurationError("Unable to read configuration file \"{}\": {}"
                                 .format(path, exc.strerror or exc)) from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError("Malformed configuration file \"{}\": {}"
                                 .format(path, exc)) from exc
    if document is None:
        document = {}
    return config_from_dict(document, os.path.dirname(os.path.abspath(path)))


def coerce_config(config):
    """Turn None, a path, a mapping or `AssimilationConfig` into the latter."""
    if config is None:
        return AssimilationConfig()
    if isinstance(config, AssimilationConfig):
        return config
    if isinstance(config, (str, os.PathLike)):
        return load_config(config)
    if isinstance(config, Mapping):
        return config_from_dict(config)
    raise ConfigurationError("Unsupported configuration of type {}"
                             .format(type(config).__name__))


