import numpy as np
from numpy.testing import assert_allclose, assert_equal
import pytest
from seqassim.config import ModelConfig, ObservationConfig
from seqassim.errors import ConfigurationError
from seqassim.models import CallableModel, ClampedBar, build_model
from seqassim.observation import (CallableObservationManager,
                                  LinearObservationManager,
                                  build_observation_manager, simulate_observations)
from seqassim.storage import SymmetricMatrix, SymmetricPackedMatrix


def test_clamped_bar_initial_state():
    model = ClampedBar(ModelConfig(n_elements=4, bar_length=2.0,
                                   initial_displacement=0.2,
                                   state_error_variance=0.5))
    model.initialize()
    assert model.n_states == 8
    assert model.get_step() == 0
    assert not model.has_finished()
    assert_allclose(model.get_displacement(), [0.05, 0.1, 0.15, 0.2])
    assert_equal(model.get_state()[4:], 0)

    P = model.get_state_error_variance()
    assert isinstance(P, SymmetricMatrix)
    assert_allclose(P.to_array(), 0.5 * np.identity(8))
    assert_equal(model.get_process_error_variance(), np.zeros((8, 8)))


def test_clamped_bar_propagator():
    model = ClampedBar(ModelConfig(n_elements=6, delta_t=0.05))
    model.initialize()
    F = model.get_tangent_linear_operator()
    # Trapezoidal integration of an undamped system conserves energy.
    assert_allclose(np.abs(np.linalg.eigvals(F)), 1, rtol=1e-10)

    X = model.get_state().copy()
    model.forward()
    assert model.get_step() == 1
    assert_allclose(model.get_time(), 0.05)
    assert_allclose(model.get_state(), F @ X)


def test_clamped_bar_static_solution():
    L, E, f = 1.5, 2.0, 0.3
    model = ClampedBar(ModelConfig(n_elements=5, bar_length=L, young_modulus=E,
                                   force=f))
    model.initialize()
    n = model.n_states
    X = np.linalg.solve(np.identity(n) - model.propagator, model.forcing)
    x = model.positions
    # Linear elements are exact at the nodes for a uniform load.
    assert_allclose(X[:n // 2], f / E * (L * x - 0.5 * x ** 2), rtol=1e-10)
    assert_allclose(X[n // 2:], 0, atol=1e-12)


def test_clamped_bar_horizon():
    model = ClampedBar(ModelConfig(delta_t=0.1, final_time=0.5,
                                   covariance_storage='symmetric_packed'))
    model.initialize()
    assert isinstance(model.get_state_error_variance(), SymmetricPackedMatrix)
    n_steps = 0
    while not model.has_finished():
        model.forward()
        n_steps += 1
    assert n_steps == 5
    model.finalize()
    assert model.get_state_error_variance().shape == (0, 0)


def test_build_model():
    assert isinstance(build_model(ModelConfig()), ClampedBar)
    with pytest.raises(ConfigurationError):
        build_model(ModelConfig(type='lorenz'))


def test_callable_model():
    calls = []

    def f(k, X, W=None, with_jacobian=True):
        calls.append(k)
        F = np.array([[1.0, 0.1], [0.0, 1.0]])
        G = np.array([[0.0], [1.0]])
        return F @ X, F, G

    model = CallableModel([1.0, 2.0], np.identity(2), f, [[0.5]], 3,
                          storage='symmetric_packed')
    model.initialize()
    assert isinstance(model.get_state_error_variance(), SymmetricPackedMatrix)
    assert_allclose(model.get_process_error_variance(), [[0, 0], [0, 0.5]])
    assert_allclose(model.get_tangent_linear_operator(), [[1, 0.1], [0, 1]])
    model.forward()
    assert calls == [0]
    assert_allclose(model.get_state(), [1.2, 2.0])
    assert not model.has_finished()
    model.forward()
    assert calls == [0, 1]
    assert model.has_finished()

    with pytest.raises(ValueError):
        CallableModel([1.0, 2.0], np.identity(3), f, [[0.5]], 3)
    with pytest.raises(ValueError):
        CallableModel([1.0, 2.0], np.identity(2), f, [[0.5]], 0)


def test_simulate_observations():
    model = ClampedBar(ModelConfig(n_elements=3, delta_t=0.1, final_time=1.0))
    model.initialize()
    X0 = model.get_state().copy()
    H = np.identity(6)[::3]

    steps, Y, Xt = simulate_observations(model, H, period=4, add_noise=False)
    assert_equal(steps, [0, 4, 8])
    assert Xt.shape == (11, 6)
    assert_allclose(Xt[0], X0)
    assert_allclose(Y, Xt[steps] @ H.T)
    assert model.get_step() == 0
    assert_equal(model.get_state(), X0)

    _, Y1, Xt1 = simulate_observations(model, H, 4, 1e-2, 0.1, rng=0)
    _, Y2, Xt2 = simulate_observations(model, H, 4, 1e-2, 0.1, rng=0)
    assert_equal(Y1, Y2)
    assert np.all(Xt1[0] != X0)


def test_linear_observation_manager():
    model = ClampedBar(ModelConfig(n_elements=4, delta_t=0.1, final_time=1.0))
    model.initialize()
    manager = LinearObservationManager(
        ObservationConfig(stride=3, period=5, error_variance=0.04, add_noise=False))
    manager.initialize(model)

    assert manager.H.shape == (3, 8)
    assert_equal(manager.H @ np.arange(8), [0, 3, 6])
    assert_allclose(manager.get_error_variance(0), 0.04 * np.identity(3))
    assert [manager.has_observation(k) for k in range(11)] == \
        [k % 5 == 0 for k in range(11)]

    X = model.get_state()
    assert_allclose(manager.get_innovation(X, 0), np.zeros(3))
    assert manager.get_tangent_linear_operator(X, 5) is manager.H
    assert manager.truth.shape == (11, 8)

    assert isinstance(build_observation_manager(ObservationConfig()),
                      LinearObservationManager)
    with pytest.raises(ConfigurationError):
        build_observation_manager(ObservationConfig(type='radar'))


def test_callable_observation_manager():
    def h1(k, X, with_jacobian=True):
        H = np.array([[1.0, 0.0]])
        return (H @ X, H) if with_jacobian else H @ X

    def h2(k, X, with_jacobian=True):
        Z = np.array([X[0] * X[1]])
        return (Z, np.array([[X[1], X[0]]])) if with_jacobian else Z

    manager = CallableObservationManager([
        ([0, 2, 4], [[1.0], [2.0], [3.0]], h1, [[0.1]]),
        ([2, 3], [[4.0], [5.0]], h2, [[[0.2]], [[0.3]]]),
    ])
    assert [manager.has_observation(k) for k in range(6)] == \
        [True, False, True, True, True, False]

    X = np.array([1.0, 2.0])
    assert_allclose(manager.get_innovation(X, 2), [1.0, 2.0])
    assert_allclose(manager.get_tangent_linear_operator(X, 2), [[1, 0], [2, 1]])
    assert_allclose(manager.get_error_variance(2), np.diag([0.1, 0.2]))
    assert_allclose(manager.get_error_variance(3), [[0.3]])
    assert_allclose(manager.get_innovation(X, 3), [3.0])

    with pytest.raises(ValueError):
        CallableObservationManager([([1, 1], [[1.0], [2.0]], h1, [[0.1]])])
