"""
Tests for the MPC solve orchestrator.
"""

import time

import numpy as np
import pytest

from planning import MPCParams, MPCResult, MPCSolver, SolveFailedError, VehicleState
from world import ReferencePath


@pytest.fixture(scope="module")
def solver():
    # Generous time limit so correctness tests do not depend on machine speed
    return MPCSolver(MPCParams(max_wall_time_s=5.0))


def v_block(solver, result):
    return result.vars[solver.layout.block('v')]


def test_build_problem_initial_guess_and_bounds(solver):
    lay = solver.layout
    state = VehicleState(1.0, 2.0, 0.1, 15.0, -0.3, 0.05)
    problem = solver.build_problem(state)

    expected_x0 = np.zeros(lay.n_vars)
    for ch, value in zip(('x', 'y', 'psi', 'v', 'cte', 'epsi'), state.as_array()):
        expected_x0[lay.start(ch)] = value
    np.testing.assert_array_equal(problem.x0, expected_x0)

    assert np.all(problem.lbx[:lay.delta_start] == -1.0e19)
    assert np.all(problem.ubx[:lay.delta_start] == 1.0e19)
    assert np.all(problem.lbx[lay.block('delta')] == -0.436332)
    assert np.all(problem.ubx[lay.block('delta')] == 0.436332)
    assert np.all(problem.lbx[lay.block('a')] == -100.0)
    assert np.all(problem.ubx[lay.block('a')] == 100.0)

    pinned = [lay.start(ch) for ch in ('x', 'y', 'psi', 'v', 'cte', 'epsi')]
    np.testing.assert_array_equal(problem.lbg[pinned], state.as_array())
    np.testing.assert_array_equal(problem.ubg[pinned], state.as_array())
    free = np.setdiff1d(np.arange(lay.n_constraints), pinned)
    assert np.all(problem.lbg[free] == 0.0)
    assert np.all(problem.ubg[free] == 0.0)


def test_state_from_sequence_validation():
    assert VehicleState.from_sequence([0, 1, 2, 3, 4, 5]).epsi == 5.0
    with pytest.raises(ValueError):
        VehicleState.from_sequence([0.0, 1.0, 2.0])
    with pytest.raises(ValueError):
        VehicleState.from_sequence([0.0, 1.0, 2.0, np.inf, 0.0, 0.0])


@pytest.mark.parametrize("coeffs", [[], [0.5]])
def test_malformed_path_rejected(solver, coeffs):
    with pytest.raises(ValueError):
        solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], coeffs)


def test_flat_path_end_to_end(solver):
    result = solver.solve(VehicleState(0.0, 0.0, 0.0, 10.0, 0.0, 0.0), [0.0, 0.0])

    assert isinstance(result, MPCResult)
    assert result.success
    assert result.status == "Solve_Succeeded"
    steering, acceleration = result.command()
    assert steering == pytest.approx(0.0, abs=1e-4)
    assert acceleration > 0.0
    assert np.all(np.diff(result.x_pred) > 0.0)
    np.testing.assert_allclose(result.y_pred, 0.0, atol=1e-4)


def test_result_extraction(solver):
    p = solver.params
    lay = solver.layout
    result = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], ReferencePath([0.0, 0.0]))

    assert len(result.x_pred) == p.n_predicted_points
    assert len(result.trajectory()) == p.n_predicted_points
    assert result.trajectory()[0] == pytest.approx((0.0, 0.0), abs=1e-9)
    assert result.vars.shape == (lay.n_vars,)
    for ch in ('psi', 'v', 'cte', 'epsi'):
        assert result.latency_state[ch] == result.vars[lay.start(ch) + p.latency_steps]
    assert result.iterations > 0
    assert np.isfinite(result.cost)


def test_initial_state_is_pinned(solver):
    state = [2.0, -1.0, 0.05, 20.0, -1.0, 0.05]
    result = solver.solve(state, [-2.0, 0.0])
    lay = solver.layout
    for ch, value in zip(('x', 'y', 'psi', 'v', 'cte', 'epsi'), state):
        assert result.vars[lay.start(ch)] == pytest.approx(value, abs=1e-6)


def test_steady_state_on_straight_path(solver):
    result = solver.solve([0.0, 0.0, 0.0, 60.0, 0.0, 0.0], [0.0, 0.0])
    assert result.success
    np.testing.assert_allclose(v_block(solver, result), 60.0, atol=1e-3)
    np.testing.assert_allclose(result.vars[solver.layout.block('delta')], 0.0, atol=1e-4)
    assert result.cost == pytest.approx(0.0, abs=1e-3)


def test_speed_converges_towards_target(solver):
    result = solver.solve([0.0, 0.0, 0.0, 50.0, 0.0, 0.0], [0.0, 0.0])
    assert result.success
    v = v_block(solver, result)
    assert v[-1] > 50.0
    assert abs(v[-1] - 60.0) < abs(50.0 - 60.0)


@pytest.mark.parametrize("state, coeffs", [
    ([0.0, 0.0, 0.0, 20.0, 5.0, 0.5], [5.0, 0.8, 0.05]),
    ([0.0, 0.0, 0.0, 30.0, -8.0, -0.6], [-8.0, -1.0, -0.1, 0.01]),
    ([0.0, 0.0, 0.0, 5.0, 0.0, 0.0], [0.0, 0.0, 2.0]),
    ([0.0, 0.0, 0.0, 80.0, 0.0, 0.0], [0.0, 0.0]),
])
def test_commands_within_actuator_limits(solver, state, coeffs):
    p = solver.params
    lay = solver.layout
    result = solver.solve(state, coeffs)

    assert -p.max_steer_rad <= result.steering <= p.max_steer_rad
    assert -p.max_accel <= result.acceleration <= p.max_accel
    assert np.all(np.abs(result.vars[lay.block('delta')]) <= p.max_steer_rad + 1e-6)
    assert np.all(np.abs(result.vars[lay.block('a')]) <= p.max_accel + 1e-6)


def test_failed_solve_is_surfaced():
    solver = MPCSolver(MPCParams(max_iter=0))
    result = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.0])

    assert not result.success
    assert result.status != "Solve_Succeeded"
    with pytest.raises(SolveFailedError) as excinfo:
        result.command()
    assert excinfo.value.status == result.status


def test_solve_returns_within_time_limit():
    params = MPCParams()
    solver = MPCSolver(params)
    t_start = time.perf_counter()
    solver.solve([0.0, 0.0, 0.0, 10.0, 1.0, 0.1], [1.0, 0.1, -0.01, 0.0005])
    elapsed = time.perf_counter() - t_start
    assert elapsed < params.max_wall_time_s + 0.05


def test_long_horizon_solve_excludes_solver_construction():
    # Building the NLP at this size takes longer than the per-cycle margin
    params = MPCParams(N=100)
    solver = MPCSolver(params)
    t_start = time.perf_counter()
    result = solver.solve([0.0, 0.0, 0.0, 10.0, 1.0, 0.1], [1.0, 0.1, -0.01, 0.0005])
    elapsed = time.perf_counter() - t_start
    assert elapsed < params.max_wall_time_s + 0.05
    assert result.solve_time <= elapsed


def test_solve_stops_at_wall_time_limit():
    params = MPCParams(N=300, max_wall_time_s=0.02)
    solver = MPCSolver(params)
    t_start = time.perf_counter()
    result = solver.solve([0.0, 0.0, 0.3, 40.0, 3.0, 0.3], [1.0, 0.1, -0.01, 0.0005])
    elapsed = time.perf_counter() - t_start

    assert not result.success
    assert result.status == "Maximum_WallTime_Exceeded"
    assert elapsed <= params.max_wall_time_s + 0.05
    with pytest.raises(SolveFailedError):
        result.command()


def test_lower_degree_path_is_zero_padded(solver):
    padded = solver.path_parameters(ReferencePath([1.0, 0.5]))
    np.testing.assert_array_equal(padded, [1.0, 0.5, 0.0, 0.0])

    short = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.0])
    full = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(full.vars, short.vars)


def test_path_beyond_solver_degree_rejected(solver):
    with pytest.raises(ValueError):
        solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.1, 0.01, 0.001, 0.0001])


def test_solves_are_independent(solver):
    first = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.0])
    solver.solve([0.0, 0.0, 0.3, 25.0, 1.5, -0.2], [1.5, 0.2, 0.01])
    again = solver.solve([0.0, 0.0, 0.0, 10.0, 0.0, 0.0], [0.0, 0.0])
    np.testing.assert_allclose(again.vars, first.vars)
