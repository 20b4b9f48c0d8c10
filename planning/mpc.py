"""
MPC Solve Orchestrator

Builds the nonlinear program for one control cycle (initial guess, variable
bounds, constraint bounds), solves it with IPOPT through casadi.nlpsol and
extracts the actuation command plus the predicted trajectory.

The solver is built once per MPCSolver with the path coefficients as NLP
parameters. Each call is otherwise independent: the current state and path
fit are passed in, nothing else is carried over between cycles.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import casadi as ca
import numpy as np

from world.reference_path import ReferencePath
from .evaluator import TrajectoryEvaluator
from .layout import STATE_CHANNELS, VariableLayout
from .params import MPCParams

logger = logging.getLogger(__name__)

IPOPT_SUCCESS = "Solve_Succeeded"


class SolveFailedError(RuntimeError):
    """Raised when a command is requested from an unsuccessful solve."""

    def __init__(self, status: str):
        super().__init__(f"MPC solve failed with status '{status}'.")
        self.status = status


@dataclass(frozen=True)
class VehicleState:
    """Current vehicle state used as the initial condition of a solve."""
    x: float
    y: float
    psi: float      # heading [rad]
    v: float        # speed
    cte: float      # cross-track error
    epsi: float     # heading error [rad]

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.psi, self.v, self.cte, self.epsi], dtype=float)

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "VehicleState":
        values = np.asarray(values, dtype=float).flatten()
        if values.size != len(STATE_CHANNELS):
            raise ValueError(
                f"State must have {len(STATE_CHANNELS)} entries {STATE_CHANNELS}, got {values.size}."
            )
        if not np.all(np.isfinite(values)):
            raise ValueError("State entries must be finite.")
        return cls(*(float(v) for v in values))


@dataclass
class ProblemData:
    """Numeric data handed to the NLP solver for one cycle."""
    layout: VariableLayout
    x0: np.ndarray      # initial guess [n_vars]
    lbx: np.ndarray     # variable lower bounds [n_vars]
    ubx: np.ndarray     # variable upper bounds [n_vars]
    lbg: np.ndarray     # constraint lower bounds [n_constraints]
    ubg: np.ndarray     # constraint upper bounds [n_constraints]


@dataclass
class MPCResult:
    """Container for one MPC solve."""
    success: bool
    status: str                 # IPOPT return status
    cost: float
    vars: np.ndarray            # full decision vector (optimum or last iterate)
    steering: float             # delta at step 0 [rad], within actuator limits
    acceleration: float         # a at step 0, within actuator limits
    x_pred: np.ndarray          # predicted x positions [n_predicted_points]
    y_pred: np.ndarray          # predicted y positions [n_predicted_points]
    latency_state: Dict[str, float] = field(default_factory=dict)
    iterations: int = -1
    solve_time: float = 0.0     # wall clock time [s]

    def trajectory(self) -> List[Tuple[float, float]]:
        """Predicted (x, y) points for display."""
        return [(float(x), float(y)) for x, y in zip(self.x_pred, self.y_pred)]

    def command(self) -> Tuple[float, float]:
        """
        Actuation to apply this cycle.

        Returns:
            Tuple: (steering, acceleration)

        Raises:
            SolveFailedError: if the solver did not report success
        """
        if not self.success:
            raise SolveFailedError(self.status)
        return self.steering, self.acceleration


class MPCSolver:
    """
    Kinematic MPC for path tracking.

    Uses the flat variable layout from planning.layout and IPOPT as the NLP
    solver; derivatives come from casadi's SX graph. The NLP is built once,
    with the path coefficients as its parameter vector, so a solve call only
    runs IPOPT.
    """

    def __init__(self, params: Optional[MPCParams] = None):
        """
        Args:
            params: MPC tuning parameters (defaults to MPCParams())
        """
        self.params = params or MPCParams()
        self.layout = VariableLayout(self.params.N)

        coeffs_sym = ca.SX.sym("coeffs", self.params.max_path_coeffs)
        vars_sym = ca.SX.sym("vars", self.layout.n_vars)
        evaluator = TrajectoryEvaluator(ReferencePath(coeffs_sym), self.params, self.layout)
        cost_expr, g_expr = evaluator(vars_sym)
        nlp = {'x': vars_sym, 'p': coeffs_sym, 'f': cost_expr, 'g': g_expr}

        t_start = time.time()
        self._solver = ca.nlpsol("solver", "ipopt", nlp, self.solver_options())
        logger.debug(
            "MPC solver built: N=%d vars=%d constraints=%d in %.3fs",
            self.params.N, self.layout.n_vars, self.layout.n_constraints, time.time() - t_start,
        )

    def solver_options(self) -> Dict:
        """IPOPT options; the wall time limit bounds the latency of a cycle."""
        p = self.params
        return {
            'ipopt.print_level': p.print_level,
            'ipopt.sb': 'yes',
            'ipopt.max_wall_time': p.max_wall_time_s,
            'ipopt.max_iter': p.max_iter,
            'ipopt.tol': p.tol,
            'print_time': p.print_level > 0,
            'error_on_fail': False,
        }

    def path_parameters(self, path: ReferencePath) -> np.ndarray:
        """
        Path coefficients zero-padded to the size the solver was built for.

        Zero high-order terms leave f, f' and f'' unchanged, so a lower
        degree path is solved exactly as given.

        Raises:
            ValueError: if the path has more coefficients than max_path_coeffs
        """
        n = self.params.max_path_coeffs
        if len(path) > n:
            raise ValueError(
                f"Reference path has {len(path)} coefficients, solver supports at most {n}."
            )
        padded = np.zeros(n)
        padded[:len(path)] = path.coeffs
        return padded

    def build_problem(self, state: Union[VehicleState, Sequence[float]]) -> ProblemData:
        """
        Initial guess and bounds for the current state.

        Args:
            state: current vehicle state

        Returns:
            ProblemData
        """
        if not isinstance(state, VehicleState):
            state = VehicleState.from_sequence(state)
        p = self.params
        lay = self.layout
        state_values = state.as_array()

        # Initial guess: zeros except the current state at step 0
        x0 = np.zeros(lay.n_vars)
        for ch, value in zip(STATE_CHANNELS, state_values):
            x0[lay.start(ch)] = value

        # Variable bounds
        lbx = np.empty(lay.n_vars)
        ubx = np.empty(lay.n_vars)
        lbx[:lay.delta_start] = -p.unbounded
        ubx[:lay.delta_start] = p.unbounded
        lbx[lay.block('delta')] = -p.max_steer_rad
        ubx[lay.block('delta')] = p.max_steer_rad
        lbx[lay.block('a')] = -p.max_accel
        ubx[lay.block('a')] = p.max_accel

        # Constraint bounds: dynamics residuals are equalities at zero,
        # initial-state entries are pinned to the current state.
        lbg = np.zeros(lay.n_constraints)
        ubg = np.zeros(lay.n_constraints)
        for ch, value in zip(STATE_CHANNELS, state_values):
            lbg[lay.start(ch)] = value
            ubg[lay.start(ch)] = value

        return ProblemData(layout=lay, x0=x0, lbx=lbx, ubx=ubx, lbg=lbg, ubg=ubg)

    def solve(
        self,
        state: Union[VehicleState, Sequence[float]],
        coeffs: Union[ReferencePath, Sequence[float]],
    ) -> MPCResult:
        """
        Solve one MPC cycle.

        Args:
            state: current vehicle state (x, y, psi, v, cte, epsi)
            coeffs: reference path coefficients (ascending powers, >= 2) or a ReferencePath

        Returns:
            MPCResult; check `success` (or use `command()`) before applying it

        Raises:
            ValueError: malformed state or path input
        """
        t_start = time.time()

        path = coeffs if isinstance(coeffs, ReferencePath) else ReferencePath(coeffs)
        path_params = self.path_parameters(path)
        problem = self.build_problem(state)

        try:
            sol = self._solver(
                x0=problem.x0,
                p=path_params,
                lbx=problem.lbx,
                ubx=problem.ubx,
                lbg=problem.lbg,
                ubg=problem.ubg,
            )
            stats = self._solver.stats()
            status = str(stats.get('return_status', 'Unknown'))
            success = status == IPOPT_SUCCESS
            iterations = int(stats.get('iter_count', -1))
            vars_opt = np.array(sol['x'], dtype=float).flatten()
            cost = float(sol['f'])
        except RuntimeError as err:
            logger.warning("MPC solver raised: %s", err)
            status = "Exception"
            success = False
            iterations = -1
            vars_opt = problem.x0.copy()
            cost = float('inf')

        solve_time = time.time() - t_start

        if success:
            logger.debug(
                "MPC solve ok: cost=%.4f iterations=%d time=%.3fs", cost, iterations, solve_time
            )
        else:
            logger.warning(
                "MPC solve failed: status=%s iterations=%d time=%.3fs", status, iterations, solve_time
            )

        return self._extract(vars_opt, success, status, cost, iterations, solve_time)

    def _extract(self, vars_opt, success, status, cost, iterations, solve_time) -> MPCResult:
        p = self.params
        lay = self.layout
        n_pred = p.n_predicted_points
        k = p.latency_steps

        steering = float(np.clip(vars_opt[lay.delta_start], -p.max_steer_rad, p.max_steer_rad))
        acceleration = float(np.clip(vars_opt[lay.a_start], -p.max_accel, p.max_accel))

        # State a few steps ahead, to cover actuation delay downstream
        latency_state = {
            ch: float(vars_opt[lay.start(ch) + k]) for ch in ('psi', 'v', 'cte', 'epsi')
        }

        return MPCResult(
            success=success,
            status=status,
            cost=cost,
            vars=vars_opt,
            steering=steering,
            acceleration=acceleration,
            x_pred=vars_opt[lay.x_start:lay.x_start + n_pred].copy(),
            y_pred=vars_opt[lay.y_start:lay.y_start + n_pred].copy(),
            latency_state=latency_state,
            iterations=iterations,
            solve_time=solve_time,
        )
