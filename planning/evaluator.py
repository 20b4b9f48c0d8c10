"""
Trajectory cost and constraint evaluator for the MPC tracking controller.

Maps a flat decision-variable vector (see planning.layout) to a scalar cost
and a vector of constraint values. Written entirely in casadi operations so
IPOPT gets exact gradients, Jacobians and Hessians.

Cost (summed over the horizon):
    w_cte * cte^2 + w_epsi * epsi^2 + w_v * v_err^2        (N steps)
    w_delta * delta^2 + w_a * a^2                          (N-1 steps)
    w_delta_rate * d_delta^2 + w_a_rate * d_a^2            (N-2 steps)

v_err follows the curvature-aware speed policy: chase ref_v while the path
ahead is straight enough, otherwise drive the speed towards zero.

Constraints:
    g[start(ch)]         = ch[0]                                  (initial state)
    g[start(ch) + i + 1] = ch[i+1] - model(step i)[ch]            (dynamics)

The curvature sentinel, the speed policy and the heading-error wrap are
non-smooth by construction; they are kept as casadi.if_else so they are
re-evaluated at every iterate.
"""

from typing import Dict, Tuple

import casadi as ca

from models.kinematic import KinematicBicycleModel, KinematicBicycleParams
from world.reference_path import ReferencePath, is_symbolic
from .layout import STATE_CHANNELS, VariableLayout
from .params import MPCParams


class TrajectoryEvaluator:
    """
    Cost/constraint functor over a fixed reference path.

    The path may hold numeric coefficients or a casadi symbol vector; the
    solver builds one evaluator over symbolic coefficients and reuses it.
    """

    def __init__(self, path: ReferencePath, params: MPCParams, layout: VariableLayout = None):
        """
        Args:
            path: reference path in the vehicle frame
            params: MPC tuning parameters
            layout: variable layout (defaults to VariableLayout(params.N))
        """
        self.path = path
        self.params = params
        self.layout = layout or VariableLayout(params.N)
        if self.layout.N != params.N:
            raise ValueError(f"Layout horizon {self.layout.N} does not match params.N={params.N}.")
        self.model = KinematicBicycleModel(KinematicBicycleParams(lf_m=params.lf_m))

    def _speed_error(self, v, sharpness):
        p = self.params
        if not is_symbolic(sharpness):
            return v - p.ref_v if p.speed_sharpness_gain * abs(sharpness) < p.ref_v else v
        chase_target = p.speed_sharpness_gain * ca.fabs(sharpness) < p.ref_v
        return ca.if_else(chase_target, v - p.ref_v, v)

    def cost_terms(self, vars) -> Dict[str, object]:
        """
        Individual cost contributions, keyed by term name.

        Returns:
            dict with keys cte, epsi, speed, delta, a, delta_rate, a_rate
        """
        p = self.params
        lay = self.layout
        N = lay.N

        terms = {name: 0 for name in ('cte', 'epsi', 'speed', 'delta', 'a', 'delta_rate', 'a_rate')}

        # Reference state cost
        for i in range(N):
            d = self.path.sharpness(vars[lay.x_start + i], p.curvature_sentinel)
            v_err = self._speed_error(vars[lay.v_start + i], d)

            terms['epsi'] += p.w_epsi * vars[lay.epsi_start + i]**2
            terms['cte'] += p.w_cte * vars[lay.cte_start + i]**2
            terms['speed'] += p.w_v * v_err**2

        # Actuator magnitudes
        for i in range(N - 1):
            terms['delta'] += p.w_delta * vars[lay.delta_start + i]**2
            terms['a'] += p.w_a * vars[lay.a_start + i]**2

        # Actuator rates
        for i in range(N - 2):
            d_delta = vars[lay.delta_start + i + 1] - vars[lay.delta_start + i]
            d_a = vars[lay.a_start + i + 1] - vars[lay.a_start + i]
            terms['delta_rate'] += p.w_delta_rate * d_delta**2
            terms['a_rate'] += p.w_a_rate * d_a**2

        return terms

    def cost(self, vars):
        total = 0
        for value in self.cost_terms(vars).values():
            total += value
        return total

    def constraints(self, vars) -> list:
        """
        Constraint values in layout order (length 6N).
        """
        lay = self.layout
        dt = self.params.dt
        g = [0] * lay.n_constraints

        # Initial state
        for ch in STATE_CHANNELS:
            g[lay.start(ch)] = vars[lay.start(ch)]

        # Dynamics residuals between adjacent steps
        for i in range(lay.N - 1):
            x0 = vars[lay.x_start + i]
            y0 = vars[lay.y_start + i]
            psi0 = vars[lay.psi_start + i]
            v0 = vars[lay.v_start + i]
            delta0 = vars[lay.delta_start + i]
            a0 = vars[lay.a_start + i]

            predicted = self.model.full_step(x0, y0, psi0, v0, delta0, a0, dt, self.path)
            for ch, pred in zip(STATE_CHANNELS, predicted):
                start = lay.start(ch)
                g[start + i + 1] = vars[start + i + 1] - pred

        return g

    def __call__(self, vars) -> Tuple[object, object]:
        """
        Evaluate cost and constraints.

        Args:
            vars: flat decision vector (casadi SX/MX/DM of length n_vars)

        Returns:
            Tuple: (cost, g) with g a column vector of length n_constraints
        """
        return self.cost(vars), ca.vertcat(*self.constraints(vars))

    def function(self) -> ca.Function:
        """Numeric casadi Function fg(vars) -> (f, g)."""
        vars_sym = ca.SX.sym("vars", self.layout.n_vars)
        f, g = self(vars_sym)
        return ca.Function("fg", [vars_sym], [f, g], ["vars"], ["f", "g"])
