"""
Kinematic Bicycle Model

Discrete-time kinematic bicycle model used by the MPC tracking controller.

State:   [x, y, psi, v] plus path tracking errors [cte, epsi]
Control: [delta, a]

Update equations (forward Euler over one step dt):
    x'    = x + v * cos(psi) * dt
    y'    = y + v * sin(psi) * dt
    psi'  = psi + v / Lf * delta * dt
    v'    = v + a * dt
    cte'  = (f(x) - y) + v * sin(epsi_des) * dt
    epsi' = epsi_des + v / Lf * delta * dt

where f is the reference path polynomial and epsi_des = psi - atan(f'(x)),
wrapped once into [-pi, pi].

All arithmetic goes through casadi so the same functions are used with
floats (closed-loop simulation) and with SX/MX symbols (optimizer).
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Union

import numpy as np
from yaml import safe_load

import casadi as ca

if TYPE_CHECKING:
    from world.reference_path import ReferencePath


# CG to front axle [m], calibrated against the turning radius measured at
# constant steering angle and speed.
LF_M = 2.67


def wrap_heading_error(d_psi):
    """
    Bring a heading error back into [-pi, pi] with a single +/- 2*pi step.

    This is not a full modulo: an input beyond 3*pi in magnitude stays
    outside the interval after wrapping.
    """
    if not isinstance(d_psi, (ca.SX, ca.MX, ca.DM)):
        if d_psi < -np.pi:
            return d_psi + 2.0 * np.pi
        if d_psi > np.pi:
            return d_psi - 2.0 * np.pi
        return d_psi
    return ca.if_else(
        d_psi < -np.pi,
        d_psi + 2.0 * np.pi,
        ca.if_else(d_psi > np.pi, d_psi - 2.0 * np.pi, d_psi),
    )


@dataclass(frozen=True)
class KinematicBicycleParams:
    """Kinematic bicycle parameters - immutable dataclass."""

    lf_m: float = LF_M

    @staticmethod
    def load_from_yaml(yaml_file: Union[str, Path]) -> KinematicBicycleParams:
        """
        Load model parameters from the `vehicle` section of a YAML file.

        Args:
            yaml_file: Path to YAML config file

        Returns:
            KinematicBicycleParams instance
        """
        with open(yaml_file, "r") as stream:
            data = safe_load(stream) or {}
        veh_dict = data.get("vehicle") or {}

        valid_fields = {f.name for f in KinematicBicycleParams.__dataclass_fields__.values()}
        filtered_dict = {k: v for k, v in veh_dict.items() if k in valid_fields}

        return KinematicBicycleParams(**filtered_dict)


class KinematicBicycleModel:
    """
    Kinematic bicycle model in casadi.

    States (6):   [x, y, psi, v, cte, epsi]
    Controls (2): [delta, a]
    """

    def __init__(self, params: KinematicBicycleParams = None):
        self.params = params or KinematicBicycleParams()
        if self.params.lf_m <= 0:
            raise ValueError("lf_m must be positive.")

    def yaw_rate(self, v, delta):
        """Heading rate produced by steering angle delta at speed v."""
        return v / self.params.lf_m * delta

    def step(self, x, y, psi, v, delta, a, dt: float):
        """
        Propagate the pose and speed over one time step.

        Args:
            x, y: position [m]
            psi: heading [rad]
            v: speed [m/s]
            delta: steering angle [rad]
            a: acceleration [m/s^2]
            dt: step duration [s]

        Returns:
            Tuple: (x_next, y_next, psi_next, v_next)
        """
        x_next = x + v * ca.cos(psi) * dt
        y_next = y + v * ca.sin(psi) * dt
        psi_next = psi + self.yaw_rate(v, delta) * dt
        v_next = v + a * dt
        return x_next, y_next, psi_next, v_next

    def tracking_errors(self, x, y, psi, v, delta, dt: float, path: ReferencePath):
        """
        Predict cross-track and heading error after one time step.

        The heading error is measured against the path tangent at x and
        wrapped once before being propagated.

        Returns:
            Tuple: (cte_next, epsi_next)
        """
        d_psi = wrap_heading_error(psi - path.desired_heading(x))
        cte_next = (path.evaluate(x) - y) + v * ca.sin(d_psi) * dt
        epsi_next = d_psi + self.yaw_rate(v, delta) * dt
        return cte_next, epsi_next

    def full_step(self, x, y, psi, v, delta, a, dt: float, path: ReferencePath):
        """
        Propagate all six states over one time step.

        Returns:
            Tuple: (x, y, psi, v, cte, epsi) at the next step
        """
        x_next, y_next, psi_next, v_next = self.step(x, y, psi, v, delta, a, dt)
        cte_next, epsi_next = self.tracking_errors(x, y, psi, v, delta, dt, path)
        return x_next, y_next, psi_next, v_next, cte_next, epsi_next

    def __repr__(self) -> str:
        return f"KinematicBicycleModel(lf_m={self.params.lf_m})"
