"""
Tuning parameters for the MPC tracking controller.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Union

from yaml import safe_load

from models.kinematic import LF_M
from world.reference_path import FLAT_CURVATURE_RADIUS_M


DEFAULT_CONFIG = Path(__file__).parent / "config" / "mpc_params.yaml"


@dataclass(frozen=True)
class MPCParams:
    # Horizon
    N: int = 25                 # number of steps
    dt: float = 0.05            # step duration [s]

    # Vehicle / speed policy
    ref_v: float = 60.0         # target speed on straight path
    lf_m: float = LF_M          # CG to front axle [m]
    curvature_sentinel: float = FLAT_CURVATURE_RADIUS_M
    speed_sharpness_gain: float = 10.0

    # Cost weights
    w_cte: float = 1.0
    w_epsi: float = 1.0
    w_v: float = 0.1
    w_delta: float = 1.0
    w_a: float = 0.0            # acceleration magnitude, disabled
    w_delta_rate: float = 500.0
    w_a_rate: float = 1.0

    # Bounds
    max_steer_rad: float = 0.436332     # 25 deg
    max_accel: float = 100.0
    unbounded: float = 1.0e19

    # Solver settings
    max_path_coeffs: int = 4    # path polynomial size the solver is built for (cubic)
    max_wall_time_s: float = 0.5
    max_iter: int = 3000
    tol: float = 1e-8
    print_level: int = 0

    # Output
    n_predicted_points: int = 10
    latency_steps: int = 2

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError if any parameter is out of range."""
        if self.N < 2:
            raise ValueError(f"N must be at least 2, got {self.N}.")
        if self.dt <= 0:
            raise ValueError(f"dt must be positive, got {self.dt}.")
        if self.lf_m <= 0:
            raise ValueError(f"lf_m must be positive, got {self.lf_m}.")
        for name in ("w_cte", "w_epsi", "w_v", "w_delta", "w_a", "w_delta_rate", "w_a_rate"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}.")
        for name in ("max_steer_rad", "max_accel", "unbounded", "max_wall_time_s",
                     "curvature_sentinel", "tol"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}.")
        if self.max_path_coeffs < 2:
            raise ValueError(f"max_path_coeffs must be at least 2, got {self.max_path_coeffs}.")
        if self.max_iter < 0:
            raise ValueError(f"max_iter must be non-negative, got {self.max_iter}.")
        if not 1 <= self.n_predicted_points <= self.N:
            raise ValueError(
                f"n_predicted_points must be in [1, {self.N}], got {self.n_predicted_points}."
            )
        if not 0 <= self.latency_steps < self.N:
            raise ValueError(f"latency_steps must be in [0, {self.N - 1}], got {self.latency_steps}.")

    def replace(self, **changes) -> MPCParams:
        """Copy with some fields changed."""
        return replace(self, **changes)

    @staticmethod
    def load_from_yaml(yaml_file: Union[str, Path] = DEFAULT_CONFIG) -> MPCParams:
        """
        Load MPC parameters from YAML file.

        Reads the `mpc` section; `lf_m` may also be given in the `vehicle`
        section. Unknown keys are ignored.

        Args:
            yaml_file: Path to YAML config file

        Returns:
            MPCParams instance
        """
        with open(yaml_file, "r") as stream:
            data = safe_load(stream) or {}

        merged = dict(data.get("vehicle") or {})
        merged.update(data.get("mpc") or {})

        valid_fields = {f.name for f in fields(MPCParams)}
        filtered_dict = {k: v for k, v in merged.items() if k in valid_fields}

        return MPCParams(**filtered_dict)
