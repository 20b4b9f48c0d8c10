#!/usr/bin/env python3
"""
Closed-loop MPC tracking demo.

Drives the kinematic bicycle model along a fixed polynomial path. Every cycle
the tracking errors are measured against the path, the MPC is solved, and
the resulting command is applied for one time step. On a failed solve the
previous command is held.
"""

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np

# Add project root to path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from models import KinematicBicycleModel, KinematicBicycleParams, wrap_heading_error
from planning import DEFAULT_CONFIG, MPCParams, MPCSolver, SolveFailedError
from world import ReferencePath


@dataclass
class SimulationResult:
    """Closed-loop history, one entry per control cycle."""
    x: np.ndarray
    y: np.ndarray
    psi: np.ndarray
    v: np.ndarray
    cte: np.ndarray
    epsi: np.ndarray
    steering: np.ndarray
    acceleration: np.ndarray
    solve_time: np.ndarray
    failures: int


def simulate(
    solver: MPCSolver,
    path: ReferencePath,
    initial_pose: Sequence[float],
    n_cycles: int,
    verbose: bool = True,
) -> SimulationResult:
    """
    Run the MPC in closed loop on the kinematic model.

    Args:
        solver: configured MPCSolver
        path: reference path, in the same frame as the vehicle pose
        initial_pose: (x, y, psi, v)
        n_cycles: number of control cycles
        verbose: print one line per cycle

    Returns:
        SimulationResult
    """
    p = solver.params
    model = KinematicBicycleModel(KinematicBicycleParams(lf_m=p.lf_m))
    x, y, psi, v = (float(s) for s in initial_pose)
    delta, a = 0.0, 0.0
    failures = 0

    history = {k: [] for k in ("x", "y", "psi", "v", "cte", "epsi", "steering", "acceleration", "solve_time")}

    for k in range(n_cycles):
        cte = float(path.evaluate(x)) - y
        epsi = float(wrap_heading_error(psi - path.desired_heading(x)))

        result = solver.solve([x, y, psi, v, cte, epsi], path)
        try:
            delta, a = result.command()
        except SolveFailedError as err:
            failures += 1
            if verbose:
                print(f"  [{k:3d}] {err} - holding previous command")

        if verbose:
            print(f"  [{k:3d}] x={x:7.2f} y={y:6.2f} v={v:6.2f} cte={cte:6.3f} "
                  f"epsi={np.degrees(epsi):6.2f}deg delta={np.degrees(delta):6.2f}deg "
                  f"a={a:7.2f} ({result.solve_time * 1000:.0f} ms)")

        for key, value in (("x", x), ("y", y), ("psi", psi), ("v", v), ("cte", cte), ("epsi", epsi),
                           ("steering", delta), ("acceleration", a), ("solve_time", result.solve_time)):
            history[key].append(value)

        x, y, psi, v = (float(s) for s in model.step(x, y, psi, v, delta, a, p.dt))

    return SimulationResult(failures=failures, **{k: np.array(vals) for k, vals in history.items()})


def main():
    parser = argparse.ArgumentParser(description="Closed-loop kinematic MPC path tracking demo.")
    parser.add_argument("--config", type=str, default=str(DEFAULT_CONFIG),
                        help="MPC parameter YAML file")
    parser.add_argument("--coeffs", type=float, nargs="+", default=[1.0, 0.05, 0.002],
                        help="Path coefficients in ascending powers (at least 2)")
    parser.add_argument("--initial-speed", type=float, default=10.0,
                        help="Initial speed")
    parser.add_argument("--initial-heading", type=float, default=0.0,
                        help="Initial heading [deg]")
    parser.add_argument("--ref-v", type=float, default=None,
                        help="Override target speed")
    parser.add_argument("--cycles", type=int, default=60,
                        help="Number of control cycles")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging from the solver")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    params = MPCParams.load_from_yaml(args.config)
    if args.ref_v is not None:
        params = params.replace(ref_v=args.ref_v)
    path = ReferencePath(args.coeffs)
    solver = MPCSolver(params)

    print(f"Reference path: {path}")
    print(f"Horizon: N={params.N}, dt={params.dt}s, target speed={params.ref_v}")
    print(f"\nSimulating {args.cycles} cycles...")

    result = simulate(
        solver,
        path,
        initial_pose=(0.0, 0.0, np.radians(args.initial_heading), args.initial_speed),
        n_cycles=args.cycles,
    )

    print(f"\nSimulation Results:")
    print(f"  Final position: ({result.x[-1]:.1f}, {result.y[-1]:.1f})")
    print(f"  Final speed: {result.v[-1]:.2f}")
    print(f"  Max |cte|: {np.abs(result.cte).max():.3f}")
    print(f"  Max |epsi|: {np.degrees(np.abs(result.epsi)).max():.2f} deg")
    print(f"  Max solve time: {result.solve_time.max() * 1000:.0f} ms")
    print(f"  Failed solves: {result.failures}/{args.cycles}")


if __name__ == "__main__":
    main()
