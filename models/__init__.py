"""
Vehicle models for the MPC tracking controller.
"""

from pathlib import Path
from typing import Union

from .kinematic import LF_M, KinematicBicycleModel, KinematicBicycleParams, wrap_heading_error

__all__ = [
    'LF_M',
    'KinematicBicycleModel',
    'KinematicBicycleParams',
    'wrap_heading_error',
    'load_vehicle_from_yaml',
]


def load_vehicle_from_yaml(yaml_file: Union[str, Path]) -> KinematicBicycleModel:
    """
    Load a kinematic vehicle model from a YAML config file.

    Args:
        yaml_file: Path to YAML config file (e.g., planning/config/mpc_params.yaml)

    Returns:
        KinematicBicycleModel: model ready for simulation/optimization

    Example:
        >>> from models import load_vehicle_from_yaml
        >>> vehicle = load_vehicle_from_yaml("planning/config/mpc_params.yaml")
        >>> print(vehicle)
        KinematicBicycleModel(lf_m=2.67)
    """
    params = KinematicBicycleParams.load_from_yaml(yaml_file)
    return KinematicBicycleModel(params)
