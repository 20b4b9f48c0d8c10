from .layout import ACTUATOR_CHANNELS, STATE_CHANNELS, VariableLayout
from .params import DEFAULT_CONFIG, MPCParams
from .evaluator import TrajectoryEvaluator
from .mpc import MPCResult, MPCSolver, ProblemData, SolveFailedError, VehicleState

__all__ = [
    'ACTUATOR_CHANNELS',
    'STATE_CHANNELS',
    'VariableLayout',
    'DEFAULT_CONFIG',
    'MPCParams',
    'TrajectoryEvaluator',
    'MPCResult',
    'MPCSolver',
    'ProblemData',
    'SolveFailedError',
    'VehicleState',
]
