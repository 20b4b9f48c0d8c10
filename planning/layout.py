"""
Flat decision-variable layout for an N-step horizon.

    [ x(N) | y(N) | psi(N) | v(N) | cte(N) | epsi(N) | delta(N-1) | a(N-1) ]

The constraint vector reuses the state offsets: entry start(ch) holds the
initial-state constraint for channel ch, entry start(ch) + i + 1 the
dynamics residual between steps i and i + 1.
"""

from dataclasses import dataclass
from typing import Tuple


STATE_CHANNELS: Tuple[str, ...] = ('x', 'y', 'psi', 'v', 'cte', 'epsi')
ACTUATOR_CHANNELS: Tuple[str, ...] = ('delta', 'a')


@dataclass(frozen=True)
class VariableLayout:
    """Block offsets of every state/actuator channel in the flat vector."""

    N: int

    def __post_init__(self):
        if self.N < 2:
            raise ValueError(f"Horizon must have at least 2 steps, got N={self.N}.")

    @property
    def n_states(self) -> int:
        return len(STATE_CHANNELS)

    @property
    def n_actuators(self) -> int:
        return len(ACTUATOR_CHANNELS)

    @property
    def n_vars(self) -> int:
        return self.n_states * self.N + self.n_actuators * (self.N - 1)

    @property
    def n_constraints(self) -> int:
        return self.n_states * self.N

    def length(self, channel: str) -> int:
        """Number of entries in a channel block."""
        if channel in STATE_CHANNELS:
            return self.N
        if channel in ACTUATOR_CHANNELS:
            return self.N - 1
        raise KeyError(f"Unknown channel '{channel}'.")

    def start(self, channel: str) -> int:
        """Offset of the first entry of a channel block."""
        if channel in STATE_CHANNELS:
            return STATE_CHANNELS.index(channel) * self.N
        if channel in ACTUATOR_CHANNELS:
            delta_start = self.n_states * self.N
            return delta_start + ACTUATOR_CHANNELS.index(channel) * (self.N - 1)
        raise KeyError(f"Unknown channel '{channel}'.")

    def block(self, channel: str) -> slice:
        start = self.start(channel)
        return slice(start, start + self.length(channel))

    def index(self, channel: str, step: int) -> int:
        """Flat index of a channel value at a given step."""
        if not 0 <= step < self.length(channel):
            raise IndexError(f"Step {step} out of range for channel '{channel}'.")
        return self.start(channel) + step

    # Shorthands for the offsets used in the cost/constraint loops
    @property
    def x_start(self) -> int:
        return self.start('x')

    @property
    def y_start(self) -> int:
        return self.start('y')

    @property
    def psi_start(self) -> int:
        return self.start('psi')

    @property
    def v_start(self) -> int:
        return self.start('v')

    @property
    def cte_start(self) -> int:
        return self.start('cte')

    @property
    def epsi_start(self) -> int:
        return self.start('epsi')

    @property
    def delta_start(self) -> int:
        return self.start('delta')

    @property
    def a_start(self) -> int:
        return self.start('a')
