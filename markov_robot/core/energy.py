"""
core/energy.py

Every action has a cost. Only the station gives back.

Energy drains at a per-state rate and refills while docked.
Zero is final: the engine stops until someone resets it.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Optional

from .states import BehaviorState, StateSpace


@dataclass
class EnergyConfig:
    """Energy budget parameters. Rates are per simulated second."""
    capacity: float = 100.0
    initial: float = 100.0
    charge_rate: float = 50.0
    low_threshold: float = 20.0       # Below this a recharge is needed


class EnergyUpdate(NamedTuple):
    energy: float
    depleted: bool      # True only on the tick that first reached zero


class EnergyModel:
    """
    Tracks the energy budget.

    Invariant: 0 <= energy <= capacity after every tick.
    """

    def __init__(
        self,
        space: Optional[StateSpace] = None,
        config: Optional[EnergyConfig] = None,
    ):
        self.space = space or StateSpace()
        self.config = config or EnergyConfig()
        if self.config.capacity <= 0:
            raise ValueError("Energy capacity must be positive")
        self.energy = self._clamp(self.config.initial)
        self.depleted = self.energy <= 0

    def _clamp(self, value: float) -> float:
        return min(self.config.capacity, max(0.0, float(value)))

    def tick(
        self,
        state: BehaviorState,
        delta_time: float,
        speed_multiplier: float = 1.0,
    ) -> EnergyUpdate:
        """Charge or drain for one tick of `delta_time` seconds."""
        if self.depleted:
            return EnergyUpdate(self.energy, False)

        scaled = delta_time * speed_multiplier
        if self.space.state(state) == BehaviorState.CHARGING:
            self.energy = min(
                self.config.capacity,
                self.energy + self.config.charge_rate * scaled,
            )
        else:
            self.energy = max(0.0, self.energy - self.space.drain_rate(state) * scaled)

        if self.energy <= 0:
            self.depleted = True
            return EnergyUpdate(0.0, True)
        return EnergyUpdate(self.energy, False)

    @property
    def is_low(self) -> bool:
        return self.energy < self.config.low_threshold

    @property
    def is_full(self) -> bool:
        return self.energy >= self.config.capacity

    @property
    def percent(self) -> float:
        return 100.0 * self.energy / self.config.capacity

    def reset(self, energy: Optional[float] = None) -> None:
        """Restore the budget and clear depletion."""
        self.energy = self._clamp(self.config.initial if energy is None else energy)
        self.depleted = self.energy <= 0

    def __repr__(self) -> str:
        return (
            f"EnergyModel(energy={self.energy:.2f}/{self.config.capacity:.0f}, "
            f"depleted={self.depleted})"
        )
