"""
Core components of the behavior engine.

- states: the fixed state space
- transition: the Markov chain
- resolver: sensor conflict resolution
- actions: per-state execution
- energy: the battery
- engine: the tick that ties them together
"""

from .states import BehaviorState, StateSpace, InvalidState
from .transition import TransitionModel, MalformedMatrix, check_matrix
from .resolver import ConflictResolver, SensorReport
from .energy import EnergyModel, EnergyConfig
from .actions import ActionStateMachine, ActionConfig, Movement, Sensor, Target
from .engine import BehaviorEngine, EngineConfig, EngineSnapshot

__all__ = [
    "BehaviorState", "StateSpace", "InvalidState",
    "TransitionModel", "MalformedMatrix", "check_matrix",
    "ConflictResolver", "SensorReport",
    "EnergyModel", "EnergyConfig",
    "ActionStateMachine", "ActionConfig", "Movement", "Sensor", "Target",
    "BehaviorEngine", "EngineConfig", "EngineSnapshot",
]
