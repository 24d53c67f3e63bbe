"""
core/states.py

The closed set of things a robot can be doing.

Eighteen states, fixed order, stable identity.
Every matrix and table in the engine is indexed by this order.
"""

from __future__ import annotations
from enum import IntEnum
from typing import Dict, Iterable, Optional, Sequence, Union

import numpy as np


class InvalidState(ValueError):
    """Raised when a lookup uses an index or name outside the state space."""


class BehaviorState(IntEnum):
    """The behavior states, in matrix order."""
    MOVING_FORWARD = 0
    MOVING_FORWARD_DECELERATING = 1
    MOVING_BACKWARD = 2
    ROTATING_LEFT = 3
    ROTATING_RIGHT = 4
    AWAITING = 5
    SEEING_OBJECT_AHEAD = 6
    SEEING_OBJECT_PROXIMAL = 7
    COLLECTING_OBJECT = 8
    COLLECTING_OBJECT_FINISHED = 9
    COLLISION_DETECTED = 10
    SEEING_OBSTACLE_AHEAD = 11
    SEEING_OBSTACLE_PROXIMAL = 12
    CHARGE_NEEDED = 13
    CHARGING = 14
    CHARGING_FINISHED = 15
    SEEING_STATION_AHEAD = 16
    SEEING_STATION_PROXIMAL = 17

    @property
    def label(self) -> str:
        """camelCase display name, as shown in the status panel."""
        return DISPLAY_NAMES[self]


DISPLAY_NAMES: Dict[BehaviorState, str] = {
    BehaviorState.MOVING_FORWARD: "movingForward",
    BehaviorState.MOVING_FORWARD_DECELERATING: "movingForwardDecelerating",
    BehaviorState.MOVING_BACKWARD: "movingBackward",
    BehaviorState.ROTATING_LEFT: "rotatingLeft",
    BehaviorState.ROTATING_RIGHT: "rotatingRight",
    BehaviorState.AWAITING: "awaiting",
    BehaviorState.SEEING_OBJECT_AHEAD: "seeingObjectAhead",
    BehaviorState.SEEING_OBJECT_PROXIMAL: "seeingObjectProximal",
    BehaviorState.COLLECTING_OBJECT: "collectingObject",
    BehaviorState.COLLECTING_OBJECT_FINISHED: "collectingObjectFinished",
    BehaviorState.COLLISION_DETECTED: "collisionDetected",
    BehaviorState.SEEING_OBSTACLE_AHEAD: "seeingObstacleAhead",
    BehaviorState.SEEING_OBSTACLE_PROXIMAL: "seeingObstacleProximal",
    BehaviorState.CHARGE_NEEDED: "chargeNeeded",
    BehaviorState.CHARGING: "charging",
    BehaviorState.CHARGING_FINISHED: "chargingFinished",
    BehaviorState.SEEING_STATION_AHEAD: "seeingStationAhead",
    BehaviorState.SEEING_STATION_PROXIMAL: "seeingStationProximal",
}

MOVEMENT_STATES = frozenset({
    BehaviorState.MOVING_FORWARD,
    BehaviorState.MOVING_FORWARD_DECELERATING,
    BehaviorState.MOVING_BACKWARD,
    BehaviorState.ROTATING_LEFT,
    BehaviorState.ROTATING_RIGHT,
})

# Most urgent first
CONFLICT_PRIORITY = (
    BehaviorState.COLLISION_DETECTED,
    BehaviorState.SEEING_OBSTACLE_PROXIMAL,
    BehaviorState.SEEING_OBSTACLE_AHEAD,
    BehaviorState.COLLECTING_OBJECT,
    BehaviorState.SEEING_OBJECT_PROXIMAL,
    BehaviorState.SEEING_OBJECT_AHEAD,
    BehaviorState.SEEING_STATION_PROXIMAL,
    BehaviorState.CHARGE_NEEDED,
    BehaviorState.SEEING_STATION_AHEAD,
)

SENSOR_STATES = frozenset(CONFLICT_PRIORITY)

STATION_STATES = frozenset({
    BehaviorState.SEEING_STATION_AHEAD,
    BehaviorState.SEEING_STATION_PROXIMAL,
})

SHARP_TURN_STATES = frozenset({
    BehaviorState.COLLISION_DETECTED,
    BehaviorState.SEEING_OBSTACLE_PROXIMAL,
    BehaviorState.CHARGING_FINISHED,
})

# Energy units per simulated second
DEFAULT_DRAIN_RATE = 0.3
DEFAULT_DRAIN_TABLE = {
    BehaviorState.MOVING_FORWARD: 0.75,
    BehaviorState.MOVING_BACKWARD: 0.75,
    BehaviorState.MOVING_FORWARD_DECELERATING: 0.6,
    BehaviorState.ROTATING_LEFT: 0.45,
    BehaviorState.ROTATING_RIGHT: 0.45,
    BehaviorState.CHARGING: 0.0,
}

StateLike = Union[BehaviorState, int, str]


def default_drain_rates() -> np.ndarray:
    """State-indexed drain table with the stock rates."""
    return np.array(
        [DEFAULT_DRAIN_TABLE.get(s, DEFAULT_DRAIN_RATE) for s in BehaviorState],
        dtype=np.float64,
    )


class StateSpace:
    """
    Static metadata over the fixed state enumeration.

    Pure lookups:
    - priority rank for conflict resolution (lower = more urgent)
    - energy drain rate per state
    - display names
    """

    def __init__(self, drain_rates: Optional[Sequence[float]] = None):
        rates = default_drain_rates() if drain_rates is None else np.asarray(
            drain_rates, dtype=np.float64
        )
        if rates.shape != (len(BehaviorState),):
            raise ValueError(
                f"Drain table must have {len(BehaviorState)} entries, got {rates.shape}"
            )
        if np.any(rates < 0):
            raise ValueError("Drain rates must be non-negative")

        self._drain = rates.copy()
        self._drain.flags.writeable = False

        # Sensor states rank by the table; the rest after them by index
        self._rank = np.empty(len(BehaviorState), dtype=np.int64)
        for state in BehaviorState:
            self._rank[state] = len(CONFLICT_PRIORITY) + int(state)
        for rank, state in enumerate(CONFLICT_PRIORITY):
            self._rank[state] = rank

        self._by_name = {name: state for state, name in DISPLAY_NAMES.items()}

    @staticmethod
    def count() -> int:
        return len(BehaviorState)

    def state(self, value: StateLike) -> BehaviorState:
        """Coerce an index, display name or member name to a BehaviorState."""
        if isinstance(value, BehaviorState):
            return value
        if isinstance(value, str):
            if value in self._by_name:
                return self._by_name[value]
            try:
                return BehaviorState[value]
            except KeyError:
                raise InvalidState(f"Unknown state name: {value!r}") from None
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            if 0 <= int(value) < len(BehaviorState):
                return BehaviorState(int(value))
        raise InvalidState(f"Invalid state: {value!r}")

    def priority_rank(self, state: StateLike) -> int:
        return int(self._rank[self.state(state)])

    def drain_rate(self, state: StateLike) -> float:
        return float(self._drain[self.state(state)])

    def name(self, state: StateLike) -> str:
        return DISPLAY_NAMES[self.state(state)]

    @property
    def drain_rates(self) -> np.ndarray:
        return self._drain

    def states(self, values: Iterable[StateLike]) -> list:
        return [self.state(v) for v in values]

    def __len__(self) -> int:
        return len(BehaviorState)

    def __repr__(self) -> str:
        return f"StateSpace(n={len(self)})"
