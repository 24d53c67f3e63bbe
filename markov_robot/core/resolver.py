"""
core/resolver.py

Many things can be seen at once. Only one can be acted on.

The resolver collapses a set of simultaneous detections into
the single most urgent state, by a fixed priority table.
"""

from __future__ import annotations
from collections.abc import Mapping
from types import MappingProxyType
from typing import Iterable, Optional, Union

from .states import (
    BehaviorState,
    StateLike,
    StateSpace,
    MOVEMENT_STATES,
)


class SensorReport(Mapping):
    """
    One sensor reading: detected state -> nearest distance.

    Immutable. Movement states are never detections.
    """

    def __init__(self, detections: Optional[Mapping[BehaviorState, float]] = None):
        cleaned = {}
        for state, distance in (detections or {}).items():
            state = BehaviorState(state)
            if state in MOVEMENT_STATES:
                raise ValueError(f"{state.label} is a movement state, not a detection")
            distance = float(distance)
            if state in cleaned:
                distance = min(distance, cleaned[state])
            cleaned[state] = distance
        self._detections = MappingProxyType(cleaned)

    @classmethod
    def of(cls, *states: BehaviorState, distance: float = float("inf")) -> "SensorReport":
        """Report for bare labels (distance unknown)."""
        return cls({s: distance for s in states})

    def with_detection(self, state: BehaviorState, distance: float = float("inf")) -> "SensorReport":
        merged = dict(self._detections)
        merged[state] = min(distance, merged.get(state, distance))
        return SensorReport(merged)

    def without(self, states: Iterable[BehaviorState]) -> "SensorReport":
        drop = set(states)
        return SensorReport({s: d for s, d in self._detections.items() if s not in drop})

    @property
    def states(self) -> frozenset:
        return frozenset(self._detections)

    def __getitem__(self, state: BehaviorState) -> float:
        return self._detections[state]

    def __iter__(self):
        return iter(self._detections)

    def __len__(self) -> int:
        return len(self._detections)

    def __repr__(self) -> str:
        items = ", ".join(
            f"{s.label}={d:.2f}" for s, d in sorted(self._detections.items())
        )
        return f"SensorReport({items})"


class ConflictResolver:
    """
    Picks the dominant detection.

    collisionDetected > seeingObstacleProximal > seeingObstacleAhead >
    collectingObject > seeingObjectProximal > seeingObjectAhead >
    seeingStationProximal > chargeNeeded > seeingStationAhead

    States outside the table rank after it by index, so a set with no
    table member resolves to its lowest-index state. The answer never
    depends on iteration order.
    """

    def __init__(self, space: Optional[StateSpace] = None):
        self.space = space or StateSpace()

    def resolve(
        self,
        states: Union[SensorReport, Iterable[StateLike], None],
    ) -> Optional[BehaviorState]:
        """Highest-priority member of `states`, or None when there is nothing to resolve."""
        if states is None:
            return None
        candidates = {self.space.state(s) for s in states}
        if not candidates:
            return None
        return min(candidates, key=self.space.priority_rank)

    def __repr__(self) -> str:
        return f"ConflictResolver({self.space!r})"
