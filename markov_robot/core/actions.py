"""
core/actions.py

A state is only a word until something moves.

The action machine turns the current state into motion,
pickups and docking, and may decide the state is over.
It talks to the world through two narrow doors:
Movement (where am I, move me) and Sensor (what is out there).
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, NamedTuple, Optional, Tuple
import logging

import numpy as np

from .states import BehaviorState, StateSpace
from .resolver import SensorReport

logger = logging.getLogger(__name__)


class Target(NamedTuple):
    """Something the robot can head for."""
    key: int
    position: np.ndarray
    distance: float


class Movement(ABC):
    """Pose and locomotion of the robot body."""

    @property
    @abstractmethod
    def position(self) -> np.ndarray:
        """Current (x, y) position."""

    @property
    @abstractmethod
    def heading(self) -> float:
        """Heading in radians; counterclockwise is positive."""

    @abstractmethod
    def is_blocked(self, position: np.ndarray) -> bool:
        """True if `position` lies outside the arena."""

    @abstractmethod
    def translate(self, distance: float) -> bool:
        """Move along the heading (negative = backward). False if refused."""

    @abstractmethod
    def rotate(self, angle: float) -> None:
        """Turn about the vertical axis."""

    @abstractmethod
    def move_toward(self, target: np.ndarray, distance: float) -> bool:
        """Step toward `target` without overshooting. False if refused."""


class Sensor(ABC):
    """What the robot can perceive."""

    @abstractmethod
    def detect(self) -> SensorReport:
        """Labeled detections from the ray fan."""

    @abstractmethod
    def forward_blocked(self) -> bool:
        """True if the front ray hits an obstacle or wall at close range."""

    @abstractmethod
    def side_clearance(self) -> Tuple[float, float]:
        """(left, right) distances to the nearest obstacle; inf when clear."""

    @abstractmethod
    def nearest_collectible(self) -> Optional[Target]:
        """Closest collectible still in play."""

    @abstractmethod
    def nearest_station(self) -> Optional[Target]:
        """Closest charging station."""

    @abstractmethod
    def consume(self, target: Target) -> None:
        """Remove a collectible from play."""


@dataclass
class ActionConfig:
    """Motion and timing parameters for state execution."""
    base_speed: float = 2.0                # Units per simulated second
    rotation_speed: float = np.pi / 4.5    # Radians per simulated second
    pickup_distance: float = 1.0
    docking_range: float = 2.0
    state_timeout_ms: float = 2000.0
    grace_window_ms: float = 200.0


class ActionOutcome(NamedTuple):
    state: BehaviorState
    collected: int = 0
    timed_out: bool = False


@dataclass
class _Tick:
    state: BehaviorState
    speed: float
    turn: float
    now: float
    last_change: float
    energy: float
    capacity: float


class ActionStateMachine:
    """
    Executes the consequences of a state.

    One handler per state. A handler moves the robot and returns the
    next state, which is the same state unless something happened:
    a collision, a pickup, a full battery, a grace window ending.
    """

    def __init__(
        self,
        movement: Movement,
        sensor: Sensor,
        config: Optional[ActionConfig] = None,
        space: Optional[StateSpace] = None,
    ):
        self.movement = movement
        self.sensor = sensor
        self.config = config or ActionConfig()
        self.space = space or StateSpace()

        S = BehaviorState
        self._handlers: Dict[BehaviorState, Callable[[_Tick], ActionOutcome]] = {
            S.MOVING_FORWARD: self._forward,
            S.MOVING_FORWARD_DECELERATING: self._forward,
            S.MOVING_BACKWARD: self._backward,
            S.ROTATING_LEFT: self._rotate_left,
            S.ROTATING_RIGHT: self._rotate_right,
            S.AWAITING: self._stay,
            S.SEEING_OBJECT_AHEAD: self._approach_object,
            S.SEEING_OBJECT_PROXIMAL: self._approach_object,
            S.COLLECTING_OBJECT: self._collect,
            S.COLLECTING_OBJECT_FINISHED: self._linger,
            S.COLLISION_DETECTED: self._recoil,
            S.SEEING_OBSTACLE_AHEAD: self._creep,
            S.SEEING_OBSTACLE_PROXIMAL: self._evade,
            S.CHARGE_NEEDED: self._seek_station,
            S.CHARGING: self._charge,
            S.CHARGING_FINISHED: self._linger,
            S.SEEING_STATION_AHEAD: self._approach_station,
            S.SEEING_STATION_PROXIMAL: self._approach_station,
        }

    # Fraction of base speed per state
    SPEED_FACTORS = {
        BehaviorState.MOVING_FORWARD: 1.0,
        BehaviorState.MOVING_FORWARD_DECELERATING: 0.5,
        BehaviorState.SEEING_OBJECT_AHEAD: 0.7,
        BehaviorState.SEEING_OBJECT_PROXIMAL: 0.5,
        BehaviorState.COLLECTING_OBJECT: 0.3,
        BehaviorState.SEEING_OBSTACLE_AHEAD: 0.5,
        BehaviorState.SEEING_OBSTACLE_PROXIMAL: 0.5,
        BehaviorState.SEEING_STATION_AHEAD: 0.7,
        BehaviorState.SEEING_STATION_PROXIMAL: 0.3,
    }

    def act(
        self,
        state: BehaviorState,
        delta_time: float,
        now: float = 0.0,
        last_change: Optional[float] = None,
        energy: float = 0.0,
        capacity: float = 100.0,
    ) -> ActionOutcome:
        """
        Perform `state` for `delta_time` simulated seconds.

        `now` and `last_change` are simulated milliseconds; a state held
        longer than state_timeout_ms is abandoned for awaiting.
        `energy` out of `capacity` decides when charging is finished.
        """
        state = self.space.state(state)
        if last_change is None:
            last_change = now

        if now - last_change > self.config.state_timeout_ms:
            logger.info(f"{state.label} held too long, falling back to awaiting")
            return ActionOutcome(BehaviorState.AWAITING, timed_out=True)

        tick = _Tick(
            state=state,
            speed=self.config.base_speed * delta_time,
            turn=self.config.rotation_speed * delta_time,
            now=now,
            last_change=last_change,
            energy=energy,
            capacity=capacity,
        )
        return self._handlers[state](tick)

    # ==================== Locomotion ====================

    def _factor(self, state: BehaviorState) -> float:
        return self.SPEED_FACTORS.get(state, 1.0)

    def _forward(self, t: _Tick) -> ActionOutcome:
        if self.sensor.forward_blocked():
            return ActionOutcome(BehaviorState.COLLISION_DETECTED)
        if not self.movement.translate(t.speed * self._factor(t.state)):
            return ActionOutcome(BehaviorState.COLLISION_DETECTED)
        return ActionOutcome(t.state)

    def _backward(self, t: _Tick) -> ActionOutcome:
        self.movement.translate(-t.speed)
        return ActionOutcome(t.state)

    def _rotate_left(self, t: _Tick) -> ActionOutcome:
        self.movement.rotate(t.turn)
        return ActionOutcome(t.state)

    def _rotate_right(self, t: _Tick) -> ActionOutcome:
        self.movement.rotate(-t.turn)
        return ActionOutcome(t.state)

    def _stay(self, t: _Tick) -> ActionOutcome:
        return ActionOutcome(t.state)

    def _linger(self, t: _Tick) -> ActionOutcome:
        if t.now - t.last_change > self.config.grace_window_ms:
            return ActionOutcome(BehaviorState.AWAITING)
        return ActionOutcome(t.state)

    # ==================== Collectibles ====================

    def _approach_object(self, t: _Tick) -> ActionOutcome:
        target = self.sensor.nearest_collectible()
        if target is not None:
            self.movement.move_toward(target.position, t.speed * self._factor(t.state))
        return ActionOutcome(t.state)

    def _collect(self, t: _Tick) -> ActionOutcome:
        target = self.sensor.nearest_collectible()
        if target is None:
            return ActionOutcome(BehaviorState.AWAITING)

        if target.distance >= self.config.pickup_distance:
            self.movement.move_toward(target.position, t.speed * self._factor(t.state))
            remaining = float(np.linalg.norm(target.position - self.movement.position))
            if remaining >= self.config.pickup_distance:
                return ActionOutcome(t.state)

        self.sensor.consume(target)
        logger.info(f"Collected object {target.key}")
        return ActionOutcome(BehaviorState.COLLECTING_OBJECT_FINISHED, collected=1)

    # ==================== Obstacles ====================

    def _recoil(self, t: _Tick) -> ActionOutcome:
        self.movement.translate(-t.speed)
        return ActionOutcome(BehaviorState.MOVING_BACKWARD)

    def _creep(self, t: _Tick) -> ActionOutcome:
        self.movement.translate(t.speed * self._factor(t.state))
        return ActionOutcome(t.state)

    def _evade(self, t: _Tick) -> ActionOutcome:
        self.movement.translate(-t.speed * self._factor(t.state))
        left, right = self.sensor.side_clearance()
        # Tie goes left
        self.movement.rotate(t.turn if left >= right else -t.turn)
        return ActionOutcome(t.state)

    # ==================== Charging ====================

    def _seek_station(self, t: _Tick) -> ActionOutcome:
        station = self.sensor.nearest_station()
        if station is not None:
            self.movement.move_toward(station.position, t.speed)
        return ActionOutcome(t.state)

    def _approach_station(self, t: _Tick) -> ActionOutcome:
        station = self.sensor.nearest_station()
        if station is None:
            return ActionOutcome(t.state)
        self.movement.move_toward(station.position, t.speed * self._factor(t.state))
        if t.state == BehaviorState.SEEING_STATION_PROXIMAL and self._docked(station):
            return ActionOutcome(BehaviorState.CHARGING)
        return ActionOutcome(t.state)

    def _charge(self, t: _Tick) -> ActionOutcome:
        station = self.sensor.nearest_station()
        if station is None or not self._docked(station):
            return ActionOutcome(BehaviorState.CHARGE_NEEDED)
        if t.energy >= t.capacity:
            logger.info("Charging finished")
            return ActionOutcome(BehaviorState.CHARGING_FINISHED)
        return ActionOutcome(t.state)

    def _docked(self, station: Target) -> bool:
        distance = float(np.linalg.norm(station.position - self.movement.position))
        return distance < self.config.docking_range

    def __repr__(self) -> str:
        return f"ActionStateMachine(speed={self.config.base_speed}, pickup={self.config.pickup_distance})"
