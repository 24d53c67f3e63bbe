"""
core/engine.py

The tick. Sense, decide, act, pay.

Inspired by:
- Subsumption architectures (urgent reflexes override wandering)
- Markov decision loops
- Frame-locked game simulation
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Sequence, Tuple
import logging

import numpy as np

from .states import BehaviorState, StateSpace, STATION_STATES
from .transition import TransitionModel, TransitionConfig
from .resolver import ConflictResolver, SensorReport
from .energy import EnergyModel, EnergyConfig
from .actions import ActionStateMachine, ActionConfig, Movement, Sensor

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Cadences and clamps for the tick loop (milliseconds of simulated time)."""
    state_timeout_ms: float = 2000.0
    sample_interval_ms: float = 100.0
    sensor_interval_ms: float = 100.0
    grace_window_ms: float = 200.0
    max_frame_delta: float = 0.1          # Seconds; longer frames are clamped
    speed_multiplier: float = 1.0
    initial_state: BehaviorState = BehaviorState.AWAITING
    seed: Optional[int] = None
    transition: TransitionConfig = field(default_factory=TransitionConfig)
    action: ActionConfig = field(default_factory=ActionConfig)
    energy: EnergyConfig = field(default_factory=EnergyConfig)


@dataclass
class EngineState:
    """What the engine IS between ticks. Only the engine writes here."""
    current_state: BehaviorState = BehaviorState.AWAITING
    last_state_change: float = 0.0
    energy: float = 100.0
    collected: int = 0
    paused: bool = False
    speed_multiplier: float = 1.0
    depleted: bool = False
    clock: float = 0.0
    last_sample: float = 0.0
    last_sensor_read: float = float("-inf")
    angular_speed: float = 0.0


@dataclass(frozen=True)
class EngineSnapshot:
    """Read-only view for a status panel."""
    state_name: str
    energy_percent: float
    probabilities: Tuple[float, ...]
    collected: int
    depleted: bool
    paused: bool
    clock_ms: float
    angular_speed: float


@dataclass(frozen=True)
class TickResult:
    snapshot: EngineSnapshot
    advanced: bool = True
    override: Optional[BehaviorState] = None
    sampled: bool = False
    depleted_now: bool = False


def _follow(component, **cadences):
    """
    Copy of a component config with the engine cadences applied.

    A component that sets its own value for a cadence (anything other than
    its default) must agree with the engine, or construction fails.
    """
    defaults = {f.name: f.default for f in fields(component)}
    for name, value in cadences.items():
        own = getattr(component, name)
        if own != defaults[name] and own != value:
            raise ValueError(
                f"{type(component).__name__}.{name}={own} conflicts with "
                f"the engine setting {name}={value}"
            )
    return replace(component, **cadences)


class BehaviorEngine:
    """
    Composition root: one robot, one brain.

    Per tick, strictly in order:
    1. Sensor read (rate-limited)
    2. Conflict resolution; a detection overrides the current state
    3. Otherwise timed stochastic sampling
    4. Action execution
    5. Energy update

    Principles embodied:
    - Reflexes before whims: detections always beat the dice
    - Liveness: no state outstays its timeout
    - Bookkeeping: energy and collected count live here and only here
    """

    def __init__(
        self,
        movement: Movement,
        sensor: Sensor,
        matrix: Optional[Sequence[Sequence[float]]] = None,
        config: Optional[EngineConfig] = None,
        space: Optional[StateSpace] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or EngineConfig()
        if self.config.speed_multiplier <= 0:
            raise ValueError("Speed multiplier must be positive")
        self.space = space or StateSpace()
        self.sensor = sensor
        self.movement = movement

        # Cadences are engine-level; components get copies that follow them
        cfg = self.config
        self.config = replace(
            cfg,
            transition=_follow(cfg.transition, state_timeout_ms=cfg.state_timeout_ms),
            action=_follow(
                cfg.action,
                state_timeout_ms=cfg.state_timeout_ms,
                grace_window_ms=cfg.grace_window_ms,
            ),
        )

        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.transitions = TransitionModel(matrix, self.space, self.config.transition, self.rng)
        self.resolver = ConflictResolver(self.space)
        self.actions = ActionStateMachine(movement, sensor, self.config.action, self.space)
        self.energy = EnergyModel(self.space, self.config.energy)

        self.state = self._fresh_state()
        self._resume_pending = False
        self._in_tick = False

    @classmethod
    def from_config(
        cls,
        path,
        movement: Movement,
        sensor: Sensor,
        rng: Optional[np.random.Generator] = None,
    ) -> BehaviorEngine:
        """Build an engine from a YAML configuration file."""
        from markov_robot.config import load_config

        loaded = load_config(path)
        return cls(
            movement,
            sensor,
            matrix=loaded.matrix,
            config=loaded.engine,
            space=StateSpace(loaded.drain_rates),
            rng=rng,
        )

    def _fresh_state(self) -> EngineState:
        return EngineState(
            current_state=self.space.state(self.config.initial_state),
            energy=self.energy.energy,
            speed_multiplier=self.config.speed_multiplier,
            depleted=self.energy.depleted,
        )

    # ==================== Core Loop ====================

    def tick(self, delta_time: float) -> TickResult:
        """
        Advance one frame of `delta_time` wall-clock seconds.

        No-op while paused or depleted.
        """
        if self._in_tick:
            raise RuntimeError("BehaviorEngine.tick is not re-entrant")
        self._in_tick = True
        try:
            return self._tick(delta_time)
        finally:
            self._in_tick = False

    def _tick(self, delta_time: float) -> TickResult:
        st = self.state
        if st.paused or st.depleted:
            return TickResult(self.snapshot(), advanced=False)

        if self._resume_pending:
            delta_time = 0.0
            self._resume_pending = False
        dt = min(max(0.0, float(delta_time)), self.config.max_frame_delta)
        sim_dt = dt * st.speed_multiplier
        st.clock += sim_dt * 1000.0
        now = st.clock

        start_state = st.current_state
        state = start_state
        forced = False

        # 1. Sense
        report = self._read_sensor(now)

        # 2. Resolve
        override = self.resolver.resolve(report)
        if override == state:
            # Already acting on it; the chain may move on
            override = None
        sampled = False
        if override is not None:
            state = override
        # 3. Sample
        elif now - st.last_sample >= self.config.sample_interval_ms:
            transition = self.transitions.sample(state, now, st.last_state_change)
            st.last_sample = now
            st.angular_speed = transition.angular_speed
            state = transition.state
            forced = transition.forced
            sampled = True

        # 4. Act; an override is a fresh state, its timer starts now
        outcome = self.actions.act(
            state,
            sim_dt,
            now=now,
            last_change=now if override is not None else st.last_state_change,
            energy=self.energy.energy,
            capacity=self.energy.config.capacity,
        )
        if outcome.collected:
            st.collected += outcome.collected
        forced = forced or outcome.timed_out
        state = outcome.state

        if state != start_state or forced:
            st.last_state_change = now
            if state != start_state:
                logger.debug(f"{start_state.label} -> {state.label}")
        st.current_state = state

        # 5. Pay
        update = self.energy.tick(state, dt, st.speed_multiplier)
        st.energy = update.energy
        if update.depleted:
            st.depleted = True
            logger.warning(
                f"Energy depleted at t={now / 1000.0:.1f}s "
                f"with {st.collected} objects collected"
            )

        return TickResult(
            self.snapshot(),
            override=override,
            sampled=sampled,
            depleted_now=update.depleted,
        )

    def _read_sensor(self, now: float) -> Optional[SensorReport]:
        """Rate-limited sensor read, with the robot's own charge need folded in."""
        st = self.state
        if now - st.last_sensor_read < self.config.sensor_interval_ms:
            return None
        st.last_sensor_read = now

        report = self.sensor.detect()
        if self.energy.is_low:
            report = report.with_detection(BehaviorState.CHARGE_NEEDED)
        else:
            # The station only matters when we need it
            report = report.without(STATION_STATES)
        return report

    # ==================== Controls ====================

    def pause(self) -> None:
        self.state.paused = True

    def resume(self) -> None:
        if self.state.paused:
            self.state.paused = False
            self._resume_pending = True

    def toggle_pause(self) -> bool:
        """Flip the pause flag; returns the new value."""
        if self.state.paused:
            self.resume()
        else:
            self.pause()
        return self.state.paused

    def set_speed(self, multiplier: float) -> None:
        if multiplier <= 0:
            raise ValueError(f"Speed multiplier must be positive, got {multiplier}")
        self.state.speed_multiplier = float(multiplier)

    def reset(self) -> None:
        """Start over: full battery, nothing collected, awaiting."""
        self.energy.reset()
        speed = self.state.speed_multiplier
        self.state = self._fresh_state()
        self.state.speed_multiplier = speed
        self._resume_pending = False
        logger.info("Engine reset")

    # ==================== Observation ====================

    @property
    def current_state(self) -> BehaviorState:
        return self.state.current_state

    @property
    def depleted(self) -> bool:
        return self.state.depleted

    def snapshot(self) -> EngineSnapshot:
        st = self.state
        return EngineSnapshot(
            state_name=st.current_state.label,
            energy_percent=self.energy.percent,
            probabilities=tuple(float(p) for p in self.transitions.row(st.current_state)),
            collected=st.collected,
            depleted=st.depleted,
            paused=st.paused,
            clock_ms=st.clock,
            angular_speed=st.angular_speed,
        )

    def __repr__(self) -> str:
        st = self.state
        return (
            f"BehaviorEngine(state={st.current_state.label}, "
            f"energy={st.energy:.1f}, "
            f"collected={st.collected}, "
            f"t={st.clock / 1000.0:.1f}s)"
        )
