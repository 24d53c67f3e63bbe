"""
Tests for core/engine.py

The tick loop end to end: cadence, overrides, liveness, controls, depletion.
"""

import logging

import numpy as np
import pytest

from markov_robot.core.actions import ActionConfig
from markov_robot.core.energy import EnergyConfig
from markov_robot.core.engine import BehaviorEngine, EngineConfig
from markov_robot.core.resolver import SensorReport
from markov_robot.core.states import BehaviorState
from markov_robot.core.transition import DEFAULT_MATRIX, MalformedMatrix, TransitionConfig
from markov_robot.environments.arena import Arena, ArenaConfig

S = BehaviorState


def quiet_arena():
    """Empty arena whose sensors report nothing."""
    arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
    arena.detect = lambda: SensorReport()
    return arena


def engine_for(arena, matrix=None, seed=0, **config):
    return BehaviorEngine(arena, arena, matrix=matrix, config=EngineConfig(seed=seed, **config))


def self_looping(state):
    """Default matrix with `state` always sampling itself."""
    matrix = [list(r) for r in DEFAULT_MATRIX]
    matrix[state] = [1.0 if i == state else 0.0 for i in range(18)]
    return matrix


class TestConstruction:
    """Tests for engine construction."""

    def test_initial_snapshot(self):
        """A fresh engine awaits with a full battery and nothing collected."""
        engine = engine_for(quiet_arena())
        snap = engine.snapshot()
        assert snap.state_name == "awaiting"
        assert snap.energy_percent == pytest.approx(100.0)
        assert sum(snap.probabilities) == pytest.approx(1.0)
        assert snap.collected == 0
        assert snap.clock_ms == 0.0
        assert not snap.paused
        assert not snap.depleted

    def test_snapshot_is_frozen(self):
        """Snapshots cannot be written to."""
        snap = engine_for(quiet_arena()).snapshot()
        with pytest.raises(AttributeError):
            snap.collected = 5

    def test_malformed_matrix_propagates(self):
        """A bad matrix aborts engine creation."""
        arena = quiet_arena()
        with pytest.raises(MalformedMatrix):
            BehaviorEngine(arena, arena, matrix=[[1.0]])

    def test_invalid_speed_in_config(self):
        """A non-positive configured speed is refused."""
        arena = quiet_arena()
        with pytest.raises(ValueError):
            engine_for(arena, speed_multiplier=0.0)

    def test_initial_state_from_config(self):
        """The configured initial state is where the engine starts."""
        engine = engine_for(quiet_arena(), initial_state=S.ROTATING_LEFT)
        assert engine.current_state == S.ROTATING_LEFT

    def test_engine_cadences_reach_components(self):
        """Timeout and grace window set on the engine govern every component."""
        engine = engine_for(quiet_arena(), state_timeout_ms=500.0, grace_window_ms=50.0)
        assert engine.transitions.config.state_timeout_ms == 500.0
        assert engine.actions.config.state_timeout_ms == 500.0
        assert engine.actions.config.grace_window_ms == 50.0

    def test_caller_configs_are_not_mutated(self):
        """The engine works on copies of the component configs it is given."""
        arena = quiet_arena()
        action = ActionConfig(pickup_distance=0.5)
        transition = TransitionConfig()
        config = EngineConfig(state_timeout_ms=500.0, action=action, transition=transition)
        engine = BehaviorEngine(arena, arena, config=config)

        assert action.state_timeout_ms == 2000.0
        assert transition.state_timeout_ms == 2000.0
        assert config.action is action
        assert engine.actions.config.pickup_distance == 0.5
        assert engine.actions.config.state_timeout_ms == 500.0

    def test_conflicting_component_timeout(self):
        """A component timeout that disagrees with the engine is refused."""
        with pytest.raises(ValueError):
            engine_for(quiet_arena(), action=ActionConfig(state_timeout_ms=500.0))
        with pytest.raises(ValueError):
            engine_for(quiet_arena(), transition=TransitionConfig(state_timeout_ms=500.0))

    def test_agreeing_component_timeout(self):
        """A component timeout equal to the engine's is accepted."""
        engine = engine_for(
            quiet_arena(),
            state_timeout_ms=500.0,
            transition=TransitionConfig(state_timeout_ms=500.0),
        )
        assert engine.transitions.config.state_timeout_ms == 500.0

    def test_from_config(self, tmp_path):
        """Engines can be built straight from a YAML file."""
        path = tmp_path / "robot.yaml"
        path.write_text(
            "engine:\n"
            "  seed: 3\n"
            "  initial_state: movingBackward\n"
            "  state_timeout_ms: 750\n"
        )
        arena = quiet_arena()
        engine = BehaviorEngine.from_config(path, arena, arena)
        assert engine.current_state == S.MOVING_BACKWARD
        assert engine.config.seed == 3
        assert engine.transitions.config.state_timeout_ms == 750
        assert engine.actions.config.state_timeout_ms == 750

    def test_from_config_bad_matrix(self, tmp_path):
        """A bad matrix in YAML surfaces as MalformedMatrix."""
        path = tmp_path / "robot.yaml"
        path.write_text("matrix:\n  awaiting: [0.5, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0, 0]\n")
        arena = quiet_arena()
        with pytest.raises(MalformedMatrix):
            BehaviorEngine.from_config(path, arena, arena)


class TestClock:
    """Tests for simulated time."""

    def test_clock_advances(self):
        """The clock advances by dt in milliseconds."""
        engine = engine_for(quiet_arena())
        engine.tick(0.05)
        assert engine.snapshot().clock_ms == pytest.approx(50.0)

    def test_long_frames_are_clamped(self):
        """Frames longer than the maximum are clamped."""
        engine = engine_for(quiet_arena())
        engine.tick(5.0)
        assert engine.snapshot().clock_ms == pytest.approx(100.0)

    def test_negative_frames_are_zero(self):
        """Negative frames count as zero time."""
        engine = engine_for(quiet_arena())
        result = engine.tick(-1.0)
        assert result.advanced
        assert engine.snapshot().clock_ms == 0.0

    def test_speed_multiplier_scales_time(self):
        """Doubling the speed doubles simulated time per frame."""
        engine = engine_for(quiet_arena())
        engine.set_speed(2.0)
        engine.tick(0.05)
        assert engine.snapshot().clock_ms == pytest.approx(100.0)

    @pytest.mark.parametrize("bad", [0.0, -1.0])
    def test_invalid_speed(self, bad):
        """Only positive speeds are accepted."""
        engine = engine_for(quiet_arena())
        with pytest.raises(ValueError):
            engine.set_speed(bad)

    def test_sampling_cadence(self):
        """The chain is sampled at most once per sample interval."""
        engine = engine_for(quiet_arena())
        assert not engine.tick(0.05).sampled
        assert engine.tick(0.06).sampled
        assert not engine.tick(0.05).sampled


class TestOverrides:
    """Tests for detection overrides."""

    def test_detection_overrides_state(self):
        """A detection replaces the current state without sampling."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        arena.add_collectible([0.0, 1.0])
        engine = engine_for(arena)
        result = engine.tick(0.05)
        assert result.override == S.SEEING_OBJECT_PROXIMAL
        assert not result.sampled
        assert engine.current_state == S.SEEING_OBJECT_PROXIMAL

    def test_persistent_detection_still_collects(self):
        """Frames as long as the sensor interval do not pin the robot."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        arena.add_collectible([0.0, 1.0])
        engine = engine_for(arena)
        for _ in range(10):
            engine.tick(0.1)
            if engine.snapshot().collected:
                break
        assert engine.snapshot().collected == 1
        assert arena.remaining_collectibles == 0

    def test_station_ignored_when_energy_is_high(self):
        """A full battery makes the station uninteresting."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        arena.place_robot([-8.0, -6.5], heading=-np.pi / 2)
        engine = engine_for(arena)
        assert engine.tick(0.05).override is None

    def test_low_energy_docks_at_visible_station(self):
        """Low energy plus a nearby station starts charging."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        arena.place_robot([-8.0, -6.5], heading=-np.pi / 2)
        engine = engine_for(arena, energy=EnergyConfig(initial=10.0))
        result = engine.tick(0.05)
        assert result.override == S.SEEING_STATION_PROXIMAL
        assert engine.current_state == S.CHARGING
        assert engine.energy.energy == pytest.approx(12.5)

    def test_low_energy_reports_charge_needed(self):
        """Low energy with no station in view asks for a charge."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        engine = engine_for(arena, energy=EnergyConfig(initial=10.0))
        assert engine.tick(0.05).override == S.CHARGE_NEEDED

    def test_full_recharge_cycle(self):
        """Docked at low energy, the robot charges to full and finishes."""
        arena = Arena(ArenaConfig(n_obstacles=0, n_collectibles=0, seed=0))
        arena.place_robot([-8.0, -8.0])
        engine = engine_for(arena, energy=EnergyConfig(initial=15.0))
        seen = []
        for _ in range(30):
            engine.tick(0.1)
            seen.append(engine.current_state)
        assert S.CHARGING in seen
        assert S.CHARGING_FINISHED in seen
        assert engine.energy.energy > 95.0

    def test_energy_follows_final_state(self):
        """Charging away from the station becomes chargeNeeded and drains."""
        engine = engine_for(quiet_arena(), initial_state=S.CHARGING)
        engine.tick(0.05)
        assert engine.current_state == S.CHARGE_NEEDED
        assert engine.energy.energy < 100.0


class TestLiveness:
    """Tests for the state timeout."""

    def test_stuck_state_times_out(self):
        """A self-looping state is forced to awaiting after the timeout."""
        engine = engine_for(
            quiet_arena(),
            matrix=self_looping(S.MOVING_FORWARD),
            initial_state=S.MOVING_FORWARD,
        )
        states = []
        for _ in range(21):
            engine.tick(0.1)
            states.append(engine.current_state)
        assert set(states[:20]) == {S.MOVING_FORWARD}
        assert states[20] == S.AWAITING
        assert engine.state.last_state_change == pytest.approx(2100.0)

    def test_override_after_timeout_is_acted_on(self):
        """A reflex arriving after a stale state is kept, not dropped for awaiting."""
        arena = quiet_arena()
        engine = engine_for(
            arena,
            matrix=self_looping(S.MOVING_FORWARD),
            initial_state=S.MOVING_FORWARD,
        )
        for _ in range(20):
            engine.tick(0.1)
        assert engine.current_state == S.MOVING_FORWARD

        arena.detect = lambda: SensorReport({S.SEEING_OBSTACLE_PROXIMAL: 0.5})
        result = engine.tick(0.1)
        assert result.override == S.SEEING_OBSTACLE_PROXIMAL
        assert engine.current_state == S.SEEING_OBSTACLE_PROXIMAL
        assert engine.state.last_state_change == pytest.approx(2100.0)

    def test_no_state_outstays_timeout(self):
        """Over a long run no state is held much past the timeout."""
        engine = engine_for(quiet_arena(), seed=11)
        held_since = 0.0
        previous = engine.current_state
        for _ in range(600):
            engine.tick(1.0 / 60.0)
            now = engine.snapshot().clock_ms
            if engine.current_state != previous:
                held_since = now
                previous = engine.current_state
            assert now - held_since <= 2000.0 + 100.0


class TestControls:
    """Tests for pause, resume and reset."""

    def test_paused_tick_is_noop(self):
        """Paused engines do not advance."""
        engine = engine_for(quiet_arena())
        engine.pause()
        result = engine.tick(0.1)
        assert not result.advanced
        assert result.snapshot.paused
        assert engine.snapshot().clock_ms == 0.0

    def test_first_tick_after_resume_is_zero(self):
        """Time spent paused is not replayed on resume."""
        engine = engine_for(quiet_arena())
        engine.tick(0.05)
        engine.pause()
        engine.tick(0.1)
        engine.resume()
        result = engine.tick(0.1)
        assert result.advanced
        assert engine.snapshot().clock_ms == pytest.approx(50.0)
        engine.tick(0.1)
        assert engine.snapshot().clock_ms == pytest.approx(150.0)

    def test_toggle_pause(self):
        """Toggling flips the pause flag and returns it."""
        engine = engine_for(quiet_arena())
        assert engine.toggle_pause() is True
        assert engine.toggle_pause() is False

    def test_resume_when_running_is_harmless(self):
        """Resuming a running engine changes nothing."""
        engine = engine_for(quiet_arena())
        engine.resume()
        engine.tick(0.05)
        assert engine.snapshot().clock_ms == pytest.approx(50.0)

    def test_reset(self):
        """Reset restores battery, clock, count and state."""
        engine = engine_for(quiet_arena(), energy=EnergyConfig(initial=0.05))
        for _ in range(5):
            engine.tick(0.1)
        assert engine.depleted

        engine.reset()
        snap = engine.snapshot()
        assert not engine.depleted
        assert snap.clock_ms == 0.0
        assert snap.collected == 0
        assert engine.current_state == S.AWAITING
        assert engine.tick(0.05).advanced


class TestDepletion:
    """Tests for the terminal energy condition."""

    def test_depletion_reported_once(self):
        """Exactly one tick reports the battery running out."""
        engine = engine_for(quiet_arena(), energy=EnergyConfig(initial=0.05))
        flags = [engine.tick(0.1).depleted_now for _ in range(10)]
        assert flags.count(True) == 1
        assert engine.depleted
        assert engine.snapshot().depleted

    def test_depleted_engine_stops(self):
        """A depleted engine no longer advances."""
        engine = engine_for(quiet_arena(), energy=EnergyConfig(initial=0.05))
        for _ in range(3):
            engine.tick(0.1)
        clock = engine.snapshot().clock_ms
        result = engine.tick(0.1)
        assert not result.advanced
        assert engine.snapshot().clock_ms == clock

    def test_depletion_warned_once(self, caplog):
        """Depletion produces a single WARNING record."""
        engine = engine_for(quiet_arena(), energy=EnergyConfig(initial=0.05))
        with caplog.at_level(logging.WARNING):
            for _ in range(5):
                engine.tick(0.1)
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "depleted" in warnings[0].getMessage()


class TestDeterminism:
    """Tests for replayable runs."""

    def test_seeded_runs_match(self):
        """Same seeds, same states, same path."""
        def run():
            arena = Arena(ArenaConfig(seed=4))
            engine = BehaviorEngine(arena, arena, config=EngineConfig(seed=9))
            states = []
            for _ in range(300):
                engine.tick(1.0 / 60.0)
                states.append(engine.current_state)
            return states, arena.position

        states_a, pos_a = run()
        states_b, pos_b = run()
        assert states_a == states_b
        assert np.allclose(pos_a, pos_b)

    def test_tick_is_not_reentrant(self):
        """A tick from inside a tick is refused, and the engine recovers."""
        arena = quiet_arena()
        engine = engine_for(arena)
        arena.detect = lambda: engine.tick(0.1)
        with pytest.raises(RuntimeError):
            engine.tick(0.1)

        arena.detect = lambda: SensorReport()
        assert engine.tick(0.1).advanced
