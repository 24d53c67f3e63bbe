"""
Study 01: Single Robot Observation

Run: python -m markov_robot.studies.01_single_robot.observe

Let one robot loose in the arena and watch it until the battery dies.
No tuning yet, just observation.
"""

import argparse
import logging

import numpy as np

from markov_robot.config import load_config
from markov_robot.core.engine import BehaviorEngine
from markov_robot.core.states import BehaviorState, StateSpace
from markov_robot.environments.arena import Arena
from markov_robot.observations.transitions import (
    describe_transitions,
    format_status,
    state_histogram,
)

FRAME_SECONDS = 1.0 / 60.0


def run_study(
    steps: int = 20000,
    seed: int = 0,
    speed: float = 1.0,
    config_path: str = None,
    report_every: int = 600,
):
    """
    Observe a single robot.

    Watch:
    - Which states dominate the wandering
    - How often detections override the dice
    - Orbs collected before the battery dies
    - Trips to the charging station
    """
    print("=" * 50)
    print("Study 01: Single Robot Observation")
    print("=" * 50)

    loaded = load_config(config_path)
    loaded.engine.seed = seed
    loaded.arena.seed = seed

    arena = Arena(loaded.arena)
    engine = BehaviorEngine(
        arena,
        arena,
        matrix=loaded.matrix,
        config=loaded.engine,
        space=StateSpace(loaded.drain_rates),
    )
    engine.set_speed(speed)

    print(f"\n{arena}")
    print(f"{engine.transitions}")
    print(f"\nRunning up to {steps} frames at {speed}x...")

    visited = []
    overrides = 0
    charges = 0
    energies = []

    for step in range(steps):
        result = engine.tick(FRAME_SECONDS)
        visited.append(engine.current_state)
        energies.append(result.snapshot.energy_percent)
        if result.override is not None:
            overrides += 1
        if len(visited) > 1 and visited[-1] != visited[-2] and visited[-1] == BehaviorState.CHARGING:
            charges += 1

        if step % report_every == 0:
            print("  " + format_status(result.snapshot))

        if engine.depleted:
            print("  " + format_status(result.snapshot))
            break

    # Analysis
    print("\n" + "=" * 50)
    print("Observations")
    print("=" * 50)

    snapshot = engine.snapshot()
    print(f"\nFrames run: {len(visited)}")
    print(f"Simulated time: {snapshot.clock_ms / 1000.0:.1f}s")
    print(f"Objects collected: {snapshot.collected} "
          f"({arena.remaining_collectibles} left)")
    print(f"Docking events: {charges}")
    print(f"Sensor overrides: {overrides} "
          f"({100 * overrides / max(1, len(visited)):.1f}% of frames)")
    print(f"Energy range: [{min(energies):.1f}, {max(energies):.1f}]")
    print(f"Mean energy: {np.mean(energies):.1f}")
    print(f"Depleted: {snapshot.depleted}")

    print("\nTime spent per state:")
    for name, share in state_histogram(visited).items():
        print(f"  {name:<26} {100 * share:5.1f}%")

    print(f"\nFrom {snapshot.state_name}:")
    for line in describe_transitions(engine.transitions, engine.current_state):
        print(f"  {line}")

    print("\n" + "=" * 50)
    print("Study complete. What did you observe?")
    print("=" * 50)

    return engine


def main():
    parser = argparse.ArgumentParser(description="Single Robot Observation Study")
    parser.add_argument("--steps", type=int, default=20000, help="Frames to simulate (60 fps)")
    parser.add_argument("--seed", type=int, default=0, help="Random seed")
    parser.add_argument("--speed", type=float, default=1.0, help="Simulation speed multiplier")
    parser.add_argument("--config", type=str, default=None, help="YAML configuration file")
    parser.add_argument("--verbose", action="store_true", help="Log state changes")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    run_study(
        steps=args.steps,
        seed=args.seed,
        speed=args.speed,
        config_path=args.config,
    )


if __name__ == "__main__":
    main()
