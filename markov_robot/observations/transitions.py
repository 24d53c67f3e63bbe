"""
observations/transitions.py

Watch. Learn. Adjust.

Text views of what the engine is doing: where the current state
can go next, and where the robot has spent its time.
Nothing here changes the engine.
"""

from __future__ import annotations
from collections import Counter
from typing import Dict, Iterable, List, TYPE_CHECKING

from markov_robot.core.states import BehaviorState, StateLike

if TYPE_CHECKING:
    from markov_robot.core.engine import EngineSnapshot
    from markov_robot.core.transition import TransitionModel


def describe_transitions(model: TransitionModel, state: StateLike) -> List[str]:
    """
    Possible next states from `state`, one line each.

    Only non-zero probabilities are listed:
      To rotatingLeft: 10.0%
    A terminal row yields a single explanatory line.
    """
    current = model.space.state(state)
    row = model.row(current)
    lines = [
        f"To {BehaviorState(i).label}: {p * 100:.1f}%"
        for i, p in enumerate(row)
        if p > 0
    ]
    if not lines:
        lines = [f"{current.label} is terminal: left only by the action machine"]
    return lines


def state_histogram(states: Iterable[BehaviorState]) -> Dict[str, float]:
    """Fraction of ticks spent in each state, most frequent first."""
    counts = Counter(BehaviorState(s) for s in states)
    total = sum(counts.values())
    if total == 0:
        return {}
    return {
        state.label: count / total
        for state, count in counts.most_common()
    }


def format_status(snapshot: EngineSnapshot) -> str:
    """One status line, as a heads-up display would show it."""
    flags = []
    if snapshot.paused:
        flags.append("PAUSED")
    if snapshot.depleted:
        flags.append("DEPLETED")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return (
        f"t={snapshot.clock_ms / 1000.0:7.1f}s  "
        f"state={snapshot.state_name:<26} "
        f"energy={round(snapshot.energy_percent):3d}%  "
        f"collected={snapshot.collected}{suffix}"
    )
