"""
core/transition.py

A Markov chain over the behavior states.

Each row says where a state tends to go next.
Rows that sum to zero are doors that only logic can open:
the action machine drives those states out, never chance.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import NamedTuple, Optional, Sequence
import logging

import numpy as np

from .states import (
    BehaviorState,
    StateLike,
    StateSpace,
    SHARP_TURN_STATES,
)

logger = logging.getLogger(__name__)


class MalformedMatrix(ValueError):
    """Transition matrix failed validation. `row` is the offending row index."""

    def __init__(self, row: int, reason: str = "row sum must be 0 or 1"):
        self.row = row
        self.reason = reason
        super().__init__(f"Matrix error in row {row}: {reason}")


class MatrixCheck(NamedTuple):
    """Validation verdict: ok, or the first offending row."""
    ok: bool
    row: int
    reason: str = ""


class Transition(NamedTuple):
    """Result of one sampling step."""
    state: BehaviorState
    angular_speed: float
    forced: bool = False


@dataclass
class TransitionConfig:
    """Sampling parameters."""
    tolerance: float = 1e-4            # Allowed deviation of a row sum from 1
    state_timeout_ms: float = 2000.0   # Simulated time before a state is forced out
    angle_small: float = np.pi / 180   # Hint when rotations are reachable
    angle_90: float = np.pi / 2        # Hint for sharp-turn states


# Rows follow BehaviorState order
DEFAULT_MATRIX = [
    # fwd  dec  back  rotL  rotR  wait
    [0.8, 0.0, 0.0, 0.1, 0.1, 0.0] + [0.0] * 12,                          # movingForward
    [0.0, 1.0, 0.0, 0.0, 0.0, 0.0] + [0.0] * 12,                          # movingForwardDecelerating
    [0.0, 0.0, 0.0, 0.4, 0.4, 0.2] + [0.0] * 12,                          # movingBackward
    [0.4, 0.0, 0.0, 0.4, 0.0, 0.2] + [0.0] * 12,                          # rotatingLeft
    [0.4, 0.0, 0.0, 0.0, 0.4, 0.2] + [0.0] * 12,                          # rotatingRight
    [0.8, 0.0, 0.0, 0.1, 0.1, 0.0] + [0.0] * 12,                          # awaiting
    [0.0, 1.0, 0.0, 0.0, 0.0, 0.0] + [0.0] * 12,                          # seeingObjectAhead
    [0.0] * 8 + [1.0] + [0.0] * 9,                                        # seeingObjectProximal
    [0.0] * 8 + [1.0] + [0.0] * 9,                                        # collectingObject
    [0.4, 0.0, 0.0, 0.2, 0.2, 0.2] + [0.0] * 12,                          # collectingObjectFinished
    [0.0, 0.0, 0.2, 0.4, 0.4, 0.0] + [0.0] * 12,                          # collisionDetected
    [0.0, 0.4, 0.0, 0.3, 0.3, 0.0] + [0.0] * 12,                          # seeingObstacleAhead
    [0.0, 0.0, 0.2, 0.4, 0.4, 0.0] + [0.0] * 12,                          # seeingObstacleProximal
    [0.4, 0.0, 0.0, 0.3, 0.3, 0.0] + [0.0] * 12,                          # chargeNeeded
    [0.0] * 14 + [1.0] + [0.0] * 3,                                       # charging
    [0.0] * 18,                                                           # chargingFinished
    [0.0, 1.0, 0.0, 0.0, 0.0, 0.0] + [0.0] * 12,                          # seeingStationAhead
    [0.0] * 14 + [1.0] + [0.0] * 3,                                       # seeingStationProximal
]


def check_matrix(
    matrix: Sequence[Sequence[float]],
    n_states: int = len(BehaviorState),
    tolerance: float = 1e-4,
) -> MatrixCheck:
    """
    Validate a transition matrix without raising.

    Each row must have n_states non-negative entries summing to 0 (terminal)
    or to 1 within tolerance. Reports the first offending row; a missing or
    surplus row is reported at index n_states.
    """
    rows = list(matrix)
    for i, row in enumerate(rows[:n_states]):
        values = np.asarray(row, dtype=np.float64)
        if values.ndim != 1 or values.shape[0] != n_states:
            return MatrixCheck(False, i, f"expected {n_states} columns")
        if not np.all(np.isfinite(values)) or np.any(values < 0):
            return MatrixCheck(False, i, "probabilities must be finite and non-negative")
        total = values.sum()
        if total != 0 and abs(total - 1.0) > tolerance:
            return MatrixCheck(False, i, f"row sum {total:.6f} is neither 0 nor 1")
    if len(rows) != n_states:
        return MatrixCheck(False, min(len(rows), n_states), f"expected {n_states} rows")
    return MatrixCheck(True, -1)


class TransitionModel:
    """
    Row-stochastic transition model with timed sampling.

    The matrix is validated once and then frozen.
    Sampling draws from an injected numpy Generator so runs can be replayed.
    """

    def __init__(
        self,
        matrix: Optional[Sequence[Sequence[float]]] = None,
        space: Optional[StateSpace] = None,
        config: Optional[TransitionConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.space = space or StateSpace()
        self.config = config or TransitionConfig()
        self.rng = rng if rng is not None else np.random.default_rng()

        source = DEFAULT_MATRIX if matrix is None else matrix
        verdict = check_matrix(source, self.space.count(), self.config.tolerance)
        if not verdict.ok:
            raise MalformedMatrix(verdict.row, verdict.reason)

        self._matrix = np.array(source, dtype=np.float64)
        self._matrix.flags.writeable = False
        self._cumulative = np.cumsum(self._matrix, axis=1)
        self._cumulative.flags.writeable = False

    @property
    def matrix(self) -> np.ndarray:
        return self._matrix

    def row(self, state: StateLike) -> np.ndarray:
        """Transition probabilities out of `state` (a copy, safe to display)."""
        return self._matrix[self.space.state(state)].copy()

    def is_terminal(self, state: StateLike) -> bool:
        return bool(self._matrix[self.space.state(state)].sum() == 0)

    def angular_hint(self, state: BehaviorState) -> float:
        """Rotation hint that accompanies a sample from `state`."""
        if state in SHARP_TURN_STATES:
            return self.config.angle_90
        probabilities = self._matrix[state]
        if (probabilities[BehaviorState.ROTATING_LEFT] > 0
                or probabilities[BehaviorState.ROTATING_RIGHT] > 0):
            return self.config.angle_small
        return 0.0

    def sample(
        self,
        current: StateLike,
        now: float,
        last_change: Optional[float] = None,
    ) -> Transition:
        """
        Draw the next state.

        1. Timed out (now - last_change > state_timeout_ms) and awaiting is
           reachable: force awaiting.
        2. Otherwise walk the cumulative row and take the first state whose
           cumulative probability exceeds a uniform draw.
        3. Nothing exceeds the draw (terminal row, rounding): stay put.
        """
        state = self.space.state(current)
        hint = self.angular_hint(state)

        if last_change is not None and now - last_change > self.config.state_timeout_ms:
            if self._matrix[state, BehaviorState.AWAITING] > 0:
                logger.info(f"State timeout: forcing awaiting from {state.label}")
                return Transition(BehaviorState.AWAITING, hint, forced=True)

        r = self.rng.random()
        index = int(np.searchsorted(self._cumulative[state], r, side="right"))
        if index >= self.space.count():
            return Transition(state, hint)

        chosen = BehaviorState(index)
        if chosen != state:
            logger.debug(f"Sampled {chosen.label} (from {state.label})")
        return Transition(chosen, hint)

    def __repr__(self) -> str:
        terminal = int((self._matrix.sum(axis=1) == 0).sum())
        return f"TransitionModel(states={self.space.count()}, terminal_rows={terminal})"
