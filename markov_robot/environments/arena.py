"""
environments/arena.py

A walled square with pillars, orbs and one charging station.

A simple world for simple beginnings.
The robot sees it only through a fan of rays,
and moves in it only by turning and rolling.

Inspired by:
- Braitenberg vehicles
- Robot soccer sandboxes
- Roomba-style coverage arenas
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import logging

import numpy as np

from markov_robot.core.actions import Movement, Sensor, Target
from markov_robot.core.resolver import SensorReport
from markov_robot.core.states import BehaviorState

logger = logging.getLogger(__name__)


@dataclass
class ArenaConfig:
    """Configuration for the arena environment."""
    bounds: Tuple[float, float] = (-14.0, 14.0)        # Square extent on both axes
    station_position: Tuple[float, float] = (-8.0, -8.0)
    station_radius: float = 1.0
    n_obstacles: int = 6
    n_collectibles: int = 8
    obstacle_radius: float = 0.5
    collectible_radius: float = 0.3
    grid_cells: int = 4                                 # Placement grid is cells x cells
    cell_padding: float = 1.0
    ray_angles: Tuple[float, ...] = (
        -np.pi / 10, -np.pi / 20, 0.0, np.pi / 20, np.pi / 10
    )
    side_ray_angle: float = np.pi / 4
    proximity_threshold: float = 1.5
    detection_range: float = 4.0
    forward_ray_length: float = 1.0
    seed: Optional[int] = None


@dataclass
class Entity:
    """A round thing in the arena."""
    key: int
    kind: str                 # "collectible", "obstacle" or "station"
    position: np.ndarray
    radius: float
    active: bool = True


class Arena(Movement, Sensor):
    """
    2D arena playing both collaborator roles for the behavior engine.

    Features:
    - Hard square walls (the boundary predicate)
    - Pillars and orbs spread one per grid cell
    - A fixed charging station
    - Ray fan classification into proximal / ahead detections
    """

    def __init__(
        self,
        config: Optional[ArenaConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ):
        self.config = config or ArenaConfig()
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)
        self.entities: Dict[int, Entity] = {}
        self._next_key = 0

        self._position = np.zeros(2)
        self._heading = np.pi / 2

        self.add_station(np.asarray(self.config.station_position, dtype=np.float64))
        self._populate()

    # ==================== World building ====================

    def _grid(self) -> List[Tuple[float, float, float, float]]:
        lo, hi = self.config.bounds
        n = self.config.grid_cells
        size = (hi - lo) / n
        return [
            (lo + col * size, lo + (col + 1) * size, lo + row * size, lo + (row + 1) * size)
            for row in range(n)
            for col in range(n)
        ]

    def _populate(self) -> None:
        """Scatter pillars then orbs, at most one per grid cell."""
        cells = self._grid()
        wanted = self.config.n_obstacles + self.config.n_collectibles
        if wanted > len(cells):
            raise ValueError(
                f"{wanted} entities do not fit in {len(cells)} grid cells"
            )
        chosen = self.rng.permutation(len(cells))[:wanted]
        pad = self.config.cell_padding
        for i, cell_index in enumerate(chosen):
            min_x, max_x, min_y, max_y = cells[cell_index]
            position = np.array([
                self.rng.uniform(min_x + pad, max_x - pad),
                self.rng.uniform(min_y + pad, max_y - pad),
            ])
            if i < self.config.n_obstacles:
                self.add_obstacle(position)
            else:
                self.add_collectible(position)

    def _add(self, kind: str, position, radius: float) -> Entity:
        entity = Entity(self._next_key, kind, np.asarray(position, dtype=np.float64), radius)
        self.entities[entity.key] = entity
        self._next_key += 1
        return entity

    def add_obstacle(self, position, radius: Optional[float] = None) -> Entity:
        if radius is None:
            radius = self.config.obstacle_radius
        return self._add("obstacle", position, radius)

    def add_collectible(self, position, radius: Optional[float] = None) -> Entity:
        if radius is None:
            radius = self.config.collectible_radius
        return self._add("collectible", position, radius)

    def add_station(self, position, radius: Optional[float] = None) -> Entity:
        if radius is None:
            radius = self.config.station_radius
        return self._add("station", position, radius)

    def clear(self, kind: Optional[str] = None) -> None:
        """Remove all entities, or all of one kind."""
        self.entities = {
            k: e for k, e in self.entities.items()
            if kind is not None and e.kind != kind
        }

    def place_robot(self, position, heading: Optional[float] = None) -> None:
        self._position = np.asarray(position, dtype=np.float64).copy()
        if heading is not None:
            self._heading = float(heading)

    def of_kind(self, kind: str) -> List[Entity]:
        return [e for e in self.entities.values() if e.kind == kind and e.active]

    @property
    def remaining_collectibles(self) -> int:
        return len(self.of_kind("collectible"))

    # ==================== Movement ====================

    @property
    def position(self) -> np.ndarray:
        return self._position.copy()

    @property
    def heading(self) -> float:
        return self._heading

    def _direction(self, offset: float = 0.0) -> np.ndarray:
        angle = self._heading + offset
        return np.array([np.cos(angle), np.sin(angle)])

    def is_blocked(self, position: np.ndarray) -> bool:
        lo, hi = self.config.bounds
        return bool(np.any(position < lo) or np.any(position > hi))

    def translate(self, distance: float) -> bool:
        candidate = self._position + self._direction() * distance
        if self.is_blocked(candidate):
            return False
        self._position = candidate
        return True

    def rotate(self, angle: float) -> None:
        self._heading = (self._heading + angle) % (2 * np.pi)

    def move_toward(self, target: np.ndarray, distance: float) -> bool:
        offset = np.asarray(target, dtype=np.float64) - self._position
        gap = float(np.linalg.norm(offset))
        if gap == 0.0:
            return True
        step = min(distance, gap)
        candidate = self._position + offset / gap * step
        if self.is_blocked(candidate):
            return False
        self._position = candidate
        return True

    # ==================== Sensing ====================

    def _ray_hit(self, direction: np.ndarray, entity: Entity) -> Optional[float]:
        """Distance along a unit ray from the robot to a circle's edge, if hit."""
        to_center = entity.position - self._position
        along = float(to_center @ direction)
        if along < 0:
            return None
        miss_sq = float(to_center @ to_center) - along * along
        radius_sq = entity.radius * entity.radius
        if miss_sq > radius_sq:
            return None
        return max(0.0, along - np.sqrt(radius_sq - miss_sq))

    def _wall_distance(self, direction: np.ndarray) -> float:
        lo, hi = self.config.bounds
        distances = []
        for axis in range(2):
            d = direction[axis]
            if d > 0:
                distances.append((hi - self._position[axis]) / d)
            elif d < 0:
                distances.append((lo - self._position[axis]) / d)
        return min(distances) if distances else float("inf")

    def _nearest_hit(self, direction: np.ndarray, kind: str) -> float:
        hits = [self._ray_hit(direction, e) for e in self.of_kind(kind)]
        hits = [h for h in hits if h is not None]
        if kind == "obstacle":
            hits.append(self._wall_distance(direction))
        return min(hits) if hits else float("inf")

    def detect(self) -> SensorReport:
        """
        Cast the ray fan and label what each ray sees.

        Collectibles, obstacles (walls included) and the station are tested
        separately; each is proximal under proximity_threshold and ahead
        within detection_range.
        """
        labels = {
            "collectible": (BehaviorState.SEEING_OBJECT_PROXIMAL, BehaviorState.SEEING_OBJECT_AHEAD),
            "obstacle": (BehaviorState.SEEING_OBSTACLE_PROXIMAL, BehaviorState.SEEING_OBSTACLE_AHEAD),
            "station": (BehaviorState.SEEING_STATION_PROXIMAL, BehaviorState.SEEING_STATION_AHEAD),
        }
        detections: Dict[BehaviorState, float] = {}
        for angle in self.config.ray_angles:
            direction = self._direction(angle)
            for kind, (proximal, ahead) in labels.items():
                distance = self._nearest_hit(direction, kind)
                if distance < self.config.proximity_threshold:
                    label = proximal
                elif distance <= self.config.detection_range:
                    label = ahead
                else:
                    continue
                detections[label] = min(distance, detections.get(label, distance))

        # Proximal supersedes ahead for the same kind
        for proximal, ahead in labels.values():
            if proximal in detections:
                detections.pop(ahead, None)
        return SensorReport(detections)

    def forward_blocked(self) -> bool:
        distance = self._nearest_hit(self._direction(), "obstacle")
        return distance < self.config.forward_ray_length

    def side_clearance(self) -> Tuple[float, float]:
        angle = self.config.side_ray_angle
        left = self._nearest_hit(self._direction(angle), "obstacle")
        right = self._nearest_hit(self._direction(-angle), "obstacle")
        return left, right

    def _nearest(self, kind: str) -> Optional[Target]:
        best = None
        for entity in self.of_kind(kind):
            distance = float(np.linalg.norm(entity.position - self._position))
            if best is None or distance < best.distance:
                best = Target(entity.key, entity.position.copy(), distance)
        return best

    def nearest_collectible(self) -> Optional[Target]:
        return self._nearest("collectible")

    def nearest_station(self) -> Optional[Target]:
        return self._nearest("station")

    def consume(self, target: Target) -> None:
        entity = self.entities.get(target.key)
        if entity is None or entity.kind != "collectible":
            raise KeyError(f"No collectible with key {target.key}")
        entity.active = False
        logger.debug(f"Collectible {target.key} consumed, {self.remaining_collectibles} left")

    def __repr__(self) -> str:
        return (
            f"Arena(bounds={self.config.bounds}, "
            f"obstacles={len(self.of_kind('obstacle'))}, "
            f"collectibles={self.remaining_collectibles}, "
            f"robot=[{self._position[0]:.2f}, {self._position[1]:.2f}])"
        )
