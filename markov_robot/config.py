"""
config.py

One place to tune the robot.

A YAML file holds the transition matrix, the drain table and every
cadence; this module turns it into the typed config objects the
components take. Anything left out keeps its default.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging

import numpy as np
import yaml

from markov_robot.core.states import (
    StateSpace,
    DEFAULT_DRAIN_RATE,
    default_drain_rates,
)
from markov_robot.core.transition import DEFAULT_MATRIX, TransitionConfig
from markov_robot.core.actions import ActionConfig
from markov_robot.core.energy import EnergyConfig
from markov_robot.core.engine import EngineConfig
from markov_robot.environments.arena import ArenaConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "configs" / "default.yaml"

# Cadences shared by several components; set once under 'engine'
ENGINE_ONLY_KEYS = {
    "transition": {"state_timeout_ms"},
    "action": {"state_timeout_ms", "grace_window_ms"},
}


class ConfigError(ValueError):
    """Configuration file is unreadable or a section has the wrong shape."""


@dataclass
class LoadedConfig:
    """Everything needed to build an engine and its arena."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    matrix: np.ndarray = field(default_factory=lambda: np.array(DEFAULT_MATRIX))
    drain_rates: np.ndarray = field(default_factory=default_drain_rates)
    arena: ArenaConfig = field(default_factory=ArenaConfig)


def _build(cls, section: Optional[Dict[str, Any]], name: str):
    """Instantiate a config dataclass from a mapping, rejecting unknown keys."""
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ConfigError(f"Section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(section) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{name}': {sorted(unknown)}")
    misplaced = set(section) & ENGINE_ONLY_KEYS.get(name, set())
    if misplaced:
        raise ConfigError(
            f"Keys {sorted(misplaced)} in '{name}' belong under 'engine'"
        )
    values = {}
    for key, value in section.items():
        values[key] = tuple(value) if isinstance(value, list) else value
    return cls(**values)


def _parse_matrix(raw: Any, space: StateSpace) -> np.ndarray:
    """Accept a list of rows or a mapping of state name -> row."""
    if raw is None:
        return np.array(DEFAULT_MATRIX, dtype=np.float64)
    if isinstance(raw, dict):
        rows = np.zeros((space.count(), space.count()), dtype=np.float64)
        for name, row in raw.items():
            state = space.state(name)
            if len(row) != space.count():
                raise ConfigError(
                    f"Matrix row '{name}' has {len(row)} entries, expected {space.count()}"
                )
            rows[state] = row
        return rows
    if isinstance(raw, list):
        # Shape is validated by the transition model
        return raw
    raise ConfigError("'matrix' must be a list of rows or a mapping of rows")


def _parse_drain(raw: Any, space: StateSpace) -> np.ndarray:
    """Accept a full list or a mapping of state name -> rate (plus 'default')."""
    if raw is None:
        return default_drain_rates()
    if isinstance(raw, list):
        return np.asarray(raw, dtype=np.float64)
    if isinstance(raw, dict):
        table = dict(raw)
        fallback = float(table.pop("default", DEFAULT_DRAIN_RATE))
        rates = np.full(space.count(), fallback, dtype=np.float64)
        for name, rate in table.items():
            rates[space.state(name)] = float(rate)
        return rates
    raise ConfigError("'drain_rates' must be a list or a mapping")


def parse_config(data: Optional[Dict[str, Any]]) -> LoadedConfig:
    """Build a LoadedConfig from an already-parsed YAML document."""
    data = data or {}
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be a mapping")
    space = StateSpace()

    engine_section = data.get("engine") or {}
    if not isinstance(engine_section, dict):
        raise ConfigError("Section 'engine' must be a mapping")
    engine_section = dict(engine_section)
    if "initial_state" in engine_section:
        engine_section["initial_state"] = space.state(engine_section["initial_state"])

    engine = _build(EngineConfig, engine_section, "engine")
    engine.transition = _build(TransitionConfig, data.get("transition"), "transition")
    engine.action = _build(ActionConfig, data.get("action"), "action")
    engine.energy = _build(EnergyConfig, data.get("energy"), "energy")

    return LoadedConfig(
        engine=engine,
        matrix=_parse_matrix(data.get("matrix"), space),
        drain_rates=_parse_drain(data.get("drain_rates"), space),
        arena=_build(ArenaConfig, data.get("arena"), "arena"),
    )


def load_config(path: Union[str, Path, None] = None) -> LoadedConfig:
    """Load configuration from YAML. Defaults to the packaged default.yaml."""
    if path is None:
        path = DEFAULT_CONFIG_PATH
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    logger.info(f"Loaded configuration from {path}")
    return parse_config(data)
