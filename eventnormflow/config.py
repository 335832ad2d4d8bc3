"""Configuration for normal-flow extraction.

Parameters live in a :class:`NormFlowConfig` dataclass that can be loaded
from a JSON sidecar::

    {
        "decay_sec": 0.02,
        "window_radius": 2,
        "neighbor_radius": 2,
        "min_inlier_ratio": 0.8,
        "time_dist_threshold": 0.001,
        "ransac_max_iterations": 50
    }

Missing keys keep their defaults; unknown keys are rejected.
"""

import dataclasses
import json
import numbers
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ._constants import MAX_FLOW_NORM

__all__ = ["ConfigError", "NormFlowConfig"]

_INTEGER_FIELDS = ("window_radius", "neighbor_radius", "ransac_max_iterations")


class ConfigError(ValueError):
    """Raised when configuration loading or validation fails."""


@dataclass(frozen=True)
class NormFlowConfig:
    """Normal-flow extraction parameters.

    Attributes:
        decay_sec: Time-surface decay constant (s).  Pixels fired within
            ``1.5 * decay_sec`` of the latest event are active.
        window_radius: Half-size of the square fitting window (pixels).
        neighbor_radius: Minimum spacing between flow anchors (pixels).
        min_inlier_ratio: Minimum fraction of the window that must be
            populated, and minimum RANSAC inlier fraction.
        time_dist_threshold: RANSAC inlier threshold in seconds.
        ransac_max_iterations: RANSAC iteration cap.
        max_flow_norm: Flows faster than this (pixels/s) are rejected.
        filter_threshold: Refractory period for the event surface (s).
            Read when the :class:`EventSurface` is built; it cannot be
            changed per extraction.
        debug_dir: If set and existing, local plane fits are dumped here.
        seed: Seed for the RANSAC random generator (None = nondeterministic).
    """

    decay_sec: float = 0.02
    window_radius: int = 2
    neighbor_radius: int = 2
    min_inlier_ratio: float = 0.8
    time_dist_threshold: float = 1e-3
    ransac_max_iterations: int = 50
    max_flow_norm: float = MAX_FLOW_NORM
    filter_threshold: float = 0.0
    debug_dir: Optional[str] = None
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise :class:`ConfigError` if any parameter is out of range."""
        # used as slice bounds, so 2.0 is rejected as well
        for name in _INTEGER_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        if self.decay_sec <= 0:
            raise ConfigError(f"decay_sec must be > 0, got {self.decay_sec}")
        if self.window_radius < 1:
            raise ConfigError(f"window_radius must be >= 1, got {self.window_radius}")
        if self.neighbor_radius < 0:
            raise ConfigError(f"neighbor_radius must be >= 0, got {self.neighbor_radius}")
        if not 0.0 < self.min_inlier_ratio <= 1.0:
            raise ConfigError(
                f"min_inlier_ratio must be in (0, 1], got {self.min_inlier_ratio}")
        if self.time_dist_threshold <= 0:
            raise ConfigError(
                f"time_dist_threshold must be > 0, got {self.time_dist_threshold}")
        if self.ransac_max_iterations < 1:
            raise ConfigError(
                f"ransac_max_iterations must be >= 1, got {self.ransac_max_iterations}")
        if self.max_flow_norm <= 0:
            raise ConfigError(f"max_flow_norm must be > 0, got {self.max_flow_norm}")
        if self.filter_threshold < 0:
            raise ConfigError(
                f"filter_threshold must be >= 0, got {self.filter_threshold}")

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "NormFlowConfig":
        """Build a config from a mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {unknown}")
        return cls(**values)

    @classmethod
    def from_json(cls, path: str) -> "NormFlowConfig":
        """Load a config from a JSON file."""
        if not os.path.isfile(path):
            raise ConfigError(f"Config file not found: {path}")
        try:
            with open(path, "r") as f:
                values = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse JSON file {path}: {e}") from e
        if not isinstance(values, dict):
            raise ConfigError(f"Expected a JSON object in {path}")
        return cls.from_dict(values)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

    def to_json(self, path: str) -> None:
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    def replace(self, **overrides) -> "NormFlowConfig":
        """Copy with some fields changed (validated)."""
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {unknown}")
        return dataclasses.replace(self, **overrides)
