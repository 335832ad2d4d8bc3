"""Synthetic event streams for testing and demos.

An ``"edge"`` pattern sweeps a straight brightness edge across the sensor
with a known velocity, so the true normal flow is ``speed * (cos a, sin a)``
everywhere.  Each pixel fires once, when the edge crosses it.  Uniform
random noise events can be mixed in with ``noise_rate``.
"""

from typing import Optional, Tuple

import numpy as np

from .events import EventBatch

__all__ = ["SyntheticEventSource"]


class SyntheticEventSource:
    """Deterministic generator of event batches.

    Usage::

        source = SyntheticEventSource(64, 48, speed=100.0, angle_deg=30.0)
        for t0 in np.arange(0.0, source.duration, 0.01):
            surface.ingest_batch(source.events(t0, t0 + 0.01))
    """

    PATTERNS = ("edge", "noise")

    def __init__(self, width: int, height: int, pattern: str = "edge",
                 speed: float = 100.0, angle_deg: float = 0.0,
                 start_time: float = 0.01, noise_rate: float = 0.0,
                 polarity: bool = True, seed: Optional[int] = 0):
        """Configure the generator.

        Args:
            width: Sensor width in pixels.
            height: Sensor height in pixels.
            pattern: ``"edge"`` or ``"noise"`` (noise only).
            speed: Edge speed in pixels/second.
            angle_deg: Direction of edge motion (image axes, y down).
            start_time: Time at which the edge touches its first pixel.
            noise_rate: Random events per second over the whole sensor.
            polarity: Polarity of edge events.
            seed: Seed for the noise generator.
        """
        if pattern not in self.PATTERNS:
            raise ValueError(f"Unknown pattern: {pattern}")
        if speed <= 0:
            raise ValueError(f"speed must be > 0, got {speed}")
        self.width = width
        self.height = height
        self.pattern = pattern
        self.speed = float(speed)
        self.angle = np.deg2rad(angle_deg)
        self.start_time = float(start_time)
        self.noise_rate = float(noise_rate)
        self.polarity = polarity
        self._rng = np.random.default_rng(seed)

        ys, xs = np.mgrid[0:height, 0:width]
        proj = np.cos(self.angle) * xs + np.sin(self.angle) * ys
        self._firing = self.start_time + (proj - proj.min()) / self.speed

    @property
    def true_flow(self) -> Tuple[float, float]:
        """Ground-truth normal flow (pixels/second)."""
        return (self.speed * np.cos(self.angle), self.speed * np.sin(self.angle))

    @property
    def duration(self) -> float:
        """Time at which the edge has crossed the whole sensor."""
        return float(self._firing.max()) + 1e-9

    def firing_times(self) -> np.ndarray:
        """(H, W) time at which the edge crosses each pixel."""
        return self._firing.copy()

    def events(self, t0: float, t1: float) -> EventBatch:
        """All events with timestamps in ``[t0, t1)``, sorted by time."""
        parts_t, parts_x, parts_y, parts_p = [], [], [], []

        if self.pattern == "edge":
            ys, xs = np.nonzero((self._firing >= t0) & (self._firing < t1))
            parts_t.append(self._firing[ys, xs])
            parts_x.append(xs)
            parts_y.append(ys)
            parts_p.append(np.full(len(xs), self.polarity))

        n_noise = int(self.noise_rate * max(t1 - t0, 0.0))
        if n_noise > 0:
            parts_t.append(self._rng.uniform(t0, t1, n_noise))
            parts_x.append(self._rng.integers(0, self.width, n_noise))
            parts_y.append(self._rng.integers(0, self.height, n_noise))
            parts_p.append(self._rng.random(n_noise) < 0.5)

        if not parts_t:
            return EventBatch()
        t = np.concatenate(parts_t)
        order = np.argsort(t, kind="stable")
        return EventBatch.from_arrays(
            t[order],
            np.concatenate(parts_x)[order],
            np.concatenate(parts_y)[order],
            np.concatenate(parts_p)[order],
        )
