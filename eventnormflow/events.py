"""Event and EventBatch containers.

An event is a single asynchronous brightness-change report: a timestamp in
seconds, an integer pixel coordinate and a boolean polarity (True for a
brightness increase).  Batches keep arrival order; their representative
timestamp is that of the last event.
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

__all__ = ["Event", "EventBatch"]


@dataclass(frozen=True)
class Event:
    """A single event-camera report."""

    timestamp: float
    x: int
    y: int
    polarity: bool


@dataclass(frozen=True)
class EventBatch:
    """Ordered, immutable sequence of events.

    An empty batch is falsy and has ``timestamp is None``.
    """

    events: Tuple[Event, ...] = ()

    def __post_init__(self):
        if not isinstance(self.events, tuple):
            object.__setattr__(self, "events", tuple(self.events))

    @classmethod
    def from_arrays(cls, t: Sequence[float], x: Sequence[int],
                    y: Sequence[int], p: Sequence[bool]) -> "EventBatch":
        """Build a batch from parallel arrays of timestamps, coordinates and polarities."""
        t = np.asarray(t, dtype=np.float64)
        x = np.asarray(x, dtype=np.int64)
        y = np.asarray(y, dtype=np.int64)
        p = np.asarray(p, dtype=bool)
        if not (t.shape == x.shape == y.shape == p.shape) or t.ndim != 1:
            raise ValueError(
                f"Expected 1D arrays of equal length, got shapes "
                f"{t.shape}, {x.shape}, {y.shape}, {p.shape}"
            )
        return cls(tuple(
            Event(float(ti), int(xi), int(yi), bool(pi))
            for ti, xi, yi, pi in zip(t, x, y, p)
        ))

    def to_arrays(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Return ``(t, x, y, p)`` numpy arrays (float64, int64, int64, bool)."""
        t = np.fromiter((e.timestamp for e in self.events), dtype=np.float64,
                        count=len(self.events))
        x = np.fromiter((e.x for e in self.events), dtype=np.int64,
                        count=len(self.events))
        y = np.fromiter((e.y for e in self.events), dtype=np.int64,
                        count=len(self.events))
        p = np.fromiter((e.polarity for e in self.events), dtype=bool,
                        count=len(self.events))
        return t, x, y, p

    @property
    def timestamp(self) -> Optional[float]:
        """Timestamp of the last event, or None for an empty batch."""
        if not self.events:
            return None
        return self.events[-1].timestamp

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    def __getitem__(self, index) -> Event:
        return self.events[index]

    def __bool__(self) -> bool:
        return len(self.events) > 0
