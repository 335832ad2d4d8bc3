"""EventSurface — surface of active events (SAE) for an event camera.

Keeps, per pixel and per polarity, the timestamp of the most recent
*retained* event plus the unfiltered latest-seen timestamp used to decide
retention.  A pixel that keeps firing the same polarity faster than the
refractory ``filter_threshold`` only advances its latest-seen time, which
suppresses chatter while still tracking recency.  A polarity flip is
trusted immediately.

Derived maps:

* :meth:`EventSurface.time_surface` — exponentially decayed 8-bit image
  (perceptual, used for overlays).
* :meth:`EventSurface.raw_time_surface` — unscaled timestamps plus a
  polarity map (geometric, consumed by flow extraction).

Usage::

    surface = EventSurface.from_resolution(346, 260, filter_threshold=0.01)
    surface.ingest_batch(batch)
    raw, polarity = surface.raw_time_surface(ignore_polarity=True)

Every map is returned as a fresh array, so a caller holding one is not
affected by later ingestion.
"""

import threading
from typing import Iterable, NamedTuple, Tuple

import cv2
import numpy as np

__all__ = ["EventSurface", "SurfaceSnapshot"]

from ._constants import CHANNEL_NEG, CHANNEL_POS, COLOR_NEGATIVE, COLOR_POSITIVE
from .events import Event
from .undistortion import PinholeIntrinsics, UndistortionMap


class SurfaceSnapshot(NamedTuple):
    """Maps taken from one consistent read of an :class:`EventSurface`."""

    raw_time_surface: np.ndarray   # float64 (H, W), seconds, 0 = never fired
    polarity_map: np.ndarray       # int8 (H, W) in {-1, 0, +1}
    time_surface: np.ndarray       # uint8 (H, W) decayed image
    timestamp: float               # latest event timestamp


class EventSurface:
    """Incrementally maintained surface of active events.

    Ingestion performs read-modify-write on per-pixel state; an internal
    lock serialises it against snapshot reads so extraction may run while
    another thread keeps ingesting.
    """

    def __init__(self, intrinsics: PinholeIntrinsics, filter_threshold: float = 0.0):
        """Create an empty surface for the given camera.

        Args:
            intrinsics: Camera intrinsics (image size and distortion).
            filter_threshold: Refractory period in seconds.  A same-polarity
                event closer than this to the previous one at a pixel does
                not update the filtered surface.
        """
        if filter_threshold < 0:
            raise ValueError(f"filter_threshold must be >= 0, got {filter_threshold}")
        self._intrinsics = intrinsics
        self._filter_threshold = float(filter_threshold)
        self._undisto = UndistortionMap(intrinsics)

        shape = (intrinsics.height, intrinsics.width)
        # [channel, y, x]; channel 1 = positive polarity
        self._sae = np.zeros((2,) + shape, dtype=np.float64)
        self._sae_latest = np.zeros((2,) + shape, dtype=np.float64)
        self._time_latest = 0.0
        self._event_img = np.zeros(shape + (3,), dtype=np.uint8)
        self._lock = threading.Lock()

    @classmethod
    def from_resolution(cls, width: int, height: int,
                        filter_threshold: float = 0.0) -> "EventSurface":
        """Create a surface for a distortion-free camera of the given size."""
        return cls(PinholeIntrinsics.ideal(width, height), filter_threshold)

    # ── Ingestion ─────────────────────────────────────────────────────────

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise ValueError(
                f"Event at ({x}, {y}) outside sensor bounds "
                f"{self.width}x{self.height}"
            )

    def _grab(self, t: float, x: int, y: int, polarity: bool, draw: bool) -> None:
        pol = CHANNEL_POS if polarity else CHANNEL_NEG
        pol_inv = CHANNEL_NEG if polarity else CHANNEL_POS
        t_last = self._sae_latest[pol, y, x]
        t_last_inv = self._sae_latest[pol_inv, y, x]

        if t > t_last + self._filter_threshold or t_last_inv > t_last:
            self._sae[pol, y, x] = t
        self._sae_latest[pol, y, x] = t
        self._time_latest = t

        if draw:
            self._event_img[y, x] = COLOR_POSITIVE if polarity else COLOR_NEGATIVE

    def ingest(self, event: Event, draw: bool = False) -> None:
        """Add one event to the surface.

        Args:
            event: The event to ingest.
            draw: Also paint the event into the visualization image.

        Raises:
            ValueError: If the event lies outside the sensor.
        """
        x, y = int(event.x), int(event.y)
        self._check_bounds(x, y)
        with self._lock:
            self._grab(float(event.timestamp), x, y, bool(event.polarity), draw)

    def ingest_batch(self, events: Iterable[Event], draw: bool = False) -> None:
        """Ingest events in arrival order.

        Bounds are checked for the whole batch before any event is applied,
        so an invalid batch leaves the surface untouched.
        """
        events = list(events)
        for event in events:
            self._check_bounds(int(event.x), int(event.y))
        with self._lock:
            for event in events:
                self._grab(float(event.timestamp), int(event.x), int(event.y),
                           bool(event.polarity), draw)

    # ── Snapshots ─────────────────────────────────────────────────────────

    def snapshot_visualization(self, reset: bool = False,
                               undistort: bool = False) -> np.ndarray:
        """Return the accumulated BGR event image.

        Args:
            reset: Clear the accumulated image after copying it.
            undistort: Rectify the returned copy.
        """
        with self._lock:
            img = self._event_img.copy()
            if reset:
                self._event_img[...] = 0
        if undistort:
            return self._undisto.remove_distortion(img)
        return img

    def _recency(self) -> Tuple[np.ndarray, np.ndarray, float]:
        """Most recent filtered stamp, signed polarity and latest time (copies)."""
        with self._lock:
            pos = self._sae[CHANNEL_POS].copy()
            neg = self._sae[CHANNEL_NEG].copy()
            time_latest = self._time_latest
        most_recent = np.maximum(pos, neg)
        polarity = np.where(pos > neg, 1, -1).astype(np.int8)
        return most_recent, polarity, time_latest

    def time_surface(self, ignore_polarity: bool = True, undistort: bool = False,
                     median_blur_size: int = 0, decay_sec: float = 0.02) -> np.ndarray:
        """Exponentially decayed time surface as an 8-bit image.

        Each pixel holds ``exp(-(t_latest - t_pixel) / decay_sec)``.  With
        polarity the value is signed by the most recent polarity and mapped
        from [-1, 1] to [0, 255]; otherwise [0, 1] maps to [0, 255].  Pixels
        that never fired are 0 (unsigned) or 128 (signed).

        Args:
            ignore_polarity: Drop the polarity sign.
            undistort: Rectify the result.
            median_blur_size: If > 0, median blur with kernel ``2k+1``.
            decay_sec: Exponential decay constant in seconds.

        Returns:
            uint8 array of shape (H, W).
        """
        if decay_sec <= 0:
            raise ValueError(f"decay_sec must be > 0, got {decay_sec}")
        most_recent, polarity, time_latest = self._recency()
        return self._decayed_image(most_recent, polarity, time_latest, ignore_polarity,
                                   undistort, median_blur_size, decay_sec)

    def _decayed_image(self, most_recent, polarity, time_latest, ignore_polarity,
                       undistort, median_blur_size, decay_sec):
        values = np.exp(-(time_latest - most_recent) / decay_sec)
        values[most_recent <= 0] = 0.0
        if ignore_polarity:
            values = 255.0 * values
        else:
            values = 255.0 * (values * polarity + 1.0) / 2.0
        img = np.clip(np.rint(values), 0, 255).astype(np.uint8)

        if median_blur_size > 0:
            img = cv2.medianBlur(img, 2 * median_blur_size + 1)
        if undistort:
            return self._undisto.remove_distortion(img)
        return img

    def raw_time_surface(self, ignore_polarity: bool = True,
                         undistort: bool = False) -> Tuple[np.ndarray, np.ndarray]:
        """Unscaled recency map and polarity map.

        Returns:
            ``(timestamps, polarity)``: float64 (H, W) holding the most recent
            retained timestamp per pixel (negated where the latest polarity is
            negative, unless *ignore_polarity*), and int8 (H, W) in {-1, 0, +1}
            with 0 marking pixels that never fired.
        """
        most_recent, polarity, _ = self._recency()
        return self._raw_maps(most_recent, polarity, ignore_polarity, undistort)

    def _raw_maps(self, most_recent, polarity, ignore_polarity, undistort):
        polarity[most_recent <= 0] = 0
        timestamps = most_recent if ignore_polarity else most_recent * polarity
        if undistort:
            return (self._undisto.remove_distortion(timestamps, nearest=True),
                    self._undisto.remove_distortion(polarity, nearest=True))
        return timestamps, polarity

    def snapshot(self, decay_sec: float, undistort: bool = True) -> SurfaceSnapshot:
        """Consistent view of the surface for one analysis cycle.

        The raw map, polarity map, decayed image and latest timestamp all
        come from a single locked read, so concurrent ingestion cannot tear
        them apart.  Polarity is ignored in both maps.
        """
        if decay_sec <= 0:
            raise ValueError(f"decay_sec must be > 0, got {decay_sec}")
        most_recent, polarity, time_latest = self._recency()
        image = self._decayed_image(most_recent, polarity, time_latest, True,
                                    undistort, 0, decay_sec)
        raw, polarity = self._raw_maps(most_recent, polarity, True, undistort)
        return SurfaceSnapshot(raw, polarity, image, time_latest)

    def latest_timestamp(self) -> float:
        """Timestamp of the last ingested event (0.0 if none)."""
        with self._lock:
            return self._time_latest

    def filtered_timestamp(self, x: int, y: int, polarity: bool) -> float:
        """Filtered (retained) timestamp at a pixel for one polarity."""
        self._check_bounds(x, y)
        with self._lock:
            return float(self._sae[CHANNEL_POS if polarity else CHANNEL_NEG, y, x])

    @property
    def intrinsics(self) -> PinholeIntrinsics:
        return self._intrinsics

    @property
    def width(self) -> int:
        """Sensor width in pixels."""
        return self._intrinsics.width

    @property
    def height(self) -> int:
        """Sensor height in pixels."""
        return self._intrinsics.height

    @property
    def filter_threshold(self) -> float:
        """Refractory period in seconds."""
        return self._filter_threshold
