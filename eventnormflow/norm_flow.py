"""NormFlowExtractor — dense normal flow from a surface of active events.

Turns one :class:`EventSurface` snapshot into a sparse set of per-pixel
normal-flow vectors.

Pipeline:
    1. Snapshot the raw time surface, polarity map and decayed image.
    2. Active pixels: raw timestamp in ``[max(1e-3, t_latest - 1.5*decay), t_latest]``.
    3. Row-major greedy scan of interior pixels (margin ``max(ws, nd)``):
       a. skip if any anchor lies within ``neighbor_radius``
       b. collect active pixels of the ``(2*ws+1)^2`` window as ``(x, y, t)``
       c. require ``int(min_inlier_ratio * (2*ws+1)^2)`` of them
       d. mark the pixel as an anchor
       e. centre the window samples
       f. RANSAC with :class:`LocalPlaneModel`; require the inlier ratio
       g. flow = ``(dt/dx, dt/dy) / (dt/dx^2 + dt/dy^2)``, reject if too fast
       h. record the flow and its inlier pixels
    4. Bundle everything into a :class:`NormFlowPack`.

The scan is sequential: a pixel's eligibility depends on anchors chosen
earlier in the sweep, so output is deterministic for a fixed RANSAC seed.

Usage::

    surface = EventSurface.from_resolution(346, 260)
    surface.ingest_batch(batch)
    extractor = NormFlowExtractor(surface, NormFlowConfig(decay_sec=0.02))
    pack = extractor.extract()
    for nf in pack.flows:
        print(nf.anchor, nf.flow)
"""

import json
import logging
import math
import os
import warnings
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

__all__ = ["NormFlow", "NormFlowPack", "NormFlowExtractor", "centralize"]

from ._constants import (
    COLOR_SELECTED, COLOR_VERIFIED, FLOW_DRAW_SCALE, FRESHNESS_FACTOR, TIME_EPSILON,
)
from .config import ConfigError, NormFlowConfig
from .event_surface import EventSurface
from .events import Event, EventBatch
from .overlay import compose_grid, draw_flow_line, gray_to_bgr, paint_events
from .plane_model import LocalPlaneModel
from .ransac import ransac

logger = logging.getLogger(__name__)

# Config fields consumed by EventSurface at construction, not by extract()
_SURFACE_KEYS = frozenset({"filter_threshold"})


@dataclass(frozen=True)
class NormFlow:
    """Normal flow at one anchor pixel.

    ``flow`` is in pixels/second.  It is the time gradient scaled by its
    inverse squared norm, so ``time_gradient == flow / |flow|^2``.
    """

    timestamp: float
    anchor: Tuple[int, int]
    flow: Tuple[float, float]

    @classmethod
    def from_plane(cls, timestamp: float, anchor: Tuple[int, int],
                   a: float, b: float) -> "NormFlow":
        """Derive the flow from plane coefficients of ``t = -(a*x + b*y + c)``.

        Raises:
            ValueError: If the plane is flat in time (zero gradient).
        """
        dtdx, dtdy = -float(a), -float(b)
        grad_sq = dtdx * dtdx + dtdy * dtdy
        if grad_sq == 0.0:
            raise ValueError("Plane has zero time gradient; flow is undefined")
        return cls(float(timestamp), (int(anchor[0]), int(anchor[1])),
                   (dtdx / grad_sq, dtdy / grad_sq))

    @property
    def x(self) -> int:
        return self.anchor[0]

    @property
    def y(self) -> int:
        return self.anchor[1]

    @property
    def speed(self) -> float:
        """Flow magnitude in pixels/second."""
        return math.hypot(self.flow[0], self.flow[1])

    @property
    def direction(self) -> float:
        """Flow angle in radians (image axes, y down)."""
        return math.atan2(self.flow[1], self.flow[0])

    @property
    def time_gradient(self) -> Tuple[float, float]:
        """``(dt/dx, dt/dy)`` in seconds/pixel."""
        norm_sq = self.flow[0] ** 2 + self.flow[1] ** 2
        return (self.flow[0] / norm_sq, self.flow[1] / norm_sq)


@dataclass(eq=False)
class NormFlowPack:
    """Result of one extraction cycle.

    The maps are snapshots owned by the pack; later ingestion into the
    surface does not change them.  Derived event views always return an
    :class:`EventBatch`, empty when no pixel qualifies.
    """

    timestamp: float
    raw_time_surface: np.ndarray
    polarity_map: np.ndarray
    inliers_occupy: np.ndarray
    flows: List[NormFlow] = field(default_factory=list)
    seeds_image: Optional[np.ndarray] = None
    flows_image: Optional[np.ndarray] = None

    def _pseudo_events(self, keep: np.ndarray) -> EventBatch:
        ys, xs = np.nonzero(keep)
        ts = self.raw_time_surface[ys, xs]
        ps = self.polarity_map[ys, xs] > 0
        return EventBatch(tuple(
            Event(float(t), int(x), int(y), bool(p))
            for t, x, y, p in zip(ts, xs, ys, ps)
        ))

    def active_events(self, window: float) -> EventBatch:
        """Pseudo-events for every pixel fired within *window* seconds of the snapshot."""
        raw = self.raw_time_surface
        keep = (raw >= TIME_EPSILON) & (self.timestamp - raw <= window)
        return self._pseudo_events(keep)

    def inlier_events(self) -> EventBatch:
        """Pseudo-events for pixels used as RANSAC inliers by some flow."""
        keep = (self.raw_time_surface >= TIME_EPSILON) & self.inliers_occupy
        return self._pseudo_events(keep)

    def render(self, window: float) -> np.ndarray:
        """Diagnostic 2x2 image: ``[seeds | flows]`` over ``[active | inliers]``."""
        shape = self.raw_time_surface.shape
        seeds = self.seeds_image
        flows = self.flows_image
        if seeds is None:
            seeds = np.zeros(shape + (3,), dtype=np.uint8)
        if flows is None:
            flows = np.zeros(shape + (3,), dtype=np.uint8)
        active = paint_events(shape, self.active_events(window))
        inliers = paint_events(shape, self.inlier_events())
        return compose_grid([[seeds, flows], [active, inliers]])

    def __len__(self) -> int:
        return len(self.flows)


def centralize(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Subtract the per-column mean.

    Args:
        points: (N, 3) array of ``(x, y, t)`` samples.

    Returns:
        ``(centered, mean)`` with ``centered = points - mean``.
    """
    points = np.asarray(points, dtype=np.float64)
    mean = points.mean(axis=0)
    return points - mean, mean


class NormFlowExtractor:
    """Extract normal flows from an :class:`EventSurface`.

    Key parameters come from :class:`NormFlowConfig`: ``decay_sec``,
    ``window_radius`` (fit support), ``neighbor_radius`` (anchor spacing),
    ``min_inlier_ratio``, ``time_dist_threshold`` and
    ``ransac_max_iterations``.  See the module docstring for the pipeline.
    """

    def __init__(self, surface: EventSurface, config: Optional[NormFlowConfig] = None,
                 rng: Optional[np.random.Generator] = None):
        """Bind an extractor to a surface.

        Args:
            surface: Event surface to read snapshots from.
            config: Extraction parameters (defaults if None).
            rng: RANSAC random generator.  Seeded from ``config.seed`` if None.
        """
        if config is not None and config.filter_threshold != surface.filter_threshold:
            warnings.warn(
                f"config filter_threshold ({config.filter_threshold}) differs from the "
                f"surface's ({surface.filter_threshold}); the surface value applies",
                RuntimeWarning,
                stacklevel=2,
            )
        self._surface = surface
        self._config = config if config is not None else NormFlowConfig()
        self._rng = rng if rng is not None else np.random.default_rng(self._config.seed)
        self._dump_count = 0

    @property
    def surface(self) -> EventSurface:
        return self._surface

    @property
    def config(self) -> NormFlowConfig:
        return self._config

    def extract(self, **overrides) -> NormFlowPack:
        """Run one extraction cycle.

        Args:
            **overrides: Any :class:`NormFlowConfig` extraction field, applied
                to this call only.  A ``seed`` override reseeds RANSAC for
                this call.

        Returns:
            A fresh :class:`NormFlowPack`.

        Raises:
            ConfigError: On unknown or invalid overrides, or on a
                surface-only key such as ``filter_threshold``.
        """
        surface_only = sorted(set(overrides) & _SURFACE_KEYS)
        if surface_only:
            raise ConfigError(
                f"Surface-only config keys cannot be overridden per extraction: "
                f"{surface_only}")
        cfg = self._config.replace(**overrides) if overrides else self._config
        rng = np.random.default_rng(cfg.seed) if "seed" in overrides else self._rng

        ws = cfg.window_radius
        nd = cfg.neighbor_radius
        if nd > ws:
            warnings.warn(
                f"neighbor_radius ({nd}) exceeds window_radius ({ws}); anchors "
                f"will be sparser than the fitting support",
                RuntimeWarning,
                stacklevel=2,
            )

        snap = self._surface.snapshot(cfg.decay_sec, undistort=True)
        raw = snap.raw_time_surface
        time_last = snap.timestamp
        lower = max(TIME_EPSILON, time_last - FRESHNESS_FACTOR * cfg.decay_sec)
        mask = (raw >= lower) & (raw <= time_last)

        seeds_img = gray_to_bgr(snap.time_surface)
        flows_img = seeds_img.copy()

        margin = max(ws, nd)
        win_count_thd = int((2 * ws + 1) ** 2 * cfg.min_inlier_ratio)
        rows, cols = mask.shape
        occupy = np.zeros((rows, cols), dtype=bool)
        inliers_occupy = np.zeros((rows, cols), dtype=bool)
        flows: List[NormFlow] = []
        planes = []
        n_selected = 0

        if rows > 2 * margin and cols > 2 * margin:
            interior = mask[margin:rows - margin, margin:cols - margin]
            for cy, cx in np.argwhere(interior):
                y, x = int(cy) + margin, int(cx) + margin

                if occupy[y - nd:y + nd + 1, x - nd:x + nd + 1].any():
                    continue

                wy, wx = np.nonzero(mask[y - ws:y + ws + 1, x - ws:x + ws + 1])
                if len(wy) < win_count_thd:
                    continue
                ex = wx + (x - ws)
                ey = wy + (y - ws)
                points = np.column_stack([ex, ey, raw[ey, ex]]).astype(np.float64)
                time_cen = float(raw[y, x])

                # selected, not yet verified
                seeds_img[y, x] = COLOR_SELECTED
                occupy[y, x] = True
                n_selected += 1

                centered, _ = centralize(points)
                problem = LocalPlaneModel(centered)
                result = ransac(problem, cfg.time_dist_threshold,
                                cfg.ransac_max_iterations, rng=rng)
                if not result.found or len(result.inliers) / len(points) < cfg.min_inlier_ratio:
                    continue
                abc = problem.refine(result.inliers, result.model)
                if abc is None:
                    continue

                # |flow|^2 == 1 / |grad t|^2
                grad_sq = abc[0] ** 2 + abc[1] ** 2
                if grad_sq * cfg.max_flow_norm ** 2 < 1.0:
                    continue

                nf = NormFlow.from_plane(time_cen, (x, y), abc[0], abc[1])
                flows.append(nf)
                inliers_occupy[ey[result.inliers], ex[result.inliers]] = True

                seeds_img[y, x] = COLOR_VERIFIED
                draw_flow_line(flows_img,
                               (x + FLOW_DRAW_SCALE * nf.flow[0],
                                y + FLOW_DRAW_SCALE * nf.flow[1]),
                               (x, y))
                if cfg.debug_dir:
                    planes.append({
                        "anchor": [x, y],
                        "coefficients": [float(v) for v in abc],
                        "inliers": centered[result.inliers].tolist(),
                    })

        logger.debug("norm flow extraction at t=%.6f: %d active, %d selected, %d accepted",
                     time_last, int(mask.sum()), n_selected, len(flows))

        if cfg.debug_dir:
            self._dump_planes(cfg.debug_dir, planes)

        return NormFlowPack(
            timestamp=time_last,
            raw_time_surface=raw,
            polarity_map=snap.polarity_map,
            inliers_occupy=inliers_occupy,
            flows=flows,
            seeds_image=seeds_img,
            flows_image=flows_img,
        )

    def _dump_planes(self, debug_dir: str, planes: list) -> None:
        if not os.path.isdir(debug_dir):
            warnings.warn(
                f"debug_dir {debug_dir!r} does not exist; skipping plane dump",
                RuntimeWarning,
                stacklevel=3,
            )
            return
        path = os.path.join(debug_dir, f"event_local_planes{self._dump_count}.json")
        self._dump_count += 1
        with open(path, "w") as f:
            json.dump({"event_local_planes": planes}, f, indent=2)
