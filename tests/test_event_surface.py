#!/usr/bin/env python3
"""Tests for EventSurface — retention filter, time surfaces, snapshots.

Usage:
    pytest tests/test_event_surface.py -v
"""

import math

import numpy as np
import pytest

from eventnormflow import Event, EventBatch, EventSurface, PinholeIntrinsics
from eventnormflow._constants import COLOR_NEGATIVE, COLOR_POSITIVE


def make_surface(width=8, height=6, filter_threshold=0.0):
    return EventSurface.from_resolution(width, height, filter_threshold)


# ---------------------------------------------------------------------------
# Ingestion and retention
# ---------------------------------------------------------------------------

class TestIngest:
    """Test the refractory retention rule."""

    def test_monotonic_retention(self):
        """Gaps above the threshold always update the filtered surface."""
        surface = make_surface(filter_threshold=0.01)
        for t in (0.1, 0.2, 0.35, 0.5):
            surface.ingest(Event(t, 3, 2, True))
            assert surface.filtered_timestamp(3, 2, True) == t

    def test_noise_suppression(self):
        """A same-polarity event within the threshold keeps the first stamp."""
        surface = make_surface(filter_threshold=0.1)
        surface.ingest(Event(1.0, 3, 2, True))
        surface.ingest(Event(1.05, 3, 2, True))
        assert surface.filtered_timestamp(3, 2, True) == 1.0
        assert surface.latest_timestamp() == 1.05

    def test_chatter_compared_to_latest_seen(self):
        """Retention compares against the unfiltered latest-seen time."""
        surface = make_surface(filter_threshold=0.1)
        for t in (1.0, 1.06, 1.12):
            surface.ingest(Event(t, 1, 1, True))
        assert surface.filtered_timestamp(1, 1, True) == 1.0

    def test_polarity_flip_trusted_immediately(self):
        """A newer opposite polarity lets the next event through."""
        surface = make_surface(filter_threshold=0.1)
        surface.ingest(Event(1.0, 4, 4, True))
        surface.ingest(Event(1.02, 4, 4, False))
        surface.ingest(Event(1.04, 4, 4, True))
        assert surface.filtered_timestamp(4, 4, False) == 1.02
        assert surface.filtered_timestamp(4, 4, True) == 1.04

    def test_batch_order_matters(self):
        """Later events in a batch see the state left by earlier ones."""
        surface = make_surface(filter_threshold=0.1)
        surface.ingest_batch(EventBatch((
            Event(1.0, 0, 0, True),
            Event(1.05, 0, 0, True),
            Event(1.2, 0, 0, True),
        )))
        assert surface.filtered_timestamp(0, 0, True) == 1.2

    def test_latest_timestamp_always_advances(self):
        surface = make_surface(filter_threshold=10.0)
        surface.ingest(Event(1.0, 0, 0, True))
        surface.ingest(Event(1.5, 0, 0, True))
        assert surface.latest_timestamp() == 1.5
        assert surface.filtered_timestamp(0, 0, True) == 1.0

    @pytest.mark.parametrize("x, y", [(-1, 0), (0, -1), (8, 0), (0, 6)])
    def test_out_of_bounds_raises(self, x, y):
        surface = make_surface()
        with pytest.raises(ValueError, match="outside sensor bounds"):
            surface.ingest(Event(1.0, x, y, True))

    def test_invalid_batch_leaves_surface_untouched(self):
        surface = make_surface()
        batch = EventBatch((Event(1.0, 1, 1, True), Event(1.1, 99, 1, True)))
        with pytest.raises(ValueError):
            surface.ingest_batch(batch)
        assert surface.latest_timestamp() == 0.0
        assert surface.filtered_timestamp(1, 1, True) == 0.0

    def test_negative_threshold_raises(self):
        with pytest.raises(ValueError, match="filter_threshold"):
            make_surface(filter_threshold=-0.1)


# ---------------------------------------------------------------------------
# Empty surface
# ---------------------------------------------------------------------------

class TestEmptySurface:
    """A surface with no events yields zero maps."""

    def test_latest_timestamp_zero(self):
        assert make_surface().latest_timestamp() == 0.0

    def test_raw_maps_zero(self):
        raw, pol = make_surface().raw_time_surface(ignore_polarity=False)
        assert raw.shape == (6, 8)
        assert not raw.any()
        assert not pol.any()

    def test_time_surface_zero(self):
        img = make_surface().time_surface(ignore_polarity=True)
        assert img.dtype == np.uint8
        assert not img.any()

    def test_signed_time_surface_neutral(self):
        """Unset pixels sit at the middle of the signed range."""
        img = make_surface().time_surface(ignore_polarity=False)
        assert np.all(img == 128)


# ---------------------------------------------------------------------------
# Time surfaces
# ---------------------------------------------------------------------------

class TestTimeSurface:
    """Test decayed 8-bit time surface scaling."""

    def test_exponential_decay(self):
        surface = make_surface(3, 3)
        surface.ingest(Event(1.0, 0, 0, True))
        surface.ingest(Event(1.02, 1, 1, True))
        img = surface.time_surface(ignore_polarity=True, decay_sec=0.02)
        assert img[1, 1] == 255
        assert img[0, 0] == round(255 * math.exp(-1.0))
        assert img[2, 2] == 0

    def test_signed_by_polarity(self):
        surface = make_surface(3, 3)
        surface.ingest(Event(1.0, 0, 0, True))
        surface.ingest(Event(1.0, 2, 2, False))
        img = surface.time_surface(ignore_polarity=False, decay_sec=0.02)
        assert img[0, 0] == 255
        assert img[2, 2] == 0

    def test_median_blur_keeps_shape(self):
        surface = make_surface(16, 12)
        surface.ingest(Event(1.0, 5, 5, True))
        img = surface.time_surface(median_blur_size=1)
        assert img.shape == (12, 16)
        assert img.dtype == np.uint8
        # an isolated pixel is removed by a 3x3 median
        assert img[5, 5] == 0

    def test_nonpositive_decay_raises(self):
        with pytest.raises(ValueError, match="decay_sec"):
            make_surface().time_surface(decay_sec=0.0)


class TestRawTimeSurface:
    """Raw maps are non-zero exactly where events arrived."""

    def test_nonzero_exactly_where_fired(self):
        surface = make_surface()
        fired = {(1, 1), (2, 5), (7, 0)}
        for i, (x, y) in enumerate(sorted(fired)):
            surface.ingest(Event(1.0 + 0.01 * i, x, y, True))
        raw, pol = surface.raw_time_surface(ignore_polarity=True)
        ys, xs = np.nonzero(raw)
        assert set(zip(xs.tolist(), ys.tolist())) == fired
        assert set(np.unique(pol).tolist()) == {0, 1}

    def test_sign_matches_latest_polarity(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 2, 2, True))
        surface.ingest(Event(1.1, 2, 2, False))
        surface.ingest(Event(1.2, 3, 3, False))
        surface.ingest(Event(1.3, 3, 3, True))
        raw, pol = surface.raw_time_surface(ignore_polarity=False)
        assert raw[2, 2] == pytest.approx(-1.1)
        assert raw[3, 3] == pytest.approx(1.3)
        assert pol[2, 2] == -1
        assert pol[3, 3] == 1

    def test_ignore_polarity_is_unsigned(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 2, 2, False))
        raw, pol = surface.raw_time_surface(ignore_polarity=True)
        assert raw[2, 2] == 1.0
        assert pol[2, 2] == -1

    def test_maps_are_copies(self):
        """Later ingestion does not alter a previously returned map."""
        surface = make_surface()
        surface.ingest(Event(1.0, 2, 2, True))
        raw, _ = surface.raw_time_surface()
        surface.ingest(Event(2.0, 2, 2, True))
        assert raw[2, 2] == 1.0

    def test_undistort_identity_for_ideal_camera(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 2, 2, True))
        raw, _ = surface.raw_time_surface()
        raw_u, _ = surface.raw_time_surface(undistort=True)
        np.testing.assert_array_equal(raw, raw_u)

    def test_undistort_with_distortion(self):
        intr = PinholeIntrinsics(32, 24, 30.0, 30.0, 15.5, 11.5,
                                 dist_coeffs=(-0.2, 0.05, 0.0, 0.0))
        surface = EventSurface(intr)
        surface.ingest(Event(1.0, 16, 12, True))
        raw, pol = surface.raw_time_surface(undistort=True)
        assert raw.shape == (24, 32)
        assert pol.dtype == np.int8
        # nearest-neighbour lookup never invents timestamps
        assert set(np.unique(raw).tolist()) <= {0.0, 1.0}


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

class TestSnapshot:
    """Test visualization and consistent snapshots."""

    def test_visualization_colors(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 1, 1, True), draw=True)
        surface.ingest(Event(1.1, 2, 1, False), draw=True)
        surface.ingest(Event(1.2, 3, 1, True))
        img = surface.snapshot_visualization()
        assert tuple(img[1, 1]) == COLOR_POSITIVE
        assert tuple(img[1, 2]) == COLOR_NEGATIVE
        assert not img[1, 3].any()

    def test_visualization_reset(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 1, 1, True), draw=True)
        first = surface.snapshot_visualization(reset=True)
        assert first.any()
        assert not surface.snapshot_visualization().any()

    def test_snapshot_consistent(self):
        surface = make_surface()
        surface.ingest(Event(1.0, 1, 1, True))
        surface.ingest(Event(1.01, 2, 2, False))
        snap = surface.snapshot(decay_sec=0.02)
        assert snap.timestamp == 1.01
        assert snap.raw_time_surface[1, 1] == 1.0
        assert snap.polarity_map[2, 2] == -1
        assert snap.time_surface[2, 2] == 255
