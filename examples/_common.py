"""Shared utilities for standalone example scripts.

Provides the display loop, FPS tracking and text helpers so each example
script stays focused on its algorithm.
"""

import argparse
import signal
import sys
import time
from collections import deque

import cv2
import numpy as np


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Add sensor and display arguments shared by all examples."""
    parser.add_argument("--width", type=int, default=240,
                        help="Sensor width in pixels (default: 240)")
    parser.add_argument("--height", type=int, default=180,
                        help="Sensor height in pixels (default: 180)")
    parser.add_argument("--scale", type=int, default=2,
                        help="Display magnification (default: 2)")
    parser.add_argument("--no-display", action="store_true",
                        help="Headless mode, no OpenCV window")


class DisplayLoop:
    """Cycle counter with FPS tracking, display and clean shutdown.

    Usage::

        loop = DisplayLoop(args)
        while loop.running:
            # ... process one cycle ...
            loop.show(image)
            loop.print_metrics({"flows": 12}, latency_ms=0.5)
        loop.cleanup()
    """

    def __init__(self, args: argparse.Namespace):
        self._no_display = args.no_display
        self._scale = max(1, args.scale)
        self._timestamps = deque(maxlen=30)
        self.running = True
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, sig, frame):
        self.running = False

    def tick(self) -> None:
        """Mark the end of one processing cycle."""
        self._timestamps.append(time.perf_counter())

    @property
    def fps(self) -> float:
        """Rolling cycles per second over the last 30 cycles."""
        if len(self._timestamps) < 2:
            return 0.0
        dt = self._timestamps[-1] - self._timestamps[0]
        return (len(self._timestamps) - 1) / dt if dt > 0 else 0.0

    def show(self, image: np.ndarray, window_name: str = "eventnormflow") -> None:
        """Display an image (skipped in headless mode). 'q' quits."""
        if self._no_display:
            return
        if self._scale > 1:
            image = cv2.resize(image, None, fx=self._scale, fy=self._scale,
                               interpolation=cv2.INTER_NEAREST)
        cv2.imshow(window_name, image)
        key = cv2.waitKey(1) & 0xFF
        if key == ord("q"):
            self.running = False

    def print_metrics(self, metrics: dict, latency_ms: float) -> None:
        """Print single-line metrics to terminal with carriage return."""
        parts = [f"FPS: {self.fps:.1f}", f"latency: {latency_ms:.2f} ms"]
        for k, v in metrics.items():
            if isinstance(v, float):
                parts.append(f"{k}: {v:.3f}")
            else:
                parts.append(f"{k}: {v}")
        line = " | ".join(parts)
        sys.stdout.write(f"\r{line}    ")
        sys.stdout.flush()

    def cleanup(self) -> None:
        """Destroy windows."""
        if not self._no_display:
            cv2.destroyAllWindows()
        # Final newline after \r output
        print()


def draw_text(img: np.ndarray, text: str, pos: tuple,
              color: tuple = (255, 255, 255), scale: float = 0.4) -> None:
    """Draw text with black background for visibility."""
    font = cv2.FONT_HERSHEY_SIMPLEX
    (tw, th), baseline = cv2.getTextSize(text, font, scale, 1)
    x, y = pos
    cv2.rectangle(img, (x - 2, y - th - 2), (x + tw + 2, y + baseline + 2),
                  (0, 0, 0), -1)
    cv2.putText(img, text, (x, y), font, scale, color, 1)
