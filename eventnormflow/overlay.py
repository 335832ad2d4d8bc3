"""OpenCV rendering helpers for event and flow diagnostics."""

from typing import Iterable, List, Tuple

import cv2
import numpy as np

from ._constants import COLOR_FLOW, COLOR_NEGATIVE, COLOR_POSITIVE
from .events import Event

__all__ = ["gray_to_bgr", "paint_events", "draw_flow_line", "compose_grid"]


def gray_to_bgr(img: np.ndarray) -> np.ndarray:
    """Convert a uint8 grayscale image to 3-channel BGR."""
    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


def paint_events(shape: Tuple[int, int], events: Iterable[Event]) -> np.ndarray:
    """Render events onto a black BGR canvas.

    Args:
        shape: (height, width) of the canvas.
        events: Events to paint; later events overwrite earlier ones.

    Returns:
        uint8 array of shape (height, width, 3).
    """
    canvas = np.zeros(tuple(shape) + (3,), dtype=np.uint8)
    for event in events:
        canvas[event.y, event.x] = COLOR_POSITIVE if event.polarity else COLOR_NEGATIVE
    return canvas


def draw_flow_line(
    img: np.ndarray,
    start: Tuple[float, float],
    end: Tuple[float, float],
    color: Tuple[int, int, int] = COLOR_FLOW,
    thickness: int = 1
) -> None:
    """Draw a flow segment ending in a small dot at *end*.

    Args:
        img: BGR image to draw on (modified in-place)
        start: (x, y) tail of the segment
        end: (x, y) head, usually the anchor pixel
        color: BGR color tuple
        thickness: Line thickness
    """
    p0 = (int(round(start[0])), int(round(start[1])))
    p1 = (int(round(end[0])), int(round(end[1])))
    cv2.line(img, p0, p1, color, thickness, cv2.LINE_AA)
    cv2.circle(img, p1, 1, color, -1)


def compose_grid(panels: List[List[np.ndarray]]) -> np.ndarray:
    """Tile equally sized BGR panels row by row."""
    rows = [cv2.hconcat(row) for row in panels]
    return cv2.vconcat(rows)
