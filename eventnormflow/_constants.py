"""Shared constants for the eventnormflow package."""

# Timestamps below this are treated as "never assigned" (seconds).
TIME_EPSILON = 1e-3

# Active pixels are those fired within FRESHNESS_FACTOR * decay_sec of the
# latest event.
FRESHNESS_FACTOR = 1.5

# Flows faster than this (pixels/second) come from planes nearly orthogonal
# to the time axis and are rejected.
MAX_FLOW_NORM = 4e3

# Flow lines in the diagnostic image are drawn with this length scale.
FLOW_DRAW_SCALE = 0.01

# Polarity channels in the surface of active events.
CHANNEL_NEG = 0
CHANNEL_POS = 1

# Color scheme constants (BGR format for OpenCV)
COLOR_POSITIVE = (255, 0, 0)
COLOR_NEGATIVE = (0, 0, 255)
COLOR_SELECTED = (0, 0, 255)
COLOR_VERIFIED = (0, 255, 0)
COLOR_FLOW = (0, 255, 255)
