"""LocalPlaneModel — space-time plane for normal-flow fitting.

Models a neighbourhood of ``(x, y, t)`` samples as the plane::

    t = -(A*x + B*y + C)

so local time is an affine function of pixel position.  Coefficients come
from the normal equations of ``M @ [A, B, C] = -t`` with rows ``[x, y, 1]``.

Distances are residuals in *time* (``|t - t_pred|``), not Euclidean distance
to the plane: flow is derived from the time gradient, so fit quality is
measured in seconds.
"""

from typing import Optional, Sequence

import numpy as np

__all__ = ["LocalPlaneModel"]


class LocalPlaneModel:
    """Sample-consensus problem over an (N, 3) array of ``(x, y, t)`` samples."""

    def __init__(self, points: np.ndarray):
        points = np.asarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Expected (N, 3) samples, got shape {points.shape}")
        self._points = points

    @property
    def sample_size(self) -> int:
        """Three samples define a plane."""
        return 3

    @property
    def num_samples(self) -> int:
        return self._points.shape[0]

    @property
    def points(self) -> np.ndarray:
        return self._points

    def fit(self, indices: Sequence[int]) -> Optional[np.ndarray]:
        """Least-squares ``[A, B, C]`` over the selected samples.

        Returns None when the samples are degenerate (collinear in the image
        plane or fewer than three distinct positions).
        """
        pts = self._points[np.asarray(indices, dtype=np.int64)]
        m = np.column_stack([pts[:, 0], pts[:, 1], np.ones(len(pts))])
        if np.linalg.matrix_rank(m) < 3:
            return None
        b = -pts[:, 2]
        return np.linalg.solve(m.T @ m, m.T @ b)

    def distances(self, model: np.ndarray, indices: Sequence[int]) -> np.ndarray:
        """Absolute time residual of each selected sample."""
        pts = self._points[np.asarray(indices, dtype=np.int64)]
        a, b, c = model
        t_pred = -(a * pts[:, 0] + b * pts[:, 1] + c)
        return np.abs(pts[:, 2] - t_pred)

    def refine(self, inliers: Sequence[int], model: np.ndarray) -> Optional[np.ndarray]:
        """Closed-form refit on the inliers (non-iterative)."""
        return self.fit(inliers)

    @staticmethod
    def point_to_plane_distance(x: float, y: float, t: float,
                                a: float, b: float, c: float) -> float:
        """Time residual of one sample against plane ``(a, b, c)``."""
        t_pred = -(a * x + b * y + c)
        return abs(t - t_pred)
