"""Pinhole intrinsics and pixel-to-pixel undistortion.

The rectification map is computed once per camera with
``cv2.initUndistortRectifyMap`` and applied with ``cv2.remap``.  Perceptual
images are interpolated bilinearly; timestamp and polarity maps must use
nearest-neighbour lookup so that neighbouring timestamps are never blended.
"""

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

__all__ = ["PinholeIntrinsics", "UndistortionMap"]


@dataclass(frozen=True)
class PinholeIntrinsics:
    """Pinhole camera with optional OpenCV-style distortion coefficients."""

    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float
    dist_coeffs: Tuple[float, ...] = ()

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Image size must be positive, got {self.width}x{self.height}")
        object.__setattr__(self, "dist_coeffs", tuple(float(k) for k in self.dist_coeffs))

    @classmethod
    def ideal(cls, width: int, height: int) -> "PinholeIntrinsics":
        """Distortion-free camera with the principal point at the image centre."""
        focal = float(max(width, height))
        return cls(width, height, focal, focal, (width - 1) / 2.0, (height - 1) / 2.0)

    @property
    def camera_matrix(self) -> np.ndarray:
        """3x3 intrinsic matrix K."""
        return np.array([[self.fx, 0.0, self.cx],
                         [0.0, self.fy, self.cy],
                         [0.0, 0.0, 1.0]], dtype=np.float64)

    @property
    def is_distorted(self) -> bool:
        return any(k != 0.0 for k in self.dist_coeffs)

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height), the order OpenCV expects."""
        return (self.width, self.height)


class UndistortionMap:
    """Precomputed rectification for a fixed camera.

    Usage::

        undisto = UndistortionMap(intrinsics)
        rectified = undisto.remove_distortion(image)
        rectified_ts = undisto.remove_distortion(timestamps, nearest=True)
    """

    def __init__(self, intrinsics: PinholeIntrinsics):
        self._intrinsics = intrinsics
        self._map_x = None
        self._map_y = None
        if intrinsics.is_distorted:
            k = intrinsics.camera_matrix
            d = np.asarray(intrinsics.dist_coeffs, dtype=np.float64)
            self._map_x, self._map_y = cv2.initUndistortRectifyMap(
                k, d, None, k, intrinsics.size, cv2.CV_32FC1)

    @property
    def intrinsics(self) -> PinholeIntrinsics:
        return self._intrinsics

    @property
    def is_identity(self) -> bool:
        return self._map_x is None

    def remove_distortion(self, image: np.ndarray, nearest: bool = False) -> np.ndarray:
        """Rectify an image or per-pixel map.

        Args:
            image: Array of shape (H, W) or (H, W, C) matching the camera size.
            nearest: Use nearest-neighbour lookup (required for timestamp and
                     polarity maps).

        Returns:
            A new array with the same shape and dtype as *image*.
        """
        image = np.asarray(image)
        expected = (self._intrinsics.height, self._intrinsics.width)
        if image.shape[:2] != expected:
            raise ValueError(
                f"Image shape {image.shape[:2]} does not match camera size {expected}"
            )
        if self.is_identity:
            return image.copy()

        interpolation = cv2.INTER_NEAREST if nearest else cv2.INTER_LINEAR
        # cv2.remap has no int8 path
        if image.dtype == np.int8:
            remapped = cv2.remap(image.astype(np.float32), self._map_x, self._map_y,
                                 interpolation, borderMode=cv2.BORDER_CONSTANT,
                                 borderValue=0)
            return remapped.astype(np.int8)
        return cv2.remap(image, self._map_x, self._map_y, interpolation,
                         borderMode=cv2.BORDER_CONSTANT, borderValue=0)
