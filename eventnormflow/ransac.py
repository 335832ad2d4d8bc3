"""Generic RANSAC over a pluggable sample-consensus problem.

A problem is any object exposing::

    sample_size: int                         # minimal samples per hypothesis
    num_samples: int                         # total samples
    fit(indices) -> model | None             # None for degenerate samples
    distances(model, indices) -> ndarray     # per-sample residuals
    refine(inliers, model) -> model | None   # final refit on the consensus set

No base class is required; see :class:`SacProblem`.

The iteration count adapts to the best inlier fraction seen so far::

    k = log(1 - probability) / log(1 - w ** sample_size)

and never exceeds ``max_iterations``.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

import numpy as np

__all__ = ["SacProblem", "RansacResult", "ransac"]

# Ratio of skipped (degenerate) samples to max_iterations before giving up.
_MAX_SKIP_FACTOR = 10

_EPS = np.finfo(np.float64).eps


class SacProblem(Protocol):
    """Structural interface consumed by :func:`ransac`."""

    @property
    def sample_size(self) -> int: ...

    @property
    def num_samples(self) -> int: ...

    def fit(self, indices: Sequence[int]) -> Optional[Any]: ...

    def distances(self, model: Any, indices: Sequence[int]) -> np.ndarray: ...

    def refine(self, inliers: Sequence[int], model: Any) -> Optional[Any]: ...


@dataclass
class RansacResult:
    """Outcome of a RANSAC run.

    ``model`` holds the coefficients of the best hypothesis (not refined),
    ``inliers`` the sample indices within the distance threshold of it.
    """

    found: bool
    inliers: np.ndarray
    model: Optional[Any]
    iterations: int


def ransac(problem: SacProblem, threshold: float, max_iterations: int = 1000,
           probability: float = 0.99,
           rng: Optional[np.random.Generator] = None) -> RansacResult:
    """Run RANSAC on *problem*.

    Args:
        problem: Sample-consensus problem (see module docstring).
        threshold: A sample is an inlier when its distance is strictly below
            this value.
        max_iterations: Hard cap on evaluated hypotheses.
        probability: Desired probability of drawing at least one
            outlier-free sample.
        rng: Random generator; a fresh unseeded one if None.

    Returns:
        :class:`RansacResult`.  ``found`` is False when there are fewer
        samples than ``sample_size`` or every drawn sample was degenerate.
    """
    if max_iterations <= 0:
        raise ValueError(f"max_iterations must be > 0, got {max_iterations}")
    if not 0.0 < probability < 1.0:
        raise ValueError(f"probability must be in (0, 1), got {probability}")
    rng = np.random.default_rng() if rng is None else rng

    n = problem.num_samples
    s = problem.sample_size
    empty = np.empty(0, dtype=np.int64)
    if n < s:
        return RansacResult(False, empty, None, 0)

    all_indices = np.arange(n)
    best_model = None
    best_inliers = empty
    k = 1.0
    iterations = 0
    skipped = 0
    max_skip = max_iterations * _MAX_SKIP_FACTOR
    log_miss = math.log(1.0 - probability)

    while iterations < k and skipped < max_skip:
        sample = rng.choice(n, size=s, replace=False)
        model = problem.fit(sample)
        if model is None:
            skipped += 1
            continue

        distances = problem.distances(model, all_indices)
        inliers = np.flatnonzero(distances < threshold)
        if len(inliers) > len(best_inliers):
            best_model = model
            best_inliers = inliers

            # Probability that a sample contains at least one outlier
            w = len(inliers) / n
            p_outlier = 1.0 - w ** s
            p_outlier = min(max(p_outlier, _EPS), 1.0 - _EPS)
            k = log_miss / math.log(p_outlier)

        iterations += 1
        if iterations >= max_iterations:
            break

    if best_model is None:
        return RansacResult(False, empty, None, iterations)
    return RansacResult(True, best_inliers, best_model, iterations)
