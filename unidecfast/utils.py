"""Numba-compiled numeric utilities shared by all deconvolution stages.

Nearest-point binary search, index reflection, circular addressing,
normalisation and the small interpolation formulas used by the mass-axis
transforms.

Performance
-----------
All functions are @njit so they can be called from inside other compiled
kernels without leaving nopython mode.
"""

import numpy as np
from numba import njit


@njit(cache=True)
def nearfast(arr: np.ndarray, point: float) -> int:
    """Index of the element of sorted ``arr`` nearest to ``point``.

    Binary search; queries outside the array clamp to the first or last
    index. On an exact tie between two neighbours the upper index wins.

    Args:
        arr: Ascending array
        point: Query value

    Returns:
        Index in [0, len(arr))
    """
    n = len(arr)
    if n <= 1:
        return 0
    start = 0
    end = n - 1
    while end - start > 1:
        mid = start + (end - start) // 2
        if point < arr[mid]:
            end = mid
        elif point > arr[mid]:
            start = mid
        else:
            return mid
    if abs(point - arr[start]) >= abs(point - arr[end]):
        return end
    return start


@njit(cache=True)
def fixk(k: int, length: int) -> int:
    """Reflect an out-of-range index back into [0, length)."""
    k = abs(k)
    if k >= length:
        k = 2 * length - k - 2
    if k < 0:
        k = 0
    return k


@njit(cache=True)
def indexmod(length: int, r: int, c: int) -> int:
    """Circular offset of column c relative to row r."""
    return (c - r) % length


@njit(cache=True)
def simp_norm_sum(arr: np.ndarray) -> np.ndarray:
    """Normalise ``arr`` in place to unit sum. All-zero input is left unchanged."""
    total = 0.0
    for i in range(len(arr)):
        total += arr[i]
    if total != 0.0:
        for i in range(len(arr)):
            arr[i] = arr[i] / total
    return arr


@njit(cache=True)
def simp_norm(arr: np.ndarray) -> np.ndarray:
    """Normalise ``arr`` in place to unit maximum. All-zero input is left unchanged."""
    if len(arr) == 0:
        return arr
    maxval = np.max(arr)
    if maxval != 0.0:
        for i in range(len(arr)):
            arr[i] = arr[i] / maxval
    return arr


def clip_negatives(arr: np.ndarray) -> np.ndarray:
    """Set negative entries to zero, in place."""
    arr[arr < 0.0] = 0.0
    return arr


def apply_cutoff(arr: np.ndarray, cutoff: float) -> np.ndarray:
    """Zero every entry below ``cutoff``, in place."""
    arr[arr < cutoff] = 0.0
    return arr


@njit(cache=True)
def linear_interpolate(y1: float, y2: float, mu: float) -> float:
    return y1 * (1.0 - mu) + y2 * mu


@njit(cache=True)
def linear_interpolate_position(x1: float, x2: float, x: float) -> float:
    """Fractional position of x between x1 and x2 (0 if x1 == x2)."""
    if x2 - x1 == 0.0:
        return 0.0
    return (x - x1) / (x2 - x1)


@njit(cache=True)
def cubic_interpolate(y0: float, y1: float, y2: float, y3: float, mu: float) -> float:
    """Cubic interpolation between y1 and y2 (Paul Bourke form).

    Args:
        y0, y1, y2, y3: Four consecutive samples
        mu: Fractional position between y1 (0) and y2 (1)

    Returns:
        Interpolated value
    """
    mu2 = mu * mu
    a0 = y3 - y2 - y0 + y1
    a1 = y0 - y1 - a0
    a2 = y2 - y0
    a3 = y1
    return a0 * mu * mu2 + a1 * mu2 + a2 * mu + a3


@njit(cache=True)
def median_spacing(mz: np.ndarray) -> float:
    """Median distance between consecutive points (0 for fewer than two points)."""
    if len(mz) < 2:
        return 0.0
    return np.median(np.diff(mz))
