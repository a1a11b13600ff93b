"""Softmax sharpening and point smoothing of the probability grid.

Both run between iterations (never on iteration 0):

- SHARPEN (beta != 0): exponential re-weighting that pushes each row (or the
  whole grid) toward its mode while keeping the row sum.
- SMOOTH (psig != 0): sliding mean along m/z for psig >= 1, or a full
  reconvolution with the peak shape for psig < 0.
"""

import math
from typing import Optional

import numpy as np
import numba as nb
from numba import njit

from .convolution import convolve_simp, reconvolve, sum_deltas
from .peak_shape import PeakShapeTables


@nb.njit(parallel=True, cache=True)
def _softargmax_rows(blur, beta):
    n, numz = blur.shape
    out = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        sum1 = 0.0
        sum2 = 0.0
        min2 = np.inf
        for j in range(numz):
            d = blur[i, j]
            sum1 += d
            e = math.exp(beta * d)
            if e < min2:
                min2 = e
            out[i, j] = e
            sum2 += e
        factor = 0.0
        denom = sum2 - min2 * numz
        if denom != 0.0:
            factor = sum1 / denom
        for j in range(numz):
            if factor > 0.0:
                out[i, j] = (out[i, j] - min2) * factor
            else:
                out[i, j] = 0.0
    return out


@njit(cache=True)
def softargmax_everything(blur: np.ndarray, beta: float) -> np.ndarray:
    """Softmax re-weighting over the whole grid, preserving its total."""
    e = np.exp(beta * blur)
    sum1 = np.sum(blur)
    min2 = np.min(e)
    denom = np.sum(e) - min2 * blur.size
    factor = 0.0
    if denom != 0.0:
        factor = sum1 / denom
    if factor > 0.0:
        return (e - min2) * factor
    return np.zeros_like(blur)


def softargmax(blur: np.ndarray, beta: float) -> np.ndarray:
    """Row-wise softmax over charge states (global for negative beta).

    Each row is replaced by (exp(beta*d) - min) scaled so the row keeps its
    original sum. Rows whose scale factor is not positive are zeroed.

    Args:
        blur: Grid, L x numz
        beta: Sharpening strength, negative selects the global variant

    Returns:
        Sharpened grid (new array)
    """
    if beta < 0:
        return softargmax_everything(blur, abs(beta))
    return _softargmax_rows(blur, beta)


@nb.njit(parallel=True, cache=True)
def _equalize_rows(newblur, denom, denom2):
    n, numz = newblur.shape
    out = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        factor = 0.0
        if denom2[i] != 0.0:
            factor = denom[i] / denom2[i]
        for j in range(numz):
            out[i, j] = newblur[i, j] * factor
    return out


def softargmax_transposed(
    blur: np.ndarray,
    barr: np.ndarray,
    beta: float,
    tables: Optional[PeakShapeTables],
    mzsig: float,
    isotopepos: Optional[np.ndarray] = None,
    isotopeval: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Exponential sharpening equalized against the convolved signal.

    Every cell is replaced by exp(beta*d) - 1, then each row is rescaled so
    that the (mirror-)convolved spectrum of the new grid matches the one of
    the old grid point by point.
    """
    deltas = sum_deltas(blur, barr, isotopepos, isotopeval)
    if mzsig != 0 and tables is not None:
        denom = convolve_simp(deltas, tables, reverse=True)
    else:
        denom = deltas

    newblur = np.exp(beta * blur) - 1.0
    deltas2 = sum_deltas(newblur, barr, isotopepos, isotopeval)
    if mzsig != 0 and tables is not None:
        denom2 = convolve_simp(deltas2, tables, reverse=True)
    else:
        denom2 = deltas2
    return _equalize_rows(newblur, denom, denom2)


@nb.njit(parallel=True, cache=True)
def point_smoothing(blur: np.ndarray, barr: np.ndarray, width: int) -> np.ndarray:
    """Sliding mean of half-width ``width`` along m/z for every accepted cell.

    The window is clipped at the spectrum edges but the divisor stays
    1 + 2*width, so edge cells lose a little intensity.
    """
    n, numz = blur.shape
    out = blur.copy()
    for i in nb.prange(n):
        low = max(i - width, 0)
        high = min(i + width + 1, n)
        for j in range(numz):
            if barr[i, j]:
                total = 0.0
                for k in range(low, high):
                    total += blur[k, j]
                out[i, j] = total / (1.0 + 2.0 * width)
    return out


def point_smoothing_peak_width(blur: np.ndarray, barr: np.ndarray, tables: PeakShapeTables) -> np.ndarray:
    """Smooth by reconvolving every charge column with the peak shape."""
    newblur, _ = reconvolve(blur, barr, tables)
    return newblur


def beta_factor(data_int: np.ndarray) -> float:
    """Scale that makes beta independent of the absolute intensity."""
    maxint = float(np.max(data_int)) if len(data_int) > 0 else 0.0
    return maxint if maxint > 1 else 1.0
