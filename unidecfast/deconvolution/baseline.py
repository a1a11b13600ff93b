"""Baseline estimation filters.

Used when ``aggressiveflag`` is set:

- aggressiveflag == 1: the baseline is re-estimated every iteration and added
  to the convolved signal before the Richardson-Lucy ratio is formed.
- aggressiveflag == 2: a baseline is estimated once before iterating and
  subtracted from the working copy of the data.

All filters sample with reflection at the spectrum edges (fixk).
"""

import numpy as np
import numba as nb

from ..constants import MIDBLUR_WINDOW
from ..utils import fixk


@nb.njit(parallel=True, cache=True)
def midblur_baseline(baseline: np.ndarray, mult: int) -> np.ndarray:
    """Lower-half mean filter.

    For each point, takes 2*MIDBLUR_WINDOW samples at stride ``mult`` around
    it and averages the lowest half. Peaks sit above the baseline, so the
    lower half of the window tracks the floor of the signal.

    Args:
        baseline: Current baseline estimate (not modified)
        mult: Sampling stride; 0 picks L // 400

    Returns:
        Filtered baseline
    """
    n = len(baseline)
    if mult == 0:
        mult = n // 400
    if mult < 1:
        mult = 1
    window = MIDBLUR_WINDOW
    out = np.zeros(n, dtype=np.float64)
    for i in nb.prange(n):
        med = np.zeros(2 * window, dtype=np.float64)
        index = 0
        for k in range(-window, window):
            med[index] = baseline[fixk(i + k * mult, n)]
            index += 1
        med = np.sort(med)
        val = 0.0
        for k in range(window):
            val += med[k]
        out[i] = val / window
    return out


@nb.njit(parallel=True, cache=True)
def blur_baseline(baseline: np.ndarray, mz: np.ndarray, mzsig: float, filterwidth: int) -> np.ndarray:
    """Mean filter with a stride of two peak widths.

    Args:
        baseline: Current baseline estimate (not modified)
        mz: m/z values (sets the local stride)
        mzsig: Peak width in m/z
        filterwidth: Half-width of the filter in samples

    Returns:
        Filtered baseline
    """
    n = len(baseline)
    out = np.zeros(n, dtype=np.float64)
    for i in nb.prange(n):
        if i < n - 1:
            mzdiff = mz[i + 1] - mz[i]
        else:
            mzdiff = mz[i] - mz[i - 1]
        mult = 1
        if mzdiff > 0:
            mult = int(2.0 * abs(mzsig) / mzdiff)
        if mult < 1:
            mult = 1
        val = 0.0
        for k in range(-filterwidth, filterwidth):
            val += baseline[fixk(i + k * mult, n)]
        out[i] = val / (2.0 * filterwidth + 1.0)
    return out


@nb.njit(cache=True)
def deconvolve_baseline(data_int: np.ndarray, baseline: np.ndarray) -> np.ndarray:
    """One round of the two-pass ratio baseline estimate.

    The baseline is smoothed twice with the lower-half filter, the ratio of
    data to smoothed baseline is smoothed the same way, and the product is the
    new estimate.

    Returns:
        New baseline estimate
    """
    n = len(baseline)
    temp = midblur_baseline(baseline, 0)
    temp = midblur_baseline(temp, 5)
    ratio = np.zeros(n, dtype=np.float64)
    for i in range(n):
        if temp[i] > 0:
            ratio[i] = data_int[i] / temp[i]
    ratio = midblur_baseline(ratio, 0)
    ratio = midblur_baseline(ratio, 5)
    return temp * ratio
