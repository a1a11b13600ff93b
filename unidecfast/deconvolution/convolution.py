"""Forward convolution, reconvolution and the Richardson-Lucy update.

The observed spectrum is modelled as the sum over charge states of the
probability grid, blurred by the m/z peak shape. One Richardson-Lucy update:

1. collapse the L x numz grid to a 1-D delta signal (sum over charges, or
   scatter over isotope positions in isotope mode)
2. convolve the deltas with the peak shape (+ baseline) to get the expected
   spectrum
3. ratio = observed / expected
4. multiply every accepted cell by the ratio at its own point (or at the
   isotope positions it feeds)

The update is multiplicative with a non-negative ratio, so a non-negative grid
stays non-negative.

Performance
-----------
Convolution and ratio application are parallel over spectrum points (numba
prange), every iteration writes only its own output slot. The isotope
delta scatter is serial.
"""

from typing import Optional, Tuple

import numpy as np
import numba as nb
from numba import njit

from ..utils import fixk, indexmod
from .baseline import blur_baseline
from .peak_shape import PeakShapeTables


# =============================================================================
# Convolution kernels
# =============================================================================

@nb.njit(parallel=True, cache=True)
def _convolve_bounded(deltas, starttab, endtab, mzdist):
    n = len(deltas)
    width = mzdist.shape[1]
    denom = np.zeros(n, dtype=np.float64)
    for i in nb.prange(n):
        cv = 0.0
        for k in range(starttab[i], endtab[i] + 1):
            k2 = fixk(k, n)
            c = i - starttab[k2]
            if c >= 0 and c < width:
                cv += deltas[k2] * mzdist[k2, c]
        denom[i] = cv
    return denom


@nb.njit(parallel=True, cache=True)
def _convolve_circular(deltas, starttab, endtab, kernel):
    n = len(deltas)
    denom = np.zeros(n, dtype=np.float64)
    for i in nb.prange(n):
        cv = 0.0
        for k in range(starttab[i], endtab[i] + 1):
            k2 = fixk(k, n)
            cv += deltas[k2] * kernel[indexmod(n, k, i)]
        denom[i] = cv
    return denom


@nb.njit(parallel=True, cache=True)
def _reconvolve_bounded(blur, barr, starttab, endtab, mzdist):
    n, numz = blur.shape
    width = mzdist.shape[1]
    newblur = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            cv = 0.0
            for k in range(starttab[i], endtab[i] + 1):
                k2 = fixk(k, n)
                c = i - starttab[k2]
                if c >= 0 and c < width:
                    cv += blur[k2, j] * mzdist[k2, c]
            newblur[i, j] = cv
    return newblur


@nb.njit(parallel=True, cache=True)
def _reconvolve_circular(blur, barr, starttab, endtab, kernel):
    n, numz = blur.shape
    newblur = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            cv = 0.0
            for k in range(starttab[i], endtab[i] + 1):
                k2 = fixk(k, n)
                cv += blur[k2, j] * kernel[indexmod(n, k, i)]
            newblur[i, j] = cv
    return newblur


def convolve_simp(deltas: np.ndarray, tables: PeakShapeTables, reverse: bool = False) -> np.ndarray:
    """Convolve a 1-D delta signal with the peak shape.

    Args:
        deltas: Length-L signal
        tables: Peak shape tables of the run
        reverse: Use the mirrored kernel

    Returns:
        Length-L convolved signal
    """
    kernel = tables.reverse if reverse else tables.mzdist
    if tables.speedy:
        return _convolve_circular(deltas, tables.starttab, tables.endtab, kernel)
    return _convolve_bounded(deltas, tables.starttab, tables.endtab, kernel)


def reconvolve(blur: np.ndarray, barr: np.ndarray, tables: PeakShapeTables) -> Tuple[np.ndarray, float]:
    """Convolve every charge column of the grid with the peak shape.

    Returns:
        (newblur, newblurmax)
    """
    if tables.speedy:
        newblur = _reconvolve_circular(blur, barr, tables.starttab, tables.endtab, tables.mzdist)
    else:
        newblur = _reconvolve_bounded(blur, barr, tables.starttab, tables.endtab, tables.mzdist)
    newblurmax = float(np.max(newblur)) if newblur.size > 0 else 0.0
    return newblur, newblurmax


# =============================================================================
# Grid <-> spectrum
# =============================================================================

@nb.njit(parallel=True, cache=True)
def _sum_deltas_plain(blur, barr):
    n, numz = blur.shape
    deltas = np.zeros(n, dtype=np.float64)
    for i in nb.prange(n):
        total = 0.0
        for j in range(numz):
            if barr[i, j]:
                total += blur[i, j]
        deltas[i] = total
    return deltas


@njit(cache=True)
def _sum_deltas_isotopes(blur, barr, isotopepos, isotopeval):
    n, numz = blur.shape
    isolength = isotopepos.shape[2]
    deltas = np.zeros(n, dtype=np.float64)
    for i in range(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            val = blur[i, j]
            for k in range(isolength):
                deltas[isotopepos[i, j, k]] += isotopeval[i, j, k] * val
    return deltas


def sum_deltas(
    blur: np.ndarray,
    barr: np.ndarray,
    isotopepos: Optional[np.ndarray] = None,
    isotopeval: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Collapse the grid to a 1-D signal over spectrum points.

    Without isotope tables, sums accepted cells over charge. With them, every
    accepted cell scatters its value onto its isotope positions.
    """
    if isotopepos is not None and isotopeval is not None:
        return _sum_deltas_isotopes(blur, barr, isotopepos, isotopeval)
    return _sum_deltas_plain(blur, barr)


@nb.njit(parallel=True, cache=True)
def _apply_ratios_plain(blur, barr, denom):
    n, numz = blur.shape
    out = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        for j in range(numz):
            if barr[i, j]:
                out[i, j] = denom[i] * blur[i, j]
    return out


@nb.njit(parallel=True, cache=True)
def _apply_ratios_isotopes(blur, barr, denom, isotopepos, isotopeval):
    n, numz = blur.shape
    isolength = isotopepos.shape[2]
    out = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            ratio = 0.0
            for k in range(isolength):
                ratio += isotopeval[i, j, k] * denom[isotopepos[i, j, k]]
            out[i, j] = ratio * blur[i, j]
    return out


def apply_ratios(
    blur: np.ndarray,
    barr: np.ndarray,
    denom: np.ndarray,
    isotopepos: Optional[np.ndarray] = None,
    isotopeval: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Multiply every accepted cell by the observed/expected ratio it sees.

    Rejected cells are set to zero.
    """
    if isotopepos is not None and isotopeval is not None:
        return _apply_ratios_isotopes(blur, barr, denom, isotopepos, isotopeval)
    return _apply_ratios_plain(blur, barr, denom)


@njit(cache=True)
def ratio_signal(data_int: np.ndarray, expected: np.ndarray) -> np.ndarray:
    """observed / expected, zero where expected is zero or observed negative."""
    n = len(data_int)
    ratio = np.zeros(n, dtype=np.float64)
    for i in range(n):
        if expected[i] != 0.0 and data_int[i] >= 0.0:
            ratio[i] = data_int[i] / expected[i]
    return ratio


# =============================================================================
# Richardson-Lucy update
# =============================================================================

def deconvolve_iteration_speedy(
    blur: np.ndarray,
    barr: np.ndarray,
    data_int: np.ndarray,
    tables: Optional[PeakShapeTables],
    mzsig: float,
    psig: float,
    aggressiveflag: int = 0,
    baseline: Optional[np.ndarray] = None,
    mz: Optional[np.ndarray] = None,
    filterwidth: int = 20,
    isotopepos: Optional[np.ndarray] = None,
    isotopeval: Optional[np.ndarray] = None,
) -> np.ndarray:
    """One Richardson-Lucy update of the probability grid.

    Parameters
    ----------
    blur : np.ndarray
        Current (post-blur) grid, L x numz
    barr : np.ndarray
        Acceptance grid
    data_int : np.ndarray
        Observed intensities (working copy, baseline-subtracted if requested)
    tables : PeakShapeTables or None
        Peak shape; None when mzsig == 0 (no convolution)
    mzsig, psig : float
        Peak width and point smoothing settings; convolution is skipped
        when mzsig == 0 or psig < 0, the mirrored pass runs when mzsig < 0
    aggressiveflag : int
        1 re-estimates ``baseline`` in place every iteration
    baseline : np.ndarray, optional
        Length-L baseline (required for aggressiveflag == 1)
    mz : np.ndarray, optional
        m/z values (required for aggressiveflag == 1)
    filterwidth : int
        Baseline filter half-width
    isotopepos, isotopeval : np.ndarray, optional
        Isotope tables in isotope mode

    Returns
    -------
    np.ndarray
        Updated grid (new array)
    """
    use_baseline = aggressiveflag == 1 and baseline is not None
    if use_baseline and mzsig != 0:
        baseline[:] = blur_baseline(baseline, mz, mzsig, filterwidth)

    deltas = sum_deltas(blur, barr, isotopepos, isotopeval)

    if mzsig != 0 and psig >= 0 and tables is not None:
        expected = convolve_simp(deltas, tables)
    else:
        expected = deltas.copy()

    if use_baseline:
        expected = expected + baseline

    ratio = ratio_signal(data_int, expected)

    if mzsig < 0 and tables is not None:
        ratio = convolve_simp(ratio, tables, reverse=True)

    newblur = apply_ratios(blur, barr, ratio, isotopepos, isotopeval)

    if use_baseline:
        smoothed_ratio = blur_baseline(ratio, mz, mzsig, filterwidth)
        baseline *= smoothed_ratio
    return newblur
