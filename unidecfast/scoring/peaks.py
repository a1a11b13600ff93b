"""Peak detection and peak intensity extraction on the mass spectrum.

A peak is a point that is at least ``thresh * max`` and not exceeded by any
other point within ``±window``; ties go to the leftmost point, so a flat
top yields one peak. Peak intensities can be read off in several ways
(ExtractMode), from the plain height to an integral or an area estimated
from height and FWHM.

Examples
--------
>>> import numpy as np
>>> from unidecfast.scoring.peaks import peak_detect
>>> x = np.arange(0.0, 100.0, 1.0)
>>> y = np.exp(-(x - 30.0) ** 2 / 8.0) + 0.5 * np.exp(-(x - 70.0) ** 2 / 8.0)
>>> px, py = peak_detect(x, y, 10.0, 0.1)
>>> px
array([30., 70.])
"""

import logging
import math
from typing import Tuple

import numpy as np
from numba import njit

from ..config import Config, ExtractMode, PeakNorm, PeakShape
from ..utils import cubic_interpolate, linear_interpolate, nearfast

logger = logging.getLogger(__name__)


# =============================================================================
# Detection
# =============================================================================

@njit(cache=True)
def is_peak(x: np.ndarray, y: np.ndarray, window: float, thresh: float, index: int) -> bool:
    """True if point ``index`` is a local maximum within ±window and >= thresh."""
    xval = x[index]
    yval = y[index]
    if yval < thresh:
        return False
    n = len(x)
    # Walk left
    i = index - 1
    while i >= 0 and xval - x[i] <= window:
        if y[i] >= yval:
            return False
        i -= 1
    # Walk right
    i = index + 1
    while i < n and x[i] - xval <= window:
        if y[i] > yval:
            return False
        i += 1
    return True


@njit(cache=True)
def peak_detect(x: np.ndarray, y: np.ndarray, window: float, thresh: float) -> Tuple[np.ndarray, np.ndarray]:
    """All peaks of (x, y).

    Args:
        x: Ascending positions
        y: Intensities
        window: Half-width of the local-maximum neighbourhood (x units)
        thresh: Minimum height relative to max(y)

    Returns:
        (peakx, peaky) in ascending x
    """
    n = len(x)
    peakx = np.zeros(n, dtype=np.float64)
    peaky = np.zeros(n, dtype=np.float64)
    if n == 0:
        return peakx, peaky
    absthresh = thresh * np.max(y)
    plen = 0
    for i in range(n):
        if is_peak(x, y, window, absthresh, i):
            peakx[plen] = x[i]
            peaky[plen] = y[i]
            plen += 1
    return peakx[:plen], peaky[:plen]


def peak_norm(peaky: np.ndarray, mode: PeakNorm) -> np.ndarray:
    """Peak heights normalized to their maximum or sum (new array)."""
    mode = PeakNorm(mode)
    if mode == PeakNorm.MAX and len(peaky) > 0:
        norm = float(np.max(peaky))
    elif mode == PeakNorm.SUM:
        norm = float(np.sum(peaky))
    else:
        norm = 0.0
    if norm != 0:
        return peaky / norm
    return peaky.copy()


@njit(cache=True)
def peak_fwhm(x: np.ndarray, y: np.ndarray, index: int) -> Tuple[float, float, float, int]:
    """Full width at half maximum of the peak at ``index``.

    Walks outward from the apex to the first points at or below half height
    and interpolates linearly between the crossing and its inner neighbour.
    When only one side crosses, the width is mirrored from that side.

    Returns:
        (fwhm, left, right, sides) where sides is the number of half-max
        crossings found (0, 1 or 2); fwhm is -1.0 when sides == 0
    """
    n = len(x)
    half_max = y[index] / 2.0
    apex = x[index]

    left = x[0]
    left_found = False
    for i in range(index - 1, -1, -1):
        if y[i] <= half_max:
            denom = y[i + 1] - y[i]
            if abs(denom) > 1e-10:
                left = x[i] + (half_max - y[i]) / denom * (x[i + 1] - x[i])
            else:
                left = x[i]
            left_found = True
            break

    right = x[n - 1]
    right_found = False
    for i in range(index + 1, n):
        if y[i] <= half_max:
            denom = y[i] - y[i - 1]
            if abs(denom) > 1e-10:
                right = x[i - 1] + (half_max - y[i - 1]) / denom * (x[i] - x[i - 1])
            else:
                right = x[i]
            right_found = True
            break

    if left_found and right_found:
        return right - left, left, right, 2
    elif left_found:
        return 2.0 * (apex - left), left, apex + (apex - left), 1
    elif right_found:
        return 2.0 * (right - apex), apex - (right - apex), right, 1
    return -1.0, apex, apex, 0


# =============================================================================
# Extraction
# =============================================================================

@njit(cache=True)
def extract_height(peak: float, x: np.ndarray, y: np.ndarray) -> float:
    """Intensity at the point nearest to ``peak`` (0 outside the axis)."""
    if peak < x[0] or peak > x[len(x) - 1]:
        return 0.0
    return y[nearfast(x, peak)]


@njit(cache=True)
def extract_localmax(peak: float, x: np.ndarray, y: np.ndarray, window: float) -> float:
    """Maximum intensity within ±window of ``peak``."""
    if peak < x[0] or peak > x[len(x) - 1]:
        return 0.0
    pos1 = nearfast(x, peak - window)
    pos2 = nearfast(x, peak + window)
    localmax = 0.0
    for i in range(pos1, pos2 + 1):
        if y[i] > localmax:
            localmax = y[i]
    return localmax


@njit(cache=True)
def extract_localmax_position(peak: float, x: np.ndarray, y: np.ndarray, window: float) -> float:
    """Position of the maximum within ±window of ``peak``."""
    if peak < x[0] or peak > x[len(x) - 1]:
        return 0.0
    pos1 = nearfast(x, peak - window)
    pos2 = nearfast(x, peak + window)
    localmax = 0.0
    localmaxpos = pos1
    for i in range(pos1, pos2 + 1):
        if y[i] > localmax:
            localmax = y[i]
            localmaxpos = i
    return x[localmaxpos]


@njit(cache=True)
def extract_integral(peak: float, x: np.ndarray, y: np.ndarray, window: float, thresh: float) -> float:
    """Trapezoidal area within ±window of ``peak``.

    Intervals with an end point at or below ``thresh * max(y)`` are skipped.
    """
    if peak < x[0] or peak > x[len(x) - 1]:
        return 0.0
    thresh2 = 0.0
    if thresh > 0:
        thresh2 = thresh * np.max(y)
    pos1 = nearfast(x, peak - window)
    pos2 = nearfast(x, peak + window)
    integral = 0.0
    for i in range(pos1 + 1, pos2 + 1):
        fa = y[i - 1]
        fb = y[i]
        if fa > thresh2 and fb > thresh2:
            integral += (x[i] - x[i - 1]) * (fa + fb) / 2.0
    return integral


@njit(cache=True)
def extract_center_of_mass(peak: float, x: np.ndarray, y: np.ndarray, window: float, thresh: float) -> float:
    """Intensity-weighted mean position within ±window of ``peak``."""
    if peak < x[0] or peak > x[len(x) - 1]:
        return 0.0
    thresh2 = 0.0
    if thresh > 0:
        thresh2 = thresh * np.max(y)
    pos1 = nearfast(x, peak - window)
    pos2 = nearfast(x, peak + window)
    total = 0.0
    weighted = 0.0
    for i in range(pos1, pos2 + 1):
        if y[i] > thresh2:
            total += y[i]
            weighted += x[i] * y[i]
    if total > 0:
        return weighted / total
    return 0.0


def extract_estimated_area(peak: float, x: np.ndarray, y: np.ndarray, window: float,
                           psfun: PeakShape) -> float:
    """Peak area from height and FWHM assuming the configured peak shape.

    Raises:
        ValueError: Unknown peak shape
    """
    pos1 = nearfast(x, peak - window)
    pos2 = nearfast(x, peak + window)
    xwin = x[pos1:pos2 + 1]
    ywin = y[pos1:pos2 + 1]
    index = nearfast(xwin, peak)
    height = ywin[index]
    fwhm, _, _, sides = peak_fwhm(xwin, ywin, index)
    if sides == 0:
        return 0.0

    gauss_coeff = math.sqrt(math.pi / math.log(2.0)) / 2.0
    psfun = PeakShape(psfun)
    if psfun == PeakShape.GAUSSIAN:
        coeff = gauss_coeff
    elif psfun == PeakShape.LORENTZIAN:
        coeff = math.pi / 2.0
    elif psfun == PeakShape.SPLIT_GAUSSIAN_LORENTZIAN:
        coeff = 0.5 * gauss_coeff + math.pi / 4.0
    else:
        raise ValueError(f"Unknown peak shape: {psfun}")
    return height * fwhm * coeff


def extract_switch(config: Config, peak: float, x: np.ndarray, y: np.ndarray) -> float:
    """Peak intensity (or position) by the configured extraction method.

    A zero ``exwindow`` always extracts the plain height. ``exthresh`` is a
    percentage of the spectrum maximum.

    Raises:
        ValueError: Unknown extraction choice
    """
    choice = config.exchoice
    window = config.exwindow
    if window == 0:
        choice = ExtractMode.HEIGHT
    thresh = config.exthresh / 100.0

    if choice == ExtractMode.HEIGHT:
        return float(extract_height(peak, x, y))
    elif choice == ExtractMode.LOCAL_MAX:
        return float(extract_localmax(peak, x, y, window))
    elif choice == ExtractMode.INTEGRAL:
        return float(extract_integral(peak, x, y, window, thresh))
    elif choice == ExtractMode.CENTER_OF_MASS:
        return float(extract_center_of_mass(peak, x, y, window, thresh))
    elif choice == ExtractMode.LOCAL_MAX_POSITION:
        return float(extract_localmax_position(peak, x, y, window))
    elif choice == ExtractMode.ESTIMATED_AREA:
        return float(extract_estimated_area(peak, x, y, window, config.psfun))
    raise ValueError(f"Unknown extraction choice: {choice}")


def detect_peaks(config: Config, massaxis: np.ndarray, massaxisval: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Detect peaks on the mass spectrum and extract their normalized intensities.

    Returns:
        (masses, heights)
    """
    if len(massaxis) == 0 or not np.any(massaxisval > 0):
        logger.warning("No peaks detected: mass spectrum is empty")
        return np.zeros(0, dtype=np.float64), np.zeros(0, dtype=np.float64)

    peakx, _ = peak_detect(massaxis, massaxisval, float(config.peakwin), float(config.peakthresh))
    heights = np.array(
        [extract_switch(config, float(p), massaxis, massaxisval) for p in peakx],
        dtype=np.float64,
    )
    heights = peak_norm(heights, config.peaknorm)
    logger.info(f"Detected {len(peakx)} peaks")
    return peakx, heights
