"""Quality score of a deconvolution result.

Every detected mass peak gets four sub-scores in [0, 1], each evaluated over
the peak's window (apex ± FWHM):

- uscore: how well the fit explains the data under the peak, weighted by
  where each charge state puts its intensity in m/z
- mscore: cosine similarity between each charge state's contribution and
  the summed mass spectrum (all charge states agree on the peak shape)
- csscore: unimodality of the charge state distribution
- fscore: 1 for a peak with both half-maximum crossings, halved for a
  missing crossing and halved again if another peak sits inside the FWHM

dscore is their product. The overall score is

    uniscore = R² * sum(h_i^2 * dscore_i) / sum(h_i^2)

over peaks with dscore above a threshold, which puts a single clean peak
fitted with R² ~ 1 close to 1.

Examples
--------
>>> decon = run_unidec(config, mz, intensity)
>>> decon.peaks[:, 2]  # dscore per peak
>>> score(config, decon, inp)
"""

import logging
from typing import Tuple

import numpy as np
from numba import njit

from ..config import Config
from ..data import Decon, Input
from .peaks import detect_peaks, peak_fwhm

logger = logging.getLogger(__name__)


@njit(cache=True)
def cosine_similarity(profile1: np.ndarray, profile2: np.ndarray) -> float:
    """Cosine similarity of two non-negative profiles, 0 if either is all zero.

    Examples
    --------
    >>> round(cosine_similarity(np.array([0.0, 1.0, 2.0]), np.array([0.0, 2.0, 4.0])), 6)
    1.0
    """
    dot_product = 0.0
    norm1 = 0.0
    norm2 = 0.0
    for i in range(len(profile1)):
        dot_product += profile1[i] * profile2[i]
        norm1 += profile1[i] * profile1[i]
        norm2 += profile2[i] * profile2[i]
    if norm1 == 0.0 or norm2 == 0.0:
        return 0.0
    similarity = dot_product / (np.sqrt(norm1) * np.sqrt(norm2))
    return max(0.0, min(1.0, similarity))


def _peak_window(massaxis: np.ndarray, massaxisval: np.ndarray, mass: float,
                 massbins: float) -> Tuple[float, float, int, float, float]:
    """(lo, hi) mass window of a peak plus its FWHM crossings."""
    index = int(np.argmin(np.abs(massaxis - mass)))
    fwhm, left, right, sides = peak_fwhm(massaxis, massaxisval, index)
    width = fwhm if fwhm > 0 else massbins
    return mass - width, mass + width, sides, left, right


def uscore(data_int: np.ndarray, fitdat: np.ndarray, newblur: np.ndarray,
           mtab: np.ndarray, lo: float, hi: float) -> float:
    """Weighted relative absolute residual of the fit under the peak, as 1 - error."""
    total_weight = 0.0
    total = 0.0
    for j in range(newblur.shape[1]):
        sel = (mtab[:, j] >= lo) & (mtab[:, j] <= hi)
        if not np.any(sel):
            continue
        r = newblur[sel, j]
        d = data_int[sel]
        f = fitdat[sel]
        denom = float(np.sum(r * d))
        weight = float(np.sum(r))
        if denom <= 0 or weight <= 0:
            continue
        err = float(np.sum(r * np.abs(d - f))) / denom
        total += weight * min(max(1.0 - err, 0.0), 1.0)
        total_weight += weight
    if total_weight == 0:
        return 0.0
    return total / total_weight


def mscore(massgrid_window: np.ndarray, massaxisval_window: np.ndarray) -> float:
    """Charge-weighted cosine agreement of each charge column with the summed spectrum."""
    weights = np.sum(massgrid_window, axis=0)
    total = float(np.sum(weights))
    if total <= 0:
        return 0.0
    value = 0.0
    for j in range(massgrid_window.shape[1]):
        if weights[j] > 0:
            value += weights[j] * cosine_similarity(
                np.ascontiguousarray(massgrid_window[:, j]), np.ascontiguousarray(massaxisval_window)
            )
    return value / total


def csscore(charge_dist: np.ndarray) -> float:
    """1 - fraction of intensity that rises again walking away from the most intense charge."""
    total = float(np.sum(charge_dist))
    if total <= 0:
        return 0.0
    top = int(np.argmax(charge_dist))
    violation = 0.0
    for k in range(top + 1, len(charge_dist)):
        if charge_dist[k] > charge_dist[k - 1]:
            violation += charge_dist[k] - charge_dist[k - 1]
    for k in range(top - 1, -1, -1):
        if charge_dist[k] > charge_dist[k + 1]:
            violation += charge_dist[k] - charge_dist[k + 1]
    return min(max(1.0 - violation / total, 0.0), 1.0)


def fscore(sides: int, left: float, right: float, mass: float, peak_masses: np.ndarray) -> float:
    """Peak-shape quality from the FWHM crossings and the proximity of other peaks."""
    value = 1.0 if sides == 2 else 0.5
    others = peak_masses[peak_masses != mass]
    if np.any((others > left) & (others < right)):
        value *= 0.5
    return value


def peak_scores(config: Config, decon: Decon, inp: Input, peak_masses: np.ndarray) -> np.ndarray:
    """dscore of every peak (product of the four sub-scores).

    Parameters
    ----------
    config : Config
        Normalized configuration
    decon : Decon
        Finalized result (mass axis, massgrid, newblur and fitdat filled)
    inp : Input
        Spectrum and mtab of the run
    peak_masses : np.ndarray
        Peak positions on the mass axis

    Returns
    -------
    np.ndarray
        dscore per peak
    """
    massaxis = decon.massaxis
    massaxisval = decon.massaxisval
    data_int = inp.data_int
    if config.aggressiveflag == 2 and decon.baseline is not None:
        data_int = data_int - decon.baseline

    dscores = np.zeros(len(peak_masses), dtype=np.float64)
    for p, mass in enumerate(peak_masses):
        lo, hi, sides, left, right = _peak_window(massaxis, massaxisval, float(mass), config.massbins)
        window = (massaxis >= lo) & (massaxis <= hi)

        u = uscore(data_int, decon.fitdat, decon.newblur, inp.mtab, lo, hi)
        m = mscore(decon.massgrid[window], massaxisval[window])
        cs = csscore(np.sum(decon.massgrid[window], axis=0))
        f = fscore(sides, left, right, float(mass), peak_masses)
        dscores[p] = u * m * cs * f
        logger.debug(
            f"Peak {mass:.2f}: u={u:.3f} m={m:.3f} cs={cs:.3f} f={f:.3f}"
        )
    return dscores


def build_peak_table(config: Config, decon: Decon, inp: Input) -> np.ndarray:
    """Detected peaks as an (n, 3) array of mass, normalized height and dscore."""
    if decon.massaxis is None or len(decon.massaxis) == 0 or decon.mass_axis_fallback:
        return np.zeros((0, 3), dtype=np.float64)
    masses, heights = detect_peaks(config, decon.massaxis, decon.massaxisval)
    if len(masses) == 0:
        return np.zeros((0, 3), dtype=np.float64)
    dscores = peak_scores(config, decon, inp, masses)
    return np.column_stack((masses, heights, dscores))


def uniscore_from_peaks(peaks: np.ndarray, rsquared: float, threshold: float = 0.0) -> float:
    """Height²-weighted mean dscore of the peaks above ``threshold``, times R²."""
    if len(peaks) == 0:
        return 0.0
    keep = peaks[:, 2] > threshold
    if not np.any(keep):
        return 0.0
    h2 = peaks[keep, 1] ** 2
    denom = float(np.sum(h2))
    if denom == 0:
        return 0.0
    return float(max(rsquared, 0.0) * np.sum(h2 * peaks[keep, 2]) / denom)


def score(config: Config, decon: Decon, inp: Input, threshold: float = 0.0) -> float:
    """Overall quality score of a finalized deconvolution.

    Args:
        config: Normalized configuration
        decon: Finalized result
        inp: Input of the run
        threshold: Peaks with dscore at or below this are ignored

    Returns:
        uniscore in [0, 1]; 0 when no peak survives or the mass axis fell back
    """
    peaks = build_peak_table(config, decon, inp)
    return uniscore_from_peaks(peaks, decon.rsquared, threshold)
