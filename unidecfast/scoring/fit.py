"""Reconstruction of the fitted spectrum from the probability grid.

The fit is the forward model of the deconvolution evaluated once more on the
final grid: charges are summed (or isotopes scattered), the result is
convolved with the peak shape, the baseline is added back when it was
estimated during iteration, and the curve is scaled to the data maximum.
"""

import logging
from typing import Optional, Tuple

import numpy as np

from ..config import Config
from ..deconvolution.convolution import convolve_simp, sum_deltas
from ..deconvolution.peak_shape import PeakShapeTables
from ..utils import clip_negatives

logger = logging.getLogger(__name__)


def error_function(
    config: Config,
    blur: np.ndarray,
    barr: np.ndarray,
    data_int: np.ndarray,
    tables: Optional[PeakShapeTables],
    baseline: Optional[np.ndarray] = None,
    isotopepos: Optional[np.ndarray] = None,
    isotopeval: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, float, float]:
    """Fitted spectrum, sum of squared errors and R².

    Parameters
    ----------
    config : Config
        Normalized configuration
    blur : np.ndarray
        Final probability grid, L x numz
    barr : np.ndarray
        Acceptance grid
    data_int : np.ndarray
        Observed intensities
    tables : PeakShapeTables or None
        Un-inflated peak shape (None when mzsig == 0)
    baseline : np.ndarray, optional
        Baseline estimated during iteration (added when aggressiveflag == 1)
    isotopepos, isotopeval : np.ndarray, optional
        Isotope tables in isotope mode

    Returns
    -------
    (fitdat, error, rsquared)
        error is sum((data - fit)^2); rsquared is 1 - error / SStot, or 0 for
        a flat spectrum
    """
    deltas = sum_deltas(blur, barr, isotopepos, isotopeval)
    if config.mzsig != 0 and config.psig >= 0 and tables is not None:
        fitdat = convolve_simp(deltas, tables)
    else:
        fitdat = deltas

    if config.aggressiveflag == 1 and baseline is not None:
        fitdat = fitdat + baseline
    clip_negatives(fitdat)

    datamax = float(np.max(data_int))
    fitmax = float(np.max(fitdat))
    if fitmax > 0 and datamax > 0:
        fitdat *= datamax / fitmax

    residual = data_int - fitdat
    error = float(np.sum(residual * residual))
    sstot = float(np.sum((data_int - np.mean(data_int)) ** 2))
    rsquared = 1.0 - error / sstot if sstot != 0 else 0.0

    logger.info(f"Fit: error={error:.4g}, R²={rsquared:.5f}")
    return fitdat, error, rsquared


def zero_data_gaps(fitdat: np.ndarray, data_int: np.ndarray) -> np.ndarray:
    """Zero the fit over gaps in the spectrum (two or more consecutive zero points), in place."""
    zero = data_int == 0
    gap = zero[:-1] & zero[1:]
    fitdat[:-1][gap] = 0.0
    fitdat[1:][gap] = 0.0
    return fitdat
