"""Parametric isotope envelopes for isotope-resolved deconvolution.

The isotope distribution of a protein of mass m is modelled as an exponential
low-mass tail plus a Gaussian envelope (in units of the average isotope
spacing, 1.0026 Da):

    P(k) ~ alpha * exp(-k * beta) + (1 - alpha) / (sig * sqrt(2 pi)) * exp(-(k - mid)^2 / (2 sig^2))

with alpha, beta, mid and sig power-law/exponential functions of m (see
constants.DEFAULT_ISOPARAMS). For every accepted (point, charge) cell the
envelope is evaluated at its neutral mass and each isotope k is mapped onto
the spectrum point nearest to mz + k * 1.0026 / z.

Examples
--------
>>> from unidecfast.isotopes import isotope_dist
>>> from unidecfast.constants import DEFAULT_ISOPARAMS
>>> dist = isotope_dist(10000.0, 20, DEFAULT_ISOPARAMS)
>>> round(float(dist.sum()), 6)
1.0
"""

import logging
import math
from typing import Tuple

import numpy as np
import numba as nb
from numba import njit

from .config import Config
from .constants import ISOTOPE_MASS_DIFF, SQRT_2PI
from .data import Input
from .exceptions import InvalidConfigError
from .utils import nearfast

logger = logging.getLogger(__name__)


@njit(cache=True)
def isotope_mid(mass: float, isoparams: np.ndarray) -> float:
    """Centre of the Gaussian envelope (isotope units)."""
    return isoparams[4] + isoparams[5] * mass ** isoparams[6]


@njit(cache=True)
def isotope_sig(mass: float, isoparams: np.ndarray) -> float:
    """Width of the Gaussian envelope (isotope units)."""
    return isoparams[7] + isoparams[8] * mass ** isoparams[9]


@njit(cache=True)
def isotope_alpha(mass: float, isoparams: np.ndarray) -> float:
    """Amplitude of the exponential tail."""
    return isoparams[0] * math.exp(-mass * isoparams[1])


@njit(cache=True)
def isotope_beta(mass: float, isoparams: np.ndarray) -> float:
    """Decay constant of the exponential tail."""
    return isoparams[2] * math.exp(-mass * isoparams[3])


@njit(cache=True)
def _fill_isotope_dist(mass, isoparams, out):
    mid = isotope_mid(mass, isoparams)
    sig = isotope_sig(mass, isoparams)
    if sig == 0.0:
        return False
    alpha = isotope_alpha(mass, isoparams)
    beta = isotope_beta(mass, isoparams)
    amp = (1.0 - alpha) / (sig * SQRT_2PI)
    total = 0.0
    for k in range(len(out)):
        e = alpha * math.exp(-k * beta)
        g = amp * math.exp(-((k - mid) ** 2) / (2.0 * sig * sig))
        out[k] = e + g
        total += e + g
    if total > 0.0:
        for k in range(len(out)):
            out[k] = out[k] / total
    return True


def isotope_dist(mass: float, isolength: int, isoparams: np.ndarray) -> np.ndarray:
    """Normalized isotope envelope of a neutral mass.

    Args:
        mass: Neutral (monoisotopic) mass in Da
        isolength: Number of isotopes to evaluate
        isoparams: 10 model parameters

    Returns:
        Length-isolength relative intensities summing to 1

    Raises:
        InvalidConfigError: Envelope width is zero for this mass
    """
    out = np.zeros(isolength, dtype=np.float64)
    if not _fill_isotope_dist(float(mass), isoparams, out):
        raise InvalidConfigError(f"Isotope envelope sigma is 0 at mass {mass}")
    return out


def setup_isotopes(config: Config, inp: Input, barr: np.ndarray) -> int:
    """Number of isotopes needed to cover the envelope of the heaviest accepted mass.

    Returns:
        isolength (at least 4)
    """
    masses = inp.mtab[barr] if np.any(barr) else inp.mtab.ravel()
    masses = masses[masses > 0]
    if len(masses) == 0:
        return 4
    maxmass = float(np.max(masses))
    maxmid = isotope_mid(maxmass, inp.isoparams)
    maxsig = isotope_sig(maxmass, inp.isoparams)
    isolength = max(4, int(maxmid + 4 * maxsig))
    logger.info(f"Isotope envelope: {isolength} isotopes (max mass {maxmass:.1f} Da)")
    return isolength


@nb.njit(parallel=True, cache=True)
def _make_isotopes(mz, mtab, nztab, barr, isoparams, isolength):
    n, numz = barr.shape
    isotopepos = np.zeros((n, numz, isolength), dtype=np.int64)
    isotopeval = np.zeros((n, numz, isolength), dtype=np.float64)
    ok = np.ones(n, dtype=np.bool_)
    for i in nb.prange(n):
        vals = np.zeros(isolength, dtype=np.float64)
        for j in range(numz):
            if not barr[i, j]:
                continue
            if not _fill_isotope_dist(mtab[i, j], isoparams, vals):
                ok[i] = False
                continue
            z = nztab[j]
            for k in range(isolength):
                isotopepos[i, j, k] = nearfast(mz, mz[i] + k * ISOTOPE_MASS_DIFF / z)
                isotopeval[i, j, k] = vals[k]
    return isotopepos, isotopeval, ok


def make_isotopes(inp: Input, barr: np.ndarray, isolength: int) -> Tuple[np.ndarray, np.ndarray]:
    """Isotope positions and relative intensities of every accepted cell.

    Returns
    -------
    (isotopepos, isotopeval)
        L x numz x isolength index and weight tables

    Raises
    ------
    InvalidConfigError
        Envelope width is zero for some accepted mass
    """
    isotopepos, isotopeval, ok = _make_isotopes(
        inp.data_mz, inp.mtab, inp.nztab, barr, inp.isoparams, int(isolength)
    )
    if not np.all(ok):
        bad = int(np.flatnonzero(~ok)[0])
        raise InvalidConfigError(f"Isotope envelope sigma is 0 at spectrum point {bad}")
    return isotopepos, isotopeval


@njit(cache=True)
def monotopic_to_average(blur: np.ndarray, barr: np.ndarray,
                         isotopepos: np.ndarray, isotopeval: np.ndarray) -> np.ndarray:
    """Spread each monoisotopic cell over its isotope positions.

    Scatter-accumulate into a fresh zeroed grid, so the result does not
    depend on the order cells are visited in.

    Returns:
        New grid with the average-mass representation
    """
    n, numz = blur.shape
    isolength = isotopepos.shape[2]
    newblur = np.zeros((n, numz), dtype=np.float64)
    for i in range(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            topval = blur[i, j]
            for k in range(isolength):
                newblur[isotopepos[i, j, k], j] += topval * isotopeval[i, j, k]
    return newblur
