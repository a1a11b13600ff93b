"""Acceptance grid: which (point, charge) cells may carry intensity.

A cell is accepted when its implied neutral mass lies inside the mass bounds
and its charge is plausible for a natively folded ion of that mass. With a
reference mass list, cells must additionally match one of the listed masses,
either within a mass window (``mtabsig``) or as the nearest spectrum point to
the listed mass at that charge (limit mode).

Cells at points whose intensity does not exceed ``intthresh`` are removed
afterwards by ``kill_b``.
"""

import logging

import numpy as np
import numba as nb
from numba import njit

from ..config import Config
from ..constants import NATIVE_CHARGE_COEFF, NATIVE_CHARGE_EXPONENT
from ..data import Input
from ..utils import nearfast

logger = logging.getLogger(__name__)

# Acceptance modes
MODE_PLAIN = 0
MODE_WINDOWED = 1
MODE_LIMIT = 2


@njit(cache=True)
def native_charge(mass: float) -> float:
    """Average charge of a natively folded ion of the given mass."""
    if mass <= 0.0:
        return 0.0
    return NATIVE_CHARGE_COEFF * mass ** NATIVE_CHARGE_EXPONENT


@njit(cache=True)
def mass_in_limits(mass: float, z: float, masslb: float, massub: float,
                   nativezlb: float, nativezub: float) -> bool:
    """Mass within bounds and charge within the native charge window."""
    if not (masslb < mass < massub):
        return False
    native = native_charge(mass)
    return native + nativezlb < z < native + nativezub


@nb.njit(parallel=True, cache=True)
def _acceptance_grid(
    mz, mtab, nztab, testmasses, mode, mtabsig, adductmass,
    masslb, massub, nativezlb, nativezub,
):
    n, numz = mtab.shape
    barr = np.zeros((n, numz), dtype=np.bool_)
    for i in nb.prange(n):
        for j in range(numz):
            z = nztab[j]
            mass = mtab[i, j]
            if not mass_in_limits(mass, z, masslb, massub, nativezlb, nativezub):
                continue
            if mode == MODE_PLAIN:
                barr[i, j] = True
            elif mode == MODE_WINDOWED:
                for t in range(len(testmasses)):
                    if abs(mass - testmasses[t]) < mtabsig:
                        barr[i, j] = True
                        break
            else:
                for t in range(len(testmasses)):
                    if nearfast(mz, (testmasses[t] + adductmass * z) / z) == i:
                        barr[i, j] = True
                        break
    return barr


def build_acceptance(config: Config, inp: Input) -> np.ndarray:
    """Acceptance grid from mass limits, native charge and reference masses.

    Parameters
    ----------
    config : Config
        Normalized configuration
    inp : Input
        Spectrum with ``mtab`` filled

    Returns
    -------
    np.ndarray
        L x numz bool grid
    """
    if config.mflag == 1 and config.limitflag == 0:
        mode = MODE_WINDOWED
    elif config.mflag == 1 and config.limitflag == 1:
        mode = MODE_LIMIT
    else:
        mode = MODE_PLAIN

    if mode != MODE_PLAIN and len(inp.testmasses) == 0:
        logger.warning("Reference mass list requested but empty, no cell can be accepted")

    barr = _acceptance_grid(
        inp.data_mz, inp.mtab, inp.nztab, inp.testmasses, mode,
        float(config.mtabsig), float(config.adductmass),
        float(config.masslb), float(config.massub),
        float(config.nativezlb), float(config.nativezub),
    )
    logger.info(f"Acceptance grid: {int(np.sum(barr))} of {barr.size} cells accepted")
    return barr


@nb.njit(parallel=True, cache=True)
def _kill_plain(data_int, barr, intthresh):
    n, numz = barr.shape
    out = barr.copy()
    for i in nb.prange(n):
        if data_int[i] <= intthresh:
            for j in range(numz):
                out[i, j] = False
    return out


@nb.njit(parallel=True, cache=True)
def _kill_isotopes(data_int, barr, intthresh, isotopepos, isotopeval):
    n, numz, isolength = isotopepos.shape
    out = barr.copy()
    for i in nb.prange(n):
        for j in range(numz):
            maxval = 0.0
            for k in range(isolength):
                if isotopeval[i, j, k] > maxval:
                    maxval = isotopeval[i, j, k]
            for k in range(isolength):
                if isotopeval[i, j, k] > 0.5 * maxval:
                    if data_int[isotopepos[i, j, k]] <= intthresh:
                        out[i, j] = False
    return out


def kill_b(data_int: np.ndarray, barr: np.ndarray, intthresh: float,
           isotopepos: np.ndarray = None, isotopeval: np.ndarray = None) -> np.ndarray:
    """Reject cells at points with intensity <= intthresh.

    In isotope mode a cell is rejected if any of its major isotope positions
    (above half of the envelope maximum) is at or below the threshold.

    Returns:
        New acceptance grid
    """
    if isotopepos is not None and isotopeval is not None:
        return _kill_isotopes(data_int, barr, float(intthresh), isotopepos, isotopeval)
    return _kill_plain(data_int, barr, float(intthresh))
