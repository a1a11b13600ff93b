"""Projection of the m/z x charge grid onto a one-dimensional mass axis.

Three strategies, selected by ``Config.poolflag``:

- INTEGRATE: every grid cell is split linearly between the two mass bins that
  bracket its neutral mass. Conserves the intensity between the first and last
  bin centres; cells outside them are dropped.
- INTERPOLATE: every mass bin and charge looks up its implied m/z and cubic-
  interpolates the grid column there.
- SMART: as INTERPOLATE when the mass bins are fine compared to the spectrum
  sampling, but averages over all spectrum points under the bin (weighted by
  their position between the neighbouring bins) when a bin spans 5+ points.

All three treat the first/last bins and spectrum points as boundary cases
and never read outside the arrays.

Performance
-----------
Interpolate and Smart are parallel over mass bins (gather). Integrate
scatters into the bins and runs serially.
"""

import logging
import math
from typing import Tuple

import numpy as np
import numba as nb
from numba import njit

from ..config import Config, PoolingMode
from ..exceptions import InvalidConfigError
from ..utils import (
    cubic_interpolate,
    linear_interpolate,
    linear_interpolate_position,
    nearfast,
)

logger = logging.getLogger(__name__)


@njit(cache=True)
def integrate_transform(
    mtab: np.ndarray,
    grid: np.ndarray,
    massaxis: np.ndarray,
    massmin: float,
    massmax: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Split each cell's value between its two nearest mass bins.

    Args:
        mtab: Neutral mass of every cell, L x numz
        grid: Grid to project, L x numz
        massaxis: Mass bin centres (ascending, length mlen)
        massmin, massmax: Cells outside (massmin, massmax) are ignored

    Cells beyond the first or last bin centre have no bracketing pair and
    are dropped.

    Returns:
        (massaxisval, massgrid) of shapes (mlen,) and (mlen, numz)
    """
    n, numz = grid.shape
    mlen = len(massaxis)
    massaxisval = np.zeros(mlen, dtype=np.float64)
    massgrid = np.zeros((mlen, numz), dtype=np.float64)
    if mlen == 0:
        return massaxisval, massgrid
    for i in range(n):
        for j in range(numz):
            testmass = mtab[i, j]
            if not (massmin < testmass < massmax):
                continue
            newval = grid[i, j]
            if newval == 0.0:
                continue
            index = nearfast(massaxis, testmass)
            if massaxis[index] == testmass:
                massaxisval[index] += newval
                massgrid[index, j] += newval
            elif massaxis[index] < testmass and index < mlen - 1:
                index2 = index + 1
                pos = linear_interpolate_position(massaxis[index], massaxis[index2], testmass)
                massaxisval[index] += (1.0 - pos) * newval
                massgrid[index, j] += (1.0 - pos) * newval
                massaxisval[index2] += pos * newval
                massgrid[index2, j] += pos * newval
            elif massaxis[index] > testmass and index > 0:
                index2 = index - 1
                pos = linear_interpolate_position(massaxis[index], massaxis[index2], testmass)
                massaxisval[index] += (1.0 - pos) * newval
                massgrid[index, j] += (1.0 - pos) * newval
                massaxisval[index2] += pos * newval
                massgrid[index2, j] += pos * newval
    return massaxisval, massgrid


@njit(cache=True)
def _interpolate_column(mz, grid, j, mztest, index):
    """Cubic interpolation of column j at mztest, linear next to the spectrum edges."""
    n = len(mz)
    if mz[index] == mztest:
        return max(grid[index, j], 0.0)
    if mz[index] > mztest:
        lo = index - 1
        hi = index
    else:
        lo = index
        hi = index + 1
    if lo < 0 or hi > n - 1:
        return 0.0
    if mz[hi] - mz[lo] == 0.0:
        return 0.0
    mu = (mztest - mz[lo]) / (mz[hi] - mz[lo])
    if lo >= 1 and hi <= n - 2:
        val = cubic_interpolate(grid[lo - 1, j], grid[lo, j], grid[hi, j], grid[hi + 1, j], mu)
    else:
        val = linear_interpolate(grid[lo, j], grid[hi, j], mu)
    return max(val, 0.0)


@nb.njit(parallel=True, cache=True)
def interpolate_transform(
    mz: np.ndarray,
    nztab: np.ndarray,
    grid: np.ndarray,
    massaxis: np.ndarray,
    adductmass: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Cubic interpolation of every charge column at each bin's implied m/z.

    Only bins whose implied m/z lies strictly inside the spectrum contribute.

    Returns:
        (massaxisval, massgrid)
    """
    n, numz = grid.shape
    mlen = len(massaxis)
    startmz = mz[0]
    endmz = mz[n - 1]
    massaxisval = np.zeros(mlen, dtype=np.float64)
    massgrid = np.zeros((mlen, numz), dtype=np.float64)
    for i in nb.prange(mlen):
        val = 0.0
        for j in range(numz):
            z = nztab[j]
            mztest = (massaxis[i] + z * adductmass) / z
            if mztest > startmz and mztest < endmz:
                index = nearfast(mz, mztest)
                newval = _interpolate_column(mz, grid, j, mztest, index)
                massgrid[i, j] = newval
                val += newval
        massaxisval[i] = val
    return massaxisval, massgrid


@nb.njit(parallel=True, cache=True)
def smart_transform(
    mz: np.ndarray,
    nztab: np.ndarray,
    grid: np.ndarray,
    massaxis: np.ndarray,
    adductmass: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Interpolate fine bins, average over spectrum points for coarse bins.

    A bin whose neighbouring bins span fewer than 5 spectrum points is
    interpolated (cubic, linear next to the edges, linear decay to zero just
    outside the spectrum). Wider bins average every spectrum point between
    the neighbouring bin centres, each weighted by its fractional position
    between the neighbour and this bin.

    Returns:
        (massaxisval, massgrid)
    """
    n, numz = grid.shape
    mlen = len(massaxis)
    startmz = mz[0]
    endmz = mz[n - 1]
    massaxisval = np.zeros(mlen, dtype=np.float64)
    massgrid = np.zeros((mlen, numz), dtype=np.float64)
    for i in nb.prange(mlen):
        val = 0.0
        mtest = massaxis[i]
        for j in range(numz):
            z = nztab[j]
            mztest = (mtest + z * adductmass) / z

            if i > 0:
                mlower = massaxis[i - 1]
            else:
                mlower = mtest
            if i < mlen - 1:
                mupper = massaxis[i + 1]
            else:
                mupper = mtest
            mzlower = (mlower + z * adductmass) / z
            mzupper = (mupper + z * adductmass) / z
            # Negative charges reverse the m/z order of the neighbours
            if mzlower > mzupper:
                mzlower, mzupper = mzupper, mzlower

            if not (mzupper > startmz and mzlower < endmz):
                continue

            index = nearfast(mz, mztest)
            index1 = nearfast(mz, mzlower)
            index2 = nearfast(mz, mzupper)
            newval = 0.0

            if index2 - index1 < 5:
                if mztest < startmz:
                    spacing = mz[1] - mz[0]
                    mu = (startmz - mztest) / spacing if spacing > 0 else 1.0
                    newval = max(linear_interpolate(grid[0, j], 0.0, mu), 0.0)
                elif mztest > endmz:
                    spacing = mz[n - 1] - mz[n - 2]
                    mu = (mztest - endmz) / spacing if spacing > 0 else 1.0
                    newval = max(linear_interpolate(grid[n - 1, j], 0.0, mu), 0.0)
                else:
                    newval = _interpolate_column(mz, grid, j, mztest, index)
            else:
                num = 0.0
                for k in range(index1, index2 + 1):
                    kmz = mz[k]
                    km = (kmz - adductmass) * z
                    if mztest < kmz and km < mupper:
                        scale = linear_interpolate_position(mupper, mtest, km)
                    elif kmz < mztest and km > mlower:
                        scale = linear_interpolate_position(mlower, mtest, km)
                    elif kmz == mztest:
                        scale = 1.0
                    else:
                        scale = 0.0
                    newval += scale * grid[k, j]
                    num += scale
                if num != 0.0:
                    newval /= num
                newval = max(newval, 0.0)

            massgrid[i, j] = newval
            val += newval
        massaxisval[i] = val
    return massaxisval, massgrid


@njit(cache=True)
def _scan_mass_range(grid, barr, mtab, nztab, limit, threshold, massbins, massmin, massmax):
    n, numz = grid.shape
    for i in range(n):
        for j in range(numz):
            if barr[i, j] and grid[i, j] > limit:
                z = abs(nztab[j])
                testmax = mtab[i, j] + threshold * z + massbins
                testmin = mtab[i, j] - threshold * z
                if testmax > massmax:
                    massmax = testmax
                if testmin < massmin:
                    massmin = testmin
    return massmin, massmax


def mass_range_from_grid(
    config: Config,
    grid: np.ndarray,
    barr: np.ndarray,
    mtab: np.ndarray,
    nztab: np.ndarray,
    cutoff: float,
    threshold: float,
) -> Tuple[float, float]:
    """Mass range covered by the surviving cells of the grid.

    Every cell above ``max(grid) * cutoff`` widens the range by its neutral
    mass ± the peak-shape window at its charge. Bounds are rounded outward
    to multiples of ``massbins``. With a fixed mass axis the configured bounds
    are returned unchanged.

    Returns:
        (massmin, massmax)
    """
    if config.fixedmassaxis:
        return float(config.masslb), float(config.massub)
    gridmax = float(np.max(grid)) if grid.size > 0 else 0.0
    massmin, massmax = _scan_mass_range(
        grid, barr, mtab, nztab, gridmax * cutoff, float(threshold), float(config.massbins),
        float(config.massub), float(config.masslb),
    )
    massmax = math.ceil(massmax / config.massbins) * config.massbins
    massmin = math.floor(massmin / config.massbins) * config.massbins
    return float(massmin), float(massmax)


def build_mass_axis(massmin: float, massbins: float, mlen: int) -> np.ndarray:
    """Mass bin centres massmin + i * massbins."""
    return massmin + np.arange(mlen, dtype=np.float64) * massbins


def project(
    config: Config,
    grid: np.ndarray,
    mz: np.ndarray,
    mtab: np.ndarray,
    nztab: np.ndarray,
    massaxis: np.ndarray,
    massmin: float,
    massmax: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Project the grid onto the mass axis with the configured pooling mode.

    Raises
    ------
    InvalidConfigError
        Unknown pooling mode
    """
    poolflag = config.poolflag
    if poolflag == PoolingMode.INTEGRATE:
        return integrate_transform(mtab, grid, massaxis, float(massmin), float(massmax))
    elif poolflag == PoolingMode.INTERPOLATE:
        return interpolate_transform(mz, nztab, grid, massaxis, float(config.adductmass))
    elif poolflag == PoolingMode.SMART:
        return smart_transform(mz, nztab, grid, massaxis, float(config.adductmass))
    raise InvalidConfigError(f"Unknown pooling mode: {poolflag}")
