"""Sparse neighborhood blur: the charge/oligomer smoothing prior.

Every accepted (point, charge) cell is linked to ``numclose`` neighbor cells
at fixed charge offsets (``closezind``) and oligomer-mass offsets
(``closemind`` * molig). A neighbor offset is turned into a predicted m/z,
the nearest real spectrum point is looked up, and the link is live only if
that point is within tolerance and accepted itself. Each live link carries a
Gaussian weight (charge Gaussian x mass Gaussian x peak-shape match).

Absent links are marked by the ``live`` mask of the NeighborTable, never by an
index sentinel. NeighborTable.neighbor() returns None for them.

Blur variants
-------------
One kernel covers all four averaging modes. Neighbors are arranged as a
(zlength x mlength) block; the inner average runs along the charge axis and
the outer one along the mass axis, each either linear or log-domain:

===================  ==============  ==============
BlurMode             charge axis     mass axis
===================  ==============  ==============
LINEAR               linear          linear
LOG_MEAN             log             log
HYBRID_LOG_CHARGE    log             linear (mdist)
HYBRID_LOG_MASS      linear (zdist)  log
===================  ==============  ==============

Log-domain averaging takes a geometric mean, substituting ``zerolog`` for the
log of a non-positive value or an absent neighbor. A charge offset that
falls outside the charge range is an absent neighbor, so the edge charges
of the grid are penalized like any cell with missing support.
"""

import logging
import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

import numpy as np
import numba as nb

from ..utils import nearfast, simp_norm_sum
from .peak_shape import mzpeakshape

logger = logging.getLogger(__name__)


class BlurMode(IntEnum):
    """Averaging mode of the neighborhood blur."""
    LINEAR = 0
    LOG_MEAN = 1
    HYBRID_LOG_CHARGE = 2
    HYBRID_LOG_MASS = 3


def select_blur_mode(zsig: float, msig: float) -> BlurMode:
    """Pick the blur variant from the signs of the charge and mass widths."""
    if zsig >= 0 and msig >= 0:
        return BlurMode.LOG_MEAN
    if zsig > 0 and msig < 0:
        return BlurMode.HYBRID_LOG_CHARGE
    if zsig < 0 and msig > 0:
        return BlurMode.HYBRID_LOG_MASS
    return BlurMode.LINEAR


@dataclass
class BlurOffsets:
    """Charge/mass offsets of the blur neighborhood and their weights.

    Neighbor k sits at charge offset ``closezind[k] = zind[k // mlength]``
    and mass offset ``closemind[k] = mind[k % mlength]``.
    """

    zlength: int
    mlength: int
    zind: np.ndarray
    mind: np.ndarray
    zdist: np.ndarray
    mdist: np.ndarray
    closezind: np.ndarray
    closemind: np.ndarray
    closeval: np.ndarray

    @property
    def numclose(self) -> int:
        return self.zlength * self.mlength


def _axis_length(sig: float, gaussian_tails: bool) -> int:
    if not gaussian_tails:
        return 1 + 2 * int(sig)
    if sig == 0:
        return 1
    return 1 + 2 * int(3 * abs(sig) + 0.5)


def _axis_offsets(length: int, sig: float) -> Tuple[np.ndarray, np.ndarray]:
    ind = np.arange(length, dtype=np.int64) - (length - 1) // 2
    if sig != 0:
        dist = np.exp(-(ind.astype(np.float64) ** 2) / (2.0 * sig * sig))
    else:
        dist = np.ones(length, dtype=np.float64)
    return ind, dist


def make_blur_offsets(zsig: float, msig: float) -> BlurOffsets:
    """Build the neighbor offsets and Gaussian weights.

    With non-negative widths the neighborhood spans ``int(sig)`` steps on
    each side; a negative width on either axis switches both axes to a
    Gaussian truncated at three sigma.

    Args:
        zsig: Charge-axis width
        msig: Oligomer-mass-axis width

    Returns:
        BlurOffsets with zdist, mdist and closeval each normalized to sum 1
    """
    gaussian_tails = not (zsig >= 0 and msig >= 0)
    zlength = _axis_length(zsig, gaussian_tails)
    mlength = _axis_length(msig, gaussian_tails)

    zind, zdist = _axis_offsets(zlength, zsig)
    mind, mdist = _axis_offsets(mlength, msig)

    numclose = zlength * mlength
    k = np.arange(numclose)
    closezind = np.ascontiguousarray(zind[k // mlength])
    closemind = np.ascontiguousarray(mind[k % mlength])
    closeval = zdist[k // mlength] * mdist[k % mlength]

    return BlurOffsets(
        zlength=zlength,
        mlength=mlength,
        zind=zind,
        mind=mind,
        zdist=simp_norm_sum(zdist),
        mdist=simp_norm_sum(mdist),
        closezind=closezind,
        closemind=closemind,
        closeval=simp_norm_sum(np.ascontiguousarray(closeval)),
    )


@dataclass
class NeighborTable:
    """Resolved neighbor links of every grid cell.

    Attributes
    ----------
    index : np.ndarray
        Spectrum index of each link, L x numz x numclose (meaningless where
        ``live`` is False)
    weight : np.ndarray
        Link weights, L x numz x numclose
    live : np.ndarray
        True where the link resolves to an accepted cell
    closezind : np.ndarray
        Charge offset of each link slot
    """

    index: np.ndarray
    weight: np.ndarray
    live: np.ndarray
    closezind: np.ndarray

    def neighbor(self, i: int, j: int, k: int) -> Optional[Tuple[int, int, float]]:
        """Target cell (point, charge index) and weight of link k, None if absent."""
        if not self.live[i, j, k]:
            return None
        return int(self.index[i, j, k]), j + int(self.closezind[k]), float(self.weight[i, j, k])

    @property
    def numclose(self) -> int:
        return self.index.shape[2]

    @property
    def nbytes(self) -> int:
        return self.index.nbytes + self.weight.nbytes + self.live.nbytes


@nb.njit(parallel=True, cache=True)
def _resolve_neighbors(
    mz, mtab, nztab, barr,
    closezind, closemind, closeval,
    mzsig, psfun, molig, adductmass, massbins, isotopes_on,
):
    n, numz = barr.shape
    numclose = len(closeval)
    index = np.zeros((n, numz, numclose), dtype=np.int64)
    weight = np.zeros((n, numz, numclose), dtype=np.float64)
    live = np.zeros((n, numz, numclose), dtype=np.bool_)
    pruned = barr.copy()
    first = mz[0]
    last = mz[n - 1]

    for i in nb.prange(n):
        # Tolerance adapts to local spacing when no peak width is given
        sig = abs(mzsig)
        if sig == 0.0:
            if i == 0:
                sig = 2.0 * abs(mz[1] - mz[0])
            elif i == n - 1:
                sig = 2.0 * abs(mz[n - 1] - mz[n - 2])
            else:
                sig = 2.0 * abs(mz[i + 1] - mz[i - 1])
            if sig > massbins or sig == 0.0:
                sig = massbins * 2.0
        tolerance = 2.0 * sig

        for j in range(numz):
            if not barr[i, j]:
                continue
            num = 0
            feasible = 0
            for k in range(numclose):
                indz = j + closezind[k]
                if indz < 0 or indz >= numz:
                    continue
                newz = nztab[indz]
                if newz == 0:
                    continue
                feasible += 1
                point = (mtab[i, j] + closemind[k] * molig + adductmass * newz) / newz
                if point < first - tolerance or point > last + tolerance:
                    continue
                ind = nearfast(mz, point)
                if barr[ind, indz] and abs(point - mz[ind]) < tolerance:
                    index[i, j, k] = ind
                    weight[i, j, k] = closeval[k] * mzpeakshape(point, mz[ind], sig, psfun)
                    live[i, j, k] = True
                    num += 1
            # Cells without support from at least one other cell are dropped
            required = min(2, feasible)
            if num < required and not isotopes_on:
                pruned[i, j] = False
    return index, weight, live, pruned


def make_sparse_blur(
    mz: np.ndarray,
    mtab: np.ndarray,
    nztab: np.ndarray,
    barr: np.ndarray,
    offsets: BlurOffsets,
    mzsig: float,
    psfun: int,
    molig: float,
    adductmass: float,
    massbins: float,
    isotopes_on: bool,
) -> Tuple[NeighborTable, np.ndarray]:
    """Resolve every neighbor link and prune unsupported cells.

    A cell whose live link count falls below min(2, number of links whose
    charge is in range) is removed from the acceptance grid, unless isotope
    mode is on.

    Returns
    -------
    (NeighborTable, np.ndarray)
        Neighbor links and the pruned acceptance grid
    """
    index, weight, live, pruned = _resolve_neighbors(
        mz, mtab, nztab, barr,
        offsets.closezind, offsets.closemind, offsets.closeval,
        float(mzsig), int(psfun), float(molig), float(adductmass), float(massbins),
        bool(isotopes_on),
    )
    table = NeighborTable(index=index, weight=weight, live=live, closezind=offsets.closezind)
    logger.info(
        f"Blur neighborhood: {offsets.numclose} links/cell, "
        f"{int(np.sum(barr)) - int(np.sum(pruned))} cells pruned, "
        f"{table.nbytes / 1e6:.1f} MB"
    )
    return table, pruned


@nb.njit(parallel=True, cache=True)
def _blur_kernel(
    blur, barr, index, weight, live, closezind,
    zlength, mlength, zweights, mweights,
    inner_log, outer_log, zerolog,
):
    n, numz = blur.shape
    out = np.zeros((n, numz), dtype=np.float64)
    for i in nb.prange(n):
        for j in range(numz):
            if not barr[i, j]:
                continue
            outer = 0.0
            for m in range(mlength):
                inner = 0.0
                for zi in range(zlength):
                    k = zi * mlength + m
                    # Links to charges outside the grid are never live
                    val = 0.0
                    if live[i, j, k]:
                        val = weight[i, j, k] * blur[index[i, j, k], j + closezind[k]] * zweights[zi]
                    if inner_log:
                        if val > 0.0:
                            inner += math.log(val)
                        else:
                            inner += zerolog
                    else:
                        inner += val
                if inner_log:
                    g = math.exp(inner / zlength)
                else:
                    g = inner
                if outer_log:
                    if g > 0.0:
                        outer += math.log(g)
                    else:
                        outer += zerolog
                else:
                    outer += g * mweights[m]
            if outer_log:
                out[i, j] = math.exp(outer / mlength)
            else:
                out[i, j] = outer
    return out


def blur_grid(
    mode: BlurMode,
    blur: np.ndarray,
    barr: np.ndarray,
    neighbors: NeighborTable,
    offsets: BlurOffsets,
    zerolog: float,
) -> np.ndarray:
    """Apply the neighborhood blur to the probability grid.

    Parameters
    ----------
    mode : BlurMode
        Averaging mode (see module docstring)
    blur : np.ndarray
        Current grid, L x numz
    barr : np.ndarray
        Acceptance grid; rejected cells come out as zero
    neighbors : NeighborTable
        Resolved links from make_sparse_blur
    offsets : BlurOffsets
        Offsets and axis weights
    zerolog : float
        Log-domain floor

    Returns
    -------
    np.ndarray
        Blurred grid (new array)
    """
    if offsets.numclose == 1:
        return blur.copy()

    ones_z = np.ones(offsets.zlength, dtype=np.float64)
    ones_m = np.ones(offsets.mlength, dtype=np.float64)
    if mode == BlurMode.LINEAR:
        inner_log, outer_log, zweights, mweights = False, False, ones_z, ones_m
    elif mode == BlurMode.LOG_MEAN:
        inner_log, outer_log, zweights, mweights = True, True, ones_z, ones_m
    elif mode == BlurMode.HYBRID_LOG_CHARGE:
        inner_log, outer_log, zweights, mweights = True, False, ones_z, offsets.mdist
    elif mode == BlurMode.HYBRID_LOG_MASS:
        inner_log, outer_log, zweights, mweights = False, True, offsets.zdist, ones_m
    else:
        raise ValueError(f"Unknown blur mode: {mode}")

    return _blur_kernel(
        blur, barr, neighbors.index, neighbors.weight, neighbors.live, neighbors.closezind,
        offsets.zlength, offsets.mlength, zweights, mweights,
        inner_log, outer_log, float(zerolog),
    )
