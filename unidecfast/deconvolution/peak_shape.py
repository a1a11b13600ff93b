"""m/z peak shapes and convolution windows.

Every spectrum point i gets a window [start[i], end[i]] of points whose
peak-shape contribution is non-negligible. Windows that run past either end of
the spectrum are reflected back into it (index mirrored around the first/last
point) instead of being truncated, so intensity near the spectrum edges is
not lost.

Two storage layouts:

- Bounded mode (speedyflag == 0): dense L x (maxlength + 1) table, row i
  holds peakshape(mz[i], mz[fixk(start[i] + c)]) for c = 0..end[i]-start[i].
- Circular mode (speedyflag == 1): one length-L kernel centred on index 0,
  addressed with modular arithmetic. Assumes uniform m/z spacing.

Performance
-----------
Table construction is parallel over rows (numba prange). Tables are built
once per run and reused by every iteration.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import numba as nb
from numba import njit

from ..config import Config, PeakShape
from ..constants import SPLIT_GAUSSIAN_FACTOR
from ..exceptions import InvalidConfigError
from ..utils import fixk, indexmod, median_spacing, nearfast

logger = logging.getLogger(__name__)


@njit(cache=True)
def mzpeakshape(x: float, y: float, sig: float, psfun: int) -> float:
    """Peak shape value at y for a peak centred at x.

    Args:
        x: Peak centre
        y: Evaluation point
        sig: Width (sigma for Gaussian, FWHM for Lorentzian)
        psfun: 0 Gaussian, 1 Lorentzian, 2 split Gaussian/Lorentzian

    Returns:
        Peak height at y (1.0 at the centre)
    """
    d2 = (x - y) * (x - y)
    if psfun == 0:
        return math.exp(-d2 / (2.0 * sig * sig))
    elif psfun == 1:
        hw = sig / 2.0
        return hw * hw / (d2 + hw * hw)
    elif psfun == 2:
        if y < x:
            return math.exp(-d2 / (2.0 * sig * sig * SPLIT_GAUSSIAN_FACTOR))
        hw = sig / 2.0
        return hw * hw / (d2 + hw * hw)
    return 0.0


def check_peak_width(sig: float, psfun: int) -> None:
    """Raise InvalidConfigError for peak shapes that cannot be evaluated."""
    if sig == 0:
        raise InvalidConfigError("Peak shape width (mzsig) must be non-zero")
    if psfun not in (PeakShape.GAUSSIAN, PeakShape.LORENTZIAN, PeakShape.SPLIT_GAUSSIAN_LORENTZIAN):
        raise InvalidConfigError(f"Unknown peak shape function: {psfun}")


@njit(cache=True)
def set_starts_ends(mz: np.ndarray, threshold: float, speedy: bool) -> Tuple[np.ndarray, np.ndarray, int]:
    """Compute reflected convolution windows for every spectrum point.

    Args:
        mz: Ascending m/z values
        threshold: Window half-width in m/z units
        speedy: Circular mode (no reflection, windows clamp at the edges)

    Returns:
        (starttab, endtab, maxlength) where maxlength = max(end - start)
    """
    n = len(mz)
    starttab = np.zeros(n, dtype=np.int64)
    endtab = np.zeros(n, dtype=np.int64)
    first = mz[0]
    last = mz[n - 1]
    maxlength = 1
    for i in range(n):
        point = mz[i] - threshold
        if point < first and not speedy:
            # Mirror around the first point; negative index, fixk reflects it back
            start = -nearfast(mz, 2.0 * first - point)
        else:
            start = nearfast(mz, point)

        point = mz[i] + threshold
        if point > last and not speedy:
            end = (n - 1) + ((n - 1) - nearfast(mz, 2.0 * last - point))
        else:
            end = nearfast(mz, point)

        starttab[i] = start
        endtab[i] = end
        if end - start > maxlength:
            maxlength = end - start
    return starttab, endtab, maxlength


@nb.njit(parallel=True, cache=True)
def make_peak_shape_2d(
    mz: np.ndarray,
    starttab: np.ndarray,
    endtab: np.ndarray,
    maxlength: int,
    sig: float,
    psfun: int,
    reverse: bool,
) -> np.ndarray:
    """Dense bounded-mode peak shape table, L x (maxlength + 1).

    With ``reverse`` the arguments of the peak shape are swapped, giving the
    mirrored kernel used by the symmetric update.
    """
    n = len(mz)
    table = np.zeros((n, maxlength + 1), dtype=np.float64)
    for i in nb.prange(n):
        start = starttab[i]
        width = min(endtab[i] - start, maxlength)
        for c in range(width + 1):
            k = fixk(start + c, n)
            if reverse:
                table[i, c] = mzpeakshape(mz[k], mz[i], sig, psfun)
            else:
                table[i, c] = mzpeakshape(mz[i], mz[k], sig, psfun)
    return table


@njit(cache=True)
def make_peak_shape_1d(mz: np.ndarray, threshold: float, sig: float, psfun: int, reverse: bool) -> np.ndarray:
    """Circular-mode peak shape kernel of length L centred on index 0."""
    n = len(mz)
    kernel = np.zeros(n, dtype=np.float64)
    binsize = mz[1] - mz[0]
    newrange = int(threshold / binsize)
    for k in range(-newrange, newrange):
        idx = indexmod(n, 0, k)
        if reverse:
            kernel[idx] = mzpeakshape(k * binsize, 0.0, sig, psfun)
        else:
            kernel[idx] = mzpeakshape(0.0, k * binsize, sig, psfun)
    return kernel


@dataclass
class PeakShapeTables:
    """Window tables and peak-shape kernels of one run.

    Attributes
    ----------
    starttab, endtab : np.ndarray
        Window bounds per spectrum point (may lie outside [0, L) when reflected)
    maxlength : int
        Widest window
    threshold : float
        Window half-width in m/z
    mzdist : np.ndarray
        Forward kernel: L x (maxlength + 1) table or length-L circular kernel
    rmzdist : np.ndarray, optional
        Mirrored kernel (built when mzsig < 0 or beta < 0)
    speedy : bool
        True for the circular layout
    """

    starttab: np.ndarray
    endtab: np.ndarray
    maxlength: int
    threshold: float
    mzdist: np.ndarray
    rmzdist: Optional[np.ndarray]
    speedy: bool

    @property
    def reverse(self) -> np.ndarray:
        """Mirrored kernel, or the forward kernel when none was built."""
        return self.rmzdist if self.rmzdist is not None else self.mzdist

    @property
    def nbytes(self) -> int:
        total = self.starttab.nbytes + self.endtab.nbytes + self.mzdist.nbytes
        if self.rmzdist is not None:
            total += self.rmzdist.nbytes
        return total


def build_peak_shape(config: Config, mz: np.ndarray, inflate: bool = True) -> PeakShapeTables:
    """Build windows and peak shape kernels for a spectrum.

    Parameters
    ----------
    config : Config
        Normalized configuration; ``mzsig`` must be non-zero
    mz : np.ndarray
        Ascending m/z values
    inflate : bool, default=True
        Apply ``peakshapeinflate`` (used during iteration); finalize rebuilds
        with ``inflate=False``

    Returns
    -------
    PeakShapeTables
    """
    inflation = config.peakshapeinflate if inflate else 1.0
    sig = abs(config.mzsig) * inflation
    check_peak_width(sig, config.psfun)

    speedy = config.speedyflag == 1
    threshold = config.psthresh * sig
    starttab, endtab, maxlength = set_starts_ends(mz, threshold, speedy)
    makereverse = config.mzsig < 0 or config.beta < 0
    psfun = int(config.psfun)

    if speedy:
        spacing = median_spacing(mz)
        if spacing > 0 and np.max(np.abs(np.diff(mz) - spacing)) > 0.01 * spacing:
            logger.warning(
                f"Circular peak shape assumes uniform m/z spacing; spacing varies around {spacing:.5f}"
            )
        mzdist = make_peak_shape_1d(mz, threshold, sig, psfun, False)
        rmzdist = make_peak_shape_1d(mz, threshold, sig, psfun, True) if makereverse else None
    else:
        mzdist = make_peak_shape_2d(mz, starttab, endtab, maxlength, sig, psfun, False)
        rmzdist = (
            make_peak_shape_2d(mz, starttab, endtab, maxlength, sig, psfun, True)
            if makereverse else None
        )

    tables = PeakShapeTables(
        starttab=starttab,
        endtab=endtab,
        maxlength=maxlength,
        threshold=threshold,
        mzdist=mzdist,
        rmzdist=rmzdist,
        speedy=speedy,
    )
    logger.info(
        f"Peak shape: {'circular' if speedy else 'bounded'} mode, "
        f"window ±{threshold:.4f} m/z, maxlength={maxlength}"
    )
    return tables
