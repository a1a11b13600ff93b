"""Spectrum input and deconvolution result records.

Input holds one spectrum plus the derived per-(point, charge) tables, Decon
holds everything a run produces. Grids are plain 2-D (L x numz) or 3-D
(L x numz x isolength) C-contiguous float64/bool arrays; GridShape checks
their shapes once when they are created so the numba kernels can index them
directly.
"""

import logging
from dataclasses import dataclass, field, fields
from typing import Optional

import numpy as np

from .config import Config
from .constants import DEFAULT_ISOPARAMS
from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridShape:
    """Dimensions of the m/z x charge (x isotope) grids of one run."""

    length: int      # L, number of spectrum points
    numz: int        # number of charge states
    isolength: int = 0

    def check(self, arr: np.ndarray, name: str, isotopes: bool = False) -> np.ndarray:
        """Assert that ``arr`` is a contiguous grid of this shape and return it."""
        expected = (self.length, self.numz, self.isolength) if isotopes else (self.length, self.numz)
        if arr.shape != expected:
            raise InvalidInputError(f"{name} has shape {arr.shape}, expected {expected}")
        if not arr.flags['C_CONTIGUOUS']:
            raise InvalidInputError(f"{name} must be C-contiguous")
        return arr


@dataclass
class Input:
    """One spectrum and its derived lookup tables.

    Attributes
    ----------
    data_mz : np.ndarray
        Strictly ascending m/z values, length L
    data_int : np.ndarray
        Intensities, length L
    nztab : np.ndarray
        Charge states, length numz (int64, never zero)
    mtab : np.ndarray
        Neutral mass of every (point, charge) cell, L x numz
    barr : np.ndarray
        Acceptance grid, L x numz bool
    isotopepos, isotopeval : np.ndarray, optional
        Isotope positions and relative intensities, L x numz x isolength
    testmasses : np.ndarray
        Reference masses for limited/windowed deconvolution
    isoparams : np.ndarray
        10 isotope envelope model parameters
    """

    data_mz: np.ndarray
    data_int: np.ndarray
    nztab: np.ndarray
    mtab: np.ndarray
    barr: np.ndarray
    testmasses: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float64))
    isoparams: np.ndarray = field(default_factory=lambda: DEFAULT_ISOPARAMS.copy())
    isotopepos: Optional[np.ndarray] = None
    isotopeval: Optional[np.ndarray] = None

    @property
    def length(self) -> int:
        return len(self.data_mz)

    @property
    def numz(self) -> int:
        return len(self.nztab)

    @property
    def isolength(self) -> int:
        if self.isotopepos is None:
            return 0
        return self.isotopepos.shape[2]

    @property
    def shape(self) -> GridShape:
        return GridShape(self.length, self.numz, self.isolength)


def make_input(
    config: Config,
    data_mz: np.ndarray,
    data_int: np.ndarray,
    testmasses: Optional[np.ndarray] = None,
    isoparams: Optional[np.ndarray] = None,
) -> Input:
    """Validate a spectrum and build the charge and mass tables.

    Parameters
    ----------
    config : Config
        Normalized configuration
    data_mz : np.ndarray
        m/z values (must be strictly ascending)
    data_int : np.ndarray
        Intensities (same length as data_mz)
    testmasses : np.ndarray, optional
        Reference mass list used when ``config.mflag`` is set
    isoparams : np.ndarray, optional
        Isotope model parameters (defaults to DEFAULT_ISOPARAMS)

    Returns
    -------
    Input
        Populated input with an all-False acceptance grid

    Raises
    ------
    InvalidInputError
        Length mismatch, fewer than two points, duplicate or descending m/z,
        or a zero charge state
    """
    mz = np.ascontiguousarray(data_mz, dtype=np.float64)
    intensity = np.ascontiguousarray(data_int, dtype=np.float64)

    if mz.ndim != 1 or intensity.ndim != 1:
        raise InvalidInputError("m/z and intensity must be 1-D arrays")
    if len(mz) != len(intensity):
        raise InvalidInputError(
            f"m/z and intensity lengths differ: {len(mz)} vs {len(intensity)}"
        )
    if len(mz) < 2:
        raise InvalidInputError(f"Spectrum needs at least 2 points, got {len(mz)}")

    steps = np.diff(mz)
    duplicates = np.flatnonzero(steps == 0)
    if len(duplicates) > 0:
        i = int(duplicates[0])
        raise InvalidInputError(
            f"Duplicate m/z value {mz[i]} at index {i} and {i + 1}; "
            f"remove duplicates before deconvolution"
        )
    if np.any(steps < 0):
        raise InvalidInputError("m/z values must be sorted in ascending order")

    nztab = np.arange(config.startz, config.endz + 1, dtype=np.int64)
    if np.any(nztab == 0):
        raise InvalidInputError(
            f"Charge range {config.startz}..{config.endz} includes charge state 0"
        )

    mtab = np.ascontiguousarray(
        mz[:, None] * nztab[None, :] - config.adductmass * nztab[None, :]
    )
    barr = np.zeros((len(mz), len(nztab)), dtype=np.bool_)

    if testmasses is None:
        testmasses = np.zeros(0, dtype=np.float64)
    if isoparams is None:
        isoparams = DEFAULT_ISOPARAMS.copy()
    isoparams = np.ascontiguousarray(isoparams, dtype=np.float64)
    if len(isoparams) != 10:
        raise InvalidInputError(f"Expected 10 isotope parameters, got {len(isoparams)}")

    logger.info(f"Loaded spectrum: {len(mz)} points, {len(nztab)} charge states")
    return Input(
        data_mz=mz,
        data_int=intensity,
        nztab=nztab,
        mtab=mtab,
        barr=barr,
        testmasses=np.ascontiguousarray(testmasses, dtype=np.float64),
        isoparams=isoparams,
    )


@dataclass
class Decon:
    """Result of one deconvolution run.

    Owned exclusively by the run that produced it. Array fields are filled
    stage by stage; call ``release()`` once the results have been consumed.
    """

    blur: Optional[np.ndarray] = None          # L x numz probability grid
    newblur: Optional[np.ndarray] = None       # L x numz reconvolved (profile) grid
    baseline: Optional[np.ndarray] = None      # L
    noise: Optional[np.ndarray] = None         # L
    fitdat: Optional[np.ndarray] = None        # L, reconstructed spectrum
    massaxis: Optional[np.ndarray] = None      # mlen
    massaxisval: Optional[np.ndarray] = None   # mlen
    massgrid: Optional[np.ndarray] = None      # mlen x numz
    peaks: Optional[np.ndarray] = None         # n_peaks x 3 (mass, height, dscore)

    error: float = 0.0
    rsquared: float = 0.0
    conv: float = 0.0
    iterations: int = 0                        # completed iterations, 1-based
    converged: bool = False
    uniscore: float = 0.0
    mlen: int = 0
    blurmax: float = 0.0
    cutoff: float = 0.0
    mass_axis_fallback: bool = False

    def release(self) -> None:
        """Drop all array fields."""
        for f in fields(self):
            if isinstance(getattr(self, f.name), np.ndarray):
                setattr(self, f.name, None)

    @property
    def mass_spectrum(self) -> np.ndarray:
        """Mass axis and values as an (mlen, 2) array."""
        if self.massaxis is None or self.massaxisval is None:
            return np.zeros((0, 2), dtype=np.float64)
        return np.column_stack((self.massaxis, self.massaxisval))
