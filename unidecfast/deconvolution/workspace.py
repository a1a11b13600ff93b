"""Per-run scratch buffers of a deconvolution.

A DeconWorkspace owns every table that only lives for the duration of one
run: peak-shape windows and kernels, blur offsets and neighbor links, the
isotope tables, the working acceptance grid and the working copy of the
intensities. Building it performs the whole setup sequence

    acceptance -> isotopes -> neighbor blur (prunes) -> setup check -> KillB

and using it as a context manager releases all buffers on every exit path:

>>> with DeconWorkspace.build(config, inp) as ws:
...     decon = main_deconvolution(config, inp, ws)

Workspaces are never shared, so concurrent runs on different spectra each
build their own.
"""

import logging
from dataclasses import dataclass, fields
from typing import Optional

import numpy as np

from ..config import Config
from ..data import GridShape, Input
from ..exceptions import BadSetupError
from ..isotopes import make_isotopes, setup_isotopes
from .acceptance import build_acceptance, kill_b
from .blur import (
    BlurMode,
    BlurOffsets,
    NeighborTable,
    make_blur_offsets,
    make_sparse_blur,
    select_blur_mode,
)
from .peak_shape import PeakShapeTables, build_peak_shape
from .sharpening import beta_factor

logger = logging.getLogger(__name__)


@dataclass
class DeconWorkspace:
    """Scratch state of one run.

    Attributes
    ----------
    barr : np.ndarray
        Working acceptance grid (after pruning and KillB)
    data_int : np.ndarray
        Working copy of the intensities (baseline-subtracted in aggressive mode 2)
    tables : PeakShapeTables or None
        Peak shape used during iteration (None when mzsig == 0)
    offsets : BlurOffsets
        Blur neighborhood offsets and weights
    neighbors : NeighborTable
        Resolved neighbor links
    blur_mode : BlurMode
        Averaging mode of the neighborhood blur
    isotopepos, isotopeval : np.ndarray, optional
        Isotope tables in isotope mode
    betafactor : float
        Intensity scale applied to beta
    """

    barr: Optional[np.ndarray]
    data_int: Optional[np.ndarray]
    tables: Optional[PeakShapeTables]
    offsets: Optional[BlurOffsets]
    neighbors: Optional[NeighborTable]
    blur_mode: BlurMode = BlurMode.LINEAR
    isotopepos: Optional[np.ndarray] = None
    isotopeval: Optional[np.ndarray] = None
    betafactor: float = 1.0

    @classmethod
    def build(cls, config: Config, inp: Input) -> 'DeconWorkspace':
        """Run the setup sequence for one spectrum.

        Parameters
        ----------
        config : Config
            Normalized configuration
        inp : Input
            Spectrum from make_input (not modified)

        Returns
        -------
        DeconWorkspace

        Raises
        ------
        BadSetupError
            No cell survives acceptance and neighbor pruning
        InvalidConfigError
            Zero peak width or zero isotope envelope width
        """
        tables = build_peak_shape(config, inp.data_mz) if config.mzsig != 0 else None

        barr = build_acceptance(config, inp)

        isotopepos = None
        isotopeval = None
        if config.isotopes_on:
            isolength = setup_isotopes(config, inp, barr)
            isotopepos, isotopeval = make_isotopes(inp, barr, isolength)
            GridShape(inp.length, inp.numz, isolength).check(isotopepos, "isotopepos", isotopes=True)

        offsets = make_blur_offsets(config.zsig, config.msig)
        neighbors, barr = make_sparse_blur(
            inp.data_mz, inp.mtab, inp.nztab, barr, offsets,
            config.mzsig, config.psfun, config.molig, config.adductmass,
            config.massbins, config.isotopes_on,
        )

        if not np.any(barr):
            raise BadSetupError("Setup is bad: no cells accepted")

        if config.intthresh != -1:
            barr = kill_b(inp.data_int, barr, config.intthresh, isotopepos, isotopeval)

        inp.shape.check(barr, "barr")
        workspace = cls(
            barr=barr,
            data_int=inp.data_int.copy(),
            tables=tables,
            offsets=offsets,
            neighbors=neighbors,
            blur_mode=select_blur_mode(config.zsig, config.msig),
            isotopepos=isotopepos,
            isotopeval=isotopeval,
            betafactor=beta_factor(inp.data_int),
        )
        logger.info(
            f"Workspace ready: {int(np.sum(barr))} accepted cells, "
            f"blur mode {workspace.blur_mode.name}, {workspace.nbytes / 1e6:.1f} MB scratch"
        )
        return workspace

    @property
    def nbytes(self) -> int:
        total = 0
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, np.ndarray) or hasattr(value, "nbytes"):
                total += value.nbytes
        return total

    @property
    def released(self) -> bool:
        return self.barr is None

    def release(self) -> None:
        """Drop every scratch buffer. Safe to call more than once."""
        self.barr = None
        self.data_int = None
        self.tables = None
        self.offsets = None
        self.neighbors = None
        self.isotopepos = None
        self.isotopeval = None

    def __enter__(self) -> 'DeconWorkspace':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
