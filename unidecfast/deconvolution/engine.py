"""Deconvolution driver: setup, Richardson-Lucy iteration and finalization.

One run is strictly staged; every stage reads the complete output of the one
before it:

1. normalize the configuration, validate the spectrum (make_input)
2. build the workspace: peak shape, acceptance grid, isotope tables,
   neighbor blur, KillB (DeconWorkspace.build)
3. seed the grid and the optional baseline
4. iterate SHARPEN -> SMOOTH -> BLUR -> RL-UPDATE -> CHECK until converged
   or out of budget (main_deconvolution)
5. FINALIZE: fit and R², mass axis, projection, optional double
   deconvolution, peaks and score (finalize)

Only the Decon record survives the run; the workspace is released when the
``with`` block exits, also when a stage raises.

Examples
--------
>>> from unidecfast import Config, UniDec
>>> engine = UniDec(Config(startz=1, endz=1, mzsig=1.0, massbins=0.1))
>>> decon = engine.run(mz, intensity)
>>> decon.converged, decon.rsquared, decon.uniscore
"""

import dataclasses
import logging
import warnings
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ..config import Config, IsotopeMode, normalize_config
from ..constants import CONV_SENTINEL, DEFAULT_CONV_THRESHOLD, GRID_CUTOFF
from ..data import Decon, Input, make_input
from ..isotopes import monotopic_to_average
from ..mass_axis.double_decon import double_deconvolution
from ..mass_axis.transforms import build_mass_axis, mass_range_from_grid, project
from ..scoring.fit import error_function, zero_data_gaps
from ..scoring.uniscore import build_peak_table, uniscore_from_peaks
from ..utils import apply_cutoff
from .baseline import deconvolve_baseline
from .blur import blur_grid
from .convolution import deconvolve_iteration_speedy, reconvolve
from .peak_shape import build_peak_shape
from .sharpening import (
    point_smoothing,
    point_smoothing_peak_width,
    softargmax,
    softargmax_transposed,
)
from .workspace import DeconWorkspace

logger = logging.getLogger(__name__)

KernelLike = Union[np.ndarray, Tuple[np.ndarray, np.ndarray], Sequence[np.ndarray]]


# =============================================================================
# Convergence
# =============================================================================

def convergence_metric(blur: np.ndarray, old: np.ndarray, barr: np.ndarray,
                       iteration: int = -1) -> float:
    """sum((blur - old)^2) / sum(blur) over accepted cells.

    A zero denominator (the grid collapsed to zero) returns CONV_SENTINEL
    and logs a warning; the caller keeps iterating.
    """
    current = blur[barr]
    tot = float(np.sum(current))
    if tot == 0:
        logger.warning(f"m/z vs. charge grid is zero at iteration {iteration}")
        return CONV_SENTINEL
    diff = current - old[barr]
    return float(np.sum(diff * diff)) / tot


class ConvergenceMonitor:
    """Decides when the metric is evaluated and when the run has converged.

    The metric is checked on every iteration for budgets below 10, otherwise
    on the first two iterations of every decade and throughout the last 10%
    of the budget. Convergence needs the metric below the threshold on two
    consecutive checks; a check above the threshold re-arms the monitor.
    A negative budget never stops early.

    Examples
    --------
    >>> monitor = ConvergenceMonitor(numit=50, threshold=1e-6)
    >>> monitor.update(1e-8), monitor.update(1e-3), monitor.update(1e-8)
    (False, False, False)
    >>> monitor.update(1e-8)
    True
    """

    def __init__(self, numit: int, threshold: float = DEFAULT_CONV_THRESHOLD):
        self.numit = numit
        self.threshold = threshold
        self.armed = False
        self.converged = False
        self.metric = 0.0

    def should_check(self, iteration: int) -> bool:
        return (
            self.numit < 10
            or iteration % 10 == 0
            or iteration % 10 == 1
            or iteration > 0.9 * self.numit
        )

    def update(self, metric: float) -> bool:
        """Record a checked metric; True once the run has converged."""
        self.metric = metric
        if metric < self.threshold:
            if self.armed and self.numit > 0:
                self.converged = True
                return True
            self.armed = True
        else:
            self.armed = False
        return False


# =============================================================================
# Iteration
# =============================================================================

def seed_grid(config: Config, data_int: np.ndarray, barr: np.ndarray) -> np.ndarray:
    """Initial grid: data / (numz + 2) on accepted cells, 1 in isotope mode."""
    if config.isotopes_on:
        return np.where(barr, 1.0, 0.0)
    val = data_int / float(config.numz + 2)
    return np.where(barr, val[:, None], 0.0)


def estimate_baseline(config: Config, decon: Decon, inp: Input, ws: DeconWorkspace) -> None:
    """Seed and pre-fit the baseline; in aggressive mode 2 subtract it from the working data."""
    val = inp.data_int / float(config.numz + 2)
    decon.baseline = val.copy()
    decon.noise = val.copy()
    if config.mzsig == 0:
        logger.warning("Ignoring baseline subtraction because peak width is 0")
        return

    decon.baseline = deconvolve_baseline(inp.data_int, decon.baseline)
    if config.aggressiveflag == 2:
        for _ in range(10):
            decon.baseline = deconvolve_baseline(inp.data_int, decon.baseline)
        positive = decon.baseline > 0
        ws.data_int[positive] -= decon.baseline[positive]
    logger.info(f"Baseline estimated (aggressive mode {config.aggressiveflag})")


def main_deconvolution(config: Config, inp: Input, ws: DeconWorkspace) -> Decon:
    """Seed the grid and run the iteration loop.

    Parameters
    ----------
    config : Config
        Normalized configuration
    inp : Input
        Validated spectrum
    ws : DeconWorkspace
        Workspace built for this spectrum

    Returns
    -------
    Decon
        With blur, conv, iterations and converged set (and baseline/noise
        when baselineflag is on). ``iterations`` counts completed iterations,
        so an exhausted budget reports ``abs(numit)``
    """
    decon = Decon()
    barr = ws.barr
    blur = seed_grid(config, inp.data_int, barr)
    if config.baselineflag == 1:
        estimate_baseline(config, decon, inp, ws)

    monitor = ConvergenceMonitor(config.numit, config.conv_threshold)
    old = blur.copy()
    beta = config.beta / ws.betafactor
    for iteration in range(abs(config.numit)):
        decon.iterations = iteration + 1
        if iteration > 0:
            if config.beta > 0:
                blur = softargmax(blur, beta)
            elif config.beta < 0:
                blur = softargmax_transposed(
                    blur, barr, abs(beta), ws.tables, config.mzsig, ws.isotopepos, ws.isotopeval
                )

            if config.psig >= 1:
                blur = point_smoothing(blur, barr, int(abs(config.psig)))
            elif config.psig < 0 and ws.tables is not None:
                blur = point_smoothing_peak_width(blur, barr, ws.tables)

        newblur = blur_grid(ws.blur_mode, blur, barr, ws.neighbors, ws.offsets, config.zerolog)

        blur = deconvolve_iteration_speedy(
            newblur, barr, ws.data_int, ws.tables, config.mzsig, config.psig,
            aggressiveflag=config.aggressiveflag,
            baseline=decon.baseline,
            mz=inp.data_mz,
            filterwidth=config.filterwidth,
            isotopepos=ws.isotopepos,
            isotopeval=ws.isotopeval,
        )

        if monitor.should_check(iteration):
            decon.conv = convergence_metric(blur, old, barr, iteration)
            old = blur.copy()
            if monitor.update(decon.conv):
                logger.info(f"Converged in {decon.iterations} iterations")
                break

    if not monitor.converged:
        logger.info(f"Stopped after {decon.iterations} iterations (conv={decon.conv:.3e})")
    decon.blur = blur
    decon.converged = monitor.converged
    return decon


# =============================================================================
# Finalization
# =============================================================================

def _split_kernel(kernel: KernelLike) -> Tuple[np.ndarray, np.ndarray]:
    if isinstance(kernel, np.ndarray) and kernel.ndim == 2:
        return kernel[:, 0], kernel[:, 1]
    kernel_x, kernel_y = kernel
    return np.asarray(kernel_x), np.asarray(kernel_y)


def finalize(config: Config, inp: Input, ws: DeconWorkspace, decon: Decon,
             kernel: Optional[KernelLike] = None) -> Decon:
    """Turn the converged grid into the fit, the mass spectrum and the score.

    Steps: un-inflate the peak shape, cut off at blurmax * 1e-6, fit and R²,
    zero the fit over data gaps, orbitrap charge scaling, monoisotopic to
    average masses, profile reconvolution, mass range and axis (falling back
    to the configured bounds when the derived axis is empty), projection,
    optional double deconvolution, peak table and uniscore.

    Returns
    -------
    Decon
        The same record, completed in place
    """
    barr = ws.barr
    tables = ws.tables
    if config.peakshapeinflate != 1 and config.mzsig != 0:
        tables = build_peak_shape(config, inp.data_mz, inflate=False)
        ws.tables = tables
        logger.info(f"Peak shape reset to mzsig={config.mzsig:.5f}")

    blur = decon.blur
    decon.blurmax = float(np.max(blur)) if blur.size > 0 else 0.0
    decon.cutoff = GRID_CUTOFF if decon.blurmax != 0 else 0.0
    apply_cutoff(blur, decon.blurmax * decon.cutoff)

    decon.fitdat, decon.error, decon.rsquared = error_function(
        config, blur, barr, ws.data_int, tables,
        baseline=decon.baseline, isotopepos=ws.isotopepos, isotopeval=ws.isotopeval,
    )
    if config.intthresh != -1:
        zero_data_gaps(decon.fitdat, inp.data_int)

    if config.orbimode == 1:
        blur = blur / np.abs(inp.nztab)[None, :].astype(np.float64)
        logger.info("Rescaled charge states (orbitrap mode)")

    if config.isotopemode == IsotopeMode.AVERAGE:
        blur = monotopic_to_average(blur, barr, ws.isotopepos, ws.isotopeval)
    decon.blur = blur

    if config.mzsig != 0 and tables is not None:
        decon.newblur, _ = reconvolve(blur, barr, tables)
    else:
        decon.newblur = blur.copy()
    grid = decon.blur if config.rawflag in (1, 3) else decon.newblur

    threshold = tables.threshold if tables is not None else config.psthresh * abs(config.mzsig)
    massmin, massmax = mass_range_from_grid(
        config, grid, barr, inp.mtab, inp.nztab, decon.cutoff, threshold
    )
    mlen = int((massmax - massmin) / config.massbins)

    if mlen < 1:
        logger.warning(
            f"Bad mass axis length {mlen}, no masses detected; "
            f"falling back to [{config.masslb}, {config.massub}]"
        )
        massmin = config.masslb
        massmax = config.massub
        mlen = max(int((massmax - massmin) / config.massbins), 0)
        decon.massaxis = build_mass_axis(massmin, config.massbins, mlen)
        decon.massaxisval = np.zeros(mlen, dtype=np.float64)
        decon.massgrid = np.zeros((mlen, inp.numz), dtype=np.float64)
        decon.mlen = mlen
        decon.mass_axis_fallback = True
        decon.peaks = np.zeros((0, 3), dtype=np.float64)
        decon.uniscore = 0.0
        return decon

    massaxis = build_mass_axis(massmin, config.massbins, mlen)
    massaxisval, massgrid = project(
        config, grid, inp.data_mz, inp.mtab, inp.nztab, massaxis, massmin, massmax
    )
    logger.info(f"Mass axis: {massmin:.2f}-{massmax:.2f} Da, {mlen} bins")

    if config.doubledec:
        if kernel is None:
            warnings.warn("Double deconvolution requested but no kernel given; skipping")
        else:
            kernel_x, kernel_y = _split_kernel(kernel)
            keep = (massaxis >= config.masslb) & (massaxis <= config.massub)
            massaxis, massaxisval = double_deconvolution(config, massaxis, massaxisval, kernel_x, kernel_y)
            if len(massaxis) != len(massgrid):
                massgrid = massgrid[keep]

    decon.massaxis = massaxis
    decon.massaxisval = massaxisval
    decon.massgrid = massgrid
    decon.mlen = len(massaxis)

    decon.peaks = build_peak_table(config, decon, inp)
    decon.uniscore = uniscore_from_peaks(decon.peaks, decon.rsquared, 0.0)
    logger.info(f"Score: uniscore={decon.uniscore:.4f}, {len(decon.peaks)} peaks")
    return decon


# =============================================================================
# Entry points
# =============================================================================

def run_unidec(
    config: Config,
    data_mz: np.ndarray,
    data_int: np.ndarray,
    testmasses: Optional[np.ndarray] = None,
    isoparams: Optional[np.ndarray] = None,
    kernel: Optional[KernelLike] = None,
) -> Decon:
    """Run a complete deconvolution of one spectrum.

    Parameters
    ----------
    config : Config
        Raw or normalized configuration
    data_mz, data_int : np.ndarray
        Spectrum (strictly ascending m/z)
    testmasses : np.ndarray, optional
        Reference masses for limited deconvolution (``mflag``)
    isoparams : np.ndarray, optional
        Isotope model parameters
    kernel : array or (x, y), optional
        Empirical kernel for the double deconvolution, an (n, 2) array or
        an (x, y) pair

    Returns
    -------
    Decon
        Finalized result owned by the caller

    Raises
    ------
    InvalidInputError
        Malformed spectrum (duplicates, wrong order, zero charge)
    InvalidConfigError
        Unusable configuration (zero peak width, unknown modes)
    BadSetupError
        No cell survives acceptance
    """
    config = normalize_config(config)
    inp = make_input(config, data_mz, data_int, testmasses=testmasses, isoparams=isoparams)
    with DeconWorkspace.build(config, inp) as ws:
        decon = main_deconvolution(config, inp, ws)
        finalize(config, inp, ws, decon, kernel=kernel)
    return decon


class UniDec:
    """Reusable deconvolution engine bound to one configuration.

    The configuration is normalized once; every ``run`` builds and releases
    its own workspace, so one engine can process many spectra, also from
    several threads.

    Examples
    --------
    >>> engine = UniDec(Config.for_profile(ConfigProfile.NATIVE_HIGH_RES), numit=100)
    >>> decon = engine.run(mz, intensity)
    >>> decon.mass_spectrum
    """

    def __init__(self, config: Optional[Config] = None, **overrides):
        """Initialize the engine.

        Parameters
        ----------
        config : Config, optional
            Raw or normalized configuration (default: Config())
        **overrides
            Field values replacing those of ``config`` (raw configs only)
        """
        config = config if config is not None else Config()
        if overrides:
            if config.normalized:
                raise ValueError("Cannot override fields of a normalized config")
            config = dataclasses.replace(config, **overrides)
        self.config = normalize_config(config)

    def run(
        self,
        mz: np.ndarray,
        intensity: np.ndarray,
        kernel: Optional[KernelLike] = None,
        testmasses: Optional[np.ndarray] = None,
        isoparams: Optional[np.ndarray] = None,
    ) -> Decon:
        """Deconvolve one spectrum (see run_unidec)."""
        return run_unidec(
            self.config, mz, intensity,
            testmasses=testmasses, isoparams=isoparams, kernel=kernel,
        )
