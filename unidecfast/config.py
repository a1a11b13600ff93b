"""Deconvolution configuration.

The configuration is a single immutable record. Raw, user-facing values go in;
`normalize_config` derives the internal values (sigma instead of FWHM, epsilon
guards, derived flags) and returns a NEW record. Nothing in the library ever
mutates a Config in place, so one normalized Config can be shared read-only by
any number of concurrent runs.

Examples
--------
>>> from unidecfast.config import Config, PeakShape, normalize_config
>>> raw = Config(startz=1, endz=20, mzsig=1.0, psfun=PeakShape.GAUSSIAN)
>>> config = normalize_config(raw)
>>> round(config.mzsig, 4)  # FWHM converted to sigma
0.4247
>>> config.numz
20
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum, IntEnum

from .constants import (
    DEFAULT_CONV_THRESHOLD,
    FWHM_TO_SIGMA,
    PROTON_MASS,
    SIGMA_EPSILON,
)
from .exceptions import InvalidConfigError

logger = logging.getLogger(__name__)


class PeakShape(IntEnum):
    """m/z peak shape functions."""
    GAUSSIAN = 0
    LORENTZIAN = 1
    SPLIT_GAUSSIAN_LORENTZIAN = 2


class PoolingMode(IntEnum):
    """Strategies for projecting the m/z x charge grid onto the mass axis."""
    INTEGRATE = 0
    INTERPOLATE = 1
    SMART = 2


class IsotopeMode(IntEnum):
    """Isotope envelope handling."""
    OFF = 0
    MONOISOTOPIC = 1  # Deconvolve to monoisotopic masses
    AVERAGE = 2       # Deconvolve monoisotopic, report average masses


class PeakNorm(IntEnum):
    """Normalization applied to detected peak heights."""
    NONE = 0
    MAX = 1
    SUM = 2


class ExtractMode(IntEnum):
    """Peak intensity extraction methods (see scoring.peaks.extract_switch)."""
    HEIGHT = 0
    LOCAL_MAX = 1
    INTEGRAL = 2
    CENTER_OF_MASS = 3
    LOCAL_MAX_POSITION = 4
    ESTIMATED_AREA = 5


class ConfigProfile(Enum):
    """Typical acquisition profiles with different resolution and charge ranges."""
    NATIVE_HIGH_RES = "native_high_res"  # Orbitrap/Q-TOF native MS, resolved charge states
    NATIVE_LOW_RES = "native_low_res"    # Broad native peaks, large complexes
    DENATURED = "denatured"              # High charge states, narrow peaks


@dataclass(frozen=True)
class Config:
    """Scalar parameters for one deconvolution run.

    Field names follow the established UniDec parameter names so existing
    configuration files map one-to-one onto this record.

    Charge and mass limits
        startz, endz: charge range (inclusive)
        masslb, massub: mass bounds; a negative value requests a fixed mass axis
        massbins: mass axis bin size (Da)
        nativezlb, nativezub: allowed offset from the native charge
        adductmass: mass of the charge carrier

    Peak shape
        mzsig: m/z peak width (FWHM for Gaussian input, sigma after normalize)
        psfun: PeakShape
        psthresh: window half-width in units of mzsig
        peakshapeinflate: temporary widening of the peak shape during iteration
        speedyflag: 1 for circular (uniform spacing) convolution
        linflag: linearization mode, -1 leaves speedyflag untouched

    Priors and iteration
        numit: iteration budget (negative disables early stopping)
        zsig, msig, molig: charge and oligomer-mass blur widths, oligomer mass
        psig: point smoothing width (>= 1) or peak-width smoothing (< 0)
        beta: softmax sharpening strength
        zerolog: log-domain floor for the log-mean blur
        conv_threshold: convergence threshold of the metric
    """

    # Iteration
    numit: int = 50
    conv_threshold: float = DEFAULT_CONV_THRESHOLD

    # Charge range
    startz: int = 1
    endz: int = 100

    # Priors
    zsig: float = 1.0
    psig: float = 1.0
    beta: float = 0.0
    msig: float = 0.0
    molig: float = 0.0
    zerolog: float = -12.0

    # Peak shape
    mzsig: float = 15.0
    psfun: PeakShape = PeakShape.GAUSSIAN
    psthresh: float = 6.0
    peakshapeinflate: float = 1.0
    speedyflag: int = 0
    linflag: int = -1

    # Mass limits
    massub: float = 5000000.0
    masslb: float = 100.0
    massbins: float = 100.0
    fixedmassaxis: bool = False
    adductmass: float = PROTON_MASS
    nativezub: float = 100.0
    nativezlb: float = -200.0

    # Reference mass list
    mflag: int = 0
    mtabsig: float = 0.0
    limitflag: int = 0

    # Intensity threshold (-1 disables killing of low-intensity cells)
    intthresh: float = 0.0

    # Baseline
    aggressiveflag: int = 0
    baselineflag: int = 1
    filterwidth: int = 20

    # Output
    rawflag: int = 1
    poolflag: PoolingMode = PoolingMode.INTERPOLATE
    orbimode: int = 0
    isotopemode: IsotopeMode = IsotopeMode.OFF
    doubledec: bool = False

    # Peak detection and scoring
    peakwin: float = 500.0
    peakthresh: float = 0.1
    peaknorm: PeakNorm = PeakNorm.MAX
    exchoice: ExtractMode = ExtractMode.HEIGHT
    exwindow: float = 0.0
    exthresh: float = 10.0

    normalized: bool = False

    @property
    def numz(self) -> int:
        """Number of charge states."""
        return self.endz - self.startz + 1

    @property
    def isotopes_on(self) -> bool:
        return self.isotopemode != IsotopeMode.OFF

    @classmethod
    def for_profile(cls, profile: ConfigProfile, **overrides) -> 'Config':
        """Create a raw (unnormalized) config for a typical acquisition profile.

        Args:
            profile: ConfigProfile enum
            **overrides: Field values that replace the preset values

        Returns:
            Config with profile-specific defaults
        """
        if profile == ConfigProfile.NATIVE_HIGH_RES:
            preset = dict(startz=1, endz=50, mzsig=0.85, massbins=1.0,
                          masslb=5000.0, massub=500000.0, zsig=1.0, psig=1.0)
        elif profile == ConfigProfile.NATIVE_LOW_RES:
            preset = dict(startz=1, endz=100, mzsig=10.0, massbins=10.0,
                          masslb=10000.0, massub=5000000.0, zsig=1.0, psig=1.0,
                          psfun=PeakShape.SPLIT_GAUSSIAN_LORENTZIAN)
        elif profile == ConfigProfile.DENATURED:
            preset = dict(startz=5, endz=100, mzsig=0.1, massbins=0.5,
                          masslb=1000.0, massub=200000.0, zsig=1.0, psig=1.0,
                          nativezlb=-1000.0, nativezub=1000.0)
        else:
            raise ValueError(f"Unknown config profile: {profile}")
        preset.update(overrides)
        return cls(**preset)

    def validate(self) -> None:
        """Raise InvalidConfigError for values no run can work with."""
        if self.endz < self.startz:
            raise InvalidConfigError(
                f"endz ({self.endz}) must be >= startz ({self.startz})"
            )
        if self.numit == 0:
            raise InvalidConfigError("numit must be non-zero")
        if self.psthresh < 0:
            raise InvalidConfigError(f"psthresh must be >= 0, got {self.psthresh}")
        if self.normalized and self.massbins <= 0:
            raise InvalidConfigError(f"massbins must be > 0, got {self.massbins}")
        try:
            PeakShape(self.psfun)
        except ValueError:
            raise InvalidConfigError(f"Unknown peak shape function: {self.psfun}") from None
        try:
            PoolingMode(self.poolflag)
        except ValueError:
            raise InvalidConfigError(f"Unknown pooling mode: {self.poolflag}") from None


def normalize_config(config: Config) -> Config:
    """Derive internal parameter values from raw user values.

    Pure function: returns a new Config with ``normalized=True`` and leaves the
    argument untouched. Normalizing an already normalized config returns it
    unchanged.

    Parameters
    ----------
    config : Config
        Raw configuration (mzsig given as FWHM)

    Returns
    -------
    Config
        Normalized configuration ready for a run
    """
    if config.normalized:
        return config
    config.validate()

    changes = {"normalized": True}

    mzsig = config.mzsig
    if config.psfun == PeakShape.GAUSSIAN:
        mzsig = mzsig / FWHM_TO_SIGMA

    if config.mflag == 1 and config.mtabsig == 0:
        changes["limitflag"] = 1

    if config.linflag != -1:
        changes["speedyflag"] = 0 if config.linflag == 2 else 1

    massub = config.massub
    masslb = config.masslb
    fixedmassaxis = config.fixedmassaxis
    if massub < 0 or masslb < 0:
        fixedmassaxis = True
        massub = abs(massub)
        masslb = abs(masslb)
    changes["massub"] = massub
    changes["masslb"] = masslb
    changes["fixedmassaxis"] = fixedmassaxis

    # Division guards
    changes["msig"] = SIGMA_EPSILON if config.msig == 0 else config.msig
    changes["zsig"] = SIGMA_EPSILON if config.zsig == 0 else config.zsig
    changes["massbins"] = 1.0 if config.massbins == 0 else config.massbins

    changes["baselineflag"] = 1 if config.aggressiveflag in (1, 2) else 0

    if config.psig < 0:
        mzsig = mzsig / 3.0
    changes["mzsig"] = mzsig

    changes["psfun"] = PeakShape(config.psfun)
    changes["poolflag"] = PoolingMode(config.poolflag)
    changes["isotopemode"] = IsotopeMode(config.isotopemode)

    normalized = dataclasses.replace(config, **changes)
    logger.debug(
        f"Normalized config: numz={normalized.numz}, mzsig={normalized.mzsig:.5f}, "
        f"speedy={normalized.speedyflag}, fixedmassaxis={normalized.fixedmassaxis}"
    )
    return normalized
