"""UniDecFast - Bayesian deconvolution of native mass spectra.

Deconvolves a raw m/z spectrum into a charge-state-resolved m/z x charge
probability grid and a zero-charge mass spectrum, using Richardson-Lucy
iterations with a peak-shape model, a charge/oligomer neighborhood prior and
optional isotope and baseline models. All per-cell kernels are
Numba-compiled and run in parallel over spectrum points.

Examples
--------
>>> from unidecfast import Config, UniDec
>>> decon = UniDec(Config(startz=1, endz=20, mzsig=1.0, massbins=1.0)).run(mz, intensity)
>>> decon.mass_spectrum, decon.uniscore
"""

__version__ = "0.1.0"

from unidecfast.config import (
    Config,
    ConfigProfile,
    ExtractMode,
    IsotopeMode,
    PeakNorm,
    PeakShape,
    PoolingMode,
    normalize_config,
)
from unidecfast.data import Decon, GridShape, Input, make_input
from unidecfast.exceptions import (
    BadSetupError,
    InvalidConfigError,
    InvalidInputError,
    UniDecError,
)

# Import order matters: deconvolution before scoring and mass_axis
from unidecfast import deconvolution
from unidecfast import mass_axis
from unidecfast import scoring
from unidecfast import isotopes
from unidecfast import utils
from unidecfast.deconvolution.engine import UniDec, run_unidec

__all__ = [
    # Configuration
    "Config",
    "ConfigProfile",
    "ExtractMode",
    "IsotopeMode",
    "PeakNorm",
    "PeakShape",
    "PoolingMode",
    "normalize_config",
    # Data
    "Decon",
    "GridShape",
    "Input",
    "make_input",
    # Errors
    "BadSetupError",
    "InvalidConfigError",
    "InvalidInputError",
    "UniDecError",
    # Entry points
    "UniDec",
    "run_unidec",
    # Submodules
    "deconvolution",
    "mass_axis",
    "scoring",
    "isotopes",
    "utils",
]
