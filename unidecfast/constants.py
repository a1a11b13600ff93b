"""Physical constants and numerical defaults for spectrum deconvolution.

This module collects every physical constant, model parameter and numerical
sentinel used throughout UniDecFast. Values are plain Python floats or
NumPy arrays so they can be passed straight into Numba JIT-compiled code.

Key Features
------------
- Correct PROTON_MASS (1.007276467 Da, the default charge carrier)
- Averagine-like isotope envelope model parameters (10-parameter fit)
- FWHM/sigma conversion factor for Gaussian peak shapes
- Sentinels used for recoverable numeric states

Sources
-------
- NIST physical constants: https://physics.nist.gov/cgi-bin/cuu/Value
- Marty et al., Anal. Chem. 2015, 87, 4370 (Bayesian deconvolution)
"""

import numpy as np

# =============================================================================
# Fundamental Physical Constants
# =============================================================================

# Proton mass (NOT hydrogen atom mass!)
# Source: NIST 2018 CODATA
PROTON_MASS = 1.007276467  # Da

# Average spacing between isotopologues of a protein
# Empirical average over C, H, N, O, S isotopes (13C alone is 1.0033548)
ISOTOPE_MASS_DIFF = 1.0026  # Da

# =============================================================================
# Peak Shape Constants
# =============================================================================

# FWHM = 2*sqrt(2*ln 2) * sigma for a Gaussian
FWHM_TO_SIGMA = 2.35482

# Split Gaussian/Lorentzian: rescales sigma^2 so the Gaussian half of the
# peak has the same half-width as the Lorentzian half.
SPLIT_GAUSSIAN_FACTOR = 0.180337

# sqrt(2*pi), used by the isotope envelope Gaussian
SQRT_2PI = 2.50662827

# =============================================================================
# Native Charge Model
# =============================================================================

# Average native charge: z = a * mass^b (Kaltashov & Mohimen, 2005)
NATIVE_CHARGE_COEFF = 0.0467
NATIVE_CHARGE_EXPONENT = 0.533

# =============================================================================
# Isotope Envelope Model
# =============================================================================

# Parameters p0..p9 of the mass-dependent isotope envelope:
#   alpha = p0 * exp(-m * p1)        exponential tail amplitude
#   beta  = p2 * exp(-m * p3)        exponential tail decay
#   mid   = p4 + p5 * m^p6           Gaussian envelope centre (isotope units)
#   sig   = p7 + p8 * m^p9           Gaussian envelope width (isotope units)
DEFAULT_ISOPARAMS = np.array([
    1.00840852e+00,
    1.25318718e-03,
    2.37226341e+00,
    8.19178000e-04,
    -4.37741951e-01,
    6.64992972e-04,
    9.94230511e-01,
    4.64975237e-01,
    1.00529041e-02,
    5.81240792e-01,
], dtype=np.float64)

# =============================================================================
# Numerical Sentinels and Tolerances
# =============================================================================

# Replacement for msig/zsig given as exactly zero (division guard)
SIGMA_EPSILON = 0.00001

# Convergence metric reported when the grid sums to zero
CONV_SENTINEL = 12345678.0

# Default convergence threshold for the Richardson-Lucy loop
DEFAULT_CONV_THRESHOLD = 1e-6

# Relative cutoff applied to the final grid (values below blurmax * cutoff are zeroed)
GRID_CUTOFF = 1e-6

# Double deconvolution stopping rules
DD_MAX_ITERATIONS = 50
DD_CONV_THRESHOLD = 1e-4

# Baseline filters
MIDBLUR_WINDOW = 25
