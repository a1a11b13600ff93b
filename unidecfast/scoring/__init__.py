"""Fit quality, peak detection and scoring of deconvolution results.

Key Features
------------
- Reconstructed spectrum, sum of squared errors and R²
- Windowed local-maximum peak detection with six intensity extraction modes
- FWHM with linear interpolation of the half-maximum crossings
- Per-peak sub-scores combined into a single uniscore

Examples
--------
>>> from unidecfast.scoring import peak_detect, score
>>> masses, heights = peak_detect(decon.massaxis, decon.massaxisval, 500.0, 0.1)
>>> score(config, decon, inp)
"""

from .fit import (
    error_function,
    zero_data_gaps,
)
from .peaks import (
    detect_peaks,
    extract_center_of_mass,
    extract_estimated_area,
    extract_height,
    extract_integral,
    extract_localmax,
    extract_localmax_position,
    extract_switch,
    is_peak,
    peak_detect,
    peak_fwhm,
    peak_norm,
)
from .uniscore import (
    build_peak_table,
    cosine_similarity,
    csscore,
    fscore,
    mscore,
    peak_scores,
    score,
    uniscore_from_peaks,
    uscore,
)

__all__ = [
    # Fit
    "error_function",
    "zero_data_gaps",
    # Peaks
    "detect_peaks",
    "extract_center_of_mass",
    "extract_estimated_area",
    "extract_height",
    "extract_integral",
    "extract_localmax",
    "extract_localmax_position",
    "extract_switch",
    "is_peak",
    "peak_detect",
    "peak_fwhm",
    "peak_norm",
    # Score
    "build_peak_table",
    "cosine_similarity",
    "csscore",
    "fscore",
    "mscore",
    "peak_scores",
    "score",
    "uniscore_from_peaks",
    "uscore",
]
