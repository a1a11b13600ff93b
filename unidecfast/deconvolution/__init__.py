"""Richardson-Lucy deconvolution of the m/z x charge grid.

Key Features
------------
- Peak-shape windows and kernels (bounded or circular layout)
- Sparse charge/oligomer neighborhood blur with four averaging modes
- Forward convolution, reconvolution and the multiplicative RL update
- Softmax sharpening, point smoothing and baseline estimation
- Scoped per-run workspace and the iteration driver

Examples
--------
>>> from unidecfast.deconvolution import DeconWorkspace, main_deconvolution, finalize
>>> with DeconWorkspace.build(config, inp) as ws:
...     decon = main_deconvolution(config, inp, ws)
...     finalize(config, inp, ws, decon)
"""

from .peak_shape import (
    PeakShapeTables,
    build_peak_shape,
    make_peak_shape_1d,
    make_peak_shape_2d,
    mzpeakshape,
    set_starts_ends,
)
from .baseline import (
    blur_baseline,
    deconvolve_baseline,
    midblur_baseline,
)
from .convolution import (
    apply_ratios,
    convolve_simp,
    deconvolve_iteration_speedy,
    ratio_signal,
    reconvolve,
    sum_deltas,
)
from .blur import (
    BlurMode,
    BlurOffsets,
    NeighborTable,
    blur_grid,
    make_blur_offsets,
    make_sparse_blur,
    select_blur_mode,
)
from .acceptance import (
    build_acceptance,
    kill_b,
    native_charge,
)
from .sharpening import (
    beta_factor,
    point_smoothing,
    point_smoothing_peak_width,
    softargmax,
    softargmax_everything,
    softargmax_transposed,
)
from .workspace import DeconWorkspace
from .engine import (
    ConvergenceMonitor,
    UniDec,
    convergence_metric,
    finalize,
    main_deconvolution,
    run_unidec,
)

__all__ = [
    # Peak shape
    "PeakShapeTables",
    "build_peak_shape",
    "make_peak_shape_1d",
    "make_peak_shape_2d",
    "mzpeakshape",
    "set_starts_ends",
    # Baseline
    "blur_baseline",
    "deconvolve_baseline",
    "midblur_baseline",
    # Convolution
    "apply_ratios",
    "convolve_simp",
    "deconvolve_iteration_speedy",
    "ratio_signal",
    "reconvolve",
    "sum_deltas",
    # Neighborhood blur
    "BlurMode",
    "BlurOffsets",
    "NeighborTable",
    "blur_grid",
    "make_blur_offsets",
    "make_sparse_blur",
    "select_blur_mode",
    # Acceptance
    "build_acceptance",
    "kill_b",
    "native_charge",
    # Sharpening
    "beta_factor",
    "point_smoothing",
    "point_smoothing_peak_width",
    "softargmax",
    "softargmax_everything",
    "softargmax_transposed",
    # Driver
    "ConvergenceMonitor",
    "DeconWorkspace",
    "UniDec",
    "convergence_metric",
    "finalize",
    "main_deconvolution",
    "run_unidec",
]
