"""Mass-axis projection and kernel double deconvolution."""

from .transforms import (
    build_mass_axis,
    integrate_transform,
    interpolate_transform,
    mass_range_from_grid,
    project,
    smart_transform,
)
from .double_decon import (
    dd_deconv,
    double_deconvolution,
    integrate_kernel,
    interpolate_kernel,
    load_kernel_arrays,
    prepare_kernel,
)

__all__ = [
    "build_mass_axis",
    "integrate_transform",
    "interpolate_transform",
    "mass_range_from_grid",
    "project",
    "smart_transform",
    "dd_deconv",
    "double_deconvolution",
    "integrate_kernel",
    "interpolate_kernel",
    "load_kernel_arrays",
    "prepare_kernel",
]
