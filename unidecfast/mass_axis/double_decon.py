"""Kernel double deconvolution of the mass spectrum.

Optional post-processing step (``Config.doubledec``). The mass spectrum from
the main deconvolution is deconvolved a second time against an empirical
point-spread kernel, for example the mass spectrum of a known reference
protein, using Richardson-Lucy iterations in the frequency domain.

Steps:

1. resample the kernel to the mass-axis spacing (trapezoidal integration when
   the kernel is sampled finer than the axis, linear interpolation otherwise)
2. normalize the kernel to its maximum and circularly shift its apex to index 0;
   kernel and spectrum are zero-padded to the longer of the two lengths
3. iterate estimate <- estimate * (K* ⊛ (data / (K ⊛ estimate))) with FFTs until
   50 iterations or a relative L2 change below 1e-4
4. crop the padding and truncate the result to [masslb, massub]

Examples
--------
>>> axis, values = double_deconvolution(config, massaxis, massaxisval, kx, ky)
"""

import logging
from typing import Tuple

import numpy as np

from ..config import Config
from ..constants import DD_CONV_THRESHOLD, DD_MAX_ITERATIONS
from ..exceptions import InvalidInputError
from ..utils import simp_norm

logger = logging.getLogger(__name__)


def load_kernel_arrays(kernel_x: np.ndarray, kernel_y: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Validate an empirical kernel given as x/y arrays.

    Raises:
        InvalidInputError: Mismatched lengths, fewer than 2 points, non-ascending x
            or an all-zero kernel
    """
    kx = np.ascontiguousarray(kernel_x, dtype=np.float64)
    ky = np.ascontiguousarray(kernel_y, dtype=np.float64)
    if kx.shape != ky.shape or kx.ndim != 1:
        raise InvalidInputError("Kernel x and y must be 1-D arrays of equal length")
    if len(kx) < 2:
        raise InvalidInputError("Kernel needs at least 2 points")
    if np.any(np.diff(kx) <= 0):
        raise InvalidInputError("Kernel x values must be strictly ascending")
    if not np.any(ky > 0):
        raise InvalidInputError("Kernel has no positive intensity")
    return kx, ky


def _trapezoid(x: np.ndarray, y: np.ndarray) -> float:
    if len(x) < 2:
        return 0.0
    return float(np.sum((x[1:] - x[:-1]) * (y[1:] + y[:-1]) * 0.5))


def integrate_kernel(kernel_x: np.ndarray, kernel_y: np.ndarray, spacing: float) -> np.ndarray:
    """Resample a finely sampled kernel by integrating it over bins of ``spacing``."""
    n_bins = int((kernel_x[-1] - kernel_x[0]) / spacing) + 1
    centres = kernel_x[0] + np.arange(n_bins) * spacing
    out = np.zeros(n_bins, dtype=np.float64)
    for b, centre in enumerate(centres):
        lo = centre - spacing / 2.0
        hi = centre + spacing / 2.0
        inside = kernel_x[(kernel_x > lo) & (kernel_x < hi)]
        pts = np.concatenate(([lo], inside, [hi]))
        vals = np.interp(pts, kernel_x, kernel_y, left=0.0, right=0.0)
        out[b] = _trapezoid(pts, vals)
    return out


def interpolate_kernel(kernel_x: np.ndarray, kernel_y: np.ndarray, spacing: float) -> np.ndarray:
    """Resample a coarsely sampled kernel by linear interpolation at ``spacing``."""
    n_bins = int((kernel_x[-1] - kernel_x[0]) / spacing) + 1
    grid = kernel_x[0] + np.arange(n_bins) * spacing
    return np.interp(grid, kernel_x, kernel_y, left=0.0, right=0.0)


def prepare_kernel(kernel_x: np.ndarray, kernel_y: np.ndarray, spacing: float, length: int) -> np.ndarray:
    """Resample, max-normalize and rotate a kernel so that its apex sits at index 0.

    The result has ``max(length, resampled kernel length)`` points; a kernel
    wider than ``length`` is never folded onto itself.
    """
    kernel_spacing = kernel_x[1] - kernel_x[0]
    if spacing > kernel_spacing:
        resampled = integrate_kernel(kernel_x, kernel_y, spacing)
    else:
        resampled = interpolate_kernel(kernel_x, kernel_y, spacing)

    resampled = simp_norm(np.ascontiguousarray(resampled, dtype=np.float64))

    true_length = max(length, len(resampled))
    padded = np.zeros(true_length, dtype=np.float64)
    padded[:len(resampled)] = resampled
    return np.roll(padded, -int(np.argmax(resampled)))


def dd_deconv(kernel: np.ndarray, data: np.ndarray,
              max_iterations: int = DD_MAX_ITERATIONS,
              threshold: float = DD_CONV_THRESHOLD) -> np.ndarray:
    """Richardson-Lucy deconvolution in the frequency domain.

    Parameters
    ----------
    kernel : np.ndarray
        Point-spread kernel, same length as data, apex at index 0
    data : np.ndarray
        Signal to deconvolve
    max_iterations : int
        Iteration cap
    threshold : float
        Stop when sum((old - new)^2) / sum(old) drops below this

    Returns
    -------
    np.ndarray
        Max-normalized, non-negative estimate
    """
    n = len(data)
    kernel_ft = np.fft.rfft(kernel)
    # Adjoint of circular convolution: the index-reversed kernel
    kernel_star = kernel[(-np.arange(n)) % n]
    kernel_star_ft = np.fft.rfft(kernel_star)

    estimate = data.copy()
    diff = 1.0
    iteration = 0
    while iteration < max_iterations and diff > threshold:
        conv1 = np.fft.irfft(np.fft.rfft(estimate) * kernel_ft, n=n)
        ratio = np.zeros(n, dtype=np.float64)
        nonzero = conv1 != 0
        ratio[nonzero] = data[nonzero] / conv1[nonzero]
        conv2 = np.fft.irfft(np.fft.rfft(ratio) * kernel_star_ft, n=n)
        new_estimate = simp_norm(np.clip(conv2 * estimate, 0.0, None))

        total = np.sum(estimate)
        diff = float(np.sum((estimate - new_estimate) ** 2) / total) if total != 0 else 0.0
        estimate = new_estimate
        iteration += 1

    logger.debug(f"Double deconvolution stopped after {iteration} iterations (diff={diff:.2e})")
    return estimate


def double_deconvolution(
    config: Config,
    massaxis: np.ndarray,
    massaxisval: np.ndarray,
    kernel_x: np.ndarray,
    kernel_y: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """Sharpen a mass spectrum against an empirical kernel.

    Parameters
    ----------
    config : Config
        Normalized configuration (mass bounds)
    massaxis, massaxisval : np.ndarray
        Mass spectrum from the main deconvolution
    kernel_x, kernel_y : np.ndarray
        Empirical kernel (mass, intensity)

    Returns
    -------
    (np.ndarray, np.ndarray)
        New mass axis and values, truncated to [masslb, massub]
    """
    kx, ky = load_kernel_arrays(kernel_x, kernel_y)
    if len(massaxis) < 2:
        return massaxis.copy(), massaxisval.copy()

    data = simp_norm(np.ascontiguousarray(massaxisval, dtype=np.float64).copy())

    spacing = massaxis[1] - massaxis[0]
    kernel = prepare_kernel(kx, ky, spacing, len(data))
    # Zero-pad the spectrum to the kernel length, deconvolve, crop back to the axis
    padded = np.zeros(len(kernel), dtype=np.float64)
    padded[:len(data)] = data
    result = dd_deconv(kernel, padded)[:len(data)]

    keep = (massaxis >= config.masslb) & (massaxis <= config.massub)
    logger.info(f"Double deconvolution: {int(np.sum(keep))} of {len(massaxis)} bins kept")
    return massaxis[keep].copy(), result[keep]
