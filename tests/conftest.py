"""Pytest configuration for UniDecFast tests.

Shared synthetic spectra. All spectra are noise-free sums of Gaussians on a
uniform m/z grid so that expected masses and charge assignments are known
exactly.
"""

import numpy as np
import pytest

from unidecfast.constants import PROTON_MASS


def gaussian(x, center, sigma, amplitude=1.0):
    """Gaussian profile evaluated at x."""
    return amplitude * np.exp(-((x - center) ** 2) / (2.0 * sigma * sigma))


@pytest.fixture
def proton_mass():
    """Proton mass constant (default adduct)."""
    return PROTON_MASS


@pytest.fixture
def single_peak_spectrum():
    """One charge-1 peak at m/z 550 (sigma 2.0) on 500-600 m/z, 0.2 spacing.

    501 points; the expected neutral mass is 550 - proton mass.
    """
    mz = np.round(500.0 + 0.2 * np.arange(501), 6)
    intensity = gaussian(mz, 550.0, 2.0)
    return mz, intensity


@pytest.fixture
def two_charge_spectrum():
    """A 1000 Da species seen at charge 1 and charge 2.

    450-1050 m/z at 0.2 spacing; the charge-2 peak is half as wide in m/z.
    """
    mass = 1000.0
    mz = np.round(450.0 + 0.2 * np.arange(3001), 6)
    mz1 = mass + PROTON_MASS
    mz2 = (mass + 2 * PROTON_MASS) / 2.0
    intensity = gaussian(mz, mz1, 1.0, 0.8) + gaussian(mz, mz2, 0.5, 1.0)
    return mz, intensity, mass


@pytest.fixture
def uniform_mz():
    """101 evenly spaced m/z values, 500-520 at 0.2 spacing."""
    return np.round(500.0 + 0.2 * np.arange(101), 6)


# Random seed for reproducibility
@pytest.fixture(scope="session", autouse=True)
def set_random_seed():
    """Set random seed for reproducible tests."""
    np.random.seed(42)
