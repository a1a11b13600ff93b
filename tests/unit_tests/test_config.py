"""Tests for configuration records and normalization."""

import dataclasses

import numpy as np
import pytest

from unidecfast.config import (
    Config,
    ConfigProfile,
    IsotopeMode,
    PeakShape,
    PoolingMode,
    normalize_config,
)
from unidecfast.constants import FWHM_TO_SIGMA, SIGMA_EPSILON
from unidecfast.exceptions import InvalidConfigError


class TestNormalizeConfig:
    """Test derivation of internal values."""

    def test_gaussian_fwhm_to_sigma(self):
        config = normalize_config(Config(mzsig=2.35482, psfun=PeakShape.GAUSSIAN))
        assert config.mzsig == pytest.approx(2.35482 / FWHM_TO_SIGMA)
        assert config.normalized

    def test_lorentzian_width_unchanged(self):
        config = normalize_config(Config(mzsig=2.0, psfun=PeakShape.LORENTZIAN))
        assert config.mzsig == pytest.approx(2.0)

    def test_returns_new_record(self):
        """The raw config is never modified."""
        raw = Config(mzsig=1.0)
        config = normalize_config(raw)
        assert config is not raw
        assert raw.mzsig == 1.0
        assert not raw.normalized

    def test_idempotent(self):
        """Normalizing twice is the same as normalizing once."""
        once = normalize_config(Config(mzsig=1.0, psig=-1.0))
        twice = normalize_config(once)
        assert twice == once

    def test_zero_sigma_guards(self):
        config = normalize_config(Config(zsig=0.0, msig=0.0, massbins=0.0))
        assert config.zsig == SIGMA_EPSILON
        assert config.msig == SIGMA_EPSILON
        assert config.massbins == 1.0

    def test_negative_mass_bounds_fix_axis(self):
        config = normalize_config(Config(masslb=-1000.0, massub=-5000.0))
        assert config.fixedmassaxis
        assert config.masslb == 1000.0
        assert config.massub == 5000.0

    def test_limit_flag_from_reference_masses(self):
        assert normalize_config(Config(mflag=1, mtabsig=0.0)).limitflag == 1
        assert normalize_config(Config(mflag=1, mtabsig=5.0)).limitflag == 0

    def test_linflag_sets_speedy(self):
        assert normalize_config(Config(linflag=2)).speedyflag == 0
        assert normalize_config(Config(linflag=0)).speedyflag == 1
        assert normalize_config(Config(linflag=-1, speedyflag=1)).speedyflag == 1

    def test_baseline_flag_follows_aggressive(self):
        assert normalize_config(Config(aggressiveflag=0)).baselineflag == 0
        assert normalize_config(Config(aggressiveflag=1)).baselineflag == 1
        assert normalize_config(Config(aggressiveflag=2)).baselineflag == 1

    def test_negative_psig_narrows_peak(self):
        config = normalize_config(Config(mzsig=3.0, psfun=PeakShape.LORENTZIAN, psig=-1.0))
        assert config.mzsig == pytest.approx(1.0)

    def test_enums_coerced(self):
        config = normalize_config(Config(psfun=1, poolflag=2, isotopemode=1))
        assert config.psfun is PeakShape.LORENTZIAN
        assert config.poolflag is PoolingMode.SMART
        assert config.isotopemode is IsotopeMode.MONOISOTOPIC


class TestValidate:
    """Test rejection of unusable values."""

    def test_inverted_charge_range(self):
        with pytest.raises(InvalidConfigError, match="endz"):
            normalize_config(Config(startz=10, endz=5))

    def test_zero_iterations(self):
        with pytest.raises(InvalidConfigError):
            normalize_config(Config(numit=0))

    def test_unknown_peak_shape(self):
        with pytest.raises(InvalidConfigError, match="peak shape"):
            normalize_config(Config(psfun=7))

    def test_unknown_pooling_mode(self):
        with pytest.raises(InvalidConfigError, match="pooling"):
            normalize_config(Config(poolflag=9))

    def test_config_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            normalize_config(Config(psthresh=-1.0))


class TestConfigRecord:
    """Test the immutable record itself."""

    def test_frozen(self):
        config = Config()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.numit = 10

    def test_numz(self):
        assert Config(startz=5, endz=9).numz == 5
        assert Config(startz=-3, endz=-1).numz == 3

    def test_profiles(self):
        for profile in ConfigProfile:
            config = Config.for_profile(profile)
            assert config.endz >= config.startz
            normalize_config(config)

    def test_profile_overrides(self):
        config = Config.for_profile(ConfigProfile.DENATURED, numit=10, massbins=2.0)
        assert config.numit == 10
        assert config.massbins == 2.0
        assert config.startz == 5

    def test_hashable_for_sharing(self):
        """Normalized configs can be used as dictionary keys."""
        config = normalize_config(Config())
        cache = {config: np.zeros(1)}
        assert config in cache
