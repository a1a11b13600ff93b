"""Tests for the neighborhood blur prior."""

import numpy as np
import pytest

from unidecfast.config import Config, normalize_config
from unidecfast.data import make_input
from unidecfast.deconvolution.acceptance import build_acceptance
from unidecfast.deconvolution.blur import (
    BlurMode,
    blur_grid,
    make_blur_offsets,
    make_sparse_blur,
    select_blur_mode,
)


def _neighbors(config, mz, intensity):
    inp = make_input(config, mz, intensity)
    barr = build_acceptance(config, inp)
    offsets = make_blur_offsets(config.zsig, config.msig)
    neighbors, pruned = make_sparse_blur(
        inp.data_mz, inp.mtab, inp.nztab, barr, offsets,
        config.mzsig, config.psfun, config.molig, config.adductmass,
        config.massbins, config.isotopes_on,
    )
    return inp, barr, offsets, neighbors, pruned


class TestBlurOffsets:
    """Test offsets and weights of the neighborhood."""

    def test_integer_widths(self):
        offsets = make_blur_offsets(1.0, 0.00001)
        assert offsets.zlength == 3
        assert offsets.mlength == 1
        assert offsets.numclose == 3
        np.testing.assert_array_equal(offsets.closezind, [-1, 0, 1])
        np.testing.assert_array_equal(offsets.closemind, [0, 0, 0])

    @pytest.mark.parametrize("zsig,msig", [(1.0, 1.0), (2.0, 0.00001), (-1.0, 0.5), (1.0, -2.0)])
    def test_weights_sum_to_one(self, zsig, msig):
        offsets = make_blur_offsets(zsig, msig)
        assert offsets.closeval.sum() == pytest.approx(1.0)
        assert offsets.zdist.sum() == pytest.approx(1.0)
        assert offsets.mdist.sum() == pytest.approx(1.0)

    def test_gaussian_tails_for_negative_width(self):
        """A negative width spans three sigma on both axes."""
        offsets = make_blur_offsets(-1.0, 1.0)
        assert offsets.zlength == 7
        assert offsets.mlength == 7
        # Central weight is the largest
        assert np.argmax(offsets.zdist) == 3

    def test_layout(self):
        offsets = make_blur_offsets(1.0, 1.0)
        for k in range(offsets.numclose):
            assert offsets.closezind[k] == offsets.zind[k // offsets.mlength]
            assert offsets.closemind[k] == offsets.mind[k % offsets.mlength]


class TestSelectBlurMode:
    """Test the mode chosen from the signs of zsig and msig."""

    @pytest.mark.parametrize("zsig,msig,mode", [
        (1.0, 1.0, BlurMode.LOG_MEAN),
        (1.0, 0.0, BlurMode.LOG_MEAN),
        (1.0, -1.0, BlurMode.HYBRID_LOG_CHARGE),
        (-1.0, 1.0, BlurMode.HYBRID_LOG_MASS),
        (-1.0, -1.0, BlurMode.LINEAR),
    ])
    def test_modes(self, zsig, msig, mode):
        assert select_blur_mode(zsig, msig) == mode


class TestSparseBlur:
    """Test neighbor resolution and pruning."""

    def test_single_charge_self_link(self, single_peak_spectrum):
        """With one charge the out-of-range links are absent and cells survive."""
        mz, intensity = single_peak_spectrum
        config = normalize_config(Config(startz=1, endz=1, mzsig=1.0, massbins=0.1))
        _, barr, _, neighbors, pruned = _neighbors(config, mz, intensity)

        np.testing.assert_array_equal(pruned, barr)
        assert neighbors.neighbor(100, 0, 0) is None
        assert neighbors.neighbor(100, 0, 2) is None
        target = neighbors.neighbor(100, 0, 1)
        assert target is not None
        assert target[0] == 100
        assert target[1] == 0
        assert target[2] > 0

    def test_unsupported_cells_pruned(self, two_charge_spectrum):
        """Cells whose charge partner falls outside the spectrum are dropped."""
        mz, intensity, _ = two_charge_spectrum
        config = normalize_config(Config(startz=1, endz=2, mzsig=1.0, massbins=0.5))
        _, barr, _, neighbors, pruned = _neighbors(config, mz, intensity)

        assert pruned.sum() < barr.sum()
        # Charge 1 at m/z 500 would need charge 2 at ~250.5 m/z
        i500 = int(np.argmin(np.abs(mz - 500.0)))
        assert not pruned[i500, 0]
        # Charge 1 at m/z 1001 links to charge 2 at ~501 m/z
        i1001 = int(np.argmin(np.abs(mz - 1001.0)))
        assert pruned[i1001, 0]
        link = neighbors.neighbor(i1001, 0, 2)
        assert link is not None
        assert link[1] == 1
        assert abs(mz[link[0]] - 501.0) < 0.2

    def test_isotope_mode_disables_pruning(self, two_charge_spectrum):
        mz, intensity, _ = two_charge_spectrum
        config = normalize_config(Config(startz=1, endz=2, mzsig=1.0, massbins=0.5, isotopemode=1))
        _, barr, _, _, pruned = _neighbors(config, mz, intensity)
        np.testing.assert_array_equal(pruned, barr)


class TestBlurGrid:
    """Test the blur kernel in its four modes."""

    @pytest.fixture
    def blur_setup(self, two_charge_spectrum):
        mz, intensity, _ = two_charge_spectrum
        config = normalize_config(Config(startz=1, endz=2, mzsig=1.0, massbins=0.5))
        inp, _, offsets, neighbors, pruned = _neighbors(config, mz, intensity)
        blur = np.where(pruned, intensity[:, None], 0.0)
        return config, blur, pruned, offsets, neighbors

    @pytest.mark.parametrize("mode", list(BlurMode))
    def test_modes_non_negative(self, blur_setup, mode):
        config, blur, barr, offsets, neighbors = blur_setup
        out = blur_grid(mode, blur, barr, neighbors, offsets, config.zerolog)
        assert out.shape == blur.shape
        assert np.all(out >= 0)
        assert np.all(out[~barr] == 0)

    def test_log_mean_needs_both_charges(self, blur_setup):
        """The geometric mean is high only where both charge states carry signal."""
        config, blur, barr, offsets, neighbors = blur_setup
        out = blur_grid(BlurMode.LOG_MEAN, blur, barr, neighbors, offsets, config.zerolog)
        linear = blur_grid(BlurMode.LINEAR, blur, barr, neighbors, offsets, config.zerolog)

        peak = int(np.argmax(blur[:, 0]))
        assert out[peak, 0] > 0
        assert linear[peak, 0] >= out[peak, 0]

    @pytest.mark.parametrize("mode", [BlurMode.LOG_MEAN, BlurMode.HYBRID_LOG_CHARGE])
    def test_out_of_range_charges_are_absent(self, single_peak_spectrum, mode):
        """A lone charge state is penalized by zerolog for each missing charge partner."""
        mz, intensity = single_peak_spectrum
        config = normalize_config(Config(startz=1, endz=1, mzsig=1.0, massbins=0.1))
        _, _, offsets, neighbors, pruned = _neighbors(config, mz, intensity)
        blur = np.where(pruned, 1.0, 0.0)

        out = blur_grid(mode, blur, pruned, neighbors, offsets, config.zerolog)
        assert offsets.zlength == 3
        assert offsets.mlength == 1
        weight = neighbors.weight[50, 0, 1]
        expected = np.exp((np.log(weight) + 2.0 * config.zerolog) / 3.0)
        assert out[50, 0] == pytest.approx(expected, rel=1e-9)
        assert out[50, 0] < 1e-3

    def test_single_neighbor_copies(self, single_peak_spectrum):
        mz, intensity = single_peak_spectrum
        config = normalize_config(Config(startz=1, endz=1, mzsig=1.0, zsig=0.0, massbins=0.1))
        _, barr, offsets, neighbors, _ = _neighbors(config, mz, intensity)
        blur = np.where(barr, intensity[:, None], 0.0)

        out = blur_grid(BlurMode.LOG_MEAN, blur, barr, neighbors, offsets, config.zerolog)
        assert offsets.numclose == 1
        assert out is not blur
        np.testing.assert_array_equal(out, blur)

    def test_unknown_mode(self, blur_setup):
        config, blur, barr, offsets, neighbors = blur_setup
        with pytest.raises(ValueError, match="blur mode"):
            blur_grid(99, blur, barr, neighbors, offsets, config.zerolog)
