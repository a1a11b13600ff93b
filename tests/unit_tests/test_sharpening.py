"""Tests for softmax sharpening, point smoothing and baseline filters."""

import numpy as np
import pytest

from unidecfast.config import Config, normalize_config
from unidecfast.deconvolution.baseline import (
    blur_baseline,
    deconvolve_baseline,
    midblur_baseline,
)
from unidecfast.deconvolution.peak_shape import build_peak_shape
from unidecfast.deconvolution.sharpening import (
    beta_factor,
    point_smoothing,
    point_smoothing_peak_width,
    softargmax,
    softargmax_everything,
    softargmax_transposed,
)


class TestSoftargmax:
    """Test softmax sharpening."""

    def test_rows_keep_their_sum(self):
        blur = np.random.rand(20, 5)
        out = softargmax(blur, 5.0)
        np.testing.assert_allclose(out.sum(axis=1), blur.sum(axis=1))

    def test_sharpens_toward_row_maximum(self):
        blur = np.array([[0.1, 0.5, 0.2]])
        out = softargmax(blur, 10.0)
        assert np.argmax(out[0]) == 1
        assert out[0, 1] / out.sum() > blur[0, 1] / blur.sum()
        # The row minimum maps to zero
        assert out[0, 0] == pytest.approx(0.0)

    def test_flat_row_zeroed(self):
        """A row with no spread has no positive scale factor."""
        out = softargmax(np.full((1, 3), 0.4), 2.0)
        np.testing.assert_array_equal(out, np.zeros((1, 3)))

    def test_negative_beta_is_global(self):
        blur = np.random.rand(10, 3)
        out = softargmax(blur, -2.0)
        np.testing.assert_allclose(out, softargmax_everything(blur, 2.0))
        assert out.sum() == pytest.approx(blur.sum())

    def test_transposed_matches_convolved_signal(self, uniform_mz):
        """Row sums are equalized so the summed spectrum is unchanged without convolution."""
        blur = np.random.rand(len(uniform_mz), 2)
        barr = np.ones_like(blur, dtype=np.bool_)
        out = softargmax_transposed(blur, barr, 1.0, None, 0.0)
        np.testing.assert_allclose(out.sum(axis=1), blur.sum(axis=1))
        assert np.all(out >= 0)

    def test_beta_factor(self):
        assert beta_factor(np.array([0.1, 0.5])) == 1.0
        assert beta_factor(np.array([10.0, 250.0])) == 250.0


class TestPointSmoothing:
    """Test smoothing along m/z."""

    def test_constant_interior_unchanged(self):
        blur = np.ones((10, 2))
        barr = np.ones_like(blur, dtype=np.bool_)
        out = point_smoothing(blur, barr, 1)
        np.testing.assert_allclose(out[1:-1], 1.0)

    def test_edges_lose_intensity(self):
        """The divisor stays 2*width+1 at the clipped edges."""
        blur = np.ones((10, 1))
        barr = np.ones_like(blur, dtype=np.bool_)
        out = point_smoothing(blur, barr, 1)
        assert out[0, 0] == pytest.approx(2.0 / 3.0)

    def test_rejected_cells_untouched(self):
        blur = np.arange(10.0)[:, None] * np.ones((1, 2))
        barr = np.ones_like(blur, dtype=np.bool_)
        barr[:, 1] = False
        out = point_smoothing(blur, barr, 2)
        np.testing.assert_array_equal(out[:, 1], blur[:, 1])

    def test_peak_width_smoothing_broadens(self, uniform_mz):
        config = normalize_config(Config(mzsig=1.0, startz=1, endz=1))
        tables = build_peak_shape(config, uniform_mz)
        blur = np.zeros((len(uniform_mz), 1))
        blur[50, 0] = 1.0
        barr = np.ones_like(blur, dtype=np.bool_)
        out = point_smoothing_peak_width(blur, barr, tables)
        assert out[49, 0] > 0
        assert np.argmax(out[:, 0]) == 50


class TestBaseline:
    """Test baseline filters."""

    def test_midblur_constant(self):
        baseline = np.full(100, 3.0)
        np.testing.assert_allclose(midblur_baseline(baseline, 0), 3.0)

    def test_midblur_ignores_narrow_peak(self):
        """The lower-half mean tracks the floor under a narrow spike."""
        baseline = np.ones(200)
        baseline[100] = 50.0
        out = midblur_baseline(baseline, 1)
        assert out[100] == pytest.approx(1.0)

    def test_blur_baseline_constant_scaled(self):
        """2*filterwidth samples over a 2*filterwidth+1 divisor."""
        baseline = np.full(100, 1.0)
        mz = np.arange(100.0)
        out = blur_baseline(baseline, mz, 1.0, 5)
        np.testing.assert_allclose(out, 10.0 / 11.0)

    def test_deconvolve_baseline_fixed_point(self):
        data = np.full(100, 2.0)
        out = deconvolve_baseline(data, data.copy())
        np.testing.assert_allclose(out, 2.0)

    def test_deconvolve_baseline_below_peak(self):
        x = np.arange(400.0)
        data = 1.0 + 20.0 * np.exp(-((x - 200.0) ** 2) / 8.0)
        out = deconvolve_baseline(data, np.full(400, 1.0))
        assert out[200] < 5.0
        assert out[50] == pytest.approx(1.0, rel=0.1)
