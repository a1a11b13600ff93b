"""Tests for the shared numeric utilities.

This module tests:
- Nearest-point search (clamping, exact hits, ties)
- Index reflection and circular addressing
- In-place normalisation
- Interpolation helpers
"""

import unittest

import numpy as np

from unidecfast.utils import (
    apply_cutoff,
    clip_negatives,
    cubic_interpolate,
    fixk,
    indexmod,
    linear_interpolate,
    linear_interpolate_position,
    median_spacing,
    nearfast,
    simp_norm,
    simp_norm_sum,
)


class TestNearfast(unittest.TestCase):
    """Test nearest-point binary search."""

    def setUp(self):
        self.arr = np.array([1.0, 2.0, 4.0, 8.0, 16.0])

    def test_exact_hit(self):
        """Exact values return their own index."""
        for i, value in enumerate(self.arr):
            self.assertEqual(nearfast(self.arr, value), i)

    def test_nearest(self):
        self.assertEqual(nearfast(self.arr, 4.9), 2)
        self.assertEqual(nearfast(self.arr, 7.1), 3)

    def test_clamps_below_and_above(self):
        """Queries outside the array clamp to the first/last index."""
        self.assertEqual(nearfast(self.arr, -100.0), 0)
        self.assertEqual(nearfast(self.arr, 1e6), 4)

    def test_tie_goes_to_upper(self):
        """Exactly half-way between two points picks the upper one."""
        self.assertEqual(nearfast(self.arr, 3.0), 2)
        self.assertEqual(nearfast(self.arr, 12.0), 4)

    def test_single_element(self):
        self.assertEqual(nearfast(np.array([5.0]), 100.0), 0)


class TestIndexing(unittest.TestCase):
    """Test reflection and circular addressing."""

    def test_fixk_in_range(self):
        self.assertEqual(fixk(3, 10), 3)

    def test_fixk_negative_reflects(self):
        self.assertEqual(fixk(-2, 10), 2)

    def test_fixk_past_end_reflects(self):
        """Index 10 on length 10 mirrors around the last point to 8."""
        self.assertEqual(fixk(10, 10), 8)
        self.assertEqual(fixk(11, 10), 7)

    def test_fixk_never_negative(self):
        self.assertEqual(fixk(50, 10), 0)

    def test_indexmod(self):
        self.assertEqual(indexmod(10, 3, 5), 2)
        self.assertEqual(indexmod(10, 5, 3), 8)


class TestNormalisation(unittest.TestCase):
    """Test in-place normalisation helpers."""

    def test_simp_norm_sum(self):
        arr = np.array([1.0, 3.0, 4.0])
        simp_norm_sum(arr)
        self.assertAlmostEqual(arr.sum(), 1.0)
        np.testing.assert_allclose(arr, [0.125, 0.375, 0.5])

    def test_simp_norm_sum_zero_is_noop(self):
        """All-zero input stays zero (no division by zero)."""
        arr = np.zeros(4)
        simp_norm_sum(arr)
        np.testing.assert_array_equal(arr, np.zeros(4))

    def test_simp_norm(self):
        arr = np.array([1.0, 2.0, 4.0])
        simp_norm(arr)
        np.testing.assert_allclose(arr, [0.25, 0.5, 1.0])

    def test_simp_norm_zero_is_noop(self):
        arr = np.zeros(3)
        simp_norm(arr)
        np.testing.assert_array_equal(arr, np.zeros(3))

    def test_clip_negatives(self):
        arr = np.array([-1.0, 0.0, 2.0])
        clip_negatives(arr)
        np.testing.assert_array_equal(arr, [0.0, 0.0, 2.0])

    def test_apply_cutoff(self):
        arr = np.array([1e-9, 0.5, 1.0])
        apply_cutoff(arr, 1e-6)
        np.testing.assert_array_equal(arr, [0.0, 0.5, 1.0])


class TestInterpolation(unittest.TestCase):
    """Test interpolation formulas."""

    def test_linear_interpolate(self):
        self.assertAlmostEqual(linear_interpolate(2.0, 4.0, 0.25), 2.5)

    def test_linear_interpolate_position(self):
        self.assertAlmostEqual(linear_interpolate_position(10.0, 20.0, 15.0), 0.5)

    def test_linear_interpolate_position_degenerate(self):
        """Coincident end points give position 0."""
        self.assertEqual(linear_interpolate_position(3.0, 3.0, 7.0), 0.0)

    def test_cubic_hits_end_points(self):
        self.assertAlmostEqual(cubic_interpolate(0.0, 1.0, 2.0, 3.0, 0.0), 1.0)
        self.assertAlmostEqual(cubic_interpolate(0.0, 1.0, 2.0, 3.0, 1.0), 2.0)

    def test_cubic_reproduces_linear_data(self):
        self.assertAlmostEqual(cubic_interpolate(0.0, 1.0, 2.0, 3.0, 0.5), 1.5)

    def test_median_spacing(self):
        mz = np.array([100.0, 100.1, 100.2, 100.5])
        self.assertAlmostEqual(median_spacing(mz), 0.1)
        self.assertEqual(median_spacing(np.array([1.0])), 0.0)


if __name__ == "__main__":
    unittest.main()
