"""Tests for spectrum validation and the result records.

This module tests:
- Charge and mass table construction
- Rejection of malformed spectra (duplicates, order, length, zero charge)
- Grid shape checks
- Decon release and mass spectrum view
"""

import unittest

import numpy as np

from unidecfast.config import Config, normalize_config
from unidecfast.constants import DEFAULT_ISOPARAMS, PROTON_MASS
from unidecfast.data import Decon, GridShape, make_input
from unidecfast.exceptions import InvalidInputError, UniDecError


class TestMakeInput(unittest.TestCase):
    """Test building the per-cell tables."""

    def setUp(self):
        self.config = normalize_config(Config(startz=1, endz=3, mzsig=1.0))
        self.mz = np.array([500.0, 500.5, 501.0, 501.5])
        self.intensity = np.array([0.0, 1.0, 2.0, 1.0])

    def test_tables(self):
        inp = make_input(self.config, self.mz, self.intensity)

        np.testing.assert_array_equal(inp.nztab, [1, 2, 3])
        self.assertEqual(inp.mtab.shape, (4, 3))
        self.assertAlmostEqual(inp.mtab[0, 0], 500.0 - PROTON_MASS)
        self.assertAlmostEqual(inp.mtab[2, 1], 2 * 501.0 - 2 * PROTON_MASS)
        self.assertEqual(inp.barr.shape, (4, 3))
        self.assertFalse(inp.barr.any())

    def test_defaults(self):
        inp = make_input(self.config, self.mz, self.intensity)
        self.assertEqual(len(inp.testmasses), 0)
        np.testing.assert_array_equal(inp.isoparams, DEFAULT_ISOPARAMS)
        self.assertEqual(inp.isolength, 0)
        self.assertEqual(inp.shape, GridShape(4, 3, 0))

    def test_list_input_converted(self):
        inp = make_input(self.config, list(self.mz), list(self.intensity))
        self.assertEqual(inp.data_mz.dtype, np.float64)
        self.assertTrue(inp.data_mz.flags['C_CONTIGUOUS'])

    def test_duplicate_mz_rejected(self):
        """A repeated m/z value names the value and both indices."""
        mz = np.array([500.0, 500.5, 500.5, 501.0])
        with self.assertRaises(InvalidInputError) as ctx:
            make_input(self.config, mz, self.intensity)
        self.assertIn("500.5", str(ctx.exception))
        self.assertIn("1 and 2", str(ctx.exception))

    def test_descending_mz_rejected(self):
        with self.assertRaises(InvalidInputError):
            make_input(self.config, self.mz[::-1], self.intensity)

    def test_length_mismatch_rejected(self):
        with self.assertRaises(InvalidInputError):
            make_input(self.config, self.mz, self.intensity[:3])

    def test_too_short_rejected(self):
        with self.assertRaises(InvalidInputError):
            make_input(self.config, self.mz[:1], self.intensity[:1])

    def test_zero_charge_rejected(self):
        config = normalize_config(Config(startz=-1, endz=1, mzsig=1.0))
        with self.assertRaises(InvalidInputError):
            make_input(config, self.mz, self.intensity)

    def test_negative_charges(self):
        config = normalize_config(Config(startz=-2, endz=-1, mzsig=1.0))
        inp = make_input(config, self.mz, self.intensity)
        self.assertAlmostEqual(inp.mtab[0, 0], -2 * 500.0 + 2 * PROTON_MASS)

    def test_wrong_isoparams_rejected(self):
        with self.assertRaises(InvalidInputError):
            make_input(self.config, self.mz, self.intensity, isoparams=np.ones(3))

    def test_errors_share_base_class(self):
        with self.assertRaises(UniDecError):
            make_input(self.config, self.mz, self.intensity[:2])


class TestGridShape(unittest.TestCase):
    """Test grid shape checks."""

    def test_check_accepts_matching_grid(self):
        shape = GridShape(5, 2)
        grid = np.zeros((5, 2))
        self.assertIs(shape.check(grid, "grid"), grid)

    def test_check_rejects_wrong_shape(self):
        with self.assertRaises(InvalidInputError):
            GridShape(5, 2).check(np.zeros((2, 5)), "grid")

    def test_check_rejects_non_contiguous(self):
        grid = np.zeros((2, 5)).T
        with self.assertRaises(InvalidInputError):
            GridShape(5, 2).check(grid, "grid")

    def test_check_isotope_grid(self):
        GridShape(5, 2, 4).check(np.zeros((5, 2, 4)), "isotopepos", isotopes=True)


class TestDecon(unittest.TestCase):
    """Test the result record."""

    def test_release_drops_arrays(self):
        decon = Decon(blur=np.ones((3, 2)), massaxis=np.arange(3.0), rsquared=0.9)
        decon.release()
        self.assertIsNone(decon.blur)
        self.assertIsNone(decon.massaxis)
        self.assertEqual(decon.rsquared, 0.9)

    def test_mass_spectrum(self):
        decon = Decon(massaxis=np.array([1.0, 2.0]), massaxisval=np.array([0.5, 1.0]))
        np.testing.assert_array_equal(decon.mass_spectrum, [[1.0, 0.5], [2.0, 1.0]])
        self.assertEqual(Decon().mass_spectrum.shape, (0, 2))


if __name__ == "__main__":
    unittest.main()
