#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import numpy as np

import unittest

from r2fft_hdl.cmult import Cmult, DSPFamily, mult_tier
from .amaranth_sim import AmaranthSim


class TestMultTier(unittest.TestCase):
    def check_breakpoints(self, family, b_widths, breakpoints):
        for b_width in b_widths:
            for (name, delay), limit in zip(
                    [('single', 4), ('double', 6), ('triple', 8)],
                    breakpoints):
                with self.subTest(family=family, b_width=b_width,
                                  a_width=limit):
                    tier = mult_tier(limit, b_width, family)
                    self.assertEqual(tier.name, name)
                    self.assertEqual(tier.delay, delay)
                    if name != 'triple':
                        self.assertNotEqual(
                            mult_tier(limit + 1, b_width, family).name, name)
            with self.assertRaises(ValueError):
                mult_tier(breakpoints[-1] + 1, b_width, family)

    def test_series7(self):
        self.check_breakpoints(DSPFamily.SERIES7, [8, 16, 18], [25, 42, 59])
        self.check_breakpoints(DSPFamily.SERIES7, [19, 25], [18, 35, 52])

    def test_ultrascale(self):
        self.check_breakpoints(
            DSPFamily.ULTRASCALE, [8, 16, 18], [27, 44, 61])
        self.check_breakpoints(DSPFamily.ULTRASCALE, [19, 27], [18, 35, 52])

    def test_unsupported_twiddle_width(self):
        with self.assertRaises(ValueError):
            mult_tier(16, 26, DSPFamily.SERIES7)
        with self.assertRaises(ValueError):
            mult_tier(16, 28, DSPFamily.ULTRASCALE)
        with self.assertRaises(ValueError):
            Cmult(16, 26, DSPFamily.SERIES7)


class TestCmult(AmaranthSim):
    def test_random_inputs(self):
        for a_width, b_width, family in [
                (16, 16, DSPFamily.SERIES7),
                (27, 18, DSPFamily.ULTRASCALE),
                (30, 16, DSPFamily.SERIES7),
                (30, 22, DSPFamily.SERIES7),
                (45, 16, DSPFamily.SERIES7)]:
            with self.subTest(a_width=a_width, b_width=b_width,
                              family=family):
                self.common_random_inputs(a_width, b_width, family)

    def common_random_inputs(self, a_width, b_width, family):
        self.dut = Cmult(a_width, b_width, family)
        num_inputs = 200
        re_a, im_a = (
            np.random.randint(-2**(a_width-1), 2**(a_width-1),
                              size=num_inputs, dtype='int64')
            for _ in range(2))
        # the most negative value is not allowed in the b operand
        re_b, im_b = (
            np.random.randint(-2**(b_width-1) + 1, 2**(b_width-1),
                              size=num_inputs, dtype='int64')
            for _ in range(2))
        # include extreme values
        re_a[:2] = -2**(a_width-1)
        im_a[:2] = [2**(a_width-1) - 1, -2**(a_width-1)]
        re_b[:2] = -2**(b_width-1) + 1
        im_b[:2] = 2**(b_width-1) - 1
        expected_re, expected_im = self.dut.model(re_a, im_a, re_b, im_b)
        delay = self.dut.delay

        async def bench(ctx):
            for j in range(num_inputs + delay):
                await ctx.tick()
                if j >= delay:
                    out = (ctx.get(self.dut.re_out),
                           ctx.get(self.dut.im_out))
                    expected = (expected_re[j - delay],
                                expected_im[j - delay])
                    assert out == expected, \
                        f'out = {out}, expected = {expected} @ cycle = {j}'
                if j < num_inputs:
                    ctx.set(self.dut.re_a, int(re_a[j]))
                    ctx.set(self.dut.im_a, int(im_a[j]))
                    ctx.set(self.dut.re_b, int(re_b[j]))
                    ctx.set(self.dut.im_b, int(im_b[j]))

        self.simulate(bench)

    def test_model_is_exact(self):
        cmult = Cmult(16, 16)
        re_a, im_a, re_b, im_b = (
            np.random.randint(-2**15 + 1, 2**15, size=100)
            for _ in range(4))
        re, im = cmult.model(re_a, im_a, re_b, im_b)
        expected = (re_a + 1j * im_a) * (re_b + 1j * im_b)
        np.testing.assert_equal(re + 1j * im, expected)


if __name__ == '__main__':
    unittest.main()
