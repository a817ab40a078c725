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

from r2fft_hdl.fixed_point import (
    FixedPointPolicy, Requantize, RoundMode, ScaleMode, negate, negate_model)
from .amaranth_sim import AmaranthSim


class TestFixedPointPolicy(unittest.TestCase):
    def test_round_requires_scaled(self):
        with self.assertRaises(ValueError):
            FixedPointPolicy(ScaleMode.UNSCALED, RoundMode.ROUND)

    def test_invalid_modes(self):
        with self.assertRaises(ValueError):
            FixedPointPolicy('scaled', RoundMode.TRUNCATE)
        with self.assertRaises(ValueError):
            FixedPointPolicy(ScaleMode.SCALED, 'round')

    def test_keywords(self):
        policy = FixedPointPolicy(scale=ScaleMode.SCALED,
                                  round_mode=RoundMode.ROUND)
        self.assertIs(policy.round_mode, RoundMode.ROUND)
        self.assertTrue(policy.rounding)
        with self.assertRaises(ValueError):
            FixedPointPolicy(scale=ScaleMode.UNSCALED,
                             round_mode=RoundMode.ROUND)

    def test_widths(self):
        unscaled = FixedPointPolicy(ScaleMode.UNSCALED, RoundMode.TRUNCATE)
        self.assertEqual(unscaled.width_out(16), 17)
        self.assertEqual(unscaled.truncate, 0)
        self.assertEqual(unscaled.delay, 0)
        truncated = FixedPointPolicy(ScaleMode.SCALED, RoundMode.TRUNCATE)
        self.assertEqual(truncated.width_out(16), 16)
        self.assertEqual(truncated.truncate, 1)
        self.assertEqual(truncated.delay, 0)
        rounded = FixedPointPolicy(ScaleMode.SCALED, RoundMode.ROUND)
        self.assertEqual(rounded.width_out(16), 16)
        self.assertEqual(rounded.delay, 1)

    def test_model(self):
        x = np.array([5, 6, 7, -5, -6, -7])
        truncated = FixedPointPolicy(ScaleMode.SCALED, RoundMode.TRUNCATE)
        np.testing.assert_equal(truncated.model(x, 1, 8),
                                [2, 3, 3, -3, -3, -4])
        rounded = FixedPointPolicy(ScaleMode.SCALED, RoundMode.ROUND)
        np.testing.assert_equal(rounded.model(x, 1, 8),
                                [3, 3, 4, -2, -3, -3])
        np.testing.assert_equal(rounded.model(x, 2, 8),
                                [1, 2, 2, -1, -1, -2])
        # results wrap to the output width
        np.testing.assert_equal(truncated.model([300, -300], 0, 8),
                                [44, -44])

    def test_negate_model(self):
        np.testing.assert_equal(
            negate_model([-128, -127, 0, 1, 127], 8),
            [127, 127, 0, -1, -127])


class TestNegate(AmaranthSim):
    def test_negate(self):
        width = 8
        self.dut = m = Module()
        x = Signal(signed(width))
        y = Signal(signed(width))
        m.d.sync += y.eq(negate(x, width))
        values = np.arange(-2**(width-1), 2**(width-1))

        async def bench(ctx):
            for value, expected in zip(values, negate_model(values, width)):
                ctx.set(x, int(value))
                await ctx.tick()
                self.assertEqual(ctx.get(y), expected)

        self.simulate(bench)


class TestRequantize(AmaranthSim):
    def test_model(self):
        for scale, round_mode, drop in [
                (ScaleMode.UNSCALED, RoundMode.TRUNCATE, 0),
                (ScaleMode.UNSCALED, RoundMode.TRUNCATE, 3),
                (ScaleMode.SCALED, RoundMode.TRUNCATE, 1),
                (ScaleMode.SCALED, RoundMode.ROUND, 1),
                (ScaleMode.SCALED, RoundMode.ROUND, 5)]:
            with self.subTest(scale=scale, round_mode=round_mode, drop=drop):
                self.common_test_model(
                    FixedPointPolicy(scale, round_mode), drop)

    def common_test_model(self, policy, drop):
        width_in = 20
        width_out = 16
        requantize = Requantize(width_in, width_out, drop, policy)
        # register the outputs, so that there is a clock domain also when
        # the requantization is combinational
        self.dut = m = Module()
        m.submodules.requantize = requantize
        re_out = Signal(signed(width_out))
        im_out = Signal(signed(width_out))
        m.d.sync += [
            re_out.eq(requantize.re_out),
            im_out.eq(requantize.im_out),
        ]
        delay = requantize.delay + 1
        num_inputs = 200
        re_in, im_in = (
            np.random.randint(-2**(width_in-1), 2**(width_in-1),
                              size=num_inputs)
            for _ in range(2))
        expected_re, expected_im = requantize.model(re_in, im_in)

        async def bench(ctx):
            for j in range(num_inputs + delay):
                await ctx.tick()
                if j >= delay:
                    self.assertEqual(ctx.get(re_out), expected_re[j - delay])
                    self.assertEqual(ctx.get(im_out), expected_im[j - delay])
                if j < num_inputs:
                    ctx.set(requantize.re_in, int(re_in[j]))
                    ctx.set(requantize.im_in, int(im_in[j]))

        self.simulate(bench)


if __name__ == '__main__':
    unittest.main()
