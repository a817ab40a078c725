#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

import unittest

from r2fft_hdl import configs
from r2fft_hdl.cmult import DSPFamily
from r2fft_hdl.commutator import AddressingMode
from r2fft_hdl.config import FFTConfig, StageLatency, stage_latency
from r2fft_hdl.fixed_point import RoundMode, ScaleMode


class TestFFTConfig(unittest.TestCase):
    def check_invalid(self, **kwargs):
        config = FFTConfig()
        for name, value in kwargs.items():
            setattr(config, name, value)
        with self.assertRaises(ValueError):
            config.validate()

    def test_invalid(self):
        self.check_invalid(order_log2=1)
        self.check_invalid(order_log2=4.0)
        self.check_invalid(width_in=1)
        self.check_invalid(width_twiddle=1)
        self.check_invalid(family='7series')
        self.check_invalid(addressing='wrapped')
        self.check_invalid(scale=ScaleMode.UNSCALED,
                           round_mode=RoundMode.ROUND)
        self.check_invalid(twiddle_mode='cordic')
        self.check_invalid(twiddle_storage='block')
        self.check_invalid(delay_storage='lut')
        self.check_invalid(bitrev_storage='bram')

    def test_unsupported_multiplier(self):
        # twiddles wider than a multiplier port
        self.check_invalid(width_twiddle=26)
        # data wider than three multiplier slices
        self.check_invalid(width_in=60)
        self.check_invalid(width_in=55, scale=ScaleMode.UNSCALED,
                           round_mode=RoundMode.TRUNCATE)

    def test_forward_stages(self):
        config = FFTConfig()
        config.order_log2 = 4
        config.scale = ScaleMode.UNSCALED
        config.round_mode = RoundMode.TRUNCATE
        config.validate()
        stages = config.stages()
        self.assertEqual([s.index for s in stages], [3, 2, 1, 0])
        self.assertEqual([s.block for s in stages], [4, 2, 1, 0])
        self.assertEqual([s.width_in for s in stages], [16, 17, 18, 19])
        self.assertEqual([s.width_out for s in stages], [17, 18, 19, 20])
        self.assertEqual(config.width_out, 20)
        self.assertFalse(any(s.inverse for s in stages))
        self.assertEqual({s.round_mode for s in stages},
                         {RoundMode.TRUNCATE})

    def test_inverse_stages(self):
        config = FFTConfig()
        config.order_log2 = 4
        config.inverse = True
        config.validate()
        stages = config.stages()
        self.assertEqual([s.index for s in stages], [0, 1, 2, 3])
        self.assertEqual([s.block for s in stages], [1, 2, 4, 0])
        self.assertEqual({s.width_in for s in stages}, {16})
        self.assertEqual(config.width_out, 16)
        self.assertTrue(all(s.inverse for s in stages))

    def test_delay_storage(self):
        config = FFTConfig()
        config.order_log2 = 4
        config.delay_storage = 'bram'
        config.validate()
        storage = {s.block: s.delay_storage for s in config.stages()}
        self.assertEqual(storage[4], 'bram')
        self.assertEqual(storage[2], 'bram')
        self.assertEqual(storage[1], 'distributed')

    def test_stage_latency(self):
        config = configs.impulse8()
        config.validate()
        latencies = [stage_latency(s) for s in config.stages()]
        self.assertEqual(latencies, [
            StageLatency(twiddle=1, multiplier=4, adder=1, rounding=0,
                         commutator=3),
            StageLatency(twiddle=0, multiplier=1, adder=1, rounding=0,
                         commutator=2),
            StageLatency(twiddle=0, multiplier=0, adder=1, rounding=0,
                         commutator=0),
        ])
        self.assertEqual([x.total for x in latencies], [9, 4, 1])
        self.assertEqual(sum(x.total for x in latencies), 14)

    def test_stage_latency_wrapped(self):
        config = configs.impulse8()
        config.addressing = AddressingMode.WRAPPED
        config.validate()
        latencies = [stage_latency(s) for s in config.stages()]
        # each group of 2 * block pairs is read out once complete
        self.assertEqual([x.commutator for x in latencies], [5, 3, 0])
        self.assertEqual(sum(x.total for x in latencies), 17)

    def test_stage_latency_rounding(self):
        config = FFTConfig()
        config.order_log2 = 3
        config.inverse = True
        latencies = [stage_latency(s) for s in config.stages()]
        self.assertEqual([x.butterfly for x in latencies], [2, 3, 8])
        self.assertEqual([x.commutator for x in latencies], [2, 3, 0])

    def test_wide_twiddle_latency(self):
        config = FFTConfig()
        config.order_log2 = 3
        config.width_in = 30
        config.width_twiddle = 25
        config.family = DSPFamily.ULTRASCALE
        config.validate()
        # 31 bit differences need two multiplier slices
        self.assertEqual(stage_latency(config.stages()[0]).multiplier, 6)

    def test_presets(self):
        for name in configs.names():
            with self.subTest(name=name):
                config = getattr(configs, name)()
                config.validate()

    def test_impulse8_preset(self):
        config = configs.impulse8()
        self.assertEqual(config.nfft, 8)
        self.assertIs(config.scale, ScaleMode.SCALED)
        self.assertIs(config.round_mode, RoundMode.TRUNCATE)
        self.assertEqual(config.width_out, 16)


if __name__ == '__main__':
    unittest.main()
