#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth.sim import Simulator
import numpy as np

import collections
import unittest


PairOutputs = collections.namedtuple(
    'PairOutputs', ['cycle', 're_a', 'im_a', 're_b', 'im_b'])


class AmaranthSim(unittest.TestCase):
    def simulate(self, benches, *, vcd=None):
        sim = Simulator(self.dut)
        sim.add_clock(12e-9)
        if hasattr(benches, '__iter__'):
            for bench in benches:
                sim.add_testbench(bench)
        else:
            sim.add_testbench(benches)
        if vcd is None:
            sim.run()
        else:
            with sim.write_vcd(vcd):
                sim.run()

    def simulate_pairs(self, re_a, im_a, re_b, im_b, *, valid=None,
                       extra_cycles=0, reset_cycles=()):
        """Feed a pair stream to the DUT and collect its outputs

        The DUT must have ``valid_in``, ``re_a_in``, ``im_a_in``,
        ``re_b_in``, ``im_b_in`` inputs and the corresponding outputs.
        ``valid`` gives the value of ``valid_in`` on each cycle (by default
        the inputs are presented on consecutive cycles). The outputs are
        recorded on each cycle in which ``valid_out`` is asserted, together
        with the cycle number. An input presented on cycle ``j`` is
        registered by a DUT with delay ``d`` on cycle ``j + d``.
        """
        inputs = [np.array(x, 'int') for x in [re_a, im_a, re_b, im_b]]
        if valid is None:
            valid = np.ones(inputs[0].size, 'bool')
        valid = np.array(valid, 'bool')
        assert np.sum(valid) == inputs[0].size
        ports_in = [self.dut.re_a_in, self.dut.im_a_in,
                    self.dut.re_b_in, self.dut.im_b_in]
        ports_out = [self.dut.re_a_out, self.dut.im_a_out,
                     self.dut.re_b_out, self.dut.im_b_out]
        ncycles = valid.size + self.dut.delay + extra_cycles + 1
        outputs = PairOutputs([], [], [], [], [])

        async def bench(ctx):
            j = 0
            for cycle in range(ncycles):
                await ctx.tick()
                if ctx.get(self.dut.valid_out):
                    outputs.cycle.append(cycle)
                    for port, out in zip(ports_out, outputs[1:]):
                        out.append(ctx.get(port))
                if hasattr(self.dut, 'reset'):
                    ctx.set(self.dut.reset, int(cycle in reset_cycles))
                v = cycle < valid.size and valid[cycle]
                ctx.set(self.dut.valid_in, int(v))
                if v:
                    for port, x in zip(ports_in, inputs):
                        ctx.set(port, int(x[j]))
                    j += 1

        self.simulate(bench)
        return PairOutputs(*(np.array(x, 'int') for x in outputs))

    def assert_pairs_equal(self, outputs, expected):
        for name, out, exp in zip(['re_a', 'im_a', 're_b', 'im_b'],
                                  outputs[1:], expected):
            np.testing.assert_equal(out, exp, f'{name} does not match')
