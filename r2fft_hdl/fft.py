#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

import argparse

from amaranth import *
import amaranth.back.verilog
import numpy as np

from . import configs
from .butterfly import DIFButterfly, DITButterfly
from .commutator import BitReverse, Commutator, DelayLine
from .config import stage_latency
from .util import bit_reverse_permutation, delay_chain


def split_frames(x, order_log2, bitrev=False):
    """Split a sequence of transforms into the A and B streams

    Each transform of ``2**order_log2`` elements is split in halves. The
    first half goes to the A stream and the second half to the B stream.
    If ``bitrev`` is set, the halves are reordered in pair bit-reversed
    order, which is the order of the output of the forward transform and of
    the input of the inverse transform.
    """
    half = 2**(order_log2 - 1)
    x = np.asarray(x).reshape(-1, 2 * half)
    a, b = x[:, :half], x[:, half:]
    if bitrev:
        perm = bit_reverse_permutation(order_log2 - 1)
        a, b = a[:, perm], b[:, perm]
    return a.ravel(), b.ravel()


def join_frames(a, b, order_log2, bitrev=False):
    """Inverse of :func:`split_frames`"""
    half = 2**(order_log2 - 1)
    a, b = (np.asarray(x).reshape(-1, half) for x in [a, b])
    if bitrev:
        perm = bit_reverse_permutation(order_log2 - 1)
        a, b = a[:, perm], b[:, perm]
    return np.concatenate((a, b), axis=1).ravel()


def radix2_model(a, b, inverse=False):
    """Double precision model of the pipeline dataflow

    Computes one transform with the same sequence of butterflies and
    commutators as :class:`FFT`, using floating point arithmetic and without
    scaling. ``a`` and ``b`` are the two complex input streams of one
    transform. The forward transform takes natural half-split order and
    produces pair bit-reversed order. The inverse transform takes pair
    bit-reversed order, produces natural half-split order, and is not
    divided by the transform size.
    """
    a, b = (np.array(x, 'complex') for x in [a, b])
    n = int(np.log2(2 * a.size))
    sign = 1 if inverse else -1
    t = np.arange(a.size)
    order = range(n) if inverse else reversed(range(n))
    for j, k in enumerate(order):
        w = np.exp(sign * 1j * np.pi * (t % 2**k) / 2**k)
        if inverse:
            bw = b * w
            a, b = a + bw, a - bw
        else:
            a, b = a + b, (a - b) * w
        if j != n - 1:
            block = 2**k if inverse else 2**(k - 1)
            a, b = (x.reshape(-1, 2, block) for x in [a, b])
            a, b = (np.stack((a[:, 0], b[:, 0]), axis=1).ravel(),
                    np.stack((a[:, 1], b[:, 1]), axis=1).ravel())
    return a, b


class FFT(Elaboratable):
    """Radix-2 pipelined FFT

    The FFT processes two complex samples per clock cycle, one on each of the
    A and B streams. Each transform of ``2**order_log2`` points is presented
    as ``2**(order_log2-1)`` pairs, each marked by ``valid_in``. With
    ``CONTINUOUS`` addressing the pairs of a transform must come on
    consecutive cycles. With ``WRAPPED`` addressing they can have gaps of
    any length, and each transform leaves as a run of consecutive pairs, the
    last of which comes ``delay`` cycles after the last input pair.

    The forward transform uses decimation in frequency. Its input is in
    natural half-split order (stream A carries the first half of the
    transform input and stream B the second half) and its output is in pair
    bit-reversed order (see :func:`split_frames`). The inverse transform uses
    decimation in time and takes pair bit-reversed order to natural
    half-split order, so it can be connected directly to the output of the
    forward transform. When ``bitrev`` is enabled in the configuration, a
    :class:`BitReverse` unit at the output of the forward transform or at
    the input of the inverse transform makes both the input and the output
    be in natural order.

    Allowed input values:

    In order to prevent internal overflows, the input must have complex
    amplitude smaller or equal than 2**(width_in-1)-1 (the complex amplitude
    is defined as sqrt(re**2 + im**2)).

    Parameters
    ----------
    config : FFTConfig
        FFT configuration. It is validated on construction, raising
        ``ValueError`` if it is not supported.

    Attributes
    ----------
    delay : int
        Delay (in samples) from an input pair to the corresponding output
        pair for transforms presented on consecutive cycles.
    reset : Signal(), in
        Synchronous reset. It clears the counters and valid bits of all the
        stages.
    valid_in : Signal(), in
        Input valid strobe.
    re_a_in, im_a_in, re_b_in, im_b_in : Signal(signed(width_in)), in
        Input pair.
    valid_out : Signal(), out
        Output valid strobe.
    re_a_out, im_a_out, re_b_out, im_b_out : Signal(signed(width_out)), out
        Output pair.
    """
    def __init__(self, config):
        config.validate()
        self.config = config
        self.order_log2 = config.order_log2
        self.w_in = config.width_in
        self.w_out = config.width_out
        self._stages = config.stages()

        self.reset = Signal()
        self.valid_in = Signal()
        self.re_a_in = Signal(signed(self.w_in))
        self.im_a_in = Signal(signed(self.w_in))
        self.re_b_in = Signal(signed(self.w_in))
        self.im_b_in = Signal(signed(self.w_in))
        self.valid_out = Signal()
        self.re_a_out = Signal(signed(self.w_out))
        self.im_a_out = Signal(signed(self.w_out))
        self.re_b_out = Signal(signed(self.w_out))
        self.im_b_out = Signal(signed(self.w_out))

        self._butterflies = []
        self._commutators = []
        self._bitrev = None
        if config.bypass:
            return
        butterfly = DITButterfly if config.inverse else DIFButterfly
        for stage in self._stages:
            self._butterflies.append(butterfly(
                stage.index, stage.width_in, policy=stage.policy,
                twiddle_width=stage.twiddle_width, family=stage.family,
                inverse=stage.inverse, twiddle_mode=stage.twiddle_mode,
                twiddle_storage=stage.twiddle_storage))
            if stage.block:
                self._commutators.append(Commutator(
                    stage.block, stage.width_out, mode=stage.addressing,
                    storage=stage.delay_storage))
        if config.bitrev:
            self._bitrev = BitReverse(
                self.order_log2,
                self.w_in if config.inverse else self.w_out,
                storage=config.bitrev_storage)

    def stage_latencies(self):
        return [stage_latency(stage) for stage in self._stages]

    @property
    def delay(self):
        delay = sum(latency.total for latency in self.stage_latencies())
        if self.config.bitrev:
            delay += 2**(self.order_log2 - 1) + 1
        return delay

    @property
    def model_vlen(self):
        return 2**(self.order_log2 - 1)

    def model(self, re_a, im_a, re_b, im_b):
        """Bit-exact model of the FFT

        The inputs are the A and B streams, whose length must be a multiple
        of ``model_vlen``. The first element must be the first pair
        presented after reset.
        """
        x = tuple(np.array(v, 'int') for v in [re_a, im_a, re_b, im_b])
        if self.config.bypass:
            return x
        if self._bitrev is not None and self.config.inverse:
            x = self._bitrev.model(*x)
        commutators = iter(self._commutators)
        for bfly, stage in zip(self._butterflies, self._stages):
            x = bfly.model(*x)
            if stage.block:
                x = next(commutators).model(*x)
        if self._bitrev is not None and not self.config.inverse:
            x = self._bitrev.model(*x)
        return x

    def ports(self):
        return [
            self.reset,
            self.valid_in,
            self.re_a_in, self.im_a_in, self.re_b_in, self.im_b_in,
            self.valid_out,
            self.re_a_out, self.im_a_out, self.re_b_out, self.im_b_out,
        ]

    def _inputs(self):
        return (self.valid_in,
                self.re_a_in, self.im_a_in, self.re_b_in, self.im_b_in)

    @staticmethod
    def _outputs(unit):
        return (unit.valid_out,
                unit.re_a_out, unit.im_a_out, unit.re_b_out, unit.im_b_out)

    @staticmethod
    def _connect(m, source, unit):
        valid, re_a, im_a, re_b, im_b = source
        m.d.comb += [
            unit.valid_in.eq(valid),
            unit.re_a_in.eq(re_a),
            unit.im_a_in.eq(im_a),
            unit.re_b_in.eq(re_b),
            unit.im_b_in.eq(im_b),
        ]
        return FFT._outputs(unit)

    def elaborate(self, platform):
        m = Module()
        datapath = Module()
        if self.config.bypass:
            out = self.elaborate_bypass(datapath)
        else:
            out = self.elaborate_stages(datapath)
        m.submodules.datapath = ResetInserter(self.reset)(datapath)
        valid, re_a, im_a, re_b, im_b = out
        m.d.comb += [
            self.valid_out.eq(valid),
            self.re_a_out.eq(re_a),
            self.im_a_out.eq(im_a),
            self.re_b_out.eq(re_b),
            self.im_b_out.eq(im_b),
        ]
        return m

    def elaborate_stages(self, m):
        x = self._inputs()
        if self._bitrev is not None and self.config.inverse:
            m.submodules.bitrev = self._bitrev
            x = self._connect(m, x, self._bitrev)
        commutators = iter(self._commutators)
        for bfly, stage in zip(self._butterflies, self._stages):
            m.submodules[f'bfly{stage.index}'] = bfly
            x = self._connect(m, x, bfly)
            if stage.block:
                commutator = next(commutators)
                m.submodules[f'commutator{stage.index}'] = commutator
                x = self._connect(m, x, commutator)
        if self._bitrev is not None and not self.config.inverse:
            m.submodules.bitrev = self._bitrev
            x = self._connect(m, x, self._bitrev)
        return x

    def elaborate_bypass(self, m):
        # Pure delay line with the same latency as the transform
        m.submodules.bypass = bypass = DelayLine(
            self.delay, 4 * self.w_in, storage=self.config.delay_storage)
        m.d.comb += [
            bypass.clken.eq(1),
            bypass.data_in.eq(Cat(self.re_a_in, self.im_a_in,
                                  self.re_b_in, self.im_b_in)),
        ]
        valid = delay_chain(m, self.valid_in, self.delay, 'valid',
                            reset_less=False)
        w = self.w_in
        data = [bypass.data_out[j*w:(j+1)*w].as_signed() for j in range(4)]
        return (valid, *data)


def parse_args():
    parser = argparse.ArgumentParser(
        description='Generate Verilog for a radix-2 pipelined FFT')
    parser.add_argument(
        '--config', default='default', choices=configs.names(),
        help='FFT configuration name [default=%(default)r]')
    parser.add_argument(
        '--order-log2', type=int,
        help='Override the log2 of the FFT size')
    parser.add_argument(
        '--width-in', type=int,
        help='Override the input width')
    parser.add_argument(
        '--inverse', action='store_true',
        help='Generate an inverse FFT')
    parser.add_argument(
        '--name', default='r2fft',
        help='Verilog module name [default=%(default)r]')
    parser.add_argument(
        'output_file', help='Output verilog file')
    return parser.parse_args()


def main():
    args = parse_args()
    config = getattr(configs, args.config)()
    if args.order_log2 is not None:
        config.order_log2 = args.order_log2
    if args.width_in is not None:
        config.width_in = args.width_in
    if args.inverse:
        config.inverse = True
    top = FFT(config)
    with open(args.output_file, 'w') as f:
        f.write(amaranth.back.verilog.convert(
            top, name=args.name, ports=top.ports(), emit_src=False))
    print('wrote verilog to', args.output_file)


if __name__ == '__main__':
    main()
