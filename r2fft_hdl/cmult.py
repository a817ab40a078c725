#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

import collections
import enum

from amaranth import *
import amaranth.back.verilog
import numpy as np

from .util import clamp_nbits, delay_chain


class DSPFamily(enum.Enum):
    """FPGA multiplier family

    The family determines the widths of the ports of the hardware
    multiplier slices that the complex multiplier is sized for.
    """
    SERIES7 = '7series'  # DSP48E1, 25x18
    ULTRASCALE = 'ultrascale'  # DSP48E2, 27x18

    @property
    def wide_port(self):
        return {DSPFamily.SERIES7: 25, DSPFamily.ULTRASCALE: 27}[self]

    @property
    def narrow_port(self):
        return 18


MultTier = collections.namedtuple(
    'MultTier', ['name', 'chunks', 'data_port', 'delay'])

_TIER_NAMES = {1: 'single', 2: 'double', 3: 'triple'}


def mult_tier(a_width, b_width, family=DSPFamily.SERIES7):
    """Select the multiplier tier for a pair of operand widths

    The ``b`` operand (the twiddle factor) must fit a single multiplier
    port. It goes on the narrow port when it fits, and on the wide port
    otherwise. The ``a`` operand (the data) is split into a signed top
    slice, which uses the remaining port, and up to two unsigned low
    slices that are one bit narrower than the narrow port.

    Raises
    ------
    ValueError
        If the operand widths are not supported by any tier.
    """
    if a_width < 2 or b_width < 2:
        raise ValueError('multiplier operands need at least 2 bits')
    if b_width <= family.narrow_port:
        data_port = family.wide_port
    elif b_width <= family.wide_port:
        data_port = family.narrow_port
    else:
        raise ValueError(
            f'twiddle width {b_width} is not supported by {family.name} '
            f'multipliers (maximum {family.wide_port})')
    low = family.narrow_port - 1
    for chunks, name in _TIER_NAMES.items():
        if a_width <= data_port + (chunks - 1) * low:
            return MultTier(name, chunks, data_port, 2 + 2 * chunks)
    raise ValueError(
        f'data width {a_width} with twiddle width {b_width} is not '
        f'supported by {family.name} multipliers (maximum '
        f'{data_port + 2 * low})')


class Cmult(Elaboratable):
    """Complex multiplier

    A fully pipelined full-precision complex multiplier that accepts one
    product per clock cycle. The real and imaginary parts are computed as
    the two dot products ``re_a * re_b - im_a * im_b`` and
    ``re_a * im_b + im_a * re_b``. The ``a`` operand is split into slices
    according to :func:`mult_tier`, and the partial products of each slice
    are added in a cascade, mimicking the cascade of multiplier slices
    used in hardware.

    Parameters
    ----------
    a_width : int
        Width of operand 'a'.
    b_width : int
        Width of operand 'b'. The value ``-2**(b_width-1)`` must not be
        used.
    family : DSPFamily
        Multiplier family used to select the tier.

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    re_a : Signal(signed(a_width)), in
        Real part of operand 'a'.
    im_a : Signal(signed(a_width)), in
        Imaginary part of operand 'a'.
    re_b : Signal(signed(b_width)), in
        Real part of operand 'b'.
    im_b : Signal(signed(b_width)), in
        Imaginary part of operand 'b'.
    re_out : Signal(signed(a_width + b_width)), out
        Real part of result 'a * b'.
    im_out : Signal(signed(a_width + b_width)), out
        Imaginary part of result 'a * b'.
    """
    def __init__(self, a_width, b_width, family=DSPFamily.SERIES7):
        self.tier = mult_tier(a_width, b_width, family)
        self.family = family
        self.aw = a_width
        self.bw = b_width
        self.outw = self.aw + self.bw

        self.re_a = Signal(signed(self.aw))
        self.im_a = Signal(signed(self.aw))
        self.re_b = Signal(signed(self.bw))
        self.im_b = Signal(signed(self.bw))
        self.re_out = Signal(signed(self.outw), reset_less=True)
        self.im_out = Signal(signed(self.outw), reset_less=True)

    @property
    def delay(self):
        return self.tier.delay

    def slices(self):
        """Slices of the 'a' operand

        Returns a list of ``(lsb, msb, signed)`` tuples, starting with the
        least significant slice.
        """
        low = self.family.narrow_port - 1
        nlow = self.tier.chunks - 1
        slices = [(j * low, (j + 1) * low, False) for j in range(nlow)]
        slices.append((nlow * low, self.aw, True))
        return slices

    def model(self, re_a, im_a, re_b, im_b):
        re_a, im_a, re_b, im_b = (np.array(x, 'int')
                                  for x in [re_a, im_a, re_b, im_b])
        re_out = clamp_nbits(re_a * re_b - im_a * im_b, self.outw)
        im_out = clamp_nbits(re_a * im_b + im_a * re_b, self.outw)
        return re_out, im_out

    def elaborate(self, platform):
        m = Module()

        re_a_q = Signal(signed(self.aw), reset_less=True)
        im_a_q = Signal(signed(self.aw), reset_less=True)
        re_b_q = Signal(signed(self.bw), reset_less=True)
        im_b_q = Signal(signed(self.bw), reset_less=True)
        m.d.sync += [
            re_a_q.eq(self.re_a),
            im_a_q.eq(self.im_a),
            re_b_q.eq(self.re_b),
            im_b_q.eq(self.im_b),
        ]

        accw = self.outw + 2
        slices = self.slices()
        partial_re = []
        partial_im = []
        for j, (lsb, msb, is_signed) in enumerate(slices):
            re_a_slice = re_a_q[lsb:msb]
            im_a_slice = im_a_q[lsb:msb]
            if is_signed:
                re_a_slice = re_a_slice.as_signed()
                im_a_slice = im_a_slice.as_signed()
            mult_rr = Signal(signed(accw), name=f'mult_rr{j}',
                             reset_less=True)
            mult_ii = Signal(signed(accw), name=f'mult_ii{j}',
                             reset_less=True)
            mult_ri = Signal(signed(accw), name=f'mult_ri{j}',
                             reset_less=True)
            mult_ir = Signal(signed(accw), name=f'mult_ir{j}',
                             reset_less=True)
            dot_re = Signal(signed(accw), name=f'dot_re{j}', reset_less=True)
            dot_im = Signal(signed(accw), name=f'dot_im{j}', reset_less=True)
            m.d.sync += [
                mult_rr.eq(re_a_slice * re_b_q),
                mult_ii.eq(im_a_slice * im_b_q),
                mult_ri.eq(re_a_slice * im_b_q),
                mult_ir.eq(im_a_slice * re_b_q),
                dot_re.eq(mult_rr - mult_ii),
                dot_im.eq(mult_ri + mult_ir),
            ]
            # the slice j partial product enters the cascade j cycles later
            partial_re.append(
                (delay_chain(m, dot_re, j, f'dot_re{j}'), lsb))
            partial_im.append(
                (delay_chain(m, dot_im, j, f'dot_im{j}'), lsb))

        # Accumulation cascade
        acc_re = acc_im = None
        for j in range(len(slices)):
            new_re = Signal(signed(accw), name=f'acc_re{j}', reset_less=True)
            new_im = Signal(signed(accw), name=f'acc_im{j}', reset_less=True)
            (dot_re, lsb), (dot_im, _) = partial_re[j], partial_im[j]
            if acc_re is None:
                m.d.sync += [
                    new_re.eq(dot_re << lsb),
                    new_im.eq(dot_im << lsb),
                ]
            else:
                m.d.sync += [
                    new_re.eq(acc_re + (dot_re << lsb)),
                    new_im.eq(acc_im + (dot_im << lsb)),
                ]
            acc_re, acc_im = new_re, new_im

        # Padding registers so that the delay only depends on the tier
        npad = len(slices) - 1
        acc_re = delay_chain(m, acc_re, npad, 'pad_re')
        acc_im = delay_chain(m, acc_im, npad, 'pad_im')
        m.d.comb += [
            self.re_out.eq(acc_re),
            self.im_out.eq(acc_im),
        ]
        # input, multiply, dot product, cascade and padding registers
        assert self.delay == 3 + len(slices) + npad
        return m


if __name__ == '__main__':
    cmult = Cmult(a_width=16, b_width=16)
    with open('cmult.v', 'w') as f:
        f.write(
            amaranth.back.verilog.convert(
                cmult, name='cmult', ports=[
                    cmult.re_a, cmult.im_a,
                    cmult.re_b, cmult.im_b,
                    cmult.re_out, cmult.im_out],
                emit_src=False))
