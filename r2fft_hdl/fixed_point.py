#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

import enum

from amaranth import *
import numpy as np

from .util import clamp_nbits


class ScaleMode(enum.Enum):
    """Bit growth handling of the butterflies

    ``UNSCALED`` lets each butterfly output grow by one bit. ``SCALED``
    divides each butterfly output by two, so that the width stays
    constant and the forward transform computes ``FFT(x) / NFFT``.
    """
    UNSCALED = 'unscaled'
    SCALED = 'scaled'


class RoundMode(enum.Enum):
    """Treatment of the LSBs discarded by a scaled butterfly"""
    TRUNCATE = 'truncate'
    ROUND = 'round'


class FixedPointPolicy:
    """Fixed-point policy of the butterflies

    Parameters
    ----------
    scale : ScaleMode
        Scaling mode.
    round_mode : RoundMode
        Rounding mode. ``RoundMode.ROUND`` is only meaningful together
        with ``ScaleMode.SCALED``, and any other combination raises
        ``ValueError``.

    Attributes
    ----------
    truncate : int
        Number of LSBs discarded by each butterfly on top of the twiddle
        factor scaling.
    delay : int
        Extra delay (in samples) required to requantize an output.
    """
    def __init__(self, scale=ScaleMode.UNSCALED,
                 round_mode=RoundMode.TRUNCATE):
        if not isinstance(scale, ScaleMode):
            raise ValueError(f'invalid scale mode: {scale}')
        if not isinstance(round_mode, RoundMode):
            raise ValueError(f'invalid round mode: {round_mode}')
        if scale is ScaleMode.UNSCALED and round_mode is RoundMode.ROUND:
            raise ValueError('rounding requires scaled mode')
        self.scale = scale
        self.round_mode = round_mode

    def __repr__(self):
        return (f'FixedPointPolicy(scale={self.scale}, '
                f'round_mode={self.round_mode})')

    @property
    def scaled(self):
        return self.scale is ScaleMode.SCALED

    @property
    def rounding(self):
        return self.round_mode is RoundMode.ROUND

    @property
    def truncate(self):
        return 1 if self.scaled else 0

    @property
    def delay(self):
        return 1 if self.rounding else 0

    def width_out(self, width_in):
        return width_in + 1 - self.truncate

    def model(self, x, drop, width):
        """Model of the requantization of a value

        Discards ``drop`` LSBs of ``x`` (rounding half up or truncating
        depending on the policy) and wraps the result to ``width`` bits.
        """
        x = np.array(x, 'int')
        if self.rounding and drop > 0:
            x = x + (1 << (drop - 1))
        return clamp_nbits(x >> drop, width)


def round_half_up(value, drop):
    """Discard ``drop`` LSBs of an Amaranth value rounding half up"""
    if drop == 0:
        return value
    return (value + (1 << (drop - 1))) >> drop


def negate(value, width):
    """Two's complement negation that saturates the most negative value

    The most negative value is inverted without incrementing, which gives
    the most positive value instead of overflowing.
    """
    most_negative = value == -2**(width - 1)
    return (~value + Mux(most_negative, 0, 1))[:width].as_signed()


def negate_model(x, width):
    x = np.array(x, 'int')
    return np.where(x == -2**(width - 1), 2**(width - 1) - 1, -x)


class Requantize(Elaboratable):
    """Requantization of a complex value

    Discards the LSBs of a complex value according to a
    :class:`FixedPointPolicy`. Rounding needs an adder, so the output is
    registered in that case. Otherwise the output is a combinational
    function of the input.

    Parameters
    ----------
    width_in : int
        Width of the input.
    width_out : int
        Width of the output. The result wraps to this width.
    drop : int
        Number of LSBs to discard.
    policy : FixedPointPolicy
        Fixed-point policy.

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    re_in : Signal(signed(width_in)), in
        Real part of the input.
    im_in : Signal(signed(width_in)), in
        Imaginary part of the input.
    re_out : Signal(signed(width_out)), out
        Real part of the output.
    im_out : Signal(signed(width_out)), out
        Imaginary part of the output.
    """
    def __init__(self, width_in, width_out, drop, policy):
        if drop < 0:
            raise ValueError('the number of dropped bits cannot be negative')
        self.w_in = width_in
        self.w_out = width_out
        self.drop = drop
        self.policy = policy

        self.re_in = Signal(signed(self.w_in))
        self.im_in = Signal(signed(self.w_in))
        self.re_out = Signal(signed(self.w_out), reset_less=True)
        self.im_out = Signal(signed(self.w_out), reset_less=True)

    @property
    def delay(self):
        return self.policy.delay

    def model(self, re_in, im_in):
        return tuple(self.policy.model(x, self.drop, self.w_out)
                     for x in [re_in, im_in])

    def elaborate(self, platform):
        m = Module()
        if self.policy.rounding:
            m.d.sync += [
                self.re_out.eq(round_half_up(self.re_in, self.drop)),
                self.im_out.eq(round_half_up(self.im_in, self.drop)),
            ]
        else:
            m.d.comb += [
                self.re_out.eq(self.re_in >> self.drop),
                self.im_out.eq(self.im_in >> self.drop),
            ]
        return m
