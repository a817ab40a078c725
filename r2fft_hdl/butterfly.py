#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import numpy as np

from .cmult import Cmult, DSPFamily
from .config import butterfly_latency
from .fixed_point import FixedPointPolicy, Requantize, negate, negate_model
from .twiddle import twiddle_generator, twiddle_shift
from .util import delay_chain


class RotateJ(Elaboratable):
    """Multiplication by -j or +j on every other sample

    The input samples with even index (counting strobes of ``valid_in``
    since reset) are passed through unmodified. The input samples with odd
    index are multiplied by -j (or by +j if ``inverse`` is set), which is
    done by swapping the real and imaginary parts and negating one of them.
    The negation saturates the most negative value.

    Parameters
    ----------
    width : int
        Width of the input and output samples.
    inverse : bool
        Multiply by +j instead of by -j.

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    valid_in : Signal(), in
        Input valid strobe.
    re_in : Signal(signed(width)), in
        Real part of the input sample.
    im_in : Signal(signed(width)), in
        Imaginary part of the input sample.
    re_out : Signal(signed(width)), out
        Real part of the output sample.
    im_out : Signal(signed(width)), out
        Imaginary part of the output sample.
    """
    def __init__(self, width, inverse=False):
        self.w = width
        self.inverse = inverse

        self.valid_in = Signal()
        self.re_in = Signal(signed(self.w))
        self.im_in = Signal(signed(self.w))
        self.re_out = Signal(signed(self.w), reset_less=True)
        self.im_out = Signal(signed(self.w), reset_less=True)

    @property
    def delay(self):
        return 1

    def model(self, re_in, im_in):
        re_in, im_in = (np.array(x, 'int') for x in [re_in, im_in])
        re_out = re_in.copy()
        im_out = im_in.copy()
        if self.inverse:
            re_out[1::2] = negate_model(im_in[1::2], self.w)
            im_out[1::2] = re_in[1::2]
        else:
            re_out[1::2] = im_in[1::2]
            im_out[1::2] = negate_model(re_in[1::2], self.w)
        return re_out, im_out

    def elaborate(self, platform):
        m = Module()
        toggle = Signal()
        with m.If(self.valid_in):
            m.d.sync += toggle.eq(~toggle)
        with m.If(toggle):
            if self.inverse:
                m.d.sync += [
                    self.re_out.eq(negate(self.im_in, self.w)),
                    self.im_out.eq(self.re_in),
                ]
            else:
                m.d.sync += [
                    self.re_out.eq(self.im_in),
                    self.im_out.eq(negate(self.re_in, self.w)),
                ]
        with m.Else():
            m.d.sync += [
                self.re_out.eq(self.re_in),
                self.im_out.eq(self.im_in),
            ]
        return m


class Butterfly(Elaboratable):
    """Radix-2 butterfly

    Base class of :class:`DIFButterfly` and :class:`DITButterfly`. The
    butterfly of stage ``k`` combines samples at distance ``2**k``. Its
    implementation depends on the stage:

    * Stage 0 only adds and subtracts.
    * Stage 1 multiplies by 1 or -+j, alternating on each sample.
    * Stages ``k >= 2`` multiply by the twiddle factors
      ``exp(-+1j*pi*m/2**k)``, ``m = 0, ..., 2**k - 1``, using a twiddle
      generator and a complex multiplier.

    Inputs are accepted whenever ``valid_in`` is asserted. The outputs
    corresponding to an input appear ``delay`` cycles later, together with
    ``valid_out``. The index of the twiddle factor advances with each
    strobe of ``valid_in``, so the first strobe after reset must be the
    first pair of a transform.

    In order to prevent overflows, the inputs must have complex amplitude
    smaller or equal than ``2**(width_in-1)-1``.

    Parameters
    ----------
    stage : int
        Stage index ``k``.
    width_in : int
        Width of the input samples.
    policy : FixedPointPolicy
        Fixed-point policy, which determines the output width and the
        treatment of the LSBs.
    twiddle_width : int
        Width of the twiddle factors.
    family : DSPFamily
        Multiplier family.
    inverse : bool
        Use the conjugate twiddle factors of the inverse transform.
    twiddle_mode : str
        Twiddle generation mode (see :func:`twiddle_generator`).
    twiddle_storage : str
        Twiddle storage mode (see :class:`TwiddleTable`).

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    valid_in : Signal(), in
        Input valid strobe.
    re_a_in, im_a_in, re_b_in, im_b_in : Signal(signed(width_in)), in
        Input pair.
    valid_out : Signal(), out
        Output valid strobe.
    re_a_out, im_a_out, re_b_out, im_b_out : Signal(signed(width_out)), out
        Output pair.
    """
    def __init__(self, stage, width_in, policy=None, twiddle_width=16,
                 family=DSPFamily.SERIES7, inverse=False,
                 twiddle_mode='auto', twiddle_storage='auto'):
        self.stage = stage
        self.w = width_in
        self.policy = policy if policy is not None else FixedPointPolicy()
        self.w_out = self.policy.width_out(width_in)
        self.tw = twiddle_width
        self.family = family
        self.inverse = inverse
        self.latency = butterfly_latency(
            stage, width_in, twiddle_width, family, self.policy,
            inverse=inverse, twiddle_mode=twiddle_mode)

        if stage == 0:
            self.variant = 'identity'
        elif stage == 1:
            self.variant = 'rotate'
        else:
            self.variant = 'multiply'

        self.valid_in = Signal()
        self.re_a_in = Signal(signed(self.w))
        self.im_a_in = Signal(signed(self.w))
        self.re_b_in = Signal(signed(self.w))
        self.im_b_in = Signal(signed(self.w))
        self.valid_out = Signal()
        self.re_a_out = Signal(signed(self.w_out))
        self.im_a_out = Signal(signed(self.w_out))
        self.re_b_out = Signal(signed(self.w_out))
        self.im_b_out = Signal(signed(self.w_out))

        if self.variant == 'rotate':
            self.rotate = RotateJ(self.rotate_width, inverse=inverse)
        elif self.variant == 'multiply':
            self.twiddle = twiddle_generator(
                stage, twiddle_width, inverse=inverse, mode=twiddle_mode,
                storage=twiddle_storage)
            self.cmult = Cmult(self.mult_width, twiddle_width, family)

    @property
    def delay(self):
        return self.latency.butterfly

    def _requantize(self, m, name, value, width, drop):
        requantize = Requantize(width, self.w_out, drop, self.policy)
        m.submodules[name] = requantize
        re, im = value
        m.d.comb += [
            requantize.re_in.eq(re),
            requantize.im_in.eq(im),
        ]
        return requantize

    def _connect_outputs(self, m, x, y, delay):
        # Check that our delay definition is correct
        assert self.delay == delay + x.delay
        m.d.comb += [
            self.re_a_out.eq(x.re_out),
            self.im_a_out.eq(x.im_out),
            self.re_b_out.eq(y.re_out),
            self.im_b_out.eq(y.im_out),
            self.valid_out.eq(
                delay_chain(m, self.valid_in, self.delay, 'valid',
                            reset_less=False)),
        ]

    def _inputs(self):
        return ((self.re_a_in, self.im_a_in), (self.re_b_in, self.im_b_in))


class DIFButterfly(Butterfly):
    """Decimation in frequency butterfly

    Computes ``X = A + B`` and ``Y = (A - B) * W``, where ``W`` is the
    twiddle factor. This is used for the forward transform. See
    :class:`Butterfly` for the parameters and attributes.
    """
    @property
    def rotate_width(self):
        return self.w + 1

    @property
    def mult_width(self):
        return self.w + 1

    def model(self, re_a, im_a, re_b, im_b):
        re_a, im_a, re_b, im_b = (np.array(x, 'int')
                                  for x in [re_a, im_a, re_b, im_b])
        t = self.policy.truncate
        re_x, im_x = (self.policy.model(x, t, self.w_out)
                      for x in [re_a + re_b, im_a + im_b])
        re_d, im_d = re_a - re_b, im_a - im_b
        if self.variant == 'identity':
            drop = t
        elif self.variant == 'rotate':
            re_d, im_d = self.rotate.model(re_d, im_d)
            drop = t
        else:
            re_w, im_w = self.twiddle.model(re_d.size)
            re_d, im_d = self.cmult.model(re_d, im_d, re_w, im_w)
            drop = twiddle_shift(self.tw) + t
        re_y, im_y = (self.policy.model(x, drop, self.w_out)
                      for x in [re_d, im_d])
        return re_x, im_x, re_y, im_y

    def elaborate(self, platform):
        m = Module()

        sum_re = Signal(signed(self.w + 1), reset_less=True)
        sum_im = Signal(signed(self.w + 1), reset_less=True)
        diff_re = Signal(signed(self.w + 1), reset_less=True)
        diff_im = Signal(signed(self.w + 1), reset_less=True)
        (re_a, im_a), (re_b, im_b) = self._inputs()
        m.d.sync += [
            sum_re.eq(re_a + re_b),
            sum_im.eq(im_a + im_b),
            diff_re.eq(re_a - re_b),
            diff_im.eq(im_a - im_b),
        ]
        t = self.policy.truncate

        if self.variant == 'identity':
            x = (sum_re, sum_im)
            y = (diff_re, diff_im)
            y_width = self.w + 1
            y_drop = t
            delay = 1
        elif self.variant == 'rotate':
            m.submodules.rotate = rotate = self.rotate
            # the rotation alternates on the strobes of the adder output
            valid_q = delay_chain(m, self.valid_in, 1, 'valid_add',
                                  reset_less=False)
            m.d.comb += [
                rotate.valid_in.eq(valid_q),
                rotate.re_in.eq(diff_re),
                rotate.im_in.eq(diff_im),
            ]
            x = (delay_chain(m, sum_re, rotate.delay, 'sum_re'),
                 delay_chain(m, sum_im, rotate.delay, 'sum_im'))
            y = (rotate.re_out, rotate.im_out)
            y_width = self.w + 1
            y_drop = t
            delay = 1 + rotate.delay
        else:
            m.submodules.twiddle = twiddle = self.twiddle
            m.submodules.cmult = cmult = self.cmult
            # the difference waits for the twiddle factor
            align = max(twiddle.delay - 1, 0)
            m.d.comb += [
                twiddle.valid_in.eq(self.valid_in),
                cmult.re_a.eq(delay_chain(m, diff_re, align, 'diff_re')),
                cmult.im_a.eq(delay_chain(m, diff_im, align, 'diff_im')),
                cmult.re_b.eq(twiddle.re_out),
                cmult.im_b.eq(twiddle.im_out),
            ]
            x = (delay_chain(m, sum_re, align + cmult.delay, 'sum_re'),
                 delay_chain(m, sum_im, align + cmult.delay, 'sum_im'))
            y = (cmult.re_out, cmult.im_out)
            y_width = cmult.outw
            y_drop = twiddle_shift(self.tw) + t
            delay = 1 + align + cmult.delay

        x = self._requantize(m, 'requantize_x', x, self.w + 1, t)
        y = self._requantize(m, 'requantize_y', y, y_width, y_drop)
        self._connect_outputs(m, x, y, delay)
        return m


class DITButterfly(Butterfly):
    """Decimation in time butterfly

    Computes ``X = A + B * W`` and ``Y = A - B * W``, where ``W`` is the
    twiddle factor. This is used for the inverse transform. See
    :class:`Butterfly` for the parameters and attributes.
    """
    @property
    def rotate_width(self):
        return self.w

    @property
    def mult_width(self):
        return self.w

    def model(self, re_a, im_a, re_b, im_b):
        re_a, im_a, re_b, im_b = (np.array(x, 'int')
                                  for x in [re_a, im_a, re_b, im_b])
        t = self.policy.truncate
        if self.variant == 'identity':
            shift = 0
        elif self.variant == 'rotate':
            re_b, im_b = self.rotate.model(re_b, im_b)
            shift = 0
        else:
            re_w, im_w = self.twiddle.model(re_b.size)
            re_b, im_b = self.cmult.model(re_b, im_b, re_w, im_w)
            shift = twiddle_shift(self.tw)
        re_a, im_a = re_a << shift, im_a << shift
        return tuple(
            self.policy.model(x, shift + t, self.w_out)
            for x in [re_a + re_b, im_a + im_b, re_a - re_b, im_a - im_b])

    def elaborate(self, platform):
        m = Module()
        (re_a, im_a), (re_b, im_b) = self._inputs()
        t = self.policy.truncate

        if self.variant == 'identity':
            shift = 0
            width = self.w
            delay = 0
        elif self.variant == 'rotate':
            m.submodules.rotate = rotate = self.rotate
            m.d.comb += [
                rotate.valid_in.eq(self.valid_in),
                rotate.re_in.eq(re_b),
                rotate.im_in.eq(im_b),
            ]
            re_a = delay_chain(m, re_a, rotate.delay, 're_a')
            im_a = delay_chain(m, im_a, rotate.delay, 'im_a')
            re_b, im_b = rotate.re_out, rotate.im_out
            shift = 0
            width = self.w
            delay = rotate.delay
        else:
            m.submodules.twiddle = twiddle = self.twiddle
            m.submodules.cmult = cmult = self.cmult
            m.d.comb += [
                twiddle.valid_in.eq(self.valid_in),
                cmult.re_a.eq(delay_chain(m, re_b, twiddle.delay, 're_b')),
                cmult.im_a.eq(delay_chain(m, im_b, twiddle.delay, 'im_b')),
                cmult.re_b.eq(twiddle.re_out),
                cmult.im_b.eq(twiddle.im_out),
            ]
            delay = twiddle.delay + cmult.delay
            re_a = delay_chain(m, re_a, delay, 're_a')
            im_a = delay_chain(m, im_a, delay, 'im_a')
            re_b, im_b = cmult.re_out, cmult.im_out
            shift = twiddle_shift(self.tw)
            width = cmult.outw

        sumw = max(self.w + shift, width) + 1
        sum_re = Signal(signed(sumw), reset_less=True)
        sum_im = Signal(signed(sumw), reset_less=True)
        diff_re = Signal(signed(sumw), reset_less=True)
        diff_im = Signal(signed(sumw), reset_less=True)
        m.d.sync += [
            sum_re.eq((re_a << shift) + re_b),
            sum_im.eq((im_a << shift) + im_b),
            diff_re.eq((re_a << shift) - re_b),
            diff_im.eq((im_a << shift) - im_b),
        ]
        x = self._requantize(m, 'requantize_x', (sum_re, sum_im), sumw,
                             shift + t)
        y = self._requantize(m, 'requantize_y', (diff_re, diff_im), sumw,
                             shift + t)
        self._connect_outputs(m, x, y, delay + 1)
        return m
