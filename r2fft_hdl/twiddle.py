#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
from amaranth.lib.memory import Memory
import numpy as np

# Guard bits of the anchor table of the interpolator
GUARD_BITS = 4


def twiddle_scale(width):
    """Integer value that represents 1.0 in a twiddle factor

    Narrow twiddles use the full range. Twiddles of 18 bits or more keep
    one bit of headroom.
    """
    return 2**(width - 1) - 1 if width < 18 else 2**(width - 2) - 1


def twiddle_shift(width):
    """Right shift that undoes the twiddle scaling after multiplying"""
    return width - 1 if width < 18 else width - 2


def twiddles_reference(stage, width, inverse=False):
    """Twiddle factors computed in double precision

    Returns the real and imaginary parts of the ``2**stage`` twiddle
    factors used by the butterfly of a stage, in the order in which
    they are applied.
    """
    sign = 1 if inverse else -1
    twiddle_complex = np.exp(
        sign * 1j * np.pi * np.arange(2**stage) / 2**stage)
    scale = twiddle_scale(width)
    return (np.round(scale * twiddle_complex.real).astype('int'),
            np.round(scale * twiddle_complex.imag).astype('int'))


def interpolation_lo_bits(stage, width):
    """Largest number of interpolated index bits

    Interpolating with a first order Taylor expansion over ``lo_bits`` index
    bits has a worst case error of ``scale * delta**2 / 2``, where ``delta``
    is the largest angle increment. This returns the largest ``lo_bits`` for
    which this error stays below 1/4 of an LSB, keeping at least two
    anchors.
    """
    scale = twiddle_scale(width)
    lo_bits = 0
    while lo_bits + 1 <= stage - 2:
        delta = np.pi * (2**(lo_bits + 1) - 1) / 2**stage
        if scale * delta**2 / 2 > 0.25:
            break
        lo_bits += 1
    return lo_bits


def resolve_twiddle_mode(stage, width, mode='auto'):
    """Twiddle generation strategy of a stage

    ``'table'`` always uses a direct table. ``'interpolate'`` uses
    interpolation whenever it meets the accuracy requirement, and a table
    otherwise. ``'auto'`` uses direct tables up to 512 entries per
    quadrant and replaces larger tables by interpolation when possible.
    """
    if mode not in ['auto', 'table', 'interpolate']:
        raise ValueError(f'invalid twiddle generation mode: {mode}')
    if mode == 'table' or interpolation_lo_bits(stage, width) < 1:
        return 'table'
    if mode == 'auto' and stage - 1 < 10:
        return 'table'
    return 'interpolate'


def twiddle_delay(mode):
    return {'table': TwiddleTable.DELAY,
            'interpolate': TwiddleInterpolator.DELAY}[mode]


def _check_args(stage, storage):
    if stage < 2:
        raise ValueError(
            f'stage {stage} does not need a twiddle generator')
    if storage not in ['auto', 'bram', 'lut']:
        raise ValueError(f'invalid storage class for twiddles: {storage}')


def _quadrant(index, stage):
    return (index >> (stage - 1)) & 1, index & (2**(stage - 1) - 1)


def _unfold(quadrant, cos_q, sin_q, inverse):
    # second quadrant: cos(pi/2 + x) = -sin(x), sin(pi/2 + x) = cos(x)
    re = np.where(quadrant, -sin_q, cos_q)
    sin = np.where(quadrant, cos_q, sin_q)
    return re, sin if inverse else -sin


class TwiddleTable(Elaboratable):
    """Twiddle factor generator using a table

    The twiddles of stage ``k`` are ``exp(-+1j*pi*m/2**k)`` for
    ``m = 0, ..., 2**k - 1``, with the minus sign for the forward transform
    and the plus sign for the inverse transform. Only the first quadrant is
    stored. The second quadrant is obtained by swapping and negating.

    The generator contains a counter which is advanced each time that
    ``valid_in`` is asserted and addresses the table. The twiddle
    corresponding to a strobe of ``valid_in`` is presented in the output
    ``delay`` cycles after the strobe.

    Parameters
    ----------
    stage : int
        Stage index ``k`` (at least 2).
    width : int
        Width of the twiddle factors.
    inverse : bool
        Generate the conjugate twiddles of the inverse transform.
    storage : str
        Storage mode for the table. There are three possible storage modes:
            * ``'lut'`` uses combinational LUTs followed by a register
            * ``'bram'`` uses BRAMs
            * ``'auto'`` chooses 'lut' or 'bram' depending on the table size

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    valid_in : Signal(), in
        Advances the twiddle index.
    re_out : Signal(signed(width)), out
        Real part of the twiddle factor.
    im_out : Signal(signed(width)), out
        Imaginary part of the twiddle factor.
    """
    DELAY = 2

    def __init__(self, stage, width, inverse=False, storage='auto'):
        _check_args(stage, storage)
        self.stage = stage
        self.tw = width
        self.inverse = inverse
        self.storage = (
            storage if storage != 'auto' else self.auto_storage_rule())

        self.valid_in = Signal()
        self.re_out = Signal(signed(self.tw), reset_less=True)
        self.im_out = Signal(signed(self.tw), reset_less=True)

    @property
    def delay(self):
        return self.DELAY

    @property
    def period(self):
        return 2**self.stage

    def auto_storage_rule(self):
        return 'bram' if 2**(self.stage - 1) >= 2**8 else 'lut'

    def quadrant_table(self):
        angles = np.pi * np.arange(2**(self.stage - 1)) / 2**self.stage
        scale = twiddle_scale(self.tw)
        return (np.round(scale * np.cos(angles)).astype('int'),
                np.round(scale * np.sin(angles)).astype('int'))

    def model(self, n):
        """Returns the first ``n`` twiddles produced after a reset"""
        quadrant, address = _quadrant(np.arange(n) % self.period, self.stage)
        cos_q, sin_q = self.quadrant_table()
        return _unfold(quadrant, cos_q[address], sin_q[address],
                       self.inverse)

    def elaborate(self, platform):
        m = Module()

        index = Signal(self.stage)
        with m.If(self.valid_in):
            m.d.sync += index.eq(index + 1)

        # Pack cos and sin together in the same Memory
        cos_q, sin_q = self.quadrant_table()
        mask = 2**self.tw - 1
        packed = [((int(c) & mask) << self.tw) | (int(s) & mask)
                  for c, s in zip(cos_q, sin_q)]
        mem_attrs = {
            'ram_style': (
                'distributed' if self.storage == 'lut'
                else 'block'),
        }
        m.submodules.table = table = Memory(
            shape=2*self.tw, depth=len(packed), init=packed,
            attrs=mem_attrs)
        if self.storage == 'lut':
            rdport = table.read_port(domain='comb')
            table_out = Signal(2*self.tw, reset_less=True)
            m.d.sync += table_out.eq(rdport.data)
        else:
            rdport = table.read_port()
            table_out = rdport.data
        m.d.comb += rdport.addr.eq(index[:-1])

        quadrant = Signal()
        m.d.sync += quadrant.eq(index[-1])
        cos = table_out[self.tw:].as_signed()
        sin = table_out[:self.tw].as_signed()
        re = Mux(quadrant, -sin, cos)
        im = Mux(quadrant, cos, sin)
        m.d.sync += [
            self.re_out.eq(re),
            self.im_out.eq(im if self.inverse else -im),
        ]
        return m


class TwiddleInterpolator(Elaboratable):
    """Twiddle factor generator using interpolation

    This generates the same sequence as :class:`TwiddleTable` with a much
    smaller memory. The first-quadrant index is split into a coarse part,
    which addresses a table of anchor values stored with
    ``GUARD_BITS`` extra bits, and a fine part, which addresses a table of
    angle increments ``delta``. The twiddle is computed as the first order
    expansion

        cos(x + delta) = cos(x) - delta * sin(x)
        sin(x + delta) = sin(x) + delta * cos(x)

    and rounded half up. The result is within 1 LSB of the value given by
    :func:`twiddles_reference`.

    This is the complex product of the anchor and ``2**frac + 1j * delta``,
    as computed by :meth:`Cmult.model`. Since the real part of the second
    factor is a power of two, only the two products by ``delta`` need
    multipliers. They are done here rather than in a :class:`Cmult`, which
    would use four multipliers and whose latency depends on the operand
    widths, so that the latency of the interpolator is always ``DELAY``.

    Parameters
    ----------
    stage : int
        Stage index ``k`` (at least 2).
    width : int
        Width of the twiddle factors.
    inverse : bool
        Generate the conjugate twiddles of the inverse transform.
    lo_bits : Optional[int]
        Number of index bits that are interpolated. By default, the largest
        value given by :func:`interpolation_lo_bits` is used.
    storage : str
        Storage mode for the anchor table (see :class:`TwiddleTable`).

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module.
    valid_in : Signal(), in
        Advances the twiddle index.
    re_out : Signal(signed(width)), out
        Real part of the twiddle factor.
    im_out : Signal(signed(width)), out
        Imaginary part of the twiddle factor.
    """
    DELAY = 4

    def __init__(self, stage, width, inverse=False, lo_bits=None,
                 storage='auto'):
        _check_args(stage, storage)
        if lo_bits is None:
            lo_bits = interpolation_lo_bits(stage, width)
        if lo_bits < 1 or lo_bits > stage - 2:
            raise ValueError(
                f'invalid number of interpolated bits {lo_bits} '
                f'for stage {stage}')
        self.stage = stage
        self.tw = width
        self.inverse = inverse
        self.lo_bits = lo_bits
        self.guard = GUARD_BITS
        self.frac = width + 2
        self.storage = (
            storage if storage != 'auto' else self.auto_storage_rule())

        self.valid_in = Signal()
        self.re_out = Signal(signed(self.tw), reset_less=True)
        self.im_out = Signal(signed(self.tw), reset_less=True)

    @property
    def delay(self):
        return self.DELAY

    @property
    def period(self):
        return 2**self.stage

    @property
    def anchor_width(self):
        return self.tw + self.guard

    def auto_storage_rule(self):
        nanchors = 2**(self.stage - 1 - self.lo_bits)
        return 'bram' if nanchors >= 2**8 else 'lut'

    def anchor_table(self):
        hi = np.arange(2**(self.stage - 1 - self.lo_bits)) << self.lo_bits
        angles = np.pi * hi / 2**self.stage
        scale = twiddle_scale(self.tw) * 2**self.guard
        return (np.round(scale * np.cos(angles)).astype('int'),
                np.round(scale * np.sin(angles)).astype('int'))

    def delta_table(self):
        lo = np.arange(2**self.lo_bits)
        return np.round(
            np.pi * lo / 2**self.stage * 2**self.frac).astype('int')

    def model(self, n):
        """Returns the first ``n`` twiddles produced after a reset"""
        quadrant, address = _quadrant(np.arange(n) % self.period, self.stage)
        hi = address >> self.lo_bits
        lo = address & (2**self.lo_bits - 1)
        cos_a, sin_a = self.anchor_table()
        cos_a, sin_a = cos_a[hi], sin_a[hi]
        delta = self.delta_table()[lo]
        drop = self.frac + self.guard
        half = 1 << (drop - 1)
        scale = twiddle_scale(self.tw)
        cos_q = np.minimum(
            ((cos_a << self.frac) - sin_a * delta + half) >> drop, scale)
        sin_q = np.minimum(
            ((sin_a << self.frac) + cos_a * delta + half) >> drop, scale)
        return _unfold(quadrant, cos_q, sin_q, self.inverse)

    def elaborate(self, platform):
        m = Module()

        index = Signal(self.stage)
        with m.If(self.valid_in):
            m.d.sync += index.eq(index + 1)
        address = index[:-1]

        aw = self.anchor_width
        cos_a, sin_a = self.anchor_table()
        mask = 2**aw - 1
        packed = [((int(c) & mask) << aw) | (int(s) & mask)
                  for c, s in zip(cos_a, sin_a)]
        mem_attrs = {
            'ram_style': (
                'distributed' if self.storage == 'lut'
                else 'block'),
        }
        m.submodules.anchors = anchors = Memory(
            shape=2*aw, depth=len(packed), init=packed, attrs=mem_attrs)
        if self.storage == 'lut':
            anchor_port = anchors.read_port(domain='comb')
            anchor_out = Signal(2*aw, reset_less=True)
            m.d.sync += anchor_out.eq(anchor_port.data)
        else:
            anchor_port = anchors.read_port()
            anchor_out = anchor_port.data
        m.d.comb += anchor_port.addr.eq(address[self.lo_bits:])

        deltas = [int(d) for d in self.delta_table()]
        dw = max(deltas).bit_length()
        m.submodules.deltas = delta_mem = Memory(
            shape=dw, depth=len(deltas), init=deltas,
            attrs={'ram_style': 'distributed'})
        delta_port = delta_mem.read_port(domain='comb')
        m.d.comb += delta_port.addr.eq(address[:self.lo_bits])

        # Stage 1: table lookups
        delta = Signal(dw, reset_less=True)
        quadrant = [Signal(name=f'quadrant_q{j+1}') for j in range(3)]
        m.d.sync += [
            delta.eq(delta_port.data),
            quadrant[0].eq(index[-1]),
            quadrant[1].eq(quadrant[0]),
            quadrant[2].eq(quadrant[1]),
        ]
        cos1 = anchor_out[aw:].as_signed()
        sin1 = anchor_out[:aw].as_signed()

        # Stage 2: products
        prodw = aw + dw + 1
        mult_c = Signal(signed(prodw), reset_less=True)
        mult_s = Signal(signed(prodw), reset_less=True)
        cos2 = Signal(signed(aw), reset_less=True)
        sin2 = Signal(signed(aw), reset_less=True)
        m.d.sync += [
            mult_c.eq(sin1 * delta),
            mult_s.eq(cos1 * delta),
            cos2.eq(cos1),
            sin2.eq(sin1),
        ]

        # Stage 3: sums
        sumw = max(aw + self.frac, prodw) + 1
        sum_c = Signal(signed(sumw), reset_less=True)
        sum_s = Signal(signed(sumw), reset_less=True)
        m.d.sync += [
            sum_c.eq((cos2 << self.frac) - mult_c),
            sum_s.eq((sin2 << self.frac) + mult_s),
        ]

        # Stage 4: rounding, saturation and quadrant unfolding
        drop = self.frac + self.guard
        scale = twiddle_scale(self.tw)
        rounded_c = Signal(signed(sumw - drop + 1))
        rounded_s = Signal(signed(sumw - drop + 1))
        m.d.comb += [
            rounded_c.eq((sum_c + (1 << (drop - 1))) >> drop),
            rounded_s.eq((sum_s + (1 << (drop - 1))) >> drop),
        ]
        cos = Mux(rounded_c > scale, scale, rounded_c)
        sin = Mux(rounded_s > scale, scale, rounded_s)
        re = Mux(quadrant[2], -sin, cos)
        im = Mux(quadrant[2], cos, sin)
        m.d.sync += [
            self.re_out.eq(re),
            self.im_out.eq(im if self.inverse else -im),
        ]
        return m


def twiddle_generator(stage, width, inverse=False, mode='auto',
                      storage='auto'):
    """Build the twiddle factor generator of a stage

    Parameters
    ----------
    mode : str
        ``'table'``, ``'interpolate'`` or ``'auto'`` (see
        :func:`resolve_twiddle_mode`).
    """
    if resolve_twiddle_mode(stage, width, mode) == 'interpolate':
        return TwiddleInterpolator(stage, width, inverse=inverse,
                                   storage=storage)
    return TwiddleTable(stage, width, inverse=inverse, storage=storage)
