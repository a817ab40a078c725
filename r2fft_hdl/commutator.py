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
from amaranth.lib.memory import Memory
import numpy as np

from .util import bit_reverse_permutation, delay_chain, reverse_bits


class AddressingMode(enum.Enum):
    """Addressing of the commutators

    ``CONTINUOUS`` uses delay lines that advance on every clock cycle. It
    requires each transform to be presented as an unbroken run of valid
    cycles. ``WRAPPED`` writes each group of ``2 * block`` pairs to a memory
    bank, advancing the write address only on valid cycles, and reads the
    group out at one pair per cycle once it is complete. Gaps of any length
    are tolerated, at the cost of ``block`` more cycles of latency.
    """
    CONTINUOUS = 'continuous'
    WRAPPED = 'wrapped'


def commutator_delay(block, mode):
    """Latency of a :class:`Commutator`

    For ``WRAPPED`` addressing this is the latency of a group of pairs
    presented without gaps. With gaps, the group leaves as a run of
    consecutive pairs, the last of which comes ``2 * block + 1`` cycles
    after the last input pair.
    """
    if mode is AddressingMode.WRAPPED:
        return 2 * block + 1
    return block + 1


class DelayLine(Elaboratable):
    """Delay line

    Delays ``data_in`` by ``length`` cycles in which ``clken`` is asserted.

    Parameters
    ----------
    length : int
        Length of the delay line.
    width : int
        Width of the data.
    storage : str
        Selects the storage mode. There are three possible storage modes:
        * ``'distributed'`` uses a chain of registers (flip-flops or LUTMs
          depending on synthesis)
        * ``'bram'`` uses a BRAM with 1 clock cycle of read latency, read
          one address ahead of the write address
        * ``'auto'`` chooses 'distributed' or 'bram' depending on ``length``.

    Attributes
    ----------
    delay : int
        Delay (in enabled cycles) introduced by this module.
    clken : Signal(), in
        Clock enable.
    data_in : Signal(width), in
        Input data.
    data_out : Signal(width), out
        Output data.
    """
    def __init__(self, length, width, storage='auto'):
        if length < 1:
            raise ValueError('delay line length must be positive')
        if storage not in ['auto', 'distributed', 'bram']:
            raise ValueError(f'invalid storage for DelayLine: {storage}')
        self.length = length
        self.w = width
        self.storage = (
            storage if storage != 'auto' else self.auto_storage_rule())
        if self.storage == 'bram' and self.length < 2:
            raise ValueError('length 1 cannot be implemented with BRAM')

        self.clken = Signal()
        self.data_in = Signal(self.w)
        self.data_out = Signal(self.w)

    @property
    def delay(self):
        return self.length

    def auto_storage_rule(self):
        return 'bram' if self.length >= 2**8 else 'distributed'

    def elaborate(self, platform):
        m = Module()
        if self.storage == 'distributed':
            buff = [Signal(self.w, name=f'buff_{j}', reset_less=True)
                    for j in range(self.length)]
            with m.If(self.clken):
                m.d.sync += buff[0].eq(self.data_in)
                m.d.sync += [buff[j].eq(buff[j - 1])
                             for j in range(1, self.length)]
            m.d.comb += self.data_out.eq(buff[-1])
        else:
            m.submodules.buff_mem = buff_mem = Memory(
                shape=self.w, depth=self.length, init=[],
                attrs={'ram_style': 'block'})
            rdport = buff_mem.read_port()
            wrport = buff_mem.write_port()
            waddr = Signal(range(self.length))
            raddr = Signal(range(self.length))
            m.d.comb += raddr.eq(
                Mux(waddr == self.length - 1, 0, waddr + 1))
            with m.If(self.clken):
                m.d.sync += waddr.eq(raddr)
            m.d.comb += [
                rdport.en.eq(self.clken),
                wrport.en.eq(self.clken),
                rdport.addr.eq(raddr),
                wrport.addr.eq(waddr),
                wrport.data.eq(self.data_in),
                self.data_out.eq(rdport.data),
            ]
        return m


def _pair_ports(obj, width):
    obj.valid_in = Signal()
    obj.re_a_in = Signal(signed(width))
    obj.im_a_in = Signal(signed(width))
    obj.re_b_in = Signal(signed(width))
    obj.im_b_in = Signal(signed(width))
    obj.valid_out = Signal()
    obj.re_a_out = Signal(signed(width), reset_less=True)
    obj.im_a_out = Signal(signed(width), reset_less=True)
    obj.re_b_out = Signal(signed(width), reset_less=True)
    obj.im_b_out = Signal(signed(width), reset_less=True)


CommutatorCycles = collections.namedtuple(
    'CommutatorCycles',
    ['valid', 're_a', 'im_a', 're_b', 'im_b'])


class Commutator(Elaboratable):
    """Cross-commutation network between two radix-2 stages

    The network receives a pair of streams A and B and, grouping each stream
    in blocks of ``block`` samples, outputs

        A' = A0, B0, A2, B2, ...
        B' = A1, B1, A3, B3, ...

    so that the element ``i`` of each stream gets paired with the element
    ``i ^ block``.

    With ``CONTINUOUS`` addressing this is done with a delay line in the B
    branch, a switch that exchanges the branches during odd blocks, and a
    delay line in the A branch. A gap inside a group of ``2 * block`` pairs
    misroutes the data.

    With ``WRAPPED`` addressing, two memories hold the first and the second
    half of each group of ``2 * block`` pairs, with two banks used in
    ping-pong. The write address advances on each valid cycle. Once a group
    is complete, it is read out at one pair per clock cycle, taking the A
    samples of both halves in the first half of the output group and the B
    samples in the second half, while the next group is written to the
    other bank.

    Parameters
    ----------
    block : int
        Block size (a power of two).
    width : int
        Width of the samples.
    mode : AddressingMode
        Addressing mode.
    storage : str
        Storage mode. ``'distributed'``, ``'bram'``, or ``'auto'``, which
        selects ``'bram'`` for blocks of 256 or more samples (see
        :class:`DelayLine`).

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module (see
        :func:`commutator_delay`).
    valid_in : Signal(), in
        Input valid strobe.
    re_a_in : Signal(signed(width)), in
        Real part of the stream A input.
    im_a_in : Signal(signed(width)), in
        Imaginary part of the stream A input.
    re_b_in : Signal(signed(width)), in
        Real part of the stream B input.
    im_b_in : Signal(signed(width)), in
        Imaginary part of the stream B input.
    valid_out : Signal(), out
        Output valid strobe.
    re_a_out : Signal(signed(width)), out
        Real part of the stream A output.
    im_a_out : Signal(signed(width)), out
        Imaginary part of the stream A output.
    re_b_out : Signal(signed(width)), out
        Real part of the stream B output.
    im_b_out : Signal(signed(width)), out
        Imaginary part of the stream B output.
    """
    def __init__(self, block, width, mode=AddressingMode.CONTINUOUS,
                 storage='auto'):
        if block < 1 or block & (block - 1):
            raise ValueError(
                f'commutator block size {block} is not a power of two')
        if not isinstance(mode, AddressingMode):
            raise ValueError(f'invalid addressing mode: {mode}')
        if storage not in ['auto', 'distributed', 'bram']:
            raise ValueError(f'invalid storage for Commutator: {storage}')
        self.block = block
        self.w = width
        self.mode = mode
        _pair_ports(self, width)
        if mode is AddressingMode.CONTINUOUS:
            self._delay_b = DelayLine(block, 2 * width, storage)
            self._delay_x = DelayLine(block, 2 * width, storage)
            self.storage = self._delay_b.storage
        else:
            self.storage = (
                storage if storage != 'auto' else self.auto_storage_rule())

    @property
    def delay(self):
        return commutator_delay(self.block, self.mode)

    @property
    def model_vlen(self):
        return 2 * self.block

    def auto_storage_rule(self):
        return 'bram' if self.block >= 2**8 else 'distributed'

    def model(self, re_a, im_a, re_b, im_b):
        """Model of the network

        The length of the inputs must be a multiple of ``2 * block``. In
        ``WRAPPED`` mode the model holds regardless of gaps in the input.
        """
        a, b = ((np.array(re, 'int'), np.array(im, 'int'))
                for re, im in [(re_a, im_a), (re_b, im_b)])
        a, b = ([x.reshape(-1, 2, self.block) for x in z] for z in [a, b])
        out_a = [np.stack((x[:, 0], y[:, 0]), axis=1).ravel()
                 for x, y in zip(a, b)]
        out_b = [np.stack((x[:, 1], y[:, 1]), axis=1).ravel()
                 for x, y in zip(a, b)]
        return out_a[0], out_a[1], out_b[0], out_b[1]

    def model_cycles(self, valid, re_a, im_a, re_b, im_b):
        """Cycle accurate model of the network

        The inputs give the values of the input ports on each clock cycle
        after reset. The return value gives the values of the output ports
        after the clock edge that ends each of those cycles.
        """
        inputs = zip((int(bool(v)) for v in valid),
                     zip(*(np.array(x, 'int').tolist()
                           for x in [re_a, im_a, re_b, im_b])))
        if self.mode is AddressingMode.WRAPPED:
            cycles = self._model_cycles_wrapped(inputs)
        else:
            cycles = self._model_cycles_continuous(inputs)
        out = CommutatorCycles([], [], [], [], [])
        for valid_out, pair in cycles:
            out.valid.append(valid_out)
            for x, y in zip(out[1:], pair):
                x.append(y)
        return CommutatorCycles(*(np.array(x, 'int') for x in out))

    def _model_cycles_continuous(self, inputs):
        d = self.block
        line_b = collections.deque([(0, 0)] * d, maxlen=d)
        line_x = collections.deque([(0, 0)] * d, maxlen=d)
        valid_pipe = collections.deque([0] * (d + 1), maxlen=d + 1)
        count = 0
        for v, (ra, ia, rb, ib) in inputs:
            swap = (count // d) % 2
            b_d = line_b[-1]
            x = b_d if swap else (ra, ia)
            y = (ra, ia) if swap else b_d
            x_d = line_x[-1]
            line_b.appendleft((rb, ib))
            line_x.appendleft(x)
            valid_pipe.appendleft(v)
            count += v
            yield valid_pipe[-1], x_d + y

    def _model_cycles_wrapped(self, inputs):
        d = self.block
        # memory contents indexed by half, bank and address
        mem = [[[(0, 0, 0, 0)] * d for _ in range(2)] for _ in range(2)]
        wcount = wbank = 0
        rcount = rbank = reading = 0
        for v, pair in inputs:
            # registers updated by the clock edge
            lo, hi = (mem[j][rbank][rcount % d] for j in range(2))
            stream_b = rcount // d
            valid_out = reading
            done = v and wcount == 2 * d - 1
            if v:
                mem[wcount // d][wbank][wcount % d] = pair
                wcount = (wcount + 1) % (2 * d)
            if done:
                reading, rcount, rbank = 1, 0, wbank
                wbank ^= 1
            elif reading:
                reading = int(rcount != 2 * d - 1)
                rcount = (rcount + 1) % (2 * d)
            if stream_b:
                yield valid_out, lo[2:] + hi[2:]
            else:
                yield valid_out, lo[:2] + hi[:2]

    def elaborate(self, platform):
        if self.mode is AddressingMode.WRAPPED:
            return self.elaborate_wrapped()
        return self.elaborate_continuous()

    def elaborate_continuous(self):
        m = Module()
        m.submodules.delay_b = delay_b = self._delay_b
        m.submodules.delay_x = delay_x = self._delay_x

        count = Signal(range(2 * self.block))
        with m.If(self.valid_in):
            m.d.sync += count.eq(count + 1)
        swap = count[-1]

        b_d = delay_b.data_out
        a_in = Cat(self.re_a_in, self.im_a_in)
        m.d.comb += [
            delay_b.clken.eq(1),
            delay_x.clken.eq(1),
            delay_b.data_in.eq(Cat(self.re_b_in, self.im_b_in)),
            delay_x.data_in.eq(Mux(swap, b_d, a_in)),
        ]
        y = Mux(swap, a_in, b_d)
        x_d = delay_x.data_out
        w = self.w
        m.d.sync += [
            self.re_a_out.eq(x_d[:w].as_signed()),
            self.im_a_out.eq(x_d[w:].as_signed()),
            self.re_b_out.eq(y[:w].as_signed()),
            self.im_b_out.eq(y[w:].as_signed()),
        ]
        m.d.comb += self.valid_out.eq(
            delay_chain(m, self.valid_in, self.delay, 'valid',
                        reset_less=False))
        return m

    def elaborate_wrapped(self):
        m = Module()
        w = self.w
        nbits = self.block.bit_length() - 1
        mem_attrs = {
            'ram_style': 'block' if self.storage == 'bram' else 'distributed',
        }
        # first and second half of each group
        m.submodules.mem_lo = mem_lo = Memory(
            shape=4*w, depth=2*self.block, init=[], attrs=mem_attrs)
        m.submodules.mem_hi = mem_hi = Memory(
            shape=4*w, depth=2*self.block, init=[], attrs=mem_attrs)

        # Write side
        wcount = Signal(nbits + 1)
        wbank = Signal()
        done = Signal()
        m.d.comb += done.eq(
            self.valid_in & (wcount == 2 * self.block - 1))
        for half, mem in enumerate([mem_lo, mem_hi]):
            wrport = mem.write_port()
            m.d.comb += [
                wrport.en.eq(self.valid_in & (wcount[nbits] == half)),
                wrport.addr.eq(Cat(wcount[:nbits], wbank)),
                wrport.data.eq(Cat(self.re_a_in, self.im_a_in,
                                   self.re_b_in, self.im_b_in)),
            ]
        with m.If(self.valid_in):
            m.d.sync += wcount.eq(wcount + 1)
            with m.If(done):
                m.d.sync += wbank.eq(~wbank)

        # Read side
        rcount = Signal(nbits + 1)
        rbank = Signal()
        reading = Signal()
        with m.If(done):
            m.d.sync += [
                reading.eq(1),
                rbank.eq(wbank),
                rcount.eq(0),
            ]
        with m.Elif(reading):
            m.d.sync += rcount.eq(rcount + 1)
            with m.If(rcount == 2 * self.block - 1):
                m.d.sync += reading.eq(0)
        stream_b = Signal()
        m.d.sync += [
            stream_b.eq(rcount[nbits]),
            self.valid_out.eq(reading),
        ]
        rdports = [mem.read_port() for mem in [mem_lo, mem_hi]]
        for rdport in rdports:
            m.d.comb += rdport.addr.eq(Cat(rcount[:nbits], rbank))
        lo, hi = (Mux(stream_b, rdport.data[2*w:], rdport.data[:2*w])
                  for rdport in rdports)
        m.d.comb += [
            self.re_a_out.eq(lo[:w].as_signed()),
            self.im_a_out.eq(lo[w:].as_signed()),
            self.re_b_out.eq(hi[:w].as_signed()),
            self.im_b_out.eq(hi[w:].as_signed()),
        ]
        return m


class BitReverse(Elaboratable):
    """Bit reversal reordering of a pair of streams

    Converts between natural half-split order, where the element ``i`` of
    stream A is ``x[i]`` and the element ``i`` of stream B is
    ``x[i + 2**(order_log2-1)]``, and pair bit-reversed order, where they
    are ``X[br(i)]`` and ``X[br(i) + 2**(order_log2-1)]`` and ``br()``
    reverses ``order_log2 - 1`` bits. The permutation is an involution, so
    the same unit converts in both directions.

    A memory with two banks is used in ping-pong. Each transform is written
    to a bank in natural order, and once complete, it is read out at one
    pair per clock cycle with bit-reversed addresses while the next
    transform is written to the other bank. Gaps in the input are tolerated.

    Parameters
    ----------
    order_log2 : int
        log2 of the transform size.
    width : int
        Width of the samples.
    storage : str
        Memory style: ``'distributed'``, ``'block'``, or ``'auto'``, which
        selects ``'block'`` for transforms of 512 or more points.

    Attributes
    ----------
    delay : int
        Delay (in samples) introduced by this module when the input has no
        gaps.
    valid_in : Signal(), in
        Input valid strobe.
    re_a_in, im_a_in, re_b_in, im_b_in : Signal(signed(width)), in
        Input pair.
    valid_out : Signal(), out
        Output valid strobe.
    re_a_out, im_a_out, re_b_out, im_b_out : Signal(signed(width)), out
        Output pair.
    """
    def __init__(self, order_log2, width, storage='auto'):
        if order_log2 < 2:
            raise ValueError('bit reversal needs order_log2 >= 2')
        if storage not in ['auto', 'distributed', 'block']:
            raise ValueError(f'invalid storage for BitReverse: {storage}')
        self.order_log2 = order_log2
        self.w = width
        self.storage = (
            storage if storage != 'auto' else self.auto_storage_rule())
        _pair_ports(self, width)

    @property
    def block(self):
        return 2**(self.order_log2 - 1)

    @property
    def delay(self):
        return self.block + 1

    @property
    def model_vlen(self):
        return self.block

    def auto_storage_rule(self):
        return 'block' if 2**self.order_log2 >= 512 else 'distributed'

    def model(self, re_a, im_a, re_b, im_b):
        perm = bit_reverse_permutation(self.order_log2 - 1)
        return tuple(
            np.array(x, 'int').reshape(-1, self.block)[:, perm].ravel()
            for x in [re_a, im_a, re_b, im_b])

    def elaborate(self, platform):
        m = Module()
        w = self.w
        nbits = self.order_log2 - 1
        m.submodules.mem = mem = Memory(
            shape=4*w, depth=2*self.block, init=[],
            attrs={'ram_style': self.storage})
        wrport = mem.write_port()
        rdport = mem.read_port()

        # Write side
        wcount = Signal(nbits)
        wbank = Signal()
        done = Signal()
        m.d.comb += [
            done.eq(self.valid_in & (wcount == self.block - 1)),
            wrport.en.eq(self.valid_in),
            wrport.addr.eq(Cat(wcount, wbank)),
            wrport.data.eq(Cat(self.re_a_in, self.im_a_in,
                               self.re_b_in, self.im_b_in)),
        ]
        with m.If(self.valid_in):
            m.d.sync += wcount.eq(wcount + 1)
            with m.If(done):
                m.d.sync += wbank.eq(~wbank)

        # Read side
        rcount = Signal(nbits)
        rbank = Signal()
        reading = Signal()
        with m.If(done):
            m.d.sync += [
                reading.eq(1),
                rbank.eq(wbank),
                rcount.eq(0),
            ]
        with m.Elif(reading):
            m.d.sync += rcount.eq(rcount + 1)
            with m.If(rcount == self.block - 1):
                m.d.sync += reading.eq(0)
        m.d.comb += rdport.addr.eq(Cat(reverse_bits(rcount), rbank))
        m.d.sync += self.valid_out.eq(reading)
        m.d.comb += [
            self.re_a_out.eq(rdport.data[:w]),
            self.im_a_out.eq(rdport.data[w:2*w]),
            self.re_b_out.eq(rdport.data[2*w:3*w]),
            self.im_b_out.eq(rdport.data[3*w:]),
        ]
        return m
