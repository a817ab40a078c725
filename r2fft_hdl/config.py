#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from typing import NamedTuple

from .cmult import DSPFamily, mult_tier
from .commutator import AddressingMode, commutator_delay
from .fixed_point import FixedPointPolicy, RoundMode, ScaleMode
from .twiddle import resolve_twiddle_mode, twiddle_delay


class StageConfig(NamedTuple):
    """Configuration of one stage of the pipeline

    ``block`` is the block size of the commutator that follows the
    butterfly, or 0 for the last stage, which has no commutator.
    """
    index: int
    width_in: int
    width_out: int
    twiddle_width: int
    family: DSPFamily
    scale: ScaleMode
    round_mode: RoundMode
    addressing: AddressingMode
    inverse: bool
    block: int
    twiddle_mode: str = 'auto'
    twiddle_storage: str = 'auto'
    delay_storage: str = 'auto'

    @property
    def policy(self):
        return FixedPointPolicy(self.scale, self.round_mode)


class StageLatency(NamedTuple):
    """Latency breakdown of a stage

    ``twiddle`` counts the cycles that the data waits for the twiddle
    generator, ``multiplier`` the cycles of the complex multiplier or of the
    +-j rotation, ``adder`` the add/subtract register, ``rounding`` the
    requantization register and ``commutator`` the commutator that follows
    the butterfly.
    """
    twiddle: int
    multiplier: int
    adder: int
    rounding: int
    commutator: int

    @property
    def butterfly(self):
        return self.twiddle + self.multiplier + self.adder + self.rounding

    @property
    def total(self):
        return self.butterfly + self.commutator


def butterfly_latency(stage, width_in, twiddle_width, family, policy,
                      inverse=False, twiddle_mode='auto'):
    """Latency of a butterfly

    This is a pure function of the configuration. Unsupported combinations
    raise ``ValueError``.
    """
    if stage < 0:
        raise ValueError(f'invalid stage index {stage}')
    if stage == 0:
        return StageLatency(0, 0, 1, policy.delay, 0)
    if stage == 1:
        return StageLatency(0, 1, 1, policy.delay, 0)
    mode = resolve_twiddle_mode(stage, twiddle_width, twiddle_mode)
    twiddle = twiddle_delay(mode)
    # DIF multiplies the difference A - B, which has one bit of growth.
    # DIT multiplies the B input directly.
    a_width = width_in if inverse else width_in + 1
    multiplier = mult_tier(a_width, twiddle_width, family).delay
    if inverse:
        return StageLatency(twiddle, multiplier, 1, policy.delay, 0)
    # In DIF the adder register overlaps with the twiddle generation
    return StageLatency(max(twiddle - 1, 0), multiplier, 1, policy.delay, 0)


def stage_latency(stage):
    """Latency of a stage given by a :class:`StageConfig`"""
    latency = butterfly_latency(
        stage.index, stage.width_in, stage.twiddle_width, stage.family,
        stage.policy, inverse=stage.inverse,
        twiddle_mode=stage.twiddle_mode)
    commutator = (commutator_delay(stage.block, stage.addressing)
                  if stage.block else 0)
    return latency._replace(commutator=commutator)


class FFTConfig:
    """Radix-2 FFT configuration

    This class defines the configuration parameters of the :class:`FFT`
    engine. The default configuration can be modified by setting the
    attributes before calling :meth:`validate`.
    """
    def __init__(self):
        # create default configuration

        # transform
        self.order_log2 = 10
        self.inverse = False
        # pass the input through with the latency of the transform
        self.bypass = False
        # reorder between natural and bit-reversed order at the boundary
        self.bitrev = False

        # fixed point
        self.width_in = 16
        self.width_twiddle = 16
        self.scale = ScaleMode.SCALED
        self.round_mode = RoundMode.ROUND
        self.family = DSPFamily.SERIES7

        # implementation
        self.addressing = AddressingMode.CONTINUOUS
        self.twiddle_mode = 'auto'
        self.twiddle_storage = 'auto'
        self.delay_storage = 'auto'
        self.bitrev_storage = 'auto'

    @property
    def nfft(self):
        return 2**self.order_log2

    @property
    def policy(self):
        return FixedPointPolicy(self.scale, self.round_mode)

    @property
    def width_out(self):
        w = self.width_in
        for _ in range(self.order_log2):
            w = self.policy.width_out(w)
        return w

    def validate(self):
        if not isinstance(self.order_log2, int) or self.order_log2 < 2:
            raise ValueError(
                f'order_log2 must be an integer >= 2 (got {self.order_log2})')
        if self.width_in < 2:
            raise ValueError(f'invalid input width {self.width_in}')
        if self.width_twiddle < 2:
            raise ValueError(f'invalid twiddle width {self.width_twiddle}')
        if not isinstance(self.family, DSPFamily):
            raise ValueError(f'invalid multiplier family: {self.family}')
        if not isinstance(self.addressing, AddressingMode):
            raise ValueError(f'invalid addressing mode: {self.addressing}')
        # raises for invalid scale and round combinations
        FixedPointPolicy(self.scale, self.round_mode)
        if self.twiddle_mode not in ['auto', 'table', 'interpolate']:
            raise ValueError(f'invalid twiddle mode: {self.twiddle_mode}')
        if self.twiddle_storage not in ['auto', 'lut', 'bram']:
            raise ValueError(
                f'invalid twiddle storage: {self.twiddle_storage}')
        if self.delay_storage not in ['auto', 'distributed', 'bram']:
            raise ValueError(
                f'invalid delay line storage: {self.delay_storage}')
        if self.bitrev_storage not in ['auto', 'distributed', 'block']:
            raise ValueError(
                f'invalid bit reversal storage: {self.bitrev_storage}')
        for stage in self.stages():
            # raises for unsupported multiplier widths
            stage_latency(stage)

    def stages(self):
        """Stage configurations in execution order

        The forward transform uses decimation in frequency, running the
        stages from ``order_log2 - 1`` down to 0. The inverse transform
        uses decimation in time, running the stages from 0 up to
        ``order_log2 - 1``.
        """
        n = self.order_log2
        order = range(n) if self.inverse else reversed(range(n))
        stages = []
        w = self.width_in
        for j, k in enumerate(order):
            w_out = self.policy.width_out(w)
            if j == n - 1:
                block = 0
            elif self.inverse:
                block = 2**k
            else:
                block = 2**(k - 1)
            stages.append(StageConfig(
                index=k, width_in=w, width_out=w_out,
                twiddle_width=self.width_twiddle, family=self.family,
                scale=self.scale, round_mode=self.round_mode,
                addressing=self.addressing, inverse=self.inverse,
                block=block, twiddle_mode=self.twiddle_mode,
                twiddle_storage=self.twiddle_storage,
                # a delay line of length 1 cannot use a BRAM
                delay_storage=(self.delay_storage if block != 1
                               else 'distributed')))
            w = w_out
        return stages
