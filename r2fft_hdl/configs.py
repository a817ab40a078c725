#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from .cmult import DSPFamily
from .commutator import AddressingMode
from .config import FFTConfig
from .fixed_point import RoundMode, ScaleMode


def default():
    """Default configuration: 1024-point forward FFT with rounding"""
    return FFTConfig()


def inverse_default():
    """1024-point inverse FFT matching the default configuration"""
    config = FFTConfig()
    config.inverse = True
    return config


def impulse8():
    """8-point 16-bit FFT, scaled and truncated, continuous addressing"""
    config = FFTConfig()
    config.order_log2 = 3
    config.width_in = 16
    config.width_twiddle = 16
    config.scale = ScaleMode.SCALED
    config.round_mode = RoundMode.TRUNCATE
    config.addressing = AddressingMode.CONTINUOUS
    return config


def natural_order():
    """256-point FFT with bit reversal to natural order at the output"""
    config = FFTConfig()
    config.order_log2 = 8
    config.bitrev = True
    return config


def ultrascale_wide():
    """4096-point unscaled FFT with wide twiddles for UltraScale devices"""
    config = FFTConfig()
    config.order_log2 = 12
    config.width_in = 18
    config.width_twiddle = 25
    config.scale = ScaleMode.UNSCALED
    config.round_mode = RoundMode.TRUNCATE
    config.family = DSPFamily.ULTRASCALE
    config.addressing = AddressingMode.WRAPPED
    return config


def names():
    return ['default', 'inverse_default', 'impulse8', 'natural_order',
            'ultrascale_wide']
