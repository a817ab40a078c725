#
# Copyright (C) 2026 r2fft-hdl contributors
#
# This file is part of r2fft-hdl
#
# SPDX-License-Identifier: MIT
#

from amaranth import *
import numpy as np


def clamp_nbits(x, nbits):
    offset = 2**(nbits - 1)
    return ((x + offset) % 2**nbits) - offset


def bit_reverse(n, nbits):
    bits = ('0'*nbits + bin(n)[2:])[-nbits:] if nbits > 0 else '0'
    return int(bits[::-1], 2)


def bit_reverse_permutation(nbits):
    return np.array([bit_reverse(j, nbits) for j in range(2**nbits)])


def reverse_bits(value):
    """Reverse the bit order of an Amaranth value"""
    return Cat(*[value[j] for j in reversed(range(len(value)))])


def delay_chain(m, value, length, name, reset_less=True):
    """Delay a value with a chain of registers

    Returns the last register of a chain of ``length`` registers clocked
    every cycle in the sync domain. If ``length`` is zero, ``value`` is
    returned unchanged.
    """
    value = Value.cast(value)
    out = value
    for j in range(length):
        q = Signal(value.shape(), name=f'{name}_q{j+1}',
                   reset_less=reset_less)
        m.d.sync += q.eq(out)
        out = q
    return out
