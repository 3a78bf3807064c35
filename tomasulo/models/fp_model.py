#    Copyright 2026 Two Sigma Open Source, LLC
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.

"""IEEE 754 single-precision floating-point model.

FP Model
========

Floating-point registers and memory words hold raw 32-bit IEEE 754 patterns
so that the common data bus, the register files and memory all carry plain
integers. This module converts between patterns and Python floats with the
``struct`` module and implements the FP_ADD / FP_MUL unit operations.

Special Value Handling:
    - NaN: any NaN result is the canonical quiet NaN (0x7FC00000)
    - Infinity: overflow saturates to signed infinity
    - 0 * inf and 0 / 0 and inf / inf produce NaN
    - x / 0 produces signed infinity

Rounding is Python's float64 arithmetic rounded once to float32, which is
round-to-nearest-even for add, sub, mul and div.
"""

import math
import struct

from tomasulo.config import MASK32

FP_POS_INF = 0x7F800000
FP_NEG_INF = 0xFF800000
FP_CANONICAL_NAN = 0x7FC00000  # Canonical quiet NaN

FP_SIGN_MASK = 0x80000000
FP_EXP_MASK = 0x7F800000
FP_MANT_MASK = 0x007FFFFF


def bits_to_float(bits: int) -> float:
    """Convert 32-bit integer to IEEE 754 single-precision float."""
    packed = struct.pack(">I", bits & MASK32)
    return struct.unpack(">f", packed)[0]


def float_to_bits(f: float) -> int:
    """Convert IEEE 754 single-precision float to 32-bit integer."""
    if math.isnan(f):
        return FP_CANONICAL_NAN
    if math.isinf(f):
        return FP_NEG_INF if f < 0.0 else FP_POS_INF
    try:
        packed = struct.pack(">f", f)
    except OverflowError:
        # Value too large for float32: saturate to signed infinity.
        return FP_NEG_INF if f < 0.0 else FP_POS_INF
    return struct.unpack(">I", packed)[0]


def is_nan(bits: int) -> bool:
    """Check if bits represent a NaN value."""
    exp = (bits & FP_EXP_MASK) >> 23
    mant = bits & FP_MANT_MASK
    return exp == 0xFF and mant != 0


def is_inf(bits: int) -> bool:
    """Check if bits represent an infinity value."""
    exp = (bits & FP_EXP_MASK) >> 23
    mant = bits & FP_MANT_MASK
    return exp == 0xFF and mant == 0


def is_zero(bits: int) -> bool:
    """Check if bits represent a zero value (+0 or -0)."""
    return (bits & 0x7FFFFFFF) == 0


def canonicalize_nan(bits: int) -> int:
    """Convert any NaN to canonical quiet NaN."""
    if is_nan(bits):
        return FP_CANONICAL_NAN
    return bits


# ============================================================================
# Arithmetic operations
# ============================================================================


def fadd_s(rs1_bits: int, rs2_bits: int) -> int:
    """FADD: rd = rs1 + rs2."""
    if is_nan(rs1_bits) or is_nan(rs2_bits):
        return FP_CANONICAL_NAN
    result = bits_to_float(rs1_bits) + bits_to_float(rs2_bits)
    return canonicalize_nan(float_to_bits(result))


def fsub_s(rs1_bits: int, rs2_bits: int) -> int:
    """FSUB: rd = rs1 - rs2."""
    if is_nan(rs1_bits) or is_nan(rs2_bits):
        return FP_CANONICAL_NAN
    result = bits_to_float(rs1_bits) - bits_to_float(rs2_bits)
    return canonicalize_nan(float_to_bits(result))


def fmul_s(rs1_bits: int, rs2_bits: int) -> int:
    """FMUL: rd = rs1 * rs2."""
    if is_nan(rs1_bits) or is_nan(rs2_bits):
        return FP_CANONICAL_NAN
    if (is_zero(rs1_bits) and is_inf(rs2_bits)) or (
        is_inf(rs1_bits) and is_zero(rs2_bits)
    ):
        return FP_CANONICAL_NAN
    result = bits_to_float(rs1_bits) * bits_to_float(rs2_bits)
    return canonicalize_nan(float_to_bits(result))


def fdiv_s(rs1_bits: int, rs2_bits: int) -> int:
    """FDIV: rd = rs1 / rs2."""
    if is_nan(rs1_bits) or is_nan(rs2_bits):
        return FP_CANONICAL_NAN
    if is_inf(rs1_bits) and is_inf(rs2_bits):
        return FP_CANONICAL_NAN
    if is_zero(rs1_bits) and is_zero(rs2_bits):
        return FP_CANONICAL_NAN
    if is_zero(rs2_bits):
        sign = (rs1_bits ^ rs2_bits) & FP_SIGN_MASK
        return FP_POS_INF | sign
    result = bits_to_float(rs1_bits) / bits_to_float(rs2_bits)
    return canonicalize_nan(float_to_bits(result))
