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

"""Integer ALU operations.

ALU Operations
==============

Reference implementations of the integer opcodes executed by the INT
functional units, plus the branch comparisons and effective-address
generation used by the EFF_ADDR unit. All values are 32-bit two's complement
stored as unsigned Python ints.

Division follows the RISC-V edge cases:
    - Division by zero: quotient = -1 (all 1s)
    - Overflow (most negative / -1): quotient = most negative
"""

from collections.abc import Callable
from functools import wraps
from typing import Protocol

from tomasulo.config import MASK32

DIVISION_OVERFLOW_DIVIDEND = -0x80000000
DIVISION_OVERFLOW_DIVISOR = -1
DIVISION_BY_ZERO_QUOTIENT = 0xFFFFFFFF


class BinaryOperation(Protocol):
    """Protocol for binary operations (two operands)."""

    def __call__(self, operand_a: int, operand_b: int) -> int:
        """Execute binary operation on two operands."""
        ...


def to_signed32(value: int) -> int:
    """Interpret the low 32 bits of ``value`` as a signed integer."""
    value &= MASK32
    return value - (1 << 32) if value & 0x80000000 else value


def mask_to_32_bits(function: Callable) -> Callable:
    """Mask operation result to 32 bits for overflow wrapping."""

    @wraps(function)
    def wrapper(*args: int, **kwargs: int) -> int:
        result = function(*args, **kwargs)
        return result & MASK32

    return wrapper


@mask_to_32_bits
def add(operand_a: int, operand_b: int) -> int:
    """Add two 32-bit values (wraps on overflow)."""
    return operand_a + operand_b


@mask_to_32_bits
def sub(operand_a: int, operand_b: int) -> int:
    """Subtract operand_b from operand_a (wraps on underflow)."""
    return operand_a - operand_b


@mask_to_32_bits
def mul(operand_a: int, operand_b: int) -> int:
    """Multiply (signed x signed), lower 32 bits of the product."""
    return to_signed32(operand_a) * to_signed32(operand_b)


def div(dividend: int, divisor: int) -> int:
    """Signed division, quotient truncated toward zero."""
    signed_dividend = to_signed32(dividend)
    signed_divisor = to_signed32(divisor)

    if signed_divisor == 0:
        return DIVISION_BY_ZERO_QUOTIENT

    if (
        signed_dividend == DIVISION_OVERFLOW_DIVIDEND
        and signed_divisor == DIVISION_OVERFLOW_DIVISOR
    ):
        return 0x80000000

    quotient = abs(signed_dividend) // abs(signed_divisor)
    if (signed_dividend < 0) != (signed_divisor < 0):
        quotient = -quotient
    return quotient & MASK32


# Branch comparisons: 1 when taken
def beq(operand_a: int, operand_b: int) -> int:
    """Branch if equal."""
    return int((operand_a & MASK32) == (operand_b & MASK32))


def bne(operand_a: int, operand_b: int) -> int:
    """Branch if not equal."""
    return int((operand_a & MASK32) != (operand_b & MASK32))


@mask_to_32_bits
def effective_address(base: int, offset: int) -> int:
    """Effective address of ``offset(base)``."""
    return base + offset
