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

"""Instruction operands.

Operands
========

An operand is exactly one of six variants, each a frozen dataclass:

    - FpReg: architectural floating-point register (f0-f31)
    - IntReg: architectural integer register (x0-x31)
    - Imm: immediate constant (also a resolved value inside a station)
    - Indirect: memory reference, base register + offset (+ predicted address)
    - Pending: value still to be produced by a reorder-buffer slot
    - Unused: absent operand slot

``Operand`` is the closed union of these types. Code that needs to treat each
variant differently dispatches with an ``isinstance`` chain ending in
``unknown_operand`` so an unhandled variant fails loudly instead of falling
through.

Formatting follows the usual assembler spelling::

    >>> str(Indirect(IntReg(2), 5, 0x1000))
    '5(x2):4096'
    >>> str(Pending(3))
    '#3'
"""

from dataclasses import dataclass
from typing import NoReturn, Union

from tomasulo.config import NUM_FP_REGS, NUM_INT_REGS


def _check_reg(prefix: str, num: int, limit: int) -> None:
    if not isinstance(num, int) or isinstance(num, bool) or not 0 <= num < limit:
        raise ValueError(f"register {prefix}{num} out of range 0..{limit - 1}")


@dataclass(frozen=True)
class FpReg:
    """Floating-point register operand."""

    num: int

    def __post_init__(self) -> None:  # noqa: D105
        _check_reg("f", self.num, NUM_FP_REGS)

    def __str__(self) -> str:  # noqa: D105
        return f"f{self.num}"


@dataclass(frozen=True)
class IntReg:
    """Integer register operand."""

    num: int

    def __post_init__(self) -> None:  # noqa: D105
        _check_reg("x", self.num, NUM_INT_REGS)

    def __str__(self) -> str:  # noqa: D105
        return f"x{self.num}"


@dataclass(frozen=True)
class Imm:
    """Immediate constant."""

    value: int

    def __str__(self) -> str:  # noqa: D105
        return str(self.value)


@dataclass(frozen=True)
class Indirect:
    """Memory reference ``offset(base)``.

    ``addr`` is the effective address predicted by whoever decoded the
    instruction. The simulator always computes the real address from the
    base register and only reports a disagreement.
    """

    base: IntReg
    offset: int
    addr: int | None = None

    def __post_init__(self) -> None:  # noqa: D105
        if not isinstance(self.base, IntReg):
            raise ValueError(f"indirect base must be an integer register, got {self.base!r}")

    def __str__(self) -> str:  # noqa: D105
        text = f"{self.offset}({self.base})"
        if self.addr is not None:
            text += f":{self.addr}"
        return text


@dataclass(frozen=True)
class Pending:
    """Value pending on reorder-buffer slot ``slot``."""

    slot: int

    def __str__(self) -> str:  # noqa: D105
        return f"#{self.slot}"


@dataclass(frozen=True)
class Unused:
    """Absent operand."""

    def __str__(self) -> str:  # noqa: D105
        return ""


Register = Union[FpReg, IntReg]
Operand = Union[FpReg, IntReg, Imm, Indirect, Pending, Unused]

UNUSED = Unused()


def unknown_operand(operand: object) -> NoReturn:
    """Fail on a value that is not one of the operand variants."""
    raise TypeError(f"not an operand: {operand!r}")


def is_used(operand: Operand) -> bool:
    """Return whether the operand slot carries anything."""
    return not isinstance(operand, Unused)


def source_register(operand: Operand) -> Register | None:
    """Return the register an operand reads, if any.

    Indirect operands read their base register.
    """
    if isinstance(operand, (FpReg, IntReg)):
        return operand
    if isinstance(operand, Indirect):
        return operand.base
    if isinstance(operand, (Imm, Pending, Unused)):
        return None
    unknown_operand(operand)
