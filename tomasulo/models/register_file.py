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

"""Architectural register files.

Only commit writes here. Integer registers x0-x31 hold 32-bit values with x0
hardwired to zero; floating-point registers f0-f31 hold float32 bit patterns
(f0 is an ordinary register).
"""

from collections.abc import Mapping

from tomasulo.config import MASK32, NUM_FP_REGS, NUM_INT_REGS, ZERO_REGISTER
from tomasulo.isa.operands import FpReg, IntReg, Register, unknown_operand
from tomasulo.models.fp_model import float_to_bits


class RegisterFile:
    """Integer and floating-point architectural register files."""

    def __init__(
        self,
        int_regs: Mapping[int, int] | None = None,
        fp_regs: Mapping[int, int | float] | None = None,
    ) -> None:
        """Initialize registers to zero, then apply any initial values.

        Floating-point initial values may be given as Python floats or as
        32-bit patterns (ints).
        """
        self.int_regs: list[int] = [0] * NUM_INT_REGS
        self.fp_regs: list[int] = [0] * NUM_FP_REGS
        for num, value in (int_regs or {}).items():
            self.write(IntReg(num), value)
        for num, value in (fp_regs or {}).items():
            bits = float_to_bits(value) if isinstance(value, float) else value
            self.write(FpReg(num), bits)

    def read(self, reg: Register) -> int:
        """Return the committed value of ``reg``."""
        if isinstance(reg, IntReg):
            return self.int_regs[reg.num]
        if isinstance(reg, FpReg):
            return self.fp_regs[reg.num]
        unknown_operand(reg)

    def write(self, reg: Register, value: int) -> None:
        """Write a committed value; writes to x0 are discarded."""
        if isinstance(reg, IntReg):
            if reg.num != ZERO_REGISTER:
                self.int_regs[reg.num] = value & MASK32
        elif isinstance(reg, FpReg):
            self.fp_regs[reg.num] = value & MASK32
        else:
            unknown_operand(reg)

    def dump_state(self) -> str:
        """Return the non-zero registers, one per line."""
        lines = ["RegisterFile State:"]
        for i, value in enumerate(self.int_regs):
            if value:
                lines.append(f"  x{i} = 0x{value:08x}")
        for i, value in enumerate(self.fp_regs):
            if value:
                lines.append(f"  f{i} = 0x{value:08x}")
        return "\n".join(lines)
