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

"""Operation table mapping opcodes to units, operand contracts and evaluators.

Op Tables
=========

This module is the central registry that connects each opcode to:

    1. Unit class: which reservation-station pool and functional units it uses
    2. Operand contract: the operand variants allowed in dst, src1 and src2
    3. Evaluator: computes the result when the op finishes executing

Architecture:
    The table keeps the scheduler data-driven: issue, execute and commit ask
    the table what kind of op they are holding instead of switching on
    opcodes. Adding an arithmetic opcode only requires a new row here and an
    evaluator in the models package.

Example Usage:
    >>> spec = OP_TABLE[Opcode.FADD]
    >>> spec.unit
    <UnitClass.FP_ADD: 'fp add'>
    >>> spec.evaluate(float_to_bits(1.5), float_to_bits(2.0)) == float_to_bits(3.5)
    True
"""

from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from collections.abc import Mapping

from tomasulo.isa.opcodes import Opcode, UnitClass
from tomasulo.isa.operands import FpReg, Imm, Indirect, IntReg, Unused
from tomasulo.models import alu_model, fp_model
from tomasulo.models.alu_model import BinaryOperation


class OpKind(Enum):
    """How an op flows through the back end."""

    ARITH = auto()  # Result broadcast on the CDB
    LOAD = auto()  # Address, memory access, then CDB
    STORE = auto()  # Address + data, memory written at commit
    BRANCH = auto()  # Resolved without the CDB, checked at commit


@dataclass(frozen=True)
class OpSpec:
    """Static description of one opcode."""

    unit: UnitClass
    kind: OpKind
    dst: tuple[type, ...]
    src1: tuple[type, ...]
    src2: tuple[type, ...]
    evaluate: BinaryOperation | None = None

    @property
    def writes_register(self) -> bool:
        """Return whether the op renames and writes a destination register."""
        return self.kind in (OpKind.ARITH, OpKind.LOAD)


_FP3 = ((FpReg,), (FpReg,), (FpReg,))
_INT3 = ((IntReg,), (IntReg,), (IntReg, Imm))
_BRANCH = ((Imm,), (IntReg,), (IntReg, Imm))

OP_TABLE: Mapping[Opcode, OpSpec] = MappingProxyType(
    {
        # FP adder
        Opcode.FADD: OpSpec(UnitClass.FP_ADD, OpKind.ARITH, *_FP3, fp_model.fadd_s),
        Opcode.FSUB: OpSpec(UnitClass.FP_ADD, OpKind.ARITH, *_FP3, fp_model.fsub_s),
        # FP multiplier / divider
        Opcode.FMUL: OpSpec(UnitClass.FP_MUL, OpKind.ARITH, *_FP3, fp_model.fmul_s),
        Opcode.FDIV: OpSpec(UnitClass.FP_MUL, OpKind.ARITH, *_FP3, fp_model.fdiv_s),
        # Integer units
        Opcode.ADD: OpSpec(UnitClass.INT, OpKind.ARITH, *_INT3, alu_model.add),
        Opcode.SUB: OpSpec(UnitClass.INT, OpKind.ARITH, *_INT3, alu_model.sub),
        Opcode.MUL: OpSpec(UnitClass.INT, OpKind.ARITH, *_INT3, alu_model.mul),
        Opcode.DIV: OpSpec(UnitClass.INT, OpKind.ARITH, *_INT3, alu_model.div),
        # Memory: address generation on the effective-address unit
        Opcode.FLD: OpSpec(
            UnitClass.EFF_ADDR, OpKind.LOAD, (FpReg,), (Indirect,), (Unused,)
        ),
        Opcode.LD: OpSpec(
            UnitClass.EFF_ADDR, OpKind.LOAD, (IntReg,), (Indirect,), (Unused,)
        ),
        Opcode.FST: OpSpec(
            UnitClass.EFF_ADDR, OpKind.STORE, (Indirect,), (FpReg,), (Unused,)
        ),
        Opcode.ST: OpSpec(
            UnitClass.EFF_ADDR, OpKind.STORE, (Indirect,), (IntReg,), (Unused,)
        ),
        # Branches: dst is the target instruction index
        Opcode.BEQ: OpSpec(UnitClass.EFF_ADDR, OpKind.BRANCH, *_BRANCH, alu_model.beq),
        Opcode.BNE: OpSpec(UnitClass.EFF_ADDR, OpKind.BRANCH, *_BRANCH, alu_model.bne),
    }
)
