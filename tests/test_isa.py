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

"""Unit tests for operands, the op table and decoded instructions.

Tests operand validation and formatting, operand contracts enforced at
construction, and the per-issue copies made by ``Op.instantiate``.
"""

import pytest

from tomasulo.isa.instruction import Op
from tomasulo.isa.op_tables import OP_TABLE, OpKind
from tomasulo.isa.opcodes import Opcode, Stage, UnitClass
from tomasulo.isa.operands import (
    UNUSED,
    FpReg,
    Imm,
    Indirect,
    IntReg,
    Pending,
    Unused,
    is_used,
    source_register,
)
from tomasulo.models.fp_model import float_to_bits


# ============================================================================
# Test 1: Operand construction and formatting
# ============================================================================
@pytest.mark.parametrize(
    "operand, text",
    [
        (FpReg(3), "f3"),
        (IntReg(31), "x31"),
        (Imm(-7), "-7"),
        (Indirect(IntReg(2), 5), "5(x2)"),
        (Indirect(IntReg(2), 0, addr=4096), "0(x2):4096"),
        (Pending(4), "#4"),
        (UNUSED, ""),
    ],
)
def test_operand_str(operand: object, text: str) -> None:
    """Each operand variant prints in assembler notation."""
    assert str(operand) == text


@pytest.mark.parametrize("num", [-1, 32, 100])
def test_register_out_of_range(num: int) -> None:
    """Register numbers outside 0..31 are rejected."""
    with pytest.raises(ValueError):
        FpReg(num)
    with pytest.raises(ValueError):
        IntReg(num)


def test_indirect_requires_int_base() -> None:
    """An FP register cannot be a memory base."""
    with pytest.raises(ValueError):
        Indirect(FpReg(1), 0)  # type: ignore[arg-type]


def test_operands_are_values() -> None:
    """Operands compare by value and are immutable."""
    assert FpReg(1) == FpReg(1)
    assert FpReg(1) != IntReg(1)
    assert Unused() == UNUSED
    with pytest.raises(AttributeError):
        FpReg(1).num = 2  # type: ignore[misc]


def test_source_register() -> None:
    """Indirect operands read their base register."""
    assert source_register(FpReg(2)) == FpReg(2)
    assert source_register(Indirect(IntReg(7), 8)) == IntReg(7)
    assert source_register(Imm(3)) is None
    assert source_register(UNUSED) is None
    assert not is_used(UNUSED)
    with pytest.raises(TypeError):
        source_register("f1")  # type: ignore[arg-type]


# ============================================================================
# Test 2: Op table
# ============================================================================
def test_op_table_covers_every_opcode() -> None:
    """Every opcode has a unit class, kind and contract."""
    assert set(OP_TABLE) == set(Opcode)


@pytest.mark.parametrize(
    "opcode, unit, kind",
    [
        (Opcode.FADD, UnitClass.FP_ADD, OpKind.ARITH),
        (Opcode.FSUB, UnitClass.FP_ADD, OpKind.ARITH),
        (Opcode.FMUL, UnitClass.FP_MUL, OpKind.ARITH),
        (Opcode.FDIV, UnitClass.FP_MUL, OpKind.ARITH),
        (Opcode.ADD, UnitClass.INT, OpKind.ARITH),
        (Opcode.DIV, UnitClass.INT, OpKind.ARITH),
        (Opcode.FLD, UnitClass.EFF_ADDR, OpKind.LOAD),
        (Opcode.LD, UnitClass.EFF_ADDR, OpKind.LOAD),
        (Opcode.FST, UnitClass.EFF_ADDR, OpKind.STORE),
        (Opcode.ST, UnitClass.EFF_ADDR, OpKind.STORE),
        (Opcode.BEQ, UnitClass.EFF_ADDR, OpKind.BRANCH),
        (Opcode.BNE, UnitClass.EFF_ADDR, OpKind.BRANCH),
    ],
)
def test_op_table_rows(opcode: Opcode, unit: UnitClass, kind: OpKind) -> None:
    """Opcodes map to the expected unit class and kind."""
    spec = OP_TABLE[opcode]
    assert spec.unit is unit
    assert spec.kind is kind
    assert spec.writes_register == (kind in (OpKind.ARITH, OpKind.LOAD))


def test_op_table_evaluators() -> None:
    """Arithmetic rows evaluate through the models."""
    fadd = OP_TABLE[Opcode.FADD].evaluate
    assert fadd(float_to_bits(1.5), float_to_bits(2.0)) == float_to_bits(3.5)
    assert OP_TABLE[Opcode.SUB].evaluate(1, 2) == 0xFFFFFFFF
    assert OP_TABLE[Opcode.BEQ].evaluate(4, 4) == 1
    assert OP_TABLE[Opcode.BNE].evaluate(4, 4) == 0
    assert OP_TABLE[Opcode.FLD].evaluate is None


# ============================================================================
# Test 3: Operand contracts
# ============================================================================
@pytest.mark.parametrize(
    "opcode, dst, src1, src2",
    [
        (Opcode.FADD, FpReg(1), FpReg(2), FpReg(3)),
        (Opcode.ADD, IntReg(1), IntReg(2), IntReg(3)),
        (Opcode.ADD, IntReg(1), IntReg(2), Imm(4)),
        (Opcode.FLD, FpReg(3), Indirect(IntReg(2), 5), UNUSED),
        (Opcode.LD, IntReg(3), Indirect(IntReg(2), 5), UNUSED),
        (Opcode.FST, Indirect(IntReg(2), 0), FpReg(1), UNUSED),
        (Opcode.ST, Indirect(IntReg(2), 0), IntReg(1), UNUSED),
        (Opcode.BEQ, Imm(0), IntReg(1), IntReg(2)),
        (Opcode.BNE, Imm(3), IntReg(1), Imm(0)),
    ],
)
def test_valid_ops(opcode: Opcode, dst: object, src1: object, src2: object) -> None:
    """Well-formed instructions construct without error."""
    op = Op(opcode, dst, src1, src2)
    assert op.stage is None
    assert op.seq is None


@pytest.mark.parametrize(
    "opcode, dst, src1, src2",
    [
        (Opcode.FADD, IntReg(1), FpReg(2), FpReg(3)),
        (Opcode.FADD, FpReg(1), FpReg(2), Imm(3)),
        (Opcode.ADD, IntReg(1), FpReg(2), IntReg(3)),
        (Opcode.FLD, FpReg(3), IntReg(2), UNUSED),
        (Opcode.FLD, IntReg(3), Indirect(IntReg(2), 5), UNUSED),
        (Opcode.LD, IntReg(3), Indirect(IntReg(2), 5), IntReg(1)),
        (Opcode.FST, FpReg(1), Indirect(IntReg(2), 0), UNUSED),
        (Opcode.BEQ, IntReg(0), IntReg(1), IntReg(2)),
        (Opcode.BEQ, Imm(-1), IntReg(1), IntReg(2)),
        (Opcode.ADD, IntReg(1), Pending(2), IntReg(3)),
    ],
)
def test_invalid_ops(opcode: Opcode, dst: object, src1: object, src2: object) -> None:
    """Contract violations raise ValueError at construction."""
    with pytest.raises(ValueError):
        Op(opcode, dst, src1, src2)


def test_invalid_op_message() -> None:
    """The error names the offending slot and the expected variants."""
    with pytest.raises(ValueError, match="fld src1: expected Indirect, got IntReg"):
        Op(Opcode.FLD, FpReg(3), IntReg(2))


def test_unknown_opcode() -> None:
    """Only Opcode members are accepted."""
    with pytest.raises(ValueError):
        Op("fadd", FpReg(1), FpReg(2), FpReg(3))  # type: ignore[arg-type]


# ============================================================================
# Test 4: Op properties and formatting
# ============================================================================
def test_op_properties() -> None:
    """Destination, memory operand and branch target are derived per kind."""
    load = Op(Opcode.FLD, FpReg(3), Indirect(IntReg(2), 5))
    store = Op(Opcode.ST, Indirect(IntReg(2), 8), IntReg(1))
    branch = Op(Opcode.BNE, Imm(0), IntReg(1), IntReg(2))

    assert load.dest_register == FpReg(3)
    assert load.memory_operand == Indirect(IntReg(2), 5)
    assert store.dest_register is None
    assert store.memory_operand == Indirect(IntReg(2), 8)
    assert branch.dest_register is None
    assert branch.branch_target == 0
    assert load.branch_target is None


@pytest.mark.parametrize(
    "op, text",
    [
        (Op(Opcode.FADD, FpReg(1), FpReg(2), FpReg(3)), "fadd f1, f2, f3"),
        (Op(Opcode.ADD, IntReg(1), IntReg(0), Imm(5)), "add x1, x0, 5"),
        (Op(Opcode.FLD, FpReg(3), Indirect(IntReg(2), 5)), "fld f3, 5(x2)"),
        (Op(Opcode.FST, Indirect(IntReg(2), 0), FpReg(1)), "fst f1, 0(x2)"),
        (Op(Opcode.BEQ, Imm(7), IntReg(1), IntReg(2)), "beq x1, x2, 7"),
    ],
)
def test_op_str(op: Op, text: str) -> None:
    """Ops print in assembler operand order."""
    assert str(op) == text


def test_instantiate_makes_independent_copies() -> None:
    """Issuing the same instruction twice yields two independent ops."""
    static = Op(Opcode.FADD, FpReg(1), FpReg(2), FpReg(3))
    first = static.instantiate(4)
    second = static.instantiate(4)

    first.stage = Stage.EXECUTE
    first.seq = 0
    second.seq = 1

    assert first is not second
    assert static.stage is None and static.seq is None
    assert second.stage is None
    assert first.pc == second.pc == 4
    assert (first.opcode, first.dst, first.src1, first.src2) == (
        static.opcode,
        static.dst,
        static.src1,
        static.src2,
    )


def test_stage_terminal() -> None:
    """Only COMMIT and FLUSHED are terminal."""
    assert {s for s in Stage if s.terminal} == {Stage.COMMIT, Stage.FLUSHED}
