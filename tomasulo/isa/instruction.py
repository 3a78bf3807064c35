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

"""Decoded instructions.

An ``Op`` is a decoded instruction plus the bookkeeping the scheduler attaches
to it once it is in flight: pipeline stage, reservation-station index,
reorder-buffer slot and sequence number. A program is a list of ``Op``; each
time the fetch pointer reaches one, the simulator issues a fresh copy via
``Op.instantiate`` so repeated executions of a loop body never share state.

Operand contracts are checked when the op is built, so a malformed
instruction fails before it can enter the pipeline::

    >>> Op(Opcode.FLD, FpReg(3), IntReg(2))
    Traceback (most recent call last):
    ValueError: fld src1: expected Indirect, got IntReg
"""

from dataclasses import dataclass, replace

from tomasulo.isa.op_tables import OP_TABLE, OpKind, OpSpec
from tomasulo.isa.opcodes import Opcode, Stage
from tomasulo.isa.operands import (
    UNUSED,
    Imm,
    Indirect,
    Operand,
    Register,
    is_used,
)


def _names(kinds: tuple[type, ...]) -> str:
    return " or ".join(kind.__name__ for kind in kinds)


@dataclass(eq=False)
class Op:
    """One instruction.

    Attributes:
        opcode: Operation to perform.
        dst: Destination operand (register, memory reference for stores,
            target instruction index for branches).
        src1: First source operand.
        src2: Second source operand, ``Unused`` for loads and stores.
        stage: Current pipeline stage, ``None`` until issued.
        rs_index: Reservation-station entry while waiting for dispatch.
        rob_index: Reorder-buffer slot while in flight.
        seq: Program-order sequence number assigned at issue.
        pc: Index of the instruction in the program.
    """

    opcode: Opcode
    dst: Operand
    src1: Operand
    src2: Operand = UNUSED
    stage: Stage | None = None
    rs_index: int | None = None
    rob_index: int | None = None
    seq: int | None = None
    pc: int | None = None

    def __post_init__(self) -> None:
        """Validate the operands against the opcode's contract."""
        if not isinstance(self.opcode, Opcode):
            raise ValueError(f"unknown opcode {self.opcode!r}")
        spec = self.spec
        for name, operand, allowed in (
            ("dst", self.dst, spec.dst),
            ("src1", self.src1, spec.src1),
            ("src2", self.src2, spec.src2),
        ):
            if not isinstance(operand, allowed):
                raise ValueError(
                    f"{self.opcode} {name}: expected {_names(allowed)}, "
                    f"got {type(operand).__name__}"
                )
        if spec.kind is OpKind.BRANCH and self.dst.value < 0:
            raise ValueError(f"{self.opcode}: negative branch target {self.dst}")

    @property
    def spec(self) -> OpSpec:
        """Return the op-table row for this opcode."""
        return OP_TABLE[self.opcode]

    @property
    def kind(self) -> OpKind:
        """Return how the op flows through the back end."""
        return self.spec.kind

    @property
    def dest_register(self) -> Register | None:
        """Return the architectural register written at commit, if any."""
        if self.spec.writes_register:
            return self.dst  # type: ignore[return-value]
        return None

    @property
    def memory_operand(self) -> Indirect | None:
        """Return the memory reference of a load or store."""
        if isinstance(self.src1, Indirect):
            return self.src1
        if isinstance(self.dst, Indirect):
            return self.dst
        return None

    @property
    def branch_target(self) -> int | None:
        """Return the target instruction index of a branch."""
        if self.kind is OpKind.BRANCH and isinstance(self.dst, Imm):
            return self.dst.value
        return None

    def instantiate(self, pc: int) -> "Op":
        """Return a fresh in-flight copy of this instruction at index ``pc``."""
        return replace(
            self, stage=None, rs_index=None, rob_index=None, seq=None, pc=pc
        )

    def __str__(self) -> str:
        """Format in assembler operand order.

        Stores print the data register before the memory reference and
        branches print the target last.
        """
        if self.kind is OpKind.STORE:
            operands = [self.src1, self.dst]
        elif self.kind is OpKind.BRANCH:
            operands = [self.src1, self.src2, self.dst]
        else:
            operands = [self.dst, self.src1, self.src2]
        return f"{self.opcode} " + ", ".join(str(o) for o in operands if is_used(o))

