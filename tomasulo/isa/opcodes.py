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

"""Opcode, functional-unit class, and pipeline stage enumerations."""

from enum import Enum, auto


class Opcode(Enum):
    """Instruction opcodes understood by the scheduler."""

    FADD = "fadd"
    FSUB = "fsub"
    FMUL = "fmul"
    FDIV = "fdiv"
    FLD = "fld"
    FST = "fst"
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    LD = "ld"
    ST = "st"
    BEQ = "beq"
    BNE = "bne"

    def __str__(self) -> str:  # noqa: D105
        return self.value


class UnitClass(Enum):
    """Functional-unit classes; each owns a reservation-station pool."""

    EFF_ADDR = "eff addr"  # Loads, stores, branches
    FP_ADD = "fp add"  # fadd, fsub
    FP_MUL = "fp mul"  # fmul, fdiv
    INT = "int"  # add, sub, mul, div

    def __str__(self) -> str:  # noqa: D105
        return self.value


class Stage(Enum):
    """Per-instruction pipeline stage.

    COMMIT and FLUSHED are terminal.
    """

    ISSUE = auto()
    EXECUTE = auto()
    MEM_ACCESS = auto()
    WRITE_RESULT = auto()
    COMMIT = auto()
    FLUSHED = auto()

    @property
    def terminal(self) -> bool:
        """Return whether no further transitions are possible."""
        return self in (Stage.COMMIT, Stage.FLUSHED)


class BranchPrediction(Enum):
    """Static branch prediction policies applied at issue."""

    NOT_TAKEN = "not_taken"
    TAKEN = "taken"
    BACKWARD_TAKEN = "backward_taken"  # Taken only when target <= branch index
