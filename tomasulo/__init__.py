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

"""Tomasulo - dynamic scheduling simulator.

This package contains a cycle-stepped model of Tomasulo's algorithm with a
reorder buffer: register renaming through a register status table,
reservation stations per functional-unit class, a single common data bus
and strictly in-order commit with branch misprediction recovery.

Note: programs are lists of decoded ``Op`` values; there is no assembler.
"""

from ._version import __version__
from .config import TomasuloConfig
from .engine.simulator import SimulationResult, Statistics, TomasuloSimulator
from .isa.instruction import Op
from .isa.opcodes import BranchPrediction, Opcode, Stage, UnitClass
from .isa.operands import UNUSED, FpReg, Imm, Indirect, IntReg, Pending, Unused
from .trace import CycleSnapshot, TimingRow, format_timing_table

__all__ = [
    "__version__",
    "BranchPrediction",
    "CycleSnapshot",
    "FpReg",
    "Imm",
    "Indirect",
    "IntReg",
    "Op",
    "Opcode",
    "Pending",
    "SimulationResult",
    "Stage",
    "Statistics",
    "TimingRow",
    "TomasuloConfig",
    "TomasuloSimulator",
    "UNUSED",
    "UnitClass",
    "Unused",
    "format_timing_table",
]
