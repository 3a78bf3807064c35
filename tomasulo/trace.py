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

"""Per-cycle trace and per-op timing rows.

The simulator reports every stage transition to a ``TraceRecorder``. At the
end of each cycle the recorder freezes a ``CycleSnapshot`` (stage of every op
touched that cycle plus the CDB transfer), and it keeps one ``TimingRow``
per issued op with the cycle of each milestone.

Loads and stores enter ``MEM_ACCESS`` once their address is computed. A
load's ``memory`` cycle is its port access; a store's is the commit cycle,
when its deferred write reaches memory. Stores and branches produce no
register result, so their ``write_result`` stays empty.

``format_timing_table`` renders the rows as the classic pipeline table::

                        Pipeline Simulation
    -----------------------------------------------------------
                                          Memory Writes
         Instruction      Issues Executes  Read  Result Commits
    --------------------- ------ -------- ------ ------ -------
    fld f3, 5(x2)              1   2 -  2      3      4       5
"""

from collections.abc import Iterable
from dataclasses import dataclass

from tomasulo.engine.cdb_arbiter import CdbBroadcast
from tomasulo.isa.instruction import Op
from tomasulo.isa.op_tables import OpKind
from tomasulo.isa.opcodes import Stage


@dataclass(frozen=True)
class CycleSnapshot:
    """What happened in one cycle."""

    cycle: int
    stages: tuple[tuple[int, Stage], ...]
    cdb: CdbBroadcast | None = None
    issued: int | None = None
    committed: int | None = None
    flushed: tuple[int, ...] = ()

    def stage_of(self, seq: int) -> Stage | None:
        """Return the stage of op ``seq`` at the end of this cycle."""
        for s, stage in self.stages:
            if s == seq:
                return stage
        return None


@dataclass
class TimingRow:
    """Milestone cycles of one issued op."""

    seq: int
    pc: int
    instruction: str
    kind: OpKind
    issue: int | None = None
    execute_start: int | None = None
    execute_end: int | None = None
    memory: int | None = None
    write_result: int | None = None
    commit: int | None = None
    flushed: int | None = None

    @property
    def final_stage(self) -> Stage | None:
        """Terminal stage reached, or None while in flight."""
        if self.commit is not None:
            return Stage.COMMIT
        if self.flushed is not None:
            return Stage.FLUSHED
        return None


class TraceRecorder:
    """Collects stage transitions into snapshots and timing rows."""

    def __init__(self) -> None:
        self.rows: dict[int, TimingRow] = {}
        self.snapshots: list[CycleSnapshot] = []
        self._touched: dict[int, Stage] = {}
        self._issued: int | None = None
        self._committed: int | None = None
        self._flushed: list[int] = []
        self._cdb: CdbBroadcast | None = None

    def _row(self, op: Op) -> TimingRow:
        if op.seq is None:
            raise RuntimeError(f"{op} traced before issue")
        return self.rows[op.seq]

    def _touch(self, op: Op, stage: Stage) -> None:
        op.stage = stage
        self._touched[op.seq] = stage

    def issue(self, op: Op, cycle: int) -> None:
        self.rows[op.seq] = TimingRow(
            seq=op.seq, pc=op.pc, instruction=str(op), kind=op.kind, issue=cycle
        )
        self._issued = op.seq
        self._touch(op, Stage.ISSUE)

    def execute_start(self, op: Op, cycle: int) -> None:
        self._row(op).execute_start = cycle
        self._touch(op, Stage.EXECUTE)

    def execute_end(self, op: Op, cycle: int) -> None:
        self._row(op).execute_end = cycle
        if op.kind in (OpKind.LOAD, OpKind.STORE):
            self._touch(op, Stage.MEM_ACCESS)
        elif op.kind is OpKind.BRANCH:
            self._touch(op, Stage.WRITE_RESULT)
        else:
            self._touch(op, Stage.EXECUTE)

    def memory_access(self, op: Op, cycle: int) -> None:
        self._row(op).memory = cycle
        self._touch(op, Stage.MEM_ACCESS)

    def write_result(self, op: Op, cycle: int, cdb: CdbBroadcast) -> None:
        self._row(op).write_result = cycle
        self._cdb = cdb
        self._touch(op, Stage.WRITE_RESULT)

    def bus_grant(self, cdb: CdbBroadcast) -> None:
        """Record a bus transfer that produces no register result."""
        self._cdb = cdb

    def commit(self, op: Op, cycle: int) -> None:
        self._row(op).commit = cycle
        self._committed = op.seq
        self._touch(op, Stage.COMMIT)

    def flush(self, op: Op, cycle: int) -> None:
        self._row(op).flushed = cycle
        self._flushed.append(op.seq)
        self._touch(op, Stage.FLUSHED)

    def end_cycle(self, cycle: int, in_flight: Iterable[Op]) -> CycleSnapshot:
        """Freeze the cycle's snapshot and start a new one."""
        stages = dict(self._touched)
        for op in in_flight:
            if op.stage is not None:
                stages.setdefault(op.seq, op.stage)
        snapshot = CycleSnapshot(
            cycle=cycle,
            stages=tuple(sorted(stages.items())),
            cdb=self._cdb,
            issued=self._issued,
            committed=self._committed,
            flushed=tuple(self._flushed),
        )
        self.snapshots.append(snapshot)
        self._touched = {}
        self._issued = None
        self._committed = None
        self._flushed = []
        self._cdb = None
        return snapshot

    def timing_rows(self) -> list[TimingRow]:
        """Return the rows in issue order."""
        return [self.rows[seq] for seq in sorted(self.rows)]


# =============================================================================
# Timing Table
# =============================================================================

_TABLE_HEADER = (
    "                    Pipeline Simulation\n"
    "-----------------------------------------------------------\n"
    "                                      Memory Writes\n"
    "     Instruction      Issues Executes  Read  Result Commits\n"
    "--------------------- ------ -------- ------ ------ -------"
)


def _cell(value: int | None, width: int, expected: bool = True) -> str:
    if value is not None:
        return f"{value:>{width}}"
    return f"{'?' if expected else '':>{width}}"


def format_row(row: TimingRow) -> str:
    """Render one timing row."""
    loads = row.kind is OpKind.LOAD
    writes = row.kind in (OpKind.ARITH, OpKind.LOAD)
    text = f"{row.instruction:<22}"
    text += _cell(row.issue, 6)
    text += _cell(row.execute_start, 4) + " -" + _cell(row.execute_end, 3)
    text += _cell(row.memory if loads else None, 7, expected=loads)
    text += _cell(row.write_result, 7, expected=writes)
    if row.flushed is not None:
        text += f"{'flush':>8}"
    else:
        text += _cell(row.commit, 8)
    return text


def format_timing_table(rows: Iterable[TimingRow]) -> str:
    """Render timing rows as a pipeline table."""
    return "\n".join([_TABLE_HEADER, *(format_row(row) for row in rows)])
