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

"""Composed Tomasulo simulator.

Wires the register status table, reservation stations, functional units,
memory stage, CDB arbiter and reorder buffer into one cycle-stepped machine.
Each cycle runs four phases in order:

    1. Issue: admit the next instruction if its station and the ROB have room
    2. Execute: dispatch ready entries, count down latencies, run memory port
    3. Broadcast: at most one CDB transfer, oldest result first
    4. Commit: retire the ROB head, flushing younger work on a misprediction

A value broadcast in cycle ``t`` is visible to dispatch and commit from
cycle ``t + 1``; there is no same-cycle forwarding.

Example:
    >>> program = [
    ...     Op(Opcode.FLD, FpReg(3), Indirect(IntReg(2), 5)),
    ...     Op(Opcode.FADD, FpReg(1), FpReg(3), FpReg(2)),
    ... ]
    >>> result = TomasuloSimulator(program, memory={5: float_to_bits(1.0)}).run()
    >>> result.commit_order
    [0, 1]
"""

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from tomasulo.config import TomasuloConfig
from tomasulo.engine.cdb_arbiter import (
    CdbArbiterModel,
    CdbBroadcast,
    CdbSource,
    FuComplete,
)
from tomasulo.engine.functional_units import FunctionalUnit, FunctionalUnitPool, MemoryStage
from tomasulo.engine.register_status import RegisterStatusTable
from tomasulo.engine.reorder_buffer import (
    AllocationRequest,
    BranchUpdate,
    CDBWrite,
    ReorderBufferModel,
    StoreUpdate,
)
from tomasulo.engine.reservation_station import ReservationStationPool
from tomasulo.isa.instruction import Op
from tomasulo.isa.op_tables import OpKind
from tomasulo.isa.opcodes import BranchPrediction, UnitClass
from tomasulo.isa.operands import (
    UNUSED,
    FpReg,
    Imm,
    IntReg,
    Operand,
    Pending,
    Unused,
    unknown_operand,
)
from tomasulo.models.alu_model import effective_address
from tomasulo.models.fp_model import bits_to_float
from tomasulo.models.memory_model import MemoryModel
from tomasulo.models.register_file import RegisterFile
from tomasulo.trace import CycleSnapshot, TimingRow, TraceRecorder, format_timing_table

logger = logging.getLogger(__name__)


@dataclass
class Statistics:
    """Run counters."""

    cycles: int = 0
    issued: int = 0
    committed: int = 0
    flushed: int = 0
    mispredictions: int = 0
    structural_stalls: int = 0
    rob_full_stalls: int = 0
    station_full_stalls: int = 0
    cdb_conflicts: int = 0


@dataclass
class SimulationResult:
    """Everything a finished run produced."""

    cycles: int
    trace: list[CycleSnapshot]
    timings: list[TimingRow]
    commit_order: list[int]
    flushed: list[int]
    stats: Statistics
    registers: RegisterFile
    memory: dict[int, int] = field(default_factory=dict)

    def int_reg(self, num: int) -> int:
        """Return the final value of integer register ``num``."""
        return self.registers.read(IntReg(num))

    def fp_reg(self, num: int) -> int:
        """Return the final bit pattern of FP register ``num``."""
        return self.registers.read(FpReg(num))

    def fp_value(self, num: int) -> float:
        """Return the final value of FP register ``num`` as a float."""
        return bits_to_float(self.fp_reg(num))

    def timing_table(self) -> str:
        """Render the per-op timing rows."""
        return format_timing_table(self.timings)


class TomasuloSimulator:
    """Cycle-stepped Tomasulo machine with a reorder buffer."""

    def __init__(
        self,
        program: Sequence[Op],
        config: TomasuloConfig | None = None,
        int_regs: Mapping[int, int] | None = None,
        fp_regs: Mapping[int, int | float] | None = None,
        memory: Mapping[int, int] | None = None,
    ) -> None:
        """Build the machine.

        Args:
            program: Decoded instructions, indexed by branch targets.
            config: Machine configuration (defaults when omitted).
            int_regs: Initial integer register values by number.
            fp_regs: Initial FP register values (floats or float32 bits).
            memory: Initial memory words by address.
        """
        for i, op in enumerate(program):
            if not isinstance(op, Op):
                raise ValueError(f"program[{i}] is not an Op: {op!r}")
        self.program: list[Op] = list(program)
        self.config = config if config is not None else TomasuloConfig()

        # Architectural state
        self.regfile = RegisterFile(int_regs, fp_regs)
        self.memory = MemoryModel(memory)

        # Scheduler state
        self.status = RegisterStatusTable()
        self.stations = ReservationStationPool(self.config.station_entries)
        self.units: dict[UnitClass, FunctionalUnitPool] = {
            unit: FunctionalUnitPool(unit, count)
            for unit, count in self.config.functional_units.items()
        }
        self.memory_stage = MemoryStage(self.config.memory_latency)
        self.rob = ReorderBufferModel(self.config.reorder_buffer_entries)
        self.arbiter = CdbArbiterModel()
        self.cdb = CdbBroadcast()

        self.trace = TraceRecorder()
        self.stats = Statistics()
        self.cycle = 0
        self.pc = 0
        self.commit_order: list[int] = []
        self.flushed: list[int] = []
        self._next_seq = 0
        self._in_flight: dict[int, Op] = {}  # ROB tag -> op
        self._store_grant: int | None = None

    @property
    def done(self) -> bool:
        """Return whether the program is exhausted and the ROB drained."""
        return self.pc >= len(self.program) and self.rob.empty

    def in_flight(self) -> list[Op]:
        """Return the ops holding a ROB slot, oldest first."""
        return [self._in_flight[tag] for tag, _ in self.rob.in_order()]

    # =========================================================================
    # Cycle Loop
    # =========================================================================

    def step(self) -> CycleSnapshot:
        """Advance the machine by one cycle."""
        self.cycle += 1
        cycle = self.cycle
        self._issue(cycle)
        self._execute(cycle)
        self._broadcast(cycle)
        self._commit(cycle)
        self.stats.cycles = cycle
        return self.trace.end_cycle(cycle, self._in_flight.values())

    def run(self, max_cycles: int | None = None) -> SimulationResult:
        """Run until the program drains.

        Raises:
            TimeoutError: If ``max_cycles`` elapse first.
        """
        while not self.done:
            if max_cycles is not None and self.cycle >= max_cycles:
                raise TimeoutError(
                    f"program did not finish within {max_cycles} cycles "
                    f"(pc={self.pc}, {self.rob.count} ops in flight)"
                )
            self.step()
        logger.debug("finished after %d cycles", self.cycle)
        return self.result()

    def result(self) -> SimulationResult:
        """Snapshot the outputs gathered so far."""
        return SimulationResult(
            cycles=self.cycle,
            trace=list(self.trace.snapshots),
            timings=self.trace.timing_rows(),
            commit_order=list(self.commit_order),
            flushed=list(self.flushed),
            stats=self.stats,
            registers=self.regfile,
            memory=self.memory.snapshot(),
        )

    # =========================================================================
    # Issue
    # =========================================================================

    def _issue(self, cycle: int) -> None:
        if self.pc >= len(self.program):
            return
        static = self.program[self.pc]
        unit = static.spec.unit

        if not self.rob.can_allocate():
            self.stats.structural_stalls += 1
            self.stats.rob_full_stalls += 1
            logger.debug("cycle %d: issue stall, ROB full (%s)", cycle, static)
            return
        if self.stations.is_full(unit):
            self.stats.structural_stalls += 1
            self.stats.station_full_stalls += 1
            logger.debug("cycle %d: issue stall, %s station full (%s)", cycle, unit, static)
            return

        op = static.instantiate(self.pc)
        op.seq = self._next_seq
        self._next_seq += 1

        # Sources are read before the destination is renamed
        src1, src2, offset = self._read_sources(op)
        predicted_next = self._predict(op)
        tag = self.rob.allocate(
            AllocationRequest(
                op=op,
                seq=op.seq,
                dest_reg=op.dest_register,
                is_store=op.kind is OpKind.STORE,
                is_branch=op.kind is OpKind.BRANCH,
                predicted_next=predicted_next,
            )
        )
        if op.dest_register is not None:
            self.status.rename(op.dest_register, tag)

        op.rob_index = tag
        op.rs_index = self.stations[unit].allocate(op, tag, op.seq, src1, src2, offset, cycle)
        self._in_flight[tag] = op
        self.pc = predicted_next
        self.stats.issued += 1
        self.trace.issue(op, cycle)
        logger.debug("cycle %d: issue seq %d %s -> ROB[%d]", cycle, op.seq, op, tag)

    def _read_sources(self, op: Op) -> tuple[Operand, Operand, int]:
        """Return the reservation-station source slots and memory offset."""
        mem = op.memory_operand
        if op.kind is OpKind.LOAD:
            return self._resolve(mem.base), UNUSED, mem.offset
        if op.kind is OpKind.STORE:
            return self._resolve(op.src1), self._resolve(mem.base), mem.offset
        return self._resolve(op.src1), self._resolve(op.src2), 0

    def _resolve(self, operand: Operand) -> Operand:
        """Turn a program operand into a reservation-station source slot."""
        if isinstance(operand, (IntReg, FpReg)):
            lookup = self.status.lookup(operand, self.regfile)
            if lookup.renamed:
                return Pending(lookup.tag)
            return Imm(lookup.value)
        if isinstance(operand, (Imm, Unused)):
            return operand
        unknown_operand(operand)

    def _predict(self, op: Op) -> int:
        """Return the fetch index that follows ``op``."""
        fallthrough = op.pc + 1
        target = op.branch_target
        if target is None:
            return fallthrough
        policy = self.config.branch_prediction
        if policy is BranchPrediction.TAKEN:
            taken = True
        elif policy is BranchPrediction.BACKWARD_TAKEN:
            taken = target <= op.pc
        else:
            taken = False
        return target if taken else fallthrough

    # =========================================================================
    # Execute
    # =========================================================================

    def _execute(self, cycle: int) -> None:
        # Dispatch: fill free units oldest-first
        for unit, pool in self.units.items():
            station = self.stations[unit]
            for fu, (idx, entry) in zip(pool.free_units(), station.ready_entries(cycle)):
                if isinstance(entry.src1, Pending) or isinstance(entry.src2, Pending):
                    raise RuntimeError(f"dispatch of seq {entry.seq} with a pending source")
                station.release(idx)
                pool.start(fu, entry, self.config.latency_of(entry.op.opcode), cycle)
                entry.op.rs_index = None
                self.rob.mark_executing(entry.rob_tag)
                self.trace.execute_start(entry.op, cycle)
                logger.debug("cycle %d: dispatch seq %d to %s", cycle, entry.seq, fu)

        # Latency countdown
        for pool in self.units.values():
            for fu in pool.advance(cycle):
                self._finish(pool, fu, cycle)

        # Memory port
        started = self.memory_stage.access(cycle, self.memory, self.rob.store_blocks_load)
        if started is not None:
            self.trace.memory_access(started.op, cycle)

    def _finish(self, pool: FunctionalUnitPool, fu: FunctionalUnit, cycle: int) -> None:
        """Handle an op whose latency ran out this cycle."""
        op = fu.op
        self.trace.execute_end(op, cycle)

        if op.kind is OpKind.ARITH:
            # Unit stays occupied until the CDB accepts the result
            pool.hold(fu, op.spec.evaluate(fu.operand_a, fu.operand_b))
            return

        if op.kind is OpKind.LOAD:
            address = effective_address(fu.operand_a, fu.offset)
            self._check_predicted_address(op, address)
            self.memory_stage.add(op, fu.rob_tag, fu.seq, address, cycle)
        elif op.kind is OpKind.STORE:
            address = effective_address(fu.operand_b, fu.offset)
            self._check_predicted_address(op, address)
            self.rob.store_update(StoreUpdate(fu.rob_tag, address, fu.operand_a), cycle)
        elif op.kind is OpKind.BRANCH:
            taken = bool(op.spec.evaluate(fu.operand_a, fu.operand_b))
            self.rob.branch_update(BranchUpdate(fu.rob_tag, taken, op.branch_target), cycle)
            logger.debug(
                "cycle %d: branch seq %d resolved %s",
                cycle,
                fu.seq,
                "taken" if taken else "not taken",
            )
        else:
            raise TypeError(f"unhandled op kind {op.kind}")
        pool.release(fu)

    def _check_predicted_address(self, op: Op, address: int) -> None:
        predicted = op.memory_operand.addr
        if predicted is not None and predicted != address:
            logger.warning(
                "seq %d %s: predicted address 0x%08x, computed 0x%08x",
                op.seq,
                op,
                predicted,
                address,
            )

    # =========================================================================
    # Broadcast
    # =========================================================================

    def _broadcast(self, cycle: int) -> None:
        requests: list[FuComplete] = []
        releases: list[Callable[[], None] | None] = []

        for pool in self.units.values():
            for fu, req in pool.cdb_requests(cycle):
                requests.append(req)
                releases.append(lambda pool=pool, fu=fu: pool.release(fu))
        for entry, req in self.memory_stage.cdb_requests(cycle):
            requests.append(req)
            releases.append(lambda entry=entry: self.memory_stage.remove(entry))

        # A completed store at the head uses the bus for its memory write
        head = self.rob.head_entry
        if head.is_store and self.rob.can_commit(cycle):
            requests.append(
                FuComplete(
                    valid=True,
                    tag=self.rob.head_idx,
                    seq=head.seq,
                    value=head.value,
                    source=CdbSource.STORE,
                )
            )
            releases.append(None)

        self.cdb, grants = self.arbiter.arbitrate(requests)
        if len(requests) > 1:
            self.stats.cdb_conflicts += len(requests) - 1
        if not self.cdb.valid:
            return

        release = releases[grants.index(True)]
        if release is None:
            self._store_grant = self.cdb.tag
            self.trace.bus_grant(self.cdb)
            logger.debug("cycle %d: CDB store write seq %d", cycle, self.cdb.seq)
            return
        release()

        tag, value = self.cdb.tag, self.cdb.value
        self.rob.cdb_write(CDBWrite(tag=tag, value=value), cycle)
        self.stations.cdb_snoop(tag, value)
        self.status.broadcast(tag, value)
        self.trace.write_result(self._in_flight[tag], cycle, self.cdb)
        logger.debug("cycle %d: CDB %s", cycle, self.cdb)

    # =========================================================================
    # Commit
    # =========================================================================

    def _commit(self, cycle: int) -> None:
        store_grant, self._store_grant = self._store_grant, None
        if not self.rob.can_commit(cycle):
            return

        head_tag = self.rob.head_idx
        head = self.rob.head_entry
        if head.is_store and store_grant != head_tag:
            return
        if head.is_branch and head.mispredicted:
            self._flush(head_tag, head.seq, cycle)

        record = self.rob.commit(cycle)
        op = self._in_flight.pop(record.tag)
        if record.dest_reg is not None:
            self.regfile.write(record.dest_reg, record.value)
            self.status.commit(record.dest_reg, record.tag)
        if record.is_store:
            self.memory.write_word(record.store_address, record.value)
            self.trace.memory_access(op, cycle)

        op.rob_index = None
        self.commit_order.append(record.seq)
        self.stats.committed += 1
        self.trace.commit(op, cycle)
        logger.debug("cycle %d: commit seq %d %s", cycle, record.seq, op)

        if record.misprediction:
            self.stats.mispredictions += 1
            logger.info(
                "cycle %d: branch seq %d mispredicted, redirect to %d",
                cycle,
                record.seq,
                record.redirect_pc,
            )
            self.pc = record.redirect_pc

    def _flush(self, branch_tag: int, branch_seq: int, cycle: int) -> None:
        """Squash everything younger than the branch at the ROB head."""
        tags = self.rob.flush_partial(branch_tag)
        self.stations.flush_younger(branch_seq)
        for pool in self.units.values():
            pool.flush_younger(branch_seq)
        self.memory_stage.flush_younger(branch_seq)
        self.status.flush(tags)

        for tag in tags:
            op = self._in_flight.pop(tag)
            op.rs_index = None
            op.rob_index = None
            self.flushed.append(op.seq)
            self.trace.flush(op, cycle)
        self.stats.flushed += len(tags)
        logger.debug("cycle %d: flushed %d ops after seq %d", cycle, len(tags), branch_seq)

    # =========================================================================
    # Debug
    # =========================================================================

    def dump_state(self) -> str:
        """Return string representation of the whole machine."""
        parts = [
            f"TomasuloSimulator cycle={self.cycle} pc={self.pc}",
            self.rob.dump_state(),
            self.stations.dump_state(),
            *(pool.dump_state() for pool in self.units.values()),
            self.memory_stage.dump_state(),
            self.status.dump_state(),
            self.regfile.dump_state(),
            self.memory.dump_state(),
        ]
        return "\n".join(parts)
