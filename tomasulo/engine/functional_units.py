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

"""Functional units and the memory stage.

Functional units are non-pipelined: a unit accepts one op, counts down its
latency, and then either holds the result until the CDB grants it
(arithmetic) or hands off and frees itself (address generation and
branches). The holding register behaves like a FU-to-CDB adapter: the
result stays put across cycles while the arbiter picks someone older.

The memory stage models the single memory port. Loads arrive with their
effective address, wait until no older store could alias them, take
``memory_latency`` cycles on the port, and then request the CDB.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from tomasulo.engine.cdb_arbiter import CdbSource, FuComplete
from tomasulo.engine.reservation_station import RSEntry
from tomasulo.isa.instruction import Op
from tomasulo.isa.opcodes import UnitClass
from tomasulo.models.memory_model import MemoryReader

logger = logging.getLogger(__name__)


# =============================================================================
# Functional Units
# =============================================================================


@dataclass
class FunctionalUnit:
    """One non-pipelined execution unit."""

    unit: UnitClass
    index: int
    busy: bool = False
    op: Op | None = None
    rob_tag: int = 0
    seq: int = 0
    operand_a: int = 0
    operand_b: int = 0
    offset: int = 0
    remaining: int = 0
    start_cycle: int | None = None
    finished_cycle: int | None = None
    held_result: FuComplete = field(default_factory=FuComplete)

    @property
    def executing(self) -> bool:
        """Return whether the latency countdown is still running."""
        return self.busy and self.remaining > 0

    @property
    def result_pending(self) -> bool:
        """Return whether a finished result is waiting for the CDB."""
        return self.held_result.valid

    def __str__(self) -> str:
        return f"{self.unit}[{self.index}]"


class FunctionalUnitPool:
    """The functional units of one unit class."""

    def __init__(self, unit: UnitClass, count: int) -> None:
        """Create ``count`` idle units."""
        self.unit = unit
        self.units: list[FunctionalUnit] = [
            FunctionalUnit(unit, i) for i in range(count)
        ]

    def free_units(self) -> list[FunctionalUnit]:
        """Return the idle units, lowest index first."""
        return [fu for fu in self.units if not fu.busy]

    def busy_count(self) -> int:
        """Return number of occupied units."""
        return sum(1 for fu in self.units if fu.busy)

    def start(self, fu: FunctionalUnit, entry: RSEntry, latency: int, cycle: int) -> None:
        """Begin executing a dispatched reservation-station entry."""
        if fu.busy:
            raise RuntimeError(f"dispatch to busy unit {fu}")
        if latency < 1:
            raise ValueError(f"latency must be at least 1, got {latency}")
        a, b = entry.operand_values()
        fu.busy = True
        fu.op = entry.op
        fu.rob_tag = entry.rob_tag
        fu.seq = entry.seq
        fu.operand_a = a
        fu.operand_b = b
        fu.offset = entry.offset
        fu.remaining = latency
        fu.start_cycle = cycle
        fu.finished_cycle = None
        fu.held_result = FuComplete()

    def advance(self, cycle: int) -> list[FunctionalUnit]:
        """Count down every executing unit; return those finishing this cycle."""
        finished = []
        for fu in self.units:
            if fu.executing:
                fu.remaining -= 1
                if fu.remaining == 0:
                    fu.finished_cycle = cycle
                    finished.append(fu)
        return finished

    def hold(self, fu: FunctionalUnit, value: int) -> None:
        """Latch a finished result until the CDB accepts it."""
        fu.held_result = FuComplete(
            valid=True,
            tag=fu.rob_tag,
            seq=fu.seq,
            value=value,
            source=CdbSource.FUNCTIONAL_UNIT,
        )

    def cdb_requests(self, cycle: int) -> list[tuple[FunctionalUnit, FuComplete]]:
        """Return held results eligible for the bus in ``cycle``.

        A result finished in cycle ``t`` may broadcast from ``t + 1``.
        """
        return [
            (fu, fu.held_result)
            for fu in self.units
            if fu.result_pending
            and fu.finished_cycle is not None
            and fu.finished_cycle < cycle
        ]

    def release(self, fu: FunctionalUnit) -> None:
        """Free a unit (after its CDB grant or its hand-off)."""
        self.units[fu.index] = FunctionalUnit(self.unit, fu.index)

    def flush_younger(self, seq: int) -> list[FunctionalUnit]:
        """Free every unit occupied by an op younger than ``seq``."""
        flushed = [fu for fu in self.units if fu.busy and fu.seq > seq]
        for fu in flushed:
            self.release(fu)
        return flushed

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = [f"FU[{self.unit}] ({self.busy_count()}/{len(self.units)} busy):"]
        for fu in self.units:
            if not fu.busy:
                continue
            if fu.result_pending:
                state = f"holding 0x{fu.held_result.value:08x}"
            else:
                state = f"{fu.remaining} cycle(s) left"
            lines.append(f"  [{fu.index}] seq={fu.seq} ROB[{fu.rob_tag}] {fu.op}: {state}")
        return "\n".join(lines)


# =============================================================================
# Memory Stage
# =============================================================================


@dataclass
class LoadEntry:
    """One load between address generation and its CDB broadcast."""

    valid: bool = False
    rob_tag: int = 0
    seq: int = 0
    op: Op | None = None
    address: int = 0
    addr_cycle: int = 0
    issued: bool = False
    remaining: int = 0
    access_cycle: int | None = None
    data_valid: bool = False
    data: int = 0
    done_cycle: int | None = None


class MemoryStage:
    """Single-ported memory access stage for loads."""

    def __init__(self, latency: int) -> None:
        """Initialize an empty stage with the given access latency."""
        if latency < 1:
            raise ValueError(f"memory latency must be at least 1, got {latency}")
        self.latency = latency
        self.entries: list[LoadEntry] = []
        self._active: LoadEntry | None = None

    def is_empty(self) -> bool:
        """Return whether no load is waiting or in progress."""
        return not self.entries

    @property
    def port_busy(self) -> bool:
        """Return whether an access currently occupies the port."""
        return self._active is not None

    def add(self, op: Op, rob_tag: int, seq: int, address: int, cycle: int) -> None:
        """Enter a load whose address was computed in ``cycle``."""
        self.entries.append(
            LoadEntry(
                valid=True,
                rob_tag=rob_tag,
                seq=seq,
                op=op,
                address=address,
                addr_cycle=cycle,
            )
        )

    def _select(self, cycle: int, blocked: Callable[[int, int], bool]) -> LoadEntry | None:
        """Pick the oldest load allowed to access memory this cycle."""
        candidates = [
            e
            for e in self.entries
            if not e.issued and e.addr_cycle < cycle and not blocked(e.seq, e.address)
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda e: e.seq)

    def access(
        self,
        cycle: int,
        memory: MemoryReader,
        blocked: Callable[[int, int], bool],
    ) -> LoadEntry | None:
        """Run the memory port for one cycle.

        Args:
            cycle: Current cycle.
            memory: Memory to read.
            blocked: ``blocked(seq, address)`` returns True while an older
                store could alias the load.

        Returns:
            The load that started its access this cycle, if any.
        """
        started = None
        if self._active is None:
            started = self._select(cycle, blocked)
            if started is not None:
                started.issued = True
                started.remaining = self.latency
                started.access_cycle = cycle
                self._active = started
                logger.debug(
                    "cycle %d: mem access seq %d @ 0x%08x", cycle, started.seq, started.address
                )

        active = self._active
        if active is not None:
            active.remaining -= 1
            if active.remaining == 0:
                active.data = memory.read_word(active.address)
                active.data_valid = True
                active.done_cycle = cycle
                self._active = None
        return started

    def cdb_requests(self, cycle: int) -> list[tuple[LoadEntry, FuComplete]]:
        """Return loaded values eligible for the bus in ``cycle``."""
        return [
            (
                e,
                FuComplete(
                    valid=True, tag=e.rob_tag, seq=e.seq, value=e.data, source=CdbSource.LOAD
                ),
            )
            for e in self.entries
            if e.data_valid and e.done_cycle is not None and e.done_cycle < cycle
        ]

    def remove(self, entry: LoadEntry) -> None:
        """Retire a load once its value is on the bus."""
        self.entries.remove(entry)

    def flush_younger(self, seq: int) -> list[LoadEntry]:
        """Drop loads younger than ``seq``, aborting an access in progress."""
        flushed = [e for e in self.entries if e.seq > seq]
        self.entries = [e for e in self.entries if e.seq <= seq]
        if self._active is not None and self._active.seq > seq:
            self._active = None
        return flushed

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = [f"MemoryStage ({len(self.entries)} loads):"]
        for e in sorted(self.entries, key=lambda e: e.seq):
            if e.data_valid:
                state = f"data 0x{e.data:08x}"
            elif e.issued:
                state = f"accessing, {e.remaining} cycle(s) left"
            else:
                state = "waiting"
            lines.append(f"  seq={e.seq} ROB[{e.rob_tag}] @ 0x{e.address:08x}: {state}")
        return "\n".join(lines)
