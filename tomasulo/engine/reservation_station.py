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

"""Reservation stations.

Each unit class owns a fixed-size station. Issue places an op in the
lowest-index free entry, CDB broadcasts wake pending sources across every
entry, and dispatch hands the oldest ready entries to free functional units.
Entries return to the pool only on dispatch or flush.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field

from tomasulo.isa.instruction import Op
from tomasulo.isa.opcodes import UnitClass
from tomasulo.isa.operands import UNUSED, Imm, Operand, Pending, Unused

logger = logging.getLogger(__name__)


@dataclass
class RSEntry:
    """Single reservation-station entry.

    Source slots hold ``Imm`` once resolved, ``Pending`` while waiting on a
    reorder-buffer slot, or ``Unused``.
    """

    valid: bool = False
    rob_tag: int = 0
    seq: int = 0
    op: Op | None = None
    src1: Operand = field(default=UNUSED)
    src2: Operand = field(default=UNUSED)
    offset: int = 0
    issue_cycle: int = 0

    def is_ready(self) -> bool:
        """Check if both sources are resolved."""
        return (
            self.valid
            and not isinstance(self.src1, Pending)
            and not isinstance(self.src2, Pending)
        )

    def operand_values(self) -> tuple[int, int]:
        """Return the resolved source values (zero for unused slots)."""
        return _value_of(self.src1), _value_of(self.src2)


def _value_of(operand: Operand) -> int:
    if isinstance(operand, Imm):
        return operand.value
    if isinstance(operand, Unused):
        return 0
    raise RuntimeError(f"source {operand} is not resolved")


class ReservationStation:
    """Reservation station for one unit class."""

    def __init__(self, unit: UnitClass, depth: int) -> None:
        """Initialize the station with ``depth`` entries."""
        self.unit = unit
        self.depth = depth
        self.entries: list[RSEntry] = [RSEntry() for _ in range(depth)]

    def is_full(self) -> bool:
        """Return whether all entries are valid."""
        return all(e.valid for e in self.entries)

    def is_empty(self) -> bool:
        """Return whether no entries are valid."""
        return not any(e.valid for e in self.entries)

    def count(self) -> int:
        """Return number of valid entries."""
        return sum(1 for e in self.entries if e.valid)

    def _find_free(self) -> int | None:
        """Find lowest-index free entry."""
        for i, e in enumerate(self.entries):
            if not e.valid:
                return i
        return None

    def allocate(
        self,
        op: Op,
        rob_tag: int,
        seq: int,
        src1: Operand,
        src2: Operand,
        offset: int,
        cycle: int,
    ) -> int | None:
        """Place an issued op in the station.

        Returns the index it was placed at, or None if full.
        """
        idx = self._find_free()
        if idx is None:
            return None

        self.entries[idx] = RSEntry(
            valid=True,
            rob_tag=rob_tag,
            seq=seq,
            op=op,
            src1=src1,
            src2=src2,
            offset=offset,
            issue_cycle=cycle,
        )
        return idx

    def cdb_snoop(self, tag: int, value: int) -> None:
        """Process CDB broadcast: wake pending sources across all entries."""
        resolved = Pending(tag)
        for e in self.entries:
            if not e.valid:
                continue
            if e.src1 == resolved:
                e.src1 = Imm(value)
            if e.src2 == resolved:
                e.src2 = Imm(value)

    def ready_entries(self, cycle: int) -> list[tuple[int, RSEntry]]:
        """Return dispatch-eligible entries, oldest first.

        An entry is eligible once both sources are resolved and it was
        issued before ``cycle``.
        """
        ready = [
            (i, e)
            for i, e in enumerate(self.entries)
            if e.is_ready() and e.issue_cycle < cycle
        ]
        return sorted(ready, key=lambda item: item[1].seq)

    def release(self, idx: int) -> RSEntry:
        """Free an entry on dispatch and return its contents."""
        entry = self.entries[idx]
        if not entry.valid:
            raise RuntimeError(f"{self.unit} RS[{idx}] released while free")
        self.entries[idx] = RSEntry()
        return entry

    def flush_younger(self, seq: int) -> list[RSEntry]:
        """Invalidate entries younger than ``seq`` and return them."""
        flushed = []
        for i, e in enumerate(self.entries):
            if e.valid and e.seq > seq:
                flushed.append(e)
                self.entries[i] = RSEntry()
        return flushed

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = [f"RS[{self.unit}] ({self.count()}/{self.depth}):"]
        for i, e in enumerate(self.entries):
            if e.valid:
                lines.append(
                    f"  [{i}] seq={e.seq} ROB[{e.rob_tag}] {e.op} "
                    f"src1={e.src1!s:>12} src2={e.src2!s:>12}"
                )
        return "\n".join(lines)


class ReservationStationPool:
    """All reservation stations, one per unit class."""

    def __init__(self, depths: Mapping[UnitClass, int]) -> None:
        """Build one station per unit class with the given depths."""
        self.stations: dict[UnitClass, ReservationStation] = {
            unit: ReservationStation(unit, depth) for unit, depth in depths.items()
        }

    def __getitem__(self, unit: UnitClass) -> ReservationStation:
        return self.stations[unit]

    def __iter__(self) -> Iterator[ReservationStation]:
        return iter(self.stations.values())

    def is_full(self, unit: UnitClass) -> bool:
        """Return whether the station for ``unit`` has no free entry."""
        return self.stations[unit].is_full()

    def is_empty(self) -> bool:
        """Return whether every station is empty."""
        return all(rs.is_empty() for rs in self)

    def cdb_snoop(self, tag: int, value: int) -> None:
        """Forward a CDB broadcast to every station."""
        for rs in self:
            rs.cdb_snoop(tag, value)

    def flush_younger(self, seq: int) -> list[RSEntry]:
        """Invalidate every entry younger than ``seq`` in every station."""
        flushed = []
        for rs in self:
            flushed.extend(rs.flush_younger(seq))
        if flushed:
            logger.debug("RS flush: %d entries younger than seq %d", len(flushed), seq)
        return flushed

    def dump_state(self) -> str:
        """Return string representation of every station."""
        return "\n".join(rs.dump_state() for rs in self)
