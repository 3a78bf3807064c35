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

"""Register Status Table.

Maps each architectural register to either "available" or "pending on
reorder-buffer slot N". It tracks:
- INT and FP status entries (valid + tag per register)
- Values forwarded by a CDB broadcast before the producer commits
- Source lookup results (renamed flag, tag, value)
- Commit clear with tag matching
- Flush reset of entries owned by squashed slots

Once the producer broadcasts, the entry stops being pending but keeps the
broadcast value (and the producer's slot) until that slot commits, so a later
issue reads the forwarded value instead of a stale architectural one.

Usage:
    table = RegisterStatusTable()

    # Rename a destination at issue
    table.rename(FpReg(1), tag=3)

    # Look up a source
    result = table.lookup(FpReg(1), regfile)
    assert result.renamed and result.tag == 3

    # Broadcast makes it available again
    table.broadcast(tag=3, value=42)
    assert table.lookup(FpReg(1), regfile).value == 42
"""

import logging
from collections.abc import Collection, Iterator
from dataclasses import dataclass

from tomasulo.config import NUM_FP_REGS, NUM_INT_REGS, ZERO_REGISTER
from tomasulo.isa.operands import FpReg, IntReg, Register, unknown_operand
from tomasulo.models.register_file import RegisterFile

logger = logging.getLogger(__name__)


@dataclass
class StatusEntry:
    """One register's status."""

    valid: bool = False  # Owned by an in-flight producer
    tag: int = 0  # Producing reorder-buffer slot
    ready: bool = False  # Producer has broadcast
    value: int = 0  # Broadcast value, meaningful when ready


@dataclass
class LookupResult:
    """Source lookup result."""

    renamed: bool = False
    tag: int = 0
    value: int = 0


class RegisterStatusTable:
    """Register renaming state for the integer and FP register files."""

    def __init__(self) -> None:
        """Initialize with every register available."""
        self.int_status: list[StatusEntry] = [StatusEntry() for _ in range(NUM_INT_REGS)]
        self.fp_status: list[StatusEntry] = [StatusEntry() for _ in range(NUM_FP_REGS)]

    def _entry(self, reg: Register) -> StatusEntry | None:
        if isinstance(reg, IntReg):
            if reg.num == ZERO_REGISTER:
                return None  # x0 is never renamed
            return self.int_status[reg.num]
        if isinstance(reg, FpReg):
            return self.fp_status[reg.num]
        unknown_operand(reg)

    def _entries(self) -> Iterator[tuple[Register, StatusEntry]]:
        for i, entry in enumerate(self.int_status):
            yield IntReg(i), entry
        for i, entry in enumerate(self.fp_status):
            yield FpReg(i), entry

    # =========================================================================
    # Source Lookup
    # =========================================================================

    def lookup(self, reg: Register, regfile: RegisterFile) -> LookupResult:
        """Look up a source register at issue.

        Args:
            reg: Source register.
            regfile: Architectural register file supplying committed values.

        Returns:
            LookupResult with ``renamed`` set while the producer has not
            broadcast, otherwise the current value.
        """
        entry = self._entry(reg)
        if entry is None:
            return LookupResult(renamed=False, tag=0, value=0)
        if entry.valid and not entry.ready:
            return LookupResult(renamed=True, tag=entry.tag, value=0)
        if entry.valid:
            return LookupResult(renamed=False, tag=0, value=entry.value)
        return LookupResult(renamed=False, tag=0, value=regfile.read(reg))

    def pending_tag(self, reg: Register) -> int | None:
        """Return the slot ``reg`` is pending on, or None when available."""
        entry = self._entry(reg)
        if entry is None or not entry.valid or entry.ready:
            return None
        return entry.tag

    # =========================================================================
    # Rename Write
    # =========================================================================

    def rename(self, reg: Register, tag: int) -> None:
        """Point ``reg`` at the reorder-buffer slot ``tag``."""
        entry = self._entry(reg)
        if entry is None:
            return  # x0 writes ignored
        entry.valid = True
        entry.tag = tag
        entry.ready = False
        entry.value = 0

    # =========================================================================
    # CDB Broadcast
    # =========================================================================

    def broadcast(self, tag: int, value: int) -> None:
        """Make every register pending on ``tag`` available with ``value``."""
        for reg, entry in self._entries():
            if entry.valid and not entry.ready and entry.tag == tag:
                entry.ready = True
                entry.value = value
                logger.debug("status %s available from slot %d", reg, tag)

    # =========================================================================
    # Commit Clear
    # =========================================================================

    def commit(self, reg: Register, tag: int) -> None:
        """Clear the entry on commit if it still belongs to ``tag``."""
        entry = self._entry(reg)
        if entry is not None and entry.valid and entry.tag == tag:
            entry.valid = False
            entry.ready = False

    # =========================================================================
    # Flush
    # =========================================================================

    def flush(self, squashed_tags: Collection[int]) -> list[Register]:
        """Reset entries owned by squashed slots to available.

        Afterwards the register reads its architectural value again.

        Returns:
            The registers that were reset.
        """
        reset: list[Register] = []
        for reg, entry in self._entries():
            if entry.valid and entry.tag in squashed_tags:
                entry.valid = False
                entry.ready = False
                reset.append(reg)
        return reset

    # =========================================================================
    # Debug
    # =========================================================================

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = ["RegisterStatusTable State:"]
        owned = [(reg, e) for reg, e in self._entries() if e.valid]
        if not owned:
            lines.append("  all available")
        for reg, e in owned:
            if e.ready:
                lines.append(f"  {reg} -> ROB[{e.tag}] (forwarded 0x{e.value:08x})")
            else:
                lines.append(f"  {reg} -> ROB[{e.tag}]")
        return "\n".join(lines)
