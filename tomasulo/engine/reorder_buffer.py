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

"""Reorder Buffer.

The ROB holds every in-flight op in program order and retires them one at a
time from the head. It tracks:
- Entry allocation at the tail and retirement at the head
- Head and tail pointers with a wrap bit for full/empty detection
- CDB writes marking entries completed
- Store address/data and branch resolution updates
- Misprediction detection at commit
- Partial flush of everything younger than a slot

Usage:
    rob = ReorderBufferModel(depth=5)

    # Allocate entry
    tag = rob.allocate(AllocationRequest(op=op, seq=0, dest_reg=FpReg(1)))

    # Mark completed via CDB
    rob.cdb_write(CDBWrite(tag=tag, value=result), cycle=4)

    # Retire
    if rob.can_commit(cycle=5):
        record = rob.commit(cycle=5)
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum, auto

from tomasulo.config import DEFAULT_REORDER_BUFFER_ENTRIES, MASK32
from tomasulo.isa.instruction import Op
from tomasulo.isa.operands import Register

logger = logging.getLogger(__name__)


class RobStatus(Enum):
    """Lifecycle of a reorder-buffer entry."""

    ISSUED = auto()
    EXECUTING = auto()
    COMPLETED = auto()
    COMMITTED = auto()


@dataclass
class ReorderBufferEntry:
    """Single reorder-buffer entry."""

    # Core fields
    valid: bool = False
    seq: int = 0
    op: Op | None = None
    pc: int = 0
    status: RobStatus = RobStatus.ISSUED
    completed_cycle: int | None = None

    # Destination register
    dest_reg: Register | None = None

    # Result value
    value: int = 0

    # Store tracking
    is_store: bool = False
    store_address: int | None = None

    # Branch tracking
    is_branch: bool = False
    branch_taken: bool = False
    branch_target: int = 0
    predicted_next: int = 0
    mispredicted: bool = False

    @property
    def completed(self) -> bool:
        """Return whether the entry's result is available."""
        return self.valid and self.status is RobStatus.COMPLETED

    @property
    def actual_next(self) -> int:
        """Instruction index that really follows a resolved branch."""
        return self.branch_target if self.branch_taken else self.pc + 1


@dataclass
class AllocationRequest:
    """Allocation request from issue."""

    op: Op
    seq: int
    dest_reg: Register | None = None
    is_store: bool = False
    is_branch: bool = False
    predicted_next: int = 0


@dataclass
class CDBWrite:
    """CDB write to mark entry completed."""

    tag: int
    value: int


@dataclass
class StoreUpdate:
    """Store address and data computed at execute."""

    tag: int
    address: int
    value: int


@dataclass
class BranchUpdate:
    """Branch resolution update."""

    tag: int
    taken: bool
    target: int


@dataclass
class CommitRecord:
    """What retiring the head entry did."""

    tag: int
    seq: int
    op: Op | None
    dest_reg: Register | None = None
    value: int = 0
    is_store: bool = False
    store_address: int | None = None
    misprediction: bool = False
    redirect_pc: int = 0


class ReorderBufferModel:
    """Bounded ring buffer of in-flight ops.

    - Circular buffer with head/tail pointers
    - Entry allocation and deallocation
    - CDB writes marking entries completed
    - Branch updates and misprediction detection
    - In-order commit sequencing
    - Partial flush after a mispredicted branch
    """

    def __init__(self, depth: int = DEFAULT_REORDER_BUFFER_ENTRIES):
        """Initialize reorder buffer model with given depth."""
        if depth < 1:
            raise ValueError(f"reorder buffer depth must be positive, got {depth}")
        self.depth = depth

        # Entry storage
        self.entries: list[ReorderBufferEntry] = [
            ReorderBufferEntry() for _ in range(depth)
        ]

        # Pointers (with wrap bit for full/empty detection)
        self.head_ptr: int = 0
        self.tail_ptr: int = 0

        # Statistics
        self.mispredictions: int = 0

    # =========================================================================
    # Pointer and Status Properties
    # =========================================================================

    @property
    def head_idx(self) -> int:
        """Head index (without wrap bit)."""
        return self.head_ptr % self.depth

    @property
    def tail_idx(self) -> int:
        """Tail index (without wrap bit)."""
        return self.tail_ptr % self.depth

    @property
    def full(self) -> bool:
        """Check if buffer is full."""
        return self.count == self.depth

    @property
    def empty(self) -> bool:
        """Check if buffer is empty."""
        return self.tail_ptr == self.head_ptr

    @property
    def count(self) -> int:
        """Number of valid entries."""
        return (self.tail_ptr - self.head_ptr) % (2 * self.depth)

    @property
    def head_entry(self) -> ReorderBufferEntry:
        """Entry at head of buffer."""
        return self.entries[self.head_idx]

    def in_order(self) -> Iterator[tuple[int, ReorderBufferEntry]]:
        """Yield (tag, entry) from head to tail."""
        for age in range(self.count):
            tag = (self.head_idx + age) % self.depth
            yield tag, self.entries[tag]

    def _valid_entry(self, tag: int, what: str) -> ReorderBufferEntry:
        entry = self.entries[tag % self.depth]
        if not entry.valid:
            raise ValueError(f"{what} to invalid entry {tag}")
        return entry

    # =========================================================================
    # Allocation
    # =========================================================================

    def can_allocate(self) -> bool:
        """Check if allocation is possible."""
        return not self.full

    def allocate(self, req: AllocationRequest) -> int:
        """Allocate a new entry at the tail and return its tag.

        Raises:
            RuntimeError: If the buffer is full. Issue must check
                ``can_allocate`` first.
        """
        if self.full:
            raise RuntimeError(f"reorder buffer overflow allocating seq {req.seq}")

        tag = self.tail_idx
        self.entries[tag] = ReorderBufferEntry(
            valid=True,
            seq=req.seq,
            op=req.op,
            pc=req.op.pc if req.op.pc is not None else 0,
            dest_reg=req.dest_reg,
            is_store=req.is_store,
            is_branch=req.is_branch,
            predicted_next=req.predicted_next,
        )

        # Advance tail
        self.tail_ptr = (self.tail_ptr + 1) % (2 * self.depth)
        return tag

    def mark_executing(self, tag: int) -> None:
        """Record that the op left its reservation station."""
        self._valid_entry(tag, "Dispatch").status = RobStatus.EXECUTING

    # =========================================================================
    # Result Updates
    # =========================================================================

    def cdb_write(self, write: CDBWrite, cycle: int) -> None:
        """Handle CDB write to mark entry completed."""
        entry = self._valid_entry(write.tag, "CDB write")
        entry.status = RobStatus.COMPLETED
        entry.value = write.value & MASK32
        entry.completed_cycle = cycle

    def store_update(self, update: StoreUpdate, cycle: int) -> None:
        """Record a store's address and data; the store is then completed."""
        entry = self._valid_entry(update.tag, "Store update")
        if not entry.is_store:
            raise ValueError(f"Store update to non-store entry {update.tag}")
        entry.store_address = update.address & MASK32
        entry.value = update.value & MASK32
        entry.status = RobStatus.COMPLETED
        entry.completed_cycle = cycle

    def branch_update(self, update: BranchUpdate, cycle: int) -> None:
        """Handle branch resolution update."""
        entry = self._valid_entry(update.tag, "Branch update")
        if not entry.is_branch:
            raise ValueError(f"Branch update to non-branch entry {update.tag}")

        entry.branch_taken = update.taken
        entry.branch_target = update.target
        entry.mispredicted = entry.actual_next != entry.predicted_next
        entry.status = RobStatus.COMPLETED
        entry.completed_cycle = cycle

    # =========================================================================
    # Memory Ordering
    # =========================================================================

    def store_blocks_load(self, load_seq: int, address: int) -> bool:
        """Return whether an older in-flight store could alias a load.

        True when some store older than ``load_seq`` has not computed its
        address yet or writes the same address.
        """
        for _, entry in self.in_order():
            if entry.seq >= load_seq:
                break
            if entry.valid and entry.is_store:
                if entry.store_address is None or entry.store_address == address:
                    return True
        return False

    # =========================================================================
    # Commit Logic
    # =========================================================================

    def can_commit(self, cycle: int) -> bool:
        """Check if head entry completed before ``cycle``."""
        if self.empty:
            return False

        entry = self.head_entry
        return (
            entry.completed
            and entry.completed_cycle is not None
            and entry.completed_cycle < cycle
        )

    def commit(self, cycle: int) -> CommitRecord:
        """Retire the head entry.

        Call only after can_commit() returns True.
        """
        if not self.can_commit(cycle):
            raise RuntimeError("Cannot commit - check can_commit() first")

        tag = self.head_idx
        entry = self.head_entry

        misprediction = entry.is_branch and entry.mispredicted
        record = CommitRecord(
            tag=tag,
            seq=entry.seq,
            op=entry.op,
            dest_reg=entry.dest_reg,
            value=entry.value,
            is_store=entry.is_store,
            store_address=entry.store_address,
            misprediction=misprediction,
            redirect_pc=entry.actual_next if misprediction else 0,
        )
        if misprediction:
            self.mispredictions += 1

        # Invalidate entry and advance head
        entry.status = RobStatus.COMMITTED
        entry.valid = False
        self.head_ptr = (self.head_ptr + 1) % (2 * self.depth)
        return record

    # =========================================================================
    # Flush
    # =========================================================================

    def flush_partial(self, flush_tag: int) -> list[int]:
        """Partial flush: invalidate entries after flush_tag.

        Entry contents stay readable until the slot is reallocated.

        Returns:
            Tags of the flushed entries, oldest first.
        """
        flushed = []

        # Invalidate entries from flush_tag+1 to tail
        flush_age = (flush_tag - self.head_idx) % self.depth
        for age in range(flush_age + 1, self.count):
            idx = (self.head_idx + age) % self.depth
            if self.entries[idx].valid:
                self.entries[idx].valid = False
                flushed.append(idx)

        # Reset tail to flush_tag + 1 using age-based arithmetic
        self.tail_ptr = (self.head_ptr + flush_age + 1) % (2 * self.depth)

        logger.debug("ROB flush: slots %s after ROB[%d]", flushed, flush_tag)
        return flushed

    # =========================================================================
    # Debug
    # =========================================================================

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = [
            "ReorderBufferModel State:",
            f"  head_ptr={self.head_ptr} (idx={self.head_idx})",
            f"  tail_ptr={self.tail_ptr} (idx={self.tail_idx})",
            f"  count={self.count}, full={self.full}, empty={self.empty}",
            "  Valid entries:",
        ]

        for tag, entry in self.in_order():
            dest = entry.dest_reg if entry.dest_reg is not None else "-"
            lines.append(
                f"    [{tag}] seq={entry.seq} {entry.op} dest={dest} "
                f"{entry.status.name} val={entry.value:08x}"
            )

        return "\n".join(lines)
