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

"""Unit tests for the Reorder Buffer.

Tests ring-buffer allocation with wrap, CDB writes, store and branch updates,
in-order commit, misprediction detection, partial flush and load ordering.
"""

import pytest

from tomasulo.engine.reorder_buffer import (
    AllocationRequest,
    BranchUpdate,
    CDBWrite,
    ReorderBufferModel,
    RobStatus,
    StoreUpdate,
)
from tomasulo.isa.instruction import Op
from tomasulo.isa.opcodes import Opcode
from tomasulo.isa.operands import FpReg, Imm, Indirect, IntReg


def fadd(pc: int = 0) -> Op:
    return Op(Opcode.FADD, FpReg(1), FpReg(2), FpReg(3)).instantiate(pc)


def alloc(rob: ReorderBufferModel, seq: int, **kwargs: object) -> int:
    """Allocate a register-writing entry for seq."""
    kwargs.setdefault("op", fadd(seq))
    kwargs.setdefault("dest_reg", FpReg(1))
    return rob.allocate(AllocationRequest(seq=seq, **kwargs))


def alloc_branch(rob: ReorderBufferModel, seq: int, pc: int, target: int, predicted: int) -> int:
    op = Op(Opcode.BEQ, Imm(target), IntReg(1), IntReg(2)).instantiate(pc)
    return rob.allocate(
        AllocationRequest(op=op, seq=seq, is_branch=True, predicted_next=predicted)
    )


def alloc_store(rob: ReorderBufferModel, seq: int) -> int:
    op = Op(Opcode.ST, Indirect(IntReg(2), 0), IntReg(1)).instantiate(seq)
    return rob.allocate(AllocationRequest(op=op, seq=seq, is_store=True))


# ============================================================================
# Test 1: Allocation and capacity
# ============================================================================
def test_allocate_until_full() -> None:
    """Tags are handed out in ring order; overflow is an internal error."""
    rob = ReorderBufferModel(depth=3)
    assert rob.empty
    assert [alloc(rob, s) for s in range(3)] == [0, 1, 2]
    assert rob.full and rob.count == 3
    assert not rob.can_allocate()
    with pytest.raises(RuntimeError):
        alloc(rob, 3)


def test_wraparound_non_power_of_two() -> None:
    """Head and tail wrap correctly for any depth."""
    rob = ReorderBufferModel(depth=5)
    for cycle in range(1, 13):
        tag = alloc(rob, cycle)
        assert tag == (cycle - 1) % 5
        rob.cdb_write(CDBWrite(tag=tag, value=cycle), cycle)
        record = rob.commit(cycle + 1)
        assert record.seq == cycle and record.value == cycle
        assert rob.empty


# ============================================================================
# Test 2: Commit gating
# ============================================================================
def test_commit_requires_completed_head_from_earlier_cycle() -> None:
    """The head commits only after completing in an earlier cycle."""
    rob = ReorderBufferModel(depth=4)
    head = alloc(rob, 0)
    younger = alloc(rob, 1)

    rob.cdb_write(CDBWrite(tag=younger, value=5), cycle=3)
    assert not rob.can_commit(4)  # head not completed

    rob.mark_executing(head)
    assert rob.head_entry.status is RobStatus.EXECUTING
    rob.cdb_write(CDBWrite(tag=head, value=7), cycle=4)
    assert not rob.can_commit(4)
    assert rob.can_commit(5)

    first = rob.commit(5)
    second = rob.commit(6)
    assert [first.seq, second.seq] == [0, 1]
    assert (first.dest_reg, first.value) == (FpReg(1), 7)
    with pytest.raises(RuntimeError):
        rob.commit(7)


def test_cdb_write_to_invalid_entry() -> None:
    """Writing a free slot is an internal error."""
    rob = ReorderBufferModel(depth=2)
    with pytest.raises(ValueError):
        rob.cdb_write(CDBWrite(tag=1, value=0), cycle=1)


# ============================================================================
# Test 3: Stores and branches
# ============================================================================
def test_store_update_completes_store() -> None:
    """A store completes when its address and data are known."""
    rob = ReorderBufferModel(depth=2)
    tag = alloc_store(rob, 0)
    rob.store_update(StoreUpdate(tag=tag, address=0x1_0000_0010, value=9), cycle=2)
    record = rob.commit(3)
    assert record.is_store and record.store_address == 0x10 and record.value == 9
    assert record.dest_reg is None


def test_store_update_to_non_store() -> None:
    """Only stores accept store updates."""
    rob = ReorderBufferModel(depth=2)
    tag = alloc(rob, 0)
    with pytest.raises(ValueError):
        rob.store_update(StoreUpdate(tag=tag, address=0, value=0), cycle=1)


@pytest.mark.parametrize(
    "taken, predicted, mispredicted, redirect",
    [
        (True, 9, False, 0),
        (False, 5, False, 0),
        (True, 5, True, 9),
        (False, 9, True, 5),
    ],
)
def test_branch_misprediction(
    taken: bool, predicted: int, mispredicted: bool, redirect: int
) -> None:
    """Misprediction compares the actual next index with the predicted one."""
    rob = ReorderBufferModel(depth=2)
    tag = alloc_branch(rob, seq=0, pc=4, target=9, predicted=predicted)
    rob.branch_update(BranchUpdate(tag=tag, taken=taken, target=9), cycle=2)
    assert rob.entries[tag].mispredicted == mispredicted

    record = rob.commit(3)
    assert record.misprediction == mispredicted
    assert record.redirect_pc == redirect
    assert rob.mispredictions == int(mispredicted)


def test_branch_update_to_non_branch() -> None:
    """Only branches accept branch updates."""
    rob = ReorderBufferModel(depth=2)
    tag = alloc(rob, 0)
    with pytest.raises(ValueError):
        rob.branch_update(BranchUpdate(tag=tag, taken=True, target=0), cycle=1)


# ============================================================================
# Test 4: Partial flush
# ============================================================================
def test_flush_after_branch() -> None:
    """Entries younger than the branch are invalidated; older ones survive."""
    rob = ReorderBufferModel(depth=8)
    for seq in range(1, 5):
        alloc(rob, seq)
    branch = alloc_branch(rob, seq=5, pc=4, target=9, predicted=5)
    younger = [alloc(rob, seq) for seq in (6, 7, 8)]

    # Older entries retire first
    for tag, _ in list(rob.in_order())[:4]:
        rob.cdb_write(CDBWrite(tag=tag, value=0), cycle=1)
    for cycle in range(2, 6):
        rob.commit(cycle)
    assert rob.head_idx == branch

    flushed = rob.flush_partial(branch)
    assert flushed == younger
    assert [rob.entries[t].seq for t in flushed] == [6, 7, 8]
    assert rob.count == 1

    rob.branch_update(BranchUpdate(tag=branch, taken=True, target=9), cycle=6)
    record = rob.commit(7)
    assert record.misprediction and record.redirect_pc == 9
    assert rob.empty
    assert alloc(rob, 9) == (branch + 1) % 8


def test_flush_when_full_and_wrapped() -> None:
    """Flush works when the live window wraps around the ring."""
    rob = ReorderBufferModel(depth=4)
    for seq in range(3):
        tag = alloc(rob, seq)
        rob.cdb_write(CDBWrite(tag=tag, value=0), cycle=1)
        rob.commit(2)
    # head is now slot 3
    branch = alloc_branch(rob, seq=3, pc=0, target=0, predicted=1)
    younger = [alloc(rob, seq) for seq in (4, 5, 6)]
    assert rob.full
    assert rob.flush_partial(branch) == younger
    assert rob.count == 1 and rob.tail_idx == 0


# ============================================================================
# Test 5: Load ordering against older stores
# ============================================================================
def test_store_blocks_load() -> None:
    """Older stores with unknown or equal addresses block a load."""
    rob = ReorderBufferModel(depth=4)
    store = alloc_store(rob, 0)
    alloc(rob, 1)  # the load

    assert rob.store_blocks_load(1, 0x40)  # address unknown
    rob.store_update(StoreUpdate(tag=store, address=0x40, value=1), cycle=2)
    assert rob.store_blocks_load(1, 0x40)  # same address
    assert not rob.store_blocks_load(1, 0x44)  # disjoint
    assert not rob.store_blocks_load(0, 0x40)  # store is not older


def test_dump_state() -> None:
    """The dump lists live entries in order."""
    rob = ReorderBufferModel(depth=2)
    alloc(rob, 0)
    dump = rob.dump_state()
    assert "count=1" in dump
    assert "seq=0 fadd f1, f2, f3" in dump
