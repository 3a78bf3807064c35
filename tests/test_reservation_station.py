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

"""Unit tests for the reservation stations.

Tests allocation, CDB snoop wake-up, oldest-first dispatch eligibility,
release and flush.
"""

import pytest

from tomasulo.config import DEFAULT_STATION_ENTRIES
from tomasulo.engine.reservation_station import (
    ReservationStation,
    ReservationStationPool,
)
from tomasulo.isa.instruction import Op
from tomasulo.isa.opcodes import Opcode, UnitClass
from tomasulo.isa.operands import UNUSED, FpReg, Imm, Pending


def fadd() -> Op:
    """Return an in-flight fadd."""
    return Op(Opcode.FADD, FpReg(1), FpReg(2), FpReg(3)).instantiate(0)


def fill(
    rs: ReservationStation, specs: list[tuple[int, object, object]], cycle: int = 1
) -> list[int]:
    """Allocate (seq, src1, src2) entries; the ROB tag equals seq."""
    return [
        rs.allocate(fadd(), rob_tag=seq, seq=seq, src1=s1, src2=s2, offset=0, cycle=cycle)
        for seq, s1, s2 in specs
    ]


# ============================================================================
# Test 1: Allocation
# ============================================================================
def test_allocate_until_full() -> None:
    """Entries fill lowest index first; a full station refuses."""
    rs = ReservationStation(UnitClass.FP_ADD, depth=2)
    assert rs.is_empty()
    assert fill(rs, [(0, Imm(1), Imm(2)), (1, Imm(1), Imm(2))]) == [0, 1]
    assert rs.is_full()
    assert rs.count() == 2
    assert fill(rs, [(2, Imm(1), Imm(2))]) == [None]


# ============================================================================
# Test 2: CDB snoop
# ============================================================================
def test_snoop_resolves_matching_sources() -> None:
    """A broadcast resolves every slot waiting on its tag, nothing else."""
    rs = ReservationStation(UnitClass.FP_ADD, depth=3)
    fill(
        rs,
        [
            (1, Pending(0), Imm(5)),
            (2, Pending(0), Pending(0)),
            (3, Pending(9), Imm(5)),
        ],
    )
    rs.cdb_snoop(tag=0, value=42)

    assert rs.entries[0].src1 == Imm(42)
    assert rs.entries[1].src1 == Imm(42) and rs.entries[1].src2 == Imm(42)
    assert rs.entries[2].src1 == Pending(9)
    assert rs.entries[2].is_ready() is False


# ============================================================================
# Test 3: Dispatch eligibility
# ============================================================================
def test_ready_entries_oldest_first() -> None:
    """Only resolved entries issued in an earlier cycle are eligible."""
    rs = ReservationStation(UnitClass.FP_ADD, depth=3)
    fill(rs, [(5, Imm(1), Imm(2)), (3, Imm(1), Pending(0))], cycle=1)
    fill(rs, [(4, Imm(1), Imm(2))], cycle=2)

    # Issued this cycle: not yet eligible
    assert [e.seq for _, e in rs.ready_entries(cycle=2)] == [5]

    rs.cdb_snoop(tag=0, value=7)
    assert [e.seq for _, e in rs.ready_entries(cycle=3)] == [3, 4, 5]


def test_release_frees_slot() -> None:
    """Dispatch releases the entry and returns its contents."""
    rs = ReservationStation(UnitClass.FP_ADD, depth=1)
    fill(rs, [(0, Imm(3), Imm(4))])
    entry = rs.release(0)
    assert entry.operand_values() == (3, 4)
    assert rs.is_empty()
    with pytest.raises(RuntimeError):
        rs.release(0)


def test_operand_values_require_resolution() -> None:
    """Reading a pending source is an internal error."""
    rs = ReservationStation(UnitClass.EFF_ADDR, depth=1)
    rs.allocate(fadd(), rob_tag=0, seq=0, src1=Pending(2), src2=UNUSED, offset=4, cycle=1)
    with pytest.raises(RuntimeError):
        rs.entries[0].operand_values()


# ============================================================================
# Test 4: Pool and flush
# ============================================================================
def test_pool_flush_younger() -> None:
    """Flush invalidates entries younger than the branch in every station."""
    pool = ReservationStationPool(DEFAULT_STATION_ENTRIES)
    fill(pool[UnitClass.FP_ADD], [(1, Imm(0), Imm(0)), (6, Imm(0), Imm(0))])
    fill(pool[UnitClass.FP_MUL], [(7, Imm(0), Imm(0))])

    flushed = pool.flush_younger(5)

    assert sorted(e.seq for e in flushed) == [6, 7]
    assert pool[UnitClass.FP_ADD].count() == 1
    assert pool[UnitClass.FP_MUL].is_empty()
    assert not pool.is_empty()


def test_pool_snoop_reaches_all_stations() -> None:
    """Pool snoop forwards to each station."""
    pool = ReservationStationPool(DEFAULT_STATION_ENTRIES)
    fill(pool[UnitClass.FP_ADD], [(1, Pending(0), Imm(0))])
    fill(pool[UnitClass.INT], [(2, Imm(0), Pending(0))])
    pool.cdb_snoop(tag=0, value=1)
    assert pool[UnitClass.FP_ADD].entries[0].is_ready()
    assert pool[UnitClass.INT].entries[0].is_ready()
    assert "RS[int] (1/2)" in pool.dump_state()
