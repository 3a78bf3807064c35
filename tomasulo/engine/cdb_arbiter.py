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

"""Common Data Bus arbiter.

At most one transfer per cycle. Given the results waiting for the bus, the
arbiter grants the oldest one (smallest sequence number) and returns the
broadcast plus a per-request grant vector. Losers keep their result and
request again next cycle.
"""

from dataclasses import dataclass
from enum import Enum

from tomasulo.config import MASK32


class CdbSource(Enum):
    """Where a bus request comes from."""

    FUNCTIONAL_UNIT = "fu"
    LOAD = "load"
    STORE = "store"  # Commit-time memory write of the ROB head


@dataclass
class FuComplete:
    """Result waiting for the bus."""

    valid: bool = False
    tag: int = 0
    seq: int = 0
    value: int = 0
    source: CdbSource = CdbSource.FUNCTIONAL_UNIT


@dataclass
class CdbBroadcast:
    """CDB broadcast output."""

    valid: bool = False
    tag: int = 0
    seq: int = 0
    value: int = 0
    source: CdbSource = CdbSource.FUNCTIONAL_UNIT

    def __str__(self) -> str:
        if not self.valid:
            return "idle"
        return f"ROB[{self.tag}] <- 0x{self.value:08x} ({self.source.value} seq {self.seq})"


class CdbArbiterModel:
    """Oldest-first arbitration for the single common data bus."""

    def arbitrate(
        self,
        requests: list[FuComplete],
    ) -> tuple[CdbBroadcast, list[bool]]:
        """Arbitrate among bus requests.

        Args:
            requests: Pending results; invalid entries are ignored.

        Returns:
            Tuple of (CdbBroadcast, grants) where grants has one bool per
            request.
        """
        grants = [False] * len(requests)
        cdb = CdbBroadcast()

        winner: int | None = None
        for i, req in enumerate(requests):
            if req.valid and (winner is None or req.seq < requests[winner].seq):
                winner = i

        if winner is not None:
            req = requests[winner]
            grants[winner] = True
            cdb.valid = True
            cdb.tag = req.tag
            cdb.seq = req.seq
            cdb.value = req.value & MASK32
            cdb.source = req.source

        return cdb, grants
