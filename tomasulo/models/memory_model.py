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

"""Sparse data memory.

Memory is addressed by the 32-bit effective address; each address holds one
32-bit word. Unwritten addresses read as zero. There is no cache or timing
model here: the memory stage latency lives in the configuration.
"""

from collections.abc import Iterator, Mapping
from typing import Protocol

from tomasulo.config import MASK32


class MemoryReader(Protocol):
    """Protocol for objects that can read memory words."""

    def read_word(self, address: int) -> int:
        """Read a 32-bit word from memory."""
        ...


class MemoryModel:
    """Word-per-address sparse memory."""

    def __init__(self, initial: Mapping[int, int] | None = None) -> None:
        """Initialize memory, optionally preloaded with ``initial`` words."""
        self._words: dict[int, int] = {}
        for address, value in (initial or {}).items():
            self.write_word(address, value)

    def read_word(self, address: int) -> int:
        """Read the word at ``address`` (zero when never written)."""
        return self._words.get(address & MASK32, 0)

    def write_word(self, address: int, value: int) -> None:
        """Write a 32-bit word."""
        self._words[address & MASK32] = value & MASK32

    def snapshot(self) -> dict[int, int]:
        """Return a copy of all written words, sorted by address."""
        return dict(sorted(self._words.items()))

    def __iter__(self) -> Iterator[int]:  # noqa: D105
        return iter(sorted(self._words))

    def __len__(self) -> int:  # noqa: D105
        return len(self._words)

    def dump_state(self) -> str:
        """Return string representation of current state."""
        lines = [f"MemoryModel State ({len(self._words)} words):"]
        for address, value in sorted(self._words.items()):
            lines.append(f"  [0x{address:08x}] = 0x{value:08x}")
        return "\n".join(lines)
