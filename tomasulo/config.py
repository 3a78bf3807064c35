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

"""Central configuration for the Tomasulo simulator.

Configuration
=============

This module holds the architectural constants shared by every model and the
per-run ``TomasuloConfig`` that sizes the machine.

Organization:
    - Data Type Masks (32-bit, 64-bit)
    - Register File Configuration
    - Machine Defaults (buffer sizes, latencies)
    - TomasuloConfig (run configuration, text format parse/render)

Usage:
    >>> from tomasulo.config import TomasuloConfig
    >>> config = TomasuloConfig(reorder_buffer_entries=8)
    >>> config.latency_of(Opcode.FMUL)
    5

Text Format:
    ``TomasuloConfig.parse`` accepts the sectioned layout printed by
    ``str(config)``::

        buffers:
           eff addr: 2
            fp adds: 3
            fp muls: 3
               ints: 2
            reorder: 5

        latencies:
           fp add: 2
           fp mul: 5

    Keys that are omitted keep their defaults. Header lines without a colon
    (``Configuration``, ``-----``) and blank lines are ignored.
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from collections.abc import Mapping
from typing import Final

from tomasulo.isa.opcodes import BranchPrediction, Opcode, UnitClass

# ============================================================================
# Data Type Masks
# ============================================================================

MASK32: Final[int] = (1 << 32) - 1
"""32-bit mask (0xFFFF_FFFF)."""

# ============================================================================
# Register File Configuration
# ============================================================================

NUM_INT_REGS: Final[int] = 32
"""Number of integer registers (x0-x31)."""

NUM_FP_REGS: Final[int] = 32
"""Number of floating-point registers (f0-f31)."""

ZERO_REGISTER: Final[int] = 0
"""x0 is hardwired to zero and never renamed."""

# ============================================================================
# Machine Defaults
# ============================================================================

DEFAULT_REORDER_BUFFER_ENTRIES: Final[int] = 5
"""Default reorder buffer capacity."""

DEFAULT_MEMORY_LATENCY: Final[int] = 1
"""Cycles a load spends in the memory access stage."""

DEFAULT_STATION_ENTRIES: Final[Mapping[UnitClass, int]] = MappingProxyType(
    {
        UnitClass.EFF_ADDR: 2,
        UnitClass.FP_ADD: 3,
        UnitClass.FP_MUL: 3,
        UnitClass.INT: 2,
    }
)
"""Reservation station capacity per functional-unit class."""

DEFAULT_FUNCTIONAL_UNITS: Final[Mapping[UnitClass, int]] = MappingProxyType(
    {
        UnitClass.EFF_ADDR: 1,
        UnitClass.FP_ADD: 1,
        UnitClass.FP_MUL: 1,
        UnitClass.INT: 1,
    }
)
"""Number of functional units per class."""

DEFAULT_LATENCIES: Final[Mapping[Opcode, int]] = MappingProxyType(
    {
        Opcode.FADD: 2,
        Opcode.FSUB: 2,
        Opcode.FMUL: 5,
        Opcode.FDIV: 10,
        Opcode.ADD: 1,
        Opcode.SUB: 1,
        Opcode.MUL: 5,
        Opcode.DIV: 10,
        Opcode.FLD: 1,
        Opcode.LD: 1,
        Opcode.FST: 1,
        Opcode.ST: 1,
        Opcode.BEQ: 1,
        Opcode.BNE: 1,
    }
)
"""Execution latency per opcode (address generation for memory ops)."""

# ============================================================================
# Text Format Keys
# ============================================================================

_BUFFER_KEYS: Final[dict[str, UnitClass | None]] = {
    "eff addr": UnitClass.EFF_ADDR,
    "fp adds": UnitClass.FP_ADD,
    "fp muls": UnitClass.FP_MUL,
    "ints": UnitClass.INT,
    "reorder": None,
}

_LATENCY_KEYS: Final[dict[str, Opcode | None]] = {
    "fp add": Opcode.FADD,
    "fp sub": Opcode.FSUB,
    "fp mul": Opcode.FMUL,
    "fp div": Opcode.FDIV,
    "int add": Opcode.ADD,
    "int sub": Opcode.SUB,
    "int mul": Opcode.MUL,
    "int div": Opcode.DIV,
    "fp load": Opcode.FLD,
    "load": Opcode.LD,
    "fp store": Opcode.FST,
    "store": Opcode.ST,
    "beq": Opcode.BEQ,
    "bne": Opcode.BNE,
    "memory": None,
}

_UNIT_KEYS: Final[dict[str, UnitClass]] = {
    "eff addr": UnitClass.EFF_ADDR,
    "fp adds": UnitClass.FP_ADD,
    "fp muls": UnitClass.FP_MUL,
    "ints": UnitClass.INT,
}


def _positive(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")


@dataclass(frozen=True)
class TomasuloConfig:
    """Machine configuration, fixed for the duration of a run.

    Attributes:
        station_entries: Reservation station capacity per unit class.
        functional_units: Functional units per unit class.
        reorder_buffer_entries: Reorder buffer capacity.
        latencies: Execution latency per opcode.
        memory_latency: Cycles a load spends in the memory stage.
        branch_prediction: Static predictor applied at issue.
    """

    station_entries: Mapping[UnitClass, int] = field(
        default_factory=lambda: dict(DEFAULT_STATION_ENTRIES)
    )
    functional_units: Mapping[UnitClass, int] = field(
        default_factory=lambda: dict(DEFAULT_FUNCTIONAL_UNITS)
    )
    reorder_buffer_entries: int = DEFAULT_REORDER_BUFFER_ENTRIES
    latencies: Mapping[Opcode, int] = field(
        default_factory=lambda: dict(DEFAULT_LATENCIES)
    )
    memory_latency: int = DEFAULT_MEMORY_LATENCY
    branch_prediction: BranchPrediction = BranchPrediction.NOT_TAKEN

    def __post_init__(self) -> None:
        """Fill partial tables from defaults and validate every value."""
        # Partial mappings are merged over the defaults and frozen.
        object.__setattr__(
            self,
            "station_entries",
            MappingProxyType({**DEFAULT_STATION_ENTRIES, **self.station_entries}),
        )
        object.__setattr__(
            self,
            "functional_units",
            MappingProxyType({**DEFAULT_FUNCTIONAL_UNITS, **self.functional_units}),
        )
        object.__setattr__(
            self,
            "latencies",
            MappingProxyType({**DEFAULT_LATENCIES, **self.latencies}),
        )

        for unit, entries in self.station_entries.items():
            _positive(f"station_entries[{unit.name}]", entries)
        for unit, count in self.functional_units.items():
            _positive(f"functional_units[{unit.name}]", count)
        for opcode, latency in self.latencies.items():
            _positive(f"latencies[{opcode.name}]", latency)
        _positive("reorder_buffer_entries", self.reorder_buffer_entries)
        _positive("memory_latency", self.memory_latency)
        if not isinstance(self.branch_prediction, BranchPrediction):
            raise ValueError(
                f"branch_prediction must be a BranchPrediction, "
                f"got {self.branch_prediction!r}"
            )

    def latency_of(self, opcode: Opcode) -> int:
        """Return the execution latency of ``opcode``."""
        return self.latencies[opcode]

    def with_overrides(self, **changes: object) -> "TomasuloConfig":
        """Return a copy with the given fields replaced.

        Table fields (``station_entries``, ``functional_units``,
        ``latencies``) are merged over this config's tables, so overriding
        one latency keeps every other configured latency.
        """
        for name in ("station_entries", "functional_units", "latencies"):
            if name in changes:
                changes[name] = {**getattr(self, name), **changes[name]}
        return replace(self, **changes)

    # =========================================================================
    # Text Format
    # =========================================================================

    @classmethod
    def parse(cls, text: str) -> "TomasuloConfig":
        """Parse the sectioned text format.

        Raises:
            ValueError: On unknown sections or keys, or non-integer values.
        """
        stations: dict[UnitClass, int] = {}
        units: dict[UnitClass, int] = {}
        latencies: dict[Opcode, int] = {}
        options: dict[str, object] = {}
        section: str | None = None

        for lineno, raw in enumerate(text.splitlines(), start=1):
            line = raw.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue
            key, _, value = (part.strip() for part in line.partition(":"))
            key = key.lower()
            if not value:
                if key not in ("buffers", "latencies", "units", "options"):
                    raise ValueError(f"line {lineno}: unknown section {key!r}")
                section = key
                continue
            if section is None:
                raise ValueError(f"line {lineno}: {key!r} outside of a section")

            if section == "options":
                if key != "branch prediction":
                    raise ValueError(f"line {lineno}: unknown option {key!r}")
                try:
                    options["branch_prediction"] = BranchPrediction(value.lower())
                except ValueError as exc:
                    raise ValueError(
                        f"line {lineno}: unknown branch prediction {value!r}"
                    ) from exc
                continue

            try:
                number = int(value, 0)
            except ValueError as exc:
                raise ValueError(
                    f"line {lineno}: {key!r} expects an integer, got {value!r}"
                ) from exc

            if section == "buffers":
                if key not in _BUFFER_KEYS:
                    raise ValueError(f"line {lineno}: unknown buffer {key!r}")
                unit = _BUFFER_KEYS[key]
                if unit is None:
                    options["reorder_buffer_entries"] = number
                else:
                    stations[unit] = number
            elif section == "units":
                if key not in _UNIT_KEYS:
                    raise ValueError(f"line {lineno}: unknown unit {key!r}")
                units[_UNIT_KEYS[key]] = number
            else:
                if key not in _LATENCY_KEYS:
                    raise ValueError(f"line {lineno}: unknown latency {key!r}")
                opcode = _LATENCY_KEYS[key]
                if opcode is None:
                    options["memory_latency"] = number
                else:
                    latencies[opcode] = number

        return cls(
            station_entries=stations,
            functional_units=units,
            latencies=latencies,
            **options,  # type: ignore[arg-type]
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "TomasuloConfig":
        """Read and parse a configuration file."""
        return cls.parse(Path(path).read_text())

    def __str__(self) -> str:
        """Render in the text format accepted by ``parse``."""
        lines = ["Configuration", "-------------", "buffers:"]
        for key, unit in _BUFFER_KEYS.items():
            count = (
                self.reorder_buffer_entries
                if unit is None
                else self.station_entries[unit]
            )
            lines.append(f"{key:>11}: {count}")
        lines += ["", "units:"]
        for key, unit in _UNIT_KEYS.items():
            lines.append(f"{key:>11}: {self.functional_units[unit]}")
        lines += ["", "latencies:"]
        for key, opcode in _LATENCY_KEYS.items():
            latency = self.memory_latency if opcode is None else self.latencies[opcode]
            lines.append(f"{key:>11}: {latency}")
        lines += ["", "options:"]
        lines.append(f"branch prediction: {self.branch_prediction.value}")
        return "\n".join(lines) + "\n"
