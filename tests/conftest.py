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

"""Pytest configuration for tests."""

import logging
from typing import Any

import pytest

from tomasulo.config import TomasuloConfig
from tomasulo.models.register_file import RegisterFile


def pytest_configure(config: Any) -> None:
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a single-model unit test")
    config.addinivalue_line(
        "markers", "integration: mark test as a composed-simulator scenario"
    )
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_addoption(parser: Any) -> None:
    """Add custom command line options for tests."""
    parser.addoption(
        "--trace-cycles",
        action="store_true",
        default=False,
        help="Log every simulator event at DEBUG level.",
    )


@pytest.fixture(scope="session", autouse=True)
def setup_logging(request: Any) -> None:
    """Enable per-cycle simulator logging when requested."""
    if request.config.getoption("--trace-cycles"):
        logging.getLogger("tomasulo").setLevel(logging.DEBUG)


@pytest.fixture
def default_config() -> TomasuloConfig:
    """Return the default machine configuration."""
    return TomasuloConfig()


@pytest.fixture
def roomy_config() -> TomasuloConfig:
    """Return a configuration large enough that issue never stalls."""
    return TomasuloConfig(
        station_entries=dict.fromkeys(TomasuloConfig().station_entries, 8),
        reorder_buffer_entries=16,
    )


@pytest.fixture
def regfile() -> RegisterFile:
    """Return a register file with a few known values."""
    return RegisterFile(int_regs={1: 10, 2: 4096}, fp_regs={2: 2.0, 4: 0.5})
