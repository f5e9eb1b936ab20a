"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from tests.fakes import FakeRunner
from wingetctl.core.services.command_runner import CommandRunner
from wingetctl.core.services.event_bus import EventBus
from wingetctl.core.services.process_registry import ProcessRegistry


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def python_runner() -> CommandRunner:
    """A runner whose "tool" is the current interpreter (args: -c <script>)."""
    return CommandRunner(ProcessRegistry(), EventBus(), executable=sys.executable)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
