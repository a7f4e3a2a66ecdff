"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from devserver_harness.core.config import HarnessSettings
from devserver_harness.services.ports import PortAllocator

pytest_plugins = ["pytest_asyncio"]

FAKE_BUILD_TOOL = Path(__file__).parent / "fake_build_tool.py"


def make_settings(tmp_path: Path, **overrides) -> HarnessSettings:
    """Settings wired to the fake build tool with fast poll policies."""
    values = dict(
        build_command=[sys.executable, str(FAKE_BUILD_TOOL)],
        project_dir=tmp_path,
        log_dir=tmp_path / "logs",
        report_dir=tmp_path / "reports",
        host="127.0.0.1",
        goal_timeout_seconds=60.0,
        http_timeout_seconds=2.0,
        readiness_interval_ms=50,
        readiness_timeout_ms=15000,
        shutdown_interval_ms=50,
        shutdown_timeout_ms=5000,
    )
    values.update(overrides)
    return HarnessSettings(**values)


@pytest.fixture
def settings(tmp_path: Path) -> HarnessSettings:
    return make_settings(tmp_path)


@pytest.fixture
def allocator() -> PortAllocator:
    return PortAllocator(bind_host="127.0.0.1")
