"""
System Test Configuration - fixtures for runs against the real build tool.

These tests drive the actual ``mvn`` (or whatever DEVHARNESS_BUILD_COMMAND
names) against the sample project in DEVHARNESS_PROJECT_DIR:
1. The session is skipped when the build tool or the project is missing
2. Every case reserves its own ports, so cases never share a server
3. Failed cases leave a JSON report under DEVHARNESS_REPORT_DIR

The unit tests in tests/ use a fake build tool and need none of this.
"""

from __future__ import annotations

import shutil

import pytest

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.logging import setup_logging
from devserver_harness.services import ErrorScenario, MatrixRunner, PortAllocator


# =============================================================================
# CONFIGURATION
# =============================================================================


@pytest.fixture(scope="session")
def harness_settings() -> HarnessSettings:
    """Load harness settings from the environment and check prerequisites."""
    settings = get_settings()

    executable = settings.build_command[0]
    if shutil.which(executable) is None:
        pytest.skip(f"Build tool {executable!r} not found on PATH")

    if not (settings.project_dir / "pom.xml").is_file():
        pytest.skip(
            f"No pom.xml in {settings.project_dir}\n"
            f"Point DEVHARNESS_PROJECT_DIR at the sample project to run system tests."
        )

    setup_logging(settings)

    print("\n" + "=" * 60)
    print("DEV SERVER LIFECYCLE VERIFICATION")
    print("=" * 60)
    print(f"  Build command: {' '.join(settings.build_command)}")
    print(f"  Project: {settings.project_dir}")
    print(f"  Logs: {settings.resolved_log_dir}")
    print(f"  Strict Mode: {'ON' if settings.strict_mode else 'OFF'}")
    print("=" * 60)

    return settings


@pytest.fixture(scope="session")
def port_allocator() -> PortAllocator:
    """Ports stay reserved for the whole session."""
    return PortAllocator()


# =============================================================================
# RUNNERS
# =============================================================================


@pytest.fixture
def matrix_runner(
    harness_settings: HarnessSettings,
    port_allocator: PortAllocator,
) -> MatrixRunner:
    """
    Runner for positive run-then-stop cases.

    Usage in tests:
        def test_case(matrix_runner, case):
            asyncio.run(matrix_runner.run_case(case))
    """
    return MatrixRunner(harness_settings, port_allocator)


@pytest.fixture
def error_scenario(harness_settings: HarnessSettings) -> ErrorScenario:
    """Runner for the misconfiguration case."""
    return ErrorScenario(harness_settings)


# =============================================================================
# PYTEST HOOKS
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "workflow: Full run-then-stop cycle against the real build tool",
    )
    config.addinivalue_line(
        "markers",
        "smoke: Quick sanity check of the build tool setup",
    )
    config.addinivalue_line(
        "markers",
        "slow: Test that takes more than 10 seconds",
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "/smoke/" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)

        if "/workflows/" in str(item.fspath):
            item.add_marker(pytest.mark.workflow)
            item.add_marker(pytest.mark.slow)
