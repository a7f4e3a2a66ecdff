"""
End-to-end tests for MatrixRunner against the fake build tool.

Each case starts a real subprocess serving HTTP, so these exercise the full
run / watch / stop / verify cycle.
"""

from __future__ import annotations

import json

import pytest

from devserver_harness.core.exceptions import (
    GoalExecutionError,
    PortAllocationError,
    VerificationError,
)
from devserver_harness.domain import (
    DEFAULT_PROFILE_SETS,
    DevServerVersion,
    ProfileSet,
    TestCase,
    build_matrix,
)
from devserver_harness.services.invoker import ServiceInvoker
from devserver_harness.services.matrix import MatrixRunner
from devserver_harness.services.ports import PortAllocator
from tests.conftest import make_settings

MATRIX = build_matrix(list(DevServerVersion), DEFAULT_PROFILE_SETS)


class ExplodingInvoker(ServiceInvoker):
    async def invoke(self, goal, cli_options=None, system_properties=None):
        raise RuntimeError("build tool exploded")


def explode_when_named(fragment: str):
    """Invoker factory that fails every goal of invocations whose name has ``fragment``."""

    def factory(name, *args, **kwargs):
        cls = ExplodingInvoker if fragment in name else ServiceInvoker
        return cls(name, *args, **kwargs)

    return factory


class NoAdminPorts(PortAllocator):
    def allocate_endpoint(self, version, host="localhost"):
        if version.requires_admin_port:
            raise PortAllocationError("no admin port left")
        return super().allocate_endpoint(version, host)


class TestRunCase:
    """Single-case orchestration."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("case", MATRIX, ids=lambda c: c.name)
    async def test_run_then_stop(self, settings, allocator, case: TestCase):
        runner = MatrixRunner(settings, allocator)
        result = await runner.run_case(case)

        assert result.passed
        assert result.watcher.shutdown_confirmed
        assert "TEST_VAR=testVariableValue" in result.watcher.content
        assert f"Module instance {case.expected_label} is running" in result.invocation.log
        assert (result.endpoint.admin_port is not None) == case.version.requires_admin_port

    @pytest.mark.asyncio
    async def test_admin_properties_reach_build_tool(self, settings, allocator):
        case = TestCase(version=DevServerVersion.V2_ALPHA, expected_label="standard-project")
        result = await MatrixRunner(settings, allocator).run_case(case)

        command = result.invocation.command
        assert f"-Dapp.devserver.port={result.endpoint.port}" in command
        assert f"-Dapp.devserver.adminPort={result.endpoint.admin_port}" in command
        assert "-Dapp.devserver.version=2-alpha" in command

    @pytest.mark.asyncio
    async def test_v1_omits_admin_properties(self, settings, allocator):
        case = TestCase(version=DevServerVersion.V1, expected_label="standard-project")
        result = await MatrixRunner(settings, allocator).run_case(case)

        joined = " ".join(result.invocation.command)
        assert "app.devserver.adminPort" not in joined
        assert "app.devserver.version" not in joined

    @pytest.mark.asyncio
    async def test_wrong_label_fails_with_log_marker(self, settings, allocator):
        case = TestCase(version=DevServerVersion.V1, expected_label="some-other-module")
        with pytest.raises(VerificationError) as exc_info:
            await MatrixRunner(settings, allocator).run_case(case)
        assert exc_info.value.kind == "log_marker"

    @pytest.mark.asyncio
    async def test_error_line_fails_error_free_check(self, settings, allocator):
        case = TestCase(
            version=DevServerVersion.V1,
            profiles=("noisy",),
            expected_label="standard-project",
        )
        with pytest.raises(VerificationError) as exc_info:
            await MatrixRunner(settings, allocator).run_case(case)
        assert exc_info.value.kind == "log_errors"

    @pytest.mark.asyncio
    async def test_empty_page_fails_content_check(self, tmp_path, allocator):
        settings = make_settings(tmp_path, readiness_timeout_ms=1000)
        case = TestCase(
            version=DevServerVersion.V1,
            profiles=("blank",),
            expected_label="standard-project",
        )
        with pytest.raises(VerificationError) as exc_info:
            await MatrixRunner(settings, allocator).run_case(case)

        error = exc_info.value
        assert error.kind == "content"
        assert "no content captured" in error.message

    @pytest.mark.asyncio
    async def test_goal_failure_propagates_and_writes_report(self, settings, allocator):
        case = TestCase(
            version=DevServerVersion.V1,
            profiles=("broken",),
            expected_label="standard-project",
        )
        with pytest.raises(GoalExecutionError):
            await MatrixRunner(settings, allocator).run_case(case)

        reports = list(settings.report_dir.glob("*.json"))
        assert len(reports) == 1
        data = json.loads(reports[0].read_text(encoding="utf-8"))
        assert data["case"] == case.name
        assert data["failure_kind"] == "goal_execution"
        assert data["watcher"]["fetch_error"] == "interrupted"
        assert data["watcher"]["stop"]["goal"] == "stop"
        assert any("BUILD FAILURE" in s["error_line"] for s in data["error_snippets"])

    @pytest.mark.asyncio
    async def test_reports_can_be_disabled(self, tmp_path, allocator):
        settings = make_settings(tmp_path, save_reports=False)
        case = TestCase(
            version=DevServerVersion.V1,
            profiles=("broken",),
            expected_label="standard-project",
        )
        with pytest.raises(GoalExecutionError):
            await MatrixRunner(settings, allocator).run_case(case)
        assert not settings.report_dir.exists()


class TestRunMatrix:
    """Whole-matrix runs keep going past failures."""

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_siblings(self, settings, allocator):
        rows = [
            ProfileSet(profiles=("broken",), expected_label="standard-project"),
            ProfileSet(profiles=(), expected_label="standard-project"),
            ProfileSet(profiles=("base-it-profile", "services"), expected_label="standard-project-services"),
        ]
        report = await MatrixRunner(settings, allocator).run_matrix([DevServerVersion.V1], rows)

        assert report.counts() == {"total": 3, "passed": 2, "failed": 1}
        assert not report.passed
        failed = report.failures[0]
        assert failed.case.profiles == ("broken",)
        assert failed.failure_kind == "goal_execution"
        assert failed.report_path is not None and failed.report_path.exists()

        with pytest.raises(VerificationError) as exc_info:
            report.raise_for_failures()
        assert "1 of 3 case(s) failed" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_concurrent_cases_use_distinct_ports(self, tmp_path, allocator):
        settings = make_settings(tmp_path, max_concurrency=3)
        report = await MatrixRunner(settings, allocator).run_matrix([DevServerVersion.V2_ALPHA])

        assert report.passed, [r.summary() for r in report.failures]
        ports = [
            p
            for r in report.results
            for p in (r.endpoint.port, r.endpoint.admin_port)
        ]
        assert len(set(ports)) == len(ports)
        report.raise_for_failures()

    @pytest.mark.asyncio
    async def test_require_shutdown_confirmation(self, tmp_path, allocator):
        settings = make_settings(tmp_path, require_shutdown_confirmation=True)
        report = await MatrixRunner(settings, allocator).run_matrix(
            [DevServerVersion.V1], DEFAULT_PROFILE_SETS[:1]
        )
        assert report.passed
        assert report.results[0].watcher.shutdown_confirmed


class TestCaseIsolation:
    """Unexpected errors stay inside the case that raised them."""

    @pytest.mark.asyncio
    async def test_unexpected_exception_recorded_and_siblings_run(self, settings, allocator):
        rows = [
            ProfileSet(profiles=("explode",), expected_label="standard-project"),
            ProfileSet(profiles=(), expected_label="standard-project"),
        ]
        runner = MatrixRunner(settings, allocator, invoker_factory=explode_when_named("explode"))
        report = await runner.run_matrix([DevServerVersion.V1], rows)

        assert report.counts() == {"total": 2, "passed": 1, "failed": 1}
        failed, passed = report.results
        assert failed.failure_kind == "error"
        assert failed.failure_message == "RuntimeError: build tool exploded"
        assert failed.watcher.stop_error == "RuntimeError: build tool exploded"
        assert failed.report_path is not None and failed.report_path.exists()
        assert passed.passed

    @pytest.mark.asyncio
    async def test_run_case_reraises_unexpected_exception(self, settings, allocator):
        case = TestCase(
            version=DevServerVersion.V1, profiles=("explode",), expected_label="standard-project"
        )
        runner = MatrixRunner(settings, allocator, invoker_factory=explode_when_named("explode"))
        with pytest.raises(RuntimeError, match="build tool exploded"):
            await runner.run_case(case)

    @pytest.mark.asyncio
    async def test_port_allocation_failure_is_per_case(self, settings):
        report = await MatrixRunner(settings, NoAdminPorts(bind_host="127.0.0.1")).run_matrix(
            list(DevServerVersion), DEFAULT_PROFILE_SETS[:1]
        )

        v1, v2 = report.results
        assert v1.passed
        assert not v2.passed
        assert v2.failure_kind == "error"
        assert v2.endpoint is None
        assert v2.invocation is None
        assert "no admin port left" in v2.failure_message
        data = json.loads(v2.report_path.read_text(encoding="utf-8"))
        assert data["endpoint"] is None

    @pytest.mark.asyncio
    async def test_long_output_line_does_not_break_matrix(self, settings, allocator):
        rows = [
            ProfileSet(profiles=("longline",), expected_label="standard-project"),
            ProfileSet(profiles=(), expected_label="standard-project"),
        ]
        report = await MatrixRunner(settings, allocator).run_matrix([DevServerVersion.V1], rows)

        assert report.passed, [r.summary() for r in report.failures]
        longline = report.results[0]
        assert max(len(line) for line in longline.invocation.log_lines) > 70_000
