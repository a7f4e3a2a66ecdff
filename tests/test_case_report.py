"""Tests for CaseReport."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

from devserver_harness.core.exceptions import GoalExecutionError, VerificationError
from devserver_harness.domain import (
    CaseResult,
    DevServerVersion,
    InvocationResult,
    PollOutcome,
    ServiceEndpoint,
    TestCase,
    WatcherOutcome,
)
from devserver_harness.reporters.case_report import CaseReport

FAILED_LOG = "\n".join(
    [
        "[INFO] Scanning for projects...",
        "[INFO] Building standard-project",
        "[ERROR] Failed to execute goal: project is broken",
        "[INFO] ------------------------------------------------------------------------",
        "[INFO] BUILD FAILURE",
    ]
)


def failed_result() -> CaseResult:
    case = TestCase(
        version=DevServerVersion.V2_ALPHA,
        profiles=("base-it-profile", "services"),
        expected_label="standard-project-services",
    )
    endpoint = ServiceEndpoint(host="localhost", port=8081, admin_port=8082)
    return CaseResult(
        case=case,
        passed=False,
        endpoint=endpoint,
        watcher=WatcherOutcome(
            url=endpoint.url,
            readiness=PollOutcome(succeeded=False, attempts=3, last_error="ConnectError"),
            fetch_error="interrupted",
        ),
        invocation=InvocationResult(
            goal="run",
            command=["mvn", "appengine:run"],
            succeeded=False,
            exit_code=1,
            log=FAILED_LOG,
        ),
        failure_kind="goal_execution",
        failure_message="Exit code was non-zero: 1",
    )


class TestCaseReport:
    """Report contents and persistence."""

    def test_from_result(self):
        error = GoalExecutionError("run", "Exit code was non-zero: 1", log=FAILED_LOG, exit_code=1)
        report = CaseReport.from_result(failed_result(), error=error)

        assert report.case_name == "V2_ALPHA-base-it-profile,services"
        assert report.version == "2-alpha"
        assert report.endpoint["admin_port"] == 8082
        assert report.failure["error"] == "GOAL_EXECUTION_FAILED"
        lines = [s["error_line"] for s in report.error_snippets]
        assert lines == ["[ERROR] Failed to execute goal: project is broken", "[INFO] BUILD FAILURE"]
        assert report.log_tail[-1] == "[INFO] BUILD FAILURE"

    def test_summary(self):
        report = CaseReport.from_result(failed_result())
        summary = report.to_dict()["summary"]

        assert summary.startswith("Failed: goal_execution")
        assert "no content captured" in summary
        assert "exit code 1" in summary
        assert "2 error line(s) in log" in summary

    def test_non_harness_error(self):
        report = CaseReport.from_result(failed_result(), error=RuntimeError("boom"))
        assert report.failure == {"error": "RuntimeError", "message": "boom"}

    def test_save_writes_json(self, tmp_path):
        started = datetime.now(UTC) - timedelta(seconds=3)
        error = VerificationError("content", "no content captured")
        path = CaseReport.from_result(failed_result(), error=error, started_at=started).save(tmp_path)

        assert path.parent == tmp_path
        assert path.name.startswith("V2_ALPHA-base-it-profile_services_")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["failure"]["details"]["kind"] == "content"
        assert data["duration_seconds"] >= 3
        assert data["watcher"]["fetch_error"] == "interrupted"

        markdown = path.with_suffix(".md").read_text(encoding="utf-8")
        assert markdown.startswith("# Case Failure Report")
        assert "no content captured" in markdown

    def test_markdown(self):
        md = CaseReport.from_result(failed_result()).to_markdown()
        assert "# Case Failure Report" in md
        assert "`base-it-profile, services`" in md
        assert "## Log Tail" in md
