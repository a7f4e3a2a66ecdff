"""Outcomes recorded while running a case.

These are plain dataclasses: they live for one case and are consumed by
assertions and reports, never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from devserver_harness.core.exceptions import VerificationError
from devserver_harness.domain.cases import TestCase
from devserver_harness.domain.endpoint import ServiceEndpoint


@dataclass(frozen=True)
class PollOutcome:
    """Result of one predicate evaluation or of a whole poll loop."""

    succeeded: bool
    content: str | None = None
    elapsed_ms: int = 0
    attempts: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "elapsed_ms": self.elapsed_ms,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "content_length": len(self.content) if self.content is not None else None,
        }


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of one build-tool goal execution."""

    goal: str
    command: list[str]
    succeeded: bool
    exit_code: int | None
    log: str
    failure_message: str | None = None
    log_path: Path | None = None
    duration_ms: int = 0

    @property
    def log_lines(self) -> list[str]:
        return self.log.splitlines()

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "command": self.command,
            "succeeded": self.succeeded,
            "exit_code": self.exit_code,
            "log_path": str(self.log_path) if self.log_path else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class WatcherOutcome:
    """What the lifecycle watcher observed for one case."""

    url: str
    readiness: PollOutcome | None = None
    content: str | None = None
    fetch_error: str | None = None
    stop_result: InvocationResult | None = None
    stop_error: str | None = None
    shutdown: PollOutcome | None = None

    @property
    def content_captured(self) -> bool:
        return self.content is not None

    @property
    def stop_attempted(self) -> bool:
        return self.stop_result is not None or self.stop_error is not None

    @property
    def shutdown_confirmed(self) -> bool:
        return self.shutdown is not None and self.shutdown.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "readiness": self.readiness.to_dict() if self.readiness else None,
            "content_captured": self.content_captured,
            "fetch_error": self.fetch_error,
            "stop": self.stop_result.to_dict() if self.stop_result else None,
            "stop_error": self.stop_error,
            "shutdown": self.shutdown.to_dict() if self.shutdown else None,
            "shutdown_confirmed": self.shutdown_confirmed,
        }


@dataclass
class CaseResult:
    """Verdict for one test case."""

    case: TestCase
    passed: bool
    endpoint: ServiceEndpoint | None = None
    watcher: WatcherOutcome | None = None
    invocation: InvocationResult | None = None
    failure_kind: str | None = None
    failure_message: str | None = None
    duration_ms: int = 0
    report_path: Path | None = None

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        line = f"{status} {self.case.name} ({self.duration_ms} ms)"
        if not self.passed:
            line += f" [{self.failure_kind}] {self.failure_message}"
        return line


@dataclass
class MatrixReport:
    """All case results of one matrix run."""

    results: list[CaseResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[CaseResult]:
        return [r for r in self.results if not r.passed]

    def counts(self) -> dict[str, int]:
        failed = len(self.failures)
        return {"total": len(self.results), "passed": len(self.results) - failed, "failed": failed}

    def raise_for_failures(self) -> None:
        """Raise one VerificationError listing every failed case."""
        failures = self.failures
        if not failures:
            return
        lines = "\n".join(f"  {r.summary()}" for r in failures)
        raise VerificationError(
            "matrix",
            f"{len(failures)} of {len(self.results)} case(s) failed:\n{lines}",
            details={"failed_cases": [r.case.name for r in failures]},
        )
