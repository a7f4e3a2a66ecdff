"""
Case Report - Structured failure reports for a failed test case.

Format designed to be:
1. Machine-parseable (JSON)
2. Self-contained: the case, the endpoint, what the watcher saw, the failure
3. Focused: error lines come with surrounding log context
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devserver_harness.core.exceptions import HarnessError
from devserver_harness.reporters.log_extractor import LogExtractor

if TYPE_CHECKING:
    from devserver_harness.domain.outcomes import CaseResult


@dataclass
class CaseReport:
    """Everything needed to diagnose one failed case without rerunning it."""

    case_name: str
    version: str
    profiles: list[str]
    expected_label: str
    started_at: datetime
    finished_at: datetime

    endpoint: dict[str, Any] | None = None
    watcher: dict[str, Any] | None = None
    invocation: dict[str, Any] | None = None

    failure_kind: str | None = None
    failure: dict[str, Any] | None = None

    # Log evidence
    error_snippets: list[dict[str, Any]] = field(default_factory=list)
    log_tail: list[str] = field(default_factory=list)

    @classmethod
    def from_result(
        cls,
        result: "CaseResult",
        error: Exception | None = None,
        started_at: datetime | None = None,
        tail_lines: int = 40,
    ) -> "CaseReport":
        """Build a report from a failed CaseResult and the error that ended it."""
        finished_at = datetime.now(UTC)
        log_lines = result.invocation.log_lines if result.invocation else []
        snippets = LogExtractor(context_lines=3).extract_error_snippets(
            log_lines,
            source="run",
            patterns=[re.compile(r"\[ERROR\]"), re.compile(r"BUILD FAILURE")],
        )

        if isinstance(error, HarnessError):
            failure = error.to_dict()
        elif error is not None:
            failure = {"error": error.__class__.__name__, "message": str(error)}
        else:
            failure = {"message": result.failure_message}

        case = result.case
        return cls(
            case_name=case.name,
            version=case.version.value,
            profiles=list(case.profiles),
            expected_label=case.expected_label,
            started_at=started_at or finished_at,
            finished_at=finished_at,
            endpoint=result.endpoint.model_dump() if result.endpoint else None,
            watcher=result.watcher.to_dict() if result.watcher else None,
            invocation=result.invocation.to_dict() if result.invocation else None,
            failure_kind=result.failure_kind,
            failure=failure,
            error_snippets=[s.to_dict() for s in snippets[:10]],
            log_tail=log_lines[-tail_lines:],
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "case": self.case_name,
            "version": self.version,
            "profiles": self.profiles,
            "expected_label": self.expected_label,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "duration_seconds": (self.finished_at - self.started_at).total_seconds(),
            "summary": self._generate_summary(),
            "endpoint": self.endpoint,
            "watcher": self.watcher,
            "invocation": self.invocation,
            "failure_kind": self.failure_kind,
            "failure": self.failure,
            "error_snippets": self.error_snippets,
            "log_tail": self.log_tail,
        }

    def to_json(self) -> str:
        """Serialize to JSON for file output."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def save(self, directory: Path | str = "test-results/case-reports") -> Path:
        """Save the JSON report, with its markdown rendering beside it; return the JSON path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        safe_name = re.sub(r"[^A-Za-z0-9_.-]+", "_", self.case_name)
        timestamp = self.started_at.strftime("%Y%m%d_%H%M%S_%f")
        filepath = directory / f"{safe_name}_{timestamp}.json"
        filepath.write_text(self.to_json(), encoding="utf-8")
        filepath.with_suffix(".md").write_text(self.to_markdown(), encoding="utf-8")

        return filepath

    def _generate_summary(self) -> str:
        """Generate a one-line summary for quick triage."""
        parts = []

        if self.failure_kind:
            parts.append(f"Failed: {self.failure_kind}")

        if self.watcher:
            if not self.watcher.get("content_captured"):
                parts.append("no content captured")
            if not self.watcher.get("shutdown_confirmed"):
                parts.append("shutdown not confirmed")

        if self.invocation and self.invocation.get("exit_code") not in (0, None):
            parts.append(f"exit code {self.invocation['exit_code']}")

        if self.error_snippets:
            parts.append(f"{len(self.error_snippets)} error line(s) in log")

        return " | ".join(parts) if parts else "Unknown failure"

    def to_markdown(self) -> str:
        """Generate markdown report for human review."""
        duration = (self.finished_at - self.started_at).total_seconds()

        md = f"""# Case Failure Report

## Case: `{self.case_name}`

**Version:** `{self.version}`
**Profiles:** `{", ".join(self.profiles) or "(none)"}`
**Duration:** {duration:.2f}s
**Summary:** {self._generate_summary()}

---
"""

        if self.failure:
            md += f"\n## Failure\n\n```\n{self.failure.get('message', '')}\n```\n"

        if self.watcher:
            md += f"\n## Watcher\n\n```json\n{json.dumps(self.watcher, indent=2)}\n```\n"

        if self.error_snippets:
            md += "\n## Error Lines\n\n"
            for snippet in self.error_snippets[:5]:
                md += f"- line {snippet['line_number']}: `{snippet['error_line'][:300]}`\n"

        if self.log_tail:
            md += "\n## Log Tail\n\n```\n"
            md += "\n".join(self.log_tail[-20:])
            md += "\n```\n"

        return md
