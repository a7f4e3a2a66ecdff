"""
Build Log Verification - Assertions over captured build-tool output.

The invocation log is the only surface for textual markers, so every log
check goes through here:
1. scan() - classify lines into errors and warnings
2. verify_error_free() - fail when any unexpected error line is present
3. verify_text() - fail when a literal marker is missing
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.exceptions import VerificationError
from devserver_harness.reporters.log_extractor import LogExtractor


@dataclass
class LogScan:
    """Lines of one log with the issues found in them."""

    source: str
    lines: list[str]
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.errors)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


class LogVerifier:
    """
    Checks build logs for error markers and expected text.

    Usage:
        verifier = LogVerifier(settings)
        verifier.verify_error_free(result.log)
        verifier.verify_text(result.log, "Dev App Server is now running")
    """

    def __init__(self, settings: HarnessSettings | None = None):
        self.settings = settings or get_settings()
        self._error_patterns = [re.compile(p) for p in self.settings.error_patterns]
        self._warning_patterns = [re.compile(p) for p in self.settings.warning_patterns]
        self._ignore_patterns = [re.compile(p) for p in self.settings.ignore_patterns]
        self._extractor = LogExtractor(context_lines=3)

    def scan(self, log: str, source: str = "build log") -> LogScan:
        """Classify log lines into errors and warnings."""
        lines = log.splitlines()
        scan = LogScan(source=source, lines=lines)

        for line in lines:
            if not line.strip():
                continue

            if any(p.search(line) for p in self._ignore_patterns):
                continue

            if any(p.search(line) for p in self._error_patterns):
                scan.errors.append(line)
                continue

            if any(p.search(line) for p in self._warning_patterns):
                scan.warnings.append(line)

        return scan

    def issues_summary(self, scan: LogScan, strict_mode: bool | None = None) -> str | None:
        """
        Summarize the issues of a scan.

        Returns None if the log is clean, otherwise a formatted message.
        """
        strict_mode = self.settings.strict_mode if strict_mode is None else strict_mode
        issues = []

        if scan.errors:
            snippets = self._extractor.extract_error_snippets(
                scan.lines, scan.source, self._error_patterns
            )
            issues.append(
                f"{scan.source} contains {len(scan.errors)} error line(s):\n"
                + "\n---\n".join(s.to_string() for s in snippets[:3])
            )

        if strict_mode and scan.warnings:
            issues.append(
                f"{scan.source} contains {len(scan.warnings)} warning line(s) (strict mode):\n"
                + "\n".join(f"  -> {w[:300]}" for w in scan.warnings[:5])
            )

        if not issues:
            return None

        return "\n\n".join(issues)

    def verify_error_free(self, log: str, source: str = "build log") -> None:
        scan = self.scan(log, source)
        summary = self.issues_summary(scan)
        if summary:
            raise VerificationError(
                "log_errors",
                summary,
                details={"errors": scan.errors[:10], "warnings": scan.warnings[:10]},
            )

    def verify_text(self, log: str, text: str, source: str = "build log") -> None:
        if text not in log:
            tail = self._extractor.summarize_logs(log.splitlines(), max_lines=20)
            raise VerificationError(
                "log_marker",
                f"Text not found in {source}: {text!r}\nRelevant log lines:\n{tail}",
                details={"expected": text},
            )
