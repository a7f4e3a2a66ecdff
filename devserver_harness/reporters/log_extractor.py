"""
Log Extractor - Pull the interesting parts out of a build-tool log.

Build logs run to thousands of lines; failure messages and reports only
carry what matters:
1. extract_error_snippets() - each matching line with numbered context
2. summarize_logs() - a bounded digest, most severe lines first
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

# Severity buckets for summaries, checked in order; unmatched lines rank last
_SEVERITY = (
    re.compile(r"\[ERROR\]|BUILD FAILURE|Exception"),
    re.compile(r"\[WARNING\]"),
    re.compile(r"Dev App Server|Module instance|BUILD SUCCESS|stopped", re.IGNORECASE),
)
_ORDINARY = len(_SEVERITY)


def _severity(line: str) -> int:
    for rank, pattern in enumerate(_SEVERITY):
        if pattern.search(line):
            return rank
    return _ORDINARY


@dataclass
class LogSnippet:
    """One matching log line with the lines around it."""

    source: str
    error_line: str
    context_before: list[str]
    context_after: list[str]
    line_number: int  # 1-based

    def numbered_lines(self) -> list[tuple[int, str]]:
        first = self.line_number - len(self.context_before)
        return (
            [(first + i, line) for i, line in enumerate(self.context_before)]
            + [(self.line_number, self.error_line)]
            + [(self.line_number + 1 + i, line) for i, line in enumerate(self.context_after)]
        )

    def to_string(self) -> str:
        """Render with line numbers, the matching line marked with ``>``."""
        numbered = self.numbered_lines()
        width = len(str(numbered[-1][0]))
        return "\n".join(
            f"{'>' if number == self.line_number else ' '} {number:>{width}} | {line}"
            for number, line in numbered
        )

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "line_number": self.line_number,
            "error_line": self.error_line,
            "context_before": self.context_before,
            "context_after": self.context_after,
        }


class LogExtractor:
    """Builds snippets and digests from the lines of one log."""

    def __init__(self, context_lines: int = 3):
        self.context_lines = context_lines

    def extract_error_snippets(
        self,
        logs: Sequence[str],
        source: str,
        patterns: Sequence[re.Pattern],
    ) -> list[LogSnippet]:
        """Return a snippet for every line matching one of ``patterns``."""
        snippets = []
        for index, line in enumerate(logs):
            if not any(p.search(line) for p in patterns):
                continue
            snippets.append(
                LogSnippet(
                    source=source,
                    error_line=line,
                    context_before=list(logs[max(0, index - self.context_lines):index]),
                    context_after=list(logs[index + 1:index + 1 + self.context_lines]),
                    line_number=index + 1,
                )
            )
        return snippets

    def summarize_logs(self, logs: Sequence[str], max_lines: int = 50) -> str:
        """
        Digest of at most ``max_lines`` lines.

        Errors come first, then warnings, then server lifecycle lines; any
        room left is filled with the last ordinary lines of the log.
        """
        buckets: list[list[str]] = [[] for _ in range(_ORDINARY + 1)]
        for line in logs:
            buckets[_severity(line)].append(line)

        picked: list[str] = []
        for bucket in buckets[:_ORDINARY]:
            picked.extend(bucket[: max_lines - len(picked)])

        room = max_lines - len(picked)
        if room > 0:
            picked.extend(buckets[_ORDINARY][-room:])
        return "\n".join(picked)
