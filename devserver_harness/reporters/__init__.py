"""
Failure reporters package.
"""

from devserver_harness.reporters.case_report import CaseReport
from devserver_harness.reporters.log_extractor import LogExtractor, LogSnippet

__all__ = [
    "CaseReport",
    "LogExtractor",
    "LogSnippet",
]
