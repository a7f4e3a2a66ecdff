"""Harness exceptions with structured details."""

from __future__ import annotations

from typing import Any


class HarnessError(Exception):
    """Base harness exception with a structured error payload."""

    error_code: str = "HARNESS_ERROR"
    message: str = "Harness operation failed"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a problem+json style mapping."""
        return {
            "error": self.error_code,
            "message": self.message,
            **({"details": self.details} if self.details else {}),
        }


class GoalExecutionError(HarnessError):
    """The build tool reported a failed goal execution."""

    error_code = "GOAL_EXECUTION_FAILED"
    message = "Goal execution failed"

    def __init__(
        self,
        goal: str,
        failure_message: str,
        log: str = "",
        exit_code: int | None = None,
    ):
        self.goal = goal
        self.failure_message = failure_message
        self.log = log
        self.exit_code = exit_code
        super().__init__(
            failure_message,
            details={"goal": goal, "exit_code": exit_code},
        )


class VerificationError(HarnessError, AssertionError):
    """A literal assertion on content or logs failed.

    ``kind`` tells which check failed: ``content``, ``log_marker``,
    ``log_errors``, ``expected_failure`` or ``shutdown``.
    """

    error_code = "VERIFICATION_FAILED"
    message = "Verification failed"

    def __init__(self, kind: str, message: str, details: dict[str, Any] | None = None):
        self.kind = kind
        super().__init__(message, details={"kind": kind, **(details or {})})


class ConfigurationConflictError(HarnessError):
    """A profile set activates mutually exclusive configuration modes."""

    error_code = "CONFIGURATION_CONFLICT"
    message = "Conflicting configuration modes"


class PortAllocationError(HarnessError):
    """No free port could be reserved."""

    error_code = "PORT_ALLOCATION_FAILED"
    message = "Could not allocate a free port"
