"""Core infrastructure: settings, logging, exceptions."""

from .config import HarnessSettings, get_settings
from .exceptions import (
    ConfigurationConflictError,
    GoalExecutionError,
    HarnessError,
    PortAllocationError,
    VerificationError,
)
from .logging import case_id_var, get_logger, setup_logging

__all__ = [
    "HarnessSettings",
    "get_settings",
    "HarnessError",
    "GoalExecutionError",
    "VerificationError",
    "ConfigurationConflictError",
    "PortAllocationError",
    "case_id_var",
    "get_logger",
    "setup_logging",
]
