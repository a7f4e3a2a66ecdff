"""Domain models for the harness.

Usage:
    from devserver_harness.domain import TestCase, DevServerVersion, build_matrix

    cases = build_matrix([DevServerVersion.V1])
"""

from devserver_harness.domain.endpoint import (
    ADMIN_PORT_PROPERTY,
    PORT_PROPERTY,
    VERSION_PROPERTY,
    DevServerVersion,
    ServiceEndpoint,
    system_properties_for,
)
from devserver_harness.domain.cases import (
    BUILD_FAILURE_MARKER,
    CONFLICT_MESSAGE,
    CONFLICT_PROFILE,
    DEFAULT_PROFILE_SETS,
    ProfileSet,
    TestCase,
    active_modes,
    build_matrix,
    profile_cli_options,
)
from devserver_harness.domain.outcomes import (
    CaseResult,
    InvocationResult,
    MatrixReport,
    PollOutcome,
    WatcherOutcome,
)

__all__ = [
    # Endpoint
    "PORT_PROPERTY",
    "ADMIN_PORT_PROPERTY",
    "VERSION_PROPERTY",
    "DevServerVersion",
    "ServiceEndpoint",
    "system_properties_for",
    # Cases
    "BUILD_FAILURE_MARKER",
    "CONFLICT_MESSAGE",
    "CONFLICT_PROFILE",
    "DEFAULT_PROFILE_SETS",
    "ProfileSet",
    "TestCase",
    "active_modes",
    "build_matrix",
    "profile_cli_options",
    # Outcomes
    "CaseResult",
    "InvocationResult",
    "MatrixReport",
    "PollOutcome",
    "WatcherOutcome",
]
