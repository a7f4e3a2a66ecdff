"""Negative scenario: a misconfigured project must fail the ``run`` goal."""

from __future__ import annotations

from typing import Callable, Sequence

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.exceptions import VerificationError
from devserver_harness.core.logging import get_logger
from devserver_harness.domain.cases import (
    BUILD_FAILURE_MARKER,
    CONFLICT_MESSAGE,
    CONFLICT_PROFILE,
    profile_cli_options,
)
from devserver_harness.domain.endpoint import DevServerVersion, system_properties_for
from devserver_harness.domain.outcomes import InvocationResult
from devserver_harness.services.invoker import ServiceInvoker

logger = get_logger("error_scenario")

CONFLICT_FRAGMENTS: tuple[str, ...] = (CONFLICT_MESSAGE, BUILD_FAILURE_MARKER)


class ErrorScenario:
    """Runs a profile expected to break the build and checks the diagnostic."""

    def __init__(
        self,
        settings: HarnessSettings | None = None,
        invoker_factory: Callable[..., ServiceInvoker] = ServiceInvoker,
    ):
        self.settings = settings or get_settings()
        self._invoker_factory = invoker_factory

    async def run_error_case(
        self,
        profile: str = CONFLICT_PROFILE,
        expected_fragments: Sequence[str] = CONFLICT_FRAGMENTS,
        version: DevServerVersion = DevServerVersion.V1,
    ) -> InvocationResult:
        """
        Execute ``run`` with ``profile`` and assert it fails with every fragment.

        No ports are reserved and no watcher runs: the goal must fail before
        any server starts.

        Raises:
            VerificationError: the goal succeeded, or its failure message
                lacks one of ``expected_fragments``
        """
        invoker = self._invoker_factory(
            f"testRun-error-{profile}",
            self.settings,
            cli_options=profile_cli_options([profile]),
            system_properties=system_properties_for(version),
        )
        result = await invoker.invoke("run")

        if result.succeeded:
            raise VerificationError(
                "expected_failure",
                f"Goal run with profile {profile!r} succeeded but was expected to fail",
                details={"profile": profile},
            )

        message = result.failure_message or ""
        missing = [f for f in expected_fragments if f not in message]
        if missing:
            raise VerificationError(
                "expected_failure",
                f"Goal run with profile {profile!r} failed for an unexpected reason;"
                f" missing {missing!r} in:\n{message[-2000:]}",
                details={"profile": profile, "missing": missing, "exit_code": result.exit_code},
            )

        logger.info(f"Profile {profile} failed as expected (exit code {result.exit_code})")
        return result
