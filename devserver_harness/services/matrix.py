"""
Matrix Runner - Drive one run-then-stop cycle per test case.

For every case the runner:
1. Reserves fresh ports and builds the system properties for the variant
2. Starts the lifecycle watcher as a task
3. Executes the blocking ``run`` goal on the primary path
4. Joins the watcher and checks content and log markers

Cases are independent; run_matrix() keeps going after a failed case and
returns every verdict in a MatrixReport.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import Callable, Iterable

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.exceptions import GoalExecutionError, VerificationError
from devserver_harness.core.logging import case_id_var, get_logger
from devserver_harness.domain.cases import (
    DEFAULT_PROFILE_SETS,
    ProfileSet,
    TestCase,
    build_matrix,
)
from devserver_harness.domain.endpoint import DevServerVersion, system_properties_for
from devserver_harness.domain.outcomes import CaseResult, MatrixReport, WatcherOutcome
from devserver_harness.reporters.case_report import CaseReport
from devserver_harness.services.invoker import ServiceInvoker
from devserver_harness.services.ports import PortAllocator, default_allocator
from devserver_harness.services.watcher import LifecycleWatcher

logger = get_logger("matrix")

CaseFailure = (GoalExecutionError, VerificationError)


class MatrixRunner:
    """
    Runs test cases against the dev server.

    Usage:
        runner = MatrixRunner(settings)
        result = await runner.run_case(case)               # raises on failure
        report = await runner.run_matrix(variants, rows)   # never raises
        report.raise_for_failures()
    """

    def __init__(
        self,
        settings: HarnessSettings | None = None,
        allocator: PortAllocator | None = None,
        invoker_factory: Callable[..., ServiceInvoker] = ServiceInvoker,
        watcher_factory: Callable[..., LifecycleWatcher] = LifecycleWatcher,
    ):
        self.settings = settings or get_settings()
        self.allocator = allocator or default_allocator
        self._invoker_factory = invoker_factory
        self._watcher_factory = watcher_factory

    # -------------------------------------------------------------------------
    # Single case
    # -------------------------------------------------------------------------

    async def run_case(self, case: TestCase) -> CaseResult:
        """
        Run one case end to end.

        Raises:
            GoalExecutionError: the ``run`` goal failed
            VerificationError: content or log assertions failed

        Any other exception is recorded the same way as these and then
        re-raised.
        """
        result, error = await self._run_case(case)
        if error is not None:
            raise error
        return result

    async def _run_case(self, case: TestCase) -> tuple[CaseResult, Exception | None]:
        token = case_id_var.set(case.name)
        try:
            return await self._run_case_in_context(case)
        finally:
            case_id_var.reset(token)

    async def _run_case_in_context(self, case: TestCase) -> tuple[CaseResult, Exception | None]:
        start = time.monotonic()
        started_at = datetime.now(UTC)
        result = CaseResult(case=case, passed=False)
        invoker: ServiceInvoker | None = None
        error: Exception | None = None

        try:
            endpoint = self.allocator.allocate_endpoint(case.version, host=self.settings.host)
            result.endpoint = endpoint
            properties = system_properties_for(case.version, endpoint)
            name = f"testRun-{case.name}"

            invoker = self._invoker_factory(
                name,
                self.settings,
                cli_options=case.cli_options(),
                system_properties=properties,
            )
            watcher = self._watcher_factory(
                name, endpoint, properties, self.settings, invoker_factory=self._invoker_factory
            )

            logger.info(f"Starting case {case.name} on {endpoint.url}")
            task = watcher.start()
            # let the watcher issue its first readiness probe before run blocks
            await asyncio.sleep(0)

            try:
                await invoker.execute("run")
            except (Exception, asyncio.CancelledError):
                watcher.interrupt()
                result.watcher = await task
                raise
            result.watcher = await task

            self._verify(case, invoker, result.watcher)
            result.passed = True
        except CaseFailure as e:
            error = e
            result.failure_kind = e.kind if isinstance(e, VerificationError) else "goal_execution"
            result.failure_message = e.message
        except Exception as e:
            logger.exception(f"Case {case.name} raised unexpectedly")
            error = e
            result.failure_kind = "error"
            result.failure_message = f"{e.__class__.__name__}: {e}"
        finally:
            if invoker is not None:
                result.invocation = invoker.last_result
            result.duration_ms = int((time.monotonic() - start) * 1000)

        if result.passed:
            logger.info(f"Case {case.name} passed in {result.duration_ms} ms")
        else:
            logger.error(
                f"Case {case.name} failed [{result.failure_kind}]: {result.failure_message[:300]}"
            )
            result.report_path = self._save_report(result, error, started_at)
        return result, error

    def _verify(self, case: TestCase, invoker: ServiceInvoker, outcome: WatcherOutcome) -> None:
        content = outcome.content or ""
        for marker in self.settings.content_markers:
            if marker not in content:
                detail = (
                    f"content did not contain {marker!r}"
                    if outcome.content_captured
                    else f"no content captured ({outcome.fetch_error})"
                )
                raise VerificationError(
                    "content",
                    f"{case.name}: {detail}",
                    details={"expected": marker, "url": outcome.url},
                )

        invoker.verify_error_free_log()
        invoker.verify_text_in_log(self.settings.ready_marker)
        invoker.verify_text_in_log(self.settings.module_marker(case.expected_label))

        if self.settings.require_shutdown_confirmation and not outcome.shutdown_confirmed:
            raise VerificationError(
                "shutdown",
                f"{case.name}: server still reachable at {outcome.url} after stop",
            )

    def _save_report(self, result: CaseResult, error: Exception, started_at: datetime):
        if not self.settings.save_reports:
            return None
        report = CaseReport.from_result(result, error=error, started_at=started_at)
        try:
            path = report.save(self.settings.report_dir)
        except OSError:
            logger.exception(f"Could not save failure report for {result.case.name}")
            return None
        logger.info(f"Failure report for {result.case.name}: {path}")
        return path

    # -------------------------------------------------------------------------
    # Matrix
    # -------------------------------------------------------------------------

    async def run_matrix(
        self,
        variants: Iterable[DevServerVersion] | None = None,
        profile_sets: Iterable[ProfileSet] = DEFAULT_PROFILE_SETS,
    ) -> MatrixReport:
        """Run every variant x profile-set case, recording each verdict."""
        return await self.run_cases(build_matrix(variants, profile_sets))

    async def run_cases(self, cases: Iterable[TestCase]) -> MatrixReport:
        semaphore = asyncio.Semaphore(self.settings.max_concurrency)

        async def run_one(case: TestCase) -> CaseResult:
            async with semaphore:
                result, _ = await self._run_case(case)
                return result

        results = await asyncio.gather(*(run_one(c) for c in cases))
        report = MatrixReport(results=list(results))
        logger.info(f"Matrix finished: {report.counts()}")
        return report
