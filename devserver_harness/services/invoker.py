"""
Service Invoker - Run build-tool goals and capture their logs.

One invoker is one named invocation context: it carries the CLI options and
system properties shared by its goals and keeps the log of the last run, the
same way a build verifier object does.

Usage:
    invoker = ServiceInvoker("testRun", settings)
    invoker.set_system_property("app.devserver.port", "8080")
    invoker.add_cli_option("-Pservices")

    await invoker.execute("run")          # raises GoalExecutionError on failure
    invoker.verify_error_free_log()
    invoker.verify_text_in_log("Dev App Server is now running")

    result = await invoker.invoke("run")  # never raises on a failed build
    if not result.succeeded:
        print(result.failure_message)
"""

from __future__ import annotations

import asyncio
import codecs
import re
import time
from pathlib import Path
from typing import Iterable, Mapping

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.exceptions import GoalExecutionError
from devserver_harness.core.logging import get_logger
from devserver_harness.domain.outcomes import InvocationResult
from devserver_harness.services.log_verification import LogVerifier

logger = get_logger("invoker")

_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")
# Output is read in fixed-size chunks; a single line may be arbitrarily long
_READ_CHUNK = 64 * 1024


class ServiceInvoker:
    """Executes named goals through the external build tool."""

    def __init__(
        self,
        name: str,
        settings: HarnessSettings | None = None,
        *,
        cli_options: Iterable[str] = (),
        system_properties: Mapping[str, str] | None = None,
    ):
        self.name = name
        self.settings = settings or get_settings()
        self.cli_options: list[str] = list(cli_options)
        self.system_properties: dict[str, str] = dict(system_properties or {})
        self.last_result: InvocationResult | None = None
        self._verifier = LogVerifier(self.settings)

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def add_cli_option(self, option: str) -> None:
        if option and option not in self.cli_options:
            self.cli_options.append(option)

    def set_system_property(self, key: str, value: str) -> None:
        self.system_properties[key] = value

    @property
    def log_path(self) -> Path:
        safe_name = _SAFE_NAME.sub("_", self.name)
        return self.settings.resolved_log_dir / f"{safe_name}.log"

    def qualify_goal(self, goal: str) -> str:
        if ":" in goal or not self.settings.goal_prefix:
            return goal
        return f"{self.settings.goal_prefix}:{goal}"

    def build_command(
        self,
        goal: str,
        cli_options: Iterable[str] | None = None,
        system_properties: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Assemble the full command line for one goal."""
        options = list(self.cli_options)
        for option in cli_options or ():
            if option and option not in options:
                options.append(option)

        props = {**self.system_properties, **(system_properties or {})}
        defines = [f"-D{key}={value}" for key, value in props.items()]

        return [*self.settings.build_command, *options, *defines, self.qualify_goal(goal)]

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def invoke(
        self,
        goal: str,
        cli_options: Iterable[str] | None = None,
        system_properties: Mapping[str, str] | None = None,
    ) -> InvocationResult:
        """
        Run a goal and return its outcome without raising on build failure.

        The subprocess is killed if the goal outlives ``goal_timeout_seconds``
        or if the calling task is cancelled.
        """
        command = self.build_command(goal, cli_options, system_properties)
        log_path = self.log_path
        log_path.parent.mkdir(parents=True, exist_ok=True)
        lines: list[str] = []
        start = time.monotonic()

        logger.info(f"[{self.name}] Executing {' '.join(command)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.settings.project_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            message = f"Cannot start build tool {command[0]!r}: {e}"
            log_path.write_text(message + "\n", encoding="utf-8")
            result = InvocationResult(
                goal=goal,
                command=command,
                succeeded=False,
                exit_code=None,
                log=message,
                failure_message=message,
                log_path=log_path,
            )
            self.last_result = result
            return result

        timed_out = False
        aborted: str | None = None
        with log_path.open("w", encoding="utf-8") as log_file:
            try:
                await asyncio.wait_for(
                    self._pump_output(process, lines, log_file),
                    timeout=self.settings.goal_timeout_seconds,
                )
                exit_code = await process.wait()
            except asyncio.TimeoutError:
                timed_out = True
                await self._kill(process)
                exit_code = process.returncode
            except asyncio.CancelledError:
                # never leave the build tool running behind a cancelled caller
                await self._kill(process)
                raise
            except Exception as e:
                logger.exception(f"[{self.name}] Reading output of goal {goal} failed")
                aborted = f"{e.__class__.__name__}: {e}"
                await self._kill(process)
                exit_code = process.returncode

        log = "\n".join(lines)
        duration_ms = int((time.monotonic() - start) * 1000)
        succeeded = exit_code == 0 and not timed_out and aborted is None

        failure_message = None
        if aborted is not None:
            failure_message = (
                f"Goal {goal} aborted: {aborted}; command line and log = \n"
                f"{' '.join(command)}\n{log}"
            )
        elif timed_out:
            failure_message = (
                f"Goal {goal} timed out after {self.settings.goal_timeout_seconds}s;"
                f" command line and log = \n{' '.join(command)}\n{log}"
            )
        elif not succeeded:
            failure_message = (
                f"Exit code was non-zero: {exit_code}; command line and log = \n"
                f"{' '.join(command)}\n{log}"
            )

        result = InvocationResult(
            goal=goal,
            command=command,
            succeeded=succeeded,
            exit_code=exit_code,
            log=log,
            failure_message=failure_message,
            log_path=log_path,
            duration_ms=duration_ms,
        )
        self.last_result = result

        if succeeded:
            logger.info(f"[{self.name}] Goal {goal} finished in {duration_ms} ms")
        else:
            logger.warning(
                f"[{self.name}] Goal {goal} failed (exit code {exit_code}) after {duration_ms} ms"
            )
        return result

    async def execute(
        self,
        goal: str,
        cli_options: Iterable[str] | None = None,
        system_properties: Mapping[str, str] | None = None,
    ) -> InvocationResult:
        """Run a goal, raising GoalExecutionError if the build fails."""
        result = await self.invoke(goal, cli_options, system_properties)
        if not result.succeeded:
            raise GoalExecutionError(
                goal=goal,
                failure_message=result.failure_message or f"Goal {goal} failed",
                log=result.log,
                exit_code=result.exit_code,
            )
        return result

    async def _pump_output(self, process, lines: list[str], log_file) -> None:
        assert process.stdout is not None
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await process.stdout.read(_READ_CHUNK)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *complete, pending = pending.split("\n")
            for line in complete:
                self._record_line(line, lines, log_file)

        pending += decoder.decode(b"", final=True)
        if pending:
            self._record_line(pending, lines, log_file)

    def _record_line(self, line: str, lines: list[str], log_file) -> None:
        line = line.rstrip("\r")
        lines.append(line)
        log_file.write(line + "\n")
        log_file.flush()
        logger.debug(f"[{self.name}] {line[:500]}")

    @staticmethod
    async def _kill(process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    # -------------------------------------------------------------------------
    # Log assertions
    # -------------------------------------------------------------------------

    @property
    def log(self) -> str:
        """Log of the last invocation, or an empty string if nothing ran yet."""
        return self.last_result.log if self.last_result else ""

    def verify_text_in_log(self, text: str) -> None:
        self._verifier.verify_text(self.log, text, source=f"{self.name} log")

    def verify_error_free_log(self) -> None:
        self._verifier.verify_error_free(self.log, source=f"{self.name} log")
