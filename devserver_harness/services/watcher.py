"""
Lifecycle Watcher - The concurrent half of a run-then-stop cycle.

The ``run`` goal blocks until the dev server stops, so readiness detection
and the stop request must happen elsewhere. The watcher runs as its own task:

1. Poll the server root until it answers with content (or the budget ends)
2. Record the content, or its absence
3. Always issue ``stop`` through a second invoker
4. Poll until the server is unreachable and record whether it went down

Nothing raised inside the watcher crosses the join; everything it observes
is returned as a WatcherOutcome.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Mapping

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.logging import get_logger
from devserver_harness.domain.endpoint import ServiceEndpoint
from devserver_harness.domain.outcomes import WatcherOutcome
from devserver_harness.services.invoker import ServiceInvoker
from devserver_harness.services.polling import (
    build_async_client,
    content_available,
    readiness_poller,
    shutdown_poller,
    url_unreachable,
)

logger = get_logger("watcher")

InvokerFactory = Callable[..., ServiceInvoker]


class LifecycleWatcher:
    """
    Waits for a dev server, captures its content, then stops it.

    Usage:
        watcher = LifecycleWatcher("testRun", endpoint, props, settings)
        task = watcher.start()
        await run_invoker.execute("run")
        outcome = await task
    """

    def __init__(
        self,
        name: str,
        endpoint: ServiceEndpoint,
        system_properties: Mapping[str, str] | None = None,
        settings: HarnessSettings | None = None,
        invoker_factory: InvokerFactory = ServiceInvoker,
    ):
        self.name = name
        self.endpoint = endpoint
        self.system_properties = dict(system_properties or {})
        self.settings = settings or get_settings()
        self._invoker_factory = invoker_factory
        self._task: asyncio.Task[WatcherOutcome] | None = None
        self._stopping = False

    def start(self) -> asyncio.Task[WatcherOutcome]:
        """Schedule the watcher on the running loop and return its task."""
        if self._task is not None:
            raise RuntimeError(f"Watcher {self.name} already started")
        self._task = asyncio.create_task(self.run(), name=f"watcher:{self.name}")
        return self._task

    def interrupt(self) -> bool:
        """
        Cut readiness polling short and go straight to the stop sequence.

        Has no effect once the stop sequence has begun. Returns True if the
        task was cancelled.
        """
        if self._task is None or self._task.done() or self._stopping:
            return False
        return self._task.cancel()

    async def run(self) -> WatcherOutcome:
        outcome = WatcherOutcome(url=self.endpoint.url)

        async with build_async_client(self.settings) as client:
            try:
                await self._await_readiness(client, outcome)
            except asyncio.CancelledError:
                logger.warning(f"[{self.name}] Readiness polling interrupted")
                outcome.fetch_error = "interrupted"
                task = asyncio.current_task()
                if task is not None:
                    task.uncancel()
            except Exception as e:
                logger.exception(f"[{self.name}] Readiness polling failed")
                outcome.fetch_error = f"{e.__class__.__name__}: {e}"

            self._stopping = True
            await self._stop(client, outcome)

        return outcome

    async def _await_readiness(self, client, outcome: WatcherOutcome) -> None:
        poller = readiness_poller(self.settings)
        readiness = await poller.poll_until(content_available(client, self.endpoint.url))
        outcome.readiness = readiness

        if readiness.succeeded:
            outcome.content = readiness.content
            logger.info(
                f"[{self.name}] Server ready at {self.endpoint.url} after {readiness.elapsed_ms} ms"
            )
        else:
            outcome.fetch_error = (
                f"not ready within {poller.timeout_ms} ms: {readiness.last_error}"
            )
            logger.warning(f"[{self.name}] {outcome.fetch_error}")

    async def _stop(self, client, outcome: WatcherOutcome) -> None:
        """Issue ``stop`` and wait for the server to go down; never raises."""
        try:
            stop_invoker = self._invoker_factory(
                f"{self.name}_stop",
                self.settings,
                system_properties=self.system_properties,
            )
            outcome.stop_result = await stop_invoker.invoke("stop")
            if not outcome.stop_result.succeeded:
                logger.warning(
                    f"[{self.name}] Stop goal failed (exit code {outcome.stop_result.exit_code})"
                )

            shutdown = await shutdown_poller(self.settings).poll_until(
                url_unreachable(client, self.endpoint.url)
            )
            outcome.shutdown = shutdown
            if shutdown.succeeded:
                logger.info(f"[{self.name}] Server down after {shutdown.elapsed_ms} ms")
            else:
                logger.warning(
                    f"[{self.name}] Server still reachable {shutdown.elapsed_ms} ms after stop"
                )
        except Exception as e:
            logger.exception(f"[{self.name}] Stop sequence failed")
            outcome.stop_error = f"{e.__class__.__name__}: {e}"
