"""
Bounded retry polling against the dev server.

This module provides:
1. RetryPoller - evaluate a predicate at a fixed interval until it succeeds
   or the time budget is spent
2. Predicates - "URL returns content" and "URL is unreachable"

Usage:
    from devserver_harness.services.polling import (
        RetryPoller,
        content_available,
        build_async_client,
    )

    async with build_async_client(settings) as client:
        poller = RetryPoller(interval_ms=1000, timeout_ms=60000, name="readiness")
        outcome = await poller.poll_until(content_available(client, url))
        if outcome.succeeded:
            print(outcome.content)

A timed-out poll returns a failed PollOutcome; cancellation of the calling
task propagates out of the loop immediately.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import httpx

from devserver_harness.core.config import HarnessSettings, get_settings
from devserver_harness.core.logging import get_logger
from devserver_harness.domain.outcomes import PollOutcome

logger = get_logger("polling")

Predicate = Callable[[], Awaitable[PollOutcome]]


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# =============================================================================
# Retry Poller
# =============================================================================


class RetryPoller:
    """
    Fixed-interval polling with a total time budget.

    Args:
        interval_ms: Pause between two predicate evaluations
        timeout_ms: Total budget; no attempt runs past it
        name: Identifier for logging
    """

    def __init__(self, interval_ms: int, timeout_ms: int, name: str = "poll"):
        if interval_ms <= 0 or timeout_ms <= 0:
            raise ValueError("interval_ms and timeout_ms must be positive")
        self.interval_ms = interval_ms
        self.timeout_ms = timeout_ms
        self.name = name

    async def poll_until(self, predicate: Predicate) -> PollOutcome:
        """
        Evaluate ``predicate`` until it succeeds or the budget is exhausted.

        Predicate exceptions count as failed attempts. Each attempt is cut
        off at the remaining budget.

        Returns:
            The successful predicate outcome, or a failed outcome carrying
            the last error once the timeout is reached.
        """
        start = time.monotonic()
        attempts = 0
        last_error: str | None = None

        while True:
            remaining_ms = self.timeout_ms - _elapsed_ms(start)
            if remaining_ms <= 0:
                break

            attempts += 1
            try:
                outcome = await asyncio.wait_for(predicate(), timeout=remaining_ms / 1000)
            except asyncio.TimeoutError:
                last_error = f"attempt {attempts} cut off by the {self.timeout_ms} ms budget"
                break
            except asyncio.CancelledError:
                logger.debug(f"[{self.name}] Interrupted after {attempts} attempt(s)")
                raise
            except Exception as e:
                last_error = f"{e.__class__.__name__}: {e}"
                outcome = None

            if outcome is not None:
                if outcome.succeeded:
                    elapsed = _elapsed_ms(start)
                    logger.debug(
                        f"[{self.name}] Succeeded after {attempts} attempt(s) in {elapsed} ms"
                    )
                    return PollOutcome(
                        succeeded=True,
                        content=outcome.content,
                        elapsed_ms=elapsed,
                        attempts=attempts,
                    )
                last_error = outcome.last_error or last_error

            remaining_ms = self.timeout_ms - _elapsed_ms(start)
            if remaining_ms <= 0:
                break
            await asyncio.sleep(min(self.interval_ms, remaining_ms) / 1000)

        elapsed = _elapsed_ms(start)
        logger.debug(
            f"[{self.name}] Gave up after {attempts} attempt(s) in {elapsed} ms: {last_error}"
        )
        return PollOutcome(
            succeeded=False,
            elapsed_ms=elapsed,
            attempts=attempts,
            last_error=last_error,
        )


async def poll_until(predicate: Predicate, interval_ms: int, timeout_ms: int) -> PollOutcome:
    """
    Poll ``predicate`` with a fixed interval and total timeout.

    Functional API alternative to RetryPoller.
    """
    return await RetryPoller(interval_ms, timeout_ms).poll_until(predicate)


def readiness_poller(settings: HarnessSettings | None = None) -> RetryPoller:
    settings = settings or get_settings()
    return RetryPoller(
        settings.readiness_interval_ms, settings.readiness_timeout_ms, name="readiness"
    )


def shutdown_poller(settings: HarnessSettings | None = None) -> RetryPoller:
    settings = settings or get_settings()
    return RetryPoller(
        settings.shutdown_interval_ms, settings.shutdown_timeout_ms, name="shutdown"
    )


# =============================================================================
# HTTP Predicates
# =============================================================================


def build_async_client(settings: HarnessSettings | None = None) -> httpx.AsyncClient:
    """Create the client used for probing the dev server."""
    settings = settings or get_settings()
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
    )


def content_available(client: httpx.AsyncClient, url: str) -> Predicate:
    """Succeeds when GET ``url`` answers with a non-error status and a non-empty body."""

    async def check() -> PollOutcome:
        try:
            response = await client.get(url)
        except httpx.RequestError as e:
            return PollOutcome(succeeded=False, last_error=f"{e.__class__.__name__}: {e}")

        if response.is_error:
            return PollOutcome(succeeded=False, last_error=f"HTTP {response.status_code}")
        if not response.text:
            return PollOutcome(succeeded=False, last_error="empty response body")
        return PollOutcome(succeeded=True, content=response.text)

    return check


def url_unreachable(client: httpx.AsyncClient, url: str) -> Predicate:
    """
    Succeeds once GET ``url`` can no longer connect to the server.

    Only connection failures count as down. A server that accepts the
    connection and then stalls or drops it (read timeouts, protocol errors)
    is still up.
    """

    async def check() -> PollOutcome:
        try:
            response = await client.get(url)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            return PollOutcome(succeeded=True, last_error=f"{e.__class__.__name__}: {e}")
        except httpx.RequestError as e:
            return PollOutcome(
                succeeded=False,
                last_error=f"still accepting connections ({e.__class__.__name__}: {e})",
            )
        return PollOutcome(
            succeeded=False, last_error=f"still answering (HTTP {response.status_code})"
        )

    return check
