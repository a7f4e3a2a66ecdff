"""Harness services: polling, goal invocation, lifecycle orchestration."""

from devserver_harness.services.error_scenario import CONFLICT_FRAGMENTS, ErrorScenario
from devserver_harness.services.invoker import ServiceInvoker
from devserver_harness.services.log_verification import LogScan, LogVerifier
from devserver_harness.services.matrix import MatrixRunner
from devserver_harness.services.polling import (
    RetryPoller,
    build_async_client,
    content_available,
    poll_until,
    url_unreachable,
)
from devserver_harness.services.ports import PortAllocator, default_allocator, find_port
from devserver_harness.services.watcher import LifecycleWatcher

__all__ = [
    "CONFLICT_FRAGMENTS",
    "ErrorScenario",
    "ServiceInvoker",
    "LogScan",
    "LogVerifier",
    "MatrixRunner",
    "RetryPoller",
    "build_async_client",
    "content_available",
    "poll_until",
    "url_unreachable",
    "PortAllocator",
    "default_allocator",
    "find_port",
    "LifecycleWatcher",
]
