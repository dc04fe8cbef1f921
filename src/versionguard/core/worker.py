"""Single-worker dispatch for blocking scan and protect calls."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

log = logging.getLogger(__name__)


class TaskRunner:
    """Runs blocking work off the UI loop, one task at a time.

    A single worker thread means two protection runs can never overlap
    even if a caller submits twice.
    """

    def __init__(self) -> None:
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="versionguard")

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        log.debug("Dispatching %s", getattr(fn, "__name__", fn))
        return self._executor.submit(fn, *args, **kwargs)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
