"""Detects whether the guarded application is running."""

from __future__ import annotations

import logging
from enum import Enum

import psutil

log = logging.getLogger(__name__)


class ProbeResult(Enum):
    RUNNING = "running"
    NOT_RUNNING = "not_running"
    UNKNOWN = "unknown"

    @property
    def is_safe(self) -> bool:
        """Only a definite "not running" is safe; unknown fails closed."""
        return self is ProbeResult.NOT_RUNNING


def _normalize(name: str) -> str:
    name = name.strip().lower()
    return name.removesuffix(".exe")


class ProcessProbe:
    """Matches a process name hint against the live process table."""

    def __init__(self, process_name: str = "") -> None:
        self.process_name = process_name

    def is_running(self, name_hint: str | None = None) -> ProbeResult:
        """Report whether any process's executable name matches *name_hint*.

        Never raises: if the process table cannot be enumerated the
        result is ``UNKNOWN``.
        """
        wanted = _normalize(name_hint or self.process_name)
        if not wanted:
            log.warning("No process name to probe for")
            return ProbeResult.UNKNOWN

        try:
            for proc in psutil.process_iter(["name"]):
                try:
                    name = proc.info.get("name") or proc.name()
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue
                if name and _normalize(name) == wanted:
                    log.debug("Found running process %s (pid %s)", name, proc.pid)
                    return ProbeResult.RUNNING
        except (psutil.Error, OSError) as e:
            log.warning("Could not enumerate processes: %s", e)
            return ProbeResult.UNKNOWN

        return ProbeResult.NOT_RUNNING
