"""Wizard flow: Welcome → PreCheck → Version Select → Cache Clean → Running → Complete.

The wizard holds no rendering state.  A front end calls the transition
methods in response to user input and calls :meth:`Wizard.poll` once per
frame; blocking work runs on a :class:`TaskRunner` worker.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Sequence

from versionguard.core.engine import ProtectionEngine
from versionguard.core.layout import AppLayout
from versionguard.core.probe import ProbeResult, ProcessProbe
from versionguard.core.scanner import ScanError, VersionScanner
from versionguard.core.worker import TaskRunner
from versionguard.models.protection import (
    ProtectionOptions,
    ProtectionResult,
    ProtectionStatus,
    ProtectionTarget,
    Step,
)
from versionguard.models.version import InstalledVersion, ScanResult, VersionId

if TYPE_CHECKING:
    from versionguard.downloads import ArchiveVersion, DownloadManager

log = logging.getLogger(__name__)


class WizardState(Enum):
    WELCOME = "welcome"
    DOWNLOADS = "downloads"
    PRECHECK = "precheck"
    VERSION_SELECT = "version_select"
    CACHE_CLEAN = "cache_clean"
    RUNNING = "running"
    COMPLETE = "complete"
    ERROR = "error"


class ErrorKind(Enum):
    NOT_INSTALLED = "not_installed"
    SCAN_FAILED = "scan_failed"
    PROTECTION_FAILED = "protection_failed"
    CANCELLED = "cancelled"


class TransitionError(Exception):
    """Raised when a transition is not allowed from the current state."""


class UnsafeToProceed(TransitionError):
    """The application is running, or that could not be ruled out."""


@dataclass(frozen=True, slots=True)
class PrecheckFacts:
    """What the precheck learned: the scan (or why it failed) and the probe."""

    scan: ScanResult | None
    probe: ProbeResult
    error: ScanError | None = None


class Wizard:
    """Drives the protection flow and guards every transition."""

    def __init__(
        self,
        layout: AppLayout,
        *,
        scanner: VersionScanner | None = None,
        probe: ProcessProbe | None = None,
        engine: ProtectionEngine | None = None,
        runner: TaskRunner | None = None,
        catalog: Sequence[ArchiveVersion] = (),
        download_manager: DownloadManager | None = None,
        clean_cache: bool = False,
    ) -> None:
        self.layout = layout
        self.scanner = scanner or VersionScanner()
        self.probe = probe or ProcessProbe(layout.process_name)
        self.engine = engine or ProtectionEngine(layout, probe=self.probe)
        self.runner = runner or TaskRunner()
        self.catalog = list(catalog)
        self.download_manager = download_manager
        self.default_clean_cache = clean_cache

        self._lock = threading.Lock()
        self._progress: list[tuple[Step, str]] = []
        self._pending: Future | None = None
        self._cancel = threading.Event()
        self._reset_state()

    def _reset_state(self) -> None:
        self._state = WizardState.WELCOME
        self.facts: PrecheckFacts | None = None
        self.selected: InstalledVersion | None = None
        self.clean_cache = self.default_clean_cache
        self.result: ProtectionResult | None = None
        self.error_kind: ErrorKind | None = None
        self.error_message = ""
        self.warnings: list[str] = []
        self._assume_not_running = False
        self._cancel = threading.Event()
        with self._lock:
            self._progress.clear()

    # -- Read-only views --

    @property
    def state(self) -> WizardState:
        return self._state

    @property
    def busy(self) -> bool:
        """True while a scan or protection run is in flight."""
        return self._pending is not None

    @property
    def scan(self) -> ScanResult | None:
        return self.facts.scan if self.facts else None

    @property
    def versions(self) -> list[InstalledVersion]:
        return list(self.scan.versions) if self.scan else []

    @property
    def needs_confirmation(self) -> bool:
        """The probe could not tell; the user must confirm before proceeding."""
        return self.facts is not None and self.facts.probe is ProbeResult.UNKNOWN

    @property
    def can_proceed(self) -> bool:
        return (
            self._state is WizardState.PRECHECK
            and not self.busy
            and bool(self.versions)
            and self.facts is not None
            and self.facts.probe is not ProbeResult.RUNNING
        )

    @property
    def progress(self) -> list[tuple[Step, str]]:
        with self._lock:
            return list(self._progress)

    # -- Worker plumbing --

    def poll(self) -> bool:
        """Collect a finished background task.  Never blocks.

        Returns:
            True if the state changed.
        """
        pending = self._pending
        if pending is None or not pending.done():
            return False
        self._pending = None
        before = self._state

        if before is WizardState.PRECHECK:
            self._finish_precheck(pending)
        elif before is WizardState.RUNNING:
            self._finish_protection(pending)
        return self._state is not before

    def wait(self, timeout: float | None = None) -> WizardState:
        """Block until the background task finishes, then poll."""
        pending = self._pending
        if pending is not None:
            pending.exception(timeout=timeout)
        self.poll()
        return self._state

    # -- Welcome / downloads --

    def open_downloads(self) -> list[ArchiveVersion]:
        self._require(WizardState.WELCOME)
        self._state = WizardState.DOWNLOADS
        return list(self.catalog)

    def download(self, entry: ArchiveVersion) -> None:
        """Hand a catalog entry to the download manager."""
        self._require(WizardState.DOWNLOADS)
        if self.download_manager is None:
            raise TransitionError("No download manager available")
        log.info("Requesting download of %s (%s)", entry.version, entry.persona)
        self.download_manager.start(entry.persona, entry.version, entry.download_url)

    def close_downloads(self) -> None:
        self._require(WizardState.DOWNLOADS)
        self._state = WizardState.WELCOME

    # -- Precheck --

    def begin(self) -> None:
        """Welcome → PreCheck; starts the scan and process probe."""
        self._require(WizardState.WELCOME)
        self._state = WizardState.PRECHECK
        self._start_precheck()

    def recheck(self) -> None:
        """Run the precheck again, e.g. after the user closed the application."""
        self._require(WizardState.PRECHECK)
        self._start_precheck()

    def _start_precheck(self) -> None:
        self.facts = None
        self.warnings = []
        self._assume_not_running = False
        self._pending = self.runner.submit(self._run_precheck)

    def _run_precheck(self) -> PrecheckFacts:
        try:
            scan = self.scanner.scan(self.layout.install_root)
            error = None
        except ScanError as e:
            scan, error = None, e
        return PrecheckFacts(scan=scan, probe=self.probe.is_running(), error=error)

    def _finish_precheck(self, future: Future) -> None:
        try:
            facts: PrecheckFacts = future.result()
        except Exception as e:
            log.exception("Precheck crashed")
            self._fail(ErrorKind.SCAN_FAILED, str(e))
            return

        self.facts = facts
        if facts.error is not None:
            kind = ErrorKind.NOT_INSTALLED if facts.error.not_installed else ErrorKind.SCAN_FAILED
            self._fail(kind, str(facts.error))
            return
        if facts.scan is None or not facts.scan.versions:
            self._fail(ErrorKind.NOT_INSTALLED, "No installed versions found")
            return

        warnings = list(facts.scan.warnings)
        if facts.probe is ProbeResult.RUNNING:
            warnings.insert(0, "The application is running. Close it and check again.")
        elif facts.probe is ProbeResult.UNKNOWN:
            warnings.insert(0, "Could not check whether the application is running. Make sure it is closed.")
        self.warnings = warnings

    def proceed(self, confirm_unknown: bool = False) -> None:
        """PreCheck → Version Select.

        Raises:
            UnsafeToProceed: The application is running, or the probe could
                not tell and *confirm_unknown* was not given.
        """
        self._require(WizardState.PRECHECK)
        if self.facts is None or self.facts.scan is None:
            raise TransitionError("Precheck has not finished")
        if not self.facts.scan.versions:
            raise TransitionError("No installed versions found")
        if self.facts.probe is ProbeResult.RUNNING:
            raise UnsafeToProceed("The application is running")
        if self.facts.probe is ProbeResult.UNKNOWN:
            if not confirm_unknown:
                raise UnsafeToProceed("Confirm that the application is closed to continue")
            self._assume_not_running = True
        self._state = WizardState.VERSION_SELECT

    # -- Selection --

    def select(self, version: InstalledVersion | VersionId | str) -> InstalledVersion:
        """Choose the version to keep."""
        self._require(WizardState.VERSION_SELECT)
        scan = self.scan
        if isinstance(version, InstalledVersion):
            found = version if scan and version in scan.versions else None
        else:
            found = scan.find(version) if scan else None
        if found is None:
            raise TransitionError(f"Version {version} is not installed")
        self.selected = found
        return found

    def confirm_selection(self) -> None:
        """Version Select → Cache Clean; requires exactly one selected version."""
        self._require(WizardState.VERSION_SELECT)
        if self.selected is None:
            raise TransitionError("Select a version to keep")
        self._state = WizardState.CACHE_CLEAN

    # -- Protection --

    def start_protection(self, clean_cache: bool | None = None) -> ProtectionTarget:
        """Cache Clean → Running; dispatches the protection run."""
        self._require(WizardState.CACHE_CLEAN)
        if self.selected is None or self.scan is None:
            raise TransitionError("Select a version to keep")
        if clean_cache is not None:
            self.clean_cache = clean_cache

        target = ProtectionTarget(
            version=self.selected,
            options=ProtectionOptions(clean_cache=self.clean_cache, assume_not_running=self._assume_not_running),
        )
        self._cancel = threading.Event()
        with self._lock:
            self._progress.clear()
        self._state = WizardState.RUNNING
        self._pending = self.runner.submit(
            self.engine.protect,
            target,
            self.scan.all_entries,
            on_progress=self._record_progress,
            cancel=self._cancel,
        )
        return target

    def cancel(self) -> None:
        """Ask a running protection to stop at the next step boundary."""
        if self._state is not WizardState.RUNNING:
            raise TransitionError("Nothing is running")
        self._cancel.set()

    def _record_progress(self, step: Step, message: str) -> None:
        with self._lock:
            self._progress.append((step, message))

    def _finish_protection(self, future: Future) -> None:
        try:
            result: ProtectionResult = future.result()
        except Exception as e:
            log.exception("Protection crashed")
            self._fail(ErrorKind.PROTECTION_FAILED, str(e))
            return

        self.result = result
        match result.status:
            case ProtectionStatus.COMPLETE | ProtectionStatus.PARTIAL:
                self.warnings = [f"{s.step.label}: {s.detail}" for s in result.failed_steps]
                for outcome in result.failed_steps:
                    self.warnings.extend(f"  {p}" for p in outcome.failed_paths)
                self._state = WizardState.COMPLETE
            case ProtectionStatus.CANCELLED:
                self._fail(ErrorKind.CANCELLED, result.error)
            case _:
                self._fail(ErrorKind.PROTECTION_FAILED, result.error)

    # -- Navigation --

    def back(self) -> None:
        """Step back one screen.  Not available while anything is running."""
        if self.busy:
            raise TransitionError("Wait for the current task to finish")
        previous = {
            WizardState.DOWNLOADS: WizardState.WELCOME,
            WizardState.PRECHECK: WizardState.WELCOME,
            WizardState.VERSION_SELECT: WizardState.PRECHECK,
            WizardState.CACHE_CLEAN: WizardState.VERSION_SELECT,
        }.get(self._state)
        if previous is None:
            raise TransitionError(f"Cannot go back from {self._state.value}")
        self._state = previous

    def reset(self) -> None:
        """Complete/Error → Welcome."""
        self._require(WizardState.COMPLETE, WizardState.ERROR)
        self._reset_state()

    def close(self) -> None:
        self.runner.shutdown()

    # -- Helpers --

    def _fail(self, kind: ErrorKind, message: str) -> None:
        log.info("Wizard error (%s): %s", kind.value, message)
        self.error_kind = kind
        self.error_message = message
        self._state = WizardState.ERROR

    def _require(self, *states: WizardState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            raise TransitionError(f"Not allowed in state {self._state.value} (needs {allowed})")
        if self.busy:
            raise TransitionError("Wait for the current task to finish")

    def summary(self) -> dict[str, Any]:
        """Plain-data snapshot for front ends and JSON output."""
        return {
            "state": self._state.value,
            "busy": self.busy,
            "selected": self.selected.name if self.selected else None,
            "clean_cache": self.clean_cache,
            "warnings": list(self.warnings),
            "error": {"kind": self.error_kind.value, "message": self.error_message} if self.error_kind else None,
            "status": self.result.status.value if self.result else None,
        }
