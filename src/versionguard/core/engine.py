"""Protection orchestration engine."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from versionguard.core.layout import AppLayout
from versionguard.core.permissions import FilesystemPermissions
from versionguard.core.probe import ProbeResult, ProcessProbe
from versionguard.models.protection import (
    BlockerArtifact,
    BlockerKind,
    ProtectionCheck,
    ProtectionResult,
    ProtectionStatus,
    ProtectionTarget,
    Step,
    StepOutcome,
    StepStatus,
)
from versionguard.models.version import InstalledVersion, ScanResult
from versionguard.utils import remove_tree, unique_backup_path

log = logging.getLogger(__name__)

ProgressCallback = Callable[[Step, str], None]  # (step, status_message)


class ProtectionEngine:
    """Runs the protection sequence against one application layout.

    The four steps run in order and each is isolated: a failing step is
    recorded and the next one still runs.  The only hard stop is the
    running-process guard, checked right before anything is deleted.
    """

    def __init__(
        self,
        layout: AppLayout,
        probe: ProcessProbe | None = None,
        permissions: FilesystemPermissions | None = None,
        retry_delay: float = 0.5,
    ) -> None:
        self.layout = layout
        self.probe = probe or ProcessProbe(layout.process_name)
        self.permissions = permissions or FilesystemPermissions()
        self.retry_delay = retry_delay

    def protect(
        self,
        target: ProtectionTarget,
        all_versions: Sequence[InstalledVersion],
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> ProtectionResult:
        """Keep *target* and make the updater unable to replace it.

        Args:
            target: The version to keep and the user's options.
            all_versions: Every version directory from the latest scan,
                duplicates included.
            on_progress: Optional callback for progress updates.
            cancel: Optional event; honoured only between steps.

        Returns:
            The per-step outcomes and overall status.
        """
        kept = target.version
        result = ProtectionResult(target=target, status=ProtectionStatus.COMPLETE)

        abort = self._precheck(target)
        if abort:
            log.warning("Protection aborted: %s", abort)
            result.status = ProtectionStatus.FAILED
            result.error = abort
            result.steps = [StepOutcome(step, StepStatus.SKIPPED, "Not started") for step in Step]
            result.finished = datetime.now(timezone.utc)
            return result

        steps: list[tuple[Step, Callable[[], StepOutcome]]] = [
            (Step.DELETE_VERSIONS, lambda: self._delete_versions(kept, all_versions)),
            (Step.CLEAN_CACHE, lambda: self._clean_cache(kept, target.options.clean_cache)),
            (Step.LOCK_CONFIG, lambda: self._lock_config(kept, target.options.lock_config)),
            (Step.INSTALL_BLOCKERS, lambda: self._install_blockers(result, target.options.create_blockers)),
        ]

        cancelled = False
        for step, run in steps:
            if cancel is not None and cancel.is_set():
                cancelled = True
                result.steps.append(StepOutcome(step, StepStatus.SKIPPED, "Cancelled"))
                continue

            if on_progress:
                on_progress(step, "running")
            try:
                outcome = run()
            except Exception as e:
                log.exception("Step '%s' crashed", step.value)
                outcome = StepOutcome(step, StepStatus.FAILED, f"Unexpected error: {e}")
            log.info("%s: %s (%s)", step.label, outcome.status.value, outcome.detail)
            result.steps.append(outcome)
            if on_progress:
                on_progress(step, outcome.status.value)

        if cancelled:
            result.status = ProtectionStatus.CANCELLED
            result.error = "Protection was cancelled"
        elif not kept.path.is_dir():
            result.status = ProtectionStatus.FAILED
            result.error = f"Version {kept.name} disappeared during protection"
        elif result.failed_steps:
            result.status = ProtectionStatus.PARTIAL
        result.finished = datetime.now(timezone.utc)
        return result

    def verify(self, version: InstalledVersion, scan: ScanResult) -> ProtectionCheck:
        """Check whether *version* is in protected state. Never modifies anything."""
        check = ProtectionCheck(version=version)
        check.other_versions = [v.path for v in scan.all_entries if not _same_path(v.path, version.path)]
        for path in self.layout.config_files(version.path):
            try:
                if path.is_file() and not self.permissions.is_readonly(path):
                    check.unlocked_configs.append(path)
            except OSError:
                check.unlocked_configs.append(path)
        if not self._is_file_blocker(self.layout.updater_executable):
            check.missing_blockers.append(self.layout.updater_executable)
        if not self._is_directory_blocker(self.layout.updater_directory):
            check.missing_blockers.append(self.layout.updater_directory)
        return check

    # -- Guard --

    def _precheck(self, target: ProtectionTarget) -> str:
        """Return a reason to abort before touching anything, or an empty string."""
        if not target.version.path.is_dir():
            return f"Version {target.version.name} is no longer installed"

        probe = self.probe.is_running()
        if probe is ProbeResult.RUNNING:
            return "The application is running. Close it and try again."
        if probe is ProbeResult.UNKNOWN and not target.options.assume_not_running:
            return "Could not check whether the application is running"
        return ""

    # -- Steps --

    def _delete_versions(self, kept: InstalledVersion, all_versions: Sequence[InstalledVersion]) -> StepOutcome:
        step = Step.DELETE_VERSIONS
        install_root = self.layout.install_root.absolute()
        victims = [v for v in all_versions if not _same_path(v.path, kept.path) and v.path.exists()]
        if not victims:
            return StepOutcome(step, StepStatus.ALREADY_SATISFIED, "No other versions installed")

        removed: list[str] = []
        failed: list[Path] = []
        for victim in victims:
            if victim.path.absolute().parent != install_root:
                log.warning("Refusing to delete %s outside %s", victim.path, install_root)
                failed.append(victim.path)
                continue
            log.info("Deleting version %s (%s)", victim.name, victim.path)
            self.permissions.clear_readonly_tree(victim.path)
            remaining = remove_tree(victim.path, retry_delay=self.retry_delay)
            if remaining:
                failed.extend(remaining)
            else:
                removed.append(victim.name)

        if failed:
            return StepOutcome(
                step,
                StepStatus.PARTIAL,
                f"Removed {len(removed)} of {len(victims)} version(s); {len(failed)} path(s) could not be deleted",
                failed_paths=failed,
            )
        return StepOutcome(step, StepStatus.DONE, f"Removed {len(removed)} version(s): {', '.join(removed)}")

    def _clean_cache(self, kept: InstalledVersion, enabled: bool) -> StepOutcome:
        step = Step.CLEAN_CACHE
        if not enabled:
            return StepOutcome(step, StepStatus.SKIPPED, "Cache cleaning disabled")

        present = [d for d in self.layout.cache_dirs(kept.path) if d.exists()]
        if not present:
            return StepOutcome(step, StepStatus.ALREADY_SATISFIED, "No cache directories found")

        failed: list[Path] = []
        for cache_dir in present:
            log.info("Removing cache %s", cache_dir)
            self.permissions.clear_readonly_tree(cache_dir)
            failed.extend(remove_tree(cache_dir, retry_delay=self.retry_delay))

        if failed:
            return StepOutcome(
                step, StepStatus.PARTIAL, f"{len(failed)} cache path(s) could not be deleted", failed_paths=failed
            )
        return StepOutcome(step, StepStatus.DONE, f"Removed {len(present)} cache folder(s)")

    def _lock_config(self, kept: InstalledVersion, enabled: bool) -> StepOutcome:
        step = Step.LOCK_CONFIG
        if not enabled:
            return StepOutcome(step, StepStatus.SKIPPED, "Configuration lock disabled")

        files = [f for f in self.layout.config_files(kept.path) if f.is_file()]
        if not files:
            return StepOutcome(step, StepStatus.ALREADY_SATISFIED, "No configuration files found")

        locked = 0
        failed: list[Path] = []
        for path in files:
            try:
                if self.permissions.is_readonly(path):
                    continue
                self.permissions.set_readonly(path)
                locked += 1
            except OSError as e:
                log.warning("Cannot lock %s: %s", path, e)
                failed.append(path)

        if failed:
            return StepOutcome(
                step, StepStatus.PARTIAL, f"Could not lock {len(failed)} of {len(files)} file(s)", failed_paths=failed
            )
        if not locked:
            return StepOutcome(step, StepStatus.ALREADY_SATISFIED, "Configuration already locked")
        return StepOutcome(step, StepStatus.DONE, f"Locked {locked} file(s)")

    def _install_blockers(self, result: ProtectionResult, enabled: bool) -> StepOutcome:
        step = Step.INSTALL_BLOCKERS
        if not enabled:
            return StepOutcome(step, StepStatus.SKIPPED, "Update blockers disabled")

        entry_points: list[tuple[Path, Callable[[Path], tuple[BlockerArtifact, bool]]]] = [
            (self.layout.updater_executable, self._block_file),
            (self.layout.updater_directory, self._block_directory),
        ]

        installed = 0
        failed: list[Path] = []
        for path, block in entry_points:
            try:
                artifact, changed = block(path)
            except OSError as e:
                log.warning("Cannot block %s: %s", path, e)
                failed.append(path)
                continue
            result.blockers.append(artifact)
            installed += changed

        if failed:
            status = StepStatus.FAILED if len(failed) == len(entry_points) else StepStatus.PARTIAL
            return StepOutcome(step, status, f"Could not block {len(failed)} updater path(s)", failed_paths=failed)
        if not installed:
            return StepOutcome(step, StepStatus.ALREADY_SATISFIED, "Update blockers already in place")
        return StepOutcome(step, StepStatus.DONE, f"Installed {installed} blocker(s)")

    # -- Blockers --

    def _block_file(self, path: Path) -> tuple[BlockerArtifact, bool]:
        """Occupy *path* with an empty read-only file."""
        if self._is_file_blocker(path):
            return BlockerArtifact(path, BlockerKind.FILE), False

        path.parent.mkdir(parents=True, exist_ok=True)
        backup = self._move_aside(path)
        path.write_bytes(b"")
        self.permissions.set_readonly(path)
        return BlockerArtifact(path, BlockerKind.FILE, backup), True

    def _block_directory(self, path: Path) -> tuple[BlockerArtifact, bool]:
        """Occupy *path* with an empty directory nothing can be created in."""
        if self._is_directory_blocker(path):
            return BlockerArtifact(path, BlockerKind.DIRECTORY), False

        path.parent.mkdir(parents=True, exist_ok=True)
        backup = self._move_aside(path)
        path.mkdir()
        self.permissions.restrict_directory(path)
        return BlockerArtifact(path, BlockerKind.DIRECTORY, backup), True

    def _move_aside(self, path: Path) -> Path | None:
        """Rename whatever occupies *path* to a free ``.bak`` sibling."""
        if not (path.exists() or path.is_symlink()):
            return None
        backup = unique_backup_path(path)
        if path.is_file() and not path.is_symlink():
            self.permissions.clear_readonly(path)
        path.rename(backup)
        log.info("Moved %s aside to %s", path, backup.name)
        return backup

    def _is_file_blocker(self, path: Path) -> bool:
        try:
            return (
                path.is_file()
                and not path.is_symlink()
                and path.stat().st_size == 0
                and self.permissions.is_readonly(path)
            )
        except OSError:
            return False

    def _is_directory_blocker(self, path: Path) -> bool:
        try:
            return (
                not path.is_symlink()
                and self.permissions.is_restricted(path)
                and not any(path.iterdir())
            )
        except OSError:
            return False


def _same_path(a: Path, b: Path) -> bool:
    return a.absolute() == b.absolute()
