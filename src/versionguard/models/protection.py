"""Protection target and result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from versionguard.models.version import InstalledVersion


class Step(Enum):
    """Protection steps, in execution order."""

    DELETE_VERSIONS = "delete_versions"
    CLEAN_CACHE = "clean_cache"
    LOCK_CONFIG = "lock_config"
    INSTALL_BLOCKERS = "install_blockers"

    @property
    def label(self) -> str:
        return _STEP_LABELS[self]


_STEP_LABELS = {
    Step.DELETE_VERSIONS: "Delete other versions",
    Step.CLEAN_CACHE: "Clean cache",
    Step.LOCK_CONFIG: "Lock configuration",
    Step.INSTALL_BLOCKERS: "Install update blockers",
}


class StepStatus(Enum):
    DONE = "done"
    ALREADY_SATISFIED = "already_satisfied"
    SKIPPED = "skipped"
    PARTIAL = "partial"
    FAILED = "failed"


class ProtectionStatus(Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BlockerKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True, slots=True)
class ProtectionOptions:
    """User choices carried into a protection run.

    ``assume_not_running`` is only set after the user explicitly confirmed
    a warning that the process list could not be read.  Turning off
    ``lock_config`` or ``create_blockers`` leaves the version unprotected
    against the updater; ``verify`` reports it as such.
    """

    clean_cache: bool = False
    lock_config: bool = True
    create_blockers: bool = True
    assume_not_running: bool = False


@dataclass(frozen=True, slots=True)
class ProtectionTarget:
    """The version to keep, plus how to protect it."""

    version: InstalledVersion
    options: ProtectionOptions = field(default_factory=ProtectionOptions)


@dataclass(frozen=True, slots=True)
class BlockerArtifact:
    """A placeholder occupying a path the updater wants for itself."""

    path: Path
    kind: BlockerKind
    backup_path: Path | None = None


@dataclass(slots=True)
class StepOutcome:
    """Outcome of a single protection step."""

    step: Step
    status: StepStatus
    detail: str = ""
    failed_paths: list[Path] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status in (StepStatus.DONE, StepStatus.ALREADY_SATISFIED, StepStatus.SKIPPED)


@dataclass(slots=True)
class ProtectionResult:
    """Result of a protection run."""

    target: ProtectionTarget
    status: ProtectionStatus
    steps: list[StepOutcome] = field(default_factory=list)
    blockers: list[BlockerArtifact] = field(default_factory=list)
    error: str = ""
    started: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished: datetime | None = None

    @property
    def failed_steps(self) -> list[StepOutcome]:
        return [s for s in self.steps if not s.succeeded]

    @property
    def is_noop(self) -> bool:
        """True when every step found its work already done."""
        return bool(self.steps) and all(
            s.status in (StepStatus.ALREADY_SATISFIED, StepStatus.SKIPPED) for s in self.steps
        )

    def outcome(self, step: Step) -> StepOutcome | None:
        for s in self.steps:
            if s.step is step:
                return s
        return None


@dataclass(slots=True)
class ProtectionCheck:
    """Re-verification of the protected state for one kept version."""

    version: InstalledVersion
    other_versions: list[Path] = field(default_factory=list)
    unlocked_configs: list[Path] = field(default_factory=list)
    missing_blockers: list[Path] = field(default_factory=list)

    @property
    def is_protected(self) -> bool:
        return not (self.other_versions or self.unlocked_configs or self.missing_blockers)

    @property
    def problems(self) -> list[str]:
        problems = [f"Other version still installed: {p}" for p in self.other_versions]
        problems += [f"Configuration file is writable: {p}" for p in self.unlocked_configs]
        problems += [f"Update blocker missing: {p}" for p in self.missing_blockers]
        return problems
