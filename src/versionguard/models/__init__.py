"""Version Guard data models."""

from versionguard.models.version import InstalledVersion, ScanResult, VersionId
from versionguard.models.protection import (
    BlockerArtifact,
    BlockerKind,
    ProtectionCheck,
    ProtectionOptions,
    ProtectionResult,
    ProtectionStatus,
    ProtectionTarget,
    Step,
    StepOutcome,
    StepStatus,
)

__all__ = [
    "BlockerArtifact",
    "BlockerKind",
    "InstalledVersion",
    "ProtectionCheck",
    "ProtectionOptions",
    "ProtectionResult",
    "ProtectionStatus",
    "ProtectionTarget",
    "ScanResult",
    "Step",
    "StepOutcome",
    "StepStatus",
    "VersionId",
]
