"""Installed version and scan result dataclasses."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from functools import total_ordering
from pathlib import Path

# Digits separated by dots (up to four components), optionally followed by
# a qualifier such as ``-beta`` or ``+build7``.
_VERSION_RE = re.compile(r"^(?P<numbers>\d+(?:\.\d+){0,3})(?:[-+](?P<qualifier>[0-9A-Za-z][0-9A-Za-z.\-_]*))?$")


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class VersionId:
    """Numeric version identifier parsed from a directory name.

    Components compare numerically and missing trailing components count
    as zero, so ``3.9`` equals ``3.9.0``.  The qualifier is kept for
    display only.
    """

    parts: tuple[int, ...]
    qualifier: str = ""

    @classmethod
    def parse(cls, text: str) -> VersionId | None:
        """Parse *text*, returning None if it is not a version name."""
        match = _VERSION_RE.match(text.strip())
        if match is None:
            return None
        parts = tuple(int(p) for p in match.group("numbers").split("."))
        return cls(parts=parts, qualifier=match.group("qualifier") or "")

    @property
    def key(self) -> tuple[int, ...]:
        """Comparison key with trailing zeros stripped (never shorter than 3)."""
        parts = list(self.parts)
        while len(parts) > 3 and parts[-1] == 0:
            parts.pop()
        while len(parts) < 3:
            parts.append(0)
        return tuple(parts)

    @property
    def major(self) -> int:
        return self.key[0]

    @property
    def minor(self) -> int:
        return self.key[1]

    @property
    def patch(self) -> int:
        return self.key[2]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VersionId):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: VersionId) -> bool:
        if not isinstance(other, VersionId):
            return NotImplemented
        return self.key < other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        text = ".".join(str(p) for p in self.parts)
        return f"{text}-{self.qualifier}" if self.qualifier else text


@dataclass(frozen=True, slots=True)
class InstalledVersion:
    """One version directory found under the installation root."""

    version: VersionId
    path: Path
    size_bytes: int
    modified: datetime

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(slots=True)
class ScanResult:
    """Result of scanning the installation root."""

    root: Path
    versions: list[InstalledVersion] = field(default_factory=list)
    duplicates: list[InstalledVersion] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def all_entries(self) -> list[InstalledVersion]:
        """Every version directory on disk, duplicates included."""
        return [*self.versions, *self.duplicates]

    @property
    def total_bytes(self) -> int:
        return sum(v.size_bytes for v in self.all_entries)

    def find(self, version: VersionId | str) -> InstalledVersion | None:
        """Look up a scanned version by identifier or directory name."""
        if isinstance(version, str):
            for entry in self.versions:
                if entry.name == version:
                    return entry
            parsed = VersionId.parse(version)
            if parsed is None:
                return None
            version = parsed
        for entry in self.versions:
            if entry.version == version:
                return entry
        return None
