"""Discovers installed version directories."""

from __future__ import annotations

import logging
import stat
from datetime import datetime, timezone
from pathlib import Path

from versionguard.models.version import InstalledVersion, ScanResult, VersionId
from versionguard.utils import dir_size

log = logging.getLogger(__name__)


class ScanError(Exception):
    """Raised when the installation root itself cannot be scanned."""

    not_installed = False


class NotInstalledError(ScanError):
    """The installation root does not exist: the application is not installed."""

    not_installed = True


class VersionScanner:
    """Lists the version directories directly under an installation root."""

    def scan(self, install_root: Path) -> ScanResult:
        """Scan *install_root* for version directories.

        Directories whose names are not version numbers are skipped with a
        warning.  Versions are ordered by numeric identifier, oldest first.

        Raises:
            NotInstalledError: *install_root* does not exist.
            ScanError: *install_root* exists but cannot be listed.
        """
        root = Path(install_root)
        try:
            mode = root.stat().st_mode
        except FileNotFoundError as e:
            raise NotInstalledError(f"Installation folder not found: {root}") from e
        except OSError as e:
            raise ScanError(f"Cannot access installation folder {root}: {e}") from e
        if not stat.S_ISDIR(mode):
            raise ScanError(f"Installation path is not a folder: {root}")

        try:
            children = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise ScanError(f"Cannot read installation folder {root}: {e}") from e

        result = ScanResult(root=root)
        found: list[InstalledVersion] = []

        for child in children:
            if child.is_symlink():
                result.warnings.append(f"Skipped linked folder: {child.name}")
                continue
            if not child.is_dir():
                continue

            version = VersionId.parse(child.name)
            if version is None:
                log.info("Skipping non-version folder: %s", child)
                result.warnings.append(f"Not a version folder: {child.name}")
                continue

            try:
                modified = datetime.fromtimestamp(child.stat().st_mtime, tz=timezone.utc)
            except OSError as e:
                result.warnings.append(f"Cannot read {child.name}: {e}")
                continue

            found.append(
                InstalledVersion(
                    version=version,
                    path=child.absolute(),
                    size_bytes=dir_size(child),
                    modified=modified,
                )
            )

        # sorted() is stable, so same-identifier folders stay in name order
        kept: dict[VersionId, InstalledVersion] = {}
        for entry in sorted(found, key=lambda v: v.version):
            first = kept.get(entry.version)
            if first is not None:
                log.warning("Duplicate version folder: %s", entry.path)
                result.duplicates.append(entry)
                result.warnings.append(f"Duplicate of {first.name}: {entry.name}")
            else:
                kept[entry.version] = entry
                result.versions.append(entry)

        log.info("Found %d version(s) in %s", len(result.versions), root)
        return result
