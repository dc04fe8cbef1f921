"""Read-only and restrictive permission handling.

``os.chmod`` with the write bits cleared maps to the read-only attribute
on Windows and to ``u-w`` elsewhere, so one implementation covers both.
"""

from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

from versionguard.utils import is_link

log = logging.getLogger(__name__)

_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


class FilesystemPermissions:
    """Permission-setting capability used by the protection engine."""

    def is_readonly(self, path: Path) -> bool:
        return not (os.stat(path).st_mode & _WRITE_BITS)

    def set_readonly(self, path: Path) -> None:
        mode = stat.S_IMODE(os.stat(path).st_mode)
        os.chmod(path, mode & ~_WRITE_BITS)

    def clear_readonly(self, path: Path) -> None:
        mode = stat.S_IMODE(os.stat(path).st_mode)
        os.chmod(path, mode | stat.S_IWUSR)

    def clear_readonly_tree(self, path: Path) -> None:
        """Make everything under *path* writable so it can be deleted.

        Best effort: entries that cannot be changed are left for the
        deletion itself to report.  Links and junctions are left
        alone and never descended into, so nothing outside *path* changes.
        """
        if is_link(path):
            return
        self._make_writable(path)
        if not path.is_dir():
            return
        # Fixed up before listing, so a restricted directory can be read.
        try:
            children = list(path.iterdir())
        except OSError as e:
            log.debug("Cannot list %s: %s", path, e)
            return
        for child in children:
            self.clear_readonly_tree(child)

    def _make_writable(self, path: Path) -> None:
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
            if path.is_dir():
                mode |= stat.S_IRWXU
            os.chmod(path, mode | stat.S_IWUSR)
        except OSError as e:
            log.debug("Cannot clear read-only on %s: %s", path, e)

    def restrict_directory(self, path: Path) -> None:
        """Remove write permission so nothing can be created inside."""
        os.chmod(path, stat.S_IRUSR | stat.S_IXUSR)

    def is_restricted(self, path: Path) -> bool:
        return path.is_dir() and self.is_readonly(path)
