"""Shared utility functions."""

from __future__ import annotations

import logging
import os
import stat
import time
from pathlib import Path

log = logging.getLogger(__name__)


def local_app_data() -> Path:
    """Return LOCALAPPDATA, defaulting to ~/AppData/Local."""
    return Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))


def config_home() -> Path:
    """Return the per-user config directory (APPDATA on Windows, XDG elsewhere)."""
    if os.name == "nt":
        return Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


def data_home() -> Path:
    """Return the per-user data directory (LOCALAPPDATA on Windows, XDG elsewhere)."""
    if os.name == "nt":
        return local_app_data()
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def dir_info(path: Path | str) -> tuple[int, int]:
    """Calculate total size and file count of a directory tree.

    Symlinks and junctions are never followed, so a link back into the
    tree cannot be counted twice or recurse forever.

    Returns:
        (total_bytes, file_count) tuple.
    """
    total = 0
    count = 0
    stack: list[Path | str] = [path]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                for entry in it:
                    try:
                        if entry.is_symlink() or _is_junction(entry):
                            continue
                        if entry.is_file(follow_symlinks=False):
                            total += entry.stat(follow_symlinks=False).st_size
                            count += 1
                        elif entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                    except OSError:
                        log.debug("Cannot access: %s", entry.path)
        except OSError:
            log.debug("Cannot read directory: %s", current)
    return total, count


def dir_size(path: Path) -> int:
    """Calculate total size of a directory tree."""
    return dir_info(path)[0]


def _is_junction(entry: os.DirEntry) -> bool:
    # DirEntry.is_junction() exists from Python 3.12 on
    is_junction = getattr(entry, "is_junction", None)
    return bool(is_junction and is_junction())


def is_link(path: Path) -> bool:
    """True for symlinks and for Windows junctions (or other reparse points)."""
    if path.is_symlink():
        return True
    try:
        attributes = getattr(os.lstat(path), "st_file_attributes", 0)
    except OSError:
        return False
    return bool(attributes & stat.FILE_ATTRIBUTE_REPARSE_POINT)


def remove_tree(path: Path, *, retry_delay: float = 0.5) -> list[Path]:
    """Remove a directory tree bottom-up and return the paths that survived.

    Every file or directory that cannot be removed on the first pass is
    retried once after *retry_delay* seconds (locked files are often
    released a moment later).  Links and junctions are unlinked, never
    followed, including when *path* itself is one.
    """
    failed: list[Path] = []
    _remove(Path(path), failed)

    if not failed:
        return []

    log.debug("Retrying %d path(s) under %s in %.1fs", len(failed), path, retry_delay)
    time.sleep(retry_delay)

    # Collected bottom-up, so children are retried before their parents.
    remaining: list[Path] = []
    for item in failed:
        _try_remove(item, remaining)
    return remaining


def _remove(path: Path, failed: list[Path]) -> None:
    if is_link(path) or not path.is_dir():
        _try_remove(path, failed)
        return
    try:
        children = list(path.iterdir())
    except OSError as e:
        log.debug("Cannot list %s: %s", path, e)
        failed.append(path)
        return
    for child in children:
        _remove(child, failed)
    _try_remove(path, failed)


def _try_remove(path: Path, failed: list[Path]) -> None:
    try:
        if is_link(path) or not path.is_dir():
            path.unlink()
        else:
            path.rmdir()
    except FileNotFoundError:
        pass
    except OSError as e:
        log.debug("Could not remove %s: %s", path, e)
        failed.append(path)


def unique_backup_path(path: Path, suffix: str = ".bak") -> Path:
    """Return the first free ``<name>.bak`` / ``<name>.bak.N`` sibling of *path*."""
    candidate = path.with_name(path.name + suffix)
    n = 1
    while candidate.exists() or candidate.is_symlink():
        candidate = path.with_name(f"{path.name}{suffix}.{n}")
        n += 1
    return candidate


def bytes_to_human(size_bytes: int) -> str:
    """Convert byte count to a human-readable string."""
    if size_bytes < 0:
        return f"-{bytes_to_human(-size_bytes)}"
    if size_bytes == 0:
        return "0 B"

    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size_bytes)
    for unit in units[:-1]:
        if abs(value) < 1024:
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} {units[-1]}"


def format_elapsed(seconds: float) -> str:
    """Format an elapsed time as a human-readable string."""
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds) // 60
    secs = seconds - minutes * 60
    return f"{minutes}m {secs:.0f}s"
