"""JSON-backed user preferences for the command-line front end."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from versionguard.utils import config_home

log = logging.getLogger(__name__)

_SETTINGS_DIR = "versionguard"
_SETTINGS_FILE = "settings.json"

DEFAULTS: dict[str, Any] = {
    "layout": {"app_root": None},
    "probe": {"process_name": None},
    "protect": {"clean_cache": False},
}


class Settings:
    """Persistent settings backed by a JSON file.

    Uses dot-notation keys for nested access:
        settings.get("protect.clean_cache")  # reads data["protect"]["clean_cache"]
        settings.set("layout.app_root", "D:/Apps/CapCut")  # writes + saves
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or (config_home() / _SETTINGS_DIR / _SETTINGS_FILE)
        self._data: dict[str, Any] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value by dot-notation key, falling back to the built-in defaults."""
        for source in (self._data, DEFAULTS):
            node: Any = source
            for part in key.split("."):
                if not isinstance(node, dict) or part not in node:
                    break
                node = node[part]
            else:
                if node is not None:
                    return node
        return default

    def set(self, key: str, value: Any) -> None:
        """Set a value by dot-notation key and persist to disk."""
        parts = key.split(".")
        node = self._data
        for part in parts[:-1]:
            if part not in node or not isinstance(node[part], dict):
                node[part] = {}
            node = node[part]
        node[parts[-1]] = value
        self._save()

    def _load(self) -> None:
        """Load settings from disk, gracefully handling errors."""
        if not self._path.exists():
            return
        try:
            self._data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            log.warning("Could not load settings from %s: %s", self._path, e)
            self._data = {}

    def _save(self) -> None:
        """Persist settings to disk."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(self._data, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as e:
            log.warning("Could not save settings to %s: %s", self._path, e)
