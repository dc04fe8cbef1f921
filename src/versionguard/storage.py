"""On-disk history of protection runs.

The file holds ``{"runs": [...]}``, oldest run first.  Anything else found
there (hand edits, a truncated write from an older release) is discarded
entry by entry rather than failing the command that wanted the history.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from versionguard.utils import data_home

log = logging.getLogger(__name__)

_DATA_DIR = data_home() / "versionguard"

HISTORY_FILE = _DATA_DIR / "history.json"

# Keys every stored run must carry to be shown by ``versionguard history``.
_RUN_KEYS = ("timestamp", "version", "status")


def _empty() -> dict[str, Any]:
    return {"runs": []}


def _valid_run(run: Any) -> bool:
    return isinstance(run, dict) and all(isinstance(run.get(key), str) for key in _RUN_KEYS)


def load_history() -> dict[str, Any]:
    """Load the history file, returning an empty history if missing or unusable."""
    if not HISTORY_FILE.exists():
        return _empty()
    try:
        with open(HISTORY_FILE, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError):
        log.exception("Failed to load history file: %s", HISTORY_FILE)
        return _empty()

    runs = data.get("runs") if isinstance(data, dict) else None
    if not isinstance(runs, list):
        log.warning("Ignoring history file without a run list: %s", HISTORY_FILE)
        return _empty()

    valid = [run for run in runs if _valid_run(run)]
    if len(valid) != len(runs):
        log.warning("Dropped %d malformed run(s) from %s", len(runs) - len(valid), HISTORY_FILE)
    return {**data, "runs": valid}


def save_history(data: dict[str, Any]) -> None:
    """Write the history data to disk, replacing the old file in one step."""
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    tmp = HISTORY_FILE.with_name(HISTORY_FILE.name + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp, HISTORY_FILE)
    except OSError:
        log.exception("Failed to save history file: %s", HISTORY_FILE)
