"""Keeps a history of protection runs."""

from __future__ import annotations

import logging
from typing import Any

from versionguard.models.protection import ProtectionResult
from versionguard.storage import load_history, save_history

log = logging.getLogger(__name__)

# Oldest runs are dropped beyond this many.
_MAX_RUNS = 100


class Tracker:
    """Records protection results and reads them back."""

    def record(self, result: ProtectionResult) -> dict[str, Any]:
        """Append *result* to the persisted history and return the stored entry."""
        entry = self._build_entry(result)
        history = load_history()
        runs = history.setdefault("runs", [])
        runs.append(entry)
        del runs[:-_MAX_RUNS]
        save_history(history)
        log.info("Recorded protection of %s: %s", entry["version"], entry["status"])
        return entry

    def get_runs(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Return recorded runs, newest first."""
        runs = list(reversed(load_history().get("runs", [])))
        return runs[:limit] if limit is not None else runs

    def get_last_run(self) -> dict[str, Any] | None:
        runs = self.get_runs(limit=1)
        return runs[0] if runs else None

    @staticmethod
    def _build_entry(result: ProtectionResult) -> dict[str, Any]:
        kept = result.target.version
        return {
            "timestamp": (result.finished or result.started).isoformat(),
            "version": kept.name,
            "path": str(kept.path),
            "status": result.status.value,
            "clean_cache": result.target.options.clean_cache,
            "lock_config": result.target.options.lock_config,
            "create_blockers": result.target.options.create_blockers,
            "error": result.error,
            "steps": [
                {
                    "step": s.step.value,
                    "status": s.status.value,
                    "detail": s.detail,
                    "failed_paths": [str(p) for p in s.failed_paths],
                }
                for s in result.steps
            ],
            "blockers": [
                {
                    "path": str(b.path),
                    "kind": b.kind.value,
                    "backup_path": str(b.backup_path) if b.backup_path else None,
                }
                for b in result.blockers
            ],
        }
