"""CLI interface for Version Guard."""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Any

import click

from versionguard.core.engine import ProtectionEngine
from versionguard.core.layout import AppLayout
from versionguard.core.probe import ProbeResult, ProcessProbe
from versionguard.core.scanner import NotInstalledError, ScanError, VersionScanner
from versionguard.core.tracker import Tracker
from versionguard.core.wizard import ErrorKind, Wizard, WizardState
from versionguard.downloads import CATALOG, BrowserDownloadManager, find_archive
from versionguard.models.protection import (
    ProtectionOptions,
    ProtectionResult,
    ProtectionStatus,
    ProtectionTarget,
    Step,
    StepStatus,
)
from versionguard.models.version import ScanResult
from versionguard.settings import Settings
from versionguard.utils import bytes_to_human, format_elapsed

_STATUS_MARKS = {
    StepStatus.DONE: ("✓", "green"),
    StepStatus.ALREADY_SATISFIED: ("·", "bright_black"),
    StepStatus.SKIPPED: ("-", "bright_black"),
    StepStatus.PARTIAL: ("!", "yellow"),
    StepStatus.FAILED: ("✗", "red"),
}


def _setup_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def _build_layout(settings: Settings, app_root: Path | None, process_name: str | None) -> AppLayout:
    root = app_root or settings.get("layout.app_root")
    layout = AppLayout(Path(root)) if root else AppLayout.default()
    name = process_name or settings.get("probe.process_name")
    if name:
        layout = AppLayout(layout.app_root, process_name=name)
    return layout


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option(
    "--app-root",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Application folder (default: <LOCALAPPDATA>/CapCut)",
)
@click.option("--process-name", default=None, help="Process name to check for")
@click.pass_context
def main(ctx: click.Context, verbose: int, app_root: Path | None, process_name: str | None) -> None:
    """Version Guard — keep one application version and block its updater."""
    _setup_logging(verbose)
    settings = Settings()
    ctx.obj = {
        "settings": settings,
        "layout": _build_layout(settings, app_root, process_name),
    }


def _scan_or_exit(layout: AppLayout, as_json: bool) -> ScanResult:
    try:
        return VersionScanner().scan(layout.install_root)
    except NotInstalledError as e:
        if as_json:
            click.echo(json.dumps({"status": "not_installed", "message": str(e)}))
        else:
            click.echo(f"Application not installed ({e}).")
        sys.exit(1)
    except ScanError as e:
        if as_json:
            click.echo(json.dumps({"status": "scan_failed", "message": str(e)}))
        else:
            click.echo(click.style(str(e), fg="red"), err=True)
        sys.exit(2)


def _scan_json(scan: ScanResult) -> dict[str, Any]:
    return {
        "root": str(scan.root),
        "versions": [
            {
                "name": v.name,
                "version": str(v.version),
                "path": str(v.path),
                "size_bytes": v.size_bytes,
                "modified": v.modified.isoformat(),
            }
            for v in scan.versions
        ],
        "duplicates": [str(v.path) for v in scan.duplicates],
        "warnings": scan.warnings,
    }


def _result_json(result: ProtectionResult) -> dict[str, Any]:
    return {
        "status": result.status.value,
        "version": result.target.version.name,
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
        "blockers": [{"path": str(b.path), "kind": b.kind.value} for b in result.blockers],
    }


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.echo(f"  {click.style('!', fg='yellow')} {warning}")


def _print_result(result: ProtectionResult) -> None:
    for outcome in result.steps:
        mark, color = _STATUS_MARKS[outcome.status]
        click.echo(f"  {click.style(mark, fg=color)} {outcome.step.label:28s} — {outcome.detail}")
        for path in outcome.failed_paths:
            click.echo(f"      {click.style(str(path), fg='yellow')}")

    elapsed = ""
    if result.finished:
        elapsed = f" in {format_elapsed((result.finished - result.started).total_seconds())}"
    match result.status:
        case ProtectionStatus.COMPLETE:
            click.echo(f"\n{click.style('Protected', fg='green', bold=True)}: {result.target.version.name}{elapsed}\n")
        case ProtectionStatus.PARTIAL:
            click.echo(
                f"\n{click.style('Partially protected', fg='yellow', bold=True)}: "
                f"{result.target.version.name}{elapsed} (see warnings above)\n"
            )
        case _:
            click.echo(f"\n{click.style('Failed', fg='red', bold=True)}: {result.error}\n")


# ── scan ─────────────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def scan(obj: dict, as_json: bool) -> None:
    """List installed versions (read-only)."""
    layout: AppLayout = obj["layout"]
    result = _scan_or_exit(layout, as_json)

    if as_json:
        click.echo(json.dumps(_scan_json(result), indent=2))
        return

    click.echo(f"\nInstalled versions in {result.root}:\n")
    if not result.versions:
        click.echo("  (none)")
    for v in result.versions:
        click.echo(
            f"  {click.style(v.name, fg='cyan', bold=True):30s} "
            f"{bytes_to_human(v.size_bytes):>10s}  modified {v.modified:%Y-%m-%d}"
        )
    if result.warnings:
        click.echo()
        _print_warnings(result.warnings)
    click.echo(f"\nTotal: {click.style(bytes_to_human(result.total_bytes), fg='green', bold=True)}\n")


# ── status ───────────────────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def status(obj: dict, as_json: bool) -> None:
    """Show whether the application is running and whether it is protected."""
    layout: AppLayout = obj["layout"]
    probe = ProcessProbe(layout.process_name).is_running()
    result = _scan_or_exit(layout, as_json)

    check = None
    if len(result.versions) == 1:
        check = ProtectionEngine(layout).verify(result.versions[0], result)

    if as_json:
        data = _scan_json(result)
        data["process"] = probe.value
        data["protected"] = check.is_protected if check else False
        data["problems"] = check.problems if check else []
        click.echo(json.dumps(data, indent=2))
        return

    match probe:
        case ProbeResult.RUNNING:
            click.echo(f"  {click.style('!', fg='yellow')} {layout.process_name} is running")
        case ProbeResult.NOT_RUNNING:
            click.echo(f"  {click.style('✓', fg='green')} {layout.process_name} is not running")
        case _:
            click.echo(f"  {click.style('?', fg='yellow')} Could not check whether {layout.process_name} is running")

    names = ", ".join(v.name for v in result.versions) or "none"
    click.echo(f"  Installed versions: {names}")

    if check is None:
        click.echo(f"  {click.style('Not protected', fg='yellow')} (more than one version installed)")
    elif check.is_protected:
        click.echo(f"  {click.style('Protected', fg='green', bold=True)}: {check.version.name}")
    else:
        click.echo(f"  {click.style('Not fully protected', fg='yellow')}:")
        for problem in check.problems:
            click.echo(f"    {problem}")


# ── protect ──────────────────────────────────────────────────────────────

@main.command()
@click.argument("version")
@click.option("--clean-cache/--no-clean-cache", default=None, help="Also remove cache folders")
@click.option("--lock-config/--no-lock-config", default=True, help="Make configuration files read-only")
@click.option("--blockers/--no-blockers", default=True, help="Install the update blockers")
@click.option("--force", is_flag=True, help="Proceed when the process list cannot be read")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--dry-run", is_flag=True, help="Show what would be done without doing it")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def protect(
    obj: dict,
    version: str,
    clean_cache: bool | None,
    lock_config: bool,
    blockers: bool,
    force: bool,
    yes: bool,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Keep VERSION, delete the others and block the updater."""
    layout: AppLayout = obj["layout"]
    settings: Settings = obj["settings"]
    if clean_cache is None:
        clean_cache = bool(settings.get("protect.clean_cache", False))

    result = _scan_or_exit(layout, as_json)
    kept = result.find(version)
    if kept is None:
        message = f"Version '{version}' is not installed."
        if as_json:
            click.echo(json.dumps({"status": "not_found", "message": message}))
        else:
            click.echo(message, err=True)
        sys.exit(1)

    probe = ProcessProbe(layout.process_name)
    state = probe.is_running()
    if state is ProbeResult.RUNNING or (state is ProbeResult.UNKNOWN and not force):
        message = (
            f"{layout.process_name} is running. Close it and try again."
            if state is ProbeResult.RUNNING
            else "Could not check whether the application is running (use --force once it is closed)."
        )
        if as_json:
            click.echo(json.dumps({"status": "unsafe", "message": message}))
        else:
            click.echo(click.style(message, fg="red"), err=True)
        sys.exit(1)

    others = [v for v in result.all_entries if v.path != kept.path]

    if not as_json:
        click.echo(f"\nKeeping {click.style(kept.name, fg='cyan', bold=True)}")
        for v in others:
            click.echo(f"  {click.style('✗', fg='red')} delete {v.name:20s} {bytes_to_human(v.size_bytes):>10s}")
        if clean_cache:
            click.echo("  + clean cache folders")
        if lock_config:
            click.echo("  + lock configuration files")
        if blockers:
            click.echo("  + block the updater")
        click.echo()

    if dry_run:
        if as_json:
            click.echo(json.dumps({"status": "dry_run", "keep": kept.name, "delete": [v.name for v in others]}))
        else:
            click.echo("(dry run — nothing was changed)")
        return

    if not yes and not as_json:
        if not click.confirm("Proceed?", default=False):
            click.echo("Aborted.")
            return

    def on_progress(step: Step, message: str) -> None:
        if not as_json and message == "running":
            click.echo(f"  … {step.label}")

    options = ProtectionOptions(
        clean_cache=clean_cache,
        lock_config=lock_config,
        create_blockers=blockers,
        assume_not_running=force,
    )
    target = ProtectionTarget(kept, options)
    engine = ProtectionEngine(layout, probe=probe)
    outcome = engine.protect(target, result.all_entries, on_progress=on_progress)
    Tracker().record(outcome)

    if as_json:
        click.echo(json.dumps(_result_json(outcome), indent=2))
    else:
        click.echo()
        _print_result(outcome)
    if outcome.status is ProtectionStatus.FAILED:
        sys.exit(1)


# ── wizard ───────────────────────────────────────────────────────────────

@main.command()
@click.pass_obj
def wizard(obj: dict) -> None:
    """Guided protection, one step at a time."""
    layout: AppLayout = obj["layout"]
    settings: Settings = obj["settings"]
    wiz = Wizard(
        layout,
        catalog=CATALOG,
        download_manager=BrowserDownloadManager(),
        clean_cache=bool(settings.get("protect.clean_cache", False)),
    )
    try:
        _run_wizard(wiz)
    finally:
        wiz.close()


def _run_wizard(wiz: Wizard) -> None:
    while True:
        match wiz.state:
            case WizardState.WELCOME:
                click.echo(f"\n{click.style('Version Guard', bold=True)}\n")
                click.echo("  [p] Protect an installed version")
                click.echo("  [d] Download an older version")
                click.echo("  [q] Quit\n")
                choice = click.prompt("Choice", default="p").lower()
                if choice == "q":
                    return
                if choice == "d":
                    wiz.open_downloads()
                else:
                    wiz.begin()

            case WizardState.DOWNLOADS:
                click.echo()
                for i, entry in enumerate(wiz.catalog, 1):
                    click.echo(f"  [{i}] {entry.version:8s} {entry.persona:16s} {entry.description} ({entry.risk_level} risk)")
                raw = click.prompt("\nNumber to download, or Enter to go back", default="", show_default=False)
                if raw.strip().isdigit() and 0 < int(raw) <= len(wiz.catalog):
                    wiz.download(wiz.catalog[int(raw) - 1])
                else:
                    wiz.close_downloads()

            case WizardState.PRECHECK:
                if wiz.busy:
                    click.echo("Checking installation...")
                    wiz.wait()
                    continue
                _print_warnings(wiz.warnings)
                if wiz.facts and wiz.facts.probe is ProbeResult.RUNNING:
                    if not click.confirm("Check again?", default=True):
                        return
                    wiz.recheck()
                elif wiz.needs_confirmation:
                    if not click.confirm("Is the application closed?", default=False):
                        return
                    wiz.proceed(confirm_unknown=True)
                else:
                    wiz.proceed()

            case WizardState.VERSION_SELECT:
                click.echo("\nWhich version do you want to keep?\n")
                for i, v in enumerate(wiz.versions, 1):
                    click.echo(f"  [{i}] {v.name:20s} {bytes_to_human(v.size_bytes):>10s}")
                raw = click.prompt("\nSelection", default=str(len(wiz.versions)))
                try:
                    wiz.select(wiz.versions[int(raw) - 1])
                except (ValueError, IndexError):
                    click.echo("Invalid selection.")
                    continue
                wiz.confirm_selection()

            case WizardState.CACHE_CLEAN:
                clean = click.confirm("Also clean cache folders?", default=wiz.clean_cache)
                others = len(wiz.scan.all_entries) - 1 if wiz.scan else 0
                if not click.confirm(
                    f"Keep {wiz.selected.name}, delete {others} other version(s) and block updates?", default=False
                ):
                    wiz.back()
                    continue
                wiz.start_protection(clean_cache=clean)

            case WizardState.RUNNING:
                shown = 0
                while not wiz.poll():
                    progress = wiz.progress
                    for step, message in progress[shown:]:
                        if message == "running":
                            click.echo(f"  … {step.label}")
                    shown = len(progress)
                    time.sleep(0.1)

            case WizardState.COMPLETE:
                Tracker().record(wiz.result)
                click.echo()
                _print_result(wiz.result)
                return

            case WizardState.ERROR:
                if wiz.result is not None:
                    Tracker().record(wiz.result)
                if wiz.error_kind is ErrorKind.NOT_INSTALLED:
                    click.echo(f"\nApplication not installed: {wiz.error_message}\n")
                else:
                    click.echo(click.style(f"\n{wiz.error_message}\n", fg="red"), err=True)
                    sys.exit(1)
                return


# ── catalog / download ───────────────────────────────────────────────────

@main.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def catalog(as_json: bool) -> None:
    """List known-good older versions available for download."""
    if as_json:
        data = [
            {
                "persona": e.persona,
                "version": e.version,
                "description": e.description,
                "features": list(e.features),
                "download_url": e.download_url,
                "risk_level": e.risk_level,
            }
            for e in CATALOG
        ]
        click.echo(json.dumps(data, indent=2))
        return

    for entry in CATALOG:
        click.echo(f"\n  {click.style(entry.version, fg='cyan', bold=True)}  {entry.persona} ({entry.risk_level} risk)")
        click.echo(f"    {entry.description}")
        click.echo(f"    {', '.join(entry.features)}")
    click.echo()


@main.command()
@click.argument("version")
def download(version: str) -> None:
    """Open the download page for a catalog VERSION or persona."""
    entry = find_archive(version)
    if entry is None:
        click.echo(f"'{version}' is not in the catalog.", err=True)
        sys.exit(1)
    BrowserDownloadManager().start(entry.persona, entry.version, entry.download_url)
    click.echo(f"Opening download for {entry.version} ({entry.persona})...")


# ── history ──────────────────────────────────────────────────────────────

@main.command()
@click.option("--limit", "-n", default=10, show_default=True, help="Number of runs to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def history(limit: int, as_json: bool) -> None:
    """Show past protection runs."""
    runs = Tracker().get_runs(limit=limit)
    if as_json:
        click.echo(json.dumps(runs, indent=2))
        return
    if not runs:
        click.echo("No protection runs recorded.")
        return
    colors = {"complete": "green", "partial": "yellow"}
    for run in runs:
        status_text = click.style(run["status"], fg=colors.get(run["status"], "red"))
        click.echo(f"  {run['timestamp'][:19]}  {run['version']:20s} {status_text}")


# ── config ───────────────────────────────────────────────────────────────

@main.group()
def config() -> None:
    """Stored preferences."""


@config.command("show")
@click.pass_obj
def config_show(obj: dict) -> None:
    """Show effective settings."""
    settings: Settings = obj["settings"]
    layout: AppLayout = obj["layout"]
    click.echo(f"  settings file:  {settings.path}")
    click.echo(f"  app root:       {layout.app_root}")
    click.echo(f"  process name:   {layout.process_name}")
    click.echo(f"  clean cache:    {settings.get('protect.clean_cache', False)}")


@config.command("set")
@click.argument("key", type=click.Choice(["layout.app_root", "probe.process_name", "protect.clean_cache"]))
@click.argument("value")
@click.pass_obj
def config_set(obj: dict, key: str, value: str) -> None:
    """Store a preference."""
    settings: Settings = obj["settings"]
    stored: Any = value
    if key == "protect.clean_cache":
        stored = value.strip().lower() in ("1", "true", "yes", "on")
    settings.set(key, stored)
    click.echo(f"{key} = {stored}")
