"""Tests for the process probe."""

from __future__ import annotations

import psutil
import pytest

from versionguard.core.probe import ProbeResult, ProcessProbe


class FakeProc:
    def __init__(self, name: str | None, pid: int = 100, fail: bool = False) -> None:
        self.info = {"name": name}
        self.pid = pid
        self._fail = fail

    def name(self) -> str:
        if self._fail:
            raise psutil.NoSuchProcess(self.pid)
        return self.info["name"] or ""


@pytest.fixture
def processes(monkeypatch):
    """Replace the live process table with a controllable list."""
    table: list[FakeProc] = []
    monkeypatch.setattr("versionguard.core.probe.psutil.process_iter", lambda attrs=None: iter(table))
    return table


class TestProcessProbe:
    def test_running(self, processes):
        processes.extend([FakeProc("explorer.exe"), FakeProc("CapCut.exe")])
        assert ProcessProbe("CapCut").is_running() is ProbeResult.RUNNING

    def test_case_insensitive(self, processes):
        processes.append(FakeProc("capcut.EXE"))
        assert ProcessProbe().is_running("CAPCUT") is ProbeResult.RUNNING

    def test_hint_with_exe_suffix(self, processes):
        processes.append(FakeProc("CapCut"))
        assert ProcessProbe().is_running("CapCut.exe") is ProbeResult.RUNNING

    def test_not_running(self, processes):
        processes.extend([FakeProc("explorer.exe"), FakeProc("CapCutHelper.exe")])
        assert ProcessProbe("CapCut").is_running() is ProbeResult.NOT_RUNNING

    def test_vanished_process_is_skipped(self, processes):
        processes.extend([FakeProc(None, fail=True), FakeProc("CapCut.exe")])
        assert ProcessProbe("CapCut").is_running() is ProbeResult.RUNNING

    def test_enumeration_failure_is_unknown(self, monkeypatch):
        def broken(attrs=None):
            yield FakeProc("explorer.exe")
            raise psutil.AccessDenied()

        monkeypatch.setattr("versionguard.core.probe.psutil.process_iter", broken)
        assert ProcessProbe("CapCut").is_running() is ProbeResult.UNKNOWN

    def test_no_name_is_unknown(self, processes):
        assert ProcessProbe("").is_running() is ProbeResult.UNKNOWN

    def test_only_not_running_is_safe(self):
        assert ProbeResult.NOT_RUNNING.is_safe
        assert not ProbeResult.RUNNING.is_safe
        assert not ProbeResult.UNKNOWN.is_safe
