"""Tests for the wizard state machine."""

from __future__ import annotations

import shutil
import threading

import pytest

from versionguard.core.engine import ProtectionEngine
from versionguard.core.probe import ProbeResult, ProcessProbe
from versionguard.core.wizard import ErrorKind, TransitionError, UnsafeToProceed, Wizard, WizardState
from versionguard.downloads import CATALOG
from versionguard.models.protection import ProtectionStatus, Step


class FakeProbe(ProcessProbe):
    def __init__(self, result: ProbeResult = ProbeResult.NOT_RUNNING) -> None:
        super().__init__("CapCut")
        self.result = result

    def is_running(self, name_hint: str | None = None) -> ProbeResult:
        return self.result


class GatedEngine(ProtectionEngine):
    """Holds every protection run until the test opens the gate."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.gate = threading.Event()
        self.started = threading.Event()

    def protect(self, *args, **kwargs):
        self.started.set()
        self.gate.wait(timeout=5)
        return super().protect(*args, **kwargs)


class RecordingDownloads:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    def start(self, persona: str, version: str, url: str) -> None:
        self.calls.append((persona, version, url))


@pytest.fixture
def probe():
    return FakeProbe()


@pytest.fixture
def make_wizard(fake_install, probe):
    created: list[Wizard] = []

    def factory(engine_cls=ProtectionEngine, **kwargs) -> Wizard:
        engine = engine_cls(fake_install, probe=probe, retry_delay=0)
        wiz = Wizard(fake_install, probe=probe, engine=engine, **kwargs)
        created.append(wiz)
        return wiz

    yield factory
    for wiz in created:
        if isinstance(wiz.engine, GatedEngine):
            wiz.engine.gate.set()
        wiz.close()


def _to_select(wiz: Wizard) -> None:
    wiz.begin()
    assert wiz.wait(timeout=5) is WizardState.PRECHECK
    wiz.proceed()


def _to_cache_clean(wiz: Wizard, version: str = "2.5.4") -> None:
    _to_select(wiz)
    wiz.select(version)
    wiz.confirm_selection()


class TestHappyPath:
    def test_full_flow(self, make_wizard, fake_install):
        wiz = make_wizard()
        assert wiz.state is WizardState.WELCOME

        wiz.begin()
        assert wiz.state is WizardState.PRECHECK
        assert wiz.wait(timeout=5) is WizardState.PRECHECK
        assert [v.name for v in wiz.versions] == ["1.5.0", "2.5.4", "3.9.0"]
        assert wiz.can_proceed

        wiz.proceed()
        assert wiz.state is WizardState.VERSION_SELECT

        chosen = wiz.select("2.5.4")
        assert chosen.name == "2.5.4"
        wiz.confirm_selection()
        assert wiz.state is WizardState.CACHE_CLEAN

        target = wiz.start_protection(clean_cache=True)
        assert target.options.clean_cache
        assert wiz.state is WizardState.RUNNING

        assert wiz.wait(timeout=5) is WizardState.COMPLETE
        assert wiz.result.status is ProtectionStatus.COMPLETE
        assert wiz.warnings == []
        assert [p.name for p in fake_install.install_root.iterdir() if p.is_dir()] == ["2.5.4"]
        assert (Step.INSTALL_BLOCKERS, "done") in wiz.progress

    def test_select_by_installed_version(self, make_wizard):
        wiz = make_wizard()
        _to_select(wiz)

        picked = wiz.versions[0]
        assert wiz.select(picked) is picked

    def test_reselect_replaces_selection(self, make_wizard):
        wiz = make_wizard()
        _to_select(wiz)

        wiz.select("1.5.0")
        wiz.select("3.9.0")

        assert wiz.selected.name == "3.9.0"

    def test_clean_cache_default_from_constructor(self, make_wizard):
        wiz = make_wizard(clean_cache=True)
        _to_cache_clean(wiz)

        assert wiz.start_protection().options.clean_cache

    def test_reset_after_complete(self, make_wizard):
        wiz = make_wizard()
        _to_cache_clean(wiz)
        wiz.start_protection()
        wiz.wait(timeout=5)

        wiz.reset()

        assert wiz.state is WizardState.WELCOME
        assert wiz.selected is None
        assert wiz.result is None
        assert wiz.progress == []

    def test_summary(self, make_wizard):
        wiz = make_wizard()
        _to_cache_clean(wiz)

        summary = wiz.summary()

        assert summary["state"] == "cache_clean"
        assert summary["selected"] == "2.5.4"
        assert summary["error"] is None


class TestPrecheck:
    def test_not_installed(self, make_wizard, fake_install):
        shutil.rmtree(fake_install.install_root)
        wiz = make_wizard()

        wiz.begin()

        assert wiz.wait(timeout=5) is WizardState.ERROR
        assert wiz.error_kind is ErrorKind.NOT_INSTALLED

    def test_empty_install_root(self, make_wizard, fake_install):
        shutil.rmtree(fake_install.install_root)
        fake_install.install_root.mkdir()
        wiz = make_wizard()

        wiz.begin()

        assert wiz.wait(timeout=5) is WizardState.ERROR
        assert wiz.error_kind is ErrorKind.NOT_INSTALLED

    def test_install_root_is_a_file(self, make_wizard, fake_install):
        shutil.rmtree(fake_install.install_root)
        fake_install.install_root.write_text("oops")
        wiz = make_wizard()

        wiz.begin()

        assert wiz.wait(timeout=5) is WizardState.ERROR
        assert wiz.error_kind is ErrorKind.SCAN_FAILED

    def test_running_blocks_until_recheck(self, make_wizard, probe):
        probe.result = ProbeResult.RUNNING
        wiz = make_wizard()
        wiz.begin()
        wiz.wait(timeout=5)

        assert not wiz.can_proceed
        assert "running" in wiz.warnings[0]
        with pytest.raises(UnsafeToProceed):
            wiz.proceed()
        with pytest.raises(UnsafeToProceed):
            wiz.proceed(confirm_unknown=True)

        probe.result = ProbeResult.NOT_RUNNING
        wiz.recheck()
        wiz.wait(timeout=5)
        wiz.proceed()

        assert wiz.state is WizardState.VERSION_SELECT

    def test_unknown_requires_confirmation(self, make_wizard, probe, fake_install):
        probe.result = ProbeResult.UNKNOWN
        wiz = make_wizard()
        wiz.begin()
        wiz.wait(timeout=5)

        assert wiz.needs_confirmation
        with pytest.raises(UnsafeToProceed):
            wiz.proceed()

        wiz.proceed(confirm_unknown=True)
        wiz.select("2.5.4")
        wiz.confirm_selection()
        target = wiz.start_protection()

        assert target.options.assume_not_running
        assert wiz.wait(timeout=5) is WizardState.COMPLETE

    def test_scan_warnings_are_shown(self, make_wizard, fake_install):
        (fake_install.install_root / "not-a-version").mkdir()
        wiz = make_wizard()
        wiz.begin()
        wiz.wait(timeout=5)

        assert any("not-a-version" in w for w in wiz.warnings)


class TestGuards:
    def test_out_of_order_transitions(self, make_wizard):
        wiz = make_wizard()

        with pytest.raises(TransitionError):
            wiz.proceed()
        with pytest.raises(TransitionError):
            wiz.select("2.5.4")
        with pytest.raises(TransitionError):
            wiz.start_protection()
        with pytest.raises(TransitionError):
            wiz.cancel()
        with pytest.raises(TransitionError):
            wiz.reset()

    def test_confirm_requires_selection(self, make_wizard):
        wiz = make_wizard()
        _to_select(wiz)

        with pytest.raises(TransitionError):
            wiz.confirm_selection()
        assert wiz.state is WizardState.VERSION_SELECT

    def test_unknown_version_rejected(self, make_wizard):
        wiz = make_wizard()
        _to_select(wiz)

        with pytest.raises(TransitionError):
            wiz.select("9.9.9")
        assert wiz.selected is None

    def test_back_navigation(self, make_wizard):
        wiz = make_wizard()
        _to_cache_clean(wiz)

        wiz.back()
        assert wiz.state is WizardState.VERSION_SELECT
        wiz.back()
        assert wiz.state is WizardState.PRECHECK
        wiz.back()
        assert wiz.state is WizardState.WELCOME
        with pytest.raises(TransitionError):
            wiz.back()


class TestRunning:
    def test_no_reentry_while_running(self, make_wizard):
        wiz = make_wizard(engine_cls=GatedEngine)
        _to_cache_clean(wiz)
        wiz.start_protection()
        assert wiz.engine.started.wait(timeout=5)

        assert wiz.busy
        assert not wiz.poll()
        for action in (wiz.start_protection, wiz.back, wiz.reset, wiz.begin):
            with pytest.raises(TransitionError):
                action()
        assert wiz.state is WizardState.RUNNING

        wiz.engine.gate.set()
        assert wiz.wait(timeout=5) is WizardState.COMPLETE

    def test_cancel(self, make_wizard, fake_install):
        wiz = make_wizard(engine_cls=GatedEngine)
        _to_cache_clean(wiz)
        wiz.start_protection()
        assert wiz.engine.started.wait(timeout=5)

        wiz.cancel()
        wiz.engine.gate.set()

        assert wiz.wait(timeout=5) is WizardState.ERROR
        assert wiz.error_kind is ErrorKind.CANCELLED
        assert wiz.result.status is ProtectionStatus.CANCELLED
        assert len([p for p in fake_install.install_root.iterdir() if p.is_dir()]) == 3

    def test_app_started_before_run(self, make_wizard, probe, fake_install):
        wiz = make_wizard()
        _to_cache_clean(wiz)
        probe.result = ProbeResult.RUNNING

        wiz.start_protection()

        assert wiz.wait(timeout=5) is WizardState.ERROR
        assert wiz.error_kind is ErrorKind.PROTECTION_FAILED
        assert "running" in wiz.error_message
        assert len([p for p in fake_install.install_root.iterdir() if p.is_dir()]) == 3

    def test_partial_completes_with_warnings(self, make_wizard, monkeypatch, fake_install):
        stuck = fake_install.install_root / "1.5.0" / "CapCut.exe"
        monkeypatch.setattr("versionguard.core.engine.remove_tree", lambda path, retry_delay=0.5: [stuck])
        wiz = make_wizard()
        _to_cache_clean(wiz)

        wiz.start_protection()

        assert wiz.wait(timeout=5) is WizardState.COMPLETE
        assert wiz.result.status is ProtectionStatus.PARTIAL
        assert wiz.warnings[0].startswith("Delete other versions")
        assert any(str(stuck) in w for w in wiz.warnings)

    def test_error_then_reset(self, make_wizard, probe):
        wiz = make_wizard()
        _to_cache_clean(wiz)
        probe.result = ProbeResult.RUNNING
        wiz.start_protection()
        wiz.wait(timeout=5)

        wiz.reset()

        assert wiz.state is WizardState.WELCOME
        assert wiz.error_kind is None


class TestDownloads:
    def test_download_dispatches_to_manager(self, make_wizard):
        manager = RecordingDownloads()
        wiz = make_wizard(catalog=CATALOG, download_manager=manager)

        entries = wiz.open_downloads()
        wiz.download(entries[0])
        wiz.close_downloads()

        assert wiz.state is WizardState.WELCOME
        assert manager.calls == [(entries[0].persona, entries[0].version, entries[0].download_url)]

    def test_download_without_manager(self, make_wizard):
        wiz = make_wizard(catalog=CATALOG)
        entries = wiz.open_downloads()

        with pytest.raises(TransitionError):
            wiz.download(entries[0])

    def test_downloads_only_from_welcome(self, make_wizard):
        wiz = make_wizard()
        _to_select(wiz)

        with pytest.raises(TransitionError):
            wiz.open_downloads()
