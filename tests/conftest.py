"""Shared test fixtures."""

from __future__ import annotations

import pytest

import versionguard.storage as storage
from versionguard.core.layout import AppLayout


@pytest.fixture
def isolate_storage(tmp_path, monkeypatch):
    """Redirect storage to a temp directory."""
    data_dir = tmp_path / "versionguard_data"
    data_dir.mkdir()
    history_file = data_dir / "history.json"
    monkeypatch.setattr(storage, "HISTORY_FILE", history_file)
    monkeypatch.setattr(storage, "_DATA_DIR", data_dir)
    return history_file


@pytest.fixture
def fake_install(tmp_path):
    """Create a fake application folder with three installed versions.

    Layout::

        CapCut/Apps/{1.5.0,2.5.4,3.9.0}/...
        CapCut/Apps/configure.ini
        CapCut/Apps/2.5.4/ProductInfo.xml
        CapCut/User Data/Download/update.exe
        CapCut/User Data/Cache/...
    """
    layout = AppLayout(tmp_path / "CapCut")
    apps = layout.install_root
    for name, size in (("1.5.0", 100), ("2.5.4", 200), ("3.9.0", 300)):
        version_dir = apps / name
        (version_dir / "Resources").mkdir(parents=True)
        (version_dir / "CapCut.exe").write_bytes(b"x" * size)
        (version_dir / "Resources" / "data.bin").write_bytes(b"r" * size)

    (apps / "configure.ini").write_text("[General]\nlast_version=3.9.0\n")
    (apps / "2.5.4" / "ProductInfo.xml").write_text("<ProductInfo/>")

    layout.download_dir.mkdir(parents=True)
    layout.updater_executable.write_bytes(b"MZ updater")

    cache = layout.app_root / "User Data" / "Cache"
    cache.mkdir(parents=True)
    (cache / "blob").write_bytes(b"c" * 64)
    return layout
