"""Tests for persisted settings."""

from __future__ import annotations

import json

from versionguard.settings import Settings


class TestSettings:
    def test_defaults(self, tmp_path):
        settings = Settings(tmp_path / "settings.json")

        assert settings.get("protect.clean_cache") is False
        assert settings.get("layout.app_root") is None
        assert settings.get("no.such.key", "fallback") == "fallback"

    def test_set_persists(self, tmp_path):
        path = tmp_path / "sub" / "settings.json"
        Settings(path).set("layout.app_root", "/opt/CapCut")

        assert json.loads(path.read_text())["layout"]["app_root"] == "/opt/CapCut"
        assert Settings(path).get("layout.app_root") == "/opt/CapCut"

    def test_stored_value_overrides_default(self, tmp_path):
        path = tmp_path / "settings.json"
        Settings(path).set("protect.clean_cache", True)

        assert Settings(path).get("protect.clean_cache") is True

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{broken")

        settings = Settings(path)

        assert settings.get("protect.clean_cache") is False

    def test_default_location(self, tmp_path, monkeypatch):
        monkeypatch.setattr("versionguard.settings.config_home", lambda: tmp_path)

        assert Settings().path == tmp_path / "versionguard" / "settings.json"
