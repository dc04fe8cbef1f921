"""Curated archive catalog and the download hand-off.

Nothing here performs network I/O: a download manager receives the
persona, version and URL and does whatever the front end wants with them.
"""

from __future__ import annotations

import logging
import webbrowser
from dataclasses import dataclass
from typing import Protocol

log = logging.getLogger(__name__)

_PACKAGE_BASE = "https://lf16-capcut.faceulv.com/obj/capcutpc-packages-us/packages"


@dataclass(frozen=True, slots=True)
class ArchiveVersion:
    """A known-good older release offered for download."""

    persona: str
    version: str
    description: str
    features: tuple[str, ...]
    download_url: str
    risk_level: str


CATALOG: tuple[ArchiveVersion, ...] = (
    ArchiveVersion(
        persona="Offline Purist",
        version="1.5.0",
        description="Zero cloud dependencies. Unrestricted 4K export.",
        features=("Clean UI", "Offline Only", "No Nags"),
        download_url=f"{_PACKAGE_BASE}/CapCut_1_5_0_230_capcutpc_0.exe",
        risk_level="Low",
    ),
    ArchiveVersion(
        persona="Audio Engineer",
        version="2.5.4",
        description="Multi-track audio & stable mixer.",
        features=("Multi-Track", "Audio Mixer", "Keyframes"),
        download_url=f"{_PACKAGE_BASE}/CapCut_2_5_4_810_capcutpc_0_creatortool.exe",
        risk_level="Low",
    ),
    ArchiveVersion(
        persona="Classic Pro",
        version="2.9.0",
        description="Most free features before the paywalls.",
        features=("Max Free Features", "Stable", "Legacy UI"),
        download_url=f"{_PACKAGE_BASE}/CapCut_2_9_0_966_capcutpc_0_creatortool.exe",
        risk_level="Medium",
    ),
    ArchiveVersion(
        persona="Modern Stable",
        version="3.2.0",
        description="Good balance of modern features vs paywalls.",
        features=("Modern UI", "Smooth", "Balanced"),
        download_url=f"{_PACKAGE_BASE}/CapCut_3_2_0_1106_capcutpc_0_creatortool.exe",
        risk_level="Medium",
    ),
    ArchiveVersion(
        persona="Creator",
        version="3.9.0",
        description="Last version with free auto-captions.",
        features=("Auto-Captions", "AI Features", "Effects"),
        download_url=f"{_PACKAGE_BASE}/CapCut_3_9_0_1459_capcutpc_0_creatortool.exe",
        risk_level="High",
    ),
    ArchiveVersion(
        persona="Power User",
        version="4.0.0",
        description="Track height adjustment & markers. Stricter paywall.",
        features=("Track Zoom", "Markers", "Adv Features"),
        download_url=f"{_PACKAGE_BASE}/CapCut_4_0_0_1539_capcutpc_0_creatortool.exe",
        risk_level="Medium",
    ),
)


def find_archive(version: str) -> ArchiveVersion | None:
    """Look up a catalog entry by version string or persona (case-insensitive)."""
    wanted = version.strip().lower()
    for entry in CATALOG:
        if entry.version == wanted or entry.persona.lower() == wanted:
            return entry
    return None


class DownloadManager(Protocol):
    def start(self, persona: str, version: str, url: str) -> None: ...


class BrowserDownloadManager:
    """Hands the download URL to the system web browser."""

    def start(self, persona: str, version: str, url: str) -> None:
        log.info("Opening download for %s (%s): %s", version, persona, url)
        if not webbrowser.open(url):
            log.warning("No browser available to open %s", url)
