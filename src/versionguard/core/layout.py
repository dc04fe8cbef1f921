"""Where the guarded application keeps its files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from versionguard.utils import local_app_data

APP_DIR_NAME = "CapCut"
PROCESS_NAME = "CapCut"

# Files the application and its updater consult to decide whether an update
# is needed.  Only their permission bits are touched.
CONFIG_FILE_NAMES = ("configure.ini", "ProductInfo.xml")

_SHARED_CACHE_DIRS = (("User Data", "Cache"), ("User Data", "Temp"))
_VERSION_CACHE_DIRS = ("Cache",)


@dataclass(frozen=True, slots=True)
class AppLayout:
    """Filesystem layout of one application installation."""

    app_root: Path
    process_name: str = PROCESS_NAME

    @classmethod
    def default(cls) -> AppLayout:
        """Layout under the current user's local application data."""
        return cls(local_app_data() / APP_DIR_NAME)

    @property
    def install_root(self) -> Path:
        """Directory holding one subdirectory per installed version."""
        return self.app_root / "Apps"

    @property
    def download_dir(self) -> Path:
        return self.app_root / "User Data" / "Download"

    @property
    def updater_executable(self) -> Path:
        return self.download_dir / "update.exe"

    @property
    def updater_directory(self) -> Path:
        """Staging directory the updater creates fresh when it starts."""
        return self.download_dir / "update"

    def config_files(self, version_path: Path) -> list[Path]:
        """Candidate configuration files for the kept version (may not exist)."""
        return [base / name for base in (self.install_root, version_path) for name in CONFIG_FILE_NAMES]

    def cache_dirs(self, version_path: Path) -> list[Path]:
        """Shared and per-version cache directories (may not exist)."""
        shared = [self.app_root.joinpath(*parts) for parts in _SHARED_CACHE_DIRS]
        return shared + [version_path / name for name in _VERSION_CACHE_DIRS]
