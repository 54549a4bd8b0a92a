"""
Filesystem locations: config/data directories, project identity, store paths.
"""

import hashlib
import os
import platform
from pathlib import Path
from typing import Optional


APP_NAME = "lumencore"

# Files or directories that mark the root of a project
PROJECT_MARKERS = (
    ".git",
    "package.json",
    "Cargo.toml",
    "go.mod",
    "pyproject.toml",
    ".lumencore",
)

PROJECT_ID_LENGTH = 16
STORE_FILENAME = "memories.db"


def get_project_id(project_path: str | Path) -> str:
    """
    Stable short identifier for a project.

    SHA-256 of the resolved absolute path, truncated to 16 hex characters.
    """
    normalized = str(Path(project_path).expanduser().resolve())
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return digest[:PROJECT_ID_LENGTH]


def find_project_root(start: Optional[str | Path] = None) -> Path:
    """Walk up from ``start`` (default: cwd) to the nearest directory with a project marker.

    Falls back to the resolved start path when no marker is found.
    """
    origin = Path(start if start is not None else os.getcwd()).expanduser().resolve()
    current = origin
    while current != current.parent:
        for marker in PROJECT_MARKERS:
            if (current / marker).exists():
                return current
        current = current.parent
    return origin


def get_config_dir() -> Path:
    """Directory holding lumencore.toml. LUMENCORE_CONFIG_DIR overrides the platform default."""
    override = os.environ.get("LUMENCORE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()

    home = Path.home()
    system = platform.system()
    if system == "Windows":
        base = os.environ.get("APPDATA") or str(home / "AppData" / "Roaming")
        return Path(base) / APP_NAME
    if system == "Darwin":
        return home / "Library" / "Preferences" / APP_NAME
    base = os.environ.get("XDG_CONFIG_HOME") or str(home / ".config")
    return Path(base) / APP_NAME


def get_default_data_dir() -> Path:
    """Platform default root for memory stores."""
    home = Path.home()
    system = platform.system()
    if system == "Windows":
        base = os.environ.get("LOCALAPPDATA") or str(home / "AppData" / "Local")
        return Path(base) / APP_NAME
    if system == "Darwin":
        return home / "Library" / "Application Support" / APP_NAME
    base = os.environ.get("XDG_DATA_HOME") or str(home / ".local" / "share")
    return Path(base) / APP_NAME


def project_db_path(data_dir: Path, project_path: str | Path) -> Path:
    return Path(data_dir) / "projects" / get_project_id(project_path) / STORE_FILENAME


def global_db_path(data_dir: Path) -> Path:
    return Path(data_dir) / "global" / STORE_FILENAME
