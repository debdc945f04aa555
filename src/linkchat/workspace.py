"""Per-user directories, local config discovery and project shape."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


APP_DIR = ".link-chat"
CONFIG_FILE = "config.toml"


def user_dir() -> Path:
    """Per-user data directory (cross-platform)."""
    # Windows: %APPDATA%\link-chat, elsewhere ~/.link-chat
    if os.name == "nt":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "link-chat"
    return Path.home() / APP_DIR


def global_config_path() -> Path:
    return user_dir() / CONFIG_FILE


def sessions_dir() -> Path:
    return user_dir() / "sessions"


def logs_dir() -> Path:
    return user_dir() / "logs"


def find_local_config(start: Optional[Path] = None) -> Optional[Path]:
    """Search for .link-chat/config.toml in start and its parents."""
    current = (start or Path.cwd()).resolve()
    home_config = global_config_path().resolve()

    for directory in (current, *current.parents):
        candidate = directory / APP_DIR / CONFIG_FILE
        if candidate.is_file() and candidate.resolve() != home_config:
            return candidate
    return None


@dataclass
class ProjectShape:
    """What the working directory looks like, for picking save locations."""
    root: Path
    has_package_json: bool = False
    has_src: bool = False
    test_dir: Optional[str] = None
    has_docs: bool = False

    @property
    def is_project(self) -> bool:
        return self.has_package_json or self.has_src


def detect_project_shape(root: Optional[Path] = None) -> ProjectShape:
    """Inspect root for package.json, src/, test(s)/ and docs/."""
    root = Path(root or Path.cwd())
    test_dir = None
    for name in ("tests", "test"):
        if (root / name).is_dir():
            test_dir = name
            break

    return ProjectShape(
        root=root,
        has_package_json=(root / "package.json").is_file(),
        has_src=(root / "src").is_dir(),
        test_dir=test_dir,
        has_docs=(root / "docs").is_dir(),
    )
