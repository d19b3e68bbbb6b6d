import sys
from pathlib import Path

from platformdirs import user_data_dir, user_log_dir

WINDOWS_BLOCKER_PATH = Path(r"C:\Program Files\Cold Turkey\Cold Turkey Blocker.exe")
MACOS_BLOCKER_PATH = Path(
    "/Applications/Cold Turkey Blocker.app/Contents/MacOS/Cold Turkey Blocker"
)


def get_project_root() -> Path | None:
    """Returns the project root if running from source in a dev environment, else None."""
    # A pyproject.toml alone is not enough: installed copies can have one 4 levels up.
    potential_root = Path(__file__).resolve().parent.parent.parent.parent
    if (potential_root / "pyproject.toml").exists() and (potential_root / ".git").exists():
        return potential_root
    return None


def get_default_data_dir() -> Path:
    """Returns the default data directory (dev folder or XDG)."""
    root = get_project_root()
    if root:
        return root / "outputs"
    return Path(user_data_dir(appname="ctk"))


def get_default_log_dir() -> Path:
    """Returns the default log directory (dev folder or XDG)."""
    root = get_project_root()
    if root:
        return root / "outputs"
    return Path(user_log_dir(appname="ctk"))


def get_default_blocker_path() -> Path:
    """Returns where Cold Turkey Blocker is installed by default on this platform."""
    if sys.platform == "darwin":
        return MACOS_BLOCKER_PATH
    return WINDOWS_BLOCKER_PATH
