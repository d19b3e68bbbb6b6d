import json
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from cold_turkey_kit.utils.paths import (
    get_default_blocker_path,
    get_default_data_dir,
    get_default_log_dir,
)


class Settings(BaseSettings):
    """Application-wide settings managed via .env and config.json."""

    app_name: str = "ctk"
    debug: bool = Field(default=False, description="Master toggle for verbose logging")

    # Paths
    data_dir: Path = Field(default_factory=get_default_data_dir)
    log_dir: Path = Field(default_factory=get_default_log_dir)
    blocker_path: Path = Field(default_factory=get_default_blocker_path)
    apps_dir: Path | None = Field(
        default=None, description="Directory scanned for installed Store apps"
    )
    output_dir: Path | None = Field(
        default=None, description="Where suggested settings files are saved (cwd if unset)"
    )

    def model_post_init(self, __context):
        # Ensure paths are absolute
        self.data_dir = self.data_dir.resolve()
        self.log_dir = self.log_dir.resolve()

    @property
    def config_file(self) -> Path:
        return self.data_dir / "config.json"

    # Settings file format
    settings_extension: str = ".ctbbl"
    executable_extensions: list[str] = [".exe"]
    random_text_length: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def save(self):
        """Saves current settings to config.json in data_dir."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = self.model_dump(mode="json")
        with open(self.config_file, "w") as f:
            json.dump(data, f, indent=4)


_last_settings_mtime: float | None = None
_cached_settings: Settings | None = None


def load_settings() -> Settings:
    """Loads settings, merging with config.json if it exists."""
    global _last_settings_mtime, _cached_settings

    initial = Settings()
    config_path = initial.config_file

    if not config_path.exists():
        _last_settings_mtime = None
        _cached_settings = initial
        return initial

    current_mtime = config_path.stat().st_mtime
    if _last_settings_mtime == current_mtime and _cached_settings is not None:
        return _cached_settings

    try:
        with open(config_path) as f:
            config_data = json.load(f)
        _cached_settings = Settings(**{**initial.model_dump(), **config_data})
        _last_settings_mtime = current_mtime
        return _cached_settings
    except (OSError, ValueError):
        _cached_settings = initial
        return initial


# The single source of truth for the app
settings = load_settings()
