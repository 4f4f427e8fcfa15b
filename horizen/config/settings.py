"""Configuration settings for Horizen."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# NOTE: load_dotenv() is called in CLI main.py for faster module imports


@dataclass
class Settings:
    """Main settings container."""

    # Paths
    data_dir: Path = field(default_factory=lambda: Path.home() / ".horizen")
    storage_file: Optional[Path] = None  # defaults to <data_dir>/storage.json
    prefs_file: Optional[Path] = None  # defaults to <data_dir>/prefs.yaml

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[Path] = None

    @property
    def storage_path(self) -> Path:
        """Key/value store holding the security config, secret blob and backups."""
        return self.storage_file or self.data_dir / "storage.json"

    @property
    def prefs_path(self) -> Path:
        return self.prefs_file or self.data_dir / "prefs.yaml"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        settings = cls()

        # Override from environment
        if data_dir := os.getenv("HORIZEN_DATA_DIR"):
            settings.data_dir = Path(data_dir)

        if storage_file := os.getenv("HORIZEN_STORAGE_FILE"):
            settings.storage_file = Path(storage_file)

        if prefs_file := os.getenv("HORIZEN_PREFS_FILE"):
            settings.prefs_file = Path(prefs_file)

        if log_level := os.getenv("LOG_LEVEL"):
            settings.log_level = log_level

        if log_file := os.getenv("HORIZEN_LOG_FILE"):
            settings.log_file = Path(log_file)

        return settings


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def configure(settings: Optional[Settings]) -> None:
    """Set the global settings instance (``None`` reloads from env on next use)."""
    global _settings
    _settings = settings
