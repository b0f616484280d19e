"""
Settings for Helldivers 2 Mod Manager, stored as settings.json in the
per-user app data directory:

{
    "game_directory": "C:/Program Files (x86)/Steam/steamapps/common/Helldivers 2",
    "storage_directory": "C:/Users/me/AppData/Roaming/Helldivers2ModManager/storage",
    "temp_directory": "C:/Users/me/AppData/Local/Temp/Helldivers2ModManager",
    "skip_list": ["9ba626afa44a3aa3"],
    "case_sensitive_search": false,
    "log_level": "WARNING"
}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

_log = logging.getLogger(__name__)

APP_NAME = "Helldivers2ModManager"
SETTINGS_FILENAME = "settings.json"
ARCHIVE_ID_LENGTH = 16


def app_data_dir() -> Path:
    return Path(os.environ.get("APPDATA", "~")).expanduser() / APP_NAME


def default_settings_path() -> Path:
    return app_data_dir() / SETTINGS_FILENAME


class Settings(BaseModel):
    game_directory: Path | None = None
    storage_directory: Path = Field(default_factory=lambda: app_data_dir() / "storage")
    temp_directory: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()) / APP_NAME)
    skip_list: list[str] = Field(default_factory=list)
    case_sensitive_search: bool = False
    log_level: str = "WARNING"

    @field_validator("skip_list")
    @classmethod
    def _check_skip_list(cls, v: list[str]) -> list[str]:
        entries: list[str] = []
        for item in v:
            item = item.strip()
            if len(item) != ARCHIVE_ID_LENGTH:
                raise ValueError(
                    f"skip list entry {item!r} must be exactly {ARCHIVE_ID_LENGTH} characters"
                )
            if item not in entries:
                entries.append(item)
        return entries

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level {v!r}")
        return level

    @property
    def data_directory(self) -> Path | None:
        if self.game_directory is None:
            return None
        return self.game_directory / "data"

    def validate_paths(self) -> list[str]:
        issues = []

        if self.game_directory is None:
            issues.append("Game directory is not set")
        elif not self.game_directory.exists():
            issues.append(f"Game directory does not exist: {self.game_directory}")
        elif not self.data_directory.is_dir():
            issues.append(f"Game directory has no data folder: {self.data_directory}")

        if self.storage_directory.exists() and not self.storage_directory.is_dir():
            issues.append(f"Storage directory is not a directory: {self.storage_directory}")

        if self.temp_directory.exists() and not self.temp_directory.is_dir():
            issues.append(f"Temporary directory is not a directory: {self.temp_directory}")

        return issues


def load_settings(path: str | Path | None = None) -> Settings:
    """Read settings from ``path``; missing file gives the defaults.

    A file that exists but does not validate raises ``pydantic.ValidationError``.
    """
    path = Path(path) if path is not None else default_settings_path()
    if not path.exists():
        _log.info("No settings file at %s, using defaults", path)
        return Settings()
    return Settings.model_validate_json(path.read_bytes())


def save_settings(settings: Settings, path: str | Path | None = None) -> Path:
    path = Path(path) if path is not None else default_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.model_dump(mode="json"), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    return path
