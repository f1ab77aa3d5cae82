"""
Configuration management using Pydantic Settings.

Precedence, highest first:
1. Keyword arguments and LANCR_* environment variables
   (nested preferences via LANCR_PREFERENCES__<FIELD>)
2. settings.yaml in ./config or in the config directory
3. Defaults
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from lancr.domain.models import TrackerPreferences

PREFERENCES_FILE = "settings.yaml"


def _platform_dir(kind: str) -> Path:
    """Per-user base directory for 'config' or 'data'"""
    if os.name == 'nt':
        return Path(os.getenv('APPDATA', Path.home()))
    if kind == 'config':
        return Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
    return Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix='LANCR_',
        env_nested_delimiter='__',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    app_name: str = "Lancr"
    config_dir: Optional[Path] = None
    data_dir: Optional[Path] = None

    # SQLAlchemy async URL; None means a file in data_dir
    database_url: Optional[str] = None

    preferences: TrackerPreferences = Field(default_factory=TrackerPreferences)

    def model_post_init(self, __context: Any) -> None:
        slug = self.app_name.lower()
        self.config_dir = self.config_dir or _platform_dir('config') / slug
        self.data_dir = self.data_dir or _platform_dir('data') / slug
        for directory in (self.config_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)

        # Explicit or environment preferences win over the file
        if 'preferences' not in self.model_fields_set:
            stored = self._read_preferences_file()
            if stored:
                self.preferences = TrackerPreferences(**stored)

    @property
    def preferences_path(self) -> Path:
        """The file save_preferences() writes; a workspace ./config copy takes precedence on load"""
        return self.config_dir / PREFERENCES_FILE

    def _read_preferences_file(self) -> Optional[Dict[str, Any]]:
        for candidate in (Path("config") / PREFERENCES_FILE, self.preferences_path):
            if candidate.is_file():
                return yaml.safe_load(candidate.read_text(encoding='utf-8'))
        return None

    def save_preferences(self):
        self.preferences_path.write_text(
            yaml.safe_dump(self.preferences.model_dump(), default_flow_style=False),
            encoding='utf-8'
        )

    def get_db_url(self) -> str:
        return self.database_url or f"sqlite+aiosqlite:///{self.data_dir / 'lancr.db'}"

    def get_backup_dir(self) -> Path:
        """The configured backup directory, or <data_dir>/backups"""
        custom = (self.preferences.backup_directory or "").strip()
        return Path(custom) if custom else self.data_dir / 'backups'


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, created on first use"""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Re-read environment and preferences file"""
    global _settings
    _settings = Settings()
    return _settings
