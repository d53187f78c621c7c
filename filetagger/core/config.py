"""Application configuration."""
import os
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_data_dir() -> Path:
    """Per-user application-data folder holding the central store."""
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "FileTagger"
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home) / "filetagger"
    return Path.home() / ".local" / "share" / "filetagger"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="FILETAGGER_",
        case_sensitive=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "File Tagger"

    # Central store
    DATA_DIR: Path = Field(default_factory=default_data_dir)
    CENTRAL_DB_NAME: str = "filetagger.db"
    SQLITE_TIMEOUT_SECONDS: float = 5.0

    # Satellite stores
    SATELLITE_DIR_NAME: str = ".filetagger"
    SATELLITE_DB_NAME: str = "tags.db"
    DUPLICATE_SCAN_LIMIT: int = Field(20, ge=0)
    DUPLICATE_NAME_PATTERNS: List[str] = [
        "{base} ({index})",
        "{base}({index})",
        "{base}_{index}",
        "{base}-{index}",
    ]

    # Sync behaviour
    PUSH_PRUNES_SATELLITE: bool = False
    SYNC_SATELLITE_ON_CHANGE: bool = True

    # Lock-safe deletion
    RELEASE_DELAY_SECONDS: float = Field(0.15, ge=0.0)
    DELETE_RETRY_ATTEMPTS: int = Field(3, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    SQL_ECHO: bool = False

    # Error reporting
    ERROR_PREVIEW_LIMIT: int = 5

    @property
    def CENTRAL_DB_PATH(self) -> Path:
        """Location of the central store database file."""
        return Path(self.DATA_DIR) / self.CENTRAL_DB_NAME

    def satellite_db_path(self, location: Path) -> Path:
        """Database file inside a satellite location folder."""
        return Path(location) / self.SATELLITE_DB_NAME


settings = Settings()
