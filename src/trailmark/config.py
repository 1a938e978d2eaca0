"""Configuration management using Pydantic settings."""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from TRAILMARK_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRAILMARK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Local key-value store backing save/load
    storage_path: Path = Path("~/.local/share/trailmark/store.json")
    features_key: str = "drawnFeatures"
    legacy_key: str = "mapData"  # pre-grouping format, read-only

    # New features
    default_color: str = "#1d4ed8"
    default_group_name: str = "Default"

    # Abort a load on unknown geometry kinds instead of skipping them
    strict_load: bool = False

    log_level: str = "INFO"


settings = Settings()
