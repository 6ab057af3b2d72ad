from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralised runtime configuration for the video importer."""

    model_config = SettingsConfigDict(
        env_prefix="VIMPORTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = "Video Importer"
    environment: str = Field(default="development", description="Deployment environment label.")
    log_level: str = Field(default="info")

    cache_root: Path = Field(default_factory=lambda: Path(".vimporter/cache"), description="Root for cache records.")
    cache_enabled: bool = Field(default=True, description="Persist cache records between runs.")
    work_root: Path = Field(default_factory=lambda: Path(".vimporter/work"), description="Root for encoded files.")

    max_parallel_imports: int = Field(default=2, description="Upper bound of videos processed concurrently.")
    force_full_upload: bool = Field(default=False, description="Upload every asset even when already published.")
    delete_exogenous: bool = Field(default=False, description="Remove index entries not published by the importer.")
    delete_missing_from_source: bool = Field(
        default=False,
        description="Remove index entries whose source video disappeared.",
    )
    unpin_removed: bool = Field(default=False, description="Unpin the contents of deleted index entries.")

    importer_identifier: str = Field(
        default="EthernaImporter",
        description="Client name written into manifest personal data.",
    )

    video_heights: tuple[int, ...] = Field(
        default=(360, 480, 720, 1080, 1440, 2160),
        description="Target heights for encoded video renditions.",
    )
    thumbnail_widths: tuple[int, ...] = Field(
        default=(480, 960, 1440),
        description="Target widths for scaled thumbnails.",
    )

    title_max_length: Optional[int] = Field(default=150, description="Index limit on title length.")
    description_max_length: Optional[int] = Field(default=5000, description="Index limit on description length.")

    @property
    def environment_lower(self) -> str:
        return self.environment.lower()


@lru_cache()
def get_settings() -> Settings:
    load_dotenv(".env", override=False)

    _ENV_ALIAS_MAP = {
        "VIMPORTER_ENV": "VIMPORTER_ENVIRONMENT",
        "VIMPORTER_WORKERS": "VIMPORTER_MAX_PARALLEL_IMPORTS",
    }

    for source, target in _ENV_ALIAS_MAP.items():
        value = os.getenv(source)
        if value:
            os.environ[target] = value

    settings = Settings()

    if settings.max_parallel_imports < 1:
        if settings.environment_lower == "production":
            raise ValueError("Production environment must allow at least one parallel import.")
        settings.max_parallel_imports = 1

    return settings


__all__ = ["Settings", "get_settings"]
