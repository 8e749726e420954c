"""
Runtime settings for whaticon.

Settings are read from environment variables with the ``WHATICON_`` prefix and an
optional ``.env`` file. They configure the command line and the collaborators
around the matching core (catalog service, release downloads, local cache).
The core functions never read settings implicitly: ``MatchOptions()`` and
``build_index()`` keep their own documented defaults.

Example:

    WHATICON_INDEX_VARIANT=core WHATICON_THRESHOLD=0.85 whaticon match icon.svg
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import whaticon


__all__ = [
    "INDEX_VERSION",
    "IndexVariant",
    "WhaticonSettings",
    "whaticon_settings",
]


# Bump when the index format changes; cached indexes live in a versioned directory
INDEX_VERSION = "1"

IndexVariant = Literal["core", "popular", "full"]


class WhaticonSettings(BaseSettings):
    """
    Application settings for whaticon.

    Attributes:
        hash_size: Raster edge length used for fingerprints (32 -> 1024 bit fingerprints)
        limit: Default maximum number of matches returned by the CLI
        threshold: Default minimum similarity (0-1) for the CLI
        batch_size: Icons per sprite sheet when building an index
        sprite_columns: Grid columns of a sprite sheet
        workers: Number of sprite sheets rendered concurrently during a build
        index_variant: Default prebuilt index variant (core, popular, full)
        cache_dir: Directory for downloaded index variants
        api_url: Base URL of the Iconify API used to resolve icon names
        release_repo: GitHub repository publishing prebuilt index releases
        http_timeout: Timeout in seconds for HTTP requests
    """

    hash_size: int = Field(32, ge=2, description="Raster edge length for fingerprints")
    limit: int = Field(10, ge=1, description="Default maximum number of matches")
    threshold: float = Field(0.8, ge=0.0, le=1.0, description="Default minimum similarity")
    batch_size: int = Field(1000, ge=1, description="Icons per sprite sheet")
    sprite_columns: int = Field(50, ge=1, description="Grid columns of a sprite sheet")
    workers: int = Field(1, ge=1, description="Sprite sheets rendered concurrently")
    index_variant: IndexVariant = Field("popular", description="Default prebuilt index variant")
    cache_dir: Path = Field(
        Path(whaticon.dirs.user_cache_dir) / f"v{INDEX_VERSION}",
        description="Directory for downloaded index variants",
    )
    api_url: str = Field("https://api.iconify.design", description="Iconify API base URL")
    release_repo: str = Field("dannote/whaticon", description="GitHub repository with index releases")
    http_timeout: float = Field(60.0, gt=0, description="HTTP timeout in seconds")

    @field_validator("hash_size")
    @classmethod
    def check_hash_size(cls, v):
        # type: (int) -> int
        """Fingerprints are packed 8 bits per byte, so size**2 must be byte aligned."""
        if (v * v) % 8:
            raise ValueError(f"hash_size**2 must be a multiple of 8, got hash_size={v}")
        return v

    @field_validator("api_url")
    @classmethod
    def strip_api_url(cls, v):
        # type: (str) -> str
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_prefix="WHATICON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        validate_assignment=True,
    )

    def override(self, update=None):
        # type: (dict|None) -> WhaticonSettings
        """
        Returns an updated and validated deep copy of the current settings instance.

        :param update: Dictionary of field names and values to override.
        :return: New WhaticonSettings instance with updated and validated fields.
        """
        update = update or {}

        settings = self.model_copy(deep=True)
        # Assign fields individually so validation gets triggered
        for field, value in update.items():
            setattr(settings, field, value)
        return settings


whaticon_settings = WhaticonSettings()
