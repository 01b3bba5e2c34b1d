"""Pydantic schemas for the archive cache.

This module defines the configuration and data models shared by the naming,
publishing, and sweeping layers.

Models:
    CacheConfig: Cache location, capacity, and rename retry window
    PackageIdentity: Case-insensitive package name plus semantic version
    DirectoryEntry: One child of the cache directory as reported by file access
    CacheEntry: A primary archive found on disk, with its parsed identity
    CachedArchive: Result of a fetch, with optional signature archive

Example:
    >>> from archive_cache.schemas import CacheConfig, PackageIdentity
    >>> config = CacheConfig(path=Path("/tmp/archives"), capacity=5)
    >>> identity = PackageIdentity(name="Acme.Tool", version="1.2.0")
    >>> identity.normalized_name
    'acme.tool'
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from archive_cache.versions import is_valid_version

DEFAULT_CAPACITY = 20
"""Number of distinct packages retained by default."""

DEFAULT_RENAME_RETRY_SECONDS = 120.0
"""Window for retrying transient rename failures (2 minutes)."""

_ENV_FIELDS = {
    "capacity": "ARCHIVE_CACHE_CAPACITY",
    "rename_retry_seconds": "ARCHIVE_CACHE_RENAME_RETRY_SECONDS",
    "rename_retry_interval_seconds": "ARCHIVE_CACHE_RENAME_RETRY_INTERVAL_SECONDS",
}
"""Numeric CacheConfig fields and the environment variables overriding them."""


def _default_cache_path() -> Path:
    """Return the per-user default cache directory."""
    return Path.home() / ".cache" / "archive-cache"


class CacheConfig(BaseModel):
    """Archive cache configuration.

    Fixed for the lifetime of an ArchiveCache. A capacity of 0 disables
    identity-based naming (each download gets a random name) and retention
    (every recognised archive is evicted on the next sweep).

    Examples:
        >>> config = CacheConfig(capacity=10)
        >>> config.rename_retry_seconds
        120.0
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Path = Field(
        default_factory=_default_cache_path,
        description="Directory holding cached archives and signature archives",
    )
    capacity: int = Field(
        default=DEFAULT_CAPACITY,
        ge=0,
        description="Maximum number of distinct packages kept after a sweep (0 disables caching)",
    )
    rename_retry_seconds: float = Field(
        default=DEFAULT_RENAME_RETRY_SECONDS,
        gt=0,
        description="How long to retry a rename that failed with a transient permission error",
    )
    rename_retry_interval_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Pause between rename retries",
    )

    @property
    def caching_enabled(self) -> bool:
        """Check if identity-based caching is enabled."""
        return self.capacity > 0

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Create configuration from environment variables.

        Values are passed to pydantic as strings, so malformed values raise
        ValidationError like any other invalid field.

        Environment variables:
            ARCHIVE_CACHE_DIR: Cache directory path
            ARCHIVE_CACHE_CAPACITY: Number of distinct packages to keep
            ARCHIVE_CACHE_RENAME_RETRY_SECONDS: Rename retry window in seconds
            ARCHIVE_CACHE_RENAME_RETRY_INTERVAL_SECONDS: Pause between rename retries

        Returns:
            CacheConfig with defaults for unset variables.

        Raises:
            ValidationError: If a variable holds an invalid value.
        """
        values: dict[str, object] = {}

        cache_dir = os.environ.get("ARCHIVE_CACHE_DIR")
        if cache_dir:
            values["path"] = Path(cache_dir).expanduser()

        for field_name, env_var in _ENV_FIELDS.items():
            raw = os.environ.get(env_var, "").strip()
            if raw:
                values[field_name] = raw

        return cls.model_validate(values)


class PackageIdentity(BaseModel):
    """Identity of a cached package version.

    Names compare case-insensitively; use normalized_name for grouping.
    target_platform is an optional qualifier (e.g. "linux-x64") that becomes
    part of the cache key but not of the package's grouping identity.

    Examples:
        >>> PackageIdentity(name="acme.tool", version="2.0.0-rc.1").version
        '2.0.0-rc.1'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(
        ...,
        min_length=1,
        pattern=r"^[^.@/\\][^@/\\]*$",
        description="Package name (case-insensitive)",
        examples=["acme.tool", "ms-python.python"],
    )
    version: str = Field(
        ...,
        description="Semantic version",
        examples=["1.0.0", "2.1.0-beta.1"],
    )
    target_platform: str | None = Field(
        default=None,
        min_length=1,
        pattern=r"^[^@/\\]+$",
        description="Optional platform qualifier",
        examples=["linux-x64", "win32-arm64"],
    )

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Reject anything that is not a semantic version."""
        if not is_valid_version(v):
            raise ValueError(f"Invalid semantic version: {v!r}")
        return v

    @property
    def normalized_name(self) -> str:
        """Lowercased name used to group versions of the same package."""
        return self.name.lower()

    def __str__(self) -> str:
        suffix = f"@{self.target_platform}" if self.target_platform else ""
        return f"{self.name}-{self.version}{suffix}"


class DirectoryEntry(BaseModel):
    """A child of the cache directory with its modification time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="File name within the directory")
    path: Path = Field(..., description="Full path to the child")
    modified_time: datetime = Field(..., description="Last modification timestamp")


class CacheEntry(BaseModel):
    """A primary archive found in the cache directory.

    Produced by the sweep. Signature archives never appear as CacheEntry.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    identity: PackageIdentity = Field(..., description="Identity parsed from the file name")
    path: Path = Field(..., description="Location of the archive")
    modified_time: datetime = Field(..., description="Last modification timestamp")


class CachedArchive(BaseModel):
    """Locations returned by ArchiveCache.fetch_or_download()."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    archive_path: Path = Field(..., description="Location of the primary archive")
    signature_path: Path | None = Field(
        default=None,
        description="Location of the paired signature archive, if one was fetched",
    )
