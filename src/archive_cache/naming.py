"""File naming rules for the archive cache directory.

Directory Layout:
    <cache_dir>/
    ├── acme.tool-1.2.0               # Primary archive, named by cache key
    ├── acme.tool-1.2.0.sigzip        # Paired signature archive
    ├── other.pkg-3.0.0@linux-x64     # Platform-qualified archive
    └── .3f2a9c...                    # Staging file (transient, never parsed)

All functions are pure and total: parse_cache_key() returns None instead of
raising for names it does not recognise.
"""

from __future__ import annotations

import re
import uuid

from pydantic import ValidationError

from archive_cache.schemas import PackageIdentity
from archive_cache.versions import VERSION_PATTERN

SIGNATURE_ARCHIVE_SUFFIX = ".sigzip"
"""Suffix appended to a primary archive name to name its signature archive."""

STAGING_PREFIX = "."
"""Prefix of staging files; no cache key starts with it."""

# Greedy name: the last "-<semver>" in the key separates name from version
_CACHE_KEY_RE = re.compile(
    rf"^(?P<name>[^.@/\\][^@/\\]*)-(?P<version>{VERSION_PATTERN})(?:@(?P<platform>[^@/\\]+))?$"
)


def cache_key(identity: PackageIdentity) -> str:
    """Return the stable, lowercase file name for a package version.

    Examples:
        >>> cache_key(PackageIdentity(name="Acme.Tool", version="1.2.0"))
        'acme.tool-1.2.0'
        >>> cache_key(PackageIdentity(name="x", version="1.0.0", target_platform="linux-x64"))
        'x-1.0.0@linux-x64'
    """
    return str(identity).lower()


def archive_name(identity: PackageIdentity, capacity: int) -> str:
    """Return the file name to cache an archive under.

    With capacity 0 caching is disabled: a random name is returned so no two
    downloads, in this process or another, share a file.
    """
    if capacity > 0:
        return cache_key(identity)
    return uuid.uuid4().hex


def parse_cache_key(name: str) -> PackageIdentity | None:
    """Parse a cache directory file name back into a package identity.

    Returns None for staging files, signature archives, random names and any
    other file the cache does not own.
    """
    if is_staging_name(name) or is_signature_archive(name):
        return None

    match = _CACHE_KEY_RE.match(name)
    if match is None:
        return None

    try:
        return PackageIdentity(
            name=match.group("name"),
            version=match.group("version"),
            target_platform=match.group("platform"),
        )
    except ValidationError:
        return None


def signature_archive_name(name: str) -> str:
    """Return the signature archive name paired with a primary archive name."""
    return name + SIGNATURE_ARCHIVE_SUFFIX


def is_signature_archive(name: str) -> bool:
    """Check if a file name is a signature archive."""
    return name.endswith(SIGNATURE_ARCHIVE_SUFFIX)


def archive_name_from_signature(name: str) -> str:
    """Recover the primary archive name from a signature archive name."""
    if not is_signature_archive(name):
        return name
    return name[: len(name) - len(SIGNATURE_ARCHIVE_SUFFIX)]


def staging_name() -> str:
    """Return a fresh, hidden staging file name."""
    return STAGING_PREFIX + uuid.uuid4().hex


def is_staging_name(name: str) -> bool:
    """Check if a file name is a staging file."""
    return name.startswith(STAGING_PREFIX)
