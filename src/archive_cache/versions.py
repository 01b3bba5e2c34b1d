"""Semantic version parsing and precedence for cached archives.

Cache entries for the same package are ranked by semantic-version precedence
so only the newest version survives a sweep.

Version Format:
    MAJOR.MINOR.PATCH with optional pre-release (``-rc.1``) and build
    metadata (``+sha.abc``). Build metadata never affects precedence.

Precedence Rules (semver.org, section 11):
    - MAJOR, MINOR, PATCH compare numerically
    - A pre-release ranks below the matching release (1.0.0-rc.1 < 1.0.0)
    - Numeric pre-release identifiers compare numerically and rank below
      alphanumeric ones
    - A shorter pre-release ranks below a longer one sharing its prefix

Example:
    >>> from archive_cache.versions import compare_versions
    >>> compare_versions("1.10.0", "1.9.0")
    1
    >>> compare_versions("2.0.0-beta.2", "2.0.0")
    -1
"""

from __future__ import annotations

import re

VERSION_PATTERN = (
    r"(?:0|[1-9]\d*)\.(?:0|[1-9]\d*)\.(?:0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
)
"""Unanchored semver pattern, reused by the cache key parser."""

_VERSION_RE = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)

VersionKey = tuple[int, int, int, int, tuple[tuple[int, int, str], ...]]


def is_valid_version(version: str) -> bool:
    """Check if a string is a valid semantic version."""
    return _VERSION_RE.match(version) is not None


def version_key(version: str) -> VersionKey:
    """Build a sort key implementing semantic-version precedence.

    Args:
        version: Semantic version string (e.g., "1.2.3", "1.2.3-rc.1").

    Returns:
        Tuple that orders by precedence under normal tuple comparison.

    Raises:
        ValueError: If version is not a valid semantic version.

    Examples:
        >>> sorted(["1.0.0", "1.0.0-rc.1", "0.9.9"], key=version_key)
        ['0.9.9', '1.0.0-rc.1', '1.0.0']
    """
    match = _VERSION_RE.match(version)
    if match is None:
        raise ValueError(
            f"Invalid version format: {version!r}. Expected MAJOR.MINOR.PATCH (e.g., '1.0.0')."
        )

    prerelease = match.group("prerelease")
    if prerelease is None:
        # Releases outrank every pre-release of the same core version
        return (
            int(match.group("major")),
            int(match.group("minor")),
            int(match.group("patch")),
            1,
            (),
        )

    identifiers: list[tuple[int, int, str]] = []
    for part in prerelease.split("."):
        if part.isdigit():
            identifiers.append((0, int(part), ""))
        else:
            identifiers.append((1, 0, part))

    return (
        int(match.group("major")),
        int(match.group("minor")),
        int(match.group("patch")),
        0,
        tuple(identifiers),
    )


def compare_versions(left: str, right: str) -> int:
    """Compare two semantic versions.

    Args:
        left: First version.
        right: Second version.

    Returns:
        -1 if left < right, 0 if they have equal precedence, 1 if left > right.

    Raises:
        ValueError: If either version is invalid.
    """
    left_key = version_key(left)
    right_key = version_key(right)
    if left_key < right_key:
        return -1
    if left_key > right_key:
        return 1
    return 0
