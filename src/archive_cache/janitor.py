"""Startup sweep that keeps the archive cache bounded and consistent.

The janitor runs once per ArchiveCache, before any fetch or delete. It lists
the cache directory, decides what to evict, and deletes it.

Retention Policy:
    1. Versions of the same package (case-insensitive name) collapse to the
       highest semantic version; older versions are evicted regardless of age
    2. Of the surviving current entries, only the `capacity` most recently
       modified are kept; older ones are evicted
    3. A signature archive is deleted before its primary archive, so it never
       outlives it

Unrecognised names (staging leftovers, foreign files, random names written
with caching disabled) are ignored and never count toward capacity.

Failure Policy:
    Sweeping is fail-open. A listing failure ends the sweep with nothing
    deleted; a failed deletion is logged and the rest proceed. An oversized
    cache is preferable to blocking installs.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from archive_cache.filesystem import FileAccess
from archive_cache.naming import (
    archive_name_from_signature,
    is_signature_archive,
    parse_cache_key,
    signature_archive_name,
)
from archive_cache.schemas import CacheEntry, DirectoryEntry
from archive_cache.versions import version_key

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EvictionPlan:
    """Decision produced by plan_eviction().

    Attributes:
        retained: Current entries that stay, oldest first.
        outdated: Superseded versions of a retained or evicted package.
        overflow: Current entries evicted to respect capacity, oldest first.
        signature_archives: Names of primary archives that have a signature archive.
    """

    retained: list[CacheEntry] = field(default_factory=list)
    outdated: list[CacheEntry] = field(default_factory=list)
    overflow: list[CacheEntry] = field(default_factory=list)
    signature_archives: frozenset[str] = frozenset()

    @property
    def to_delete(self) -> list[CacheEntry]:
        """All entries scheduled for deletion."""
        return [*self.outdated, *self.overflow]

    def has_signature(self, entry: CacheEntry) -> bool:
        """Check if an entry has a paired signature archive on disk."""
        return entry.path.name in self.signature_archives


@dataclass
class SweepReport:
    """Outcome of a sweep.

    Attributes:
        retained: Number of current entries kept.
        deleted: Paths removed (primary archives and signature archives).
        failed: Paths that could not be removed.
        completed: False if the directory could not be listed.
    """

    retained: int = 0
    deleted: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)
    completed: bool = True


def plan_eviction(children: list[DirectoryEntry], capacity: int) -> EvictionPlan:
    """Decide which cache entries to keep and which to evict.

    Args:
        children: Listing of the cache directory.
        capacity: Maximum number of distinct packages to keep.

    Returns:
        EvictionPlan; performs no I/O.

    Example:
        >>> plan = plan_eviction(listing, capacity=3)
        >>> [e.identity.name for e in plan.retained]
        ['c', 'd', 'e']
    """
    signature_archives: set[str] = set()
    by_package: dict[str, list[CacheEntry]] = defaultdict(list)

    for child in children:
        if is_signature_archive(child.name):
            signature_archives.add(archive_name_from_signature(child.name))
            continue

        identity = parse_cache_key(child.name)
        if identity is None:
            continue

        by_package[identity.normalized_name].append(
            CacheEntry(identity=identity, path=child.path, modified_time=child.modified_time)
        )

    outdated: list[CacheEntry] = []
    current: list[CacheEntry] = []
    for versions in by_package.values():
        versions.sort(key=lambda e: version_key(e.identity.version), reverse=True)
        current.append(versions[0])
        outdated.extend(versions[1:])

    current.sort(key=lambda e: e.modified_time)
    excess = max(0, len(current) - capacity)

    return EvictionPlan(
        retained=current[excess:],
        outdated=outdated,
        overflow=current[:excess],
        signature_archives=frozenset(signature_archives),
    )


class CacheJanitor:
    """Sweeps the cache directory down to its retention policy.

    Example:
        >>> janitor = CacheJanitor(LocalFileAccess(), Path("~/.cache/archives"), capacity=20)
        >>> report = await janitor.sweep()
        >>> report.retained
        20
    """

    def __init__(self, files: FileAccess, cache_dir: Path, capacity: int) -> None:
        """Initialize CacheJanitor.

        Args:
            files: File-access capability.
            cache_dir: Directory to sweep.
            capacity: Maximum number of distinct packages to keep.
        """
        self._files = files
        self._cache_dir = cache_dir
        self._capacity = capacity

    async def sweep(self) -> SweepReport:
        """Evict outdated and overflowing entries.

        Never raises: failures are logged and reflected in the report.
        """
        try:
            if not await self._files.exists(self._cache_dir):
                logger.debug("cache_sweep_skipped", path=str(self._cache_dir), reason="missing")
                return SweepReport()

            children = await self._files.list_with_metadata(self._cache_dir)
            plan = plan_eviction(children, self._capacity)
        except Exception as e:
            logger.error("cache_sweep_failed", path=str(self._cache_dir), error=str(e))
            return SweepReport(completed=False)

        report = SweepReport(retained=len(plan.retained))
        entries = plan.to_delete
        results = await asyncio.gather(
            *(self._evict(entry, plan) for entry in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                logger.warning("cache_evict_failed", path=str(entry.path), error=str(result))
                report.failed.append(entry.path)
                continue
            deleted, failed = result
            report.deleted.extend(deleted)
            report.failed.extend(failed)

        logger.info(
            "cache_sweep_complete",
            path=str(self._cache_dir),
            retained=report.retained,
            outdated=len(plan.outdated),
            overflow=len(plan.overflow),
            deleted=len(report.deleted),
            failed=len(report.failed),
        )
        return report

    async def _evict(self, entry: CacheEntry, plan: EvictionPlan) -> tuple[list[Path], list[Path]]:
        """Delete one entry, its signature archive first.

        Returns:
            Tuple of (deleted paths, failed paths).
        """
        deleted: list[Path] = []
        paths = [entry.path]
        if plan.has_signature(entry):
            paths.insert(0, entry.path.with_name(signature_archive_name(entry.path.name)))

        for index, path in enumerate(paths):
            logger.debug("cache_evict", path=str(path), package=str(entry.identity))
            try:
                await self._files.delete(path)
            except Exception as e:
                # Keep the primary when its signature could not be removed
                logger.warning("cache_evict_failed", path=str(path), error=str(e))
                return deleted, paths[index:]
            deleted.append(path)

        return deleted, []
