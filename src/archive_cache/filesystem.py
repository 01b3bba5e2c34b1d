"""File-access capability used by the archive cache.

The publisher and janitor never touch the file system directly; they go
through a FileAccess implementation so tests (and other storage backends) can
substitute their own. rename() must classify failures with RenameErrorKind,
which keeps platform error codes out of the publishing logic.

Key Components:
    FileAccess: Async protocol (exists, list, mkdir, rename, delete)
    LocalFileAccess: Local disk implementation running blocking calls in threads

Error Mapping (LocalFileAccess.rename):
    | errno            | Platform | RenameErrorKind      |
    |------------------|----------|----------------------|
    | EPERM, EACCES    | Windows  | TRANSIENT_PERMISSION |
    | ENOTEMPTY, EEXIST| any      | NON_EMPTY_CONFLICT   |
    | anything else    | any      | OTHER                |
"""

from __future__ import annotations

import asyncio
import errno
import os
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from archive_cache.errors import RenameError, RenameErrorKind
from archive_cache.schemas import DirectoryEntry

logger = structlog.get_logger(__name__)

_CONFLICT_ERRNOS = frozenset({errno.ENOTEMPTY, errno.EEXIST})
_TRANSIENT_ERRNOS = frozenset({errno.EPERM, errno.EACCES})


@runtime_checkable
class FileAccess(Protocol):
    """Async file-system operations needed by the cache."""

    async def exists(self, path: Path) -> bool:
        """Check if a file or directory exists at path."""
        ...

    async def list_with_metadata(self, directory: Path) -> list[DirectoryEntry]:
        """List the children of a directory with modification times."""
        ...

    async def ensure_directory(self, path: Path) -> None:
        """Create a directory and its parents if missing."""
        ...

    async def rename(self, source: Path, target: Path) -> None:
        """Rename source to target.

        Raises:
            RenameError: On failure, classified by RenameErrorKind.
        """
        ...

    async def delete(self, path: Path) -> None:
        """Delete a file or directory tree.

        Raises:
            OSError: If the path cannot be deleted (including when missing).
        """
        ...


class LocalFileAccess:
    """FileAccess backed by the local disk.

    Blocking calls run in the default executor via asyncio.to_thread, so
    every operation is a suspension point for the event loop.

    Example:
        >>> files = LocalFileAccess()
        >>> await files.exists(Path("/tmp"))
        True
    """

    def __init__(self, platform: str | None = None) -> None:
        """Initialize LocalFileAccess.

        Args:
            platform: Platform name used for error classification.
                Defaults to sys.platform.
        """
        self._platform = platform or sys.platform

    async def exists(self, path: Path) -> bool:
        """Check if a file or directory exists at path."""
        return await asyncio.to_thread(path.exists)

    async def list_with_metadata(self, directory: Path) -> list[DirectoryEntry]:
        """List the children of a directory with modification times.

        Children removed between listing and stat are skipped.
        """
        return await asyncio.to_thread(self._scan, directory)

    async def ensure_directory(self, path: Path) -> None:
        """Create a directory and its parents if missing."""
        await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)

    async def rename(self, source: Path, target: Path) -> None:
        """Rename source to target, classifying failures."""
        try:
            await asyncio.to_thread(os.rename, source, target)
        except OSError as e:
            raise RenameError(
                self.classify_rename_error(e),
                source,
                target,
                e.strerror or str(e),
            ) from e

    async def delete(self, path: Path) -> None:
        """Delete a file or directory tree."""
        await asyncio.to_thread(self._delete, path)

    def classify_rename_error(self, error: OSError) -> RenameErrorKind:
        """Map an OSError raised by os.rename to a RenameErrorKind."""
        if error.errno in _CONFLICT_ERRNOS:
            return RenameErrorKind.NON_EMPTY_CONFLICT
        # Windows reports a file briefly held open by a scanner as EPERM/EACCES
        if self._platform == "win32" and error.errno in _TRANSIENT_ERRNOS:
            return RenameErrorKind.TRANSIENT_PERMISSION
        return RenameErrorKind.OTHER

    @staticmethod
    def _scan(directory: Path) -> list[DirectoryEntry]:
        entries: list[DirectoryEntry] = []
        with os.scandir(directory) as it:
            for child in it:
                try:
                    mtime = child.stat(follow_symlinks=False).st_mtime
                except FileNotFoundError:
                    logger.debug("cache_scan_entry_vanished", name=child.name)
                    continue
                entries.append(
                    DirectoryEntry(
                        name=child.name,
                        path=Path(child.path),
                        modified_time=datetime.fromtimestamp(mtime, tz=timezone.utc),
                    )
                )
        return entries

    @staticmethod
    def _delete(path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
