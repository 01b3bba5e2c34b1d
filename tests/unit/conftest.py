"""Unit test fixtures for archive-cache.

This module provides fixtures specific to unit tests, which:
- Use a real temporary directory as the cache directory
- Inject rename failures and a controllable clock through fakes
- Execute quickly (< 1s per test)
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from archive_cache.errors import RenameError, RenameErrorKind
from archive_cache.filesystem import LocalFileAccess
from archive_cache.schemas import PackageIdentity


class FakeClock:
    """Monotonic clock advanced manually by tests."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedFileAccess(LocalFileAccess):
    """LocalFileAccess that records calls and can fail renames and deletes.

    Attributes:
        rename_failures: Kinds raised, in order, by the next rename calls.
        fail_rename_forever: Kind raised by every rename when set.
        delete_failures: Paths whose deletion raises PermissionError.
        on_rename_failure: Hook called after each injected rename failure.
        renames: (source, target) of every rename attempt.
        deletes: Every path passed to delete().
    """

    def __init__(self) -> None:
        super().__init__(platform="linux")
        self.rename_failures: list[RenameErrorKind] = []
        self.fail_rename_forever: RenameErrorKind | None = None
        self.delete_failures: set[Path] = set()
        self.on_rename_failure: Callable[[], None] | None = None
        self.renames: list[tuple[Path, Path]] = []
        self.deletes: list[Path] = []
        self.fail_listing = False

    async def list_with_metadata(self, directory: Path):  # type: ignore[override]
        if self.fail_listing:
            raise PermissionError(f"Permission denied: {directory}")
        return await super().list_with_metadata(directory)

    async def rename(self, source: Path, target: Path) -> None:
        self.renames.append((source, target))
        kind = self.fail_rename_forever
        if kind is None and self.rename_failures:
            kind = self.rename_failures.pop(0)
        if kind is not None:
            if self.on_rename_failure is not None:
                self.on_rename_failure()
            raise RenameError(kind, source, target, "injected failure")
        await super().rename(source, target)

    async def delete(self, path: Path) -> None:
        self.deletes.append(path)
        if path in self.delete_failures:
            raise PermissionError(f"Permission denied: {path}")
        await super().delete(path)


class RecordingDownloader:
    """Downloader that writes fixed content and records each call."""

    def __init__(self, content: bytes = b"PK\x03\x04archive") -> None:
        self.content = content
        self.calls: list[tuple[PackageIdentity, Path]] = []

    async def __call__(self, identity: PackageIdentity, staging_path: Path) -> None:
        self.calls.append((identity, staging_path))
        staging_path.write_bytes(self.content)


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Cache directory inside the pytest temp directory (not yet created)."""
    return tmp_path / "archives"


@pytest.fixture
def make_file(cache_dir: Path) -> Callable[..., Path]:
    """Factory fixture creating files in the cache directory.

    Usage:
        path = make_file("acme.tool-1.0.0", age_seconds=3600)
    """
    base = time.time()

    def _make_file(name: str, content: bytes = b"data", age_seconds: float = 0) -> Path:
        cache_dir.mkdir(parents=True, exist_ok=True)
        path = cache_dir / name
        path.write_bytes(content)
        mtime = base - age_seconds
        os.utime(path, (mtime, mtime))
        return path

    return _make_file


@pytest.fixture
def clock() -> FakeClock:
    """Manually advanced monotonic clock."""
    return FakeClock()


@pytest.fixture
def files() -> ScriptedFileAccess:
    """File access with injectable failures."""
    return ScriptedFileAccess()


@pytest.fixture
def downloader() -> RecordingDownloader:
    """Downloader writing archive bytes."""
    return RecordingDownloader()


@pytest.fixture
def signature_downloader() -> RecordingDownloader:
    """Downloader writing signature archive bytes."""
    return RecordingDownloader(content=b"signature")
