"""Archive cache: download-once storage for package archives.

ArchiveCache is the public entry point. It names archives by package
identity, publishes downloads atomically, and gates every operation behind a
one-time janitor sweep of the cache directory.

Lifecycle:
    - The sweep starts on first use (or wait_until_ready()) and runs once per
      instance; its task is shared by every operation
    - Callers awaiting the sweep are shielded from each other, so cancelling
      one fetch never cancels the shared sweep
    - aclose() waits for an in-flight sweep; the sweep is never re-run

Concurrency:
    No lock serializes operations. Writers in this or other processes racing
    on the same archive are resolved by the publisher: an existing target is
    reused and a lost rename race counts as success.

Example:
    >>> from archive_cache import ArchiveCache, CacheConfig, PackageIdentity
    >>>
    >>> async def download(identity: PackageIdentity, staging: Path) -> None:
    ...     staging.write_bytes(await fetch_bytes(identity))
    >>>
    >>> async with ArchiveCache(CacheConfig(path=Path("~/.cache/archives"))) as cache:
    ...     result = await cache.fetch_or_download(
    ...         PackageIdentity(name="acme.tool", version="1.2.0"),
    ...         download,
    ...     )
    ...     install(result.archive_path)
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from types import TracebackType

import structlog

from archive_cache.filesystem import FileAccess, LocalFileAccess
from archive_cache.janitor import CacheJanitor, SweepReport
from archive_cache.naming import archive_name, signature_archive_name
from archive_cache.publisher import AtomicPublisher
from archive_cache.schemas import CacheConfig, CachedArchive, PackageIdentity

logger = structlog.get_logger(__name__)

Downloader = Callable[[PackageIdentity, Path], Awaitable[None]]
"""Writes the archive for an identity to the given staging path, or raises."""


class ArchiveCache:
    """Local cache of downloaded package archives.

    Attributes:
        config: CacheConfig with path, capacity, and rename retry settings.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        files: FileAccess | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize ArchiveCache.

        No I/O happens here; the sweep starts on first use.

        Args:
            config: Cache configuration. Uses defaults if None.
            files: File-access capability. Uses LocalFileAccess if None.
            clock: Monotonic clock for the rename retry window.
        """
        self._config = config or CacheConfig()
        self._files = files or LocalFileAccess()
        self._publisher = AtomicPublisher(
            self._files,
            retry_seconds=self._config.rename_retry_seconds,
            retry_interval_seconds=self._config.rename_retry_interval_seconds,
            clock=clock,
        )
        self._janitor = CacheJanitor(self._files, self._config.path, self._config.capacity)
        self._sweep: asyncio.Task[SweepReport] | None = None

    @property
    def config(self) -> CacheConfig:
        """Return cache configuration."""
        return self._config

    @property
    def cache_dir(self) -> Path:
        """Return the cache directory."""
        return self._config.path

    async def wait_until_ready(self) -> SweepReport:
        """Wait for the one-time sweep, starting it if needed.

        Returns:
            SweepReport of the sweep. The same report on every call.
        """
        if self._sweep is None:
            self._sweep = asyncio.get_running_loop().create_task(self._janitor.sweep())
        return await asyncio.shield(self._sweep)

    async def fetch_or_download(
        self,
        identity: PackageIdentity,
        download: Downloader,
        download_signature: Downloader | None = None,
    ) -> CachedArchive:
        """Return the cached archive for identity, downloading it if missing.

        Args:
            identity: Package name and version.
            download: Capability writing the archive to a staging path.
            download_signature: Capability writing the signature archive.
                When None, no signature archive is fetched.

        Returns:
            CachedArchive with the archive location and, if requested, the
            signature archive location.

        Raises:
            RenameRetryExhaustedError: If publishing kept failing with a
                transient permission error.
            Exception: Whatever a downloader raised, unchanged.
        """
        await self.wait_until_ready()
        await self._files.ensure_directory(self.cache_dir)

        archive_path = self.cache_dir / archive_name(identity, self._config.capacity)
        await self._publisher.publish(
            archive_path,
            functools.partial(download, identity),
            kind="archive",
        )

        signature_path: Path | None = None
        if download_signature is not None:
            signature_path = archive_path.with_name(signature_archive_name(archive_path.name))
            await self._publisher.publish(
                signature_path,
                functools.partial(download_signature, identity),
                kind="signature archive",
            )

        logger.debug(
            "cache_fetch",
            package=str(identity),
            path=str(archive_path),
            signature=signature_path is not None,
        )
        return CachedArchive(archive_path=archive_path, signature_path=signature_path)

    async def delete(self, path: Path) -> bool:
        """Delete a cached file.

        A paired signature archive is not removed; delete it separately.

        Args:
            path: File to delete.

        Returns:
            True if deleted, False if the deletion failed (logged).
        """
        await self.wait_until_ready()
        try:
            await self._files.delete(path)
        except Exception as e:
            logger.warning("cache_delete_failed", path=str(path), error=str(e))
            return False

        logger.info("cache_delete", path=str(path))
        return True

    async def aclose(self) -> None:
        """Dispose the cache, waiting for an in-flight sweep."""
        if self._sweep is not None and not self._sweep.done():
            await asyncio.shield(self._sweep)

    async def __aenter__(self) -> ArchiveCache:
        await self.wait_until_ready()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
