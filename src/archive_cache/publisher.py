"""Atomic publishing of downloaded archives into the cache directory.

Readers must never observe a partially written archive under its final name.
Each publish downloads into a hidden staging file in the same directory and
then renames it into place, so the final path only ever appears complete.

Publish Protocol:
    1. Target already exists → no-op (sole deduplication between writers)
    2. Produce bytes at <dir>/.<uuid>
    3. Rename staging → target
       - transient permission error → retry until the window closes
       - non-empty conflict → another writer won, treated as success
       - anything else → discard staging, re-raise

Example:
    >>> publisher = AtomicPublisher(LocalFileAccess())
    >>> async def produce(staging: Path) -> None:
    ...     staging.write_bytes(b"archive bytes")
    >>> await publisher.publish(Path("/tmp/cache/acme.tool-1.0.0"), produce)
    <PublishOutcome.PUBLISHED: 'published'>
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

import structlog

from archive_cache.errors import RenameError, RenameErrorKind, RenameRetryExhaustedError
from archive_cache.filesystem import FileAccess
from archive_cache.naming import staging_name
from archive_cache.schemas import DEFAULT_RENAME_RETRY_SECONDS

logger = structlog.get_logger(__name__)

Producer = Callable[[Path], Awaitable[None]]
"""Writes a complete file at the given staging path, or raises."""


class PublishOutcome(str, Enum):
    """How a publish call ended."""

    ALREADY_CACHED = "already-cached"
    PUBLISHED = "published"
    PUBLISHED_CONCURRENTLY = "published-concurrently"


class AtomicPublisher:
    """Publishes files into the cache directory via staging and rename.

    Attributes:
        retry_seconds: Window for retrying transient rename failures.
    """

    def __init__(
        self,
        files: FileAccess,
        *,
        retry_seconds: float = DEFAULT_RENAME_RETRY_SECONDS,
        retry_interval_seconds: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize AtomicPublisher.

        Args:
            files: File-access capability.
            retry_seconds: Window for retrying transient rename failures.
            retry_interval_seconds: Pause between rename retries.
            clock: Monotonic clock in seconds, injectable for tests.
        """
        self._files = files
        self.retry_seconds = retry_seconds
        self._retry_interval_seconds = retry_interval_seconds
        self._clock = clock

    async def publish(
        self,
        target: Path,
        producer: Producer,
        kind: str = "archive",
    ) -> PublishOutcome:
        """Ensure a complete file exists at target.

        Args:
            target: Final cache path.
            producer: Capability that materializes bytes at a given path.
            kind: Human readable file kind for log events.

        Returns:
            PublishOutcome describing which writer produced the file.

        Raises:
            RenameRetryExhaustedError: If a transient rename failure outlives
                the retry window.
            Exception: Whatever the producer raised, unchanged.
        """
        if await self._files.exists(target):
            logger.debug("cache_publish_skipped", kind=kind, path=str(target))
            return PublishOutcome.ALREADY_CACHED

        staging = target.parent / staging_name()
        published = False
        try:
            if not await self._files.exists(staging):
                await producer(staging)
            await self._rename(staging, target)
            published = True
        except RenameError as e:
            if e.kind is RenameErrorKind.NON_EMPTY_CONFLICT:
                logger.info(
                    "cache_publish_conflict",
                    kind=kind,
                    path=str(target),
                    reason=f"{kind} was downloaded by another source",
                )
                return PublishOutcome.PUBLISHED_CONCURRENTLY
            logger.info(
                "cache_publish_failed",
                kind=kind,
                path=str(target),
                staging=str(staging),
                error=str(e),
            )
            raise
        except Exception as e:
            logger.info(
                "cache_publish_failed",
                kind=kind,
                path=str(target),
                staging=str(staging),
                error=str(e),
            )
            raise
        finally:
            # Also runs on cancellation, which bypasses the handlers above
            if not published:
                await self._discard(staging)

        logger.debug("cache_publish", kind=kind, path=str(target))
        return PublishOutcome.PUBLISHED

    async def _rename(self, source: Path, target: Path) -> None:
        """Rename, retrying transient permission failures until the deadline."""
        deadline = self._clock() + self.retry_seconds
        attempts = 0

        while True:
            attempts += 1
            try:
                await self._files.rename(source, target)
                return
            except RenameError as e:
                if e.kind is not RenameErrorKind.TRANSIENT_PERMISSION:
                    raise
                if self._clock() >= deadline:
                    logger.warning(
                        "cache_rename_retry_exhausted",
                        source=str(source),
                        target=str(target),
                        attempts=attempts,
                    )
                    raise RenameRetryExhaustedError(
                        source,
                        target,
                        e.reason,
                        attempts=attempts,
                        retry_seconds=self.retry_seconds,
                    ) from e

                logger.info(
                    "cache_rename_retry",
                    source=str(source),
                    target=str(target),
                    attempt=attempts,
                    error=e.reason,
                )
                await asyncio.sleep(self._retry_interval_seconds)

    async def _discard(self, staging: Path) -> None:
        """Best-effort removal of a staging file."""
        try:
            if await self._files.exists(staging):
                await self._files.delete(staging)
        except Exception as e:
            logger.debug("cache_staging_cleanup_failed", path=str(staging), error=str(e))
