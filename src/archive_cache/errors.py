"""Archive cache exception hierarchy.

All exceptions raised by this package inherit from ArchiveCacheError.

Exception Hierarchy:
    ArchiveCacheError (base)
    ├── RenameError                  # Publishing rename failed (carries a RenameErrorKind)
    │   └── RenameRetryExhaustedError  # Transient rename failure outlived the retry window
    └── ArchiveDownloadError         # HTTP downloader could not fetch an archive

Cache hygiene failures (sweep listing, individual deletions) are never raised;
they are logged and the cache keeps working.

Example:
    >>> from archive_cache.errors import ArchiveDownloadError
    >>> raise ArchiveDownloadError("acme.tool-1.0.0", "HTTP 404")
    Traceback (most recent call last):
        ...
    ArchiveDownloadError: Failed to download acme.tool-1.0.0: HTTP 404
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class RenameErrorKind(str, Enum):
    """Platform-neutral classification of a failed rename.

    Attributes:
        TRANSIENT_PERMISSION: Permission race (e.g. antivirus or indexer
            holding the file on Windows). Worth retrying.
        NON_EMPTY_CONFLICT: The target already exists because another
            writer published it first.
        OTHER: Anything else.
    """

    TRANSIENT_PERMISSION = "transient-permission"
    NON_EMPTY_CONFLICT = "non-empty-conflict"
    OTHER = "other"


class ArchiveCacheError(Exception):
    """Base exception for all archive cache errors.

    Example:
        >>> try:
        ...     await cache.fetch_or_download(identity, download)
        ... except ArchiveCacheError as e:
        ...     print(f"Cache operation failed: {e}")
    """

    pass


class RenameError(ArchiveCacheError):
    """Raised by a file-access implementation when a rename fails.

    Attributes:
        kind: Classification used by the publisher to retry, tolerate, or fail.
        source: Path being renamed.
        target: Destination path.
        reason: Description of the underlying failure.
    """

    def __init__(
        self,
        kind: RenameErrorKind,
        source: Path,
        target: Path,
        reason: str,
    ) -> None:
        """Initialize RenameError.

        Args:
            kind: Classification of the failure.
            source: Path being renamed.
            target: Destination path.
            reason: Description of the underlying failure.
        """
        self.kind = kind
        self.source = source
        self.target = target
        self.reason = reason
        super().__init__(f"Failed to rename {source} to {target} ({kind.value}): {reason}")


class RenameRetryExhaustedError(RenameError):
    """Raised when a transient rename failure persists past the retry window.

    Attributes:
        attempts: Number of rename attempts made.
        retry_seconds: Length of the retry window in seconds.
    """

    def __init__(
        self,
        source: Path,
        target: Path,
        reason: str,
        attempts: int,
        retry_seconds: float,
    ) -> None:
        """Initialize RenameRetryExhaustedError.

        Args:
            source: Staging path that could not be renamed.
            target: Final cache path.
            reason: Description of the last failure.
            attempts: Number of rename attempts made.
            retry_seconds: Length of the retry window in seconds.
        """
        self.attempts = attempts
        self.retry_seconds = retry_seconds
        super().__init__(
            RenameErrorKind.TRANSIENT_PERMISSION,
            source,
            target,
            f"{reason} (gave up after {attempts} attempts over {retry_seconds:g}s)",
        )


class ArchiveDownloadError(ArchiveCacheError):
    """Raised by the HTTP downloader when an archive cannot be fetched.

    Not retried: callers own network retry policy.

    Attributes:
        archive: Cache key or URL of the archive that failed.
        reason: Description of the failure.
        status_code: HTTP status code, if a response was received.
    """

    def __init__(self, archive: str, reason: str, status_code: int | None = None) -> None:
        """Initialize ArchiveDownloadError.

        Args:
            archive: Cache key or URL of the archive that failed.
            reason: Description of the failure.
            status_code: HTTP status code, if a response was received.
        """
        self.archive = archive
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Failed to download {archive}: {reason}")

